from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path

import pytest

from agents.saft.samples import SAMPLE_PERIOD
from agents.saft.service import generate_audit_file
from agents.saft.snapshot import JsonSnapshotSource, parse_snapshot, validate_snapshot
from agents.saft.validator import validate_audit_file
from tests.saft.factories import snapshot_payload


def test_parse_snapshot_builds_records() -> None:
    profile, snapshot = parse_snapshot(snapshot_payload())
    assert profile.tenant_id == "tenant-json"
    assert profile.address.region == "CJ"
    assert snapshot.accounts[0].id == "4111"
    assert snapshot.tax_table[0].percentage == Decimal("19")
    line = snapshot.invoice_lines[0]
    assert (line.subtotal, line.vat_amount, line.total) == (Decimal("99.99"), Decimal("19.00"), Decimal("118.99"))


def test_schema_violations_are_listed_with_pointers() -> None:
    data = snapshot_payload()
    data["invoices"][0]["issue_date"] = "20.01.2025"
    del data["accounts"][1]["name"]
    problems = validate_snapshot(data)
    assert any(p.startswith("/accounts/1: 'name' is a required property") for p in problems)
    assert any(p.startswith("/invoices/0/issue_date:") for p in problems)
    with pytest.raises(ValueError, match="Invalid tenant snapshot"):
        parse_snapshot(data)


def test_directory_source_feeds_generation(tmp_path: Path) -> None:
    (tmp_path / "a.json").write_text(json.dumps(snapshot_payload("tenant-a")), encoding="utf-8")
    (tmp_path / "b.json").write_text(json.dumps(snapshot_payload("tenant-b")), encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    source = JsonSnapshotSource.from_directory(tmp_path)
    assert source.tenants() == ["tenant-a", "tenant-b"]
    assert source.profiles.tenants() == ["tenant-a", "tenant-b"]

    xml, meta = generate_audit_file("tenant-b", *SAMPLE_PERIOD, source=source, profiles=source.profiles)
    assert meta.company_id == "RO7654321"
    assert meta.number_of_entries == 1
    assert validate_audit_file(xml).failed == 0
