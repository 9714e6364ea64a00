from __future__ import annotations

import json
import logging
import threading
from dataclasses import replace
from datetime import date, datetime, timezone

import pytest

from agents.saft.errors import DataFetchFailed, MissingMasterAccount
from agents.saft.samples import SAMPLE_PERIOD, build_sample_accounts, build_sample_source
from agents.saft.service import generate_audit_file, previous_month_period, run_scheduled_generation
from agents.saft.sinks import DirectoryExportSink, InMemoryExportSink
from agents.saft.sources import InMemoryLedgerSource, fetch_snapshot
from agents.saft.validator import validate_audit_file
from backend.core.logging import JSONFormatter

FIXED_NOW = datetime(2025, 2, 1, 6, 0, tzinfo=timezone.utc)


def _clock() -> datetime:
    return FIXED_NOW


class _FailingSink:
    def save(self, record):
        raise OSError("disk full")


class _BlockingSource(InMemoryLedgerSource):
    """Invoice lines never arrive until the test releases them."""

    def __init__(self, base: InMemoryLedgerSource, release: threading.Event) -> None:
        super().__init__()
        self._data = base._data
        self.release = release

    def fetch_invoice_lines(self, tenant_id, period_from, period_to):
        self.release.wait(5)
        return super().fetch_invoice_lines(tenant_id, period_from, period_to)


class _BrokenSource(InMemoryLedgerSource):
    def __init__(self, base: InMemoryLedgerSource) -> None:
        super().__init__()
        self._data = base._data

    def fetch_parties(self, tenant_id):
        raise ConnectionError("connection reset")


class _UnreachableInvoices(InMemoryLedgerSource):
    def __init__(self, base: InMemoryLedgerSource, tenant_id: str) -> None:
        super().__init__()
        self._data = base._data
        self.tenant_id = tenant_id

    def fetch_invoices(self, tenant_id, period_from, period_to):
        if tenant_id == self.tenant_id:
            raise OSError("network unreachable")
        return super().fetch_invoices(tenant_id, period_from, period_to)


def _logged_tenant() -> str:
    record = logging.LogRecord("agents.saft.service", logging.INFO, "", 0, "after generation", (), None)
    return json.loads(JSONFormatter().format(record))["tenant_id"]


def test_generate_returns_xml_and_metadata() -> None:
    source, profiles = build_sample_source("tenant-a")
    sink = InMemoryExportSink()
    xml, meta = generate_audit_file(
        "tenant-a", *SAMPLE_PERIOD, source=source, profiles=profiles, sink=sink, clock=_clock
    )
    assert meta.tenant_id == "tenant-a"
    assert meta.company_id == "RO12345678"
    assert meta.number_of_entries == 3
    assert meta.generated_at == FIXED_NOW
    assert meta.status == "generated"
    assert meta.export_id == "tenant-a-00001"
    assert sink.records[0].file_content == xml
    assert validate_audit_file(xml).failed == 0


def test_missing_vat_account_writes_nothing() -> None:
    source, profiles = build_sample_source("tenant-a")
    accounts = tuple(a for a in build_sample_accounts() if a.code != "4427")
    source._data["tenant-a"] = replace(source._data["tenant-a"], accounts=accounts)
    sink = InMemoryExportSink()
    with pytest.raises(MissingMasterAccount, match="4427"):
        generate_audit_file("tenant-a", *SAMPLE_PERIOD, source=source, profiles=profiles, sink=sink)
    assert sink.records == []


def test_failing_sink_is_logged_and_document_returned(caplog) -> None:
    source, profiles = build_sample_source("tenant-a")
    with caplog.at_level(logging.ERROR, logger="agents.saft.service"):
        xml, meta = generate_audit_file(
            "tenant-a", *SAMPLE_PERIOD, source=source, profiles=profiles, sink=_FailingSink()
        )
    assert "<AuditFile" in xml
    assert meta.export_id is None
    assert any("Persisting audit file for tenant-a failed" in r.getMessage() for r in caplog.records)


def test_directory_sink_writes_file_and_manifest(tmp_path) -> None:
    source, profiles = build_sample_source("tenant-a")
    xml, meta = generate_audit_file(
        "tenant-a",
        *SAMPLE_PERIOD,
        source=source,
        profiles=profiles,
        sink=DirectoryExportSink(tmp_path),
        clock=_clock,
    )
    target = tmp_path / "tenant-a" / "saft_2025-01-01_2025-01-31.xml"
    assert target.read_text(encoding="utf-8") == xml
    manifest = (tmp_path / "tenant-a" / "saft_2025-01-01_2025-01-31.manifest.json").read_text()
    assert '"generated_at_utc": "2025-02-01T06:00:00Z"' in manifest
    assert len(meta.export_id) == 64


def test_fetch_timeout_raises_retryable_error() -> None:
    base, _ = build_sample_source("tenant-a")
    release = threading.Event()
    try:
        with pytest.raises(DataFetchFailed) as excinfo:
            fetch_snapshot(_BlockingSource(base, release), "tenant-a", *SAMPLE_PERIOD, timeout=0.2)
    finally:
        release.set()
    assert excinfo.value.fetch_name == "invoice_lines"
    assert excinfo.value.retryable is True
    assert "timed out" in str(excinfo.value)


def test_fetch_error_names_the_failing_read() -> None:
    base, _ = build_sample_source("tenant-a")
    with pytest.raises(DataFetchFailed, match="Fetching parties failed: connection reset"):
        fetch_snapshot(_BrokenSource(base), "tenant-a", *SAMPLE_PERIOD, timeout=2)


def test_unknown_profile_raises_key_error() -> None:
    source, profiles = build_sample_source("tenant-a")
    profiles.clear()
    with pytest.raises(KeyError):
        generate_audit_file("tenant-a", *SAMPLE_PERIOD, source=source, profiles=profiles)


@pytest.mark.parametrize(
    "today, expected",
    [
        (date(2025, 2, 1), (date(2025, 1, 1), date(2025, 1, 31))),
        (date(2025, 3, 15), (date(2025, 2, 1), date(2025, 2, 28))),
        (date(2025, 1, 10), (date(2024, 12, 1), date(2024, 12, 31))),
    ],
)
def test_previous_month_period(today, expected) -> None:
    assert previous_month_period(today) == expected


def test_scheduled_run_counts_outcomes() -> None:
    source, profiles = build_sample_source("tenant-ok")
    ok = source._data["tenant-ok"]
    source._data["tenant-empty"] = replace(ok, invoices=(), invoice_lines=())
    source._data["tenant-broken"] = replace(
        ok, accounts=tuple(a for a in ok.accounts if a.code != "707")
    )
    for tenant in ("tenant-empty", "tenant-broken"):
        profiles.register(replace(profiles.get("tenant-ok"), tenant_id=tenant))

    sink = InMemoryExportSink()
    summary = run_scheduled_generation(
        ["tenant-ok", "tenant-empty", "tenant-broken"],
        source=source,
        profiles=profiles,
        sink=sink,
        today=date(2025, 2, 14),
        clock=_clock,
    )
    assert (summary.period_from, summary.period_to) == SAMPLE_PERIOD
    assert (summary.total, summary.successful, summary.failed, summary.skipped) == (3, 1, 1, 1)
    assert summary.errors[0].startswith("tenant-broken: Missing required Romanian standard accounts: 707")
    assert [e.tenant_id for e in summary.exports] == ["tenant-ok"]
    assert len(sink.records) == 1
    assert summary.to_dict()["period_from"] == "2025-01-01"


def test_scheduled_run_survives_unreachable_source() -> None:
    base, profiles = build_sample_source("tenant-ok")
    base._data["tenant-down"] = base._data["tenant-ok"]
    profiles.register(replace(profiles.get("tenant-ok"), tenant_id="tenant-down"))

    summary = run_scheduled_generation(
        ["tenant-down", "tenant-ok"],
        source=_UnreachableInvoices(base, "tenant-down"),
        profiles=profiles,
        today=date(2025, 2, 14),
        clock=_clock,
        timeout=2,
    )
    assert (summary.total, summary.successful, summary.failed, summary.skipped) == (2, 1, 1, 0)
    assert summary.errors == ["tenant-down: Fetching invoices failed: network unreachable"]
    assert [e.tenant_id for e in summary.exports] == ["tenant-ok"]


def test_tenant_context_is_cleared_after_generation() -> None:
    source, profiles = build_sample_source("tenant-a")
    generate_audit_file("tenant-a", *SAMPLE_PERIOD, source=source, profiles=profiles, clock=_clock)
    assert _logged_tenant() == "unknown"

    profiles.clear()
    with pytest.raises(KeyError):
        generate_audit_file("tenant-a", *SAMPLE_PERIOD, source=source, profiles=profiles)
    assert _logged_tenant() == "unknown"
