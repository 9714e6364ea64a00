"""Ledger builder: one balanced sales transaction per invoice plus master data."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from agents.saft.dto import Account, InvoiceRecord, TenantSnapshot, build_invoice_line, compute_line_amounts
from agents.saft.errors import MissingMasterAccount
from agents.saft.ledger import build_audit_file, merge_tax_table
from agents.saft.samples import SAMPLE_PERIOD, build_sample_profile, build_sample_snapshot

from tests.saft.factories import CREATED_AT, TENANT, minimal_profile, minimal_snapshot


def _build(snapshot: TenantSnapshot, period=SAMPLE_PERIOD):
    return build_audit_file(build_sample_profile(TENANT), snapshot, *period, created_at=CREATED_AT)


def _account(document, code: str) -> Account:
    return next(a for a in document.accounts if a.code == code)


def test_one_balanced_transaction_per_invoice(sample_document) -> None:
    journal = sample_document.journal
    assert [tx.transaction_id for tx in journal] == ["VZ000001", "VZ000002", "VZ000003"]
    assert [tx.source_document_id for tx in journal] == ["FCT-2025-0001", "FCT-2025-0002", "FCT-2025-0003"]
    for tx in journal:
        assert len(tx.lines) >= 2
        assert tx.total_debit() == tx.total_credit()
    assert sample_document.number_of_entries == 3
    assert sample_document.total_debit() == Decimal("1424.39")


def test_receivable_line_carries_customer_wire_id(sample_document) -> None:
    first, second = sample_document.journal[0], sample_document.journal[1]
    receivable = first.lines[0]
    assert receivable.account_id == "4111"
    assert receivable.debit_amount == Decimal("1190.00")
    assert receivable.customer_id == "RO1234567"
    assert second.lines[0].customer_id == "23456789"


def test_vat_line_carries_one_tax_entry_per_invoice_line(sample_document) -> None:
    vat_line = sample_document.journal[1].lines[2]
    assert vat_line.account_id == "4427"
    assert vat_line.credit_amount == Decimal("24.40")
    codes = [(info.tax_code, info.tax_base, info.tax_amount) for info in vat_line.tax_info]
    assert codes == [
        ("IVA9", Decimal("60.00"), Decimal("5.40")),
        ("IVA19", Decimal("99.99"), Decimal("19.00")),
    ]


def test_zero_vat_invoice_has_no_vat_line(sample_document) -> None:
    export = sample_document.journal[2]
    assert [line.account_id for line in export.lines] == ["4111", "707"]


def test_closing_balances_follow_movements(sample_document) -> None:
    assert _account(sample_document, "4111").closing_debit == Decimal("1424.39")
    assert _account(sample_document, "707").closing_credit == Decimal("1209.99")
    assert _account(sample_document, "4427").closing_credit == Decimal("214.40")
    bank = _account(sample_document, "5121")
    assert (bank.closing_debit, bank.closing_credit) == (Decimal("10000.00"), Decimal("0"))


def test_invoices_outside_period_are_dropped() -> None:
    document = _build(build_sample_snapshot(), (date(2025, 2, 1), date(2025, 2, 28)))
    assert [tx.source_document_id for tx in document.journal] == ["FCT-2025-0004"]
    assert [p.code for p in document.products] == ["SRV-CONS"]


def test_master_data_is_derived(sample_document) -> None:
    assert [p.wire_id for p in sample_document.customers] == ["23456789", "RO1234567"]
    assert [p.wire_id for p in sample_document.suppliers] == ["RO34567890"]
    assert [u.code for u in sample_document.units_of_measure] == ["H87", "HUR"]
    assert {e.tax_code for e in sample_document.tax_table} >= {"IVA19", "IVA9", "IVA5", "IVA0"}
    assert sample_document.analysis_types[0].analysis_id == "CC01"
    assert sample_document.header.business_name == "Facturare Demo"


@pytest.mark.parametrize(
    "dropped, expected",
    [
        (("4427",), ("4427",)),
        (("707",), ("707",)),
        (("4111", "4427"), ("4111", "4427")),
    ],
    ids=["vat", "revenue", "receivables-and-vat"],
)
def test_missing_required_accounts(dropped, expected) -> None:
    snapshot = build_sample_snapshot()
    snapshot = replace(snapshot, accounts=tuple(a for a in snapshot.accounts if a.code not in dropped))
    with pytest.raises(MissingMasterAccount) as excinfo:
        _build(snapshot)
    assert excinfo.value.missing_codes == expected
    for code in expected:
        assert code in str(excinfo.value)


def test_duplicate_account_codes_rejected() -> None:
    snapshot = build_sample_snapshot()
    snapshot = replace(snapshot, accounts=snapshot.accounts + (Account("dup", "707", "Venituri bis"),))
    with pytest.raises(ValueError, match="Duplicate account codes: 707"):
        _build(snapshot)


def test_duplicate_invoice_ids_rejected() -> None:
    snapshot = build_sample_snapshot()
    snapshot = replace(snapshot, invoices=snapshot.invoices + (snapshot.invoices[0],))
    with pytest.raises(ValueError, match="more than once"):
        _build(snapshot)


def test_unknown_customer_rejected() -> None:
    snapshot = build_sample_snapshot()
    orphan = replace(snapshot.invoices[0], customer_id="nobody")
    snapshot = replace(snapshot, invoices=(orphan,))
    with pytest.raises(ValueError, match="unknown customer 'nobody'"):
        _build(snapshot)


def test_undeclared_rate_gets_tax_table_entry() -> None:
    snapshot = minimal_snapshot()
    line = build_invoice_line(invoice_id="i-1", description="Special", quantity="1", unit_price="100", vat_rate="11")
    invoice = replace(snapshot.invoices[0], vat_amount=line.vat_amount, total=line.total)
    snapshot = replace(snapshot, invoices=(invoice,), invoice_lines=(line,))
    document = build_audit_file(
        minimal_profile(), snapshot, date(2025, 3, 1), date(2025, 3, 31), created_at=CREATED_AT
    )
    assert "IVA11" in {e.tax_code for e in document.tax_table}
    assert document.journal[0].lines[2].tax_info[0].tax_code == "IVA11"


def test_credit_note_posts_on_opposite_sides() -> None:
    snapshot = minimal_snapshot()
    credit_note = InvoiceRecord(
        id="i-2",
        invoice_number="MIN-0002",
        issue_date=date(2025, 3, 20),
        customer_id="c-1",
        subtotal="-50.00",
        vat_amount="-9.50",
        total="-59.50",
        invoice_type="NC",
    )
    snapshot = replace(snapshot, invoices=snapshot.invoices + (credit_note,))
    document = build_audit_file(
        minimal_profile(), snapshot, date(2025, 3, 1), date(2025, 3, 31), created_at=CREATED_AT
    )
    reversal = document.journal[1]
    assert reversal.lines[0].credit_amount == Decimal("59.50")
    assert reversal.lines[1].debit_amount == Decimal("50.00")
    assert reversal.total_debit() == reversal.total_credit()


def test_zero_total_invoice_rejected() -> None:
    snapshot = minimal_snapshot()
    empty = replace(snapshot.invoices[0], subtotal="0", vat_amount="0", total="0")
    snapshot = replace(snapshot, invoices=(empty,))
    with pytest.raises(ValueError, match="zero total"):
        build_audit_file(minimal_profile(), snapshot, date(2025, 3, 1), date(2025, 3, 31), created_at=CREATED_AT)


def test_reversed_period_rejected() -> None:
    with pytest.raises(ValueError):
        _build(build_sample_snapshot(), (date(2025, 1, 31), date(2025, 1, 1)))


def test_line_amounts_use_cent_unit_price() -> None:
    assert compute_line_amounts("33.333", "3", "19") == (Decimal("99.99"), Decimal("19.00"), Decimal("118.99"))


def test_merge_tax_table_rejects_duplicate_codes() -> None:
    entries = build_sample_snapshot().tax_table
    with pytest.raises(ValueError, match="Duplicate tax code"):
        merge_tax_table(entries + entries)


def test_same_rate_lines_keep_their_own_tax_entries() -> None:
    snapshot = minimal_snapshot()
    lines = tuple(
        build_invoice_line(invoice_id="i-1", description=f"Bilet {n}", quantity="1", unit_price="10.50", vat_rate="19")
        for n in range(1, 5)
    )
    invoice = replace(snapshot.invoices[0], subtotal="42.00", vat_amount="8.00", total="50.00")
    snapshot = replace(snapshot, invoices=(invoice,), invoice_lines=lines)
    document = build_audit_file(
        minimal_profile(), snapshot, date(2025, 3, 1), date(2025, 3, 31), created_at=CREATED_AT
    )
    vat_line = document.journal[0].lines[2]
    assert vat_line.credit_amount == Decimal("8.00")
    assert [(info.tax_base, info.tax_amount) for info in vat_line.tax_info] == [
        (Decimal("10.50"), Decimal("2.00"))
    ] * 4
