"""e-Factura pre-submission checks (25 numbered tests)."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from agents.efactura import (
    CHECKS,
    ISSUER_PROFILE,
    RECIPIENT_PARTY,
    SCENARIOS,
    EInvoice,
    InvoiceLine,
    RecipientParty,
    build_sample_invoice,
    check_invoice_compliance,
)
from agents.saft.report import FAIL, PASS, WARNING


def _scenario(code: str):
    return next(s for s in SCENARIOS if s.code == code)


def _check(invoice, lines, issuer=ISSUER_PROFILE, recipient=RECIPIENT_PARTY):
    return check_invoice_compliance(invoice, issuer, recipient, lines)


def _statuses(report, numbers):
    return {n: report.result(n).status for n in numbers}


@pytest.mark.parametrize("code", [s.code for s in SCENARIOS])
def test_sample_scenarios_pass(code) -> None:
    invoice, lines = build_sample_invoice(_scenario(code))
    report = _check(invoice, lines)
    assert report.total_tests == len(CHECKS) == 25
    assert [r.test_number for r in report.results] == list(range(1, 26))
    assert report.failed == 0
    assert report.warnings == 0


def test_invoice_without_lines() -> None:
    invoice, _ = build_sample_invoice(_scenario("01"))
    report = _check(invoice, [])
    assert _statuses(report, (4, 5)) == {4: FAIL, 5: FAIL}
    for number in (6, 7, 13, 14, 15, 19, 20, 23):
        assert report.result(number).status == WARNING
        assert report.result(number).message == "No line items to validate"
    assert report.failed == 2
    assert report.warnings == 8


def test_missing_parties_fail_without_raising() -> None:
    invoice, lines = build_sample_invoice(_scenario("01"))
    report = check_invoice_compliance(invoice, None, None, lines)
    assert _statuses(report, (2, 3, 8, 21, 24)) == {2: FAIL, 3: FAIL, 8: FAIL, 21: FAIL, 24: FAIL}
    assert report.result(8).message == "Supplier tax ID invalid; Customer tax ID invalid"
    assert report.result(21).message == (
        "Missing UBL required fields: Supplier.company_name, Supplier.tax_id, Customer.name, Customer.tax_id"
    )
    assert report.result(18).status == WARNING


def test_header_fields_reported_by_name() -> None:
    invoice = EInvoice(None, None, None, None, None, None)
    report = _check(invoice, [InvoiceLine.build("Serviciu", "1", "10", "19")])
    assert report.result(1).message == (
        "Missing required invoice fields: invoice_number, issue_date, due_date, subtotal, vat_amount, total"
    )
    assert report.result(9).status == FAIL
    assert report.result(11).status == WARNING
    assert report.result(12).message == "Invoice number is empty"


def test_numeric_identifiers_are_read_as_text() -> None:
    invoice, lines = build_sample_invoice(_scenario("01"))
    recipient = RecipientParty("Client Numeric SRL", 23456789, RECIPIENT_PARTY.address, email=None)
    numbered = replace(invoice, invoice_number=20250001)
    assert (recipient.tax_id, numbered.invoice_number) == ("23456789", "20250001")
    report = _check(numbered, lines, recipient=recipient)
    assert _statuses(report, (8, 12)) == {8: PASS, 12: PASS}


@pytest.mark.parametrize(
    "tax_id, valid",
    [
        ("RO12345678", True),
        ("12345678", True),
        ("ro123456", True),
        ("RO 1234 5678", True),
        ("RO12345", False),
        ("12345678901", False),
        ("DE123456789", False),
        ("RO12A45678", False),
        ("", False),
    ],
)
def test_tax_id_format(tax_id, valid) -> None:
    invoice, lines = build_sample_invoice(_scenario("01"))
    report = _check(invoice, lines, recipient=replace(RECIPIENT_PARTY, tax_id=tax_id))
    assert (report.result(8).status == PASS) is valid


def test_rounding_line_stays_within_tolerance() -> None:
    invoice, lines = build_sample_invoice(_scenario("02"))
    assert (lines[0].subtotal, lines[0].vat_amount, lines[0].total) == (
        Decimal("99.99"),
        Decimal("19.00"),
        Decimal("118.99"),
    )
    report = _check(invoice, lines)
    assert _statuses(report, (14, 15, 22)) == {14: PASS, 15: PASS, 22: PASS}


def test_line_arithmetic_errors() -> None:
    invoice, _ = build_sample_invoice(_scenario("01"))
    wrong_subtotal = InvoiceLine("Consultanta", "1", "1000.00", "19", "1000.02", "190.00", "1190.02")
    report = _check(invoice, [wrong_subtotal])
    assert _statuses(report, (6, 7, 14, 15)) == {6: PASS, 7: FAIL, 14: FAIL, 15: PASS}
    assert report.result(14).details == [1]

    wrong_vat = InvoiceLine("Consultanta", "1", "1000.00", "19", "1000.00", "190.05", "1190.05")
    report = _check(invoice, [wrong_vat])
    assert _statuses(report, (6, 14, 15)) == {6: FAIL, 14: PASS, 15: FAIL}


def test_missing_line_values_fail_recomputation() -> None:
    invoice, _ = build_sample_invoice(_scenario("01"))
    partial = InvoiceLine("Consultanta", "1", None, "19", "1000.00", None, "1190.00")
    report = _check(invoice, [partial])
    assert _statuses(report, (5, 14, 15, 20)) == {5: FAIL, 14: FAIL, 15: FAIL, 20: FAIL}


def test_invoice_totals_tolerance() -> None:
    invoice, lines = build_sample_invoice(_scenario("01"))
    close = replace(invoice, vat_amount=Decimal("190.01"), total=Decimal("1190.01"))
    far = replace(invoice, vat_amount=Decimal("190.02"), total=Decimal("1190.02"))
    assert _statuses(_check(close, lines), (6, 7)) == {6: PASS, 7: PASS}
    report = _check(far, lines)
    assert _statuses(report, (6, 7)) == {6: FAIL, 7: FAIL}
    assert report.result(6).details == "Difference: 0.02"


def test_dates_and_payment_terms() -> None:
    invoice, lines = build_sample_invoice(_scenario("01"))
    backwards = replace(invoice, due_date=date(2025, 1, 1))
    report = _check(backwards, lines)
    assert report.result(9).message == "Due date cannot be before issue date"
    assert report.result(11).message == "Unusual payment term: -14 days"

    long_term = replace(invoice, due_date=date(2026, 3, 1))
    assert _check(long_term, lines).result(11).status == WARNING

    garbled = EInvoice("FCT-X", "15.01.2025", "2025-02-14", "1000", "190", "1190")
    assert garbled.issue_date == "15.01.2025"
    assert garbled.due_date == date(2025, 2, 14)
    assert _check(garbled, lines).result(9).message == "Invalid date format"


def test_warnings_for_unusual_values() -> None:
    invoice, _ = build_sample_invoice(_scenario("01"))
    lines = (InvoiceLine.build("Servicii", "1", "100", "24"),)
    odd = replace(
        invoice,
        currency="CHF",
        invoice_type="advance",
        invoice_number="F" * 51,
        subtotal=Decimal("100"),
        vat_amount=Decimal("24"),
        total=Decimal("124"),
    )
    report = _check(odd, lines)
    assert _statuses(report, (10, 12, 13, 16, 23)) == {
        10: WARNING,
        12: WARNING,
        13: WARNING,
        16: WARNING,
        23: WARNING,
    }
    assert report.failed == 0


def test_decimal_precision() -> None:
    invoice, _ = build_sample_invoice(_scenario("01"))
    line = InvoiceLine("Fin", "1", "10.12345", "19", "10.12", "1.92", "12.04")
    report = _check(replace(invoice, subtotal=Decimal("10.123")), [line])
    assert report.result(22).status == WARNING
    assert report.result(22).details == ["Invoice subtotal", "Item 1 unit price"]


def test_email_and_address_checks() -> None:
    invoice, lines = build_sample_invoice(_scenario("01"))
    issuer = replace(ISSUER_PROFILE, email="office.facturare.example", address="Str. A")
    report = _check(invoice, lines, issuer=issuer)
    assert report.result(17).message == "Supplier email invalid"
    assert report.result(18).status == WARNING
    no_email = replace(RECIPIENT_PARTY, email=None)
    assert _check(invoice, lines, recipient=no_email).result(17).status == PASS


def test_missing_credentials_block_transmission() -> None:
    invoice, lines = build_sample_invoice(_scenario("01"))
    issuer = replace(ISSUER_PROFILE, efactura_client_secret="  ")
    report = _check(invoice, lines, issuer=issuer)
    assert report.result(24).status == FAIL
    assert report.result(24).message == "Missing e-Factura credentials: Client Secret"
    assert "demo-secret" not in repr(ISSUER_PROFILE)


@pytest.mark.parametrize(
    "approved, notes, status, details",
    [
        (True, None, PASS, None),
        (False, "Cota TVA gresita", FAIL, "Cota TVA gresita"),
        (False, None, FAIL, "No rejection notes provided"),
        (None, None, WARNING, None),
    ],
    ids=["approved", "rejected", "rejected-without-notes", "pending"],
)
def test_approval_gate(approved, notes, status, details) -> None:
    invoice, lines = build_sample_invoice(_scenario("01"), approved=approved)
    invoice = replace(invoice, approval_notes=notes)
    result = _check(invoice, lines).result(25)
    assert result.status == status
    assert result.details == details
