"""Numbered validation tests over generated and tampered audit files."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest
from lxml import etree

from agents.saft.checks import CHECKS
from agents.saft.dto import build_invoice_line
from agents.saft.ledger import build_audit_file
from agents.saft.report import FAIL, PASS, WARNING
from agents.saft.samples import build_sample_profile, build_sample_snapshot
from agents.saft.serializer import SAFT_NAMESPACE, serialize_audit_file
from agents.saft.validator import validate_audit_file

from tests.saft.factories import CREATED_AT, minimal_profile, minimal_snapshot

NS = {"s": SAFT_NAMESPACE}


def _tamper(xml: str, xpath: str, delta: str) -> bytes:
    root = etree.fromstring(xml.encode("utf-8"))
    node = root.xpath(xpath, namespaces=NS)[0]
    node.text = f"{Decimal(node.text) + Decimal(delta):.2f}"
    return etree.tostring(root, xml_declaration=True, encoding="UTF-8")


def _failed_numbers(report):
    return sorted(r.test_number for r in report.failures())


REVENUE_CREDIT = "//s:Transaction[s:TransactionID='VZ000001']/s:Lines/s:Line[s:AccountID='707']/s:CreditAmount"
VAT_TAX_AMOUNT = (
    "//s:Transaction[s:TransactionID='VZ000001']/s:Lines/s:Line[s:AccountID='4427']"
    "/s:TaxInformation/s:TaxAmount"
)


def test_generated_sample_passes(sample_xml) -> None:
    report = validate_audit_file(sample_xml)
    assert report.total_tests == len(CHECKS) == 28
    assert [r.test_number for r in report.results] == list(range(1, 29))
    assert report.failed == 0
    assert report.passed + report.warnings == 28
    assert report.ok


def test_one_cent_gap_is_tolerated(sample_xml) -> None:
    report = validate_audit_file(_tamper(sample_xml, REVENUE_CREDIT, "0.01"))
    assert report.failed == 0


def test_two_cent_gap_fails_balance_and_recomputation(sample_xml) -> None:
    report = validate_audit_file(_tamper(sample_xml, REVENUE_CREDIT, "0.02"))
    assert _failed_numbers(report) == [14, 16, 26]
    assert report.result(14).details == ["VZ000001: debit 1190.00 / credit 1190.02"]
    assert report.result(16).details["difference"] == "0.02"


@pytest.mark.parametrize("delta, failed", [("0.01", []), ("0.02", [24])], ids=["within", "outside"])
def test_tax_amount_recomputation(sample_xml, delta, failed) -> None:
    report = validate_audit_file(_tamper(sample_xml, VAT_TAX_AMOUNT, delta))
    assert _failed_numbers(report) == failed


def test_entry_count_mismatch_fails_only_that_test() -> None:
    document = build_audit_file(
        build_sample_profile("tenant-demo"),
        build_sample_snapshot(),
        date(2025, 1, 1),
        date(2025, 2, 28),
        created_at=CREATED_AT,
    )
    xml, meta = serialize_audit_file(document)
    assert meta.number_of_entries == 4

    root = etree.fromstring(xml.encode("utf-8"))
    root.find("s:GeneralLedgerEntries/s:NumberOfEntries", NS).text = "5"
    report = validate_audit_file(etree.tostring(root))
    assert _failed_numbers(report) == [27]
    assert report.result(27).message == "NumberOfEntries declares 5, found 4 transactions"


def test_many_same_rate_lines_pass_tax_recomputation() -> None:
    snapshot = minimal_snapshot()
    lines = tuple(
        build_invoice_line(invoice_id="i-1", description=f"Bilet {n}", quantity="1", unit_price="10.50", vat_rate="19")
        for n in range(1, 7)
    )
    invoice = replace(snapshot.invoices[0], subtotal="63.00", vat_amount="12.00", total="75.00")
    snapshot = replace(snapshot, invoices=(invoice,), invoice_lines=lines)
    document = build_audit_file(
        minimal_profile(), snapshot, date(2025, 3, 1), date(2025, 3, 31), created_at=CREATED_AT
    )
    xml, _ = serialize_audit_file(document)
    report = validate_audit_file(xml)
    assert report.result(24).status == PASS
    assert report.failed == 0


def test_minimal_chart_of_accounts_passes() -> None:
    document = build_audit_file(
        minimal_profile(), minimal_snapshot(), date(2025, 3, 1), date(2025, 3, 31), created_at=CREATED_AT
    )
    assert document.number_of_entries == 1
    assert len(document.journal[0].lines) == 3

    xml, _ = serialize_audit_file(document)
    report = validate_audit_file(xml)
    assert report.failed == 0
    assert report.result(7).status == WARNING
    assert report.result(9).status == WARNING
    assert report.result(4).status == PASS


def test_unresolved_references_fail(sample_xml) -> None:
    root = etree.fromstring(sample_xml.encode("utf-8"))
    line = root.xpath("//s:Transaction[s:TransactionID='VZ000002']/s:Lines/s:Line[1]", namespaces=NS)[0]
    line.find("s:CustomerID", NS).text = "RO999"
    line.find("s:AccountID", NS).text = "4112"
    report = validate_audit_file(etree.tostring(root))
    assert report.result(15).status == FAIL
    assert report.result(15).details == ["VZ000002-1: CustomerID RO999"]
    assert report.result(17).status == FAIL
    assert report.result(17).details == ["VZ000002-1: AccountID 4112"]


def test_transaction_outside_period_fails_date_range(sample_xml) -> None:
    root = etree.fromstring(sample_xml.encode("utf-8"))
    root.xpath("//s:Transaction[s:TransactionID='VZ000003']/s:TransactionDate", namespaces=NS)[0].text = "2025-02-01"
    report = validate_audit_file(etree.tostring(root))
    assert report.result(18).status == FAIL
    assert report.result(18).details == ["VZ000003: 2025-02-01"]


def test_foreign_currency_line_fails_currency_check(sample_xml) -> None:
    root = etree.fromstring(sample_xml.encode("utf-8"))
    root.xpath("//s:Lines/s:Line/s:CurrencyCode", namespaces=NS)[0].text = "EUR"
    report = validate_audit_file(etree.tostring(root))
    assert _failed_numbers(report) == [23]


def test_structural_violations_surface_in_test_28(sample_xml) -> None:
    root = etree.fromstring(sample_xml.encode("utf-8"))
    phone = root.find("s:Header/s:Company/s:Contact/s:Telephone", NS)
    phone.getparent().remove(phone)
    report = validate_audit_file(etree.tostring(root))
    assert _failed_numbers(report) == [3, 28]
    assert report.result(28).details == [
        {"element": "Telephone", "error": "Required element missing", "path": "Header/Company/Contact"}
    ]


def test_missing_suppliers_is_a_warning(sample_xml) -> None:
    root = etree.fromstring(sample_xml.encode("utf-8"))
    suppliers = root.find("s:MasterFiles/s:Suppliers", NS)
    for supplier in list(suppliers):
        suppliers.remove(supplier)
    report = validate_audit_file(etree.tostring(root))
    assert report.result(7).status == WARNING
    assert report.failed == 0


def test_unparseable_input_yields_single_failure() -> None:
    report = validate_audit_file("<AuditFile><Header>")
    assert report.total_tests == 0
    assert report.failed == 1
    assert report.results[0].test_number == 0
    assert report.results[0].message.startswith("XML parse error")


@pytest.mark.parametrize("value", ["1E+1000000", "1e3", "Infinity", "9" * 40])
def test_exotic_amount_notation_is_reported_not_raised(sample_xml, value) -> None:
    root = etree.fromstring(sample_xml.encode("utf-8"))
    root.find("s:MasterFiles/s:GeneralLedgerAccounts/s:Account/s:OpeningDebitBalance", NS).text = value
    line = root.xpath("//s:Transaction[s:TransactionID='VZ000001']/s:Lines/s:Line[1]", namespaces=NS)[0]
    line.find("s:DebitAmount", NS).text = value

    report = validate_audit_file(etree.tostring(root))
    assert report.total_tests == 28
    assert report.result(28).status == FAIL
    assert {"OpeningDebitBalance", "DebitAmount"} <= {d["element"] for d in report.result(28).details}
    assert report.result(14).status == FAIL
