"""Structure walk: presence, cardinality, value formats and breadcrumbs."""

from __future__ import annotations

from lxml import etree

from agents.saft.structural import parse_document, strip_namespaces, validate_structure


def _stripped(xml: str) -> etree._Element:
    return strip_namespaces(parse_document(xml))


def _messages(errors):
    return [(e.path, e.element, e.error) for e in errors]


def test_generated_document_has_no_violations(sample_xml) -> None:
    assert validate_structure(_stripped(sample_xml)) == []


def test_missing_required_element_reports_parent_path(sample_xml) -> None:
    root = _stripped(sample_xml)
    phone = root.find("Header/Company/Contact/Telephone")
    phone.getparent().remove(phone)
    assert _messages(validate_structure(root)) == [
        ("Header/Company/Contact", "Telephone", "Required element missing")
    ]


def test_transaction_needs_two_lines(sample_xml) -> None:
    root = _stripped(sample_xml)
    lines = root.findall("GeneralLedgerEntries/Journal/Transaction")[2].find("Lines")
    lines.remove(lines[1])
    errors = validate_structure(root)
    assert _messages(errors) == [
        ("GeneralLedgerEntries/Journal[1]/Transaction[3]/Lines", "Line", "Expected at least 2 occurrences, found 1")
    ]


def test_repeated_elements_are_indexed_in_breadcrumbs(sample_xml) -> None:
    root = _stripped(sample_xml)
    line = root.findall("GeneralLedgerEntries/Journal/Transaction")[1].findall("Lines/Line")[0]
    line.find("DebitAmount").text = "184.394"
    errors = validate_structure(root)
    assert len(errors) == 1
    assert errors[0].path == "GeneralLedgerEntries/Journal[1]/Transaction[2]/Lines/Line[1]/DebitAmount"
    assert "at most 2 decimals" in errors[0].error


def test_enumerations_are_enforced(sample_xml) -> None:
    root = _stripped(sample_xml)
    root.find("MasterFiles/GeneralLedgerAccounts/Account/AccountType").text = "XX"
    errors = validate_structure(root)
    assert errors[0].path == "MasterFiles/GeneralLedgerAccounts/Account[1]/AccountType"
    assert errors[0].error.startswith("Value 'XX' not in allowed values")


def test_invalid_date_and_integer(sample_xml) -> None:
    root = _stripped(sample_xml)
    root.find("Header/StartDate").text = "2025-02-30"
    root.find("GeneralLedgerEntries/NumberOfEntries").text = "three"
    messages = {e.path: e.error for e in validate_structure(root)}
    assert messages["Header/StartDate"] == "Invalid date '2025-02-30', expected YYYY-MM-DD"
    assert messages["GeneralLedgerEntries/NumberOfEntries"] == "Invalid integer 'three'"


def test_debit_and_credit_are_mutually_exclusive(sample_xml) -> None:
    root = _stripped(sample_xml)
    line = root.find("GeneralLedgerEntries/Journal/Transaction/Lines/Line")
    etree.SubElement(line, "CreditAmount").text = "1.00"
    errors = validate_structure(root)
    assert [e.element for e in errors] == ["DebitAmount|CreditAmount"]
    assert errors[0].path == "GeneralLedgerEntries/Journal[1]/Transaction[1]/Lines/Line[1]"


def test_sections_out_of_order(sample_xml) -> None:
    root = _stripped(sample_xml)
    master = root.find("MasterFiles")
    root.remove(master)
    root.append(master)
    errors = validate_structure(root)
    assert errors[0].element == "AuditFile"
    assert "out of order" in errors[0].error


def test_unknown_elements_are_ignored(sample_xml) -> None:
    root = _stripped(sample_xml)
    etree.SubElement(root.find("Header"), "Extension").text = "anything"
    assert validate_structure(root) == []


def test_wrong_root_element() -> None:
    errors = validate_structure(parse_document("<Invoice/>"))
    assert _messages(errors) == [("", "Invoice", "Root element must be 'AuditFile'")]
