"""Arithmetic and referential checks #1-#28 over a parsed audit file.

The document is read once into an :class:`AuditFileView`; identifier index
sets and per-account movements are built there, so every check is a cheap,
independent function of the view. :data:`CHECKS` fixes the numbering and
the order of the report.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from lxml import etree

from .report import FAIL, PASS, WARNING, ValidationResult
from .structural import XSDValidationError

ZERO = Decimal("0")
_PLAIN_DECIMAL_RE = re.compile(r"^[+-]?\d{1,18}(\.\d{1,8})?$")

# Balance equalities (#12, #13, #14, #16) accept |diff| <= 0.01.
# Recomputed amounts (#24, #26) accept |diff| < 0.02.
# A 0.01 gap therefore passes both groups and a 0.02 gap fails both.
BALANCE_TOLERANCE = Decimal("0.01")
RECOMPUTE_TOLERANCE = Decimal("0.02")

Outcome = Tuple[str, str, Optional[object]]


def _text(element: Optional[etree._Element], path: str) -> str:
    if element is None:
        return ""
    return (element.findtext(path) or "").strip()


def _amount(text: str) -> Optional[Decimal]:
    """Plain decimal notation only; exponents and oversized values count as missing."""

    if not _PLAIN_DECIMAL_RE.match(text):
        return None
    return Decimal(text)


def _date(text: str) -> Optional[date]:
    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


@dataclass(slots=True)
class TaxInfoView:
    tax_type: str
    tax_code: str
    percentage: Optional[Decimal]
    base: Optional[Decimal]
    amount: Optional[Decimal]


@dataclass(slots=True)
class LineView:
    record_id: str
    account_id: str
    customer_id: str
    supplier_id: str
    source_document_id: str
    currency_code: str
    debit: Optional[Decimal]
    credit: Optional[Decimal]
    tax_info: List[TaxInfoView] = field(default_factory=list)

    @property
    def is_monetary(self) -> bool:
        return self.debit is not None or self.credit is not None


@dataclass(slots=True)
class TransactionView:
    transaction_id: str
    transaction_date: str
    lines: List[LineView]


@dataclass(slots=True)
class AccountView:
    account_id: str
    description: str
    account_type: str
    opening_debit: Decimal
    opening_credit: Decimal
    closing_debit: Decimal
    closing_credit: Decimal

    @property
    def off_balance(self) -> bool:
        return self.account_id.startswith(("8", "9"))


@dataclass(slots=True)
class PartyView:
    party_id: str
    registration_number: str
    name: str
    city: str
    country: str


@dataclass
class AuditFileView:
    header: Optional[etree._Element]
    accounts: List[AccountView]
    customers: List[PartyView]
    suppliers: List[PartyView]
    tax_entries: List[Tuple[str, str, str, str]]
    products: List[Tuple[str, str]]
    analysis_types: List[Tuple[str, str, str, str]]
    units_of_measure: List[Tuple[str, str]]
    journals: List[Tuple[str, str]]
    transactions: List[TransactionView]
    declared_entries: str
    structural_errors: Sequence[XSDValidationError] = ()

    account_ids: Set[str] = field(default_factory=set)
    customer_ids: Set[str] = field(default_factory=set)
    supplier_ids: Set[str] = field(default_factory=set)
    tax_codes: Set[str] = field(default_factory=set)
    movements: Dict[str, List[Decimal]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.account_ids = {a.account_id for a in self.accounts if a.account_id}
        self.customer_ids = {c.party_id for c in self.customers if c.party_id}
        self.supplier_ids = {s.party_id for s in self.suppliers if s.party_id}
        self.tax_codes = {entry[2] for entry in self.tax_entries if entry[2]}
        movements: Dict[str, List[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
        for line in self.lines():
            bucket = movements[line.account_id]
            bucket[0] += line.debit or ZERO
            bucket[1] += line.credit or ZERO
        self.movements = dict(movements)

    def lines(self):
        for transaction in self.transactions:
            yield from transaction.lines

    def header_text(self, path: str) -> str:
        return _text(self.header, path)


def _read_party(element: etree._Element, kind: str) -> PartyView:
    return PartyView(
        party_id=_text(element, f"{kind}ID"),
        registration_number=_text(element, "RegistrationNumber"),
        name=_text(element, "CompanyName"),
        city=_text(element, "BillingAddress/City"),
        country=_text(element, "BillingAddress/Country"),
    )


def _read_tax_info(element: etree._Element) -> TaxInfoView:
    return TaxInfoView(
        tax_type=_text(element, "TaxType"),
        tax_code=_text(element, "TaxCode"),
        percentage=_amount(_text(element, "TaxPercentage")),
        base=_amount(_text(element, "TaxBase")),
        amount=_amount(_text(element, "TaxAmount")),
    )


def _read_line(element: etree._Element) -> LineView:
    return LineView(
        record_id=_text(element, "RecordID"),
        account_id=_text(element, "AccountID"),
        customer_id=_text(element, "CustomerID"),
        supplier_id=_text(element, "SupplierID"),
        source_document_id=_text(element, "SourceDocumentID"),
        currency_code=_text(element, "CurrencyCode"),
        debit=_amount(_text(element, "DebitAmount")),
        credit=_amount(_text(element, "CreditAmount")),
        tax_info=[_read_tax_info(info) for info in element.findall("TaxInformation")],
    )


def read_audit_file(
    root: etree._Element, structural_errors: Sequence[XSDValidationError] = ()
) -> AuditFileView:
    """Build the view from a namespace-stripped ``AuditFile`` element."""

    def money(element: etree._Element, name: str) -> Decimal:
        return _amount(_text(element, name)) or ZERO

    accounts = [
        AccountView(
            account_id=_text(el, "AccountID"),
            description=_text(el, "AccountDescription"),
            account_type=_text(el, "AccountType"),
            opening_debit=money(el, "OpeningDebitBalance"),
            opening_credit=money(el, "OpeningCreditBalance"),
            closing_debit=money(el, "ClosingDebitBalance"),
            closing_credit=money(el, "ClosingCreditBalance"),
        )
        for el in root.iterfind("MasterFiles/GeneralLedgerAccounts/Account")
    ]
    transactions = [
        TransactionView(
            transaction_id=_text(tx, "TransactionID"),
            transaction_date=_text(tx, "TransactionDate"),
            lines=[_read_line(line) for line in tx.iterfind("Lines/Line")],
        )
        for tx in root.iterfind("GeneralLedgerEntries/Journal/Transaction")
    ]
    return AuditFileView(
        header=root.find("Header"),
        accounts=accounts,
        customers=[_read_party(el, "Customer") for el in root.iterfind("MasterFiles/Customers/Customer")],
        suppliers=[_read_party(el, "Supplier") for el in root.iterfind("MasterFiles/Suppliers/Supplier")],
        tax_entries=[
            (_text(el, "TaxType"), _text(el, "Description"), _text(el, "TaxCode"), _text(el, "Country"))
            for el in root.iterfind("MasterFiles/TaxTable/TaxTableEntry")
        ],
        products=[
            (_text(el, "ProductCode"), _text(el, "Description"))
            for el in root.iterfind("MasterFiles/Products/Product")
        ],
        analysis_types=[
            (
                _text(el, "AnalysisType"),
                _text(el, "AnalysisTypeDescription"),
                _text(el, "AnalysisID"),
                _text(el, "AnalysisIDDescription"),
            )
            for el in root.iterfind("MasterFiles/AnalysisTypeTable/AnalysisTypeTableEntry")
        ],
        units_of_measure=[
            (_text(el, "UnitOfMeasure"), _text(el, "Description"))
            for el in root.iterfind("MasterFiles/UOMTable/UOMTableEntry")
        ],
        journals=[
            (_text(el, "JournalID"), _text(el, "Description"))
            for el in root.iterfind("GeneralLedgerEntries/Journal")
        ],
        transactions=transactions,
        declared_entries=_text(root, "GeneralLedgerEntries/NumberOfEntries"),
        structural_errors=tuple(structural_errors),
    )


# --- header -------------------------------------------------------------------


def _missing_fields(view: AuditFileView, fields: Sequence[Tuple[str, str]]) -> List[str]:
    return [label for label, path in fields if not view.header_text(path)]


def check_header_address(view: AuditFileView) -> Outcome:
    missing = _missing_fields(
        view, (("City", "Company/Address/City"), ("Country", "Company/Address/Country"))
    )
    if missing:
        return FAIL, f"Company address incomplete, missing: {', '.join(missing)}", None
    return PASS, "Company address has city and country", None


def check_header_contact(view: AuditFileView) -> Outcome:
    missing = _missing_fields(
        view,
        (
            ("FirstName", "Company/Contact/ContactPerson/FirstName"),
            ("LastName", "Company/Contact/ContactPerson/LastName"),
        ),
    )
    if missing:
        return FAIL, f"Contact person incomplete, missing: {', '.join(missing)}", None
    return PASS, "Contact person first and last name present", None


def check_header_phone(view: AuditFileView) -> Outcome:
    if not view.header_text("Company/Contact/Telephone"):
        return FAIL, "Company telephone number is missing", None
    return PASS, "Company telephone number present", None


def check_header_bank_account(view: AuditFileView) -> Outcome:
    missing = []
    if not (
        view.header_text("Company/BankAccount/IBANNumber")
        or view.header_text("Company/BankAccount/BankAccountNumber")
    ):
        missing.append("IBANNumber or BankAccountNumber")
    missing += _missing_fields(
        view,
        (
            ("BankAccountName", "Company/BankAccount/BankAccountName"),
            ("SortCode", "Company/BankAccount/SortCode"),
        ),
    )
    if missing:
        return FAIL, f"Bank account incomplete, missing: {', '.join(missing)}", None
    return PASS, "Bank account data complete", None


# --- master files -------------------------------------------------------------


def check_accounts(view: AuditFileView) -> Outcome:
    if not view.accounts:
        return FAIL, "No general ledger accounts declared", None
    incomplete = [
        a.account_id or f"#{index}"
        for index, a in enumerate(view.accounts, start=1)
        if not (a.account_id and a.description and a.account_type)
    ]
    if incomplete:
        return FAIL, f"{len(incomplete)} account(s) missing ID, description or type", incomplete
    return PASS, f"{len(view.accounts)} accounts complete", None


def _party_problems(parties: Sequence[PartyView]) -> List[str]:
    problems = []
    for index, party in enumerate(parties, start=1):
        label = party.party_id or f"#{index}"
        missing = [
            name
            for name, value in (
                ("RegistrationNumber", party.registration_number),
                ("CompanyName", party.name),
                ("City", party.city),
                ("Country", party.country),
            )
            if not value
        ]
        if missing:
            problems.append(f"{label}: missing {', '.join(missing)}")
        elif party.party_id and party.registration_number != party.party_id:
            problems.append(f"{label}: RegistrationNumber '{party.registration_number}' differs from ID")
    return problems


def check_customers(view: AuditFileView) -> Outcome:
    if not view.customers:
        return FAIL, "No customers declared", None
    problems = _party_problems(view.customers)
    if problems:
        return FAIL, f"{len(problems)} customer(s) incomplete or inconsistent", problems
    return PASS, f"{len(view.customers)} customers complete", None


def check_suppliers(view: AuditFileView) -> Outcome:
    if not view.suppliers:
        return WARNING, "No suppliers declared", None
    problems = _party_problems(view.suppliers)
    if problems:
        return FAIL, f"{len(problems)} supplier(s) incomplete or inconsistent", problems
    return PASS, f"{len(view.suppliers)} suppliers complete", None


def check_tax_table(view: AuditFileView) -> Outcome:
    if not view.tax_entries:
        return FAIL, "Tax table is empty", None
    incomplete = [entry[2] or f"#{index}" for index, entry in enumerate(view.tax_entries, 1) if not all(entry)]
    if incomplete:
        return FAIL, f"{len(incomplete)} tax entr(ies) missing type, description, code or country", incomplete
    return PASS, f"{len(view.tax_entries)} tax table entries complete", None


def _optional_table(entries: Sequence[Tuple[str, ...]], label: str) -> Outcome:
    if not entries:
        return WARNING, f"No {label} declared", None
    incomplete = [entry[0] or f"#{index}" for index, entry in enumerate(entries, 1) if not all(entry)]
    if incomplete:
        return FAIL, f"{len(incomplete)} {label} entr(ies) incomplete", incomplete
    return PASS, f"{len(entries)} {label} entries complete", None


def check_products(view: AuditFileView) -> Outcome:
    return _optional_table(view.products, "products")


def check_analysis_types(view: AuditFileView) -> Outcome:
    return _optional_table(view.analysis_types, "analysis types")


def check_units_of_measure(view: AuditFileView) -> Outcome:
    return _optional_table(view.units_of_measure, "units of measure")


# --- balances -------------------------------------------------------------------


def _balance_equality(view: AuditFileView, debit_attr: str, credit_attr: str, label: str) -> Outcome:
    accounts = [a for a in view.accounts if not a.off_balance]
    debit = sum((getattr(a, debit_attr) for a in accounts), ZERO)
    credit = sum((getattr(a, credit_attr) for a in accounts), ZERO)
    diff = abs(debit - credit)
    detail = {"debit": f"{debit:.2f}", "credit": f"{credit:.2f}", "difference": f"{diff:.2f}"}
    if diff <= BALANCE_TOLERANCE:
        return PASS, f"{label} debit and credit balances are equal", detail
    return FAIL, f"{label} balances differ by {diff:.2f}", detail


def check_opening_balances(view: AuditFileView) -> Outcome:
    return _balance_equality(view, "opening_debit", "opening_credit", "Opening")


def check_closing_balances(view: AuditFileView) -> Outcome:
    return _balance_equality(view, "closing_debit", "closing_credit", "Closing")


def check_transaction_balance(view: AuditFileView) -> Outcome:
    unbalanced = []
    for tx in view.transactions:
        debit = sum((line.debit or ZERO for line in tx.lines), ZERO)
        credit = sum((line.credit or ZERO for line in tx.lines), ZERO)
        if abs(debit - credit) > BALANCE_TOLERANCE:
            unbalanced.append(f"{tx.transaction_id}: debit {debit:.2f} / credit {credit:.2f}")
    if unbalanced:
        return FAIL, f"{len(unbalanced)} transaction(s) not balanced", unbalanced
    return PASS, f"All {len(view.transactions)} transactions balanced", None


def check_party_references(view: AuditFileView) -> Outcome:
    unresolved = []
    for line in view.lines():
        if line.customer_id and line.customer_id not in view.customer_ids:
            unresolved.append(f"{line.record_id}: CustomerID {line.customer_id}")
        if line.supplier_id and line.supplier_id not in view.supplier_ids:
            unresolved.append(f"{line.record_id}: SupplierID {line.supplier_id}")
    if unresolved:
        return FAIL, f"{len(unresolved)} unresolved customer/supplier reference(s)", unresolved
    return PASS, "All customer and supplier references resolve", None


def check_total_debit_credit(view: AuditFileView) -> Outcome:
    debit = sum((line.debit or ZERO for line in view.lines()), ZERO)
    credit = sum((line.credit or ZERO for line in view.lines()), ZERO)
    diff = abs(debit - credit)
    detail = {"debit": f"{debit:.2f}", "credit": f"{credit:.2f}", "difference": f"{diff:.2f}"}
    if diff <= BALANCE_TOLERANCE:
        return PASS, "Total debit equals total credit", detail
    return FAIL, f"Total debit and credit differ by {diff:.2f}", detail


# --- references ---------------------------------------------------------------


def check_account_references(view: AuditFileView) -> Outcome:
    unresolved = [
        f"{line.record_id}: AccountID {line.account_id}"
        for line in view.lines()
        if line.account_id and line.account_id not in view.account_ids
    ]
    if unresolved:
        return FAIL, f"{len(unresolved)} line(s) reference unknown accounts", unresolved
    return PASS, "All account references resolve", None


def check_transaction_dates(view: AuditFileView) -> Outcome:
    start = _date(view.header_text("StartDate"))
    end = _date(view.header_text("EndDate"))
    if start is None or end is None:
        return FAIL, "Header StartDate/EndDate missing or invalid", None
    outside = []
    for tx in view.transactions:
        tx_date = _date(tx.transaction_date)
        if tx_date is None or not start <= tx_date <= end:
            outside.append(f"{tx.transaction_id}: {tx.transaction_date or '<missing>'}")
    if outside:
        return FAIL, f"{len(outside)} transaction(s) dated outside {start} .. {end}", outside
    return PASS, f"All transactions dated within {start} .. {end}", None


def check_tax_code_references(view: AuditFileView) -> Outcome:
    unresolved = [
        f"{line.record_id}: TaxCode {info.tax_code or '<missing>'}"
        for line in view.lines()
        for info in line.tax_info
        if info.tax_code not in view.tax_codes
    ]
    if unresolved:
        return FAIL, f"{len(unresolved)} tax code reference(s) not in tax table", unresolved
    return PASS, "All tax codes resolve", None


def check_line_completeness(view: AuditFileView) -> Outcome:
    incomplete = []
    for tx in view.transactions:
        for index, line in enumerate(tx.lines, start=1):
            missing = []
            if not line.record_id:
                missing.append("RecordID")
            if not line.account_id:
                missing.append("AccountID")
            if not line.is_monetary:
                missing.append("DebitAmount/CreditAmount")
            if missing:
                incomplete.append(f"{tx.transaction_id} line {index}: missing {', '.join(missing)}")
    if incomplete:
        return FAIL, f"{len(incomplete)} journal line(s) incomplete", incomplete
    return PASS, "All journal lines complete", None


def check_journals(view: AuditFileView) -> Outcome:
    if not view.journals:
        return PASS, "No journals declared", None
    incomplete = [
        journal_id or f"#{index}"
        for index, (journal_id, description) in enumerate(view.journals, start=1)
        if not (journal_id and description)
    ]
    if incomplete:
        return FAIL, f"{len(incomplete)} journal(s) missing JournalID or Description", incomplete
    return PASS, f"{len(view.journals)} journal(s) consistent", None


def check_header_completeness(view: AuditFileView) -> Outcome:
    missing = _missing_fields(
        view,
        (
            ("AuditFileVersion", "AuditFileVersion"),
            ("CompanyID", "CompanyID"),
            ("TaxRegistrationNumber", "TaxRegistrationNumber"),
            ("TaxAccountingBasis", "TaxAccountingBasis"),
            ("CompanyName", "CompanyName"),
            ("BusinessName", "BusinessName"),
        ),
    )
    if missing:
        return FAIL, f"Header incomplete, missing: {', '.join(missing)}", None
    return PASS, "Header complete", None


def check_currency(view: AuditFileView) -> Outcome:
    header_currency = view.header_text("CurrencyCode")
    allowed = {header_currency, "RON"} - {""}
    foreign = [
        f"{line.record_id}: {line.currency_code}"
        for line in view.lines()
        if line.currency_code and line.currency_code not in allowed
    ]
    if foreign:
        return FAIL, f"{len(foreign)} line(s) in a currency other than {', '.join(sorted(allowed))}", foreign
    return PASS, "Line currencies consistent with header", None


# --- recomputation ------------------------------------------------------------


def check_tax_amounts(view: AuditFileView) -> Outcome:
    wrong = []
    checked = 0
    for line in view.lines():
        for info in line.tax_info:
            checked += 1
            if info.base is None or info.percentage is None or info.amount is None:
                wrong.append(f"{line.record_id} {info.tax_code}: base, percentage or amount missing")
                continue
            expected = info.base * info.percentage / Decimal("100")
            if abs(expected - info.amount) >= RECOMPUTE_TOLERANCE:
                wrong.append(
                    f"{line.record_id} {info.tax_code}: expected {expected:.2f}, declared {info.amount:.2f}"
                )
    if wrong:
        return FAIL, f"{len(wrong)} tax amount(s) inconsistent with base and rate", wrong
    if not checked:
        return PASS, "No tax information to verify", None
    return PASS, f"{checked} tax amount(s) consistent", None


def check_source_documents(view: AuditFileView) -> Outcome:
    unlinked = [line.record_id for line in view.lines() if line.is_monetary and not line.source_document_id]
    if unlinked:
        return WARNING, f"{len(unlinked)} line(s) without SourceDocumentID", unlinked
    return PASS, "All monetary lines reference a source document", None


def check_closing_balance_formula(view: AuditFileView) -> Outcome:
    wrong = []
    for account in view.accounts:
        debit, credit = view.movements.get(account.account_id, (ZERO, ZERO))
        net = account.opening_debit - account.opening_credit + debit - credit
        expected_debit = net if net > 0 else ZERO
        expected_credit = -net if net < 0 else ZERO
        if (
            abs(expected_debit - account.closing_debit) >= RECOMPUTE_TOLERANCE
            or abs(expected_credit - account.closing_credit) >= RECOMPUTE_TOLERANCE
        ):
            wrong.append(
                f"{account.account_id}: expected {expected_debit:.2f}/{expected_credit:.2f}, "
                f"declared {account.closing_debit:.2f}/{account.closing_credit:.2f}"
            )
    if wrong:
        return FAIL, f"{len(wrong)} account(s) with closing balance not matching movements", wrong
    return PASS, "Closing balances match opening balances plus movements", None


def check_entry_count(view: AuditFileView) -> Outcome:
    actual = len(view.transactions)
    try:
        declared = int(view.declared_entries)
    except ValueError:
        return FAIL, f"NumberOfEntries missing or invalid ('{view.declared_entries}')", None
    if declared != actual:
        return FAIL, f"NumberOfEntries declares {declared}, found {actual} transactions", None
    return PASS, f"NumberOfEntries matches {actual} transactions", None


def check_structure(view: AuditFileView) -> Outcome:
    errors = view.structural_errors
    if errors:
        return FAIL, f"{len(errors)} structural violation(s)", [e.to_dict() for e in errors]
    return PASS, "Document conforms to the SAF-T structure", None


Check = Tuple[int, str, Callable[[AuditFileView], Outcome]]

CHECKS: Tuple[Check, ...] = (
    (1, "Header - Company Address", check_header_address),
    (2, "Header - Contact Person", check_header_contact),
    (3, "Header - Telephone", check_header_phone),
    (4, "Header - Bank Account", check_header_bank_account),
    (5, "Master Files - General Ledger Accounts", check_accounts),
    (6, "Master Files - Customers", check_customers),
    (7, "Master Files - Suppliers", check_suppliers),
    (8, "Master Files - Tax Table", check_tax_table),
    (9, "Master Files - Products", check_products),
    (10, "Master Files - Analysis Types", check_analysis_types),
    (11, "Master Files - Units of Measure", check_units_of_measure),
    (12, "Opening Balance Equality", check_opening_balances),
    (13, "Closing Balance Equality", check_closing_balances),
    (14, "Transaction Balance", check_transaction_balance),
    (15, "Customer/Supplier References", check_party_references),
    (16, "Total Debit/Credit Equality", check_total_debit_credit),
    (17, "Account References", check_account_references),
    (18, "Transaction Date Range", check_transaction_dates),
    (19, "Tax Code References", check_tax_code_references),
    (20, "Journal Line Completeness", check_line_completeness),
    (21, "Journal Consistency", check_journals),
    (22, "Header Completeness", check_header_completeness),
    (23, "Currency Consistency", check_currency),
    (24, "Tax Amount Calculation", check_tax_amounts),
    (25, "Source Document Links", check_source_documents),
    (26, "Closing Balance Calculation", check_closing_balance_formula),
    (27, "Number of Entries", check_entry_count),
    (28, "Structural Conformity", check_structure),
)


def run_checks(view: AuditFileView) -> List[ValidationResult]:
    results = []
    for number, name, check in CHECKS:
        status, message, details = check(view)
        results.append(ValidationResult(number, name, status, message, details))
    return results
