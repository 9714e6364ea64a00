"""Pre-submission compliance checks for one e-Factura invoice (25 tests).

Every test runs on every call; nothing here raises on incomplete input. A
``fail`` blocks transmission, a ``warning`` only needs acknowledgment.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Tuple

from backend.core.logging import get_logger

from agents.saft.report import FAIL, PASS, WARNING, ValidationReport, ValidationResult

from .dto import INVOICE_TYPES, EInvoice, InvoiceLine, IssuerProfile, RecipientParty, tax_category_code

logger = get_logger(__name__)

ZERO = Decimal("0")
# |diff| < 0.02 passes
TOLERANCE = Decimal("0.02")
CURRENCIES = ("RON", "EUR", "USD", "GBP")
VAT_RATES = (Decimal("0"), Decimal("5"), Decimal("9"), Decimal("19"))
MAX_INVOICE_NUMBER_LENGTH = 50
MAX_PAYMENT_TERM_DAYS = 365
MIN_ADDRESS_LENGTH = 10

TAX_ID_RE = re.compile(r"^(RO)?[0-9]{6,10}$", re.IGNORECASE)
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

Outcome = Tuple[str, str, Optional[object]]


@dataclass(frozen=True)
class ComplianceReport(ValidationReport):
    """Same aggregate shape as the audit-file report, over 25 invoice tests."""


@dataclass(frozen=True, slots=True)
class InvoiceContext:
    invoice: EInvoice
    issuer: Optional[IssuerProfile]
    recipient: Optional[RecipientParty]
    lines: Tuple[InvoiceLine, ...]


def _blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _missing(record: object, fields: Sequence[str]) -> List[str]:
    if record is None:
        return list(fields)
    return [name for name in fields if _blank(getattr(record, name, None))]


def _sum(values) -> Decimal:
    return sum((v for v in values if v is not None), ZERO)


def _decimals(value: Decimal) -> int:
    exponent = value.normalize().as_tuple().exponent
    return -exponent if isinstance(exponent, int) and exponent < 0 else 0


def _no_lines(ctx: InvoiceContext) -> Optional[Outcome]:
    if not ctx.lines:
        return WARNING, "No line items to validate", None
    return None


def _bad_lines(ctx: InvoiceContext, predicate: Callable[[InvoiceLine], bool]) -> List[int]:
    return [index for index, line in enumerate(ctx.lines, start=1) if predicate(line)]


# --- header and parties -------------------------------------------------------


def check_invoice_header(ctx: InvoiceContext) -> Outcome:
    missing = _missing(
        ctx.invoice, ("invoice_number", "issue_date", "due_date", "subtotal", "vat_amount", "total")
    )
    if missing:
        return FAIL, f"Missing required invoice fields: {', '.join(missing)}", None
    return PASS, "All required invoice header fields are present", None


def check_supplier_data(ctx: InvoiceContext) -> Outcome:
    missing = _missing(ctx.issuer, ("company_name", "tax_id", "address", "email"))
    if missing:
        return FAIL, f"Missing supplier fields: {', '.join(missing)}", None
    return PASS, "All required supplier fields are present", None


def check_customer_data(ctx: InvoiceContext) -> Outcome:
    missing = _missing(ctx.recipient, ("name", "tax_id", "address"))
    if missing:
        return FAIL, f"Missing customer fields: {', '.join(missing)}", None
    return PASS, "All required customer fields are present", None


# --- lines and arithmetic -----------------------------------------------------


def check_items_presence(ctx: InvoiceContext) -> Outcome:
    if not ctx.lines:
        return FAIL, "Invoice must contain at least one line item", None
    return PASS, f"Invoice contains {len(ctx.lines)} line item(s)", None


def check_line_items(ctx: InvoiceContext) -> Outcome:
    if not ctx.lines:
        return FAIL, "No items to validate", None
    incomplete = _bad_lines(
        ctx,
        lambda line: bool(
            _missing(line, ("description", "unit_price", "quantity", "subtotal", "vat_amount", "total"))
        ),
    )
    if incomplete:
        return FAIL, f"{len(incomplete)} item(s) missing required fields", incomplete
    return PASS, "All line items have required fields", None


def check_tax_consistency(ctx: InvoiceContext) -> Outcome:
    empty = _no_lines(ctx)
    if empty:
        return empty
    lines_vat = _sum(line.vat_amount for line in ctx.lines)
    invoice_vat = ctx.invoice.vat_amount or ZERO
    difference = abs(lines_vat - invoice_vat)
    if difference < TOLERANCE:
        return PASS, "VAT amounts match between line items and invoice total", None
    return (
        FAIL,
        f"VAT mismatch: line items sum {lines_vat:.2f} vs invoice {invoice_vat:.2f}",
        f"Difference: {difference:.2f}",
    )


def check_total_amounts(ctx: InvoiceContext) -> Outcome:
    empty = _no_lines(ctx)
    if empty:
        return empty
    subtotal_diff = abs(_sum(line.subtotal for line in ctx.lines) - (ctx.invoice.subtotal or ZERO))
    total_diff = abs(_sum(line.total for line in ctx.lines) - (ctx.invoice.total or ZERO))
    if subtotal_diff < TOLERANCE and total_diff < TOLERANCE:
        return PASS, "Invoice totals match line items sum", None
    return (
        FAIL,
        "Mismatch between invoice totals and line items sum",
        f"Subtotal diff: {subtotal_diff:.2f}, total diff: {total_diff:.2f}",
    )


def _valid_tax_id(value: Optional[str]) -> bool:
    return bool(value) and bool(TAX_ID_RE.match("".join(value.split())))


def check_tax_id_format(ctx: InvoiceContext) -> Outcome:
    errors = []
    if not _valid_tax_id(ctx.issuer.tax_id if ctx.issuer else None):
        errors.append("Supplier tax ID invalid")
    if not _valid_tax_id(ctx.recipient.tax_id if ctx.recipient else None):
        errors.append("Customer tax ID invalid")
    if errors:
        return FAIL, "; ".join(errors), "Tax ID must be 6-10 digits, optionally prefixed with RO"
    return PASS, "Tax ID format is valid for supplier and customer", None


def check_dates(ctx: InvoiceContext) -> Outcome:
    issued, due = ctx.invoice.issue_date, ctx.invoice.due_date
    if not isinstance(issued, date) or not isinstance(due, date):
        return FAIL, "Invalid date format", "Dates must be valid ISO dates (YYYY-MM-DD)"
    if due < issued:
        return FAIL, "Due date cannot be before issue date", f"Issue: {issued}, due: {due}"
    return PASS, "Date formats are valid and logic is correct", None


def check_currency(ctx: InvoiceContext) -> Outcome:
    currency = ctx.invoice.currency or "RON"
    if currency in CURRENCIES:
        return PASS, f"Currency {currency} is valid", None
    return WARNING, f"Currency {currency} may not be supported", f"Standard currencies are {', '.join(CURRENCIES)}"


def check_payment_terms(ctx: InvoiceContext) -> Outcome:
    issued, due = ctx.invoice.issue_date, ctx.invoice.due_date
    if not isinstance(issued, date) or not isinstance(due, date):
        return WARNING, "Payment term cannot be determined without valid dates", None
    days = (due - issued).days
    if 0 <= days <= MAX_PAYMENT_TERM_DAYS:
        return PASS, f"Payment term: {days} days", None
    return WARNING, f"Unusual payment term: {days} days", None


def check_invoice_number(ctx: InvoiceContext) -> Outcome:
    number = ctx.invoice.invoice_number
    if _blank(number):
        return FAIL, "Invoice number is empty", None
    if len(number) > MAX_INVOICE_NUMBER_LENGTH:
        return WARNING, "Invoice number is very long", f"{len(number)} characters"
    return PASS, "Invoice number format is valid", None


def check_tax_rates(ctx: InvoiceContext) -> Outcome:
    empty = _no_lines(ctx)
    if empty:
        return empty
    invalid = _bad_lines(ctx, lambda line: line.vat_rate not in VAT_RATES)
    if invalid:
        return WARNING, f"{len(invalid)} item(s) with non-standard VAT rates", invalid
    return PASS, "All tax rates are valid Romanian VAT rates", None


def _subtotal_off(line: InvoiceLine) -> bool:
    if line.unit_price is None or line.quantity is None or line.subtotal is None:
        return True
    return abs(line.unit_price * line.quantity - line.subtotal) >= TOLERANCE


def check_line_subtotals(ctx: InvoiceContext) -> Outcome:
    empty = _no_lines(ctx)
    if empty:
        return empty
    errors = _bad_lines(ctx, _subtotal_off)
    if errors:
        return FAIL, f"{len(errors)} item(s) with incorrect subtotal calculation", errors
    return PASS, "All line subtotals are calculated correctly", None


def _vat_off(line: InvoiceLine) -> bool:
    if line.subtotal is None or line.vat_rate is None or line.vat_amount is None:
        return True
    return abs(line.subtotal * line.vat_rate / Decimal("100") - line.vat_amount) >= TOLERANCE


def check_vat_amounts(ctx: InvoiceContext) -> Outcome:
    empty = _no_lines(ctx)
    if empty:
        return empty
    errors = _bad_lines(ctx, _vat_off)
    if errors:
        return FAIL, f"{len(errors)} item(s) with incorrect VAT calculation", errors
    return PASS, "All VAT amounts are calculated correctly", None


def check_invoice_type(ctx: InvoiceContext) -> Outcome:
    invoice_type = ctx.invoice.invoice_type or "standard"
    if invoice_type in INVOICE_TYPES:
        return PASS, f"Invoice type '{invoice_type}' is valid", None
    return WARNING, f"Unknown invoice type: {invoice_type}", f"Standard types are {', '.join(INVOICE_TYPES)}"


def _valid_email(value: Optional[str]) -> bool:
    return _blank(value) or bool(EMAIL_RE.match(value))


def check_emails(ctx: InvoiceContext) -> Outcome:
    errors = []
    if not _valid_email(ctx.issuer.email if ctx.issuer else None):
        errors.append("Supplier email invalid")
    if not _valid_email(ctx.recipient.email if ctx.recipient else None):
        errors.append("Customer email invalid")
    if errors:
        return FAIL, "; ".join(errors), None
    return PASS, "Email formats are valid", None


def _detailed(address: Optional[str]) -> bool:
    return bool(address) and len(address.strip()) >= MIN_ADDRESS_LENGTH


def check_addresses(ctx: InvoiceContext) -> Outcome:
    if _detailed(ctx.issuer.address if ctx.issuer else None) and _detailed(
        ctx.recipient.address if ctx.recipient else None
    ):
        return PASS, "Addresses are sufficiently detailed", None
    return WARNING, "Addresses may be too short", "Addresses should include street, number, city and county"


def check_quantities(ctx: InvoiceContext) -> Outcome:
    empty = _no_lines(ctx)
    if empty:
        return empty
    invalid = _bad_lines(ctx, lambda line: line.quantity is None or line.quantity <= ZERO)
    if invalid:
        return FAIL, f"{len(invalid)} item(s) with invalid quantities", invalid
    return PASS, "All quantities are positive numbers", None


def check_unit_prices(ctx: InvoiceContext) -> Outcome:
    empty = _no_lines(ctx)
    if empty:
        return empty
    invalid = _bad_lines(ctx, lambda line: line.unit_price is None or line.unit_price < ZERO)
    if invalid:
        return FAIL, f"{len(invalid)} item(s) with invalid unit prices", invalid
    return PASS, "All unit prices are valid", None


def check_ubl_requirements(ctx: InvoiceContext) -> Outcome:
    missing = [f"Invoice.{name}" for name in _missing(ctx.invoice, ("invoice_number", "issue_date", "due_date"))]
    missing += [f"Supplier.{name}" for name in _missing(ctx.issuer, ("company_name", "tax_id"))]
    missing += [f"Customer.{name}" for name in _missing(ctx.recipient, ("name", "tax_id"))]
    if missing:
        return FAIL, f"Missing UBL required fields: {', '.join(missing)}", None
    return PASS, "All UBL mandatory fields are present", None


def check_decimal_precision(ctx: InvoiceContext) -> Outcome:
    invalid = [
        label
        for label, value in (
            ("Invoice subtotal", ctx.invoice.subtotal),
            ("Invoice VAT", ctx.invoice.vat_amount),
            ("Invoice total", ctx.invoice.total),
        )
        if value is not None and _decimals(value) > 2
    ]
    for index, line in enumerate(ctx.lines, start=1):
        if line.unit_price is not None and _decimals(line.unit_price) > 4:
            invalid.append(f"Item {index} unit price")
        for label, value in (("subtotal", line.subtotal), ("VAT", line.vat_amount), ("total", line.total)):
            if value is not None and _decimals(value) > 2:
                invalid.append(f"Item {index} {label}")
    if invalid:
        return WARNING, f"{len(invalid)} value(s) with too many decimals", invalid
    return PASS, "All amounts have appropriate decimal precision", None


def check_tax_categories(ctx: InvoiceContext) -> Outcome:
    empty = _no_lines(ctx)
    if empty:
        return empty
    unmapped = _bad_lines(ctx, lambda line: tax_category_code(line.vat_rate) is None)
    if unmapped:
        return WARNING, "Some items have no standard tax category", unmapped
    return PASS, "All items have valid tax categories", None


def check_credentials(ctx: InvoiceContext) -> Outcome:
    missing = []
    if ctx.issuer is None or _blank(ctx.issuer.efactura_client_id):
        missing.append("Client ID")
    if ctx.issuer is None or _blank(ctx.issuer.efactura_client_secret):
        missing.append("Client Secret")
    if missing:
        return FAIL, f"Missing e-Factura credentials: {', '.join(missing)}", None
    return PASS, "e-Factura credentials are configured", None


def check_approval(ctx: InvoiceContext) -> Outcome:
    if ctx.invoice.approved is True:
        return PASS, "Invoice is approved by accountant", None
    if ctx.invoice.approved is False:
        return FAIL, "Invoice has been rejected by accountant", ctx.invoice.approval_notes or "No rejection notes provided"
    return WARNING, "Invoice is pending accountant approval", None


Check = Tuple[int, str, Callable[[InvoiceContext], Outcome]]

CHECKS: Tuple[Check, ...] = (
    (1, "Invoice Header Completeness", check_invoice_header),
    (2, "Supplier Data Completeness", check_supplier_data),
    (3, "Customer Data Completeness", check_customer_data),
    (4, "Invoice Items Presence", check_items_presence),
    (5, "Line Items Completeness", check_line_items),
    (6, "Tax Calculations Consistency", check_tax_consistency),
    (7, "Total Amounts Reconciliation", check_total_amounts),
    (8, "Tax ID Format", check_tax_id_format),
    (9, "Date Format and Logic", check_dates),
    (10, "Currency Validation", check_currency),
    (11, "Payment Terms Validation", check_payment_terms),
    (12, "Invoice Number Format", check_invoice_number),
    (13, "Tax Rates Validity", check_tax_rates),
    (14, "Line Subtotals Accuracy", check_line_subtotals),
    (15, "VAT Amount Calculations", check_vat_amounts),
    (16, "Invoice Type Validation", check_invoice_type),
    (17, "Email Format Validation", check_emails),
    (18, "Address Completeness", check_addresses),
    (19, "Item Quantities Validity", check_quantities),
    (20, "Unit Prices Validity", check_unit_prices),
    (21, "UBL Structure Requirements", check_ubl_requirements),
    (22, "Decimal Precision Validation", check_decimal_precision),
    (23, "Tax Category Codes", check_tax_categories),
    (24, "Transmission Credentials Configuration", check_credentials),
    (25, "Invoice Approval Status", check_approval),
)


def check_invoice_compliance(
    invoice: EInvoice,
    issuer_profile: Optional[IssuerProfile],
    recipient_party: Optional[RecipientParty],
    line_items: Sequence[InvoiceLine],
) -> ComplianceReport:
    ctx = InvoiceContext(invoice, issuer_profile, recipient_party, tuple(line_items or ()))
    results = []
    for number, name, check in CHECKS:
        status, message, details = check(ctx)
        results.append(ValidationResult(number, name, status, message, details))
    report = ComplianceReport.from_results(results)
    logger.info(
        "Invoice %s compliance: %d passed, %d failed, %d warnings",
        invoice.invoice_number,
        report.passed,
        report.failed,
        report.warnings,
    )
    return report
