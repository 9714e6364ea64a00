"""Ledger builder: invoices to a balanced double-entry sales journal.

Each invoice becomes one transaction:

* debit ``4111`` (receivables) with the gross total, tagged with the customer;
* credit ``707`` (revenue) with the net subtotal;
* credit ``4427`` (VAT collected) with the VAT amount, one tax-information
  entry per rate. The line is omitted when the invoice carries no VAT.

Negative amounts (credit notes) post on the opposite side.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from backend.core.config import settings
from backend.core.logging import get_logger

from .dto import (
    RECEIVABLES_ACCOUNT,
    REVENUE_ACCOUNT,
    STANDARD_VAT_ENTRIES,
    VAT_PAYABLE_ACCOUNT,
    ZERO,
    Account,
    AuditFileDocument,
    AuditFileHeader,
    CompanyProfile,
    InvoiceLineRecord,
    InvoiceRecord,
    Party,
    Product,
    SalesInvoice,
    SalesInvoiceLine,
    TaxInformation,
    TaxTableEntry,
    TenantSnapshot,
    Transaction,
    TransactionLine,
    UnitOfMeasure,
)
from .errors import MissingMasterAccount
from .profiles import validate_required_accounts

logger = get_logger(__name__)

JOURNAL_ID = "VZ"
JOURNAL_DESCRIPTION = "Jurnal vanzari"

UOM_DESCRIPTIONS = {
    "H87": "bucata",
    "C62": "unitate",
    "HUR": "ora",
    "DAY": "zi",
    "MON": "luna",
    "KGM": "kilogram",
    "MTR": "metru",
    "LTR": "litru",
    "SET": "set",
}


def _rate_key(rate: Decimal) -> Decimal:
    return rate.normalize()


def merge_tax_table(entries: Iterable[TaxTableEntry]) -> Tuple[TaxTableEntry, ...]:
    """Tenant entries plus the standard VAT rates they do not already cover."""

    merged: List[TaxTableEntry] = []
    seen_codes = set()
    seen_rates = set()
    for entry in entries:
        if entry.tax_code in seen_codes:
            raise ValueError(f"Duplicate tax code '{entry.tax_code}' in tax table")
        seen_codes.add(entry.tax_code)
        if entry.tax_type == "IVA":
            seen_rates.add(_rate_key(entry.percentage))
        merged.append(entry)
    for entry in STANDARD_VAT_ENTRIES:
        if _rate_key(entry.percentage) not in seen_rates and entry.tax_code not in seen_codes:
            merged.append(entry)
            seen_codes.add(entry.tax_code)
            seen_rates.add(_rate_key(entry.percentage))
    return tuple(merged)


class _TaxCodes:
    """Maps VAT rates to tax codes, adding entries for rates nobody declared."""

    def __init__(self, table: Sequence[TaxTableEntry]) -> None:
        self.entries: List[TaxTableEntry] = list(table)
        self._by_rate: Dict[Decimal, TaxTableEntry] = {}
        for entry in self.entries:
            if entry.tax_type == "IVA":
                self._by_rate.setdefault(_rate_key(entry.percentage), entry)

    def entry_for(self, rate: Decimal) -> TaxTableEntry:
        key = _rate_key(rate)
        entry = self._by_rate.get(key)
        if entry is None:
            label = format(key, "f")
            entry = TaxTableEntry(f"IVA{label}", rate, f"TVA cota {label}%")
            logger.info("Adding tax table entry %s for undeclared rate", entry.tax_code)
            self.entries.append(entry)
            self._by_rate[key] = entry
        return entry


def _posting(amount: Decimal, side: str) -> Dict[str, Decimal]:
    if amount < 0:
        side = "credit" if side == "debit" else "debit"
        amount = -amount
    return {f"{side}_amount": amount}


def _tax_breakdown(
    lines: Sequence[InvoiceLineRecord], tax_codes: _TaxCodes
) -> Tuple[TaxInformation, ...]:
    """One entry per invoice line, ordered by rate.

    Each entry's amount is the line's own rounded VAT, so ``base * rate / 100``
    stays within half a cent of it no matter how many lines share a rate.
    """

    infos = []
    for line in sorted(lines, key=lambda item: _rate_key(item.vat_rate)):
        entry = tax_codes.entry_for(line.vat_rate)
        infos.append(
            TaxInformation(
                tax_type=entry.tax_type,
                tax_code=entry.tax_code,
                tax_percentage=entry.percentage,
                tax_base=line.subtotal,
                tax_amount=line.vat_amount,
            )
        )
    return tuple(infos)


def _build_transaction(
    index: int,
    invoice: InvoiceRecord,
    customer: Party,
    lines: Sequence[InvoiceLineRecord],
    tax_codes: _TaxCodes,
) -> Transaction:
    if invoice.total == 0:
        raise ValueError(f"Invoice {invoice.invoice_number} has a zero total; nothing to post")

    transaction_id = f"{JOURNAL_ID}{index:06d}"
    common = {
        "source_document_id": invoice.invoice_number,
        "currency_code": invoice.currency,
    }
    postings = [
        TransactionLine(
            record_id=f"{transaction_id}-1",
            account_id=RECEIVABLES_ACCOUNT,
            customer_id=customer.wire_id,
            description=customer.legal_name,
            **common,
            **_posting(invoice.total, "debit"),
        )
    ]
    if invoice.subtotal != 0:
        postings.append(
            TransactionLine(
                record_id=f"{transaction_id}-{len(postings) + 1}",
                account_id=REVENUE_ACCOUNT,
                description="Venituri din vanzarea marfurilor",
                **common,
                **_posting(invoice.subtotal, "credit"),
            )
        )
    if invoice.vat_amount != 0:
        postings.append(
            TransactionLine(
                record_id=f"{transaction_id}-{len(postings) + 1}",
                account_id=VAT_PAYABLE_ACCOUNT,
                description="TVA colectata",
                tax_info=_tax_breakdown(lines, tax_codes),
                **common,
                **_posting(invoice.vat_amount, "credit"),
            )
        )
    return Transaction(
        transaction_id=transaction_id,
        transaction_date=invoice.issue_date,
        description=f"Factura {invoice.invoice_number} - {customer.legal_name}",
        source_document_id=invoice.invoice_number,
        lines=tuple(postings),
    )


def _build_sales_invoice(
    invoice: InvoiceRecord,
    customer: Party,
    lines: Sequence[InvoiceLineRecord],
    tax_codes: _TaxCodes,
) -> SalesInvoice:
    sales_lines = []
    for number, line in enumerate(lines, start=1):
        entry = tax_codes.entry_for(line.vat_rate)
        sales_lines.append(
            SalesInvoiceLine(
                line_number=number,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_amount=line.subtotal,
                tax=TaxInformation(
                    tax_type=entry.tax_type,
                    tax_code=entry.tax_code,
                    tax_percentage=entry.percentage,
                    tax_base=line.subtotal,
                    tax_amount=line.vat_amount,
                ),
                product_code=line.product_code,
                unit_of_measure=line.unit_code,
            )
        )
    return SalesInvoice(
        invoice_no=invoice.invoice_number,
        invoice_date=invoice.issue_date,
        invoice_type=invoice.invoice_type,
        customer_id=customer.wire_id,
        net_total=invoice.subtotal,
        tax_payable=invoice.vat_amount,
        gross_total=invoice.total,
        lines=tuple(sales_lines),
    )


def compute_closing_balances(
    accounts: Sequence[Account], journal: Sequence[Transaction]
) -> Tuple[Account, ...]:
    """Opening balance plus period movements, clamped into debit/credit buckets."""

    movements: Dict[str, List[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
    for transaction in journal:
        for line in transaction.lines:
            bucket = movements[line.account_id]
            bucket[0] += line.debit_amount or ZERO
            bucket[1] += line.credit_amount or ZERO

    resolved = []
    for account in accounts:
        debit, credit = movements.get(account.code, (ZERO, ZERO))
        net = account.opening_debit - account.opening_credit + debit - credit
        resolved.append(
            Account(
                id=account.id,
                code=account.code,
                name=account.name,
                type=account.type,
                opening_debit=account.opening_debit,
                opening_credit=account.opening_credit,
                closing_debit=net if net > 0 else ZERO,
                closing_credit=-net if net < 0 else ZERO,
            )
        )
    return tuple(resolved)


def _master_data(
    lines: Iterable[InvoiceLineRecord],
) -> Tuple[Tuple[Product, ...], Tuple[UnitOfMeasure, ...]]:
    products: Dict[str, Product] = {}
    units: Dict[str, UnitOfMeasure] = {}
    for line in lines:
        if line.unit_code and line.unit_code not in units:
            units[line.unit_code] = UnitOfMeasure(
                line.unit_code, UOM_DESCRIPTIONS.get(line.unit_code, line.unit_code)
            )
        if line.product_code and line.product_code not in products:
            products[line.product_code] = Product(
                line.product_code, line.description, line.unit_code
            )
    return (
        tuple(products[code] for code in sorted(products)),
        tuple(units[code] for code in sorted(units)),
    )


def _unique_parties(parties: Iterable[Party], role: str) -> Tuple[Party, ...]:
    selected: Dict[str, Party] = {}
    for party in parties:
        if party.role == role:
            selected.setdefault(party.wire_id, party)
    return tuple(selected[key] for key in sorted(selected))


def build_header(
    profile: CompanyProfile,
    period_from: date,
    period_to: date,
    *,
    created_at: datetime,
    currency_code: Optional[str] = None,
) -> AuditFileHeader:
    return AuditFileHeader(
        company_id=profile.tax_id,
        tax_registration_number=profile.tax_id,
        company_name=profile.company_name,
        business_name=profile.trade_name or profile.company_name,
        registration_number=profile.registration_number,
        address=profile.address,
        contact_first_name=profile.contact_first_name,
        contact_last_name=profile.contact_last_name,
        telephone=profile.phone,
        email=profile.email,
        iban=profile.iban,
        bank_account_number=profile.bank_account_number,
        bank_account_name=profile.bank_account_name,
        sort_code=profile.sort_code,
        tax_accounting_basis=profile.tax_accounting_basis,
        fiscal_year=period_from.year,
        start_date=period_from,
        end_date=period_to,
        date_created=created_at,
        currency_code=currency_code or settings.SAFT_BASE_CURRENCY,
        software_company_name=settings.SAFT_SOFTWARE_COMPANY_NAME,
        software_id=settings.SAFT_SOFTWARE_ID,
        software_version=settings.SAFT_SOFTWARE_VERSION,
    )


def build_audit_file(
    profile: CompanyProfile,
    snapshot: TenantSnapshot,
    period_from: date,
    period_to: date,
    *,
    created_at: datetime,
    currency_code: Optional[str] = None,
) -> AuditFileDocument:
    """Assemble the complete audit-file model for one tenant and period.

    Raises :class:`MissingMasterAccount` when 4111, 707 or 4427 is absent
    from the chart of accounts, and ``ValueError`` for inconsistent input
    (duplicate account codes or invoice ids, unknown customers).
    """

    if period_from > period_to:
        raise ValueError("period_from must not be after period_to")

    codes = [account.code for account in snapshot.accounts]
    duplicates = sorted({code for code in codes if codes.count(code) > 1})
    if duplicates:
        raise ValueError(f"Duplicate account codes: {', '.join(duplicates)}")
    missing = validate_required_accounts(snapshot.accounts)
    if missing:
        raise MissingMasterAccount(missing)

    invoices = sorted(
        (inv for inv in snapshot.invoices if period_from <= inv.issue_date <= period_to),
        key=lambda inv: (inv.issue_date, inv.invoice_number),
    )
    seen_ids = set()
    for invoice in invoices:
        if invoice.id in seen_ids:
            raise ValueError(f"Invoice '{invoice.id}' appears more than once")
        seen_ids.add(invoice.id)

    parties = {party.id: party for party in snapshot.parties}
    lines_by_invoice: Dict[str, List[InvoiceLineRecord]] = defaultdict(list)
    for line in snapshot.invoice_lines:
        if line.invoice_id in seen_ids:
            lines_by_invoice[line.invoice_id].append(line)

    tax_codes = _TaxCodes(merge_tax_table(snapshot.tax_table))
    journal: List[Transaction] = []
    sales_invoices: List[SalesInvoice] = []
    for index, invoice in enumerate(invoices, start=1):
        customer = parties.get(invoice.customer_id)
        if customer is None:
            raise ValueError(
                f"Invoice {invoice.invoice_number} references unknown customer '{invoice.customer_id}'"
            )
        invoice_lines = lines_by_invoice.get(invoice.id, [])
        journal.append(_build_transaction(index, invoice, customer, invoice_lines, tax_codes))
        sales_invoices.append(_build_sales_invoice(invoice, customer, invoice_lines, tax_codes))

    in_period_lines = [line for inv in invoices for line in lines_by_invoice.get(inv.id, [])]
    products, units = _master_data(in_period_lines)

    document = AuditFileDocument(
        header=build_header(
            profile, period_from, period_to, created_at=created_at, currency_code=currency_code
        ),
        accounts=compute_closing_balances(
            sorted(snapshot.accounts, key=lambda acc: acc.code), journal
        ),
        customers=_unique_parties(snapshot.parties, "customer"),
        suppliers=_unique_parties(snapshot.parties, "supplier"),
        tax_table=tuple(tax_codes.entries),
        products=products,
        units_of_measure=units,
        analysis_types=profile.analysis_types,
        sales_invoices=tuple(sales_invoices),
        journal=tuple(journal),
        journal_id=JOURNAL_ID,
        journal_description=JOURNAL_DESCRIPTION,
    )
    logger.info(
        "Built ledger for %s: %d transactions, %d accounts",
        profile.tenant_id,
        document.number_of_entries,
        len(document.accounts),
    )
    return document
