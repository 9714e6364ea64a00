"""Data transfer objects for the SAF-T (D406) audit file.

The structures are fully in-memory and deterministic. Money is carried as
``Decimal``; rounding to two fractional digits (``ROUND_HALF_UP``) happens when
a value is rendered, with the exception of invoice line amounts which are
derived from a unit price already rounded to cents (see
:func:`compute_line_amounts`).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional, Tuple


DecimalLike = Decimal | str | int | float

ZERO = Decimal("0")
CENT = Decimal("0.01")

ACCOUNT_TYPES = ("asset", "liability", "equity", "revenue", "expense")
PARTY_ROLES = ("customer", "supplier")

RECEIVABLES_ACCOUNT = "4111"
REVENUE_ACCOUNT = "707"
VAT_PAYABLE_ACCOUNT = "4427"
REQUIRED_ACCOUNTS: Dict[str, str] = {
    RECEIVABLES_ACCOUNT: "customers (receivables)",
    REVENUE_ACCOUNT: "revenue from sale of goods",
    VAT_PAYABLE_ACCOUNT: "VAT collected",
}


def _to_decimal(value: DecimalLike) -> Decimal:
    """Convert input deterministically into ``Decimal``.

    Floats go through ``str`` first so binary rounding noise never leaks into
    the ledger.
    """

    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Booleans are not amounts")
    if isinstance(value, (int, str)):
        return Decimal(str(value).strip())
    if isinstance(value, float):
        return Decimal(str(value))
    raise TypeError(f"Unsupported decimal input: {type(value)!r}")


def _optional_decimal(value: Optional[DecimalLike]) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return _to_decimal(value)


def quantize_money(amount: DecimalLike) -> Decimal:
    """Round an amount to two fractional digits (ROUND_HALF_UP)."""

    return _to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_line_amounts(
    unit_price: DecimalLike, quantity: DecimalLike, vat_rate: DecimalLike
) -> Tuple[Decimal, Decimal, Decimal]:
    """Return ``(subtotal, vat_amount, total)`` for one invoice line.

    The unit price is taken at cent precision before multiplying, so
    ``33.333 x 3 @ 19%`` yields ``99.99 / 19.00 / 118.99``.
    """

    price = quantize_money(unit_price)
    subtotal = quantize_money(price * _to_decimal(quantity))
    vat_amount = quantize_money(subtotal * _to_decimal(vat_rate) / Decimal("100"))
    return subtotal, vat_amount, subtotal + vat_amount


def normalize_tax_id(value: Optional[str]) -> str:
    """Strip whitespace and upper-case a fiscal code (CUI/CIF)."""

    if not value:
        return ""
    return "".join(value.split()).upper()


@dataclass(frozen=True, slots=True)
class Address:
    street: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = "RO"
    region: str = ""


@dataclass(frozen=True, slots=True)
class Account:
    id: str
    code: str
    name: str
    type: str = "asset"
    opening_debit: Decimal = ZERO
    opening_credit: Decimal = ZERO
    closing_debit: Decimal = ZERO
    closing_credit: Decimal = ZERO

    def __post_init__(self) -> None:
        if not self.code:
            raise ValueError(f"Account '{self.id}' has no code")
        account_type = self.type or "asset"
        if account_type not in ACCOUNT_TYPES:
            raise ValueError(f"Unknown account type '{self.type}' for account {self.code}")
        object.__setattr__(self, "type", account_type)
        for name in ("opening_debit", "opening_credit", "closing_debit", "closing_credit"):
            amount = _to_decimal(getattr(self, name))
            if amount < 0:
                raise ValueError(f"Account {self.code}: {name} must not be negative")
            object.__setattr__(self, name, amount)


@dataclass(frozen=True, slots=True)
class Party:
    """Customer or supplier master record."""

    id: str
    legal_name: str
    role: str = "customer"
    tax_id: Optional[str] = None
    registration_number: Optional[str] = None
    address: Address = field(default_factory=Address)
    email: Optional[str] = None
    phone: Optional[str] = None

    def __post_init__(self) -> None:
        if self.role not in PARTY_ROLES:
            raise ValueError(f"Unknown party role '{self.role}'")

    @property
    def wire_id(self) -> str:
        """Identifier used on the wire: normalized tax ID, else the record id."""

        return normalize_tax_id(self.tax_id) or self.id


@dataclass(frozen=True, slots=True)
class TaxTableEntry:
    tax_code: str
    percentage: Decimal
    description: str = ""
    tax_type: str = "IVA"
    country: str = "RO"

    def __post_init__(self) -> None:
        object.__setattr__(self, "percentage", _to_decimal(self.percentage))


STANDARD_VAT_ENTRIES: Tuple[TaxTableEntry, ...] = (
    TaxTableEntry("IVA19", Decimal("19"), "TVA cota standard 19%"),
    TaxTableEntry("IVA9", Decimal("9"), "TVA cota redusa 9%"),
    TaxTableEntry("IVA5", Decimal("5"), "TVA cota redusa 5%"),
    TaxTableEntry("IVA0", Decimal("0"), "TVA cota zero"),
)


@dataclass(frozen=True, slots=True)
class Product:
    code: str
    description: str
    unit_of_measure: Optional[str] = None


@dataclass(frozen=True, slots=True)
class UnitOfMeasure:
    code: str
    description: str


@dataclass(frozen=True, slots=True)
class AnalysisType:
    analysis_type: str
    type_description: str
    analysis_id: str
    id_description: str


@dataclass(frozen=True, slots=True)
class CompanyProfile:
    """Company master data used for the audit-file header."""

    tenant_id: str
    company_name: str
    tax_id: str
    registration_number: str = ""
    trade_name: Optional[str] = None
    address: Address = field(default_factory=Address)
    contact_first_name: str = ""
    contact_last_name: str = ""
    phone: str = ""
    email: Optional[str] = None
    iban: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_account_name: str = ""
    sort_code: str = ""
    tax_accounting_basis: str = "A"
    analysis_types: Tuple[AnalysisType, ...] = ()


@dataclass(frozen=True, slots=True)
class InvoiceRecord:
    """Issued sales invoice as stored by the invoicing application."""

    id: str
    invoice_number: str
    issue_date: date
    customer_id: str
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal
    currency: str = "RON"
    due_date: Optional[date] = None
    invoice_type: str = "FT"

    def __post_init__(self) -> None:
        for name in ("subtotal", "vat_amount", "total"):
            object.__setattr__(self, name, _to_decimal(getattr(self, name)))


@dataclass(frozen=True, slots=True)
class InvoiceLineRecord:
    invoice_id: str
    description: str
    quantity: Decimal
    unit_price: Decimal
    vat_rate: Decimal
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal
    product_code: Optional[str] = None
    unit_code: Optional[str] = None

    def __post_init__(self) -> None:
        for name in ("quantity", "unit_price", "vat_rate", "subtotal", "vat_amount", "total"):
            object.__setattr__(self, name, _to_decimal(getattr(self, name)))


def build_invoice_line(
    *,
    invoice_id: str,
    description: str,
    quantity: DecimalLike,
    unit_price: DecimalLike,
    vat_rate: DecimalLike,
    product_code: Optional[str] = None,
    unit_code: Optional[str] = None,
) -> InvoiceLineRecord:
    subtotal, vat_amount, total = compute_line_amounts(unit_price, quantity, vat_rate)
    return InvoiceLineRecord(
        invoice_id=invoice_id,
        description=description,
        quantity=_to_decimal(quantity),
        unit_price=_to_decimal(unit_price),
        vat_rate=_to_decimal(vat_rate),
        subtotal=subtotal,
        vat_amount=vat_amount,
        total=total,
        product_code=product_code,
        unit_code=unit_code,
    )


@dataclass(frozen=True, slots=True)
class TenantSnapshot:
    """Everything the five ledger fetches return for one tenant and period."""

    accounts: Tuple[Account, ...]
    parties: Tuple[Party, ...]
    tax_table: Tuple[TaxTableEntry, ...]
    invoices: Tuple[InvoiceRecord, ...]
    invoice_lines: Tuple[InvoiceLineRecord, ...]


# --- audit file model -----------------------------------------------------


@dataclass(frozen=True, slots=True)
class TaxInformation:
    tax_type: str
    tax_code: str
    tax_percentage: Decimal
    tax_base: Decimal
    tax_amount: Decimal


@dataclass(frozen=True, slots=True)
class TransactionLine:
    record_id: str
    account_id: str
    debit_amount: Optional[Decimal] = None
    credit_amount: Optional[Decimal] = None
    customer_id: Optional[str] = None
    supplier_id: Optional[str] = None
    source_document_id: Optional[str] = None
    currency_code: Optional[str] = None
    description: Optional[str] = None
    tax_info: Tuple[TaxInformation, ...] = ()

    def __post_init__(self) -> None:
        debit = _optional_decimal(self.debit_amount)
        credit = _optional_decimal(self.credit_amount)
        if (debit is None) == (credit is None):
            raise ValueError(f"Line {self.record_id}: exactly one of debit/credit must be set")
        amount = debit if debit is not None else credit
        if amount <= 0:
            raise ValueError(f"Line {self.record_id}: amount must be positive")
        object.__setattr__(self, "debit_amount", debit)
        object.__setattr__(self, "credit_amount", credit)


@dataclass(frozen=True, slots=True)
class Transaction:
    transaction_id: str
    transaction_date: date
    description: str
    source_document_id: str
    lines: Tuple[TransactionLine, ...]

    def __post_init__(self) -> None:
        if len(self.lines) < 2:
            raise ValueError(f"Transaction {self.transaction_id} needs at least two lines")

    @property
    def period(self) -> int:
        return self.transaction_date.month

    def total_debit(self) -> Decimal:
        return sum((line.debit_amount or ZERO for line in self.lines), ZERO)

    def total_credit(self) -> Decimal:
        return sum((line.credit_amount or ZERO for line in self.lines), ZERO)


@dataclass(frozen=True, slots=True)
class SalesInvoiceLine:
    line_number: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    line_amount: Decimal
    tax: TaxInformation
    product_code: Optional[str] = None
    unit_of_measure: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SalesInvoice:
    invoice_no: str
    invoice_date: date
    invoice_type: str
    customer_id: str
    net_total: Decimal
    tax_payable: Decimal
    gross_total: Decimal
    lines: Tuple[SalesInvoiceLine, ...] = ()


@dataclass(frozen=True, slots=True)
class AuditFileHeader:
    company_id: str
    tax_registration_number: str
    company_name: str
    business_name: str
    registration_number: str
    address: Address
    contact_first_name: str
    contact_last_name: str
    telephone: str
    fiscal_year: int
    start_date: date
    end_date: date
    date_created: datetime
    software_company_name: str
    software_id: str
    software_version: str
    email: Optional[str] = None
    iban: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_account_name: str = ""
    sort_code: str = ""
    tax_accounting_basis: str = "A"
    currency_code: str = "RON"
    audit_file_version: str = "1.01_01"
    audit_file_country: str = "RO"


@dataclass(frozen=True, slots=True)
class AuditFileDocument:
    header: AuditFileHeader
    accounts: Tuple[Account, ...]
    customers: Tuple[Party, ...]
    suppliers: Tuple[Party, ...]
    tax_table: Tuple[TaxTableEntry, ...]
    products: Tuple[Product, ...]
    units_of_measure: Tuple[UnitOfMeasure, ...]
    analysis_types: Tuple[AnalysisType, ...]
    sales_invoices: Tuple[SalesInvoice, ...]
    journal: Tuple[Transaction, ...]
    journal_id: str = "VZ"
    journal_description: str = "Jurnal vanzari"

    @property
    def number_of_entries(self) -> int:
        return len(self.journal)

    def total_debit(self) -> Decimal:
        return sum((tx.total_debit() for tx in self.journal), ZERO)

    def total_credit(self) -> Decimal:
        return sum((tx.total_credit() for tx in self.journal), ZERO)
