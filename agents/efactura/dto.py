"""Data transfer objects for a single e-Factura invoice.

These records mirror what an operator has typed in, not what a valid invoice
must look like: most fields are optional so the compliance checker can report
on incomplete input instead of refusing to construct it. Amounts become
``Decimal`` on construction; dates given as ISO strings become ``date`` when
they parse and are kept verbatim otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from agents.saft.dto import DecimalLike, _optional_decimal, _to_decimal, compute_line_amounts

INVOICE_TYPES = ("standard", "proforma", "credit_note", "debit_note")

# Romanian VAT rates and their UBL tax category (S standard/reduced, Z zero rated)
TAX_CATEGORIES: Dict[Decimal, str] = {
    Decimal("19"): "S",
    Decimal("9"): "S",
    Decimal("5"): "S",
    Decimal("0"): "Z",
}


def tax_category_code(rate: Optional[Decimal]) -> Optional[str]:
    if rate is None:
        return None
    return TAX_CATEGORIES.get(rate)


def _coerce_text(value: Any) -> Optional[str]:
    # JSON often carries CUIs and invoice numbers as numbers
    if value is None or isinstance(value, str):
        return value
    return str(value)


def _text_fields(record: Any, names: Tuple[str, ...]) -> None:
    for name in names:
        object.__setattr__(record, name, _coerce_text(getattr(record, name)))


def _coerce_date(value: Any) -> Any:
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value)
        except ValueError:
            return value
    return value


@dataclass(frozen=True, slots=True)
class EInvoice:
    invoice_number: Optional[str]
    issue_date: Optional[date | str]
    due_date: Optional[date | str]
    subtotal: Optional[Decimal]
    vat_amount: Optional[Decimal]
    total: Optional[Decimal]
    currency: str = "RON"
    invoice_type: str = "standard"
    # None while the accountant has not decided yet
    approved: Optional[bool] = None
    approval_notes: Optional[str] = None

    def __post_init__(self) -> None:
        _text_fields(self, ("invoice_number", "currency", "invoice_type", "approval_notes"))
        object.__setattr__(self, "issue_date", _coerce_date(self.issue_date))
        object.__setattr__(self, "due_date", _coerce_date(self.due_date))
        for name in ("subtotal", "vat_amount", "total"):
            object.__setattr__(self, name, _optional_decimal(getattr(self, name)))

    def with_approval(self, approved: bool, notes: Optional[str] = None) -> "EInvoice":
        return replace(self, approved=approved, approval_notes=notes)


@dataclass(frozen=True, slots=True)
class IssuerProfile:
    """The invoicing company as configured in its settings."""

    company_name: Optional[str]
    tax_id: Optional[str]
    address: Optional[str]
    email: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "RO"
    phone: Optional[str] = None
    registration_number: Optional[str] = None
    iban: Optional[str] = None
    bank_name: Optional[str] = None
    # OAuth client registered with the national e-invoicing gateway
    efactura_client_id: Optional[str] = None
    efactura_client_secret: Optional[str] = None

    def __post_init__(self) -> None:
        _text_fields(self, tuple(f.name for f in fields(self)))

    def __repr__(self) -> str:
        secret = "***" if self.efactura_client_secret else None
        return (
            f"IssuerProfile(company_name={self.company_name!r}, tax_id={self.tax_id!r}, "
            f"efactura_client_id={self.efactura_client_id!r}, efactura_client_secret={secret!r})"
        )


@dataclass(frozen=True, slots=True)
class RecipientParty:
    name: Optional[str]
    tax_id: Optional[str]
    address: Optional[str]
    email: Optional[str] = None
    registration_number: Optional[str] = None
    city: Optional[str] = None
    county: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = "RO"

    def __post_init__(self) -> None:
        _text_fields(self, tuple(f.name for f in fields(self)))


@dataclass(frozen=True, slots=True)
class InvoiceLine:
    description: Optional[str]
    quantity: Optional[Decimal]
    unit_price: Optional[Decimal]
    vat_rate: Optional[Decimal]
    subtotal: Optional[Decimal]
    vat_amount: Optional[Decimal]
    total: Optional[Decimal]
    unit_code: str = "H87"

    def __post_init__(self) -> None:
        _text_fields(self, ("description", "unit_code"))
        for name in ("quantity", "unit_price", "vat_rate", "subtotal", "vat_amount", "total"):
            object.__setattr__(self, name, _optional_decimal(getattr(self, name)))

    @classmethod
    def build(
        cls,
        description: str,
        quantity: DecimalLike,
        unit_price: DecimalLike,
        vat_rate: DecimalLike,
        *,
        unit_code: str = "H87",
    ) -> "InvoiceLine":
        """Line with subtotal, VAT and total computed at cent precision."""

        subtotal, vat_amount, total = compute_line_amounts(unit_price, quantity, vat_rate)
        return cls(
            description=description,
            quantity=_to_decimal(quantity),
            unit_price=_to_decimal(unit_price),
            vat_rate=_to_decimal(vat_rate),
            subtotal=subtotal,
            vat_amount=vat_amount,
            total=total,
            unit_code=unit_code,
        )


def invoice_from_dict(data: Dict[str, Any]) -> EInvoice:
    return EInvoice(
        invoice_number=data.get("invoice_number"),
        issue_date=data.get("issue_date"),
        due_date=data.get("due_date"),
        subtotal=_amount(data.get("subtotal")),
        vat_amount=_amount(data.get("vat_amount")),
        total=_amount(data.get("total")),
        currency=data.get("currency") or "RON",
        invoice_type=data.get("invoice_type") or "standard",
        approved=data.get("approved"),
        approval_notes=data.get("approval_notes"),
    )


def line_from_dict(data: Dict[str, Any]) -> InvoiceLine:
    return InvoiceLine(
        description=data.get("description"),
        quantity=_amount(data.get("quantity")),
        unit_price=_amount(data.get("unit_price")),
        vat_rate=_amount(data.get("vat_rate")),
        subtotal=_amount(data.get("subtotal")),
        vat_amount=_amount(data.get("vat_amount")),
        total=_amount(data.get("total")),
        unit_code=data.get("unit_code") or "H87",
    )


def _amount(value: Any) -> Optional[str]:
    # JSON numbers go through str so 0.1 stays 0.1
    if value is None:
        return None
    return str(value)
