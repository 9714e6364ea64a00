"""Deterministic sample invoices for tests and the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Tuple

from .dto import EInvoice, InvoiceLine, IssuerProfile, RecipientParty


@dataclass(frozen=True)
class SampleScenario:
    code: str
    description: str
    line_specs: tuple[tuple[str, str, str, str], ...]


ISSUER_PROFILE = IssuerProfile(
    company_name="Facturare Demo SRL",
    tax_id="RO12345678",
    address="Str. Exemplu nr. 10",
    email="office@facturare.example",
    city="Bucuresti",
    county="B",
    postal_code="010101",
    phone="+40 721 123 456",
    registration_number="J40/1234/2020",
    iban="RO49AAAA1B31007593840000",
    bank_name="Banca Transilvania",
    efactura_client_id="demo-client",
    efactura_client_secret="demo-secret",
)

RECIPIENT_PARTY = RecipientParty(
    name="Client Alfa SRL",
    tax_id="RO 1234567",
    address="Str. Memorandumului 5",
    email="contabilitate@alfa.example",
    registration_number="J12/345/2015",
    city="Cluj-Napoca",
    county="CJ",
    postal_code="400114",
)

SCENARIOS: List[SampleScenario] = [
    SampleScenario("01", "single_19", (("Consultanta", "1", "1000.00", "19"),)),
    SampleScenario("02", "rounding_19", (("Produs rotunjire", "3", "33.333", "19"),)),
    SampleScenario(
        "03",
        "mixed_rates",
        (
            ("Consultanta", "1", "100.00", "19"),
            ("Carti", "2", "30.00", "9"),
            ("Manuale", "1", "20.00", "5"),
        ),
    ),
    SampleScenario("04", "zero_rate", (("Livrare intracomunitara", "5", "10.00", "0"),)),
]


def build_sample_lines(scenario: SampleScenario) -> Tuple[InvoiceLine, ...]:
    return tuple(
        InvoiceLine.build(description, quantity, unit_price, rate)
        for description, quantity, unit_price, rate in scenario.line_specs
    )


def build_sample_invoice(
    scenario: SampleScenario,
    *,
    issue_date: date = date(2025, 1, 15),
    approved: bool | None = True,
) -> Tuple[EInvoice, Tuple[InvoiceLine, ...]]:
    lines = build_sample_lines(scenario)
    subtotal = sum((line.subtotal for line in lines), Decimal("0"))
    vat_amount = sum((line.vat_amount for line in lines), Decimal("0"))
    invoice = EInvoice(
        invoice_number=f"FCT-2025-{scenario.code}",
        issue_date=issue_date,
        due_date=issue_date + timedelta(days=30),
        subtotal=subtotal,
        vat_amount=vat_amount,
        total=subtotal + vat_amount,
        approved=approved,
    )
    return invoice, lines
