"""Deterministic sample tenant for tests and the CLI (January 2025)."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Tuple

from .dto import (
    Account,
    Address,
    AnalysisType,
    CompanyProfile,
    InvoiceLineRecord,
    InvoiceRecord,
    Party,
    TaxTableEntry,
    TenantSnapshot,
    build_invoice_line,
)
from .profiles import CompanyProfileProvider
from .sources import InMemoryLedgerSource

SAMPLE_PERIOD = (date(2025, 1, 1), date(2025, 1, 31))

CUSTOMER_ALFA = Party(
    id="c-alfa",
    legal_name="Client Alfa SRL",
    tax_id="RO 1234567",
    registration_number="J12/345/2015",
    address=Address("Str. Memorandumului 5", "Cluj-Napoca", "400114", "RO", "CJ"),
    email="contabilitate@alfa.example",
)

CUSTOMER_BETA = Party(
    id="c-beta",
    legal_name="Beta Impex SRL",
    tax_id="23456789",
    address=Address("Bd. Independentei 20", "Iasi", "700100", "RO", "IS"),
)

SUPPLIER_GAMMA = Party(
    id="s-gamma",
    legal_name="Furnizor Gamma SRL",
    role="supplier",
    tax_id="RO34567890",
    address=Address("Str. Fabricii 1", "Brasov", "500001", "RO", "BV"),
)


def build_sample_profile(tenant_id: str) -> CompanyProfile:
    return CompanyProfile(
        tenant_id=tenant_id,
        company_name="Facturare Demo SRL",
        tax_id="RO12345678",
        registration_number="J40/1234/2020",
        trade_name="Facturare Demo",
        address=Address("Str. Exemplu nr. 10", "Bucuresti", "010101", "RO", "Bucuresti"),
        contact_first_name="Ion",
        contact_last_name="Popescu",
        phone="+40 721 123 456",
        email="office@facturare.example",
        iban="RO49AAAA1B31007593840000",
        bank_account_name="Facturare Demo SRL",
        sort_code="BTRLRO22",
        analysis_types=(AnalysisType("CC", "Centru de cost", "CC01", "Administrativ"),),
    )


def build_sample_accounts() -> Tuple[Account, ...]:
    return (
        Account("a-1012", "1012", "Capital subscris varsat", "equity", opening_credit=Decimal("10000.00")),
        Account("a-411", "411", "Clienti", "asset"),
        Account("a-4111", "4111", "Clienti", "asset"),
        Account("a-4427", "4427", "TVA colectata", "liability"),
        Account("a-5121", "5121", "Conturi la banci in lei", "asset", opening_debit=Decimal("10000.00")),
        Account("a-707", "707", "Venituri din vanzarea marfurilor", "revenue"),
    )


def _invoice(
    invoice_id: str, number: str, issued: date, customer: Party, lines: List[InvoiceLineRecord]
) -> InvoiceRecord:
    subtotal = sum((line.subtotal for line in lines), Decimal("0"))
    vat_amount = sum((line.vat_amount for line in lines), Decimal("0"))
    return InvoiceRecord(
        id=invoice_id,
        invoice_number=number,
        issue_date=issued,
        due_date=date.fromordinal(issued.toordinal() + 30),
        customer_id=customer.id,
        subtotal=subtotal,
        vat_amount=vat_amount,
        total=subtotal + vat_amount,
    )


def build_sample_snapshot() -> TenantSnapshot:
    lines = [
        build_invoice_line(
            invoice_id="inv-1", description="Consultanta", quantity="1", unit_price="1000.00",
            vat_rate="19", product_code="SRV-CONS", unit_code="HUR",
        ),
        build_invoice_line(
            invoice_id="inv-2", description="Produs rotunjire", quantity="3", unit_price="33.333",
            vat_rate="19", product_code="EDGE-A", unit_code="H87",
        ),
        build_invoice_line(
            invoice_id="inv-2", description="Carti", quantity="2", unit_price="30.00",
            vat_rate="9", product_code="BOOK", unit_code="H87",
        ),
        build_invoice_line(
            invoice_id="inv-3", description="Livrare intracomunitara", quantity="5", unit_price="10.00",
            vat_rate="0", product_code="EXP", unit_code="H87",
        ),
        build_invoice_line(
            invoice_id="inv-4", description="Consultanta februarie", quantity="2", unit_price="500.00",
            vat_rate="19", product_code="SRV-CONS", unit_code="HUR",
        ),
    ]
    by_invoice = {}
    for line in lines:
        by_invoice.setdefault(line.invoice_id, []).append(line)

    invoices = (
        _invoice("inv-1", "FCT-2025-0001", date(2025, 1, 10), CUSTOMER_ALFA, by_invoice["inv-1"]),
        _invoice("inv-2", "FCT-2025-0002", date(2025, 1, 15), CUSTOMER_BETA, by_invoice["inv-2"]),
        _invoice("inv-3", "FCT-2025-0003", date(2025, 1, 31), CUSTOMER_ALFA, by_invoice["inv-3"]),
        # outside the sample period
        _invoice("inv-4", "FCT-2025-0004", date(2025, 2, 3), CUSTOMER_BETA, by_invoice["inv-4"]),
    )
    return TenantSnapshot(
        accounts=build_sample_accounts(),
        parties=(CUSTOMER_ALFA, CUSTOMER_BETA, SUPPLIER_GAMMA),
        tax_table=(TaxTableEntry("IVA19", Decimal("19"), "TVA 19%"),),
        invoices=invoices,
        invoice_lines=tuple(lines),
    )


def build_sample_source(
    tenant_id: str = "tenant-demo",
) -> Tuple[InMemoryLedgerSource, CompanyProfileProvider]:
    snapshot = build_sample_snapshot()
    source = InMemoryLedgerSource()
    source.register(
        tenant_id,
        accounts=snapshot.accounts,
        parties=snapshot.parties,
        tax_table=snapshot.tax_table,
        invoices=snapshot.invoices,
        invoice_lines=snapshot.invoice_lines,
    )
    profiles = CompanyProfileProvider()
    profiles.register(build_sample_profile(tenant_id))
    return source, profiles
