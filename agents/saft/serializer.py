"""Render an :class:`AuditFileDocument` as D406 SAF-T XML."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from lxml import etree

from .dto import (
    Account,
    Address,
    AuditFileDocument,
    AuditFileHeader,
    Party,
    TaxInformation,
    quantize_money,
)

SAFT_NAMESPACE = "mfp:anaf:dgti:d406:declaratie:v1"
SERIALIZER_VERSION = "saft-d406-1"


def version() -> str:
    return SERIALIZER_VERSION


@dataclass(frozen=True, slots=True)
class HeaderMetadata:
    company_id: str
    fiscal_year: int
    start_date: date
    end_date: date
    currency_code: str
    number_of_entries: int
    date_created: date


def _format_decimal(value: Decimal) -> str:
    return f"{quantize_money(value):.2f}"


def _format_quantity(value: Decimal) -> str:
    normalized = value.normalize()
    return format(normalized, "f")


def _format_date(value: date | datetime) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    return value.isoformat()


def wire_account_type(code: str, all_codes: Iterable[str]) -> str:
    """``GR`` for grouping accounts (prefix of another code), else ``GM``."""

    for other in all_codes:
        if other != code and other.startswith(code):
            return "GR"
    return "GM"


class _Writer:
    def __init__(self) -> None:
        self.root = etree.Element(f"{{{SAFT_NAMESPACE}}}AuditFile", nsmap={None: SAFT_NAMESPACE})

    @staticmethod
    def elem(parent: etree._Element, name: str, text: object = None) -> etree._Element:
        node = etree.SubElement(parent, f"{{{SAFT_NAMESPACE}}}{name}")
        if text is not None:
            node.text = str(text)
        return node

    def optional(self, parent: etree._Element, name: str, text: Optional[str]) -> None:
        if text:
            self.elem(parent, name, text)

    def money(self, parent: etree._Element, name: str, value: Decimal) -> None:
        self.elem(parent, name, _format_decimal(value))

    # --- header -------------------------------------------------------------

    def address(self, parent: etree._Element, name: str, address: Address) -> None:
        node = self.elem(parent, name)
        self.elem(node, "StreetName", address.street)
        self.elem(node, "City", address.city)
        self.elem(node, "PostalCode", address.postal_code)
        self.optional(node, "Region", address.region)
        self.elem(node, "Country", address.country)

    def header(self, header: AuditFileHeader) -> None:
        node = self.elem(self.root, "Header")
        self.elem(node, "AuditFileVersion", header.audit_file_version)
        self.elem(node, "AuditFileCountry", header.audit_file_country)
        self.elem(node, "AuditFileDateCreated", _format_date(header.date_created))
        self.elem(node, "SoftwareCompanyName", header.software_company_name)
        self.elem(node, "SoftwareID", header.software_id)
        self.elem(node, "SoftwareVersion", header.software_version)
        self.elem(node, "CompanyID", header.company_id)
        self.elem(node, "TaxRegistrationNumber", header.tax_registration_number)
        self.elem(node, "TaxAccountingBasis", header.tax_accounting_basis)
        self.elem(node, "CompanyName", header.company_name)
        self.elem(node, "BusinessName", header.business_name)

        company = self.elem(node, "Company")
        self.elem(company, "RegistrationNumber", header.registration_number)
        self.address(company, "Address", header.address)
        contact = self.elem(company, "Contact")
        person = self.elem(contact, "ContactPerson")
        self.elem(person, "FirstName", header.contact_first_name)
        self.elem(person, "LastName", header.contact_last_name)
        self.elem(contact, "Telephone", header.telephone)
        self.optional(contact, "Email", header.email)
        bank = self.elem(company, "BankAccount")
        if header.iban:
            self.elem(bank, "IBANNumber", header.iban)
        else:
            self.elem(bank, "BankAccountNumber", header.bank_account_number or "")
        self.elem(bank, "BankAccountName", header.bank_account_name)
        self.elem(bank, "SortCode", header.sort_code)

        self.elem(node, "FiscalYear", header.fiscal_year)
        self.elem(node, "StartDate", _format_date(header.start_date))
        self.elem(node, "EndDate", _format_date(header.end_date))
        self.elem(node, "CurrencyCode", header.currency_code)

    # --- master files -------------------------------------------------------

    def accounts(self, parent: etree._Element, accounts: Sequence[Account]) -> None:
        node = self.elem(parent, "GeneralLedgerAccounts")
        codes = [account.code for account in accounts]
        for account in accounts:
            item = self.elem(node, "Account")
            self.elem(item, "AccountID", account.code)
            self.elem(item, "AccountDescription", account.name)
            self.elem(item, "StandardAccountID", account.code)
            self.elem(item, "AccountType", wire_account_type(account.code, codes))
            self.elem(item, "AccountCategory", account.type)
            self.money(item, "OpeningDebitBalance", account.opening_debit)
            self.money(item, "OpeningCreditBalance", account.opening_credit)
            self.money(item, "ClosingDebitBalance", account.closing_debit)
            self.money(item, "ClosingCreditBalance", account.closing_credit)

    def parties(self, parent: etree._Element, kind: str, parties: Sequence[Party]) -> None:
        node = self.elem(parent, f"{kind}s")
        for party in parties:
            item = self.elem(node, kind)
            self.elem(item, f"{kind}ID", party.wire_id)
            self.elem(item, "RegistrationNumber", party.wire_id)
            self.elem(item, "CompanyName", party.legal_name)
            self.elem(item, f"{kind}TaxID", party.tax_id or "")
            self.address(item, "BillingAddress", party.address)

    def master_files(self, document: AuditFileDocument) -> None:
        node = self.elem(self.root, "MasterFiles")
        self.accounts(node, document.accounts)
        self.parties(node, "Customer", document.customers)
        self.parties(node, "Supplier", document.suppliers)

        table = self.elem(node, "TaxTable")
        for entry in document.tax_table:
            item = self.elem(table, "TaxTableEntry")
            self.elem(item, "TaxType", entry.tax_type)
            self.elem(item, "Description", entry.description)
            self.elem(item, "TaxCode", entry.tax_code)
            self.money(item, "TaxPercentage", entry.percentage)
            self.elem(item, "Country", entry.country)

        uoms = self.elem(node, "UOMTable")
        for uom in document.units_of_measure:
            item = self.elem(uoms, "UOMTableEntry")
            self.elem(item, "UnitOfMeasure", uom.code)
            self.elem(item, "Description", uom.description)

        analysis = self.elem(node, "AnalysisTypeTable")
        for entry in document.analysis_types:
            item = self.elem(analysis, "AnalysisTypeTableEntry")
            self.elem(item, "AnalysisType", entry.analysis_type)
            self.elem(item, "AnalysisTypeDescription", entry.type_description)
            self.elem(item, "AnalysisID", entry.analysis_id)
            self.elem(item, "AnalysisIDDescription", entry.id_description)

        products = self.elem(node, "Products")
        for product in document.products:
            item = self.elem(products, "Product")
            self.elem(item, "ProductCode", product.code)
            self.elem(item, "Description", product.description)
            self.optional(item, "UOMBase", product.unit_of_measure)

    # --- source documents ---------------------------------------------------

    def tax_information(self, parent: etree._Element, info: TaxInformation) -> None:
        node = self.elem(parent, "TaxInformation")
        self.elem(node, "TaxType", info.tax_type)
        self.elem(node, "TaxCode", info.tax_code)
        self.money(node, "TaxPercentage", info.tax_percentage)
        self.money(node, "TaxBase", info.tax_base)
        self.money(node, "TaxAmount", info.tax_amount)

    def source_documents(self, document: AuditFileDocument) -> None:
        node = self.elem(self.root, "SourceDocuments")
        sales = self.elem(node, "SalesInvoices")
        # credit notes count on the debit side
        gross = [inv.gross_total for inv in document.sales_invoices]
        self.elem(sales, "NumberOfEntries", len(document.sales_invoices))
        self.money(sales, "TotalDebit", abs(sum((g for g in gross if g < 0), Decimal("0"))))
        self.money(sales, "TotalCredit", sum((g for g in gross if g > 0), Decimal("0")))
        for invoice in document.sales_invoices:
            item = self.elem(sales, "Invoice")
            self.elem(item, "InvoiceNo", invoice.invoice_no)
            self.elem(item, "InvoiceDate", _format_date(invoice.invoice_date))
            self.elem(item, "InvoiceType", invoice.invoice_type)
            self.elem(item, "CustomerID", invoice.customer_id)
            totals = self.elem(item, "DocumentTotals")
            self.money(totals, "TaxPayable", invoice.tax_payable)
            self.money(totals, "NetTotal", invoice.net_total)
            self.money(totals, "GrossTotal", invoice.gross_total)
            for line in invoice.lines:
                line_node = self.elem(item, "Line")
                self.elem(line_node, "LineNumber", line.line_number)
                self.optional(line_node, "ProductCode", line.product_code)
                self.elem(line_node, "Description", line.description)
                self.elem(line_node, "Quantity", _format_quantity(line.quantity))
                self.optional(line_node, "UnitOfMeasure", line.unit_of_measure)
                self.money(line_node, "UnitPrice", line.unit_price)
                self.tax_information(line_node, line.tax)
                self.money(line_node, "LineAmount", line.line_amount)

    # --- general ledger -----------------------------------------------------

    def general_ledger(self, document: AuditFileDocument) -> None:
        node = self.elem(self.root, "GeneralLedgerEntries")
        self.elem(node, "NumberOfEntries", document.number_of_entries)
        self.money(node, "TotalDebit", document.total_debit())
        self.money(node, "TotalCredit", document.total_credit())
        if not document.journal:
            return
        journal = self.elem(node, "Journal")
        self.elem(journal, "JournalID", document.journal_id)
        self.elem(journal, "Description", document.journal_description)
        for transaction in document.journal:
            tx = self.elem(journal, "Transaction")
            self.elem(tx, "TransactionID", transaction.transaction_id)
            self.elem(tx, "Period", transaction.period)
            self.elem(tx, "TransactionDate", _format_date(transaction.transaction_date))
            self.elem(tx, "Description", transaction.description)
            self.elem(tx, "SourceDocumentID", transaction.source_document_id)
            lines = self.elem(tx, "Lines")
            for line in transaction.lines:
                item = self.elem(lines, "Line")
                self.elem(item, "RecordID", line.record_id)
                self.elem(item, "AccountID", line.account_id)
                self.optional(item, "CustomerID", line.customer_id)
                self.optional(item, "SupplierID", line.supplier_id)
                self.optional(item, "SourceDocumentID", line.source_document_id)
                self.optional(item, "Description", line.description)
                if line.debit_amount is not None:
                    self.money(item, "DebitAmount", line.debit_amount)
                else:
                    self.money(item, "CreditAmount", line.credit_amount)
                self.optional(item, "CurrencyCode", line.currency_code)
                for info in line.tax_info:
                    self.tax_information(item, info)


def serialize_audit_file(document: AuditFileDocument) -> tuple[str, HeaderMetadata]:
    """Render ``document``; returns the XML text and the header metadata."""

    writer = _Writer()
    writer.header(document.header)
    writer.master_files(document)
    writer.source_documents(document)
    writer.general_ledger(document)

    xml = etree.tostring(
        writer.root, xml_declaration=True, encoding="UTF-8", pretty_print=True
    ).decode("utf-8")
    header = document.header
    metadata = HeaderMetadata(
        company_id=header.company_id,
        fiscal_year=header.fiscal_year,
        start_date=header.start_date,
        end_date=header.end_date,
        currency_code=header.currency_code,
        number_of_entries=document.number_of_entries,
        date_created=header.date_created.date(),
    )
    return xml, metadata
