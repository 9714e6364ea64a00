"""CIUS-RO UBL 2.1 invoice rendering."""

from __future__ import annotations

import textwrap
from datetime import date
from decimal import Decimal
from html import escape
from typing import Dict, Iterable, Optional, Sequence

from agents.saft.dto import quantize_money

from .dto import EInvoice, InvoiceLine, IssuerProfile, RecipientParty, tax_category_code

CIUS_RO_CUSTOMIZATION_ID = "urn:cen.eu:en16931:2017#compliant#urn:efactura.mfinante.ro:CIUS-RO:1.0.1"
GENERATOR_VERSION = "efactura-ubl-1"

INVOICE_TYPE_CODES = {
    "standard": "380",
    "credit_note": "381",
    "debit_note": "383",
    "proforma": "325",
}
# credit transfer
PAYMENT_MEANS_CODE = "30"

ZERO = Decimal("0")


def version() -> str:
    return GENERATOR_VERSION


def _format_decimal(value: Optional[Decimal]) -> str:
    return f"{quantize_money(value or ZERO):.2f}"


def _format_quantity(value: Optional[Decimal]) -> str:
    return format((value or ZERO).normalize(), "f")


def _text(value: Optional[str]) -> str:
    return escape(value or "")


def _subentity(country: str, county: Optional[str]) -> str:
    if not county:
        return ""
    county = county.strip()
    if len(county) <= 2:
        return f"{country}-{county.upper()}"
    return county


def _require_date(value: object, label: str) -> date:
    if not isinstance(value, date):
        raise ValueError(f"{label} must be a valid date to render e-Factura XML")
    return value


def _aggregate_tax(lines: Iterable[InvoiceLine]) -> Dict[Decimal, Dict[str, Decimal]]:
    buckets: Dict[Decimal, Dict[str, Decimal]] = {}
    for line in lines:
        rate = line.vat_rate or ZERO
        bucket = buckets.setdefault(rate, {"net": ZERO, "tax": ZERO})
        bucket["net"] += line.subtotal or ZERO
        bucket["tax"] += line.vat_amount or ZERO
    return buckets


def _render_party(
    name: Optional[str],
    tax_id: Optional[str],
    registration_number: Optional[str],
    street: Optional[str],
    city: Optional[str],
    postal_code: Optional[str],
    county: Optional[str],
    country: str,
) -> str:
    return textwrap.dedent(
        f"""
        <cac:Party>
          <cac:PartyName>
            <cbc:Name>{_text(name)}</cbc:Name>
          </cac:PartyName>
          <cac:PostalAddress>
            <cbc:StreetName>{_text(street)}</cbc:StreetName>
            <cbc:CityName>{_text(city)}</cbc:CityName>
            <cbc:PostalZone>{_text(postal_code)}</cbc:PostalZone>
            <cbc:CountrySubentity>{_text(_subentity(country, county))}</cbc:CountrySubentity>
            <cac:Country>
              <cbc:IdentificationCode>{_text(country)}</cbc:IdentificationCode>
            </cac:Country>
          </cac:PostalAddress>
          <cac:PartyTaxScheme>
            <cbc:CompanyID>{_text(tax_id)}</cbc:CompanyID>
            <cac:TaxScheme>
              <cbc:ID>VAT</cbc:ID>
            </cac:TaxScheme>
          </cac:PartyTaxScheme>
          <cac:PartyLegalEntity>
            <cbc:RegistrationName>{_text(name)}</cbc:RegistrationName>
            <cbc:CompanyID>{_text(registration_number)}</cbc:CompanyID>
          </cac:PartyLegalEntity>
        </cac:Party>
        """
    ).strip()


def _tax_category(rate: Decimal) -> str:
    # single line so it can be interpolated into dedented templates
    code = tax_category_code(rate) or "S"
    return (
        f"<cbc:ID>{code}</cbc:ID><cbc:Percent>{_format_decimal(rate)}</cbc:Percent>"
        "<cac:TaxScheme><cbc:ID>VAT</cbc:ID></cac:TaxScheme>"
    )


def _render_invoice_line(index: int, line: InvoiceLine, currency: str) -> str:
    rate = line.vat_rate or ZERO
    return textwrap.dedent(
        f"""
        <cac:InvoiceLine>
          <cbc:ID>{index}</cbc:ID>
          <cbc:InvoicedQuantity unitCode="{_text(line.unit_code)}">{_format_quantity(line.quantity)}</cbc:InvoicedQuantity>
          <cbc:LineExtensionAmount currencyID="{currency}">{_format_decimal(line.subtotal)}</cbc:LineExtensionAmount>
          <cac:Item>
            <cbc:Name>{_text(line.description)}</cbc:Name>
            <cac:ClassifiedTaxCategory>{_tax_category(rate)}</cac:ClassifiedTaxCategory>
          </cac:Item>
          <cac:Price>
            <cbc:PriceAmount currencyID="{currency}">{_format_decimal(line.unit_price)}</cbc:PriceAmount>
          </cac:Price>
        </cac:InvoiceLine>
        """
    ).strip()


def build_efactura_xml(
    invoice: EInvoice,
    issuer: IssuerProfile,
    recipient: RecipientParty,
    lines: Sequence[InvoiceLine],
) -> bytes:
    """Render the invoice as CIUS-RO UBL; run the compliance checks first."""

    if not invoice.invoice_number:
        raise ValueError("Invoice number must be set before generating e-Factura XML")
    issue_date = _require_date(invoice.issue_date, "Issue date")
    due_date = _require_date(invoice.due_date, "Due date")
    currency = _text(invoice.currency or "RON")
    type_code = INVOICE_TYPE_CODES.get(invoice.invoice_type, "380")

    lines_xml = "\n".join(
        _render_invoice_line(index, line, currency) for index, line in enumerate(lines, start=1)
    )

    buckets = _aggregate_tax(lines)
    subtotal_fragments = []
    for rate in sorted(buckets):
        bucket = buckets[rate]
        subtotal_fragments.append(
            textwrap.dedent(
                f"""
                <cac:TaxSubtotal>
                  <cbc:TaxableAmount currencyID="{currency}">{_format_decimal(bucket['net'])}</cbc:TaxableAmount>
                  <cbc:TaxAmount currencyID="{currency}">{_format_decimal(bucket['tax'])}</cbc:TaxAmount>
                  <cac:TaxCategory>{_tax_category(rate)}</cac:TaxCategory>
                </cac:TaxSubtotal>
                """
            ).strip()
        )
    tax_subtotals_xml = "\n".join(subtotal_fragments)

    net_total = invoice.subtotal if invoice.subtotal is not None else sum(b["net"] for b in buckets.values())
    tax_total = invoice.vat_amount if invoice.vat_amount is not None else sum(b["tax"] for b in buckets.values())
    gross_total = invoice.total if invoice.total is not None else net_total + tax_total

    supplier_xml = _render_party(
        issuer.company_name,
        issuer.tax_id,
        issuer.registration_number,
        issuer.address,
        issuer.city,
        issuer.postal_code,
        issuer.county,
        issuer.country,
    )
    customer_xml = _render_party(
        recipient.name,
        recipient.tax_id,
        recipient.registration_number,
        recipient.address,
        recipient.city,
        recipient.postal_code,
        recipient.county,
        recipient.country,
    )

    payment_xml = ""
    if issuer.iban:
        payment_xml = textwrap.dedent(
            f"""
            <cac:PaymentMeans>
              <cbc:PaymentMeansCode>{PAYMENT_MEANS_CODE}</cbc:PaymentMeansCode>
              <cac:PayeeFinancialAccount>
                <cbc:ID>{_text("".join(issuer.iban.split()))}</cbc:ID>
                <cbc:Name>{_text(issuer.bank_name)}</cbc:Name>
              </cac:PayeeFinancialAccount>
            </cac:PaymentMeans>
            """
        ).strip()

    xml_content = f"""<?xml version=\"1.0\" encoding=\"UTF-8\"?>
<Invoice xmlns=\"urn:oasis:names:specification:ubl:schema:xsd:Invoice-2\"
         xmlns:cac=\"urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2\"
         xmlns:cbc=\"urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2\">
  <cbc:CustomizationID>{CIUS_RO_CUSTOMIZATION_ID}</cbc:CustomizationID>
  <cbc:ID>{_text(invoice.invoice_number)}</cbc:ID>
  <cbc:IssueDate>{issue_date.isoformat()}</cbc:IssueDate>
  <cbc:DueDate>{due_date.isoformat()}</cbc:DueDate>
  <cbc:InvoiceTypeCode>{type_code}</cbc:InvoiceTypeCode>
  <cbc:DocumentCurrencyCode>{currency}</cbc:DocumentCurrencyCode>
  <cac:AccountingSupplierParty>
{textwrap.indent(supplier_xml, '    ')}
  </cac:AccountingSupplierParty>
  <cac:AccountingCustomerParty>
{textwrap.indent(customer_xml, '    ')}
  </cac:AccountingCustomerParty>
{textwrap.indent(payment_xml, '  ')}
  <cac:TaxTotal>
    <cbc:TaxAmount currencyID="{currency}">{_format_decimal(tax_total)}</cbc:TaxAmount>
{textwrap.indent(tax_subtotals_xml, '    ')}
  </cac:TaxTotal>
  <cac:LegalMonetaryTotal>
    <cbc:LineExtensionAmount currencyID="{currency}">{_format_decimal(net_total)}</cbc:LineExtensionAmount>
    <cbc:TaxExclusiveAmount currencyID="{currency}">{_format_decimal(net_total)}</cbc:TaxExclusiveAmount>
    <cbc:TaxInclusiveAmount currencyID="{currency}">{_format_decimal(gross_total)}</cbc:TaxInclusiveAmount>
    <cbc:PayableAmount currencyID="{currency}">{_format_decimal(gross_total)}</cbc:PayableAmount>
  </cac:LegalMonetaryTotal>
{textwrap.indent(lines_xml, '  ')}
</Invoice>
"""
    return xml_content.encode("utf-8")
