"""e-Factura invoice compliance checks and CIUS-RO UBL rendering."""

from .approval import approve, reject
from .compliance import CHECKS, ComplianceReport, check_invoice_compliance
from .dto import (
    INVOICE_TYPES,
    TAX_CATEGORIES,
    EInvoice,
    InvoiceLine,
    IssuerProfile,
    RecipientParty,
    invoice_from_dict,
    line_from_dict,
    tax_category_code,
)
from .samples import (
    ISSUER_PROFILE,
    RECIPIENT_PARTY,
    SCENARIOS,
    SampleScenario,
    build_sample_invoice,
    build_sample_lines,
)
from .ubl import CIUS_RO_CUSTOMIZATION_ID, build_efactura_xml, version

__all__ = [
    "approve",
    "reject",
    "CHECKS",
    "ComplianceReport",
    "check_invoice_compliance",
    "INVOICE_TYPES",
    "TAX_CATEGORIES",
    "EInvoice",
    "InvoiceLine",
    "IssuerProfile",
    "RecipientParty",
    "invoice_from_dict",
    "line_from_dict",
    "tax_category_code",
    "ISSUER_PROFILE",
    "RECIPIENT_PARTY",
    "SCENARIOS",
    "SampleScenario",
    "build_sample_invoice",
    "build_sample_lines",
    "CIUS_RO_CUSTOMIZATION_ID",
    "build_efactura_xml",
    "version",
]
