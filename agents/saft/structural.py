"""Structural validation of an audit file against the expected element tree.

The walk is depth-first over :data:`AUDIT_FILE_SCHEMA`. Every violation is
reported as an :class:`XSDValidationError` with a breadcrumb path such as
``GeneralLedgerEntries/Journal[1]/Transaction[2]/Lines/Line[1]``; repeated
elements are indexed from 1 and the root element is left out.

With ``SAFT_VALIDATION_MODE=official`` and at least one ``.xsd`` under
``resources/official`` the document is additionally checked with
``lxml.etree.XMLSchema``.
"""

from __future__ import annotations

import os
import re
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from lxml import etree

from backend.core.config import settings
from backend.core.logging import get_logger

logger = get_logger(__name__)

RESOURCE_DIR = Path(__file__).resolve().parent / "resources"
OFFICIAL_DIR = RESOURCE_DIR / "official"

ACCOUNT_TYPES = ("GL", "GR", "GM", "AR", "AP", "AA", "OR", "OC")
TAX_TYPES = ("IVA", "IS", "NS", "NA")
INVOICE_TYPES = ("FT", "FS", "FR", "ND", "NC")
AUDIT_FILE_VERSIONS = ("1.0", "1.01_01")
TOP_LEVEL_ORDER = ("Header", "MasterFiles", "SourceDocuments", "GeneralLedgerEntries")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
# at most 18 digits in total
_MONEY_RE = re.compile(r"^-?\d{1,16}(\.\d{1,2})?$")
_INT_RE = re.compile(r"^-?\d+$")
_QUANTITY_RE = re.compile(r"^-?\d+(\.\d+)?$")


@dataclass(frozen=True)
class XSDValidationError:
    element: str
    error: str
    path: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    def __str__(self) -> str:
        return f"{self.path or '<root>'}: {self.element}: {self.error}"


@dataclass(frozen=True)
class Node:
    name: str
    min_occurs: int = 1
    max_occurs: Optional[int] = 1
    kind: str = "text"
    children: Tuple["Node", ...] = ()
    enum: Tuple[str, ...] = ()
    max_length: Optional[int] = None
    one_of: Tuple[Tuple[str, ...], ...] = ()

    @property
    def repeats(self) -> bool:
        return self.max_occurs is None or self.max_occurs > 1


def _opt(name: str, **kwargs) -> Node:
    return Node(name, min_occurs=0, **kwargs)


def _many(name: str, *children: Node, min_occurs: int = 0, **kwargs) -> Node:
    return Node(name, min_occurs=min_occurs, max_occurs=None, children=children, **kwargs)


def _group(name: str, *children: Node, min_occurs: int = 1, **kwargs) -> Node:
    return Node(name, min_occurs=min_occurs, children=children, **kwargs)


def _address(name: str) -> Node:
    return _group(
        name,
        Node("StreetName"),
        Node("City"),
        Node("PostalCode"),
        _opt("Region"),
        Node("Country"),
    )


def _money(name: str, min_occurs: int = 1) -> Node:
    return Node(name, min_occurs=min_occurs, kind="money")


def _tax_information(max_occurs: Optional[int]) -> Node:
    return Node(
        "TaxInformation",
        min_occurs=0,
        max_occurs=max_occurs,
        children=(
            Node("TaxType", enum=TAX_TYPES),
            Node("TaxCode"),
            _money("TaxPercentage"),
            _money("TaxBase"),
            _money("TaxAmount"),
        ),
    )


def _party(kind: str) -> Node:
    return _many(
        kind,
        Node(f"{kind}ID", max_length=30),
        _opt("RegistrationNumber"),
        Node("CompanyName"),
        _opt(f"{kind}TaxID"),
        _address("BillingAddress"),
    )


AUDIT_FILE_SCHEMA = _group(
    "AuditFile",
    _group(
        "Header",
        Node("AuditFileVersion", enum=AUDIT_FILE_VERSIONS),
        Node("AuditFileCountry"),
        Node("AuditFileDateCreated", kind="date"),
        Node("SoftwareCompanyName"),
        Node("SoftwareID"),
        Node("SoftwareVersion"),
        Node("CompanyID", max_length=50),
        Node("TaxRegistrationNumber"),
        Node("TaxAccountingBasis"),
        Node("CompanyName"),
        _opt("BusinessName"),
        _group(
            "Company",
            Node("RegistrationNumber"),
            _address("Address"),
            _group(
                "Contact",
                _group("ContactPerson", Node("FirstName"), Node("LastName")),
                Node("Telephone"),
                _opt("Email"),
            ),
            _group(
                "BankAccount",
                _opt("IBANNumber"),
                _opt("BankAccountNumber"),
                _opt("BankAccountName"),
                _opt("SortCode"),
                one_of=(("IBANNumber", "BankAccountNumber"),),
            ),
        ),
        Node("FiscalYear", kind="int"),
        Node("StartDate", kind="date"),
        Node("EndDate", kind="date"),
        Node("CurrencyCode"),
    ),
    _group(
        "MasterFiles",
        _group(
            "GeneralLedgerAccounts",
            _many(
                "Account",
                Node("AccountID", max_length=30),
                Node("AccountDescription"),
                _opt("StandardAccountID", max_length=30),
                Node("AccountType", enum=ACCOUNT_TYPES),
                _opt("AccountCategory"),
                _money("OpeningDebitBalance", 0),
                _money("OpeningCreditBalance", 0),
                _money("ClosingDebitBalance", 0),
                _money("ClosingCreditBalance", 0),
            ),
        ),
        _group("Customers", _party("Customer"), min_occurs=0),
        _group("Suppliers", _party("Supplier"), min_occurs=0),
        _group(
            "TaxTable",
            _many(
                "TaxTableEntry",
                Node("TaxType", enum=TAX_TYPES),
                _opt("Description"),
                Node("TaxCode"),
                _money("TaxPercentage", 0),
                _opt("Country"),
            ),
        ),
        _group(
            "UOMTable",
            _many("UOMTableEntry", Node("UnitOfMeasure"), Node("Description")),
            min_occurs=0,
        ),
        _group(
            "AnalysisTypeTable",
            _many(
                "AnalysisTypeTableEntry",
                Node("AnalysisType"),
                Node("AnalysisTypeDescription"),
                Node("AnalysisID"),
                Node("AnalysisIDDescription"),
            ),
            min_occurs=0,
        ),
        _group(
            "Products",
            _many("Product", Node("ProductCode"), Node("Description"), _opt("UOMBase")),
            min_occurs=0,
        ),
    ),
    _group(
        "SourceDocuments",
        _group(
            "SalesInvoices",
            Node("NumberOfEntries", kind="int"),
            _money("TotalDebit"),
            _money("TotalCredit"),
            _many(
                "Invoice",
                Node("InvoiceNo"),
                Node("InvoiceDate", kind="date"),
                Node("InvoiceType", enum=INVOICE_TYPES),
                Node("CustomerID", max_length=30),
                _group(
                    "DocumentTotals",
                    _money("TaxPayable"),
                    _money("NetTotal"),
                    _money("GrossTotal"),
                ),
                _many(
                    "Line",
                    Node("LineNumber", kind="int"),
                    _opt("ProductCode"),
                    Node("Description"),
                    Node("Quantity", kind="quantity"),
                    _opt("UnitOfMeasure"),
                    _money("UnitPrice"),
                    _tax_information(max_occurs=1),
                    _money("LineAmount"),
                ),
            ),
            min_occurs=0,
        ),
        min_occurs=0,
    ),
    _group(
        "GeneralLedgerEntries",
        Node("NumberOfEntries", kind="int"),
        _money("TotalDebit"),
        _money("TotalCredit"),
        _many(
            "Journal",
            Node("JournalID"),
            Node("Description"),
            _many(
                "Transaction",
                Node("TransactionID"),
                Node("Period", kind="int"),
                Node("TransactionDate", kind="date"),
                Node("Description"),
                _opt("SourceDocumentID"),
                _group(
                    "Lines",
                    _many(
                        "Line",
                        Node("RecordID"),
                        Node("AccountID", max_length=30),
                        _opt("CustomerID", max_length=30),
                        _opt("SupplierID", max_length=30),
                        _opt("SourceDocumentID"),
                        _opt("Description"),
                        _money("DebitAmount", 0),
                        _money("CreditAmount", 0),
                        _opt("CurrencyCode"),
                        _tax_information(max_occurs=None),
                        min_occurs=2,
                        one_of=(("DebitAmount", "CreditAmount"),),
                    ),
                ),
            ),
        ),
    ),
)


def parse_document(document: str | bytes) -> etree._Element:
    """Parse XML text; raises ``etree.XMLSyntaxError`` when not well-formed."""

    data = document.encode("utf-8") if isinstance(document, str) else document
    parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)
    return etree.fromstring(data, parser)


def strip_namespaces(root: etree._Element) -> etree._Element:
    """Reduce every element tag to its local name, in place."""

    for el in root.iter():
        if isinstance(el.tag, str):
            el.tag = etree.QName(el).localname
    etree.cleanup_namespaces(root)
    return root


def _join(path: str, name: str, index: Optional[int]) -> str:
    step = f"{name}[{index}]" if index is not None else name
    return f"{path}/{step}" if path else step


def _check_value(element: etree._Element, node: Node, path: str, errors: List[XSDValidationError]) -> None:
    text = (element.text or "").strip()
    if node.kind == "date":
        valid = bool(_DATE_RE.match(text))
        if valid:
            try:
                date.fromisoformat(text)
            except ValueError:
                valid = False
        if not valid:
            errors.append(XSDValidationError(node.name, f"Invalid date '{text}', expected YYYY-MM-DD", path))
    elif node.kind == "money" and not _MONEY_RE.match(text):
        errors.append(
            XSDValidationError(node.name, f"Invalid amount '{text}', at most 2 decimals allowed", path)
        )
    elif node.kind == "int" and not _INT_RE.match(text):
        errors.append(XSDValidationError(node.name, f"Invalid integer '{text}'", path))
    elif node.kind == "quantity" and not _QUANTITY_RE.match(text):
        errors.append(XSDValidationError(node.name, f"Invalid quantity '{text}'", path))

    if node.enum and text not in node.enum:
        errors.append(
            XSDValidationError(
                node.name, f"Value '{text}' not in allowed values: {', '.join(node.enum)}", path
            )
        )
    if node.max_length is not None and len(text) > node.max_length:
        errors.append(
            XSDValidationError(
                node.name, f"Value exceeds maximum length {node.max_length} ({len(text)})", path
            )
        )


def _walk(element: etree._Element, node: Node, path: str, errors: List[XSDValidationError]) -> None:
    found: Dict[str, List[etree._Element]] = defaultdict(list)
    for child in element:
        if isinstance(child.tag, str):
            found[child.tag].append(child)

    for rule in node.children:
        occurrences = found.get(rule.name, [])
        count = len(occurrences)
        if count < rule.min_occurs:
            if count == 0 and rule.min_occurs == 1:
                message = "Required element missing"
            else:
                message = f"Expected at least {rule.min_occurs} occurrences, found {count}"
            errors.append(XSDValidationError(rule.name, message, path))
        if rule.max_occurs is not None and count > rule.max_occurs:
            errors.append(
                XSDValidationError(
                    rule.name, f"Element occurs {count} times, at most {rule.max_occurs} allowed", path
                )
            )
        for index, child in enumerate(occurrences, start=1):
            child_path = _join(path, rule.name, index if rule.repeats else None)
            if rule.children:
                _walk(child, rule, child_path, errors)
            else:
                _check_value(child, rule, child_path, errors)

    for group in node.one_of:
        present = [name for name in group if found.get(name)]
        if len(present) != 1:
            errors.append(
                XSDValidationError(
                    "|".join(group),
                    f"Exactly one of {', '.join(group)} required, found {len(present)}",
                    path,
                )
            )


def _check_top_level_order(root: etree._Element, errors: List[XSDValidationError]) -> None:
    seen = [child.tag for child in root if isinstance(child.tag, str) and child.tag in TOP_LEVEL_ORDER]
    ranks = [TOP_LEVEL_ORDER.index(tag) for tag in seen]
    if ranks != sorted(ranks):
        errors.append(
            XSDValidationError(
                "AuditFile",
                f"Sections out of order ({', '.join(seen)}); expected {', '.join(TOP_LEVEL_ORDER)}",
                "",
            )
        )


def validate_structure(root: etree._Element) -> List[XSDValidationError]:
    """Walk a namespace-stripped document; returns all violations."""

    errors: List[XSDValidationError] = []
    if root.tag != AUDIT_FILE_SCHEMA.name:
        errors.append(
            XSDValidationError(root.tag, f"Root element must be '{AUDIT_FILE_SCHEMA.name}'", "")
        )
        return errors
    _check_top_level_order(root, errors)
    _walk(root, AUDIT_FILE_SCHEMA, "", errors)
    return errors


def get_validation_mode() -> str:
    """``official`` only when requested and XSD resources are present."""

    mode = os.getenv("SAFT_VALIDATION_MODE", settings.SAFT_VALIDATION_MODE).lower()
    if mode == "official":
        if not OFFICIAL_DIR.exists() or not list(OFFICIAL_DIR.glob("*.xsd")):
            logger.warning("Official SAF-T schema requested but no XSD found; using built-in tree")
            return "temp"
    return mode


def validate_with_official_schema(root: etree._Element) -> List[XSDValidationError]:
    """Validate the untouched (namespaced) document with the first official XSD."""

    xsd_path = sorted(OFFICIAL_DIR.glob("*.xsd"))[0]
    schema = etree.XMLSchema(etree.parse(str(xsd_path)))
    if schema.validate(root):
        return []
    return [
        XSDValidationError(
            element=xsd_path.name,
            error=entry.message,
            path=entry.path or f"line {entry.line}",
        )
        for entry in schema.error_log
    ]
