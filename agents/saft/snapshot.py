"""JSON tenant snapshots as a ledger source.

A snapshot file holds one tenant's company profile and accounting data::

    {"tenant_id": "...", "profile": {...}, "accounts": [...], "parties": [...],
     "tax_table": [...], "invoices": [...], "invoice_lines": [...]}

Files are checked against :data:`SNAPSHOT_SCHEMA` (JSON Schema 2020-12)
before any record is built.
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Tuple

from jsonschema import Draft202012Validator

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
    compute_line_amounts,
)
from .profiles import CompanyProfileProvider
from .sources import InMemoryLedgerSource

_AMOUNT = {"type": ["string", "number"], "pattern": r"^-?\d+(\.\d+)?$"}
_DATE = {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}$"}
_TEXT = {"type": "string"}
_OPT_TEXT = {"type": ["string", "null"]}

SNAPSHOT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "$id": "urn:facturare:saft:tenant-snapshot:1.0",
    "type": "object",
    "required": ["tenant_id", "profile", "accounts", "parties", "invoices", "invoice_lines"],
    "$defs": {
        "address": {
            "type": "object",
            "properties": {
                "street": _TEXT,
                "city": _TEXT,
                "postal_code": _TEXT,
                "country": _TEXT,
                "region": _TEXT,
            },
            "additionalProperties": False,
        },
    },
    "properties": {
        "tenant_id": {"type": "string", "minLength": 1},
        "profile": {
            "type": "object",
            "required": ["company_name", "tax_id"],
            "properties": {
                "company_name": _TEXT,
                "tax_id": _TEXT,
                "registration_number": _TEXT,
                "trade_name": _OPT_TEXT,
                "address": {"$ref": "#/$defs/address"},
                "contact_first_name": _TEXT,
                "contact_last_name": _TEXT,
                "phone": _TEXT,
                "email": _OPT_TEXT,
                "iban": _OPT_TEXT,
                "bank_account_number": _OPT_TEXT,
                "bank_account_name": _TEXT,
                "sort_code": _TEXT,
                "tax_accounting_basis": _TEXT,
                "analysis_types": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["analysis_type", "type_description", "analysis_id", "id_description"],
                    },
                },
            },
            "additionalProperties": False,
        },
        "accounts": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["code", "name"],
                "properties": {
                    "id": _TEXT,
                    "code": {"type": "string", "minLength": 1},
                    "name": _TEXT,
                    "type": {"enum": ["asset", "liability", "equity", "revenue", "expense", None]},
                    "opening_debit": _AMOUNT,
                    "opening_credit": _AMOUNT,
                },
                "additionalProperties": False,
            },
        },
        "parties": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "legal_name"],
                "properties": {
                    "id": _TEXT,
                    "legal_name": _TEXT,
                    "role": {"enum": ["customer", "supplier"]},
                    "tax_id": _OPT_TEXT,
                    "registration_number": _OPT_TEXT,
                    "address": {"$ref": "#/$defs/address"},
                    "email": _OPT_TEXT,
                    "phone": _OPT_TEXT,
                },
                "additionalProperties": False,
            },
        },
        "tax_table": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["tax_code", "percentage"],
                "properties": {
                    "tax_code": _TEXT,
                    "percentage": _AMOUNT,
                    "description": _TEXT,
                    "tax_type": {"enum": ["IVA", "IS", "NS", "NA"]},
                    "country": _TEXT,
                },
                "additionalProperties": False,
            },
        },
        "invoices": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "invoice_number", "issue_date", "customer_id", "subtotal", "vat_amount", "total"],
                "properties": {
                    "id": _TEXT,
                    "invoice_number": _TEXT,
                    "issue_date": _DATE,
                    "due_date": {"anyOf": [_DATE, {"type": "null"}]},
                    "customer_id": _TEXT,
                    "currency": {"type": "string", "pattern": "^[A-Z]{3}$"},
                    "subtotal": _AMOUNT,
                    "vat_amount": _AMOUNT,
                    "total": _AMOUNT,
                    "invoice_type": {"enum": ["FT", "FS", "FR", "ND", "NC"]},
                },
                "additionalProperties": False,
            },
        },
        "invoice_lines": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["invoice_id", "description", "quantity", "unit_price", "vat_rate"],
                "properties": {
                    "invoice_id": _TEXT,
                    "description": _TEXT,
                    "quantity": _AMOUNT,
                    "unit_price": _AMOUNT,
                    "vat_rate": _AMOUNT,
                    "subtotal": _AMOUNT,
                    "vat_amount": _AMOUNT,
                    "total": _AMOUNT,
                    "product_code": _OPT_TEXT,
                    "unit_code": _OPT_TEXT,
                },
                "additionalProperties": False,
            },
        },
    },
}

_VALIDATOR = Draft202012Validator(SNAPSHOT_SCHEMA)


def _amount(value: Any) -> str:
    # floats arrive from json as e.g. 19.0; str() keeps them exact for Decimal
    return str(value)


def _address(data: Dict[str, Any] | None) -> Address:
    return Address(**(data or {}))


def validate_snapshot(data: Any) -> List[str]:
    """Return schema violations as ``/json/pointer: message`` strings."""

    problems = []
    for error in sorted(_VALIDATOR.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path]):
        pointer = "/" + "/".join(str(part) for part in error.absolute_path)
        problems.append(f"{pointer}: {error.message}")
    return problems


def parse_snapshot(data: Dict[str, Any]) -> Tuple[CompanyProfile, TenantSnapshot]:
    problems = validate_snapshot(data)
    if problems:
        raise ValueError("Invalid tenant snapshot:\n  " + "\n  ".join(problems))

    tenant_id = data["tenant_id"]
    profile_data = dict(data["profile"])
    profile = CompanyProfile(
        tenant_id=tenant_id,
        address=_address(profile_data.pop("address", None)),
        analysis_types=tuple(AnalysisType(**entry) for entry in profile_data.pop("analysis_types", [])),
        **profile_data,
    )

    accounts = tuple(
        Account(
            id=entry.get("id") or entry["code"],
            code=entry["code"],
            name=entry["name"],
            type=entry.get("type") or "asset",
            opening_debit=_amount(entry.get("opening_debit", "0")),
            opening_credit=_amount(entry.get("opening_credit", "0")),
        )
        for entry in data["accounts"]
    )
    parties = tuple(
        Party(
            id=entry["id"],
            legal_name=entry["legal_name"],
            role=entry.get("role", "customer"),
            tax_id=entry.get("tax_id"),
            registration_number=entry.get("registration_number"),
            address=_address(entry.get("address")),
            email=entry.get("email"),
            phone=entry.get("phone"),
        )
        for entry in data["parties"]
    )
    tax_table = tuple(
        TaxTableEntry(
            tax_code=entry["tax_code"],
            percentage=_amount(entry["percentage"]),
            description=entry.get("description", ""),
            tax_type=entry.get("tax_type", "IVA"),
            country=entry.get("country", "RO"),
        )
        for entry in data.get("tax_table", [])
    )
    invoices = tuple(
        InvoiceRecord(
            id=entry["id"],
            invoice_number=entry["invoice_number"],
            issue_date=date.fromisoformat(entry["issue_date"]),
            due_date=date.fromisoformat(entry["due_date"]) if entry.get("due_date") else None,
            customer_id=entry["customer_id"],
            currency=entry.get("currency", "RON"),
            subtotal=_amount(entry["subtotal"]),
            vat_amount=_amount(entry["vat_amount"]),
            total=_amount(entry["total"]),
            invoice_type=entry.get("invoice_type", "FT"),
        )
        for entry in data["invoices"]
    )
    lines = tuple(_parse_line(entry) for entry in data["invoice_lines"])
    return profile, TenantSnapshot(
        accounts=accounts,
        parties=parties,
        tax_table=tax_table,
        invoices=invoices,
        invoice_lines=lines,
    )


def _parse_line(entry: Dict[str, Any]) -> InvoiceLineRecord:
    if "subtotal" in entry and "vat_amount" in entry and "total" in entry:
        subtotal, vat_amount, total = entry["subtotal"], entry["vat_amount"], entry["total"]
    else:
        subtotal, vat_amount, total = compute_line_amounts(
            _amount(entry["unit_price"]), _amount(entry["quantity"]), _amount(entry["vat_rate"])
        )
    return InvoiceLineRecord(
        invoice_id=entry["invoice_id"],
        description=entry["description"],
        quantity=_amount(entry["quantity"]),
        unit_price=_amount(entry["unit_price"]),
        vat_rate=_amount(entry["vat_rate"]),
        subtotal=_amount(subtotal),
        vat_amount=_amount(vat_amount),
        total=_amount(total),
        product_code=entry.get("product_code"),
        unit_code=entry.get("unit_code"),
    )


class JsonSnapshotSource(InMemoryLedgerSource):
    """Ledger source backed by snapshot files; also collects their profiles."""

    def __init__(self, paths: Iterable[Path] = ()) -> None:
        super().__init__()
        self.profiles = CompanyProfileProvider()
        for path in paths:
            self.add_file(path)

    @classmethod
    def from_directory(cls, directory: Path) -> "JsonSnapshotSource":
        return cls(sorted(Path(directory).glob("*.json")))

    def add(self, data: Dict[str, Any]) -> str:
        profile, snapshot = parse_snapshot(data)
        self.register(
            profile.tenant_id,
            accounts=snapshot.accounts,
            parties=snapshot.parties,
            tax_table=snapshot.tax_table,
            invoices=snapshot.invoices,
            invoice_lines=snapshot.invoice_lines,
        )
        self.profiles.register(profile)
        return profile.tenant_id

    def add_file(self, path: Path) -> str:
        with Path(path).open("r", encoding="utf-8") as handle:
            return self.add(json.load(handle))
