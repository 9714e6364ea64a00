"""Accountant sign-off on invoices before they are transmitted to e-Factura.

A decision returns a new ``EInvoice`` carrying the ``approved`` flag that
compliance test #25 reads, and leaves a JSON notice in ``audit_dir``. Notes are
stored raw on the invoice but masked in the notice file.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

from agents.saft.summary import mask_pii
from backend.core.logging import get_logger

from .dto import EInvoice

logger = get_logger(__name__)

APPROVED = "approved"
REJECTED = "rejected"


def _stamp(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _decide(
    invoice: EInvoice,
    audit_dir: Path,
    now: datetime,
    status: str,
    actor: str,
    notes: Optional[str],
) -> Tuple[EInvoice, Path]:
    number = invoice.invoice_number or "unnumbered"
    stamped = _stamp(now)
    payload = {
        "actor": actor,
        "invoice_number": number,
        "status": status,
        "timestamp_utc": stamped.isoformat().replace("+00:00", "Z"),
    }
    if notes:
        payload["notes"] = mask_pii(notes)

    audit_dir = Path(audit_dir)
    audit_dir.mkdir(parents=True, exist_ok=True)
    notice = audit_dir / f"NOTICE-{number}_{status}_{stamped:%Y%m%dT%H%M%SZ}.json"
    notice.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    logger.info("Invoice %s %s by %s", number, status, actor)
    return invoice.with_approval(status == APPROVED, notes), notice


def approve(
    invoice: EInvoice,
    audit_dir: Path,
    now: datetime,
    *,
    actor: str = "accountant",
    notes: Optional[str] = None,
) -> Tuple[EInvoice, Path]:
    return _decide(invoice, audit_dir, now, APPROVED, actor, notes)


def reject(
    invoice: EInvoice,
    audit_dir: Path,
    now: datetime,
    *,
    reason: str,
    actor: str = "accountant",
) -> Tuple[EInvoice, Path]:
    """Reject ``invoice``; ``reason`` becomes the details of compliance test #25."""
    return _decide(invoice, audit_dir, now, REJECTED, actor, reason)
