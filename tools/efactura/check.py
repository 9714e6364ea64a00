"""Pre-submission compliance check for one e-Factura invoice.

Input is a JSON document ``{"invoice": {...}, "issuer": {...}, "recipient": {...},
"lines": [...]}`` or one of the built-in sample scenarios. Optionally renders the
CIUS-RO UBL XML when the invoice has no failing test.

Exit codes: 0 no failures, 1 failures present, 2 unreadable input.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from agents.efactura import (  # noqa: E402
    ISSUER_PROFILE,
    RECIPIENT_PARTY,
    SCENARIOS,
    ComplianceReport,
    EInvoice,
    IssuerProfile,
    RecipientParty,
    build_efactura_xml,
    build_sample_invoice,
    check_invoice_compliance,
    invoice_from_dict,
    line_from_dict,
)
from agents.saft.summary import build_report_md  # noqa: E402
from backend.core.logging import init_logging  # noqa: E402

Inputs = Tuple[EInvoice, Optional[IssuerProfile], Optional[RecipientParty], tuple]


def load_inputs(data: Dict[str, Any]) -> Inputs:
    issuer = IssuerProfile(**data["issuer"]) if data.get("issuer") else None
    recipient = RecipientParty(**data["recipient"]) if data.get("recipient") else None
    lines = tuple(line_from_dict(entry) for entry in data.get("lines", []))
    return invoice_from_dict(data["invoice"]), issuer, recipient, lines


def sample_inputs(code: str) -> Inputs:
    for scenario in SCENARIOS:
        if scenario.code == code:
            invoice, lines = build_sample_invoice(scenario)
            return invoice, ISSUER_PROFILE, RECIPIENT_PARTY, lines
    raise ValueError(f"Unknown sample scenario '{code}'")


def check(inputs: Inputs, ubl_out: Optional[Path] = None, *, force: bool = False) -> Tuple[ComplianceReport, Optional[Path]]:
    invoice, issuer, recipient, lines = inputs
    report = check_invoice_compliance(invoice, issuer, recipient, lines)
    written = None
    if ubl_out is not None and (report.ok or force) and issuer is not None and recipient is not None:
        ubl_out.parent.mkdir(parents=True, exist_ok=True)
        ubl_out.write_bytes(build_efactura_xml(invoice, issuer, recipient, lines))
        written = ubl_out
    return report, written


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check an invoice against e-Factura submission rules")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--input", type=Path, help="Invoice JSON document")
    source.add_argument("--sample", choices=[s.code for s in SCENARIOS], help="Built-in sample scenario")
    parser.add_argument("--ubl", type=Path, help="Write CIUS-RO UBL XML here when no test fails")
    parser.add_argument("--force", action="store_true", help="Write the UBL XML even with failures")
    parser.add_argument("--json", dest="json_out", type=Path, help="Write the report as JSON")
    parser.add_argument("--markdown", type=Path, help="Write the report as Markdown")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    init_logging(level="WARNING")
    try:
        if args.sample:
            inputs = sample_inputs(args.sample)
        else:
            inputs = load_inputs(json.loads(args.input.read_text(encoding="utf-8")))
        report, written = check(inputs, args.ubl, force=args.force)
    except (OSError, KeyError, TypeError, ValueError, ArithmeticError) as err:
        print(f"Cannot check invoice: {err}", file=sys.stderr)
        return 2

    if args.json_out:
        args.json_out.parent.mkdir(parents=True, exist_ok=True)
        args.json_out.write_text(json.dumps(report.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    if args.markdown:
        args.markdown.parent.mkdir(parents=True, exist_ok=True)
        args.markdown.write_text(build_report_md(report, title="e-Factura Compliance Report"), encoding="utf-8")

    for result in report.results:
        print(f"{result.status.upper():7} #{result.test_number:>2} {result.test_name}: {result.message}")
    print(f"{report.passed} passed, {report.failed} failed, {report.warnings} warnings")
    if written:
        print(f"UBL written to {written}")
    return 0 if report.ok else 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
