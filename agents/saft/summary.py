"""Markdown rendering for validation and compliance reports, with PII masking."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .report import FAIL, PASS, WARNING, ValidationReport

MASK_EMAIL = re.compile(r"(?P<prefix>[A-Za-z0-9._%+-]{1,3})[A-Za-z0-9._%+-]*@(?P<domain>[A-Za-z0-9.-]+)")
MASK_IBAN = re.compile(r"\b[A-Z]{2}[0-9]{2}[A-Z0-9]{10,30}\b")
MASK_PHONE = re.compile(r"(?<![A-Za-z0-9\-])\+\d[\d\s]{7,}\d")

_STATUS_LABEL = {PASS: "PASS", FAIL: "FAIL", WARNING: "WARN"}


def mask_pii(text: str) -> str:
    """Mask e-mail addresses, IBANs and international phone numbers."""

    text = MASK_EMAIL.sub(lambda m: f"{m.group('prefix')}***@***", text)
    text = MASK_IBAN.sub("IBAN-***", text)
    text = MASK_PHONE.sub("***-PHONE-***", text)
    return text


def _cell(value: object) -> str:
    return str(value).replace("|", "\\|").replace("\n", " ")


def build_report_md(
    report: ValidationReport,
    title: str = "SAF-T Validation Report",
    *,
    created_at: Optional[datetime] = None,
) -> str:
    stamp = (created_at or datetime.now(timezone.utc)).isoformat().replace("+00:00", "Z")
    verdict = "OK" if report.ok else "FAILED"
    lines = [
        title,
        "=" * len(title),
        "",
        f"Generated (UTC): `{stamp}`",
        f"Result: **{verdict}**",
        f"Tests: {report.total_tests} | Passed: {report.passed} | "
        f"Failed: {report.failed} | Warnings: {report.warnings}",
        "",
        "| # | Test | Status | Message |",
        "|---|---|---|---|",
    ]
    for result in report.results:
        lines.append(
            f"| {result.test_number} | {_cell(result.test_name)} | "
            f"{_STATUS_LABEL[result.status]} | {_cell(result.message)} |"
        )

    detailed = [r for r in report.results if r.status != PASS and r.details]
    if detailed:
        lines += ["", "## Details", ""]
        for result in detailed:
            lines.append(f"### {result.test_number}. {result.test_name}")
            details = result.details if isinstance(result.details, (list, tuple)) else [result.details]
            lines += [f"- {_cell(item)}" for item in details]
            lines.append("")
    lines.append("")
    return mask_pii("\n".join(lines))


def write_report_markdown(
    report: ValidationReport,
    base_dir: Path,
    tenant_id: str,
    *,
    name: str,
    title: str = "SAF-T Validation Report",
) -> Path:
    """Write the report to ``<base_dir>/reports/saft/<tenant>/<name>.md``."""

    report_dir = Path(base_dir) / "reports" / "saft" / tenant_id
    report_dir.mkdir(parents=True, exist_ok=True)
    target = report_dir / f"{name}.md"
    target.write_text(build_report_md(report, title), encoding="utf-8")
    return target
