"""Validate an existing SAF-T XML file and print the 28-test report.

Exit codes: 0 no failures, 1 failures present, 2 file not readable.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from agents.saft import ValidationReport, build_report_md, validate_audit_file  # noqa: E402
from backend.core.logging import init_logging  # noqa: E402

_SYMBOL = {"pass": "ok  ", "fail": "FAIL", "warning": "warn"}


def validate_file(path: Path) -> ValidationReport:
    return validate_audit_file(Path(path).read_bytes())


def render_text(report: ValidationReport) -> str:
    lines = [
        f"{_SYMBOL[r.status]} #{r.test_number:>2} {r.test_name}: {r.message}" for r in report.results
    ]
    lines.append(
        f"{report.total_tests} tests, {report.passed} passed, {report.failed} failed, {report.warnings} warnings"
    )
    return "\n".join(lines)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate a SAF-T D406 XML file")
    parser.add_argument("path", type=Path, help="SAF-T XML file")
    parser.add_argument("--json", dest="json_out", type=Path, help="Write the report as JSON")
    parser.add_argument("--markdown", type=Path, help="Write the report as Markdown")
    parser.add_argument("--quiet", action="store_true", help="Only set the exit code")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    init_logging(level="WARNING")
    try:
        report = validate_file(args.path)
    except OSError as err:
        print(f"Cannot read {args.path}: {err}", file=sys.stderr)
        return 2

    if args.json_out:
        _write(args.json_out, json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    if args.markdown:
        _write(args.markdown, build_report_md(report, title=f"SAF-T Validation Report: {args.path.name}"))
    if not args.quiet:
        print(render_text(report))
    return 0 if report.ok else 1


def _write(path: Optional[Path], content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
