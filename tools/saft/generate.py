"""Generate a SAF-T (D406) audit file for one tenant and validate it.

Exit codes: 0 valid file, 1 file written but validation failures present,
2 generation aborted (missing master accounts, fetch failure, bad input).
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from agents.saft import (  # noqa: E402
    CompanyProfileProvider,
    DataFetchFailed,
    DirectoryExportSink,
    JsonSnapshotSource,
    LedgerSource,
    MissingMasterAccount,
    generate_audit_file,
    previous_month_period,
    validate_audit_file,
    validate_profile_for_saft,
    write_report_markdown,
)
from agents.saft.samples import SAMPLE_PERIOD, build_sample_source  # noqa: E402
from backend.core.config import settings  # noqa: E402
from backend.core.logging import get_logger, init_logging  # noqa: E402

logger = get_logger("tools.saft.generate")


def generate(
    *,
    source: LedgerSource,
    profiles: CompanyProfileProvider,
    tenant_id: str,
    period_from: date,
    period_to: date,
    output: Path,
    archive_dir: Optional[Path] = None,
    report_dir: Optional[Path] = None,
    now: Optional[datetime] = None,
) -> dict:
    profile_gaps = validate_profile_for_saft(profiles.get(tenant_id))
    if profile_gaps:
        logger.warning("Company profile for %s incomplete: %s", tenant_id, ", ".join(profile_gaps))

    sink = DirectoryExportSink(archive_dir) if archive_dir else None
    clock = (lambda: now) if now else None
    xml, metadata = generate_audit_file(
        tenant_id, period_from, period_to, source=source, profiles=profiles, sink=sink, clock=clock
    )
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(xml, encoding="utf-8")

    report = validate_audit_file(xml)
    report_path = None
    if report_dir is not None:
        report_path = write_report_markdown(
            report, report_dir, tenant_id, name=f"saft_{period_from.isoformat()}_{period_to.isoformat()}"
        )
    return {
        "tenant_id": tenant_id,
        "period_from": period_from.isoformat(),
        "period_to": period_to.isoformat(),
        "xml_path": str(output),
        "export_id": metadata.export_id,
        "number_of_entries": metadata.number_of_entries,
        "profile_gaps": profile_gaps,
        "validation": {"passed": report.passed, "failed": report.failed, "warnings": report.warnings},
        "failures": [f"#{r.test_number} {r.test_name}: {r.message}" for r in report.failures()],
        "report_path": str(report_path) if report_path else None,
    }


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a SAF-T D406 audit file")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--snapshot", type=Path, help="Tenant snapshot JSON file")
    source.add_argument("--sample", action="store_true", help="Use the built-in sample tenant")
    parser.add_argument("--tenant", help="Tenant ID (default: the snapshot's tenant)")
    parser.add_argument("--from", dest="period_from", type=date.fromisoformat, help="Period start (YYYY-MM-DD)")
    parser.add_argument("--to", dest="period_to", type=date.fromisoformat, help="Period end (YYYY-MM-DD)")
    parser.add_argument("--output", type=Path, help="Target XML file")
    parser.add_argument("--archive-dir", type=Path, help="Also archive the file with a manifest here")
    parser.add_argument("--report", action="store_true", help="Write a Markdown validation report")
    parser.add_argument("--created-at", type=datetime.fromisoformat, help="Fixed creation timestamp (ISO)")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    init_logging()

    try:
        if args.sample:
            tenant_id = args.tenant or "tenant-demo"
            source, profiles = build_sample_source(tenant_id)
            default_period = SAMPLE_PERIOD
        else:
            source = JsonSnapshotSource()
            tenant_id = source.add_file(args.snapshot)
            if args.tenant and args.tenant != tenant_id:
                raise ValueError(f"Snapshot belongs to tenant '{tenant_id}', not '{args.tenant}'")
            profiles = source.profiles
            default_period = previous_month_period(datetime.now(timezone.utc).date())
        period_from = args.period_from or default_period[0]
        period_to = args.period_to or default_period[1]

        artifacts = Path(settings.ARTIFACTS_DIR)
        output = args.output or artifacts / "saft" / tenant_id / f"saft_{period_from}_{period_to}.xml"
        now = args.created_at
        if now is not None and now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        result = generate(
            source=source,
            profiles=profiles,
            tenant_id=tenant_id,
            period_from=period_from,
            period_to=period_to,
            output=output,
            archive_dir=args.archive_dir,
            report_dir=artifacts if args.report else None,
            now=now,
        )
    except (MissingMasterAccount, DataFetchFailed, KeyError, ValueError, OSError) as err:
        print(f"Generation failed: {err}", file=sys.stderr)
        return 2

    print(json.dumps(result, indent=2, ensure_ascii=False))
    return 1 if result["validation"]["failed"] else 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
