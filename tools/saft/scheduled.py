"""Monthly batch: previous month's SAF-T file for every tenant snapshot in a directory.

Exit code 0 when no tenant failed, 1 otherwise, 2 when the snapshots cannot be loaded.
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from agents.saft import DirectoryExportSink, JsonSnapshotSource, ScheduledRunSummary, run_scheduled_generation  # noqa: E402
from backend.core.config import settings  # noqa: E402
from backend.core.logging import init_logging  # noqa: E402


def run(snapshot_dir: Path, archive_dir: Path, today: date | None = None) -> ScheduledRunSummary:
    source = JsonSnapshotSource.from_directory(snapshot_dir)
    return run_scheduled_generation(
        source.tenants(),
        source=source,
        profiles=source.profiles,
        sink=DirectoryExportSink(archive_dir),
        today=today,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate last month's SAF-T files for all tenants")
    parser.add_argument("--snapshots", type=Path, required=True, help="Directory of tenant snapshot JSON files")
    parser.add_argument(
        "--archive-dir",
        type=Path,
        default=Path(settings.ARTIFACTS_DIR) / "saft",
        help="Where generated files and manifests are written",
    )
    parser.add_argument("--today", type=date.fromisoformat, help="Run as if today were this date")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    init_logging()
    try:
        summary = run(args.snapshots, args.archive_dir, args.today)
    except (OSError, ValueError) as err:
        print(f"Cannot load snapshots: {err}", file=sys.stderr)
        return 2
    print(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False))
    return 1 if summary.failed else 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
