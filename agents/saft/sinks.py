"""Persistence boundary for generated audit files."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime, timezone
from hashlib import sha256
from pathlib import Path
from typing import List, Optional, Protocol


@dataclass(frozen=True, slots=True)
class ExportRecord:
    tenant_id: str
    period_from: date
    period_to: date
    generated_at: datetime
    status: str
    file_content: str

    @property
    def export_name(self) -> str:
        return f"saft_{self.period_from.isoformat()}_{self.period_to.isoformat()}"


class ExportSink(Protocol):
    def save(self, record: ExportRecord) -> Optional[str]:
        """Persist ``record`` and return its export id, if the store assigns one."""


class InMemoryExportSink:
    def __init__(self) -> None:
        self.records: List[ExportRecord] = []

    def save(self, record: ExportRecord) -> Optional[str]:
        self.records.append(record)
        return f"{record.tenant_id}-{len(self.records):05d}"


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class DirectoryExportSink:
    """Writes ``<base>/<tenant>/<export>.xml`` plus a manifest with the file hash.

    The export id is the manifest's SHA-256, so re-saving identical content at
    the same timestamp yields the same id.
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir)

    def save(self, record: ExportRecord) -> Optional[str]:
        tenant_dir = self.base_dir / record.tenant_id
        tenant_dir.mkdir(parents=True, exist_ok=True)

        content = record.file_content.encode("utf-8")
        xml_path = tenant_dir / f"{record.export_name}.xml"
        xml_path.write_bytes(content)

        manifest = {
            "schema_version": "1.0",
            "tenant_id": record.tenant_id,
            "period_from": record.period_from.isoformat(),
            "period_to": record.period_to.isoformat(),
            "generated_at_utc": _ensure_utc(record.generated_at).isoformat().replace("+00:00", "Z"),
            "status": record.status,
            "file": xml_path.name,
            "sha256": sha256(content).hexdigest(),
        }
        manifest_bytes = json.dumps(manifest, indent=2, sort_keys=True).encode("utf-8")
        (tenant_dir / f"{record.export_name}.manifest.json").write_bytes(manifest_bytes)
        return sha256(manifest_bytes).hexdigest()
