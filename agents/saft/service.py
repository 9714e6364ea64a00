"""Audit-file generation: fetch, build, serialize, persist.

``generate_audit_file`` is the single-tenant operation; ``run_scheduled_generation``
is the monthly batch that produces the previous month's file for every tenant.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from backend.core.logging import get_logger, set_tenant_id

from .dto import CompanyProfile, TenantSnapshot
from .errors import SaftError
from .ledger import build_audit_file
from .profiles import CompanyProfileProvider
from .serializer import serialize_audit_file
from .sinks import ExportRecord, ExportSink
from .sources import LedgerSource, fetch_snapshot

logger = get_logger(__name__)

STATUS_GENERATED = "generated"


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class ExportMetadata:
    tenant_id: str
    period_from: date
    period_to: date
    generated_at: datetime
    company_id: str
    fiscal_year: int
    currency_code: str
    number_of_entries: int
    status: str = STATUS_GENERATED
    export_id: Optional[str] = None


def generate_audit_file(
    tenant_id: str,
    period_from: date,
    period_to: date,
    *,
    source: LedgerSource,
    profiles: CompanyProfileProvider,
    sink: Optional[ExportSink] = None,
    clock: Optional[Callable[[], datetime]] = None,
    timeout: Optional[float] = None,
) -> Tuple[str, ExportMetadata]:
    """Generate the SAF-T XML for one tenant and an inclusive period.

    Raises ``MissingMasterAccount`` before anything is serialized or persisted
    and ``DataFetchFailed`` (retryable) when a ledger read fails or times out.
    A failing ``sink`` is logged; the document is still returned.
    """

    set_tenant_id(tenant_id)
    try:
        profile = profiles.get(tenant_id)
        logger.info("Generating audit file for %s, period %s..%s", tenant_id, period_from, period_to)
        snapshot = fetch_snapshot(source, tenant_id, period_from, period_to, timeout=timeout)
        return _build_and_persist(tenant_id, profile, snapshot, period_from, period_to, sink, clock)
    finally:
        set_tenant_id(None)


def _build_and_persist(
    tenant_id: str,
    profile: CompanyProfile,
    snapshot: TenantSnapshot,
    period_from: date,
    period_to: date,
    sink: Optional[ExportSink],
    clock: Optional[Callable[[], datetime]],
) -> Tuple[str, ExportMetadata]:
    now = (clock or _default_clock)()
    document = build_audit_file(profile, snapshot, period_from, period_to, created_at=now)
    xml, header = serialize_audit_file(document)

    export_id = None
    if sink is not None:
        record = ExportRecord(
            tenant_id=tenant_id,
            period_from=period_from,
            period_to=period_to,
            generated_at=now,
            status=STATUS_GENERATED,
            file_content=xml,
        )
        try:
            export_id = sink.save(record)
        except Exception:  # noqa: BLE001 - persistence must not invalidate the document
            logger.exception("Persisting audit file for %s failed", tenant_id)

    metadata = ExportMetadata(
        tenant_id=tenant_id,
        period_from=period_from,
        period_to=period_to,
        generated_at=now,
        company_id=header.company_id,
        fiscal_year=header.fiscal_year,
        currency_code=header.currency_code,
        number_of_entries=header.number_of_entries,
        export_id=export_id,
    )
    logger.info(
        "Audit file for %s generated: %d transactions, export id %s",
        tenant_id,
        metadata.number_of_entries,
        export_id,
    )
    return xml, metadata


def previous_month_period(today: date) -> Tuple[date, date]:
    """First and last day of the month before ``today``."""

    last_day = today.replace(day=1) - timedelta(days=1)
    return last_day.replace(day=1), last_day


@dataclass(slots=True)
class ScheduledRunSummary:
    period_from: date
    period_to: date
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)
    exports: List[ExportMetadata] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["period_from"] = self.period_from.isoformat()
        data["period_to"] = self.period_to.isoformat()
        data["exports"] = [
            {
                "tenant_id": e.tenant_id,
                "export_id": e.export_id,
                "number_of_entries": e.number_of_entries,
            }
            for e in self.exports
        ]
        return data


def run_scheduled_generation(
    tenant_ids: Iterable[str],
    *,
    source: LedgerSource,
    profiles: CompanyProfileProvider,
    sink: Optional[ExportSink] = None,
    today: Optional[date] = None,
    clock: Optional[Callable[[], datetime]] = None,
    timeout: Optional[float] = None,
) -> ScheduledRunSummary:
    """Generate last month's audit file for each tenant.

    Tenants without invoices in the period are skipped. Precondition and
    fetch failures are counted as failed and do not stop the batch.
    """

    now_provider = clock or _default_clock
    period_from, period_to = previous_month_period(today or now_provider().date())
    summary = ScheduledRunSummary(period_from=period_from, period_to=period_to)

    for tenant_id in tenant_ids:
        summary.total += 1
        set_tenant_id(tenant_id)
        try:
            snapshot = fetch_snapshot(source, tenant_id, period_from, period_to, timeout=timeout)
            if not snapshot.invoices:
                logger.info("No invoices for %s in %s..%s, skipping", tenant_id, period_from, period_to)
                summary.skipped += 1
                continue
            profile = profiles.get(tenant_id)
            _, metadata = _build_and_persist(
                tenant_id, profile, snapshot, period_from, period_to, sink, now_provider
            )
        except (SaftError, KeyError, ValueError) as err:
            logger.warning("Scheduled generation failed for %s: %s", tenant_id, err)
            summary.failed += 1
            summary.errors.append(f"{tenant_id}: {err}")
            continue
        finally:
            set_tenant_id(None)
        summary.successful += 1
        summary.exports.append(metadata)

    logger.info(
        "Scheduled generation %s..%s: %d total, %d successful, %d failed, %d skipped",
        period_from,
        period_to,
        summary.total,
        summary.successful,
        summary.failed,
        summary.skipped,
    )
    return summary
