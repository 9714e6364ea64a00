"""Ledger data sources and the concurrent snapshot fetch.

The builder needs five independent reads per tenant: accounts, parties, tax
table, invoices and invoice lines. They are issued in parallel and joined at a
single barrier with a deadline; any failure or timeout aborts the whole fetch.
"""

from __future__ import annotations

from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence

from backend.core.config import settings
from backend.core.logging import get_logger

from .dto import (
    Account,
    InvoiceLineRecord,
    InvoiceRecord,
    Party,
    TaxTableEntry,
    TenantSnapshot,
)
from .errors import DataFetchFailed

logger = get_logger(__name__)

FETCH_NAMES = ("accounts", "parties", "tax_table", "invoices", "invoice_lines")


class LedgerSource(Protocol):
    """Tenant-scoped read access to the accounting data."""

    def fetch_accounts(self, tenant_id: str) -> Sequence[Account]: ...

    def fetch_parties(self, tenant_id: str) -> Sequence[Party]: ...

    def fetch_tax_table(self, tenant_id: str) -> Sequence[TaxTableEntry]: ...

    def fetch_invoices(
        self, tenant_id: str, period_from: date, period_to: date
    ) -> Sequence[InvoiceRecord]: ...

    def fetch_invoice_lines(
        self, tenant_id: str, period_from: date, period_to: date
    ) -> Sequence[InvoiceLineRecord]: ...


class InMemoryLedgerSource:
    """Dictionary-backed source; date filters mirror a database query."""

    def __init__(self) -> None:
        self._data: Dict[str, TenantSnapshot] = {}

    def register(
        self,
        tenant_id: str,
        *,
        accounts: Iterable[Account] = (),
        parties: Iterable[Party] = (),
        tax_table: Iterable[TaxTableEntry] = (),
        invoices: Iterable[InvoiceRecord] = (),
        invoice_lines: Iterable[InvoiceLineRecord] = (),
    ) -> None:
        self._data[tenant_id] = TenantSnapshot(
            accounts=tuple(accounts),
            parties=tuple(parties),
            tax_table=tuple(tax_table),
            invoices=tuple(invoices),
            invoice_lines=tuple(invoice_lines),
        )

    def tenants(self) -> List[str]:
        return sorted(self._data)

    def _get(self, tenant_id: str) -> TenantSnapshot:
        try:
            return self._data[tenant_id]
        except KeyError:
            raise KeyError(f"No ledger data for tenant '{tenant_id}'") from None

    def fetch_accounts(self, tenant_id: str) -> Sequence[Account]:
        return self._get(tenant_id).accounts

    def fetch_parties(self, tenant_id: str) -> Sequence[Party]:
        return self._get(tenant_id).parties

    def fetch_tax_table(self, tenant_id: str) -> Sequence[TaxTableEntry]:
        return self._get(tenant_id).tax_table

    def fetch_invoices(
        self, tenant_id: str, period_from: date, period_to: date
    ) -> Sequence[InvoiceRecord]:
        return tuple(
            invoice
            for invoice in self._get(tenant_id).invoices
            if period_from <= invoice.issue_date <= period_to
        )

    def fetch_invoice_lines(
        self, tenant_id: str, period_from: date, period_to: date
    ) -> Sequence[InvoiceLineRecord]:
        invoice_ids = {inv.id for inv in self.fetch_invoices(tenant_id, period_from, period_to)}
        return tuple(
            line for line in self._get(tenant_id).invoice_lines if line.invoice_id in invoice_ids
        )


def fetch_snapshot(
    source: LedgerSource,
    tenant_id: str,
    period_from: date,
    period_to: date,
    *,
    timeout: Optional[float] = None,
) -> TenantSnapshot:
    """Run the five reads concurrently and join them.

    Raises :class:`DataFetchFailed` naming the first read (in fetch order)
    that raised or had not finished when ``timeout`` seconds elapsed.
    """

    deadline = settings.SAFT_FETCH_TIMEOUT_S if timeout is None else timeout
    calls: Dict[str, Callable[[], Sequence]] = {
        "accounts": lambda: source.fetch_accounts(tenant_id),
        "parties": lambda: source.fetch_parties(tenant_id),
        "tax_table": lambda: source.fetch_tax_table(tenant_id),
        "invoices": lambda: source.fetch_invoices(tenant_id, period_from, period_to),
        "invoice_lines": lambda: source.fetch_invoice_lines(tenant_id, period_from, period_to),
    }

    executor = ThreadPoolExecutor(
        max_workers=max(1, settings.SAFT_FETCH_WORKERS), thread_name_prefix="saft-fetch"
    )
    try:
        futures = {name: executor.submit(call) for name, call in calls.items()}
        done, _ = wait(futures.values(), timeout=deadline, return_when=FIRST_EXCEPTION)

        results: Dict[str, tuple] = {}
        for name in FETCH_NAMES:
            future = futures[name]
            if future not in done:
                continue
            error = future.exception()
            if error is not None:
                logger.warning("Ledger fetch %s failed for tenant %s", name, tenant_id)
                raise DataFetchFailed(name, str(error) or type(error).__name__) from error
            results[name] = tuple(future.result())

        for name in FETCH_NAMES:
            if name not in results:
                logger.warning(
                    "Ledger fetch %s timed out after %ss for tenant %s", name, deadline, tenant_id
                )
                raise DataFetchFailed(name, f"timed out after {deadline}s")
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    return TenantSnapshot(
        accounts=results["accounts"],
        parties=results["parties"],
        tax_table=results["tax_table"],
        invoices=results["invoices"],
        invoice_lines=results["invoice_lines"],
    )
