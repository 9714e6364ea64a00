"""Errors raised while generating a SAF-T audit file."""

from __future__ import annotations

from typing import Iterable, Tuple

from .dto import REQUIRED_ACCOUNTS


class SaftError(RuntimeError):
    """Base class for audit-file generation failures."""

    retryable = False


class MissingMasterAccount(SaftError):
    """One or more mandatory chart-of-accounts entries are absent."""

    def __init__(self, missing_codes: Iterable[str]) -> None:
        self.missing_codes: Tuple[str, ...] = tuple(missing_codes)
        described = ", ".join(
            f"{code} ({REQUIRED_ACCOUNTS.get(code, 'account')})" for code in self.missing_codes
        )
        super().__init__(f"Missing required Romanian standard accounts: {described}")


class DataFetchFailed(SaftError):
    """A ledger read failed or did not finish before the deadline."""

    retryable = True

    def __init__(self, fetch_name: str, reason: str) -> None:
        self.fetch_name = fetch_name
        super().__init__(f"Fetching {fetch_name} failed: {reason}")
