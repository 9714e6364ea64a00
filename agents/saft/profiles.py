"""In-memory company profile provider and SAF-T readiness checks."""

from __future__ import annotations

import os
from typing import Dict, Iterable, List, Optional

from backend.core.config import settings

from .dto import REQUIRED_ACCOUNTS, Account, CompanyProfile


class CompanyProfileProvider:
    """Simple provider with optional fallback on ``TENANT_DEFAULT``."""

    def __init__(self, *, default_tenant_id: Optional[str] = None) -> None:
        self._profiles: Dict[str, CompanyProfile] = {}
        self._fallback_id = (
            default_tenant_id or os.environ.get("TENANT_DEFAULT") or settings.TENANT_DEFAULT
        )

    def register(self, profile: CompanyProfile) -> None:
        self._profiles[profile.tenant_id] = profile

    def get(self, tenant_id: str) -> CompanyProfile:
        if tenant_id in self._profiles:
            return self._profiles[tenant_id]
        if self._fallback_id and self._fallback_id in self._profiles:
            return self._profiles[self._fallback_id]
        raise KeyError(f"Company profile for '{tenant_id}' not found")

    def tenants(self) -> List[str]:
        return sorted(self._profiles)

    def clear(self) -> None:
        self._profiles.clear()


def validate_profile_for_saft(profile: CompanyProfile) -> List[str]:
    """Return the header fields that are still empty, in display order."""

    fields = (
        ("company name", profile.company_name),
        ("tax identification code (CUI/CIF)", profile.tax_id),
        ("trade register number", profile.registration_number),
        ("address", profile.address.street),
        ("city", profile.address.city),
        ("county", profile.address.region),
        ("country", profile.address.country),
    )
    return [label for label, value in fields if not (value or "").strip()]


def validate_required_accounts(accounts: Iterable[Account]) -> List[str]:
    present = {account.code for account in accounts}
    return [code for code in REQUIRED_ACCOUNTS if code not in present]
