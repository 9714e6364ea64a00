"""Core configuration with Pydantic v2 Settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    app_env: str = "development"
    log_level: str = "INFO"
    # json|plain
    log_format: str = "json"

    # Ledger reads: barrier timeout for the concurrent fetches (seconds)
    SAFT_FETCH_TIMEOUT_S: float = 10.0
    SAFT_FETCH_WORKERS: int = 5
    # temp|official; official needs XSD files under agents/saft/resources/official
    SAFT_VALIDATION_MODE: str = "temp"
    SAFT_BASE_CURRENCY: str = "RON"

    # Software identification written into the audit-file header
    SAFT_SOFTWARE_COMPANY_NAME: str = "Facturare SRL"
    SAFT_SOFTWARE_ID: str = "facturare-saft"
    SAFT_SOFTWARE_VERSION: str = "1.0.0"

    # Fallback tenant for profile lookups (empty = none)
    TENANT_DEFAULT: str = ""

    # Directory where CLI runs drop reports
    ARTIFACTS_DIR: str = "artifacts"


# Global settings instance
settings = Settings()
