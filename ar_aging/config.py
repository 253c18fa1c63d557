"""Environment-driven settings.

All values come from environment variables. Credentials for the invoicing API
and the identity provider are validated up front by ``load_settings`` so that a
misconfigured process fails at startup instead of on the first sync request.
"""

import os
from dataclasses import dataclass
from typing import List, Optional

from ar_aging.errors import ConfigurationError

API_VARS = ("INVOICE_API_URL", "INVOICE_API_CLIENT_ID", "INVOICE_API_SECRET")
IDENTITY_VARS = ("IDENTITY_URL", "IDENTITY_API_KEY")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the sync pipeline and its collaborators."""

    database_url: str = "sqlite:///./data.db"
    log_level: str = "INFO"

    invoice_api_url: Optional[str] = None
    invoice_api_client_id: Optional[str] = None
    invoice_api_secret: Optional[str] = None

    identity_url: Optional[str] = None
    identity_api_key: Optional[str] = None

    sync_page_size: int = 1000
    sync_max_pages: int = 100
    contact_batch_size: int = 20
    contact_batch_delay: float = 0.1
    upsert_batch_size: int = 500

    http_timeout: int = 30
    http_retries: int = 3
    metrics_port: int = 8000

    def __repr__(self) -> str:
        return (
            f"Settings(database_url={self.database_url}, "
            f"invoice_api_url={self.invoice_api_url}, identity_url={self.identity_url})"
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}")


def load_settings(require_api: bool = True, require_identity: bool = False) -> Settings:
    """Build Settings from the environment.

    Args:
        require_api (bool): Fail if the invoicing API credentials are missing.
        require_identity (bool): Fail if the identity provider settings are missing.

    Returns:
        Settings: Populated settings.

    Raises:
        ConfigurationError: If a required variable is missing or malformed.
    """
    required: List[str] = []
    if require_api:
        required.extend(API_VARS)
    if require_identity:
        required.extend(IDENTITY_VARS)
    missing = [name for name in required if not os.getenv(name)]
    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}"
        )

    settings = Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./data.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        invoice_api_url=os.getenv("INVOICE_API_URL"),
        invoice_api_client_id=os.getenv("INVOICE_API_CLIENT_ID"),
        invoice_api_secret=os.getenv("INVOICE_API_SECRET"),
        identity_url=os.getenv("IDENTITY_URL"),
        identity_api_key=os.getenv("IDENTITY_API_KEY"),
        sync_page_size=_env_int("SYNC_PAGE_SIZE", 1000),
        sync_max_pages=_env_int("SYNC_MAX_PAGES", 100),
        contact_batch_size=_env_int("CONTACT_BATCH_SIZE", 20),
        contact_batch_delay=_env_float("CONTACT_BATCH_DELAY", 0.1),
        upsert_batch_size=_env_int("UPSERT_BATCH_SIZE", 500),
        http_timeout=_env_int("HTTP_TIMEOUT", 30),
        http_retries=_env_int("HTTP_RETRIES", 3),
        metrics_port=_env_int("METRICS_PORT", 8000),
    )
    if settings.sync_page_size <= 0 or settings.upsert_batch_size <= 0:
        raise ConfigurationError("SYNC_PAGE_SIZE and UPSERT_BATCH_SIZE must be positive")
    if settings.contact_batch_size <= 0:
        raise ConfigurationError("CONTACT_BATCH_SIZE must be positive")
    return settings
