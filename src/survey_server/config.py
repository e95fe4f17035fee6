"""Server configuration — reads settings from environment variables.

All settings have sensible defaults for local development.  In production
the values are typically overridden via env vars or a ``.env`` file.
"""

import os
from dataclasses import dataclass, field

# --- Pagination & retention defaults ---
# Module-level constants read at import time so FastAPI Query() defaults
# can reference them (Query defaults must be static at decoration time).
DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", "20"))
MAX_PAGE_LIMIT = int(os.getenv("MAX_PAGE_LIMIT", "100"))
SESSION_RETENTION_DAYS = int(os.getenv("SESSION_RETENTION_DAYS", "90"))
LEDGER_RETENTION_DAYS = int(os.getenv("LEDGER_RETENTION_DAYS", "30"))


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ServerSettings:
    """Immutable server configuration read from environment at startup."""

    # Network
    host: str = "0.0.0.0"
    port: int = 8080

    # CORS — comma-separated origins, or "*" for wide-open dev mode
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Logging
    log_level: str = "INFO"

    # WhatsApp Cloud API
    whatsapp_token: str | None = None
    whatsapp_phone_number_id: str | None = None
    whatsapp_verify_token: str | None = None
    graph_api_base_url: str = "https://graph.facebook.com"
    graph_api_version: str = "v22.0"

    # Connect the channel during startup (otherwise via POST /bot/start)
    channel_autostart: bool = True

    # Where image answers are written; served under /uploads
    media_dir: str = "uploads"

    # In-process sweep of external check calls; 0 disables it (use survey-sweep)
    sweep_interval_seconds: int = 0


def load_settings() -> ServerSettings:
    """Build settings from ``SERVER_*`` / ``WHATSAPP_*`` environment variables."""
    raw_origins = os.getenv("SERVER_CORS_ORIGINS", "*")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8080")),
        cors_origins=origins,
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        whatsapp_token=os.getenv("WHATSAPP_TOKEN") or None,
        whatsapp_phone_number_id=os.getenv("WHATSAPP_PHONE_NUMBER_ID") or None,
        whatsapp_verify_token=os.getenv("WHATSAPP_VERIFY_TOKEN") or None,
        graph_api_base_url=os.getenv("GRAPH_API_BASE_URL", "https://graph.facebook.com"),
        graph_api_version=os.getenv("GRAPH_API_VERSION", "v22.0"),
        channel_autostart=_env_bool("CHANNEL_AUTOSTART", "true"),
        media_dir=os.getenv("SERVER_MEDIA_DIR", "uploads"),
        sweep_interval_seconds=int(os.getenv("SWEEP_INTERVAL_SECONDS", "0")),
    )
