"""Server configuration — reads settings from environment variables.

All settings have sensible defaults for local development.  In production
the values are typically overridden via env vars or a ``.env`` file.
"""

import os
from dataclasses import dataclass, field

from heysme_agent.constants import MODEL_MAX_RETRIES, MODEL_TIMEOUT_SECONDS

# --- Pagination & cleanup defaults ---
# Module-level constants read at import time so FastAPI Query() defaults
# can reference them (Query defaults must be static at decoration time).
DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", "20"))
MAX_PAGE_LIMIT = int(os.getenv("MAX_PAGE_LIMIT", "100"))
DEFAULT_CLEANUP_DAYS = int(os.getenv("DEFAULT_CLEANUP_DAYS", "90"))

SESSION_STORES = ("memory", "sql")


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

    # Session backend: "memory" (single process) or "sql" (PostgreSQL)
    session_store: str = "memory"

    # PostgreSQL URL for the sql store; None falls back to DATABASE_URL / PG_*
    database_url: str | None = None

    # Model provider (Ollama-compatible /api/chat)
    model_base_url: str = "http://localhost:11434"
    model_name: str = "llama3.2"
    model_timeout: float = MODEL_TIMEOUT_SECONDS
    model_max_retries: int = MODEL_MAX_RETRIES


def load_settings() -> ServerSettings:
    """Build settings from ``SERVER_*`` / ``MODEL_*`` environment variables."""
    raw_origins = os.getenv("SERVER_CORS_ORIGINS", "*")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    session_store = os.getenv("SESSION_STORE", "memory").lower()
    if session_store not in SESSION_STORES:
        raise ValueError(
            f"SESSION_STORE must be one of {', '.join(SESSION_STORES)}, got {session_store!r}"
        )

    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8080")),
        cors_origins=origins,
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        session_store=session_store,
        database_url=os.getenv("SESSION_DATABASE_URL") or None,
        model_base_url=os.getenv("MODEL_BASE_URL", "http://localhost:11434"),
        model_name=os.getenv("MODEL_NAME", "llama3.2"),
        model_timeout=float(os.getenv("MODEL_TIMEOUT_SECONDS", str(MODEL_TIMEOUT_SECONDS))),
        model_max_retries=int(os.getenv("MODEL_MAX_RETRIES", str(MODEL_MAX_RETRIES))),
    )
