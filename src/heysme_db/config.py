"""Database settings for the SQL session store.

``DATABASE_URL`` wins when set; otherwise the URL is assembled from
``PG_HOST``, ``PG_PORT``, ``PG_USER``, ``PG_PASSWORD`` and ``PG_DATABASE``.
Settings keep a driver-neutral URL and pick the driver per use: asyncpg
for the runtime engine, psycopg2 for Alembic.
"""

import os
from dataclasses import dataclass

from sqlalchemy.engine import URL, make_url

ASYNC_DRIVER = "postgresql+asyncpg"
SYNC_DRIVER = "postgresql+psycopg2"


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection target and pool sizing for one :class:`~heysme_db.engine.Database`."""

    url: URL
    pool_size: int = 5
    max_overflow: int = 10
    echo: bool = False

    @property
    def async_url(self) -> URL:
        return self.url.set(drivername=ASYNC_DRIVER)

    @property
    def sync_url(self) -> URL:
        return self.url.set(drivername=SYNC_DRIVER)


def _url_from_parts() -> URL:
    # URL.create quotes credentials, so passwords may contain '@' or '/'
    return URL.create(
        "postgresql",
        username=os.getenv("PG_USER", "heysme"),
        password=os.getenv("PG_PASSWORD", "heysme"),
        host=os.getenv("PG_HOST", "localhost"),
        port=int(os.getenv("PG_PORT", "5432")),
        database=os.getenv("PG_DATABASE", "heysme"),
    )


def load_database_settings(url: str | None = None) -> DatabaseSettings:
    """Build settings from ``url`` or the environment.

    Raises:
        ValueError: the URL does not point at PostgreSQL (the session table
            relies on JSONB and row locks).
    """
    raw = url or os.getenv("DATABASE_URL")
    parsed = make_url(raw) if raw else _url_from_parts()
    if parsed.get_backend_name() != "postgresql":
        raise ValueError(
            f"Session store needs PostgreSQL, got {parsed.get_backend_name()!r}"
        )
    return DatabaseSettings(
        url=parsed,
        pool_size=int(os.getenv("PG_POOL_SIZE", "5")),
        max_overflow=int(os.getenv("PG_MAX_OVERFLOW", "10")),
        echo=os.getenv("PG_ECHO", "").lower() in ("1", "true", "yes"),
    )
