"""Retention CLI — ``heysme-cleanup``.

Connects to the database and permanently deletes old sessions.  Intended
for cron jobs or one-off maintenance; only meaningful with the sql store.

Examples::

    # Delete completed/abandoned sessions not updated for 90 days
    heysme-cleanup --days 90

    # Delete every abandoned session regardless of age
    heysme-cleanup --days 0 --status abandoned
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from heysme_server.config import DEFAULT_CLEANUP_DAYS

logger = logging.getLogger(__name__)

DEFAULT_STATUSES = ["completed", "abandoned"]


async def run_cleanup(
    *,
    days: int = DEFAULT_CLEANUP_DAYS,
    status_filter: list[str] | None = None,
    database_url: str | None = None,
) -> int:
    """Delete matching sessions and return the number of removed rows.

    Builds a short-lived :class:`~heysme_db.engine.Database` (``database_url``
    or the environment), runs the repository purge, commits, and disposes
    the engine.
    """
    # Lazy imports to avoid loading DB machinery at module import time
    from heysme_db.config import load_database_settings
    from heysme_db.engine import Database
    from heysme_db.repository import SessionRepository

    if status_filter is None:
        status_filter = list(DEFAULT_STATUSES)

    repo = SessionRepository()
    database = Database(load_database_settings(database_url))

    try:
        async with database.session_factory() as db:
            affected = await repo.purge_old_sessions(
                db, older_than_days=days, status_filter=status_filter,
            )
            await db.commit()

        logger.info(
            "Cleanup complete: deleted_rows=%d, days=%d, statuses=%s",
            affected, days, ",".join(status_filter),
        )
        return affected
    finally:
        await database.dispose()


def cli() -> None:
    """Console-script entry point: ``heysme-cleanup``."""
    parser = argparse.ArgumentParser(
        prog="heysme-cleanup",
        description="Delete old orchestrator sessions from the database.",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=DEFAULT_CLEANUP_DAYS,
        help=(
            "Age threshold in days (default: $DEFAULT_CLEANUP_DAYS or 90). "
            "0 means no age filter."
        ),
    )
    parser.add_argument(
        "--status",
        action="append",
        default=None,
        choices=["active", "completed", "abandoned"],
        help="Only delete sessions with this status (repeatable). Default: completed, abandoned",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="PostgreSQL URL (default: $DATABASE_URL or the PG_* variables)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    affected = asyncio.run(run_cleanup(
        days=args.days, status_filter=args.status, database_url=args.database_url,
    ))

    print(f"Deleted rows: {affected}")
    sys.exit(0)
