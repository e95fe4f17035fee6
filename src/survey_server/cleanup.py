"""Retention CLI — ``survey-cleanup``.

Deletes completed survey sessions and old conversation ledger entries.
Intended for cron jobs or one-off maintenance.  External check calls keep
their history (their ``session_id`` is set to NULL).

Default behaviour: delete completed sessions older than 90 days and ledger
entries older than 30 days.

Examples::

    # Defaults ($SESSION_RETENTION_DAYS / $LEDGER_RETENTION_DAYS)
    uv run survey-cleanup

    # Keep completed sessions for a year, skip the ledger
    uv run survey-cleanup --session-days 365 --skip-ledger

    # Delete every completed session (0 = no age filter)
    uv run survey-cleanup --session-days 0 --skip-ledger
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from survey_server.config import LEDGER_RETENTION_DAYS, SESSION_RETENTION_DAYS

logger = logging.getLogger(__name__)


async def run_cleanup(
    *,
    session_days: int = SESSION_RETENTION_DAYS,
    ledger_days: int = LEDGER_RETENTION_DAYS,
    skip_sessions: bool = False,
    skip_ledger: bool = False,
) -> dict[str, int]:
    """Execute the cleanup and return affected row counts per table.

    Creates its own database session, runs the repository bulk methods,
    and commits.
    """
    # Lazy imports to avoid loading DB machinery at module import time
    from survey_db.engine import dispose_engine, get_session_factory
    from survey_db.repository import LedgerRepository, SessionRepository

    factory = get_session_factory()
    affected = {"sessions": 0, "ledger": 0}

    try:
        async with factory() as db:
            if not skip_sessions:
                affected["sessions"] = await SessionRepository().purge_completed(
                    db, older_than_days=session_days,
                )
            if not skip_ledger:
                affected["ledger"] = await LedgerRepository().purge(
                    db, older_than_days=ledger_days,
                )
            await db.commit()

        logger.info(
            "Cleanup complete: sessions=%d (days=%d), ledger=%d (days=%d)",
            affected["sessions"], session_days, affected["ledger"], ledger_days,
        )
        return affected
    finally:
        await dispose_engine()


def cli() -> None:
    """Console-script entry point: ``survey-cleanup``."""
    parser = argparse.ArgumentParser(
        prog="survey-cleanup",
        description="Delete old completed survey sessions and conversation messages.",
    )
    parser.add_argument(
        "--session-days",
        type=int,
        default=SESSION_RETENTION_DAYS,
        help=(
            "Completed sessions older than this are deleted "
            "(default: $SESSION_RETENTION_DAYS or 90; 0 = all completed)"
        ),
    )
    parser.add_argument(
        "--ledger-days",
        type=int,
        default=LEDGER_RETENTION_DAYS,
        help=(
            "Conversation messages older than this are deleted "
            "(default: $LEDGER_RETENTION_DAYS or 30; 0 = all)"
        ),
    )
    parser.add_argument("--skip-sessions", action="store_true", default=False)
    parser.add_argument("--skip-ledger", action="store_true", default=False)
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

    affected = asyncio.run(
        run_cleanup(
            session_days=args.session_days,
            ledger_days=args.ledger_days,
            skip_sessions=args.skip_sessions,
            skip_ledger=args.skip_ledger,
        )
    )

    print(f"Deleted sessions: {affected['sessions']}  Deleted messages: {affected['ledger']}")
    sys.exit(0)
