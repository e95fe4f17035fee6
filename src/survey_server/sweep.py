"""External check sweep CLI — ``survey-sweep``.

Intended for cron: expires external check calls stuck in ``pending`` and
re-dispatches failed calls that still have attempts left, then waits for
the re-dispatched calls to finish before exiting.

Examples::

    # Default thresholds ($STALE_CALL_MINUTES, $MAX_CALL_ATTEMPTS)
    uv run survey-sweep

    # Treat calls pending for more than 5 minutes as stale
    uv run survey-sweep --stale-minutes 5

    # Do not message users about failed checks
    uv run survey-sweep --no-notify
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from survey_engine import constants
from survey_engine.models.external_call import SweepReport

logger = logging.getLogger(__name__)


async def run_sweep(
    *,
    stale_minutes: int = constants.STALE_CALL_MINUTES,
    max_attempts: int = constants.MAX_CALL_ATTEMPTS,
    notify: bool = True,
) -> SweepReport:
    """Run one sweep pass with its own DB engine and (optionally) channel."""
    # Lazy imports to avoid loading DB machinery at module import time
    from survey_db.engine import dispose_engine, get_session_factory
    from survey_engine.channel import ChannelSession
    from survey_engine.invoker import ExternalCheckInvoker
    from survey_engine.messenger import Messenger

    from survey_server.config import load_settings
    from survey_server.transport import CloudApiTransport

    factory = get_session_factory()
    channel = None
    messenger = None
    if notify:
        channel = ChannelSession(CloudApiTransport(load_settings()))
        await channel.start()
        if channel.is_connected:
            messenger = Messenger(channel, factory)
        else:
            logger.warning("Channel unavailable; failure notifications disabled")

    invoker = ExternalCheckInvoker(
        factory,
        messenger=messenger,
        stale_minutes=stale_minutes,
        max_attempts=max_attempts,
    )
    try:
        report = await invoker.sweep()
        await invoker.drain()
        logger.info(
            "Sweep complete: expired=%d, retried=%d",
            len(report.expired), len(report.retried),
        )
        return report
    finally:
        if channel is not None:
            await channel.stop()
        await dispose_engine()


def cli() -> None:
    """Console-script entry point: ``survey-sweep``."""
    parser = argparse.ArgumentParser(
        prog="survey-sweep",
        description="Expire stale external check calls and retry failed ones.",
    )
    parser.add_argument(
        "--stale-minutes",
        type=int,
        default=constants.STALE_CALL_MINUTES,
        help="Pending calls older than this are marked failed (default: $STALE_CALL_MINUTES or 10)",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=constants.MAX_CALL_ATTEMPTS,
        help="Total invocations allowed per call (default: $MAX_CALL_ATTEMPTS or 2)",
    )
    parser.add_argument(
        "--no-notify",
        action="store_true",
        default=False,
        help="Do not send failure notifications to users",
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

    report = asyncio.run(
        run_sweep(
            stale_minutes=args.stale_minutes,
            max_attempts=args.max_attempts,
            notify=not args.no_notify,
        )
    )

    print(f"Expired: {len(report.expired)}  Retried: {len(report.retried)}")
    sys.exit(0)
