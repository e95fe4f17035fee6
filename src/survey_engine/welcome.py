"""WelcomeSelector — picks the greeting prefixed to a new session's first question.

The first active welcome message (in stored order) whose conditions all
hold at the current local time wins.  Supported conditions:

  - ``time``: hour of day; ``equals``, ``greater_than``, ``less_than``, or
    ``between`` with ``"a-b"`` ranges in ``value`` / ``value2``
  - ``day``: day of week, 0 = Sunday ... 6 = Saturday
  - ``date``: day of month

A malformed condition never matches.  When nothing matches,
:meth:`WelcomeSelector.text_for` falls back to a default greeting.
"""

from __future__ import annotations

import logging
from datetime import datetime, tzinfo
from typing import Iterable
from zoneinfo import ZoneInfo

from survey_engine import constants
from survey_engine.models.welcome import (
    WelcomeCondition,
    WelcomeField,
    WelcomeMessage,
    WelcomeOperator,
)

logger = logging.getLogger(__name__)


def _parse_range(raw: str | None) -> tuple[int, int] | None:
    if not raw:
        return None
    start, sep, end = raw.partition("-")
    if not sep:
        return None
    return int(start), int(end)


class WelcomeSelector:
    """Selects a welcome message by local time.

    Args:
        tz: IANA timezone name or ``tzinfo``; resolved lazily so that an
            unused selector never touches the timezone database.
        default_text: greeting used when no message matches (empty = none)
    """

    def __init__(
        self,
        tz: str | tzinfo = constants.WELCOME_TIMEZONE,
        default_text: str = constants.DEFAULT_WELCOME_MESSAGE,
    ) -> None:
        self._tz = tz
        self._default_text = default_text

    def now(self) -> datetime:
        tz = ZoneInfo(self._tz) if isinstance(self._tz, str) else self._tz
        return datetime.now(tz)

    def select(
        self, messages: Iterable[WelcomeMessage], now: datetime | None = None
    ) -> WelcomeMessage | None:
        candidates = [m for m in messages if m.active]
        if not candidates:
            return None
        if now is None:
            now = self.now()
        for message in candidates:
            if all(self.matches(c, now) for c in message.conditions):
                return message
        return None

    def text_for(
        self, messages: Iterable[WelcomeMessage], now: datetime | None = None
    ) -> str:
        """Text of the matching message, or the default greeting."""
        message = self.select(messages, now)
        if message is None:
            return self._default_text
        return message.text

    def matches(self, condition: WelcomeCondition, now: datetime) -> bool:
        if condition.field == WelcomeField.TIME:
            actual = now.hour
        elif condition.field == WelcomeField.DAY:
            # Python: Monday=0; stored rules use Sunday=0
            actual = (now.weekday() + 1) % 7
        else:
            actual = now.day

        try:
            return self._compare(condition, actual)
        except ValueError:
            logger.warning("Malformed welcome condition %r, treating as unmatched", condition)
            return False

    @staticmethod
    def _compare(condition: WelcomeCondition, actual: int) -> bool:
        op = condition.operator
        if op == WelcomeOperator.EQUALS:
            return actual == int(condition.value)
        if op == WelcomeOperator.GREATER_THAN:
            return actual > int(condition.value)
        if op == WelcomeOperator.LESS_THAN:
            return actual < int(condition.value)
        if op == WelcomeOperator.BETWEEN:
            for rng in (_parse_range(condition.value), _parse_range(condition.value2)):
                if rng is not None and rng[0] <= actual <= rng[1]:
                    return True
            return False
        return False
