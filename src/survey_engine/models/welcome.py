"""Welcome message models.

A welcome message is prefixed to the first question of a new session when
all of its conditions hold at session start.
"""

from __future__ import annotations

import enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class WelcomeField(str, enum.Enum):
    TIME = "time"  # hour of day, 0-23
    DAY = "day"    # day of week, 0 = Sunday ... 6 = Saturday
    DATE = "date"  # day of month, 1-31


class WelcomeOperator(str, enum.Enum):
    EQUALS = "equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    BETWEEN = "between"


class WelcomeCondition(BaseModel):
    """``between`` takes an inclusive range ``"a-b"`` in ``value``; ``value2``
    may hold a second range that also matches."""

    model_config = ConfigDict(frozen=True)

    field: WelcomeField
    operator: WelcomeOperator
    value: str
    value2: Optional[str] = None


class WelcomeMessage(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    text: str
    active: bool = True
    conditions: List[WelcomeCondition] = []
