"""Validator outcomes.

Rejection is a value, not an exception: the engine turns ``Rejected`` into
exactly one correction message and leaves the session untouched.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel


class Accepted(BaseModel):
    type: Literal["accepted"] = "accepted"
    normalized_answer: str
    media_ref: Optional[str] = None


class Rejected(BaseModel):
    type: Literal["rejected"] = "rejected"
    correction_text: str


# Callers can match on result.type.
ValidationResult = Accepted | Rejected
