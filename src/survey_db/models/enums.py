"""Database-level enumerations."""

import enum


class CallStatus(str, enum.Enum):
    """Lifecycle states for an external check call.

    Transitions:
        pending -> success   (endpoint answered with 2xx)
        pending -> failed    (timeout, non-2xx, network error, stale sweep)
        failed  -> pending   (explicit retry: admin action or sweep)
    """

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class MessageDirection(str, enum.Enum):
    """Direction of a conversation ledger entry relative to the bot."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"
