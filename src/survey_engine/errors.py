"""Exceptions raised by the survey engine.

Every error derives from :class:`SurveyError`, itself a ``ValueError``, so
the server's global handler maps them to HTTP statuses by message pattern
("not found" -> 404, "already" -> 409, "not connected" -> 503, anything
else -> 400).  Keep the messages consistent with those patterns.
"""


class SurveyError(ValueError):
    """Base class for survey engine errors."""


class NoActiveQuestions(SurveyError):
    """The questionnaire has no eligible active question to start from."""

    def __init__(self) -> None:
        super().__init__("Cannot start a survey: no active questions configured")


class SessionCompleted(SurveyError):
    """``advance`` was called on a session that is already completed."""

    def __init__(self, session_id: object) -> None:
        super().__init__(f"Session {session_id} is already completed")
        self.session_id = session_id


class CallNotFound(SurveyError):
    def __init__(self, call_id: object) -> None:
        super().__init__(f"External check call {call_id} not found")
        self.call_id = call_id


class CallAlreadyPending(SurveyError):
    def __init__(self, call_id: object) -> None:
        super().__init__(f"External check call {call_id} is already pending")
        self.call_id = call_id


class InvalidCallTransition(SurveyError):
    """Retry was requested for a call that is not in the ``failed`` state."""

    def __init__(self, call_id: object, status: str) -> None:
        super().__init__(
            f"Cannot retry external check call {call_id}: status is '{status}', "
            f"only failed calls can be retried"
        )
        self.call_id = call_id
        self.status = status


class ChannelUnavailable(SurveyError):
    """The messaging channel is not connected."""

    def __init__(self, state: str) -> None:
        super().__init__(f"Messaging channel is not connected (state: {state})")
        self.state = state
