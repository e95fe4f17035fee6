"""survey_engine — conversational survey SDK.

Public API:
    SurveyEngine          — session state machine (start_session / advance)
    InboundDispatcher     — per-message entry point (on_message)
    ExternalCheckInvoker  — external check calls (dispatch / retry / sweep)
    ResponseValidator     — validates and normalizes replies
    BranchingResolver     — picks the next eligible question
    Questionnaire         — sorted snapshot of active questions
    Messenger             — outbound sends + conversation ledger
    ChannelSession        — transport connection supervisor
    MessageRenderer       — Jinja2 rendering of outbound texts
    WelcomeSelector       — time-based welcome message selection
    LocalMediaStore       — filesystem storage for image answers
    UserLocks             — per-user serialization

Interfaces:
    MessageChannel / ChannelTransport / MediaStore
"""

from survey_engine.channel import ChannelSession, ChannelState, ChannelStatus
from survey_engine.dispatcher import InboundDispatcher
from survey_engine.engine import SurveyEngine
from survey_engine.errors import (
    CallAlreadyPending,
    CallNotFound,
    ChannelUnavailable,
    InvalidCallTransition,
    NoActiveQuestions,
    SessionCompleted,
    SurveyError,
)
from survey_engine.interfaces import ChannelTransport, MediaStore, MessageChannel
from survey_engine.invoker import ExternalCheckInvoker, build_request_payload
from survey_engine.locks import UserLocks
from survey_engine.media import LocalMediaStore
from survey_engine.messenger import Messenger
from survey_engine.questionnaire import Questionnaire, load_seed
from survey_engine.render import MessageRenderer
from survey_engine.resolver import BranchingResolver
from survey_engine.validator import ResponseValidator
from survey_engine.welcome import WelcomeSelector

__all__ = [
    # Engine & collaborators
    "SurveyEngine",
    "InboundDispatcher",
    "ExternalCheckInvoker",
    "ResponseValidator",
    "BranchingResolver",
    "Questionnaire",
    "Messenger",
    "ChannelSession",
    "ChannelState",
    "ChannelStatus",
    "MessageRenderer",
    "WelcomeSelector",
    "LocalMediaStore",
    "UserLocks",
    "build_request_payload",
    "load_seed",
    # Interfaces
    "MessageChannel",
    "ChannelTransport",
    "MediaStore",
    # Errors
    "SurveyError",
    "NoActiveQuestions",
    "SessionCompleted",
    "CallNotFound",
    "CallAlreadyPending",
    "InvalidCallTransition",
    "ChannelUnavailable",
]
