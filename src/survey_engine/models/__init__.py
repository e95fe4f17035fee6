"""Public model re-exports for survey_engine.

Consumers should import from ``survey_engine.models`` rather than
reaching into sub-modules directly.
"""

# --- Questions ---
from survey_engine.models.question import (
    BranchCondition,
    ConditionOperator,
    ExternalCheckConfig,
    FieldMapping,
    MappingSource,
    QuestionDefinition,
    ResponseKind,
)

# --- Sessions ---
from survey_engine.models.session import (
    AdvanceResult,
    Answer,
    SessionSummary,
    SurveySession,
)

# --- External checks ---
from survey_engine.models.endpoint import ApiEndpoint
from survey_engine.models.external_call import ExternalCheckCall, SweepReport

# --- Messages ---
from survey_engine.models.message import InboundMessage, LedgerEntry, MediaPayload
from survey_engine.models.validation import Accepted, Rejected, ValidationResult

# --- Welcome ---
from survey_engine.models.welcome import (
    WelcomeCondition,
    WelcomeField,
    WelcomeMessage,
    WelcomeOperator,
)

__all__ = [
    "BranchCondition",
    "ConditionOperator",
    "ExternalCheckConfig",
    "FieldMapping",
    "MappingSource",
    "QuestionDefinition",
    "ResponseKind",
    "AdvanceResult",
    "Answer",
    "SessionSummary",
    "SurveySession",
    "ApiEndpoint",
    "ExternalCheckCall",
    "SweepReport",
    "InboundMessage",
    "LedgerEntry",
    "MediaPayload",
    "Accepted",
    "Rejected",
    "ValidationResult",
    "WelcomeCondition",
    "WelcomeField",
    "WelcomeMessage",
    "WelcomeOperator",
]
