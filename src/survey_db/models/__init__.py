"""ORM models for survey_db."""

from survey_db.models.base import Base
from survey_db.models.conversation import ConversationMessage
from survey_db.models.enums import CallStatus, MessageDirection
from survey_db.models.external_call import ExternalCheckCallRecord
from survey_db.models.questionnaire import (
    ApiEndpointRecord,
    QuestionRecord,
    WelcomeMessageRecord,
)
from survey_db.models.session import SurveySessionRecord

__all__ = [
    "Base",
    "CallStatus",
    "MessageDirection",
    "ConversationMessage",
    "ExternalCheckCallRecord",
    "ApiEndpointRecord",
    "QuestionRecord",
    "WelcomeMessageRecord",
    "SurveySessionRecord",
]
