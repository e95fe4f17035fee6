"""ResponseValidator — checks and normalizes a reply to the current question.

Dispatches on ``response_kind``:

  - **free_text**: always accepted (trimmed); empty is rejected only when
    the question is required
  - **single_choice**: case-insensitive match against ``choices`` first,
    then a 1-based option number; normalizes to the canonical choice text
  - **image**: requires media, which is persisted through the MediaStore

``external_check`` questions are answered with yes/no and are handled by the
engine's confirmation sub-flow, never here.
"""

from __future__ import annotations

import logging

from survey_engine import constants
from survey_engine.interfaces import MediaStore
from survey_engine.models.message import MediaPayload
from survey_engine.models.question import QuestionDefinition, ResponseKind
from survey_engine.models.validation import Accepted, Rejected, ValidationResult
from survey_engine.render import MessageRenderer

logger = logging.getLogger(__name__)


class ResponseValidator:
    """Validates raw replies against a question definition.

    Args:
        media_store: where accepted images are persisted.  Required only if
            the questionnaire contains image questions.
        renderer: renders the choice-list correction text.
    """

    def __init__(
        self,
        media_store: MediaStore | None = None,
        renderer: MessageRenderer | None = None,
    ) -> None:
        self._media_store = media_store
        self._renderer = renderer or MessageRenderer()

    async def validate(
        self,
        question: QuestionDefinition,
        raw_input: str,
        media: MediaPayload | None = None,
        *,
        user_id: str,
    ) -> ValidationResult:
        """Validate ``raw_input`` (and ``media``) against ``question``.

        Returns ``Accepted`` with the normalized answer, or ``Rejected`` with
        the correction text to send back.  Media persistence errors propagate.
        """
        kind = question.response_kind
        if kind == ResponseKind.FREE_TEXT:
            return self._validate_free_text(question, raw_input)
        elif kind == ResponseKind.SINGLE_CHOICE:
            return self._validate_choice(question, raw_input)
        elif kind == ResponseKind.IMAGE:
            return await self._validate_image(question, media, user_id)
        else:
            raise ValueError(
                f"Question {question.id} has response kind '{kind.value}', "
                f"which is only valid during the external check flow"
            )

    # ------------------------------------------------------------------
    # Kind-specific validators
    # ------------------------------------------------------------------

    def _validate_free_text(
        self, question: QuestionDefinition, raw_input: str
    ) -> ValidationResult:
        text = (raw_input or "").strip()
        if not text and question.is_required:
            return Rejected(correction_text=constants.REQUIRED_TEXT_MESSAGE)
        return Accepted(normalized_answer=text)

    def _validate_choice(
        self, question: QuestionDefinition, raw_input: str
    ) -> ValidationResult:
        choice = match_choice(question.choices, raw_input)
        if choice is None:
            return Rejected(
                correction_text=self._renderer.render_choice_correction(question)
            )
        return Accepted(normalized_answer=choice)

    async def _validate_image(
        self,
        question: QuestionDefinition,
        media: MediaPayload | None,
        user_id: str,
    ) -> ValidationResult:
        if media is None:
            return Rejected(correction_text=constants.IMAGE_REQUIRED_MESSAGE)
        if self._media_store is None:
            raise RuntimeError(
                f"Question {question.id} expects an image but no media store is configured"
            )
        media_ref = await self._media_store.save(user_id, media)
        logger.info("Stored image for %s question %s at %s", user_id, question.id, media_ref)
        return Accepted(normalized_answer=constants.IMAGE_ANSWER, media_ref=media_ref)


def match_choice(choices: list[str], raw_input: str) -> str | None:
    """Resolve a reply to one of ``choices``.

    Text match (trimmed, case-insensitive) wins over the option number, so a
    choice that is itself a number is matched by its text.
    """
    text = (raw_input or "").strip()
    if not text:
        return None

    folded = text.casefold()
    for choice in choices:
        if choice.strip().casefold() == folded:
            return choice

    if text.isdecimal():
        index = int(text)
        if 1 <= index <= len(choices):
            return choices[index - 1]
    return None
