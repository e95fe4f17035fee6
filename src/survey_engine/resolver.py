"""BranchingResolver — picks the next question to ask.

Traversal is monotonic in ``(order, id)``: the resolver scans the active
questions strictly after the current one and returns the first candidate
that is unanswered and whose branch conditions all hold.  ``None`` means
the questionnaire is exhausted and the session should complete.
"""

from __future__ import annotations

import logging
from typing import Iterable

from survey_engine.models.question import (
    BranchCondition,
    ConditionOperator,
    QuestionDefinition,
)
from survey_engine.models.session import SurveySession
from survey_engine.questionnaire import Questionnaire

logger = logging.getLogger(__name__)


class BranchingResolver:
    """Evaluates branch conditions against a session's answers."""

    def first_question(
        self, questionnaire: Questionnaire, session: SurveySession
    ) -> QuestionDefinition | None:
        """First eligible question, scanning from the start."""
        return self._first_eligible(questionnaire, session)

    def next_question(
        self,
        questionnaire: Questionnaire,
        current: QuestionDefinition,
        session: SurveySession,
    ) -> QuestionDefinition | None:
        """First eligible question strictly after ``current``.

        ``current`` need not be in the snapshot any more (deactivated or
        deleted); only its sort key is used.
        """
        return self._first_eligible(questionnaire.after(current.sort_key), session)

    def is_eligible(self, question: QuestionDefinition, session: SurveySession) -> bool:
        """True if ``question`` is unanswered and all its conditions hold."""
        if session.answer_for(question.id) is not None:
            return False
        return all(self._eval_condition(c, session) for c in question.branch_conditions)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _first_eligible(
        self, candidates: Iterable[QuestionDefinition], session: SurveySession
    ) -> QuestionDefinition | None:
        for question in candidates:
            if self.is_eligible(question, session):
                return question
        return None

    def _eval_condition(self, cond: BranchCondition, session: SurveySession) -> bool:
        """Evaluate one condition; an unanswered referenced question fails."""
        answer = session.answer_for(cond.question_id)
        if answer is None:
            return False
        return self._compare(cond.operator, answer.normalized_answer, cond.value)

    @staticmethod
    def _compare(op: ConditionOperator, answer: str, value: str) -> bool:
        """Apply an operator as an exact, case-sensitive string comparison."""
        if op == ConditionOperator.EQUALS:
            return answer == value
        if op == ConditionOperator.NOT_EQUALS:
            return answer != value
        if op == ConditionOperator.CONTAINS:
            return value in answer
        if op == ConditionOperator.STARTS_WITH:
            return answer.startswith(value)
        if op == ConditionOperator.ENDS_WITH:
            return answer.endswith(value)

        logger.warning("Unknown branch operator: %s", op)
        return False
