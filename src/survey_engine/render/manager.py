"""MessageRenderer — Jinja2-based renderer for outbound survey messages.

Loads templates from the ``template/`` directory.  Questions are dispatched
to a template by ``response_kind``; corrections and the welcome prefix have
their own templates.  Output is plain text (WhatsApp has no markup we rely
on), so autoescaping is off.
"""

from __future__ import annotations

from pathlib import Path

import jinja2

from survey_engine import constants
from survey_engine.models.question import QuestionDefinition, ResponseKind

# --- response_kind-to-template mapping ---
_KIND_TEMPLATES: dict[ResponseKind, str] = {
    ResponseKind.FREE_TEXT: "free_text.jinja2",
    ResponseKind.SINGLE_CHOICE: "single_choice.jinja2",
    ResponseKind.IMAGE: "image.jinja2",
    ResponseKind.EXTERNAL_CHECK: "external_check.jinja2",
}


class MessageRenderer:
    """Renders questions, corrections and welcome prefixes to text.

    Args:
        template_dir: optional override for the template directory.
            Defaults to ``template/`` sibling of this module.
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        if template_dir is None:
            template_dir = Path(__file__).parent / "template"
        self._env = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(template_dir)),
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )

    def render(self, template_name: str, **context) -> str:
        """Render a named template with arbitrary context."""
        template = self._env.get_template(template_name)
        return template.render(**context).rstrip()

    def render_question(self, question: QuestionDefinition) -> str:
        """Render a question as it is first presented to the user."""
        confirmation_prompt = None
        if question.external_check is not None:
            confirmation_prompt = (
                question.external_check.confirmation_prompt
                or constants.DEFAULT_CONFIRMATION_PROMPT
            )
        return self.render(
            _KIND_TEMPLATES[question.response_kind],
            question=question,
            choices_heading=constants.CHOICES_HEADING,
            image_prompt=constants.IMAGE_PROMPT,
            confirmation_prompt=confirmation_prompt,
        )

    def render_choice_correction(self, question: QuestionDefinition) -> str:
        """Re-state the valid choices after an unrecognised reply."""
        return self.render(
            "choice_correction.jinja2",
            question=question,
            heading=constants.CHOICE_CORRECTION_HEADING,
        )

    def render_confirmation(self, question: QuestionDefinition) -> str:
        """Re-prompt for yes/no at an external check question."""
        if question.external_check and question.external_check.confirmation_prompt:
            return question.external_check.confirmation_prompt
        return constants.DEFAULT_CONFIRMATION_PROMPT

    def render_welcome(self, welcome_text: str, body: str) -> str:
        """Prefix ``body`` (usually the first question) with a welcome text."""
        if not welcome_text:
            return body
        return self.render("welcome.jinja2", welcome=welcome_text, body=body)
