"""Questionnaire seeding CLI — ``survey-seed``.

Loads a questionnaire YAML (endpoints, welcome messages, questions) and
upserts every definition by id.  Definitions missing from the file are left
untouched; deactivate them with ``active: false``.

Examples::

    # Seed questionnaires/default.yaml
    uv run survey-seed

    # Seed another file
    uv run survey-seed questionnaires/pilot.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from survey_engine.questionnaire import QuestionnaireSeed, load_seed

logger = logging.getLogger(__name__)


async def run_seed(seed: QuestionnaireSeed) -> dict[str, int]:
    """Upsert all definitions from ``seed`` in one transaction."""
    # Lazy imports to avoid loading DB machinery at module import time
    from survey_db.engine import dispose_engine, get_session_factory
    from survey_db.repository import (
        EndpointRepository,
        QuestionRepository,
        WelcomeRepository,
    )

    endpoints = EndpointRepository()
    welcome = WelcomeRepository()
    questions = QuestionRepository()
    factory = get_session_factory()

    try:
        async with factory() as db:
            for endpoint in seed.endpoints:
                await endpoints.upsert(db, **endpoint.model_dump())
            for message in seed.welcome_messages:
                await welcome.upsert(db, **message.model_dump(mode="json"))
            for question in seed.questions:
                await questions.upsert(db, **question.model_dump(mode="json"))
            await db.commit()
    finally:
        await dispose_engine()

    counts = {
        "endpoints": len(seed.endpoints),
        "welcome_messages": len(seed.welcome_messages),
        "questions": len(seed.questions),
    }
    logger.info("Seed complete: %s", counts)
    return counts


def cli() -> None:
    """Console-script entry point: ``survey-seed``."""
    parser = argparse.ArgumentParser(
        prog="survey-seed",
        description="Upsert questionnaire definitions from a YAML file.",
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=None,
        help="Questionnaire YAML (default: questionnaires/default.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    seed = load_seed(Path(args.path) if args.path else None)
    counts = asyncio.run(run_seed(seed))

    print(
        f"Upserted {counts['questions']} questions, {counts['endpoints']} endpoints, "
        f"{counts['welcome_messages']} welcome messages"
    )
    sys.exit(0)
