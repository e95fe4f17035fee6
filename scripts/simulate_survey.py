#!/usr/bin/env python3
"""Simulate a WhatsApp survey conversation end-to-end with mocked DB and channel.

Loads a questionnaire seed (``questionnaires/default.yaml`` by default),
feeds replies through the InboundDispatcher exactly as the webhook would,
and prints the conversation: every bot message, the reply chosen, and the
resulting external check calls.

By default replies are **randomised** (``--random``, on by default) so each
run explores a different path through the branch conditions, including the
occasional invalid reply.  Use ``--no-random`` for a deterministic run.

Usage::

    # Default run (random replies)
    python scripts/simulate_survey.py

    # Deterministic run
    python scripts/simulate_survey.py --no-random

    # Make the external check endpoint fail (exercises the failure notice)
    python scripts/simulate_survey.py --fail-check

    # Another questionnaire
    python scripts/simulate_survey.py --seed questionnaires/pilot.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import sys
from datetime import timezone
from pathlib import Path

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path so we can import both the SDK and
# test mock infrastructure.
# ---------------------------------------------------------------------------
_SCRIPT_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _SCRIPT_DIR.parent
sys.path.insert(0, str(_REPO_ROOT / "tests"))
sys.path.insert(0, str(_REPO_ROOT / "src"))

import httpx  # noqa: E402

from helpers.mocks import (  # noqa: E402
    FakeChannel,
    FakeMediaStore,
    FakeSessionFactory,
    MockCallRepository,
    MockEndpointRepository,
    MockLedgerRepository,
    MockQuestionRepository,
    MockSessionRepository,
    MockWelcomeRepository,
)
from survey_engine import constants  # noqa: E402
from survey_engine.dispatcher import InboundDispatcher  # noqa: E402
from survey_engine.engine import SurveyEngine  # noqa: E402
from survey_engine.invoker import ExternalCheckInvoker  # noqa: E402
from survey_engine.locks import UserLocks  # noqa: E402
from survey_engine.messenger import Messenger  # noqa: E402
from survey_engine.models.message import MediaPayload  # noqa: E402
from survey_engine.models.question import QuestionDefinition, ResponseKind  # noqa: E402
from survey_engine.questionnaire import load_seed  # noqa: E402
from survey_engine.welcome import WelcomeSelector  # noqa: E402

USER_ID = "972500000001@c.us"
_PHOTO = MediaPayload(data=b"\xff\xd8simulated", mime_type="image/jpeg")
_FREE_TEXT = ["Dana Levi", "Haifa", "No comments", "All good, thanks"]
_INVALID_RATE = 0.15
_MAX_TURNS = 100

_DOUBLE_LINE = "=" * 62
_SINGLE_LINE = "-" * 62
_quiet = False


def _print(*args, **kwargs) -> None:
    if not _quiet:
        print(*args, **kwargs)


# ---------------------------------------------------------------------------
# Reply generation
# ---------------------------------------------------------------------------

def choose_reply(
    question: QuestionDefinition, rng: random.Random | None
) -> tuple[str, MediaPayload | None]:
    """Pick a reply for ``question``; ``rng=None`` means deterministic."""
    if rng is not None and rng.random() < _INVALID_RATE:
        return "???", None

    kind = question.response_kind
    if kind == ResponseKind.SINGLE_CHOICE:
        if rng is None:
            return "1", None
        index = rng.randrange(len(question.choices))
        # Alternate between option numbers and texts
        return (str(index + 1) if rng.random() < 0.5 else question.choices[index]), None
    if kind == ResponseKind.IMAGE:
        return "", _PHOTO
    if kind == ResponseKind.EXTERNAL_CHECK:
        if rng is None:
            return "yes", None
        return rng.choice(["yes", "כן", "no"]), None
    return (rng.choice(_FREE_TEXT) if rng else _FREE_TEXT[0]), None


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------

async def run_simulation(seed_path: Path | None, randomise: bool, fail_check: bool) -> int:
    seed = load_seed(seed_path)
    rng = random.Random() if randomise else None

    # --- In-memory wiring, same shape as the server lifespan ---
    factory = FakeSessionFactory()
    channel = FakeChannel(media={"photo": _PHOTO})
    sessions = MockSessionRepository()
    calls = MockCallRepository()

    messenger = Messenger(channel, factory)
    messenger._ledger = MockLedgerRepository()

    engine = SurveyEngine(media_store=FakeMediaStore(), welcome=WelcomeSelector(tz=timezone.utc))
    engine._questions = MockQuestionRepository(seed.questions)
    engine._sessions = sessions
    engine._calls = calls
    engine._welcome_messages = MockWelcomeRepository(seed.welcome_messages)

    status = 500 if fail_check else 200

    def endpoint(request: httpx.Request) -> httpx.Response:
        _print(f"     [http] POST {request.url} {request.content.decode()}")
        return httpx.Response(status, json={"eligible": not fail_check})

    locks = UserLocks()
    invoker = ExternalCheckInvoker(
        factory, messenger=messenger, locks=locks,
        http_transport=httpx.MockTransport(endpoint),
    )
    invoker._calls = calls
    invoker._endpoints = MockEndpointRepository(seed.endpoints)
    dispatcher = InboundDispatcher(engine, messenger, invoker, factory, locks=locks)

    _print(_DOUBLE_LINE)
    _print(" SURVEY SIMULATION")
    _print(f" Questions: {len(seed.questions)}")
    _print(f" Random:    {'ON' if randomise else 'OFF'}")
    _print(_DOUBLE_LINE)

    # --- Conversation loop ---
    reply, media = "היי", None
    for turn in range(1, _MAX_TURNS + 1):
        _print(f"\n{_SINGLE_LINE}")
        _print(f" [user] {reply or '(image)'}")
        sent = await dispatcher.on_message(
            USER_ID, reply, media is not None,
            (lambda: channel.download_media("photo")) if media else None,
            media_id="photo" if media else None,
        )
        await invoker.drain()
        for text in sent:
            _print(f" [bot]  {text}".replace("\n", "\n        "))

        row = next(iter(sessions.rows.values()), None)
        if row is None or row.is_completed:
            break
        current = next(q for q in seed.questions if q.id == row.current_question_id)
        reply, media = choose_reply(current, rng)
    else:
        _print(f"\n Stopped after {_MAX_TURNS} turns without completing")
        return 1

    # --- Summary ---
    _print(f"\n{_DOUBLE_LINE}")
    _print(" RESULT")
    _print(_DOUBLE_LINE)
    if row is not None:
        for answer in row.answers:
            _print(f" {answer['question_id']:<20s} {answer['normalized_answer']}")
    for call in calls.rows.values():
        _print(f" call {call.id} -> {call.status.value} {call.error_message or ''}")
    failures = channel.texts_for(USER_ID).count(constants.CALL_FAILED_MESSAGE)
    _print(f"\n Simulation complete ({turn} turns, {failures} failure notice(s))")
    return 0


def main() -> None:
    global _quiet

    parser = argparse.ArgumentParser(
        description="Simulate a survey conversation end-to-end with mocked DB and channel.",
    )
    parser.add_argument("--seed", type=Path, default=None, help="Questionnaire YAML")
    parser.add_argument(
        "--random",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Randomise replies (default: on). Use --no-random for deterministic mode.",
    )
    parser.add_argument(
        "--fail-check",
        action="store_true",
        help="Make the external check endpoint answer HTTP 500",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress all print output (exit code still reflects success/failure)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show SDK logs")
    args = parser.parse_args()

    _quiet = args.quiet
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    sys.exit(asyncio.run(run_simulation(args.seed, args.random, args.fail_check)))


if __name__ == "__main__":
    main()
