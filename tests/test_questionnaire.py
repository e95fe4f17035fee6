"""Questionnaire snapshot and YAML seed loader tests."""

import pytest
from pydantic import ValidationError

from survey_engine.models.question import QuestionDefinition, ResponseKind
from survey_engine.questionnaire import Questionnaire, load_seed


class TestQuestionnaire:

    def test_sorted_and_inactive_dropped(self, questions):
        shuffled = list(reversed(questions)) + [
            QuestionDefinition(id="hidden", order=-1, text="?", active=False),
        ]
        qn = Questionnaire(shuffled)
        assert [q.id for q in qn] == [
            "name", "likes", "why_not", "photo", "check", "comments",
        ]
        assert qn.get("hidden") is None
        assert len(qn) == 6

    def test_get_none_and_unknown(self, questions):
        qn = Questionnaire(questions)
        assert qn.get(None) is None
        assert qn.get("nope") is None
        assert qn.get("likes").order == 1

    def test_after_uses_sort_key(self, questions):
        qn = Questionnaire(questions)
        assert [q.id for q in qn.after((3, "photo"))] == ["check", "comments"]
        # A key between two questions still resumes correctly
        assert [q.id for q in qn.after((2, "zzz"))][0] == "photo"

    def test_empty(self):
        qn = Questionnaire([])
        assert qn.first() is None
        assert qn.questions == []

    def test_from_records_reads_attributes(self, questions):
        class Row:
            def __init__(self, q):
                for k, v in q.model_dump().items():
                    setattr(self, k, v)

        qn = Questionnaire.from_records(Row(q) for q in questions)
        assert qn.first().id == "name"
        assert qn.get("check").external_check.endpoint_id == "ep1"


class TestQuestionDefinition:

    def test_single_choice_requires_choices(self):
        with pytest.raises(ValidationError, match="requires choices"):
            QuestionDefinition(id="q", text="?", response_kind="single_choice")

    def test_choices_only_for_single_choice(self):
        with pytest.raises(ValidationError, match="only valid for single_choice"):
            QuestionDefinition(id="q", text="?", choices=["a"])

    def test_external_check_requires_config(self):
        with pytest.raises(ValidationError, match="external_check config"):
            QuestionDefinition(id="q", text="?", response_kind="external_check")

    def test_config_only_for_external_check(self):
        with pytest.raises(ValidationError, match="external_check config"):
            QuestionDefinition(id="q", text="?", external_check={"endpoint_id": "e"})


class TestLoadSeed:

    def test_default_seed_loads(self):
        seed = load_seed()
        kinds = {q.response_kind for q in seed.questions}
        assert kinds == set(ResponseKind), "Default seed should cover every kind"
        endpoint_ids = {e.id for e in seed.endpoints}
        for q in seed.questions:
            if q.external_check is not None:
                assert q.external_check.endpoint_id in endpoint_ids
        assert seed.welcome_messages, "Default seed should ship welcome messages"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_seed(tmp_path / "missing.yaml")

    def test_duplicate_ids_rejected(self, tmp_path):
        path = tmp_path / "dupes.yaml"
        path.write_text(
            "questions:\n"
            "  - {id: a, text: One}\n"
            "  - {id: a, text: Two}\n",
            encoding="utf-8",
        )
        with pytest.raises(ValueError, match="Duplicate question ids"):
            load_seed(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        seed = load_seed(path)
        assert seed.questions == []
