"""
Answer store tests — compare-and-swap saves, first writes, rejections.
"""

import pytest

from vsaq.core.exceptions import NotFoundError, ValidationError
from vsaq.engine.fill_session import (
    REJECT_LOCKED,
    REJECT_NOT_FOUND,
    SaveAccepted,
    SaveConflict,
    SaveRejected,
)
from vsaq.models import db
from vsaq.models.questionnaire import Answer
from vsaq.services import answer_service, instance_service


# ═════════════════════════════════════════════════════════════════════════════
# versioned writes
# ═════════════════════════════════════════════════════════════════════════════


class TestSaveAnswer:
    def test_first_write_starts_at_version_one(self, instance):
        outcome = answer_service.save_answer(instance["unique_link"], "has_sec", "yes", 0)
        assert isinstance(outcome, SaveAccepted)
        assert outcome.version == 1
        assert outcome.updated_at is not None

    def test_each_accepted_write_increments_by_one(self, instance):
        link = instance["unique_link"]
        versions = []
        version = 0
        for value in ("a", "b", "c"):
            version = answer_service.save_answer(link, "detail", value, version).version
            versions.append(version)
        assert versions == [1, 2, 3]
        record = answer_service.load_answers(instance["id"])["detail"]
        assert record["value"] == "c"
        assert record["version"] == 3

    def test_same_client_version_exactly_one_wins(self, instance):
        link = instance["unique_link"]
        answer_service.save_answer(link, "q1", "first", 0)

        first = answer_service.save_answer(link, "q1", "tab A", 1)
        second = answer_service.save_answer(link, "q1", "tab B", 1)

        assert first == SaveAccepted(version=2, updated_at=first.updated_at)
        assert isinstance(second, SaveConflict)
        assert second.server_version == 2
        assert answer_service.load_answers(instance["id"])["q1"]["value"] == "tab A"

    def test_stale_version_conflicts(self, instance):
        link = instance["unique_link"]
        answer_service.save_answer(link, "q1", "v1", 0)
        answer_service.save_answer(link, "q1", "v2", 1)

        outcome = answer_service.save_answer(link, "q1", "stale", 1)
        assert outcome.to_dict() == {
            "conflict": True, "server_version": 2, "updated_at": outcome.updated_at,
        }
        assert answer_service.load_answers(instance["id"])["q1"]["value"] == "v2"

    def test_second_first_write_conflicts(self, instance):
        link = instance["unique_link"]
        answer_service.save_answer(link, "q1", "one", 0)
        outcome = answer_service.save_answer(link, "q1", "two", None)
        assert isinstance(outcome, SaveConflict)
        assert outcome.server_version == 1

    def test_fields_are_independent(self, instance):
        link = instance["unique_link"]
        answer_service.save_answer(link, "a", "x", 0)
        answer_service.save_answer(link, "a", "y", 1)
        assert answer_service.save_answer(link, "b", "z", 0).version == 1

    def test_concurrent_first_insert_falls_back_to_update(self, instance, monkeypatch):
        link = instance["unique_link"]
        answer_service.save_answer(link, "q1", "winner", 0)

        real = answer_service._stored_version
        calls = {"n": 0}

        def _racy(instance_id, question_id):
            calls["n"] += 1
            # first lookup misses, as if the other insert had not committed yet
            return None if calls["n"] == 1 else real(instance_id, question_id)

        monkeypatch.setattr(answer_service, "_stored_version", _racy)
        outcome = answer_service.save_answer(link, "q1", "loser", 0)

        assert isinstance(outcome, SaveConflict)
        assert outcome.server_version == 1
        assert Answer.query.filter_by(question_id="q1").count() == 1

    def test_non_string_values_are_stored_as_text(self, instance):
        answer_service.save_answer(instance["unique_link"], "n", 5, 0)
        assert answer_service.load_answers(instance["id"])["n"]["value"] == "5"


class TestRejections:
    def test_unknown_link(self):
        outcome = answer_service.save_answer("f" * 32, "q1", "x", 0)
        assert outcome == SaveRejected(REJECT_NOT_FOUND, "Questionnaire not found")

    def test_locked_instance(self, instance):
        instance_service.submit_instance(instance["unique_link"])
        outcome = answer_service.save_answer(instance["unique_link"], "q1", "x", 0)
        assert isinstance(outcome, SaveRejected)
        assert outcome.reason == REJECT_LOCKED
        assert answer_service.count_answers(instance["id"]) == 0

    def test_missing_question_id(self, instance):
        with pytest.raises(ValidationError):
            answer_service.save_answer(instance["unique_link"], "", "x", 0)

    @pytest.mark.parametrize("version", [True, "abc", [1]])
    def test_bad_version(self, instance, version):
        with pytest.raises(ValidationError):
            answer_service.save_answer(instance["unique_link"], "q1", "x", version)


class TestLoad:
    def test_load_by_link(self, instance):
        answer_service.save_answer(instance["unique_link"], "has_sec", "no", 0)
        answers = answer_service.load_answers_by_link(instance["unique_link"])
        assert set(answers) == {"has_sec"}
        assert set(answers["has_sec"]) == {"value", "version", "updated_at"}

    def test_load_unknown_link(self):
        with pytest.raises(NotFoundError):
            answer_service.load_answers_by_link("missing")

    def test_updated_at_is_iso(self, instance):
        answer_service.save_answer(instance["unique_link"], "q1", "x", 0)
        db.session.expire_all()
        stamp = answer_service.load_answers(instance["id"])["q1"]["updated_at"]
        assert stamp.endswith("+00:00")
