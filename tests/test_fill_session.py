"""
Respondent fill session tests.

Runs FillSession against the in-process LocalAnswerStore (real services and
database) and against a scripted store for transport failures.
"""

import pytest

from vsaq.core.exceptions import AlreadySubmittedError, ValidationError
from vsaq.engine.fill_session import (
    REJECT_CONFLICTED,
    REJECT_LOCKED,
    FillSession,
    SaveAccepted,
    SaveConflict,
    SaveFailed,
    SaveRejected,
)
from vsaq.services.local_store import LocalAnswerStore

from conftest import simple_content


def _open(link):
    return FillSession(LocalAnswerStore(), link).load()


# ═════════════════════════════════════════════════════════════════════════════
# against the real store
# ═════════════════════════════════════════════════════════════════════════════


class TestLocalStore:
    def test_fill_and_submit(self, instance):
        fs = _open(instance["unique_link"])
        assert fs.name == "Vendor Review"
        assert fs.progress().percent == 0

        outcome = fs.set_answer("has_sec", "yes")
        assert isinstance(outcome, SaveAccepted)
        assert outcome.version == 1
        assert fs.versions["has_sec"] == 1
        assert fs.progress().to_dict() == {"answered": 1, "total": 2, "percent": 50}

        fs.set_answer("detail", "24/7 SOC")
        assert fs.progress().percent == 100

        fs.submit()
        assert fs.is_locked
        assert fs.set_answer("detail", "late edit") == SaveRejected(REJECT_LOCKED, "Questionnaire is locked")

    def test_stale_tab_conflict_blocks_submit_until_reload(self, instance):
        link = instance["unique_link"]
        tab_a = _open(link)
        tab_a.set_answer("q1", "first")

        tab_b = _open(link)
        assert tab_b.versions["q1"] == 1
        tab_a.set_answer("q1", "second")

        outcome = tab_b.set_answer("q1", "stale")
        assert isinstance(outcome, SaveConflict)
        assert outcome.to_dict()["server_version"] == 2
        assert tab_b.conflicted_ids == ["q1"]
        assert not tab_b.can_submit

        assert tab_b.set_answer("q1", "retry").reason == REJECT_CONFLICTED
        with pytest.raises(ValidationError):
            tab_b.submit()

        tab_b.reload()
        assert tab_b.answers["q1"] == "second"
        assert tab_b.conflicted_ids == []
        assert tab_b.set_answer("q1", "merged").version == 3
        tab_b.submit()

    def test_other_fields_unaffected_by_conflict(self, instance):
        link = instance["unique_link"]
        tab_a, tab_b = _open(link), _open(link)
        tab_a.set_answer("q1", "a")
        assert isinstance(tab_b.set_answer("q1", "b"), SaveConflict)
        assert isinstance(tab_b.set_answer("q2", "fine"), SaveAccepted)

    def test_server_side_lock_detected(self, instance):
        link = instance["unique_link"]
        fs = _open(link)
        _open(link).submit()
        assert fs.set_answer("has_sec", "no").reason == REJECT_LOCKED
        assert fs.is_locked

    def test_double_submit(self, instance):
        link = instance["unique_link"]
        fs = _open(link)
        _open(link).submit()
        with pytest.raises(AlreadySubmittedError):
            fs.submit()

    def test_hidden_answers_are_kept(self, instance):
        fs = _open(instance["unique_link"])
        fs.set_answer("has_sec", "yes")
        fs.set_answer("detail", "kept")
        fs.set_answer("has_sec", "no")
        assert fs.progress().to_dict() == {"answered": 1, "total": 1, "percent": 100}
        fs.set_answer("has_sec", "yes")
        assert fs.answers["detail"] == "kept"
        assert fs.progress().percent == 100


# ═════════════════════════════════════════════════════════════════════════════
# scripted store
# ═════════════════════════════════════════════════════════════════════════════


class _ScriptedStore:
    def __init__(self, outcomes, answers=None):
        self.outcomes = list(outcomes)
        self.saves = []
        self.answers = answers or {}

    def fetch(self, link):
        return {
            "instance_id": 1,
            "template_content": simple_content(),
            "is_locked": False,
            "submitted_at": None,
            "answers": self.answers,
            "version": 1,
        }

    def save(self, link, question_id, value, client_version):
        self.saves.append((question_id, value, client_version))
        return self.outcomes.pop(0)

    def submit(self, link):
        pass


class TestScriptedStore:
    def test_failure_does_not_advance_version(self):
        store = _ScriptedStore([SaveFailed("timeout"), SaveAccepted(1)])
        fs = FillSession(store, "link").load()

        assert isinstance(fs.set_answer("has_sec", "yes"), SaveFailed)
        assert "has_sec" not in fs.versions
        assert fs.errors["has_sec"] == "timeout"
        # local edit is kept and still drives visibility
        assert fs.progress().total == 2

        fs.set_answer("has_sec", "yes")
        assert store.saves == [("has_sec", "yes", 0), ("has_sec", "yes", 0)]
        assert fs.versions["has_sec"] == 1
        assert "has_sec" not in fs.errors

    def test_seeded_versions_are_sent(self):
        answers = {"has_sec": {"value": "no", "version": 4, "updated_at": None}}
        store = _ScriptedStore([SaveAccepted(5)], answers=answers)
        fs = FillSession(store, "link").load()
        assert fs.answers == {"has_sec": "no"}
        fs.set_answer("has_sec", "yes")
        assert store.saves == [("has_sec", "yes", 4)]
        assert fs.versions["has_sec"] == 5

    def test_requires_load(self):
        with pytest.raises(RuntimeError):
            FillSession(_ScriptedStore([]), "link").set_answer("q1", "x")

    def test_requires_question_id(self):
        fs = FillSession(_ScriptedStore([]), "link").load()
        with pytest.raises(ValidationError):
            fs.set_answer("", "x")

    def test_to_dict(self):
        fs = FillSession(_ScriptedStore([SaveConflict(3)]), "link").load()
        fs.set_answer("has_sec", "yes")
        out = fs.to_dict()
        assert out["conflicts"] == ["has_sec"]
        assert out["progress"]["total"] == 2
        assert out["presentation"]["items"][0]["branch"] == "yes"
