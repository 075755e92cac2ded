"""
Instance lifecycle tests.

State machine (INSTANCE_TRANSITIONS):
    open -> locked   (submit, respondent)
    open | locked -> open   (unlock, admin)

Also covered: link generation, delete rules, answer cleanup, progress in
the admin detail view.
"""

import re

import pytest
from sqlalchemy.dialects import postgresql

from vsaq.core.exceptions import (
    AlreadySubmittedError,
    CannotDeleteSubmittedError,
    NotFoundError,
)
from vsaq.engine.fill_session import REJECT_LOCKED, SaveAccepted
from vsaq.models import db
from vsaq.models.questionnaire import INSTANCE_TRANSITIONS, Answer, QuestionnaireInstance
from vsaq.services import answer_service, instance_service


def _load(instance_id):
    return db.session.get(QuestionnaireInstance, instance_id)


# ═════════════════════════════════════════════════════════════════════════════
# creation
# ═════════════════════════════════════════════════════════════════════════════


class TestCreate:
    def test_new_instance_is_open_with_unique_link(self, instance):
        assert re.fullmatch(r"[0-9a-f]{32}", instance["unique_link"])
        assert instance["status"] == "open"
        assert instance["is_locked"] is False
        assert instance["sent_at"] is not None
        assert instance["submitted_at"] is None
        assert instance["url"] == f"http://vsaq.test/fill/{instance['unique_link']}"
        assert instance["target_name"] == "Acme Corp"
        assert instance["template_name"] == "Vendor Review"

    def test_links_differ(self, template, admin):
        links = {
            instance_service.create_instance(template["id"], admin.id)["unique_link"]
            for _ in range(5)
        }
        assert len(links) == 5

    def test_unknown_template(self, admin):
        with pytest.raises(NotFoundError):
            instance_service.create_instance(999, admin.id)


# ═════════════════════════════════════════════════════════════════════════════
# transitions
# ═════════════════════════════════════════════════════════════════════════════


class TestTransitions:
    def test_transition_table(self):
        assert INSTANCE_TRANSITIONS["submit"] == {"from": ["open"], "to": "locked"}
        assert INSTANCE_TRANSITIONS["unlock"]["to"] == "open"

    def test_validate_transition(self, instance):
        inst = _load(instance["id"])
        assert instance_service.validate_instance_transition(inst, "submit")["valid"] is True
        result = instance_service.validate_instance_transition(inst, "archive")
        assert result["valid"] is False
        assert "Unknown action" in result["reason"]

        inst.is_locked = True
        result = instance_service.validate_instance_transition(inst, "submit")
        assert result == {"valid": False, "from": "locked", "to": "locked",
                          "reason": "Cannot 'submit' from status 'locked'"}

    def test_submit_locks_and_stamps(self, instance):
        result = instance_service.submit_instance(instance["unique_link"])
        assert result["status"] == "locked"
        assert result["submitted_at"] is not None

    def test_submit_twice_refused(self, instance):
        instance_service.submit_instance(instance["unique_link"])
        with pytest.raises(AlreadySubmittedError):
            instance_service.submit_instance(instance["unique_link"])

    def test_submit_unknown_link(self):
        with pytest.raises(NotFoundError):
            instance_service.submit_instance("nope")

    def test_locked_rejects_saves_until_unlocked(self, instance):
        link = instance["unique_link"]
        answer_service.save_answer(link, "has_sec", "yes", 0)
        instance_service.submit_instance(link)
        assert answer_service.save_answer(link, "has_sec", "no", 1).reason == REJECT_LOCKED

        unlocked = instance_service.unlock_instance(instance["id"])
        assert unlocked["status"] == "open"
        assert unlocked["submitted_at"] is None
        assert isinstance(answer_service.save_answer(link, "has_sec", "no", 1), SaveAccepted)

    def test_unlock_open_instance_is_noop(self, instance):
        assert instance_service.unlock_instance(instance["id"])["status"] == "open"

    def test_unlock_unknown(self):
        with pytest.raises(NotFoundError):
            instance_service.unlock_instance(12345)


class TestRowLocks:
    """Saves share the instance row; submit takes it exclusively."""

    @pytest.mark.parametrize("lock,clause,absent", [
        ("share", "FOR SHARE", None),
        ("update", "FOR UPDATE", "FOR SHARE"),
        (None, None, "FOR"),
    ])
    def test_query_lock_clause(self, lock, clause, absent):
        sql = str(answer_service.instance_by_link_query("abc", lock).compile(
            dialect=postgresql.dialect()))
        if clause:
            assert clause in sql
        if absent:
            assert absent not in sql

    def test_submit_locks_row_exclusively(self, instance, monkeypatch):
        seen = []
        real = instance_service.find_instance_by_link

        def spy(link, **kwargs):
            seen.append(kwargs.get("lock"))
            return real(link, **kwargs)

        monkeypatch.setattr(instance_service, "find_instance_by_link", spy)
        instance_service.submit_instance(instance["unique_link"])
        assert seen == ["update"]

    def test_save_locks_row_shared(self, instance, monkeypatch):
        seen = []
        real = answer_service.find_instance_by_link

        def spy(link, **kwargs):
            seen.append(kwargs.get("lock"))
            return real(link, **kwargs)

        monkeypatch.setattr(answer_service, "find_instance_by_link", spy)
        answer_service.save_answer(instance["unique_link"], "has_sec", "yes", 0)
        assert seen == ["share"]


# ═════════════════════════════════════════════════════════════════════════════
# delete
# ═════════════════════════════════════════════════════════════════════════════


class TestDelete:
    def test_delete_open_removes_answers(self, instance):
        answer_service.save_answer(instance["unique_link"], "has_sec", "yes", 0)
        instance_service.delete_instance(instance["id"])
        assert _load(instance["id"]) is None
        assert Answer.query.filter_by(instance_id=instance["id"]).count() == 0

    def test_delete_submitted_refused(self, instance):
        instance_service.submit_instance(instance["unique_link"])
        with pytest.raises(CannotDeleteSubmittedError):
            instance_service.delete_instance(instance["id"])
        assert _load(instance["id"]) is not None

    def test_delete_after_unlock_allowed(self, instance):
        instance_service.submit_instance(instance["unique_link"])
        instance_service.unlock_instance(instance["id"])
        instance_service.delete_instance(instance["id"])
        assert _load(instance["id"]) is None


# ═════════════════════════════════════════════════════════════════════════════
# reads
# ═════════════════════════════════════════════════════════════════════════════


class TestReads:
    def test_get_instance_includes_progress(self, instance):
        answer_service.save_answer(instance["unique_link"], "has_sec", "yes", 0)
        detail = instance_service.get_instance(instance["id"])
        assert detail["answer_count"] == 1
        assert detail["answers"]["has_sec"]["value"] == "yes"
        assert detail["progress"] == {"answered": 1, "total": 2, "percent": 50}

    def test_list_instances_counts_answers(self, instance, template, admin):
        other = instance_service.create_instance(template["id"], admin.id)
        answer_service.save_answer(instance["unique_link"], "has_sec", "no", 0)
        answer_service.save_answer(instance["unique_link"], "detail", "n/a", 0)

        rows = {row["id"]: row for row in instance_service.list_instances()}
        assert rows[instance["id"]]["answer_count"] == 2
        assert rows[other["id"]]["answer_count"] == 0
        assert rows[other["id"]]["url"].endswith(other["unique_link"])

    def test_get_for_respondent_payload(self, instance):
        answer_service.save_answer(instance["unique_link"], "has_sec", "yes", 0)
        payload = instance_service.get_for_respondent(instance["unique_link"])
        assert set(payload) >= {
            "instance_id", "template_content", "is_locked", "submitted_at", "answers", "version",
        }
        assert payload["is_locked"] is False
        assert payload["answers"]["has_sec"]["version"] == 1
        assert payload["questionnaire_name"] == "Vendor Review"

    def test_get_for_respondent_unknown(self):
        with pytest.raises(NotFoundError):
            instance_service.get_for_respondent("missing")
