"""
Respondent fill session.

``FillSession`` is the client side of the answer store: it loads an
instance through an ``AnswerStore`` (in-process ``LocalAnswerStore`` or the
HTTP ``FillClient``), keeps the respondent's answers and the per-field
versions the server last confirmed, re-renders visibility after every edit
and tracks progress.

Save outcomes are values, not exceptions:
    SaveAccepted   new version stored; local version advances
    SaveConflict   server holds a newer version; field is marked conflicted
    SaveRejected   instance locked / unknown link / field still conflicted
    SaveFailed     transport or server error; nothing advances

Saves are sequenced per field: each question id has its own lock, held for
the whole round trip, so a field never has two saves in flight and its
version stays monotonic.  Different fields never wait on each other.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol

from vsaq.core.exceptions import ValidationError
from vsaq.engine.document import Document, parse
from vsaq.engine.renderer import (
    Presentation,
    Progress,
    flatten_answers,
    progress,
    recompute_visibility,
    render,
)

logger = logging.getLogger(__name__)

REJECT_LOCKED = "LOCKED"
REJECT_NOT_FOUND = "NOT_FOUND"
REJECT_CONFLICTED = "CONFLICTED"


@dataclass(frozen=True)
class SaveAccepted:
    version: int
    updated_at: str | None = None

    def to_dict(self) -> dict:
        return {"success": True, "version": self.version, "updated_at": self.updated_at}


@dataclass(frozen=True)
class SaveConflict:
    server_version: int
    updated_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "conflict": True,
            "server_version": self.server_version,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class SaveRejected:
    reason: str
    message: str = ""


@dataclass(frozen=True)
class SaveFailed:
    error: str


SaveOutcome = SaveAccepted | SaveConflict | SaveRejected | SaveFailed


class AnswerStore(Protocol):
    """What a fill session needs from the answer store."""

    def fetch(self, link: str) -> dict:
        """Return the instance payload (template content, answers, lock state)."""

    def save(self, link: str, question_id: str, value: Any, client_version: int) -> SaveOutcome:
        """Versioned write of one answer."""

    def submit(self, link: str) -> None:
        """Lock the instance; raises AlreadySubmittedError / NotFoundError."""


class FillSession:
    """One respondent's view of one instance.

    Usage:
        session = FillSession(store, link).load()
        outcome = session.set_answer("q1", "yes")
        if session.can_submit:
            session.submit()
    """

    def __init__(self, store: AnswerStore, link: str):
        self.store = store
        self.link = link
        self.instance_id: int | None = None
        self.name = ""
        self.description = ""
        self.is_locked = False
        self.submitted_at: str | None = None
        self.document: Document | None = None
        self.presentation: Presentation | None = None
        self.answers: dict[str, Any] = {}
        self.versions: dict[str, int] = {}
        self.conflicts: dict[str, SaveConflict] = {}
        self.errors: dict[str, str] = {}
        self._state = threading.RLock()
        self._field_locks: dict[str, threading.Lock] = {}

    # ── Loading ──────────────────────────────────────────────────────────

    def load(self) -> FillSession:
        payload = self.store.fetch(self.link)
        with self._state:
            self._seed(payload)
        return self

    def reload(self) -> FillSession:
        """Discard local edits and conflicts; re-seed from the store."""
        logger.info("Reloading fill session", extra={"instance_id": self.instance_id})
        return self.load()

    def _seed(self, payload: dict) -> None:
        self.instance_id = payload.get("instance_id")
        self.name = payload.get("questionnaire_name") or ""
        self.description = payload.get("questionnaire_description") or ""
        self.is_locked = bool(payload.get("is_locked"))
        self.submitted_at = payload.get("submitted_at")
        self.document = parse(payload.get("template_content") or "")

        records = payload.get("answers") or {}
        self.answers = flatten_answers(records)
        self.versions = {
            qid: int(record.get("version") or 0)
            for qid, record in records.items()
            if isinstance(record, dict)
        }
        self.conflicts = {}
        self.errors = {}
        self.presentation = render(self.document, self.answers)

    # ── Editing ──────────────────────────────────────────────────────────

    def _lock_for(self, question_id: str) -> threading.Lock:
        with self._state:
            return self._field_locks.setdefault(question_id, threading.Lock())

    def set_answer(self, question_id: str, value: Any) -> SaveOutcome:
        """Apply ``value`` locally, re-render, and persist it."""
        if self.presentation is None:
            raise RuntimeError("FillSession.load() must be called first")
        if not question_id:
            raise ValidationError("question_id is required")

        with self._lock_for(question_id):
            with self._state:
                if self.is_locked:
                    return SaveRejected(REJECT_LOCKED, "Questionnaire is locked")
                if question_id in self.conflicts:
                    return SaveRejected(REJECT_CONFLICTED, "Reload to resolve the conflict first")
                self.answers[question_id] = value
                recompute_visibility(self.presentation, self.answers)
                client_version = self.versions.get(question_id, 0)

            outcome = self.store.save(self.link, question_id, value, client_version)

            with self._state:
                self._apply(question_id, outcome)
        return outcome

    def _apply(self, question_id: str, outcome: SaveOutcome) -> None:
        match outcome:
            case SaveAccepted(version=version):
                self.versions[question_id] = version
                self.errors.pop(question_id, None)
            case SaveConflict():
                self.conflicts[question_id] = outcome
                logger.warning(
                    "Answer conflict on %s (server v%d)", question_id, outcome.server_version,
                    extra={"instance_id": self.instance_id, "question_id": question_id,
                           "event_type": "answer_conflict"},
                )
            case SaveRejected(reason=reason):
                if reason == REJECT_LOCKED:
                    self.is_locked = True
                self.errors[question_id] = outcome.message or reason
            case SaveFailed(error=error):
                self.errors[question_id] = error
                logger.warning(
                    "Answer save failed for %s: %s", question_id, error,
                    extra={"instance_id": self.instance_id, "question_id": question_id},
                )

    # ── Status ───────────────────────────────────────────────────────────

    @property
    def conflicted_ids(self) -> list[str]:
        return sorted(self.conflicts)

    @property
    def can_submit(self) -> bool:
        return not self.is_locked and not self.conflicts

    def progress(self) -> Progress:
        with self._state:
            return progress(self.presentation, self.answers)

    def submit(self) -> None:
        """Submit the instance; refused while any field is conflicted."""
        with self._state:
            if self.conflicts:
                raise ValidationError(
                    "Resolve conflicted answers before submitting",
                    details={"conflicts": self.conflicted_ids},
                )
        self.store.submit(self.link)
        with self._state:
            self.is_locked = True
        logger.info("Questionnaire submitted", extra={"instance_id": self.instance_id,
                                                        "event_type": "submit"})

    def to_dict(self) -> dict:
        with self._state:
            return {
                "instance_id": self.instance_id,
                "name": self.name,
                "is_locked": self.is_locked,
                "conflicts": self.conflicted_ids,
                "errors": dict(self.errors),
                "progress": progress(self.presentation, self.answers).to_dict(),
                "presentation": self.presentation.to_dict(self.answers),
            }
