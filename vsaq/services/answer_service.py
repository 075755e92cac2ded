"""
Answer store — per-field versioned writes with optimistic concurrency.

Every answer row carries a ``version``.  A save names the version the client
last saw; the write goes through only if the stored version is not newer:

    UPDATE answers
       SET answer_value = :value, version = version + 1, updated_at = :now
     WHERE instance_id = :iid AND question_id = :qid AND version <= :client_version

One row updated → ``SaveAccepted``.  No row updated while a row exists →
``SaveConflict`` carrying the server's version.  No row at all → first write,
an INSERT at version 1; if a concurrent first write wins the unique
constraint the conditional UPDATE is re-run, which then reports the
conflict.  Fields are independent: there is no instance-wide lock, only a
shared (FOR SHARE) read of the instance row so a submit/unlock cannot
interleave with a save in flight.

Rules:
  - db.session.commit() happens only in this file for answer writes.
  - Locked instances and unknown links return ``SaveRejected``; the blueprint
    maps those to 403 / 404.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from vsaq.core.exceptions import NotFoundError, ValidationError
from vsaq.engine.fill_session import (
    REJECT_LOCKED,
    REJECT_NOT_FOUND,
    SaveAccepted,
    SaveConflict,
    SaveOutcome,
    SaveRejected,
)
from vsaq.models import db
from vsaq.models.questionnaire import Answer, QuestionnaireInstance, to_iso

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_version(client_version: Any) -> int:
    if client_version is None or client_version == "":
        return 0
    if isinstance(client_version, bool):
        raise ValidationError("version must be an integer", details={"version": client_version})
    try:
        return int(client_version)
    except (TypeError, ValueError) as exc:
        raise ValidationError(
            "version must be an integer", details={"version": client_version},
        ) from exc


def _coerce_value(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    return str(value)


def instance_by_link_query(link: str, lock: str | None = None):
    """Select one instance by link.

    ``lock="share"`` lets concurrent saves proceed while blocking a state
    change; ``lock="update"`` is for the submit/unlock writers themselves.
    """
    stmt = select(QuestionnaireInstance).where(QuestionnaireInstance.unique_link == link)
    if lock == "share":
        stmt = stmt.with_for_update(read=True)
    elif lock == "update":
        stmt = stmt.with_for_update()
    return stmt


def find_instance_by_link(link: str, *, lock: str | None = None) -> QuestionnaireInstance | None:
    return db.session.execute(instance_by_link_query(link, lock)).scalar_one_or_none()


def _conditional_update(
    instance_id: int, question_id: str, value: str | None, client_version: int, now: datetime,
) -> bool:
    result = db.session.execute(
        update(Answer)
        .where(
            Answer.instance_id == instance_id,
            Answer.question_id == question_id,
            Answer.version <= client_version,
        )
        .values(answer_value=value, version=Answer.version + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _stored_version(instance_id: int, question_id: str):
    return db.session.execute(
        select(Answer.version, Answer.updated_at).where(
            Answer.instance_id == instance_id,
            Answer.question_id == question_id,
        )
    ).one_or_none()


def _accept(instance: QuestionnaireInstance, question_id: str) -> SaveAccepted:
    row = _stored_version(instance.id, question_id)
    db.session.commit()
    logger.debug(
        "Answer saved %s v%d", question_id, row.version,
        extra={"instance_id": instance.id, "question_id": question_id, "event_type": "answer_saved"},
    )
    return SaveAccepted(version=row.version, updated_at=to_iso(row.updated_at))


def _conflict(instance: QuestionnaireInstance, question_id: str, client_version: int) -> SaveConflict:
    row = _stored_version(instance.id, question_id)
    db.session.rollback()
    logger.info(
        "Answer conflict %s: client v%d, server v%d", question_id, client_version, row.version,
        extra={"instance_id": instance.id, "question_id": question_id, "event_type": "answer_conflict"},
    )
    return SaveConflict(server_version=row.version, updated_at=to_iso(row.updated_at))


# ── Public API ─────────────────────────────────────────────────────────────────


def save_answer(link: str, question_id: str, value: Any, client_version: Any = 0) -> SaveOutcome:
    """Compare-and-swap write of one answer.

    Args:
        link:           The instance's unique link.
        question_id:    Item id (or checkgroup choice id) being answered.
        value:          New answer; stored as text.
        client_version: Version the client last saw; ``None`` counts as 0.

    Returns:
        SaveAccepted, SaveConflict or SaveRejected.

    Raises:
        ValidationError: question_id missing or version not an integer.
    """
    if not question_id:
        raise ValidationError("question_id is required")
    client_version = _coerce_version(client_version)

    instance = find_instance_by_link(link, lock="share")
    if instance is None:
        db.session.rollback()
        return SaveRejected(REJECT_NOT_FOUND, "Questionnaire not found")
    if instance.is_locked:
        db.session.rollback()
        return SaveRejected(REJECT_LOCKED, "Questionnaire is locked")

    value = _coerce_value(value)
    now = _utcnow()

    if _conditional_update(instance.id, question_id, value, client_version, now):
        return _accept(instance, question_id)
    if _stored_version(instance.id, question_id) is not None:
        return _conflict(instance, question_id, client_version)

    # First write for this field.
    instance_id = instance.id
    db.session.add(Answer(
        instance_id=instance_id,
        question_id=question_id,
        answer_value=value,
        version=1,
        updated_at=now,
    ))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info(
            "Concurrent first write on %s; retrying as conditional update", question_id,
            extra={"instance_id": instance_id, "question_id": question_id},
        )
        instance = find_instance_by_link(link, lock="share")
        if instance is None:
            db.session.rollback()
            return SaveRejected(REJECT_NOT_FOUND, "Questionnaire not found")
        if _conditional_update(instance.id, question_id, value, client_version, now):
            return _accept(instance, question_id)
        return _conflict(instance, question_id, client_version)

    logger.debug(
        "Answer created %s", question_id,
        extra={"instance_id": instance_id, "question_id": question_id, "event_type": "answer_saved"},
    )
    return SaveAccepted(version=1, updated_at=to_iso(now))


def load_answers(instance_id: int) -> dict[str, dict]:
    """Return ``{question_id: {value, version, updated_at}}`` for an instance."""
    rows = db.session.execute(
        select(Answer).where(Answer.instance_id == instance_id).order_by(Answer.id)
    ).scalars()
    return {row.question_id: row.to_record() for row in rows}


def load_answers_by_link(link: str) -> dict[str, dict]:
    instance = find_instance_by_link(link)
    if instance is None:
        raise NotFoundError(resource="Instance", resource_id=link)
    return load_answers(instance.id)


def count_answers(instance_id: int) -> int:
    return db.session.query(Answer).filter(Answer.instance_id == instance_id).count()
