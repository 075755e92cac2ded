"""
Instance lifecycle service.

An instance is one template sent to one respondent, addressed by an
unguessable ``unique_link``.  States and transitions:

    open ──submit──▶ locked ──unlock──▶ open

  - submit:  respondent action; refused when already locked.
  - unlock:  admin override; always allowed, clears ``submitted_at``.
  - delete:  admin action; refused once submitted, otherwise removes the
             instance together with all of its answers.

Answer saves are only accepted while open (see answer_service).

Transaction policy: every mutating function commits before returning.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func, select

from vsaq.core.exceptions import (
    AlreadySubmittedError,
    CannotDeleteSubmittedError,
    MalformedDocument,
    NotFoundError,
    ValidationError,
)
from vsaq.engine.document import parse
from vsaq.engine.renderer import flatten_answers, progress, render
from vsaq.models import db
from vsaq.models.questionnaire import (
    INSTANCE_TRANSITIONS,
    Answer,
    QuestionnaireInstance,
    QuestionnaireTemplate,
    to_iso,
)
from vsaq.services.answer_service import find_instance_by_link, load_answers

logger = logging.getLogger(__name__)

_LINK_ATTEMPTS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_link() -> str:
    """32 hex characters from the OS CSPRNG."""
    return secrets.token_hex(16)


def build_fill_url(link: str) -> str:
    base = current_app.config.get("FILL_BASE_URL", "/fill").rstrip("/")
    return f"{base}/{link}"


def validate_instance_transition(instance: QuestionnaireInstance, action: str) -> dict:
    """Validate whether an action is valid for the instance's current state."""
    rule = INSTANCE_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": instance.status, "to": None,
                "reason": f"Unknown action: {action}"}

    if instance.status not in rule["from"]:
        return {"valid": False, "from": instance.status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{instance.status}'"}

    return {"valid": True, "from": instance.status, "to": rule["to"], "reason": None}


def _require_instance(instance_id: int, *, for_update: bool = False) -> QuestionnaireInstance:
    instance = db.session.get(QuestionnaireInstance, instance_id, with_for_update=for_update)
    if instance is None:
        raise NotFoundError(resource="Instance", resource_id=instance_id)
    return instance


def _progress_for(instance: QuestionnaireInstance, answers: dict[str, dict]) -> dict | None:
    try:
        document = parse(instance.template.content)
    except MalformedDocument as exc:
        logger.warning("Template %s cannot be rendered: %s", instance.template_id, exc,
                       extra={"instance_id": instance.id})
        return None
    flat = flatten_answers(answers)
    return progress(render(document, flat), flat).to_dict()


# ── Admin operations ───────────────────────────────────────────────────────────


def create_instance(
    template_id: int,
    admin_id: int,
    target_name: str = "",
    target_email: str = "",
) -> dict:
    """Send a template: create an open instance with a fresh unique link.

    Raises:
        NotFoundError: template does not exist.
        ValidationError: no unused link could be generated.
    """
    template = db.session.get(QuestionnaireTemplate, template_id)
    if template is None:
        raise NotFoundError(resource="Template", resource_id=template_id)

    for _ in range(_LINK_ATTEMPTS):
        link = generate_link()
        if find_instance_by_link(link) is None:
            break
    else:
        raise ValidationError("Could not allocate a unique link")

    now = _utcnow()
    instance = QuestionnaireInstance(
        template_id=template.id,
        unique_link=link,
        target_name=(target_name or "").strip(),
        target_email=(target_email or "").strip(),
        created_by=admin_id,
        created_at=now,
        sent_at=now,
    )
    db.session.add(instance)
    db.session.commit()

    logger.info(
        "Instance %s created from template %s", instance.id, template.id,
        extra={"instance_id": instance.id, "event_type": "instance_created"},
    )
    return {**instance.to_dict(), "url": build_fill_url(link)}


def list_instances() -> list[dict]:
    """All instances, newest first, with template name and answer count."""
    counts = (
        select(Answer.instance_id, func.count(Answer.id).label("answer_count"))
        .group_by(Answer.instance_id)
        .subquery()
    )
    rows = db.session.execute(
        select(QuestionnaireInstance, func.coalesce(counts.c.answer_count, 0))
        .outerjoin(counts, counts.c.instance_id == QuestionnaireInstance.id)
        .order_by(QuestionnaireInstance.created_at.desc(), QuestionnaireInstance.id.desc())
    ).all()
    return [
        {**instance.to_dict(), "answer_count": answer_count, "url": build_fill_url(instance.unique_link)}
        for instance, answer_count in rows
    ]


def get_instance(instance_id: int) -> dict:
    """Instance detail with answers, template content and computed progress."""
    instance = _require_instance(instance_id)
    answers = load_answers(instance.id)
    return {
        **instance.to_dict(),
        "url": build_fill_url(instance.unique_link),
        "template_content": instance.template.content,
        "answers": answers,
        "answer_count": len(answers),
        "progress": _progress_for(instance, answers),
    }


def unlock_instance(instance_id: int) -> dict:
    """Admin override: reopen a submitted instance for editing."""
    instance = _require_instance(instance_id, for_update=True)
    instance.is_locked = False
    instance.submitted_at = None
    db.session.commit()
    logger.info("Instance %s unlocked", instance.id,
                extra={"instance_id": instance.id, "event_type": "instance_unlocked"})
    return instance.to_dict()


def delete_instance(instance_id: int) -> None:
    """Delete an open instance and all of its answers.

    Raises:
        NotFoundError: unknown id.
        CannotDeleteSubmittedError: the instance has been submitted.
    """
    instance = _require_instance(instance_id)
    if instance.is_locked or instance.submitted_at is not None:
        raise CannotDeleteSubmittedError()

    Answer.query.filter_by(instance_id=instance.id).delete(synchronize_session=False)
    db.session.delete(instance)
    db.session.commit()
    logger.info("Instance %s deleted", instance_id,
                extra={"instance_id": instance_id, "event_type": "instance_deleted"})


# ── Respondent operations ──────────────────────────────────────────────────────


def get_for_respondent(link: str) -> dict:
    """Everything the fill page needs for one link.

    Raises:
        NotFoundError: unknown link.
    """
    instance = find_instance_by_link(link)
    if instance is None:
        raise NotFoundError(resource="Questionnaire")
    template = instance.template
    return {
        "instance_id": instance.id,
        "questionnaire_name": template.name,
        "questionnaire_description": template.description or "",
        "template_content": template.content,
        "is_locked": bool(instance.is_locked),
        "submitted_at": to_iso(instance.submitted_at),
        "answers": load_answers(instance.id),
        "version": instance.version,
    }


def submit_instance(link: str) -> dict:
    """Lock the instance and stamp ``submitted_at``.

    Raises:
        NotFoundError: unknown link.
        AlreadySubmittedError: instance is already locked.
    """
    instance = find_instance_by_link(link, lock="update")
    if instance is None:
        db.session.rollback()
        raise NotFoundError(resource="Questionnaire")

    check = validate_instance_transition(instance, "submit")
    if not check["valid"]:
        db.session.rollback()
        raise AlreadySubmittedError()

    instance.is_locked = True
    instance.submitted_at = _utcnow()
    db.session.commit()
    logger.info("Instance %s submitted", instance.id,
                extra={"instance_id": instance.id, "event_type": "instance_submitted"})
    return instance.to_dict()
