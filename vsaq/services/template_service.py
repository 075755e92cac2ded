"""
Template service — questionnaire template registry.

Content rules:
  - ``content`` must parse as a questionnaire document (MalformedDocument → 400)
    and pass the validation engine (ValidationError with the issue list → 422).
    A save is all-or-nothing: any issue rejects it.
  - Once an instance of a template has been sent, its content is frozen;
    updates are refused with TemplateInUseError.  Deleting a template that
    still has instances is refused the same way (archive it instead).

Transaction policy: mutating functions commit before returning, except
``seed_sample_templates`` which only flushes (the CLI command commits).
"""

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import func, select

from vsaq.core.exceptions import (
    MalformedDocument,
    NotFoundError,
    TemplateInUseError,
    ValidationError,
)
from vsaq.engine.document import Document, parse
from vsaq.engine.editor import ROOT, EditorSession
from vsaq.engine.renderer import render
from vsaq.engine.validation import validate
from vsaq.models import db
from vsaq.models.questionnaire import QuestionnaireInstance, QuestionnaireTemplate

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
# CONTENT CHECKS
# ═══════════════════════════════════════════════════════════════════

def _content_text(content) -> str:
    if isinstance(content, (dict, list)):
        return json.dumps(content, ensure_ascii=False)
    if isinstance(content, str):
        return content
    raise MalformedDocument("content must be a JSON string or object")


def check_content(content) -> tuple[str, Document]:
    """Parse and validate template content.

    Returns:
        (content_text, document) ready to store.

    Raises:
        MalformedDocument: content is not a questionnaire document.
        ValidationError: the document has validation issues (``details["issues"]``).
    """
    text = _content_text(content)
    document = parse(text)
    issues = validate(document)
    if issues:
        raise ValidationError(
            f"Template has {len(issues)} validation issue(s)",
            details={"issues": [issue.to_dict() for issue in issues]},
        )
    return text, document


def validate_content(content) -> dict:
    """Dry run of the save-time checks; never raises for validation issues."""
    document = parse(_content_text(content))
    issues = validate(document)
    return {
        "valid": not issues,
        "issues": [issue.to_dict() for issue in issues],
        "answerable_ids": document.answerable_ids(),
    }


# ═══════════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════════

def _require_template(template_id: int) -> QuestionnaireTemplate:
    template = db.session.get(QuestionnaireTemplate, template_id)
    if template is None:
        raise NotFoundError(resource="Template", resource_id=template_id)
    return template


def _instance_count(template_id: int, sent_only: bool = False) -> int:
    stmt = select(func.count(QuestionnaireInstance.id)).where(
        QuestionnaireInstance.template_id == template_id,
    )
    if sent_only:
        stmt = stmt.where(QuestionnaireInstance.sent_at.is_not(None))
    return db.session.execute(stmt).scalar_one()


def list_templates(include_archived: bool = False) -> list[dict]:
    """Templates newest first; archived ones only when asked for."""
    query = QuestionnaireTemplate.query
    if not include_archived:
        query = query.filter(QuestionnaireTemplate.is_archived.is_(False))
    templates = query.order_by(
        QuestionnaireTemplate.created_at.desc(), QuestionnaireTemplate.id.desc(),
    ).all()
    return [
        {**t.to_dict(include_content=False), "instance_count": _instance_count(t.id)}
        for t in templates
    ]


def get_template(template_id: int) -> dict:
    template = _require_template(template_id)
    return {**template.to_dict(), "instance_count": _instance_count(template.id)}


def create_template(name: str, content, admin_id: int, description: str = "") -> dict:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    text, _ = check_content(content)

    template = QuestionnaireTemplate(
        name=name,
        description=description or "",
        content=text,
        created_by=admin_id,
    )
    db.session.add(template)
    db.session.commit()
    logger.info("Template %s created: %s", template.id, name)
    return template.to_dict()


def update_template(template_id: int, data: dict) -> dict:
    """Update name / description / content of a template not yet sent."""
    template = _require_template(template_id)
    if _instance_count(template.id, sent_only=True):
        raise TemplateInUseError("Cannot edit template that has been sent")

    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required", details={"name": "required"})
        template.name = name
    if "description" in data:
        template.description = data.get("description") or ""
    if "content" in data:
        template.content, _ = check_content(data["content"])

    template.updated_at = datetime.now(timezone.utc)
    db.session.commit()
    logger.info("Template %s updated", template.id)
    return template.to_dict()


def delete_template(template_id: int) -> None:
    template = _require_template(template_id)
    if _instance_count(template.id):
        raise TemplateInUseError("Cannot delete template with instances. Archive it instead.")
    db.session.delete(template)
    db.session.commit()
    logger.info("Template %s deleted", template_id)


def duplicate_template(template_id: int, admin_id: int) -> dict:
    source = _require_template(template_id)
    copy = QuestionnaireTemplate(
        name=f"{source.name} (Copy)",
        description=source.description,
        content=source.content,
        created_by=admin_id,
    )
    db.session.add(copy)
    db.session.commit()
    logger.info("Template %s duplicated as %s", source.id, copy.id)
    return copy.to_dict()


def set_archived(template_id: int, archived: bool = True) -> dict:
    template = _require_template(template_id)
    template.is_archived = bool(archived)
    db.session.commit()
    logger.info("Template %s %s", template.id, "archived" if archived else "unarchived")
    return template.to_dict(include_content=False)


# ═══════════════════════════════════════════════════════════════════
# ITEM AUTHORING
# ═══════════════════════════════════════════════════════════════════

def _open_editor(template_id: int) -> tuple[QuestionnaireTemplate, EditorSession]:
    template = _require_template(template_id)
    if _instance_count(template.id, sent_only=True):
        raise TemplateInUseError("Cannot edit template that has been sent")
    return template, EditorSession.from_document(parse(template.content))


def _save_editor(template: QuestionnaireTemplate, session: EditorSession) -> None:
    template.content, _ = check_content(session.to_raw())
    template.updated_at = datetime.now(timezone.utc)
    db.session.commit()


def add_item(
    template_id: int,
    item_type: str,
    parent_id: str | None = None,
    slot: str = "items",
    position: int | None = None,
    attrs: dict | None = None,
) -> dict:
    """Insert a new item (fresh id, starter text) into a stored template.

    ``parent_id`` names the block or yesno item to insert under; ``None``
    appends to the top level.  ``attrs`` overrides the starter attributes.
    The edited template must still pass validation.
    """
    template, session = _open_editor(template_id)
    parent = ROOT if parent_id is None else session.handle_of(parent_id)
    raw = {**session.default_item(item_type), **(attrs or {}), "type": item_type}
    handle = session.add_item(raw, parent, slot, position)
    _save_editor(template, session)
    logger.info("Template %s: %s item added", template.id, item_type)
    return {"item": session.item(handle), "template": template.to_dict()}


def remove_item(template_id: int, item_id: str) -> dict:
    """Remove an item (and its subtree) from a stored template."""
    template, session = _open_editor(template_id)
    session.remove_item(session.handle_of(item_id))
    _save_editor(template, session)
    logger.info("Template %s: item %s removed", template.id, item_id)
    return template.to_dict()


def preview_template(template_id: int | None = None, content=None) -> dict:
    """Presentation of a stored template (or raw content) with no answers."""
    if content is None:
        content = _require_template(template_id).content
    document = parse(_content_text(content))
    return render(document, {}).to_dict({})


# ═══════════════════════════════════════════════════════════════════
# SAMPLE DATA
# ═══════════════════════════════════════════════════════════════════

def seed_sample_templates(admin_id: int) -> int:
    """Insert the bundled sample templates that are not present yet (by name).

    Safe to run multiple times.  Each sample is validated before insert.
    """
    created = 0
    for sample in _get_sample_templates():
        exists = QuestionnaireTemplate.query.filter_by(name=sample["name"]).first()
        if exists:
            continue
        text, _ = check_content(sample["content"])
        db.session.add(QuestionnaireTemplate(
            name=sample["name"],
            description=sample["description"],
            content=text,
            created_by=admin_id,
        ))
        created += 1

    if created:
        db.session.flush()
        logger.info("Seeded %d sample template(s)", created)
    return created


def _get_sample_templates() -> list[dict]:
    return [
        {
            "name": "Basic Security Questionnaire",
            "description": "A simple questionnaire for basic security assessment",
            "content": {
                "version": 1,
                "items": [
                    {
                        "type": "block",
                        "text": "Company Information",
                        "items": [
                            {"type": "line", "id": "company_name", "text": "Company Name", "required": True},
                            {"type": "line", "id": "contact_email", "text": "Contact Email", "required": True},
                            {"type": "box", "id": "company_description", "text": "Company Description"},
                        ],
                    },
                    {
                        "type": "block",
                        "text": "Security Controls",
                        "items": [
                            {
                                "type": "yesno",
                                "id": "has_security_team",
                                "text": "Do you have a dedicated security team?",
                                "required": True,
                                "yes": [
                                    {"type": "line", "id": "security_team_size",
                                     "text": "How many people are on the team?"},
                                ],
                                "no": [
                                    {"type": "tip", "id": "tip_no_team", "warn": True, "severity": "high",
                                     "text": "A named owner for security is expected for vendors "
                                             "handling customer data."},
                                    {"type": "box", "id": "security_owner",
                                     "text": "Who is responsible for security?"},
                                ],
                            },
                            {"type": "yesno", "id": "performs_audits", "required": True,
                             "text": "Do you perform regular security audits?"},
                            {"type": "check", "id": "encrypts_at_rest", "text": "We encrypt data at rest"},
                            {"type": "check", "id": "encrypts_in_transit", "text": "We encrypt data in transit"},
                            {
                                "type": "box",
                                "id": "encryption_gaps",
                                "text": "Describe the data that is not encrypted and why.",
                                "cond": {"or": ["encrypts_at_rest/no", "encrypts_in_transit/no"]},
                            },
                            {
                                "type": "radiogroup",
                                "id": "update_frequency",
                                "text": "How often do you update your systems?",
                                "choices": [
                                    {"update_daily": "Daily"},
                                    {"update_weekly": "Weekly"},
                                    {"update_monthly": "Monthly"},
                                    {"update_quarterly": "Quarterly"},
                                ],
                                "required": True,
                            },
                        ],
                    },
                ],
            },
        },
        {
            "name": "Employee Onboarding Security",
            "description": "Security procedures for new employee onboarding",
            "content": {
                "version": 1,
                "items": [
                    {
                        "type": "block",
                        "text": "Employee Information",
                        "items": [
                            {"type": "line", "id": "full_name", "text": "Full Name", "required": True},
                            {"type": "line", "id": "department", "text": "Department", "required": True},
                            {"type": "line", "id": "start_date", "text": "Start Date", "required": True},
                        ],
                    },
                    {
                        "type": "block",
                        "text": "Security Training",
                        "items": [
                            {"type": "info",
                             "text": "All employees must complete security training within their first week."},
                            {"type": "check", "id": "completed_awareness", "required": True,
                             "text": "I have completed the security awareness training"},
                            {"type": "check", "id": "read_aup", "required": True,
                             "text": "I have read and understood the acceptable use policy"},
                            {"type": "check", "id": "configured_2fa", "required": True,
                             "text": "I have configured two-factor authentication"},
                            {"type": "spacer"},
                            {"type": "box", "id": "security_questions",
                             "text": "Do you have any security concerns or questions?"},
                        ],
                    },
                ],
            },
        },
    ]
