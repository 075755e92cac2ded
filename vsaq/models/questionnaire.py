"""
Questionnaire models — templates, instances, answers and the admins who own them.

Tables:
    admins                    accounts allowed to author and send questionnaires
    questionnaire_templates   authored Document JSON (``content``)
    questionnaire_instances   one sent copy of a template, addressed by ``unique_link``
    answers                   one row per (instance, question id), versioned

Instance state is derived from ``is_locked``: ``open`` accepts answer saves,
``locked`` (submitted) is read-only until an admin unlocks it.
"""

from datetime import datetime, timezone

from vsaq.models import db

INSTANCE_STATES = ("open", "locked")

# Instance lifecycle transition rules
INSTANCE_TRANSITIONS = {
    "submit": {"from": ["open"], "to": "locked"},
    "unlock": {"from": ["open", "locked"], "to": "open"},
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    """ISO-8601 in UTC; SQLite hands back naive datetimes, which are UTC here."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class Admin(db.Model):
    __tablename__ = "admins"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    last_login = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "created_at": to_iso(self.created_at),
            "last_login": to_iso(self.last_login),
        }

    def __repr__(self):
        return f"<Admin {self.id}: {self.username}>"


class QuestionnaireTemplate(db.Model):
    """Authored questionnaire.

    ``content`` holds the Document JSON exactly as saved.  Once any instance
    has been sent the content is frozen (enforced in template_service).
    """

    __tablename__ = "questionnaire_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    content = db.Column(db.Text, nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("admins.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )
    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    creator = db.relationship("Admin", lazy="joined")
    instances = db.relationship("QuestionnaireInstance", back_populates="template")

    def to_dict(self, include_content: bool = True) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description or "",
            "created_by": self.created_by,
            "created_by_username": self.creator.username if self.creator else None,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "is_archived": bool(self.is_archived),
        }
        if include_content:
            d["content"] = self.content
        return d

    def __repr__(self):
        return f"<QuestionnaireTemplate {self.id}: {self.name}>"


class QuestionnaireInstance(db.Model):
    """A template sent to one respondent.

    ``unique_link`` is the respondent's only credential: 32 hex characters
    from a CSPRNG, unique across all instances.
    """

    __tablename__ = "questionnaire_instances"

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer, db.ForeignKey("questionnaire_templates.id"), nullable=False, index=True,
    )
    unique_link = db.Column(db.String(64), unique=True, nullable=False, index=True)
    target_name = db.Column(db.String(255), nullable=True)
    target_email = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("admins.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    version = db.Column(db.Integer, nullable=False, default=1)

    template = db.relationship("QuestionnaireTemplate", back_populates="instances")
    creator = db.relationship("Admin")
    answers = db.relationship(
        "Answer",
        back_populates="instance",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def status(self) -> str:
        return "locked" if self.is_locked else "open"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "template_id": self.template_id,
            "template_name": self.template.name if self.template else None,
            "unique_link": self.unique_link,
            "target_name": self.target_name or "",
            "target_email": self.target_email or "",
            "created_by": self.created_by,
            "created_by_username": self.creator.username if self.creator else None,
            "created_at": to_iso(self.created_at),
            "sent_at": to_iso(self.sent_at),
            "submitted_at": to_iso(self.submitted_at),
            "is_locked": bool(self.is_locked),
            "status": self.status,
            "version": self.version,
        }

    def __repr__(self):
        return f"<QuestionnaireInstance {self.id}: {self.status}>"


class Answer(db.Model):
    """Latest value of one question for one instance.

    ``version`` starts at 1 and increases by exactly one per accepted write;
    writes are compare-and-swap on this column (see answer_service).
    """

    __tablename__ = "answers"

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(
        db.Integer,
        db.ForeignKey("questionnaire_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = db.Column(db.String(255), nullable=False)
    answer_value = db.Column(db.Text, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    version = db.Column(db.Integer, nullable=False, default=1)

    instance = db.relationship("QuestionnaireInstance", back_populates="answers")

    __table_args__ = (
        db.UniqueConstraint("instance_id", "question_id", name="uq_answer_instance_question"),
    )

    def to_record(self) -> dict:
        return {
            "value": self.answer_value,
            "version": self.version,
            "updated_at": to_iso(self.updated_at),
        }

    def to_dict(self) -> dict:
        return {"question_id": self.question_id, **self.to_record()}

    def __repr__(self):
        return f"<Answer {self.instance_id}/{self.question_id} v{self.version}>"
