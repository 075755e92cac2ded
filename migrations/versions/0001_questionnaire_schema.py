"""questionnaire_schema

Create admins, questionnaire_templates, questionnaire_instances and answers.

Revision ID: 0001_questionnaire_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001_questionnaire_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "admins" not in existing_tables:
        op.create_table(
            "admins",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("username", sa.String(length=100), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
        )

    if "questionnaire_templates" not in existing_tables:
        op.create_table(
            "questionnaire_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("created_by", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.ForeignKeyConstraint(["created_by"], ["admins.id"]),
            sa.PrimaryKeyConstraint("id"),
        )

    if "questionnaire_instances" not in existing_tables:
        op.create_table(
            "questionnaire_instances",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("unique_link", sa.String(length=64), nullable=False),
            sa.Column("target_name", sa.String(length=255), nullable=True),
            sa.Column("target_email", sa.String(length=255), nullable=True),
            sa.Column("created_by", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("is_locked", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.ForeignKeyConstraint(["created_by"], ["admins.id"]),
            sa.ForeignKeyConstraint(["template_id"], ["questionnaire_templates.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_questionnaire_instances_template_id", "questionnaire_instances", ["template_id"],
        )
        op.create_index(
            "ix_questionnaire_instances_unique_link",
            "questionnaire_instances",
            ["unique_link"],
            unique=True,
        )

    if "answers" not in existing_tables:
        op.create_table(
            "answers",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("instance_id", sa.Integer(), nullable=False),
            sa.Column("question_id", sa.String(length=255), nullable=False),
            sa.Column("answer_value", sa.Text(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.ForeignKeyConstraint(
                ["instance_id"], ["questionnaire_instances.id"], ondelete="CASCADE",
            ),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("instance_id", "question_id", name="uq_answer_instance_question"),
        )
        op.create_index("ix_answers_instance_id", "answers", ["instance_id"])


def downgrade():
    op.drop_index("ix_answers_instance_id", table_name="answers")
    op.drop_table("answers")
    op.drop_index("ix_questionnaire_instances_unique_link", table_name="questionnaire_instances")
    op.drop_index("ix_questionnaire_instances_template_id", table_name="questionnaire_instances")
    op.drop_table("questionnaire_instances")
    op.drop_table("questionnaire_templates")
    op.drop_table("admins")
