"""
Bulk answer import.

Replays a ``{question_id: value}`` mapping through a ``FillSession`` the way
a respondent would: values are applied in the file's order, so a yesno
answer mounts its branch before the branch's own answers arrive, and every
save goes through the versioned answer store.

The store is either in-process (``LocalAnswerStore``, app context required)
or a remote server reached through ``FillClient``.  Used by the
``flask import-answers`` command.
"""

from __future__ import annotations

import logging
from typing import Any

from vsaq.core.exceptions import ValidationError
from vsaq.engine.fill_session import AnswerStore, FillSession, SaveAccepted
from vsaq.integrations.fill_client import FillClient
from vsaq.services.local_store import LocalAnswerStore

logger = logging.getLogger(__name__)


def store_for(remote_url: str | None = None) -> AnswerStore:
    """``FillClient`` for ``remote_url``, else the in-process store."""
    if remote_url:
        return FillClient(remote_url)
    return LocalAnswerStore()


def import_answers(store: AnswerStore, link: str, answers: Any, *, submit: bool = False) -> dict:
    """Save every answer in ``answers`` and report what happened.

    Values already stored are skipped.  With ``submit`` the instance is
    submitted afterwards, unless it is locked or a save ran into a conflict.
    """
    if not isinstance(answers, dict):
        raise ValidationError("Answers must be a JSON object keyed by question id")

    session = FillSession(store, link).load()
    accepted, unchanged = [], []
    for question_id, value in answers.items():
        if session.answers.get(question_id) == value:
            unchanged.append(question_id)
            continue
        if isinstance(session.set_answer(question_id, value), SaveAccepted):
            accepted.append(question_id)

    submitted = False
    if submit and session.can_submit:
        session.submit()
        submitted = True

    logger.info(
        "Imported %d answer(s) into instance %s", len(accepted), session.instance_id,
        extra={"instance_id": session.instance_id, "event_type": "answers_imported"},
    )
    return {
        "instance_id": session.instance_id,
        "accepted": accepted,
        "unchanged": unchanged,
        "conflicts": session.conflicted_ids,
        "errors": dict(session.errors),
        "progress": session.progress().to_dict(),
        "submitted": submitted,
    }
