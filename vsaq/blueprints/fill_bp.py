"""
Fill Blueprint — respondent endpoints.

No admin authentication: the unguessable link is the credential.

Endpoints:
    GET   /api/v1/fill/<link>          — template content, answers, lock state
    POST  /api/v1/fill/<link>/save     — versioned save of one answer
          Body: { "question_id": "q1", "answer_value": "yes", "version": 0 }
          200 { success, version, updated_at }
          409 { conflict: true, server_version, updated_at }
          403 locked · 404 unknown link · 400 missing question_id
    POST  /api/v1/fill/<link>/submit   — lock the instance
          200 { success } · 403 already submitted · 404 unknown link
"""

import logging

from flask import Blueprint, jsonify

from vsaq.blueprints import register_error_handlers
from vsaq.engine.fill_session import (
    REJECT_NOT_FOUND,
    SaveAccepted,
    SaveConflict,
    SaveRejected,
)
from vsaq.services import answer_service, instance_service
from vsaq.utils.errors import E, api_error
from vsaq.utils.helpers import json_body

logger = logging.getLogger(__name__)

fill_bp = Blueprint("fill", __name__, url_prefix="/api/v1/fill")
register_error_handlers(fill_bp)


@fill_bp.route("/<link>", methods=["GET"])
def get_questionnaire(link: str):
    return jsonify(instance_service.get_for_respondent(link))


@fill_bp.route("/<link>/save", methods=["POST"])
def save_answer(link: str):
    data = json_body()
    question_id = data.get("question_id")
    if not question_id or not isinstance(question_id, str):
        return api_error(E.VALIDATION_REQUIRED, "Question ID required")

    outcome = answer_service.save_answer(
        link, question_id, data.get("answer_value"), data.get("version", 0),
    )
    match outcome:
        case SaveAccepted():
            return jsonify(outcome.to_dict()), 200
        case SaveConflict():
            return jsonify(outcome.to_dict()), 409
        case SaveRejected(reason=reason) if reason == REJECT_NOT_FOUND:
            return api_error(E.NOT_FOUND, "Questionnaire not found")
        case SaveRejected():
            return api_error(E.LOCKED, outcome.message or "Questionnaire is locked")
    return api_error(E.INTERNAL, "Unexpected save outcome")


@fill_bp.route("/<link>/submit", methods=["POST"])
def submit(link: str):
    instance_service.submit_instance(link)
    return jsonify({"success": True}), 200
