"""
Instance Blueprint — sending questionnaires and managing sent copies (admin only).

Endpoints:
    GET     /api/v1/instances               — list with template_name, answer_count
    POST    /api/v1/instances               — { template_id, target_name, target_email }
                                              → 201 { id, unique_link, url, ... }
    GET     /api/v1/instances/<id>          — detail with answers and progress
    DELETE  /api/v1/instances/<id>          — 403 once submitted
    POST    /api/v1/instances/<id>/unlock   — reopen a submitted instance
"""

import logging

from flask import Blueprint, jsonify

from vsaq.auth import current_admin_id, require_admin
from vsaq.blueprints import register_error_handlers
from vsaq.services import instance_service
from vsaq.utils.errors import E, api_error
from vsaq.utils.helpers import json_body

logger = logging.getLogger(__name__)

instance_bp = Blueprint("instances", __name__, url_prefix="/api/v1/instances")
register_error_handlers(instance_bp)


@instance_bp.route("", methods=["GET"])
@require_admin
def list_instances():
    return jsonify(instance_service.list_instances())


@instance_bp.route("", methods=["POST"])
@require_admin
def create_instance():
    data = json_body()
    template_id = data.get("template_id")
    if not template_id:
        return api_error(E.VALIDATION_REQUIRED, "Template ID required")
    try:
        template_id = int(template_id)
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "template_id must be an integer")

    instance = instance_service.create_instance(
        template_id=template_id,
        admin_id=current_admin_id(),
        target_name=data.get("target_name") or "",
        target_email=data.get("target_email") or "",
    )
    return jsonify({"success": True, **instance}), 201


@instance_bp.route("/<int:instance_id>", methods=["GET"])
@require_admin
def get_instance(instance_id: int):
    return jsonify(instance_service.get_instance(instance_id))


@instance_bp.route("/<int:instance_id>", methods=["DELETE"])
@require_admin
def delete_instance(instance_id: int):
    instance_service.delete_instance(instance_id)
    return jsonify({"success": True})


@instance_bp.route("/<int:instance_id>/unlock", methods=["POST"])
@require_admin
def unlock_instance(instance_id: int):
    instance = instance_service.unlock_instance(instance_id)
    return jsonify({"success": True, "instance": instance})
