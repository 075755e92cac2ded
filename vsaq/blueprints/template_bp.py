"""
Template Blueprint — questionnaire template management (admin only).

Endpoints:
    GET     /api/v1/templates                 — list (?archived=true includes archived)
    POST    /api/v1/templates                 — create { name, description, content }
    GET     /api/v1/templates/<id>            — detail with content
    PUT     /api/v1/templates/<id>            — update (403 once an instance was sent)
    DELETE  /api/v1/templates/<id>            — delete (403 while instances exist)
    POST    /api/v1/templates/<id>/duplicate  — copy as "<name> (Copy)"
    POST    /api/v1/templates/<id>/archive    — { archive: true|false }
    GET     /api/v1/templates/<id>/preview    — rendered presentation, no answers
    POST    /api/v1/templates/preview         — same for unsaved { content }
    POST    /api/v1/templates/validate        — dry-run validation of { content }
    POST    /api/v1/templates/<id>/items      — add an item { type, parent_id, slot, position, attrs }
    DELETE  /api/v1/templates/<id>/items/<item_id>  — remove an item and its subtree

Content errors: 400 when the content is not a questionnaire document,
422 with ``details.issues`` when it fails validation.
"""

import logging

from flask import Blueprint, jsonify, request

from vsaq.auth import current_admin_id, require_admin
from vsaq.blueprints import register_error_handlers
from vsaq.services import template_service
from vsaq.utils.errors import E, api_error
from vsaq.utils.helpers import json_body, parse_bool

logger = logging.getLogger(__name__)

template_bp = Blueprint("templates", __name__, url_prefix="/api/v1/templates")
register_error_handlers(template_bp)


@template_bp.route("", methods=["GET"])
@require_admin
def list_templates():
    include_archived = parse_bool(request.args.get("archived"))
    return jsonify(template_service.list_templates(include_archived=include_archived))


@template_bp.route("", methods=["POST"])
@require_admin
def create_template():
    data = json_body()
    name = (data.get("name") or "").strip()
    content = data.get("content")
    if not name or not content:
        return api_error(E.VALIDATION_REQUIRED, "Name and content required")

    template = template_service.create_template(
        name=name,
        content=content,
        admin_id=current_admin_id(),
        description=data.get("description") or "",
    )
    return jsonify({"success": True, "id": template["id"], "template": template}), 201


@template_bp.route("/<int:template_id>", methods=["GET"])
@require_admin
def get_template(template_id: int):
    return jsonify(template_service.get_template(template_id))


@template_bp.route("/<int:template_id>", methods=["PUT"])
@require_admin
def update_template(template_id: int):
    data = json_body()
    if "content" in data and not data.get("content"):
        return api_error(E.VALIDATION_REQUIRED, "content cannot be empty")
    template = template_service.update_template(template_id, data)
    return jsonify({"success": True, "template": template})


@template_bp.route("/<int:template_id>", methods=["DELETE"])
@require_admin
def delete_template(template_id: int):
    template_service.delete_template(template_id)
    return jsonify({"success": True})


@template_bp.route("/<int:template_id>/duplicate", methods=["POST"])
@require_admin
def duplicate_template(template_id: int):
    template = template_service.duplicate_template(template_id, admin_id=current_admin_id())
    return jsonify({"success": True, "id": template["id"], "template": template}), 201


@template_bp.route("/<int:template_id>/archive", methods=["POST"])
@require_admin
def archive_template(template_id: int):
    archive = parse_bool(json_body().get("archive"), default=True)
    template = template_service.set_archived(template_id, archive)
    return jsonify({"success": True, "template": template})


@template_bp.route("/<int:template_id>/preview", methods=["GET"])
@require_admin
def preview_template(template_id: int):
    return jsonify(template_service.preview_template(template_id=template_id))


@template_bp.route("/preview", methods=["POST"])
@require_admin
def preview_content():
    content = json_body().get("content")
    if not content:
        return api_error(E.VALIDATION_REQUIRED, "content is required")
    return jsonify(template_service.preview_template(content=content))


@template_bp.route("/validate", methods=["POST"])
@require_admin
def validate_content():
    content = json_body().get("content")
    if not content:
        return api_error(E.VALIDATION_REQUIRED, "content is required")
    return jsonify(template_service.validate_content(content))


@template_bp.route("/<int:template_id>/items", methods=["POST"])
@require_admin
def add_item(template_id: int):
    data = json_body()
    item_type = (data.get("type") or "").strip()
    if not item_type:
        return api_error(E.VALIDATION_REQUIRED, "Item type required")
    position = data.get("position")
    if position is not None and (isinstance(position, bool) or not isinstance(position, int)):
        return api_error(E.VALIDATION_INVALID, "position must be an integer")
    attrs = data.get("attrs")
    if attrs is not None and not isinstance(attrs, dict):
        return api_error(E.VALIDATION_INVALID, "attrs must be an object")

    result = template_service.add_item(
        template_id,
        item_type,
        parent_id=data.get("parent_id"),
        slot=data.get("slot") or "items",
        position=position,
        attrs=attrs,
    )
    return jsonify({"success": True, **result}), 201


@template_bp.route("/<int:template_id>/items/<item_id>", methods=["DELETE"])
@require_admin
def remove_item(template_id: int, item_id: str):
    template = template_service.remove_item(template_id, item_id)
    return jsonify({"success": True, "template": template})
