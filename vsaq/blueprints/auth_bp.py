"""
Auth Blueprint — admin session check.

Endpoints:
    GET  /api/v1/auth/check  — { authenticated, admin_id, username }
"""

from flask import Blueprint, jsonify

from vsaq.auth import authenticate

auth_bp = Blueprint("auth_bp", __name__, url_prefix="/api/v1/auth")


@auth_bp.route("/check", methods=["GET"])
def check():
    admin, err = authenticate()
    if err:
        return jsonify({"authenticated": False, "admin_id": None, "username": None})
    return jsonify({"authenticated": True, "admin_id": admin.id, "username": admin.username})
