"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — process is up (load balancer probe)
    GET /api/v1/health/live   — database round trip plus questionnaire counts;
                                503 when the database is unreachable
"""

import logging
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from vsaq.models import db
from vsaq.models.questionnaire import QuestionnaireInstance, QuestionnaireTemplate

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


def _database_check() -> dict:
    started = time.perf_counter()
    db.session.execute(db.text("SELECT 1"))
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _questionnaire_counts() -> dict:
    open_instances = db.session.execute(
        select(func.count(QuestionnaireInstance.id)).where(QuestionnaireInstance.is_locked.is_(False))
    ).scalar_one()
    return {
        "templates": db.session.execute(select(func.count(QuestionnaireTemplate.id))).scalar_one(),
        "open_instances": open_instances,
    }


@health_bp.route("/live", methods=["GET"])
def live():
    checks = {
        "app": {
            "name": "VSAQ Questionnaire Service",
            "debug": current_app.debug,
            "testing": current_app.testing,
        },
    }
    try:
        checks["database"] = _database_check()
        checks["questionnaires"] = _questionnaire_counts()
        healthy = True
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        healthy = False
        logger.error("Health check: database unavailable: %s", exc)

    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "checks": checks,
    }), 200 if healthy else 503
