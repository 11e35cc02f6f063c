"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  process is up (load balancer probe)
    GET /api/v1/health/live   database round-trip; 503 when it fails
"""

import logging
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


def _check_database() -> dict:
    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    database = _check_database()
    healthy = database["status"] == "ok"
    return jsonify({
        "status": "healthy" if healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": database,
            "app": {
                "name": "SaaS Operations Dashboard",
                "debug": current_app.debug,
                "testing": current_app.testing,
            },
        },
    }), 200 if healthy else 503
