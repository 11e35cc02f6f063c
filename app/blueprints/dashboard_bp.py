"""
Dashboard Overview Blueprint.

Headline KPIs and next-step suggestions for the acting user's landing
dashboard.
"""

from flask import Blueprint, jsonify

from app.blueprints import acting_user_id
from app.services import dashboard_service as svc

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")


@dashboard_bp.route("", methods=["GET"])
def overview():
    """Development progress, campaigns, pipeline, ideas, insights and GTM readiness."""
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(svc.get_dashboard_overview(user_id=uid)), 200


@dashboard_bp.route("/next-steps", methods=["GET"])
def next_steps():
    uid, err = acting_user_id()
    if err:
        return err
    steps = svc.get_next_steps(user_id=uid)
    return jsonify({"items": steps, "total": len(steps)}), 200
