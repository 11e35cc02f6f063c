"""
Insight Blueprint.

Endpoints:
  GET/POST        /api/v1/insights          (GET: category?, min_priority?, max_priority?,
                                             include_dismissed?, limit?)
  GET             /api/v1/insights/high-priority
  GET             /api/v1/insights/stats
  GET             /api/v1/insights/dashboard
  POST            /api/v1/insights/dismiss-category   body: {category}
  POST            /api/v1/insights/generate           (replaces all insights)
  GET/PUT/DELETE  /api/v1/insights/<id>
  POST            /api/v1/insights/<id>/dismiss
  POST            /api/v1/insights/<id>/restore
"""

from flask import Blueprint, jsonify, request

from app.blueprints import acting_user_id, json_body
from app.services import insight_service
from app.utils.errors import E, api_error
from app.utils.helpers import parse_bool

insight_bp = Blueprint("insights", __name__, url_prefix="/api/v1/insights")


def _items(rows):
    return jsonify({"items": [r.to_dict() for r in rows], "total": len(rows)}), 200


@insight_bp.route("", methods=["GET"])
def list_insights():
    uid, err = acting_user_id()
    if err:
        return err
    include_dismissed = parse_bool(request.args.get("include_dismissed"))
    limit = request.args.get("limit", insight_service.DEFAULT_LIMIT, type=int)
    category = request.args.get("category")
    min_p = request.args.get("min_priority", type=int)
    max_p = request.args.get("max_priority", type=int)

    if category:
        rows = insight_service.get_by_category(
            user_id=uid, category=category, include_dismissed=include_dismissed, limit=limit,
        )
    elif min_p is not None or max_p is not None:
        rows = insight_service.get_by_priority(
            user_id=uid,
            min_priority=min_p if min_p is not None else 1,
            max_priority=max_p if max_p is not None else 5,
            include_dismissed=include_dismissed,
            limit=limit,
        )
    else:
        rows = insight_service.list_insights(user_id=uid, include_dismissed=include_dismissed, limit=limit)
    return _items(rows)


@insight_bp.route("", methods=["POST"])
def create_insight():
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("title") or not data.get("category"):
        return api_error(E.VALIDATION_REQUIRED, "title and category are required")
    return jsonify(insight_service.create_insight(user_id=uid, data=data).to_dict()), 201


@insight_bp.route("/high-priority", methods=["GET"])
def high_priority():
    uid, err = acting_user_id()
    if err:
        return err
    return _items(insight_service.get_high_priority(user_id=uid, limit=request.args.get("limit", 20, type=int)))


@insight_bp.route("/stats", methods=["GET"])
def insight_stats():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(insight_service.get_insight_stats(user_id=uid)), 200


@insight_bp.route("/dashboard", methods=["GET"])
def insight_dashboard():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(insight_service.get_insights_dashboard(user_id=uid)), 200


@insight_bp.route("/generate", methods=["POST"])
def generate_insights():
    """Replace the acting user's insights with a freshly generated set."""
    uid, err = acting_user_id()
    if err:
        return err
    rows = insight_service.generate_insights(user_id=uid)
    return jsonify({"items": [r.to_dict() for r in rows], "total": len(rows)}), 201


@insight_bp.route("/dismiss-category", methods=["POST"])
def dismiss_category():
    uid, err = acting_user_id()
    if err:
        return err
    category = json_body().get("category")
    if not category:
        return api_error(E.VALIDATION_REQUIRED, "category is required")
    return jsonify(insight_service.bulk_dismiss_by_category(user_id=uid, category=category)), 200


@insight_bp.route("/<int:insight_id>", methods=["GET"])
def get_insight(insight_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(insight_service.get_insight(user_id=uid, insight_id=insight_id).to_dict()), 200


@insight_bp.route("/<int:insight_id>", methods=["PUT"])
def update_insight(insight_id):
    uid, err = acting_user_id()
    if err:
        return err
    insight = insight_service.update_insight(user_id=uid, insight_id=insight_id, data=json_body())
    return jsonify(insight.to_dict()), 200


@insight_bp.route("/<int:insight_id>", methods=["DELETE"])
def delete_insight(insight_id):
    uid, err = acting_user_id()
    if err:
        return err
    insight_service.delete_insight(user_id=uid, insight_id=insight_id)
    return jsonify({"deleted": True}), 200


@insight_bp.route("/<int:insight_id>/dismiss", methods=["POST"])
def dismiss(insight_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(insight_service.dismiss_insight(user_id=uid, insight_id=insight_id).to_dict()), 200


@insight_bp.route("/<int:insight_id>/restore", methods=["POST"])
def restore(insight_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(insight_service.restore_insight(user_id=uid, insight_id=insight_id).to_dict()), 200
