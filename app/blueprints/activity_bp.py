"""
Activity Feed Blueprint.

Endpoints:
  GET/POST  /api/v1/activities              (GET: type?, unread_only?, limit?)
  GET       /api/v1/activities/recent       (limit=20, group_by_type?)
  GET       /api/v1/activities/range        (start, end)
  GET       /api/v1/activities/stats        (days=30)
  POST      /api/v1/activities/mark-all-read
  PATCH     /api/v1/activities/<id>/read
  DELETE    /api/v1/activities/<id>
"""

from flask import Blueprint, jsonify, request

from app.blueprints import acting_user_id, date_range_args, json_body
from app.services import activity_service
from app.utils.errors import E, api_error
from app.utils.helpers import parse_bool

activity_bp = Blueprint("activities", __name__, url_prefix="/api/v1/activities")


@activity_bp.route("", methods=["GET"])
def list_activities():
    uid, err = acting_user_id()
    if err:
        return err
    items = activity_service.list_activities(
        user_id=uid,
        activity_type=request.args.get("type"),
        unread_only=parse_bool(request.args.get("unread_only")),
        limit=request.args.get("limit", type=int),
    )
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)}), 200


@activity_bp.route("", methods=["POST"])
def create_activity():
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("type") or not data.get("title"):
        return api_error(E.VALIDATION_REQUIRED, "type and title are required")
    return jsonify(activity_service.create_activity(user_id=uid, data=data).to_dict()), 201


@activity_bp.route("/recent", methods=["GET"])
def recent_activities():
    uid, err = acting_user_id()
    if err:
        return err
    result = activity_service.get_recent_activities(
        user_id=uid,
        limit=request.args.get("limit", 20, type=int),
        group_by_type=parse_bool(request.args.get("group_by_type")),
    )
    return jsonify(result), 200


@activity_bp.route("/range", methods=["GET"])
def by_date_range():
    uid, err = acting_user_id()
    if err:
        return err
    window, err = date_range_args()
    if err:
        return err
    start, end = window
    items = activity_service.get_by_date_range(user_id=uid, start=start, end=end)
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)}), 200


@activity_bp.route("/stats", methods=["GET"])
def activity_stats():
    uid, err = acting_user_id()
    if err:
        return err
    days = request.args.get("days", 30, type=int)
    return jsonify(activity_service.get_activity_stats(user_id=uid, days=days)), 200


@activity_bp.route("/mark-all-read", methods=["POST"])
def mark_all_read():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify({"marked_read": activity_service.mark_all_read(user_id=uid)}), 200


@activity_bp.route("/<int:activity_id>/read", methods=["PATCH"])
def mark_read(activity_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(activity_service.mark_read(user_id=uid, activity_id=activity_id).to_dict()), 200


@activity_bp.route("/<int:activity_id>", methods=["DELETE"])
def delete_activity(activity_id):
    uid, err = acting_user_id()
    if err:
        return err
    activity_service.delete_activity(user_id=uid, activity_id=activity_id)
    return jsonify({"deleted": True}), 200
