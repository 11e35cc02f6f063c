"""
Sales Activity Blueprint.

Endpoints:
  GET/POST        /api/v1/sales-activities            (GET: customer_id?, deal_id?, limit?)
  GET             /api/v1/sales-activities/upcoming   (days=7)
  GET             /api/v1/sales-activities/overdue
  GET             /api/v1/sales-activities/range      (start, end)
  GET             /api/v1/sales-activities/stats
  GET/PUT/DELETE  /api/v1/sales-activities/<id>
  GET             /api/v1/sales-activities/<id>/details
  POST            /api/v1/sales-activities/<id>/complete     body: {outcome?}
  POST            /api/v1/sales-activities/<id>/follow-up    body: {scheduled_date, description, type?}
"""

from flask import Blueprint, jsonify, request

from app.blueprints import acting_user_id, date_range_args, json_body
from app.services import sales_activity_service
from app.utils.errors import E, api_error

sales_activity_bp = Blueprint("sales_activities", __name__, url_prefix="/api/v1/sales-activities")


def _items(rows):
    return jsonify({"items": [r.to_dict() for r in rows], "total": len(rows)}), 200


@sales_activity_bp.route("", methods=["GET"])
def list_sales_activities():
    uid, err = acting_user_id()
    if err:
        return err
    return _items(sales_activity_service.list_sales_activities(
        user_id=uid,
        customer_id=request.args.get("customer_id", type=int),
        deal_id=request.args.get("deal_id", type=int),
        limit=request.args.get("limit", type=int),
    ))


@sales_activity_bp.route("", methods=["POST"])
def create_sales_activity():
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    missing = [f for f in ("customer_id", "type", "description") if not data.get(f)]
    if missing:
        return api_error(E.VALIDATION_REQUIRED, f"Missing fields: {', '.join(missing)}")
    activity = sales_activity_service.create_sales_activity(user_id=uid, data=data)
    return jsonify(activity.to_dict()), 201


@sales_activity_bp.route("/upcoming", methods=["GET"])
def upcoming():
    uid, err = acting_user_id()
    if err:
        return err
    days = request.args.get("days", 7, type=int)
    return _items(sales_activity_service.get_upcoming(user_id=uid, days=days))


@sales_activity_bp.route("/overdue", methods=["GET"])
def overdue():
    uid, err = acting_user_id()
    if err:
        return err
    return _items(sales_activity_service.get_overdue(user_id=uid))


@sales_activity_bp.route("/range", methods=["GET"])
def by_date_range():
    uid, err = acting_user_id()
    if err:
        return err
    window, err = date_range_args()
    if err:
        return err
    start, end = window
    return _items(sales_activity_service.get_by_date_range(user_id=uid, start=start, end=end))


@sales_activity_bp.route("/stats", methods=["GET"])
def stats():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(sales_activity_service.get_sales_activity_stats(user_id=uid)), 200


@sales_activity_bp.route("/<int:activity_id>", methods=["GET"])
def get_sales_activity(activity_id):
    uid, err = acting_user_id()
    if err:
        return err
    activity = sales_activity_service.get_sales_activity(user_id=uid, activity_id=activity_id)
    return jsonify(activity.to_dict()), 200


@sales_activity_bp.route("/<int:activity_id>/details", methods=["GET"])
def get_sales_activity_details(activity_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(
        sales_activity_service.get_sales_activity_with_details(user_id=uid, activity_id=activity_id)
    ), 200


@sales_activity_bp.route("/<int:activity_id>", methods=["PUT"])
def update_sales_activity(activity_id):
    uid, err = acting_user_id()
    if err:
        return err
    activity = sales_activity_service.update_sales_activity(
        user_id=uid, activity_id=activity_id, data=json_body(),
    )
    return jsonify(activity.to_dict()), 200


@sales_activity_bp.route("/<int:activity_id>", methods=["DELETE"])
def delete_sales_activity(activity_id):
    uid, err = acting_user_id()
    if err:
        return err
    sales_activity_service.delete_sales_activity(user_id=uid, activity_id=activity_id)
    return jsonify({"deleted": True}), 200


@sales_activity_bp.route("/<int:activity_id>/complete", methods=["POST"])
def complete(activity_id):
    uid, err = acting_user_id()
    if err:
        return err
    activity = sales_activity_service.mark_completed(
        user_id=uid, activity_id=activity_id, outcome=json_body().get("outcome"),
    )
    return jsonify(activity.to_dict()), 200


@sales_activity_bp.route("/<int:activity_id>/follow-up", methods=["POST"])
def follow_up(activity_id):
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("scheduled_date") or not data.get("description"):
        return api_error(E.VALIDATION_REQUIRED, "scheduled_date and description are required")
    activity = sales_activity_service.create_follow_up(user_id=uid, activity_id=activity_id, data=data)
    return jsonify(activity.to_dict()), 201
