"""
Sales Pipeline Blueprint.

Endpoints:
  Deals:      GET/POST        /api/v1/deals                 (GET: stage?, customer_id?)
              GET/PUT/DELETE  /api/v1/deals/<id>
              GET             /api/v1/deals/<id>/details
              POST            /api/v1/deals/<id>/stage      body: {stage}
  Analytics:  GET             /api/v1/deals/pipeline
              GET             /api/v1/deals/closing-soon    (days=30)
              GET             /api/v1/deals/funnel
              GET             /api/v1/deals/forecast        (months=3)
"""

from flask import Blueprint, jsonify, request

from app.blueprints import acting_user_id, json_body
from app.services import deal_service
from app.utils.errors import E, api_error

deal_bp = Blueprint("deals", __name__, url_prefix="/api/v1/deals")


@deal_bp.route("", methods=["GET"])
def list_deals():
    uid, err = acting_user_id()
    if err:
        return err
    items = deal_service.list_deals(
        user_id=uid,
        stage=request.args.get("stage"),
        customer_id=request.args.get("customer_id", type=int),
    )
    return jsonify({"items": [d.to_dict() for d in items], "total": len(items)}), 200


@deal_bp.route("", methods=["POST"])
def create_deal():
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("title") or data.get("customer_id") is None:
        return api_error(E.VALIDATION_REQUIRED, "title and customer_id are required")
    deal = deal_service.create_deal(user_id=uid, data=data)
    return jsonify(deal.to_dict()), 201


@deal_bp.route("/<int:deal_id>", methods=["GET"])
def get_deal(deal_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(deal_service.get_deal(user_id=uid, deal_id=deal_id).to_dict()), 200


@deal_bp.route("/<int:deal_id>/details", methods=["GET"])
def get_deal_details(deal_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(deal_service.get_deal_with_details(user_id=uid, deal_id=deal_id)), 200


@deal_bp.route("/<int:deal_id>", methods=["PUT"])
def update_deal(deal_id):
    uid, err = acting_user_id()
    if err:
        return err
    deal = deal_service.update_deal(user_id=uid, deal_id=deal_id, data=json_body())
    return jsonify(deal.to_dict()), 200


@deal_bp.route("/<int:deal_id>", methods=["DELETE"])
def delete_deal(deal_id):
    uid, err = acting_user_id()
    if err:
        return err
    deal_service.delete_deal(user_id=uid, deal_id=deal_id)
    return jsonify({"deleted": True}), 200


@deal_bp.route("/<int:deal_id>/stage", methods=["POST"])
def move_deal(deal_id):
    uid, err = acting_user_id()
    if err:
        return err
    stage = json_body().get("stage")
    if not stage:
        return api_error(E.VALIDATION_REQUIRED, "stage is required")
    deal = deal_service.move_deal_to_stage(user_id=uid, deal_id=deal_id, stage=stage)
    return jsonify(deal.to_dict()), 200


# ── Analytics ────────────────────────────────────────────────────────────────


@deal_bp.route("/pipeline", methods=["GET"])
def sales_pipeline():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(deal_service.get_sales_pipeline(user_id=uid)), 200


@deal_bp.route("/closing-soon", methods=["GET"])
def closing_soon():
    uid, err = acting_user_id()
    if err:
        return err
    days = request.args.get("days", 30, type=int)
    items = deal_service.get_deals_closing_soon(user_id=uid, days=days)
    return jsonify({"items": [d.to_dict() for d in items], "total": len(items)}), 200


@deal_bp.route("/funnel", methods=["GET"])
def conversion_funnel():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(deal_service.get_conversion_funnel(user_id=uid)), 200


@deal_bp.route("/forecast", methods=["GET"])
def sales_forecast():
    uid, err = acting_user_id()
    if err:
        return err
    months = request.args.get("months", 3, type=int)
    return jsonify(deal_service.get_sales_forecast(user_id=uid, months=months)), 200
