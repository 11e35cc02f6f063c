"""
Customer (CRM) Blueprint.

Endpoints:
  GET/POST        /api/v1/customers                 (GET: status?, q?, email?)
  GET             /api/v1/customers/stats
  GET             /api/v1/customers/top              (limit?, default 10)
  GET/PUT/DELETE  /api/v1/customers/<id>
  GET             /api/v1/customers/<id>/details
  GET             /api/v1/customers/<id>/journey
"""

from flask import Blueprint, jsonify, request

from app.blueprints import acting_user_id, json_body
from app.services import customer_service
from app.utils.errors import E, api_error

customer_bp = Blueprint("customers", __name__, url_prefix="/api/v1/customers")


@customer_bp.route("", methods=["GET"])
def list_customers():
    """List, search (``q``) or look up by ``email``."""
    uid, err = acting_user_id()
    if err:
        return err
    email = request.args.get("email")
    if email:
        customer = customer_service.get_customer_by_email(user_id=uid, email=email)
        items = [customer] if customer else []
    elif request.args.get("q"):
        items = customer_service.search_customers(user_id=uid, term=request.args["q"])
    else:
        items = customer_service.list_customers(user_id=uid, status=request.args.get("status"))
    return jsonify({"items": [c.to_dict() for c in items], "total": len(items)}), 200


@customer_bp.route("", methods=["POST"])
def create_customer():
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("name") or not data.get("email"):
        return api_error(E.VALIDATION_REQUIRED, "name and email are required")
    customer = customer_service.create_customer(user_id=uid, data=data)
    return jsonify(customer.to_dict()), 201


@customer_bp.route("/stats", methods=["GET"])
def customer_stats():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(customer_service.get_customer_stats(user_id=uid)), 200


@customer_bp.route("/<int:customer_id>", methods=["GET"])
def get_customer(customer_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(customer_service.get_customer(user_id=uid, customer_id=customer_id).to_dict()), 200


@customer_bp.route("/<int:customer_id>/details", methods=["GET"])
def get_customer_details(customer_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(customer_service.get_customer_with_details(user_id=uid, customer_id=customer_id)), 200


@customer_bp.route("/<int:customer_id>", methods=["PUT"])
def update_customer(customer_id):
    uid, err = acting_user_id()
    if err:
        return err
    customer = customer_service.update_customer(user_id=uid, customer_id=customer_id, data=json_body())
    return jsonify(customer.to_dict()), 200


@customer_bp.route("/<int:customer_id>", methods=["DELETE"])
def delete_customer(customer_id):
    uid, err = acting_user_id()
    if err:
        return err
    customer_service.delete_customer(user_id=uid, customer_id=customer_id)
    return jsonify({"deleted": True}), 200


@customer_bp.route("/top", methods=["GET"])
def top_customers():
    uid, err = acting_user_id()
    if err:
        return err
    rows = customer_service.get_top_customers(user_id=uid, limit=request.args.get("limit", 10, type=int))
    return jsonify({"items": rows, "total": len(rows)}), 200


@customer_bp.route("/<int:customer_id>/journey", methods=["GET"])
def customer_journey(customer_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(customer_service.get_customer_journey(user_id=uid, customer_id=customer_id)), 200
