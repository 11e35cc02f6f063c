"""
User Blueprint.

Endpoints:
  POST   /api/v1/users              upsert by email
  GET    /api/v1/users              list
  GET    /api/v1/users/me           acting user
  GET    /api/v1/users/<id>
  PUT    /api/v1/users/me           update name / avatar_url / role
  DELETE /api/v1/users/me           delete the acting user and all owned records
"""

from flask import Blueprint, jsonify, request

from app.blueprints import acting_user_id, json_body
from app.services import user_service
from app.utils.errors import E, api_error

user_bp = Blueprint("users", __name__, url_prefix="/api/v1/users")


@user_bp.route("", methods=["POST"])
def upsert_user():
    data = json_body()
    if not data.get("email") or not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "email and name are required")
    user, created = user_service.create_or_update_user(
        email=data["email"],
        name=data["name"],
        avatar_url=data.get("avatar_url"),
        role=data.get("role"),
    )
    return jsonify(user.to_dict()), 201 if created else 200


@user_bp.route("", methods=["GET"])
def list_users():
    email = request.args.get("email")
    if email:
        user = user_service.get_user_by_email(email)
        return jsonify({"items": [user.to_dict()] if user else [], "total": 1 if user else 0}), 200
    users = user_service.list_users()
    return jsonify({"items": [u.to_dict() for u in users], "total": len(users)}), 200


@user_bp.route("/me", methods=["GET"])
def get_me():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(user_service.get_user(user_id=uid).to_dict()), 200


@user_bp.route("/<int:user_id>", methods=["GET"])
def get_user(user_id):
    return jsonify(user_service.get_user(user_id=user_id).to_dict()), 200


@user_bp.route("/me", methods=["PUT"])
def update_me():
    uid, err = acting_user_id()
    if err:
        return err
    user = user_service.update_user_profile(user_id=uid, data=json_body())
    return jsonify(user.to_dict()), 200


@user_bp.route("/me", methods=["DELETE"])
def delete_me():
    uid, err = acting_user_id()
    if err:
        return err
    user_service.delete_user(user_id=uid)
    return jsonify({"deleted": True}), 200
