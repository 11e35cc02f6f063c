"""
Roadmap Blueprint.

Milestones and features hanging off a project. All business logic is
delegated to roadmap_service.

Endpoints:
  Milestones: GET/POST          /projects/<id>/milestones          (GET: status?)
              GET               /milestones                        (status?)
              GET               /milestones/upcoming               (days?, default 30)
              GET               /milestones/overdue
              GET               /milestones/stats                  (project_id?)
              POST              /milestones/reorder                body: {orders: [{milestone_id, order}]}
              GET/PUT/DELETE    /milestones/<id>
              GET               /milestones/<id>/features
              POST              /milestones/<id>/complete | /start | /delay
  Features:   GET/POST          /projects/<id>/features            (GET: status?)
              GET               /features/high-priority            (min_priority?)
              GET               /features/matrix                   (project_id?)
              GET               /features/stats                    (project_id?)
              GET               /features/search?q=
              GET/PUT/DELETE    /features/<id>
              POST              /features/<id>/complete | /start | /delay
              PUT               /features/<id>/milestone           body: {milestone_id | null}
"""

from flask import Blueprint, jsonify, request

from app.blueprints import acting_user_id, json_body
from app.services import roadmap_service
from app.utils.errors import E, api_error

roadmap_bp = Blueprint("roadmap", __name__, url_prefix="/api/v1")

_MILESTONE_ACTIONS = {
    "complete": roadmap_service.complete_milestone,
    "start": roadmap_service.start_milestone,
    "delay": roadmap_service.delay_milestone,
}
_FEATURE_ACTIONS = {
    "complete": roadmap_service.complete_feature,
    "start": roadmap_service.start_feature,
    "delay": roadmap_service.delay_feature,
}


def _items(rows):
    return jsonify({"items": [r.to_dict() for r in rows], "total": len(rows)}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Milestones
# ═════════════════════════════════════════════════════════════════════════════


@roadmap_bp.route("/projects/<int:project_id>/milestones", methods=["GET"])
def project_milestones(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    return _items(roadmap_service.list_milestones(
        user_id=uid, project_id=project_id, status=request.args.get("status"),
    ))


@roadmap_bp.route("/projects/<int:project_id>/milestones", methods=["POST"])
def create_milestone(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("title") or data.get("due_date") is None:
        return api_error(E.VALIDATION_REQUIRED, "title and due_date are required")
    milestone = roadmap_service.create_milestone(user_id=uid, project_id=project_id, data=data)
    return jsonify(milestone.to_dict()), 201


@roadmap_bp.route("/milestones", methods=["GET"])
def list_milestones():
    uid, err = acting_user_id()
    if err:
        return err
    return _items(roadmap_service.list_milestones(user_id=uid, status=request.args.get("status")))


@roadmap_bp.route("/milestones/upcoming", methods=["GET"])
def upcoming_milestones():
    uid, err = acting_user_id()
    if err:
        return err
    days = request.args.get("days", roadmap_service.UPCOMING_DAYS, type=int)
    return _items(roadmap_service.get_upcoming_milestones(user_id=uid, days=days))


@roadmap_bp.route("/milestones/overdue", methods=["GET"])
def overdue_milestones():
    uid, err = acting_user_id()
    if err:
        return err
    return _items(roadmap_service.get_overdue_milestones(user_id=uid))


@roadmap_bp.route("/milestones/stats", methods=["GET"])
def milestone_stats():
    uid, err = acting_user_id()
    if err:
        return err
    stats = roadmap_service.get_milestone_stats(
        user_id=uid, project_id=request.args.get("project_id", type=int),
    )
    return jsonify(stats), 200


@roadmap_bp.route("/milestones/reorder", methods=["POST"])
def reorder_milestones():
    uid, err = acting_user_id()
    if err:
        return err
    orders = json_body().get("orders")
    if not isinstance(orders, list) or not orders:
        return api_error(E.VALIDATION_REQUIRED, "orders must be a non-empty list")
    return _items(roadmap_service.reorder_milestones(user_id=uid, orders=orders))


@roadmap_bp.route("/milestones/<int:milestone_id>", methods=["GET"])
def get_milestone(milestone_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(roadmap_service.get_milestone(user_id=uid, milestone_id=milestone_id).to_dict()), 200


@roadmap_bp.route("/milestones/<int:milestone_id>", methods=["PUT"])
def update_milestone(milestone_id):
    uid, err = acting_user_id()
    if err:
        return err
    milestone = roadmap_service.update_milestone(user_id=uid, milestone_id=milestone_id, data=json_body())
    return jsonify(milestone.to_dict()), 200


@roadmap_bp.route("/milestones/<int:milestone_id>", methods=["DELETE"])
def delete_milestone(milestone_id):
    uid, err = acting_user_id()
    if err:
        return err
    roadmap_service.delete_milestone(user_id=uid, milestone_id=milestone_id)
    return jsonify({"deleted": True}), 200


@roadmap_bp.route("/milestones/<int:milestone_id>/features", methods=["GET"])
def milestone_with_features(milestone_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(roadmap_service.get_milestone_with_features(user_id=uid, milestone_id=milestone_id)), 200


@roadmap_bp.route("/milestones/<int:milestone_id>/<action>", methods=["POST"])
def milestone_action(milestone_id, action):
    uid, err = acting_user_id()
    if err:
        return err
    handler = _MILESTONE_ACTIONS.get(action)
    if handler is None:
        return api_error(E.NOT_FOUND, "Resource not found")
    return jsonify(handler(user_id=uid, milestone_id=milestone_id).to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════════
# Features
# ═════════════════════════════════════════════════════════════════════════════


@roadmap_bp.route("/projects/<int:project_id>/features", methods=["GET"])
def project_features(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    return _items(roadmap_service.list_features(
        user_id=uid, project_id=project_id, status=request.args.get("status"),
    ))


@roadmap_bp.route("/projects/<int:project_id>/features", methods=["POST"])
def create_feature(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("title"):
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    feature = roadmap_service.create_feature(user_id=uid, project_id=project_id, data=data)
    return jsonify(feature.to_dict()), 201


@roadmap_bp.route("/features/high-priority", methods=["GET"])
def high_priority_features():
    uid, err = acting_user_id()
    if err:
        return err
    min_priority = request.args.get("min_priority", type=int)
    if min_priority is None:
        return _items(roadmap_service.get_high_priority_features(user_id=uid))
    return _items(roadmap_service.get_high_priority_features(user_id=uid, min_priority=min_priority))


@roadmap_bp.route("/features/matrix", methods=["GET"])
def feature_matrix():
    uid, err = acting_user_id()
    if err:
        return err
    matrix = roadmap_service.get_features_by_effort_impact(
        user_id=uid, project_id=request.args.get("project_id", type=int),
    )
    return jsonify(matrix), 200


@roadmap_bp.route("/features/stats", methods=["GET"])
def feature_stats():
    uid, err = acting_user_id()
    if err:
        return err
    stats = roadmap_service.get_feature_stats(user_id=uid, project_id=request.args.get("project_id", type=int))
    return jsonify(stats), 200


@roadmap_bp.route("/features/search", methods=["GET"])
def search_features():
    uid, err = acting_user_id()
    if err:
        return err
    return _items(roadmap_service.search_features(user_id=uid, query=request.args.get("q", "")))


@roadmap_bp.route("/features/<int:feature_id>", methods=["GET"])
def get_feature(feature_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(roadmap_service.get_feature(user_id=uid, feature_id=feature_id).to_dict()), 200


@roadmap_bp.route("/features/<int:feature_id>", methods=["PUT"])
def update_feature(feature_id):
    uid, err = acting_user_id()
    if err:
        return err
    feature = roadmap_service.update_feature(user_id=uid, feature_id=feature_id, data=json_body())
    return jsonify(feature.to_dict()), 200


@roadmap_bp.route("/features/<int:feature_id>", methods=["DELETE"])
def delete_feature(feature_id):
    uid, err = acting_user_id()
    if err:
        return err
    roadmap_service.delete_feature(user_id=uid, feature_id=feature_id)
    return jsonify({"deleted": True}), 200


@roadmap_bp.route("/features/<int:feature_id>/milestone", methods=["PUT"])
def assign_feature(feature_id):
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if "milestone_id" not in data:
        return api_error(E.VALIDATION_REQUIRED, "milestone_id is required (null to unassign)")
    feature = roadmap_service.assign_feature_to_milestone(
        user_id=uid, feature_id=feature_id, milestone_id=data["milestone_id"],
    )
    return jsonify(feature.to_dict()), 200


@roadmap_bp.route("/features/<int:feature_id>/<action>", methods=["POST"])
def feature_action(feature_id, action):
    uid, err = acting_user_id()
    if err:
        return err
    handler = _FEATURE_ACTIONS.get(action)
    if handler is None:
        return api_error(E.NOT_FOUND, "Resource not found")
    return jsonify(handler(user_id=uid, feature_id=feature_id).to_dict()), 200
