"""
Development Tracking Blueprint.

Routes for projects, their phases and tasks, and the progress read models.
All business logic is delegated to project_service.

Endpoints:
  Projects:   GET/POST          /projects
              GET/PUT/DELETE    /projects/<id>
              GET               /projects/<id>/progress | /overview | /stats
  Phases:     GET/POST          /projects/<id>/phases
              GET/PUT/DELETE    /phases/<id>
              GET               /phases/<id>/progress
  Tasks:      GET/POST          /phases/<id>/tasks
              GET               /projects/<id>/tasks
              GET/PUT/DELETE    /tasks/<id>
              POST              /tasks/<id>/toggle
  Dev data:   DELETE            /development-data

All routes require the acting user (X-User-Id header or user_id param).
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import acting_user_id, json_body
from app.services import project_service
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    """Query params: status?"""
    uid, err = acting_user_id()
    if err:
        return err
    items = project_service.list_projects(user_id=uid, status=request.args.get("status"))
    return jsonify({"items": [p.to_dict() for p in items], "total": len(items)}), 200


@project_bp.route("/projects", methods=["POST"])
def create_project():
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    project = project_service.create_project(user_id=uid, data=data)
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(project_service.get_project(user_id=uid, project_id=project_id).to_dict()), 200


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    project = project_service.update_project(user_id=uid, project_id=project_id, data=json_body())
    return jsonify(project.to_dict()), 200


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    project_service.delete_project(user_id=uid, project_id=project_id)
    return jsonify({"deleted": True}), 200


@project_bp.route("/projects/<int:project_id>/progress", methods=["GET"])
def project_progress(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(project_service.get_project_progress(user_id=uid, project_id=project_id)), 200


@project_bp.route("/projects/<int:project_id>/overview", methods=["GET"])
def project_overview(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(project_service.get_project_overview(user_id=uid, project_id=project_id)), 200


@project_bp.route("/projects/<int:project_id>/stats", methods=["GET"])
def project_stats(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(project_service.get_project_stats(user_id=uid, project_id=project_id)), 200


# ═════════════════════════════════════════════════════════════════════════════
# Phases
# ═════════════════════════════════════════════════════════════════════════════


@project_bp.route("/projects/<int:project_id>/phases", methods=["GET"])
def list_phases(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    items = project_service.list_phases(user_id=uid, project_id=project_id)
    return jsonify({"items": [p.to_dict() for p in items], "total": len(items)}), 200


@project_bp.route("/projects/<int:project_id>/phases", methods=["POST"])
def create_phase(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    phase = project_service.create_phase(user_id=uid, project_id=project_id, data=data)
    return jsonify(phase.to_dict()), 201


@project_bp.route("/phases/<int:phase_id>", methods=["GET"])
def get_phase(phase_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(project_service.get_phase(user_id=uid, phase_id=phase_id).to_dict()), 200


@project_bp.route("/phases/<int:phase_id>", methods=["PUT"])
def update_phase(phase_id):
    uid, err = acting_user_id()
    if err:
        return err
    phase = project_service.update_phase(user_id=uid, phase_id=phase_id, data=json_body())
    return jsonify(phase.to_dict()), 200


@project_bp.route("/phases/<int:phase_id>", methods=["DELETE"])
def delete_phase(phase_id):
    uid, err = acting_user_id()
    if err:
        return err
    project_service.delete_phase(user_id=uid, phase_id=phase_id)
    return jsonify({"deleted": True}), 200


@project_bp.route("/phases/<int:phase_id>/progress", methods=["GET"])
def phase_progress(phase_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(project_service.get_phase_progress(user_id=uid, phase_id=phase_id)), 200


# ═════════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════════


@project_bp.route("/phases/<int:phase_id>/tasks", methods=["GET"])
def list_phase_tasks(phase_id):
    uid, err = acting_user_id()
    if err:
        return err
    items = project_service.list_tasks(user_id=uid, phase_id=phase_id)
    return jsonify({"items": [t.to_dict() for t in items], "total": len(items)}), 200


@project_bp.route("/projects/<int:project_id>/tasks", methods=["GET"])
def list_project_tasks(project_id):
    uid, err = acting_user_id()
    if err:
        return err
    items = project_service.list_tasks(user_id=uid, project_id=project_id)
    return jsonify({"items": [t.to_dict() for t in items], "total": len(items)}), 200


@project_bp.route("/phases/<int:phase_id>/tasks", methods=["POST"])
def create_task(phase_id):
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("title"):
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    task = project_service.create_task(user_id=uid, phase_id=phase_id, data=data)
    return jsonify(task.to_dict()), 201


@project_bp.route("/tasks/<int:task_id>", methods=["GET"])
def get_task(task_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(project_service.get_task(user_id=uid, task_id=task_id).to_dict()), 200


@project_bp.route("/tasks/<int:task_id>", methods=["PUT"])
def update_task(task_id):
    uid, err = acting_user_id()
    if err:
        return err
    task = project_service.update_task(user_id=uid, task_id=task_id, data=json_body())
    return jsonify(task.to_dict()), 200


@project_bp.route("/tasks/<int:task_id>/toggle", methods=["POST"])
def toggle_task(task_id):
    uid, err = acting_user_id()
    if err:
        return err
    task = project_service.toggle_task_completion(user_id=uid, task_id=task_id)
    return jsonify(task.to_dict()), 200


@project_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
def delete_task(task_id):
    uid, err = acting_user_id()
    if err:
        return err
    project_service.delete_task(user_id=uid, task_id=task_id)
    return jsonify({"deleted": True}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Development data
# ═════════════════════════════════════════════════════════════════════════════


@project_bp.route("/development-data", methods=["DELETE"])
def clear_development_data():
    """Delete every project (with phases and tasks) of the acting user."""
    uid, err = acting_user_id()
    if err:
        return err
    count = project_service.clear_development_data(user_id=uid)
    logger.info("Development data cleared via API", extra={"user_id": uid})
    return jsonify({"deleted_projects": count}), 200
