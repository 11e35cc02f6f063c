"""
Idea Scorer Blueprint.

Routes for ideas, their weighted criteria and the 1-10 scores that link
them. Ideas go through idea_service, criteria through idea_criteria_service.

Endpoints:
  Ideas:     GET/POST        /ideas                    (GET: status?, q?)
             GET             /ideas/stats | /recent | /top-rated | /ranked
             GET/PUT/DELETE  /ideas/<id>
             GET             /ideas/<id>/scores        idea with scores + calculated score
             POST            /ideas/<id>/scores        upsert one, or bulk via {"scores": [...]}
             POST            /ideas/<id>/evaluate
             POST            /ideas/<id>/archive
             POST            /ideas/<id>/copy-scores   body: {target_idea_id}
             GET             /ideas/score-stats
             DELETE          /ideas/scores/<score_id>
  Criteria:  GET/POST        /idea-criteria            (GET: defaults_only?)
             POST            /idea-criteria/defaults
             POST            /idea-criteria/reorder    body: {orders: [{criteria_id, order}]}
             GET             /idea-criteria/stats | /usage
             GET/PUT/DELETE  /idea-criteria/<id>
             POST            /idea-criteria/<id>/duplicate
"""

from flask import Blueprint, jsonify, request

from app.blueprints import acting_user_id, json_body
from app.services import idea_criteria_service, idea_service
from app.utils.errors import E, api_error
from app.utils.helpers import parse_bool

idea_bp = Blueprint("ideas", __name__, url_prefix="/api/v1")


def _items(rows):
    return jsonify({"items": [r.to_dict() for r in rows], "total": len(rows)}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Ideas
# ═════════════════════════════════════════════════════════════════════════════


@idea_bp.route("/ideas", methods=["GET"])
def list_ideas():
    uid, err = acting_user_id()
    if err:
        return err
    if request.args.get("q"):
        return _items(idea_service.search_ideas(user_id=uid, term=request.args["q"]))
    return _items(idea_service.list_ideas(user_id=uid, status=request.args.get("status")))


@idea_bp.route("/ideas", methods=["POST"])
def create_idea():
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("title"):
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    return jsonify(idea_service.create_idea(user_id=uid, data=data).to_dict()), 201


@idea_bp.route("/ideas/stats", methods=["GET"])
def idea_stats():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(idea_service.get_idea_stats(user_id=uid)), 200


@idea_bp.route("/ideas/recent", methods=["GET"])
def recent_ideas():
    uid, err = acting_user_id()
    if err:
        return err
    return _items(idea_service.get_recent_ideas(user_id=uid, limit=request.args.get("limit", 5, type=int)))


@idea_bp.route("/ideas/top-rated", methods=["GET"])
def top_rated_ideas():
    uid, err = acting_user_id()
    if err:
        return err
    return _items(idea_service.get_top_rated_ideas(user_id=uid, limit=request.args.get("limit", 10, type=int)))


@idea_bp.route("/ideas/ranked", methods=["GET"])
def ranked_ideas():
    uid, err = acting_user_id()
    if err:
        return err
    rows = idea_service.get_ideas_ranked_by_score(user_id=uid, limit=request.args.get("limit", 10, type=int))
    return jsonify({"items": rows, "total": len(rows)}), 200


@idea_bp.route("/ideas/score-stats", methods=["GET"])
def score_stats():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(idea_service.get_score_stats(user_id=uid)), 200


@idea_bp.route("/ideas/<int:idea_id>", methods=["GET"])
def get_idea(idea_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(idea_service.get_idea(user_id=uid, idea_id=idea_id).to_dict()), 200


@idea_bp.route("/ideas/<int:idea_id>", methods=["PUT"])
def update_idea(idea_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(idea_service.update_idea(user_id=uid, idea_id=idea_id, data=json_body()).to_dict()), 200


@idea_bp.route("/ideas/<int:idea_id>", methods=["DELETE"])
def delete_idea(idea_id):
    uid, err = acting_user_id()
    if err:
        return err
    idea_service.delete_idea(user_id=uid, idea_id=idea_id)
    return jsonify({"deleted": True}), 200


@idea_bp.route("/ideas/<int:idea_id>/archive", methods=["POST"])
def archive_idea(idea_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(idea_service.archive_idea(user_id=uid, idea_id=idea_id).to_dict()), 200


@idea_bp.route("/ideas/<int:idea_id>/evaluate", methods=["POST"])
def evaluate_idea(idea_id):
    uid, err = acting_user_id()
    if err:
        return err
    idea = idea_service.mark_idea_evaluated(user_id=uid, idea_id=idea_id)
    return jsonify({**idea.to_dict(), "category_label": idea_service.score_category(idea.total_score)}), 200


@idea_bp.route("/ideas/<int:idea_id>/scores", methods=["GET"])
def idea_with_scores(idea_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(idea_service.get_idea_with_scores(user_id=uid, idea_id=idea_id)), 200


@idea_bp.route("/ideas/<int:idea_id>/scores", methods=["POST"])
def score_idea(idea_id):
    """Body: {criteria_id, score, notes?} or {scores: [{criteria_id, score, notes?}, ...]}"""
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if "scores" in data:
        if not isinstance(data["scores"], list):
            return api_error(E.VALIDATION_INVALID, "scores must be a list")
        rows = idea_service.bulk_score_idea(user_id=uid, idea_id=idea_id, scores=data["scores"])
        return jsonify({"items": [r.to_dict() for r in rows], "total": len(rows)}), 200
    if data.get("criteria_id") is None or data.get("score") is None:
        return api_error(E.VALIDATION_REQUIRED, "criteria_id and score are required")
    score = idea_service.upsert_score(
        user_id=uid,
        idea_id=idea_id,
        criteria_id=data["criteria_id"],
        score=data["score"],
        notes=data.get("notes"),
    )
    return jsonify(score.to_dict()), 200


@idea_bp.route("/ideas/<int:idea_id>/copy-scores", methods=["POST"])
def copy_scores(idea_id):
    uid, err = acting_user_id()
    if err:
        return err
    target = json_body().get("target_idea_id")
    if target is None:
        return api_error(E.VALIDATION_REQUIRED, "target_idea_id is required")
    rows = idea_service.copy_scores(user_id=uid, source_idea_id=idea_id, target_idea_id=target)
    return jsonify({"items": [r.to_dict() for r in rows], "total": len(rows)}), 201


@idea_bp.route("/ideas/scores/<int:score_id>", methods=["DELETE"])
def delete_score(score_id):
    uid, err = acting_user_id()
    if err:
        return err
    idea_service.delete_score(user_id=uid, score_id=score_id)
    return jsonify({"deleted": True}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Criteria
# ═════════════════════════════════════════════════════════════════════════════


@idea_bp.route("/idea-criteria", methods=["GET"])
def list_criteria():
    uid, err = acting_user_id()
    if err:
        return err
    defaults_only = parse_bool(request.args.get("defaults_only"))
    return _items(idea_criteria_service.list_criteria(user_id=uid, defaults_only=defaults_only))


@idea_bp.route("/idea-criteria", methods=["POST"])
def create_criteria():
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("name") or data.get("weight") is None:
        return api_error(E.VALIDATION_REQUIRED, "name and weight are required")
    return jsonify(idea_criteria_service.create_criteria(user_id=uid, data=data).to_dict()), 201


@idea_bp.route("/idea-criteria/defaults", methods=["POST"])
def create_default_criteria():
    uid, err = acting_user_id()
    if err:
        return err
    rows = idea_criteria_service.create_default_criteria(user_id=uid)
    return jsonify({"items": [r.to_dict() for r in rows], "total": len(rows)}), 201


@idea_bp.route("/idea-criteria/reorder", methods=["POST"])
def reorder_criteria():
    uid, err = acting_user_id()
    if err:
        return err
    orders = json_body().get("orders")
    if not isinstance(orders, list) or not orders:
        return api_error(E.VALIDATION_REQUIRED, "orders must be a non-empty list")
    return _items(idea_criteria_service.reorder_criteria(user_id=uid, orders=orders))


@idea_bp.route("/idea-criteria/stats", methods=["GET"])
def criteria_stats():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(idea_criteria_service.get_criteria_stats(user_id=uid)), 200


@idea_bp.route("/idea-criteria/usage", methods=["GET"])
def criteria_usage():
    uid, err = acting_user_id()
    if err:
        return err
    rows = idea_criteria_service.get_criteria_with_usage(user_id=uid)
    return jsonify({"items": rows, "total": len(rows)}), 200


@idea_bp.route("/idea-criteria/<int:criteria_id>", methods=["GET"])
def get_criteria(criteria_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(idea_criteria_service.get_criteria(user_id=uid, criteria_id=criteria_id).to_dict()), 200


@idea_bp.route("/idea-criteria/<int:criteria_id>", methods=["PUT"])
def update_criteria(criteria_id):
    uid, err = acting_user_id()
    if err:
        return err
    criteria = idea_criteria_service.update_criteria(user_id=uid, criteria_id=criteria_id, data=json_body())
    return jsonify(criteria.to_dict()), 200


@idea_bp.route("/idea-criteria/<int:criteria_id>", methods=["DELETE"])
def delete_criteria(criteria_id):
    uid, err = acting_user_id()
    if err:
        return err
    idea_criteria_service.delete_criteria(user_id=uid, criteria_id=criteria_id)
    return jsonify({"deleted": True}), 200


@idea_bp.route("/idea-criteria/<int:criteria_id>/duplicate", methods=["POST"])
def duplicate_criteria(criteria_id):
    uid, err = acting_user_id()
    if err:
        return err
    copy = idea_criteria_service.duplicate_criteria(
        user_id=uid, criteria_id=criteria_id, target_user_id=json_body().get("target_user_id"),
    )
    return jsonify(copy.to_dict()), 201
