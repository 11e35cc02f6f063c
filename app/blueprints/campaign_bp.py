"""
Marketing Campaign Blueprint.

Endpoints:
  Campaigns:  GET/POST        /api/v1/campaigns
              GET             /api/v1/campaigns/stats
              GET/PUT/DELETE  /api/v1/campaigns/<id>
  Metrics:    GET/POST        /api/v1/campaigns/<id>/metrics        (GET: start?, end?)
              GET             /api/v1/campaigns/<id>/metrics/aggregate
              GET             /api/v1/campaigns/<id>/performance    (period=day|week|month)
              PUT/DELETE      /api/v1/campaigns/metrics/<metric_id>
  Templates:  GET/POST        /api/v1/campaigns/templates         (GET: type?, difficulty?)
              GET/PUT/DELETE  /api/v1/campaigns/templates/<id>
              POST            /api/v1/campaigns/templates/<id>/use      bump popularity
              POST            /api/v1/campaigns/templates/<id>/campaign body: {name, start_date, end_date?, budget?}
"""

from flask import Blueprint, jsonify, request

from app.blueprints import acting_user_id, json_body
from app.services import campaign_service
from app.utils.errors import E, api_error
from app.utils.helpers import parse_datetime

campaign_bp = Blueprint("campaigns", __name__, url_prefix="/api/v1/campaigns")


@campaign_bp.route("", methods=["GET"])
def list_campaigns():
    """Query params: status?, type?"""
    uid, err = acting_user_id()
    if err:
        return err
    items = campaign_service.list_campaigns(
        user_id=uid, status=request.args.get("status"), type=request.args.get("type"),
    )
    return jsonify({"items": [c.to_dict() for c in items], "total": len(items)}), 200


@campaign_bp.route("", methods=["POST"])
def create_campaign():
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("name") or not data.get("type"):
        return api_error(E.VALIDATION_REQUIRED, "name and type are required")
    campaign = campaign_service.create_campaign(user_id=uid, data=data)
    return jsonify(campaign.to_dict()), 201


@campaign_bp.route("/stats", methods=["GET"])
def campaign_stats():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(campaign_service.get_campaign_stats(user_id=uid)), 200


@campaign_bp.route("/<int:campaign_id>", methods=["GET"])
def get_campaign(campaign_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(campaign_service.get_campaign(user_id=uid, campaign_id=campaign_id).to_dict()), 200


@campaign_bp.route("/<int:campaign_id>", methods=["PUT"])
def update_campaign(campaign_id):
    uid, err = acting_user_id()
    if err:
        return err
    campaign = campaign_service.update_campaign(user_id=uid, campaign_id=campaign_id, data=json_body())
    return jsonify(campaign.to_dict()), 200


@campaign_bp.route("/<int:campaign_id>", methods=["DELETE"])
def delete_campaign(campaign_id):
    uid, err = acting_user_id()
    if err:
        return err
    campaign_service.delete_campaign(user_id=uid, campaign_id=campaign_id)
    return jsonify({"deleted": True}), 200


# ── Metrics ──────────────────────────────────────────────────────────────────


@campaign_bp.route("/<int:campaign_id>/metrics", methods=["GET"])
def list_metrics(campaign_id):
    uid, err = acting_user_id()
    if err:
        return err
    items = campaign_service.list_metrics(
        user_id=uid,
        campaign_id=campaign_id,
        start=parse_datetime(request.args.get("start")),
        end=parse_datetime(request.args.get("end")),
    )
    return jsonify({"items": [m.to_dict() for m in items], "total": len(items)}), 200


@campaign_bp.route("/<int:campaign_id>/metrics", methods=["POST"])
def record_metrics(campaign_id):
    uid, err = acting_user_id()
    if err:
        return err
    metric = campaign_service.record_metrics(user_id=uid, campaign_id=campaign_id, data=json_body())
    return jsonify(metric.to_dict()), 201


@campaign_bp.route("/<int:campaign_id>/metrics/aggregate", methods=["GET"])
def aggregated_metrics(campaign_id):
    """Returns ``null`` when the campaign has no metrics yet."""
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(campaign_service.get_aggregated_metrics(user_id=uid, campaign_id=campaign_id)), 200


@campaign_bp.route("/<int:campaign_id>/performance", methods=["GET"])
def campaign_performance(campaign_id):
    uid, err = acting_user_id()
    if err:
        return err
    rows = campaign_service.get_campaign_performance(
        user_id=uid, campaign_id=campaign_id, period=request.args.get("period", "day"),
    )
    return jsonify({"items": rows, "total": len(rows)}), 200


@campaign_bp.route("/metrics/<int:metric_id>", methods=["PUT"])
def update_metrics(metric_id):
    uid, err = acting_user_id()
    if err:
        return err
    metric = campaign_service.update_metrics(user_id=uid, metric_id=metric_id, data=json_body())
    return jsonify(metric.to_dict()), 200


@campaign_bp.route("/metrics/<int:metric_id>", methods=["DELETE"])
def delete_metrics(metric_id):
    uid, err = acting_user_id()
    if err:
        return err
    campaign_service.delete_metrics(user_id=uid, metric_id=metric_id)
    return jsonify({"deleted": True}), 200


# ═════════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════════


@campaign_bp.route("/templates", methods=["GET"])
def list_templates():
    uid, err = acting_user_id()
    if err:
        return err
    items = campaign_service.list_templates(
        user_id=uid, type=request.args.get("type"), difficulty=request.args.get("difficulty"),
    )
    return jsonify({"items": [t.to_dict() for t in items], "total": len(items)}), 200


@campaign_bp.route("/templates", methods=["POST"])
def create_template():
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("name") or not data.get("type"):
        return api_error(E.VALIDATION_REQUIRED, "name and type are required")
    return jsonify(campaign_service.create_template(user_id=uid, data=data).to_dict()), 201


@campaign_bp.route("/templates/<int:template_id>", methods=["GET"])
def get_template(template_id):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(campaign_service.get_template(user_id=uid, template_id=template_id).to_dict()), 200


@campaign_bp.route("/templates/<int:template_id>", methods=["PUT"])
def update_template(template_id):
    uid, err = acting_user_id()
    if err:
        return err
    template = campaign_service.update_template(user_id=uid, template_id=template_id, data=json_body())
    return jsonify(template.to_dict()), 200


@campaign_bp.route("/templates/<int:template_id>", methods=["DELETE"])
def delete_template(template_id):
    uid, err = acting_user_id()
    if err:
        return err
    campaign_service.delete_template(user_id=uid, template_id=template_id)
    return jsonify({"deleted": True}), 200


@campaign_bp.route("/templates/<int:template_id>/use", methods=["POST"])
def use_template(template_id):
    uid, err = acting_user_id()
    if err:
        return err
    template = campaign_service.increment_template_popularity(user_id=uid, template_id=template_id)
    return jsonify(template.to_dict()), 200


@campaign_bp.route("/templates/<int:template_id>/campaign", methods=["POST"])
def campaign_from_template(template_id):
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()
    if not data.get("name") or not data.get("start_date"):
        return api_error(E.VALIDATION_REQUIRED, "name and start_date are required")
    campaign = campaign_service.create_campaign_from_template(user_id=uid, template_id=template_id, data=data)
    return jsonify(campaign.to_dict()), 201
