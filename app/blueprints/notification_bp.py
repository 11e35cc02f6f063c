"""
SaaS Operations Dashboard
Notification Blueprint.

Provides:
    - Notification CRUD for the acting user
    - Read / unread tracking and bulk mark-read
    - Stats and retention cleanup
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import acting_user_id, json_body, parse_pagination
from app.services.notification import NotificationService
from app.utils.errors import E, api_error
from app.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")


# ═══════════════════════════════════════════════════════════════════════════
#  NOTIFICATION CRUD
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["POST"])
def create_notification():
    """Create a notification for the acting user."""
    uid, err = acting_user_id()
    if err:
        return err
    data = json_body()

    title = str(data.get("title", "") or "").strip()
    if not title:
        return api_error(E.VALIDATION_REQUIRED, "title is required")

    notif = NotificationService.create(
        user_id=uid,
        title=title,
        message=data.get("message", ""),
        type=data.get("type", "info"),
        entity_type=data.get("entity_type", ""),
        entity_id=data.get("entity_id"),
        metadata=data.get("metadata"),
    )
    return jsonify(notif.to_dict()), 201


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    """List notifications, newest first.

    Query params: unread_only?, type?, limit (default 20), offset
    """
    uid, err = acting_user_id()
    if err:
        return err
    ntype = request.args.get("type")
    if ntype:
        items = NotificationService.list_by_type(uid, ntype)
        return jsonify({"items": [n.to_dict() for n in items], "total": len(items)}), 200

    limit, offset = parse_pagination(default_limit=20)
    items, total = NotificationService.list_for_user(
        uid, unread_only=parse_bool(request.args.get("unread_only")), limit=limit, offset=offset,
    )
    return jsonify({"items": [n.to_dict() for n in items], "total": total}), 200


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify({"unread_count": NotificationService.unread_count(uid)}), 200


@notification_bp.route("/notifications/stats", methods=["GET"])
def notification_stats():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(NotificationService.get_stats(uid)), 200


@notification_bp.route("/notifications/<int:nid>/read", methods=["PATCH"])
def mark_read(nid):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(NotificationService.mark_read(nid, uid).to_dict()), 200


@notification_bp.route("/notifications/<int:nid>/unread", methods=["PATCH"])
def mark_unread(nid):
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify(NotificationService.mark_unread(nid, uid).to_dict()), 200


@notification_bp.route("/notifications/mark-all-read", methods=["POST"])
def mark_all_read():
    uid, err = acting_user_id()
    if err:
        return err
    return jsonify({"marked_read": NotificationService.mark_all_read(uid)}), 200


@notification_bp.route("/notifications/<int:nid>", methods=["DELETE"])
def delete_notification(nid):
    uid, err = acting_user_id()
    if err:
        return err
    NotificationService.delete(nid, uid)
    return jsonify({"deleted": True, "id": nid}), 200


@notification_bp.route("/notifications", methods=["DELETE"])
def delete_notifications():
    """Delete all of the user's notifications, or only those older than ``older_than_days``."""
    uid, err = acting_user_id()
    if err:
        return err
    days = request.args.get("older_than_days", type=int)
    if days is not None:
        if days < 0:
            return api_error(E.VALIDATION_INVALID, "older_than_days must be >= 0")
        deleted = NotificationService.delete_older_than(days, user_id=uid)
    else:
        deleted = NotificationService.delete_all(uid)
    logger.info("Deleted %d notifications", len(deleted), extra={"user_id": uid})
    return jsonify({"deleted": len(deleted), "ids": deleted}), 200
