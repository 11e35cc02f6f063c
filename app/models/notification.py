"""
SaaS Operations Dashboard
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

import json
from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {"info", "success", "warning", "error"}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("idx_notification_user_read", "user_id", "read"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    type = db.Column(db.String(20), default="info", comment="info | success | warning | error")

    # Link to source activity / entity
    activity_id = db.Column(db.Integer, db.ForeignKey("activities.id"), nullable=True)
    entity_type = db.Column(db.String(30), default="", comment="project/task/deal/customer/...")
    entity_id = db.Column(db.Integer, nullable=True)
    metadata_json = db.Column(db.Text, default="{}")

    # Read tracking
    read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.read = True
        self.read_at = datetime.now(timezone.utc)

    def mark_unread(self):
        self.read = False
        self.read_at = None

    @property
    def meta(self) -> dict:
        try:
            return json.loads(self.metadata_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "activity_id": self.activity_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "metadata": self.meta,
            "read": self.read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
