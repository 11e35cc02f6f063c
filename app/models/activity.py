"""
SaaS Operations Dashboard
Activity feed model.

Models:
    - Activity: append-only log row describing a state change; drives the
      "recent activity" feed and the audit trail. Only the ``unread`` flag
      changes after insert.
"""

import json
from datetime import UTC, datetime

from app.models import db
from app.models.base import iso

# ── Constants ────────────────────────────────────────────────────────────────

# Feed types entered by users; service-generated rows use dotted event keys.
FEED_TYPES = {"comment", "task", "document", "meeting", "code"}

ACTIVITY_EVENTS = {
    "project.created",
    "project.deleted",
    "milestone.created",
    "milestone.status_changed",
    "milestone.completed",
    "milestone.deleted",
    "feature.created",
    "feature.updated",
    "feature.status_changed",
    "feature.completed",
    "feature.deleted",
    "campaign.created",
    "campaign.metrics.created",
    "customer.created",
    "customer.updated",
    "customer.status_changed",
    "customer.deleted",
    "deal.created",
    "deal.stage_changed",
    "sales_activity.created",
    "sales_activity.completed",
}


class Activity(db.Model):
    __tablename__ = "activities"
    __table_args__ = (
        db.Index("idx_activity_entity", "entity_type", "entity_id"),
        db.Index("idx_activity_user_date", "user_id", "date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    type = db.Column(db.String(60), nullable=False, index=True, comment="comment | task | ... | customer.updated | ...")
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    date = db.Column(db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    unread = db.Column(db.Boolean, nullable=False, default=True)

    # Polymorphic entity reference
    entity_type = db.Column(db.String(30), nullable=True, comment="customer | deal | campaign | project | ...")
    entity_id = db.Column(db.Integer, nullable=True)

    metadata_json = db.Column(db.Text, default="{}")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    @property
    def meta(self) -> dict:
        try:
            return json.loads(self.metadata_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "date": iso(self.date),
            "unread": self.unread,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "metadata": self.meta,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<Activity {self.id}: {self.type} on {self.entity_type}/{self.entity_id}>"
