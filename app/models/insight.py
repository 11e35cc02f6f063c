"""
SaaS Operations Dashboard
Insight domain model.

An insight is a generated recommendation with a category and a 1-5
priority; users dismiss (and may restore) them.
"""

from app.models import db
from app.models.base import OwnedModel, iso

INSIGHT_CATEGORIES = ("performance", "opportunity", "suggestion", "trend")
MIN_PRIORITY, MAX_PRIORITY = 1, 5
HIGH_PRIORITY_THRESHOLD = 4


class Insight(OwnedModel):
    __tablename__ = "insights"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    category = db.Column(
        db.String(20), nullable=False, index=True,
        comment="performance | opportunity | suggestion | trend",
    )
    priority = db.Column(db.Integer, nullable=False, default=3, comment="1 (low) - 5 (critical)")
    dismissed = db.Column(db.Boolean, nullable=False, default=False, index=True)

    @property
    def is_high_priority(self) -> bool:
        return self.priority >= HIGH_PRIORITY_THRESHOLD

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "priority": self.priority,
            "dismissed": self.dismissed,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Insight {self.id}: {self.category} p{self.priority}>"
