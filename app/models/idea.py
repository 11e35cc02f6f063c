"""
SaaS Operations Dashboard
Idea scorer domain models.

Models:
    - Idea: a product/business idea under evaluation
    - IdeaCriteria: a weighted evaluation criterion owned by a user
    - IdeaScore: one user's 1-10 rating of an idea against one criterion
"""

from app.models import db
from app.models.base import OwnedModel, iso

IDEA_STATUSES = {"draft", "evaluated", "approved", "rejected", "archived"}

MIN_WEIGHT, MAX_WEIGHT = 1, 10
MIN_SCORE, MAX_SCORE = 1, 10


class Idea(OwnedModel):
    __tablename__ = "ideas"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    category = db.Column(db.String(100), nullable=True, index=True)
    status = db.Column(
        db.String(20), nullable=False, default="draft",
        comment="draft | evaluated | approved | rejected | archived",
    )
    total_score = db.Column(db.Integer, nullable=True, comment="0-100, set by evaluation")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "total_score": self.total_score,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Idea {self.id}: {self.title[:40]}>"


class IdeaCriteria(OwnedModel):
    __tablename__ = "idea_criteria"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    weight = db.Column(db.Integer, nullable=False, default=5, comment="1-10")
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column("order", db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "weight": self.weight,
            "is_default": self.is_default,
            "order": self.sort_order,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<IdeaCriteria {self.id}: {self.name} w={self.weight}>"


class IdeaScore(OwnedModel):
    __tablename__ = "idea_scores"
    __table_args__ = (
        db.UniqueConstraint("idea_id", "criteria_id", "user_id", name="uq_idea_score_idea_criteria_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    idea_id = db.Column(db.Integer, db.ForeignKey("ideas.id"), nullable=False, index=True)
    criteria_id = db.Column(db.Integer, db.ForeignKey("idea_criteria.id"), nullable=False, index=True)
    score = db.Column(db.Integer, nullable=False, comment="1-10")
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "idea_id": self.idea_id,
            "criteria_id": self.criteria_id,
            "user_id": self.user_id,
            "score": self.score,
            "notes": self.notes,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
