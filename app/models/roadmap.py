"""
SaaS Operations Dashboard
Roadmap models hanging off a project.

Models:
    - Milestone: a dated delivery target with a status and 0-100 progress
    - Feature: a unit of product scope scored by effort and impact (1-5),
      optionally assigned to a milestone

Hierarchy: Project -> Milestone, Project -> Feature (optionally -> Milestone).
"""

from app.models import db
from app.models.base import OwnedModel, iso

# ── Constants ────────────────────────────────────────────────────────────────

MILESTONE_STATUSES = ("planned", "in-progress", "completed", "delayed")
FEATURE_STATUSES = ("backlog", "planned", "in-progress", "completed", "delayed")

MIN_RATING, MAX_RATING = 1, 5
HIGH_FEATURE_PRIORITY = 4


class Milestone(OwnedModel):
    __tablename__ = "milestones"
    __table_args__ = (
        db.Index("idx_milestone_user_due", "user_id", "due_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(
        db.String(20), nullable=False, default="planned",
        comment="planned | in-progress | completed | delayed",
    )
    progress = db.Column(db.Integer, nullable=False, default=0, comment="0-100")
    owner = db.Column(db.String(200), nullable=True, comment="Display name of the person accountable")
    sort_order = db.Column("order", db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "due_date": iso(self.due_date),
            "status": self.status,
            "progress": self.progress,
            "owner": self.owner,
            "owner_initial": (self.owner or "")[:1].upper(),
            "order": self.sort_order,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Milestone {self.id}: {self.title[:40]}>"


class Feature(OwnedModel):
    __tablename__ = "features"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    milestone_id = db.Column(db.Integer, db.ForeignKey("milestones.id"), nullable=True, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(
        db.String(20), nullable=False, default="backlog",
        comment="backlog | planned | in-progress | completed | delayed",
    )
    priority = db.Column(db.Integer, nullable=False, default=3, comment="1 (low) - 5 (critical)")
    category = db.Column(db.String(100), nullable=True)
    effort = db.Column(db.Integer, nullable=True, comment="1-5")
    impact = db.Column(db.Integer, nullable=True, comment="1-5")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "project_id": self.project_id,
            "milestone_id": self.milestone_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "category": self.category,
            "effort": self.effort,
            "impact": self.impact,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Feature {self.id}: {self.title[:40]}>"
