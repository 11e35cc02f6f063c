"""
SaaS Operations Dashboard
Development tracking models: Project -> Phase -> Task.

Progress fields are denormalized aggregates maintained by
``app.services.project_service``; they are never written by callers.
"""

from app.models import db
from app.models.base import OwnedModel, TimestampMixin, iso

PROJECT_STATUSES = {"planning", "active", "completed", "on-hold"}


class Project(OwnedModel):
    """Top-level development effort owned by a user."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(
        db.String(20), nullable=False, default="planning",
        comment="planning | active | completed | on-hold",
    )
    progress = db.Column(db.Integer, nullable=False, default=0, comment="0-100, mean of phase progress")
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "progress": self.progress,
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class Phase(TimestampMixin, db.Model):
    """Named sub-stage of a project holding an ordered set of tasks."""

    __tablename__ = "development_phases"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    progress = db.Column(db.Integer, nullable=False, default=0, comment="0-100, share of completed tasks")
    sort_order = db.Column("order", db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "progress": self.progress,
            "order": self.sort_order,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Phase {self.id}: {self.name}>"


class Task(TimestampMixin, db.Model):
    __tablename__ = "development_tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False, index=True)
    phase_id = db.Column(db.Integer, db.ForeignKey("development_phases.id"), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    completed = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column("order", db.Integer, nullable=False, default=0)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "phase_id": self.phase_id,
            "title": self.title,
            "description": self.description,
            "completed": self.completed,
            "order": self.sort_order,
            "due_date": iso(self.due_date),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.title[:40]}>"
