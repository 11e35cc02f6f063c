"""
OwnedModel: abstract base class for user-owned models.

Every record in the dashboard belongs to exactly one user. Models that need
owner isolation inherit from OwnedModel instead of db.Model directly. This
adds:
  - user_id FK column with index
  - created_at / updated_at timestamp bookkeeping
"""

from datetime import datetime, timezone

from app.models import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def iso(value):
    """Serialize a datetime (or None) for JSON responses."""
    return value.isoformat() if value else None


class TimestampMixin:
    """created_at / updated_at columns shared by every table."""

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class OwnedModel(TimestampMixin, db.Model):
    """Abstract base for user-owned tables."""
    __abstract__ = True

    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

