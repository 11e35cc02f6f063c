"""
SaaS Operations Dashboard
User domain model.

Users are provisioned by the external identity provider; this table keeps
the subset of the identity (email, name, avatar) that records are stamped
with.
"""

from app.models import db
from app.models.base import TimestampMixin, iso

USER_ROLES = {"admin", "user"}


class User(TimestampMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    avatar_url = db.Column(db.String(500), nullable=True)
    role = db.Column(db.String(20), nullable=False, default="user", comment="admin | user")

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "avatar_url": self.avatar_url,
            "role": self.role,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
