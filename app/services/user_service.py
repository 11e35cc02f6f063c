"""
User Service: identity mirror and account teardown.

Users are provisioned by the external identity provider; the dashboard
upserts them by email on first sight and cascades everything they own on
delete.
"""

import logging

from sqlalchemy import delete, select

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.activity import Activity
from app.models.campaign import Campaign, CampaignMetric, CampaignTemplate
from app.models.idea import Idea, IdeaCriteria, IdeaScore
from app.models.insight import Insight
from app.models.notification import Notification
from app.models.project import Phase, Project, Task
from app.models.roadmap import Feature, Milestone
from app.models.sales import Customer, Deal, SalesActivity
from app.models.user import USER_ROLES, User
from app.services.helpers.scoped_queries import require_user
from app.utils.helpers import normalize_email

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# User CRUD
# ═══════════════════════════════════════════════════════════════
def create_or_update_user(
    *,
    email: str,
    name: str,
    avatar_url: str | None = None,
    role: str | None = None,
) -> tuple[User, bool]:
    """Upsert a user by email.

    Returns:
        (user, created) where created is False when an existing row was
        updated.
    """
    email = normalize_email(email)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required", details={"name": "required"})
    if role is not None and role not in USER_ROLES:
        raise ValidationError(
            f"role must be one of: {', '.join(sorted(USER_ROLES))}",
            details={"role": role},
        )

    user = get_user_by_email(email)
    created = user is None
    if created:
        user = User(email=email, name=name, avatar_url=avatar_url, role=role or "user")
        db.session.add(user)
    else:
        user.name = name
        if avatar_url is not None:
            user.avatar_url = avatar_url
        if role is not None:
            user.role = role
    db.session.commit()
    logger.info(
        "User %s: %s", "created" if created else "updated", email,
        extra={"user_id": user.id},
    )
    return user, created


def get_user(*, user_id: int) -> User:
    return require_user(user_id)


def get_user_by_email(email: str) -> User | None:
    """Case-insensitive lookup; None when no such user."""
    stmt = select(User).where(db.func.lower(User.email) == (email or "").strip().lower())
    return db.session.execute(stmt).scalars().first()


def list_users() -> list[User]:
    return list(db.session.execute(select(User).order_by(User.id)).scalars().all())


def update_user_profile(*, user_id: int, data: dict) -> User:
    """Update name / avatar_url / role of a user."""
    user = require_user(user_id)
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Name cannot be empty", details={"name": "required"})
        user.name = name
    if "avatar_url" in data:
        user.avatar_url = data.get("avatar_url")
    if "role" in data:
        if data["role"] not in USER_ROLES:
            raise ValidationError(
                f"role must be one of: {', '.join(sorted(USER_ROLES))}",
                details={"role": data["role"]},
            )
        user.role = data["role"]
    db.session.commit()
    return user


# ═══════════════════════════════════════════════════════════════
# Account teardown
# ═══════════════════════════════════════════════════════════════
def delete_user(*, user_id: int) -> None:
    """Delete a user and every record they own in one transaction.

    Children go before parents so the FK constraints hold at every step.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)

    project_ids = select(Project.id).where(Project.user_id == user_id)
    campaign_ids = select(Campaign.id).where(Campaign.user_id == user_id)
    idea_ids = select(Idea.id).where(Idea.user_id == user_id)
    criteria_ids = select(IdeaCriteria.id).where(IdeaCriteria.user_id == user_id)

    try:
        # Notifications reference activities, so they go first.
        db.session.execute(delete(Notification).where(Notification.user_id == user_id))
        db.session.execute(delete(Activity).where(Activity.user_id == user_id))

        db.session.execute(delete(Feature).where(
            (Feature.user_id == user_id) | Feature.project_id.in_(project_ids)
        ))
        db.session.execute(delete(Milestone).where(
            (Milestone.user_id == user_id) | Milestone.project_id.in_(project_ids)
        ))
        db.session.execute(delete(Task).where(Task.project_id.in_(project_ids)))
        db.session.execute(delete(Phase).where(Phase.project_id.in_(project_ids)))
        db.session.execute(delete(Project).where(Project.user_id == user_id))

        db.session.execute(delete(CampaignMetric).where(CampaignMetric.campaign_id.in_(campaign_ids)))
        db.session.execute(delete(Campaign).where(Campaign.user_id == user_id))
        db.session.execute(delete(CampaignTemplate).where(CampaignTemplate.created_by == user_id))

        db.session.execute(delete(SalesActivity).where(SalesActivity.user_id == user_id))
        db.session.execute(delete(Deal).where(Deal.user_id == user_id))
        db.session.execute(delete(Customer).where(Customer.user_id == user_id))

        # Scores of other users on this user's ideas / criteria go too.
        db.session.execute(
            delete(IdeaScore).where(
                (IdeaScore.user_id == user_id)
                | IdeaScore.idea_id.in_(idea_ids)
                | IdeaScore.criteria_id.in_(criteria_ids)
            )
        )
        db.session.execute(delete(Idea).where(Idea.user_id == user_id))
        db.session.execute(delete(IdeaCriteria).where(IdeaCriteria.user_id == user_id))
        db.session.execute(delete(Insight).where(Insight.user_id == user_id))

        db.session.delete(user)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("User delete failed, rolled back", extra={"user_id": user_id})
        raise
    # Bulk deletes bypass the identity map.
    db.session.expire_all()
    logger.info("User deleted with all owned records", extra={"user_id": user_id})
