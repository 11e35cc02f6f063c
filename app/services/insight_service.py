"""
Insight service.

Insights are prioritized recommendations (1 = low, 5 = critical). Users
dismiss them from the dashboard and may restore them later; every list
query hides dismissed insights unless asked otherwise.

generate_insights() rebuilds the set from the user's projects, customers,
campaigns and deals. Rule weights are kept on a 1-10 scale and folded onto
the 1-5 priority range when stored.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.campaign import Campaign
from app.models.insight import (
    HIGH_PRIORITY_THRESHOLD,
    INSIGHT_CATEGORIES,
    MAX_PRIORITY,
    MIN_PRIORITY,
    Insight,
)
from app.models.project import Project
from app.models.sales import CLOSED_STAGES, Customer, Deal
from app.services.helpers.scoped_queries import get_owned, require_user
from app.utils.helpers import ensure_utc, parse_int, round_half_up

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


def _validate_priority(value) -> int:
    priority = parse_int(value, "priority")
    if not MIN_PRIORITY <= priority <= MAX_PRIORITY:
        raise ValidationError("Priority must be between 1 and 5", details={"priority": priority})
    return priority


def _validate_category(category):
    if category not in INSIGHT_CATEGORIES:
        raise ValidationError(
            f"category must be one of: {', '.join(INSIGHT_CATEGORIES)}",
            details={"category": category},
        )
    return category


def _base(user_id: int, include_dismissed: bool):
    require_user(user_id)
    stmt = select(Insight).where(Insight.user_id == user_id)
    if not include_dismissed:
        stmt = stmt.where(Insight.dismissed.is_(False))
    return stmt


def _run(stmt, limit):
    stmt = stmt.order_by(Insight.created_at.desc(), Insight.id.desc())
    if limit:
        stmt = stmt.limit(limit)
    return list(db.session.execute(stmt).scalars().all())


# ── CRUD ─────────────────────────────────────────────────────────────────────


def create_insight(*, user_id: int, data: dict) -> Insight:
    require_user(user_id)
    title = str(data.get("title", "") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    insight = Insight(
        user_id=user_id,
        title=title,
        description=data.get("description") or "",
        category=_validate_category(data.get("category")),
        priority=_validate_priority(data.get("priority", 3)),
        dismissed=False,
    )
    db.session.add(insight)
    db.session.commit()
    return insight


def get_insight(*, user_id: int, insight_id: int) -> Insight:
    return get_owned(Insight, insight_id, user_id=user_id)


def update_insight(*, user_id: int, insight_id: int, data: dict) -> Insight:
    insight = get_owned(Insight, insight_id, user_id=user_id)
    if "title" in data:
        title = str(data.get("title") or "").strip()
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"})
        insight.title = title
    if "description" in data:
        insight.description = data.get("description") or ""
    if "category" in data:
        insight.category = _validate_category(data["category"])
    if "priority" in data:
        insight.priority = _validate_priority(data["priority"])
    db.session.commit()
    return insight


def dismiss_insight(*, user_id: int, insight_id: int) -> Insight:
    insight = get_owned(Insight, insight_id, user_id=user_id)
    insight.dismissed = True
    db.session.commit()
    return insight


def restore_insight(*, user_id: int, insight_id: int) -> Insight:
    insight = get_owned(Insight, insight_id, user_id=user_id)
    insight.dismissed = False
    db.session.commit()
    return insight


def delete_insight(*, user_id: int, insight_id: int) -> None:
    insight = get_owned(Insight, insight_id, user_id=user_id)
    db.session.delete(insight)
    db.session.commit()


def bulk_dismiss_by_category(*, user_id: int, category: str) -> dict:
    """Dismiss every active insight of *category*."""
    _validate_category(category)
    rows = _run(_base(user_id, False).where(Insight.category == category), None)
    for insight in rows:
        insight.dismissed = True
    db.session.commit()
    logger.info("Dismissed %d %s insights", len(rows), category, extra={"user_id": user_id})
    return {"success": True, "count": len(rows)}


# ── Queries ──────────────────────────────────────────────────────────────────


def list_insights(*, user_id: int, include_dismissed: bool = False, limit: int = DEFAULT_LIMIT) -> list[Insight]:
    return _run(_base(user_id, include_dismissed), limit)


def get_by_category(
    *, user_id: int, category: str, include_dismissed: bool = False, limit: int = DEFAULT_LIMIT,
) -> list[Insight]:
    _validate_category(category)
    return _run(_base(user_id, include_dismissed).where(Insight.category == category), limit)


def get_by_priority(
    *,
    user_id: int,
    min_priority: int = MIN_PRIORITY,
    max_priority: int = MAX_PRIORITY,
    include_dismissed: bool = False,
    limit: int = DEFAULT_LIMIT,
) -> list[Insight]:
    if min_priority > max_priority:
        raise ValidationError("min_priority must not exceed max_priority")
    stmt = _base(user_id, include_dismissed).where(
        Insight.priority >= min_priority, Insight.priority <= max_priority,
    )
    return _run(stmt, limit)


def get_high_priority(*, user_id: int, limit: int = 20) -> list[Insight]:
    stmt = _base(user_id, False).where(Insight.priority >= HIGH_PRIORITY_THRESHOLD)
    return _run(stmt, limit)


def get_insight_stats(*, user_id: int) -> dict:
    insights = _run(_base(user_id, True), None)
    active = [i for i in insights if not i.dismissed]
    by_category = {c: 0 for c in INSIGHT_CATEGORIES}
    for i in active:
        by_category[i.category] = by_category.get(i.category, 0) + 1
    return {
        "total": len(insights),
        "active": len(active),
        "dismissed": len(insights) - len(active),
        "by_category": by_category,
        "by_priority": {
            "high": sum(1 for i in active if i.priority >= HIGH_PRIORITY_THRESHOLD),
            "medium": sum(1 for i in active if i.priority == 3),
            "low": sum(1 for i in active if i.priority <= 2),
        },
        "average_priority": sum(i.priority for i in active) / len(active) if active else 0,
    }


def get_insights_dashboard(*, user_id: int) -> dict:
    """Top 5 high-priority and 10 most recent active insights with counts."""
    insights = _run(_base(user_id, True), None)
    active = [i for i in insights if not i.dismissed]
    high = [i for i in active if i.is_high_priority]
    return {
        "high_priority_insights": [i.to_dict() for i in high[:5]],
        "recent_insights": [i.to_dict() for i in active[:10]],
        "stats": {
            "total": len(insights),
            "active": len(active),
            "dismissed": len(insights) - len(active),
            "high_priority": len(high),
        },
    }


# ── Generation ───────────────────────────────────────────────────────────────

STRONG_PROGRESS, SLOW_PROGRESS = 70, 30
RECENT_CUSTOMER_DAYS = 30


def _scaled(raw: int) -> int:
    """Map a 1-10 rule weight onto the 1-5 insight priority scale."""
    return min(max(round_half_up(raw / 2), MIN_PRIORITY), MAX_PRIORITY)


def _rules(projects, customers, campaigns, deals):
    """Yield (title, description, category, weight) for every rule that fires."""
    if projects:
        avg = sum(p.progress or 0 for p in projects) / len(projects)
        if avg > STRONG_PROGRESS:
            yield (
                "Strong Development Progress",
                f"Your projects are {round_half_up(avg)}% complete on average. "
                "Keep up the excellent momentum!",
                "performance", 8,
            )
        elif avg < SLOW_PROGRESS:
            yield (
                "Development Acceleration Needed",
                f"Your projects are {round_half_up(avg)}% complete on average. "
                "Consider breaking down tasks into smaller chunks to maintain momentum.",
                "suggestion", 7,
            )

    if customers:
        leads = sum(1 for c in customers if c.status == "lead")
        prospects = sum(1 for c in customers if c.status == "prospect")
        active = sum(1 for c in customers if c.status == "active")
        if leads > prospects * 2:
            yield (
                "Lead Conversion Opportunity",
                f"You have {leads} leads but only {prospects} prospects. "
                "Consider nurturing more leads into the sales pipeline.",
                "opportunity", 7,
            )
        if active and not campaigns:
            yield (
                "Customer Retention Campaign",
                f"With {active} existing customers, consider launching retention "
                "campaigns to increase lifetime value.",
                "opportunity", 6,
            )

    if not campaigns and len(customers) > 5:
        yield (
            "Marketing Campaign Suggestion",
            "With your growing customer base, consider launching a marketing campaign "
            "to accelerate growth and engagement.",
            "suggestion", 6,
        )

    if deals:
        open_deals = [d for d in deals if d.stage not in CLOSED_STAGES]
        avg_value = sum(d.value or 0 for d in deals) / len(deals)
        if len(open_deals) > 3 and avg_value > 1000:
            yield (
                "Sales Process Optimization",
                f"You have {len(open_deals)} open deals with an average value of "
                f"${round_half_up(avg_value)}. Consider implementing a more structured "
                "follow-up process.",
                "suggestion", 5,
            )

    if projects and campaigns:
        yield (
            "Balanced Growth Trend",
            "You're maintaining a good balance between product development and marketing "
            "efforts. This integrated approach often leads to sustainable growth.",
            "trend", 5,
        )

    if len(customers) > 10:
        since = datetime.now(timezone.utc) - timedelta(days=RECENT_CUSTOMER_DAYS)
        recent = sum(1 for c in customers if ensure_utc(c.created_at) > since)
        if recent > len(customers) * 0.3:
            yield (
                "Customer Growth Acceleration",
                f"You've acquired {recent} new customers in the last 30 days, representing "
                f"{round_half_up(recent / len(customers) * 100)}% growth. "
                "This indicates strong market traction.",
                "trend", 8,
            )


_STARTER_INSIGHTS = (
    (
        "Getting Started",
        "Start by creating your first project to begin tracking your development progress.",
        "suggestion", 9,
    ),
    (
        "Build Your Customer Base",
        "Add your first customers to start tracking sales opportunities and building relationships.",
        "opportunity", 8,
    ),
)


def generate_insights(*, user_id: int) -> list[Insight]:
    """Replace the user's insights with a fresh rule-based set.

    Existing insights, dismissed ones included, are deleted first. When no
    rule fires the two starter insights are created instead.
    """
    require_user(user_id)

    def owned(model):
        return db.session.execute(select(model).where(model.user_id == user_id)).scalars().all()

    projects, customers = owned(Project), owned(Customer)
    campaigns, deals = owned(Campaign), owned(Deal)

    fired = list(_rules(projects, customers, campaigns, deals)) or list(_STARTER_INSIGHTS)

    try:
        db.session.execute(delete(Insight).where(Insight.user_id == user_id))
        insights = [
            Insight(
                user_id=user_id,
                title=title,
                description=description,
                category=category,
                priority=_scaled(weight),
                dismissed=False,
            )
            for title, description, category, weight in fired
        ]
        db.session.add_all(insights)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Generated %d insights", len(insights), extra={"user_id": user_id})
    return insights
