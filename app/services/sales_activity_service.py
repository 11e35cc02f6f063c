"""
Sales activity service: calls, emails, meetings and follow-ups logged
against a customer (and optionally one of that customer's deals).
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.sales import SALES_ACTIVITY_TYPES, Customer, Deal, SalesActivity
from app.services import activity_service
from app.services.helpers.scoped_queries import get_owned, require_user
from app.utils.helpers import ensure_utc, parse_bool, parse_datetime, parse_int

logger = logging.getLogger(__name__)


def _validate_type(activity_type):
    if activity_type not in SALES_ACTIVITY_TYPES:
        raise ValidationError(
            f"type must be one of: {', '.join(sorted(SALES_ACTIVITY_TYPES))}",
            details={"type": activity_type},
        )
    return activity_type


def _resolve_deal(user_id: int, customer_id: int, deal_id) -> int | None:
    """The deal must be the user's and must belong to *customer_id*."""
    if deal_id is None:
        return None
    deal = get_owned(Deal, parse_int(deal_id, "deal_id"), user_id=user_id)
    if deal.customer_id != customer_id:
        raise ValidationError(
            "Deal does not belong to this customer",
            details={"deal_id": deal.id, "customer_id": customer_id},
        )
    return deal.id


def _user_activities(user_id: int) -> list[SalesActivity]:
    require_user(user_id)
    return list(db.session.execute(
        select(SalesActivity).where(SalesActivity.user_id == user_id)
    ).scalars().all())


# ── CRUD ─────────────────────────────────────────────────────────────────────


def create_sales_activity(*, user_id: int, data: dict) -> SalesActivity:
    customer_id = data.get("customer_id")
    if customer_id is None:
        raise ValidationError("customer_id is required", details={"customer_id": "required"})
    customer = get_owned(Customer, parse_int(customer_id, "customer_id"), user_id=user_id)
    deal_id = _resolve_deal(user_id, customer.id, data.get("deal_id"))
    description = str(data.get("description", "") or "").strip()
    if not description:
        raise ValidationError("description is required", details={"description": "required"})

    activity = SalesActivity(
        user_id=user_id,
        customer_id=customer.id,
        deal_id=deal_id,
        type=_validate_type(data.get("type")),
        description=description,
        date=parse_datetime(data.get("date")) or datetime.now(timezone.utc),
        scheduled_date=parse_datetime(data.get("scheduled_date")),
        completed=parse_bool(data.get("completed")),
        outcome=data.get("outcome"),
    )
    db.session.add(activity)
    db.session.flush()
    activity_service.log_activity(
        user_id=user_id,
        type="sales_activity.created",
        title=f"Logged {activity.type} with {customer.name}",
        description=description,
        entity_type="sales_activity",
        entity_id=activity.id,
        metadata={"customer_id": customer.id, "deal_id": deal_id},
    )
    db.session.commit()
    return activity


def get_sales_activity(*, user_id: int, activity_id: int) -> SalesActivity:
    return get_owned(SalesActivity, activity_id, user_id=user_id)


def get_sales_activity_with_details(*, user_id: int, activity_id: int) -> dict:
    activity = get_owned(SalesActivity, activity_id, user_id=user_id)
    customer = db.session.get(Customer, activity.customer_id)
    deal = db.session.get(Deal, activity.deal_id) if activity.deal_id else None
    return {
        **activity.to_dict(),
        "customer": customer.to_dict() if customer else None,
        "deal": deal.to_dict() if deal else None,
    }


def list_sales_activities(
    *, user_id: int, customer_id: int | None = None, deal_id: int | None = None, limit: int | None = None,
) -> list[SalesActivity]:
    require_user(user_id)
    stmt = select(SalesActivity).where(SalesActivity.user_id == user_id)
    if customer_id is not None:
        get_owned(Customer, customer_id, user_id=user_id)
        stmt = stmt.where(SalesActivity.customer_id == customer_id)
    if deal_id is not None:
        get_owned(Deal, deal_id, user_id=user_id)
        stmt = stmt.where(SalesActivity.deal_id == deal_id)
    stmt = stmt.order_by(SalesActivity.date.desc(), SalesActivity.id.desc())
    if limit:
        stmt = stmt.limit(limit)
    return list(db.session.execute(stmt).scalars().all())


def update_sales_activity(*, user_id: int, activity_id: int, data: dict) -> SalesActivity:
    activity = get_owned(SalesActivity, activity_id, user_id=user_id)

    if "type" in data:
        activity.type = _validate_type(data["type"])
    if "description" in data:
        description = str(data.get("description") or "").strip()
        if not description:
            raise ValidationError("description cannot be empty", details={"description": "required"})
        activity.description = description
    if "deal_id" in data:
        activity.deal_id = _resolve_deal(user_id, activity.customer_id, data.get("deal_id"))
    for field in ("date", "scheduled_date"):
        if field in data:
            value = parse_datetime(data.get(field))
            if field == "date" and value is None:
                raise ValidationError("date is invalid", details={"date": data.get(field)})
            setattr(activity, field, value)
    if "completed" in data:
        activity.completed = parse_bool(data.get("completed"))
    if "outcome" in data:
        activity.outcome = data.get("outcome")

    db.session.commit()
    return activity


def delete_sales_activity(*, user_id: int, activity_id: int) -> None:
    activity = get_owned(SalesActivity, activity_id, user_id=user_id)
    db.session.delete(activity)
    db.session.commit()


def mark_completed(*, user_id: int, activity_id: int, outcome: str | None = None) -> SalesActivity:
    """Complete the activity and stamp the customer's last contact."""
    activity = get_owned(SalesActivity, activity_id, user_id=user_id)
    now = datetime.now(timezone.utc)
    activity.completed = True
    if outcome is not None:
        activity.outcome = outcome
    customer = db.session.get(Customer, activity.customer_id)
    if customer is not None:
        customer.last_contact = now
    activity_service.log_activity(
        user_id=user_id,
        type="sales_activity.completed",
        title=f"Completed {activity.type}" + (f" with {customer.name}" if customer else ""),
        description=outcome or "",
        entity_type="sales_activity",
        entity_id=activity.id,
    )
    db.session.commit()
    return activity


def create_follow_up(*, user_id: int, activity_id: int, data: dict) -> SalesActivity:
    """Schedule a new activity for the same customer / deal as *activity_id*."""
    source = get_owned(SalesActivity, activity_id, user_id=user_id)
    scheduled = parse_datetime(data.get("scheduled_date"))
    if scheduled is None:
        raise ValidationError("scheduled_date is required", details={"scheduled_date": "required"})
    return create_sales_activity(
        user_id=source.user_id,
        data={
            "customer_id": source.customer_id,
            "deal_id": source.deal_id,
            "type": data.get("type") or "follow_up",
            "description": data.get("description"),
            "scheduled_date": scheduled,
        },
    )


# ── Schedules and stats ──────────────────────────────────────────────────────


def _open_scheduled(user_id: int) -> list[SalesActivity]:
    return [a for a in _user_activities(user_id) if not a.completed and a.scheduled_date is not None]


def get_upcoming(*, user_id: int, days: int = 7) -> list[SalesActivity]:
    """Open activities scheduled on or before now + *days*, soonest first.

    Overdue items are included.
    """
    cutoff = datetime.now(timezone.utc) + timedelta(days=days)
    rows = [a for a in _open_scheduled(user_id) if ensure_utc(a.scheduled_date) <= cutoff]
    return sorted(rows, key=lambda a: ensure_utc(a.scheduled_date))


def get_overdue(*, user_id: int) -> list[SalesActivity]:
    now = datetime.now(timezone.utc)
    rows = [a for a in _open_scheduled(user_id) if ensure_utc(a.scheduled_date) < now]
    return sorted(rows, key=lambda a: ensure_utc(a.scheduled_date))


def get_by_date_range(*, user_id: int, start: datetime, end: datetime) -> list[SalesActivity]:
    if start > end:
        raise ValidationError("start must not be after end")
    rows = [a for a in _user_activities(user_id) if start <= ensure_utc(a.date) <= end]
    return sorted(rows, key=lambda a: ensure_utc(a.date), reverse=True)


def get_sales_activity_stats(*, user_id: int) -> dict:
    activities = _user_activities(user_id)
    now = datetime.now(timezone.utc)
    week_ago = now - timedelta(days=7)
    month_ago = now - timedelta(days=30)

    by_type = {t: 0 for t in sorted(SALES_ACTIVITY_TYPES)}
    for a in activities:
        by_type[a.type] = by_type.get(a.type, 0) + 1
    completed = sum(1 for a in activities if a.completed)
    return {
        "total": len(activities),
        "completed": completed,
        "pending": len(activities) - completed,
        "overdue": sum(
            1 for a in activities
            if not a.completed and a.scheduled_date is not None and ensure_utc(a.scheduled_date) < now
        ),
        "this_week": sum(1 for a in activities if ensure_utc(a.date) >= week_ago),
        "this_month": sum(1 for a in activities if ensure_utc(a.date) >= month_ago),
        "by_type": by_type,
        "completion_rate": (completed / len(activities) * 100) if activities else 0,
    }
