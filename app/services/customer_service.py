"""
Customer (CRM) service.

Customers are unique per (user, email). Every mutation appends an activity
row so the feed can show "Changed customer X status from lead to active".
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, or_, select

from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.sales import CUSTOMER_STATUSES, Customer, Deal, SalesActivity
from app.services import activity_service
from app.services.helpers.scoped_queries import get_owned, require_user
from app.utils.helpers import ensure_utc, normalize_email, parse_datetime

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("company", "phone", "website", "industry", "size", "notes")


def _validate_status(status):
    if status not in CUSTOMER_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(CUSTOMER_STATUSES))}",
            details={"status": status},
        )
    return status


def _validate_value(value) -> float:
    try:
        value = float(value or 0)
    except (TypeError, ValueError) as exc:
        raise ValidationError("value must be a number", details={"value": value}) from exc
    if value < 0:
        raise ValidationError("value cannot be negative", details={"value": value})
    return value


def _ensure_email_free(user_id: int, email: str, exclude_id: int | None = None) -> None:
    stmt = select(Customer.id).where(
        Customer.user_id == user_id, func.lower(Customer.email) == email.lower(),
    )
    if exclude_id is not None:
        stmt = stmt.where(Customer.id != exclude_id)
    if db.session.execute(stmt).first() is not None:
        raise ConflictError(resource="Customer", field="email", value=email)


# ── CRUD ─────────────────────────────────────────────────────────────────────


def create_customer(*, user_id: int, data: dict) -> Customer:
    """Create a customer; email must be unique within the user's book."""
    require_user(user_id)
    name = str(data.get("name", "") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    email = normalize_email(data.get("email"))
    _ensure_email_free(user_id, email)

    customer = Customer(
        user_id=user_id,
        name=name,
        email=email,
        status=_validate_status(data.get("status") or "lead"),
        value=_validate_value(data.get("value")),
        last_contact=parse_datetime(data.get("last_contact")),
        **{f: data.get(f) for f in _TEXT_FIELDS},
    )
    db.session.add(customer)
    db.session.flush()
    activity_service.log_activity(
        user_id=user_id,
        type="customer.created",
        title=f"Added customer {customer.name}",
        entity_type="customer",
        entity_id=customer.id,
        metadata={"status": customer.status},
    )
    db.session.commit()
    logger.info("Customer created", extra={"user_id": user_id, "customer_id": customer.id})
    return customer


def list_customers(*, user_id: int, status: str | None = None) -> list[Customer]:
    require_user(user_id)
    stmt = select(Customer).where(Customer.user_id == user_id)
    if status:
        stmt = stmt.where(Customer.status == status)
    stmt = stmt.order_by(Customer.created_at.desc(), Customer.id.desc())
    return list(db.session.execute(stmt).scalars().all())


def get_customer(*, user_id: int, customer_id: int) -> Customer:
    return get_owned(Customer, customer_id, user_id=user_id)


def get_customer_by_email(*, user_id: int, email: str) -> Customer | None:
    require_user(user_id)
    stmt = select(Customer).where(
        Customer.user_id == user_id, func.lower(Customer.email) == (email or "").strip().lower(),
    )
    return db.session.execute(stmt).scalars().first()


def update_customer(*, user_id: int, customer_id: int, data: dict) -> Customer:
    """Partial update.

    Raises:
        NotFoundError: Unknown user or customer.
        AccessDeniedError: Customer belongs to another user.
        ConflictError: New email already used by another of the user's customers.
    """
    customer = get_owned(Customer, customer_id, user_id=user_id)
    old_status = customer.status

    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        customer.name = name
    if "email" in data:
        email = normalize_email(data.get("email"))
        _ensure_email_free(user_id, email, exclude_id=customer.id)
        customer.email = email
    if "status" in data:
        customer.status = _validate_status(data["status"])
    if "value" in data:
        customer.value = _validate_value(data.get("value"))
    if "last_contact" in data:
        customer.last_contact = parse_datetime(data.get("last_contact"))
    for field in _TEXT_FIELDS:
        if field in data:
            setattr(customer, field, data.get(field))

    if customer.status != old_status:
        activity_service.log_activity(
            user_id=user_id,
            type="customer.status_changed",
            title=f"Changed customer {customer.name} status from {old_status} to {customer.status}",
            entity_type="customer",
            entity_id=customer.id,
            metadata={"from": old_status, "to": customer.status},
        )
    else:
        activity_service.log_activity(
            user_id=user_id,
            type="customer.updated",
            title=f"Updated customer {customer.name}",
            entity_type="customer",
            entity_id=customer.id,
            metadata={"fields": sorted(data.keys())},
        )
    db.session.commit()
    return customer


def delete_customer(*, user_id: int, customer_id: int) -> None:
    """Delete the customer with its sales activities and deals, atomically."""
    customer = get_owned(Customer, customer_id, user_id=user_id)
    name = customer.name
    try:
        db.session.execute(delete(SalesActivity).where(SalesActivity.customer_id == customer.id))
        db.session.execute(delete(Deal).where(Deal.customer_id == customer.id))
        db.session.delete(customer)
        activity_service.log_activity(
            user_id=user_id,
            type="customer.deleted",
            title=f"Deleted customer {name}",
            entity_type="customer",
            entity_id=customer_id,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()
    logger.info("Customer deleted", extra={"user_id": user_id, "customer_id": customer_id})


# ── Read models ──────────────────────────────────────────────────────────────


def get_customer_with_details(*, user_id: int, customer_id: int) -> dict:
    customer = get_owned(Customer, customer_id, user_id=user_id)
    deals = db.session.execute(
        select(Deal).where(Deal.customer_id == customer.id).order_by(Deal.created_at.desc())
    ).scalars().all()
    activities = db.session.execute(
        select(SalesActivity)
        .where(SalesActivity.customer_id == customer.id)
        .order_by(SalesActivity.date.desc())
    ).scalars().all()
    return {
        "customer": customer.to_dict(),
        "deals": [d.to_dict() for d in deals],
        "activities": [a.to_dict() for a in activities],
        "total_deals": len(deals),
        "total_value": sum(d.value or 0.0 for d in deals),
        "won_deals": sum(1 for d in deals if d.stage == "closed-won"),
        "activities_count": len(activities),
    }


def get_top_customers(*, user_id: int, limit: int = 10) -> list[dict]:
    """Customers ranked by the value of their won deals, best first."""
    customers = list_customers(user_id=user_id)
    deals_by_customer: dict[int, list[Deal]] = {}
    for deal in db.session.execute(select(Deal).where(Deal.user_id == user_id)).scalars():
        deals_by_customer.setdefault(deal.customer_id, []).append(deal)

    ranked = []
    for customer in customers:
        deals = deals_by_customer.get(customer.id, [])
        won = [d for d in deals if d.stage == "closed-won"]
        ranked.append({
            "customer": customer.to_dict(),
            "total_value": sum(d.value or 0.0 for d in deals),
            "won_value": sum(d.value or 0.0 for d in won),
            "deal_count": len(deals),
            "won_deals": len(won),
        })
    ranked.sort(key=lambda r: r["won_value"], reverse=True)
    return ranked[:limit]


def get_customer_journey(*, user_id: int, customer_id: int) -> dict:
    """Chronological timeline of a customer: creation, deals and sales activities.

    ``customer_age_days`` and ``days_since_last_activity`` are fractional
    days; the latter counts from creation when nothing was logged yet.
    """
    customer = get_owned(Customer, customer_id, user_id=user_id)
    deals = db.session.execute(select(Deal).where(Deal.customer_id == customer.id)).scalars().all()
    activities = db.session.execute(
        select(SalesActivity).where(SalesActivity.customer_id == customer.id)
    ).scalars().all()

    created = ensure_utc(customer.created_at)
    timeline = [{
        "type": "customer_created",
        "date": created,
        "description": f"Customer {customer.name} was created",
        "data": customer.to_dict(),
    }]
    timeline += [{
        "type": "deal_created",
        "date": ensure_utc(d.created_at),
        "description": f'Deal "{d.title}" was created',
        "data": d.to_dict(),
    } for d in deals]
    timeline += [{
        "type": "activity",
        "date": ensure_utc(a.date),
        "description": f"{a.type}: {a.description}",
        "data": a.to_dict(),
    } for a in activities]
    timeline.sort(key=lambda e: e["date"])

    now = datetime.now(timezone.utc)
    last_activity = max((ensure_utc(a.date) for a in activities), default=created)
    won = [d for d in deals if d.stage == "closed-won"]
    return {
        "customer": customer.to_dict(),
        "timeline": [{**e, "date": e["date"].isoformat()} for e in timeline],
        "metrics": {
            "total_deals": len(deals),
            "total_value": sum(d.value or 0.0 for d in deals),
            "won_value": sum(d.value or 0.0 for d in won),
            "won_deals": len(won),
            "activities_count": len(activities),
            "customer_age_days": (now - created).total_seconds() / 86400,
            "days_since_last_activity": (now - last_activity).total_seconds() / 86400,
        },
    }


def search_customers(*, user_id: int, term: str) -> list[Customer]:
    """Case-insensitive substring match over name, company and email."""
    require_user(user_id)
    term = (term or "").strip().lower()
    if not term:
        return []
    pattern = f"%{term}%"
    stmt = (
        select(Customer)
        .where(
            Customer.user_id == user_id,
            or_(
                func.lower(Customer.name).like(pattern),
                func.lower(Customer.company).like(pattern),
                func.lower(Customer.email).like(pattern),
            ),
        )
        .order_by(Customer.name)
    )
    return list(db.session.execute(stmt).scalars().all())


def get_customer_stats(*, user_id: int) -> dict:
    customers = list_customers(user_id=user_id)
    total = len(customers)
    by_status = {s: 0 for s in sorted(CUSTOMER_STATUSES)}
    for c in customers:
        by_status[c.status] = by_status.get(c.status, 0) + 1
    return {
        "total": total,
        **by_status,
        "total_value": sum(c.value or 0.0 for c in customers),
        "conversion_rate": (by_status["active"] / total * 100) if total else 0,
        "churn_rate": (by_status["churned"] / total * 100) if total else 0,
    }
