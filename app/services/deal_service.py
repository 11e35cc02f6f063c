"""
Deal (sales pipeline) service.

Deals always hang off a customer the acting user owns. Stage moves into
closed-won / closed-lost stamp ``actual_close_date`` and raise a
notification for the owner.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.sales import CLOSED_STAGES, DEAL_STAGES, FUNNEL_STAGES, Customer, Deal, SalesActivity
from app.services import activity_service
from app.services.helpers.scoped_queries import get_owned, require_user
from app.services.notification import NotificationService
from app.utils.helpers import ensure_utc, parse_datetime, parse_int

logger = logging.getLogger(__name__)

FORECAST_BUCKET_DAYS = 30


def _validate_stage(stage):
    if stage not in DEAL_STAGES:
        raise ValidationError(
            f"stage must be one of: {', '.join(DEAL_STAGES)}",
            details={"stage": stage},
        )
    return stage


def _validate_probability(value) -> int:
    probability = parse_int(value if value is not None else 0, "probability")
    if not 0 <= probability <= 100:
        raise ValidationError("Probability must be between 0 and 100", details={"probability": probability})
    return probability


def _validate_value(value) -> float:
    try:
        amount = float(value or 0)
    except (TypeError, ValueError) as exc:
        raise ValidationError("value must be a number", details={"value": value}) from exc
    if amount < 0:
        raise ValidationError("value cannot be negative", details={"value": amount})
    return amount


# ── CRUD ─────────────────────────────────────────────────────────────────────


def create_deal(*, user_id: int, data: dict) -> Deal:
    customer_id = data.get("customer_id")
    if customer_id is None:
        raise ValidationError("customer_id is required", details={"customer_id": "required"})
    customer = get_owned(Customer, parse_int(customer_id, "customer_id"), user_id=user_id)
    title = str(data.get("title", "") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})

    stage = _validate_stage(data.get("stage") or "lead")
    deal = Deal(
        user_id=user_id,
        customer_id=customer.id,
        title=title,
        description=data.get("description"),
        stage=stage,
        value=_validate_value(data.get("value")),
        probability=_validate_probability(data.get("probability")),
        expected_close_date=parse_datetime(data.get("expected_close_date")),
        actual_close_date=datetime.now(timezone.utc) if stage in CLOSED_STAGES else None,
        notes=data.get("notes"),
    )
    db.session.add(deal)
    db.session.flush()
    activity_service.log_activity(
        user_id=user_id,
        type="deal.created",
        title=f'Created deal "{deal.title}" for {customer.name}',
        entity_type="deal",
        entity_id=deal.id,
        metadata={"customer_id": customer.id, "value": deal.value, "stage": deal.stage},
    )
    db.session.commit()
    logger.info("Deal created", extra={"user_id": user_id, "deal_id": deal.id})
    return deal


def list_deals(*, user_id: int, stage: str | None = None, customer_id: int | None = None) -> list[Deal]:
    require_user(user_id)
    stmt = select(Deal).where(Deal.user_id == user_id)
    if stage:
        stmt = stmt.where(Deal.stage == _validate_stage(stage))
    if customer_id is not None:
        get_owned(Customer, customer_id, user_id=user_id)
        stmt = stmt.where(Deal.customer_id == customer_id)
    stmt = stmt.order_by(Deal.created_at.desc(), Deal.id.desc())
    return list(db.session.execute(stmt).scalars().all())


def get_deal(*, user_id: int, deal_id: int) -> Deal:
    return get_owned(Deal, deal_id, user_id=user_id)


def get_deal_with_details(*, user_id: int, deal_id: int) -> dict:
    """Deal with its customer and its sales activities (newest first)."""
    deal = get_owned(Deal, deal_id, user_id=user_id)
    customer = db.session.get(Customer, deal.customer_id)
    activities = db.session.execute(
        select(SalesActivity).where(SalesActivity.deal_id == deal.id).order_by(SalesActivity.date.desc())
    ).scalars().all()
    return {
        **deal.to_dict(),
        "customer": customer.to_dict() if customer else None,
        "activities": [a.to_dict() for a in activities],
        "activities_count": len(activities),
    }


def update_deal(*, user_id: int, deal_id: int, data: dict) -> Deal:
    """Partial update. A stage change is routed through ``move_deal_to_stage``."""
    deal = get_owned(Deal, deal_id, user_id=user_id)

    if "title" in data:
        title = str(data.get("title") or "").strip()
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"})
        deal.title = title
    if "description" in data:
        deal.description = data.get("description")
    if "value" in data:
        deal.value = _validate_value(data.get("value"))
    if "probability" in data:
        deal.probability = _validate_probability(data.get("probability"))
    if "expected_close_date" in data:
        deal.expected_close_date = parse_datetime(data.get("expected_close_date"))
    if "notes" in data:
        deal.notes = data.get("notes")
    if "customer_id" in data and data["customer_id"] != deal.customer_id:
        customer = get_owned(Customer, parse_int(data["customer_id"], "customer_id"), user_id=user_id)
        deal.customer_id = customer.id
    db.session.commit()

    if "stage" in data and data["stage"] != deal.stage:
        return move_deal_to_stage(user_id=user_id, deal_id=deal.id, stage=data["stage"])
    return deal


def delete_deal(*, user_id: int, deal_id: int) -> None:
    """Delete the deal; its sales activities stay on the customer."""
    deal = get_owned(Deal, deal_id, user_id=user_id)
    SalesActivity.query.filter_by(deal_id=deal.id).update({"deal_id": None}, synchronize_session="fetch")
    db.session.delete(deal)
    db.session.commit()
    logger.info("Deal deleted", extra={"user_id": user_id, "deal_id": deal_id})


def move_deal_to_stage(*, user_id: int, deal_id: int, stage: str) -> Deal:
    """Move a deal, stamping the close date and notifying on won / lost."""
    deal = get_owned(Deal, deal_id, user_id=user_id)
    new_stage = _validate_stage(stage)
    old_stage = deal.stage
    if new_stage == old_stage:
        return deal

    deal.stage = new_stage
    deal.actual_close_date = datetime.now(timezone.utc) if new_stage in CLOSED_STAGES else None
    activity = activity_service.log_activity(
        user_id=user_id,
        type="deal.stage_changed",
        title=f'Moved deal "{deal.title}" from {old_stage} to {new_stage}',
        entity_type="deal",
        entity_id=deal.id,
        metadata={"from": old_stage, "to": new_stage, "value": deal.value},
    )
    if new_stage == "closed-won":
        NotificationService.notify_deal(deal, "won", activity_id=activity.id, commit=False)
    elif new_stage == "closed-lost":
        NotificationService.notify_deal(deal, "lost", activity_id=activity.id, commit=False)
    db.session.commit()
    logger.info(
        "Deal stage changed %s -> %s", old_stage, new_stage,
        extra={"user_id": user_id, "deal_id": deal.id},
    )
    return deal


# ── Pipeline analytics ───────────────────────────────────────────────────────


def get_sales_pipeline(*, user_id: int) -> dict:
    deals = list_deals(user_id=user_id)
    pipeline = {stage: [] for stage in DEAL_STAGES}
    for deal in deals:
        pipeline[deal.stage].append(deal.to_dict())

    won = [d for d in deals if d.stage == "closed-won"]
    lost = [d for d in deals if d.stage == "closed-lost"]
    active = [d for d in deals if not d.is_closed]
    total_value = sum(d.value or 0.0 for d in deals)
    stats = {
        "total_deals": len(deals),
        "total_value": total_value,
        "won_deals": len(won),
        "won_value": sum(d.value or 0.0 for d in won),
        "lost_deals": len(lost),
        "lost_value": sum(d.value or 0.0 for d in lost),
        "active_deals": len(active),
        "active_value": sum(d.value or 0.0 for d in active),
        "win_rate": (len(won) / len(deals) * 100) if deals else 0,
        "avg_deal_size": (total_value / len(deals)) if deals else 0,
    }
    return {"pipeline": pipeline, "stats": stats}


def get_deals_closing_soon(*, user_id: int, days: int = 30) -> list[Deal]:
    """Open deals expected to close on or before now + *days*, soonest first."""
    cutoff = datetime.now(timezone.utc) + timedelta(days=days)
    deals = [
        d for d in list_deals(user_id=user_id)
        if not d.is_closed and d.expected_close_date is not None
        and ensure_utc(d.expected_close_date) <= cutoff
    ]
    return sorted(deals, key=lambda d: ensure_utc(d.expected_close_date))


def get_conversion_funnel(*, user_id: int) -> dict:
    deals = list_deals(user_id=user_id)
    funnel = []
    for stage in FUNNEL_STAGES:
        in_stage = [d for d in deals if d.stage == stage]
        funnel.append({
            "stage": stage,
            "count": len(in_stage),
            "value": sum(d.value or 0.0 for d in in_stage),
        })
    conversions = [
        {
            "from": current["stage"],
            "to": nxt["stage"],
            "rate": (nxt["count"] / current["count"] * 100) if current["count"] else 0,
        }
        for current, nxt in zip(funnel, funnel[1:])
    ]
    return {"funnel": funnel, "conversions": conversions}


def get_sales_forecast(*, user_id: int, months: int = 3) -> dict:
    """Probability-weighted forecast over *months* 30-day buckets."""
    if months < 1:
        raise ValidationError("months must be at least 1", details={"months": months})
    now = datetime.now(timezone.utc)
    horizon = now + timedelta(days=FORECAST_BUCKET_DAYS * months)
    open_deals = [
        d for d in list_deals(user_id=user_id)
        if not d.is_closed and d.expected_close_date is not None
        and ensure_utc(d.expected_close_date) <= horizon
    ]

    total_forecast = sum(d.weighted_value for d in open_deals)
    best_case = sum(d.value or 0.0 for d in open_deals)

    monthly = []
    for i in range(months):
        start = now + timedelta(days=FORECAST_BUCKET_DAYS * i)
        end = now + timedelta(days=FORECAST_BUCKET_DAYS * (i + 1))
        bucket = [d for d in open_deals if start <= ensure_utc(d.expected_close_date) < end]
        monthly.append({
            "month": i + 1,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "deal_count": len(bucket),
            "forecast_value": sum(d.weighted_value for d in bucket),
            "deals": [d.to_dict() for d in bucket],
        })

    return {
        "total_forecast": total_forecast,
        "best_case": best_case,
        "worst_case": 0,
        "deal_count": len(open_deals),
        "monthly_forecast": monthly,
        "forecast_accuracy": (total_forecast / best_case * 100) if best_case else 0,
    }
