"""Weighted evaluation criteria for the idea scorer."""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.idea import MAX_WEIGHT, MIN_WEIGHT, IdeaCriteria, IdeaScore
from app.services.helpers.scoped_queries import get_owned, require_user
from app.utils.helpers import parse_int

logger = logging.getLogger(__name__)

# (name, description, weight); order follows list position.
DEFAULT_CRITERIA = [
    ("Market Size", "How large is the potential market for this idea?", 8),
    ("Technical Feasibility", "How technically feasible is this idea to implement?", 7),
    ("Competitive Advantage", "How unique is this idea compared to existing solutions?", 6),
    ("Revenue Potential", "What is the potential revenue opportunity?", 9),
    ("Time to Market", "How quickly can this idea be brought to market?", 5),
    ("Resource Requirements", "What resources are needed to execute this idea?", 6),
    ("Customer Demand", "How strong is the customer demand for this solution?", 8),
    ("Strategic Fit", "How well does this idea align with business strategy?", 7),
]


def _validate_weight(value) -> int:
    weight = parse_int(value, "weight")
    if not MIN_WEIGHT <= weight <= MAX_WEIGHT:
        raise ValidationError("Weight must be between 1 and 10", details={"weight": weight})
    return weight


def _next_order(user_id: int) -> int:
    current = db.session.execute(
        select(func.max(IdeaCriteria.sort_order)).where(IdeaCriteria.user_id == user_id)
    ).scalar()
    return (current or 0) + 1


def list_criteria(*, user_id: int, defaults_only: bool = False) -> list[IdeaCriteria]:
    require_user(user_id)
    stmt = select(IdeaCriteria).where(IdeaCriteria.user_id == user_id)
    if defaults_only:
        stmt = stmt.where(IdeaCriteria.is_default.is_(True))
    stmt = stmt.order_by(IdeaCriteria.sort_order, IdeaCriteria.id)
    return list(db.session.execute(stmt).scalars().all())


def get_criteria(*, user_id: int, criteria_id: int) -> IdeaCriteria:
    return get_owned(IdeaCriteria, criteria_id, user_id=user_id, resource="Criteria")


def create_criteria(*, user_id: int, data: dict) -> IdeaCriteria:
    require_user(user_id)
    name = str(data.get("name", "") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    criteria = IdeaCriteria(
        user_id=user_id,
        name=name,
        description=data.get("description") or "",
        weight=_validate_weight(data.get("weight")),
        is_default=bool(data.get("is_default", False)),
        sort_order=parse_int(data["order"], "order") if data.get("order") is not None else _next_order(user_id),
    )
    db.session.add(criteria)
    db.session.commit()
    return criteria


def update_criteria(*, user_id: int, criteria_id: int, data: dict) -> IdeaCriteria:
    criteria = get_criteria(user_id=user_id, criteria_id=criteria_id)
    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        criteria.name = name
    if "description" in data:
        criteria.description = data.get("description") or ""
    if "weight" in data:
        criteria.weight = _validate_weight(data.get("weight"))
    if "order" in data:
        criteria.sort_order = parse_int(data["order"], "order")
    if "is_default" in data:
        criteria.is_default = bool(data["is_default"])
    db.session.commit()
    return criteria


def delete_criteria(*, user_id: int, criteria_id: int) -> None:
    """Delete the criterion and every score given against it."""
    criteria = get_criteria(user_id=user_id, criteria_id=criteria_id)
    try:
        db.session.execute(delete(IdeaScore).where(IdeaScore.criteria_id == criteria.id))
        db.session.delete(criteria)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def reorder_criteria(*, user_id: int, orders: list[dict]) -> list[IdeaCriteria]:
    """Apply ``[{criteria_id, order}, ...]`` in one transaction."""
    if not isinstance(orders, list):
        raise ValidationError("orders must be a list", details={"orders": orders})
    updated = []
    try:
        for entry in orders:
            if not isinstance(entry, dict):
                raise ValidationError("Each order entry must be an object", details={"entry": entry})
            criteria = get_criteria(user_id=user_id, criteria_id=parse_int(entry.get("criteria_id"), "criteria_id"))
            criteria.sort_order = parse_int(entry.get("order"), "order")
            updated.append(criteria)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return updated


def duplicate_criteria(*, user_id: int, criteria_id: int, target_user_id: int | None = None) -> IdeaCriteria:
    """Copy a criterion, by default for the same user."""
    source = get_criteria(user_id=user_id, criteria_id=criteria_id)
    target_id = parse_int(target_user_id, "target_user_id") if target_user_id is not None else user_id
    require_user(target_id)
    copy = IdeaCriteria(
        user_id=target_id,
        name=source.name,
        description=source.description,
        weight=source.weight,
        is_default=False,
        sort_order=source.sort_order if target_id != user_id else _next_order(target_id),
    )
    db.session.add(copy)
    db.session.commit()
    return copy


def create_default_criteria(*, user_id: int) -> list[IdeaCriteria]:
    """Create the eight standard criteria for the user."""
    require_user(user_id)
    created = []
    for order, (name, description, weight) in enumerate(DEFAULT_CRITERIA, start=_next_order(user_id)):
        criteria = IdeaCriteria(
            user_id=user_id,
            name=name,
            description=description,
            weight=weight,
            is_default=True,
            sort_order=order,
        )
        db.session.add(criteria)
        created.append(criteria)
    db.session.commit()
    logger.info("Default criteria created", extra={"user_id": user_id})
    return created


def get_criteria_stats(*, user_id: int) -> dict:
    weights = [c.weight for c in list_criteria(user_id=user_id)]
    return {
        "total": len(weights),
        "avg_weight": sum(weights) / len(weights) if weights else 0,
        "max_weight": max(weights) if weights else 0,
        "min_weight": min(weights) if weights else 0,
    }


def get_criteria_with_usage(*, user_id: int) -> list[dict]:
    """Each criterion with how often it was scored and its average score."""
    rows = []
    for criteria in list_criteria(user_id=user_id):
        values = db.session.execute(
            select(IdeaScore.score).where(IdeaScore.criteria_id == criteria.id)
        ).scalars().all()
        rows.append({
            **criteria.to_dict(),
            "usage_count": len(values),
            "avg_score": sum(values) / len(values) if values else 0,
        })
    return rows
