"""Roadmap service: milestones and features attached to a project.

Milestones are dated delivery targets. Features carry 1-5 priority, effort
and impact ratings and may be assigned to a milestone of the same project.
When an assigned feature changes status, the milestone is rolled up:

    milestone.progress = round(100 * completed / total) over its features
    milestone.status   = completed if every feature is completed, else in-progress
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, or_, select, update

from app.core.exceptions import ValidationError
from app.models import db
from app.models.project import Project
from app.models.roadmap import (
    FEATURE_STATUSES,
    HIGH_FEATURE_PRIORITY,
    MAX_RATING,
    MILESTONE_STATUSES,
    MIN_RATING,
    Feature,
    Milestone,
)
from app.services import activity_service
from app.services.helpers.scoped_queries import get_owned, require_user
from app.utils.helpers import ensure_utc, parse_datetime, parse_int, round_half_up

logger = logging.getLogger(__name__)

UPCOMING_DAYS = 30


def _require_text(data: dict, field: str) -> str:
    value = str(data.get(field, "") or "").strip()
    if not value:
        raise ValidationError(f"{field} is required", details={field: "required"})
    return value


def _choice(value, allowed, field):
    if value not in allowed:
        raise ValidationError(f"{field} must be one of: {', '.join(allowed)}", details={field: value})
    return value


def _rating(value, field: str, *, optional: bool = False):
    if value is None and optional:
        return None
    rating = parse_int(value, field)
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(
            f"{field} must be between {MIN_RATING} and {MAX_RATING}", details={field: rating},
        )
    return rating


def _progress(value) -> int:
    progress = parse_int(value, "progress")
    if not 0 <= progress <= 100:
        raise ValidationError("progress must be between 0 and 100", details={"progress": progress})
    return progress


def _due_date(value):
    due = parse_datetime(value)
    if due is None:
        raise ValidationError("due_date must be an ISO date or epoch milliseconds", details={"due_date": value})
    return due


def _milestone_for_feature(user_id: int, project_id: int, milestone_id) -> int | None:
    """The milestone must be the user's and must belong to *project_id*."""
    if milestone_id is None:
        return None
    milestone = get_owned(Milestone, parse_int(milestone_id, "milestone_id"), user_id=user_id)
    if milestone.project_id != project_id:
        raise ValidationError(
            "Milestone does not belong to this project",
            details={"milestone_id": milestone.id, "project_id": project_id},
        )
    return milestone.id


def _user_milestones(user_id: int, project_id: int | None = None) -> list[Milestone]:
    require_user(user_id)
    stmt = select(Milestone).where(Milestone.user_id == user_id)
    if project_id is not None:
        stmt = stmt.where(Milestone.project_id == project_id)
    return list(db.session.execute(stmt).scalars().all())


def _user_features(user_id: int, project_id: int | None = None) -> list[Feature]:
    require_user(user_id)
    stmt = select(Feature).where(Feature.user_id == user_id)
    if project_id is not None:
        stmt = stmt.where(Feature.project_id == project_id)
    return list(db.session.execute(stmt).scalars().all())


def _by_due_date(milestones):
    return sorted(milestones, key=lambda m: (ensure_utc(m.due_date), m.id))


# ═══════════════════════════════════════════════════════════════
# Milestones
# ═══════════════════════════════════════════════════════════════
def list_milestones(
    *, user_id: int, project_id: int | None = None, status: str | None = None,
) -> list[Milestone]:
    """Milestones in display order, optionally for one project."""
    if project_id is not None:
        get_owned(Project, project_id, user_id=user_id)
    else:
        require_user(user_id)
    stmt = select(Milestone).where(Milestone.user_id == user_id)
    if project_id is not None:
        stmt = stmt.where(Milestone.project_id == project_id)
    if status:
        stmt = stmt.where(Milestone.status == _choice(status, MILESTONE_STATUSES, "status"))
    stmt = stmt.order_by(Milestone.sort_order, Milestone.due_date, Milestone.id)
    return list(db.session.execute(stmt).scalars().all())


def get_milestone(*, user_id: int, milestone_id: int) -> Milestone:
    return get_owned(Milestone, milestone_id, user_id=user_id)


def create_milestone(*, user_id: int, project_id: int, data: dict) -> Milestone:
    project = get_owned(Project, project_id, user_id=user_id)
    title = _require_text(data, "title")

    order = data.get("order")
    if order is None:
        current_max = db.session.execute(
            select(func.max(Milestone.sort_order)).where(Milestone.project_id == project.id)
        ).scalar()
        order = (current_max or 0) + 1

    milestone = Milestone(
        user_id=user_id,
        project_id=project.id,
        title=title,
        description=data.get("description") or "",
        due_date=_due_date(data.get("due_date")),
        status=_choice(data.get("status") or "planned", MILESTONE_STATUSES, "status"),
        progress=_progress(data.get("progress", 0)),
        owner=data.get("owner"),
        sort_order=parse_int(order, "order"),
    )
    db.session.add(milestone)
    db.session.flush()
    activity_service.log_activity(
        user_id=user_id,
        type="milestone.created",
        title=f'Created milestone "{title}"',
        entity_type="milestone",
        entity_id=milestone.id,
        metadata={"project_id": project.id},
    )
    db.session.commit()
    logger.info("Milestone created", extra={"user_id": user_id, "milestone_id": milestone.id})
    return milestone


def update_milestone(*, user_id: int, milestone_id: int, data: dict) -> Milestone:
    milestone = get_owned(Milestone, milestone_id, user_id=user_id)
    if "title" in data:
        milestone.title = _require_text(data, "title")
    if "description" in data:
        milestone.description = data.get("description") or ""
    if "due_date" in data:
        milestone.due_date = _due_date(data.get("due_date"))
    if "progress" in data:
        milestone.progress = _progress(data["progress"])
    if "owner" in data:
        milestone.owner = data.get("owner")
    if "order" in data:
        milestone.sort_order = parse_int(data["order"], "order")
    db.session.commit()

    if "status" in data and data["status"] != milestone.status:
        return set_milestone_status(user_id=user_id, milestone_id=milestone.id, status=data["status"])
    return milestone


def set_milestone_status(*, user_id: int, milestone_id: int, status: str) -> Milestone:
    """Move a milestone to *status*; completing it also sets progress to 100."""
    milestone = get_owned(Milestone, milestone_id, user_id=user_id)
    _choice(status, MILESTONE_STATUSES, "status")
    previous = milestone.status
    if previous == status:
        return milestone

    milestone.status = status
    if status == "completed":
        milestone.progress = 100
    activity_service.log_activity(
        user_id=user_id,
        type="milestone.completed" if status == "completed" else "milestone.status_changed",
        title=(
            f'Completed milestone "{milestone.title}"' if status == "completed"
            else f'Milestone "{milestone.title}" moved from {previous} to {status}'
        ),
        entity_type="milestone",
        entity_id=milestone.id,
        metadata={"from": previous, "to": status},
    )
    db.session.commit()
    return milestone


def complete_milestone(*, user_id: int, milestone_id: int) -> Milestone:
    return set_milestone_status(user_id=user_id, milestone_id=milestone_id, status="completed")


def start_milestone(*, user_id: int, milestone_id: int) -> Milestone:
    return set_milestone_status(user_id=user_id, milestone_id=milestone_id, status="in-progress")


def delay_milestone(*, user_id: int, milestone_id: int) -> Milestone:
    return set_milestone_status(user_id=user_id, milestone_id=milestone_id, status="delayed")


def delete_milestone(*, user_id: int, milestone_id: int) -> None:
    """Delete the milestone; its features stay on the project, unassigned."""
    milestone = get_owned(Milestone, milestone_id, user_id=user_id)
    title = milestone.title
    try:
        db.session.execute(
            update(Feature).where(Feature.milestone_id == milestone.id).values(milestone_id=None)
        )
        db.session.delete(milestone)
        activity_service.log_activity(
            user_id=user_id,
            type="milestone.deleted",
            title=f'Deleted milestone "{title}"',
            entity_type="milestone",
            entity_id=milestone_id,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()


def reorder_milestones(*, user_id: int, orders: list[dict]) -> list[Milestone]:
    """Apply ``[{milestone_id, order}, ...]`` in one transaction."""
    if not isinstance(orders, list):
        raise ValidationError("orders must be a list", details={"orders": orders})
    updated = []
    try:
        for entry in orders:
            if not isinstance(entry, dict):
                raise ValidationError("Each order entry must be an object", details={"entry": entry})
            milestone = get_owned(
                Milestone, parse_int(entry.get("milestone_id"), "milestone_id"), user_id=user_id,
            )
            milestone.sort_order = parse_int(entry.get("order"), "order")
            updated.append(milestone)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return updated


def get_upcoming_milestones(*, user_id: int, days: int = UPCOMING_DAYS) -> list[Milestone]:
    """Open milestones due within *days*, overdue ones included, earliest first."""
    cutoff = datetime.now(timezone.utc) + timedelta(days=days)
    return _by_due_date(
        m for m in _user_milestones(user_id)
        if m.status != "completed" and ensure_utc(m.due_date) <= cutoff
    )


def get_overdue_milestones(*, user_id: int) -> list[Milestone]:
    now = datetime.now(timezone.utc)
    return _by_due_date(
        m for m in _user_milestones(user_id)
        if m.status != "completed" and ensure_utc(m.due_date) < now
    )


def get_milestone_stats(*, user_id: int, project_id: int | None = None) -> dict:
    if project_id is not None:
        get_owned(Project, project_id, user_id=user_id)
    milestones = _user_milestones(user_id, project_id)
    now = datetime.now(timezone.utc)
    total = len(milestones)
    completed = sum(1 for m in milestones if m.status == "completed")
    return {
        "total": total,
        "planned": sum(1 for m in milestones if m.status == "planned"),
        "in_progress": sum(1 for m in milestones if m.status == "in-progress"),
        "completed": completed,
        "delayed": sum(1 for m in milestones if m.status == "delayed"),
        "overdue": sum(1 for m in milestones if m.status != "completed" and ensure_utc(m.due_date) < now),
        "completion_rate": (completed / total) * 100 if total else 0,
    }


def get_milestone_with_features(*, user_id: int, milestone_id: int) -> dict:
    milestone = get_owned(Milestone, milestone_id, user_id=user_id)
    features = list_features(user_id=user_id, milestone_id=milestone.id)
    return {
        **milestone.to_dict(),
        "project": db.session.get(Project, milestone.project_id).to_dict(),
        "features": [f.to_dict() for f in features],
        "features_count": len(features),
        "completed_features": sum(1 for f in features if f.status == "completed"),
        "in_progress_features": sum(1 for f in features if f.status == "in-progress"),
        "planned_features": sum(1 for f in features if f.status == "planned"),
    }


def _roll_up_milestone(milestone_id: int | None) -> None:
    if milestone_id is None:
        return
    milestone = db.session.get(Milestone, milestone_id)
    if milestone is None:
        return
    statuses = db.session.execute(
        select(Feature.status).where(Feature.milestone_id == milestone_id)
    ).scalars().all()
    if not statuses:
        return
    completed = sum(1 for s in statuses if s == "completed")
    milestone.progress = round_half_up(100 * completed / len(statuses))
    milestone.status = "completed" if completed == len(statuses) else "in-progress"
    db.session.commit()


# ═══════════════════════════════════════════════════════════════
# Features
# ═══════════════════════════════════════════════════════════════
def list_features(
    *,
    user_id: int,
    project_id: int | None = None,
    milestone_id: int | None = None,
    status: str | None = None,
) -> list[Feature]:
    """Features by descending priority, scoped to a project or milestone if given."""
    if project_id is not None:
        get_owned(Project, project_id, user_id=user_id)
    if milestone_id is not None:
        get_owned(Milestone, milestone_id, user_id=user_id)
    require_user(user_id)
    stmt = select(Feature).where(Feature.user_id == user_id)
    if project_id is not None:
        stmt = stmt.where(Feature.project_id == project_id)
    if milestone_id is not None:
        stmt = stmt.where(Feature.milestone_id == milestone_id)
    if status:
        stmt = stmt.where(Feature.status == _choice(status, FEATURE_STATUSES, "status"))
    stmt = stmt.order_by(Feature.priority.desc(), Feature.created_at, Feature.id)
    return list(db.session.execute(stmt).scalars().all())


def get_feature(*, user_id: int, feature_id: int) -> Feature:
    return get_owned(Feature, feature_id, user_id=user_id)


def create_feature(*, user_id: int, project_id: int, data: dict) -> Feature:
    project = get_owned(Project, project_id, user_id=user_id)
    title = _require_text(data, "title")
    feature = Feature(
        user_id=user_id,
        project_id=project.id,
        milestone_id=_milestone_for_feature(user_id, project.id, data.get("milestone_id")),
        title=title,
        description=data.get("description") or "",
        status=_choice(data.get("status") or "backlog", FEATURE_STATUSES, "status"),
        priority=_rating(data.get("priority", 3), "priority"),
        category=data.get("category"),
        effort=_rating(data.get("effort"), "effort", optional=True),
        impact=_rating(data.get("impact"), "impact", optional=True),
    )
    db.session.add(feature)
    db.session.flush()
    activity_service.log_activity(
        user_id=user_id,
        type="feature.created",
        title=f'Created feature "{title}" for project "{project.name}"',
        entity_type="feature",
        entity_id=feature.id,
        metadata={"project_id": project.id, "milestone_id": feature.milestone_id},
    )
    db.session.commit()
    _roll_up_milestone(feature.milestone_id)
    return feature


def update_feature(*, user_id: int, feature_id: int, data: dict) -> Feature:
    """Partial update; a status change is logged and rolls up the milestone."""
    feature = get_owned(Feature, feature_id, user_id=user_id)
    previous_status = feature.status
    previous_milestone = feature.milestone_id

    if "title" in data:
        feature.title = _require_text(data, "title")
    if "description" in data:
        feature.description = data.get("description") or ""
    if "category" in data:
        feature.category = data.get("category")
    if "priority" in data:
        feature.priority = _rating(data["priority"], "priority")
    for field in ("effort", "impact"):
        if field in data:
            setattr(feature, field, _rating(data[field], field, optional=True))
    if "milestone_id" in data:
        feature.milestone_id = _milestone_for_feature(user_id, feature.project_id, data["milestone_id"])
    if "status" in data:
        feature.status = _choice(data["status"], FEATURE_STATUSES, "status")

    if feature.status != previous_status and feature.status == "completed":
        event, title = "feature.completed", f'Completed feature "{feature.title}"'
    elif feature.status != previous_status:
        event = "feature.status_changed"
        title = f'Changed feature "{feature.title}" status from {previous_status} to {feature.status}'
    else:
        event, title = "feature.updated", f'Updated feature "{feature.title}"'
    activity_service.log_activity(
        user_id=user_id,
        type=event,
        title=title,
        entity_type="feature",
        entity_id=feature.id,
        metadata={"project_id": feature.project_id, "milestone_id": feature.milestone_id},
    )
    db.session.commit()

    if feature.status != previous_status or feature.milestone_id != previous_milestone:
        _roll_up_milestone(feature.milestone_id)
    if feature.milestone_id != previous_milestone:
        _roll_up_milestone(previous_milestone)
    return feature


def complete_feature(*, user_id: int, feature_id: int) -> Feature:
    return update_feature(user_id=user_id, feature_id=feature_id, data={"status": "completed"})


def start_feature(*, user_id: int, feature_id: int) -> Feature:
    return update_feature(user_id=user_id, feature_id=feature_id, data={"status": "in-progress"})


def delay_feature(*, user_id: int, feature_id: int) -> Feature:
    return update_feature(user_id=user_id, feature_id=feature_id, data={"status": "delayed"})


def assign_feature_to_milestone(*, user_id: int, feature_id: int, milestone_id: int | None) -> Feature:
    """Assign to a milestone of the same project; ``None`` unassigns."""
    return update_feature(user_id=user_id, feature_id=feature_id, data={"milestone_id": milestone_id})


def delete_feature(*, user_id: int, feature_id: int) -> None:
    feature = get_owned(Feature, feature_id, user_id=user_id)
    title, milestone_id, project_id = feature.title, feature.milestone_id, feature.project_id
    db.session.delete(feature)
    activity_service.log_activity(
        user_id=user_id,
        type="feature.deleted",
        title=f'Deleted feature "{title}"',
        entity_type="feature",
        entity_id=feature_id,
        metadata={"project_id": project_id, "milestone_id": milestone_id},
    )
    db.session.commit()
    _roll_up_milestone(milestone_id)


def get_high_priority_features(*, user_id: int, min_priority: int = HIGH_FEATURE_PRIORITY) -> list[Feature]:
    """Open features at or above *min_priority*, highest first."""
    rows = [
        f for f in _user_features(user_id)
        if f.priority >= min_priority and f.status != "completed"
    ]
    return sorted(rows, key=lambda f: (-f.priority, f.id))


def get_features_by_effort_impact(*, user_id: int, project_id: int | None = None) -> dict:
    """Bucket features into the effort/impact matrix; mid ratings fall in no bucket."""
    features = _user_features(user_id, project_id)

    def bucket(low_effort: bool, high_impact: bool):
        return [
            f.to_dict() for f in features
            if ((f.effort or 0) <= 2 if low_effort else (f.effort or 0) >= 4)
            and ((f.impact or 0) >= 4 if high_impact else (f.impact or 0) <= 2)
        ]

    return {
        "quick_wins": bucket(True, True),
        "major_projects": bucket(False, True),
        "fill_ins": bucket(True, False),
        "thankless": bucket(False, False),
    }


def get_feature_stats(*, user_id: int, project_id: int | None = None) -> dict:
    if project_id is not None:
        get_owned(Project, project_id, user_id=user_id)
    features = _user_features(user_id, project_id)
    total = len(features)
    completed = sum(1 for f in features if f.status == "completed")
    efforts = [f.effort for f in features if f.effort]
    impacts = [f.impact for f in features if f.impact]
    return {
        "total": total,
        "backlog": sum(1 for f in features if f.status == "backlog"),
        "planned": sum(1 for f in features if f.status == "planned"),
        "in_progress": sum(1 for f in features if f.status == "in-progress"),
        "completed": completed,
        "delayed": sum(1 for f in features if f.status == "delayed"),
        "high_priority": sum(1 for f in features if f.priority >= HIGH_FEATURE_PRIORITY),
        "completion_rate": (completed / total) * 100 if total else 0,
        "avg_priority": sum(f.priority for f in features) / total if total else 0,
        "avg_effort": sum(efforts) / len(efforts) if efforts else 0,
        "avg_impact": sum(impacts) / len(impacts) if impacts else 0,
    }


def search_features(*, user_id: int, query: str) -> list[Feature]:
    """Case-insensitive substring match on title or description."""
    require_user(user_id)
    term = (query or "").strip()
    if not term:
        return []
    pattern = f"%{term}%"
    stmt = (
        select(Feature)
        .where(
            Feature.user_id == user_id,
            or_(Feature.title.ilike(pattern), Feature.description.ilike(pattern)),
        )
        .order_by(Feature.priority.desc(), Feature.id)
    )
    return list(db.session.execute(stmt).scalars().all())
