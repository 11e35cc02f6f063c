"""
Activity feed service.

Append-only log of state changes, read back as the dashboard's "recent
activity" feed. Other services call ``log_activity`` inside their own unit
of work (it only flushes); the public functions below commit.

Functions:
    - log_activity:            Append one row (flush only; caller commits)
    - create_activity:         User-entered feed item (comment, meeting, ...)
    - list_activities:         Newest first, optional type / unread filters
    - get_by_date_range:       Activities whose date falls in [start, end]
    - mark_read / mark_all_read
    - delete_activity
    - get_activity_stats:      Totals and per-type counts over the last N days
    - get_recent_activities:   Latest N, optionally grouped by type
"""

import json
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.activity import ACTIVITY_EVENTS, FEED_TYPES, Activity
from app.services.helpers.scoped_queries import get_owned, require_user
from app.utils.helpers import parse_datetime

logger = logging.getLogger(__name__)


# ── Writer ───────────────────────────────────────────────────────────────────


def log_activity(
    *,
    user_id: int,
    type: str,
    title: str,
    description: str = "",
    entity_type: str | None = None,
    entity_id: int | None = None,
    metadata: dict | None = None,
    date: datetime | None = None,
) -> Activity:
    """Append a single activity row.  Uses ``flush`` so callers keep
    transaction control.

    Returns the (flushed) Activity instance.
    """
    if type not in ACTIVITY_EVENTS and type not in FEED_TYPES:
        raise ValidationError(f"Unknown activity type: {type}")
    activity = Activity(
        user_id=user_id,
        type=type,
        title=title[:300],
        description=description or "",
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=json.dumps(metadata or {}, default=str),
        date=date or datetime.now(timezone.utc),
    )
    db.session.add(activity)
    db.session.flush()
    logger.debug("Activity logged: %s", type, extra={"user_id": user_id, "event_type": type})
    return activity


# ── Public CRUD ──────────────────────────────────────────────────────────────


def create_activity(*, user_id: int, data: dict) -> Activity:
    """Create a user-entered feed item.

    Raises:
        NotFoundError: If the user does not exist.
        ValidationError: If type is not a feed type or title is empty.
    """
    require_user(user_id)
    activity_type = data.get("type")
    if activity_type not in FEED_TYPES:
        raise ValidationError(
            f"type must be one of: {', '.join(sorted(FEED_TYPES))}",
            details={"type": activity_type},
        )
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Title is required", details={"title": "required"})

    activity = log_activity(
        user_id=user_id,
        type=activity_type,
        title=title,
        description=data.get("description") or "",
        entity_type=data.get("entity_type"),
        entity_id=data.get("entity_id"),
        metadata=data.get("metadata"),
        date=parse_datetime(data.get("date")),
    )
    db.session.commit()
    return activity


def list_activities(
    *,
    user_id: int,
    activity_type: str | None = None,
    unread_only: bool = False,
    limit: int | None = None,
) -> list[Activity]:
    require_user(user_id)
    stmt = select(Activity).where(Activity.user_id == user_id)
    if activity_type:
        stmt = stmt.where(Activity.type == activity_type)
    if unread_only:
        stmt = stmt.where(Activity.unread.is_(True))
    stmt = stmt.order_by(Activity.date.desc(), Activity.id.desc())
    if limit:
        stmt = stmt.limit(limit)
    return list(db.session.execute(stmt).scalars().all())


def get_by_date_range(*, user_id: int, start: datetime, end: datetime) -> list[Activity]:
    """Return activities dated within [start, end], newest first."""
    require_user(user_id)
    if start > end:
        raise ValidationError("start must not be after end")
    stmt = (
        select(Activity)
        .where(Activity.user_id == user_id, Activity.date >= start, Activity.date <= end)
        .order_by(Activity.date.desc())
    )
    return list(db.session.execute(stmt).scalars().all())


def mark_read(*, user_id: int, activity_id: int) -> Activity:
    activity = get_owned(Activity, activity_id, user_id=user_id)
    activity.unread = False
    db.session.commit()
    return activity


def mark_all_read(*, user_id: int) -> int:
    """Mark every unread activity of the user as read; return the count."""
    require_user(user_id)
    rows = db.session.execute(
        select(Activity).where(Activity.user_id == user_id, Activity.unread.is_(True))
    ).scalars().all()
    for activity in rows:
        activity.unread = False
    db.session.commit()
    return len(rows)


def delete_activity(*, user_id: int, activity_id: int) -> None:
    from app.models.notification import Notification

    activity = get_owned(Activity, activity_id, user_id=user_id)
    # Notifications keep their text; only the back-reference goes.
    Notification.query.filter_by(activity_id=activity.id).update(
        {"activity_id": None}, synchronize_session="fetch"
    )
    db.session.delete(activity)
    db.session.commit()


# ── Aggregations ─────────────────────────────────────────────────────────────


def get_activity_stats(*, user_id: int, days: int = 30) -> dict:
    """Count activities dated within the last *days* days."""
    require_user(user_id)
    since = datetime.now(timezone.utc) - timedelta(days=days)
    rows = db.session.execute(
        select(Activity).where(Activity.user_id == user_id, Activity.date >= since)
    ).scalars().all()
    by_type = {t: 0 for t in sorted(FEED_TYPES)}
    by_type.update(Counter(a.type for a in rows))
    return {
        "days": days,
        "total": len(rows),
        "unread": sum(1 for a in rows if a.unread),
        "by_type": by_type,
    }


def get_recent_activities(*, user_id: int, limit: int = 20, group_by_type: bool = False):
    """Latest *limit* activities; a ``{type: [...]}`` dict when grouped."""
    activities = list_activities(user_id=user_id, limit=limit)
    if not group_by_type:
        return [a.to_dict() for a in activities]
    grouped: dict[str, list[dict]] = {}
    for activity in activities:
        grouped.setdefault(activity.type, []).append(activity.to_dict())
    return grouped
