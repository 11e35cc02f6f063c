"""
Marketing campaign service.

Campaign CRUD, the dated metrics samples that feed the campaign
performance views, and the campaign template catalog. Rates (CTR, conversion, ROI, CPC, CPA, ROAS) are always
derived from the raw counters via ``app.models.campaign.derive_rates``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, or_, select

from app.core.exceptions import AccessDeniedError, NotFoundError, ValidationError
from app.models import db
from app.models.campaign import (
    CAMPAIGN_STATUSES,
    CAMPAIGN_TYPES,
    TEMPLATE_DIFFICULTIES,
    Campaign,
    CampaignMetric,
    CampaignTemplate,
    derive_rates,
)
from app.services import activity_service
from app.services.helpers.scoped_queries import get_owned, get_owned_child, require_user
from app.utils.helpers import ensure_utc, parse_datetime

logger = logging.getLogger(__name__)

PERFORMANCE_PERIODS = ("day", "week", "month")
_METRIC_COUNTERS = ("impressions", "clicks", "conversions")
_METRIC_AMOUNTS = ("cost", "revenue")


def _choice(value, allowed, field):
    if value not in allowed:
        raise ValidationError(
            f"{field} must be one of: {', '.join(sorted(allowed))}",
            details={field: value},
        )
    return value


def _non_negative(data: dict, field: str, cast=float):
    try:
        value = cast(data.get(field) or 0)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a number", details={field: data.get(field)}) from exc
    if value < 0:
        raise ValidationError(f"{field} cannot be negative", details={field: value})
    return value


def _open_rate(data: dict):
    raw = data.get("open_rate")
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError("open_rate must be a number", details={"open_rate": raw}) from exc
    if not 0 <= value <= 100:
        raise ValidationError("open_rate must be between 0 and 100", details={"open_rate": raw})
    return value


def _get_metric(metric_id: int, user_id: int) -> CampaignMetric:
    return get_owned_child(
        CampaignMetric, metric_id, parent=Campaign, parent_fk="campaign_id", user_id=user_id,
    )


# ═══════════════════════════════════════════════════════════════
# Campaign CRUD
# ═══════════════════════════════════════════════════════════════
def list_campaigns(*, user_id: int, status: str | None = None, type: str | None = None) -> list[Campaign]:
    require_user(user_id)
    stmt = select(Campaign).where(Campaign.user_id == user_id)
    if status:
        stmt = stmt.where(Campaign.status == status)
    if type:
        stmt = stmt.where(Campaign.type == type)
    stmt = stmt.order_by(Campaign.created_at.desc(), Campaign.id.desc())
    return list(db.session.execute(stmt).scalars().all())


def get_campaign(*, user_id: int, campaign_id: int) -> Campaign:
    return get_owned(Campaign, campaign_id, user_id=user_id)


def create_campaign(*, user_id: int, data: dict) -> Campaign:
    """Create a campaign; an ``active`` one starts with a zero metrics row."""
    require_user(user_id)
    name = str(data.get("name", "") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    campaign_type = _choice(data.get("type"), CAMPAIGN_TYPES, "type")
    status = _choice(data.get("status") or "draft", CAMPAIGN_STATUSES, "status")

    start_date = parse_datetime(data.get("start_date"))
    end_date = parse_datetime(data.get("end_date"))
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date must not be before start_date")

    campaign = Campaign(
        user_id=user_id,
        name=name,
        type=campaign_type,
        status=status,
        description=data.get("description") or "",
        start_date=start_date,
        end_date=end_date,
        budget=_non_negative(data, "budget"),
        spent=_non_negative(data, "spent"),
        leads=_non_negative(data, "leads", int),
        conversions=_non_negative(data, "conversions", int),
        roi=data.get("roi"),
    )
    db.session.add(campaign)
    db.session.flush()

    if status == "active":
        db.session.add(CampaignMetric(campaign_id=campaign.id, date=datetime.now(timezone.utc)))

    activity_service.log_activity(
        user_id=user_id,
        type="campaign.created",
        title=f'Created campaign "{name}"',
        entity_type="campaign",
        entity_id=campaign.id,
    )
    db.session.commit()
    logger.info("Campaign created", extra={"user_id": user_id, "campaign_id": campaign.id})
    return campaign


def update_campaign(*, user_id: int, campaign_id: int, data: dict) -> Campaign:
    campaign = get_owned(Campaign, campaign_id, user_id=user_id)

    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        campaign.name = name
    if "type" in data:
        campaign.type = _choice(data["type"], CAMPAIGN_TYPES, "type")
    if "status" in data:
        campaign.status = _choice(data["status"], CAMPAIGN_STATUSES, "status")
    if "description" in data:
        campaign.description = data.get("description") or ""
    for field in ("start_date", "end_date"):
        if field in data:
            setattr(campaign, field, parse_datetime(data.get(field)))
    for field in ("budget", "spent"):
        if field in data:
            setattr(campaign, field, _non_negative(data, field))
    for field in ("leads", "conversions"):
        if field in data:
            setattr(campaign, field, _non_negative(data, field, int))
    if "roi" in data:
        campaign.roi = data.get("roi")

    db.session.commit()
    return campaign


def delete_campaign(*, user_id: int, campaign_id: int) -> None:
    """Delete the campaign and its metrics in one transaction."""
    campaign = get_owned(Campaign, campaign_id, user_id=user_id)
    try:
        db.session.execute(delete(CampaignMetric).where(CampaignMetric.campaign_id == campaign.id))
        db.session.delete(campaign)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("Campaign deleted", extra={"user_id": user_id, "campaign_id": campaign_id})


# ═══════════════════════════════════════════════════════════════
# Metrics
# ═══════════════════════════════════════════════════════════════
def record_metrics(*, user_id: int, campaign_id: int, data: dict) -> CampaignMetric:
    """Store a metrics sample and add its cost to ``campaign.spent``."""
    campaign = get_owned(Campaign, campaign_id, user_id=user_id)

    values = {f: _non_negative(data, f, int) for f in _METRIC_COUNTERS}
    values.update({f: _non_negative(data, f) for f in _METRIC_AMOUNTS})
    open_rate = _open_rate(data)

    metric = CampaignMetric(
        campaign_id=campaign.id,
        date=parse_datetime(data.get("date")) or datetime.now(timezone.utc),
        open_rate=open_rate,
        **values,
    )
    db.session.add(metric)
    campaign.spent = (campaign.spent or 0.0) + values["cost"]
    db.session.flush()

    activity_service.log_activity(
        user_id=user_id,
        type="campaign.metrics.created",
        title=f'Recorded metrics for campaign "{campaign.name}"',
        entity_type="campaign",
        entity_id=campaign.id,
        metadata={"metric_id": metric.id, **values},
    )
    db.session.commit()
    return metric


def update_metrics(*, user_id: int, metric_id: int, data: dict) -> CampaignMetric:
    """Correct a sample; a cost change adjusts ``campaign.spent`` by the delta."""
    metric = _get_metric(metric_id, user_id)
    campaign = db.session.get(Campaign, metric.campaign_id)

    for field in _METRIC_COUNTERS:
        if field in data:
            setattr(metric, field, _non_negative(data, field, int))
    if "revenue" in data:
        metric.revenue = _non_negative(data, "revenue")
    if "cost" in data:
        new_cost = _non_negative(data, "cost")
        campaign.spent = max((campaign.spent or 0.0) + new_cost - (metric.cost or 0.0), 0.0)
        metric.cost = new_cost
    if "open_rate" in data:
        metric.open_rate = _open_rate(data)
    if "date" in data:
        metric.date = parse_datetime(data.get("date")) or metric.date

    db.session.commit()
    return metric


def delete_metrics(*, user_id: int, metric_id: int) -> None:
    metric = _get_metric(metric_id, user_id)
    campaign = db.session.get(Campaign, metric.campaign_id)
    campaign.spent = max((campaign.spent or 0.0) - (metric.cost or 0.0), 0.0)
    db.session.delete(metric)
    db.session.commit()


def list_metrics(
    *, user_id: int, campaign_id: int, start: datetime | None = None, end: datetime | None = None,
) -> list[CampaignMetric]:
    get_owned(Campaign, campaign_id, user_id=user_id)
    stmt = select(CampaignMetric).where(CampaignMetric.campaign_id == campaign_id)
    if start is not None:
        stmt = stmt.where(CampaignMetric.date >= start)
    if end is not None:
        stmt = stmt.where(CampaignMetric.date <= end)
    stmt = stmt.order_by(CampaignMetric.date, CampaignMetric.id)
    return list(db.session.execute(stmt).scalars().all())


def get_aggregated_metrics(*, user_id: int, campaign_id: int) -> dict | None:
    """Totals and averaged rates over every sample; None without samples."""
    metrics = list_metrics(user_id=user_id, campaign_id=campaign_id)
    if not metrics:
        return None

    totals = {
        "total_impressions": sum(m.impressions or 0 for m in metrics),
        "total_clicks": sum(m.clicks or 0 for m in metrics),
        "total_conversions": sum(m.conversions or 0 for m in metrics),
        "total_cost": sum(m.cost or 0.0 for m in metrics),
        "total_revenue": sum(m.revenue or 0.0 for m in metrics),
    }
    open_rates = [m.open_rate for m in metrics if m.open_rate is not None]
    rates = derive_rates(
        impressions=totals["total_impressions"],
        clicks=totals["total_clicks"],
        conversions=totals["total_conversions"],
        cost=totals["total_cost"],
        revenue=totals["total_revenue"],
    )
    return {
        **totals,
        "avg_open_rate": sum(open_rates) / len(open_rates) if open_rates else 0,
        "avg_click_rate": rates["click_rate"],
        "avg_conversion_rate": rates["conversion_rate"],
        "total_roi": rates["roi"],
        "metrics_count": len(metrics),
    }


def _period_key(value: datetime, period: str) -> str:
    value = ensure_utc(value)
    if period == "week":
        # Weeks start on Sunday.
        week_start = value - timedelta(days=(value.weekday() + 1) % 7)
        return week_start.date().isoformat()
    if period == "month":
        return f"{value.year:04d}-{value.month:02d}"
    return value.date().isoformat()


def get_campaign_performance(*, user_id: int, campaign_id: int, period: str = "day") -> list[dict]:
    """Metrics bucketed by day / week / month, sorted by bucket key."""
    _choice(period, PERFORMANCE_PERIODS, "period")
    buckets: dict[str, dict] = {}
    for metric in list_metrics(user_id=user_id, campaign_id=campaign_id):
        key = _period_key(metric.date, period)
        bucket = buckets.setdefault(key, {
            "period": key, "impressions": 0, "clicks": 0, "conversions": 0, "cost": 0.0, "revenue": 0.0,
        })
        for field in _METRIC_COUNTERS + _METRIC_AMOUNTS:
            bucket[field] += getattr(metric, field) or 0

    return [
        {**bucket, **derive_rates(**{f: bucket[f] for f in _METRIC_COUNTERS + _METRIC_AMOUNTS})}
        for _, bucket in sorted(buckets.items())
    ]


def get_campaign_stats(*, user_id: int) -> dict:
    campaigns = list_campaigns(user_id=user_id)
    by_status = {s: 0 for s in sorted(CAMPAIGN_STATUSES)}
    by_type = {t: 0 for t in sorted(CAMPAIGN_TYPES)}
    for c in campaigns:
        by_status[c.status] = by_status.get(c.status, 0) + 1
        by_type[c.type] = by_type.get(c.type, 0) + 1
    rois = [c.roi for c in campaigns if c.roi is not None]
    return {
        "total": len(campaigns),
        "by_status": by_status,
        "by_type": by_type,
        "total_budget": sum(c.budget or 0.0 for c in campaigns),
        "total_spent": sum(c.spent or 0.0 for c in campaigns),
        "total_leads": sum(c.leads or 0 for c in campaigns),
        "total_conversions": sum(c.conversions or 0 for c in campaigns),
        "average_roi": sum(rois) / len(rois) if rois else 0,
    }


# ═══════════════════════════════════════════════════════════════
# Templates
# ═══════════════════════════════════════════════════════════════
SEED_TEMPLATES = [
    {
        "name": "Email Newsletter Campaign",
        "type": "email",
        "description": "Weekly newsletter to engage subscribers with valuable content and product updates",
        "difficulty": "beginner",
        "estimated_time": "2-3 hours",
        "content": "Subject: Your Weekly Update\n\nHi [Name],\n\nHere's what's new this week...",
        "popularity": 15,
    },
    {
        "name": "Social Media Product Launch",
        "type": "social",
        "description": "Multi-platform social media campaign for new product announcements",
        "difficulty": "intermediate",
        "estimated_time": "1-2 weeks",
        "content": "Exciting news! We're launching [Product Name]...",
        "popularity": 23,
    },
    {
        "name": "Content Marketing Blog Series",
        "type": "content",
        "description": "Educational blog series to establish thought leadership",
        "difficulty": "advanced",
        "estimated_time": "4-6 weeks",
        "content": "Blog post outline:\n1. Introduction\n2. Problem statement\n3. Solution...",
        "popularity": 8,
    },
    {
        "name": "Google Ads Conversion Campaign",
        "type": "ads",
        "description": "Targeted Google Ads campaign focused on driving conversions",
        "difficulty": "intermediate",
        "estimated_time": "1 week setup + ongoing",
        "content": "Keywords: [product keywords]\nAd copy: Get [benefit] with [product]...",
        "popularity": 31,
    },
    {
        "name": "Webinar Event Campaign",
        "type": "event",
        "description": "Complete campaign for hosting educational webinars",
        "difficulty": "advanced",
        "estimated_time": "3-4 weeks",
        "content": "Webinar title: [Topic]\nDescription: Join us for an exclusive...",
        "popularity": 12,
    },
]


def _visible_template(template_id: int, user_id: int) -> CampaignTemplate:
    """Shared templates are visible to everyone, authored ones to their author."""
    require_user(user_id)
    template = db.session.get(CampaignTemplate, template_id)
    if template is None:
        raise NotFoundError(resource="Template", resource_id=template_id)
    if template.created_by is not None and template.created_by != user_id:
        raise AccessDeniedError(resource="Template", resource_id=template_id, user_id=user_id)
    return template


def _authored_template(template_id: int, user_id: int) -> CampaignTemplate:
    template = _visible_template(template_id, user_id)
    if template.created_by != user_id:
        logger.warning(
            "Shared template %s is read-only", template_id, extra={"user_id": user_id},
        )
        raise AccessDeniedError(resource="Template", resource_id=template_id, user_id=user_id)
    return template


def list_templates(
    *, user_id: int, type: str | None = None, difficulty: str | None = None,
) -> list[CampaignTemplate]:
    """Shared and own templates, newest first."""
    require_user(user_id)
    stmt = select(CampaignTemplate).where(
        or_(CampaignTemplate.created_by.is_(None), CampaignTemplate.created_by == user_id)
    )
    if type:
        stmt = stmt.where(CampaignTemplate.type == _choice(type, CAMPAIGN_TYPES, "type"))
    if difficulty:
        stmt = stmt.where(
            CampaignTemplate.difficulty == _choice(difficulty, TEMPLATE_DIFFICULTIES, "difficulty")
        )
    stmt = stmt.order_by(CampaignTemplate.created_at.desc(), CampaignTemplate.id.desc())
    return list(db.session.execute(stmt).scalars().all())


def get_template(*, user_id: int, template_id: int) -> CampaignTemplate:
    return _visible_template(template_id, user_id)


def create_template(*, user_id: int, data: dict) -> CampaignTemplate:
    require_user(user_id)
    name = str(data.get("name", "") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    template = CampaignTemplate(
        created_by=user_id,
        name=name,
        type=_choice(data.get("type"), CAMPAIGN_TYPES, "type"),
        description=data.get("description") or "",
        difficulty=_choice(data.get("difficulty") or "beginner", TEMPLATE_DIFFICULTIES, "difficulty"),
        estimated_time=data.get("estimated_time"),
        popularity=0,
        content=data.get("content"),
    )
    db.session.add(template)
    db.session.commit()
    logger.info("Campaign template created", extra={"user_id": user_id, "template_id": template.id})
    return template


def update_template(*, user_id: int, template_id: int, data: dict) -> CampaignTemplate:
    """Partial update of an authored template. ``popularity`` is not writable."""
    template = _authored_template(template_id, user_id)
    if "name" in data:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        template.name = name
    if "type" in data:
        template.type = _choice(data["type"], CAMPAIGN_TYPES, "type")
    if "difficulty" in data:
        template.difficulty = _choice(data["difficulty"], TEMPLATE_DIFFICULTIES, "difficulty")
    for field in ("description", "estimated_time", "content"):
        if field in data:
            setattr(template, field, data.get(field))
    db.session.commit()
    return template


def delete_template(*, user_id: int, template_id: int) -> None:
    template = _authored_template(template_id, user_id)
    db.session.delete(template)
    db.session.commit()


def increment_template_popularity(*, user_id: int, template_id: int) -> CampaignTemplate:
    template = _visible_template(template_id, user_id)
    template.popularity = (template.popularity or 0) + 1
    db.session.commit()
    return template


def create_campaign_from_template(*, user_id: int, template_id: int, data: dict) -> Campaign:
    """Create a draft campaign carrying the template's type and description.

    ``data`` holds ``name`` and ``start_date`` (required), ``end_date`` and
    ``budget``. The template's popularity goes up by one.
    """
    template = _visible_template(template_id, user_id)
    if parse_datetime(data.get("start_date")) is None:
        raise ValidationError("start_date is required", details={"start_date": "required"})

    campaign = create_campaign(user_id=user_id, data={
        "name": data.get("name"),
        "type": template.type,
        "status": "draft",
        "description": template.description,
        "start_date": data.get("start_date"),
        "end_date": data.get("end_date"),
        "budget": data.get("budget"),
    })
    template.popularity = (template.popularity or 0) + 1
    db.session.commit()
    logger.info(
        "Campaign created from template %s", template.id,
        extra={"user_id": user_id, "campaign_id": campaign.id},
    )
    return campaign


def seed_campaign_templates() -> list[CampaignTemplate]:
    """Insert the shared template catalog; names already present are skipped."""
    existing = set(db.session.execute(
        select(CampaignTemplate.name).where(CampaignTemplate.created_by.is_(None))
    ).scalars().all())
    created = []
    for row in SEED_TEMPLATES:
        if row["name"] in existing:
            continue
        template = CampaignTemplate(created_by=None, **row)
        db.session.add(template)
        created.append(template)
    db.session.commit()
    logger.info("Seeded %d campaign templates", len(created))
    return created
