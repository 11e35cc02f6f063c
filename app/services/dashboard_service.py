"""
Dashboard Overview Service.

Aggregates the user's headline numbers for the landing dashboard:
  - Development progress (completed / total tasks across projects)
  - Campaign counts
  - Open pipeline value
  - Idea and active-insight counts
  - Go-to-market (GTM) readiness score

Also builds the short "next steps" list shown beside the KPIs.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select

from app.models import db
from app.models.campaign import Campaign
from app.models.idea import Idea
from app.models.insight import Insight
from app.models.project import Project, Task
from app.models.roadmap import Milestone
from app.models.sales import CLOSED_STAGES, Deal
from app.services.helpers.scoped_queries import require_user
from app.utils.helpers import ensure_utc, round_half_up

logger = logging.getLogger(__name__)

# GTM readiness = weighted blend of the three pillar percentages.
GTM_WEIGHTS = {"development": 0.5, "marketing": 0.3, "sales": 0.2}


def _pct(part, whole):
    return (part / whole * 100) if whole else 0


def get_gtm_readiness(*, development: float, marketing: float, sales: float) -> int:
    return round_half_up(
        GTM_WEIGHTS["development"] * development
        + GTM_WEIGHTS["marketing"] * marketing
        + GTM_WEIGHTS["sales"] * sales
    )


def get_dashboard_overview(*, user_id: int) -> dict:
    """Headline KPIs for one user."""
    require_user(user_id)

    project_ids = select(Project.id).where(Project.user_id == user_id)
    total_tasks = db.session.execute(
        select(func.count(Task.id)).where(Task.project_id.in_(project_ids))
    ).scalar() or 0
    completed_tasks = db.session.execute(
        select(func.count(Task.id)).where(Task.project_id.in_(project_ids), Task.completed.is_(True))
    ).scalar() or 0
    development = _pct(completed_tasks, total_tasks)

    campaigns = db.session.execute(
        select(Campaign.status).where(Campaign.user_id == user_id)
    ).scalars().all()
    active_campaigns = sum(1 for s in campaigns if s == "active")
    live_or_done = sum(1 for s in campaigns if s in ("active", "completed"))
    marketing = _pct(live_or_done, len(campaigns))

    deals = db.session.execute(select(Deal).where(Deal.user_id == user_id)).scalars().all()
    open_deals = [d for d in deals if d.stage not in CLOSED_STAGES]
    won = sum(1 for d in deals if d.stage == "closed-won")
    sales = _pct(won, len(deals))

    total_ideas = db.session.execute(
        select(func.count(Idea.id)).where(Idea.user_id == user_id)
    ).scalar() or 0
    active_insights = db.session.execute(
        select(func.count(Insight.id)).where(Insight.user_id == user_id, Insight.dismissed.is_(False))
    ).scalar() or 0

    projects = db.session.execute(
        select(Project).where(Project.user_id == user_id)
        .order_by(Project.created_at.desc(), Project.id.desc())
    ).scalars().all()

    return {
        "development": {
            "total_tasks": total_tasks,
            "completed_tasks": completed_tasks,
            "progress": round_half_up(development),
        },
        "campaigns": {
            "total": len(campaigns),
            "active": active_campaigns,
            "draft": sum(1 for s in campaigns if s == "draft"),
        },
        "pipeline": {
            "open_deals": len(open_deals),
            "open_value": sum(d.value or 0.0 for d in open_deals),
            "win_rate": sales,
        },
        "total_ideas": total_ideas,
        "active_insights": active_insights,
        "project_count": len(projects),
        "recent_projects": [p.to_dict() for p in projects[:5]],
        "gtm_readiness": get_gtm_readiness(development=development, marketing=marketing, sales=sales),
    }


def _first(stmt):
    return db.session.execute(stmt.limit(1)).scalars().first()


def get_next_steps(*, user_id: int) -> list[dict]:
    """Up to four suggested actions, one per pillar, oldest item first.

    Order is fixed: development task, active campaign, open deal, then the
    nearest upcoming milestone that is not yet completed.
    """
    require_user(user_id)
    steps = []

    task = _first(
        select(Task).join(Project, Task.project_id == Project.id)
        .where(Project.user_id == user_id, Task.completed.is_(False))
        .order_by(Task.created_at, Task.id)
    )
    if task is not None:
        steps.append(_step("development", f"Complete {task.title}", "Development task", task.id, "task"))

    campaign = _first(
        select(Campaign).where(Campaign.user_id == user_id, Campaign.status == "active")
        .order_by(Campaign.created_at, Campaign.id)
    )
    if campaign is not None:
        steps.append(_step("marketing", f"Launch {campaign.name}", "Marketing task", campaign.id, "campaign"))

    deal = _first(
        select(Deal).where(Deal.user_id == user_id, Deal.stage.not_in(CLOSED_STAGES))
        .order_by(Deal.created_at, Deal.id)
    )
    if deal is not None:
        steps.append(_step("sales", "Follow up with potential customers", "Sales task", deal.id, "deal"))

    now = datetime.now(timezone.utc)
    upcoming = sorted(
        (m for m in db.session.execute(
            select(Milestone).where(Milestone.user_id == user_id, Milestone.status != "completed")
        ).scalars() if ensure_utc(m.due_date) >= now),
        key=lambda m: (ensure_utc(m.due_date), m.id),
    )
    if upcoming:
        milestone = upcoming[0]
        steps.append(_step("gtm", "Finalize pricing strategy", "GTM task", milestone.id, "milestone"))

    return steps


def _step(kind, title, description, entity_id, entity_type):
    return {
        "type": kind,
        "title": title,
        "description": description,
        "entity_id": entity_id,
        "entity_type": entity_type,
    }
