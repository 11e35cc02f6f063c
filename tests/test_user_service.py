from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from app.core.exceptions import NotFoundError
from app.models import db as _db
from app.models.activity import Activity
from app.models.base import OwnedModel
from app.models.campaign import Campaign, CampaignMetric, CampaignTemplate
from app.models.idea import Idea, IdeaCriteria, IdeaScore
from app.models.insight import Insight
from app.models.notification import Notification
from app.models.project import Phase, Project, Task
from app.models.roadmap import Feature, Milestone
from app.models.sales import Customer, Deal, SalesActivity
from app.models.user import User
from app.services import (
    activity_service,
    campaign_service,
    customer_service,
    deal_service,
    idea_criteria_service,
    idea_service,
    insight_service,
    project_service,
    roadmap_service,
    sales_activity_service,
    user_service,
)
from app.services.notification import NotificationService

OWNED_MODELS = (
    Project, Phase, Task, Milestone, Feature,
    Campaign, CampaignMetric, CampaignTemplate,
    Customer, Deal, SalesActivity,
    Idea, IdeaCriteria, IdeaScore,
    Insight, Activity, Notification,
)


def _count(model):
    return _db.session.execute(select(func.count(model.id))).scalar()


def _populate(user):
    """Give *user* at least one row in every owned table."""
    uid = user.id
    project = project_service.create_project(user_id=uid, data={"name": "Platform"})
    phase = project_service.create_phase(user_id=uid, project_id=project.id, data={"name": "Build"})
    project_service.create_task(user_id=uid, phase_id=phase.id, data={"title": "Schema"})
    milestone = roadmap_service.create_milestone(
        user_id=uid, project_id=project.id,
        data={"title": "Beta", "due_date": datetime.now(timezone.utc) + timedelta(days=7)},
    )
    roadmap_service.create_feature(
        user_id=uid, project_id=project.id, data={"title": "SSO", "milestone_id": milestone.id},
    )

    campaign = campaign_service.create_campaign(
        user_id=uid, data={"name": "Launch", "type": "email", "status": "active"},
    )
    campaign_service.record_metrics(user_id=uid, campaign_id=campaign.id, data={"impressions": 100, "cost": 5})
    campaign_service.create_template(user_id=uid, data={"name": "My drip", "type": "email"})

    customer = customer_service.create_customer(user_id=uid, data={"name": "Globex", "email": "buyer@globex.io"})
    deal = deal_service.create_deal(user_id=uid, data={"customer_id": customer.id, "title": "Annual", "value": 900})
    sales_activity_service.create_sales_activity(user_id=uid, data={
        "customer_id": customer.id, "deal_id": deal.id, "type": "call", "description": "Intro",
    })

    idea = idea_service.create_idea(user_id=uid, data={"title": "Usage billing"})
    criteria = idea_criteria_service.create_criteria(user_id=uid, data={"name": "Impact", "weight": 5})
    idea_service.upsert_score(user_id=uid, idea_id=idea.id, criteria_id=criteria.id, score=8)

    insight_service.create_insight(user_id=uid, data={"title": "Churn rising", "category": "trend"})
    activity_service.create_activity(user_id=uid, data={"type": "comment", "title": "Kickoff notes"})
    NotificationService.create(user_id=uid, title="Welcome")
    return idea, criteria


def test_delete_user_removes_every_owned_row(user):
    _populate(user)
    campaign_service.seed_campaign_templates()
    for model in OWNED_MODELS:
        assert _count(model) > 0, model.__name__

    user_service.delete_user(user_id=user.id)

    assert _db.session.get(User, user.id) is None
    leftovers = {model.__name__: _count(model) for model in OWNED_MODELS if model is not CampaignTemplate}
    assert leftovers == {name: 0 for name in leftovers}
    shared = _db.session.execute(select(CampaignTemplate)).scalars().all()
    assert len(shared) == 5
    assert all(t.created_by is None for t in shared)


def test_delete_user_leaves_other_users_alone(user, other_user):
    _populate(user)
    _populate(other_user)
    before = {model.__name__: _count(model) for model in OWNED_MODELS}

    user_service.delete_user(user_id=user.id)

    after = {model.__name__: _count(model) for model in OWNED_MODELS}
    assert all(after[name] > 0 for name in after)
    assert all(after[name] < before[name] for name in after)
    assert _db.session.get(User, other_user.id) is not None


def test_delete_user_removes_foreign_scores_on_own_ideas(user, other_user):
    idea, criteria = _populate(user)
    _db.session.add(IdeaScore(user_id=other_user.id, idea_id=idea.id, criteria_id=criteria.id, score=3))
    _db.session.commit()

    user_service.delete_user(user_id=user.id)

    assert _count(IdeaScore) == 0


def test_delete_missing_user():
    with pytest.raises(NotFoundError, match="User not found"):
        user_service.delete_user(user_id=404)


def test_owned_tables_share_indexed_owner_column():
    owned = [model for model in OWNED_MODELS if issubclass(model, OwnedModel)]
    assert {m.__name__ for m in owned} >= {"Project", "Milestone", "Customer", "Idea", "Insight"}
    for model in owned:
        column = model.__table__.c.user_id
        assert column.index, model.__name__
        assert [fk.column.table.name for fk in column.foreign_keys] == ["users"]
    assert not hasattr(OwnedModel, "query_for_user")
