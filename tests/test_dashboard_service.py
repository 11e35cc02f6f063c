from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import NotFoundError
from app.services import (
    campaign_service,
    customer_service,
    dashboard_service as svc,
    deal_service,
    project_service,
    roadmap_service,
)


def _in_days(days):
    return datetime.now(timezone.utc) + timedelta(days=days)


def _project_with_tasks(user, *titles, completed=()):
    project = project_service.create_project(user_id=user.id, data={"name": "Platform"})
    phase = project_service.create_phase(user_id=user.id, project_id=project.id, data={"name": "Build"})
    tasks = [
        project_service.create_task(
            user_id=user.id, phase_id=phase.id, data={"title": t, "completed": t in completed},
        )
        for t in titles
    ]
    return project, tasks


def _open_deal(user, value=1000):
    customer = customer_service.create_customer(user_id=user.id, data={"name": "Globex", "email": "buyer@globex.io"})
    return deal_service.create_deal(user_id=user.id, data={
        "customer_id": customer.id, "title": "Annual plan", "value": value, "stage": "proposal",
    })


@pytest.mark.parametrize("development, marketing, sales, expected", [
    (50, 100, 0, 55),
    (100, 100, 100, 100),
    (0, 0, 0, 0),
    (1, 0, 0, 1),
    (0, 0, 50, 10),
    (33.3, 50, 25, 37),
])
def test_gtm_readiness_weighting(development, marketing, sales, expected):
    assert svc.get_gtm_readiness(development=development, marketing=marketing, sales=sales) == expected


def test_overview_for_empty_account(user):
    overview = svc.get_dashboard_overview(user_id=user.id)

    assert overview["development"] == {"total_tasks": 0, "completed_tasks": 0, "progress": 0}
    assert overview["pipeline"]["open_deals"] == 0
    assert overview["gtm_readiness"] == 0
    assert overview["recent_projects"] == []


def test_overview_blends_pillars_into_gtm(user):
    _project_with_tasks(user, "Schema", "API", completed=("Schema",))
    campaign_service.create_campaign(user_id=user.id, data={"name": "Launch", "type": "email", "status": "active"})
    _open_deal(user, value=1200)

    overview = svc.get_dashboard_overview(user_id=user.id)

    assert overview["development"] == {"total_tasks": 2, "completed_tasks": 1, "progress": 50}
    assert overview["campaigns"] == {"total": 1, "active": 1, "draft": 0}
    assert overview["pipeline"] == {"open_deals": 1, "open_value": 1200, "win_rate": 0}
    assert overview["project_count"] == 1
    assert overview["gtm_readiness"] == 55


def test_overview_unknown_user():
    with pytest.raises(NotFoundError, match="User not found"):
        svc.get_dashboard_overview(user_id=999)


# ── Next steps ───────────────────────────────────────────────────────────


def test_no_next_steps_for_empty_account(user):
    assert svc.get_next_steps(user_id=user.id) == []


def test_next_steps_one_per_pillar_in_order(user):
    project, tasks = _project_with_tasks(user, "Schema", "API", "Billing", completed=("Schema",))
    campaign = campaign_service.create_campaign(
        user_id=user.id, data={"name": "Spring launch", "type": "email", "status": "active"},
    )
    campaign_service.create_campaign(user_id=user.id, data={"name": "Draft idea", "type": "social"})
    deal = _open_deal(user)
    roadmap_service.create_milestone(
        user_id=user.id, project_id=project.id, data={"title": "Missed", "due_date": _in_days(-3)},
    )
    roadmap_service.create_milestone(
        user_id=user.id, project_id=project.id, data={"title": "Later", "due_date": _in_days(20)},
    )
    sooner = roadmap_service.create_milestone(
        user_id=user.id, project_id=project.id, data={"title": "Sooner", "due_date": _in_days(5)},
    )

    steps = svc.get_next_steps(user_id=user.id)

    assert [s["type"] for s in steps] == ["development", "marketing", "sales", "gtm"]
    assert steps[0] == {
        "type": "development",
        "title": "Complete API",
        "description": "Development task",
        "entity_id": tasks[1].id,
        "entity_type": "task",
    }
    assert steps[1]["title"] == "Launch Spring launch"
    assert steps[1]["entity_id"] == campaign.id
    assert (steps[2]["title"], steps[2]["entity_id"]) == ("Follow up with potential customers", deal.id)
    assert (steps[3]["entity_type"], steps[3]["entity_id"]) == ("milestone", sooner.id)


def test_next_steps_skip_closed_and_completed_work(user):
    project, _ = _project_with_tasks(user, "Schema", completed=("Schema",))
    customer = customer_service.create_customer(user_id=user.id, data={"name": "Initech", "email": "it@initech.io"})
    deal_service.create_deal(user_id=user.id, data={
        "customer_id": customer.id, "title": "Won already", "value": 10, "stage": "closed-won",
    })
    milestone = roadmap_service.create_milestone(
        user_id=user.id, project_id=project.id, data={"title": "Shipped", "due_date": _in_days(5)},
    )
    roadmap_service.complete_milestone(user_id=user.id, milestone_id=milestone.id)

    assert svc.get_next_steps(user_id=user.id) == []
