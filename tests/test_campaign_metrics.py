"""Campaign CRUD and metric derivations."""

import pytest
from sqlalchemy import func, select

from app.core.exceptions import AccessDeniedError, NotFoundError, ValidationError
from app.models import db as _db
from app.models.campaign import Campaign, CampaignMetric, CampaignTemplate, derive_rates
from app.services import campaign_service as svc


def _campaign(user, **data):
    payload = {"name": "Spring launch", "type": "email", "budget": 1000}
    payload.update(data)
    return svc.create_campaign(user_id=user.id, data=payload)


def _sample(user, campaign, **data):
    payload = {"impressions": 1000, "clicks": 50, "conversions": 5, "cost": 100, "revenue": 300}
    payload.update(data)
    return svc.record_metrics(user_id=user.id, campaign_id=campaign.id, data=payload)


def test_derive_rates():
    rates = derive_rates(impressions=1000, clicks=50, conversions=5, cost=100, revenue=300)
    assert rates["click_rate"] == pytest.approx(5)
    assert rates["ctr"] == rates["click_rate"]
    assert rates["conversion_rate"] == pytest.approx(10)
    assert rates["roi"] == 200
    assert rates["cpc"] == 2
    assert rates["cpa"] == 20
    assert rates["roas"] == 3


def test_zero_denominators_give_zero_rates():
    rates = derive_rates()
    assert all(value == 0 for value in rates.values())


def test_create_campaign_validates_type_and_dates(user):
    with pytest.raises(ValidationError):
        _campaign(user, type="billboard")
    with pytest.raises(ValidationError):
        _campaign(user, start_date="2026-05-10", end_date="2026-05-01")
    with pytest.raises(ValidationError):
        _campaign(user, budget=-5)


def test_active_campaign_starts_with_zero_metrics_row(user):
    active = _campaign(user, status="active")
    draft = _campaign(user, name="Draft")

    rows = svc.list_metrics(user_id=user.id, campaign_id=active.id)
    assert len(rows) == 1
    assert (rows[0].impressions, rows[0].clicks, rows[0].cost) == (0, 0, 0)
    assert svc.list_metrics(user_id=user.id, campaign_id=draft.id) == []


def test_record_metrics_accumulates_spent(user):
    campaign = _campaign(user)
    _sample(user, campaign, cost=100)
    metric = _sample(user, campaign, cost=50)

    assert _db.session.get(Campaign, campaign.id).spent == 150
    assert metric.to_dict()["roi"] == 500

    svc.update_metrics(user_id=user.id, metric_id=metric.id, data={"cost": 80})
    assert _db.session.get(Campaign, campaign.id).spent == 180

    svc.delete_metrics(user_id=user.id, metric_id=metric.id)
    assert _db.session.get(Campaign, campaign.id).spent == 100


def test_open_rate_range(user):
    campaign = _campaign(user)
    with pytest.raises(ValidationError):
        _sample(user, campaign, open_rate=120)


def test_aggregated_metrics(user):
    campaign = _campaign(user)
    assert svc.get_aggregated_metrics(user_id=user.id, campaign_id=campaign.id) is None

    _sample(user, campaign, open_rate=20)
    _sample(user, campaign, clicks=150, conversions=15, revenue=100, open_rate=40)

    agg = svc.get_aggregated_metrics(user_id=user.id, campaign_id=campaign.id)

    assert agg["total_impressions"] == 2000
    assert agg["total_clicks"] == 200
    assert agg["total_cost"] == 200
    assert agg["avg_open_rate"] == 30
    assert agg["avg_click_rate"] == pytest.approx(10)
    assert agg["avg_conversion_rate"] == pytest.approx(10)
    assert agg["total_roi"] == 100
    assert agg["metrics_count"] == 2


def test_weekly_performance_buckets_start_on_sunday(user):
    campaign = _campaign(user)
    _sample(user, campaign, date="2024-06-03")  # Monday
    _sample(user, campaign, date="2024-06-08")  # Saturday
    _sample(user, campaign, date="2024-06-09")  # Sunday

    weeks = svc.get_campaign_performance(user_id=user.id, campaign_id=campaign.id, period="week")

    assert [w["period"] for w in weeks] == ["2024-06-02", "2024-06-09"]
    assert weeks[0]["impressions"] == 2000
    assert weeks[0]["click_rate"] == pytest.approx(5)


def test_monthly_performance_and_bad_period(user):
    campaign = _campaign(user)
    _sample(user, campaign, date="2024-06-30")
    _sample(user, campaign, date="2024-07-01")

    months = svc.get_campaign_performance(user_id=user.id, campaign_id=campaign.id, period="month")
    assert [m["period"] for m in months] == ["2024-06", "2024-07"]

    with pytest.raises(ValidationError):
        svc.get_campaign_performance(user_id=user.id, campaign_id=campaign.id, period="year")


def test_metric_access_checked_through_campaign(user, other_user):
    campaign = _campaign(user)
    metric = _sample(user, campaign)
    with pytest.raises(AccessDeniedError):
        svc.delete_metrics(user_id=other_user.id, metric_id=metric.id)


def test_delete_campaign_removes_metrics(user):
    campaign = _campaign(user, status="active")
    _sample(user, campaign)
    campaign_id = campaign.id

    svc.delete_campaign(user_id=user.id, campaign_id=campaign_id)

    remaining = _db.session.execute(
        select(func.count(CampaignMetric.id)).where(CampaignMetric.campaign_id == campaign_id)
    ).scalar()
    assert remaining == 0


def test_campaign_stats(user):
    _campaign(user, status="active", budget=500, roi=10)
    _campaign(user, type="social", budget=300, roi=30)

    stats = svc.get_campaign_stats(user_id=user.id)

    assert stats["total"] == 2
    assert stats["by_status"]["active"] == 1
    assert stats["by_type"]["social"] == 1
    assert stats["total_budget"] == 800
    assert stats["average_roi"] == 20


# ── Templates ────────────────────────────────────────────────────────────


def _template(user, **data):
    payload = {"name": "Trial nurture", "type": "email", "description": "Drip for trial users"}
    payload.update(data)
    return svc.create_template(user_id=user.id, data=payload)


def test_seed_templates_is_idempotent():
    created = svc.seed_campaign_templates()
    assert len(created) == 5
    assert svc.seed_campaign_templates() == []
    total = _db.session.execute(select(func.count(CampaignTemplate.id))).scalar()
    assert total == 5


def test_list_templates_filters_by_type_and_difficulty(user):
    svc.seed_campaign_templates()

    assert [t.name for t in svc.list_templates(user_id=user.id, type="ads")] == ["Google Ads Conversion Campaign"]
    advanced = {t.name for t in svc.list_templates(user_id=user.id, difficulty="advanced")}
    assert advanced == {"Content Marketing Blog Series", "Webinar Event Campaign"}
    with pytest.raises(ValidationError):
        svc.list_templates(user_id=user.id, difficulty="expert")


def test_authored_templates_are_private(user, other_user):
    mine = _template(user)

    assert mine.popularity == 0
    assert mine.difficulty == "beginner"
    assert [t.id for t in svc.list_templates(user_id=user.id)] == [mine.id]
    assert svc.list_templates(user_id=other_user.id) == []
    with pytest.raises(AccessDeniedError):
        svc.get_template(user_id=other_user.id, template_id=mine.id)


def test_shared_templates_are_read_only(user):
    shared = svc.seed_campaign_templates()[0]
    with pytest.raises(AccessDeniedError):
        svc.update_template(user_id=user.id, template_id=shared.id, data={"name": "Mine now"})
    with pytest.raises(AccessDeniedError):
        svc.delete_template(user_id=user.id, template_id=shared.id)


def test_update_template_ignores_popularity(user):
    mine = _template(user)
    svc.update_template(user_id=user.id, template_id=mine.id, data={"difficulty": "advanced", "popularity": 99})
    assert (mine.difficulty, mine.popularity) == ("advanced", 0)


def test_increment_popularity(user):
    shared = svc.seed_campaign_templates()[0]
    before = shared.popularity
    svc.increment_template_popularity(user_id=user.id, template_id=shared.id)
    assert shared.popularity == before + 1


def test_campaign_from_template_is_draft_and_bumps_popularity(user):
    template = _template(user, type="social")

    campaign = svc.create_campaign_from_template(
        user_id=user.id, template_id=template.id,
        data={"name": "Launch week", "start_date": "2026-03-01", "budget": 250},
    )

    assert campaign.status == "draft"
    assert campaign.type == "social"
    assert campaign.description == "Drip for trial users"
    assert campaign.budget == 250
    assert template.popularity == 1


def test_campaign_from_template_needs_start_date(user):
    template = _template(user)
    with pytest.raises(ValidationError, match="start_date is required"):
        svc.create_campaign_from_template(user_id=user.id, template_id=template.id, data={"name": "Launch"})
    assert template.popularity == 0


def test_missing_template(user):
    with pytest.raises(NotFoundError, match="Template not found"):
        svc.get_template(user_id=user.id, template_id=404)
