import pytest
from sqlalchemy import func, select

from app.core.exceptions import AccessDeniedError, ConflictError, NotFoundError, ValidationError
from app.models import db as _db
from app.models.activity import Activity
from app.models.sales import Customer, Deal, SalesActivity
from app.services import customer_service, deal_service, sales_activity_service


def _customer(user, email="ada@acme.io", **extra):
    return customer_service.create_customer(
        user_id=user.id, data={"name": "Ada Lovelace", "email": email, "company": "Acme", **extra},
    )


def test_create_customer_defaults(user):
    customer = _customer(user)

    assert customer.status == "lead"
    assert customer.value == 0.0
    types = _db.session.execute(select(Activity.type).where(Activity.entity_id == customer.id)).scalars().all()
    assert types == ["customer.created"]


def test_create_customer_invalid_email(user):
    with pytest.raises(ValidationError):
        _customer(user, email="not-an-email")


def test_duplicate_email_is_conflict_case_insensitive(user):
    _customer(user, email="ada@acme.io")
    with pytest.raises(ConflictError):
        _customer(user, email="ADA@acme.io")


def test_same_email_allowed_for_different_users(user, other_user):
    _customer(user)
    assert _customer(other_user).user_id == other_user.id


def test_update_customer_of_other_user_denied(user, other_user):
    customer = _customer(user)
    with pytest.raises(AccessDeniedError):
        customer_service.update_customer(user_id=other_user.id, customer_id=customer.id, data={"name": "x"})


def test_update_customer_missing_user_checked_first(user):
    customer = _customer(user)
    with pytest.raises(NotFoundError, match="User"):
        customer_service.update_customer(user_id=424242, customer_id=customer.id, data={"name": "x"})


def test_update_customer_email_conflict(user):
    _customer(user, email="first@acme.io")
    second = _customer(user, email="second@acme.io")
    with pytest.raises(ConflictError):
        customer_service.update_customer(user_id=user.id, customer_id=second.id, data={"email": "First@acme.io"})


def test_status_change_logs_transition(user):
    customer = _customer(user)

    customer_service.update_customer(user_id=user.id, customer_id=customer.id, data={"status": "active"})

    row = _db.session.execute(
        select(Activity).where(Activity.type == "customer.status_changed")
    ).scalars().one()
    assert row.title == "Changed customer Ada Lovelace status from lead to active"


def test_update_without_status_change_logs_update(user):
    customer = _customer(user)
    customer_service.update_customer(user_id=user.id, customer_id=customer.id, data={"phone": "555"})
    types = _db.session.execute(select(Activity.type).where(Activity.entity_id == customer.id)).scalars().all()
    assert "customer.updated" in types


def test_delete_customer_cascades_deals_and_activities(user):
    customer = _customer(user)
    deal = deal_service.create_deal(user_id=user.id, data={"customer_id": customer.id, "title": "Pilot"})
    sales_activity_service.create_sales_activity(
        user_id=user.id,
        data={"customer_id": customer.id, "deal_id": deal.id, "type": "call", "description": "Intro"},
    )
    customer_id = customer.id

    customer_service.delete_customer(user_id=user.id, customer_id=customer_id)

    assert _db.session.get(Customer, customer_id) is None
    assert _db.session.execute(select(func.count(Deal.id)).where(Deal.customer_id == customer_id)).scalar() == 0
    assert _db.session.execute(
        select(func.count(SalesActivity.id)).where(SalesActivity.customer_id == customer_id)
    ).scalar() == 0


def test_customer_details_and_search(user):
    customer = _customer(user)
    deal_service.create_deal(user_id=user.id, data={"customer_id": customer.id, "title": "A", "value": 1000})
    deal_service.create_deal(
        user_id=user.id, data={"customer_id": customer.id, "title": "B", "value": 500, "stage": "closed-won"},
    )

    details = customer_service.get_customer_with_details(user_id=user.id, customer_id=customer.id)
    assert details["total_deals"] == 2
    assert details["total_value"] == 1500
    assert details["won_deals"] == 1

    assert [c.id for c in customer_service.search_customers(user_id=user.id, term="acme")] == [customer.id]
    assert customer_service.search_customers(user_id=user.id, term="zzz") == []


def test_customer_stats_rates(user):
    _customer(user, email="a@acme.io", status="active", value=100)
    _customer(user, email="b@acme.io", status="churned", value=50)
    _customer(user, email="c@acme.io")
    _customer(user, email="d@acme.io", status="active")

    stats = customer_service.get_customer_stats(user_id=user.id)

    assert stats["total"] == 4
    assert stats["active"] == 2
    assert stats["total_value"] == 150
    assert stats["conversion_rate"] == 50
    assert stats["churn_rate"] == 25


def test_top_customers_ranked_by_won_value(user):
    small = _customer(user, email="small@acme.io")
    big = _customer(user, email="big@acme.io")
    _customer(user, email="idle@acme.io")
    deal_service.create_deal(user_id=user.id, data={
        "customer_id": small.id, "title": "Starter", "value": 500, "stage": "closed-won",
    })
    deal_service.create_deal(user_id=user.id, data={
        "customer_id": big.id, "title": "Enterprise", "value": 2000, "stage": "closed-won",
    })
    deal_service.create_deal(user_id=user.id, data={
        "customer_id": big.id, "title": "Add-on", "value": 100, "stage": "proposal",
    })

    top = customer_service.get_top_customers(user_id=user.id)

    assert [row["customer"]["id"] for row in top[:2]] == [big.id, small.id]
    assert top[0]["won_value"] == 2000
    assert top[0]["total_value"] == 2100
    assert (top[0]["deal_count"], top[0]["won_deals"]) == (2, 1)
    assert top[2]["deal_count"] == 0
    assert len(customer_service.get_top_customers(user_id=user.id, limit=1)) == 1


def test_customer_journey_timeline_and_metrics(user):
    customer = _customer(user)
    deal_service.create_deal(user_id=user.id, data={
        "customer_id": customer.id, "title": "Pilot", "value": 500, "stage": "closed-won",
    })
    deal_service.create_deal(user_id=user.id, data={"customer_id": customer.id, "title": "Expansion", "value": 300})
    sales_activity_service.create_sales_activity(user_id=user.id, data={
        "customer_id": customer.id, "type": "call", "description": "Kickoff",
    })

    journey = customer_service.get_customer_journey(user_id=user.id, customer_id=customer.id)

    assert [e["type"] for e in journey["timeline"]] == [
        "customer_created", "deal_created", "deal_created", "activity",
    ]
    assert journey["timeline"][1]["description"] == 'Deal "Pilot" was created'
    assert journey["timeline"][-1]["description"] == "call: Kickoff"
    metrics = journey["metrics"]
    assert metrics["total_deals"] == 2
    assert metrics["total_value"] == 800
    assert (metrics["won_value"], metrics["won_deals"]) == (500, 1)
    assert metrics["activities_count"] == 1
    assert 0 <= metrics["customer_age_days"] < 1
    assert metrics["days_since_last_activity"] < 1


def test_customer_journey_of_other_user_denied(user, other_user):
    customer = _customer(user)
    with pytest.raises(AccessDeniedError):
        customer_service.get_customer_journey(user_id=other_user.id, customer_id=customer.id)
