from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from app.core.exceptions import AccessDeniedError, ValidationError
from app.models import db as _db
from app.models.activity import Activity
from app.models.roadmap import Feature, Milestone
from app.services import project_service, roadmap_service as svc


def _in_days(days):
    return datetime.now(timezone.utc) + timedelta(days=days)


@pytest.fixture()
def project(user):
    return project_service.create_project(user_id=user.id, data={"name": "Platform"})


def _milestone(user, project, title="Beta", days=10, **data):
    return svc.create_milestone(
        user_id=user.id, project_id=project.id, data={"title": title, "due_date": _in_days(days), **data},
    )


def _feature(user, project, title="SSO", **data):
    return svc.create_feature(user_id=user.id, project_id=project.id, data={"title": title, **data})


def _activity_types(entity_type, entity_id):
    return _db.session.execute(
        select(Activity.type)
        .where(Activity.entity_type == entity_type, Activity.entity_id == entity_id)
        .order_by(Activity.id)
    ).scalars().all()


# ── Milestones ───────────────────────────────────────────────────────────


def test_create_milestone_defaults(user, project):
    first = _milestone(user, project)
    second = _milestone(user, project, title="GA", owner="grace")

    assert first.status == "planned"
    assert first.progress == 0
    assert (first.sort_order, second.sort_order) == (1, 2)
    assert second.to_dict()["owner_initial"] == "G"
    assert _activity_types("milestone", first.id) == ["milestone.created"]


def test_milestone_requires_due_date(user, project):
    with pytest.raises(ValidationError, match="due_date"):
        svc.create_milestone(user_id=user.id, project_id=project.id, data={"title": "Beta"})


def test_complete_milestone_sets_full_progress(user, project):
    milestone = _milestone(user, project, progress=40)

    done = svc.complete_milestone(user_id=user.id, milestone_id=milestone.id)

    assert done.status == "completed"
    assert done.progress == 100
    assert _activity_types("milestone", milestone.id)[-1] == "milestone.completed"


def test_status_change_through_update_is_logged(user, project):
    milestone = _milestone(user, project)
    svc.update_milestone(user_id=user.id, milestone_id=milestone.id, data={"status": "delayed", "title": "Beta 2"})

    assert milestone.status == "delayed"
    assert milestone.title == "Beta 2"
    assert _activity_types("milestone", milestone.id)[-1] == "milestone.status_changed"


def test_upcoming_includes_overdue_and_skips_completed(user, project):
    late = _milestone(user, project, title="Late", days=-2)
    soon = _milestone(user, project, title="Soon", days=5)
    _milestone(user, project, title="Far", days=60)
    done = _milestone(user, project, title="Done", days=3)
    svc.complete_milestone(user_id=user.id, milestone_id=done.id)

    upcoming = svc.get_upcoming_milestones(user_id=user.id)

    assert [m.id for m in upcoming] == [late.id, soon.id]
    assert [m.id for m in svc.get_overdue_milestones(user_id=user.id)] == [late.id]
    assert len(svc.get_upcoming_milestones(user_id=user.id, days=90)) == 3


def test_milestone_stats(user, project):
    _milestone(user, project, title="Late", days=-1)
    started = _milestone(user, project, title="Started")
    done = _milestone(user, project, title="Done")
    _milestone(user, project, title="Planned")
    svc.start_milestone(user_id=user.id, milestone_id=started.id)
    svc.complete_milestone(user_id=user.id, milestone_id=done.id)

    stats = svc.get_milestone_stats(user_id=user.id, project_id=project.id)

    assert stats["total"] == 4
    assert stats["planned"] == 2
    assert stats["in_progress"] == 1
    assert stats["completed"] == 1
    assert stats["overdue"] == 1
    assert stats["completion_rate"] == 25


def test_reorder_milestones(user, project):
    a = _milestone(user, project, title="A")
    b = _milestone(user, project, title="B")

    svc.reorder_milestones(user_id=user.id, orders=[
        {"milestone_id": a.id, "order": 2}, {"milestone_id": b.id, "order": 1},
    ])

    assert [m.id for m in svc.list_milestones(user_id=user.id, project_id=project.id)] == [b.id, a.id]


def test_milestone_of_other_user_denied(user, other_user, project):
    milestone = _milestone(user, project)
    with pytest.raises(AccessDeniedError):
        svc.get_milestone(user_id=other_user.id, milestone_id=milestone.id)
    with pytest.raises(AccessDeniedError):
        svc.complete_milestone(user_id=other_user.id, milestone_id=milestone.id)


def test_delete_milestone_unassigns_features(user, project):
    milestone = _milestone(user, project)
    feature = _feature(user, project, milestone_id=milestone.id)

    svc.delete_milestone(user_id=user.id, milestone_id=milestone.id)

    assert _db.session.get(Milestone, milestone.id) is None
    assert _db.session.get(Feature, feature.id).milestone_id is None


# ── Features ─────────────────────────────────────────────────────────────


def test_feature_defaults(user, project):
    feature = _feature(user, project)

    assert feature.status == "backlog"
    assert feature.priority == 3
    assert feature.effort is None
    assert _activity_types("feature", feature.id) == ["feature.created"]


@pytest.mark.parametrize("field, value, message", [
    ("priority", 6, "priority must be between 1 and 5"),
    ("priority", 4.5, "priority must be an integer"),
    ("effort", 0, "effort must be between 1 and 5"),
    ("impact", "big", "impact must be an integer"),
])
def test_feature_ratings_validated(user, project, field, value, message):
    with pytest.raises(ValidationError, match=message):
        _feature(user, project, **{field: value})


def test_completing_features_rolls_up_milestone(user, project):
    milestone = _milestone(user, project)
    first = _feature(user, project, title="SSO", milestone_id=milestone.id)
    second = _feature(user, project, title="Audit log", milestone_id=milestone.id)

    svc.complete_feature(user_id=user.id, feature_id=first.id)
    assert (milestone.progress, milestone.status) == (50, "in-progress")

    svc.complete_feature(user_id=user.id, feature_id=second.id)
    assert (milestone.progress, milestone.status) == (100, "completed")
    assert _activity_types("feature", second.id)[-1] == "feature.completed"


def test_reassigning_feature_rolls_up_both_milestones(user, project):
    old = _milestone(user, project, title="Old")
    new = _milestone(user, project, title="New")
    done = _feature(user, project, title="Done", milestone_id=old.id, status="completed")
    moving = _feature(user, project, title="Moving", milestone_id=old.id)
    assert old.progress == 50

    svc.assign_feature_to_milestone(user_id=user.id, feature_id=moving.id, milestone_id=new.id)

    assert (old.progress, old.status) == (100, "completed")
    assert (new.progress, new.status) == (0, "in-progress")
    assert done.milestone_id == old.id


def test_milestone_from_other_project_rejected(user, project):
    other_project = project_service.create_project(user_id=user.id, data={"name": "Mobile"})
    milestone = _milestone(user, other_project)

    with pytest.raises(ValidationError, match="Milestone does not belong to this project"):
        _feature(user, project, milestone_id=milestone.id)


def test_milestone_with_features(user, project):
    milestone = _milestone(user, project)
    _feature(user, project, title="A", milestone_id=milestone.id, status="completed")
    _feature(user, project, title="B", milestone_id=milestone.id, status="in-progress")
    _feature(user, project, title="C", milestone_id=milestone.id, status="planned")

    detail = svc.get_milestone_with_features(user_id=user.id, milestone_id=milestone.id)

    assert detail["project"]["name"] == "Platform"
    assert detail["features_count"] == 3
    assert (detail["completed_features"], detail["in_progress_features"], detail["planned_features"]) == (1, 1, 1)


def test_high_priority_features_skip_completed(user, project):
    urgent = _feature(user, project, title="Urgent", priority=5)
    _feature(user, project, title="Shipped", priority=5, status="completed")
    important = _feature(user, project, title="Important", priority=4)
    _feature(user, project, title="Nice to have", priority=2)

    rows = svc.get_high_priority_features(user_id=user.id)

    assert [f.id for f in rows] == [urgent.id, important.id]


def test_effort_impact_matrix(user, project):
    _feature(user, project, title="Quick", effort=1, impact=5)
    _feature(user, project, title="Major", effort=5, impact=4)
    _feature(user, project, title="Filler", effort=2, impact=1)
    _feature(user, project, title="Thankless", effort=4, impact=2)
    _feature(user, project, title="Middling", effort=3, impact=3)
    _feature(user, project, title="Unrated")

    matrix = svc.get_features_by_effort_impact(user_id=user.id)

    titles = {bucket: [f["title"] for f in rows] for bucket, rows in matrix.items()}
    assert titles == {
        "quick_wins": ["Quick"],
        "major_projects": ["Major"],
        "fill_ins": ["Filler"],
        "thankless": ["Thankless"],
    }


def test_feature_stats(user, project):
    _feature(user, project, title="A", priority=5, effort=2, impact=4, status="completed")
    _feature(user, project, title="B", priority=4, effort=4)
    _feature(user, project, title="C", priority=3, status="in-progress")
    _feature(user, project, title="D", priority=2, status="delayed")

    stats = svc.get_feature_stats(user_id=user.id, project_id=project.id)

    assert stats["total"] == 4
    assert stats["backlog"] == 1
    assert stats["in_progress"] == 1
    assert stats["completed"] == 1
    assert stats["delayed"] == 1
    assert stats["high_priority"] == 2
    assert stats["completion_rate"] == 25
    assert stats["avg_priority"] == 3.5
    assert stats["avg_effort"] == 3
    assert stats["avg_impact"] == 4


def test_feature_stats_empty(user, project):
    stats = svc.get_feature_stats(user_id=user.id, project_id=project.id)
    assert stats["total"] == 0
    assert stats["completion_rate"] == 0
    assert stats["avg_priority"] == 0


def test_search_features(user, project):
    sso = _feature(user, project, title="Single sign-on", description="SAML and OIDC")
    _feature(user, project, title="Billing")

    assert [f.id for f in svc.search_features(user_id=user.id, query="oidc")] == [sso.id]
    assert svc.search_features(user_id=user.id, query="  ") == []


def test_feature_of_other_user_denied(user, other_user, project):
    feature = _feature(user, project)
    with pytest.raises(AccessDeniedError):
        svc.update_feature(user_id=other_user.id, feature_id=feature.id, data={"title": "x"})
    with pytest.raises(AccessDeniedError):
        _feature(other_user, project)


def test_delete_project_removes_milestones_and_features(user, project):
    milestone = _milestone(user, project)
    _feature(user, project, milestone_id=milestone.id)
    _feature(user, project, title="Loose")

    project_service.delete_project(user_id=user.id, project_id=project.id)

    assert _db.session.execute(select(func.count(Milestone.id))).scalar() == 0
    assert _db.session.execute(select(func.count(Feature.id))).scalar() == 0
