"""NotificationService: ownership, read state, stats and retention."""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import AccessDeniedError, NotFoundError, ValidationError
from app.models import db as _db
from app.models.notification import Notification
from app.services.notification import NotificationService


def _notify(user, title="Heads up", **kwargs):
    return NotificationService.create(user_id=user.id, title=title, **kwargs)


def test_create_requires_existing_user():
    with pytest.raises(NotFoundError):
        NotificationService.create(user_id=999, title="Nobody")


def test_create_rejects_unknown_type(user):
    with pytest.raises(ValidationError):
        _notify(user, type="shout")


def test_mark_read_missing_notification(user):
    with pytest.raises(NotFoundError, match="Notification"):
        NotificationService.mark_read(12345, user.id)


def test_mark_read_by_other_user_denied(user, other_user):
    notif = _notify(user)
    with pytest.raises(AccessDeniedError):
        NotificationService.mark_read(notif.id, other_user.id)
    with pytest.raises(AccessDeniedError):
        NotificationService.delete(notif.id, other_user.id)


def test_read_unread_round_trip(user):
    notif = _notify(user)
    assert NotificationService.unread_count(user.id) == 1

    NotificationService.mark_read(notif.id, user.id)
    assert NotificationService.unread_count(user.id) == 0
    assert _db.session.get(Notification, notif.id).read_at is not None

    NotificationService.mark_unread(notif.id, user.id)
    assert NotificationService.unread_count(user.id) == 1


def test_mark_all_read_counts_only_own(user, other_user):
    _notify(user)
    _notify(user)
    _notify(other_user)

    assert NotificationService.mark_all_read(user.id) == 2
    assert NotificationService.unread_count(other_user.id) == 1


def test_list_for_user_pagination(user):
    for i in range(5):
        _notify(user, title=f"n{i}")

    items, total = NotificationService.list_for_user(user.id, limit=2, offset=0)

    assert total == 5
    assert len(items) == 2
    assert items[0].title == "n4"


def test_stats(user):
    _notify(user, type="success")
    read = _notify(user, type="warning")
    NotificationService.mark_read(read.id, user.id)

    stats = NotificationService.get_stats(user.id)

    assert stats["total"] == 2
    assert stats["unread"] == 1
    assert stats["read"] == 1
    assert stats["recent"] == 2
    assert stats["type_breakdown"] == {"success": 1, "warning": 1}


def test_delete_older_than(user):
    old = _notify(user, title="old")
    fresh = _notify(user, title="fresh")
    old.created_at = datetime.now(timezone.utc) - timedelta(days=40)
    _db.session.commit()

    deleted = NotificationService.delete_older_than(30, user_id=user.id)

    assert deleted == [old.id]
    assert _db.session.get(Notification, fresh.id) is not None


def test_delete_all(user, other_user):
    mine = [_notify(user).id, _notify(user).id]
    _notify(other_user)

    assert sorted(NotificationService.delete_all(user.id)) == sorted(mine)
    assert NotificationService.unread_count(other_user.id) == 1


def test_notify_task_template(user):
    from app.services import project_service

    project = project_service.create_project(user_id=user.id, data={"name": "P"})
    phase = project_service.create_phase(user_id=user.id, project_id=project.id, data={"name": "Ph"})
    task = project_service.create_task(user_id=user.id, phase_id=phase.id, data={"title": "Write docs"})

    notif = NotificationService.notify_task(task, user.id, "completed")

    assert notif.title == "Task Completed"
    assert notif.message == 'Task "Write docs" has been completed.'
    assert notif.entity_type == "task"


def test_list_by_type_filters_and_orders_newest_first(user, other_user):
    older = _notify(user, title="Deal won", type="success")
    _notify(user, title="Heads up")
    newer = _notify(user, title="Phase done", type="success")
    _notify(other_user, title="Not mine", type="success")

    rows = NotificationService.list_by_type(user.id, "success")

    assert [n.id for n in rows] == [newer.id, older.id]
    assert NotificationService.list_by_type(user.id, "error") == []


def test_list_by_type_requires_existing_user():
    with pytest.raises(NotFoundError):
        NotificationService.list_by_type(999, "info")
