"""
SaaS Operations Dashboard
Notification Service.

Central service for creating and querying per-user in-app notifications,
plus the project / task / deal helpers other services call when a
noteworthy transition happens.
"""

import json
from datetime import datetime, timedelta, timezone

from app.core.exceptions import AccessDeniedError, NotFoundError, ValidationError
from app.models import db
from app.models.notification import NOTIFICATION_TYPES, Notification
from app.services.helpers.scoped_queries import require_user

# action → (title, message template, type); "{name}" is the entity label.
_PROJECT_MESSAGES = {
    "created": ("New Project Created", 'Project "{name}" has been created successfully.', "success"),
    "updated": ("Project Updated", 'Project "{name}" has been updated.', "info"),
    "completed": ("Project Completed", 'Congratulations! Project "{name}" has been completed.', "success"),
    "deadline_approaching": ("Project Deadline Approaching", 'Project "{name}" deadline is approaching.', "warning"),
}
_TASK_MESSAGES = {
    "assigned": ("Task Assigned", 'You have been assigned task "{name}".', "info"),
    "completed": ("Task Completed", 'Task "{name}" has been completed.', "success"),
    "overdue": ("Task Overdue", 'Task "{name}" is overdue.', "error"),
    "updated": ("Task Updated", 'Task "{name}" has been updated.', "info"),
}
_DEAL_MESSAGES = {
    "won": ("Deal Won!", 'Congratulations! Deal "{name}" worth ${value:,.0f} has been won.', "success"),
    "lost": ("Deal Lost", 'Deal "{name}" has been lost.', "error"),
    "moved": ("Deal Moved", 'Deal "{name}" has been moved to {stage}.', "info"),
    "updated": ("Deal Updated", 'Deal "{name}" has been updated.', "info"),
}


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, user_id, title, message="", type="info", activity_id=None,
               entity_type="", entity_id=None, metadata=None, commit=True):
        """
        Create a single notification record for *user_id*.

        Raises:
            NotFoundError: If the recipient does not exist.
            ValidationError: If *type* is not a known notification type.

        Returns:
            The created Notification instance.
        """
        require_user(user_id)
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(
                f"type must be one of: {', '.join(sorted(NOTIFICATION_TYPES))}",
                details={"type": type},
            )
        notif = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            activity_id=activity_id,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata_json=json.dumps(metadata or {}, default=str),
        )
        db.session.add(notif)
        if commit:
            db.session.commit()
        else:
            db.session.flush()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=20, offset=0):
        """
        Retrieve notifications for a user, newest first.

        Returns:
            (items, total) where total ignores limit/offset.
        """
        require_user(user_id)
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def list_by_type(user_id, type):
        require_user(user_id)
        return (
            Notification.query.filter_by(user_id=user_id, type=type)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .all()
        )

    @staticmethod
    def unread_count(user_id):
        """Return count of unread notifications."""
        require_user(user_id)
        return Notification.query.filter_by(user_id=user_id, read=False).count()

    @staticmethod
    def get_stats(user_id):
        """Totals, read split, last-24h count and per-type breakdown."""
        require_user(user_id)
        items = Notification.query.filter_by(user_id=user_id).all()
        since = datetime.now(timezone.utc) - timedelta(days=1)
        type_breakdown = {}
        recent = 0
        for n in items:
            type_breakdown[n.type] = type_breakdown.get(n.type, 0) + 1
            created = n.created_at
            if created is not None and created.tzinfo is None:
                created = created.replace(tzinfo=timezone.utc)
            if created is not None and created >= since:
                recent += 1
        unread = sum(1 for n in items if not n.read)
        return {
            "total": len(items),
            "unread": unread,
            "read": len(items) - unread,
            "recent": recent,
            "type_breakdown": type_breakdown,
        }

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def _get_for_user(notification_id, user_id):
        require_user(user_id)
        notif = db.session.get(Notification, notification_id)
        if notif is None:
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        if notif.user_id != user_id:
            raise AccessDeniedError(resource="Notification", resource_id=notification_id, user_id=user_id)
        return notif

    @staticmethod
    def mark_read(notification_id, user_id):
        """Mark a single notification as read (owner only)."""
        notif = NotificationService._get_for_user(notification_id, user_id)
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_unread(notification_id, user_id):
        notif = NotificationService._get_for_user(notification_id, user_id)
        notif.mark_unread()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        """Mark all notifications for a user as read; return the count."""
        require_user(user_id)
        q = Notification.query.filter_by(user_id=user_id, read=False)
        now = datetime.now(timezone.utc)
        count = q.update({"read": True, "read_at": now}, synchronize_session="fetch")
        db.session.commit()
        return count

    @staticmethod
    def delete(notification_id, user_id):
        notif = NotificationService._get_for_user(notification_id, user_id)
        db.session.delete(notif)
        db.session.commit()

    @staticmethod
    def delete_all(user_id):
        """Delete every notification of the user; return the deleted ids."""
        require_user(user_id)
        items = Notification.query.filter_by(user_id=user_id).all()
        deleted_ids = [n.id for n in items]
        for n in items:
            db.session.delete(n)
        db.session.commit()
        return deleted_ids

    @staticmethod
    def delete_older_than(days, user_id=None):
        """Cleanup: delete notifications created more than *days* days ago.

        Scoped to one user when *user_id* is given, otherwise global.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        q = Notification.query.filter(Notification.created_at < cutoff)
        if user_id is not None:
            require_user(user_id)
            q = q.filter(Notification.user_id == user_id)
        items = q.all()
        deleted_ids = [n.id for n in items]
        for n in items:
            db.session.delete(n)
        db.session.commit()
        return deleted_ids

    # ── Domain helpers ────────────────────────────────────────────────────

    @staticmethod
    def _from_template(templates, action, entity_label, **fmt):
        if action in templates:
            title, template, ntype = templates[action]
            return title, template.format(name=entity_label, **fmt), ntype
        return None

    @staticmethod
    def notify_project(project, action, activity_id=None, commit=True):
        """Create a notification for a project lifecycle event."""
        rendered = NotificationService._from_template(_PROJECT_MESSAGES, action, project.name)
        title, message, ntype = rendered or (
            "Project Notification", f'Project "{project.name}" has been {action}.', "info",
        )
        return NotificationService.create(
            user_id=project.user_id,
            title=title,
            message=message,
            type=ntype,
            activity_id=activity_id,
            entity_type="project",
            entity_id=project.id,
            metadata={"project_id": project.id},
            commit=commit,
        )

    @staticmethod
    def notify_task(task, user_id, action, activity_id=None, commit=True):
        """Create a notification for a task event."""
        rendered = NotificationService._from_template(_TASK_MESSAGES, action, task.title)
        title, message, ntype = rendered or (
            "Task Notification", f'Task "{task.title}" has been {action}.', "info",
        )
        return NotificationService.create(
            user_id=user_id,
            title=title,
            message=message,
            type=ntype,
            activity_id=activity_id,
            entity_type="task",
            entity_id=task.id,
            metadata={"task_id": task.id, "project_id": task.project_id},
            commit=commit,
        )

    @staticmethod
    def notify_deal(deal, action, activity_id=None, commit=True):
        """Create a notification for a deal event (won / lost / moved / updated)."""
        rendered = NotificationService._from_template(
            _DEAL_MESSAGES, action, deal.title, value=deal.value or 0, stage=deal.stage,
        )
        title, message, ntype = rendered or (
            "Deal Notification", f'Deal "{deal.title}" has been {action}.', "info",
        )
        return NotificationService.create(
            user_id=deal.user_id,
            title=title,
            message=message,
            type=ntype,
            activity_id=activity_id,
            entity_type="deal",
            entity_id=deal.id,
            metadata={"deal_id": deal.id, "customer_id": deal.customer_id},
            commit=commit,
        )
