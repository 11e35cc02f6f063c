"""Development tracking service: projects, phases, tasks and progress roll-up.

Progress is a denormalized aggregate:
    phase.progress   = round(100 * completed / total) over the phase's tasks
    project.progress = round(mean(phase.progress)) over the project's phases

Every write that can change a completion ratio (task create / toggle /
move / delete, phase delete) commits first and then runs the phase → project
recalculation as its own unit of work. Adding a phase leaves the stored
project progress alone until one of those writes recalculates it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.project import PROJECT_STATUSES, Phase, Project, Task
from app.models.roadmap import Feature, Milestone
from app.services import activity_service
from app.services.helpers.scoped_queries import get_owned, get_owned_child, require_user
from app.services.notification import NotificationService
from app.utils.helpers import ensure_utc, parse_bool, parse_datetime, parse_int, round_half_up

logger = logging.getLogger(__name__)


def _require_text(data: dict, field: str) -> str:
    value = str(data.get(field, "") or "").strip()
    if not value:
        raise ValidationError(f"{field} is required", details={field: "required"})
    return value


def _validate_status(status: str) -> str:
    if status not in PROJECT_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(PROJECT_STATUSES))}",
            details={"status": status},
        )
    return status


def _get_phase(phase_id: int, user_id: int) -> Phase:
    return get_owned_child(Phase, phase_id, parent=Project, parent_fk="project_id", user_id=user_id)


def _get_task(task_id: int, user_id: int) -> Task:
    return get_owned_child(Task, task_id, parent=Project, parent_fk="project_id", user_id=user_id)


# ═══════════════════════════════════════════════════════════════
# Progress
# ═══════════════════════════════════════════════════════════════
def recalc_project_progress(project_id: int) -> int:
    """Set project.progress to the rounded mean of its phases; 0 without phases."""
    project = db.session.get(Project, project_id)
    if project is None:
        return 0
    values = db.session.execute(
        select(Phase.progress).where(Phase.project_id == project_id)
    ).scalars().all()
    progress = round_half_up(sum(values) / len(values)) if values else 0

    previous = project.progress or 0
    project.progress = progress
    db.session.commit()

    if progress == 100 and previous < 100:
        NotificationService.notify_project(project, "completed")
        logger.info("Project completed", extra={"user_id": project.user_id, "project_id": project.id})
    return progress


def recalc_phase_progress(phase_id: int) -> int:
    """Recompute a phase from its direct tasks, then its project."""
    phase = db.session.get(Phase, phase_id)
    if phase is None:
        return 0
    total = db.session.execute(
        select(func.count(Task.id)).where(Task.phase_id == phase_id)
    ).scalar() or 0
    completed = db.session.execute(
        select(func.count(Task.id)).where(Task.phase_id == phase_id, Task.completed.is_(True))
    ).scalar() or 0
    phase.progress = round_half_up(100 * completed / total) if total else 0
    db.session.commit()

    recalc_project_progress(phase.project_id)
    return phase.progress


# ═══════════════════════════════════════════════════════════════
# Projects
# ═══════════════════════════════════════════════════════════════
def list_projects(*, user_id: int, status: str | None = None) -> list[Project]:
    """List the user's projects, newest first."""
    require_user(user_id)
    stmt = select(Project).where(Project.user_id == user_id)
    if status:
        stmt = stmt.where(Project.status == status)
    stmt = stmt.order_by(Project.created_at.desc(), Project.id.desc())
    return list(db.session.execute(stmt).scalars().all())


def get_project(*, user_id: int, project_id: int) -> Project:
    return get_owned(Project, project_id, user_id=user_id)


def create_project(*, user_id: int, data: dict) -> Project:
    """Create a project in ``planning`` status with progress 0."""
    require_user(user_id)
    name = _require_text(data, "name")

    project = Project(
        user_id=user_id,
        name=name,
        description=data.get("description") or "",
        status="planning",
        progress=0,
        start_date=parse_datetime(data.get("start_date")),
        end_date=parse_datetime(data.get("end_date")),
    )
    db.session.add(project)
    db.session.flush()
    activity_service.log_activity(
        user_id=user_id,
        type="project.created",
        title=f"Created project {project.name}",
        entity_type="project",
        entity_id=project.id,
    )
    db.session.commit()
    logger.info("Project created", extra={"user_id": user_id, "project_id": project.id})
    return project


def update_project(*, user_id: int, project_id: int, data: dict) -> Project:
    """Partial update. ``progress`` is derived and silently ignored."""
    project = get_owned(Project, project_id, user_id=user_id)

    if "name" in data:
        project.name = _require_text(data, "name")
    if "description" in data:
        project.description = data.get("description") or ""
    if "status" in data:
        project.status = _validate_status(data["status"])
    for field in ("start_date", "end_date"):
        if field in data:
            setattr(project, field, parse_datetime(data.get(field)))

    db.session.commit()
    return project


def _delete_project_rows(project_id: int) -> None:
    db.session.execute(delete(Feature).where(Feature.project_id == project_id))
    db.session.execute(delete(Milestone).where(Milestone.project_id == project_id))
    db.session.execute(delete(Task).where(Task.project_id == project_id))
    db.session.execute(delete(Phase).where(Phase.project_id == project_id))
    db.session.execute(delete(Project).where(Project.id == project_id))


def delete_project(*, user_id: int, project_id: int) -> None:
    """Delete the project with its phases, tasks, milestones and features, atomically."""
    project = get_owned(Project, project_id, user_id=user_id)
    name = project.name
    try:
        _delete_project_rows(project.id)
        activity_service.log_activity(
            user_id=user_id,
            type="project.deleted",
            title=f"Deleted project {name}",
            entity_type="project",
            entity_id=project_id,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()
    logger.info("Project deleted", extra={"user_id": user_id, "project_id": project_id})


# ═══════════════════════════════════════════════════════════════
# Phases
# ═══════════════════════════════════════════════════════════════
def list_phases(*, user_id: int, project_id: int) -> list[Phase]:
    get_owned(Project, project_id, user_id=user_id)
    stmt = (
        select(Phase)
        .where(Phase.project_id == project_id)
        .order_by(Phase.sort_order, Phase.id)
    )
    return list(db.session.execute(stmt).scalars().all())


def get_phase(*, user_id: int, phase_id: int) -> Phase:
    return _get_phase(phase_id, user_id)


def create_phase(*, user_id: int, project_id: int, data: dict) -> Phase:
    """Append a phase to the project. Order defaults to last + 1."""
    get_owned(Project, project_id, user_id=user_id)
    name = _require_text(data, "name")

    order = data.get("order")
    if order is None:
        current_max = db.session.execute(
            select(func.max(Phase.sort_order)).where(Phase.project_id == project_id)
        ).scalar()
        order = (current_max or 0) + 1

    phase = Phase(
        project_id=project_id,
        name=name,
        description=data.get("description") or "",
        progress=0,
        sort_order=parse_int(order, "order"),
    )
    db.session.add(phase)
    db.session.commit()
    return phase


def update_phase(*, user_id: int, phase_id: int, data: dict) -> Phase:
    phase = _get_phase(phase_id, user_id)
    if "name" in data:
        phase.name = _require_text(data, "name")
    if "description" in data:
        phase.description = data.get("description") or ""
    if "order" in data:
        phase.sort_order = parse_int(data["order"], "order")
    db.session.commit()
    return phase


def delete_phase(*, user_id: int, phase_id: int) -> None:
    """Delete a phase with its tasks, then recalculate the project."""
    phase = _get_phase(phase_id, user_id)
    project_id = phase.project_id
    try:
        db.session.execute(delete(Task).where(Task.phase_id == phase.id))
        db.session.delete(phase)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()
    recalc_project_progress(project_id)


# ═══════════════════════════════════════════════════════════════
# Tasks
# ═══════════════════════════════════════════════════════════════
def list_tasks(*, user_id: int, phase_id: int | None = None, project_id: int | None = None) -> list[Task]:
    """Tasks of one phase, or of a whole project, in display order."""
    if phase_id is not None:
        _get_phase(phase_id, user_id)
        stmt = select(Task).where(Task.phase_id == phase_id)
    elif project_id is not None:
        get_owned(Project, project_id, user_id=user_id)
        stmt = select(Task).where(Task.project_id == project_id)
    else:
        raise ValidationError("phase_id or project_id is required")
    stmt = stmt.order_by(Task.phase_id, Task.sort_order, Task.id)
    return list(db.session.execute(stmt).scalars().all())


def get_task(*, user_id: int, task_id: int) -> Task:
    return _get_task(task_id, user_id)


def create_task(*, user_id: int, phase_id: int, data: dict) -> Task:
    phase = _get_phase(phase_id, user_id)
    title = _require_text(data, "title")

    order = data.get("order")
    if order is None:
        current_max = db.session.execute(
            select(func.max(Task.sort_order)).where(Task.phase_id == phase.id)
        ).scalar()
        order = (current_max or 0) + 1

    task = Task(
        project_id=phase.project_id,
        phase_id=phase.id,
        title=title,
        description=data.get("description") or "",
        completed=parse_bool(data.get("completed")),
        sort_order=parse_int(order, "order"),
        due_date=parse_datetime(data.get("due_date")),
    )
    db.session.add(task)
    db.session.commit()

    recalc_phase_progress(phase.id)
    return task


def update_task(*, user_id: int, task_id: int, data: dict) -> Task:
    """Partial update; moving between phases recalculates both phases."""
    task = _get_task(task_id, user_id)
    old_phase_id = task.phase_id
    old_completed = task.completed

    if "title" in data:
        task.title = _require_text(data, "title")
    if "description" in data:
        task.description = data.get("description") or ""
    if "order" in data:
        task.sort_order = parse_int(data["order"], "order")
    if "due_date" in data:
        task.due_date = parse_datetime(data.get("due_date"))
    if "completed" in data:
        task.completed = parse_bool(data.get("completed"))
    if "phase_id" in data and data["phase_id"] != old_phase_id:
        target = _get_phase(parse_int(data["phase_id"], "phase_id"), user_id)
        if target.project_id != task.project_id:
            raise ValidationError(
                "Task can only move between phases of the same project",
                details={"phase_id": target.id},
            )
        task.phase_id = target.id

    db.session.commit()

    if task.phase_id != old_phase_id:
        recalc_phase_progress(old_phase_id)
        recalc_phase_progress(task.phase_id)
    elif task.completed != old_completed:
        recalc_phase_progress(task.phase_id)
    return task


def toggle_task_completion(*, user_id: int, task_id: int) -> Task:
    task = _get_task(task_id, user_id)
    task.completed = not task.completed
    db.session.commit()
    logger.info(
        "Task toggled: completed=%s", task.completed,
        extra={"user_id": user_id, "task_id": task.id},
    )
    recalc_phase_progress(task.phase_id)
    return task


def delete_task(*, user_id: int, task_id: int) -> None:
    task = _get_task(task_id, user_id)
    phase_id = task.phase_id
    db.session.delete(task)
    db.session.commit()
    recalc_phase_progress(phase_id)


# ═══════════════════════════════════════════════════════════════
# Read models
# ═══════════════════════════════════════════════════════════════
def _tasks_by_phase(project_id: int) -> dict[int, list[Task]]:
    rows = db.session.execute(
        select(Task).where(Task.project_id == project_id).order_by(Task.sort_order, Task.id)
    ).scalars().all()
    grouped: dict[int, list[Task]] = {}
    for task in rows:
        grouped.setdefault(task.phase_id, []).append(task)
    return grouped


def get_project_progress(*, user_id: int, project_id: int) -> dict:
    """Project with per-phase task counts and phase completion totals."""
    project = get_owned(Project, project_id, user_id=user_id)
    phases = list_phases(user_id=user_id, project_id=project_id)
    tasks = _tasks_by_phase(project_id)

    phase_rows = []
    for phase in phases:
        phase_tasks = tasks.get(phase.id, [])
        phase_rows.append({
            **phase.to_dict(),
            "total_tasks": len(phase_tasks),
            "completed_tasks": sum(1 for t in phase_tasks if t.completed),
            "tasks": [t.to_dict() for t in phase_tasks],
        })
    return {
        "project": project.to_dict(),
        "phases": phase_rows,
        "total_phases": len(phases),
        "completed_phases": sum(1 for p in phases if p.progress == 100),
    }


def get_phase_progress(*, user_id: int, phase_id: int) -> dict:
    phase = _get_phase(phase_id, user_id)
    tasks = list_tasks(user_id=user_id, phase_id=phase_id)
    return {
        "phase": phase.to_dict(),
        "tasks": [t.to_dict() for t in tasks],
        "total_tasks": len(tasks),
        "completed_tasks": sum(1 for t in tasks if t.completed),
        "progress": phase.progress,
    }


def get_project_overview(*, user_id: int, project_id: int) -> dict:
    """Project with its owner and phases carrying their tasks."""
    user = require_user(user_id)
    progress = get_project_progress(user_id=user_id, project_id=project_id)
    phases = progress["phases"]
    return {
        "project": progress["project"],
        "owner": user.to_dict(),
        "phases": phases,
        "total_tasks": sum(p["total_tasks"] for p in phases),
        "completed_tasks": sum(p["completed_tasks"] for p in phases),
    }


def get_project_stats(*, user_id: int, project_id: int) -> dict:
    project = get_owned(Project, project_id, user_id=user_id)
    tasks = db.session.execute(select(Task).where(Task.project_id == project_id)).scalars().all()
    phases = db.session.execute(select(Phase).where(Phase.project_id == project_id)).scalars().all()
    now = datetime.now(timezone.utc)

    completed = sum(1 for t in tasks if t.completed)
    overdue = sum(
        1 for t in tasks
        if not t.completed and t.due_date is not None and ensure_utc(t.due_date) < now
    )
    return {
        "total_tasks": len(tasks),
        "completed_tasks": completed,
        "open_tasks": len(tasks) - completed,
        "overdue_tasks": overdue,
        "total_phases": len(phases),
        "completed_phases": sum(1 for p in phases if p.progress == 100),
        "progress": project.progress,
    }


# ═══════════════════════════════════════════════════════════════
# Development data
# ═══════════════════════════════════════════════════════════════
SEED_PROJECT = {
    "name": "SaaS Platform Development",
    "description": "Building a comprehensive SaaS platform with user management, billing, and analytics",
}

# (phase name, description, [(task title, description, completed), ...])
SEED_PHASES = [
    ("Planning & Architecture",
     "Define requirements, create system architecture, and plan the development approach", [
         ("Gather requirements", "Meet with stakeholders to define project requirements", True),
         ("Create system architecture", "Design the overall system architecture and technology stack", True),
         ("Database schema design", "Design the database schema and relationships", True),
         ("API specification", "Define API endpoints and data structures", False),
         ("UI/UX wireframes", "Create wireframes and user flow diagrams", False),
     ]),
    ("Core Infrastructure", "Set up database, authentication, and basic API structure", [
        ("Set up development environment", "Configure local and staging environments", True),
        ("Database setup", "Set up database and initial migrations", True),
        ("Authentication system", "Implement user authentication and session management", False),
        ("API framework setup", "Set up REST API framework and middleware", False),
        ("Error handling", "Implement global error handling and logging", False),
    ]),
    ("User Management", "Implement user registration, login, profiles, and role management", [
        ("User registration", "Implement user registration with email verification", False),
        ("User login/logout", "Implement secure login and logout functionality", False),
        ("Password reset", "Implement password reset via email", False),
        ("User profiles", "Create user profile management interface", False),
        ("Role-based access", "Implement role-based access control", False),
    ]),
    ("Billing & Subscriptions", "Integrate payment processing and subscription management", [
        ("Payment gateway integration", "Integrate with Stripe or similar payment processor", False),
        ("Subscription plans", "Create subscription plan management", False),
        ("Billing dashboard", "Build billing and invoice management interface", False),
        ("Usage tracking", "Implement usage tracking for billing", False),
        ("Webhook handling", "Handle payment webhooks and status updates", False),
    ]),
    ("Analytics & Reporting", "Build dashboard and reporting features", [
        ("Analytics dashboard", "Create main analytics dashboard", False),
        ("User activity tracking", "Implement user activity and engagement tracking", False),
        ("Revenue reporting", "Build revenue and financial reporting", False),
        ("Export functionality", "Add data export capabilities", False),
        ("Real-time updates", "Implement real-time dashboard updates", False),
    ]),
    ("Testing & Deployment", "Comprehensive testing and production deployment", [
        ("Unit tests", "Write comprehensive unit tests", False),
        ("Integration tests", "Create integration test suite", False),
        ("Performance testing", "Conduct performance and load testing", False),
        ("Security audit", "Perform security audit and penetration testing", False),
        ("Production deployment", "Deploy to production environment", False),
    ]),
]


def seed_development_data(*, user_id: int) -> dict:
    """Create the sample project, phases and tasks, then roll up progress."""
    require_user(user_id)
    now = datetime.now(timezone.utc)

    project = Project(
        user_id=user_id,
        name=SEED_PROJECT["name"],
        description=SEED_PROJECT["description"],
        status="active",
        progress=0,
        start_date=now - timedelta(days=30),
        end_date=now + timedelta(days=90),
    )
    db.session.add(project)
    db.session.flush()

    phase_ids = []
    for phase_order, (name, description, tasks) in enumerate(SEED_PHASES, start=1):
        phase = Phase(project_id=project.id, name=name, description=description, sort_order=phase_order)
        db.session.add(phase)
        db.session.flush()
        phase_ids.append(phase.id)
        for task_order, (title, task_description, completed) in enumerate(tasks, start=1):
            db.session.add(Task(
                project_id=project.id,
                phase_id=phase.id,
                title=title,
                description=task_description,
                completed=completed,
                sort_order=task_order,
            ))
    db.session.commit()

    for phase_id in phase_ids:
        recalc_phase_progress(phase_id)

    logger.info("Development data seeded", extra={"user_id": user_id, "project_id": project.id})
    return {"project_id": project.id, "phase_ids": phase_ids}


def clear_development_data(*, user_id: int) -> int:
    """Delete all of the user's projects with their phases and tasks.

    Returns the number of projects removed.
    """
    require_user(user_id)
    project_ids = db.session.execute(
        select(Project.id).where(Project.user_id == user_id)
    ).scalars().all()
    try:
        for project_id in project_ids:
            _delete_project_rows(project_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    db.session.expire_all()
    logger.info("Development data cleared: %d projects", len(project_ids), extra={"user_id": user_id})
    return len(project_ids)
