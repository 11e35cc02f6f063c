"""
Idea scorer service.

Ideas are rated 1-10 against weighted criteria (see
``app.services.idea_criteria_service``). The composite score is a
weight-normalized percentage:

    score = round(100 * Σ(value/10 * weight) / Σweight)      (0 when Σweight == 0)

e.g. weights [5, 4, 3] with values [7, 6, 8] → round(100 * 8.3 / 12) = 69.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, or_, select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.idea import IDEA_STATUSES, MAX_SCORE, MIN_SCORE, Idea, IdeaCriteria, IdeaScore
from app.services.helpers.scoped_queries import get_owned, require_user
from app.utils.helpers import parse_int, round_half_up

logger = logging.getLogger(__name__)

SCORE_CATEGORIES = (
    (85, "Excellent"),
    (70, "Good"),
    (50, "Average"),
)


# ═══════════════════════════════════════════════════════════════
# Scoring arithmetic
# ═══════════════════════════════════════════════════════════════
def calculate_score(pairs) -> int:
    """Composite 0-100 score from ``(value, weight)`` pairs."""
    pairs = list(pairs)
    total_weight = sum(weight for _, weight in pairs)
    if not total_weight:
        return 0
    weighted = sum((value / 10) * weight for value, weight in pairs)
    return round_half_up(100 * weighted / total_weight)


def score_category(score: int) -> str:
    for threshold, label in SCORE_CATEGORIES:
        if score >= threshold:
            return label
    return "Poor"


def _validate_score(value) -> int:
    score = parse_int(value, "score")
    if not MIN_SCORE <= score <= MAX_SCORE:
        raise ValidationError(
            f"Score must be between {MIN_SCORE} and {MAX_SCORE}", details={"score": score},
        )
    return score


def _scores_with_criteria(idea_id: int) -> list[tuple[IdeaScore, IdeaCriteria]]:
    stmt = (
        select(IdeaScore, IdeaCriteria)
        .join(IdeaCriteria, IdeaCriteria.id == IdeaScore.criteria_id)
        .where(IdeaScore.idea_id == idea_id)
        .order_by(IdeaCriteria.sort_order, IdeaCriteria.id)
    )
    return [(score, criteria) for score, criteria in db.session.execute(stmt).all()]


def _idea_score(idea_id: int) -> int:
    return calculate_score((s.score, c.weight) for s, c in _scores_with_criteria(idea_id))


# ═══════════════════════════════════════════════════════════════
# Ideas
# ═══════════════════════════════════════════════════════════════
def create_idea(*, user_id: int, data: dict) -> Idea:
    require_user(user_id)
    title = str(data.get("title", "") or "").strip()
    if not title:
        raise ValidationError("title is required", details={"title": "required"})
    status = data.get("status") or "draft"
    if status not in IDEA_STATUSES:
        raise ValidationError(
            f"status must be one of: {', '.join(sorted(IDEA_STATUSES))}", details={"status": status},
        )
    idea = Idea(
        user_id=user_id,
        title=title,
        description=data.get("description") or "",
        category=data.get("category"),
        status=status,
    )
    db.session.add(idea)
    db.session.commit()
    logger.info("Idea created", extra={"user_id": user_id, "idea_id": idea.id})
    return idea


def list_ideas(*, user_id: int, status: str | None = None) -> list[Idea]:
    require_user(user_id)
    stmt = select(Idea).where(Idea.user_id == user_id)
    if status:
        stmt = stmt.where(Idea.status == status)
    stmt = stmt.order_by(Idea.created_at.desc(), Idea.id.desc())
    return list(db.session.execute(stmt).scalars().all())


def get_idea(*, user_id: int, idea_id: int) -> Idea:
    return get_owned(Idea, idea_id, user_id=user_id)


def update_idea(*, user_id: int, idea_id: int, data: dict) -> Idea:
    idea = get_owned(Idea, idea_id, user_id=user_id)
    if "title" in data:
        title = str(data.get("title") or "").strip()
        if not title:
            raise ValidationError("title cannot be empty", details={"title": "required"})
        idea.title = title
    if "description" in data:
        idea.description = data.get("description") or ""
    if "category" in data:
        idea.category = data.get("category")
    if "status" in data:
        if data["status"] not in IDEA_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(sorted(IDEA_STATUSES))}",
                details={"status": data["status"]},
            )
        idea.status = data["status"]
    db.session.commit()
    return idea


def delete_idea(*, user_id: int, idea_id: int) -> None:
    """Delete the idea and every score recorded against it."""
    idea = get_owned(Idea, idea_id, user_id=user_id)
    try:
        db.session.execute(delete(IdeaScore).where(IdeaScore.idea_id == idea.id))
        db.session.delete(idea)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def archive_idea(*, user_id: int, idea_id: int) -> Idea:
    idea = get_owned(Idea, idea_id, user_id=user_id)
    idea.status = "archived"
    db.session.commit()
    return idea


def search_ideas(*, user_id: int, term: str) -> list[Idea]:
    """Case-insensitive match on title and description."""
    require_user(user_id)
    term = (term or "").strip().lower()
    if not term:
        return []
    pattern = f"%{term}%"
    stmt = select(Idea).where(
        Idea.user_id == user_id,
        or_(func.lower(Idea.title).like(pattern), func.lower(Idea.description).like(pattern)),
    ).order_by(Idea.created_at.desc())
    return list(db.session.execute(stmt).scalars().all())


def get_recent_ideas(*, user_id: int, limit: int = 5) -> list[Idea]:
    return list_ideas(user_id=user_id)[:limit]


def get_top_rated_ideas(*, user_id: int, limit: int = 10) -> list[Idea]:
    """Evaluated ideas by stored total_score, best first."""
    evaluated = [
        i for i in list_ideas(user_id=user_id, status="evaluated") if i.total_score is not None
    ]
    return sorted(evaluated, key=lambda i: i.total_score, reverse=True)[:limit]


def get_idea_stats(*, user_id: int) -> dict:
    ideas = list_ideas(user_id=user_id)
    by_status = {s: 0 for s in sorted(IDEA_STATUSES)}
    for idea in ideas:
        by_status[idea.status] = by_status.get(idea.status, 0) + 1
    scored = [i.total_score for i in ideas if i.status == "evaluated" and i.total_score is not None]
    return {
        "total": len(ideas),
        **by_status,
        "avg_score": sum(scored) / len(scored) if scored else 0,
    }


# ═══════════════════════════════════════════════════════════════
# Evaluation
# ═══════════════════════════════════════════════════════════════
def get_idea_with_scores(*, user_id: int, idea_id: int) -> dict:
    idea = get_owned(Idea, idea_id, user_id=user_id)
    rows = _scores_with_criteria(idea.id)
    calculated = calculate_score((s.score, c.weight) for s, c in rows)
    return {
        **idea.to_dict(),
        "scores": [{**s.to_dict(), "criteria": c.to_dict()} for s, c in rows],
        "calculated_score": calculated,
        "category_label": score_category(calculated),
        "scores_count": len(rows),
    }


def mark_idea_evaluated(*, user_id: int, idea_id: int) -> Idea:
    """Store the calculated score and move the idea to ``evaluated``."""
    idea = get_owned(Idea, idea_id, user_id=user_id)
    idea.total_score = _idea_score(idea.id)
    idea.status = "evaluated"
    db.session.commit()
    logger.info(
        "Idea evaluated: score=%s", idea.total_score,
        extra={"user_id": user_id, "idea_id": idea.id},
    )
    return idea


def get_ideas_ranked_by_score(*, user_id: int, limit: int = 10) -> list[dict]:
    ranked = []
    for idea in list_ideas(user_id=user_id):
        rows = _scores_with_criteria(idea.id)
        ranked.append({
            **idea.to_dict(),
            "calculated_score": calculate_score((s.score, c.weight) for s, c in rows),
            "scores_count": len(rows),
        })
    ranked.sort(key=lambda r: r["calculated_score"], reverse=True)
    return ranked[:limit]


# ═══════════════════════════════════════════════════════════════
# Scores
# ═══════════════════════════════════════════════════════════════
def _upsert(user_id: int, idea: Idea, criteria_id, value, notes) -> IdeaScore:
    criteria = get_owned(IdeaCriteria, parse_int(criteria_id, "criteria_id"), user_id=user_id)
    score_value = _validate_score(value)
    score = db.session.execute(
        select(IdeaScore).where(
            IdeaScore.idea_id == idea.id,
            IdeaScore.criteria_id == criteria.id,
            IdeaScore.user_id == user_id,
        )
    ).scalars().first()
    if score is None:
        score = IdeaScore(user_id=user_id, idea_id=idea.id, criteria_id=criteria.id, score=score_value, notes=notes)
        db.session.add(score)
    else:
        score.score = score_value
        if notes is not None:
            score.notes = notes
    return score


def upsert_score(
    *, user_id: int, idea_id: int, criteria_id: int, score: int, notes: str | None = None,
) -> IdeaScore:
    """Create or replace the user's score for (idea, criteria)."""
    idea = get_owned(Idea, idea_id, user_id=user_id)
    row = _upsert(user_id, idea, criteria_id, score, notes)
    db.session.commit()
    return row


def bulk_score_idea(*, user_id: int, idea_id: int, scores: list[dict]) -> list[IdeaScore]:
    """Upsert several ``{criteria_id, score, notes?}`` entries atomically."""
    idea = get_owned(Idea, idea_id, user_id=user_id)
    if not scores or not isinstance(scores, list):
        raise ValidationError("scores must be a non-empty list", details={"scores": scores})
    try:
        rows = []
        for entry in scores:
            if not isinstance(entry, dict):
                raise ValidationError("Each score entry must be an object", details={"entry": entry})
            rows.append(_upsert(user_id, idea, entry.get("criteria_id"), entry.get("score"), entry.get("notes")))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return rows


def delete_score(*, user_id: int, score_id: int) -> None:
    score = get_owned(IdeaScore, score_id, user_id=user_id)
    db.session.delete(score)
    db.session.commit()


def list_scores(*, user_id: int, idea_id: int) -> list[IdeaScore]:
    get_owned(Idea, idea_id, user_id=user_id)
    return [s for s, _ in _scores_with_criteria(idea_id)]


def copy_scores(*, user_id: int, source_idea_id: int, target_idea_id: int) -> list[IdeaScore]:
    """Copy the user's scores from one idea onto another."""
    source = get_owned(Idea, source_idea_id, user_id=user_id)
    target = get_owned(Idea, parse_int(target_idea_id, "target_idea_id"), user_id=user_id)
    if source.id == target.id:
        raise ValidationError("source and target idea must differ")

    source_scores = db.session.execute(
        select(IdeaScore).where(IdeaScore.idea_id == source.id, IdeaScore.user_id == user_id)
    ).scalars().all()
    copied = []
    for src in source_scores:
        notes = f"Copied: {src.notes}" if src.notes else None
        copied.append(_upsert(user_id, target, src.criteria_id, src.score, notes))
    db.session.commit()
    return copied


def get_score_stats(*, user_id: int) -> dict:
    require_user(user_id)
    values = db.session.execute(
        select(IdeaScore.score).where(IdeaScore.user_id == user_id)
    ).scalars().all()
    distribution = {i: 0 for i in range(MIN_SCORE, MAX_SCORE + 1)}
    for v in values:
        distribution[v] = distribution.get(v, 0) + 1
    return {
        "total": len(values),
        "avg_score": sum(values) / len(values) if values else 0,
        "max_score": max(values) if values else 0,
        "min_score": min(values) if values else 0,
        "score_distribution": distribution,
    }
