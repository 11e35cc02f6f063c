"""Idea scorer: composite score arithmetic, criteria and score upserts."""

import pytest
from sqlalchemy import func, select

from app.core.exceptions import AccessDeniedError, ValidationError
from app.models import db as _db
from app.models.idea import IdeaCriteria, IdeaScore
from app.services import idea_criteria_service, idea_service


def _criteria(user, *weights):
    return [
        idea_criteria_service.create_criteria(user_id=user.id, data={"name": f"C{w}-{i}", "weight": w})
        for i, w in enumerate(weights)
    ]


# ── Arithmetic ───────────────────────────────────────────────────────────


def test_weighted_score_example():
    assert idea_service.calculate_score([(7, 5), (6, 4), (8, 3)]) == 69


def test_score_without_weight_is_zero():
    assert idea_service.calculate_score([]) == 0


def test_perfect_and_minimum_scores():
    assert idea_service.calculate_score([(10, 3), (10, 7)]) == 100
    assert idea_service.calculate_score([(1, 10)]) == 10


@pytest.mark.parametrize("score,label", [(85, "Excellent"), (70, "Good"), (69, "Average"), (50, "Average"), (49, "Poor")])
def test_score_category(score, label):
    assert idea_service.score_category(score) == label


# ── Criteria ─────────────────────────────────────────────────────────────


@pytest.mark.parametrize("weight", [0, 11])
def test_criteria_weight_out_of_range(user, weight):
    with pytest.raises(ValidationError, match="Weight must be between 1 and 10"):
        idea_criteria_service.create_criteria(user_id=user.id, data={"name": "Bad", "weight": weight})


@pytest.mark.parametrize("weight", ["heavy", 10.5, 0.9, None, True])
def test_criteria_weight_must_be_integral(user, weight):
    with pytest.raises(ValidationError, match="weight must be an integer"):
        idea_criteria_service.create_criteria(user_id=user.id, data={"name": "Bad", "weight": weight})


def test_criteria_weight_accepts_whole_float_and_numeric_string(user):
    a = idea_criteria_service.create_criteria(user_id=user.id, data={"name": "A", "weight": 7.0})
    b = idea_criteria_service.create_criteria(user_id=user.id, data={"name": "B", "weight": "4"})
    assert (a.weight, b.weight) == (7, 4)


def test_default_criteria(user):
    created = idea_criteria_service.create_default_criteria(user_id=user.id)

    assert len(created) == 8
    assert [c.sort_order for c in created] == list(range(1, 9))
    assert all(c.is_default for c in created)
    assert created[0].name == "Market Size"
    assert idea_criteria_service.get_criteria_stats(user_id=user.id)["max_weight"] == 9


def test_duplicate_criteria_for_self_appends(user):
    (source,) = _criteria(user, 6)
    copy = idea_criteria_service.duplicate_criteria(user_id=user.id, criteria_id=source.id)

    assert copy.id != source.id
    assert copy.weight == 6
    assert copy.sort_order == source.sort_order + 1
    assert copy.is_default is False


def test_reorder_criteria(user):
    a, b = _criteria(user, 3, 4)
    idea_criteria_service.reorder_criteria(
        user_id=user.id, orders=[{"criteria_id": a.id, "order": 2}, {"criteria_id": b.id, "order": 1}],
    )
    assert [c.id for c in idea_criteria_service.list_criteria(user_id=user.id)] == [b.id, a.id]


@pytest.mark.parametrize("orders", [
    [{"order": 2}],
    [{"criteria_id": "abc", "order": 1}],
    [{"criteria_id": 1}],
    [5],
])
def test_reorder_rejects_malformed_entries(user, orders):
    (crit,) = _criteria(user, 3)
    before = crit.sort_order
    with pytest.raises(ValidationError):
        idea_criteria_service.reorder_criteria(user_id=user.id, orders=orders)
    assert _db.session.get(IdeaCriteria, crit.id).sort_order == before


# ── Scores ───────────────────────────────────────────────────────────────


def test_bulk_scoring_and_evaluation(user):
    idea = idea_service.create_idea(user_id=user.id, data={"title": "Usage-based billing"})
    c5, c4, c3 = _criteria(user, 5, 4, 3)
    idea_service.bulk_score_idea(
        user_id=user.id,
        idea_id=idea.id,
        scores=[
            {"criteria_id": c5.id, "score": 7},
            {"criteria_id": c4.id, "score": 6},
            {"criteria_id": c3.id, "score": 8},
        ],
    )

    detail = idea_service.get_idea_with_scores(user_id=user.id, idea_id=idea.id)
    assert detail["calculated_score"] == 69
    assert detail["category_label"] == "Average"
    assert detail["scores_count"] == 3

    evaluated = idea_service.mark_idea_evaluated(user_id=user.id, idea_id=idea.id)
    assert evaluated.status == "evaluated"
    assert evaluated.total_score == 69


def test_upsert_replaces_existing_score(user):
    idea = idea_service.create_idea(user_id=user.id, data={"title": "Idea"})
    (crit,) = _criteria(user, 5)

    first = idea_service.upsert_score(user_id=user.id, idea_id=idea.id, criteria_id=crit.id, score=3)
    second = idea_service.upsert_score(user_id=user.id, idea_id=idea.id, criteria_id=crit.id, score=9, notes="rethought")

    assert first.id == second.id
    assert second.score == 9
    count = _db.session.execute(select(func.count(IdeaScore.id))).scalar()
    assert count == 1


@pytest.mark.parametrize("value", [0, 11])
def test_score_out_of_range(user, value):
    idea = idea_service.create_idea(user_id=user.id, data={"title": "Idea"})
    (crit,) = _criteria(user, 5)
    with pytest.raises(ValidationError, match="Score must be between 1 and 10"):
        idea_service.upsert_score(user_id=user.id, idea_id=idea.id, criteria_id=crit.id, score=value)


@pytest.mark.parametrize("value", [7.5, 9.99, "seven"])
def test_fractional_or_text_score_rejected(user, value):
    idea = idea_service.create_idea(user_id=user.id, data={"title": "Idea"})
    (crit,) = _criteria(user, 5)
    with pytest.raises(ValidationError, match="score must be an integer"):
        idea_service.upsert_score(user_id=user.id, idea_id=idea.id, criteria_id=crit.id, score=value)
    assert idea_service.list_scores(user_id=user.id, idea_id=idea.id) == []


@pytest.mark.parametrize("entry", [5, "7", None, [1, 7]])
def test_bulk_scoring_rejects_non_object_entries(user, entry):
    idea = idea_service.create_idea(user_id=user.id, data={"title": "Idea"})
    (crit,) = _criteria(user, 5)
    with pytest.raises(ValidationError, match="Each score entry must be an object"):
        idea_service.bulk_score_idea(
            user_id=user.id, idea_id=idea.id, scores=[{"criteria_id": crit.id, "score": 5}, entry],
        )
    assert idea_service.list_scores(user_id=user.id, idea_id=idea.id) == []


def test_copy_scores_rejects_non_numeric_target(user):
    source = idea_service.create_idea(user_id=user.id, data={"title": "Source"})
    with pytest.raises(ValidationError, match="target_idea_id must be an integer"):
        idea_service.copy_scores(user_id=user.id, source_idea_id=source.id, target_idea_id="abc")


def test_bulk_scoring_is_atomic(user):
    idea = idea_service.create_idea(user_id=user.id, data={"title": "Idea"})
    good, bad = _criteria(user, 5, 5)
    with pytest.raises(ValidationError):
        idea_service.bulk_score_idea(
            user_id=user.id,
            idea_id=idea.id,
            scores=[{"criteria_id": good.id, "score": 5}, {"criteria_id": bad.id, "score": 42}],
        )
    assert idea_service.list_scores(user_id=user.id, idea_id=idea.id) == []


def test_scoring_with_foreign_criteria_denied(user, other_user):
    idea = idea_service.create_idea(user_id=user.id, data={"title": "Idea"})
    (foreign,) = _criteria(other_user, 5)
    with pytest.raises(AccessDeniedError):
        idea_service.upsert_score(user_id=user.id, idea_id=idea.id, criteria_id=foreign.id, score=5)


def test_copy_scores_prefixes_notes(user):
    source = idea_service.create_idea(user_id=user.id, data={"title": "Source"})
    target = idea_service.create_idea(user_id=user.id, data={"title": "Target"})
    (crit,) = _criteria(user, 5)
    idea_service.upsert_score(user_id=user.id, idea_id=source.id, criteria_id=crit.id, score=8, notes="strong")

    copied = idea_service.copy_scores(user_id=user.id, source_idea_id=source.id, target_idea_id=target.id)

    assert len(copied) == 1
    assert copied[0].idea_id == target.id
    assert copied[0].score == 8
    assert copied[0].notes == "Copied: strong"


def test_delete_criteria_removes_scores(user):
    idea = idea_service.create_idea(user_id=user.id, data={"title": "Idea"})
    (crit,) = _criteria(user, 5)
    idea_service.upsert_score(user_id=user.id, idea_id=idea.id, criteria_id=crit.id, score=5)
    crit_id = crit.id

    idea_criteria_service.delete_criteria(user_id=user.id, criteria_id=crit_id)

    assert _db.session.get(IdeaCriteria, crit_id) is None
    assert _db.session.execute(select(func.count(IdeaScore.id))).scalar() == 0


def test_score_stats_distribution(user):
    idea = idea_service.create_idea(user_id=user.id, data={"title": "Idea"})
    a, b = _criteria(user, 5, 5)
    idea_service.upsert_score(user_id=user.id, idea_id=idea.id, criteria_id=a.id, score=4)
    idea_service.upsert_score(user_id=user.id, idea_id=idea.id, criteria_id=b.id, score=8)

    stats = idea_service.get_score_stats(user_id=user.id)

    assert stats["total"] == 2
    assert stats["avg_score"] == 6
    assert (stats["min_score"], stats["max_score"]) == (4, 8)
    assert stats["score_distribution"][4] == 1
    assert stats["score_distribution"][10] == 0


def test_ranked_ideas_best_first(user):
    low = idea_service.create_idea(user_id=user.id, data={"title": "Low"})
    high = idea_service.create_idea(user_id=user.id, data={"title": "High"})
    (crit,) = _criteria(user, 5)
    idea_service.upsert_score(user_id=user.id, idea_id=low.id, criteria_id=crit.id, score=2)
    idea_service.upsert_score(user_id=user.id, idea_id=high.id, criteria_id=crit.id, score=9)

    ranked = idea_service.get_ideas_ranked_by_score(user_id=user.id)

    assert [r["title"] for r in ranked] == ["High", "Low"]
    assert ranked[0]["calculated_score"] == 90


def test_search_and_archive(user):
    idea = idea_service.create_idea(user_id=user.id, data={"title": "AI onboarding", "description": "Guided setup"})
    idea_service.create_idea(user_id=user.id, data={"title": "Other"})

    assert [i.id for i in idea_service.search_ideas(user_id=user.id, term="SETUP")] == [idea.id]
    assert idea_service.archive_idea(user_id=user.id, idea_id=idea.id).status == "archived"


def test_criteria_with_usage(user):
    first = idea_service.create_idea(user_id=user.id, data={"title": "Self-serve onboarding"})
    second = idea_service.create_idea(user_id=user.id, data={"title": "Partner portal"})
    used, unused = _criteria(user, 5, 2)
    idea_service.upsert_score(user_id=user.id, idea_id=first.id, criteria_id=used.id, score=8)
    idea_service.upsert_score(user_id=user.id, idea_id=second.id, criteria_id=used.id, score=5)

    usage = {row["id"]: row for row in idea_criteria_service.get_criteria_with_usage(user_id=user.id)}

    assert usage[used.id]["usage_count"] == 2
    assert usage[used.id]["avg_score"] == 6.5
    assert usage[unused.id]["usage_count"] == 0
    assert usage[unused.id]["avg_score"] == 0
