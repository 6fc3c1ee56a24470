"""Scoring rules for evaluated answers.

Pure functions over ORM rows; nothing here touches the session.
"""
from datetime import datetime
from typing import Dict, Iterable, List

from classtrail.models.attempt import Answer, Evaluation
from classtrail.utils.numbers import round_half_up, percentage


def compute_aggregate_score(evaluations: Iterable[Evaluation]) -> float:
    """Weighted share of approved criteria, 0-100 with two decimals.

    Weights are normalised by the weights actually present, so they need
    not sum to 1.
    """
    evaluations = list(evaluations)
    if not evaluations:
        return 0.0

    weighted = 0.0
    total_weight = 0.0
    for evaluation in evaluations:
        weight = evaluation.criterion.weight if evaluation.criterion is not None else 0.0
        weighted += (100.0 if evaluation.approved else 0.0) * weight
        total_weight += weight

    if total_weight <= 0:
        return 0.0
    return round_half_up(weighted / total_weight, 2)


def is_approved(evaluations: Iterable[Evaluation]) -> bool:
    """Hard AND across criteria. An answer with no evaluation is not approved."""
    evaluations = list(evaluations)
    return bool(evaluations) and all(e.approved for e in evaluations)


def latest_answers(answers: Iterable[Answer]) -> Dict[int, Answer]:
    """Most recent answer per question.

    Answers are an append-only history; grading decisions only look at the
    latest submission for each question.
    """
    latest: Dict[int, Answer] = {}
    # sorted() is stable, so equal timestamps keep insertion order
    for answer in sorted(answers, key=lambda a: a.submitted_at or datetime.min):
        latest[answer.question_id] = answer
    return latest


def grading_counts(answers: Iterable[Answer]) -> Dict[str, int]:
    """Answered / approved question counts over the latest answers."""
    current: List[Answer] = list(latest_answers(answers).values())
    answered = sum(1 for a in current if a.evaluations)
    approved = sum(1 for a in current if is_approved(a.evaluations))
    return {"answered": answered, "approved": approved}


def attempt_statistics(answers: Iterable[Answer], total_questions: int) -> Dict[str, int]:
    counts = grading_counts(answers)
    return {
        "total_questions": total_questions,
        "answered_questions": counts["answered"],
        "approved_questions": counts["approved"],
        "completion_percent": percentage(counts["answered"], total_questions),
        "approval_percent": percentage(counts["approved"], counts["answered"]),
    }
