"""Grade averaging for a subject's evaluations."""

from typing import Iterable, Optional

from .models import Evaluation, SubjectStats

PASSING_GRADE = 4.0


def is_passing(grade: Optional[float]) -> bool:
    return grade is not None and grade >= PASSING_GRADE


def simple_average(evaluations: Iterable[Evaluation]) -> Optional[float]:
    """Mean of all graded evaluations, one decimal. None when nothing is graded."""
    grades = [e.grade for e in evaluations if e.grade is not None]
    if not grades:
        return None
    return round(sum(grades) / len(grades), 1)


def weighted_average(evaluations: Iterable[Evaluation]) -> Optional[float]:
    """
    Weighted mean over evaluations that have both a grade and a positive weight.

    Weights need not add up to 100; the result is normalised by their sum.
    """
    weighted = [
        e for e in evaluations
        if e.grade is not None and e.weight is not None and e.weight > 0
    ]
    total_weight = sum(e.weight for e in weighted)
    if not weighted or total_weight <= 0:
        return None
    return round(sum(e.grade * e.weight for e in weighted) / total_weight, 1)


def subject_stats(evaluations: Iterable[Evaluation]) -> SubjectStats:
    evaluations = list(evaluations)
    completed = sum(1 for e in evaluations if e.completed)
    return SubjectStats(
        total=len(evaluations),
        completed=completed,
        pending=len(evaluations) - completed,
        avg_grade=simple_average(evaluations),
        weighted_avg=weighted_average(evaluations),
        grade_count=sum(1 for e in evaluations if e.grade is not None),
        weighted_count=sum(
            1 for e in evaluations
            if e.grade is not None and e.weight is not None and e.weight > 0
        ),
    )
