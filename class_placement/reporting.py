"""Explainability helpers: per-factor breakdown and per-class summaries.

`details` recomputes every factor independently of the search and pairs it
with its weight. Summing `weighted` over the result gives exactly the value
returned by `scoring.score` for the same inputs.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence

import pandas as pd

from .model import Assignment, DEFAULT_LEVEL, ParentPreference, PlacementConstraint, TeacherSurvey
from .scoring import FACTORS, factor_scores, validate_weights


@dataclass(frozen=True)
class FactorScore:
    score: float
    weight: float

    @property
    def weighted(self) -> float:
        return self.weight * self.score


def details(
    assignment: Assignment,
    weights: Mapping[str, Any],
    parent_preferences: Sequence[ParentPreference] = (),
    teacher_surveys: Sequence[TeacherSurvey] = (),
    *,
    consideration_policy: str = "assume_satisfied",
) -> Dict[str, FactorScore]:
    """Per-factor score paired with its weight, in FACTORS order."""

    w = validate_weights(weights)
    scores = factor_scores(
        assignment,
        parent_preferences,
        teacher_surveys,
        consideration_policy=consideration_policy,
    )
    return {f: FactorScore(score=scores[f], weight=w[f]) for f in FACTORS}


def total_score(breakdown: Mapping[str, FactorScore]) -> float:
    return sum(breakdown[f].weighted for f in FACTORS if f in breakdown)


def format_details_as_rows(breakdown: Mapping[str, FactorScore]) -> List[Dict[str, Any]]:
    """Return a list of rows suitable for tables/CSV."""

    return [
        {
            "factor": f,
            "score": breakdown[f].score,
            "weight": breakdown[f].weight,
            "weighted": breakdown[f].weighted,
        }
        for f in FACTORS
        if f in breakdown
    ]


def format_assignment_as_rows(assignment: Assignment) -> List[Dict[str, Any]]:
    """One row per class: teacher, size and the balance ingredients."""

    rows: List[Dict[str, Any]] = []
    for c, class_id in enumerate(assignment.class_ids):
        members = assignment.students_in(c)
        teacher = assignment.teacher_for(c)
        genders = Counter(s.gender for s in members)

        def mean_of(attr: str) -> float:
            if not members:
                return 0.0
            vals = [getattr(s, attr) for s in members]
            return sum(v if v is not None else DEFAULT_LEVEL for v in vals) / len(vals)

        rows.append(
            {
                "class_id": class_id,
                "teacher_id": teacher.teacher_id,
                "teaching_style": teacher.teaching_style,
                "size": len(members),
                "genders": ", ".join(f"{g}={n}" for g, n in sorted(genders.items())),
                "mean_academic": round(mean_of("academic_level"), 2),
                "mean_behavioral": round(mean_of("behavioral_score"), 2),
                "special_needs": sum(1 for s in members if s.special_needs),
                "students": ", ".join(s.student_id for s in members),
            }
        )
    return rows


VIOLATION_MESSAGES = {
    "must_be_together": "Students must be placed in the same class",
    "must_be_separate": "Students must be placed in different classes",
    "prefer_teacher": "Students should be placed with teacher {teacher}",
    "avoid_teacher": "Students should not be placed with teacher {teacher}",
}


def format_violations_as_rows(violations: Sequence[PlacementConstraint]) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    for con in violations:
        message = VIOLATION_MESSAGES[con.kind].format(teacher=con.teacher_id)
        rows.append(
            {
                "kind": con.kind,
                "students": ", ".join(con.student_ids),
                "teacher_id": con.teacher_id,
                "message": f"{message} ({con.reason or 'Required'})",
            }
        )
    return rows


def details_frame(breakdown: Mapping[str, FactorScore]) -> pd.DataFrame:
    df = pd.DataFrame(format_details_as_rows(breakdown), columns=["factor", "score", "weight", "weighted"])
    return df.set_index("factor")


def assignment_frame(assignment: Assignment) -> pd.DataFrame:
    return pd.DataFrame(format_assignment_as_rows(assignment))
