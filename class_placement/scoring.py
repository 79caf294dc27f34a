"""Scoring for class placement.

An assignment is scored by seven independent factors. Each factor returns a
float where higher is better; the overall score is the weighted sum:

    score = sum(weight[f] * factor_score[f] for f in FACTORS)

Balance factors
---------------
- academic_balance / behavioral_balance: 1 / (1 + mean per-class variance)
- special_needs: 1 / (1 + 10 * variance of per-class special-needs fractions)
- gender_balance: 1 - mean per-class deviation from an even gender split.
  This one is not clamped and goes negative for heavily skewed classes.
- class_size: 1 - (largest deviation from the mean size) / mean size

Satisfaction factors
--------------------
- parent_preferences: satisfied / total parent statements
- teacher_preferences: satisfied / total teacher survey statements

Both are 1.0 when there is nothing to satisfy.

Weights are not normalized; callers decide what they mean.
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import math
import numbers

from .errors import InvalidInput
from .model import DEFAULT_LEVEL, Assignment, ParentPreference, PlacementConstraint, TeacherSurvey


FACTORS: Tuple[str, ...] = (
    "academic_balance",
    "behavioral_balance",
    "special_needs",
    "gender_balance",
    "parent_preferences",
    "teacher_preferences",
    "class_size",
)

# Names used by the web front end.
FACTOR_ALIASES: Dict[str, str] = {
    "academicBalance": "academic_balance",
    "behavioralBalance": "behavioral_balance",
    "specialNeeds": "special_needs",
    "genderBalance": "gender_balance",
    "parentPreferences": "parent_preferences",
    "teacherPreferences": "teacher_preferences",
    "classSize": "class_size",
}

LEARNING_STYLE_COMPATIBILITY: Dict[str, Tuple[str, ...]] = {
    "visual": ("visual_aids", "multimedia", "mixed"),
    "auditory": ("lecture", "discussion", "mixed"),
    "kinesthetic": ("hands_on", "interactive", "mixed"),
    "mixed": ("mixed", "balanced", "flexible"),
}

# How teacher survey special considerations enter the teacher_preferences
# ratio. "assume_satisfied" counts each consideration for a student present
# in the class as satisfied without reading its content. "ignore" leaves
# considerations out of the ratio entirely.
CONSIDERATION_POLICIES = ("assume_satisfied", "ignore")


# ----------------------------
# Weights
# ----------------------------


def validate_weights(weights: Mapping[str, Any]) -> Dict[str, float]:
    """Return canonical weights for all seven factors.

    Camel-case aliases are accepted. Missing factors weigh 0.0.
    Raises InvalidInput for unknown factors or non-numeric / non-finite values.
    """

    if not isinstance(weights, Mapping):
        raise InvalidInput("weights must be a mapping of factor name -> number")

    out = {f: 0.0 for f in FACTORS}
    seen = set()
    for raw_name, value in weights.items():
        name = FACTOR_ALIASES.get(raw_name, raw_name)
        if name not in out:
            raise InvalidInput(f"unknown weight factor {raw_name!r}")
        if name in seen:
            raise InvalidInput(f"weight factor {name!r} given more than once")
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise InvalidInput(f"weight for {raw_name!r} must be a number, got {value!r}")
        if not math.isfinite(float(value)):
            raise InvalidInput(f"weight for {raw_name!r} must be finite, got {value!r}")
        seen.add(name)
        out[name] = float(value)
    return out


# ----------------------------
# Balance factors
# ----------------------------


def _variance(values: Sequence[float]) -> float:
    """Population variance; 0.0 for an empty sequence."""

    if not values:
        return 0.0
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def _level(value: Optional[int]) -> float:
    return float(value) if value is not None else DEFAULT_LEVEL


def academic_balance(assignment: Assignment) -> float:
    variances = [
        _variance([_level(s.academic_level) for s in assignment.students_in(c)])
        for c in range(assignment.class_count)
    ]
    return 1.0 / (1.0 + sum(variances) / len(variances))


def behavioral_balance(assignment: Assignment) -> float:
    variances = [
        _variance([_level(s.behavioral_score) for s in assignment.students_in(c)])
        for c in range(assignment.class_count)
    ]
    return 1.0 / (1.0 + sum(variances) / len(variances))


def special_needs_distribution(assignment: Assignment) -> float:
    fractions: List[float] = []
    for c in range(assignment.class_count):
        members = assignment.students_in(c)
        if not members:
            fractions.append(0.0)
            continue
        fractions.append(sum(1 for s in members if s.special_needs) / len(members))
    # x10 so that small imbalances still register against the other factors.
    return 1.0 / (1.0 + 10.0 * _variance(fractions))


def gender_balance(assignment: Assignment) -> float:
    total_deviation = 0.0
    for c in range(assignment.class_count):
        members = assignment.students_in(c)
        if not members:
            continue
        counts = Counter(s.gender for s in members)
        ideal = len(members) / len(counts)
        total_deviation += sum(abs(n - ideal) for n in counts.values()) / len(members)
    return 1.0 - total_deviation / assignment.class_count


def class_size_balance(assignment: Assignment) -> float:
    sizes = assignment.class_sizes()
    mean = sum(sizes) / len(sizes)
    if mean == 0:
        return 1.0
    max_deviation = max(abs(size - mean) for size in sizes)
    return 1.0 - max_deviation / mean


# ----------------------------
# Satisfaction factors
# ----------------------------


def _first_by(items: Iterable[Any], key: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for item in items:
        out.setdefault(getattr(item, key), item)
    return out


def is_learning_style_compatible(learning_style: str, teaching_style: str) -> bool:
    return teaching_style in LEARNING_STYLE_COMPATIBILITY.get(learning_style, ())


def parent_preference_counts(
    assignment: Assignment,
    parent_preferences: Sequence[ParentPreference],
) -> Tuple[int, int]:
    """Return (satisfied, total) parent preference statements."""

    prefs = _first_by(parent_preferences, "student_id")
    s_idx = assignment.student_index
    class_of = assignment.class_of

    satisfied = 0
    total = 0
    for student_id, pref in prefs.items():
        i = s_idx.get(student_id)
        if i is None:
            continue
        c = class_of[i]
        teacher = assignment.teacher_for(c)

        if pref.preferred_teacher_ids:
            total += 1
            if teacher.teacher_id in pref.preferred_teacher_ids:
                satisfied += 1

        for peer in pref.peer_preferences:
            total += 1
            peer_idx = s_idx.get(peer.peer_id)
            peer_in_class = peer_idx is not None and class_of[peer_idx] == c
            if (peer.relation == "together" and peer_in_class) or (
                peer.relation == "separate" and not peer_in_class
            ):
                satisfied += 1

        if pref.learning_style:
            total += 1
            if is_learning_style_compatible(pref.learning_style, teacher.teaching_style):
                satisfied += 1

    return satisfied, total


def parent_preference_satisfaction(
    assignment: Assignment,
    parent_preferences: Sequence[ParentPreference],
) -> float:
    satisfied, total = parent_preference_counts(assignment, parent_preferences)
    return satisfied / total if total > 0 else 1.0


def teacher_preference_counts(
    assignment: Assignment,
    teacher_surveys: Sequence[TeacherSurvey],
    consideration_policy: str = "assume_satisfied",
) -> Tuple[int, int]:
    """Return (satisfied, total) teacher survey statements.

    Pair membership is judged per class: for a "works_well" pair it is enough
    that both students are in the class or both are elsewhere.
    """

    if consideration_policy not in CONSIDERATION_POLICIES:
        raise InvalidInput(
            f"consideration_policy must be one of {', '.join(CONSIDERATION_POLICIES)}, "
            f"got {consideration_policy!r}"
        )

    surveys = _first_by(teacher_surveys, "teacher_id")
    s_idx = assignment.student_index
    class_of = assignment.class_of

    def in_class(student_id: str, c: int) -> bool:
        i = s_idx.get(student_id)
        return i is not None and class_of[i] == c

    satisfied = 0
    total = 0
    for c in range(assignment.class_count):
        survey = surveys.get(assignment.teacher_for(c).teacher_id)
        if survey is None:
            continue

        for pair in survey.student_pairs:
            total += 1
            a_in = in_class(pair.student_a, c)
            b_in = in_class(pair.student_b, c)
            if (pair.relation == "works_well" and a_in == b_in) or (
                pair.relation == "should_separate" and a_in != b_in
            ):
                satisfied += 1

        if consideration_policy == "assume_satisfied":
            for consideration in survey.special_considerations:
                if in_class(consideration.student_id, c):
                    total += 1
                    satisfied += 1

    return satisfied, total


def teacher_preference_satisfaction(
    assignment: Assignment,
    teacher_surveys: Sequence[TeacherSurvey],
    consideration_policy: str = "assume_satisfied",
) -> float:
    satisfied, total = teacher_preference_counts(assignment, teacher_surveys, consideration_policy)
    return satisfied / total if total > 0 else 1.0


# ----------------------------
# Administrator constraints
# ----------------------------


def is_constraint_satisfied(assignment: Assignment, constraint: PlacementConstraint) -> bool:
    classes = [assignment.class_of[assignment.student_index[sid]] for sid in constraint.student_ids]

    if constraint.kind == "must_be_together":
        return len(set(classes)) <= 1
    if constraint.kind == "must_be_separate":
        return len(set(classes)) == len(classes)

    # A teacher without a class can be neither preferred nor met.
    teacher_classes = {
        c for c in range(assignment.class_count) if assignment.teacher_for(c).teacher_id == constraint.teacher_id
    }
    if constraint.kind == "prefer_teacher":
        return all(c in teacher_classes for c in classes)
    if constraint.kind == "avoid_teacher":
        return not any(c in teacher_classes for c in classes)
    raise InvalidInput(f"unknown constraint kind {constraint.kind!r}")


def constraint_violations(
    assignment: Assignment,
    constraints: Sequence[PlacementConstraint],
) -> List[PlacementConstraint]:
    """Constraints the assignment breaks, in input order."""

    return [con for con in constraints if not is_constraint_satisfied(assignment, con)]


# ----------------------------
# Totals / details
# ----------------------------


def factor_scores(
    assignment: Assignment,
    parent_preferences: Sequence[ParentPreference] = (),
    teacher_surveys: Sequence[TeacherSurvey] = (),
    *,
    consideration_policy: str = "assume_satisfied",
) -> Dict[str, float]:
    """Unweighted score of every factor, keyed by canonical factor name."""

    return {
        "academic_balance": academic_balance(assignment),
        "behavioral_balance": behavioral_balance(assignment),
        "special_needs": special_needs_distribution(assignment),
        "gender_balance": gender_balance(assignment),
        "parent_preferences": parent_preference_satisfaction(assignment, parent_preferences),
        "teacher_preferences": teacher_preference_satisfaction(
            assignment, teacher_surveys, consideration_policy
        ),
        "class_size": class_size_balance(assignment),
    }


def score(
    assignment: Assignment,
    weights: Mapping[str, Any],
    parent_preferences: Sequence[ParentPreference] = (),
    teacher_surveys: Sequence[TeacherSurvey] = (),
    *,
    consideration_policy: str = "assume_satisfied",
) -> float:
    """Weighted sum of all factor scores (higher is better)."""

    w = validate_weights(weights)
    scores = factor_scores(
        assignment,
        parent_preferences,
        teacher_surveys,
        consideration_policy=consideration_policy,
    )
    return sum(w[f] * scores[f] for f in FACTORS)
