"""Problem bundle, JSON loading and the one-call solve entry point.

Input schema (JSON)
-------------------
{
  "class_count": 2,
  "students": [{"student_id": "S01", "academic_level": 3, "behavioral_score": 2,
                "special_needs": false, "gender": "F"}, ...],
  "teachers": [{"teacher_id": "T1", "teaching_style": "lecture"}, ...],
  "parent_preferences": [{"student_id": "S01", "preferred_teacher_ids": ["T1"],
                          "peer_preferences": [{"peer_id": "S02", "relation": "together"}],
                          "learning_style": "auditory"}],
  "teacher_surveys": [{"teacher_id": "T1",
                       "student_pairs": [{"student_a": "S03", "student_b": "S04",
                                          "relation": "should_separate"}],
                       "special_considerations": [{"student_id": "S05", "details": {...}}]}],
  "constraints": [{"type": "must_be_separate", "student_ids": ["S01", "S02"],
                   "teacher_id": null, "reason": "..."}],
  "weights": {"academic_balance": 1.0, ...},
  "options": {"max_iterations": 1000, "initial_temperature": 100, "cooling_rate": 0.95, "seed": 42}
}

Only "class_count", "students" and "teachers" are required.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import json
import numbers
import random

from .errors import InvalidInput
from .model import (
    CONSTRAINT_KINDS,
    LEARNING_STYLES,
    PAIR_RELATIONS,
    PEER_RELATIONS,
    TEACHING_STYLES,
    ParentPreference,
    PeerPreference,
    PlacementConstraint,
    SpecialConsideration,
    Student,
    StudentPair,
    Teacher,
    TeacherSurvey,
    build_initial_assignment,
)
from .scoring import FACTORS, validate_weights
from .search import OptimizationResult, SearchOptions, optimize


DEFAULT_WEIGHTS: Dict[str, float] = {f: 1.0 for f in FACTORS}


@dataclass(frozen=True)
class ClassProblem:
    students: Tuple[Student, ...]
    teachers: Tuple[Teacher, ...]
    class_count: int
    parent_preferences: Tuple[ParentPreference, ...] = ()
    teacher_surveys: Tuple[TeacherSurvey, ...] = ()
    constraints: Tuple[PlacementConstraint, ...] = ()
    weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))
    options: SearchOptions = SearchOptions()


# -------------------------------------------------
# Loading
# -------------------------------------------------


def _choice(value: Any, field_name: str, allowed: Iterable[str]) -> str:
    allowed = tuple(allowed)
    if value not in allowed:
        raise InvalidInput(f"{field_name} must be one of: {', '.join(allowed)} (got {value!r})")
    return value


# Spellings used by the server routes.
CONSTRAINT_ALIASES = {
    "keep_together": "must_be_together",
    "keep_separate": "must_be_separate",
    "preferred_teacher": "prefer_teacher",
}


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidInput(f"{field_name} must be an integer (got {value!r})")
    if isinstance(value, numbers.Integral):
        return int(value)
    if not float(value).is_integer():
        raise InvalidInput(f"{field_name} must be a whole number (got {value!r})")
    return int(value)


def _optional_int(value: Any, field_name: str) -> Optional[int]:
    return None if value is None else _int(value, field_name)


def _flag(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise InvalidInput(f"{field_name} must be true or false (got {value!r})")
    return value


def problem_from_dict(raw: Mapping[str, Any]) -> ClassProblem:
    """Build a `ClassProblem` from already-parsed JSON data."""

    try:
        students = tuple(
            Student(
                student_id=str(s["student_id"]),
                academic_level=_optional_int(s.get("academic_level"), "academic_level"),
                behavioral_score=_optional_int(s.get("behavioral_score"), "behavioral_score"),
                special_needs=_flag(s.get("special_needs", False), "special_needs"),
                gender=str(s.get("gender", "unspecified")),
            )
            for s in raw["students"]
        )

        teachers = tuple(
            Teacher(
                teacher_id=str(t["teacher_id"]),
                teaching_style=_choice(t.get("teaching_style", "mixed"), "teaching_style", TEACHING_STYLES),
            )
            for t in raw["teachers"]
        )

        parent_preferences = tuple(
            ParentPreference(
                student_id=str(p["student_id"]),
                preferred_teacher_ids=tuple(str(x) for x in p.get("preferred_teacher_ids", [])),
                peer_preferences=tuple(
                    PeerPreference(
                        peer_id=str(pp["peer_id"]),
                        relation=_choice(pp["relation"], "peer relation", PEER_RELATIONS),
                    )
                    for pp in p.get("peer_preferences", [])
                ),
                learning_style=(
                    _choice(p["learning_style"], "learning_style", LEARNING_STYLES)
                    if p.get("learning_style")
                    else None
                ),
            )
            for p in raw.get("parent_preferences", [])
        )

        teacher_surveys = tuple(
            TeacherSurvey(
                teacher_id=str(ts["teacher_id"]),
                student_pairs=tuple(
                    StudentPair(
                        student_a=str(pair["student_a"]),
                        student_b=str(pair["student_b"]),
                        relation=_choice(pair["relation"], "pair relation", PAIR_RELATIONS),
                    )
                    for pair in ts.get("student_pairs", [])
                ),
                special_considerations=tuple(
                    SpecialConsideration(
                        student_id=str(sc["student_id"]),
                        details=dict(sc.get("details", {})),
                    )
                    for sc in ts.get("special_considerations", [])
                ),
            )
            for ts in raw.get("teacher_surveys", [])
        )

        constraints = tuple(
            PlacementConstraint(
                kind=_choice(CONSTRAINT_ALIASES.get(con["type"], con["type"]), "constraint type", CONSTRAINT_KINDS),
                student_ids=tuple(str(x) for x in con["student_ids"]),
                teacher_id=None if con.get("teacher_id") is None else str(con["teacher_id"]),
                reason=con.get("reason"),
            )
            for con in raw.get("constraints", [])
        )

        class_count = _int(raw["class_count"], "class_count")
        weights = raw.get("weights", DEFAULT_WEIGHTS)
        options = SearchOptions(**raw.get("options", {}))
    except InvalidInput:
        raise
    except KeyError as exc:
        raise InvalidInput(f"missing required field {exc.args[0]!r}") from exc
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"malformed class problem: {exc}") from exc

    validate_weights(weights)
    options.validate()

    return ClassProblem(
        students=students,
        teachers=teachers,
        class_count=class_count,
        parent_preferences=parent_preferences,
        teacher_surveys=teacher_surveys,
        constraints=constraints,
        weights=dict(weights),
        options=options,
    )


def load_class_problem_from_json(path: str) -> ClassProblem:
    """Load a `ClassProblem` from a JSON file."""

    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    if not isinstance(raw, dict):
        raise InvalidInput("class problem JSON must contain an object")
    return problem_from_dict(raw)


# -------------------------------------------------
# Solve
# -------------------------------------------------


def solve_class_placement(
    problem: ClassProblem,
    rng: Optional[random.Random] = None,
) -> OptimizationResult:
    """Build a random initial assignment and optimize it.

    The same random source drives the initial shuffle and the search, so a
    seeded `rng` (or `problem.options.seed`) makes the whole run reproducible.
    """

    if rng is None:
        rng = random.Random(problem.options.seed)

    initial = build_initial_assignment(problem.students, problem.teachers, problem.class_count, rng)
    return optimize(
        initial,
        problem.weights,
        problem.parent_preferences,
        problem.teacher_surveys,
        options=problem.options,
        rng=rng,
        constraints=problem.constraints,
    )
