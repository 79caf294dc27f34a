"""Data model for class placement.

An `Assignment` is stored by index rather than as nested copies:

- `members[c]` is the ordered tuple of student indices placed in class `c`
- `teacher_of[c]` is the index (into `teachers`) of the teacher bound to `c`

Assignments are immutable. A neighbor move rebuilds only the class tuples it
touches and shares the rest with its parent, so deriving a candidate costs
O(k) in the size of the touched classes instead of a full deep copy.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import random

from .errors import InvalidInput


TEACHING_STYLES = (
    "visual_aids",
    "multimedia",
    "lecture",
    "discussion",
    "hands_on",
    "interactive",
    "mixed",
    "balanced",
    "flexible",
)

LEARNING_STYLES = ("visual", "auditory", "kinesthetic", "mixed")

PEER_RELATIONS = ("together", "separate")
PAIR_RELATIONS = ("works_well", "should_separate")

CONSTRAINT_KINDS = ("must_be_together", "must_be_separate", "prefer_teacher", "avoid_teacher")
TEACHER_CONSTRAINT_KINDS = ("prefer_teacher", "avoid_teacher")

# Academic level and behavioral score share one ordinal scale.
LEVEL_SCALE = (1, 4)
DEFAULT_LEVEL = (LEVEL_SCALE[0] + LEVEL_SCALE[1]) / 2


# ----------------------------
# Rosters
# ----------------------------


@dataclass(frozen=True)
class Student:
    student_id: str
    academic_level: Optional[int] = None
    behavioral_score: Optional[int] = None
    special_needs: bool = False
    gender: str = "unspecified"


@dataclass(frozen=True)
class Teacher:
    teacher_id: str
    teaching_style: str = "mixed"


# ----------------------------
# Preferences / surveys
# ----------------------------


@dataclass(frozen=True)
class PeerPreference:
    peer_id: str
    relation: str  # together | separate


@dataclass(frozen=True)
class ParentPreference:
    student_id: str
    preferred_teacher_ids: Tuple[str, ...] = ()
    peer_preferences: Tuple[PeerPreference, ...] = ()
    learning_style: Optional[str] = None  # visual | auditory | kinesthetic | mixed


@dataclass(frozen=True)
class StudentPair:
    student_a: str
    student_b: str
    relation: str  # works_well | should_separate


@dataclass(frozen=True, eq=False)
class SpecialConsideration:
    student_id: str
    # Opaque record supplied by the survey form; not interpreted by the scorer.
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TeacherSurvey:
    teacher_id: str
    student_pairs: Tuple[StudentPair, ...] = ()
    special_considerations: Tuple[SpecialConsideration, ...] = ()


# ----------------------------
# Administrator constraints
# ----------------------------


@dataclass(frozen=True)
class PlacementConstraint:
    """A placement rule set by an administrator.

    - must_be_together: every listed student shares one class
    - must_be_separate: no two listed students share a class
    - prefer_teacher: every listed student is in `teacher_id`'s class
    - avoid_teacher: no listed student is in `teacher_id`'s class
    """

    kind: str
    student_ids: Tuple[str, ...]
    teacher_id: Optional[str] = None
    reason: Optional[str] = None


# ----------------------------
# Assignment
# ----------------------------


@dataclass(frozen=True)
class ClassGroup:
    class_id: str
    teacher_id: str
    student_ids: Tuple[str, ...]


@dataclass(frozen=True)
class Assignment:
    """A complete partition of `students` into teacher-bound classes.

    Two lookups are built on construction and are not dataclass fields:

    - `student_index`: student id -> index into `students`
    - `class_of`: student index -> class index (-1 while unplaced)
    """

    students: Tuple[Student, ...]
    teachers: Tuple[Teacher, ...]
    class_ids: Tuple[str, ...]
    members: Tuple[Tuple[int, ...], ...]
    teacher_of: Tuple[int, ...]

    def __post_init__(self) -> None:
        n = len(self.students)
        class_of = [-1] * n
        for c, idxs in enumerate(self.members):
            for i in idxs:
                if 0 <= i < n:
                    class_of[i] = c
        object.__setattr__(self, "student_index", {s.student_id: i for i, s in enumerate(self.students)})
        object.__setattr__(self, "class_of", tuple(class_of))

    @property
    def class_count(self) -> int:
        return len(self.class_ids)

    def class_sizes(self) -> List[int]:
        return [len(idxs) for idxs in self.members]

    def teacher_for(self, class_idx: int) -> Teacher:
        return self.teachers[self.teacher_of[class_idx]]

    def students_in(self, class_idx: int) -> List[Student]:
        return [self.students[i] for i in self.members[class_idx]]

    @property
    def classes(self) -> Tuple[ClassGroup, ...]:
        return tuple(
            ClassGroup(
                class_id=self.class_ids[c],
                teacher_id=self.teacher_for(c).teacher_id,
                student_ids=tuple(self.students[i].student_id for i in self.members[c]),
            )
            for c in range(self.class_count)
        )

    def with_changes(
        self,
        members: Optional[Tuple[Tuple[int, ...], ...]] = None,
        teacher_of: Optional[Tuple[int, ...]] = None,
    ) -> "Assignment":
        """Return a new Assignment sharing rosters and untouched classes."""

        return replace(
            self,
            members=self.members if members is None else members,
            teacher_of=self.teacher_of if teacher_of is None else teacher_of,
        )


def _require_unique(ids: Iterable[str], field_name: str) -> None:
    seen = set()
    for x in ids:
        if x in seen:
            raise InvalidInput(f"{field_name} contains duplicate id {x!r}")
        seen.add(x)


def validate_assignment(assignment: Assignment) -> None:
    """Raise InvalidInput unless ids are unique and every student is placed exactly once."""

    _require_unique((s.student_id for s in assignment.students), "students")
    _require_unique((t.teacher_id for t in assignment.teachers), "teachers")
    _require_unique(assignment.class_ids, "class_ids")

    n_classes = len(assignment.class_ids)
    if len(assignment.members) != n_classes or len(assignment.teacher_of) != n_classes:
        raise InvalidInput("class_ids, members and teacher_of must have the same length")

    for t in assignment.teacher_of:
        if not 0 <= t < len(assignment.teachers):
            raise InvalidInput(f"teacher index {t} is out of range")
    if len(set(assignment.teacher_of)) != n_classes:
        raise InvalidInput("a teacher is bound to more than one class")

    placed = [i for idxs in assignment.members for i in idxs]
    if sorted(placed) != list(range(len(assignment.students))):
        raise InvalidInput("every student must be placed in exactly one class")


def validate_constraints(assignment: Assignment, constraints: Sequence[PlacementConstraint]) -> None:
    """Raise InvalidInput for constraints that cannot refer to this roster."""

    teacher_ids = {t.teacher_id for t in assignment.teachers}
    for con in constraints:
        if con.kind not in CONSTRAINT_KINDS:
            raise InvalidInput(f"constraint kind must be one of {', '.join(CONSTRAINT_KINDS)}, got {con.kind!r}")
        unknown = [sid for sid in con.student_ids if sid not in assignment.student_index]
        if unknown:
            raise InvalidInput(f"{con.kind} constraint references unknown students {unknown}")

        if con.kind in TEACHER_CONSTRAINT_KINDS:
            if not con.student_ids:
                raise InvalidInput(f"{con.kind} constraint needs at least one student")
            if con.teacher_id not in teacher_ids:
                raise InvalidInput(f"{con.kind} constraint references unknown teacher {con.teacher_id!r}")
        elif len(set(con.student_ids)) < 2:
            raise InvalidInput(f"{con.kind} constraint needs at least two distinct students")


def build_initial_assignment(
    students: Sequence[Student],
    teachers: Sequence[Teacher],
    class_count: int,
    rng: random.Random,
) -> Assignment:
    """Shuffle the roster and split it into `class_count` contiguous classes.

    The first `len(students) % class_count` classes receive one extra student.
    `teachers[i]` is bound to class `i`.
    """

    if class_count < 1:
        raise InvalidInput(f"class_count must be >= 1, got {class_count}")
    if len(teachers) < class_count:
        raise InvalidInput(
            f"need at least {class_count} teachers for {class_count} classes, got {len(teachers)}"
        )
    _require_unique((s.student_id for s in students), "students")
    _require_unique((t.teacher_id for t in teachers), "teachers")

    order = list(range(len(students)))
    rng.shuffle(order)

    base, extra = divmod(len(students), class_count)
    members: List[Tuple[int, ...]] = []
    start = 0
    for c in range(class_count):
        size = base + (1 if c < extra else 0)
        members.append(tuple(order[start:start + size]))
        start += size

    return Assignment(
        students=tuple(students),
        teachers=tuple(teachers),
        class_ids=tuple(f"class_{c + 1}" for c in range(class_count)),
        members=tuple(members),
        teacher_of=tuple(range(class_count)),
    )


def assignment_from_classes(
    students: Sequence[Student],
    teachers: Sequence[Teacher],
    classes: Sequence[ClassGroup],
) -> Assignment:
    """Build an Assignment from explicit ClassGroups (ids, not indices)."""

    _require_unique((s.student_id for s in students), "students")
    _require_unique((t.teacher_id for t in teachers), "teachers")

    s_idx = {s.student_id: i for i, s in enumerate(students)}
    t_idx = {t.teacher_id: i for i, t in enumerate(teachers)}

    members: List[Tuple[int, ...]] = []
    teacher_of: List[int] = []
    for cg in classes:
        if cg.teacher_id not in t_idx:
            raise InvalidInput(f"class {cg.class_id!r} references unknown teacher {cg.teacher_id!r}")
        unknown = [sid for sid in cg.student_ids if sid not in s_idx]
        if unknown:
            raise InvalidInput(f"class {cg.class_id!r} references unknown students {unknown}")
        members.append(tuple(s_idx[sid] for sid in cg.student_ids))
        teacher_of.append(t_idx[cg.teacher_id])

    assignment = Assignment(
        students=tuple(students),
        teachers=tuple(teachers),
        class_ids=tuple(cg.class_id for cg in classes),
        members=tuple(members),
        teacher_of=tuple(teacher_of),
    )
    validate_assignment(assignment)
    return assignment
