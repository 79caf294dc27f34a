"""Neighbor moves for class placement.

Three moves, drawn 40 / 30 / 30:

- swap: exchange one student between two classes
- move: move one student from a larger class to a smaller one
- teacher_swap: exchange the teachers of two classes

A move that cannot apply to the drawn classes (swap with an empty class, move
towards a class that is not smaller) is dropped and the draw repeated among
the remaining moves. teacher_swap always applies, so every call returns an
assignment that differs from its input after at most three draws.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

import random

from .errors import DegenerateSearch
from .model import Assignment


MoveFn = Callable[[Assignment, random.Random], Optional[Assignment]]


def _two_classes(assignment: Assignment, rng: random.Random) -> Tuple[int, int]:
    a, b = rng.sample(range(assignment.class_count), 2)
    return a, b


def _replace_members(assignment: Assignment, updates: dict) -> Assignment:
    members = list(assignment.members)
    for c, idxs in updates.items():
        members[c] = idxs
    return assignment.with_changes(members=tuple(members))


def swap_students(assignment: Assignment, rng: random.Random) -> Optional[Assignment]:
    c1, c2 = _two_classes(assignment, rng)
    m1 = list(assignment.members[c1])
    m2 = list(assignment.members[c2])
    if not m1 or not m2:
        return None

    i1 = rng.randrange(len(m1))
    i2 = rng.randrange(len(m2))
    m1[i1], m2[i2] = m2[i2], m1[i1]
    return _replace_members(assignment, {c1: tuple(m1), c2: tuple(m2)})


def move_student(assignment: Assignment, rng: random.Random) -> Optional[Assignment]:
    src, dst = _two_classes(assignment, rng)
    from_members = list(assignment.members[src])
    to_members = list(assignment.members[dst])
    # Only shrink the larger class, never grow an imbalance.
    if len(from_members) <= len(to_members):
        return None

    student = from_members.pop(rng.randrange(len(from_members)))
    to_members.append(student)
    return _replace_members(assignment, {src: tuple(from_members), dst: tuple(to_members)})


def swap_teachers(assignment: Assignment, rng: random.Random) -> Optional[Assignment]:
    c1, c2 = _two_classes(assignment, rng)
    teacher_of = list(assignment.teacher_of)
    teacher_of[c1], teacher_of[c2] = teacher_of[c2], teacher_of[c1]
    return assignment.with_changes(teacher_of=tuple(teacher_of))


MOVES: Tuple[Tuple[str, float, MoveFn], ...] = (
    ("swap", 0.4, swap_students),
    ("move", 0.3, move_student),
    ("teacher_swap", 0.3, swap_teachers),
)


def _draw(moves: List[Tuple[str, float, MoveFn]], rng: random.Random) -> int:
    total = sum(w for _name, w, _fn in moves)
    pick = rng.random() * total
    acc = 0.0
    for i, (_name, w, _fn) in enumerate(moves):
        acc += w
        if pick < acc:
            return i
    return len(moves) - 1


def require_swappable(assignment: Assignment) -> None:
    if assignment.class_count < 2:
        raise DegenerateSearch(
            f"neighbor moves need at least 2 classes, got {assignment.class_count}"
        )


def neighbor(assignment: Assignment, rng: random.Random) -> Assignment:
    """Return a new assignment one structural move away from `assignment`."""

    require_swappable(assignment)

    remaining = list(MOVES)
    while remaining:
        i = _draw(remaining, rng)
        _name, _w, move = remaining.pop(i)
        candidate = move(assignment, rng)
        if candidate is not None:
            return candidate

    # unreachable: swap_teachers applies whenever there are two classes
    raise DegenerateSearch("no neighbor move could be applied")
