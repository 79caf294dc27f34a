import random
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

# Ensure project root is on PYTHONPATH
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from class_placement import (
    FACTORS,
    Cancelled,
    ClassGroup,
    DegenerateSearch,
    InvalidInput,
    ParentPreference,
    PeerPreference,
    PlacementConstraint,
    SearchOptions,
    Student,
    StudentPair,
    Teacher,
    TeacherSurvey,
    assignment_from_classes,
    build_initial_assignment,
    optimize,
    score,
    submit_optimization,
    validate_assignment,
)
from class_placement.reporting import total_score


ALL_ONES = {f: 1.0 for f in FACTORS}


def _grade(n: int = 15, classes: int = 3):
    students = [
        Student(
            student_id=f"S{i:02d}",
            academic_level=1 + (i * 7) % 4,
            behavioral_score=1 + (i * 3) % 4,
            special_needs=i % 5 == 0,
            gender="F" if i % 3 else "M",
        )
        for i in range(n)
    ]
    styles = ["lecture", "hands_on", "multimedia", "mixed"]
    teachers = [Teacher(teacher_id=f"T{c + 1}", teaching_style=styles[c % 4]) for c in range(classes)]
    prefs = [
        ParentPreference(student_id="S01", preferred_teacher_ids=("T1",), learning_style="auditory"),
        ParentPreference(student_id="S02", peer_preferences=(PeerPreference("S03", "together"),)),
    ]
    surveys = [TeacherSurvey(teacher_id="T2", student_pairs=(StudentPair("S04", "S05", "should_separate"),))]
    return students, teachers, prefs, surveys


def _polarized_students():
    return [Student(student_id=f"S{i:02d}", academic_level=4 if i < 10 else 1) for i in range(20)]


def test_search_never_scores_below_initial():
    students, teachers, prefs, surveys = _grade()
    options = SearchOptions(max_iterations=300, initial_temperature=5.0, cooling_rate=0.98)

    for seed in range(5):
        rng = random.Random(seed)
        initial = build_initial_assignment(students, teachers, 3, rng)
        initial_score = score(initial, ALL_ONES, prefs, surveys)

        result = optimize(initial, ALL_ONES, prefs, surveys, options, rng)

        assert result.score >= initial_score
        validate_assignment(result.assignment)


def test_search_is_reproducible_with_same_seed():
    students, teachers, prefs, surveys = _grade()
    options = SearchOptions(max_iterations=400, initial_temperature=10.0, cooling_rate=0.97)

    def run():
        rng = random.Random(21)
        initial = build_initial_assignment(students, teachers, 3, rng)
        return optimize(initial, ALL_ONES, prefs, surveys, options, rng)

    first = run()
    second = run()

    assert first.assignment == second.assignment
    assert first.assignment.classes == second.assignment.classes
    assert first.score == second.score


def test_details_agree_with_returned_score():
    students, teachers, prefs, surveys = _grade()
    weights = {"academic_balance": 2.0, "gender_balance": 0.5, "parent_preferences": 3.0}
    rng = random.Random(2)
    initial = build_initial_assignment(students, teachers, 3, rng)

    result = optimize(initial, weights, prefs, surveys, SearchOptions(max_iterations=200), rng)

    assert list(result.details) == list(FACTORS)
    assert total_score(result.details) == result.score
    assert result.score == score(result.assignment, weights, prefs, surveys)
    assert result.details["academic_balance"].weight == 2.0
    assert result.details["class_size"].weight == 0.0


def test_zero_iterations_returns_initial_assignment():
    students, teachers, prefs, surveys = _grade()
    initial = build_initial_assignment(students, teachers, 3, random.Random(1))

    result = optimize(initial, ALL_ONES, prefs, surveys, SearchOptions(max_iterations=0), random.Random(1))

    assert result.assignment == initial
    assert result.score == score(initial, ALL_ONES, prefs, surveys)
    assert result.metrics["total_steps"] == 0.0


def test_single_class_is_a_degenerate_search():
    students, teachers, prefs, surveys = _grade(classes=1)
    initial = build_initial_assignment(students, teachers, 1, random.Random(1))

    with pytest.raises(DegenerateSearch):
        optimize(initial, ALL_ONES, prefs, surveys, SearchOptions(max_iterations=10))

    # nothing to search, nothing to fail
    result = optimize(initial, ALL_ONES, prefs, surveys, SearchOptions(max_iterations=0))
    assert result.assignment == initial


def test_malformed_weights_fail_before_search():
    students, teachers, prefs, surveys = _grade()
    initial = build_initial_assignment(students, teachers, 3, random.Random(1))

    with pytest.raises(InvalidInput):
        optimize(initial, {"academic_balance": "lots"}, prefs, surveys)


@pytest.mark.parametrize(
    "options",
    [
        SearchOptions(initial_temperature=0.0),
        SearchOptions(cooling_rate=0.0),
        SearchOptions(cooling_rate=1.5),
        SearchOptions(consideration_policy="guess"),
    ],
)
def test_bad_options_are_rejected(options):
    students, teachers, prefs, surveys = _grade()
    initial = build_initial_assignment(students, teachers, 3, random.Random(1))

    with pytest.raises(InvalidInput):
        optimize(initial, ALL_ONES, prefs, surveys, options)


def test_academic_only_search_leaves_the_mixed_split():
    students = _polarized_students()
    teachers = [Teacher("T1"), Teacher("T2")]
    high = [s.student_id for s in students[:10]]
    low = [s.student_id for s in students[10:]]

    # 5/5 mix in both classes
    mixed = assignment_from_classes(
        students,
        teachers,
        [ClassGroup("class_1", "T1", tuple(high[:5] + low[:5])), ClassGroup("class_2", "T2", tuple(high[5:] + low[5:]))],
    )
    # fully homogeneous classes (10 level-4 / 10 level-1)
    split = assignment_from_classes(
        students,
        teachers,
        [ClassGroup("class_1", "T1", tuple(high)), ClassGroup("class_2", "T2", tuple(low))],
    )
    weights = {"academic_balance": 1.0}

    mixed_score = score(mixed, weights)
    split_score = score(split, weights)
    assert mixed_score == pytest.approx(1 / (1 + 2.25))
    assert split_score == 1.0

    result = optimize(
        mixed,
        weights,
        options=SearchOptions(max_iterations=1000, initial_temperature=100.0, cooling_rate=0.95),
        rng=random.Random(13),
    )

    # the per-class variance formula rewards homogeneous classes
    assert result.score > 0.5 > mixed_score
    assert result.score <= split_score
    assert result.assignment.class_sizes() == [10, 10]


def test_cancellation_keeps_best_so_far():
    students, teachers, prefs, surveys = _grade()
    rng = random.Random(4)
    initial = build_initial_assignment(students, teachers, 3, rng)
    initial_score = score(initial, ALL_ONES, prefs, surveys)

    calls = {"n": 0}

    def stop_after_ten() -> bool:
        calls["n"] += 1
        return calls["n"] > 10

    with pytest.raises(Cancelled) as excinfo:
        optimize(
            initial,
            ALL_ONES,
            prefs,
            surveys,
            SearchOptions(max_iterations=10_000),
            rng,
            should_stop=stop_after_ten,
        )

    partial = excinfo.value.result
    assert partial is not None
    assert partial.metrics["total_steps"] == 10.0
    assert partial.score >= initial_score
    validate_assignment(partial.assignment)


def test_metrics_report_parent_request_fulfillment():
    students, teachers, prefs, surveys = _grade()
    initial = build_initial_assignment(students, teachers, 3, random.Random(6))

    result = optimize(initial, ALL_ONES, prefs, surveys, SearchOptions(max_iterations=50), random.Random(6))

    assert result.metrics["total_students"] == 15.0
    assert result.metrics["class_count"] == 3.0
    assert result.metrics["average_class_size"] == 5.0
    # S01: teacher + learning style, S02: one peer
    assert result.metrics["parent_requests_total"] == 3.0
    assert 0.0 <= result.metrics["parent_requests_fulfilled"] <= 3.0


def test_background_run_matches_synchronous_run():
    students, teachers, prefs, surveys = _grade()
    initial = build_initial_assignment(students, teachers, 3, random.Random(1))
    options = SearchOptions(max_iterations=200, initial_temperature=5.0, cooling_rate=0.98)

    expected = optimize(initial, ALL_ONES, prefs, surveys, options, random.Random(99))

    with ThreadPoolExecutor(max_workers=2) as pool:
        handles = [submit_optimization(pool, initial, ALL_ONES, prefs, surveys, options, seed=99) for _ in range(2)]
        results = [h.result(timeout=60) for h in handles]

    for r in results:
        assert r.assignment == expected.assignment
        assert r.score == expected.score


def test_cancel_before_start_prevents_run():
    students, teachers, prefs, surveys = _grade()
    initial = build_initial_assignment(students, teachers, 3, random.Random(1))
    gate = threading.Event()

    with ThreadPoolExecutor(max_workers=1) as pool:
        blocker = pool.submit(gate.wait, 30)
        handle = submit_optimization(pool, initial, ALL_ONES, prefs, surveys, SearchOptions(max_iterations=100))
        handle.cancel()
        gate.set()
        blocker.result(timeout=30)

    assert handle.stop_event.is_set()
    assert handle.future.cancelled()


def test_cancel_during_run_raises_with_best_so_far():
    students, teachers, prefs, surveys = _grade()
    initial = build_initial_assignment(students, teachers, 3, random.Random(1))
    initial_score = score(initial, ALL_ONES, prefs, surveys)
    options = SearchOptions(max_iterations=10_000_000, initial_temperature=5.0, cooling_rate=0.999)

    with ThreadPoolExecutor(max_workers=1) as pool:
        handle = submit_optimization(pool, initial, ALL_ONES, prefs, surveys, options, seed=3)

        deadline = time.monotonic() + 30
        while not handle.future.running() and time.monotonic() < deadline:
            time.sleep(0.01)
        assert handle.future.running()

        handle.cancel()
        with pytest.raises(Cancelled) as excinfo:
            handle.result(timeout=60)

    # a running future cannot be cancelled; the search stops itself instead
    assert not handle.future.cancelled()
    partial = excinfo.value.result
    assert partial is not None
    assert partial.metrics["total_steps"] < options.max_iterations
    assert partial.score >= initial_score
    validate_assignment(partial.assignment)


def _pairs_problem():
    students = [Student(sid, academic_level=lvl) for sid, lvl in [("A", 1), ("B", 4), ("C", 1), ("D", 4)]]
    teachers = [Teacher("T1"), Teacher("T2")]
    initial = assignment_from_classes(
        students,
        teachers,
        [ClassGroup("class_1", "T1", ("A", "B")), ClassGroup("class_2", "T2", ("C", "D"))],
    )
    return initial


def test_constraints_gate_candidates():
    initial = _pairs_problem()
    options = SearchOptions(max_iterations=200)

    # with nothing to gain every candidate ties and is accepted
    free = optimize(initial, {}, options=options, rng=random.Random(8))
    assert free.metrics["accepted_moves"] == 200.0

    # swaps split a pair, teacher swaps take A away from T1, moves never apply at 2/2
    constraints = [
        PlacementConstraint("must_be_together", ("A", "B")),
        PlacementConstraint("must_be_together", ("C", "D")),
        PlacementConstraint("prefer_teacher", ("A",), teacher_id="T1"),
    ]
    gated = optimize(initial, {}, options=options, rng=random.Random(8), constraints=constraints)

    assert gated.metrics["accepted_moves"] == 0.0
    assert gated.assignment == initial
    assert gated.violations == []
    assert gated.metrics["constraints_total"] == 3.0
    assert gated.metrics["constraint_violations"] == 0.0


def test_satisfied_constraints_stay_satisfied():
    students, teachers, prefs, surveys = _grade()
    options = SearchOptions(max_iterations=400, initial_temperature=5.0, cooling_rate=0.98)

    for seed in range(3):
        rng = random.Random(seed)
        initial = build_initial_assignment(students, teachers, 3, rng)
        first, second = initial.classes[0].student_ids[:2]
        other = initial.classes[1].student_ids[0]
        constraints = [
            PlacementConstraint("must_be_together", (first, second)),
            PlacementConstraint("must_be_separate", (first, other)),
            PlacementConstraint("avoid_teacher", (other,), teacher_id=initial.classes[0].teacher_id),
        ]

        result = optimize(initial, ALL_ONES, prefs, surveys, options, rng, constraints=constraints)

        assert result.violations == []
        assert result.metrics["constraint_violations"] == 0.0
        assert result.score >= score(initial, ALL_ONES, prefs, surveys)


def test_initial_violations_are_reported_not_added_to():
    initial = _pairs_problem()
    broken = PlacementConstraint("must_be_separate", ("A", "B"), reason="Sibling request")

    result = optimize(
        initial,
        {"academic_balance": 1.0},
        options=SearchOptions(max_iterations=300),
        rng=random.Random(2),
        constraints=[broken],
    )

    assert result.metrics["constraint_violations"] == float(len(result.violations))
    assert result.violations in ([], [broken])


def test_unknown_constraint_student_is_rejected():
    initial = _pairs_problem()

    with pytest.raises(InvalidInput):
        optimize(initial, {}, constraints=[PlacementConstraint("must_be_together", ("A", "Z"))])
