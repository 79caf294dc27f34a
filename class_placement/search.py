"""Class placement search driver.

Ties the scorer and the neighbor generator to the annealing engine from
`optimizer.annealing`:

    result = optimize(initial, weights, parent_preferences, teacher_surveys,
                      SearchOptions(max_iterations=1000), rng=random.Random(7))

The search is CPU bound and synchronous. `submit_optimization` runs it on a
`concurrent.futures` executor instead, with a cancel handle checked once per
iteration.
"""

from __future__ import annotations

from concurrent.futures import Executor, Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import logging
import math
import numbers
import random
import threading

from optimizer import AnnealConfig, anneal
from optimizer.annealing import CallbackFn

from .errors import Cancelled, InvalidInput
from .model import (
    Assignment,
    ParentPreference,
    PlacementConstraint,
    TeacherSurvey,
    validate_assignment,
    validate_constraints,
)
from .neighbors import neighbor, require_swappable
from .reporting import FactorScore, details, total_score
from .scoring import (
    CONSIDERATION_POLICIES,
    constraint_violations,
    parent_preference_counts,
    score,
    validate_weights,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchOptions:
    """User-tunable search settings.

    Attributes:
        max_iterations: Number of neighbor evaluations. Zero or less skips the
            search and returns the initial assignment.
        initial_temperature: Starting temperature (> 0).
        cooling_rate: Temperature multiplier per iteration, in (0, 1].
        seed: Seed for the random source when none is injected.
        consideration_policy: How survey special considerations are scored
            ("assume_satisfied" or "ignore").
    """

    max_iterations: int = 1000
    initial_temperature: float = 100.0
    cooling_rate: float = 0.95
    seed: Optional[int] = 42
    consideration_policy: str = "assume_satisfied"

    def validate(self) -> None:
        if isinstance(self.max_iterations, bool) or not isinstance(self.max_iterations, numbers.Integral):
            raise InvalidInput(f"max_iterations must be an integer, got {self.max_iterations!r}")
        if not isinstance(self.initial_temperature, numbers.Real) or not (
            math.isfinite(self.initial_temperature) and self.initial_temperature > 0
        ):
            raise InvalidInput(f"initial_temperature must be > 0, got {self.initial_temperature!r}")
        if not isinstance(self.cooling_rate, numbers.Real) or not 0 < self.cooling_rate <= 1:
            raise InvalidInput(f"cooling_rate must be in (0, 1], got {self.cooling_rate!r}")
        if self.consideration_policy not in CONSIDERATION_POLICIES:
            raise InvalidInput(
                f"consideration_policy must be one of {', '.join(CONSIDERATION_POLICIES)}"
            )

    def to_anneal_config(self) -> AnnealConfig:
        return AnnealConfig(
            steps=int(self.max_iterations),
            t_start=float(self.initial_temperature),
            cooling_rate=float(self.cooling_rate),
        )


@dataclass
class OptimizationResult:
    assignment: Assignment
    score: float
    details: Dict[str, FactorScore]
    metrics: Dict[str, float] = field(default_factory=dict)
    violations: List[PlacementConstraint] = field(default_factory=list)


def compute_metrics(
    assignment: Assignment,
    parent_preferences: Sequence[ParentPreference],
    constraints: Sequence[PlacementConstraint] = (),
) -> Dict[str, float]:
    """Summary numbers shown next to the per-factor breakdown."""

    total_students = len(assignment.students)
    fulfilled, requested = parent_preference_counts(assignment, parent_preferences)
    return {
        "total_students": float(total_students),
        "class_count": float(assignment.class_count),
        "average_class_size": total_students / assignment.class_count,
        "parent_requests_fulfilled": float(fulfilled),
        "parent_requests_total": float(requested),
        "constraints_total": float(len(constraints)),
        "constraint_violations": float(len(constraint_violations(assignment, constraints))),
    }


def optimize(
    initial: Assignment,
    weights: Mapping[str, Any],
    parent_preferences: Sequence[ParentPreference] = (),
    teacher_surveys: Sequence[TeacherSurvey] = (),
    options: SearchOptions = SearchOptions(),
    rng: Optional[random.Random] = None,
    *,
    constraints: Sequence[PlacementConstraint] = (),
    should_stop: Optional[Callable[[], bool]] = None,
    callback: Optional[CallbackFn] = None,
) -> OptimizationResult:
    """Search for a high-scoring assignment by simulated annealing.

    Administrator `constraints` act as a gate, not as a score term: a
    candidate that breaks more constraints than the current assignment is
    discarded without scoring. Violations present in `initial` can be
    repaired by the search but are never added to.

    Raises:
        InvalidInput: malformed weights, options, constraints or initial
            assignment.
        DegenerateSearch: fewer than two classes and a search was requested.
        Cancelled: `should_stop` returned True; `.result` holds the best
            assignment found before the stop.
    """

    w = validate_weights(weights)
    options.validate()
    validate_assignment(initial)
    rules = tuple(constraints)
    validate_constraints(initial, rules)
    if options.max_iterations > 0:
        require_swappable(initial)

    if rng is None:
        rng = random.Random(options.seed)

    policy = options.consideration_policy
    prefs = tuple(parent_preferences)
    surveys = tuple(teacher_surveys)

    def score_fn(state: Assignment) -> float:
        return score(state, w, prefs, surveys, consideration_policy=policy)

    def within_constraints(candidate: Assignment, current: Assignment) -> bool:
        return len(constraint_violations(candidate, rules)) <= len(constraint_violations(current, rules))

    logger.info(
        "Optimizing %d students into %d classes (%d iterations, T0=%s, cooling=%s, %d constraints)",
        len(initial.students),
        initial.class_count,
        max(options.max_iterations, 0),
        options.initial_temperature,
        options.cooling_rate,
        len(rules),
    )

    run = anneal(
        initial_state=initial,
        neighbor=neighbor,
        score=score_fn,
        rng=rng,
        config=options.to_anneal_config(),
        callback=callback,
        should_stop=should_stop,
        allow=within_constraints if rules else None,
    )

    metrics = compute_metrics(run.best_state, prefs, rules)
    metrics["accepted_moves"] = float(run.accepted_moves)
    metrics["total_steps"] = float(run.total_steps)
    metrics["best_step"] = float(run.best_step)

    breakdown = details(run.best_state, w, prefs, surveys, consideration_policy=policy)
    result = OptimizationResult(
        assignment=run.best_state,
        score=total_score(breakdown),
        details=breakdown,
        metrics=metrics,
        violations=constraint_violations(run.best_state, rules),
    )

    if run.stopped:
        logger.warning(
            "Optimization cancelled after %d of %d iterations (best score %.4f)",
            run.total_steps,
            options.max_iterations,
            run.best_score,
        )
        raise Cancelled(
            f"optimization cancelled after {run.total_steps} iterations",
            result=result,
        )

    if result.violations:
        logger.warning("%d of %d constraints still violated", len(result.violations), len(rules))

    logger.info(
        "Optimization finished: best score %.4f at step %d, %d/%d moves accepted",
        run.best_score,
        run.best_step,
        run.accepted_moves,
        run.total_steps,
    )
    return result


@dataclass
class OptimizationHandle:
    """A search running on an executor."""

    future: "Future[OptimizationResult]"
    stop_event: threading.Event

    def cancel(self) -> None:
        """Ask the search to stop at its next iteration."""

        self.stop_event.set()
        self.future.cancel()

    def result(self, timeout: Optional[float] = None) -> OptimizationResult:
        return self.future.result(timeout=timeout)


def submit_optimization(
    executor: Executor,
    initial: Assignment,
    weights: Mapping[str, Any],
    parent_preferences: Sequence[ParentPreference] = (),
    teacher_surveys: Sequence[TeacherSurvey] = (),
    options: SearchOptions = SearchOptions(),
    seed: Optional[int] = None,
    *,
    constraints: Sequence[PlacementConstraint] = (),
) -> OptimizationHandle:
    """Run `optimize` on `executor` with its own random source.

    Each call creates a fresh `random.Random`, so concurrent runs (one per
    grade, say) neither share nor contend for a generator.
    """

    rng = random.Random(options.seed if seed is None else seed)
    stop_event = threading.Event()
    future = executor.submit(
        optimize,
        initial,
        weights,
        tuple(parent_preferences),
        tuple(teacher_surveys),
        options,
        rng,
        constraints=tuple(constraints),
        should_stop=stop_event.is_set,
    )
    return OptimizationHandle(future=future, stop_event=stop_event)
