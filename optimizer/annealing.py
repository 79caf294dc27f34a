"""Simulated annealing engine.

This module provides a reusable, problem-agnostic search loop. The class
placement problem (see `class_placement.search`) plugs its own neighbor and
score functions into it.

The engine MAXIMIZES a score function:

- a candidate with a higher score is always accepted
- a worse candidate is accepted with the Metropolis probability
  exp(delta / T), where delta = candidate_score - current_score (<= 0)
- the temperature is multiplied by `cooling_rate` after every step,
  whether or not the candidate was accepted

The best state is only replaced on strict improvement, so the returned best
score is never lower than the initial score.

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Optional, Protocol, TypeVar

import math
import random


TState = TypeVar("TState")


class NeighborFn(Protocol[TState]):
    def __call__(self, state: TState, rng: random.Random) -> TState:  # pragma: no cover
        """Return a randomly sampled neighbor of `state`."""


class ScoreFn(Protocol[TState]):
    def __call__(self, state: TState) -> float:  # pragma: no cover
        """Return the score to MAXIMIZE."""


class CallbackFn(Protocol):
    def __call__(
        self,
        step: int,
        temperature: float,
        current_score: float,
        best_score: float,
        accepted: bool,
    ) -> None:  # pragma: no cover
        """Optional progress callback called each step."""


@dataclass(frozen=True)
class AnnealConfig:
    """Configuration for the annealing loop.

    Attributes:
        steps: Total number of iterations. Zero or less disables the search.
        t_start: Initial temperature.
        cooling_rate: Factor applied to the temperature after each step.
    """

    steps: int = 1000
    t_start: float = 100.0
    cooling_rate: float = 0.95


@dataclass
class AnnealResult(Generic[TState]):
    best_state: TState
    best_score: float
    best_step: int
    accepted_moves: int
    total_steps: int
    stopped: bool = False


def accept_probability(delta: float, temperature: float) -> float:
    """Metropolis acceptance probability for a maximization step."""

    if delta > 0:
        return 1.0
    if temperature <= 0:
        return 0.0
    return math.exp(delta / temperature)


def anneal(
    initial_state: TState,
    neighbor: NeighborFn[TState],
    score: ScoreFn[TState],
    rng: random.Random,
    config: AnnealConfig = AnnealConfig(),
    callback: Optional[CallbackFn] = None,
    should_stop: Optional[Callable[[], bool]] = None,
    allow: Optional[Callable[[TState, TState], bool]] = None,
) -> AnnealResult[TState]:
    """Run simulated annealing from `initial_state`.

    Contract:
    - Maximizes `score(state)`
    - `neighbor` must return a valid state
    - `should_stop` is polled once per step; when it returns True the loop
      ends early and the result is flagged with `stopped=True`
    - `allow(candidate, current)` gates candidates before scoring; a rejected
      candidate counts as a step that was not accepted

    Returns:
        AnnealResult with best_state and metrics.
    """

    current = initial_state
    current_score = score(current)

    best = current
    best_score = current_score
    best_step = 0
    accepted_moves = 0
    temperature = config.t_start

    steps_run = 0
    stopped = False

    for step in range(max(config.steps, 0)):
        if should_stop is not None and should_stop():
            stopped = True
            break

        cand = neighbor(current, rng)
        if allow is not None and not allow(cand, current):
            accepted = False
        else:
            cand_score = score(cand)
            delta = cand_score - current_score
            accepted = delta > 0 or rng.random() < accept_probability(delta, temperature)

        if accepted:
            current = cand
            current_score = cand_score
            accepted_moves += 1

            if current_score > best_score:
                best = current
                best_score = current_score
                best_step = step

        if callback is not None:
            callback(
                step=step,
                temperature=temperature,
                current_score=current_score,
                best_score=best_score,
                accepted=accepted,
            )

        temperature *= config.cooling_rate
        steps_run = step + 1

    return AnnealResult(
        best_state=best,
        best_score=best_score,
        best_step=best_step,
        accepted_moves=accepted_moves,
        total_steps=steps_run,
        stopped=stopped,
    )
