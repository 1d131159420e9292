#!/usr/bin/env python3
"""
Lifespan aging.

advance_age() is the single aging formula. Live ticks feed it elapsed seconds;
offline replay feeds it one lump of years through advance_years(). Because the
aging rate never depends on age, one lump step equals the sum of many small
steps up to float rounding.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from samsara.models import BalanceConfig, RunState


@dataclass(frozen=True)
class AgeStep:
    age: float
    exhausted: bool
    rejected: bool = False  # non-finite result, prior age kept


def clamp_age(age: float, lifespan_max: Optional[float]) -> float:
    if lifespan_max is None:
        return max(0.0, age)
    return max(0.0, min(age, lifespan_max))


def is_exhausted(age: float, lifespan_max: Optional[float]) -> bool:
    return lifespan_max is not None and age >= lifespan_max


def add_years(prior_age: float, years: float, lifespan_max: Optional[float]) -> AgeStep:
    if lifespan_max is None:
        # infinite lifespan: age is frozen
        return AgeStep(age=prior_age, exhausted=False)
    new_age = prior_age + max(0.0, years)
    if not math.isfinite(new_age):
        print(f"[aging] non-finite age {new_age!r}; keeping {prior_age}")
        return AgeStep(age=prior_age, exhausted=is_exhausted(prior_age, lifespan_max), rejected=True)
    new_age = clamp_age(new_age, lifespan_max)
    return AgeStep(age=new_age, exhausted=is_exhausted(new_age, lifespan_max))


def advance_age(
    prior_age: float,
    elapsed_seconds: float,
    speed: float,
    years_per_second: float,
    lifespan_max: Optional[float],
    transitioning: bool = False,
) -> AgeStep:
    """
    Pure aging step. Paused (speed <= 0), immortal or transitioning runs do not age.
    """
    if lifespan_max is None or speed <= 0 or transitioning:
        return AgeStep(age=prior_age, exhausted=False)
    years = max(0.0, elapsed_seconds) * speed * years_per_second
    return add_years(prior_age, years, lifespan_max)


class AgingEngine:
    def __init__(self, cfg: BalanceConfig) -> None:
        self.cfg = cfg

    def _apply(self, run: RunState, step: AgeStep) -> bool:
        run.age = step.age
        return step.exhausted

    def advance(self, run: RunState, elapsed_seconds: float, transitioning: bool = False) -> bool:
        """
        Age the run by a live tick. Returns True when the lifespan is used up;
        the caller must latch the death trigger in the same call.
        """
        step = advance_age(
            run.age,
            elapsed_seconds,
            run.time_speed,
            self.cfg.lifespan.years_per_second,
            run.lifespan_max,
            transitioning=transitioning,
        )
        return self._apply(run, step)

    def advance_years(self, run: RunState, years: float) -> bool:
        return self._apply(run, add_years(run.age, years, run.lifespan_max))
