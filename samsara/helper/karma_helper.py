#!/usr/bin/env python3
from __future__ import annotations

import math

from samsara.models import BalanceConfig, MetaState, RunState, Trigger

from .progression_helpers import (
    karma_life_mult,
    karma_qi_mult,
    karma_stage_mult,
    safe_number,
)


def base_karma_gain(run: RunState, cfg: BalanceConfig) -> float:
    """
    Karma earned by a full-value reincarnation of this run:
    max(min_karma, floor(sqrt(lifetime_qi / divisor)) + realm * factor) * cycle multiplier.
    A corrupted lifetime Qi counts as zero for this computation only.
    """
    rules = cfg.reincarnation
    lifetime_qi = safe_number(run.lifetime_qi, 0.0)
    if lifetime_qi < 0:
        lifetime_qi = 0.0
    from_qi = math.floor(math.sqrt(lifetime_qi / rules.lifetime_qi_divisor))
    realm_bonus = run.realm_index * rules.realm_karma_factor
    cycle_mult = rules.cycle_karma_multiplier.get(run.current_cycle, 1.0)
    gain = max(rules.min_karma, from_qi + realm_bonus) * cycle_mult
    return safe_number(gain, rules.min_karma)


def karma_gain(trigger: Trigger, run: RunState, cfg: BalanceConfig) -> float:
    base = base_karma_gain(run, cfg)
    if trigger is Trigger.DEATH:
        rules = cfg.reincarnation
        return max(rules.min_karma, float(math.floor(base * rules.death_penalty)))
    return base


class KarmaLedger:
    """
    The only writer of MetaState.karma. Karma never decreases.
    """

    def __init__(self, meta: MetaState, cfg: BalanceConfig) -> None:
        self.meta = meta
        self.cfg = cfg

    @property
    def karma(self) -> float:
        return self.meta.karma

    def add(self, gain: float) -> float:
        applied = safe_number(gain, 0.0)
        if applied < 0:
            applied = 0.0
        if applied != gain:
            print(f"[karma] rejected gain {gain!r}; applying {applied}")
        total = self.meta.karma + applied
        if not math.isfinite(total):
            print("[karma] total overflowed; keeping previous karma")
            return 0.0
        self.meta.karma = total
        return applied

    @property
    def qi_mult(self) -> float:
        return karma_qi_mult(self.meta.karma, self.cfg)

    @property
    def life_mult(self) -> float:
        return karma_life_mult(self.meta.karma, self.cfg)

    @property
    def stage_mult(self) -> float:
        return karma_stage_mult(self.meta.karma, self.cfg)
