#!/usr/bin/env python3
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple

from samsara.models import BalanceConfig, RunState, SoftCap


# ---------- Numeric safety ----------


def safe_number(value: object, default: float = 0.0) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def safe_add_qi(current: float, gain: float, ceiling: float) -> float:
    """
    Saturating add shared by ticks, clicks and offline replay.
    Non-finite or non-positive gains leave the balance untouched.
    """
    current = safe_number(current, 0.0)
    if not math.isfinite(gain) or gain <= 0:
        return max(0.0, min(current, ceiling))
    return max(0.0, min(current + gain, ceiling))


# ---------- Karma soft caps ----------


def soft_cap(karma: float, cap: SoftCap) -> float:
    k = max(0.0, safe_number(karma, 0.0))
    return 1.0 + cap.amplitude * (1.0 - math.exp(-cap.rate * k))


def karma_stage_mult(karma: float, cfg: BalanceConfig) -> float:
    return soft_cap(karma, cfg.karma.stage_ease)


def karma_qi_mult(karma: float, cfg: BalanceConfig) -> float:
    return soft_cap(karma, cfg.karma.qi_production)


def karma_life_mult(karma: float, cfg: BalanceConfig) -> float:
    return soft_cap(karma, cfg.karma.lifespan)


# ---------- Tiers and cycles ----------


def stage_requirement(realm_index: int, stage: int, karma: float, cfg: BalanceConfig) -> int:
    req = cfg.stage_requirement
    raw = (
        req.realm_base
        * req.realm_base_scale ** realm_index
        * req.stage_scale ** (stage - 1)
        / karma_stage_mult(karma, cfg)
    )
    if not math.isfinite(raw):
        return int(cfg.qi_ceiling)
    return max(0, math.floor(raw))


def cycle_for_realm(realm_index: int, cfg: BalanceConfig) -> str:
    for cycle in cfg.cycles:
        if cycle.start <= realm_index <= cycle.end:
            return cycle.name
    return cfg.cycles[0].name


def cycle_power_mult(realm_index: int, cfg: BalanceConfig) -> float:
    # linear inside a cycle, restarts at each cycle's first realm
    for cycle in cfg.cycles:
        if cycle.start <= realm_index <= cycle.end:
            return 1.0 + cycle.realm_bonus * (realm_index - cycle.start)
    return 1.0


def is_final_tier(realm_index: int, stage: int, cfg: BalanceConfig) -> bool:
    return realm_index >= len(cfg.realms) - 1 and stage >= cfg.stages_per_realm


def max_lifespan(realm_index: int, karma: float, cfg: BalanceConfig) -> Optional[float]:
    """
    Lifespan ceiling for a realm, or None for the infinite terminal realm.
    """
    table = cfg.lifespan.realm_max_lifespan
    index = min(max(int(realm_index), 0), len(table) - 1)
    base = table[index]
    if base is None:
        return None
    return float(math.floor(base * karma_life_mult(karma, cfg)))


# ---------- Skill catalog ----------


@dataclass(frozen=True)
class SkillDefinition:
    id: str
    name: str
    kind: str
    base: float
    cost: float
    cost_scale: float


Catalog = Tuple[SkillDefinition, ...]


def derive_catalog(cfg: BalanceConfig) -> Catalog:
    """
    Build the purchasable skill list from the balance config.
    Rebuild it whenever a different config is in play; nothing is cached.
    """
    skills = [
        SkillDefinition(
            id=skill_id,
            name=skill.name,
            kind=skill.kind,
            base=skill.base,
            cost=skill.cost,
            cost_scale=skill.cost_scale,
        )
        for skill_id, skill in cfg.skills.items()
    ]
    skills.sort(key=lambda s: (s.cost, s.id))
    return tuple(skills)


def skill_cost(skill_id: str, level: int, cfg: BalanceConfig) -> int:
    skill = cfg.skills[skill_id]
    return math.floor(skill.cost * skill.cost_scale ** max(int(level), 0))


def _skill_sum(run: RunState, kind: str, cfg: BalanceConfig) -> float:
    total = 0.0
    for skill_id, skill in cfg.skills.items():
        if skill.kind == kind:
            total += max(int(run.skills.get(skill_id, 0)), 0) * skill.base
    return total


# ---------- Production ----------


def production_rate(kind: str, run: RunState, karma: float, cfg: BalanceConfig) -> float:
    """
    Qi per click ("qpc") or per second ("qps") for any RunState-shaped input.
    Live ticks, clicks, offline replay and the simulator all call this.
    """
    if kind == "qpc":
        base = run.qpc_base
    elif kind == "qps":
        base = run.qps_base
    else:
        raise ValueError(f"unknown production kind: {kind}")
    additive = base + _skill_sum(run, kind, cfg)
    multiplier = 1.0 + _skill_sum(run, f"{kind}_mult", cfg)
    rate = (
        additive
        * multiplier
        * karma_qi_mult(karma, cfg)
        * cycle_power_mult(run.realm_index, cfg)
    )
    return safe_number(rate, 0.0)


def offline_multiplier(run: RunState, cfg: BalanceConfig) -> float:
    return 1.0 + _skill_sum(run, "offline_mult", cfg)
