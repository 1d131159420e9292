#!/usr/bin/env python3
"""
Balance simulator: a greedy bot that clicks, buys and breaks through on a
scratch RunState until it reaches the mandatory wall or runs out of time.
It prices everything with the same production_rate/stage_requirement the live
engine uses, so its estimates cannot drift from the game.
"""
from __future__ import annotations

import argparse
import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from samsara.helper.progression_helpers import (
    derive_catalog,
    is_final_tier,
    production_rate,
    skill_cost,
    stage_requirement,
)
from samsara.lifecycle import at_wall, fresh_run
from samsara.models import BALANCE_CONFIG, BalanceConfig, RunState


@dataclass
class Purchase:
    id: str
    cost: int
    delta: float  # effective Qi/s gained
    value_per_cost: float


@dataclass
class SimulationResult:
    finished: bool
    time_seconds: float
    realm_index: int
    realm_name: str
    stage: int
    purchases: Dict[str, int] = field(default_factory=dict)

    @property
    def summary(self) -> str:
        if self.finished:
            return f"Finished at {self.time_seconds:.1f}s"
        return f"Not finished after {self.time_seconds:.0f}s"


def effective_rate(run: RunState, karma: float, cfg: BalanceConfig, click_rate: float) -> float:
    """Qi per second from passive production plus clicking at click_rate."""
    qps = production_rate("qps", run, karma, cfg)
    qpc = production_rate("qpc", run, karma, cfg)
    return qps + qpc * click_rate


def best_purchase(
    run: RunState, karma: float, cfg: BalanceConfig, click_rate: float
) -> Optional[Purchase]:
    """
    Affordable skill with the best production gain per Qi spent, or None.
    Offline-only skills add nothing while playing and are never picked.
    """
    before = effective_rate(run, karma, cfg, click_rate)
    best: Optional[Purchase] = None
    for skill in derive_catalog(cfg):
        if skill.kind == "offline_mult":
            continue
        level = run.skills.get(skill.id, 0)
        cost = skill_cost(skill.id, level, cfg)
        if cost <= 0 or run.qi < cost:
            continue
        trial = copy.deepcopy(run)
        trial.skills[skill.id] = level + 1
        delta = effective_rate(trial, karma, cfg, click_rate) - before
        value = delta / cost
        if best is None or value > best.value_per_cost:
            best = Purchase(id=skill.id, cost=cost, delta=delta, value_per_cost=value)
    return best


def _break_through_all(run: RunState, karma: float, cfg: BalanceConfig) -> bool:
    """
    Spend Qi on every affordable tier. Returns True once the wall (or the
    final tier) is affordable, which ends the simulation.
    """
    while True:
        req = stage_requirement(run.realm_index, run.stage, karma, cfg)
        if run.qi < req:
            return False
        if at_wall(run, cfg) or is_final_tier(run.realm_index, run.stage, cfg):
            return True
        run.qi -= req
        _advance(run, cfg)


def _advance(run: RunState, cfg: BalanceConfig) -> None:
    if run.stage < cfg.stages_per_realm:
        run.stage += 1
        return
    run.realm_index += 1
    run.stage = 1
    run.qpc_base += cfg.progression.realm_advance_qpc_add
    run.qps_base += cfg.progression.realm_advance_qps_add


def simulate_completion(
    cfg: BalanceConfig = BALANCE_CONFIG,
    seconds: float = 8 * 3600,
    click_rate: float = 3.0,
    dt: float = 0.1,
    buy_every: float = 0.25,
    karma: float = 0.0,
) -> SimulationResult:
    """
    Step a fresh run in dt increments. Aging is ignored: the question is how
    long the wall takes, not whether a life survives it.
    """
    if dt <= 0:
        raise ValueError("dt must be positive")
    run = fresh_run(cfg, karma)
    purchases: Dict[str, int] = {skill.id: 0 for skill in derive_catalog(cfg)}
    steps = int(seconds / dt)
    buy_acc = 0.0

    for step in range(steps):
        t = step * dt
        run.qi += effective_rate(run, karma, cfg, click_rate) * dt

        if _break_through_all(run, karma, cfg):
            return SimulationResult(
                finished=True,
                time_seconds=t,
                realm_index=run.realm_index,
                realm_name=cfg.realms[run.realm_index],
                stage=run.stage,
                purchases=purchases,
            )

        buy_acc += dt
        if buy_acc >= buy_every:
            buy_acc = 0.0
            best = best_purchase(run, karma, cfg, click_rate)
            if best is not None:
                run.qi -= best.cost
                run.skills[best.id] = run.skills.get(best.id, 0) + 1
                purchases[best.id] += 1

    return SimulationResult(
        finished=False,
        time_seconds=float(seconds),
        realm_index=run.realm_index,
        realm_name=cfg.realms[run.realm_index],
        stage=run.stage,
        purchases=purchases,
    )


# ---------- CLI ----------

PROFILES: List[Dict] = [
    {"label": "Casual (2 cps, 6h)", "seconds": 6 * 3600, "click_rate": 2.0},
    {"label": "Normal (3 cps, 6h)", "seconds": 6 * 3600, "click_rate": 3.0},
    {"label": "Dedicated (5 cps, 6h)", "seconds": 6 * 3600, "click_rate": 5.0},
    {"label": "Grinder (3 cps, 10h)", "seconds": 10 * 3600, "click_rate": 3.0},
]


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Estimate time to the mandatory wall.")
    parser.add_argument("--balance", help="path to an alternative balance JSON")
    parser.add_argument("--karma", type=float, default=0.0)
    parser.add_argument("--dt", type=float, default=0.1)
    args = parser.parse_args(argv)

    cfg = BalanceConfig.load_json(args.balance) if args.balance else BALANCE_CONFIG
    print("=== Completion simulator ===")
    for profile in PROFILES:
        result = simulate_completion(
            cfg,
            seconds=profile["seconds"],
            click_rate=profile["click_rate"],
            dt=args.dt,
            karma=args.karma,
        )
        print(
            f"{profile['label']} -> finished: {result.finished}, "
            f"time: {result.time_seconds / 3600:.2f}h, "
            f"progress: {result.realm_name} {result.stage}/{cfg.stages_per_realm}, "
            f"purchases: {result.purchases}"
        )


if __name__ == "__main__":
    main()
