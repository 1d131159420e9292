#!/usr/bin/env python3
"""
The player-facing engine: one explicitly owned RunState/MetaState pair plus the
lifecycle guard. Every entrypoint returns immediately, with no side effects,
while a transition is in flight.
"""
from __future__ import annotations

import time
from typing import Callable, List, Optional

from samsara.aging import AgingEngine
from samsara.helper.progression_helpers import (
    cycle_for_realm,
    is_final_tier,
    max_lifespan,
    production_rate,
    safe_add_qi,
    safe_number,
    skill_cost,
    stage_requirement,
)
from samsara.lifecycle import (
    Listener,
    LifecycleStateMachine,
    at_wall,
    base_speeds,
    check_request,
    fresh_meta,
    fresh_run,
    select_trigger,
)
from samsara.models import (
    BalanceConfig,
    BreakthroughResult,
    LifecycleGuard,
    MetaState,
    OfflineReport,
    PendingTransition,
    PurchaseResult,
    ReincarnateResult,
    RunState,
    SessionSnapshot,
    Trigger,
)
from samsara.offline import replay_offline


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


class Cultivation:
    def __init__(
        self,
        cfg: BalanceConfig,
        run: Optional[RunState] = None,
        meta: Optional[MetaState] = None,
        lifecycle: Optional[LifecycleGuard] = None,
        session: Optional[SessionSnapshot] = None,
        *,
        clock: Callable[[], int] = wall_clock_ms,
        auto_finalize: bool = True,
    ) -> None:
        self.cfg = cfg
        self.clock = clock
        # False: death waits for acknowledge() so a host can show a notice first
        self.auto_finalize = auto_finalize
        meta = meta or fresh_meta(cfg)
        run = run or fresh_run(cfg, meta.karma, clock())
        self.machine = LifecycleStateMachine(cfg, run, meta, lifecycle)
        self.aging = AgingEngine(cfg)
        self.session = session
        self.unlock_speeds()

    # ---------- State accessors ----------

    @property
    def run(self) -> RunState:
        return self.machine.run

    @property
    def meta(self) -> MetaState:
        return self.machine.meta

    @property
    def lifecycle(self) -> LifecycleGuard:
        return self.machine.guard

    @property
    def is_transitioning(self) -> bool:
        return self.machine.is_transitioning

    @property
    def pending(self) -> Optional[PendingTransition]:
        return self.machine.pending

    def subscribe(self, listener: Listener) -> None:
        self.machine.subscribe(listener)

    @property
    def speed(self) -> float:
        return self.run.time_speed

    def qpc(self) -> float:
        return production_rate("qpc", self.run, self.meta.karma, self.cfg)

    def qps(self) -> float:
        return production_rate("qps", self.run, self.meta.karma, self.cfg)

    def requirement(self) -> int:
        return stage_requirement(self.run.realm_index, self.run.stage, self.meta.karma, self.cfg)

    # ---------- Production ----------

    def _gain(self, amount: float) -> float:
        run = self.run
        before = run.qi
        run.qi = safe_add_qi(run.qi, amount, self.cfg.qi_ceiling)
        if amount > 0:
            run.lifetime_qi = safe_number(run.lifetime_qi + amount, 0.0)
        return run.qi - before

    def tick(self, elapsed_seconds: float) -> bool:
        """
        Advance one driver step. Returns True when the step did anything.
        """
        if self.is_transitioning or self.speed <= 0:
            return False
        effective = max(0.0, safe_number(elapsed_seconds, 0.0)) * self.speed
        self._gain(self.qps() * effective)
        exhausted = self.aging.advance(self.run, max(0.0, safe_number(elapsed_seconds, 0.0)))
        self._evaluate(exhausted)
        return True

    def click(self) -> float:
        if self.is_transitioning or self.speed <= 0:
            return 0.0
        return self._gain(self.qpc() * self.speed)

    def _evaluate(self, exhausted: bool) -> Optional[Trigger]:
        trigger = select_trigger(self.run, self.meta, self.cfg, exhausted)
        if trigger is None:
            return None
        now = self.clock()
        if self.machine.begin(trigger, now) is None:
            return None
        if trigger is not Trigger.DEATH or self.auto_finalize:
            self.machine.finalize(now)
        return trigger

    # ---------- Progression ----------

    def breakthrough(self) -> BreakthroughResult:
        if self.is_transitioning:
            return BreakthroughResult.BUSY
        run, cfg = self.run, self.cfg
        req = self.requirement()
        if run.qi < req:
            return BreakthroughResult.INSUFFICIENT_QI
        # nothing is spent at a wall; the host follows up with a reincarnation
        if at_wall(run, cfg) and not self.meta.flags.beyond_gate_unlocked:
            return BreakthroughResult.GATE_REACHED
        if is_final_tier(run.realm_index, run.stage, cfg):
            return BreakthroughResult.CYCLE_COMPLETE
        run.qi -= req
        if run.stage < cfg.stages_per_realm:
            run.stage += 1
            return BreakthroughResult.STAGE_ADVANCED
        self._advance_realm()
        return BreakthroughResult.REALM_ADVANCED

    def _advance_realm(self) -> None:
        run, cfg = self.run, self.cfg
        run.realm_index += 1
        run.stage = 1
        run.qpc_base += cfg.progression.realm_advance_qpc_add
        run.qps_base += cfg.progression.realm_advance_qps_add
        run.lifespan_max = max_lifespan(run.realm_index, self.meta.karma, cfg)
        run.age = 0.0
        run.current_cycle = cycle_for_realm(run.realm_index, cfg)
        self.unlock_speeds()

    def purchase(self, skill_id: str) -> PurchaseResult:
        if self.is_transitioning:
            return PurchaseResult.BUSY
        if skill_id not in self.cfg.skills:
            return PurchaseResult.UNKNOWN_SKILL
        level = self.run.skills.get(skill_id, 0)
        cost = skill_cost(skill_id, level, self.cfg)
        if self.run.qi < cost:
            return PurchaseResult.INSUFFICIENT_QI
        self.run.qi -= cost
        self.run.skills[skill_id] = level + 1
        return PurchaseResult.PURCHASED

    # ---------- Time speed ----------

    def unlock_speeds(self) -> None:
        table = self.cfg.time_speed
        unlocked = self.meta.unlocked_speeds
        unlocked |= base_speeds(self.cfg)
        for speed, realm in zip(table.speeds, table.unlock_realm_index):
            if self.run.realm_index >= realm:
                unlocked.add(float(speed))

    def available_speeds(self) -> List[float]:
        return sorted(self.meta.unlocked_speeds | base_speeds(self.cfg))

    def set_time_speed(self, speed: float) -> float:
        if self.is_transitioning:
            return self.speed
        speed = safe_number(speed, 1.0)
        if speed not in self.available_speeds():
            speed = 1.0
        self.run.time_speed = speed
        return speed

    # ---------- Suspend / resume ----------

    def on_suspend(self, now_ms: Optional[int] = None) -> SessionSnapshot:
        now = self.clock() if now_ms is None else now_ms
        self.session = SessionSnapshot(
            suspended_at_ms=now,
            speed=self.speed,
            realm_index=self.run.realm_index,
            qi=self.run.qi,
        )
        return self.session

    def on_resume(self, now_ms: Optional[int] = None) -> Optional[OfflineReport]:
        now = self.clock() if now_ms is None else now_ms
        snapshot, self.session = self.session, None
        if self.is_transitioning:
            return None
        report = replay_offline(snapshot, now, self.run, self.meta.karma, self.cfg)
        if report is not None and report.exhausted:
            self._evaluate(True)
        return report

    # ---------- Reincarnation ----------

    def request_reincarnate(self, mode: str | Trigger) -> ReincarnateResult:
        try:
            trigger = Trigger(mode)
        except ValueError:
            return ReincarnateResult.INVALID_MODE
        if trigger is Trigger.DEATH:
            return ReincarnateResult.INVALID_MODE
        if self.is_transitioning:
            return ReincarnateResult.BUSY
        verdict = check_request(trigger, self.run, self.meta, self.cfg)
        if verdict is not ReincarnateResult.ACCEPTED:
            return verdict
        self.machine.fire(trigger, self.clock())
        return ReincarnateResult.ACCEPTED

    def acknowledge(self) -> bool:
        """
        Resume a transition that was waiting on the player. Re-checks the guard
        first, so a stale acknowledgment is a no-op.
        """
        if not self.is_transitioning or self.pending is None:
            return False
        return self.machine.finalize(self.clock()) is not None

    def full_reset(self) -> None:
        meta = fresh_meta(self.cfg)
        self.machine.replace(fresh_run(self.cfg, meta.karma, self.clock()), meta)
        self.session = None
        print("[lifecycle] full reset")
