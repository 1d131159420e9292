#!/usr/bin/env python3
"""
Reincarnation / death state machine.

LIVING -> TRANSITIONING -> LIVING (fresh run). Exactly one transition can be in
flight; while it is, the guard tells every tick, click and replay to do nothing.
begin() latches the guard and prices the transition, finalize() commits it.
Hosts that show the player a notice in between call them separately; everyone
else uses fire().
"""
from __future__ import annotations

import copy
from typing import Callable, List, Optional

from samsara.helper.karma_helper import KarmaLedger, karma_gain
from samsara.helper.progression_helpers import cycle_for_realm, max_lifespan
from samsara.models import (
    BalanceConfig,
    LifecycleGuard,
    LifecyclePhase,
    MetaState,
    PendingTransition,
    ReincarnateResult,
    RunStarted,
    RunState,
    Trigger,
)

Listener = Callable[[RunStarted], None]


def base_speeds(cfg: BalanceConfig) -> set[float]:
    return {float(s) for s in cfg.time_speed.base_speeds}


def fresh_run(cfg: BalanceConfig, karma: float, now_ms: int = 0) -> RunState:
    """
    A brand new life at the first realm, stage 1, age 0.
    """
    return RunState(
        qi=0.0,
        qpc_base=cfg.progression.qpc_base_start,
        qps_base=cfg.progression.qps_base_start,
        realm_index=0,
        stage=1,
        age=0.0,
        lifespan_max=max_lifespan(0, karma, cfg),
        current_cycle=cycle_for_realm(0, cfg),
        skills={},
        lifetime_qi=0.0,
        time_speed=1.0,
        started_at_ms=now_ms,
    )


def fresh_meta(cfg: BalanceConfig) -> MetaState:
    return MetaState(unlocked_speeds=base_speeds(cfg))


# ---------- Preconditions ----------


def at_or_above(run: RunState, realm_index: int, stage: int) -> bool:
    return run.realm_index > realm_index or (
        run.realm_index == realm_index and run.stage >= stage
    )


def can_voluntary(run: RunState, meta: MetaState, cfg: BalanceConfig) -> bool:
    gates = cfg.gates
    return meta.flags.voluntary_unlocked and at_or_above(
        run, gates.voluntary_realm_index, gates.voluntary_stage
    )


def at_wall(run: RunState, cfg: BalanceConfig) -> bool:
    gates = cfg.gates
    return run.realm_index == gates.mandatory_realm_index and run.stage == gates.mandatory_stage


def can_mandatory(run: RunState, meta: MetaState, cfg: BalanceConfig) -> bool:
    return at_wall(run, cfg) and not meta.flags.mandatory_gate_completed


def check_request(trigger: Trigger, run: RunState, meta: MetaState, cfg: BalanceConfig) -> ReincarnateResult:
    if trigger is Trigger.VOLUNTARY:
        if not meta.flags.voluntary_unlocked:
            return ReincarnateResult.LOCKED
        if not can_voluntary(run, meta, cfg):
            return ReincarnateResult.WRONG_TIER
        return ReincarnateResult.ACCEPTED
    if trigger is Trigger.MANDATORY:
        if meta.flags.mandatory_gate_completed:
            return ReincarnateResult.ALREADY_CONSUMED
        if not at_wall(run, cfg):
            return ReincarnateResult.WRONG_TIER
        return ReincarnateResult.ACCEPTED
    return ReincarnateResult.INVALID_MODE


def select_trigger(
    run: RunState, meta: MetaState, cfg: BalanceConfig, exhausted: bool
) -> Optional[Trigger]:
    """
    Pick the one transition an evaluation pass may fire.
    Priority: mandatory gate > death > voluntary. Voluntary is never automatic,
    so an automatic pass only chooses between the first two.
    """
    if not exhausted:
        return None
    if can_mandatory(run, meta, cfg):
        return Trigger.MANDATORY
    if run.lifespan_max is not None:
        return Trigger.DEATH
    return None


class LifecycleStateMachine:
    def __init__(
        self,
        cfg: BalanceConfig,
        run: RunState,
        meta: MetaState,
        guard: Optional[LifecycleGuard] = None,
    ) -> None:
        self.cfg = cfg
        self.run = run
        self.meta = meta
        self.guard = guard or LifecycleGuard()
        self._listeners: List[Listener] = []

    @property
    def is_transitioning(self) -> bool:
        return self.guard.is_transitioning

    @property
    def pending(self) -> Optional[PendingTransition]:
        return self.guard.pending

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def begin(self, trigger: Trigger, now_ms: int) -> Optional[PendingTransition]:
        if self.guard.is_transitioning:
            return None
        self.guard.phase = LifecyclePhase.TRANSITIONING
        if trigger is Trigger.DEATH:
            self.guard.last_death_at = now_ms
        else:
            self.guard.last_reincarnate_at = now_ms
        pending = PendingTransition(
            trigger=trigger,
            karma_gain=karma_gain(trigger, self.run, self.cfg),
            started_at_ms=now_ms,
            age_at_trigger=self.run.age,
        )
        self.guard.pending = pending
        return pending

    def finalize(self, now_ms: int) -> Optional[RunStarted]:
        """
        Commit the pending transition. The guard is cleared last, after the
        fresh run and the carried-over meta state are in place.
        """
        pending = self.guard.pending
        if not self.guard.is_transitioning or pending is None:
            return None
        trigger = pending.trigger

        ledger = KarmaLedger(self.meta, self.cfg)
        applied = ledger.add(pending.karma_gain)

        if trigger is Trigger.DEATH:
            self.meta.death_count += 1
        else:
            self.meta.reincarnation_count += 1

        kept = copy.deepcopy(self.meta)

        self.run = fresh_run(self.cfg, kept.karma, now_ms)

        meta = MetaState(
            karma=kept.karma,
            reincarnation_count=kept.reincarnation_count,
            death_count=kept.death_count,
            cycle_transitions=kept.cycle_transitions,
            unlocked_speeds=kept.unlocked_speeds | base_speeds(self.cfg),
            flags=kept.flags,
        )

        if trigger is Trigger.MANDATORY:
            meta.flags.mandatory_gate_completed = True
            meta.flags.voluntary_unlocked = True
            meta.flags.spirit_cycle_unlocked = True
            meta.flags.beyond_gate_unlocked = True
            meta.cycle_transitions += 1
        self.meta = meta

        self.guard.pending = None
        self.guard.phase = LifecyclePhase.LIVING

        print(
            f"[lifecycle] {trigger.value} committed karma+{applied:g} "
            f"total={meta.karma:g} reincarnations={meta.reincarnation_count} "
            f"deaths={meta.death_count}"
        )
        event = RunStarted(
            trigger=trigger,
            karma_gain=applied,
            karma_total=meta.karma,
            reincarnation_count=meta.reincarnation_count,
            death_count=meta.death_count,
            at_ms=now_ms,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:  # collaborators must not undo a committed run
                print(f"[lifecycle] listener failed: {exc}")
        return event

    def fire(self, trigger: Trigger, now_ms: int) -> Optional[RunStarted]:
        if self.begin(trigger, now_ms) is None:
            return None
        return self.finalize(now_ms)

    def replace(self, run: RunState, meta: MetaState, guard: Optional[LifecycleGuard] = None) -> None:
        self.run = run
        self.meta = meta
        self.guard = guard or LifecycleGuard()
