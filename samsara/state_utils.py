#!/usr/bin/env python3
"""
Persistence codec and public views for a Cultivation.

serialize() produces a JSON-safe blob; deserialize() turns any blob (current,
legacy or garbage) back into state without raising.
"""
from __future__ import annotations

import json
import math
from typing import Any, Dict, NamedTuple, Optional

from samsara.cultivation import Cultivation
from samsara.helper.karma_helper import karma_gain
from samsara.helper.progression_helpers import (
    cycle_for_realm,
    derive_catalog,
    max_lifespan,
    skill_cost,
)
from samsara.lifecycle import base_speeds, fresh_meta, fresh_run
from samsara.models import (
    BalanceConfig,
    LifecycleGuard,
    LifecyclePhase,
    MetaFlags,
    MetaState,
    PendingTransition,
    RunState,
    SessionSnapshot,
    Trigger,
)
from samsara.save_migrations import SCHEMA_VERSION, SaveMigrationError, migrate_save_payload


class SaveBundle(NamedTuple):
    run: RunState
    meta: MetaState
    session: Optional[SessionSnapshot]
    lifecycle: LifecycleGuard


# ---------- Serialize ----------


def serialize(cultivation: Cultivation) -> Dict[str, Any]:
    run, meta, guard = cultivation.run, cultivation.meta, cultivation.lifecycle
    pending = guard.pending
    session = cultivation.session
    return {
        "version": SCHEMA_VERSION,
        "run": {
            "qi": run.qi,
            "qpc_base": run.qpc_base,
            "qps_base": run.qps_base,
            "realm_index": run.realm_index,
            "stage": run.stage,
            "age": run.age,
            "lifespan_max": run.lifespan_max,
            "current_cycle": run.current_cycle,
            "skills": dict(run.skills),
            "lifetime_qi": run.lifetime_qi,
            "time_speed": run.time_speed,
            "started_at_ms": run.started_at_ms,
        },
        "meta": {
            "karma": meta.karma,
            "reincarnation_count": meta.reincarnation_count,
            "death_count": meta.death_count,
            "cycle_transitions": meta.cycle_transitions,
            "unlocked_speeds": sorted(meta.unlocked_speeds),
            "flags": {
                "mandatory_gate_completed": meta.flags.mandatory_gate_completed,
                "voluntary_unlocked": meta.flags.voluntary_unlocked,
                "spirit_cycle_unlocked": meta.flags.spirit_cycle_unlocked,
                "beyond_gate_unlocked": meta.flags.beyond_gate_unlocked,
            },
        },
        "lifecycle": {
            "phase": guard.phase.value,
            "pending": None
            if pending is None
            else {
                "trigger": pending.trigger.value,
                "karma_gain": pending.karma_gain,
                "started_at_ms": pending.started_at_ms,
                "age_at_trigger": pending.age_at_trigger,
            },
            "last_death_at": guard.last_death_at,
            "last_reincarnate_at": guard.last_reincarnate_at,
        },
        "session": None
        if session is None
        else {
            "suspended_at_ms": session.suspended_at_ms,
            "speed": session.speed,
            "realm_index": session.realm_index,
            "qi": session.qi,
        },
    }


def dumps(cultivation: Cultivation) -> str:
    return json.dumps(serialize(cultivation))


# ---------- Deserialize ----------


class _Reader:
    """Typed, logging accessors over one section of a blob."""

    def __init__(self, section: str, data: Any) -> None:
        self.section = section
        self.data = data if isinstance(data, dict) else {}

    def _warn(self, key: str, value: Any, default: Any) -> None:
        print(f"[save] {self.section}.{key}={value!r} is invalid; using {default!r}")

    def has(self, key: str) -> bool:
        return key in self.data

    def number(self, key: str, default: float, minimum: Optional[float] = None) -> float:
        value = self.data.get(key, default)
        try:
            number = float(value)
        except (TypeError, ValueError):
            self._warn(key, value, default)
            return default
        if not math.isfinite(number):
            self._warn(key, value, default)
            return default
        if minimum is not None and number < minimum:
            self._warn(key, value, minimum)
            return minimum
        return number

    def integer(self, key: str, default: int, minimum: int = 0) -> int:
        number = self.number(key, float(default))
        return max(int(number), minimum)

    def flag(self, key: str, default: bool = False) -> bool:
        value = self.data.get(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "1", "yes", "on"}:
                return True
            if lowered in {"false", "0", "no", "off"}:
                return False
        elif isinstance(value, (int, float)) and value in (0, 1):
            return bool(value)
        self._warn(key, value, default)
        return default


def _load_meta(data: Any, cfg: BalanceConfig) -> MetaState:
    reader = _Reader("meta", data)
    speeds = base_speeds(cfg)
    raw_speeds = reader.data.get("unlocked_speeds")
    if isinstance(raw_speeds, list):
        for speed in raw_speeds:
            try:
                value = float(speed)
            except (TypeError, ValueError):
                continue
            if math.isfinite(value) and value >= 0:
                speeds.add(value)
    elif raw_speeds is not None:
        print("[save] meta.unlocked_speeds is not a list; using base speeds")
    flags = _Reader("meta.flags", reader.data.get("flags"))
    return MetaState(
        karma=reader.number("karma", 0.0, minimum=0.0),
        reincarnation_count=reader.integer("reincarnation_count", 0),
        death_count=reader.integer("death_count", 0),
        cycle_transitions=reader.integer("cycle_transitions", 0),
        unlocked_speeds=speeds,
        flags=MetaFlags(
            mandatory_gate_completed=flags.flag("mandatory_gate_completed"),
            voluntary_unlocked=flags.flag("voluntary_unlocked"),
            spirit_cycle_unlocked=flags.flag("spirit_cycle_unlocked"),
            beyond_gate_unlocked=flags.flag("beyond_gate_unlocked"),
        ),
    )


def _load_run(data: Any, meta: MetaState, cfg: BalanceConfig) -> RunState:
    reader = _Reader("run", data)
    realm_count = len(cfg.realms)
    realm_index = min(reader.integer("realm_index", 0), realm_count - 1)
    stage = min(reader.integer("stage", 1, minimum=1), cfg.stages_per_realm)
    # the ceiling is derived, so config or karma changes apply on load
    lifespan = max_lifespan(realm_index, meta.karma, cfg)
    age = reader.number("age", 0.0, minimum=0.0)
    if lifespan is not None:
        age = min(age, lifespan)

    skills: Dict[str, int] = {}
    raw_skills = reader.data.get("skills")
    if isinstance(raw_skills, dict):
        for skill_id, level in raw_skills.items():
            if skill_id not in cfg.skills:
                print(f"[save] dropping unknown skill {skill_id!r}")
                continue
            try:
                value = int(level)
            except (TypeError, ValueError):
                continue
            if value > 0:
                skills[skill_id] = value

    speed = reader.number("time_speed", 1.0, minimum=0.0)
    if speed not in meta.unlocked_speeds:
        speed = 1.0

    return RunState(
        qi=min(reader.number("qi", 0.0, minimum=0.0), cfg.qi_ceiling),
        qpc_base=reader.number("qpc_base", cfg.progression.qpc_base_start, minimum=0.0),
        qps_base=reader.number("qps_base", cfg.progression.qps_base_start, minimum=0.0),
        realm_index=realm_index,
        stage=stage,
        age=age,
        lifespan_max=lifespan,
        current_cycle=cycle_for_realm(realm_index, cfg),
        skills=skills,
        lifetime_qi=reader.number("lifetime_qi", 0.0, minimum=0.0),
        time_speed=speed,
        started_at_ms=reader.integer("started_at_ms", 0),
    )


def _load_lifecycle(data: Any, run: RunState, cfg: BalanceConfig) -> LifecycleGuard:
    reader = _Reader("lifecycle", data)
    guard = LifecycleGuard(
        last_death_at=reader.integer("last_death_at", 0),
        last_reincarnate_at=reader.integer("last_reincarnate_at", 0),
    )
    if reader.data.get("phase") != LifecyclePhase.TRANSITIONING.value:
        return guard
    pending = _Reader("lifecycle.pending", reader.data.get("pending"))
    try:
        trigger = Trigger(pending.data.get("trigger"))
    except ValueError:
        print("[save] transition without a valid trigger; resuming as living")
        return guard
    gain = pending.number("karma_gain", -1.0)
    if gain < 0:
        gain = karma_gain(trigger, run, cfg)
    guard.phase = LifecyclePhase.TRANSITIONING
    guard.pending = PendingTransition(
        trigger=trigger,
        karma_gain=gain,
        started_at_ms=pending.integer("started_at_ms", 0),
        age_at_trigger=pending.number("age_at_trigger", run.age, minimum=0.0),
    )
    return guard


def _load_session(data: Any) -> Optional[SessionSnapshot]:
    if not isinstance(data, dict):
        return None
    reader = _Reader("session", data)
    if not reader.has("suspended_at_ms"):
        return None
    return SessionSnapshot(
        suspended_at_ms=reader.integer("suspended_at_ms", 0),
        speed=reader.number("speed", 0.0, minimum=0.0),
        realm_index=reader.integer("realm_index", 0),
        qi=reader.number("qi", 0.0, minimum=0.0),
    )


def fresh_bundle(cfg: BalanceConfig) -> SaveBundle:
    meta = fresh_meta(cfg)
    return SaveBundle(
        run=fresh_run(cfg, meta.karma),
        meta=meta,
        session=None,
        lifecycle=LifecycleGuard(),
    )


def deserialize(blob: Any, cfg: BalanceConfig) -> SaveBundle:
    """
    Rebuild state from a stored blob (dict or JSON text). Missing or broken
    fields fall back to their defaults; nothing here raises.
    """
    if isinstance(blob, (str, bytes, bytearray)):
        try:
            blob = json.loads(blob)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            print(f"[save] unreadable blob ({exc}); starting fresh")
            return fresh_bundle(cfg)
    if blob is None:
        return fresh_bundle(cfg)
    try:
        payload = migrate_save_payload(blob, SCHEMA_VERSION)
    except SaveMigrationError as exc:
        print(f"[save] {exc} Starting fresh.")
        return fresh_bundle(cfg)

    meta = _load_meta(payload.get("meta"), cfg)
    run = _load_run(payload.get("run"), meta, cfg)
    lifecycle = _load_lifecycle(payload.get("lifecycle"), run, cfg)
    session = _load_session(payload.get("session"))
    return SaveBundle(run=run, meta=meta, session=session, lifecycle=lifecycle)


def restore(blob: Any, cfg: BalanceConfig, **kwargs: Any) -> Cultivation:
    bundle = deserialize(blob, cfg)
    return Cultivation(
        cfg,
        run=bundle.run,
        meta=bundle.meta,
        lifecycle=bundle.lifecycle,
        session=bundle.session,
        **kwargs,
    )


# ---------- Public view ----------


def snapshot_view(cultivation: Cultivation) -> dict:
    """
    Read-only projection for API/UI consumers.
    """
    run, meta, cfg = cultivation.run, cultivation.meta, cultivation.cfg
    pending = cultivation.pending
    skills_payload = [
        {
            "id": skill.id,
            "name": skill.name,
            "kind": skill.kind,
            "level": run.skills.get(skill.id, 0),
            "cost": skill_cost(skill.id, run.skills.get(skill.id, 0), cfg),
        }
        for skill in derive_catalog(cfg)
    ]
    return {
        "realm_index": run.realm_index,
        "realm_name": cfg.realms[run.realm_index],
        "stage": run.stage,
        "cycle": run.current_cycle,
        "qi": run.qi,
        "requirement": cultivation.requirement(),
        "qpc": cultivation.qpc(),
        "qps": cultivation.qps(),
        "age": run.age,
        "lifespan_max": run.lifespan_max,
        "time_speed": run.time_speed,
        "available_speeds": cultivation.available_speeds(),
        "karma": meta.karma,
        "reincarnation_count": meta.reincarnation_count,
        "death_count": meta.death_count,
        "cycle_transitions": meta.cycle_transitions,
        "flags": {
            "mandatory_gate_completed": meta.flags.mandatory_gate_completed,
            "voluntary_unlocked": meta.flags.voluntary_unlocked,
        },
        "is_transitioning": cultivation.is_transitioning,
        "is_dead": cultivation.lifecycle.is_dead,
        "pending": None
        if pending is None
        else {"trigger": pending.trigger.value, "karma_gain": pending.karma_gain},
        "skills": skills_payload,
    }
