#!/usr/bin/env python3
"""
Offline catch-up: turn a wall-clock gap into the effect of continuous ticking.
"""
from __future__ import annotations

import math
from typing import Optional

from samsara.aging import AgingEngine
from samsara.helper.progression_helpers import (
    offline_multiplier,
    production_rate,
    safe_add_qi,
    safe_number,
)
from samsara.models import BalanceConfig, OfflineReport, RunState, SessionSnapshot


def elapsed_offline_seconds(snapshot: SessionSnapshot, now_ms: int) -> int:
    return max(0, math.floor((now_ms - snapshot.suspended_at_ms) / 1000))


def replay_offline(
    snapshot: Optional[SessionSnapshot],
    now_ms: int,
    run: RunState,
    karma: float,
    cfg: BalanceConfig,
) -> Optional[OfflineReport]:
    """
    Apply one offline gap to the run in a single lump step.
    Returns None when there is nothing to replay (no snapshot, paused at
    suspend, or less than a second away). Clearing the snapshot is the
    caller's job and happens whatever this returns.
    """
    if snapshot is None or snapshot.speed <= 0:
        return None
    elapsed = elapsed_offline_seconds(snapshot, now_ms)
    if elapsed < 1:
        return None

    capped = int(min(elapsed, cfg.offline_cap_seconds))
    effective = capped * snapshot.speed
    years = effective * cfg.lifespan.years_per_second

    rate = production_rate("qps", run, karma, cfg)
    mult = offline_multiplier(run, cfg)
    gain = safe_number(rate * effective * mult, 0.0)
    if gain > 0:
        run.qi = safe_add_qi(run.qi, gain, cfg.qi_ceiling)
        run.lifetime_qi = safe_number(run.lifetime_qi + gain, 0.0)

    exhausted = AgingEngine(cfg).advance_years(run, years)
    if exhausted:
        print(f"[offline] lifespan ran out during {capped}s away")

    return OfflineReport(
        elapsed_seconds=elapsed,
        capped_seconds=capped,
        effective_seconds=effective,
        years_passed=years,
        qi_gained=max(gain, 0.0),
        offline_multiplier=mult,
        exhausted=exhausted,
    )
