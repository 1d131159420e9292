from samsara.helper.progression_helpers import (
    safe_number,
    safe_add_qi,
    soft_cap,
    karma_stage_mult,
    karma_qi_mult,
    karma_life_mult,
    stage_requirement,
    cycle_for_realm,
    cycle_power_mult,
    is_final_tier,
    max_lifespan,
    derive_catalog,
    skill_cost,
    production_rate,
    offline_multiplier,
)
from samsara.helper.karma_helper import KarmaLedger, base_karma_gain, karma_gain


__all__ = [
    "safe_number",
    "safe_add_qi",
    "soft_cap",
    "karma_stage_mult",
    "karma_qi_mult",
    "karma_life_mult",
    "stage_requirement",
    "cycle_for_realm",
    "cycle_power_mult",
    "is_final_tier",
    "max_lifespan",
    "derive_catalog",
    "skill_cost",
    "production_rate",
    "offline_multiplier",
    "KarmaLedger",
    "base_karma_gain",
    "karma_gain",
]
