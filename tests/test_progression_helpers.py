import math

import pytest

from samsara.helper.progression_helpers import (
    derive_catalog,
    is_final_tier,
    max_lifespan,
    offline_multiplier,
    production_rate,
    safe_add_qi,
    safe_number,
    skill_cost,
    soft_cap,
    stage_requirement,
)
from samsara.models import BalanceConfig, RunState


def test_soft_caps_start_at_one_and_stay_bounded(cfg: BalanceConfig) -> None:
    for cap in (cfg.karma.stage_ease, cfg.karma.qi_production, cfg.karma.lifespan):
        assert soft_cap(0, cap) == 1.0
        previous = 1.0
        for karma in (1, 5, 25, 100, 1_000, 1e9):
            value = soft_cap(karma, cap)
            assert value >= previous
            assert value <= 1.0 + cap.amplitude
            previous = value


def test_soft_cap_treats_bad_karma_as_zero(cfg: BalanceConfig) -> None:
    cap = cfg.karma.qi_production
    assert soft_cap(-10, cap) == 1.0
    assert soft_cap(float("nan"), cap) == 1.0
    assert soft_cap(float("inf"), cap) == 1.0


def test_stage_requirement_first_tier_and_karma_discount(cfg: BalanceConfig) -> None:
    assert stage_requirement(0, 1, 0, cfg) == 100
    previous = stage_requirement(3, 7, 0, cfg)
    for karma in (1, 10, 50, 200, 10_000):
        current = stage_requirement(3, 7, karma, cfg)
        assert current <= previous
        previous = current


def test_stage_requirement_grows_with_tier(cfg: BalanceConfig) -> None:
    assert stage_requirement(0, 2, 0, cfg) > stage_requirement(0, 1, 0, cfg)
    assert stage_requirement(1, 1, 0, cfg) == 2500


def test_max_lifespan_is_infinite_only_for_terminal_realm(cfg: BalanceConfig) -> None:
    assert max_lifespan(0, 0, cfg) == 100
    assert max_lifespan(8, 0, cfg) == 300000
    assert max_lifespan(9, 0, cfg) is None
    assert max_lifespan(9, 500, cfg) is None
    assert max_lifespan(0, 50, cfg) > 100


def test_final_tier(cfg: BalanceConfig) -> None:
    assert is_final_tier(9, 10, cfg)
    assert not is_final_tier(9, 9, cfg)
    assert not is_final_tier(4, 10, cfg)


def test_catalog_sorted_by_cost(cfg: BalanceConfig) -> None:
    ids = [skill.id for skill in derive_catalog(cfg)]
    assert ids == [
        "breath_control",
        "meridian_flow",
        "dantian_temps",
        "lotus_meditation",
        "closed_door",
    ]


def test_catalog_follows_a_changed_config(cfg: BalanceConfig) -> None:
    cfg.skills["closed_door"].cost = 1
    assert derive_catalog(cfg)[0].id == "closed_door"


def test_skill_cost_scales_per_level(cfg: BalanceConfig) -> None:
    assert skill_cost("breath_control", 0, cfg) == 25
    assert skill_cost("breath_control", 1, cfg) == 31


def test_production_rate_combines_skills(cfg: BalanceConfig) -> None:
    run = RunState(qps_base=1.0, qpc_base=2.0, skills={"breath_control": 2, "lotus_meditation": 1})
    assert production_rate("qps", run, 0, cfg) == pytest.approx((1.0 + 2 * 0.5) * 1.15)
    assert production_rate("qpc", run, 0, cfg) == pytest.approx(2.0)


def test_production_rate_applies_karma_and_cycle_power(cfg: BalanceConfig) -> None:
    run = RunState(qps_base=1.0, realm_index=2)
    karma = 30
    expected = soft_cap(karma, cfg.karma.qi_production) * 1.4
    assert production_rate("qps", run, karma, cfg) == pytest.approx(expected)


def test_production_rate_rejects_unknown_kind(cfg: BalanceConfig) -> None:
    with pytest.raises(ValueError):
        production_rate("offline", RunState(), 0, cfg)


def test_offline_multiplier_from_closed_door(cfg: BalanceConfig) -> None:
    assert offline_multiplier(RunState(), cfg) == 1.0
    assert offline_multiplier(RunState(skills={"closed_door": 2}), cfg) == pytest.approx(1.4)


def test_safe_add_qi_saturates_and_ignores_garbage() -> None:
    assert safe_add_qi(10.0, 5.0, 1e300) == 15.0
    assert safe_add_qi(10.0, float("nan"), 1e300) == 10.0
    assert safe_add_qi(10.0, float("inf"), 1e300) == 10.0
    assert safe_add_qi(10.0, -3.0, 1e300) == 10.0
    assert safe_add_qi(1e300, 1e300, 1e300) == 1e300
    assert math.isfinite(safe_add_qi(float("nan"), 1.0, 1e300))


def test_safe_number_defaults() -> None:
    assert safe_number("3.5") == 3.5
    assert safe_number(None, 7.0) == 7.0
    assert safe_number(float("-inf"), 1.0) == 1.0
