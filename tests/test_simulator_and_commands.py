import pytest

from conftest import place_at

from samsara.commands import Command, apply_command, parse_command
from samsara.models import BalanceConfig, RunState
from samsara.simulator import best_purchase, effective_rate, simulate_completion


def test_simulator_prices_production_like_the_live_engine(make_cultivation) -> None:
    c = make_cultivation()
    place_at(c, 5, 3)
    c.meta.karma = 40.0
    c.run.skills.update({"breath_control": 3, "dantian_temps": 2, "lotus_meditation": 1})
    expected = c.qps() + c.qpc() * 3
    assert effective_rate(c.run, c.meta.karma, c.cfg, 3) == pytest.approx(expected)


def test_best_purchase_needs_qi(cfg: BalanceConfig) -> None:
    assert best_purchase(RunState(qi=10.0), 0, cfg, click_rate=3) is None


def test_best_purchase_skips_offline_skills(cfg: BalanceConfig) -> None:
    run = RunState(qi=1_000.0)
    best = best_purchase(run, 0, cfg, click_rate=3)
    assert best is not None
    assert best.id != "closed_door"
    assert best.delta > 0
    assert run.skills == {}


def test_simulation_stops_at_the_wall(cfg: BalanceConfig) -> None:
    cfg.gates.mandatory_realm_index = 0
    cfg.gates.mandatory_stage = 2
    result = simulate_completion(cfg, seconds=3600, click_rate=3, dt=0.5)
    assert result.finished
    assert (result.realm_index, result.stage) == (0, 2)
    assert result.summary.startswith("Finished")


def test_short_simulation_does_not_finish(cfg: BalanceConfig) -> None:
    result = simulate_completion(cfg, seconds=30, click_rate=1, dt=1.0)
    assert not result.finished
    assert result.time_seconds == 30
    assert result.realm_index == 0


def test_simulation_rejects_bad_step(cfg: BalanceConfig) -> None:
    with pytest.raises(ValueError):
        simulate_completion(cfg, seconds=10, dt=0)


def test_malformed_commands_are_dropped() -> None:
    assert parse_command({"action": "fly"}) is None
    assert parse_command({"action": "click", "count": 0}) is None
    assert parse_command({}) is None


def test_commands_drive_the_cultivation(make_cultivation) -> None:
    c = make_cultivation()
    outcome = apply_command(c, Command(action="click", count=30))
    assert outcome["qi_gained"] == 30.0
    assert apply_command(c, Command(action="purchase", skill_id="breath_control"))["result"] == "purchased"
    assert apply_command(c, Command(action="set_speed", speed=0.5))["speed"] == 0.5
    assert apply_command(c, Command(action="breakthrough"))["result"] == "insufficient_qi"
    assert apply_command(c, Command(action="reincarnate"))["result"] == "invalid_mode"
    assert apply_command(c, Command(action="reincarnate", mode="voluntary"))["result"] == "locked"
    assert apply_command(c, Command(action="acknowledge"))["result"] == "ignored"


def test_reset_command(make_cultivation) -> None:
    c = make_cultivation()
    place_at(c, 4, 10)
    c.request_reincarnate("mandatory")
    apply_command(c, Command(action="reset"))
    assert c.meta.karma == 0
    assert c.meta.reincarnation_count == 0
