import pytest

from samsara.aging import AgingEngine, add_years, advance_age
from samsara.helper.karma_helper import KarmaLedger, base_karma_gain, karma_gain
from samsara.models import BalanceConfig, MetaState, RunState, Trigger


def test_base_karma_gain_counts_lifetime_qi_and_realm(cfg: BalanceConfig) -> None:
    run = RunState(lifetime_qi=1_000_000, realm_index=3)
    # floor(sqrt(1000)) = 31, plus 3 realms * 2
    assert base_karma_gain(run, cfg) == 37


def test_base_karma_gain_has_a_floor(cfg: BalanceConfig) -> None:
    assert base_karma_gain(RunState(), cfg) == cfg.reincarnation.min_karma


def test_spirit_cycle_doubles_karma(cfg: BalanceConfig) -> None:
    mortal = RunState(realm_index=5, current_cycle="mortal")
    spirit = RunState(realm_index=5, current_cycle="spirit")
    assert base_karma_gain(spirit, cfg) == 2 * base_karma_gain(mortal, cfg)


def test_death_halves_karma(cfg: BalanceConfig) -> None:
    run = RunState(lifetime_qi=1_000_000, realm_index=3)
    assert karma_gain(Trigger.VOLUNTARY, run, cfg) == 37
    assert karma_gain(Trigger.MANDATORY, run, cfg) == 37
    assert karma_gain(Trigger.DEATH, run, cfg) == 18


def test_corrupt_lifetime_qi_only_affects_the_gain(cfg: BalanceConfig) -> None:
    run = RunState(lifetime_qi=float("nan"), realm_index=2)
    assert base_karma_gain(run, cfg) == 4
    run.lifetime_qi = -50.0
    assert base_karma_gain(run, cfg) == 4
    assert run.lifetime_qi == -50.0


def test_ledger_never_lowers_karma(cfg: BalanceConfig) -> None:
    meta = MetaState(karma=5.0)
    ledger = KarmaLedger(meta, cfg)
    assert ledger.add(3) == 3
    assert ledger.add(-10) == 0
    assert ledger.add(float("nan")) == 0
    assert ledger.add(float("inf")) == 0
    assert meta.karma == 8.0
    assert ledger.qi_mult > 1.0


def test_aging_uses_speed_and_rate(cfg: BalanceConfig) -> None:
    step = advance_age(10.0, 100, 2.0, cfg.lifespan.years_per_second, 100.0)
    assert step.age == pytest.approx(12.0)
    assert not step.exhausted


def test_paused_and_immortal_runs_do_not_age(cfg: BalanceConfig) -> None:
    assert advance_age(10.0, 100, 0.0, 0.01, 100.0).age == 10.0
    assert advance_age(10.0, 100, 1.0, 0.01, None).age == 10.0
    assert advance_age(10.0, 100, 1.0, 0.01, 100.0, transitioning=True).age == 10.0


def test_age_clamps_at_lifespan() -> None:
    step = add_years(99.0, 50.0, 100.0)
    assert step.age == 100.0
    assert step.exhausted


def test_non_finite_age_keeps_prior_value() -> None:
    step = add_years(42.0, float("inf"), 100.0)
    assert step.rejected
    assert step.age == 42.0


def test_engine_reports_exhaustion(cfg: BalanceConfig) -> None:
    run = RunState(age=99.995, lifespan_max=100.0)
    assert AgingEngine(cfg).advance(run, 1.0)
    assert run.age == 100.0
