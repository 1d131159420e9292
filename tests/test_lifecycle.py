from typing import List

from conftest import place_at

from samsara.lifecycle import LifecycleStateMachine, fresh_meta, fresh_run, select_trigger
from samsara.models import (
    BalanceConfig,
    BreakthroughResult,
    PurchaseResult,
    ReincarnateResult,
    RunStarted,
    Trigger,
)


def _near_death(cultivation) -> None:
    run = cultivation.run
    run.age = run.lifespan_max - 0.005


def test_lifespan_exhaustion_is_a_death(make_cultivation) -> None:
    c = make_cultivation()
    _near_death(c)
    assert c.tick(1.0)
    assert c.meta.death_count == 1
    assert c.meta.reincarnation_count == 0
    assert c.meta.karma == 1
    assert c.run.age == 0.0
    assert c.run.realm_index == 0 and c.run.stage == 1
    assert c.run.lifespan_max >= 100
    assert not c.is_transitioning
    assert c.lifecycle.last_death_at == 1_000_000


def test_voluntary_needs_the_flag_and_the_tier(make_cultivation) -> None:
    c = make_cultivation()
    assert c.request_reincarnate("voluntary") is ReincarnateResult.LOCKED
    c.meta.flags.voluntary_unlocked = True
    place_at(c, 3, 10)
    assert c.request_reincarnate("voluntary") is ReincarnateResult.WRONG_TIER
    place_at(c, 4, 1)
    assert c.request_reincarnate("voluntary") is ReincarnateResult.ACCEPTED
    assert c.meta.reincarnation_count == 1
    assert c.meta.cycle_transitions == 0


def test_unknown_and_death_modes_are_rejected(make_cultivation) -> None:
    c = make_cultivation()
    assert c.request_reincarnate("ascend") is ReincarnateResult.INVALID_MODE
    assert c.request_reincarnate("death") is ReincarnateResult.INVALID_MODE


def test_mandatory_gate_unlocks_the_next_cycle(make_cultivation) -> None:
    c = make_cultivation()
    place_at(c, 4, 9)
    assert c.request_reincarnate(Trigger.MANDATORY) is ReincarnateResult.WRONG_TIER
    place_at(c, 4, 10)
    assert c.request_reincarnate(Trigger.MANDATORY) is ReincarnateResult.ACCEPTED

    flags = c.meta.flags
    assert flags.mandatory_gate_completed
    assert flags.voluntary_unlocked
    assert flags.spirit_cycle_unlocked
    assert flags.beyond_gate_unlocked
    assert c.meta.cycle_transitions == 1
    assert c.meta.reincarnation_count == 1
    # 4 realms * 2, mortal cycle
    assert c.meta.karma == 8
    assert c.run.realm_index == 0

    place_at(c, 4, 10)
    assert c.request_reincarnate("mandatory") is ReincarnateResult.ALREADY_CONSUMED


def test_exhaustion_at_the_wall_fires_the_mandatory_gate(make_cultivation) -> None:
    c = make_cultivation()
    place_at(c, 4, 10)
    _near_death(c)
    c.tick(1.0)
    assert c.meta.death_count == 0
    assert c.meta.reincarnation_count == 1
    assert c.meta.flags.mandatory_gate_completed


def test_select_trigger_priority(cfg: BalanceConfig) -> None:
    meta = fresh_meta(cfg)
    run = fresh_run(cfg, 0)
    assert select_trigger(run, meta, cfg, exhausted=False) is None
    assert select_trigger(run, meta, cfg, exhausted=True) is Trigger.DEATH
    run.realm_index, run.stage = 4, 10
    assert select_trigger(run, meta, cfg, exhausted=True) is Trigger.MANDATORY
    meta.flags.mandatory_gate_completed = True
    assert select_trigger(run, meta, cfg, exhausted=True) is Trigger.DEATH


def test_pending_death_blocks_every_entrypoint(make_cultivation) -> None:
    c = make_cultivation(auto_finalize=False)
    c.run.qi = 1_000.0
    _near_death(c)
    c.tick(1.0)

    assert c.is_transitioning
    assert c.lifecycle.is_dead
    assert c.pending.trigger is Trigger.DEATH
    qi = c.run.qi
    assert not c.tick(5.0)
    assert c.click() == 0.0
    assert c.breakthrough() is BreakthroughResult.BUSY
    assert c.purchase("breath_control") is PurchaseResult.BUSY
    assert c.request_reincarnate("voluntary") is ReincarnateResult.BUSY
    assert c.set_time_speed(0.5) == 1.0
    assert c.run.qi == qi
    assert c.meta.death_count == 0

    assert c.acknowledge()
    assert c.meta.death_count == 1
    assert not c.is_transitioning
    assert not c.acknowledge()
    assert c.meta.death_count == 1


def test_begin_twice_is_a_no_op(cfg: BalanceConfig) -> None:
    meta = fresh_meta(cfg)
    machine = LifecycleStateMachine(cfg, fresh_run(cfg, 0), meta)
    first = machine.begin(Trigger.DEATH, 10)
    assert first is not None
    assert machine.begin(Trigger.MANDATORY, 20) is None
    assert machine.pending is first
    machine.finalize(30)
    assert machine.finalize(40) is None
    assert machine.meta.death_count == 1


def test_karma_never_decreases_across_runs(make_cultivation) -> None:
    c = make_cultivation()
    seen = [c.meta.karma]
    for _ in range(3):
        c.run.lifetime_qi = 5_000.0
        _near_death(c)
        c.tick(1.0)
        seen.append(c.meta.karma)
    place_at(c, 4, 10)
    c.request_reincarnate("mandatory")
    seen.append(c.meta.karma)
    assert seen == sorted(seen)
    assert seen[-1] > seen[0]


def test_listeners_hear_committed_runs(make_cultivation) -> None:
    c = make_cultivation()
    heard: List[RunStarted] = []

    def broken(event: RunStarted) -> None:
        raise RuntimeError("listener bug")

    c.subscribe(broken)
    c.subscribe(heard.append)
    place_at(c, 4, 10)
    c.request_reincarnate("mandatory")

    assert len(heard) == 1
    assert heard[0].trigger is Trigger.MANDATORY
    assert heard[0].karma_total == c.meta.karma
    assert not c.is_transitioning


def test_new_life_resets_speed_but_keeps_unlocks(make_cultivation) -> None:
    c = make_cultivation()
    place_at(c, 4, 10)
    assert c.set_time_speed(4) == 4.0
    c.request_reincarnate("mandatory")
    assert c.speed == 1.0
    assert 4.0 in c.available_speeds()


def test_full_reset_wipes_meta(make_cultivation) -> None:
    c = make_cultivation()
    place_at(c, 4, 10)
    c.request_reincarnate("mandatory")
    c.on_suspend()
    c.full_reset()
    assert c.meta.karma == 0
    assert not c.meta.flags.mandatory_gate_completed
    assert c.session is None
    assert c.available_speeds() == [0.0, 0.5, 1.0]


def test_every_reincarnate_result_is_reachable(make_cultivation) -> None:
    seen = set()
    c = make_cultivation(auto_finalize=False)
    seen.add(c.request_reincarnate("ascend"))
    seen.add(c.request_reincarnate("death"))
    seen.add(c.request_reincarnate("voluntary"))
    seen.add(c.request_reincarnate("mandatory"))
    place_at(c, 4, 10)
    seen.add(c.request_reincarnate("mandatory"))
    seen.add(c.request_reincarnate("mandatory"))
    _near_death(c)
    c.tick(1.0)
    assert c.is_transitioning
    seen.add(c.request_reincarnate("voluntary"))
    assert seen == set(ReincarnateResult)
