from typing import Callable

import pytest

from samsara.cultivation import Cultivation
from samsara.helper.progression_helpers import cycle_for_realm, max_lifespan
from samsara.models import BALANCE_CONFIG, BalanceConfig


class FakeClock:
    def __init__(self, now_ms: int = 0) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms


@pytest.fixture
def cfg() -> BalanceConfig:
    return BALANCE_CONFIG.model_copy(deep=True)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1_000_000)


@pytest.fixture
def make_cultivation(cfg: BalanceConfig, clock: FakeClock) -> Callable[..., Cultivation]:
    def build(**kwargs) -> Cultivation:
        kwargs.setdefault("clock", clock)
        return Cultivation(cfg, **kwargs)

    return build


def place_at(cultivation: Cultivation, realm_index: int, stage: int) -> None:
    """Jump a run to a tier the way a breakthrough would have left it."""
    run = cultivation.run
    run.realm_index = realm_index
    run.stage = stage
    run.lifespan_max = max_lifespan(realm_index, cultivation.meta.karma, cultivation.cfg)
    run.current_cycle = cycle_for_realm(realm_index, cultivation.cfg)
    cultivation.unlock_speeds()
