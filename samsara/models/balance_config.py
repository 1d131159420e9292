import json
import os
from pathlib import Path
from pydantic import BaseModel, PositiveInt, PositiveFloat, NonNegativeFloat
from pydantic import Field, model_validator  # type: ignore
from typing import Annotated, List, Dict, Literal, Optional

# # NOTE: BALANCE_CONFIG is read once per process. The core never reaches for it
# # directly; hosts pass it (or another BalanceConfig) into every call.

SkillKind = Literal["qps", "qpc", "qps_mult", "qpc_mult", "offline_mult"]


class SkillConfig(BaseModel):
    name: Annotated[str, Field(min_length=1)]
    kind: SkillKind
    base: PositiveFloat
    cost: PositiveFloat
    cost_scale: Annotated[float, Field(ge=1)]


class StageRequirementModifiers(BaseModel):
    realm_base: PositiveFloat
    realm_base_scale: PositiveFloat
    stage_scale: PositiveFloat


class ProgressionModifiers(BaseModel):
    qpc_base_start: NonNegativeFloat
    qps_base_start: NonNegativeFloat
    realm_advance_qpc_add: NonNegativeFloat
    realm_advance_qps_add: NonNegativeFloat


class SoftCap(BaseModel):
    """Shape of every karma multiplier: 1 + amplitude * (1 - e^(-rate * karma))."""

    amplitude: PositiveFloat
    rate: PositiveFloat


class KarmaModifiers(BaseModel):
    stage_ease: SoftCap
    qi_production: SoftCap
    lifespan: SoftCap


class ReincarnationModifiers(BaseModel):
    lifetime_qi_divisor: PositiveFloat
    realm_karma_factor: NonNegativeFloat
    min_karma: NonNegativeFloat
    death_penalty: Annotated[float, Field(gt=0, le=1)] = 0.5
    cycle_karma_multiplier: Dict[str, PositiveFloat]


class LifespanModifiers(BaseModel):
    # null marks an infinite lifespan (terminal realm only)
    realm_max_lifespan: List[Optional[PositiveFloat]]
    years_per_second: PositiveFloat


class CycleConfig(BaseModel):
    name: Annotated[str, Field(min_length=1)]
    start: Annotated[int, Field(ge=0)]
    end: Annotated[int, Field(ge=0)]
    realm_bonus: NonNegativeFloat


class GateModifiers(BaseModel):
    mandatory_realm_index: Annotated[int, Field(ge=0)]
    mandatory_stage: PositiveInt
    voluntary_realm_index: Annotated[int, Field(ge=0)]
    voluntary_stage: PositiveInt


class OfflineModifiers(BaseModel):
    cap_hours: PositiveFloat


class TimeSpeedModifiers(BaseModel):
    base_speeds: List[NonNegativeFloat]
    speeds: List[NonNegativeFloat]
    unlock_realm_index: List[Annotated[int, Field(ge=0)]]


class BalanceConfig(BaseModel):
    realms: Annotated[List[str], Field(min_length=1)]
    stages_per_realm: PositiveInt = 10
    qi_ceiling: PositiveFloat = 1e300
    skills: Dict[str, SkillConfig]

    stage_requirement: StageRequirementModifiers
    progression: ProgressionModifiers
    karma: KarmaModifiers
    reincarnation: ReincarnationModifiers
    lifespan: LifespanModifiers
    cycles: Annotated[List[CycleConfig], Field(min_length=1)]
    gates: GateModifiers
    offline: OfflineModifiers
    time_speed: TimeSpeedModifiers

    @model_validator(mode="after")
    def _check_tables(self) -> "BalanceConfig":
        realm_count = len(self.realms)
        table = self.lifespan.realm_max_lifespan
        if len(table) != realm_count:
            raise ValueError("realm_max_lifespan must have one entry per realm")
        if any(value is None for value in table[:-1]):
            raise ValueError("only the terminal realm may have an infinite lifespan")

        expected = 0
        for cycle in sorted(self.cycles, key=lambda c: c.start):
            if cycle.start != expected or cycle.end < cycle.start:
                raise ValueError("cycles must be contiguous and ordered")
            expected = cycle.end + 1
        if expected != realm_count:
            raise ValueError("cycles must cover every realm exactly once")

        gates = self.gates
        for realm, stage in (
            (gates.mandatory_realm_index, gates.mandatory_stage),
            (gates.voluntary_realm_index, gates.voluntary_stage),
        ):
            if realm >= realm_count or stage > self.stages_per_realm:
                raise ValueError("gate tier is outside the realm/stage table")

        if len(self.time_speed.speeds) != len(self.time_speed.unlock_realm_index):
            raise ValueError("time_speed.speeds and unlock_realm_index differ in length")
        return self

    @property
    def offline_cap_seconds(self) -> float:
        return self.offline.cap_hours * 3600

    @classmethod
    def load_json(cls, path: str | Path) -> "BalanceConfig":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.model_validate(data)


_BASE_DIR = Path(__file__).resolve().parents[1]
_CONFIG_PATH = Path(
    os.environ.get("SAMSARA_BALANCE_PATH", _BASE_DIR / "config" / "balance.json")
)

BALANCE_CONFIG = BalanceConfig.model_validate_json(
    _CONFIG_PATH.read_text(encoding="utf-8")
)
