from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Set


class Trigger(str, Enum):
    VOLUNTARY = "voluntary"
    MANDATORY = "mandatory"
    DEATH = "death"


class LifecyclePhase(str, Enum):
    LIVING = "living"
    TRANSITIONING = "transitioning"


class ReincarnateResult(str, Enum):
    ACCEPTED = "accepted"
    LOCKED = "locked"  # voluntary not unlocked yet
    WRONG_TIER = "wrong_tier"
    ALREADY_CONSUMED = "already_consumed"  # mandatory gate done before
    BUSY = "busy"  # another transition in flight
    INVALID_MODE = "invalid_mode"


class BreakthroughResult(str, Enum):
    STAGE_ADVANCED = "stage_advanced"
    REALM_ADVANCED = "realm_advanced"
    GATE_REACHED = "gate_reached"  # mandatory reincarnation required
    CYCLE_COMPLETE = "cycle_complete"  # final tier, only reincarnation remains
    INSUFFICIENT_QI = "insufficient_qi"
    BUSY = "busy"


class PurchaseResult(str, Enum):
    PURCHASED = "purchased"
    UNKNOWN_SKILL = "unknown_skill"
    INSUFFICIENT_QI = "insufficient_qi"
    BUSY = "busy"


@dataclass
class RunState:
    """Everything that is thrown away when a new life begins."""

    qi: float = 0.0
    qpc_base: float = 1.0
    qps_base: float = 0.0
    realm_index: int = 0  # 0-based
    stage: int = 1  # 1..stages_per_realm
    age: float = 0.0  # years
    lifespan_max: Optional[float] = 100.0  # None = infinite
    current_cycle: str = "mortal"
    skills: Dict[str, int] = field(default_factory=dict)
    lifetime_qi: float = 0.0  # Qi accrued this life, feeds the karma formula
    time_speed: float = 1.0
    started_at_ms: int = 0


@dataclass
class MetaFlags:
    mandatory_gate_completed: bool = False
    voluntary_unlocked: bool = False
    spirit_cycle_unlocked: bool = False
    beyond_gate_unlocked: bool = False


@dataclass
class MetaState:
    """Survives reincarnation; only the finalize step and full reset write it."""

    karma: float = 0.0
    reincarnation_count: int = 0  # voluntary + mandatory only
    death_count: int = 0
    cycle_transitions: int = 0
    unlocked_speeds: Set[float] = field(default_factory=set)
    flags: MetaFlags = field(default_factory=MetaFlags)


@dataclass(frozen=True)
class PendingTransition:
    trigger: Trigger
    karma_gain: float
    started_at_ms: int
    age_at_trigger: float


@dataclass
class LifecycleGuard:
    phase: LifecyclePhase = LifecyclePhase.LIVING
    pending: Optional[PendingTransition] = None
    last_death_at: int = 0
    last_reincarnate_at: int = 0

    @property
    def is_transitioning(self) -> bool:
        return self.phase is LifecyclePhase.TRANSITIONING

    @property
    def is_dead(self) -> bool:
        return (
            self.is_transitioning
            and self.pending is not None
            and self.pending.trigger is Trigger.DEATH
        )


@dataclass(frozen=True)
class SessionSnapshot:
    """Written on suspend, consumed (and deleted) by the next resume."""

    suspended_at_ms: int
    speed: float
    realm_index: int = 0
    qi: float = 0.0


@dataclass(frozen=True)
class RunStarted:
    """Notification emitted after a transition has fully committed."""

    trigger: Trigger
    karma_gain: float
    karma_total: float
    reincarnation_count: int
    death_count: int
    at_ms: int


@dataclass(frozen=True)
class OfflineReport:
    elapsed_seconds: int
    capped_seconds: int
    effective_seconds: float
    years_passed: float
    qi_gained: float
    offline_multiplier: float
    exhausted: bool

    @property
    def show_gains(self) -> bool:
        # a run that ended offline never gets a gains summary
        return not self.exhausted and self.qi_gained > 0
