from .balance_config import BALANCE_CONFIG, BalanceConfig, SkillConfig, SoftCap
from .redis_config import RedisSettings
from .state_config import (
    Trigger,
    LifecyclePhase,
    ReincarnateResult,
    BreakthroughResult,
    PurchaseResult,
    RunState,
    MetaFlags,
    MetaState,
    PendingTransition,
    LifecycleGuard,
    SessionSnapshot,
    RunStarted,
    OfflineReport,
)

__all__ = [
    "BALANCE_CONFIG",
    "BalanceConfig",
    "SkillConfig",
    "SoftCap",
    "RedisSettings",
    "Trigger",
    "LifecyclePhase",
    "ReincarnateResult",
    "BreakthroughResult",
    "PurchaseResult",
    "RunState",
    "MetaFlags",
    "MetaState",
    "PendingTransition",
    "LifecycleGuard",
    "SessionSnapshot",
    "RunStarted",
    "OfflineReport",
]
