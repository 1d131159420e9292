"""Save migration registry for samsara save blobs."""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict


class SaveMigrationError(Exception):
    """Raised when a save cannot be migrated to the latest schema."""


Migration = Callable[[Dict], Dict]

SCHEMA_VERSION = 2

_LEGACY_FLAG_NAMES = {
    "hasCompletedMandatoryST10": "mandatory_gate_completed",
    "canManualReincarnate": "voluntary_unlocked",
    "hasUnlockedSpiritCycle": "spirit_cycle_unlocked",
    "unlockedBeyondSpirit": "beyond_gate_unlocked",
}


def _section(payload: Dict, key: str) -> Dict[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


def _legacy_age(payload: Dict) -> Any:
    if "age" in payload:
        return payload.get("age")
    if "ageYears" in payload:
        return payload.get("ageYears")
    lifespan = _section(payload, "lifespan")
    max_years = lifespan.get("max")
    current = lifespan.get("current")
    if isinstance(max_years, (int, float)) and isinstance(current, (int, float)):
        return max(0.0, max_years - current)
    return None


def _migrate_v0_to_v1(payload: Dict) -> Dict:
    """Flat browser save (camelCase, semver string version) to sectioned v1."""
    if not any(key in payload for key in ("qi", "realmIndex", "reinc", "stage")):
        raise SaveMigrationError("Legacy save has no recognisable progress fields.")

    reinc = _section(payload, "reinc")
    flags = _section(payload, "flags")
    stats = _section(payload, "stats")
    meta = _section(payload, "meta")
    lifespan = _section(payload, "lifespan")
    time_speed = _section(payload, "timeSpeed")

    speed = time_speed.get("current", 1)
    if time_speed.get("paused"):
        speed = 0

    run: Dict[str, Any] = {
        "qi": payload.get("qi"),
        "qpc_base": payload.get("qpcBase"),
        "qps_base": payload.get("qpsBase"),
        "realm_index": payload.get("realmIndex"),
        "stage": payload.get("stage"),
        "lifespan_max": lifespan.get("max"),
        "current_cycle": payload.get("currentCycle"),
        "skills": payload.get("skills"),
        "lifetime_qi": reinc.get("lifetimeQi"),
        "time_speed": speed,
        "is_dead": payload.get("isDead", False),
        "lifespan_handled": flags.get("lifespanHandled", False),
    }
    age = _legacy_age(payload)
    if age is not None:
        run["age"] = age

    upgraded_flags = {
        new: bool(flags.get(old, False)) for old, new in _LEGACY_FLAG_NAMES.items()
    }
    upgraded: Dict[str, Any] = {
        "version": 1,
        "run": {key: value for key, value in run.items() if value is not None},
        "meta": {
            "karma": reinc.get("karma", 0),
            "reincarnation_count": reinc.get("times", 0),
            "death_count": stats.get("deaths", 0),
            "cycle_transitions": 1 if upgraded_flags["mandatory_gate_completed"] else 0,
            "flags": upgraded_flags,
        },
        "session": None,
    }
    if "unlockedSpeeds" in meta:
        upgraded["meta"]["unlocked_speeds"] = meta.get("unlockedSpeeds")

    lifecycle = payload.get("lifecycle")
    if isinstance(lifecycle, dict):
        upgraded["lifecycle"] = {
            "is_reincarnating": bool(lifecycle.get("isReincarnating", False)),
            "last_death_at": lifecycle.get("lastDeathAt", 0),
            "last_reincarnate_at": lifecycle.get("lastReincarnateAt", 0),
        }

    session = payload.get("session")
    if isinstance(session, dict) and session.get("lastTs"):
        upgraded["session"] = {
            "suspended_at_ms": session.get("lastTs"),
            "speed": session.get("lastSpeed", 0),
            "realm_index": session.get("lastRealmIndex", 0),
            "qi": session.get("lastQi", 0),
        }
    return upgraded


def _migrate_v1_to_v2(payload: Dict) -> Dict:
    """v1 kept is_dead / lifespan_handled booleans; v2 folds them into the lifecycle phase."""
    upgraded = dict(payload)
    run = dict(_section(payload, "run"))
    is_dead = bool(run.pop("is_dead", False))
    run.pop("lifespan_handled", None)
    upgraded["run"] = run

    if "lifecycle" in payload:
        old = _section(payload, "lifecycle")
        lifecycle: Dict[str, Any] = {
            "phase": "living",
            "pending": None,
            "last_death_at": old.get("last_death_at", 0),
            "last_reincarnate_at": old.get("last_reincarnate_at", 0),
        }
        # only a death can be persisted mid-flight: it waits on the player
        if is_dead and old.get("is_reincarnating"):
            lifecycle["phase"] = "transitioning"
            lifecycle["pending"] = {
                "trigger": "death",
                "karma_gain": None,
                "started_at_ms": old.get("last_death_at", 0),
                "age_at_trigger": run.get("age", 0),
            }
        upgraded["lifecycle"] = lifecycle

    upgraded["version"] = 2
    return upgraded


MIGRATIONS: Dict[int, Migration] = {
    0: _migrate_v0_to_v1,
    1: _migrate_v1_to_v2,
}


def payload_version(payload: Dict) -> int:
    if "version" not in payload and isinstance(payload.get("run"), dict) and isinstance(
        payload.get("meta"), dict
    ):
        # sectioned save that only lost its version key
        return SCHEMA_VERSION
    version = payload.get("version", 0)
    if version is None or isinstance(version, str):
        # browser saves carried the game's semver string
        return 0
    if isinstance(version, bool) or not isinstance(version, int):
        raise SaveMigrationError("Save version missing or invalid.")
    return version


def migrate_save_payload(payload: Dict, target_version: int = SCHEMA_VERSION) -> Dict:
    if not isinstance(payload, dict):
        raise SaveMigrationError("Save payload was not an object.")

    version = payload_version(payload)
    if version > target_version:
        raise SaveMigrationError(
            f"Save schema {version} is newer than supported {target_version}."
        )

    current = copy.deepcopy(payload)
    while version < target_version:
        migrator = MIGRATIONS.get(version)
        if migrator is None:
            raise SaveMigrationError(
                f"No migration available for save schema {version}."
            )
        current = migrator(current)
        version = current.get("version", version + 1)
        if not isinstance(version, int):
            raise SaveMigrationError("Migration produced an invalid schema version.")

    return current
