#!/usr/bin/env python3
"""
Player commands as they travel over the command stream, and their dispatch
onto a Cultivation. The API validates with Command before appending; the
worker validates again on read since the stream is writable by anyone.
"""
from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from samsara.cultivation import Cultivation

Action = Literal[
    "click",
    "breakthrough",
    "purchase",
    "set_speed",
    "reincarnate",
    "acknowledge",
    "reset",
]


class Command(BaseModel):
    """One player action."""

    action: Action
    count: int = Field(1, ge=1, le=100, description="Repeat count for click")
    skill_id: Optional[str] = Field(None, description="Skill to buy (purchase)")
    speed: Optional[float] = Field(None, ge=0, description="Requested time speed (set_speed)")
    mode: Optional[str] = Field(None, description="'voluntary' or 'mandatory' (reincarnate)")


def parse_command(payload: Dict[str, Any]) -> Optional[Command]:
    try:
        return Command.model_validate(payload)
    except ValidationError as exc:
        print(f"[samsara-worker] dropping malformed command {payload!r}: {exc.error_count()} errors")
        return None


def apply_command(cultivation: Cultivation, command: Command) -> Dict[str, Any]:
    """
    Run one command and describe the outcome. Rejections come back as
    result strings; nothing here raises for a well-formed Command.
    """
    action = command.action
    if action == "click":
        gained = sum(cultivation.click() for _ in range(command.count))
        return {"action": action, "result": "ok", "qi_gained": gained}
    if action == "breakthrough":
        return {"action": action, "result": cultivation.breakthrough().value}
    if action == "purchase":
        result = cultivation.purchase(command.skill_id or "")
        return {"action": action, "result": result.value, "skill_id": command.skill_id}
    if action == "set_speed":
        applied = cultivation.set_time_speed(1.0 if command.speed is None else command.speed)
        return {"action": action, "result": "ok", "speed": applied}
    if action == "reincarnate":
        result = cultivation.request_reincarnate(command.mode or "")
        return {"action": action, "result": result.value, "mode": command.mode}
    if action == "acknowledge":
        return {"action": action, "result": "ok" if cultivation.acknowledge() else "ignored"}
    cultivation.full_reset()
    return {"action": action, "result": "ok"}
