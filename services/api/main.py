import os
import secrets
from dataclasses import dataclass
from typing import Any, Dict, List

import redis
import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from samsara.commands import Command
from samsara.infra.redis_store import RedisStore
from samsara.models import BALANCE_CONFIG
from samsara.state_utils import restore, snapshot_view


@dataclass(frozen=True)
class ApiConfig:
    cors_allow_origins: str
    admin_token: str
    command_maxlen: int
    port: int


def _load_config() -> ApiConfig:
    return ApiConfig(
        cors_allow_origins=os.environ.get("CORS_ALLOW_ORIGINS", "*"),
        admin_token=os.environ.get("ADMIN_TOKEN", ""),
        command_maxlen=int(os.environ.get("COMMAND_STREAM_MAXLEN", "5000")),
        port=int(os.environ.get("PORT", "8000")),
    )


_CONFIG = _load_config()

store = RedisStore()

app = FastAPI(title="Samsara API", version="0.1.0")

cors_origins = _CONFIG.cors_allow_origins
origins = [origin.strip() for origin in cors_origins.split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _require_admin(request: Request) -> None:
    if not _CONFIG.admin_token:
        raise HTTPException(status_code=403, detail="admin endpoints disabled")
    token = request.headers.get("x-admin-token", "")
    if not token or not secrets.compare_digest(token, _CONFIG.admin_token):
        raise HTTPException(status_code=401, detail="invalid admin token")


@app.get("/health")
async def health() -> Dict[str, str]:
    try:
        await store.client.ping()
    except redis.exceptions.RedisError as exc:  # type: ignore[attr-defined]
        raise HTTPException(status_code=503, detail=f"redis error: {exc}") from exc
    return {"status": "ok"}


@app.get("/snapshot")
async def snapshot() -> Dict[str, Any]:
    """
    Public view of the latest save written by the worker.
    """
    blob = await store.load_blob()
    if not blob:
        raise HTTPException(status_code=404, detail="no save yet")
    # auto_finalize=False so a persisted pending death is shown, not committed
    return snapshot_view(restore(blob, BALANCE_CONFIG, auto_finalize=False))


@app.get("/events")
async def events(after: str = "0-0", count: int = 100) -> List[Dict[str, Any]]:
    """
    Events after a given stream id: lifecycle notices, command outcomes,
    offline reports and periodic frames.
    """
    entries = await store.read_events(last_id=after, count=count, block_ms=None)
    out: List[Dict[str, Any]] = []
    for entry_id, payload in entries:
        item = dict(payload)
        item["id"] = entry_id
        out.append(item)
    return out


@app.post("/commands")
async def post_command(command: Command) -> Dict[str, str]:
    """
    Queue a player command for the worker.
    """
    if command.action == "reset":
        raise HTTPException(status_code=400, detail="use /admin/reset")
    msg_id = await store.append_command(
        command.model_dump(exclude_none=True), maxlen=_CONFIG.command_maxlen
    )
    return {"id": msg_id}


@app.post("/admin/reset")
async def reset(request: Request) -> Dict[str, str]:
    """
    Queue a full reset: both run and meta progress are wiped.
    """
    _require_admin(request)
    msg_id = await store.append_command({"action": "reset"}, maxlen=_CONFIG.command_maxlen)
    return {"status": "queued", "id": msg_id}


if __name__ == "__main__":
    uvicorn.run(
        "services.api.main:app", host="0.0.0.0", port=_CONFIG.port, reload=False
    )
