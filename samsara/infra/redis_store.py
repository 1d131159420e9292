#!/usr/bin/env python3
"""
Redis persistence for a single cultivation save.

Thin wrapper around redis.asyncio for:
- storing/loading the save blob in a hash
- appending lifecycle notices and state frames to an append-only stream
- reading player commands via a consumer group
"""
from __future__ import annotations

import json
from typing import Any, Iterable, Optional

from redis import asyncio as aioredis
from redis.exceptions import ResponseError

from samsara.models import RedisSettings


def _decode(fields: dict) -> dict:
    payload_raw = fields.get("data")
    return json.loads(payload_raw) if payload_raw else {}


class RedisStore:
    def __init__(self, settings: RedisSettings | None = None) -> None:
        self.settings = settings or RedisSettings()
        self.url = str(self.settings.redis_url)
        self.event_stream = self.settings.event_stream
        self.command_stream = self.settings.command_stream
        self.save_key = self.settings.save_key
        # decode_responses=True so we deal with str, not bytes
        self._redis = aioredis.from_url(self.url, decode_responses=True)

    @property
    def client(self):
        return self._redis

    async def close(self) -> None:
        await self._redis.close()

    # --- Save blob ---
    async def save_blob(self, blob: dict) -> None:
        """
        Store the latest save as a hash. The 'data' field holds JSON, 'run'
        counts committed transitions for quick inspection.
        """
        meta = blob.get("meta") or {}
        runs = int(meta.get("reincarnation_count", 0)) + int(meta.get("death_count", 0))
        mapping = {"data": json.dumps(blob), "run": str(runs)}
        await self._redis.hset(self.save_key, mapping=mapping)

    async def load_blob(self) -> Optional[str]:
        """
        Raw JSON text of the stored save, or None. Decoding is left to
        state_utils.deserialize so a corrupt save never raises here.
        """
        data = await self._redis.hget(self.save_key, "data")
        return data or None

    # --- Consumer group helpers ---
    async def ensure_consumer_group(self, stream: str, group: str) -> None:
        """
        Create the consumer group if it does not already exist.
        """
        try:
            await self._redis.xgroup_create(stream, group, id="0", mkstream=True)
        except ResponseError as exc:
            if "BUSYGROUP" in str(exc):
                return
            raise

    async def append_command(self, payload: dict, maxlen: Optional[int] = None) -> str:
        return await self._redis.xadd(
            name=self.command_stream,
            fields={"data": json.dumps(payload)},
            maxlen=maxlen,
            approximate=True,
        )

    async def read_commands(
        self,
        group: str,
        consumer: str,
        count: int = 20,
        block_ms: int = 100,
    ) -> list[tuple[str, dict]]:
        """
        Read player commands via consumer group semantics.
        Returns a list of (message_id, payload_dict).
        """
        entries = await self._redis.xreadgroup(
            groupname=group,
            consumername=consumer,
            streams={self.command_stream: ">"},
            count=count,
            block=block_ms,
        )
        if not entries:
            return []
        out: list[tuple[str, dict]] = []
        for _, messages in entries:
            for message_id, fields in messages:
                out.append((message_id, _decode(fields)))
        return out

    async def ack_commands(self, ids: Iterable[str], group: str) -> None:
        ids = list(ids)
        if not ids:
            return
        await self._redis.xack(self.command_stream, group, *ids)

    # --- Event helpers ---
    async def append_event(self, payload: dict, maxlen: Optional[int] = None) -> str:
        """
        Append a payload to the event stream. Uses field name 'data' to store JSON.
        """
        args: dict[str, Any] = {"data": json.dumps(payload)}
        return await self._redis.xadd(
            name=self.event_stream,
            fields=args,
            maxlen=maxlen,
            approximate=True,
        )

    async def read_events(
        self,
        last_id: str = "$",
        count: int = 50,
        block_ms: int | None = None,
    ) -> list[tuple[str, dict]]:
        """
        Read events after last_id. Use last_id="$" to block for new entries.
        """
        entries = await self._redis.xread(
            streams={self.event_stream: last_id},
            count=count,
            block=block_ms,
        )
        if not entries:
            return []
        out: list[tuple[str, dict]] = []
        for _, messages in entries:
            for message_id, fields in messages:
                out.append((message_id, _decode(fields)))
        return out
