#!/usr/bin/env python3
"""
Cultivation worker.

This worker owns the one in-memory Cultivation, consumes player commands from
Redis, advances it on a fixed clock, and publishes saves/events back to Redis.
A Redis lease ensures only one worker advances a given save at a time.
"""
from __future__ import annotations

import asyncio
import os
import signal
import socket
import time
from dataclasses import dataclass
from typing import List, Optional

from samsara.commands import apply_command, parse_command
from samsara.cultivation import Cultivation
from samsara.infra.redis_store import RedisStore
from samsara.models import BALANCE_CONFIG, RunStarted
from samsara.state_utils import restore, serialize, snapshot_view


@dataclass(frozen=True)
class WorkerConfig:
    event_maxlen: int
    tick_seconds: float
    save_every_ticks: int
    command_block_ms: int
    lease_key: str
    lease_ttl_ms: int
    worker_id: str
    command_group: str
    command_consumer: str


def _load_config() -> WorkerConfig:
    return WorkerConfig(
        event_maxlen=int(os.environ.get("EVENT_STREAM_MAXLEN", 5000)),
        tick_seconds=float(os.environ.get("TICK_SECONDS", 1.0)),
        save_every_ticks=int(os.environ.get("SAVE_EVERY_TICKS", 10)),
        command_block_ms=int(os.environ.get("COMMAND_BLOCK_MS", 50)),
        lease_key=os.environ.get("LEASE_KEY", "samsara:lease"),
        lease_ttl_ms=int(os.environ.get("LEASE_TTL_MS", 10000)),
        worker_id=os.environ.get("WORKER_ID", socket.gethostname()),
        command_group=os.environ.get("COMMAND_GROUP", "samsara"),
        command_consumer=os.environ.get("COMMAND_CONSUMER", f"samsara-{os.getpid()}"),
    )


_CONFIG = _load_config()


class CultivationWorker:
    def __init__(self) -> None:
        self.store = RedisStore()
        self.cultivation: Optional[Cultivation] = None
        self._stop = asyncio.Event()
        self.lease_key = _CONFIG.lease_key
        self.lease_ttl_ms = _CONFIG.lease_ttl_ms
        self.worker_id = _CONFIG.worker_id
        self._ticks = 0
        # set by the RunStarted listener, flushed by the loop
        self._committed: List[RunStarted] = []

    async def setup(self) -> None:
        await self.store.ensure_consumer_group(self.store.command_stream, _CONFIG.command_group)
        if not await self._acquire_lease():
            raise RuntimeError("lease already held; refusing to start")
        print(f"[samsara-worker] lease acquired key={self.lease_key} holder={self.worker_id}")

        blob = await self.store.load_blob()
        self.cultivation = restore(blob, BALANCE_CONFIG)
        self.cultivation.subscribe(self._committed.append)
        if blob is None:
            print("[samsara-worker] no save found; starting a fresh run")
        if self.cultivation.pending is not None:
            # a transition interrupted by the last shutdown; nobody is waiting on it
            self.cultivation.acknowledge()

        report = self.cultivation.on_resume()
        if report is not None:
            print(
                f"[samsara-worker] offline replay {report.capped_seconds}s "
                f"(of {report.elapsed_seconds}s) qi+{report.qi_gained:g} "
                f"exhausted={report.exhausted}"
            )
            await self.store.append_event(
                {
                    "type": "offline",
                    "elapsed_seconds": report.elapsed_seconds,
                    "capped_seconds": report.capped_seconds,
                    "qi_gained": report.qi_gained,
                    "years_passed": report.years_passed,
                    "exhausted": report.exhausted,
                    "show_gains": report.show_gains,
                },
                maxlen=_CONFIG.event_maxlen,
            )
        await self._flush_committed()
        await self.save()

    async def save(self) -> None:
        assert self.cultivation is not None
        await self.store.save_blob(serialize(self.cultivation))

    async def _flush_committed(self) -> None:
        """
        Publish every transition committed since the last flush and persist
        once. Listeners only queue; the guard is already clear here.
        """
        if not self._committed:
            return
        events = list(self._committed)
        self._committed.clear()
        for event in events:
            await self.store.append_event(
                {
                    "type": "run_started",
                    "trigger": event.trigger.value,
                    "karma_gain": event.karma_gain,
                    "karma_total": event.karma_total,
                    "reincarnation_count": event.reincarnation_count,
                    "death_count": event.death_count,
                    "at_ms": event.at_ms,
                },
                maxlen=_CONFIG.event_maxlen,
            )
        await self.save()

    async def _drain_commands(self) -> None:
        assert self.cultivation is not None
        entries = await self.store.read_commands(
            _CONFIG.command_group,
            _CONFIG.command_consumer,
            block_ms=_CONFIG.command_block_ms,
        )
        ids: List[str] = []
        for msg_id, payload in entries:
            ids.append(msg_id)
            command = parse_command(payload)
            if command is None:
                continue
            outcome = apply_command(self.cultivation, command)
            await self.store.append_event(
                {"type": "command", **outcome}, maxlen=_CONFIG.event_maxlen
            )
        if ids:
            await self.store.ack_commands(ids, _CONFIG.command_group)

    async def tick_once(self, elapsed_seconds: float) -> None:
        assert self.cultivation is not None
        await self._drain_commands()
        self.cultivation.tick(elapsed_seconds)
        await self._flush_committed()

        self._ticks += 1
        if self._ticks % _CONFIG.save_every_ticks == 0:
            await self.save()
            await self.store.append_event(
                {"type": "frame", "data": snapshot_view(self.cultivation)},
                maxlen=_CONFIG.event_maxlen,
            )

    async def _acquire_lease(self) -> bool:
        return bool(
            await self.store.client.set(
                name=self.lease_key,
                value=self.worker_id,
                nx=True,
                px=self.lease_ttl_ms,
            )
        )

    async def _renew_lease(self) -> bool:
        script = """
        if redis.call('GET', KEYS[1]) == ARGV[1] then
            return redis.call('PEXPIRE', KEYS[1], ARGV[2])
        else
            return 0
        end
        """
        res = await self.store.client.eval(
            script, 1, self.lease_key, self.worker_id, self.lease_ttl_ms
        )
        return res == 1

    async def _release_lease(self) -> None:
        script = """
        if redis.call('GET', KEYS[1]) == ARGV[1] then
            return redis.call('DEL', KEYS[1])
        else
            return 0
        end
        """
        await self.store.client.eval(script, 1, self.lease_key, self.worker_id)

    async def run(self) -> None:
        try:
            await self.setup()
        except RuntimeError as exc:
            print(f"[samsara-worker] {exc}")
            return

        print(
            f"[samsara-worker] starting loop worker_id={self.worker_id} "
            f"tick={_CONFIG.tick_seconds}s lease_key={self.lease_key}"
        )
        last = time.monotonic()
        try:
            while not self._stop.is_set():
                now = time.monotonic()
                elapsed, last = now - last, now
                try:
                    await self.tick_once(elapsed)
                except Exception as exc:  # pragma: no cover - background safety
                    print(f"[samsara-worker] error during tick: {exc}")

                ok = await self._renew_lease()
                if not ok:
                    # Try to reacquire in case the lease simply expired without a holder.
                    ok = await self._acquire_lease()
                    if ok:
                        print("[samsara-worker] lease reacquired after lapse")
                if not ok:
                    print("[samsara-worker] lost lease; stopping")
                    break

                await asyncio.sleep(_CONFIG.tick_seconds)
        finally:
            if self.cultivation is not None:
                try:
                    # the gap until the next start is replayed from this snapshot
                    self.cultivation.on_suspend()
                    await self.save()
                except Exception as exc:
                    print(f"[samsara-worker] final save failed: {exc}")
            try:
                await self._release_lease()
            except Exception:
                pass
            try:
                await self.store.close()
                await self.store.client.connection_pool.disconnect()  # type: ignore[attr-defined]
            except Exception:
                pass
            print("[samsara-worker] stopping loop")

    def stop(self) -> None:
        self._stop.set()


async def main() -> None:
    worker = CultivationWorker()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, worker.stop)

    await worker.run()


if __name__ == "__main__":
    asyncio.run(main())
