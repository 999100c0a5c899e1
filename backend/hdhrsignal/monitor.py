"""Per-connection live tuner monitoring.

Each client connection owns at most one MonitorSession. A session polls the
tuner status on a fixed cadence and pushes the result through the connection's
send callback. Ticks carry the generation they were started under, so results
that complete after a stop/restart are dropped instead of pushed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .devices.base import ProcessFailure
from .devices.hdhomerun import HDHomeRunController, validate_target
from .devices.parsers import TunerStatus

logger = logging.getLogger(__name__)

SendFn = Callable[[dict[str, Any]], Awaitable[None]]


def idle_status_payload() -> dict[str, Any]:
    return TunerStatus.idle().to_dict()


class MonitorSession:
    """Idle -> Monitoring -> Idle state machine for one connection."""

    def __init__(
        self,
        controller: HDHomeRunController,
        send: SendFn,
        *,
        connection_id: str = "",
        interval_s: float = 1.0,
        timeout_s: float = 4.0,
        include_program: bool = True,
    ) -> None:
        self.controller = controller
        self.connection_id = connection_id
        self.interval_s = interval_s
        self.timeout_s = timeout_s
        self.include_program = include_program
        self._send = send
        self._generation = 0
        self._scheduler: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._closed = False
        self.device_id: str | None = None
        self.tuner: int | None = None
        self.ticks_started = 0
        self.ticks_skipped = 0

    @property
    def state(self) -> str:
        return "monitoring" if self.active else "idle"

    @property
    def active(self) -> bool:
        return self._scheduler is not None and not self._scheduler.done()

    @property
    def generation(self) -> int:
        return self._generation

    def start(self, device_id: str, tuner: int) -> None:
        """Begin monitoring device_id/tuner, replacing any running session."""
        if self._closed:
            raise RuntimeError("monitor session is closed")
        device_id, tuner = validate_target(device_id, tuner)
        self._cancel()
        self.device_id = device_id
        self.tuner = tuner
        self._scheduler = asyncio.create_task(
            self._schedule(self._generation, device_id, tuner),
            name=f"monitor:{self.connection_id}:{device_id}/{tuner}",
        )
        logger.info(
            "Monitoring %s tuner %d for connection %s", device_id, tuner, self.connection_id
        )

    def stop(self) -> None:
        """Stop monitoring. Safe to call when already idle."""
        if self.active:
            logger.info("Stopped monitoring for connection %s", self.connection_id)
        self._cancel()

    def close(self) -> None:
        self.stop()
        self._closed = True

    def _cancel(self) -> None:
        self._generation += 1
        if self._scheduler is not None:
            self._scheduler.cancel()
            self._scheduler = None
        # An in-flight tick is left to finish; its generation is stale now
        self._inflight = None

    async def _schedule(self, generation: int, device_id: str, tuner: int) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        while generation == self._generation:
            if self._inflight is not None and not self._inflight.done():
                self.ticks_skipped += 1
                logger.debug("Skipping tick for %s, previous still running", self.connection_id)
            else:
                self.ticks_started += 1
                task = asyncio.create_task(self._tick(generation, device_id, tuner))
                self._inflight = task
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)

            next_at += self.interval_s
            delay = next_at - loop.time()
            if delay < 0:
                # Fell behind; resync instead of firing a burst
                next_at = loop.time()
                delay = 0
            await asyncio.sleep(delay)

    async def _poll(self, device_id: str, tuner: int) -> dict[str, Any]:
        # Both reads run concurrently so a tick is bounded by one timeout_s
        calls: list[Awaitable[Any]] = [
            self.controller.get_tuner_status(device_id, tuner, timeout_s=self.timeout_s)
        ]
        if self.include_program:
            calls.append(
                self.controller.get_current_program(device_id, tuner, timeout_s=self.timeout_s)
            )
        results = await asyncio.gather(*calls, return_exceptions=True)

        status = results[0]
        if isinstance(status, ProcessFailure):
            logger.debug("Status poll failed for %s/%d: %s", device_id, tuner, status.detail)
            return idle_status_payload()
        if isinstance(status, BaseException):
            raise status

        payload = status.to_dict()
        if self.include_program:
            program = results[1]
            if isinstance(program, BaseException):
                raise program
            payload["program"] = program
        return payload

    async def _tick(self, generation: int, device_id: str, tuner: int) -> None:
        payload = await self._poll(device_id, tuner)
        if generation != self._generation:
            logger.debug("Dropping stale status for %s/%d", device_id, tuner)
            return
        try:
            await self._send({
                "type": "tuner-status",
                "deviceId": device_id,
                "tuner": tuner,
                "data": payload,
            })
        except Exception as e:
            logger.warning("Failed to push status to %s: %s", self.connection_id, e)

    async def drain(self) -> None:
        """Wait for ticks already in flight (used on shutdown and in tests)."""
        pending = list(self._pending)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


class MonitorRegistry:
    """Live sessions keyed by connection id.

    Entries are created when a connection opens and removed when it closes.
    """

    def __init__(
        self,
        controller: HDHomeRunController,
        *,
        interval_s: float = 1.0,
        timeout_s: float = 4.0,
        include_program: bool = True,
    ) -> None:
        self.controller = controller
        self.interval_s = interval_s
        self.timeout_s = timeout_s
        self.include_program = include_program
        self._sessions: dict[str, MonitorSession] = {}

    def open(self, connection_id: str, send: SendFn) -> MonitorSession:
        if connection_id in self._sessions:
            raise KeyError(f"connection {connection_id} already registered")
        session = MonitorSession(
            self.controller,
            send,
            connection_id=connection_id,
            interval_s=self.interval_s,
            timeout_s=self.timeout_s,
            include_program=self.include_program,
        )
        self._sessions[connection_id] = session
        return session

    def get(self, connection_id: str) -> MonitorSession | None:
        return self._sessions.get(connection_id)

    def close(self, connection_id: str) -> None:
        session = self._sessions.pop(connection_id, None)
        if session is not None:
            session.close()

    async def close_all(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            session.close()
        for session in sessions:
            with contextlib.suppress(asyncio.CancelledError):
                await session.drain()

    def __len__(self) -> int:
        return len(self._sessions)

    def active_count(self) -> int:
        return sum(1 for s in self._sessions.values() if s.active)
