"""Semantic device operations built on hdhomerun_config.

Read-only telemetry (program listing, tuner probing, current program) absorbs
ProcessFailure into safe defaults, since an idle or unreachable tuner is a
normal state. Mutations let ProcessFailure propagate to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .base import CommandRunner, FailureKind, InvalidArgument, ProcessFailure
from .parsers import (
    IDLE_CHANNEL,
    Device,
    ProgramEntry,
    TunerStatus,
    guess_tuner_count,
    parse_discover,
    parse_model,
    parse_program_selector,
    parse_status,
    parse_streaminfo,
    split_channel_spec,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceInfo:
    id: str
    model: str
    tuners: int

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "model": self.model, "tuners": self.tuners}


@dataclass(frozen=True)
class TuneResult:
    channel: str
    program: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"channel": self.channel, "program": self.program}


def _check_device_id(device_id: str) -> str:
    device_id = (device_id or "").strip()
    if not device_id or device_id.startswith("-") or any(c.isspace() for c in device_id):
        raise InvalidArgument(f"invalid device id: {device_id!r}")
    return device_id


def _check_tuner(tuner: int) -> int:
    if isinstance(tuner, bool) or not isinstance(tuner, int) or tuner < 0:
        raise InvalidArgument(f"invalid tuner index: {tuner!r}")
    return tuner


def validate_target(device_id: str, tuner: int) -> tuple[str, int]:
    """Normalized (device_id, tuner), or InvalidArgument."""
    return _check_device_id(device_id), _check_tuner(tuner)


def _tuner_path(tuner: int, item: str) -> str:
    return f"/tuner{tuner}/{item}"


class HDHomeRunController:
    """Device/tuner operations. All methods are coroutines."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        max_tuners: int = 8,
        default_tuner_count: int = 2,
    ) -> None:
        self.runner = runner
        self.max_tuners = max_tuners
        self.default_tuner_count = default_tuner_count

    async def _get(self, device_id: str, path: str, timeout_s: float | None = None) -> str:
        return await self.runner.run([device_id, "get", path], timeout_s=timeout_s)

    async def _set(self, device_id: str, path: str, value: str) -> str:
        return await self.runner.run([device_id, "set", path, value])

    # -- discovery / info ---------------------------------------------------

    async def discover(self) -> list[Device]:
        try:
            out = await self.runner.run(["discover"])
        except ProcessFailure as e:
            # The utility exits non-zero when nothing answers the broadcast
            if e.kind is FailureKind.NON_ZERO_EXIT and "no devices found" in (e.stdout + e.stderr).lower():
                return []
            raise
        devices = parse_discover(out)
        logger.info("Discovered %d device(s)", len(devices))
        return devices

    async def count_tuners(self, device_id: str) -> int:
        """Probe tuner status indices from 0 until the first failure.

        Assumes tuner indices are contiguous from 0. Returns 0 when even
        tuner 0 does not answer.
        """
        device_id = _check_device_id(device_id)
        count = 0
        for index in range(self.max_tuners):
            try:
                await self._get(device_id, _tuner_path(index, "status"))
            except ProcessFailure:
                break
            count += 1
        return count

    async def get_info(self, device_id: str) -> DeviceInfo:
        device_id = _check_device_id(device_id)
        try:
            model = parse_model(await self._get(device_id, "/sys/model"))
        except ProcessFailure as e:
            logger.info("Model query failed for %s: %s", device_id, e.detail)
            model = "Unknown"

        tuners = await self.count_tuners(device_id)
        if tuners == 0:
            tuners = guess_tuner_count(model) or self.default_tuner_count
            logger.debug("Tuner probing inconclusive for %s, using %d", device_id, tuners)
        return DeviceInfo(id=device_id, model=model, tuners=tuners)

    async def describe(self, device: Device) -> Device:
        """Fill model and tuner_count on a discovered device."""
        info = await self.get_info(device.id)
        device.model = info.model
        device.tuner_count = info.tuners
        return device

    # -- telemetry ----------------------------------------------------------

    async def get_tuner_status(
        self, device_id: str, tuner: int, timeout_s: float | None = None
    ) -> TunerStatus:
        device_id = _check_device_id(device_id)
        tuner = _check_tuner(tuner)
        out = await self._get(device_id, _tuner_path(tuner, "status"), timeout_s=timeout_s)
        return parse_status(out)

    async def get_current_program(
        self, device_id: str, tuner: int, timeout_s: float | None = None
    ) -> int | None:
        device_id = _check_device_id(device_id)
        tuner = _check_tuner(tuner)
        try:
            out = await self._get(device_id, _tuner_path(tuner, "program"), timeout_s=timeout_s)
        except ProcessFailure as e:
            logger.debug("Program query failed for %s/%d: %s", device_id, tuner, e.detail)
            return None
        return parse_program_selector(out)

    async def get_channel_map(self, device_id: str, tuner: int) -> str | None:
        device_id = _check_device_id(device_id)
        tuner = _check_tuner(tuner)
        try:
            out = await self._get(device_id, _tuner_path(tuner, "channelmap"))
        except ProcessFailure as e:
            logger.debug("Channel map query failed for %s/%d: %s", device_id, tuner, e.detail)
            return None
        return out.strip() or None

    async def list_programs(self, device_id: str, tuner: int) -> list[ProgramEntry]:
        device_id = _check_device_id(device_id)
        tuner = _check_tuner(tuner)
        try:
            out = await self._get(device_id, _tuner_path(tuner, "streaminfo"))
        except ProcessFailure as e:
            logger.info("streaminfo failed for %s/%d: %s", device_id, tuner, e.detail)
            return []
        return parse_streaminfo(out)

    # -- mutations ----------------------------------------------------------

    async def set_channel_map(self, device_id: str, tuner: int, map_name: str) -> None:
        device_id = _check_device_id(device_id)
        tuner = _check_tuner(tuner)
        map_name = (map_name or "").strip()
        if not map_name:
            raise InvalidArgument("map is required")
        await self._set(device_id, _tuner_path(tuner, "channelmap"), map_name)
        logger.info("Set %s/%d channel map to %s", device_id, tuner, map_name)

    async def set_channel(self, device_id: str, tuner: int, channel_spec: str) -> TuneResult:
        """Tune a channel, optionally selecting a program.

        Accepts "21", "auto:650000000", "auto:650000000:101" and "21:101".
        A failed program select does not undo the channel change.
        """
        device_id = _check_device_id(device_id)
        tuner = _check_tuner(tuner)
        channel_spec = (channel_spec or "").strip()
        if not channel_spec:
            raise InvalidArgument("channel is required")

        channel, program = split_channel_spec(channel_spec)
        await self._set(device_id, _tuner_path(tuner, "channel"), channel)
        if program:
            await self._set(device_id, _tuner_path(tuner, "program"), program)

        logger.info("Tuned %s/%d to %s (program %s)", device_id, tuner, channel, program or "-")
        return TuneResult(channel=channel, program=int(program) if program and program.isdigit() else None)

    async def clear_tuner(self, device_id: str, tuner: int) -> None:
        device_id = _check_device_id(device_id)
        tuner = _check_tuner(tuner)
        await self._set(device_id, _tuner_path(tuner, "channel"), IDLE_CHANNEL)
        try:
            await self._set(device_id, _tuner_path(tuner, "program"), IDLE_CHANNEL)
        except ProcessFailure as e:
            logger.debug("Ignoring program clear failure on %s/%d: %s", device_id, tuner, e.detail)
        logger.info("Cleared %s/%d", device_id, tuner)
