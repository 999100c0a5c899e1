"""Tests for the device command layer (HDHomeRunController)."""

import pytest

from helpers import ScriptedRunner, make_failure
from hdhrsignal.devices.base import FailureKind, InvalidArgument, ProcessFailure
from hdhrsignal.devices.fake import FakeToolRunner
from hdhrsignal.devices.hdhomerun import HDHomeRunController

pytestmark = pytest.mark.asyncio


class TestSetChannel:
    async def test_frequency_spec_with_program(self, scripted_runner: ScriptedRunner) -> None:
        controller = HDHomeRunController(scripted_runner)
        result = await controller.set_channel("1040ABCD", 0, "auto:650000000:101")
        assert scripted_runner.set_calls() == [
            ("1040ABCD", "set", "/tuner0/channel", "auto:650000000"),
            ("1040ABCD", "set", "/tuner0/program", "101"),
        ]
        assert result.channel == "auto:650000000"
        assert result.program == 101

    async def test_channel_number_with_program(self, scripted_runner: ScriptedRunner) -> None:
        controller = HDHomeRunController(scripted_runner)
        result = await controller.set_channel("1040ABCD", 1, "21:101")
        assert scripted_runner.set_calls() == [
            ("1040ABCD", "set", "/tuner1/channel", "21"),
            ("1040ABCD", "set", "/tuner1/program", "101"),
        ]
        assert result.to_dict() == {"channel": "21", "program": 101}

    async def test_plain_channel_only_sets_channel(self, scripted_runner: ScriptedRunner) -> None:
        controller = HDHomeRunController(scripted_runner)
        result = await controller.set_channel("1040ABCD", 0, "21")
        assert scripted_runner.set_calls() == [("1040ABCD", "set", "/tuner0/channel", "21")]
        assert result.program is None

    async def test_frequency_without_program(self, scripted_runner: ScriptedRunner) -> None:
        controller = HDHomeRunController(scripted_runner)
        await controller.set_channel("1040ABCD", 0, "auto:650000000")
        assert scripted_runner.set_calls() == [
            ("1040ABCD", "set", "/tuner0/channel", "auto:650000000"),
        ]

    async def test_empty_program_field_skips_program_select(
        self, scripted_runner: ScriptedRunner
    ) -> None:
        controller = HDHomeRunController(scripted_runner)
        result = await controller.set_channel("1040ABCD", 0, "auto:650000000:")
        assert scripted_runner.set_calls() == [
            ("1040ABCD", "set", "/tuner0/channel", "auto:650000000"),
        ]
        assert result.to_dict() == {"channel": "auto:650000000", "program": None}

    @pytest.mark.parametrize("spec", ["", "   "])
    async def test_empty_spec_rejected(self, scripted_runner: ScriptedRunner, spec: str) -> None:
        controller = HDHomeRunController(scripted_runner)
        with pytest.raises(InvalidArgument):
            await controller.set_channel("1040ABCD", 0, spec)
        assert scripted_runner.calls == []

    async def test_program_failure_keeps_channel(self) -> None:
        def handler(args: tuple[str, ...]) -> str:
            if args[2].endswith("/program"):
                raise make_failure(args, stderr="ERROR: invalid program\n")
            return ""

        runner = ScriptedRunner(handler)
        controller = HDHomeRunController(runner)
        with pytest.raises(ProcessFailure):
            await controller.set_channel("1040ABCD", 0, "21:9")
        # No rollback: channel-set was issued and nothing undid it
        assert runner.set_calls() == [
            ("1040ABCD", "set", "/tuner0/channel", "21"),
            ("1040ABCD", "set", "/tuner0/program", "9"),
        ]

    async def test_channel_failure_propagates(self) -> None:
        def handler(args: tuple[str, ...]) -> str:
            raise make_failure(args)

        controller = HDHomeRunController(ScriptedRunner(handler))
        with pytest.raises(ProcessFailure):
            await controller.set_channel("1040ABCD", 0, "21")


class TestValidation:
    @pytest.mark.parametrize("device_id", ["", "  ", "-x", "1040 ABCD"])
    async def test_bad_device_id(self, scripted_runner: ScriptedRunner, device_id: str) -> None:
        controller = HDHomeRunController(scripted_runner)
        with pytest.raises(InvalidArgument):
            await controller.set_channel(device_id, 0, "21")
        assert scripted_runner.calls == []

    @pytest.mark.parametrize("tuner", [-1, True, "0"])
    async def test_bad_tuner(self, scripted_runner: ScriptedRunner, tuner) -> None:
        controller = HDHomeRunController(scripted_runner)
        with pytest.raises(InvalidArgument):
            await controller.get_tuner_status("1040ABCD", tuner)

    async def test_empty_channel_map_rejected(self, scripted_runner: ScriptedRunner) -> None:
        controller = HDHomeRunController(scripted_runner)
        with pytest.raises(InvalidArgument):
            await controller.set_channel_map("1040ABCD", 0, "")
        assert scripted_runner.calls == []


class TestClearTuner:
    async def test_clear_sets_none_sentinel(self, scripted_runner: ScriptedRunner) -> None:
        controller = HDHomeRunController(scripted_runner)
        await controller.clear_tuner("1040ABCD", 2)
        assert scripted_runner.set_calls() == [
            ("1040ABCD", "set", "/tuner2/channel", "none"),
            ("1040ABCD", "set", "/tuner2/program", "none"),
        ]

    async def test_program_clear_failure_tolerated(self) -> None:
        def handler(args: tuple[str, ...]) -> str:
            if args[2].endswith("/program"):
                raise make_failure(args)
            return ""

        controller = HDHomeRunController(ScriptedRunner(handler))
        await controller.clear_tuner("1040ABCD", 0)

    async def test_channel_clear_failure_propagates(self) -> None:
        def handler(args: tuple[str, ...]) -> str:
            raise make_failure(args)

        controller = HDHomeRunController(ScriptedRunner(handler))
        with pytest.raises(ProcessFailure):
            await controller.clear_tuner("1040ABCD", 0)

    async def test_clear_then_status_is_idle(
        self, fake_controller: HDHomeRunController
    ) -> None:
        await fake_controller.set_channel("1040ABCD", 0, "21:3")
        status = await fake_controller.get_tuner_status("1040ABCD", 0)
        assert status.channel == "21"
        assert status.locked

        await fake_controller.clear_tuner("1040ABCD", 0)
        status = await fake_controller.get_tuner_status("1040ABCD", 0)
        assert status.channel == "none"
        assert not status.locked


class TestTunerProbing:
    async def test_probing_stops_at_first_error(self) -> None:
        controller = HDHomeRunController(FakeToolRunner(tuners=3))
        assert await controller.count_tuners("1040ABCD") == 3
        info = await controller.get_info("1040ABCD")
        assert info.tuners == 3
        assert info.model == "HDHR5-4K"

    async def test_probing_short_circuits(self) -> None:
        runner = FakeToolRunner(tuners=2)
        controller = HDHomeRunController(runner)
        await controller.count_tuners("1040ABCD")
        probed = [c[2] for c in runner.calls if c[2].endswith("/status")]
        assert probed == ["/tuner0/status", "/tuner1/status", "/tuner2/status"]

    async def test_probing_capped_at_max_tuners(self) -> None:
        controller = HDHomeRunController(FakeToolRunner(tuners=16), max_tuners=8)
        assert await controller.count_tuners("1040ABCD") == 8

    async def test_falls_back_to_model_heuristic(self) -> None:
        def handler(args: tuple[str, ...]) -> str:
            if args[2] == "/sys/model":
                return "HDHR5-4K\n"
            raise make_failure(args, kind=FailureKind.TIMEOUT)

        controller = HDHomeRunController(ScriptedRunner(handler))
        info = await controller.get_info("1040ABCD")
        assert info.to_dict() == {"id": "1040ABCD", "model": "HDHR5-4K", "tuners": 4}

    async def test_falls_back_to_default(self) -> None:
        def handler(args: tuple[str, ...]) -> str:
            raise make_failure(args)

        controller = HDHomeRunController(ScriptedRunner(handler), default_tuner_count=2)
        info = await controller.get_info("1040ABCD")
        assert info.model == "Unknown"
        assert info.tuners == 2


class TestTelemetry:
    async def test_list_programs_on_tuned_channel(
        self, fake_controller: HDHomeRunController
    ) -> None:
        await fake_controller.set_channel("1040ABCD", 1, "27")
        programs = await fake_controller.list_programs("1040ABCD", 1)
        assert [(p.program_number, p.callsign) for p in programs] == [
            (1, "KIRO-HD"),
            (2, "KIRO-WX"),
        ]
        assert programs[1].encrypted

    async def test_list_programs_failure_is_empty(
        self, fake_controller: HDHomeRunController
    ) -> None:
        # Idle tuner: the utility errors, which is a normal state
        assert await fake_controller.list_programs("1040ABCD", 0) == []

    async def test_status_failure_propagates(self) -> None:
        def handler(args: tuple[str, ...]) -> str:
            raise make_failure(args)

        controller = HDHomeRunController(ScriptedRunner(handler))
        with pytest.raises(ProcessFailure):
            await controller.get_tuner_status("1040ABCD", 0)

    async def test_status_timeout_is_passed_through(self, scripted_runner: ScriptedRunner) -> None:
        controller = HDHomeRunController(scripted_runner)
        await controller.get_tuner_status("1040ABCD", 0, timeout_s=4.0)
        assert scripted_runner.calls == [("1040ABCD", "get", "/tuner0/status")]
        assert scripted_runner.timeouts == [4.0]

    async def test_current_program(self, fake_controller: HDHomeRunController) -> None:
        assert await fake_controller.get_current_program("1040ABCD", 0) is None
        await fake_controller.set_channel("1040ABCD", 0, "21:4")
        assert await fake_controller.get_current_program("1040ABCD", 0) == 4

    async def test_channel_map_round_trip(self, fake_controller: HDHomeRunController) -> None:
        await fake_controller.set_channel_map("1040ABCD", 0, "us-cable")
        assert await fake_controller.get_channel_map("1040ABCD", 0) == "us-cable"
        assert await fake_controller.get_channel_map("1040ABCD", 7) is None


class TestDiscover:
    async def test_discover_fake(self, fake_controller: HDHomeRunController) -> None:
        devices = await fake_controller.discover()
        assert [(d.id, d.ip) for d in devices] == [("1040ABCD", "192.168.1.50")]

    async def test_no_devices_found_is_empty(self) -> None:
        def handler(args: tuple[str, ...]) -> str:
            raise make_failure(args, stdout="no devices found\n", stderr="")

        controller = HDHomeRunController(ScriptedRunner(handler))
        assert await controller.discover() == []

    async def test_other_failures_propagate(self) -> None:
        def handler(args: tuple[str, ...]) -> str:
            raise make_failure(args, kind=FailureKind.SPAWN_ERROR, stderr="")

        controller = HDHomeRunController(ScriptedRunner(handler))
        with pytest.raises(ProcessFailure):
            await controller.discover()

    async def test_describe_fills_model_and_tuners(
        self, fake_controller: HDHomeRunController
    ) -> None:
        (device,) = await fake_controller.discover()
        assert device.to_dict() == {"id": "1040ABCD", "ip": "192.168.1.50"}

        described = await fake_controller.describe(device)
        assert described.model == "HDHR5-4K"
        assert described.tuner_count == 4
        assert described.to_dict() == {
            "id": "1040ABCD",
            "ip": "192.168.1.50",
            "model": "HDHR5-4K",
            "tuners": 4,
        }
