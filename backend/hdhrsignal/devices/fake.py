from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from .base import FailureKind, ProcessFailure
from .parsers import IDLE_CHANNEL

# Programs carried on each simulated channel number
_FAKE_LINEUP: dict[str, list[tuple[int, str, str, str]]] = {
    "21": [(3, "20.1", "KBTC-HD", ""), (4, "20.2", "KBTC-D2", ""), (5, "0", "", "no data")],
    "27": [(1, "7.1", "KIRO-HD", ""), (2, "7.2", "KIRO-WX", "encrypted")],
}


@dataclass
class _FakeTuner:
    channel: str = IDLE_CHANNEL
    program: str = IDLE_CHANNEL
    channelmap: str = "us-bcast"

    def channel_number(self) -> str:
        return self.channel.split(":")[-1]

    def status_line(self) -> str:
        if self.channel == IDLE_CHANNEL:
            return "ch=none lock=none ss=0 snq=0 seq=0 bps=0 pps=0"
        if self.channel_number() in _FAKE_LINEUP or self.channel.startswith("auto:"):
            return f"ch={self.channel} lock=8vsb ss=83 snq=91 seq=100 bps=19394080 pps=1734"
        return f"ch={self.channel} lock=none ss=45 snq=0 seq=0 bps=0 pps=0"

    def streaminfo(self) -> str:
        lines = []
        for num, vch, name, note in _FAKE_LINEUP.get(self.channel_number(), []):
            line = f"{num}: {vch} {name}".rstrip()
            if note:
                line += f" ({note})"
            lines.append(line)
        if lines:
            lines.append("tsid=0x0A1B")
        return "\n".join(lines) + "\n"


@dataclass
class FakeToolRunner:
    """In-process stand-in for hdhomerun_config.

    Simulates one device whose tuners 0..tuners-1 answer and whose higher
    tuner indices fail the way the real utility does.
    """

    device_id: str = "1040ABCD"
    ip: str = "192.168.1.50"
    model: str = "HDHR5-4K"
    tuners: int = 4
    name: str = "fake"
    calls: list[tuple[str, ...]] = field(default_factory=list)
    _state: dict[int, _FakeTuner] = field(default_factory=dict)

    def tuner(self, index: int) -> _FakeTuner:
        return self._state.setdefault(index, _FakeTuner())

    def _fail(self, argv: Sequence[str], message: str) -> ProcessFailure:
        return ProcessFailure(
            FailureKind.NON_ZERO_EXIT,
            ["hdhomerun_config", *argv],
            stdout="",
            stderr=f"ERROR: {message}\n",
            returncode=1,
        )

    async def run(self, args: Sequence[str], timeout_s: float | None = None) -> str:
        argv = tuple(str(a) for a in args)
        self.calls.append(argv)

        if argv == ("discover",):
            return f"hdhomerun device {self.device_id} found at {self.ip}\n"

        if len(argv) < 3 or argv[0].upper() != self.device_id.upper():
            raise self._fail(argv, "unable to connect to device")

        verb, path = argv[1], argv[2]
        if path == "/sys/model" and verb == "get":
            return f"{self.model}\n"

        parts = path.strip("/").split("/")
        if len(parts) != 2 or not parts[0].startswith("tuner") or not parts[0][5:].isdigit():
            raise self._fail(argv, "unknown getset variable")
        index = int(parts[0][5:])
        if index >= self.tuners:
            raise self._fail(argv, "invalid tuner number")
        tuner = self.tuner(index)
        item = parts[1]

        if verb == "get":
            if item == "status":
                return tuner.status_line() + "\n"
            if item == "streaminfo":
                if tuner.channel == IDLE_CHANNEL:
                    raise self._fail(argv, "tuner not tuned")
                return tuner.streaminfo()
            if item in ("channel", "program", "channelmap"):
                return getattr(tuner, item) + "\n"
        elif verb == "set" and len(argv) == 4:
            value = argv[3]
            if item == "channel":
                tuner.channel = value
                if value == IDLE_CHANNEL:
                    tuner.program = IDLE_CHANNEL
                return ""
            if item == "program":
                if tuner.channel == IDLE_CHANNEL and value != IDLE_CHANNEL:
                    raise self._fail(argv, "tuner not tuned")
                tuner.program = value
                return ""
            if item == "channelmap":
                tuner.channelmap = value
                return ""

        raise self._fail(argv, "unknown getset variable")
