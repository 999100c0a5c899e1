"""Parsers for hdhomerun_config output.

The utility's output is not stable across firmware and tool versions, so every
parser here is total: malformed or partial input yields an empty or default
value instead of an exception.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

IDLE_CHANNEL = "none"

NUMERIC_STATUS_KEYS = ("ss", "snq", "seq", "bps", "pps")
_PERCENT_KEYS = ("ss", "snq", "seq")


@dataclass
class Device:
    """A device found by discovery. model/tuner_count are filled by describe()."""
    id: str
    ip: str
    model: str | None = None
    tuner_count: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "ip": self.ip}
        if self.model is not None:
            data["model"] = self.model
        if self.tuner_count is not None:
            data["tuners"] = self.tuner_count
        return data


@dataclass(frozen=True)
class TunerStatus:
    """One snapshot of /tunerN/status."""
    channel: str = IDLE_CHANNEL
    lock_type: str = ""
    signal_strength: int = 0
    signal_quality: int = 0
    symbol_quality: int = 0
    bits_per_second: int = 0
    packets_per_second: int = 0
    # Keys we don't know about, kept verbatim
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def locked(self) -> bool:
        return bool(self.lock_type)

    @classmethod
    def idle(cls) -> TunerStatus:
        return cls()

    def to_dict(self) -> dict[str, Any]:
        """Wire form, using the device's own short key names."""
        data: dict[str, Any] = dict(self.extra)
        data.update({
            "channel": self.channel,
            "lock": self.lock_type,
            "ss": self.signal_strength,
            "snq": self.signal_quality,
            "seq": self.symbol_quality,
            "bps": self.bits_per_second,
            "pps": self.packets_per_second,
        })
        return data


@dataclass(frozen=True)
class ProgramEntry:
    """One program (service) in the currently tuned multiplex."""
    program_number: int
    virtual_channel: str = ""
    callsign: str = ""
    encrypted: bool = False
    status: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "programNum": self.program_number,
            "virtualChannel": self.virtual_channel,
            "callsign": self.callsign,
            "encrypted": self.encrypted,
            "status": self.status,
        }


# "hdhomerun device 1040ABCD found at 192.168.1.50"
_DISCOVER_RE = re.compile(
    r"hdhomerun device ([0-9A-Fa-f]+) found at (\d{1,3}(?:\.\d{1,3}){3})"
)


def parse_discover(output: str) -> list[Device]:
    """Extract (id, ip) pairs from `hdhomerun_config discover` output."""
    devices: list[Device] = []
    for line in (output or "").splitlines():
        m = _DISCOVER_RE.search(line)
        if m:
            devices.append(Device(id=m.group(1), ip=m.group(2)))
    return devices


def _coerce_int(raw: str) -> int:
    cleaned = re.sub(r"[^0-9.\-]", "", raw)
    try:
        return int(float(cleaned))
    except ValueError:
        return 0


def parse_status(output: str) -> TunerStatus:
    """Parse a status line such as
    `ch=8vsb:647000000 lock=8vsb ss=83 snq=91 seq=100 bps=19394080 pps=1734`.
    """
    values: dict[str, str] = {}
    for token in (output or "").split():
        key, sep, value = token.partition("=")
        if not sep or not key:
            continue
        values[key] = value

    numbers: dict[str, int] = {}
    for key in NUMERIC_STATUS_KEYS:
        n = max(0, _coerce_int(values.pop(key, "")))
        if key in _PERCENT_KEYS:
            n = min(n, 100)
        numbers[key] = n

    # Devices report "ch"; some wrappers spell it out
    channel = values.pop("channel", "") or values.pop("ch", "")
    values.pop("ch", None)
    lock = values.pop("lock", "")
    if lock.lower() == "none":
        lock = ""

    return TunerStatus(
        channel=channel or IDLE_CHANNEL,
        lock_type=lock,
        signal_strength=numbers["ss"],
        signal_quality=numbers["snq"],
        symbol_quality=numbers["seq"],
        bits_per_second=numbers["bps"],
        packets_per_second=numbers["pps"],
        extra=values,
    )


_MODEL_TOKEN_RE = re.compile(r"(?:^|\s)model\s*=\s*(\S+)", re.IGNORECASE)
_MODEL_LINE_RE = re.compile(r"^\s*model\s*:\s*(.+?)\s*$", re.IGNORECASE | re.MULTILINE)


def parse_model(output: str) -> str:
    """Model name from `get /sys/model`; "Unknown" when nothing usable."""
    text = output or ""
    m = _MODEL_TOKEN_RE.search(text)
    if m:
        return m.group(1)
    m = _MODEL_LINE_RE.search(text)
    if m:
        return m.group(1)
    for line in text.splitlines():
        line = line.strip()
        if line:
            return line
    return "Unknown"


# program 3 ... virtual 20.1 (KBTC) ... encrypted=1 status=ok
_ANNOTATED_PROGRAM_RE = re.compile(
    r"program\s+(\d+).*?virtual\s+([0-9.]+)?\s*\(?([A-Za-z0-9 _.\-]+)?\)?",
    re.IGNORECASE,
)
_ENCRYPTED_FLAG_RE = re.compile(r"encrypted\s*=\s*1", re.IGNORECASE)
_STATUS_FLAG_RE = re.compile(r"status\s*=\s*([A-Za-z0-9_\-]+)", re.IGNORECASE)

# 3: 20.1 KBTC-HD (encrypted)
_NATIVE_PROGRAM_RE = re.compile(
    r"^\s*(\d+):\s+(\d+(?:\.\d+)?)\s*([^()]*?)\s*(?:\(([^)]*)\))?\s*$"
)


def _parse_annotated_program(line: str) -> ProgramEntry | None:
    m = _ANNOTATED_PROGRAM_RE.search(line)
    if not m:
        return None
    status = _STATUS_FLAG_RE.search(line)
    return ProgramEntry(
        program_number=int(m.group(1)),
        virtual_channel=m.group(2) or "",
        callsign=(m.group(3) or "").strip(),
        encrypted=bool(_ENCRYPTED_FLAG_RE.search(line)),
        status=status.group(1) if status else "",
    )


def _parse_native_program(line: str) -> ProgramEntry | None:
    m = _NATIVE_PROGRAM_RE.match(line)
    if not m:
        return None
    annotation = (m.group(4) or "").strip()
    encrypted = annotation.lower() == "encrypted"
    return ProgramEntry(
        program_number=int(m.group(1)),
        virtual_channel=m.group(2),
        callsign=m.group(3).strip(),
        encrypted=encrypted,
        status="" if encrypted else annotation,
    )


def parse_streaminfo(output: str) -> list[ProgramEntry]:
    """Program listing from `get /tunerN/streaminfo`."""
    programs: list[ProgramEntry] = []
    for line in (output or "").splitlines():
        entry = _parse_annotated_program(line) or _parse_native_program(line)
        if entry is not None:
            programs.append(entry)
    return programs


def parse_program_selector(output: str) -> int | None:
    """Decode `get /tunerN/program`; None when no program is selected."""
    value = (output or "").strip()
    if not value.isdigit():
        return None
    program = int(value)
    return program if program > 0 else None


def split_channel_spec(spec: str) -> tuple[str, str | None]:
    """Split a composite channel spec into (channel, program).

    "auto:650000000:101" -> ("auto:650000000", "101")
    "21:101"             -> ("21", "101")
    "auto:650000000"     -> ("auto:650000000", None)
    "auto:650000000:"    -> ("auto:650000000", None)
    "21"                 -> ("21", None)
    """
    parts = spec.split(":")
    if len(parts) >= 3:
        return f"{parts[0]}:{parts[1]}", parts[2] or None
    # "<modulation>:<frequency>" is a channel on its own
    if len(parts) == 2 and parts[0].isdigit() and parts[1].isdigit():
        return parts[0], parts[1]
    return spec, None


# HDHR5-4K, HDHR4-2US, HDTC-2US, HDFX-4K ...
_MODEL_TUNERS_RE = re.compile(r"-(\d)[A-Za-z]")


def guess_tuner_count(model: str) -> int | None:
    """Tuner count implied by a product name, if it follows the usual pattern."""
    m = _MODEL_TUNERS_RE.search(model or "")
    if not m:
        return None
    count = int(m.group(1))
    return count if count > 0 else None
