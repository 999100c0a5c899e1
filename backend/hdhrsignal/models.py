from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _strip_control(v: str | None) -> str | None:
    if v is None:
        return None
    # Remove control characters and trim whitespace
    return re.sub(r"[\x00-\x1f\x7f-\x9f]", "", v).strip()


class DeviceModel(BaseModel):
    id: str
    ip: str
    model: str | None = None
    tuners: int | None = Field(None, ge=1)


class DeviceInfoModel(BaseModel):
    id: str
    model: str
    tuners: int = Field(..., ge=1)


class TunerStatusModel(BaseModel):
    channel: str = "none"
    lock: str = ""
    ss: int = Field(0, ge=0, le=100)
    snq: int = Field(0, ge=0, le=100)
    seq: int = Field(0, ge=0, le=100)
    bps: int = Field(0, ge=0)
    pps: int = Field(0, ge=0)
    program: int | None = None
    # Unknown status keys pass through untouched
    model_config = ConfigDict(extra="allow")


class ProgramModel(BaseModel):
    programNum: int
    virtualChannel: str = ""
    callsign: str = ""
    encrypted: bool = False
    status: str = ""


class SetChannelMapRequest(BaseModel):
    map: str = Field("", max_length=64)

    @field_validator("map")
    @classmethod
    def sanitize_map(cls, v: str) -> str:
        return _strip_control(v) or ""


class SetChannelRequest(BaseModel):
    channel: str = Field("", max_length=100)

    @field_validator("channel", mode="before")
    @classmethod
    def sanitize_channel(cls, v: object) -> object:
        # Clients sometimes send bare channel numbers
        if isinstance(v, int) and not isinstance(v, bool):
            v = str(v)
        return _strip_control(v) if isinstance(v, str) else v


class ChannelMapModel(BaseModel):
    map: str | None = None


class OkResponse(BaseModel):
    ok: bool = True


class TuneResponse(OkResponse):
    channel: str
    program: int | None = None


class MonitorCommand(BaseModel):
    """Inbound message on the monitor WebSocket."""
    type: Literal["start-monitoring", "stop-monitoring"]
    deviceId: str | None = Field(None, max_length=64)
    tuner: int | None = Field(None, ge=0, le=63)
