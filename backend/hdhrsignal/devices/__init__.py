from .base import CommandRunner, FailureKind, HDHRSignalError, InvalidArgument, ProcessFailure
from .hdhomerun import DeviceInfo, HDHomeRunController, TuneResult
from .parsers import Device, ProgramEntry, TunerStatus

__all__ = [
    "CommandRunner",
    "Device",
    "DeviceInfo",
    "FailureKind",
    "HDHRSignalError",
    "HDHomeRunController",
    "InvalidArgument",
    "ProcessFailure",
    "ProgramEntry",
    "TuneResult",
    "TunerStatus",
]
