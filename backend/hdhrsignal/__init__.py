"""HDHomeRun control and live signal monitoring over HTTP and WebSocket."""

from typing import TYPE_CHECKING, Any

from .devices import HDHomeRunController, InvalidArgument, ProcessFailure

__all__ = [
    "HDHomeRunController",
    "InvalidArgument",
    "ProcessFailure",
    "__version__",
    "create_app",
]

__version__ = "0.1.0"

if TYPE_CHECKING:
    from fastapi import FastAPI

    from .config import AppConfig


def create_app(config: "AppConfig", config_path: str | None = None) -> "FastAPI":
    # Deferred so the device layer can be used without the web stack loaded
    from .app import create_app as _create_app

    return _create_app(config, config_path)
