"""Shared pytest fixtures for hdhrsignal tests."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from helpers import ScriptedRunner
from hdhrsignal.app import create_app
from hdhrsignal.config import AppConfig, LoggingConfig, MonitorConfig, ToolConfig
from hdhrsignal.devices.fake import FakeToolRunner
from hdhrsignal.devices.hdhomerun import HDHomeRunController


@pytest.fixture
def scripted_runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture
def fake_runner() -> FakeToolRunner:
    return FakeToolRunner()


@pytest.fixture
def fake_controller(fake_runner: FakeToolRunner) -> HDHomeRunController:
    return HDHomeRunController(fake_runner)


@pytest.fixture
def samples_dir() -> Path:
    """Captured hdhomerun_config output used by the parser tests."""
    return Path(__file__).parent / "samples"


@pytest.fixture
def fake_config() -> AppConfig:
    """App config using the simulated device and a fast monitor cadence."""
    return AppConfig(
        tool=ToolConfig(driver="fake"),
        monitor=MonitorConfig(interval_s=0.05, timeout_s=1.0),
        logging=LoggingConfig(file=False),
    )


@pytest.fixture
def client(fake_config: AppConfig) -> Iterator[TestClient]:
    """Create a test client backed by the simulated device."""
    app = create_app(fake_config)
    with TestClient(app) as c:
        yield c
