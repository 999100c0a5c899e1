from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import AppConfig
from .devices.base import CommandRunner
from .devices.fake import FakeToolRunner
from .devices.hdhomerun import HDHomeRunController
from .devices.runner import ToolRunner
from .monitor import MonitorRegistry

logger = logging.getLogger(__name__)


def create_runner(cfg: AppConfig) -> CommandRunner:
    if cfg.tool.driver == "fake":
        return FakeToolRunner(
            device_id=cfg.fake.device_id,
            ip=cfg.fake.ip,
            model=cfg.fake.model,
            tuners=cfg.fake.tuners,
        )
    runner = ToolRunner(cfg.tool.executable, timeout_s=cfg.tool.timeout_s)
    if not runner.is_available():
        # Keep going; every call will report SPAWN_ERROR until it's installed
        logger.warning("%s not found in PATH", cfg.tool.executable)
    return runner


@dataclass
class AppState:
    config: AppConfig
    runner: CommandRunner
    controller: HDHomeRunController
    monitors: MonitorRegistry
    config_path: str | None = None

    @classmethod
    def from_config(cls, cfg: AppConfig, config_path: str | None = None) -> AppState:
        runner = create_runner(cfg)
        controller = HDHomeRunController(
            runner,
            max_tuners=cfg.tool.max_tuners,
            default_tuner_count=cfg.tool.default_tuner_count,
        )
        monitors = MonitorRegistry(
            controller,
            interval_s=cfg.monitor.interval_s,
            timeout_s=cfg.monitor.timeout_s,
            include_program=cfg.monitor.include_program,
        )
        return cls(
            config=cfg,
            runner=runner,
            controller=controller,
            monitors=monitors,
            config_path=config_path,
        )
