from __future__ import annotations

import argparse
import os
import sys

import uvicorn

from .app import create_app
from .config import AppConfig, default_config_path, load_config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hdhrsignal",
        description="HDHomeRun tuner control and live signal monitor",
    )
    parser.add_argument(
        "-c", "--config",
        default=os.environ.get("HDHRSIGNAL_CONFIG", default_config_path()),
        help="YAML config file (env HDHRSIGNAL_CONFIG)",
    )
    parser.add_argument("--bind", metavar="ADDR", help="listen address, e.g. 0.0.0.0")
    parser.add_argument("--port", type=int, help="listen port")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="override logging.level",
    )
    parser.add_argument(
        "--fake",
        action="store_true",
        help="use the simulated device instead of hdhomerun_config",
    )
    return parser


def apply_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Command-line flags win over file and environment settings."""
    if args.bind:
        cfg.server.bind_address = args.bind
    if args.port:
        cfg.server.port = args.port
    if args.log_level:
        cfg.logging.level = args.log_level
    if args.fake:
        cfg.tool.driver = "fake"
    return cfg


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    cfg = apply_overrides(load_config(args.config), args)

    uvicorn.run(
        create_app(cfg, config_path=args.config),
        host=cfg.server.bind_address,
        port=cfg.server.port,
        log_level=cfg.logging.level.lower(),
        timeout_graceful_shutdown=10,
    )


if __name__ == "__main__":
    main(sys.argv[1:])
