from __future__ import annotations

import inspect
import logging
import logging.handlers
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, TextIO, cast

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from slowapi import Limiter, _rate_limit_exceeded_handler
import slowapi.extension as slowapi_extension
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from . import __version__
from .api import router as api_router
from .config import AppConfig, LoggingConfig
from .state import AppState

logger = logging.getLogger(__name__)

# slowapi still calls asyncio.iscoroutinefunction, deprecated since Python 3.14
_slowapi_asyncio = cast(Any, getattr(slowapi_extension, "asyncio", None))
if _slowapi_asyncio is not None:
    _slowapi_asyncio.iscoroutinefunction = inspect.iscoroutinefunction

STATIC_DIR = Path(__file__).parent / "static"
DEFAULT_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
LOG_FILE_NAME = "hdhrsignal.log"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

_logging_configured = False


class SafeStreamHandler(logging.StreamHandler[TextIO]):
    """Console handler that ignores writes to an already-closed stream."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            super().emit(record)
        except ValueError:
            pass


def _level_from_name(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _file_handler(log_dir: Path) -> logging.handlers.RotatingFileHandler | None:
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning("File logging disabled, cannot create %s: %s", log_dir, e)
        return None
    handler = logging.handlers.RotatingFileHandler(
        log_dir / LOG_FILE_NAME, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS
    )
    # The file always gets everything, the console follows logging.level
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    ))
    return handler


def setup_logging(cfg: LoggingConfig) -> None:
    """Install the console handler and the rotating log file, once per process.

    The log file lives at <log_dir>/hdhrsignal.log (backend/logs by default),
    rotating at 5MB with 3 backups. Later calls only adjust the level.
    """
    global _logging_configured

    level = _level_from_name(cfg.level)
    root = logging.getLogger()
    root.setLevel(min(level, logging.DEBUG) if cfg.file else level)
    if _logging_configured:
        return
    _logging_configured = True

    console = SafeStreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    root.addHandler(console)

    if not cfg.file:
        return
    handler = _file_handler(Path(cfg.log_dir) if cfg.log_dir else DEFAULT_LOG_DIR)
    if handler is not None:
        root.addHandler(handler)
        logger.info("Logging to %s", handler.baseFilename)


def create_app(config: AppConfig, config_path: str | None = None) -> FastAPI:
    setup_logging(config.logging)
    app_state = AppState.from_config(config, config_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "hdhrsignal %s ready (driver=%s, monitor every %.1fs)",
            __version__,
            app_state.runner.name,
            config.monitor.interval_s,
        )
        try:
            yield
        finally:
            # Monitor tasks must not outlive the server
            await app_state.monitors.close_all()
            logger.info("hdhrsignal stopped")

    app = FastAPI(title="hdhrsignal", version=__version__, lifespan=lifespan)
    app.state.app_state = app_state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=["200/minute"])
    app.state.limiter = limiter
    app.add_exception_handler(
        RateLimitExceeded,
        cast(Callable[[Request, Exception], Response], _rate_limit_exceeded_handler),
    )

    app.include_router(api_router, prefix="/api/v1")

    # A prebuilt UI may be dropped into hdhrsignal/static
    if (STATIC_DIR / "assets").is_dir():
        app.mount("/assets", StaticFiles(directory=str(STATIC_DIR / "assets")), name="assets")

    @app.get("/", response_model=None)
    def index() -> FileResponse | dict[str, str]:
        page = STATIC_DIR / "index.html"
        if page.is_file():
            return FileResponse(page)
        return {"message": "hdhrsignal API", "docs": "/docs"}

    @app.get("/health")
    @limiter.limit("30/minute")
    def health(request: Request) -> dict[str, str]:
        return {"status": "ok"}

    return app
