from __future__ import annotations

import inspect
import logging
import os
import sys
from typing import TYPE_CHECKING, override

import sentry_sdk
from loguru import logger

if TYPE_CHECKING:
    from types import FrameType

    from wrangler.config import Config

# Third-party loggers that log every request at INFO.
QUIET_LOGGERS = {"httpx": "WARNING", "httpcore": "WARNING"}


def _stdlib_depth(frame: FrameType | None) -> int:
    # Loguru should report the line that called logging, not logging itself.
    depth = 0
    while frame is not None:
        filename = frame.f_code.co_filename
        internal = filename == logging.__file__ or (
            "importlib" in filename and "_bootstrap" in filename
        )
        if depth > 0 and not internal:
            break
        frame = frame.f_back
        depth += 1
    return depth


class _InterceptHandler(logging.Handler):
    """Hands stdlib log records (mostly httpx) over to Loguru."""

    @override
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(
            depth=_stdlib_depth(inspect.currentframe()), exception=record.exc_info
        ).log(level, record.getMessage())


def stderr_level() -> str:
    # Loguru reads $LOGURU_LEVEL only for its default sink, which setup() removes.
    return os.getenv("LOGURU_LEVEL") or os.getenv("LOG_LEVEL") or "INFO"


def setup(config: Config) -> None:
    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)

    logger.remove()
    logger.add(sys.stderr, level=stderr_level(), filter=QUIET_LOGGERS)

    if config.sentry_dsn is None:
        return
    sentry_sdk.init(
        dsn=config.sentry_dsn.get_secret_value(),
        traces_sample_rate=1.0,
    )
    logger.debug("sentry reporting enabled")
