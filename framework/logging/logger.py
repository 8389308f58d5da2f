import sys
from pathlib import Path
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional
from loguru import logger
from framework.config import settings

# Trace id of the current logical operation, carried across awaits
_current_trace_id: ContextVar[Optional[str]] = ContextVar("current_trace_id", default=None)


class LogConfig:
    """Global logging configuration using Loguru."""
    @classmethod
    def setup_logging(cls, log_dir: Optional[str] = None, level: Optional[str] = None):
        log_path = Path(log_dir or settings.LOG_DIR)
        log_path.mkdir(parents=True, exist_ok=True)
        console_level = level or settings.LOG_LEVEL

        logger.remove()

        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            diagnose=settings.DEBUG,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<magenta>Trace:{extra[trace_id]}</magenta> - <level>{message}</level>"
            ),
            level=console_level,
        )

        logger.add(
            log_path / "data_{time:YYYY-MM-DD}.log",
            rotation="00:00",
            retention="30 days",
            compression="zip",
            enqueue=True,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | Trace:{extra[trace_id]} - {message}",
            level="DEBUG",
        )

        logger.add(
            log_path / "error_{time:YYYY-MM-DD}.log",
            level="ERROR",
            rotation="100 MB",
            enqueue=True,
        )

        logger.configure(extra={"trace_id": "system"})


@contextmanager
def trace_scope(trace_id: str) -> Iterator[str]:
    """Tag every log record emitted inside the block with trace_id."""
    token = _current_trace_id.set(trace_id)
    try:
        with logger.contextualize(trace_id=trace_id):
            yield trace_id
    finally:
        _current_trace_id.reset(token)


def get_logger(name: str = None, trace_id: Optional[str] = None):
    """Get logger instance; trace_id defaults to the one set by trace_scope."""
    current_trace_id = trace_id or _current_trace_id.get() or "unknown"

    if name:
        return logger.bind(name=name, trace_id=current_trace_id)
    else:
        return logger.bind(trace_id=current_trace_id)
