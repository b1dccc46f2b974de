"""Centralized logging configuration using loguru.

Provides:
- Level selection from Settings with --verbose/--quiet overrides
- Interception of stdlib loggers (SQLAlchemy, httpx used by githubkit)
- Context binding for repository and workflow tracking
- Optional rotating file output
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from loguru import logger

if TYPE_CHECKING:
    from types import FrameType

    from loguru import Logger, Record

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_configured = False

_CONSOLE_FORMAT = (
    "<dim>{time:HH:mm:ss}</dim> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>{extra[_workflow]} - "
    "<level>{message}</level>"
)

_STDLIB_FORMAT = (
    "<dim>{time:HH:mm:ss}</dim> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - "
    "<level>{message}</level>"
)

_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "{extra[name]}:{function}:{line} | "
    "{extra} | "
    "{message}"
)


class InterceptHandler(logging.Handler):
    """Route stdlib log records (SQLAlchemy, httpx) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging module frames so loguru reports the real caller
        frame: FrameType | None = logging.currentframe()
        depth = 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _has_name(record: Record) -> bool:
    return "name" in record["extra"]


def _patch_workflow_suffix(record: Record) -> None:
    """Render bound lock_key/step context as a compact console suffix."""
    extra = record["extra"]
    parts = [f"{key}={extra[key]}" for key in ("lock_key", "step") if key in extra]
    extra["_workflow"] = f" [{' '.join(parts)}]" if parts else ""


def setup_logging(
    level: LogLevel = "INFO",
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
    serialize: bool = False,
) -> Logger:
    """Configure logging for the application.

    Args:
        level: Base log level from config
        verbose: Use DEBUG (takes precedence over quiet)
        quiet: Use WARNING
        log_file: Optional path for file logging with rotation
        rotation: When to rotate the log file
        retention: How long to keep rotated logs
        serialize: Write JSON lines to the file sink

    Returns:
        Configured logger instance
    """
    global _configured

    effective_level: LogLevel
    if verbose:
        effective_level = "DEBUG"
    elif quiet:
        effective_level = "WARNING"
    else:
        effective_level = level

    logger.remove()
    logger.configure(patcher=_patch_workflow_suffix)

    logger.add(
        sys.stderr,
        level=effective_level,
        format=_CONSOLE_FORMAT,
        colorize=True,
        backtrace=True,
        diagnose=False,
        filter=_has_name,
    )
    logger.add(
        sys.stderr,
        level=effective_level,
        format=_STDLIB_FORMAT,
        colorize=True,
        backtrace=True,
        diagnose=False,
        filter=lambda record: not _has_name(record),
    )

    if log_file:
        logger.add(
            log_file,
            level="DEBUG",
            format=_FILE_FORMAT,
            rotation=rotation,
            retention=retention,
            compression="gz",
            serialize=serialize,
            filter=_has_name,
        )

    _intercept_stdlib_logging(effective_level)

    _configured = True
    return logger


def _intercept_stdlib_logging(level: LogLevel) -> None:
    """Send stdlib loggers through loguru and quiet the chatty ones."""
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    sqlalchemy_level = logging.INFO if level in ("TRACE", "DEBUG") else logging.WARNING
    logging.getLogger("sqlalchemy.engine").setLevel(sqlalchemy_level)

    httpx_level = logging.DEBUG if level == "DEBUG" else logging.WARNING
    logging.getLogger("httpx").setLevel(httpx_level)
    logging.getLogger("httpcore").setLevel(httpx_level)


def get_logger(name: str) -> Logger:
    """Get a logger with the given name bound as context.

    Usage:
        from github_mirror.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Fetched {} branches", count)
    """
    return logger.bind(name=name)


def bind_repo(full_name: str) -> Logger:
    """Bind repository context (``owner/name``) to a logger."""
    return logger.bind(name="sync", repo=full_name)


def bind_workflow(workflow_id: str, lock_key: str | None = None) -> Logger:
    """Bind workflow context to a logger.

    Args:
        workflow_id: Workflow instance id
        lock_key: Sync job lock key the workflow reports to

    Returns:
        Logger with workflow context bound
    """
    context: dict[str, Any] = {"name": "workflow", "workflow_id": workflow_id}
    if lock_key is not None:
        context["lock_key"] = lock_key
    return logger.bind(**context)


class LogContext:
    """Context manager for temporary log context binding.

    Usage:
        with LogContext(lock_key="repo:42", step="fetch-branches"):
            logger.info("Running")  # carries lock_key and step
    """

    def __init__(self, **context: Any) -> None:
        self._context = context
        self._token: Any = None

    def __enter__(self) -> Logger:
        self._token = logger.contextualize(**self._context)
        self._token.__enter__()
        return logger

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._token:
            self._token.__exit__(exc_type, exc_val, exc_tb)


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured


def reset_logging() -> None:
    """Reset logging state (primarily for testing)."""
    global _configured
    logger.remove()
    _configured = False
