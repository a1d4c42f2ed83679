from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

_LOGGING_CONFIGURED = False


def _configure_structlog(level: int) -> None:
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def setup_logging(filename: str | Path | None = None, *, debug: bool = False) -> structlog.BoundLogger:
    """Set up structured logging for the code_packer module.

    The first call installs the handlers. Later calls may still redirect output to
    `filename` and change the level, so a CLI can reconfigure after the module-level
    logger has been created.

    Args:
        filename: Optional path to a log file. If None, logs are written to stderr.
        debug: Emit debug events (per-file matching decisions and the like).

    Returns:
        A structlog logger instance configured for the code_packer module.
    """
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    level = logging.DEBUG if debug else logging.INFO
    if not _LOGGING_CONFIGURED or filename:
        handlers: list[logging.Handler] = []
        if filename:
            handlers.append(logging.FileHandler(str(filename), encoding="utf-8"))
        else:
            handlers.append(logging.StreamHandler(sys.stderr))

        logging.basicConfig(
            level=level,
            handlers=handlers,
            format="%(message)s",
            force=_LOGGING_CONFIGURED,
        )
        _LOGGING_CONFIGURED = True

    logging.getLogger().setLevel(level)
    _configure_structlog(level)
    return structlog.get_logger("code_packer")


logger = setup_logging()
