"""Structlog-based logging for featuregraph.

Library code logs through structlog and never prints; the CLI owns stdout.
"""
from __future__ import annotations

import logging
import sys
from typing import Any, Literal

import structlog

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class StderrLogger:
    """Writes rendered events to whatever ``sys.stderr`` is at call time.

    Test runners and ``CliRunner`` swap and close stderr; holding a reference
    taken at configure time would write into a closed stream later.
    """

    def msg(self, message: str, *args: Any, **kwargs: Any) -> None:
        print(message, file=sys.stderr, flush=True)

    log = debug = info = warn = warning = error = critical = exception = fatal = msg


def _stderr_logger_factory(*args: Any) -> StderrLogger:
    return StderrLogger()


def configure_logging(level: LogLevel | str = "WARNING") -> None:
    """Configure structlog to emit JSON lines on stderr at ``level``."""
    numeric = getattr(logging, str(level).upper(), logging.WARNING)
    logging.basicConfig(format="%(message)s", level=numeric)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=_stderr_logger_factory,
        cache_logger_on_first_use=False,
    )


# Initialize default config
configure_logging()
