"""Process setup for the Azure cluster actuator.

Logging is structured JSON on stdout. Exit codes returned by the CLI:

    0  success
    1  error (invalid cluster, Azure or Kubernetes API failure)
    2  security violation (credential secret found in the environment)
    3  requeue requested (deletion should be retried later)
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime

from .errors import RequeueAfterError
from .security import SecretlessViolationError

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_SECURITY_VIOLATION = 2
EXIT_REQUEUE = 3

# LogRecord attributes that are not user-supplied `extra` fields
_RESERVED_RECORD_ATTRS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    )
)


class JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure structured logging with JSON output."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    # Reduce noise from SDKs
    logging.getLogger("azure").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("kubernetes").setLevel(logging.WARNING)


def exit_code_for(error: BaseException) -> int:
    """Map an error raised by the actuator to a process exit code.

    The cause chain is searched so wrapped security violations are still
    reported as such.
    """
    current: BaseException | None = error
    while current is not None:
        if isinstance(current, SecretlessViolationError):
            return EXIT_SECURITY_VIOLATION
        if isinstance(current, RequeueAfterError):
            return EXIT_REQUEUE
        current = current.__cause__
    return EXIT_ERROR


def run() -> None:
    """Entry point for the actuator CLI."""
    from .cli import cli

    cli()


if __name__ == "__main__":
    run()
