"""Payment-attempt scoped logging utilities.

Every log line carries the id of the payment attempt it belongs to, so a single
attempt can be followed from the client orchestrator through the settlement
service and into the background confirmation pass.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Optional

ATTEMPT_ID_HEADER = "X-Payment-Attempt-Id"

# Context variable to store the payment attempt id for the current request/task
attempt_id_var: ContextVar[Optional[str]] = ContextVar("payment_attempt_id", default=None)


class AttemptIdFilter(logging.Filter):
    """Add the payment attempt id to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.attempt_id = attempt_id_var.get() or "-"
        return True


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_format: Log format (json or text).
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, log_level.upper()))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)

    if log_format == "json":
        formatter = logging.Formatter(
            '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"attempt_id": "%(attempt_id)s", "name": "%(name)s", '
            '"message": "%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] [%(attempt_id)s] %(name)s: %(message)s"
        )

    handler.setFormatter(formatter)
    handler.addFilter(AttemptIdFilter())
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name."""
    return logging.getLogger(name)


def get_attempt_id() -> Optional[str]:
    """Return the payment attempt id bound to the current context, if any."""
    return attempt_id_var.get()


def new_attempt_id() -> str:
    """Generate a new payment attempt id."""
    return f"pay-{uuid.uuid4().hex[:12]}"


def log_payment_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Log a payment lifecycle event with its key/value context.

    Fields with a ``None`` value are dropped so optional context does not
    clutter the line.

    Args:
        logger: Logger to write to.
        event: Short event name, e.g. ``record_created``.
        **fields: Context such as payment_id, transaction_hash or status.
    """
    context = " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)
    logger.info(f"[payment] {event} {context}".rstrip())


class PaymentAttemptContext:
    """Context manager binding a payment attempt id for a block of code."""

    def __init__(self, attempt_id: Optional[str] = None):
        """Initialize the context manager.

        Args:
            attempt_id: The attempt id to bind. If None, generates a new one.
        """
        self.attempt_id = attempt_id or new_attempt_id()
        self._token = None

    def __enter__(self) -> str:
        self._token = attempt_id_var.set(self.attempt_id)
        return self.attempt_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        attempt_id_var.reset(self._token)
