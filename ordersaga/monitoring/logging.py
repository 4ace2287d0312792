"""
Structured logging for order sagas

Every saga run (create, pay, cancel) logs its lifecycle through ``SagaLogger``.
The current saga id, saga name, step and order id travel in a ``ContextVar``
so that any log line emitted while the saga runs, including ones from the
ledger or gateway, can be correlated.
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

from ordersaga.core.types import SagaStatus

LOGGER_NAMESPACE = "ordersaga"

# Context variables for propagating saga context
saga_context: ContextVar[dict[str, Any]] = ContextVar("saga_context", default={})

_CONTEXT_FIELDS = ("saga_id", "saga_name", "step_name", "order_id")


class SagaJsonFormatter(logging.Formatter):
    """
    JSON formatter for saga logs

    Adds the active saga context and any saga-related ``extra`` fields.
    """

    _EXTRA_FIELDS = (
        *_CONTEXT_FIELDS,
        "status",
        "duration_ms",
        "error_type",
        "error_message",
    )

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        context = saga_context.get()
        log_entry.update({k: v for k, v in context.items() if v is not None})

        for field in self._EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, ""):
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


class SagaContextFilter(logging.Filter):
    """Copies the active saga context onto each log record"""

    def filter(self, record: logging.LogRecord) -> bool:
        context = saga_context.get()
        for field in _CONTEXT_FIELDS:
            if not hasattr(record, field):
                value = context.get(field)
                setattr(record, field, "" if value is None else value)
        return True


class SagaLogger:
    """
    Saga-aware logger with automatic context propagation
    """

    def __init__(self, name: str = LOGGER_NAMESPACE):
        self.logger = logging.getLogger(name)
        if not any(isinstance(f, SagaContextFilter) for f in self.logger.filters):
            self.logger.addFilter(SagaContextFilter())

    def set_saga_context(
        self,
        saga_id: str,
        saga_name: str,
        step_name: str | None = None,
        order_id: int | None = None,
    ) -> None:
        """Set saga context for current execution"""
        saga_context.set(
            {
                "saga_id": saga_id,
                "saga_name": saga_name,
                "step_name": step_name,
                "order_id": order_id,
            }
        )

    def update_saga_context(self, **fields: Any) -> None:
        context = dict(saga_context.get())
        context.update(fields)
        saga_context.set(context)

    def clear_saga_context(self) -> None:
        saga_context.set({})

    @contextmanager
    def saga_scope(
        self, saga_id: str, saga_name: str, order_id: int | None = None
    ) -> Iterator[None]:
        """Bind saga context for the duration of a ``with`` block."""
        token = saga_context.set(
            {"saga_id": saga_id, "saga_name": saga_name, "step_name": None, "order_id": order_id}
        )
        try:
            yield
        finally:
            saga_context.reset(token)

    def saga_started(self, saga_id: str, saga_name: str, order_id: int | None = None) -> None:
        self.update_saga_context(saga_id=saga_id, saga_name=saga_name, order_id=order_id)
        self.logger.info(f"Saga started: {saga_name} ({saga_id})")

    def saga_finished(
        self,
        saga_id: str,
        saga_name: str,
        status: SagaStatus,
        duration_ms: float,
    ) -> None:
        """Log saga completion at INFO, or WARNING for anything but COMPLETED"""
        log_level = logging.INFO if status == SagaStatus.COMPLETED else logging.WARNING
        self.logger.log(
            log_level,
            f"Saga finished: {saga_name} ({saga_id}) - Status: {status.value}",
            extra={"status": status.value, "duration_ms": duration_ms},
        )

    def step_started(self, step_name: str) -> None:
        self.update_saga_context(step_name=step_name)
        self.logger.debug(f"Step started: {step_name}")

    def step_completed(self, step_name: str, duration_ms: float | None = None) -> None:
        self.logger.info(f"Step completed: {step_name}", extra={"duration_ms": duration_ms})

    def step_failed(self, step_name: str, error: Exception) -> None:
        self.logger.error(
            f"Step failed: {step_name} - {error!s}",
            extra={"error_type": type(error).__name__, "error_message": str(error)},
        )

    def compensation_started(self, step_name: str) -> None:
        self.update_saga_context(step_name=step_name)
        self.logger.warning(f"Compensation started: {step_name}")

    def compensation_completed(self, step_name: str) -> None:
        self.logger.warning(f"Compensation completed: {step_name}")

    def compensation_failed(self, step_name: str, error: Exception) -> None:
        """Log compensation failure - manual intervention needed"""
        self.logger.critical(
            f"Compensation FAILED: {step_name} - {error!s}",
            extra={"error_type": type(error).__name__, "error_message": str(error)},
            exc_info=error,
        )


def setup_saga_logging(
    log_level: str = "INFO", json_format: bool = True, include_console: bool = True
) -> SagaLogger:
    """
    Set up structured logging for the ordersaga namespace

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON formatting for structured logs
        include_console: Include console handler

    Returns:
        Configured SagaLogger instance
    """
    root_logger = logging.getLogger(LOGGER_NAMESPACE)
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if include_console:
        console_handler = logging.StreamHandler()
        console_handler.addFilter(SagaContextFilter())

        if json_format:
            console_handler.setFormatter(SagaJsonFormatter())
        else:
            console_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - "
                    "[%(saga_id)s:%(step_name)s order=%(order_id)s] - %(message)s"
                )
            )

        root_logger.addHandler(console_handler)

    return SagaLogger(LOGGER_NAMESPACE)


# Default saga logger instance
saga_logger = SagaLogger(f"{LOGGER_NAMESPACE}.saga")
