"""
Saga monitoring utilities

Quick Start:
    >>> from ordersaga.monitoring import setup_saga_logging, SagaMetrics

    # Set up structured logging
    >>> logger = setup_saga_logging(json_format=True)

    # Count saga outcomes
    >>> metrics = SagaMetrics()
    >>> metrics.get_metrics()["total_executed"]
    0
"""

from .logging import (
    SagaContextFilter,
    SagaJsonFormatter,
    SagaLogger,
    saga_context,
    saga_logger,
    setup_saga_logging,
)
from .metrics import SagaMetrics

__all__ = [
    "SagaContextFilter",
    "SagaJsonFormatter",
    "SagaLogger",
    "SagaMetrics",
    "saga_context",
    "saga_logger",
    "setup_saga_logging",
]
