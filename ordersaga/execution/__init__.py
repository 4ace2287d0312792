"""
Execution module - the worker pool sagas run on.
"""

from ordersaga.execution.pool import SagaWorkerPool

__all__ = ["SagaWorkerPool"]
