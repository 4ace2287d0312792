"""
In-process counters for saga runs
"""

from dataclasses import dataclass
from typing import Any

from ordersaga.core.types import SagaStatus


@dataclass
class _SagaCounters:
    executed: int = 0
    successful: int = 0
    failed: int = 0
    rolled_back: int = 0
    total_duration: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "executed": self.executed,
            "successful": self.successful,
            "failed": self.failed,
            "rolled_back": self.rolled_back,
            "average_duration": self.total_duration / self.executed if self.executed else 0.0,
        }


class SagaMetrics:
    """
    Collect saga outcome counters, overall and per saga name.

    COMPLETED counts as successful, ROLLED_BACK as rolled back (compensation
    ran), anything else as failed.
    """

    def __init__(self):
        self._totals = _SagaCounters()
        self._by_name: dict[str, _SagaCounters] = {}
        self.compensation_failures = 0

    def record_execution(self, saga_name: str, status: SagaStatus, duration: float) -> None:
        for counters in (self._totals, self._by_name.setdefault(saga_name, _SagaCounters())):
            counters.executed += 1
            counters.total_duration += duration
            if status == SagaStatus.COMPLETED:
                counters.successful += 1
            elif status == SagaStatus.ROLLED_BACK:
                counters.rolled_back += 1
            else:
                counters.failed += 1

    def record_compensation_failure(self) -> None:
        self.compensation_failures += 1

    def get_metrics(self) -> dict[str, Any]:
        totals = self._totals
        success_rate = totals.successful / totals.executed * 100 if totals.executed else 0
        return {
            "total_executed": totals.executed,
            "total_successful": totals.successful,
            "total_failed": totals.failed,
            "total_rolled_back": totals.rolled_back,
            "average_execution_time": totals.as_dict()["average_duration"],
            "compensation_failures": self.compensation_failures,
            "by_saga_name": {name: c.as_dict() for name, c in self._by_name.items()},
            "success_rate": f"{success_rate:.2f}%",
        }

    def reset(self) -> None:
        self.__init__()
