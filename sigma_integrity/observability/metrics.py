"""
Repair Metrics Collection.

In-process counters for the integrity engine:
- Integrity checks and healthy verdicts
- Repair actions by action type and outcome
- Self-repair runs, short circuits and integrity deltas
- Prometheus-compatible export
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class DeltaStats:
    """Running statistics for integrity deltas."""

    count: int = 0
    sum: float = 0.0
    min: float = float("inf")
    max: float = float("-inf")

    def add(self, value: float) -> None:
        self.count += 1
        self.sum += value
        self.min = min(self.min, value)
        self.max = max(self.max, value)

    @property
    def mean(self) -> float:
        return self.sum / self.count if self.count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "sum": round(self.sum, 3),
            "min": round(self.min, 3) if self.count else 0,
            "max": round(self.max, 3) if self.count else 0,
            "mean": round(self.mean, 3),
        }


class RepairMetrics:
    """
    Collects counters for integrity checks and repairs.

    Usage:
        ```python
        metrics = get_repair_metrics()
        metrics.record_check(healthy=False, damage_count=2)
        print(metrics.get_summary())
        ```
    """

    def __init__(self) -> None:
        self._checks = 0
        self._healthy_checks = 0
        self._damaged_attributes = 0
        self._actions: dict[str, int] = defaultdict(int)
        self._runs = 0
        self._short_circuits = 0
        self._successful_runs = 0
        self._deltas = DeltaStats()
        self._start_time = datetime.now(timezone.utc)

    def record_check(self, healthy: bool, damage_count: int) -> None:
        """Record one integrity check."""
        self._checks += 1
        if healthy:
            self._healthy_checks += 1
        self._damaged_attributes += damage_count

    def record_action(self, action: str, outcome: str) -> None:
        """Record one executed repair action."""
        self._actions[f'action="{action}",result="{outcome}"'] += 1

    def record_repair(self, success: bool, integrity_delta: float) -> None:
        """Record a completed repair run."""
        self._runs += 1
        if success:
            self._successful_runs += 1
        self._deltas.add(integrity_delta)

    def record_short_circuit(self) -> None:
        """Record a self-repair call that found the record already healthy."""
        self._short_circuits += 1

    def get_summary(self) -> dict[str, Any]:
        """Get all metrics as a dictionary."""
        uptime = (datetime.now(timezone.utc) - self._start_time).total_seconds()
        return {
            "uptime_seconds": round(uptime, 2),
            "checks": {
                "total": self._checks,
                "healthy": self._healthy_checks,
                "damaged_attributes": self._damaged_attributes,
            },
            "repairs": {
                "runs": self._runs,
                "successful": self._successful_runs,
                "short_circuits": self._short_circuits,
                "integrity_delta": self._deltas.to_dict(),
            },
            "actions": dict(self._actions),
        }

    def get_prometheus_output(self) -> str:
        """Get all metrics in Prometheus format."""
        lines = [
            "# HELP sigma_integrity_checks_total Integrity checks performed",
            "# TYPE sigma_integrity_checks_total counter",
            f"sigma_integrity_checks_total {self._checks}",
            f'sigma_integrity_checks_total{{healthy="true"}} {self._healthy_checks}',
            "",
            "# HELP sigma_repair_runs_total Repair runs executed",
            "# TYPE sigma_repair_runs_total counter",
            f"sigma_repair_runs_total {self._runs}",
            f'sigma_repair_runs_total{{success="true"}} {self._successful_runs}',
            f"sigma_repair_short_circuits_total {self._short_circuits}",
            "",
            "# HELP sigma_repair_actions_total Repair actions by type and result",
            "# TYPE sigma_repair_actions_total counter",
        ]
        for labels, value in sorted(self._actions.items()):
            lines.append(f"sigma_repair_actions_total{{{labels}}} {value}")

        return "\n".join(lines)

    def reset(self) -> None:
        """Reset all metrics."""
        self.__init__()
        logger.info("Repair metrics reset")


# Global metrics registry
_repair_metrics: RepairMetrics | None = None


def get_repair_metrics() -> RepairMetrics:
    """Get the global repair metrics collector."""
    global _repair_metrics
    if _repair_metrics is None:
        _repair_metrics = RepairMetrics()
    return _repair_metrics


# Convenience functions

def _enabled() -> bool:
    from sigma_integrity.config.settings import get_settings

    return get_settings().observability.metrics_enabled


def record_check(healthy: bool, damage_count: int) -> None:
    """Record an integrity check if metrics are enabled."""
    if _enabled():
        get_repair_metrics().record_check(healthy, damage_count)


def record_action(action: str, outcome: str) -> None:
    """Record a repair action outcome if metrics are enabled."""
    if _enabled():
        get_repair_metrics().record_action(action, outcome)


def record_repair(success: bool, integrity_delta: float) -> None:
    """Record a repair run if metrics are enabled."""
    if _enabled():
        get_repair_metrics().record_repair(success, integrity_delta)


def record_short_circuit() -> None:
    """Record a healthy short circuit if metrics are enabled."""
    if _enabled():
        get_repair_metrics().record_short_circuit()
