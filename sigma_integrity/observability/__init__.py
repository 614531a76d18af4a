"""
Observability Module.

Provides observability for the sigma integrity engine:
- Structured logging with JSON output and bound repair context
- In-process repair metrics with Prometheus export
"""

from sigma_integrity.observability.logging import (
    configure_from_settings,
    configure_logging,
    current_log_context,
    new_run_id,
    repair_context,
)
from sigma_integrity.observability.metrics import (
    RepairMetrics,
    get_repair_metrics,
    record_action,
    record_check,
    record_repair,
    record_short_circuit,
)

__all__ = [
    # Logging
    "configure_logging",
    "configure_from_settings",
    "current_log_context",
    "new_run_id",
    "repair_context",
    # Metrics
    "RepairMetrics",
    "get_repair_metrics",
    "record_action",
    "record_check",
    "record_repair",
    "record_short_circuit",
]
