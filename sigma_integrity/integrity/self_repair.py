"""
Sigma Self-Repair.

One-shot detect -> diagnose -> repair pipeline for a sigma record.

The record is mutated in place. Callers must guarantee a single writer per
record for the duration of a call.
"""

from collections.abc import Mapping
from typing import Any

import structlog

from sigma_integrity.config.settings import SelfRepairConfig, resolve_config
from sigma_integrity.integrity.cascade import CascadeAnalyzer
from sigma_integrity.integrity.diagnosis import diagnose
from sigma_integrity.integrity.integrity_repair import (
    IntegrityRepair,
    RepairLog,
    RepairResult,
)
from sigma_integrity.observability.logging import new_run_id, repair_context
from sigma_integrity.observability.metrics import record_short_circuit

logger = structlog.get_logger(__name__)


class SigmaSelfRepair:
    """
    Runs the full self-repair pipeline.

    Usage:
        ```python
        engine = SigmaSelfRepair()
        result = engine.run(record)

        # With neighbors, the repaired record is also checked for cascade risk
        result = engine.run(record, neighbors={"peer": peer_record})
        if result.cascade and result.cascade.at_risk:
            print(result.cascade.recommendation)
        ```
    """

    def __init__(self, config: SelfRepairConfig | None = None) -> None:
        self._config = resolve_config(config)
        self._repair = IntegrityRepair(self._config)
        self._cascade = CascadeAnalyzer(self._config)

    @property
    def config(self) -> SelfRepairConfig:
        return self._config

    def run(
        self,
        record: Any,
        neighbors: Mapping[str, Any] | None = None,
    ) -> RepairResult:
        """
        Detect, diagnose and repair a record.

        Args:
            record: Sigma record, mutated in place
            neighbors: Optional neighbor id -> record map for cascade checks

        Returns:
            RepairResult (zero actions when the record was already healthy)
        """
        with repair_context(repair_run=new_run_id(), strategy=self._config.repair_strategy):
            result = self._repair_or_skip(record)

            if neighbors is not None and self._config.enable_cascade_check:
                result.cascade = self._cascade.analyze(record, neighbors)
                if result.cascade.at_risk:
                    logger.warning(
                        "Repaired record still at cascade risk",
                        affected=result.cascade.affected_neighbors,
                        risk_level=result.cascade.risk_level,
                    )

        return result

    def _repair_or_skip(self, record: Any) -> RepairResult:
        report = self._repair.checker.check(record)

        if report.healthy:
            record_short_circuit()
            logger.debug("Record healthy, no repair needed", score=report.score)
            return RepairResult(
                success=True,
                actions_applied=0,
                integrity_before=report.score,
                integrity_after=report.score,
                log=RepairLog(
                    strategy=self._config.repair_strategy,
                    timestamp=report.timestamp,
                ),
            )

        diagnosis = diagnose(report)
        logger.info(
            "Self-repair started",
            score=report.score,
            damages=len(diagnosis.damages),
            estimated_recovery=round(diagnosis.estimated_recovery, 3),
        )
        return self._repair.repair(record, diagnosis)


def self_repair(
    record: Any,
    config: SelfRepairConfig | None = None,
    **overrides: Any,
) -> RepairResult:
    """
    One-shot self-repair: detect, diagnose, repair and log.

    Args:
        record: Sigma record, mutated in place
        config: Base config (defaults to application settings)
        **overrides: Per-call config overrides (e.g. repair_strategy="aggressive")

    Returns:
        RepairResult
    """
    return SigmaSelfRepair(resolve_config(config, **overrides)).run(record)


# Factory function
def create_self_repair(**overrides: Any) -> SigmaSelfRepair:
    """Create a self-repair engine from application settings."""
    return SigmaSelfRepair(resolve_config(None, **overrides))
