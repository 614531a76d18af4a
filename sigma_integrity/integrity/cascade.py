"""
Cascade Risk Analysis.

Estimates how likely damage in one sigma record is mirrored in the
records it references. Read-only: neither the record nor its neighbors
are modified.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog

from sigma_integrity.config.settings import SelfRepairConfig, resolve_config
from sigma_integrity.integrity.integrity_checker import IntegrityChecker
from sigma_integrity.observability.logging import repair_context

logger = structlog.get_logger(__name__)


@dataclass
class CascadeCheckResult:
    """Propagated-damage risk for a record and its neighbors."""

    at_risk: bool = False
    risk_level: float = 0.0
    affected_neighbors: list[str] = field(default_factory=list)
    recommendation: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "at_risk": self.at_risk,
            "risk_level": self.risk_level,
            "affected_neighbors": self.affected_neighbors,
            "recommendation": self.recommendation,
        }


class CascadeAnalyzer:
    """
    Checks neighbors of a damaged record for propagated damage.

    Usage:
        ```python
        analyzer = CascadeAnalyzer()
        result = analyzer.analyze(record, {"left": left_record, "right": right_record})

        if result.at_risk:
            print(result.recommendation)
        ```
    """

    def __init__(self, config: SelfRepairConfig | None = None) -> None:
        self._checker = IntegrityChecker(resolve_config(config))

    def analyze(self, record: Any, neighbors: Mapping[str, Any]) -> CascadeCheckResult:
        """
        Estimate cascade risk.

        Args:
            record: Sigma record under inspection
            neighbors: Neighbor id -> neighbor record

        Returns:
            CascadeCheckResult
        """
        with repair_context(cascade_neighbors=len(neighbors)):
            return self._analyze(record, neighbors)

    def _analyze(self, record: Any, neighbors: Mapping[str, Any]) -> CascadeCheckResult:
        if self._checker.check(record).healthy:
            return CascadeCheckResult(recommendation="Healthy, no cascade risk")

        affected: list[str] = []
        total_risk = 0.0

        for name, neighbor in neighbors.items():
            report = self._checker.check(neighbor)
            if not report.healthy:
                affected.append(name)
                total_risk += 1 - report.score

        risk_level = total_risk / len(neighbors) if neighbors else 0.0

        if affected:
            recommendation = f"{len(affected)} neighbor(s) at risk of propagated damage, repair them first"
            logger.info("Cascade risk detected", affected=affected, risk_level=round(risk_level, 3))
        else:
            recommendation = "Low cascade risk, repairing this record alone is sufficient"

        return CascadeCheckResult(
            at_risk=bool(affected),
            risk_level=round(risk_level, 3),
            affected_neighbors=affected,
            recommendation=recommendation,
        )


def check_cascade_risk(
    record: Any,
    neighbors: Mapping[str, Any],
    config: SelfRepairConfig | None = None,
    **overrides: Any,
) -> CascadeCheckResult:
    """Estimate propagated-damage risk for a record and its neighbors."""
    return CascadeAnalyzer(resolve_config(config, **overrides)).analyze(record, neighbors)
