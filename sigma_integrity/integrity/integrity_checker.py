"""
Sigma Integrity Checker.

Validates the shape of a sigma record:
- Missing attributes
- Structurally incomplete or out-of-vocabulary values
- Memory overgrowth
- Cross-attribute contradictions
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

from sigma_integrity.config.settings import SelfRepairConfig, resolve_config
from sigma_integrity.integrity.attributes import (
    CROSS_ATTRIBUTE_RULES,
    VALID_FLOW_PHASES,
    VALID_WILL_TENDENCIES,
    Shape,
    attribute,
    classify,
    is_number,
    is_sequence,
    member,
    memory_entries,
)
from sigma_integrity.observability.metrics import record_check

logger = structlog.get_logger(__name__)

DAMAGED_PENALTY = 0.2
MEMORY_WARNING_RATIO = 0.8


class CheckStatus(str, Enum):
    """Outcome of a single attribute check."""

    OK = "ok"
    WARNING = "warning"     # Precursor to damage, vetoes a healthy verdict
    DAMAGED = "damaged"


class DamageType(str, Enum):
    """Damage taxonomy."""

    MISSING = "missing"             # Attribute absent or None
    INCONSISTENT = "inconsistent"   # Shape or cross-attribute contradiction
    DEGRADED = "degraded"           # Bounded resource overflow (memory)


@dataclass
class AttributeCheck:
    """Result of checking one attribute or attribute pair."""

    attribute: str
    status: CheckStatus
    score: float
    detail: str
    damage_type: DamageType | None = None

    @property
    def is_ok(self) -> bool:
        return self.status == CheckStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "attribute": self.attribute,
            "status": self.status.value,
            "score": self.score,
            "damage_type": self.damage_type.value if self.damage_type else None,
            "detail": self.detail,
        }


@dataclass
class IntegrityReport:
    """Report of integrity check results."""

    score: float
    healthy: bool
    checks: list[AttributeCheck] = field(default_factory=list)
    damage_count: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def warnings(self) -> list[AttributeCheck]:
        return [c for c in self.checks if c.status == CheckStatus.WARNING]

    @property
    def damaged(self) -> list[AttributeCheck]:
        return [c for c in self.checks if c.status == CheckStatus.DAMAGED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "healthy": self.healthy,
            "damage_count": self.damage_count,
            "timestamp": self.timestamp.isoformat(),
            "summary": {
                "checks": len(self.checks),
                "warnings": len(self.warnings),
                "damaged": len(self.damaged),
            },
            "checks": [c.to_dict() for c in self.checks],
        }


def _missing(name: str) -> AttributeCheck:
    return AttributeCheck(
        attribute=name,
        status=CheckStatus.DAMAGED,
        score=0.0,
        damage_type=DamageType.MISSING,
        detail=f"{name} attribute is missing",
    )


def _ok(name: str, detail: str | None = None) -> AttributeCheck:
    return AttributeCheck(
        attribute=name,
        status=CheckStatus.OK,
        score=1.0,
        detail=detail or f"{name} healthy",
    )


class IntegrityChecker:
    """
    Checks the structural integrity of sigma records.

    Never raises: malformed input produces low scores and damaged/warning
    checks instead.

    Usage:
        ```python
        checker = IntegrityChecker()
        report = checker.check(record)

        if not report.healthy:
            for check in report.warnings + report.damaged:
                print(f"{check.attribute}: {check.detail}")
        ```
    """

    def __init__(self, config: SelfRepairConfig | None = None) -> None:
        self._config = resolve_config(config)

    @property
    def config(self) -> SelfRepairConfig:
        return self._config

    def check(self, record: Any) -> IntegrityReport:
        """
        Run every attribute check and aggregate a score.

        Args:
            record: Sigma record (any mapping; other values count as empty)

        Returns:
            IntegrityReport
        """
        checks = [
            self._check_field(attribute(record, "field")),
            self._check_flow(attribute(record, "flow")),
            self._check_memory(attribute(record, "memory")),
            self._check_layer(attribute(record, "layer")),
            self._check_relation(attribute(record, "relation")),
            self._check_will(attribute(record, "will")),
        ]
        checks.extend(self._check_cross_attributes(record))

        damage_count = sum(1 for c in checks if c.status == CheckStatus.DAMAGED)
        has_warnings = any(c.status == CheckStatus.WARNING for c in checks)

        raw_score = sum(c.score for c in checks) / len(checks)
        score = round(max(0.0, raw_score - DAMAGED_PENALTY * damage_count), 3)

        report = IntegrityReport(
            score=score,
            healthy=(
                score >= self._config.integrity_threshold
                and damage_count == 0
                and not has_warnings
            ),
            checks=checks,
            damage_count=damage_count,
        )

        record_check(report.healthy, damage_count)
        logger.debug(
            "Integrity check completed",
            score=report.score,
            healthy=report.healthy,
            damaged=damage_count,
            warnings=len(report.warnings),
        )

        return report

    def _check_field(self, value: Any) -> AttributeCheck:
        shape = classify(value)
        if shape is Shape.ABSENT:
            return _missing("field")

        # Sequences never carry center/neighbors members
        if shape is Shape.SEQUENCE or (
            shape is Shape.MAPPING and "center" not in value and "neighbors" not in value
        ):
            return AttributeCheck(
                attribute="field",
                status=CheckStatus.WARNING,
                score=0.5,
                detail="field structure incomplete (no center or neighbors)",
            )
        return _ok("field")

    def _check_flow(self, value: Any) -> AttributeCheck:
        if classify(value) is Shape.ABSENT:
            return _missing("flow")

        phase = member(value, "phase")
        if phase and not (isinstance(phase, str) and phase in VALID_FLOW_PHASES):
            return AttributeCheck(
                attribute="flow",
                status=CheckStatus.WARNING,
                score=0.6,
                damage_type=DamageType.INCONSISTENT,
                detail=f"Unknown flow phase: {phase!r}",
            )
        return _ok("flow")

    def _check_memory(self, value: Any) -> AttributeCheck:
        if classify(value) is Shape.ABSENT:
            return _missing("memory")

        entries = memory_entries(value)
        if entries is None:
            return _ok("memory")

        limit = self._config.max_memory_entries
        size = len(entries)
        if size > limit:
            return AttributeCheck(
                attribute="memory",
                status=CheckStatus.WARNING,
                score=0.4,
                damage_type=DamageType.DEGRADED,
                detail=f"memory overgrown: {size}/{limit} entries",
            )
        if size > limit * MEMORY_WARNING_RATIO:
            return AttributeCheck(
                attribute="memory",
                status=CheckStatus.WARNING,
                score=0.7,
                detail=f"memory above {int(MEMORY_WARNING_RATIO * 100)}% of capacity: {size}/{limit} entries",
            )
        return _ok("memory", f"memory healthy: {size} entries")

    def _check_layer(self, value: Any) -> AttributeCheck:
        if classify(value) is Shape.ABSENT:
            return _missing("layer")

        depth = member(value, "depth")
        if is_number(depth) and depth < 0:
            return AttributeCheck(
                attribute="layer",
                status=CheckStatus.DAMAGED,
                score=0.2,
                damage_type=DamageType.INCONSISTENT,
                detail=f"Invalid layer depth: {depth}",
            )
        return _ok("layer")

    def _check_relation(self, value: Any) -> AttributeCheck:
        if classify(value) is Shape.ABSENT:
            return _missing("relation")

        refs = member(value, "refs")
        if refs is not None and not is_sequence(refs):
            return AttributeCheck(
                attribute="relation",
                status=CheckStatus.DAMAGED,
                score=0.3,
                damage_type=DamageType.INCONSISTENT,
                detail=f"relation.refs is not a sequence ({type(refs).__name__})",
            )
        return _ok("relation")

    def _check_will(self, value: Any) -> AttributeCheck:
        if classify(value) is Shape.ABSENT:
            return _missing("will")

        tendency = member(value, "tendency")
        if tendency and not (isinstance(tendency, str) and tendency in VALID_WILL_TENDENCIES):
            return AttributeCheck(
                attribute="will",
                status=CheckStatus.WARNING,
                score=0.6,
                damage_type=DamageType.INCONSISTENT,
                detail=f"Unknown will tendency: {tendency!r}",
            )
        return _ok("will")

    def _check_cross_attributes(self, record: Any) -> list[AttributeCheck]:
        checks = []
        for rule in CROSS_ATTRIBUTE_RULES:
            if not rule.applies_to(record):
                continue
            if rule.violated(record):
                checks.append(AttributeCheck(
                    attribute=rule.name,
                    status=CheckStatus.WARNING,
                    score=rule.score,
                    damage_type=DamageType.INCONSISTENT,
                    detail=rule.detail(record),
                ))
            else:
                checks.append(_ok(rule.name, rule.ok_detail))
        return checks


def detect_integrity(
    record: Any,
    config: SelfRepairConfig | None = None,
    **overrides: Any,
) -> IntegrityReport:
    """
    Check a sigma record and return its integrity report.

    Args:
        record: Sigma record
        config: Base config (defaults to application settings)
        **overrides: Per-call config overrides (e.g. max_memory_entries=50)

    Returns:
        IntegrityReport
    """
    return IntegrityChecker(resolve_config(config, **overrides)).check(record)
