"""
Sigma Damage Diagnosis.

Turns failing integrity checks into classified damages and a
priority-ordered repair plan.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from sigma_integrity.integrity.integrity_checker import (
    CheckStatus,
    DamageType,
    IntegrityReport,
)

logger = structlog.get_logger(__name__)

CASCADE_RISK_PER_DAMAGE = 0.2
RECOVERY_FACTOR = 0.8


class RepairActionType(str, Enum):
    """Repair actions, ordered by priority."""

    RESTORE = "restore"       # Install a canonical default
    RECONCILE = "reconcile"   # Fix a contradiction in place
    PRUNE = "prune"           # Trim overgrown memory
    RESET = "reset"           # Fallback for unclassified damage

    @property
    def priority(self) -> int:
        return _PRIORITIES[self]


_PRIORITIES = {
    RepairActionType.RESTORE: 3,
    RepairActionType.RECONCILE: 2,
    RepairActionType.PRUNE: 1,
    RepairActionType.RESET: 0,
}

_ACTION_FOR_DAMAGE = {
    DamageType.MISSING: RepairActionType.RESTORE,
    DamageType.INCONSISTENT: RepairActionType.RECONCILE,
    DamageType.DEGRADED: RepairActionType.PRUNE,
}

_DESCRIPTIONS = {
    RepairActionType.RESTORE: "Restore default value of {target}",
    RepairActionType.RECONCILE: "Reconcile consistency of {target}",
    RepairActionType.PRUNE: "Prune degradation of {target} (drop oldest records)",
    RepairActionType.RESET: "Reset {target}",
}


@dataclass
class Damage:
    """A classified defect in one attribute."""

    attribute: str
    type: DamageType
    severity: float
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "attribute": self.attribute,
            "type": self.type.value,
            "severity": round(self.severity, 3),
            "description": self.description,
        }


@dataclass
class RepairAction:
    """A planned remediation step."""

    target: str
    action: RepairActionType
    description: str
    priority: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "action": self.action.value,
            "description": self.description,
            "priority": self.priority,
        }


@dataclass
class DiagnosisResult:
    """Damages found in a report and the plan to repair them."""

    damages: list[Damage] = field(default_factory=list)
    cascade_risk: float = 0.0
    repair_plan: list[RepairAction] = field(default_factory=list)
    estimated_recovery: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "damages": [d.to_dict() for d in self.damages],
            "cascade_risk": round(self.cascade_risk, 3),
            "repair_plan": [a.to_dict() for a in self.repair_plan],
            "estimated_recovery": round(self.estimated_recovery, 3),
        }


def plan_repair_action(damage: Damage) -> RepairAction:
    """Map a damage to its repair action via the fixed type table."""
    action = _ACTION_FOR_DAMAGE.get(damage.type, RepairActionType.RESET)
    return RepairAction(
        target=damage.attribute,
        action=action,
        description=_DESCRIPTIONS[action].format(target=damage.attribute),
        priority=action.priority,
    )


def diagnose(report: IntegrityReport) -> DiagnosisResult:
    """
    Classify every non-ok check and build a repair plan.

    Args:
        report: Integrity report to diagnose

    Returns:
        DiagnosisResult with the plan sorted by priority (stable on ties)
    """
    damages: list[Damage] = []
    plan: list[RepairAction] = []

    for check in report.checks:
        if check.status == CheckStatus.OK:
            continue
        damage = Damage(
            attribute=check.attribute,
            type=check.damage_type or DamageType.INCONSISTENT,
            severity=1 - check.score,
            description=check.detail,
        )
        damages.append(damage)
        plan.append(plan_repair_action(damage))

    plan.sort(key=lambda a: a.priority, reverse=True)

    # Pruning bounds memory but does not raise correctness
    repairable = sum(
        d.severity * RECOVERY_FACTOR for d in damages if d.type != DamageType.DEGRADED
    )
    estimated_recovery = min(1.0, report.score + repairable / max(1, len(report.checks)))

    result = DiagnosisResult(
        damages=damages,
        cascade_risk=min(1.0, len(damages) * CASCADE_RISK_PER_DAMAGE),
        repair_plan=plan,
        estimated_recovery=estimated_recovery,
    )

    logger.debug(
        "Diagnosis completed",
        damages=len(damages),
        cascade_risk=result.cascade_risk,
        estimated_recovery=round(estimated_recovery, 3),
    )

    return result
