"""
Sigma Integrity Management.

Provides self-diagnosis and self-repair for sigma records:
- Attribute and cross-attribute integrity checks
- Damage diagnosis and priority-ordered repair plans
- In-place repair with pluggable memory pruning
- Cascade risk analysis across neighbor records
"""

from sigma_integrity.integrity.attributes import SIGMA_ATTRIBUTES, SigmaRecord
from sigma_integrity.integrity.cascade import (
    CascadeAnalyzer,
    CascadeCheckResult,
    check_cascade_risk,
)
from sigma_integrity.integrity.diagnosis import (
    Damage,
    DiagnosisResult,
    RepairAction,
    RepairActionType,
    diagnose,
    plan_repair_action,
)
from sigma_integrity.integrity.integrity_checker import (
    AttributeCheck,
    CheckStatus,
    DamageType,
    IntegrityChecker,
    IntegrityReport,
    detect_integrity,
)
from sigma_integrity.integrity.integrity_repair import (
    PRUNE_STRATEGIES,
    AppliedRepair,
    IntegrityRepair,
    RepairLog,
    RepairOutcome,
    RepairResult,
    UnknownRepairActionError,
    repair,
)
from sigma_integrity.integrity.self_repair import (
    SigmaSelfRepair,
    create_self_repair,
    self_repair,
)

__all__ = [
    # Attributes
    "SIGMA_ATTRIBUTES",
    "SigmaRecord",
    # Checker
    "AttributeCheck",
    "CheckStatus",
    "DamageType",
    "IntegrityChecker",
    "IntegrityReport",
    "detect_integrity",
    # Diagnosis
    "Damage",
    "DiagnosisResult",
    "RepairAction",
    "RepairActionType",
    "diagnose",
    "plan_repair_action",
    # Repair
    "PRUNE_STRATEGIES",
    "AppliedRepair",
    "IntegrityRepair",
    "RepairLog",
    "RepairOutcome",
    "RepairResult",
    "UnknownRepairActionError",
    "repair",
    # Orchestration
    "SigmaSelfRepair",
    "create_self_repair",
    "self_repair",
    # Cascade
    "CascadeAnalyzer",
    "CascadeCheckResult",
    "check_cascade_risk",
]
