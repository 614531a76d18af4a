"""
Sigma Integrity Engine.

Self-diagnosing and self-healing integrity checks for sigma provenance
records (field, flow, memory, layer, relation, will).
"""

from sigma_integrity.config.settings import SelfRepairConfig, get_settings
from sigma_integrity.integrity import (
    CascadeCheckResult,
    DiagnosisResult,
    IntegrityReport,
    RepairResult,
    check_cascade_risk,
    detect_integrity,
    diagnose,
    repair,
    self_repair,
)

__version__ = "0.1.0"

__all__ = [
    "SelfRepairConfig",
    "get_settings",
    "CascadeCheckResult",
    "DiagnosisResult",
    "IntegrityReport",
    "RepairResult",
    "check_cascade_risk",
    "detect_integrity",
    "diagnose",
    "repair",
    "self_repair",
]
