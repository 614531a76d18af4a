"""
Sigma Integrity Repair.

Executes repair plans against a sigma record in place:
- Restore missing attributes from canonical defaults
- Reconcile contradictory values
- Prune overgrown memory with a pluggable strategy
- Record the repair into the record's own memory
"""

from collections.abc import Callable, MutableMapping, MutableSequence, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from sigma_integrity.config.settings import SelfRepairConfig, resolve_config
from sigma_integrity.integrity.attributes import (
    SELF_REPAIR_ENTRY_TYPE,
    attribute,
    deep_but_isolated,
    default_for,
    is_number,
    is_self_repair_entry,
    is_sequence,
    is_set,
    member,
    memory_entries,
    physics_with_rhythmic_flow,
)
from sigma_integrity.integrity.diagnosis import (
    DiagnosisResult,
    RepairAction,
    RepairActionType,
)
from sigma_integrity.integrity.integrity_checker import DamageType, IntegrityChecker
from sigma_integrity.observability.metrics import record_action, record_repair

if TYPE_CHECKING:
    from sigma_integrity.integrity.cascade import CascadeCheckResult

logger = structlog.get_logger(__name__)

REPAIR_LOG_SHARE = 0.2
CONSERVATIVE_SHARE = 0.8
ADAPTIVE_OTHERS_SHARE = 0.8


class UnknownRepairActionError(Exception):
    """Raised when a repair plan contains an action with no handler."""

    def __init__(self, action: Any):
        super().__init__(f"Unknown repair action: {action!r}")
        self.action = action


class RepairOutcome(str, Enum):
    """Outcome of a single repair action."""

    FIXED = "fixed"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class AppliedRepair:
    """A repair action together with its outcome."""

    action: RepairAction
    result: RepairOutcome
    detail: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.to_dict(),
            "result": self.result.value,
            "detail": self.detail,
        }


@dataclass
class RepairLog:
    """Structured summary of a repair run."""

    strategy: str
    damage_types: list[DamageType] = field(default_factory=list)
    actions_count: int = 0
    integrity_delta: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "damage_types": [d.value for d in self.damage_types],
            "strategy": self.strategy,
            "actions_count": self.actions_count,
            "integrity_delta": self.integrity_delta,
        }


@dataclass
class RepairResult:
    """Result of a repair run."""

    success: bool
    integrity_before: float
    integrity_after: float
    log: RepairLog
    actions_applied: int = 0
    repairs: list[AppliedRepair] = field(default_factory=list)
    cascade: "CascadeCheckResult | None" = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "actions_applied": self.actions_applied,
            "integrity_before": self.integrity_before,
            "integrity_after": self.integrity_after,
            "repairs": [r.to_dict() for r in self.repairs],
            "log": self.log.to_dict(),
            "cascade": self.cascade.to_dict() if self.cascade else None,
        }


# =============================================================================
# Memory pruning strategies
# =============================================================================


PruneStrategy = Callable[[Sequence[Any], int], list[Any]]


def _keep_recent(entries: Sequence[Any], count: int) -> list[Any]:
    if count <= 0:
        return []
    return list(entries)[-count:]


def prune_aggressive(entries: Sequence[Any], limit: int) -> list[Any]:
    """Keep only the newest `limit` entries."""
    return _keep_recent(entries, limit)


def prune_conservative(entries: Sequence[Any], limit: int) -> list[Any]:
    """Keep the newest 80% of the limit, leaving headroom for new entries."""
    return _keep_recent(entries, int(limit * CONSERVATIVE_SHARE))


def prune_adaptive(entries: Sequence[Any], limit: int) -> list[Any]:
    """
    Keep prior self-repair entries in a reserved share of the budget.

    20% of the limit is reserved for self-repair log entries and 80% for
    everything else, each keeping its newest entries. Other entries come
    first, followed by the retained repair logs.
    """
    repair_logs = [e for e in entries if is_self_repair_entry(e)]
    others = [e for e in entries if not is_self_repair_entry(e)]

    return (
        _keep_recent(others, int(limit * ADAPTIVE_OTHERS_SHARE))
        + _keep_recent(repair_logs, int(limit * REPAIR_LOG_SHARE))
    )


PRUNE_STRATEGIES: dict[str, PruneStrategy] = {
    "aggressive": prune_aggressive,
    "conservative": prune_conservative,
    "adaptive": prune_adaptive,
}


def _replace_entries(container: MutableMapping[str, Any], key: str, entries: list[Any]) -> None:
    current = container[key]
    if isinstance(current, MutableSequence):
        current.clear()
        current.extend(entries)
    else:
        container[key] = entries


class IntegrityRepair:
    """
    Repairs damaged sigma records in place.

    Each action is isolated: a failing action is reported as failed and the
    remaining plan still runs. Nothing is retried.

    Usage:
        ```python
        repair = IntegrityRepair(SelfRepairConfig(repair_strategy="aggressive"))

        report = repair.checker.check(record)
        result = repair.repair(record, diagnose(report))

        for applied in result.repairs:
            print(applied.action.target, applied.result.value)
        ```
    """

    def __init__(self, config: SelfRepairConfig | None = None) -> None:
        self._config = resolve_config(config)
        self._checker = IntegrityChecker(self._config)
        self._handlers: dict[RepairActionType, Callable[[Any, RepairAction], AppliedRepair]] = {
            RepairActionType.RESTORE: self._restore,
            RepairActionType.RECONCILE: self._reconcile,
            RepairActionType.PRUNE: self._prune,
            RepairActionType.RESET: self._reset,
        }

    @property
    def config(self) -> SelfRepairConfig:
        return self._config

    @property
    def checker(self) -> IntegrityChecker:
        return self._checker

    def repair(self, record: Any, diagnosis: DiagnosisResult) -> RepairResult:
        """
        Apply a repair plan to a record.

        Args:
            record: Sigma record, mutated in place
            diagnosis: Diagnosis whose plan is executed in order

        Returns:
            RepairResult with before/after scores and per-action outcomes
        """
        integrity_before = self._checker.check(record).score

        repairs = [self.execute(record, action) for action in diagnosis.repair_plan]

        integrity_after = self._checker.check(record).score

        log = RepairLog(
            strategy=self._config.repair_strategy,
            damage_types=[d.type for d in diagnosis.damages],
            actions_count=len(repairs),
            integrity_delta=round(integrity_after - integrity_before, 3),
        )

        # Logged after integrity_after is measured
        if self._config.log_repairs:
            self._append_log(record, log)

        result = RepairResult(
            success=(
                integrity_after > integrity_before
                or integrity_after >= self._config.integrity_threshold
            ),
            actions_applied=sum(1 for r in repairs if r.result != RepairOutcome.FAILED),
            integrity_before=integrity_before,
            integrity_after=integrity_after,
            repairs=repairs,
            log=log,
        )

        record_repair(result.success, log.integrity_delta)
        logger.info(
            "Repair completed",
            success=result.success,
            actions=len(repairs),
            applied=result.actions_applied,
            integrity_before=integrity_before,
            integrity_after=integrity_after,
            strategy=self._config.repair_strategy,
        )

        return result

    def execute(self, record: Any, action: RepairAction) -> AppliedRepair:
        """Run one repair action, converting any error into a failed outcome."""
        try:
            handler = self._handlers.get(action.action)
            if handler is None:
                raise UnknownRepairActionError(action.action)
            applied = handler(record, action)
        except Exception as e:
            logger.warning(
                "Repair action failed",
                target=action.target,
                action=str(getattr(action.action, "value", action.action)),
                error=str(e),
            )
            applied = AppliedRepair(action=action, result=RepairOutcome.FAILED, detail=f"Repair error: {e}")

        record_action(str(getattr(action.action, "value", action.action)), applied.result.value)
        return applied

    def _restore(self, record: Any, action: RepairAction) -> AppliedRepair:
        """Install the canonical default of a missing attribute."""
        name = action.target.split("-")[0]
        default = default_for(name)

        if default is not None and attribute(record, name) is None:
            record[name] = default
            return AppliedRepair(action, RepairOutcome.FIXED, f"{name} restored to default")

        return AppliedRepair(action, RepairOutcome.PARTIAL, f"{name} already present, nothing restored")

    def _reconcile(self, record: Any, action: RepairAction) -> AppliedRepair:
        """Fix attribute-specific contradictions. Every fix that applies to the target runs."""
        target = action.target
        flow = attribute(record, "flow")
        layer = attribute(record, "layer")
        relation = attribute(record, "relation")
        will = attribute(record, "will")
        fixes: list[str] = []

        if target in ("field-flow", "flow") and isinstance(flow, MutableMapping):
            if physics_with_rhythmic_flow(record):
                flow["phase"] = "steady"
                fixes.append("flow phase in physics field set to steady")

        if target in ("layer-relation", "relation") and is_set(layer) and is_set(relation):
            if deep_but_isolated(record):
                relation["isolated"] = False
                fixes.append("deep layer relation no longer isolated")

        if target == "layer" and is_number(member(layer, "depth")) and layer["depth"] < 0:
            layer["depth"] = 1
            fixes.append("layer depth clamped to 1")

        if target == "relation" and isinstance(relation, MutableMapping) and not is_sequence(relation.get("refs")):
            relation["refs"] = []
            fixes.append("relation.refs replaced with an empty sequence")

        if target == "will" and isinstance(will, MutableMapping) and not will.get("tendency"):
            will["tendency"] = "rest"
            fixes.append("will tendency set to rest")

        if fixes:
            return AppliedRepair(action, RepairOutcome.FIXED, "; ".join(fixes))
        return AppliedRepair(action, RepairOutcome.PARTIAL, f"{target} only partially reconciled")

    def _prune(self, record: Any, action: RepairAction) -> AppliedRepair:
        """Trim overgrown memory using the configured strategy."""
        if action.target != "memory":
            return AppliedRepair(action, RepairOutcome.PARTIAL, f"prune not supported for {action.target}")

        limit = self._config.max_memory_entries
        strategy = self._config.repair_strategy
        prune = PRUNE_STRATEGIES[strategy]
        memory = attribute(record, "memory")

        if is_sequence(memory) and len(memory) > limit:
            before = len(memory)
            _replace_entries(record, "memory", prune(memory, limit))
            return AppliedRepair(
                action,
                RepairOutcome.FIXED,
                f"memory pruned: {before} -> {len(record['memory'])} entries ({strategy} strategy)",
            )

        entries = member(memory, "entries")
        if is_sequence(entries) and len(entries) > limit:
            before = len(entries)
            _replace_entries(memory, "entries", prune(entries, limit))
            return AppliedRepair(
                action,
                RepairOutcome.FIXED,
                f"memory.entries pruned: {before} -> {len(memory['entries'])} entries ({strategy} strategy)",
            )

        return AppliedRepair(action, RepairOutcome.PARTIAL, "memory within limit, nothing pruned")

    def _reset(self, record: Any, action: RepairAction) -> AppliedRepair:
        return self._restore(record, action)

    def _append_log(self, record: Any, log: RepairLog) -> None:
        memory = attribute(record, "memory")
        entry = {"type": SELF_REPAIR_ENTRY_TYPE, **log.to_dict()}

        entries = memory_entries(memory)
        if isinstance(entries, MutableSequence):
            entries.append(entry)


def repair(
    record: Any,
    diagnosis: DiagnosisResult,
    config: SelfRepairConfig | None = None,
    **overrides: Any,
) -> RepairResult:
    """
    Execute a diagnosis' repair plan against a record.

    Args:
        record: Sigma record, mutated in place
        diagnosis: Diagnosis to execute
        config: Base config (defaults to application settings)
        **overrides: Per-call config overrides

    Returns:
        RepairResult
    """
    return IntegrityRepair(resolve_config(config, **overrides)).repair(record, diagnosis)
