"""
Unit Tests for Sigma Integrity Repair.

Tests restore/reconcile/prune/reset handlers, pruning strategies,
failure isolation and the self-repair log entry.
"""

import types
from collections import deque
from typing import Any
from unittest.mock import patch

import pytest
from structlog.testing import capture_logs

from sigma_integrity.config.settings import SelfRepairConfig
from sigma_integrity.integrity.attributes import default_for
from sigma_integrity.integrity.diagnosis import RepairAction, RepairActionType, diagnose
from sigma_integrity.integrity.integrity_checker import detect_integrity
from sigma_integrity.integrity.integrity_repair import (
    PRUNE_STRATEGIES,
    IntegrityRepair,
    RepairOutcome,
    prune_adaptive,
    prune_aggressive,
    prune_conservative,
    repair,
)


def _action(target: str, action: RepairActionType) -> RepairAction:
    return RepairAction(target=target, action=action, description="test", priority=action.priority)


def _run(record: dict[str, Any], **overrides: Any):
    config = SelfRepairConfig(**overrides)
    return repair(record, diagnose(detect_integrity(record, config)), config)


# =============================================================================
# Handler Tests
# =============================================================================


class TestRestore:
    """Test restoring missing attributes."""

    def test_restores_canonical_defaults(self, missing_field_and_will: dict[str, Any]) -> None:
        """Test that missing attributes get their canonical defaults."""
        result = _run(missing_field_and_will)

        assert missing_field_and_will["field"] == {"center": 0, "neighbors": [], "dim": 0}
        assert missing_field_and_will["will"] == {"tendency": "rest", "strength": 0, "intrinsic": "centered"}
        assert all(r.result == RepairOutcome.FIXED for r in result.repairs)
        assert result.integrity_after == 1.0
        assert result.integrity_after > result.integrity_before

    def test_restores_every_attribute(self) -> None:
        """Test that an empty record is fully restored."""
        record: dict[str, Any] = {}

        result = _run(record)

        assert set(record) == {"field", "flow", "memory", "layer", "relation", "will"}
        assert record["flow"]["phase"] == "rest"
        assert record["layer"] == {"depth": 1, "structure": "flat", "expandable": True}
        assert record["relation"]["isolated"] is True
        assert result.actions_applied == 6
        assert result.success

    def test_defaults_are_fresh_copies(self) -> None:
        """Test that restored defaults are not shared between records."""
        first: dict[str, Any] = {}
        second: dict[str, Any] = {}
        _run(first, log_repairs=False)
        _run(second, log_repairs=False)

        first["relation"]["refs"].append("x")

        assert second["relation"]["refs"] == []

    def test_composite_target_uses_first_attribute(self) -> None:
        """Test that field-flow restores field."""
        record: dict[str, Any] = {"flow": {"phase": "rest"}}

        applied = IntegrityRepair().execute(record, _action("field-flow", RepairActionType.RESTORE))

        assert applied.result == RepairOutcome.FIXED
        assert "field" in record

    def test_present_attribute_is_partial(self, healthy_record: dict[str, Any]) -> None:
        """Test that restore never overwrites an existing attribute."""
        original = dict(healthy_record["field"])

        applied = IntegrityRepair().execute(healthy_record, _action("field", RepairActionType.RESTORE))

        assert applied.result == RepairOutcome.PARTIAL
        assert healthy_record["field"] == original

    def test_reset_delegates_to_restore(self) -> None:
        """Test that reset installs defaults like restore."""
        record: dict[str, Any] = {}

        applied = IntegrityRepair().execute(record, _action("layer", RepairActionType.RESET))

        assert applied.result == RepairOutcome.FIXED
        assert record["layer"]["depth"] == 1


class TestReconcile:
    """Test reconciling inconsistent attributes."""

    def test_negative_depth_clamped(self, healthy_record: dict[str, Any]) -> None:
        """Test that a negative layer depth is repaired to 1."""
        healthy_record["layer"]["depth"] = -5

        result = _run(healthy_record)

        assert healthy_record["layer"]["depth"] == 1
        assert result.repairs[0].result == RepairOutcome.FIXED
        assert result.integrity_after == 1.0

    def test_physics_rhythmic_flow(self, healthy_record: dict[str, Any]) -> None:
        """Test that rhythmic flow in a physics field becomes steady."""
        healthy_record["flow"]["phase"] = "rhythmic"

        result = _run(healthy_record)

        assert healthy_record["flow"]["phase"] == "steady"
        outcomes = {r.action.target: r.result for r in result.repairs}
        assert outcomes["flow"] == RepairOutcome.FIXED
        # Already resolved by the flow reconcile
        assert outcomes["field-flow"] == RepairOutcome.PARTIAL
        assert result.integrity_after == 1.0

    def test_deep_isolated_connected(self, healthy_record: dict[str, Any]) -> None:
        """Test that deep isolated records are marked connected."""
        healthy_record["layer"]["depth"] = 5
        healthy_record["relation"]["isolated"] = True

        result = _run(healthy_record)

        assert healthy_record["relation"]["isolated"] is False
        assert result.repairs[0].result == RepairOutcome.FIXED

    def test_non_sequence_refs_replaced(self, healthy_record: dict[str, Any]) -> None:
        """Test that non-sequence refs become an empty list."""
        healthy_record["relation"]["refs"] = {"a": 1}

        _run(healthy_record)

        assert healthy_record["relation"]["refs"] == []

    def test_deque_refs_preserved(self, healthy_record: dict[str, Any]) -> None:
        """Test that references held in a deque survive a repair run."""
        healthy_record["relation"]["refs"] = deque(["a", "b"])
        healthy_record["layer"]["depth"] = -5

        result = _run(healthy_record)

        assert list(healthy_record["relation"]["refs"]) == ["a", "b"]
        assert result.integrity_after == 1.0

    def test_relation_fixes_combined(self, healthy_record: dict[str, Any]) -> None:
        """Test that a relation reconcile applies every fix that matches."""
        healthy_record["relation"] = {"refs": "bad", "isolated": True}
        healthy_record["layer"]["depth"] = 5

        result = _run(healthy_record)

        outcomes = {r.action.target: r.result for r in result.repairs}
        assert outcomes["relation"] == RepairOutcome.FIXED
        assert healthy_record["relation"]["refs"] == []
        assert healthy_record["relation"]["isolated"] is False
        assert result.integrity_after == 1.0
        assert detect_integrity(healthy_record).healthy

    def test_falsy_will_tendency(self, healthy_record: dict[str, Any]) -> None:
        """Test that a falsy will tendency becomes rest."""
        healthy_record["will"]["tendency"] = None

        applied = IntegrityRepair().execute(healthy_record, _action("will", RepairActionType.RECONCILE))

        assert applied.result == RepairOutcome.FIXED
        assert healthy_record["will"]["tendency"] == "rest"

    def test_unknown_will_tendency_partial(self, healthy_record: dict[str, Any]) -> None:
        """Test that an unknown but set tendency is left alone."""
        healthy_record["will"]["tendency"] = "dominate"

        result = _run(healthy_record)

        assert result.repairs[0].result == RepairOutcome.PARTIAL
        assert healthy_record["will"]["tendency"] == "dominate"
        assert result.integrity_after == result.integrity_before
        # Already above the threshold
        assert result.success

    def test_incomplete_field_partial(self, healthy_record: dict[str, Any]) -> None:
        """Test that unhandled reconciles are partial."""
        healthy_record["field"] = {"dim": 2}

        result = _run(healthy_record)

        assert result.repairs[0].result == RepairOutcome.PARTIAL


class TestPrune:
    """Test memory pruning."""

    def test_aggressive_strategy(self, overgrown_record: dict[str, Any]) -> None:
        """Test aggressive pruning keeps the newest max entries."""
        newest = overgrown_record["memory"][-1]

        result = _run(overgrown_record, max_memory_entries=50, repair_strategy="aggressive")

        # 50 kept plus the appended repair log
        assert len(overgrown_record["memory"]) <= 51
        assert overgrown_record["memory"][-2] == newest
        assert overgrown_record["memory"][-1]["type"] == "self-repair"
        assert result.integrity_after > result.integrity_before

    def test_conservative_strategy(self, overgrown_record: dict[str, Any]) -> None:
        """Test conservative pruning keeps 80% of the limit."""
        _run(overgrown_record, max_memory_entries=50, repair_strategy="conservative", log_repairs=False)

        assert len(overgrown_record["memory"]) == 40

    def test_adaptive_keeps_repair_logs(self, healthy_record: dict[str, Any]) -> None:
        """Test adaptive pruning preserves prior self-repair entries."""
        memory = [{"event": i} for i in range(100)]
        memory.append({"type": "self-repair", "actions_count": 1})
        memory.extend({"event": i} for i in range(100, 200))
        healthy_record["memory"] = memory

        _run(healthy_record, max_memory_entries=50, repair_strategy="adaptive")

        survivors = [m for m in healthy_record["memory"] if m.get("type") == "self-repair"]
        assert len(survivors) >= 1
        assert {"type": "self-repair", "actions_count": 1} in survivors

    def test_entries_variant_pruned(self, healthy_record: dict[str, Any]) -> None:
        """Test that memory.entries is pruned with the configured strategy."""
        healthy_record["memory"] = {"entries": [{"event": i} for i in range(150)], "kind": "trajectory"}

        _run(healthy_record, max_memory_entries=50, repair_strategy="conservative")

        entries = healthy_record["memory"]["entries"]
        assert len(entries) == 41
        assert entries[-1]["type"] == "self-repair"
        assert healthy_record["memory"]["kind"] == "trajectory"

    def test_prune_in_place(self, overgrown_record: dict[str, Any]) -> None:
        """Test that a list memory keeps its identity."""
        memory = overgrown_record["memory"]

        _run(overgrown_record, max_memory_entries=50, repair_strategy="aggressive")

        assert overgrown_record["memory"] is memory

    def test_tuple_memory_replaced_by_list(self, healthy_record: dict[str, Any]) -> None:
        """Test that immutable sequences are replaced."""
        healthy_record["memory"] = tuple({"event": i} for i in range(80))

        _run(healthy_record, max_memory_entries=50, repair_strategy="aggressive")

        assert isinstance(healthy_record["memory"], list)
        assert len(healthy_record["memory"]) == 51

    def test_deque_memory_pruned_in_place(self, healthy_record: dict[str, Any]) -> None:
        """Test that a deque memory is pruned and logged to without being replaced."""
        memory = deque({"event": i} for i in range(150))
        healthy_record["memory"] = memory

        _run(healthy_record, max_memory_entries=50, repair_strategy="aggressive")

        assert healthy_record["memory"] is memory
        assert len(memory) == 51
        assert memory[0] == {"event": 100}
        assert memory[-1]["type"] == "self-repair"

    def test_prune_within_limit_partial(self, healthy_record: dict[str, Any]) -> None:
        """Test that prune is a no-op within capacity."""
        applied = IntegrityRepair().execute(healthy_record, _action("memory", RepairActionType.PRUNE))

        assert applied.result == RepairOutcome.PARTIAL
        assert len(healthy_record["memory"]) == 2

    def test_prune_other_target_partial(self, healthy_record: dict[str, Any]) -> None:
        """Test that only memory can be pruned."""
        applied = IntegrityRepair().execute(healthy_record, _action("relation", RepairActionType.PRUNE))

        assert applied.result == RepairOutcome.PARTIAL


class TestPruneStrategies:
    """Test the pruning strategy functions directly."""

    def test_registry(self) -> None:
        """Test that every configurable strategy is registered."""
        assert set(PRUNE_STRATEGIES) == {"aggressive", "conservative", "adaptive"}

    def test_aggressive(self) -> None:
        assert prune_aggressive(list(range(10)), 3) == [7, 8, 9]

    def test_conservative(self) -> None:
        assert prune_conservative(list(range(10)), 5) == [6, 7, 8, 9]

    def test_conservative_small_limit(self) -> None:
        """Test that a zero budget keeps nothing."""
        assert prune_conservative(list(range(10)), 1) == []

    def test_adaptive_partitions_budget(self) -> None:
        """Test that adaptive reserves 20% for repair logs."""
        logs = [{"type": "self-repair", "n": i} for i in range(5)]
        others = [{"n": i} for i in range(20)]

        kept = prune_adaptive(others + logs, 10)

        assert kept == others[-8:] + logs[-2:]


# =============================================================================
# Repair Run Tests
# =============================================================================


class TestRepairRun:
    """Test whole repair runs."""

    def test_failed_action_does_not_abort(self) -> None:
        """Test that one failing action leaves the rest of the plan running."""
        record: dict[str, Any] = {}
        def flaky_default(name: str) -> Any:
            if name == "field":
                raise RuntimeError("boom")
            return default_for(name)

        with patch("sigma_integrity.integrity.integrity_repair.default_for", side_effect=flaky_default):
            result = _run(record)

        outcomes = {r.action.target: r.result for r in result.repairs}
        assert outcomes["field"] == RepairOutcome.FAILED
        assert "boom" in result.repairs[0].detail
        assert sum(1 for o in outcomes.values() if o == RepairOutcome.FIXED) == 5
        assert result.actions_applied == 5
        assert "field" not in record
        assert "will" in record

    def test_read_only_record_never_raises(self) -> None:
        """Test that an unwritable record yields failed actions, not errors."""
        record = types.MappingProxyType({})

        result = repair(record, diagnose(detect_integrity(record)))

        assert all(r.result == RepairOutcome.FAILED for r in result.repairs)
        assert result.actions_applied == 0
        assert not result.success

    def test_unknown_action_fails(self, healthy_record: dict[str, Any]) -> None:
        """Test that an unhandled action is reported as failed."""
        action = RepairAction(target="field", action="explode", description="?", priority=9)  # type: ignore[arg-type]

        applied = IntegrityRepair().execute(healthy_record, action)

        assert applied.result == RepairOutcome.FAILED
        assert "Unknown repair action" in applied.detail

    def test_failed_action_logged(self) -> None:
        """Test that failures are logged as warnings."""
        record = types.MappingProxyType({})

        with capture_logs() as logs:
            repair(record, diagnose(detect_integrity(record)))

        failures = [e for e in logs if e["event"] == "Repair action failed"]
        assert len(failures) == 6
        assert all(e["log_level"] == "warning" for e in failures)

    def test_log_appended_after_measurement(self, missing_field_and_will: dict[str, Any]) -> None:
        """Test that the repair log entry is not part of integrity_after."""
        missing_field_and_will["memory"] = [{"event": i} for i in range(40)]

        result = _run(missing_field_and_will, max_memory_entries=50)

        assert result.integrity_after == 1.0
        assert len(missing_field_and_will["memory"]) == 41
        # The appended entry pushes memory over the warning threshold
        assert not detect_integrity(missing_field_and_will, max_memory_entries=50).healthy

    def test_log_entry_contents(self, missing_field_and_will: dict[str, Any]) -> None:
        """Test the structured repair log entry."""
        result = _run(missing_field_and_will, repair_strategy="aggressive")

        entry = missing_field_and_will["memory"][-1]
        assert entry["type"] == "self-repair"
        assert entry["damage_types"] == ["missing", "missing"]
        assert entry["strategy"] == "aggressive"
        assert entry["actions_count"] == 2
        assert entry["integrity_delta"] == result.log.integrity_delta
        assert result.log.integrity_delta == pytest.approx(result.integrity_after - result.integrity_before, abs=1e-3)

    def test_log_repairs_disabled(self, missing_field_and_will: dict[str, Any]) -> None:
        """Test that no entry is written when logging is off."""
        _run(missing_field_and_will, log_repairs=False)

        assert missing_field_and_will["memory"] == []

    def test_no_log_without_memory_container(self, healthy_record: dict[str, Any]) -> None:
        """Test that logs are only appended to an existing container."""
        healthy_record["memory"] = {"trajectory": "up"}
        healthy_record["layer"]["depth"] = -1

        _run(healthy_record)

        assert healthy_record["memory"] == {"trajectory": "up"}

    def test_result_to_dict(self, missing_field_and_will: dict[str, Any]) -> None:
        """Test repair result serialization."""
        data = _run(missing_field_and_will).to_dict()

        assert data["success"] is True
        assert data["actions_applied"] == 2
        assert [r["result"] for r in data["repairs"]] == ["fixed", "fixed"]
        assert data["log"]["damage_types"] == ["missing", "missing"]
        assert data["cascade"] is None
