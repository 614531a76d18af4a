"""
Sigma Attribute Shapes.

Shared vocabulary for the integrity engine:
- Tagged shape classification of raw attribute values
- Closed value sets for flow phases and will tendencies
- Canonical default values used when restoring attributes
- Registry of cross-attribute consistency rules
"""

import copy
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

SigmaRecord = Mapping[str, Any]

SIGMA_ATTRIBUTES: tuple[str, ...] = ("field", "flow", "memory", "layer", "relation", "will")

VALID_FLOW_PHASES: tuple[str, ...] = (
    "rest", "accelerating", "decelerating", "steady", "oscillating", "active",
)

VALID_WILL_TENDENCIES: tuple[str, ...] = (
    "rest", "expand", "expanding", "contract", "contracting",
    "harmonize", "persist", "explore", "optimize", "oscillate",
    "mastery", "maximize", "minimize", "propagate", "seek-harmony",
)

SELF_REPAIR_ENTRY_TYPE = "self-repair"

_DEFAULTS: dict[str, Any] = {
    "field": {"center": 0, "neighbors": [], "dim": 0},
    "flow": {"velocity": 0, "acceleration": 0, "phase": "rest", "momentum": 0},
    "memory": [],
    "layer": {"depth": 1, "structure": "flat", "expandable": True},
    "relation": {"refs": [], "dependencies": [], "entanglements": [], "isolated": True},
    "will": {"tendency": "rest", "strength": 0, "intrinsic": "centered"},
}


class Shape(str, Enum):
    """Structural shape of a raw attribute value."""

    ABSENT = "absent"         # Missing key or None
    MAPPING = "mapping"       # Structured sub-record
    SEQUENCE = "sequence"     # Any ordered sequence other than text or bytes
    TEXT = "text"             # Bare string marker (e.g. a field domain)
    SCALAR = "scalar"         # Anything else


def classify(value: Any) -> Shape:
    """Classify a raw attribute value into its shape."""
    if value is None:
        return Shape.ABSENT
    if isinstance(value, Mapping):
        return Shape.MAPPING
    if isinstance(value, str):
        return Shape.TEXT
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return Shape.SEQUENCE
    return Shape.SCALAR


def attribute(record: Any, name: str) -> Any:
    """Read an attribute from a record, treating non-mappings as empty."""
    if isinstance(record, Mapping):
        return record.get(name)
    return None


def member(value: Any, key: str) -> Any:
    """Read a member of a sub-record; members of non-mappings are absent."""
    if isinstance(value, Mapping):
        return value.get(key)
    return None


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_sequence(value: Any) -> bool:
    return classify(value) is Shape.SEQUENCE


def is_set(value: Any) -> bool:
    """Whether a rule operand is set: empty text, zero and False are not."""
    if value is None or value is False:
        return False
    if isinstance(value, (str, int, float)):
        return bool(value)
    return True


def memory_entries(memory: Any) -> Sequence[Any] | None:
    """Return the entry sequence of a memory attribute, if it has one."""
    shape = classify(memory)
    if shape is Shape.SEQUENCE:
        return memory
    if shape is Shape.MAPPING and is_sequence(memory.get("entries")):
        return memory["entries"]
    return None


def is_self_repair_entry(entry: Any) -> bool:
    return member(entry, "type") == SELF_REPAIR_ENTRY_TYPE


def default_for(name: str) -> Any | None:
    """Fresh copy of the canonical default for an attribute, or None."""
    if name not in _DEFAULTS:
        return None
    return copy.deepcopy(_DEFAULTS[name])


def field_domain(field_value: Any) -> str:
    """Domain marker of a field: the string itself or its domain/base member."""
    if isinstance(field_value, str):
        return field_value
    return member(field_value, "domain") or member(field_value, "base") or ""


# =============================================================================
# Cross-attribute rules
# =============================================================================


@dataclass(frozen=True)
class CrossAttributeRule:
    """A consistency rule between two attributes."""

    name: str
    attributes: tuple[str, str]
    violated: Callable[[SigmaRecord], bool]
    score: float
    detail: Callable[[SigmaRecord], str]
    ok_detail: str

    def applies_to(self, record: Any) -> bool:
        """Rules only run when every attribute they relate is set."""
        return all(is_set(attribute(record, name)) for name in self.attributes)


def physics_with_rhythmic_flow(record: SigmaRecord) -> bool:
    phase = member(record.get("flow"), "phase") or ""
    return field_domain(record.get("field")) == "physics" and phase == "rhythmic"


def deep_but_isolated(record: SigmaRecord) -> bool:
    depth = member(record.get("layer"), "depth") or 0
    isolated = member(record.get("relation"), "isolated")
    return is_number(depth) and depth >= 3 and isolated is True


CROSS_ATTRIBUTE_RULES: list[CrossAttributeRule] = [
    CrossAttributeRule(
        name="field-flow",
        attributes=("field", "flow"),
        violated=physics_with_rhythmic_flow,
        score=0.5,
        detail=lambda record: "Rhythmic flow in a physics field is implausible",
        ok_detail="field-flow consistent",
    ),
    CrossAttributeRule(
        name="layer-relation",
        attributes=("layer", "relation"),
        violated=deep_but_isolated,
        score=0.6,
        detail=lambda record: (
            f"Deep layer (depth={member(record.get('layer'), 'depth')}) is isolated"
        ),
        ok_detail="layer-relation consistent",
    ),
]
