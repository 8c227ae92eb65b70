"""
Position Tree Kernel — Core Domain Types v1.0

Pure data. No resolution, grouping or search logic.
Every type is an immutable snapshot handed in by the caller.

────────────────────────────────────────────────
DOMAIN GLOSSARY
────────────────────────────────────────────────

Position:
    A job/role record with a name and optional employee assignment.

Custom field:
    A user-defined enum-like attribute ("allowed values") attachable
    to positions.

Linked field binding:
    "Selecting value X of field A implies value Y of field B."

Tree definition:
    Ordered list of custom-field keys defining grouping depth/order.

Field group:
    A tree node representing one distinct value at one grouping level.

Out-of-structure group:
    Catch-all bucket for positions lacking any grouping-level value.

────────────────────────────────────────────────
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from . import constants as C


# ── Custom Field Definitions ──────────────────────────────────

@dataclass(frozen=True)
class LinkedValue:
    """One value of a linked field implied by an allowed value."""

    value_id: str = ""
    text: str = ""

    def to_dict(self) -> dict:
        return {
            "linked_custom_field_value_id": self.value_id,
            "linked_custom_field_value": self.text,
        }


@dataclass(frozen=True)
class LinkedFieldBinding:
    """
    Binding from an allowed value to values of another field.

    References a *field*, never a position: every position selecting
    the owning allowed value shares the same binding.
    """

    field_id: str = ""
    field_key: str = ""
    field_label: str = ""
    values: Tuple[LinkedValue, ...] = ()

    def to_dict(self) -> dict:
        return {
            "linked_custom_field_id": self.field_id,
            "linked_custom_field_key": self.field_key,
            "linked_custom_field_label": self.field_label,
            "linked_custom_field_values": [v.to_dict() for v in self.values],
        }


@dataclass(frozen=True)
class AllowedValue:
    """A single allowed value of a custom field, with optional links."""

    value: str
    value_id: str = ""
    linked_fields: Tuple[LinkedFieldBinding, ...] = ()

    def to_dict(self) -> dict:
        return {
            "value_id": self.value_id,
            "value": self.value,
            "linked_custom_fields": [b.to_dict() for b in self.linked_fields],
        }


@dataclass(frozen=True)
class CustomFieldDefinition:
    """User-defined field. ``key`` is unique and immutable once created."""

    id: str
    key: str
    label: str = ""
    allowed_values: Tuple[AllowedValue, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "key": self.key,
            "label": self.label,
            "allowed_values": [av.to_dict() for av in self.allowed_values],
        }


# ── Positions ─────────────────────────────────────────────────

@dataclass(frozen=True)
class StructuredEntry:
    """
    One custom-field value in the API's structured list form.

    value_id is empty when the stored value did not resolve; value_text
    then keeps the literal so it survives a UI round trip.
    """

    field_id: str
    field_key: str = ""
    field_label: str = ""
    value_id: str = ""
    value_text: str = ""
    linked_fields: Tuple[LinkedFieldBinding, ...] = ()


@dataclass(frozen=True)
class Position:
    """
    A position snapshot as consumed by the kernel.

    custom_fields: field key -> stored value (literal text, value id or
    legacy composite string). Always the canonical representation after
    ingestion; field_entries / value_ids keep whatever alternate forms
    the API delivered, for search.
    """

    id: str
    name: str
    description: Optional[str] = None
    employee_full_name: Optional[str] = None
    employee_first_name: Optional[str] = None
    employee_last_name: Optional[str] = None
    employee_middle_name: Optional[str] = None
    employee_external_id: Optional[str] = None
    employee_profile_url: Optional[str] = None
    custom_fields: Dict[str, str] = field(default_factory=dict)
    custom_fields_order: Tuple[str, ...] = ()
    field_entries: Tuple[StructuredEntry, ...] = ()
    value_ids: Tuple[str, ...] = ()

    @property
    def full_name(self) -> Optional[str]:
        """Employee full name, assembled from parts when not given whole."""
        if self.employee_full_name and self.employee_full_name.strip():
            return self.employee_full_name.strip()
        parts = [
            p.strip()
            for p in (
                self.employee_last_name,
                self.employee_first_name,
                self.employee_middle_name,
            )
            if p and p.strip()
        ]
        return " ".join(parts) if parts else None


# ── Tree Definitions ──────────────────────────────────────────

@dataclass(frozen=True)
class TreeLevel:
    order: int
    custom_field_key: str

    def to_dict(self) -> dict:
        return {"order": self.order, "custom_field_key": self.custom_field_key}


@dataclass(frozen=True)
class TreeDefinition:
    """Named grouping order. Level orders are dense after normalisation."""

    id: str
    name: str
    levels: Tuple[TreeLevel, ...] = ()
    description: Optional[str] = None
    is_default: bool = False


# ── Tree Nodes ────────────────────────────────────────────────

@dataclass(frozen=True)
class PositionLeaf:
    """A position placed in the tree. Always childless."""

    position_id: str
    position_name: str
    employee_full_name: Optional[str] = None

    @property
    def children(self) -> Tuple["TreeNode", ...]:
        return ()

    def to_dict(self) -> dict:
        return {
            "type": C.NODE_TYPE_POSITION,
            "position_id": self.position_id,
            "position_name": self.position_name,
            "employee_full_name": self.employee_full_name,
            "children": [],
        }


@dataclass(frozen=True)
class FieldGroup:
    """
    Grouping node for one distinct value at one level.

    level_order / field_key are None for the synthetic out-of-structure
    group.
    """

    level_order: Optional[int]
    field_key: Optional[str]
    field_value: str
    children: Tuple["TreeNode", ...] = ()
    linked_fields: Tuple[LinkedFieldBinding, ...] = ()

    def to_dict(self) -> dict:
        d: Dict[str, Any] = {
            "type": C.NODE_TYPE_FIELD_VALUE,
            "level_order": self.level_order,
            "custom_field_key": self.field_key,
            "custom_field_value": self.field_value,
            "children": [c.to_dict() for c in self.children],
        }
        if self.linked_fields:
            d["linked_custom_fields"] = [b.to_dict() for b in self.linked_fields]
        return d


@dataclass(frozen=True)
class RootNode:
    """The single synthetic root of every tree."""

    children: Tuple["TreeNode", ...] = ()

    def to_dict(self) -> dict:
        return {
            "type": C.NODE_TYPE_ROOT,
            "children": [c.to_dict() for c in self.children],
        }


TreeNode = Union[RootNode, FieldGroup, PositionLeaf]


@dataclass(frozen=True)
class TreeStructure:
    """Envelope returned for a tree definition (or the flat view)."""

    tree_id: str
    name: str
    levels: Tuple[TreeLevel, ...]
    root: RootNode

    def to_dict(self) -> dict:
        return {
            "tree_id": self.tree_id,
            "name": self.name,
            "levels": [lvl.to_dict() for lvl in self.levels],
            "root": self.root.to_dict(),
        }


# ── Injected Constants ────────────────────────────────────────

@dataclass(frozen=True)
class TreeConstants:
    """
    Labels and thresholds used by a computation.
    Defaults come from constants.py; callers override per call.
    """

    out_of_structure_label: str = C.OUT_OF_STRUCTURE_LABEL
    untitled_label: str = C.UNTITLED_LABEL
    flat_tree_name: str = C.FLAT_TREE_NAME
    fuzzy_min_length: int = C.FUZZY_MIN_LENGTH
    fuzzy_min_ratio: float = C.FUZZY_MIN_RATIO
    linked_fuzzy_min_ratio: float = C.LINKED_FUZZY_MIN_RATIO
    composite_separator: str = C.COMPOSITE_SEPARATOR
    label_separator: str = C.LABEL_SEPARATOR


DEFAULT_CONSTANTS = TreeConstants()
