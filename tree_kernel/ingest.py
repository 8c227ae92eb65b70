"""
Position Tree Kernel — Ingestion Boundary v1.0

Decodes API payloads (plain dicts) into the canonical domain types.
Every shape variant is handled here, once, so the resolver,
materializer and evaluator never branch on representation.

Accepted shapes:
  allowed_values     list of objects {value_id, value, linked_custom_fields}
                     or legacy plain strings
  custom_fields      mapping {key: value}, structured list of objects
                     {custom_field_id, custom_field_key, custom_field_value,
                     custom_field_value_id, linked_custom_fields}, or a list
                     of field ids (strings, carry no value)
  tree nodes         type "root" | "field_value" | "custom_field_value" |
                     "position", legacy field_key / field_value attributes

Anything else raises IngestError (a ValueError) naming the payload path.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from . import constants as C
from .codec import to_ui_map
from .domain_types import (
    AllowedValue,
    CustomFieldDefinition,
    FieldGroup,
    LinkedFieldBinding,
    LinkedValue,
    Position,
    PositionLeaf,
    RootNode,
    StructuredEntry,
    TreeDefinition,
    TreeLevel,
    TreeNode,
    TreeStructure,
)

logger = logging.getLogger(__name__)


class IngestError(ValueError):
    """Raised when a payload is not one of the accepted shapes."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"[INGEST:{path}] {detail}")


# ── Scalars ───────────────────────────────────────────────────

def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


def _require_mapping(obj: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(obj, Mapping):
        raise IngestError(path, f"expected an object, got {type(obj).__name__}")
    return obj


def _require_list(obj: Any, path: str) -> Sequence[Any]:
    if obj is None:
        return []
    if not isinstance(obj, (list, tuple)):
        raise IngestError(path, f"expected a list, got {type(obj).__name__}")
    return obj


# ── Field definitions ─────────────────────────────────────────

def decode_linked_fields(obj: Any, path: str = "linked_custom_fields") -> Tuple[LinkedFieldBinding, ...]:
    bindings: List[LinkedFieldBinding] = []
    for i, item in enumerate(_require_list(obj, path)):
        item = _require_mapping(item, f"{path}[{i}]")
        values = []
        values_path = f"{path}[{i}].linked_custom_field_values"
        for j, lv in enumerate(_require_list(item.get("linked_custom_field_values"), values_path)):
            lv = _require_mapping(lv, f"{values_path}[{j}]")
            values.append(LinkedValue(
                value_id=_text(lv.get("linked_custom_field_value_id")),
                text=_text(lv.get("linked_custom_field_value")),
            ))
        bindings.append(LinkedFieldBinding(
            field_id=_text(item.get("linked_custom_field_id")),
            field_key=_text(item.get("linked_custom_field_key")),
            field_label=_text(item.get("linked_custom_field_label")),
            values=tuple(values),
        ))
    return tuple(bindings)


def decode_allowed_value(obj: Any, path: str = "allowed_value") -> Optional[AllowedValue]:
    """Object or legacy plain string. Blank values are skipped (None)."""
    if obj is None:
        return None
    if isinstance(obj, (str, int, float)):
        text = _text(obj)
        return AllowedValue(value=text) if text else None
    obj = _require_mapping(obj, path)
    text = _text(obj.get("value"))
    if not text:
        return None
    return AllowedValue(
        value=text,
        value_id=_text(obj.get("value_id")),
        linked_fields=decode_linked_fields(
            obj.get("linked_custom_fields"), f"{path}.linked_custom_fields",
        ),
    )


def decode_definition(obj: Any, path: str = "custom_field") -> CustomFieldDefinition:
    obj = _require_mapping(obj, path)
    key = _text(obj.get("key"))
    if not key:
        raise IngestError(path, "custom field without key")
    allowed: List[AllowedValue] = []
    for i, av in enumerate(_require_list(obj.get("allowed_values"), f"{path}.allowed_values")):
        decoded = decode_allowed_value(av, f"{path}.allowed_values[{i}]")
        if decoded is not None:
            allowed.append(decoded)
    return CustomFieldDefinition(
        id=_text(obj.get("id")),
        key=key,
        label=_text(obj.get("label")),
        allowed_values=tuple(allowed),
    )


def decode_definitions(obj: Any) -> List[CustomFieldDefinition]:
    return [
        decode_definition(item, f"custom_fields[{i}]")
        for i, item in enumerate(_require_list(obj, "custom_fields"))
    ]


# ── Positions ─────────────────────────────────────────────────

def decode_structured_entry(obj: Any, path: str = "entry") -> StructuredEntry:
    obj = _require_mapping(obj, path)
    return StructuredEntry(
        field_id=_text(obj.get("custom_field_id")),
        field_key=_text(obj.get("custom_field_key")),
        field_label=_text(obj.get("custom_field_label")),
        value_id=_text(obj.get("custom_field_value_id")),
        value_text=_text(obj.get("custom_field_value")),
        linked_fields=decode_linked_fields(
            obj.get("linked_custom_fields"), f"{path}.linked_custom_fields",
        ),
    )


def _fill_from_value_ids(
    fields: Dict[str, str],
    order: List[str],
    value_ids: Sequence[str],
    definitions: Sequence[CustomFieldDefinition],
) -> None:
    wanted = set(value_ids)
    for definition in definitions:
        if definition.key in fields:
            continue
        for av in definition.allowed_values:
            if av.value_id and av.value_id in wanted:
                fields[definition.key] = av.value_id
                order.append(definition.key)
                break


def decode_position(
    obj: Any,
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
    path: str = "position",
) -> Position:
    """
    Normalise one position. The custom-field mapping is always filled:
    from the mapping itself, from a structured list, and (with
    definitions) from selected value ids.
    """
    obj = _require_mapping(obj, path)
    pid = _text(obj.get("id"))
    if not pid:
        raise IngestError(path, "position without id")

    raw_fields = obj.get("custom_fields")
    fields: Dict[str, str] = {}
    order: List[str] = []
    entries: Tuple[StructuredEntry, ...] = ()

    if raw_fields is None:
        pass
    elif isinstance(raw_fields, Mapping):
        for key, value in raw_fields.items():
            if value is None:
                continue
            fields[str(key)] = str(value)
            order.append(str(key))
    elif isinstance(raw_fields, (list, tuple)):
        decoded: List[StructuredEntry] = []
        for i, item in enumerate(raw_fields):
            if isinstance(item, Mapping):
                decoded.append(decode_structured_entry(item, f"{path}.custom_fields[{i}]"))
            elif isinstance(item, str):
                # Field ids only; they carry no value.
                continue
            else:
                raise IngestError(
                    f"{path}.custom_fields[{i}]",
                    f"unsupported entry type {type(item).__name__}",
                )
        entries = tuple(decoded)
        fields, order = to_ui_map(entries, definitions)
    else:
        raise IngestError(
            f"{path}.custom_fields",
            f"expected mapping or list, got {type(raw_fields).__name__}",
        )

    value_ids = tuple(
        _text(v) for v in _require_list(obj.get("custom_fields_values_ids"), f"{path}.custom_fields_values_ids")
        if _text(v)
    )
    if value_ids and definitions:
        _fill_from_value_ids(fields, order, value_ids, definitions)

    explicit_order = obj.get("custom_fields_order")
    if explicit_order:
        order_tuple = tuple(_text(k) for k in _require_list(explicit_order, f"{path}.custom_fields_order") if _text(k))
    else:
        order_tuple = tuple(order)

    return Position(
        id=pid,
        name=_text(obj.get("name")),
        description=_optional_text(obj.get("description")),
        employee_full_name=_optional_text(obj.get("employee_full_name")),
        employee_first_name=_optional_text(obj.get("employee_first_name")),
        employee_last_name=_optional_text(obj.get("employee_last_name")),
        employee_middle_name=_optional_text(obj.get("employee_middle_name")),
        employee_external_id=_optional_text(obj.get("employee_external_id")),
        employee_profile_url=_optional_text(obj.get("employee_profile_url")),
        custom_fields=fields,
        custom_fields_order=order_tuple,
        field_entries=entries,
        value_ids=value_ids,
    )


def decode_positions(
    obj: Any,
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
) -> List[Position]:
    return [
        decode_position(item, definitions, f"positions[{i}]")
        for i, item in enumerate(_require_list(obj, "positions"))
    ]


# ── Tree definitions ──────────────────────────────────────────

def decode_levels(obj: Any, path: str = "levels") -> Tuple[TreeLevel, ...]:
    levels: List[TreeLevel] = []
    for i, item in enumerate(_require_list(obj, path)):
        item = _require_mapping(item, f"{path}[{i}]")
        key = _text(item.get("custom_field_key"))
        if not key:
            logger.debug("Skipping level %s[%d] without field key", path, i)
            continue
        try:
            order = int(item.get("order", i + 1))
        except (TypeError, ValueError) as exc:
            raise IngestError(f"{path}[{i}].order", f"not an integer: {exc}") from exc
        levels.append(TreeLevel(order=order, custom_field_key=key))
    return tuple(levels)


def decode_tree_definition(obj: Any, path: str = "tree") -> TreeDefinition:
    obj = _require_mapping(obj, path)
    return TreeDefinition(
        id=_text(obj.get("id")),
        name=_text(obj.get("name")),
        levels=decode_levels(obj.get("levels"), f"{path}.levels"),
        description=_optional_text(obj.get("description")),
        is_default=bool(obj.get("is_default", False)),
    )


def decode_tree_definitions(obj: Any) -> List[TreeDefinition]:
    return [
        decode_tree_definition(item, f"trees[{i}]")
        for i, item in enumerate(_require_list(obj, "trees"))
    ]


# ── Server-built tree structures ──────────────────────────────

def decode_tree_node(obj: Any, path: str = "root") -> TreeNode:
    obj = _require_mapping(obj, path)
    node_type = _text(obj.get("type"))
    children_raw = _require_list(obj.get("children"), f"{path}.children")

    if node_type == C.NODE_TYPE_POSITION:
        return PositionLeaf(
            position_id=_text(obj.get("position_id")),
            position_name=_text(obj.get("position_name")),
            employee_full_name=_optional_text(obj.get("employee_full_name")),
        )

    children = tuple(
        decode_tree_node(child, f"{path}.children[{i}]")
        for i, child in enumerate(children_raw)
    )

    if node_type == C.NODE_TYPE_ROOT:
        return RootNode(children=children)

    if node_type in (C.NODE_TYPE_FIELD_VALUE, C.NODE_TYPE_FIELD_VALUE_LEGACY):
        key = obj.get("custom_field_key") or obj.get("field_key")
        value = obj.get("custom_field_value") or obj.get("field_value")
        level_order = obj.get("level_order")
        return FieldGroup(
            level_order=int(level_order) if level_order is not None else None,
            field_key=_optional_text(key),
            field_value=_text(value),
            children=children,
            linked_fields=decode_linked_fields(
                obj.get("linked_custom_fields"), f"{path}.linked_custom_fields",
            ),
        )

    raise IngestError(f"{path}.type", f"unknown node type {node_type!r}")


def decode_tree_structure(obj: Any) -> TreeStructure:
    obj = _require_mapping(obj, "structure")
    root = decode_tree_node(obj.get("root"), "structure.root")
    if not isinstance(root, RootNode):
        raise IngestError("structure.root", "top-level node must be of type 'root'")
    return TreeStructure(
        tree_id=_text(obj.get("tree_id")),
        name=_text(obj.get("name")),
        levels=decode_levels(obj.get("levels"), "structure.levels"),
        root=root,
    )
