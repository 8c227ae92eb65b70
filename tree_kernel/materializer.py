"""
Position Tree Kernel — Tree Materializer v1.0

Recursive partition of a flat position collection into a labeled tree.

Algorithm (per level):
  1. Past the last level: remaining positions become leaves, input order.
  2. Otherwise split positions by the resolved display text of the level's
     field. Positions without a value become leaves at this level.
  3. Recurse into every distinct value, wrapping the result in a
     FieldGroup.
  4. Groups sorted by value (locale-style key); leaves appended after
     all groups, input order preserved.
  5. Root only: if no position has a value for the first level, every
     position goes into one synthetic "out of structure" group.
  6. Root only: an empty root over a non-empty input falls back to a
     flat list of leaves.
  7. Zero levels: flat view, no grouping.

Display values are resolved once per position and level key, so each
position is visited once per level it passes through.
"""

from __future__ import annotations

import logging
import unicodedata
from typing import Dict, List, Optional, Sequence, Tuple

from .codec import definitions_by_key
from .domain_types import (
    DEFAULT_CONSTANTS,
    AllowedValue,
    CustomFieldDefinition,
    FieldGroup,
    Position,
    PositionLeaf,
    RootNode,
    TreeConstants,
    TreeDefinition,
    TreeLevel,
    TreeNode,
    TreeStructure,
)
from .resolver import resolve_stored

logger = logging.getLogger(__name__)


# Resolved (text, allowed value) per level key for one position.
_Resolved = Dict[str, Tuple[str, Optional[AllowedValue]]]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def locale_sort_key(value: str) -> Tuple[str, str]:
    """
    Case- and accent-insensitive ordering key, raw string as tie-breaker.
    Independent of the process locale.
    """
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold(), value


def normalize_levels(
    levels: Sequence[TreeLevel],
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
) -> Tuple[TreeLevel, ...]:
    """
    Sort levels by order and renumber them densely from 1.

    With definitions, levels whose key has no definition are dropped.
    A key repeated at a later level is dropped as well.
    """
    known = definitions_by_key(definitions) if definitions is not None else None
    seen: set[str] = set()
    result: List[TreeLevel] = []
    for level in sorted(levels, key=lambda lvl: lvl.order):
        key = level.custom_field_key
        if not key or key in seen:
            continue
        if known is not None and key not in known:
            logger.info("Skipping tree level with unknown field key %r", key)
            continue
        seen.add(key)
        result.append(TreeLevel(order=len(result) + 1, custom_field_key=key))
    return tuple(result)


def _leaf(position: Position) -> PositionLeaf:
    return PositionLeaf(
        position_id=str(position.id),
        position_name=position.name,
        employee_full_name=position.full_name,
    )


def _resolve_position(
    position: Position,
    keys: Sequence[str],
    by_key: Optional[Dict[str, CustomFieldDefinition]],
    constants: TreeConstants,
) -> _Resolved:
    resolved: _Resolved = {}
    for key in keys:
        raw = position.custom_fields.get(key)
        if raw is None:
            continue
        if by_key is None:
            text = str(raw).strip()
            if text:
                resolved[key] = (text, None)
            continue
        allowed = resolve_stored(by_key.get(key), raw, constants)
        if allowed is not None and allowed.value.strip():
            resolved[key] = (allowed.value.strip(), allowed)
    return resolved


# ---------------------------------------------------------------------------
# Partition
# ---------------------------------------------------------------------------

def _partition(
    candidates: List[Tuple[Position, _Resolved]],
    levels: Sequence[TreeLevel],
    level_index: int,
) -> List[TreeNode]:
    if level_index >= len(levels):
        return [_leaf(pos) for pos, _ in candidates]

    level = levels[level_index]
    key = level.custom_field_key

    groups: Dict[str, List[Tuple[Position, _Resolved]]] = {}
    group_values: Dict[str, Optional[AllowedValue]] = {}
    without_value: List[Position] = []

    for pos, resolved in candidates:
        hit = resolved.get(key)
        if hit is None:
            without_value.append(pos)
            continue
        text, allowed = hit
        groups.setdefault(text, []).append((pos, resolved))
        if group_values.get(text) is None:
            group_values[text] = allowed

    nodes: List[TreeNode] = []
    for text in sorted(groups, key=locale_sort_key):
        allowed = group_values.get(text)
        nodes.append(FieldGroup(
            level_order=level.order,
            field_key=key,
            field_value=text,
            children=tuple(_partition(groups[text], levels, level_index + 1)),
            linked_fields=allowed.linked_fields if allowed is not None else (),
        ))
    nodes.extend(_leaf(pos) for pos in without_value)
    return nodes


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def materialize(
    positions: Sequence[Position],
    levels: Sequence[TreeLevel],
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> RootNode:
    """
    Build the tree for ``positions`` grouped by ``levels``.

    Without definitions the stored text itself is the display value.
    With definitions, stored values resolve to their allowed value text
    (unresolved values count as "no value") and dangling levels are
    skipped. Pure: identical inputs give deep-equal trees.
    """
    norm_levels = normalize_levels(levels, definitions)

    if not norm_levels:
        return RootNode(children=tuple(_leaf(p) for p in positions))

    by_key = definitions_by_key(definitions) if definitions is not None else None
    keys = [lvl.custom_field_key for lvl in norm_levels]
    candidates = [
        (pos, _resolve_position(pos, keys, by_key, constants))
        for pos in positions
    ]

    children = _partition(candidates, norm_levels, 0)

    has_group = any(isinstance(node, FieldGroup) for node in children)
    if not has_group and positions:
        logger.info(
            "No position has a value for level %r; %d position(s) out of structure",
            keys[0], len(positions),
        )
        children = [FieldGroup(
            level_order=None,
            field_key=None,
            field_value=constants.out_of_structure_label,
            children=tuple(_leaf(p) for p in positions),
        )]

    if not children and positions:
        return RootNode(children=tuple(_leaf(p) for p in positions))

    return RootNode(children=tuple(children))


def build_tree_structure(
    positions: Sequence[Position],
    tree: Optional[TreeDefinition],
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> TreeStructure:
    """
    Local equivalent of the server's tree-structure computation.
    ``tree=None`` yields the flat view.
    """
    if tree is None:
        return TreeStructure(
            tree_id="",
            name=constants.flat_tree_name,
            levels=(),
            root=materialize(positions, (), definitions, constants),
        )
    return TreeStructure(
        tree_id=str(tree.id),
        name=tree.name,
        levels=normalize_levels(tree.levels, definitions),
        root=materialize(positions, tree.levels, definitions, constants),
    )


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------

def iter_leaves(node: TreeNode):
    """Yield every PositionLeaf under ``node`` in display order."""
    if isinstance(node, PositionLeaf):
        yield node
        return
    for child in node.children:
        yield from iter_leaves(child)


def find_position_path(
    root: TreeNode, position_id: str,
) -> Optional[List[FieldGroup]]:
    """
    Groups enclosing the leaf for ``position_id``, outermost first.
    None when the position is not in the tree.
    """
    target = str(position_id)

    def _walk(node: TreeNode, trail: List[FieldGroup]) -> Optional[List[FieldGroup]]:
        if isinstance(node, PositionLeaf):
            return list(trail) if node.position_id == target else None
        if isinstance(node, FieldGroup):
            trail = trail + [node]
        for child in node.children:
            found = _walk(child, trail)
            if found is not None:
                return found
        return None

    return _walk(root, [])


def path_fields(groups: Sequence[FieldGroup]) -> Dict[str, str]:
    """
    Custom-field mapping implied by a path of groups, e.g. for a
    position created under the last group. The out-of-structure group
    contributes nothing.
    """
    fields: Dict[str, str] = {}
    for group in groups:
        if group.field_key:
            fields[group.field_key] = group.field_value
    return fields
