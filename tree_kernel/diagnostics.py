"""
Position Tree Kernel — Diagnostics v1.0

Read-only summary of a materialised tree and the inputs behind it.
Reports the silent degradations (dangling levels, unresolved values,
out-of-structure positions) that the kernel never raises.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .codec import definitions_by_key
from .domain_types import (
    DEFAULT_CONSTANTS,
    CustomFieldDefinition,
    FieldGroup,
    Position,
    RootNode,
    TreeConstants,
    TreeLevel,
    TreeNode,
)
from .labels import count_positions, count_subgroups
from .resolver import resolve_stored


def tree_depth(node: TreeNode) -> int:
    """Number of FieldGroup levels on the deepest path."""
    best = 0
    for child in node.children:
        d = tree_depth(child)
        if isinstance(child, FieldGroup):
            d += 1
        best = max(best, d)
    return best


def compute_diagnostics(
    root: RootNode,
    positions: Sequence[Position],
    levels: Sequence[TreeLevel],
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> dict:
    """Return a diagnostic dict summarising the computed tree."""
    by_key = definitions_by_key(definitions) if definitions is not None else None

    dangling: List[str] = []
    if by_key is not None:
        dangling = sorted({
            lvl.custom_field_key for lvl in levels
            if lvl.custom_field_key not in by_key
        })

    unresolved = 0
    if by_key is not None:
        for pos in positions:
            for lvl in levels:
                definition = by_key.get(lvl.custom_field_key)
                raw = pos.custom_fields.get(lvl.custom_field_key)
                if definition is None or raw is None or not str(raw).strip():
                    continue
                if resolve_stored(definition, raw, constants) is None:
                    unresolved += 1

    out_of_structure = sum(
        count_positions(child)
        for child in root.children
        if isinstance(child, FieldGroup) and child.field_key is None
    )

    warnings: List[str] = []
    if dangling:
        warnings.append(f"{len(dangling)} level(s) reference unknown fields: {', '.join(dangling)}")
    if unresolved:
        warnings.append(f"{unresolved} stored value(s) did not resolve to an allowed value")
    if out_of_structure:
        warnings.append(f"{out_of_structure} position(s) out of structure")

    return {
        "position_count": count_positions(root),
        "group_count": count_subgroups(root),
        "depth": tree_depth(root),
        "out_of_structure_count": out_of_structure,
        "dangling_level_keys": dangling,
        "unresolved_value_count": unresolved,
        "warnings": warnings,
    }
