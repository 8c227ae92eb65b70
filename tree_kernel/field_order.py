"""
Position Tree Kernel — Custom Field Display Order

Order in which a position's custom fields are listed for viewing or
editing:
  1. keys used by the active tree, in level order
  2. remaining keys in the saved custom_fields_order
  3. everything else, in mapping order
"""

from __future__ import annotations

from typing import List, Mapping, Optional, Sequence, Tuple

from .domain_types import TreeLevel


def order_custom_fields(
    fields_map: Mapping[str, str],
    saved_order: Optional[Sequence[str]] = None,
    levels: Optional[Sequence[TreeLevel]] = None,
) -> List[Tuple[str, str]]:
    placed: set[str] = set()
    result: List[Tuple[str, str]] = []

    def _place(key: str) -> None:
        if key in fields_map and key not in placed:
            placed.add(key)
            result.append((key, fields_map[key]))

    for level in sorted(levels or (), key=lambda lvl: lvl.order):
        _place(level.custom_field_key)
    for key in saved_order or ():
        _place(key)
    for key in fields_map:
        _place(key)
    return result
