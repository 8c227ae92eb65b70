"""
Position Tree Kernel — Canonical Tree Hashing v1.0

Deterministic canonical serialization + SHA-256 of a computed tree.

Rules:
  - Node order is kept exactly as materialised (order is meaningful)
  - Fixed key order per node type
  - UTF-8 JSON, no whitespace, ASCII-escaped
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict

from .domain_types import FieldGroup, PositionLeaf, TreeNode


def canonical_serialize(node: TreeNode) -> bytes:
    obj = _build_canonical(node)
    return json.dumps(obj, ensure_ascii=True, separators=(",", ":"), sort_keys=False).encode("utf-8")


def canonical_hash(node: TreeNode) -> str:
    """SHA-256 of canonical serialization. Lowercase hex string."""
    return hashlib.sha256(canonical_serialize(node)).hexdigest()


def _build_canonical(node: TreeNode) -> Dict[str, Any]:
    if isinstance(node, PositionLeaf):
        return {
            "t": "p",
            "id": node.position_id,
            "name": node.position_name,
            "employee": node.employee_full_name,
        }
    if isinstance(node, FieldGroup):
        return {
            "t": "g",
            "order": node.level_order,
            "key": node.field_key,
            "value": node.field_value,
            "linked": [
                [b.field_key, [[v.value_id, v.text] for v in b.values]]
                for b in node.linked_fields
            ],
            "children": [_build_canonical(c) for c in node.children],
        }
    return {
        "t": "r",
        "children": [_build_canonical(c) for c in node.children],
    }
