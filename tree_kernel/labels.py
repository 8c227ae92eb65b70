"""
Position Tree Kernel — Label Composer v1.0

User-facing labels and badge counts for tree nodes.

combined_label:
    base text, then every non-empty linked value text (trimmed) in the
    order its binding appears in the source record, joined by " - ".
    Repeats are preserved. An empty base yields the untitled label.

count_positions / count_subgroups:
    Pure recursive folds; trees are rebuilt wholesale on input change,
    so nothing is memoised.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Union

from .domain_types import (
    DEFAULT_CONSTANTS,
    CustomFieldDefinition,
    FieldGroup,
    LinkedFieldBinding,
    PositionLeaf,
    StructuredEntry,
    TreeConstants,
    TreeNode,
)
from .resolver import resolve_stored


def linked_texts(bindings: Sequence[LinkedFieldBinding]) -> List[str]:
    """Non-empty linked value texts, binding order, repeats kept."""
    texts: List[str] = []
    for binding in bindings:
        for lv in binding.values:
            text = lv.text.strip()
            if text:
                texts.append(text)
    return texts


def combined_value_label(
    base: Optional[str],
    bindings: Sequence[LinkedFieldBinding] = (),
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> str:
    base_text = (base or "").strip()
    extra = linked_texts(bindings)
    if not base_text:
        if not extra:
            return constants.untitled_label
        base_text = constants.untitled_label
    return constants.label_separator.join([base_text] + extra)


def combined_label(
    node: Union[TreeNode, StructuredEntry],
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> str:
    """
    Combined label for a group, a position leaf or a structured entry.

    Groups use their resolved value text, entries their stored text,
    leaves the position name. The root has no label of its own.
    """
    if isinstance(node, FieldGroup):
        return combined_value_label(node.field_value, node.linked_fields, constants)
    if isinstance(node, StructuredEntry):
        return combined_value_label(node.value_text, node.linked_fields, constants)
    if isinstance(node, PositionLeaf):
        return combined_value_label(node.position_name, (), constants)
    return ""


def field_value_label(
    definition: Optional[CustomFieldDefinition],
    raw: object,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> str:
    """
    Label for a stored value of ``definition``: the resolved allowed
    value plus its linked values, or the raw text when unresolved.
    """
    allowed = resolve_stored(definition, raw, constants)
    if allowed is None:
        text = "" if raw is None else str(raw)
        return combined_value_label(text, (), constants)
    return combined_value_label(allowed.value, allowed.linked_fields, constants)


# ---------------------------------------------------------------------------
# Counts
# ---------------------------------------------------------------------------

def count_positions(node: TreeNode) -> int:
    """PositionLeaf descendants, the node itself included if it is one."""
    if isinstance(node, PositionLeaf):
        return 1
    return sum(count_positions(child) for child in node.children)


def count_subgroups(node: TreeNode) -> int:
    """FieldGroup descendants at any depth, excluding the node itself."""
    if isinstance(node, PositionLeaf):
        return 0
    total = 0
    for child in node.children:
        if isinstance(child, FieldGroup):
            total += 1
        total += count_subgroups(child)
    return total

