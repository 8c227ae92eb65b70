"""
Position Tree Kernel v1.0
Deterministic, in-memory grouping of positions into a navigable tree
by custom-field values, with codec, labels and free-text search.
"""

from .domain_types import (
    LinkedValue, LinkedFieldBinding, AllowedValue, CustomFieldDefinition,
    StructuredEntry, Position, TreeLevel, TreeDefinition,
    PositionLeaf, FieldGroup, RootNode, TreeStructure,
    TreeConstants, DEFAULT_CONSTANTS,
)
from .resolver import (
    CompositeValue,
    is_fuzzy_match,
    resolve,
    decode_composite,
    resolve_composite,
    resolve_stored,
    match_linked_fields,
)
from .codec import to_api_array, to_ui_map, encode_entries
from .materializer import (
    materialize,
    build_tree_structure,
    normalize_levels,
    locale_sort_key,
    iter_leaves,
    find_position_path,
    path_fields,
)
from .labels import combined_label, combined_value_label, count_positions, count_subgroups
from .query import (
    SearchCondition,
    SearchQuery,
    parse_query,
    evaluate_query,
    filter_positions,
    matching_ids,
    flatten_matches,
    prune_tree,
    subtree_contains_match,
)
from .ingest import (
    IngestError,
    decode_definitions,
    decode_positions,
    decode_tree_definitions,
    decode_tree_structure,
)
from .field_order import order_custom_fields
from .validation import ValidationResult, validate_position, validate_structured_entries
from .hashing import canonical_serialize, canonical_hash
from .diagnostics import compute_diagnostics

__all__ = [
    "LinkedValue",
    "LinkedFieldBinding",
    "AllowedValue",
    "CustomFieldDefinition",
    "StructuredEntry",
    "Position",
    "TreeLevel",
    "TreeDefinition",
    "PositionLeaf",
    "FieldGroup",
    "RootNode",
    "TreeStructure",
    "TreeConstants",
    "DEFAULT_CONSTANTS",
    "CompositeValue",
    "is_fuzzy_match",
    "resolve",
    "decode_composite",
    "resolve_composite",
    "resolve_stored",
    "match_linked_fields",
    "to_api_array",
    "to_ui_map",
    "encode_entries",
    "materialize",
    "build_tree_structure",
    "normalize_levels",
    "locale_sort_key",
    "iter_leaves",
    "find_position_path",
    "path_fields",
    "combined_label",
    "combined_value_label",
    "count_positions",
    "count_subgroups",
    "SearchCondition",
    "SearchQuery",
    "parse_query",
    "evaluate_query",
    "filter_positions",
    "matching_ids",
    "flatten_matches",
    "prune_tree",
    "subtree_contains_match",
    "IngestError",
    "decode_definitions",
    "decode_positions",
    "decode_tree_definitions",
    "decode_tree_structure",
    "order_custom_fields",
    "ValidationResult",
    "validate_position",
    "validate_structured_entries",
    "canonical_serialize",
    "canonical_hash",
    "compute_diagnostics",
]
