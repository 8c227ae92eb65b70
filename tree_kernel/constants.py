"""
Position Tree Kernel — Constants (Default Values)

All magic strings and thresholds live here as module-level defaults.
Per-computation values are injected through TreeConstants
(domain_types.py).
"""

# --- Labels ---
OUT_OF_STRUCTURE_LABEL: str = "out of structure"
UNTITLED_LABEL: str = "untitled"
FLAT_TREE_NAME: str = "flat"

# --- Fuzzy matching (legacy composite / free-text values) ---
# Minimum length of both strings before the substring rule applies.
FUZZY_MIN_LENGTH: int = 3
# min(len) / max(len) required for a substring match to count.
FUZZY_MIN_RATIO: float = 0.7
LINKED_FUZZY_MIN_RATIO: float = 0.7

# --- Separators ---
COMPOSITE_SEPARATOR: str = " - "
LABEL_SEPARATOR: str = " - "

# --- Node types (wire names) ---
NODE_TYPE_ROOT: str = "root"
NODE_TYPE_FIELD_VALUE: str = "field_value"
NODE_TYPE_FIELD_VALUE_LEGACY: str = "custom_field_value"
NODE_TYPE_POSITION: str = "position"

# --- Boundary ---
# Upper bound the API collaborator uses when fetching a position snapshot.
POSITIONS_FETCH_LIMIT: int = 10_000
