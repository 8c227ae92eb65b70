"""
Position Tree Runtime v1.0

View state around the Position Tree Kernel: explicit tree selection and
query, stale-fetch discarding, reactive recompute, staged edits.
"""

from .session import (
    TreeViewSession,
    TreeView,
    FetchToken,
    choose_tree,
    FETCH_POSITIONS,
    FETCH_DEFINITIONS,
    FETCH_TREES,
    FETCH_STRUCTURE,
    SEARCH_PRUNE,
    SEARCH_FLATTEN,
)
from .staging import Clean, Pending, StagedEdits, StagingError, stage, commit, discard

__all__ = [
    "TreeViewSession",
    "TreeView",
    "FetchToken",
    "choose_tree",
    "FETCH_POSITIONS",
    "FETCH_DEFINITIONS",
    "FETCH_TREES",
    "FETCH_STRUCTURE",
    "SEARCH_PRUNE",
    "SEARCH_FLATTEN",
    "Clean",
    "Pending",
    "StagedEdits",
    "StagingError",
    "stage",
    "commit",
    "discard",
]
