# file: tree_runtime/session.py
"""
Tree View Session — explicit view state around the Position Tree Kernel.

Holds the inputs a presentation layer would otherwise keep as implicit
globals (position snapshot, definitions, selected tree, query) and
recomputes the visible tree whenever one of them changes.

Fetch ordering:
  1. begin_fetch(kind)            — issue a token carrying the current
                                    selection and a sequence number
  2. apply_*(token, payload)      — applied only if the token is still the
                                    latest for its kind and the selection
                                    has not moved since; otherwise dropped

The kernel is pure, so dropping a stale result and recomputing from the
current inputs always yields the same tree as an in-order delivery.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

from tree_kernel.domain_types import (
    DEFAULT_CONSTANTS,
    CustomFieldDefinition,
    Position,
    RootNode,
    TreeConstants,
    TreeDefinition,
    TreeStructure,
)
from tree_kernel.hashing import canonical_hash
from tree_kernel.materializer import build_tree_structure, find_position_path
from tree_kernel.query import (
    SearchQuery,
    flatten_matches,
    matching_ids,
    parse_query,
    prune_tree,
)

from .staging import StagedEdits

logger = logging.getLogger(__name__)

FETCH_POSITIONS = "positions"
FETCH_DEFINITIONS = "definitions"
FETCH_TREES = "trees"
FETCH_STRUCTURE = "structure"

SEARCH_PRUNE = "prune"
SEARCH_FLATTEN = "flatten"


def choose_tree(
    trees: Sequence[TreeDefinition], current_id: Optional[str] = None,
) -> Optional[str]:
    """
    Selection policy after the tree list (re)loads:
    keep the current tree if it still exists, else the default tree,
    else the first tree, else None (flat view).
    """
    if current_id is not None and any(t.id == current_id for t in trees):
        return current_id
    for tree in trees:
        if tree.is_default:
            return tree.id
    if trees:
        return trees[0].id
    return None


@dataclass(frozen=True)
class FetchToken:
    kind: str
    sequence: int
    tree_id: Optional[str]


@dataclass(frozen=True)
class TreeView:
    """One recomputation result."""

    structure: TreeStructure
    visible_root: RootNode
    query: SearchQuery
    matching_ids: FrozenSet[str]
    pending_ids: FrozenSet[str]
    tree_hash: str
    source: str = "local"

    @property
    def is_searching(self) -> bool:
        return not self.query.is_empty

    def to_dict(self) -> dict:
        return {
            "tree_id": self.structure.tree_id,
            "name": self.structure.name,
            "levels": [lvl.to_dict() for lvl in self.structure.levels],
            "root": self.visible_root.to_dict(),
            "matching_ids": sorted(self.matching_ids),
            "pending_ids": sorted(self.pending_ids),
            "tree_hash": self.tree_hash,
            "source": self.source,
        }


class TreeViewSession:
    """
    Reactive view state for one tree panel.

    recompute() runs after every input change; subscribers are notified
    only when the visible tree hash or the pending set changes.
    """

    def __init__(
        self,
        constants: TreeConstants = DEFAULT_CONSTANTS,
        selected_tree_id: Optional[str] = None,
        query: str = "",
        search_mode: str = SEARCH_PRUNE,
    ) -> None:
        if search_mode not in (SEARCH_PRUNE, SEARCH_FLATTEN):
            raise ValueError(f"Unknown search mode {search_mode!r}")
        self._constants = constants
        self._positions: List[Position] = []
        self._definitions: Optional[List[CustomFieldDefinition]] = None
        self._trees: List[TreeDefinition] = []
        self._selected_tree_id = selected_tree_id
        self._query_text = query
        self._search_mode = search_mode
        self._server_structure: Optional[TreeStructure] = None
        self._sequences: Dict[str, int] = {}
        self._subscribers: List[Callable[[TreeView], None]] = []
        self._view: Optional[TreeView] = None
        self.edits = StagedEdits()

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def positions(self) -> List[Position]:
        return list(self._positions)

    @property
    def trees(self) -> List[TreeDefinition]:
        return list(self._trees)

    @property
    def selected_tree_id(self) -> Optional[str]:
        return self._selected_tree_id

    @property
    def selected_tree(self) -> Optional[TreeDefinition]:
        for tree in self._trees:
            if tree.id == self._selected_tree_id:
                return tree
        return None

    @property
    def query(self) -> str:
        return self._query_text

    @property
    def view(self) -> Optional[TreeView]:
        return self._view

    def subscribe(self, callback: Callable[[TreeView], None]) -> None:
        self._subscribers.append(callback)

    # ------------------------------------------------------------------
    # Direct input changes
    # ------------------------------------------------------------------

    def set_positions(self, positions: Sequence[Position]) -> TreeView:
        self._positions = list(positions)
        return self.recompute()

    def set_definitions(self, definitions: Optional[Sequence[CustomFieldDefinition]]) -> TreeView:
        self._definitions = list(definitions) if definitions is not None else None
        return self.recompute()

    def set_trees(self, trees: Sequence[TreeDefinition]) -> TreeView:
        self._trees = list(trees)
        chosen = choose_tree(self._trees, self._selected_tree_id)
        if chosen != self._selected_tree_id:
            logger.info("Tree selection %r -> %r", self._selected_tree_id, chosen)
            self._selected_tree_id = chosen
            self._server_structure = None
        return self.recompute()

    def select_tree(self, tree_id: Optional[str]) -> TreeView:
        """Select a tree by id; None selects the flat view."""
        if tree_id is not None and not any(t.id == tree_id for t in self._trees):
            raise KeyError(f"Unknown tree id {tree_id!r}")
        if tree_id != self._selected_tree_id:
            self._selected_tree_id = tree_id
            self._server_structure = None
        return self.recompute()

    def set_query(self, text: str) -> TreeView:
        self._query_text = text or ""
        return self.recompute()

    def update_position(self, position: Position) -> TreeView:
        """
        Reflect a saved edit locally. The server-built structure is
        dropped so the local materializer shows the change at once.
        """
        replaced = False
        updated: List[Position] = []
        for existing in self._positions:
            if existing.id == position.id:
                updated.append(position)
                replaced = True
            else:
                updated.append(existing)
        if not replaced:
            updated.append(position)
        self._positions = updated
        self._server_structure = None
        return self.recompute()

    def remove_position(self, position_id: str) -> TreeView:
        self._positions = [p for p in self._positions if p.id != str(position_id)]
        self._server_structure = None
        if self.edits.is_pending(position_id):
            self.edits.discard(position_id)
        return self.recompute()

    # ------------------------------------------------------------------
    # Asynchronous fetch results
    # ------------------------------------------------------------------

    def begin_fetch(self, kind: str) -> FetchToken:
        seq = self._sequences.get(kind, 0) + 1
        self._sequences[kind] = seq
        return FetchToken(kind=kind, sequence=seq, tree_id=self._selected_tree_id)

    def is_current(self, token: FetchToken) -> bool:
        if self._sequences.get(token.kind) != token.sequence:
            return False
        if token.kind == FETCH_STRUCTURE and token.tree_id != self._selected_tree_id:
            return False
        return True

    def _accept(self, token: FetchToken, expected_kind: str) -> bool:
        if token.kind != expected_kind:
            raise ValueError(f"Token for {token.kind!r} used to apply {expected_kind!r}")
        if not self.is_current(token):
            logger.debug(
                "Discarding stale %s result (seq %d, tree %r; current seq %s, tree %r)",
                token.kind, token.sequence, token.tree_id,
                self._sequences.get(token.kind), self._selected_tree_id,
            )
            return False
        return True

    def apply_positions(self, token: FetchToken, positions: Sequence[Position]) -> bool:
        if not self._accept(token, FETCH_POSITIONS):
            return False
        self.set_positions(positions)
        return True

    def apply_definitions(
        self, token: FetchToken, definitions: Sequence[CustomFieldDefinition],
    ) -> bool:
        if not self._accept(token, FETCH_DEFINITIONS):
            return False
        self.set_definitions(definitions)
        return True

    def apply_trees(self, token: FetchToken, trees: Sequence[TreeDefinition]) -> bool:
        if not self._accept(token, FETCH_TREES):
            return False
        self.set_trees(trees)
        return True

    def apply_structure(self, token: FetchToken, structure: TreeStructure) -> bool:
        """Use a server-built structure for the tree that was selected."""
        if not self._accept(token, FETCH_STRUCTURE):
            return False
        self._server_structure = structure
        self.recompute()
        return True

    # ------------------------------------------------------------------
    # Recompute
    # ------------------------------------------------------------------

    def _structure(self) -> Tuple[TreeStructure, str]:
        if self._server_structure is not None:
            return self._server_structure, "server"
        return (
            build_tree_structure(
                self._positions, self.selected_tree, self._definitions, self._constants,
            ),
            "local",
        )

    def recompute(self) -> TreeView:
        structure, source = self._structure()
        query = parse_query(self._query_text)

        if query.is_empty:
            visible = structure.root
            matches: FrozenSet[str] = frozenset()
        else:
            matches = frozenset(
                matching_ids(self._positions, query, self._definitions, self._constants)
            )
            if self._search_mode == SEARCH_FLATTEN:
                visible = flatten_matches(
                    self._positions, query, self._definitions, self._constants,
                )
            else:
                visible = prune_tree(structure.root, matches)

        view = TreeView(
            structure=structure,
            visible_root=visible,
            query=query,
            matching_ids=matches,
            pending_ids=self.edits.pending_ids,
            tree_hash=canonical_hash(visible),
            source=source,
        )
        previous = self._view
        self._view = view
        if (
            previous is None
            or previous.tree_hash != view.tree_hash
            or previous.pending_ids != view.pending_ids
        ):
            for callback in self._subscribers:
                callback(view)
        else:
            logger.debug("Recompute produced identical tree %s", view.tree_hash[:12])
        return view

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def expanded_path(self, position_id: str) -> List[str]:
        """Labels of the groups to expand so ``position_id`` is visible."""
        if self._view is None:
            return []
        path = find_position_path(self._view.visible_root, position_id)
        return [g.field_value for g in path] if path else []

    # ------------------------------------------------------------------
    # Staged edits
    # ------------------------------------------------------------------

    def stage_edit(self, position_id: str, committed, value) -> TreeView:
        self.edits.stage(position_id, committed, value)
        return self.recompute()

    def commit_edit(self, position_id: str, save: Optional[Callable] = None) -> TreeView:
        """Run ``save`` on the staged value; on success the leaf is Clean again."""
        self.edits.commit(position_id, save)
        return self.recompute()

    def discard_edit(self, position_id: str) -> TreeView:
        self.edits.discard(position_id)
        return self.recompute()
