"""
Position Tree Kernel — Query Evaluator v1.0

Free-text AND/OR search over a position's denormalised text.

Grammar (keywords case-insensitive, literal single spaces around them):

    query      := andClause (" and " andClause)*
    andClause  := term (" or " term)*

AND is the outer operator, OR the inner one. No parentheses and no
quoting: the words "and"/"or" cannot appear inside a term.

A term matches when it is a case-insensitive substring of the name,
the description, the employee full name, or the space-joined custom
field text gathered from every representation the position carries.
An empty query matches everything.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Set, Union

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
    TreeNode,
)
from .materializer import materialize
from .resolver import resolve_stored

_AND_RE = re.compile(r" and ", re.IGNORECASE)
_OR_RE = re.compile(r" or ", re.IGNORECASE)


@dataclass(frozen=True)
class SearchCondition:
    """One AND clause: matches when any of its terms matches."""

    terms: tuple[str, ...]


@dataclass(frozen=True)
class SearchQuery:
    """Parsed query: matches when every condition matches."""

    conditions: tuple[SearchCondition, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.conditions


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def parse_query(text: Optional[str]) -> SearchQuery:
    """Split on AND first, then each clause on OR. Blank parts dropped."""
    if not text or not text.strip():
        return SearchQuery()

    conditions: List[SearchCondition] = []
    for part in _AND_RE.split(text.strip()):
        terms = tuple(t.strip() for t in _OR_RE.split(part) if t.strip())
        if terms:
            conditions.append(SearchCondition(terms=terms))
    return SearchQuery(conditions=tuple(conditions))


# ---------------------------------------------------------------------------
# Searchable text
# ---------------------------------------------------------------------------

def _allowed_value_texts(av: AllowedValue) -> List[str]:
    texts = [av.value]
    for binding in av.linked_fields:
        if binding.field_label:
            texts.append(binding.field_label)
        texts.extend(lv.text for lv in binding.values if lv.text)
    return texts


def custom_field_texts(
    position: Position,
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> List[str]:
    """Every piece of custom-field text the position carries."""
    texts: List[str] = []
    by_key = definitions_by_key(definitions) if definitions else {}

    for key, raw in position.custom_fields.items():
        if raw is None:
            continue
        texts.append(str(raw))
        definition = by_key.get(key)
        if definition is not None:
            allowed = resolve_stored(definition, raw, constants)
            if allowed is not None:
                texts.extend(_allowed_value_texts(allowed))

    for entry in position.field_entries:
        if entry.field_label:
            texts.append(entry.field_label)
        if entry.value_text:
            texts.append(entry.value_text)
        for binding in entry.linked_fields:
            if binding.field_label:
                texts.append(binding.field_label)
            texts.extend(lv.text for lv in binding.values if lv.text)

    if position.value_ids and definitions:
        wanted = {str(v) for v in position.value_ids}
        for definition in definitions:
            for av in definition.allowed_values:
                if av.value_id and str(av.value_id) in wanted:
                    texts.extend(_allowed_value_texts(av))

    return [t for t in texts if t]


class _SearchIndex:
    """Lower-cased haystacks for one position, built lazily once."""

    def __init__(
        self,
        position: Position,
        definitions: Optional[Sequence[CustomFieldDefinition]],
        constants: TreeConstants,
    ) -> None:
        self._position = position
        self._definitions = definitions
        self._constants = constants
        self._fields: Optional[str] = None
        self._plain = [
            s.lower()
            for s in (position.name, position.description, position.full_name)
            if s
        ]

    def _field_text(self) -> str:
        if self._fields is None:
            self._fields = " ".join(
                custom_field_texts(self._position, self._definitions, self._constants)
            ).lower()
        return self._fields

    def contains(self, term: str) -> bool:
        needle = term.lower()
        if any(needle in hay for hay in self._plain):
            return True
        return needle in self._field_text()


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def matches_term(
    position: Position,
    term: str,
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> bool:
    if not term:
        return True
    return _SearchIndex(position, definitions, constants).contains(term)


def evaluate_query(
    position: Position,
    query: Union[str, SearchQuery, None],
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> bool:
    parsed = query if isinstance(query, SearchQuery) else parse_query(query)
    if parsed.is_empty:
        return True
    index = _SearchIndex(position, definitions, constants)
    return all(
        any(index.contains(term) for term in cond.terms)
        for cond in parsed.conditions
    )


def filter_positions(
    positions: Sequence[Position],
    query: Union[str, SearchQuery, None],
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> List[Position]:
    """Positions matching ``query``, input order preserved."""
    parsed = query if isinstance(query, SearchQuery) else parse_query(query)
    if parsed.is_empty:
        return list(positions)
    return [
        p for p in positions
        if evaluate_query(p, parsed, definitions, constants)
    ]


def matching_ids(
    positions: Sequence[Position],
    query: Union[str, SearchQuery, None],
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> Set[str]:
    return {
        str(p.id)
        for p in filter_positions(positions, query, definitions, constants)
    }


def flatten_matches(
    positions: Sequence[Position],
    query: Union[str, SearchQuery, None],
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> RootNode:
    """Flat view of the matching positions."""
    return materialize(
        filter_positions(positions, query, definitions, constants),
        (), definitions, constants,
    )


# ---------------------------------------------------------------------------
# Applying matches to an already-built tree
# ---------------------------------------------------------------------------

def subtree_contains_match(node: TreeNode, position_ids: Iterable[str]) -> bool:
    """True if any leaf under ``node`` (or the node itself) is a match."""
    wanted = position_ids if isinstance(position_ids, (set, frozenset)) else set(position_ids)
    if isinstance(node, PositionLeaf):
        return node.position_id in wanted
    return any(subtree_contains_match(c, wanted) for c in node.children)


def prune_tree(root: RootNode, position_ids: Iterable[str]) -> RootNode:
    """
    Copy of ``root`` keeping only matching leaves and the groups that
    still contain one. Group order and leaf order are unchanged.
    """
    wanted = set(position_ids)

    def _prune(node: TreeNode) -> Optional[TreeNode]:
        if isinstance(node, PositionLeaf):
            return node if node.position_id in wanted else None
        kept = tuple(c for c in (_prune(child) for child in node.children) if c is not None)
        if isinstance(node, FieldGroup):
            if not kept:
                return None
            return FieldGroup(
                level_order=node.level_order,
                field_key=node.field_key,
                field_value=node.field_value,
                children=kept,
                linked_fields=node.linked_fields,
            )
        return RootNode(children=kept)

    pruned = _prune(root)
    return pruned if isinstance(pruned, RootNode) else RootNode()
