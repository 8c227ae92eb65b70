"""
Position Tree Kernel — Field-Value Resolver v1.0

Maps a stored custom-field value (value id, literal text or legacy
composite string) onto the AllowedValue it denotes.

Resolution order:
  1. Exact pass — trimmed raw value against each allowed value's
     value_id and text, in definition order. First match wins.
  2. Fuzzy pass (raw length >= FUZZY_MIN_LENGTH) — the texts contain one
     another and min(len)/max(len) >= FUZZY_MIN_RATIO. Lossy legacy
     compatibility rule; first match in definition order wins.
  3. Otherwise None ("no value for this field", never an error).

Composite strings:
  "Sales (EMEA, Tier-1)"   main = "Sales", candidates = ("EMEA", "Tier-1")
  "Sales - EMEA - Tier-1"  main = "Sales", candidates = ("EMEA", "Tier-1")
Candidates select which linked bindings of the resolved value survive.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import List, Mapping, Optional, Sequence, Tuple

from .domain_types import (
    DEFAULT_CONSTANTS,
    AllowedValue,
    CustomFieldDefinition,
    LinkedFieldBinding,
    LinkedValue,
    TreeConstants,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompositeValue:
    """A stored string split into its main text and linked candidates."""

    main: str
    candidates: Tuple[str, ...] = ()

    @property
    def is_composite(self) -> bool:
        return bool(self.candidates)


# ---------------------------------------------------------------------------
# Matching primitives
# ---------------------------------------------------------------------------

def is_fuzzy_match(
    a: str,
    b: str,
    min_length: int = DEFAULT_CONSTANTS.fuzzy_min_length,
    min_ratio: float = DEFAULT_CONSTANTS.fuzzy_min_ratio,
) -> bool:
    """
    Substring containment in either direction with similar lengths.

    Both strings must be at least ``min_length`` long. A ratio above 1.0
    disables the rule entirely.
    """
    if len(a) < min_length or len(b) < min_length:
        return False
    if a not in b and b not in a:
        return False
    return min(len(a), len(b)) / max(len(a), len(b)) >= min_ratio


def _stored_text(raw: object) -> str:
    if raw is None:
        return ""
    return str(raw).strip()


def _exact_match(
    definition: CustomFieldDefinition, text: str,
) -> Optional[AllowedValue]:
    for av in definition.allowed_values:
        if av.value_id and str(av.value_id).strip() == text:
            return av
        if av.value.strip() == text:
            return av
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def resolve(
    definition: Optional[CustomFieldDefinition],
    raw: object,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> Optional[AllowedValue]:
    """Resolve a plain stored value. Returns None when nothing matches."""
    if definition is None:
        return None
    text = _stored_text(raw)
    if not text:
        return None

    exact = _exact_match(definition, text)
    if exact is not None:
        return exact

    if len(text) >= constants.fuzzy_min_length:
        for av in definition.allowed_values:
            if is_fuzzy_match(
                av.value.strip(), text,
                constants.fuzzy_min_length, constants.fuzzy_min_ratio,
            ):
                logger.debug(
                    "Fuzzy-resolved %r to %r for field %r",
                    text, av.value, definition.key,
                )
                return av

    logger.debug("Unresolved value %r for field %r", text, definition.key)
    return None


def decode_composite(
    raw: object,
    separator: str = DEFAULT_CONSTANTS.composite_separator,
) -> CompositeValue:
    """
    Split a manually entered combined display string.

    Parenthesis form wins when '(' is not the first character and a ')'
    follows it; otherwise the string is split on ``separator``. Anything
    that does not split cleanly is returned whole with no candidates.
    """
    text = _stored_text(raw)
    if not text:
        return CompositeValue(main="")

    open_idx = text.find("(")
    close_idx = text.rfind(")")
    if open_idx > 0 and close_idx > open_idx:
        main = text[:open_idx].strip()
        inside = text[open_idx + 1:close_idx]
        candidates = tuple(p.strip() for p in inside.split(",") if p.strip())
        if main:
            return CompositeValue(main=main, candidates=candidates)
        logger.debug("Malformed composite %r: empty main part", text)
        return CompositeValue(main=text)

    parts = [p.strip() for p in text.split(separator) if p.strip()]
    if not parts:
        logger.debug("Malformed composite %r: nothing left after split", text)
        return CompositeValue(main=text)
    return CompositeValue(main=parts[0], candidates=tuple(parts[1:]))


def resolve_composite(
    definition: Optional[CustomFieldDefinition],
    raw: object,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> Tuple[Optional[AllowedValue], CompositeValue]:
    """
    Resolve a stored value that may be a composite string.

    An exact hit on the whole string takes precedence over decoding, so
    allowed values that themselves contain separators stay intact.
    """
    text = _stored_text(raw)
    if definition is not None and text:
        exact = _exact_match(definition, text)
        if exact is not None:
            return exact, CompositeValue(main=text)

    composite = decode_composite(text, constants.composite_separator)
    return resolve(definition, composite.main, constants), composite


def resolve_stored(
    definition: Optional[CustomFieldDefinition],
    raw: object,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> Optional[AllowedValue]:
    """resolve_composite without the decoded candidates."""
    return resolve_composite(definition, raw, constants)[0]


def match_linked_fields(
    allowed: AllowedValue,
    candidates: Sequence[str],
    selections: Optional[Mapping[str, object]] = None,
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> Tuple[LinkedFieldBinding, ...]:
    """
    Keep the bindings (and their values) named by the candidate texts.

    ``selections`` is the surrounding field mapping: a value stored
    under a binding's linked field key counts as one more candidate for
    that binding. Comparison is case-insensitive against the linked
    value's text and id. Exact matches are taken first; candidates left
    over may then match by the fuzzy rule. A binding with no surviving
    value is dropped entirely.
    """
    base_pool = [c.strip().casefold() for c in candidates if c and c.strip()]
    retained: List[LinkedFieldBinding] = []

    for binding in allowed.linked_fields:
        pool = list(base_pool)
        if selections is not None and binding.field_key:
            selected = _stored_text(selections.get(binding.field_key))
            if selected:
                pool.append(selected.casefold())
        if not pool:
            continue

        kept = _match_binding_values(binding.values, pool, constants)
        if kept:
            retained.append(replace(binding, values=kept))
        else:
            logger.debug(
                "Dropped linked field %r of %r: no candidate matched",
                binding.field_key, allowed.value,
            )

    return tuple(retained)


def _match_binding_values(
    values: Sequence[LinkedValue],
    pool: List[str],
    constants: TreeConstants,
) -> Tuple[LinkedValue, ...]:
    matched: set[int] = set()
    leftover: List[str] = []

    # Exact pass
    for cand in pool:
        hit = False
        for idx, lv in enumerate(values):
            text = lv.text.strip().casefold()
            vid = lv.value_id.strip().casefold()
            if (text and cand == text) or (vid and cand == vid):
                matched.add(idx)
                hit = True
        if not hit:
            leftover.append(cand)

    # Fuzzy pass, only for candidates without an exact hit
    for cand in leftover:
        for idx, lv in enumerate(values):
            if idx in matched:
                continue
            if is_fuzzy_match(
                lv.text.strip().casefold(), cand,
                constants.fuzzy_min_length, constants.linked_fuzzy_min_ratio,
            ):
                matched.add(idx)

    return tuple(lv for idx, lv in enumerate(values) if idx in matched)
