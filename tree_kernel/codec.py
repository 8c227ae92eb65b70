"""
Position Tree Kernel — Custom-Field Codec v1.0

Bidirectional conversion between the UI's flat mapping
{field_key: stored_value} and the API's structured list form.

  to_api_array  UI -> API   decode composite, resolve, filter links
  to_ui_map     API -> UI   value id preferred over text, implied
                            linked values seeded after explicit keys

Unknown field keys are dropped on the way out (logged, never raised):
a stale UI snapshot may outlive the field-definition set it was built
against.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .domain_types import (
    DEFAULT_CONSTANTS,
    CustomFieldDefinition,
    StructuredEntry,
    TreeConstants,
)
from .resolver import match_linked_fields, resolve_composite

logger = logging.getLogger(__name__)


def definitions_by_key(
    definitions: Iterable[CustomFieldDefinition],
) -> Dict[str, CustomFieldDefinition]:
    """Index definitions by key. First definition wins on duplicates."""
    index: Dict[str, CustomFieldDefinition] = {}
    for d in definitions:
        index.setdefault(d.key, d)
    return index


def definitions_by_id(
    definitions: Iterable[CustomFieldDefinition],
) -> Dict[str, CustomFieldDefinition]:
    index: Dict[str, CustomFieldDefinition] = {}
    for d in definitions:
        index.setdefault(str(d.id), d)
    return index


# ---------------------------------------------------------------------------
# UI -> API
# ---------------------------------------------------------------------------

def to_api_array(
    fields_map: Mapping[str, object],
    definitions: Sequence[CustomFieldDefinition],
    constants: TreeConstants = DEFAULT_CONSTANTS,
) -> List[StructuredEntry]:
    """
    Convert a flat field mapping into structured entries.

    Output order follows the mapping's iteration order. An entry whose
    value is already carried as a retained linked value of another entry
    is not emitted a second time.
    """
    by_key = definitions_by_key(definitions)
    entries: List[StructuredEntry] = []

    for key, raw in fields_map.items():
        if raw is None:
            continue
        text = str(raw).strip()
        if not text:
            continue

        definition = by_key.get(key)
        if definition is None:
            logger.info("Dropping unknown custom field key %r", key)
            continue

        allowed, composite = resolve_composite(definition, text, constants)
        if allowed is None:
            entries.append(StructuredEntry(
                field_id=definition.id,
                field_key=definition.key,
                field_label=definition.label,
                value_text=composite.main,
            ))
            continue

        siblings = {k: v for k, v in fields_map.items() if k != key}
        linked = match_linked_fields(
            allowed, composite.candidates, siblings, constants,
        )
        entries.append(StructuredEntry(
            field_id=definition.id,
            field_key=definition.key,
            field_label=definition.label,
            value_id=str(allowed.value_id or ""),
            value_text=allowed.value,
            linked_fields=linked,
        ))

    return _drop_implied(entries)


def _entry_identity(key: str, value_id: str, text: str) -> Tuple[str, str]:
    if value_id:
        return key, value_id.strip().casefold()
    return key, text.strip().casefold()


def _drop_implied(entries: List[StructuredEntry]) -> List[StructuredEntry]:
    implied: Set[Tuple[str, str]] = set()
    for entry in entries:
        for binding in entry.linked_fields:
            if binding.field_key == entry.field_key:
                continue
            for lv in binding.values:
                if lv.value_id:
                    implied.add(_entry_identity(binding.field_key, lv.value_id, ""))
                if lv.text:
                    implied.add(_entry_identity(binding.field_key, "", lv.text))

    if not implied:
        return entries

    kept: List[StructuredEntry] = []
    for entry in entries:
        ident = _entry_identity(entry.field_key, entry.value_id, entry.value_text)
        if not entry.linked_fields and ident in implied:
            logger.debug(
                "Entry %r=%r is implied by a linked value; not re-emitted",
                entry.field_key, entry.value_id or entry.value_text,
            )
            continue
        kept.append(entry)
    return kept


def encode_entries(entries: Sequence[StructuredEntry]) -> List[dict]:
    """Serialise entries into the API's request payload."""
    out: List[dict] = []
    for entry in entries:
        item: Dict[str, object] = {"custom_field_id": entry.field_id}
        if entry.value_id:
            item["custom_field_value_id"] = entry.value_id
        linked = []
        for binding in entry.linked_fields:
            values = [
                {"linked_custom_field_value_id": lv.value_id}
                for lv in binding.values
                if lv.value_id
            ]
            if values:
                linked.append({
                    "linked_custom_field_id": binding.field_id,
                    "linked_custom_field_values": values,
                })
        if linked:
            item["linked_custom_fields"] = linked
        out.append(item)
    return out


# ---------------------------------------------------------------------------
# API -> UI
# ---------------------------------------------------------------------------

def to_ui_map(
    entries: Sequence[StructuredEntry],
    definitions: Optional[Sequence[CustomFieldDefinition]] = None,
) -> Tuple[Dict[str, str], List[str]]:
    """
    Convert structured entries back into (fields_map, order).

    Explicit entries come first; linked bindings then seed any key not
    already explicit from their first linked value, so implied values
    stay visible and editable.
    """
    by_id = definitions_by_id(definitions or ())
    fields_map: Dict[str, str] = {}
    order: List[str] = []

    for entry in entries:
        key = entry.field_key
        if not key and entry.field_id in by_id:
            key = by_id[entry.field_id].key
        if not key:
            logger.debug("Skipping entry for unknown field id %r", entry.field_id)
            continue
        value = entry.value_id or entry.value_text
        if not value:
            continue
        fields_map[key] = value
        if key not in order:
            order.append(key)

    for entry in entries:
        for binding in entry.linked_fields:
            linked_key = binding.field_key
            if not linked_key and binding.field_id in by_id:
                linked_key = by_id[binding.field_id].key
            if not linked_key or linked_key in fields_map:
                continue
            if not binding.values:
                continue
            first = binding.values[0]
            value = first.value_id or first.text
            if not value:
                continue
            fields_map[linked_key] = value
            order.append(linked_key)

    return fields_map, order
