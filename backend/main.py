# file: backend/main.py
"""
FastAPI Backend — Position Tree API v1.

Stateless: every request carries the snapshot it is computed over
(positions, field definitions, tree definition or levels).
No in-memory state between requests.

Endpoints:
  POST /tree/materialize       — group positions by levels, return root
  POST /tree/structure         — tree envelope for a tree definition
  POST /positions/filter       — ids of positions matching a query
  POST /positions/flatten      — flat view of the matching positions
  POST /custom-fields/encode   — UI mapping -> structured API list
  POST /custom-fields/decode   — structured API list -> UI mapping
  POST /labels                 — combined label + counts for a node
  POST /positions/validate     — payload validation (422 on failure)
  GET  /health
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

env_path = os.path.join(os.path.dirname(__file__), ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

# Add project root to path for kernel imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tree_kernel import constants as C
from tree_kernel.codec import encode_entries, to_api_array, to_ui_map
from tree_kernel.diagnostics import compute_diagnostics
from tree_kernel.domain_types import CustomFieldDefinition, Position, TreeConstants
from tree_kernel.field_order import order_custom_fields
from tree_kernel.hashing import canonical_hash
from tree_kernel.ingest import (
    IngestError,
    decode_definitions,
    decode_levels,
    decode_positions,
    decode_structured_entry,
    decode_tree_definition,
    decode_tree_node,
)
from tree_kernel.labels import combined_label, count_positions, count_subgroups
from tree_kernel.materializer import build_tree_structure, materialize, normalize_levels
from tree_kernel.query import filter_positions, flatten_matches, parse_query, prune_tree
from tree_kernel.validation import validate_position

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
POSITIONS_FETCH_LIMIT = int(os.environ.get("POSITIONS_FETCH_LIMIT", str(C.POSITIONS_FETCH_LIMIT)))

TREE_CONSTANTS = TreeConstants(
    out_of_structure_label=os.environ.get("OUT_OF_STRUCTURE_LABEL", C.OUT_OF_STRUCTURE_LABEL),
    untitled_label=os.environ.get("UNTITLED_LABEL", C.UNTITLED_LABEL),
    fuzzy_min_ratio=float(os.environ.get("FUZZY_MIN_RATIO", str(C.FUZZY_MIN_RATIO))),
)

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="PositionTree API",
    version="1.0.0",
    description="Deterministic position tree grouping, field codec and search",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        FRONTEND_URL,
        "http://localhost:3000",
        "http://localhost:3001",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SnapshotRequest(BaseModel):
    positions: List[Any] = []
    definitions: Optional[List[Any]] = None


class MaterializeRequest(SnapshotRequest):
    levels: List[Any] = []
    query: str = ""


class StructureRequest(SnapshotRequest):
    tree: Optional[Dict[str, Any]] = None
    query: str = ""


class QueryRequest(SnapshotRequest):
    query: str = ""


class EncodeRequest(BaseModel):
    fields: Dict[str, Any] = {}
    definitions: List[Any] = []


class DecodeRequest(BaseModel):
    entries: List[Any] = []
    definitions: Optional[List[Any]] = None
    custom_fields_order: List[str] = []
    levels: List[Any] = []


class LabelRequest(BaseModel):
    node: Dict[str, Any]


# ---------------------------------------------------------------------------
# Core helpers
# ---------------------------------------------------------------------------


def _decode_snapshot(req: SnapshotRequest):
    """Decode definitions then positions. IngestError -> 400."""
    if len(req.positions) > POSITIONS_FETCH_LIMIT:
        logger.warning(
            "Rejected snapshot of %d positions (limit %d)",
            len(req.positions), POSITIONS_FETCH_LIMIT,
        )
        raise HTTPException(
            status_code=400,
            detail=f"Too many positions: {len(req.positions)} > {POSITIONS_FETCH_LIMIT}",
        )
    try:
        definitions = (
            decode_definitions(req.definitions) if req.definitions is not None else None
        )
        positions = decode_positions(req.positions, definitions)
    except IngestError as exc:
        logger.warning("Rejected payload: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc))
    return positions, definitions


def _tree_payload(
    root,
    positions: List[Position],
    levels,
    definitions: Optional[List[CustomFieldDefinition]],
    query: str,
) -> dict:
    """Root (pruned to matches when a query is given) + hash + diagnostics."""
    parsed = parse_query(query)
    matches: Optional[List[str]] = None
    visible = root
    if not parsed.is_empty:
        matched = filter_positions(positions, parsed, definitions, TREE_CONSTANTS)
        matches = [p.id for p in matched]
        visible = prune_tree(root, matches)
    return {
        "root": visible.to_dict(),
        "tree_hash": canonical_hash(visible),
        "matching_ids": matches,
        "diagnostics": compute_diagnostics(
            root, positions, levels, definitions, TREE_CONSTANTS,
        ),
    }


# ---------------------------------------------------------------------------
# Tree endpoints
# ---------------------------------------------------------------------------


@app.post("/tree/materialize")
def tree_materialize(req: MaterializeRequest):
    """
    Group the snapshot by the given levels.
    The local equivalent of the server-side tree computation.
    """
    positions, definitions = _decode_snapshot(req)
    try:
        levels = decode_levels(req.levels)
    except IngestError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    root = materialize(positions, levels, definitions, TREE_CONSTANTS)
    payload = _tree_payload(root, positions, levels, definitions, req.query)
    payload["levels"] = [lvl.to_dict() for lvl in normalize_levels(levels, definitions)]
    return payload


@app.post("/tree/structure")
def tree_structure(req: StructureRequest):
    """Tree envelope {tree_id, name, levels, root}; no tree -> flat view."""
    positions, definitions = _decode_snapshot(req)
    try:
        tree = decode_tree_definition(req.tree) if req.tree is not None else None
    except IngestError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    structure = build_tree_structure(positions, tree, definitions, TREE_CONSTANTS)
    payload = _tree_payload(
        structure.root, positions, tree.levels if tree else (), definitions, req.query,
    )
    payload.update({
        "tree_id": structure.tree_id,
        "name": structure.name,
        "levels": [lvl.to_dict() for lvl in structure.levels],
    })
    return payload


# ---------------------------------------------------------------------------
# Search endpoints
# ---------------------------------------------------------------------------


@app.post("/positions/filter")
def positions_filter(req: QueryRequest):
    positions, definitions = _decode_snapshot(req)
    parsed = parse_query(req.query)
    matched = filter_positions(positions, parsed, definitions, TREE_CONSTANTS)
    return {
        "conditions": [list(cond.terms) for cond in parsed.conditions],
        "matching_ids": [p.id for p in matched],
        "count": len(matched),
    }


@app.post("/positions/flatten")
def positions_flatten(req: QueryRequest):
    positions, definitions = _decode_snapshot(req)
    root = flatten_matches(positions, req.query, definitions, TREE_CONSTANTS)
    return {"root": root.to_dict(), "count": count_positions(root)}


# ---------------------------------------------------------------------------
# Custom field codec endpoints
# ---------------------------------------------------------------------------


@app.post("/custom-fields/encode")
def custom_fields_encode(req: EncodeRequest):
    """UI mapping -> structured list ready for the positions API."""
    try:
        definitions = decode_definitions(req.definitions)
    except IngestError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    fields = {str(k): str(v) for k, v in req.fields.items() if v is not None}
    entries = to_api_array(fields, definitions, TREE_CONSTANTS)
    return {"custom_fields": encode_entries(entries)}


@app.post("/custom-fields/decode")
def custom_fields_decode(req: DecodeRequest):
    """Structured list -> UI mapping, keys in display order."""
    try:
        definitions = (
            decode_definitions(req.definitions) if req.definitions is not None else None
        )
        entries = [
            decode_structured_entry(item, f"entries[{i}]")
            for i, item in enumerate(req.entries)
        ]
        levels = decode_levels(req.levels)
    except IngestError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    fields, order = to_ui_map(entries, definitions)
    ordered = order_custom_fields(fields, req.custom_fields_order or order, levels)
    return {
        "fields": fields,
        "order": [key for key, _ in ordered],
    }


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------


@app.post("/labels")
def labels(req: LabelRequest):
    """Combined label and counts for a node, and for each direct child."""
    try:
        node = decode_tree_node(req.node, "node")
    except IngestError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    def _describe(n) -> dict:
        return {
            "label": combined_label(n, TREE_CONSTANTS),
            "position_count": count_positions(n),
            "subgroup_count": count_subgroups(n),
        }

    result = _describe(node)
    result["children"] = [_describe(child) for child in node.children]
    return result


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@app.post("/positions/validate")
def positions_validate(payload: Dict[str, Any]):
    result = validate_position(payload)
    if not result.valid:
        logger.warning("Position payload rejected: %d error(s)", len(result.errors))
        raise HTTPException(status_code=422, detail=result.errors)
    return {"valid": True, "errors": []}


@app.get("/health")
def health():
    return {"status": "ok", "version": "1.0.0"}
