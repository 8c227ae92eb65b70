# file: backend/test_api.py
"""
FastAPI Backend — Position Tree API Tests (in-process TestClient)

Phases:
  1: health
  2: materialize (valueless leaf after group, query pruning)
  3: tree structure envelope / flat view
  4: filter and flatten
  5: custom field encode / decode
  6: labels
  7: validation (422) and rejected payloads (400)

Run:  py -3 -m backend.test_api
"""

from __future__ import annotations

import os
import sys
import traceback

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi.testclient import TestClient

from backend.main import app

client = TestClient(app)


def _header(title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


DEFINITIONS = [
    {
        "id": "f-dept",
        "key": "dept",
        "label": "Department",
        "allowed_values": [
            {
                "value_id": "v1",
                "value": "Sales",
                "linked_custom_fields": [
                    {
                        "linked_custom_field_id": "f-region",
                        "linked_custom_field_key": "region",
                        "linked_custom_field_values": [
                            {"linked_custom_field_value_id": "r1", "linked_custom_field_value": "EMEA"},
                        ],
                    },
                    {
                        "linked_custom_field_id": "f-region",
                        "linked_custom_field_key": "region",
                        "linked_custom_field_values": [
                            {"linked_custom_field_value_id": "r2", "linked_custom_field_value": "APAC"},
                        ],
                    },
                ],
            },
            {"value_id": "v2", "value": "Engineering"},
        ],
    },
    {
        "id": "f-region",
        "key": "region",
        "label": "Region",
        "allowed_values": [
            {"value_id": "r1", "value": "EMEA"},
            {"value_id": "r2", "value": "APAC"},
        ],
    },
]

POSITIONS = [
    {"id": "1", "name": "Sales Manager", "custom_fields": {"dept": "Sales"}},
    {"id": "2", "name": "Office Clerk", "custom_fields": {}},
    {"id": "3", "name": "Engineer", "custom_fields": {"dept": "v2"}},
]


def test_01_health():
    _header("Phase 1 — Health")
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    print("  [PASS]")


def test_02_materialize():
    _header("Phase 2 — Materialize")
    r = client.post("/tree/materialize", json={
        "positions": POSITIONS[:2],
        "levels": [{"order": 1, "custom_field_key": "dept"}],
    })
    assert r.status_code == 200, r.text
    body = r.json()
    children = body["root"]["children"]
    assert [c["type"] for c in children] == ["field_value", "position"]
    assert children[0]["custom_field_value"] == "Sales"
    assert children[0]["children"][0]["position_id"] == "1"
    assert children[1]["position_id"] == "2"
    assert body["diagnostics"]["position_count"] == 2
    assert len(body["tree_hash"]) == 64
    assert body["matching_ids"] is None

    r = client.post("/tree/materialize", json={
        "positions": POSITIONS,
        "definitions": DEFINITIONS,
        "levels": [{"order": 1, "custom_field_key": "dept"}],
        "query": "engineer",
    })
    body = r.json()
    assert body["matching_ids"] == ["3"]
    assert [c["custom_field_value"] for c in body["root"]["children"]] == ["Engineering"]
    print("  [PASS]")


def test_03_structure():
    _header("Phase 3 — Tree structure envelope")
    r = client.post("/tree/structure", json={"positions": POSITIONS, "definitions": DEFINITIONS})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["name"] == "flat" and body["tree_id"] == "" and body["levels"] == []
    assert len(body["root"]["children"]) == 3

    r = client.post("/tree/structure", json={
        "positions": POSITIONS,
        "definitions": DEFINITIONS,
        "tree": {
            "id": "t1",
            "name": "By department",
            "levels": [
                {"order": 4, "custom_field_key": "dept"},
                {"order": 2, "custom_field_key": "gone"},
            ],
        },
    })
    body = r.json()
    assert body["tree_id"] == "t1"
    assert body["levels"] == [{"order": 1, "custom_field_key": "dept"}]
    sales = [c for c in body["root"]["children"] if c.get("custom_field_value") == "Sales"][0]
    assert sales["linked_custom_fields"][0]["linked_custom_field_key"] == "region"
    assert body["diagnostics"]["dangling_level_keys"] == ["gone"]
    print("  [PASS]")


def test_04_filter_and_flatten():
    _header("Phase 4 — Filter and flatten")
    r = client.post("/positions/filter", json={
        "positions": POSITIONS,
        "definitions": DEFINITIONS,
        "query": "sales and manager or clerk",
    })
    body = r.json()
    assert body["conditions"] == [["sales"], ["manager", "clerk"]]
    assert body["matching_ids"] == ["1"]

    r = client.post("/positions/flatten", json={"positions": POSITIONS, "query": "e"})
    body = r.json()
    assert body["count"] == 3
    assert all(c["type"] == "position" for c in body["root"]["children"])
    print("  [PASS]")


def test_05_custom_fields_codec():
    _header("Phase 5 — Encode / decode")
    r = client.post("/custom-fields/encode", json={
        "fields": {"dept": "Sales (EMEA)", "unknown": "x"},
        "definitions": DEFINITIONS,
    })
    assert r.status_code == 200, r.text
    assert r.json()["custom_fields"] == [{
        "custom_field_id": "f-dept",
        "custom_field_value_id": "v1",
        "linked_custom_fields": [{
            "linked_custom_field_id": "f-region",
            "linked_custom_field_values": [{"linked_custom_field_value_id": "r1"}],
        }],
    }]

    r = client.post("/custom-fields/decode", json={
        "entries": [
            {
                "custom_field_id": "f-dept",
                "custom_field_value_id": "v1",
                "linked_custom_fields": [{
                    "linked_custom_field_id": "f-region",
                    "linked_custom_field_values": [{"linked_custom_field_value_id": "r1"}],
                }],
            },
        ],
        "definitions": DEFINITIONS,
        "levels": [{"order": 1, "custom_field_key": "region"}],
    })
    body = r.json()
    assert body["fields"] == {"dept": "v1", "region": "r1"}
    assert body["order"] == ["region", "dept"]
    print("  [PASS]")


def test_06_labels():
    _header("Phase 6 — Labels")
    r = client.post("/labels", json={"node": {
        "type": "field_value",
        "custom_field_key": "dept",
        "custom_field_value": "Sales",
        "level_order": 1,
        "linked_custom_fields": [{
            "linked_custom_field_key": "region",
            "linked_custom_field_values": [{"linked_custom_field_value": "EMEA"}],
        }],
        "children": [
            {"type": "position", "position_id": "1", "position_name": "Rep"},
        ],
    }})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["label"] == "Sales - EMEA"
    assert body["position_count"] == 1 and body["subgroup_count"] == 0
    assert body["children"] == [{"label": "Rep", "position_count": 1, "subgroup_count": 0}]
    print("  [PASS]")


def test_07_errors():
    _header("Phase 7 — 422 validation, 400 ingest")
    r = client.post("/positions/validate", json={"name": "Rep"})
    assert r.status_code == 200 and r.json()["valid"] is True

    r = client.post("/positions/validate", json={"name": "", "employee_profile_url": "nope"})
    assert r.status_code == 422
    assert len(r.json()["detail"]) == 2

    r = client.post("/tree/materialize", json={"positions": [{"name": "no id"}], "levels": []})
    assert r.status_code == 400
    assert "positions[0]" in r.json()["detail"]

    r = client.post("/labels", json={"node": {"type": "folder"}})
    assert r.status_code == 400
    print("  [PASS]")


def main() -> None:
    tests = [
        test_01_health,
        test_02_materialize,
        test_03_structure,
        test_04_filter_and_flatten,
        test_05_custom_fields_codec,
        test_06_labels,
        test_07_errors,
    ]
    failed = 0
    for fn in tests:
        try:
            fn()
        except Exception as e:
            print(f"\n[ERROR] {fn.__name__}: {e}")
            traceback.print_exc()
            failed += 1

    print(f"\n{'='*60}")
    print(f"  RESULTS: {len(tests) - failed}/{len(tests)} tests passed")
    print(f"{'='*60}")
    sys.exit(0 if failed == 0 else 1)


if __name__ == "__main__":
    main()
