# file: tree_kernel/test_materializer.py
"""
Position Tree Kernel — Tree Materializer Tests

16 deterministic tests:
  1-5:   Grouping, leaf placement, value merging
  6-9:   Coverage, ordering, idempotence (seeded)
  10-13: Fallbacks: out of structure, flat, dangling levels, fuzzy edges
  14-16: Envelope and navigation

Run:  py -3 -m tree_kernel.test_materializer
"""

from __future__ import annotations

import os
import sys
import traceback
from collections import Counter

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tree_kernel.domain_types import (
    AllowedValue,
    CustomFieldDefinition,
    FieldGroup,
    PositionLeaf,
    RootNode,
    TreeConstants,
    TreeLevel,
)
from tree_kernel.hashing import canonical_hash
from tree_kernel.materializer import (
    build_tree_structure,
    find_position_path,
    iter_leaves,
    locale_sort_key,
    materialize,
    normalize_levels,
    path_fields,
)
from tree_kernel.test_harness import (
    generate_positions,
    levels,
    make_definitions,
    make_tree,
    pos,
)


def _header(title: str) -> None:
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}")


def _groups(node) -> list:
    return [c for c in node.children if isinstance(c, FieldGroup)]


def _assert_sorted_groups(node) -> None:
    values = [g.field_value for g in _groups(node)]
    assert values == sorted(values, key=locale_sort_key), f"Unsorted: {values}"
    for child in node.children:
        _assert_sorted_groups(child)


def _assert_leaves_after_groups(node) -> None:
    seen_leaf = False
    for child in node.children:
        if isinstance(child, PositionLeaf):
            seen_leaf = True
        elif seen_leaf:
            raise AssertionError(f"Group {child.field_value!r} after a leaf")
        _assert_leaves_after_groups(child)


# ══════════════════════════════════════════════════════════════
# Grouping
# ══════════════════════════════════════════════════════════════

def test_01_group_then_valueless_leaf():
    """One group for Sales, the valueless position follows as a root leaf."""
    _header("Test 01 — Group followed by valueless leaf")
    root = materialize([pos("1", dept="Sales"), pos("2")], levels("dept"))

    assert len(root.children) == 2
    group, leaf = root.children
    assert isinstance(group, FieldGroup) and group.field_value == "Sales"
    assert group.level_order == 1 and group.field_key == "dept"
    assert [c.position_id for c in group.children] == ["1"]
    assert isinstance(leaf, PositionLeaf) and leaf.position_id == "2"
    print("  [PASS]")


def test_02_id_and_text_merge_into_one_group():
    """Stored "v1" and stored "Sales" resolve to the same allowed value."""
    _header("Test 02 — Value id and literal text share a group")
    root = materialize(
        [pos("1", dept="v1"), pos("2", dept="Sales")],
        levels("dept"),
        make_definitions(),
    )
    groups = _groups(root)
    assert len(groups) == 1, f"Expected one group, got {[g.field_value for g in groups]}"
    assert groups[0].field_value == "Sales"
    assert [c.position_id for c in groups[0].children] == ["1", "2"]
    print("  [PASS]")


def test_03_group_carries_linked_bindings():
    _header("Test 03 — Group carries linked bindings of its value")
    root = materialize([pos("1", dept="v1")], levels("dept"), make_definitions())
    group = root.children[0]
    assert isinstance(group, FieldGroup)
    assert [b.field_key for b in group.linked_fields] == ["region"]
    assert group.linked_fields[0].values[0].text == "EMEA"
    print("  [PASS]")


def test_04_nested_levels():
    _header("Test 04 — Two levels, valueless leaf at second level")
    positions = [
        pos("1", dept="Sales", grade="Senior"),
        pos("2", dept="Sales"),
        pos("3", dept="Sales", grade="Junior"),
        pos("4", dept="Engineering", grade="Senior"),
    ]
    root = materialize(positions, levels("dept", "grade"))

    assert [g.field_value for g in _groups(root)] == ["Engineering", "Sales"]
    sales = _groups(root)[1]
    assert [g.field_value for g in _groups(sales)] == ["Junior", "Senior"]
    assert all(g.level_order == 2 for g in _groups(sales))
    assert isinstance(sales.children[-1], PositionLeaf)
    assert sales.children[-1].position_id == "2"
    print("  [PASS]")


def test_05_unresolved_value_is_no_value():
    """With definitions, a value that matches nothing places a leaf."""
    _header("Test 05 — Unresolved stored value")
    root = materialize(
        [pos("1", dept="Sales"), pos("2", dept="Marketing")],
        levels("dept"),
        make_definitions(),
    )
    assert [g.field_value for g in _groups(root)] == ["Sales"]
    assert isinstance(root.children[1], PositionLeaf)
    assert root.children[1].position_id == "2"
    print("  [PASS]")


# ══════════════════════════════════════════════════════════════
# Properties
# ══════════════════════════════════════════════════════════════

def test_06_coverage_seeded():
    """Every position appears exactly once, for several level sets."""
    _header("Test 06 — Coverage over seeded positions")
    positions = generate_positions(42, 60)
    defs = make_definitions()
    for lvls in ((), levels("dept"), levels("dept", "region"), levels("grade", "region", "dept")):
        for definitions in (None, defs):
            root = materialize(positions, lvls, definitions)
            counts = Counter(leaf.position_id for leaf in iter_leaves(root))
            assert set(counts) == {p.id for p in positions}
            assert all(n == 1 for n in counts.values()), "Duplicated leaf"
    print("  [PASS]")


def test_07_ordering_and_leaf_placement_seeded():
    _header("Test 07 — Sibling order and leaf placement")
    positions = generate_positions(7, 80)
    root = materialize(positions, levels("dept", "region", "grade"), make_definitions())
    _assert_sorted_groups(root)
    _assert_leaves_after_groups(root)
    print("  [PASS]")


def test_08_locale_ordering():
    _header("Test 08 — Case and accent insensitive ordering")
    positions = [
        pos("1", dept="beta"),
        pos("2", dept="Émile"),
        pos("3", dept="alpha"),
        pos("4", dept="Alpha"),
    ]
    root = materialize(positions, levels("dept"))
    assert [g.field_value for g in _groups(root)] == ["Alpha", "alpha", "beta", "Émile"]
    print("  [PASS]")


def test_09_idempotence():
    _header("Test 09 — Identical inputs give identical trees")
    positions = generate_positions(42, 40)
    defs = make_definitions()
    lvls = levels("dept", "region")
    first = materialize(positions, lvls, defs)
    second = materialize(positions, lvls, defs)
    assert first == second
    assert canonical_hash(first) == canonical_hash(second)

    # Group structure does not depend on input order
    reversed_root = materialize(list(reversed(positions)), lvls, defs)
    assert [g.field_value for g in _groups(first)] == [g.field_value for g in _groups(reversed_root)]
    print("  [PASS]")


# ══════════════════════════════════════════════════════════════
# Fallbacks
# ══════════════════════════════════════════════════════════════

def test_10_out_of_structure():
    """No position has a first-level value: one synthetic group."""
    _header("Test 10 — Out of structure group")
    positions = [pos("1", grade="Senior"), pos("2")]
    root = materialize(positions, levels("dept"))
    assert len(root.children) == 1
    group = root.children[0]
    assert isinstance(group, FieldGroup)
    assert group.field_value == "out of structure"
    assert group.field_key is None and group.level_order is None
    assert [c.position_id for c in group.children] == ["1", "2"]

    custom = materialize(positions, levels("dept"), constants=TreeConstants(out_of_structure_label="Loose"))
    assert custom.children[0].field_value == "Loose"
    print("  [PASS]")


def test_11_flat_and_empty():
    _header("Test 11 — Zero levels and empty input")
    positions = [pos("2", dept="Sales"), pos("1")]
    flat = materialize(positions, ())
    assert all(isinstance(c, PositionLeaf) for c in flat.children)
    assert [c.position_id for c in flat.children] == ["2", "1"]

    assert materialize([], levels("dept")) == RootNode()
    assert materialize([], ()) == RootNode()
    print("  [PASS]")


def test_12_dangling_and_duplicate_levels():
    _header("Test 12 — Dangling levels skipped, orders renumbered")
    raw_levels = (
        TreeLevel(order=5, custom_field_key="dept"),
        TreeLevel(order=2, custom_field_key="nope"),
        TreeLevel(order=9, custom_field_key="dept"),
    )
    norm = normalize_levels(raw_levels, make_definitions())
    assert norm == (TreeLevel(order=1, custom_field_key="dept"),)

    # Without definitions the unknown key is kept (no way to tell)
    assert [lvl.custom_field_key for lvl in normalize_levels(raw_levels)] == ["nope", "dept"]

    root = materialize([pos("1", dept="Sales")], raw_levels, make_definitions())
    group = root.children[0]
    assert isinstance(group, FieldGroup) and group.level_order == 1
    print("  [PASS]")


def test_13_short_labels_do_not_merge():
    """"IT" and "HIT" stay apart; fuzzy only bridges close lengths."""
    _header("Test 13 — Fuzzy rule edges")
    definition = CustomFieldDefinition(
        id="f-team",
        key="team",
        allowed_values=(
            AllowedValue(value="IT", value_id="t1"),
            AllowedValue(value="HIT", value_id="t2"),
            AllowedValue(value="Sales", value_id="t3"),
        ),
    )
    positions = [
        pos("1", team="IT"),
        pos("2", team="HIT"),
        pos("3", team="HITS"),   # fuzzy -> HIT (3/4)
        pos("4", team="Sale"),   # fuzzy -> Sales (4/5)
        pos("5", team="Sal"),    # 3/5 below ratio
    ]
    root = materialize(positions, levels("team"), [definition])
    by_value = {g.field_value: [c.position_id for c in g.children] for g in _groups(root)}
    assert by_value == {"HIT": ["2", "3"], "IT": ["1"], "Sales": ["4"]}, by_value
    assert root.children[-1].position_id == "5"

    strict = TreeConstants(fuzzy_min_ratio=1.01)
    root = materialize(positions, levels("team"), [definition], strict)
    by_value = {g.field_value: [c.position_id for c in g.children] for g in _groups(root)}
    assert by_value == {"HIT": ["2"], "IT": ["1"]}, by_value
    print("  [PASS]")


# ══════════════════════════════════════════════════════════════
# Envelope and navigation
# ══════════════════════════════════════════════════════════════

def test_14_tree_structure_envelope():
    _header("Test 14 — Tree structure envelope")
    positions = [pos("1", dept="v2")]
    flat = build_tree_structure(positions, None, make_definitions())
    assert flat.tree_id == "" and flat.name == "flat" and flat.levels == ()

    tree = make_tree("t1", "nope", "dept")
    structure = build_tree_structure(positions, tree, make_definitions())
    d = structure.to_dict()
    assert d["tree_id"] == "t1"
    assert d["levels"] == [{"order": 1, "custom_field_key": "dept"}]
    assert d["root"]["type"] == "root"
    group = d["root"]["children"][0]
    assert group["type"] == "field_value"
    assert group["custom_field_value"] == "Engineering"
    assert group["children"][0]["type"] == "position"
    print("  [PASS]")


def test_15_find_position_path():
    _header("Test 15 — Path to a position")
    positions = [pos("1", dept="Sales", grade="Senior"), pos("2", dept="Sales")]
    root = materialize(positions, levels("dept", "grade"))
    path = find_position_path(root, "1")
    assert [g.field_value for g in path] == ["Sales", "Senior"]
    assert [g.field_value for g in find_position_path(root, "2")] == ["Sales"]
    assert find_position_path(root, "missing") is None
    print("  [PASS]")


def test_16_path_fields():
    _header("Test 16 — Field mapping implied by a path")
    positions = [pos("1", dept="Sales", grade="Senior"), pos("2", grade="Junior")]
    root = materialize(positions, levels("dept", "grade"))
    assert path_fields(find_position_path(root, "1")) == {"dept": "Sales", "grade": "Senior"}

    loose = materialize([pos("3")], levels("dept"))
    assert path_fields(find_position_path(loose, "3")) == {}
    print("  [PASS]")


# ══════════════════════════════════════════════════════════════
# Runner
# ══════════════════════════════════════════════════════════════

def main() -> None:
    tests = [
        test_01_group_then_valueless_leaf,
        test_02_id_and_text_merge_into_one_group,
        test_03_group_carries_linked_bindings,
        test_04_nested_levels,
        test_05_unresolved_value_is_no_value,
        test_06_coverage_seeded,
        test_07_ordering_and_leaf_placement_seeded,
        test_08_locale_ordering,
        test_09_idempotence,
        test_10_out_of_structure,
        test_11_flat_and_empty,
        test_12_dangling_and_duplicate_levels,
        test_13_short_labels_do_not_merge,
        test_14_tree_structure_envelope,
        test_15_find_position_path,
        test_16_path_fields,
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
