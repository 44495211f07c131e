import pytest

from treemarks.errors import BadRequest, NotFound
from treemarks.tree.entity import Folder, Leaf, child_ids
from treemarks.tree.reducer import initial_state
from treemarks.tree.repository import MemoryRepository
from treemarks.tree.store import TreeStore, flatten


def _store(*entities):
    return TreeStore(MemoryRepository(entities), owner_id="tester")


def _folder(store, title, parent_id=None):
    return store.create({"title": title, "isFolder": True, "parentId": parent_id})


def _leaf(store, title, parent_id=None, url="https://example.com"):
    return store.create({"title": title, "url": url, "parentId": parent_id})


def _relations(entities):
    return {(e.id, e.parent_id, child_ids(e)) for e in entities}


def _snapshot(store):
    return sorted(_relations(store.repository.all()))


def test_create_appends_to_parent_children():
    store = _store()
    root = _folder(store, "Development")
    first = _leaf(store, "First", root.id)
    second = _folder(store, "Second", root.id)

    parent = store.repository.get(root.id)
    assert parent.children == (first.id, second.id)
    assert first.parent_id == root.id
    assert first.user_id == "tester"
    assert first.created_at is not None
    assert store.find_inconsistencies() == []


def test_create_rejects_missing_and_leaf_parents():
    store = _store()
    leaf = _leaf(store, "Leaf")
    before = _snapshot(store)

    with pytest.raises(NotFound):
        _leaf(store, "Orphan", "does-not-exist")
    with pytest.raises(BadRequest):
        _leaf(store, "Under leaf", leaf.id)
    with pytest.raises(BadRequest):
        store.create({"title": "   "})

    assert _snapshot(store) == before


def test_build_tree_nests_descendants_in_order():
    store = _store()
    dev = _folder(store, "Development")
    frontend = _folder(store, "Frontend", dev.id)
    react = _leaf(store, "React", frontend.id, url="https://react.dev")
    backend = _folder(store, "Backend", dev.id)
    other = _leaf(store, "Other")

    tree = store.build_tree()

    assert [node.id for node in tree] == [dev.id, other.id]
    assert [child.id for child in tree[0].children] == [frontend.id, backend.id]
    assert tree[0].children[0].children == (react,)
    assert tree[0].children[1].children == ()


def test_build_tree_follows_children_not_parent_ids():
    folder = Folder(id="f", title="Folder", children=("x", "gone"))
    stray = Leaf(id="x", title="Stray", url="https://x", parent_id="elsewhere")
    store = _store(folder, stray)

    tree = store.build_tree()

    assert len(tree) == 1
    assert [child.id for child in tree[0].children] == ["x"]


def test_build_tree_survives_a_corrupt_cycle():
    a = Folder(id="a", title="A", children=("b",))
    b = Folder(id="b", title="B", children=("a",), parent_id="a")
    store = _store(a, b)

    tree = store.build_tree()

    assert tree[0].children[0].id == "b"
    assert tree[0].children[0].children == ()


def test_build_then_flatten_round_trips_relations():
    store = _store()
    dev = _folder(store, "Development")
    frontend = _folder(store, "Frontend", dev.id)
    _leaf(store, "React", frontend.id)
    _leaf(store, "Vue", frontend.id)
    _folder(store, "Empty", dev.id)
    _leaf(store, "Loose")

    flat = flatten(store.build_tree())

    assert _relations(flat) == _relations(store.repository.all())


def test_delete_cascades_to_every_depth():
    store = _store()
    top = _folder(store, "Top")
    middle = _folder(store, "Middle", top.id)
    bottom = _folder(store, "Bottom", middle.id)
    _leaf(store, "Deep", bottom.id)
    survivor = _leaf(store, "Survivor")

    deleted = store.delete(top.id)

    assert deleted == 4
    assert [entity.id for entity in store.repository.all()] == [survivor.id]


def test_delete_detaches_from_parent_preserving_sibling_order():
    store = _store()
    root = _folder(store, "Root")
    first = _leaf(store, "First", root.id)
    doomed = _folder(store, "Doomed", root.id)
    _leaf(store, "Inside", doomed.id)
    last = _leaf(store, "Last", root.id)

    store.delete(doomed.id)

    assert store.repository.get(root.id).children == (first.id, last.id)
    assert store.find_inconsistencies() == []


def test_delete_sweeps_records_that_only_point_at_the_folder():
    folder = Folder(id="f", title="Folder")
    unlisted = Leaf(id="u", title="Unlisted", url="https://u", parent_id="f")
    store = _store(folder, unlisted)

    assert store.delete("f") == 2
    assert store.repository.all() == []


def test_unknown_ids_raise_not_found_without_changes():
    store = _store()
    root = _folder(store, "Root")
    _leaf(store, "Child", root.id)
    before = _snapshot(store)

    with pytest.raises(NotFound):
        store.delete("missing")
    with pytest.raises(NotFound):
        store.update("missing", {"title": "Nope"})
    with pytest.raises(NotFound):
        store.move("missing", root.id)

    assert _snapshot(store) == before


def test_update_changes_only_targeted_fields():
    store = _store()
    root = _folder(store, "Root")
    mid = _folder(store, "Mid", root.id)
    leaf = _leaf(store, "Old", mid.id, url="https://old")
    before = _snapshot(store)

    updated = store.update(leaf.id, {"title": "New", "url": "https://new"})

    assert updated.title == "New"
    assert updated.url == "https://new"
    assert updated.created_at == leaf.created_at
    assert updated.updated_at >= leaf.updated_at
    assert _snapshot(store) == before


def test_update_ignores_url_on_folders_and_immutable_fields():
    store = _store()
    folder = _folder(store, "Folder")

    updated = store.update(
        folder.id, {"url": "https://nope", "id": "other", "isFolder": False}
    )

    assert isinstance(updated, Folder)
    assert updated.id == folder.id
    assert store.repository.get(folder.id).title == "Folder"


def test_update_rejects_empty_title():
    store = _store()
    leaf = _leaf(store, "Keep")

    with pytest.raises(BadRequest):
        store.update(leaf.id, {"title": ""})

    assert store.repository.get(leaf.id).title == "Keep"


def test_update_children_only_reorders():
    store = _store()
    root = _folder(store, "Root")
    a = _leaf(store, "A", root.id)
    b = _leaf(store, "B", root.id)

    store.update(root.id, {"children": [b.id, a.id]})
    assert store.repository.get(root.id).children == (b.id, a.id)

    with pytest.raises(BadRequest):
        store.update(root.id, {"children": [a.id]})
    with pytest.raises(BadRequest):
        store.update(a.id, {"children": []})


def test_update_parent_id_moves_between_folders():
    store = _store()
    left = _folder(store, "Left")
    right = _folder(store, "Right")
    leaf = _leaf(store, "Leaf", left.id)

    store.update(leaf.id, {"parentId": right.id})

    assert store.repository.get(left.id).children == ()
    assert store.repository.get(right.id).children == (leaf.id,)
    assert store.repository.get(leaf.id).parent_id == right.id
    assert store.find_inconsistencies() == []


def test_move_to_position_and_to_root():
    store = _store()
    root = _folder(store, "Root")
    a = _leaf(store, "A", root.id)
    b = _leaf(store, "B", root.id)
    loose = _leaf(store, "Loose")

    store.move(loose.id, root.id, position=1)
    assert store.repository.get(root.id).children == (a.id, loose.id, b.id)

    store.move(a.id, None)
    assert store.repository.get(root.id).children == (loose.id, b.id)
    assert store.repository.get(a.id).parent_id is None
    assert store.find_inconsistencies() == []


def test_move_refuses_cycles():
    store = _store()
    top = _folder(store, "Top")
    inner = _folder(store, "Inner", top.id)

    with pytest.raises(BadRequest):
        store.move(top.id, inner.id)
    with pytest.raises(BadRequest):
        store.move(top.id, top.id)

    assert store.repository.get(inner.id).parent_id == top.id
    assert store.repository.get(top.id).parent_id is None


def test_mixed_operations_keep_links_bidirectional():
    store = _store()
    root = _folder(store, "Root")
    sub = _folder(store, "Sub", root.id)
    items = [_leaf(store, f"Leaf {i}", sub.id) for i in range(4)]
    store.delete(items[1].id)
    other = _folder(store, "Other", root.id)
    store.move(items[2].id, other.id)
    store.delete(sub.id)
    _leaf(store, "Late", other.id)

    assert store.find_inconsistencies() == []
    for entity in store.repository.all():
        if entity.parent_id:
            parent = store.repository.get(entity.parent_id)
            assert parent.children.count(entity.id) == 1


def test_import_forest_assigns_fresh_ids():
    store = _store()

    created = store.import_forest(initial_state().bookmarks)

    assert created == 3
    tree = store.build_tree()
    assert tree[0].title == "Development"
    assert tree[0].id != "1"
    assert tree[0].children[0].children[0].url == "https://react.dev"
    assert store.find_inconsistencies() == []


def test_repair_restores_bidirectional_links():
    folder = Folder(id="f", title="Folder", children=("gone", "a", "a"))
    listed = Leaf(id="a", title="A", url="https://a", parent_id="wrong")
    unlisted = Leaf(id="b", title="B", url="https://b", parent_id="f")
    dangling = Leaf(id="c", title="C", url="https://c", parent_id="missing")
    store = _store(folder, listed, unlisted, dangling)

    kinds = {problem.kind for problem in store.find_inconsistencies()}
    assert kinds == {
        "missing_child",
        "duplicate_child",
        "parent_mismatch",
        "unlisted_child",
        "unreachable",
    }

    store.repair()

    assert store.find_inconsistencies() == []
    assert store.repository.get("f").children == ("a", "b")
    assert store.repository.get("a").parent_id == "f"
    assert store.repository.get("c").parent_id is None


def test_repair_promotes_a_folder_that_is_its_own_parent():
    looped = Folder(id="x", title="Loop", parent_id="x")
    root = Leaf(id="r", title="Root", url="https://r")
    store = _store(looped, root)

    problems = store.find_inconsistencies()
    assert ("unlisted_child", "x") in {(p.kind, p.item_id) for p in problems}
    assert [node.id for node in store.build_tree()] == ["r"]

    store.repair()

    repaired = store.repository.get("x")
    assert repaired.parent_id is None
    assert repaired.children == ()
    assert store.find_inconsistencies() == []
    assert sorted(node.id for node in store.build_tree()) == ["r", "x"]


def test_find_inconsistencies_reports_cycles_and_what_hangs_off_them():
    a = Folder(id="a", title="A", children=("b",), parent_id="b")
    b = Folder(id="b", title="B", children=("a", "c"), parent_id="a")
    c = Leaf(id="c", title="C", url="https://c", parent_id="b")
    store = _store(a, b, c)

    problems = {(p.kind, p.item_id) for p in store.find_inconsistencies()}

    assert problems == {("cycle", "a"), ("cycle", "b"), ("unreachable", "c")}
    assert store.build_tree() == []


def test_repair_breaks_mutual_parent_cycle():
    a = Folder(id="a", title="A", parent_id="b")
    b = Folder(id="b", title="B", parent_id="a")
    store = _store(a, b)

    store.repair()

    assert store.find_inconsistencies() == []
    tree = store.build_tree()
    assert [node.id for node in tree] == ["a"]
    assert [child.id for child in tree[0].children] == ["b"]
    assert store.repository.get("b").parent_id == "a"
