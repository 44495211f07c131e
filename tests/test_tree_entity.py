from datetime import datetime, timezone

from treemarks.tree.entity import (
    Folder,
    Leaf,
    child_ids,
    entity_from_dict,
    entity_to_dict,
)


def test_folder_payload_parses_nested_children():
    payload = {
        "id": "1",
        "title": "Development",
        "isFolder": True,
        "children": [
            {"id": "2", "title": "Frontend", "isFolder": True, "children": ["9"]},
            {"id": "3", "title": "Docs", "isFolder": False, "url": "https://docs"},
        ],
    }

    folder = entity_from_dict(payload)

    assert isinstance(folder, Folder)
    assert child_ids(folder) == ("2", "3")
    assert isinstance(folder.children[0], Folder)
    assert folder.children[0].children == ("9",)
    assert isinstance(folder.children[1], Leaf)
    assert folder.children[1].url == "https://docs"


def test_leaf_serializes_url_without_children():
    created = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    leaf = Leaf(
        id="a",
        title="Example",
        url="https://example.com",
        parent_id="f",
        created_at=created,
        updated_at=created,
        user_id="u1",
    )

    payload = entity_to_dict(leaf)

    assert payload["isFolder"] is False
    assert payload["url"] == "https://example.com"
    assert payload["parentId"] == "f"
    assert payload["createdAt"] == "2024-05-01T12:00:00+00:00"
    assert "children" not in payload


def test_folder_serializes_children_without_url():
    folder = Folder(id="f", title="Folder", children=("a", "b"))

    payload = entity_to_dict(folder)

    assert payload["isFolder"] is True
    assert payload["children"] == ["a", "b"]
    assert "url" not in payload


def test_timestamps_parse_from_iso_strings():
    leaf = entity_from_dict(
        {
            "id": "a",
            "title": " Spaced ",
            "url": "https://example.com",
            "createdAt": "2024-05-01T12:00:00+00:00",
        }
    )

    assert leaf.title == "Spaced"
    assert leaf.created_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    assert leaf.updated_at is None


def test_leaf_has_no_child_ids():
    assert child_ids(Leaf(id="a", title="A")) == ()
