from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Union

from dateutil import parser as dt_parser


@dataclass(frozen=True)
class Leaf:
    id: str
    title: str
    url: str = ""
    parent_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    user_id: str | None = None

    is_folder = False


@dataclass(frozen=True)
class Folder:
    """A folder node.

    ``children`` holds child ids in the flat (stored) form and nested
    ``Folder``/``Leaf`` values in the tree form.
    """

    id: str
    title: str
    children: tuple = field(default_factory=tuple)
    parent_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    user_id: str | None = None

    is_folder = True


Entity = Union[Folder, Leaf]


def child_ids(entity: Entity) -> tuple[str, ...]:
    if not isinstance(entity, Folder):
        return ()
    return tuple(
        child if isinstance(child, str) else child.id for child in entity.children
    )


def with_parent(entity: Entity, parent_id: str | None) -> Entity:
    if entity.parent_id == parent_id:
        return entity
    return replace(entity, parent_id=parent_id)


def _timestamp(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return dt_parser.isoparse(str(value))


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def entity_from_dict(payload: dict) -> Entity:
    common = {
        "id": str(payload.get("id") or ""),
        "title": (payload.get("title") or "").strip(),
        "parent_id": payload.get("parentId") or None,
        "created_at": _timestamp(payload.get("createdAt")),
        "updated_at": _timestamp(payload.get("updatedAt")),
        "user_id": payload.get("userId"),
    }
    if payload.get("isFolder"):
        children = []
        for child in payload.get("children") or []:
            if isinstance(child, dict):
                children.append(entity_from_dict(child))
            else:
                children.append(str(child))
        return Folder(children=tuple(children), **common)
    return Leaf(url=(payload.get("url") or "").strip(), **common)


def entity_to_dict(entity: Entity) -> dict:
    payload = {
        "id": entity.id,
        "title": entity.title,
        "isFolder": entity.is_folder,
        "parentId": entity.parent_id,
        "createdAt": _isoformat(entity.created_at),
        "updatedAt": _isoformat(entity.updated_at),
        "userId": entity.user_id,
    }
    if isinstance(entity, Folder):
        payload["children"] = [
            child if isinstance(child, str) else entity_to_dict(child)
            for child in entity.children
        ]
    else:
        payload["url"] = entity.url
    return payload
