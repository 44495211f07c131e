"""Flat storage for bookmark entities.

A repository holds entities in their flat form (folder ``children`` are ids)
and exposes the handful of primitives the tree store is written against.
``push_child`` and ``pull_child`` are the only array mutations and each must
be atomic on its own; grouping several calls into one unit is the job of
``commit``/``rollback``.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from functools import wraps

from sqlalchemy.exc import SQLAlchemyError

from treemarks.errors import StoreFailure
from treemarks.extensions import db
from treemarks.models import BookmarkRecord
from treemarks.tree.entity import Entity, Folder


class Repository:
    def new_id(self) -> str:
        return uuid.uuid4().hex

    def get(self, item_id: str) -> Entity | None:
        raise NotImplementedError

    def get_many(self, item_ids) -> list[Entity]:
        """Batch lookup. Missing ids are skipped and order is not guaranteed."""
        raise NotImplementedError

    def find_children(self, parent_id: str | None) -> list[Entity]:
        """Entities whose ``parent_id`` equals ``parent_id``, in insertion order."""
        raise NotImplementedError

    def all(self) -> list[Entity]:
        raise NotImplementedError

    def put(self, entity: Entity) -> None:
        raise NotImplementedError

    def delete(self, item_id: str) -> bool:
        raise NotImplementedError

    def push_child(
        self, parent_id: str, child_id: str, position: int | None = None
    ) -> bool:
        raise NotImplementedError

    def pull_child(self, parent_id: str, child_id: str) -> bool:
        raise NotImplementedError

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass


def _insert_child(children: list[str], child_id: str, position: int | None):
    if child_id in children:
        return children
    if position is None or position >= len(children):
        return children + [child_id]
    return children[: max(position, 0)] + [child_id] + children[max(position, 0) :]


class MemoryRepository(Repository):
    """Arena of entities keyed by id; dict order is insertion order."""

    def __init__(self, entities=None):
        self._items: dict[str, Entity] = {}
        for entity in entities or []:
            self._items[entity.id] = entity
        self._committed = dict(self._items)

    def get(self, item_id):
        return self._items.get(item_id)

    def get_many(self, item_ids):
        return [self._items[item_id] for item_id in item_ids if item_id in self._items]

    def find_children(self, parent_id):
        return [item for item in self._items.values() if item.parent_id == parent_id]

    def all(self):
        return list(self._items.values())

    def put(self, entity):
        self._items[entity.id] = entity

    def delete(self, item_id):
        return self._items.pop(item_id, None) is not None

    def push_child(self, parent_id, child_id, position=None):
        parent = self._items.get(parent_id)
        if not isinstance(parent, Folder):
            return False
        children = _insert_child(list(parent.children), child_id, position)
        self._items[parent_id] = replace(parent, children=tuple(children))
        return True

    def pull_child(self, parent_id, child_id):
        parent = self._items.get(parent_id)
        if not isinstance(parent, Folder):
            return False
        children = tuple(c for c in parent.children if c != child_id)
        self._items[parent_id] = replace(parent, children=children)
        return len(children) != len(parent.children)

    def commit(self):
        self._committed = dict(self._items)

    def rollback(self):
        self._items = dict(self._committed)


def _store_call(func):
    @wraps(func)
    def wrapped(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreFailure(f"{func.__name__} failed: {exc}") from exc

    return wrapped


class SqlRepository(Repository):
    """The ``bookmarks`` table, restricted to the rows of a single owner."""

    def __init__(self, owner_id: str, session=None):
        self.owner_id = owner_id
        self.session = session or db.session

    def _query(self):
        return BookmarkRecord.query.filter_by(user_id=self.owner_id)

    def _record(self, item_id: str, lock: bool = False) -> BookmarkRecord | None:
        query = self._query().filter_by(id=item_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    @_store_call
    def get(self, item_id):
        record = self._record(item_id)
        return record.to_entity() if record else None

    @_store_call
    def get_many(self, item_ids):
        item_ids = list(item_ids)
        if not item_ids:
            return []
        records = self._query().filter(BookmarkRecord.id.in_(item_ids)).all()
        return [record.to_entity() for record in records]

    @_store_call
    def find_children(self, parent_id):
        records = (
            self._query()
            .filter_by(parent_id=parent_id)
            .order_by(BookmarkRecord.pk.asc())
            .all()
        )
        return [record.to_entity() for record in records]

    @_store_call
    def all(self):
        records = self._query().order_by(BookmarkRecord.pk.asc()).all()
        return [record.to_entity() for record in records]

    @_store_call
    def put(self, entity):
        record = self._record(entity.id)
        if not record:
            record = BookmarkRecord(user_id=self.owner_id)
            self.session.add(record)
        record.apply(entity)
        self.session.flush()

    @_store_call
    def delete(self, item_id):
        record = self._record(item_id)
        if not record:
            return False
        self.session.delete(record)
        self.session.flush()
        return True

    @_store_call
    def push_child(self, parent_id, child_id, position=None):
        parent = self._record(parent_id, lock=True)
        if not parent or not parent.is_folder:
            return False
        parent.children = _insert_child(list(parent.children or []), child_id, position)
        self.session.flush()
        return True

    @_store_call
    def pull_child(self, parent_id, child_id):
        parent = self._record(parent_id, lock=True)
        if not parent or not parent.is_folder:
            return False
        before = list(parent.children or [])
        parent.children = [c for c in before if c != child_id]
        self.session.flush()
        return len(parent.children) != len(before)

    @_store_call
    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
