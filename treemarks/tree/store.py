from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from treemarks.errors import BadRequest, NotFound
from treemarks.tree.entity import Entity, Folder, Leaf, child_ids, with_parent
from treemarks.tree.repository import Repository


logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Inconsistency:
    kind: str
    item_id: str
    detail: str


def flatten(forest) -> list[Entity]:
    """Turn a nested forest back into flat entities, parents before children."""
    flat: list[Entity] = []

    def walk(node: Entity, parent_id: str | None) -> None:
        node = with_parent(node, parent_id)
        if isinstance(node, Folder):
            flat.append(replace(node, children=child_ids(node)))
            for child in node.children:
                if not isinstance(child, str):
                    walk(child, node.id)
        else:
            flat.append(node)

    for root in forest:
        walk(root, None)
    return flat


def _clean_title(value) -> str:
    title = (value or "").strip() if isinstance(value, str) else ""
    if not title:
        raise BadRequest("title is required")
    return title


class TreeStore:
    """Forest operations over a flat repository.

    Folder ``children`` lists are authoritative for ownership; ``parent_id``
    is the back-reference and is kept in step by every mutation here.
    """

    def __init__(self, repository: Repository, owner_id: str | None = None):
        self.repository = repository
        self.owner_id = owner_id

    @contextmanager
    def _unit_of_work(self):
        try:
            yield
            self.repository.commit()
        except Exception:
            self.repository.rollback()
            raise

    def _require(self, item_id: str) -> Entity:
        entity = self.repository.get(item_id)
        if entity is None:
            raise NotFound("Bookmark not found")
        return entity

    def _require_folder(self, folder_id: str) -> Folder:
        parent = self.repository.get(folder_id)
        if parent is None:
            raise NotFound("Parent folder not found")
        if not isinstance(parent, Folder):
            raise BadRequest("parent must be a folder")
        return parent

    # Reads

    def build_tree(self) -> list[Entity]:
        roots = self.repository.find_children(None)
        return [self._assemble(root, set()) for root in roots]

    def _assemble(self, node: Entity, path: set[str]) -> Entity:
        if not isinstance(node, Folder) or not node.children:
            return node

        ids = child_ids(node)
        by_id = {child.id: child for child in self.repository.get_many(ids)}
        path = path | {node.id}
        assembled = []
        for child_id in ids:
            child = by_id.get(child_id)
            if child is None:
                logger.warning("Folder %s lists missing child %s", node.id, child_id)
                continue
            if child_id in path:
                logger.warning("Cycle through %s below folder %s", child_id, node.id)
                continue
            assembled.append(self._assemble(child, path))
        return replace(node, children=tuple(assembled))

    # Writes

    def create(self, payload: dict) -> Entity:
        title = _clean_title(payload.get("title"))
        parent_id = payload.get("parentId") or None
        now = utcnow()

        with self._unit_of_work():
            if parent_id:
                self._require_folder(parent_id)
            item_id = self.repository.new_id()
            if payload.get("isFolder"):
                entity: Entity = Folder(
                    id=item_id,
                    title=title,
                    parent_id=parent_id,
                    created_at=now,
                    updated_at=now,
                    user_id=self.owner_id,
                )
            else:
                entity = Leaf(
                    id=item_id,
                    title=title,
                    url=(payload.get("url") or "").strip(),
                    parent_id=parent_id,
                    created_at=now,
                    updated_at=now,
                    user_id=self.owner_id,
                )
            self.repository.put(entity)
            if parent_id:
                self.repository.push_child(parent_id, item_id)

        logger.info("Created %s %s under %s", _kind(entity), item_id, parent_id)
        return entity

    def update(self, item_id: str, changes: dict) -> Entity:
        with self._unit_of_work():
            entity = self._require(item_id)
            updates: dict = {}

            if "title" in changes:
                updates["title"] = _clean_title(changes.get("title"))
            if "url" in changes and isinstance(entity, Leaf):
                updates["url"] = (changes.get("url") or "").strip()
            if "children" in changes:
                if not isinstance(entity, Folder):
                    raise BadRequest("only folders have children")
                requested = tuple(str(c) for c in changes.get("children") or ())
                if sorted(requested) != sorted(entity.children):
                    raise BadRequest("children may only be reordered")
                updates["children"] = requested

            entity = replace(entity, updated_at=utcnow(), **updates)
            self.repository.put(entity)

            # A changed parent goes through the move path so both folders'
            # children lists follow.
            new_parent = changes.get("parentId") or None
            if "parentId" in changes and new_parent != entity.parent_id:
                entity = self._move(entity, new_parent, None)

        logger.info("Updated %s", item_id)
        return entity

    def move(
        self, item_id: str, parent_id: str | None, position: int | None = None
    ) -> Entity:
        with self._unit_of_work():
            entity = self._require(item_id)
            entity = self._move(entity, parent_id or None, position)
        logger.info("Moved %s to %s", item_id, parent_id)
        return entity

    def _move(self, entity: Entity, parent_id: str | None, position: int | None):
        # Roots have no stored order.
        if position is not None and not parent_id:
            raise BadRequest("position requires a parent folder")
        if parent_id:
            self._require_folder(parent_id)
            if parent_id == entity.id or parent_id in self._descendant_ids(entity):
                raise BadRequest("cannot move a folder into itself")
        if entity.parent_id:
            self.repository.pull_child(entity.parent_id, entity.id)
        entity = replace(entity, parent_id=parent_id, updated_at=utcnow())
        self.repository.put(entity)
        if parent_id:
            self.repository.push_child(parent_id, entity.id, position)
        return entity

    def delete(self, item_id: str) -> int:
        with self._unit_of_work():
            target = self._require(item_id)
            descendants = self._descendants(target)
            for descendant in descendants:
                self.repository.delete(descendant.id)
            if target.parent_id:
                self.repository.pull_child(target.parent_id, target.id)
            self.repository.delete(target.id)

        logger.info("Deleted %s and %d descendants", item_id, len(descendants))
        return len(descendants) + 1

    def _descendants(self, root: Entity) -> list[Entity]:
        # Listed children and records that merely point back at a collected
        # folder are both swept, so nothing below the root survives.
        found: list[Entity] = []
        seen = {root.id}
        pending = [root]
        while pending:
            node = pending.pop()
            candidates = self.repository.get_many(child_ids(node))
            candidates += self.repository.find_children(node.id)
            for child in candidates:
                if child.id in seen:
                    continue
                seen.add(child.id)
                found.append(child)
                pending.append(child)
        return found

    def _descendant_ids(self, root: Entity) -> set[str]:
        return {entity.id for entity in self._descendants(root)}

    def import_forest(self, nodes, parent_id: str | None = None) -> int:
        """Insert a nested forest under ``parent_id`` with freshly assigned ids.

        Creation timestamps carried by the nodes are kept; ownership is not.
        """
        created = 0
        now = utcnow()

        def insert(node: Entity, parent: str | None) -> str:
            nonlocal created
            item_id = self.repository.new_id()
            if isinstance(node, Folder):
                entity: Entity = Folder(
                    id=item_id,
                    title=_clean_title(node.title),
                    parent_id=parent,
                    created_at=node.created_at or now,
                    updated_at=now,
                    user_id=self.owner_id,
                )
            else:
                entity = Leaf(
                    id=item_id,
                    title=_clean_title(node.title),
                    url=node.url,
                    parent_id=parent,
                    created_at=node.created_at or now,
                    updated_at=now,
                    user_id=self.owner_id,
                )
            self.repository.put(entity)
            if parent:
                self.repository.push_child(parent, item_id)
            created += 1
            if isinstance(node, Folder):
                for child in node.children:
                    if not isinstance(child, str):
                        insert(child, item_id)
            return item_id

        with self._unit_of_work():
            if parent_id:
                self._require_folder(parent_id)
            for node in nodes:
                insert(node, parent_id)

        logger.info("Imported %d items under %s", created, parent_id)
        return created

    # Consistency

    def find_inconsistencies(self) -> list[Inconsistency]:
        entities = {entity.id: entity for entity in self.repository.all()}
        problems: list[Inconsistency] = []
        claimed: dict[str, str] = {}

        for entity in entities.values():
            if not isinstance(entity, Folder):
                continue
            seen: set[str] = set()
            for child_id in entity.children:
                if child_id in seen:
                    problems.append(
                        Inconsistency("duplicate_child", entity.id, child_id)
                    )
                    continue
                seen.add(child_id)
                child = entities.get(child_id)
                if child is None:
                    problems.append(Inconsistency("missing_child", entity.id, child_id))
                elif child_id in claimed:
                    problems.append(
                        Inconsistency("multiple_parents", child_id, entity.id)
                    )
                else:
                    claimed[child_id] = entity.id
                    if child.parent_id != entity.id:
                        problems.append(
                            Inconsistency("parent_mismatch", child_id, entity.id)
                        )

        for entity in entities.values():
            if entity.parent_id and entity.id not in claimed:
                problems.append(
                    Inconsistency("unlisted_child", entity.id, entity.parent_id)
                )

        reachable = _reachable(entities)
        for item_id in entities:
            if item_id in reachable:
                continue
            if item_id in _ancestor_chain(item_id, entities, claimed)[1:]:
                problems.append(Inconsistency("cycle", item_id, "ancestor of itself"))
            else:
                problems.append(
                    Inconsistency("unreachable", item_id, "not below any root")
                )
        return problems

    def repair(self) -> list[Inconsistency]:
        problems = self.find_inconsistencies()
        if not problems:
            return problems

        with self._unit_of_work():
            entities = {entity.id: entity for entity in self.repository.all()}
            owner: dict[str, str] = {}
            for entity in entities.values():
                if not isinstance(entity, Folder):
                    continue
                kept = []
                for child_id in entity.children:
                    if child_id not in entities or child_id in owner:
                        continue
                    owner[child_id] = entity.id
                    kept.append(child_id)
                if tuple(kept) != entity.children:
                    entities[entity.id] = replace(entity, children=tuple(kept))

            for item_id, entity in list(entities.items()):
                parent_id = owner.get(item_id)
                if parent_id is None and entity.parent_id:
                    parent = entities.get(entity.parent_id)
                    if isinstance(parent, Folder):
                        entities[parent.id] = replace(
                            parent, children=parent.children + (item_id,)
                        )
                        owner[item_id] = parent.id
                        continue
                if entity.parent_id != parent_id:
                    entities[item_id] = replace(entities[item_id], parent_id=parent_id)

            # Whatever is still cut off from the roots hangs off a cycle.
            # Detach one member of each cycle and promote it to a root.
            while True:
                reachable = _reachable(entities)
                stranded = [i for i in entities if i not in reachable]
                if not stranded:
                    break
                chain = _ancestor_chain(stranded[0], entities, owner)
                item_id = chain[-1]
                parent = entities[owner.pop(item_id)]
                entities[parent.id] = replace(
                    parent, children=tuple(c for c in parent.children if c != item_id)
                )
                entities[item_id] = replace(entities[item_id], parent_id=None)
                logger.warning("Promoted %s to a root to break a cycle", item_id)

            for entity in entities.values():
                self.repository.put(entity)

        logger.warning("Repaired %d tree inconsistencies", len(problems))
        return problems


def _reachable(entities: dict[str, Entity]) -> set[str]:
    pending = [i for i, entity in entities.items() if entity.parent_id is None]
    reached = set(pending)
    while pending:
        entity = entities[pending.pop()]
        for child_id in child_ids(entity):
            if child_id in entities and child_id not in reached:
                reached.add(child_id)
                pending.append(child_id)
    return reached


def _ancestor_chain(item_id: str, entities: dict, owner: dict[str, str]) -> list[str]:
    """Ids walked upward from ``item_id``, ending at a root or the first repeat."""
    chain = [item_id]
    seen = {item_id}
    current = item_id
    while True:
        current = owner.get(current) or getattr(entities.get(current), "parent_id", None)
        if current is None or current not in entities:
            return chain
        chain.append(current)
        if current in seen:
            return chain
        seen.add(current)


def _kind(entity: Entity) -> str:
    return "folder" if isinstance(entity, Folder) else "bookmark"
