"""In-memory mirror of the bookmark forest.

``reduce`` is a pure function ``(TreeState, action) -> TreeState``: no I/O,
and the input state is never modified. Nodes are frozen dataclasses, so
untouched subtrees are shared between the old and the new state.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from treemarks.tree.entity import Entity, Folder, Leaf, with_parent


@dataclass(frozen=True)
class TreeState:
    bookmarks: tuple = ()
    expanded: frozenset = field(default_factory=frozenset)


@dataclass(frozen=True)
class AddItem:
    parent_id: str | None
    item: Entity


@dataclass(frozen=True)
class DeleteItem:
    item_id: str


@dataclass(frozen=True)
class UpdateItem:
    item_id: str
    title: str
    url: str | None = None


@dataclass(frozen=True)
class MoveItem:
    item_id: str
    parent_id: str | None


@dataclass(frozen=True)
class ToggleFolder:
    folder_id: str


def _add(items: tuple, parent_id: str, item: Entity) -> tuple:
    result = []
    for node in items:
        if isinstance(node, Folder):
            if node.id == parent_id:
                node = replace(node, children=node.children + (item,))
            else:
                node = replace(node, children=_add(node.children, parent_id, item))
        result.append(node)
    return tuple(result)


def _remove(items: tuple, item_id: str) -> tuple:
    result = []
    for node in items:
        if node.id == item_id:
            continue
        if isinstance(node, Folder):
            node = replace(node, children=_remove(node.children, item_id))
        result.append(node)
    return tuple(result)


def _update(items: tuple, item_id: str, title: str, url: str | None) -> tuple:
    result = []
    for node in items:
        if node.id == item_id:
            if isinstance(node, Leaf) and url is not None:
                node = replace(node, title=title, url=url)
            else:
                node = replace(node, title=title)
        elif isinstance(node, Folder):
            node = replace(node, children=_update(node.children, item_id, title, url))
        result.append(node)
    return tuple(result)


def find_node(items, item_id: str) -> Entity | None:
    for node in items:
        if node.id == item_id:
            return node
        if isinstance(node, Folder):
            found = find_node(node.children, item_id)
            if found is not None:
                return found
    return None


def _insert(bookmarks: tuple, parent_id: str | None, item: Entity) -> tuple:
    item = with_parent(item, parent_id)
    if parent_id is None:
        return bookmarks + (item,)
    return _add(bookmarks, parent_id, item)


def _reduce_add(state: TreeState, action: AddItem) -> TreeState:
    if action.parent_id is not None and not isinstance(
        find_node(state.bookmarks, action.parent_id), Folder
    ):
        return state
    expanded = state.expanded
    if isinstance(action.item, Folder):
        expanded = expanded | {action.item.id}
    return replace(
        state,
        bookmarks=_insert(state.bookmarks, action.parent_id, action.item),
        expanded=expanded,
    )


def _subtree_ids(node: Entity) -> set[str]:
    ids = {node.id}
    if isinstance(node, Folder):
        for child in node.children:
            ids |= _subtree_ids(child)
    return ids


def _reduce_delete(state: TreeState, action: DeleteItem) -> TreeState:
    node = find_node(state.bookmarks, action.item_id)
    if node is None:
        return state
    return replace(
        state,
        bookmarks=_remove(state.bookmarks, action.item_id),
        expanded=state.expanded - _subtree_ids(node),
    )


def _reduce_update(state: TreeState, action: UpdateItem) -> TreeState:
    bookmarks = _update(state.bookmarks, action.item_id, action.title, action.url)
    return replace(state, bookmarks=bookmarks)


def _reduce_move(state: TreeState, action: MoveItem) -> TreeState:
    node = find_node(state.bookmarks, action.item_id)
    if node is None:
        return state
    if action.parent_id is not None:
        if action.parent_id == node.id:
            return state
        if not isinstance(find_node(state.bookmarks, action.parent_id), Folder):
            return state
        if isinstance(node, Folder) and find_node(node.children, action.parent_id):
            return state
    bookmarks = _remove(state.bookmarks, node.id)
    return replace(state, bookmarks=_insert(bookmarks, action.parent_id, node))


def _reduce_toggle(state: TreeState, action: ToggleFolder) -> TreeState:
    return replace(state, expanded=state.expanded ^ {action.folder_id})


_HANDLERS = {
    AddItem: _reduce_add,
    DeleteItem: _reduce_delete,
    UpdateItem: _reduce_update,
    MoveItem: _reduce_move,
    ToggleFolder: _reduce_toggle,
}


def reduce(state: TreeState, action) -> TreeState:
    handler = _HANDLERS.get(type(action))
    if handler is None:
        return state
    return handler(state, action)


def _matches(node: Entity, query: str) -> bool:
    if query in node.title.lower():
        return True
    return isinstance(node, Leaf) and query in (node.url or "").lower()


def filter_tree(query: str, items) -> tuple:
    """Keep nodes whose title or url contains ``query``, case-insensitively.

    A folder stays when it matches itself or when anything below it does, and
    its children are replaced by the filtered children either way. The query
    is not trimmed, so only an empty query returns everything.
    """
    q = (query or "").lower()
    if not q:
        return tuple(items)
    return _filter(q, items)


def _filter(query: str, items) -> tuple:
    result = []
    for node in items:
        if isinstance(node, Folder):
            children = _filter(query, node.children)
            if children or _matches(node, query):
                result.append(replace(node, children=children))
        elif _matches(node, query):
            result.append(node)
    return tuple(result)


def initial_state() -> TreeState:
    react_docs = Leaf(
        id="3",
        title="React Documentation",
        url="https://react.dev",
        parent_id="2",
    )
    frontend = Folder(id="2", title="Frontend", children=(react_docs,), parent_id="1")
    development = Folder(id="1", title="Development", children=(frontend,))
    return TreeState(bookmarks=(development,), expanded=frozenset({"1", "2"}))
