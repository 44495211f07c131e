from __future__ import annotations

import uuid
from typing import cast

from bs4 import BeautifulSoup, Tag

from treemarks.services.common import normalize_url
from treemarks.tree.entity import Entity, Folder, Leaf


def _iter_dt_entries(dl: Tag) -> list[Tag]:
    entries: list[Tag] = []
    for dt in dl.find_all("dt"):
        if not isinstance(dt, Tag):
            continue
        parent_dl = dt.find_parent("dl")
        if parent_dl is dl:
            entries.append(cast(Tag, dt))
    return entries


def _find_nested_dl(dt: Tag) -> Tag | None:
    nested = dt.find("dl")
    if isinstance(nested, Tag):
        return nested

    sibling = dt.next_sibling
    while sibling is not None:
        if isinstance(sibling, Tag):
            name = (sibling.name or "").lower()
            if name == "dl":
                return sibling
            if name == "dt":
                return None
        sibling = sibling.next_sibling
    return None


def _find_anchor_in_dt(dt: Tag) -> Tag | None:
    for anchor in dt.find_all("a"):
        if isinstance(anchor, Tag) and anchor.find_parent("dt") is dt:
            return anchor
    return None


def _find_folder_in_dt(dt: Tag) -> Tag | None:
    for folder in dt.find_all(["h3", "h2", "h1"]):
        if isinstance(folder, Tag) and folder.find_parent("dt") is dt:
            return folder
    return None


def _find_heading_for(
    dt: Tag, nested_dl: Tag | None, entry_ids: set[int]
) -> tuple[Tag | None, Tag | None]:
    folder = _find_folder_in_dt(dt)
    if nested_dl is None:
        return folder, None
    owner = nested_dl.find_previous(["h3", "h2", "h1"])
    if not isinstance(owner, Tag):
        return folder, None
    if folder is None:
        # A heading inside another entry of this list is parsed on its own turn.
        owner_dt = owner.find_parent("dt")
        if owner_dt is not None and id(owner_dt) in entry_ids:
            return None, None
        return owner, nested_dl
    if owner is not folder:
        return folder, None
    return folder, nested_dl


def _parse_dl(dl: Tag, parent_id: str | None, consumed: set[int]) -> tuple:
    # lxml leaves <DT> unclosed, so a folder that follows a link can sit
    # inside the link's <dt>. ``consumed`` holds the ids of headings and
    # lists already turned into folders.
    consumed.add(id(dl))
    nodes: list[Entity] = []
    seen_urls: set[str] = set()
    entries = _iter_dt_entries(dl)
    entry_ids = {id(entry) for entry in entries}
    for dt in entries:
        anchor = _find_anchor_in_dt(dt)
        href = ""
        if isinstance(anchor, Tag):
            href_value = anchor.get("href")
            href = href_value.strip() if isinstance(href_value, str) else ""

        if href:
            normalized = normalize_url(href)
            if normalized not in seen_urls:
                seen_urls.add(normalized)
                text = anchor.get_text(strip=True) if isinstance(anchor, Tag) else ""
                nodes.append(
                    Leaf(
                        id=uuid.uuid4().hex,
                        title=text.strip() or href,
                        url=href,
                        parent_id=parent_id,
                    )
                )

        nested_dl = _find_nested_dl(dt)
        if nested_dl is not None and id(nested_dl) in consumed:
            nested_dl = None
        folder, nested_dl = _find_heading_for(dt, nested_dl, entry_ids)
        if folder is None or id(folder) in consumed:
            continue
        if href and nested_dl is None:
            continue
        consumed.add(id(folder))

        folder_id = uuid.uuid4().hex
        children = ()
        if nested_dl is not None:
            children = _parse_dl(nested_dl, folder_id, consumed)
        nodes.append(
            Folder(
                id=folder_id,
                title=folder.get_text(strip=True) or "Untitled Folder",
                children=children,
                parent_id=parent_id,
            )
        )
    return tuple(nodes)


def parse_bookmark_html(html: str) -> tuple:
    """Parse a browser's Netscape bookmark export into a nested forest."""
    soup = BeautifulSoup(html, "lxml")
    root = soup.find("dl")
    if not isinstance(root, Tag):
        return ()
    return _parse_dl(root, None, set())
