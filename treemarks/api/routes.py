from __future__ import annotations

from flask import current_app, jsonify, request

from treemarks.api import api_bp
from treemarks.errors import BadRequest, StoreFailure, TreeError
from treemarks.services.bookmark_import import parse_bookmark_html
from treemarks.tree.entity import entity_from_dict, entity_to_dict
from treemarks.tree.reducer import filter_tree
from treemarks.tree.repository import SqlRepository
from treemarks.tree.store import TreeStore


STORE_FAILURE_MESSAGES = {
    "api.bookmarks_list": "Failed to fetch bookmarks",
    "api.bookmarks_create": "Failed to create bookmark",
    "api.bookmarks_update": "Failed to update bookmark",
    "api.bookmarks_delete": "Failed to delete bookmark",
    "api.bookmarks_move": "Failed to move bookmark",
    "api.bookmarks_import": "Failed to import bookmarks",
}


def _owner_id() -> str:
    owner = (request.headers.get("X-User-Id") or "").strip()
    return owner or current_app.config["DEFAULT_OWNER_ID"]


def _store() -> TreeStore:
    owner_id = _owner_id()
    return TreeStore(SqlRepository(owner_id), owner_id=owner_id)


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise BadRequest("request body must be a JSON object")
    return payload


def _required_id(value) -> str:
    item_id = str(value or "").strip()
    if not item_id:
        raise BadRequest("Bookmark ID is required")
    return item_id


@api_bp.errorhandler(StoreFailure)
def handle_store_failure(exc: StoreFailure):
    current_app.logger.error("Database error: %s", exc.message)
    message = STORE_FAILURE_MESSAGES.get(request.endpoint, "Bookmark store failure")
    return jsonify({"error": message}), 500


@api_bp.errorhandler(TreeError)
def handle_tree_error(exc: TreeError):
    return jsonify({"error": exc.message}), exc.status_code


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok", "service": "treemarks"})


@api_bp.route("", methods=["GET"])
def bookmarks_list():
    tree = _store().build_tree()
    query = request.args.get("q") or ""
    if query:
        tree = filter_tree(query, tree)
    return jsonify({"bookmarks": [entity_to_dict(node) for node in tree]}), 200


@api_bp.route("", methods=["POST"])
def bookmarks_create():
    payload = _json_payload()
    bookmark = _store().create(payload)
    return (
        jsonify({"message": "Bookmark created", "bookmark": entity_to_dict(bookmark)}),
        201,
    )


@api_bp.route("", methods=["PUT"])
def bookmarks_update():
    payload = _json_payload()
    item_id = _required_id(payload.get("id"))
    changes = {key: value for key, value in payload.items() if key != "id"}
    _store().update(item_id, changes)
    return jsonify({"message": "Bookmark updated"}), 200


@api_bp.route("", methods=["DELETE"])
def bookmarks_delete():
    item_id = _required_id(request.args.get("id"))
    deleted = _store().delete(item_id)
    return jsonify({"message": "Bookmark deleted", "deleted": deleted}), 200


@api_bp.route("/move", methods=["PUT"])
def bookmarks_move():
    payload = _json_payload()
    item_id = _required_id(payload.get("id"))
    position = payload.get("position")
    if position is not None:
        try:
            position = int(position)
        except (TypeError, ValueError):
            raise BadRequest("position must be an integer") from None
    _store().move(item_id, payload.get("parentId") or None, position)
    return jsonify({"message": "Bookmark moved"}), 200


def _forest_from_json(payload: dict) -> tuple:
    items = payload.get("bookmarks")
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise BadRequest("bookmarks must be a list of objects")
    try:
        return tuple(entity_from_dict(item) for item in items)
    except ValueError:
        raise BadRequest("invalid timestamp in bookmarks") from None


@api_bp.route("/import", methods=["POST"])
def bookmarks_import():
    if request.is_json:
        payload = _json_payload()
        nodes = _forest_from_json(payload)
        parent_id = payload.get("parentId") or None
    else:
        upload = request.files.get("file")
        if not upload:
            raise BadRequest("file field is required")

        raw = upload.read(current_app.config["MAX_IMPORT_BYTES"] + 1)
        if len(raw) > current_app.config["MAX_IMPORT_BYTES"]:
            raise BadRequest("import file is too large")

        nodes = parse_bookmark_html(raw.decode("utf-8", errors="ignore"))
        parent_id = (request.form.get("parentId") or "").strip() or None
    imported = _store().import_forest(nodes, parent_id)
    return jsonify({"message": "Bookmarks imported", "imported": imported}), 201
