"""Import workspace JSON documents through the content tree, and export them back."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

from later_tree.core.importer.json_reader import parse_workspace_data
from later_tree.models.node import Container, Leaf, Node

if TYPE_CHECKING:
    from later_tree.service import ContentTree


@dataclass(frozen=True)
class ImportStats:
    """Summary of an import operation."""

    workspace_id: str
    entities_imported: int
    items_imported: int


def import_workspace(tree: "ContentTree", data: Any) -> ImportStats:
    """Create a new workspace from an export document.

    Every item goes through ``ContentTree.create_node``, so depth and parent
    rules apply as for interactive edits. If any step fails the partly built
    workspace is deleted again and the error propagates.
    """
    document = parse_workspace_data(data)
    workspace = tree.create_workspace(document.name)

    items_imported = 0
    try:
        for draft in document.entities:
            entity = tree.create_entity(
                workspace.id, kind=draft.kind, title=draft.title, body=draft.body
            )
            if draft.tags:
                tree.set_tags(entity.id, draft.tags)
            node_ids: dict[int, str] = {}
            for item in draft.items:
                parent_id = node_ids[item.parent_key] if item.parent_key is not None else None
                node = tree.create_node(
                    entity.id, item.title, parent_id=parent_id, description=item.description
                )
                if item.is_done:
                    tree.set_done(node.id, True)
                if item.tags:
                    tree.set_tags(node.id, item.tags)
                node_ids[item.key] = node.id
            items_imported += len(draft.items)
            logger.debug("Imported {} {!r} ({} items)", draft.kind, draft.title, len(draft.items))
    except Exception:
        logger.exception("Failed to import workspace {!r}", document.name)
        tree.delete_workspace(workspace.id)
        raise

    logger.info(
        "Import complete: workspace {!r}, {} entities, {} items",
        document.name, len(document.entities), items_imported,
    )
    return ImportStats(
        workspace_id=workspace.id,
        entities_imported=len(document.entities),
        items_imported=items_imported,
    )


def import_file(tree: "ContentTree", path: Path) -> ImportStats:
    return import_workspace(tree, json.loads(path.read_text()))


def _with_extras(
    entry: dict[str, Any], tags: tuple[str, ...], description: str = ""
) -> dict[str, Any]:
    """Add description and tags only when set, keeping plain exports minimal."""
    if description:
        entry["description"] = description
    if tags:
        entry["tags"] = list(tags)
    return entry


def _export_items(tree: "ContentTree", nodes: list[Node]) -> list[dict[str, Any]]:
    result = []
    for node in nodes:
        entry: dict[str, Any] = {"title": node.title, "done": node.is_done}
        _with_extras(entry, tree.get_tags(node.id), node.description)
        entry["children"] = _export_items(tree, tree.list_children(node.id))
        result.append(entry)
    return result


def export_workspace(tree: "ContentTree", workspace_id: str) -> dict[str, Any]:
    """Dump a workspace in the format :func:`import_workspace` reads."""
    workspace = tree.get_workspace(workspace_id)
    entities: list[dict[str, Any]] = []
    for entity in tree.list_entities(workspace_id):
        entry: dict[str, Any]
        if isinstance(entity, Leaf):
            entry = {"kind": str(entity.kind), "title": entity.title, "body": entity.body}
            entities.append(_with_extras(entry, tree.get_tags(entity.id)))
        elif isinstance(entity, Container):
            entry = {"kind": str(entity.kind), "title": entity.title}
            _with_extras(entry, tree.get_tags(entity.id))
            entry["items"] = _export_items(tree, tree.list_roots(entity.id))
            entities.append(entry)
    return {"workspace": {"name": workspace.name}, "entities": entities}
