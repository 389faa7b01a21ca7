"""Parse workspace JSON documents into import drafts."""

from collections import deque
from dataclasses import dataclass
from typing import Any

from later_tree.models.node import EntityKind


@dataclass(frozen=True)
class ItemDraft:
    """One item, flattened. ``parent_key`` points at an earlier draft's ``key``."""

    key: int
    parent_key: int | None
    title: str
    is_done: bool
    depth: int
    description: str = ""
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class EntityDraft:
    kind: EntityKind
    title: str
    body: str
    items: tuple[ItemDraft, ...]
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkspaceDocument:
    name: str
    entities: tuple[EntityDraft, ...]

    @property
    def item_count(self) -> int:
        return sum(len(e.items) for e in self.entities)


def _require_title(raw: dict[str, Any], where: str) -> str:
    title = raw.get("title")
    if not isinstance(title, str) or not title.strip():
        msg = f"{where}: missing title"
        raise ValueError(msg)
    return title


def _parse_tags(raw: dict[str, Any], where: str) -> tuple[str, ...]:
    tags = raw.get("tags", [])
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        msg = f"{where}: tags must be a list of strings"
        raise ValueError(msg)
    return tuple(tags)


def _parse_items(raw_items: list[Any], *, where: str) -> tuple[ItemDraft, ...]:
    result: list[ItemDraft] = []

    # BFS so that every parent is listed before its children, and siblings
    # keep the order of their ``children`` array.
    todo: deque[tuple[Any, int | None, int]] = deque((raw, None, 0) for raw in raw_items)
    while todo:
        raw, parent_key, depth = todo.popleft()
        if not isinstance(raw, dict):
            msg = f"{where}: item must be an object, got {type(raw).__name__}"
            raise ValueError(msg)
        key = len(result)
        result.append(
            ItemDraft(
                key=key,
                parent_key=parent_key,
                title=_require_title(raw, f"{where} item {key}"),
                is_done=bool(raw.get("done", False)),
                depth=depth,
                description=str(raw.get("description", "")),
                tags=_parse_tags(raw, f"{where} item {key}"),
            )
        )
        children = raw.get("children", [])
        if not isinstance(children, list):
            msg = f"{where} item {key}: children must be a list"
            raise ValueError(msg)
        todo.extend((child, key, depth + 1) for child in children)

    return tuple(result)


def parse_workspace_data(data: Any) -> WorkspaceDocument:
    """Parse a workspace export dict.

    Args:
        data: Decoded JSON of the form
            ``{"workspace": {"name"}, "entities": [{"kind", "title", "body", "tags", "items"}]}``.
            Items carry ``title``, ``done``, ``description``, ``tags`` and ``children``.

    Returns:
        WorkspaceDocument with entity drafts in document order.

    Raises:
        ValueError: If the document is malformed. Depth rules are not checked
            here; they apply when the drafts are written.
    """
    if not isinstance(data, dict) or not isinstance(data.get("workspace"), dict):
        msg = "Document must be an object with a 'workspace' object"
        raise ValueError(msg)
    name = data["workspace"].get("name")
    if not isinstance(name, str) or not name.strip():
        msg = "Workspace name is missing"
        raise ValueError(msg)

    raw_entities = data.get("entities", [])
    if not isinstance(raw_entities, list):
        msg = "'entities' must be a list"
        raise ValueError(msg)

    entities: list[EntityDraft] = []
    for index, raw in enumerate(raw_entities):
        where = f"entity {index}"
        if not isinstance(raw, dict):
            msg = f"{where}: must be an object"
            raise ValueError(msg)
        try:
            kind = EntityKind(raw.get("kind", ""))
        except ValueError:
            msg = f"{where}: unknown kind {raw.get('kind')!r}"
            raise ValueError(msg) from None
        if kind is EntityKind.NODE:
            msg = f"{where}: items cannot sit at workspace level"
            raise ValueError(msg)

        raw_items = raw.get("items", [])
        if not isinstance(raw_items, list):
            msg = f"{where}: items must be a list"
            raise ValueError(msg)
        if raw_items and not kind.is_container:
            msg = f"{where}: a {kind} cannot hold items"
            raise ValueError(msg)

        entities.append(
            EntityDraft(
                kind=kind,
                title=_require_title(raw, where),
                body=str(raw.get("body", "")),
                items=_parse_items(raw_items, where=where),
                tags=_parse_tags(raw, where),
            )
        )

    return WorkspaceDocument(name=name, entities=tuple(entities))
