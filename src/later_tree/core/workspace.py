"""Workspaces and their top-level content (containers and notes)."""

import sqlite3

from loguru import logger

from later_tree.core.ids import new_id, now_ms
from later_tree.core.ordering.collection import OrderedCollection
from later_tree.core.tree.store import clean_title
from later_tree.errors import NotFoundError
from later_tree.models.node import Container, Entity, EntityKind, Leaf, Workspace, WorkspaceScope

_ENTITY_COLUMNS = "id, workspace_id, kind, title, body, sort_order, created_at, updated_at"


def _row_to_entity(row: tuple) -> Entity:
    kind = EntityKind(row[2])
    if kind.is_container:
        return Container(
            id=row[0],
            workspace_id=row[1],
            kind=kind,
            title=row[3],
            sort_key=row[5],
            created_at=row[6],
            updated_at=row[7],
        )
    return Leaf(
        id=row[0],
        workspace_id=row[1],
        title=row[3],
        body=row[4],
        sort_key=row[5],
        created_at=row[6],
        updated_at=row[7],
    )


def create_workspace(
    conn: sqlite3.Connection, *, name: str, workspace_id: str | None = None
) -> Workspace:
    now = now_ms()
    workspace = Workspace(
        id=workspace_id or new_id(), name=clean_title(name), created_at=now, updated_at=now
    )
    conn.execute(
        "INSERT INTO workspaces (id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
        (workspace.id, workspace.name, workspace.created_at, workspace.updated_at),
    )
    logger.debug("Created workspace {} ({})", workspace.id, workspace.name)
    return workspace


def find_workspace(conn: sqlite3.Connection, workspace_id: str) -> Workspace | None:
    row = conn.execute(
        "SELECT id, name, created_at, updated_at FROM workspaces WHERE id = ?",
        (workspace_id,),
    ).fetchone()
    return Workspace(*row) if row else None


def get_workspace(conn: sqlite3.Connection, workspace_id: str) -> Workspace:
    workspace = find_workspace(conn, workspace_id)
    if workspace is None:
        msg = f"Workspace {workspace_id!r} does not exist"
        raise NotFoundError(msg)
    return workspace


def list_workspaces(conn: sqlite3.Connection) -> list[Workspace]:
    rows = conn.execute(
        "SELECT id, name, created_at, updated_at FROM workspaces ORDER BY created_at, id"
    ).fetchall()
    return [Workspace(*r) for r in rows]


def delete_workspace(conn: sqlite3.Connection, workspace_id: str) -> bool:
    """Delete a workspace with all its content. Returns False if it was absent."""
    conn.execute(
        "DELETE FROM nodes WHERE container_id IN (SELECT id FROM entities WHERE workspace_id = ?)",
        (workspace_id,),
    )
    conn.execute("DELETE FROM entities WHERE workspace_id = ?", (workspace_id,))
    cursor = conn.execute("DELETE FROM workspaces WHERE id = ?", (workspace_id,))
    return cursor.rowcount > 0


def create_entity(
    conn: sqlite3.Connection,
    collection: OrderedCollection,
    *,
    workspace_id: str,
    kind: EntityKind,
    title: str,
    body: str = "",
) -> Entity:
    """Add a container or note at the end of the workspace's order."""
    if kind is EntityKind.NODE:
        msg = "Nodes are created inside containers, not at workspace level"
        raise ValueError(msg)
    get_workspace(conn, workspace_id)

    entity_id = new_id()
    now = now_ms()
    sort_key = collection.next_key(WorkspaceScope(workspace_id))
    conn.execute(
        f"INSERT INTO entities ({_ENTITY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (entity_id, workspace_id, str(kind), clean_title(title), body, sort_key, now, now),
    )
    logger.debug("Created {} {} in workspace {} at key {}", kind, entity_id, workspace_id, sort_key)
    return get_entity(conn, entity_id)


def find_entity(conn: sqlite3.Connection, entity_id: str) -> Entity | None:
    row = conn.execute(
        f"SELECT {_ENTITY_COLUMNS} FROM entities WHERE id = ?", (entity_id,)
    ).fetchone()
    return _row_to_entity(row) if row else None


def get_entity(conn: sqlite3.Connection, entity_id: str) -> Entity:
    entity = find_entity(conn, entity_id)
    if entity is None:
        msg = f"Entity {entity_id!r} does not exist"
        raise NotFoundError(msg)
    return entity


def list_entities(
    conn: sqlite3.Connection, collection: OrderedCollection, workspace_id: str
) -> list[Entity]:
    """Workspace members in manual order."""
    get_workspace(conn, workspace_id)
    refs = collection.list_ordered(WorkspaceScope(workspace_id))
    if not refs:
        return []
    placeholders = ",".join("?" * len(refs))
    rows = conn.execute(
        f"SELECT {_ENTITY_COLUMNS} FROM entities WHERE id IN ({placeholders})",
        [r.id for r in refs],
    ).fetchall()
    by_id = {row[0]: _row_to_entity(row) for row in rows}
    return [by_id[r.id] for r in refs]


def delete_entity(conn: sqlite3.Connection, collection: OrderedCollection, entity_id: str) -> bool:
    """Delete a container (with all its nodes) or a note. Absent ids are a no-op."""
    entity = find_entity(conn, entity_id)
    if entity is None:
        return False
    removed = conn.execute("DELETE FROM nodes WHERE container_id = ?", (entity_id,)).rowcount
    collection.remove(WorkspaceScope(entity.workspace_id), entity.ref)
    logger.debug("Deleted {} {} and {} nodes", entity.kind, entity_id, removed)
    return True


def rename_entity(conn: sqlite3.Connection, entity_id: str, title: str) -> Entity:
    cursor = conn.execute(
        "UPDATE entities SET title = ?, updated_at = ? WHERE id = ?",
        (clean_title(title), now_ms(), entity_id),
    )
    if cursor.rowcount == 0:
        msg = f"Entity {entity_id!r} does not exist"
        raise NotFoundError(msg)
    return get_entity(conn, entity_id)
