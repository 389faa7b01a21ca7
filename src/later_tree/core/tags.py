"""Tags on workspace members and nodes."""

import sqlite3
from collections.abc import Iterable

from later_tree.models.node import EntityKind, EntityRef

_ENTITY_TAGS = ("entity_tags", "entity_id")
_NODE_TAGS = ("node_tags", "node_id")


def _table(kind: EntityKind) -> tuple[str, str]:
    return _NODE_TAGS if kind is EntityKind.NODE else _ENTITY_TAGS


def normalize_tags(tags: Iterable[str]) -> tuple[str, ...]:
    """Lower-case, strip, drop blanks and duplicates; sorted."""
    return tuple(sorted({t.strip().lower() for t in tags if t.strip()}))


def get_tags(conn: sqlite3.Connection, owner: EntityRef) -> tuple[str, ...]:
    table, column = _table(owner.kind)
    rows = conn.execute(
        f"SELECT tag FROM {table} WHERE {column} = ? ORDER BY tag", (owner.id,)
    ).fetchall()
    return tuple(r[0] for r in rows)


def set_tags(conn: sqlite3.Connection, owner: EntityRef, tags: Iterable[str]) -> tuple[str, ...]:
    """Replace the owner's tags. The owner must exist."""
    table, column = _table(owner.kind)
    normalized = normalize_tags(tags)
    conn.execute(f"DELETE FROM {table} WHERE {column} = ?", (owner.id,))
    conn.executemany(
        f"INSERT INTO {table} ({column}, tag) VALUES (?, ?)",
        [(owner.id, tag) for tag in normalized],
    )
    return normalized


def tag_filter_sql(
    id_column: str, tags: tuple[str, ...], *, on_nodes: bool
) -> tuple[str, list[str | int]]:
    """WHERE fragment keeping rows whose owner carries every tag in ``tags``."""
    table, column = _NODE_TAGS if on_nodes else _ENTITY_TAGS
    placeholders = ",".join("?" * len(tags))
    sql = (
        f"{id_column} IN (SELECT {column} FROM {table} WHERE tag IN ({placeholders}) "
        f"GROUP BY {column} HAVING COUNT(*) = ?)"
    )
    return sql, [*tags, len(tags)]
