"""Manual ordering of entities within a scope.

Keys are plain integers. A reorder rewrites every key in the scope to its new
0-based position instead of using fractional keys: scopes hold tens to low
hundreds of entries, and full renumbering never loses precision.

This module is the one place that knows how a scope maps onto storage
(``entities`` for workspace members, ``nodes`` for sibling sets).
"""

import sqlite3

from loguru import logger

from later_tree.core.ids import now_ms
from later_tree.errors import InvalidRangeError, NotFoundError
from later_tree.models.node import EntityKind, EntityRef, Scope, SiblingScope, WorkspaceScope


def _scope_sql(scope: Scope) -> tuple[str, str, list[str]]:
    """Return (table, where clause, params) selecting the members of a scope."""
    if isinstance(scope, WorkspaceScope):
        return "entities", "workspace_id = ?", [scope.workspace_id]
    if scope.parent_id is None:
        return "nodes", "container_id = ? AND parent_id IS NULL", [scope.container_id]
    return "nodes", "container_id = ? AND parent_id = ?", [scope.container_id, scope.parent_id]


def _scope_columns(scope: Scope) -> dict[str, str | None]:
    """Columns that place a row inside the scope."""
    if isinstance(scope, WorkspaceScope):
        return {"workspace_id": scope.workspace_id}
    return {"container_id": scope.container_id, "parent_id": scope.parent_id}


class OrderedCollection:
    """Total order over the entity references of a scope."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def next_key(self, scope: Scope) -> int:
        """Key for a new last entry: max + 1, or 0 for an empty scope."""
        table, where, params = _scope_sql(scope)
        row = self.conn.execute(
            f"SELECT MAX(sort_order) FROM {table} WHERE {where}", params
        ).fetchone()
        return 0 if row[0] is None else row[0] + 1

    def append(self, scope: Scope, ref: EntityRef) -> int:
        """Move ``ref`` to the end of ``scope`` and return its new key.

        An unknown scope is an empty scope, so the first key is 0.
        """
        table = _scope_sql(scope)[0]
        sort_key = self.next_key(scope)
        columns = _scope_columns(scope)
        assignments = ", ".join(f"{name} = ?" for name in columns)
        cursor = self.conn.execute(
            f"UPDATE {table} SET {assignments}, sort_order = ?, updated_at = ? WHERE id = ?",
            [*columns.values(), sort_key, now_ms(), ref.id],
        )
        if cursor.rowcount == 0:
            msg = f"{ref.kind} {ref.id!r} does not exist"
            raise NotFoundError(msg)
        logger.debug("Appended {} to {} at key {}", ref.id, scope.scope_id, sort_key)
        return sort_key

    def list_ordered(self, scope: Scope) -> list[EntityRef]:
        """All references in the scope by ascending key (ties: created_at, then id)."""
        table, where, params = _scope_sql(scope)
        kind_column = "kind" if table == "entities" else f"'{EntityKind.NODE}'"
        rows = self.conn.execute(
            f"SELECT {kind_column}, id FROM {table} WHERE {where} "
            "ORDER BY sort_order, created_at, id",
            params,
        ).fetchall()
        return [EntityRef(EntityKind(kind), entity_id) for kind, entity_id in rows]

    def index_of(self, scope: Scope, ref: EntityRef) -> int:
        for index, member in enumerate(self.list_ordered(scope)):
            if member.id == ref.id:
                return index
        msg = f"{ref.kind} {ref.id!r} is not in {scope.scope_id}"
        raise NotFoundError(msg)

    def reorder(self, scope: Scope, ref: EntityRef, from_index: int, to_index: int) -> None:
        """Apply a positional move and renumber the whole scope.

        ``ref`` must sit at ``from_index``; a mismatch means the caller acted on
        a stale view and the move is refused.
        """
        refs = self.list_ordered(scope)
        count = len(refs)
        for name, index in (("from_index", from_index), ("to_index", to_index)):
            if not 0 <= index < count:
                msg = f"{name} {index} outside [0, {count}) in {scope.scope_id}"
                raise InvalidRangeError(msg)
        if all(member.id != ref.id for member in refs):
            msg = f"{ref.kind} {ref.id!r} is not in {scope.scope_id}"
            raise NotFoundError(msg)
        if refs[from_index].id != ref.id:
            msg = f"{ref.id!r} is not at position {from_index} in {scope.scope_id}"
            raise InvalidRangeError(msg)
        if from_index == to_index:
            return

        moved = refs.pop(from_index)
        refs.insert(to_index, moved)
        self._write_positions(scope, refs)
        logger.debug("Reordered {} in {}: {} -> {}", ref.id, scope.scope_id, from_index, to_index)

    def compact(self, scope: Scope) -> None:
        """Renumber keys to 0..n-1, keeping the current order."""
        self._write_positions(scope, self.list_ordered(scope))

    def remove(self, scope: Scope, ref: EntityRef) -> None:
        """Delete the entry. Remaining keys keep their gaps."""
        table, where, params = _scope_sql(scope)
        self.conn.execute(f"DELETE FROM {table} WHERE id = ? AND {where}", [ref.id, *params])

    def _write_positions(self, scope: Scope, refs: list[EntityRef]) -> None:
        table = _scope_sql(scope)[0]
        # Park keys below zero first so the unique (scope, sort_order) index
        # never sees two rows sharing a key mid-update.
        self.conn.executemany(
            f"UPDATE {table} SET sort_order = ? WHERE id = ?",
            [(-(index + 1), ref.id) for index, ref in enumerate(refs)],
        )
        self.conn.executemany(
            f"UPDATE {table} SET sort_order = ? WHERE id = ?",
            [(index, ref.id) for index, ref in enumerate(refs)],
        )
