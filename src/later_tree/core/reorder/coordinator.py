"""Turn drag-and-drop gestures into ordering and parent changes.

Each gesture is validated, applied (reparent first, then the position inside
the new sibling set) and either committed as a whole or rolled back.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum

from loguru import logger

from later_tree.core.database.transaction import atomic
from later_tree.core.tree.store import NodeStore
from later_tree.errors import InvalidParentError, InvalidRangeError, TreeError
from later_tree.models.node import EntityKind, EntityRef, Scope, SiblingScope


class MoveState(StrEnum):
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class MoveOutcome:
    """Where a committed move left the entity."""

    state: MoveState
    ref: EntityRef
    parent_id: str | None
    index: int
    cross_parent: bool = False


@contextmanager
def _move_unit(conn: sqlite3.Connection, ref: EntityRef) -> Iterator[None]:
    try:
        with atomic(conn, "move"):
            yield
    except TreeError as exc:
        logger.debug("Move of {} {}: {} ({})", ref.id, MoveState.REJECTED, exc.kind, exc)
        raise


class ReorderCoordinator:
    """Single entry point for move gestures coming from the UI."""

    def __init__(self, store: NodeStore) -> None:
        self.store = store
        self.conn = store.conn
        self.collection = store.collection

    def reorder(self, scope: Scope, ref: EntityRef, from_index: int, to_index: int) -> MoveOutcome:
        """Same-scope positional move."""
        parent_id = scope.parent_id if isinstance(scope, SiblingScope) else None
        with _move_unit(self.conn, ref):
            self.collection.reorder(scope, ref, from_index, to_index)
        return MoveOutcome(MoveState.COMMITTED, ref, parent_id, to_index)

    def move_node(self, node_id: str, *, new_parent_id: str | None, to_index: int) -> MoveOutcome:
        """Place a node at ``to_index`` among the children of ``new_parent_id``."""
        ref = EntityRef(EntityKind.NODE, node_id)
        with _move_unit(self.conn, ref):
            node = self.store.get(node_id)
            target = SiblingScope(node.container_id, new_parent_id)
            cross_parent = new_parent_id != node.parent_id

            if cross_parent:
                size = len(self.collection.list_ordered(target))
                if not 0 <= to_index <= size:
                    msg = f"to_index {to_index} outside [0, {size}] in {target.scope_id}"
                    raise InvalidRangeError(msg)
                self.store.reparent(node_id, new_parent_id)
                from_index = size
            else:
                from_index = self.collection.index_of(target, ref)

            if from_index != to_index:
                self.collection.reorder(target, ref, from_index, to_index)

        logger.debug(
            "Moved {} to {} index {} (cross_parent={})",
            node_id, target.scope_id, to_index, cross_parent,
        )
        return MoveOutcome(MoveState.COMMITTED, ref, new_parent_id, to_index, cross_parent)

    def drop_node(
        self, node_id: str, *, above_id: str | None = None, below_id: str | None = None
    ) -> MoveOutcome:
        """Resolve a drop between two rendered neighbors.

        With ``below_id`` the node lands just before that neighbor among its
        siblings; otherwise just after ``above_id``. The neighbor's parent
        becomes the node's parent, which makes the move cross-parent whenever
        it differs from the current one.
        """
        anchor_id = below_id if below_id is not None else above_id
        if anchor_id is None:
            msg = "A drop needs at least one neighbor"
            raise InvalidRangeError(msg)

        node = self.store.get(node_id)
        if anchor_id == node_id:
            index = self.collection.index_of(node.scope, node.ref)
            return MoveOutcome(MoveState.COMMITTED, node.ref, node.parent_id, index)

        anchor = self.store.get(anchor_id)
        if anchor.container_id != node.container_id:
            msg = f"Neighbor {anchor_id!r} is in another container"
            raise InvalidParentError(msg)

        ids = [ref.id for ref in self.collection.list_ordered(anchor.scope)]
        to_index = ids.index(anchor.id) + (0 if below_id is not None else 1)
        if anchor.parent_id == node.parent_id and ids.index(node_id) < to_index:
            to_index -= 1
        return self.move_node(node_id, new_parent_id=anchor.parent_id, to_index=to_index)
