"""Shared test fixtures."""

import sqlite3
from collections.abc import Iterator
from dataclasses import dataclass

import pytest

from later_tree.core.database.schema import migrate_schema, open_database
from later_tree.models.node import EntityKind
from later_tree.service import ContentTree


@dataclass(frozen=True)
class Sample:
    """Ids of the populated workspace.

    Groceries (todo list):      Ideas (list):
        Buy groceries               Garden
            Milk
                Oat milk
        Bread
    """

    workspace_id: str
    groceries_id: str
    ideas_id: str
    journal_id: str
    buy_id: str
    milk_id: str
    oat_id: str
    bread_id: str
    garden_id: str


@pytest.fixture
def conn() -> Iterator[sqlite3.Connection]:
    """In-memory database with the schema created."""
    conn = open_database(":memory:")
    migrate_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def tree(conn: sqlite3.Connection) -> ContentTree:
    return ContentTree(conn)


@pytest.fixture
def sample(tree: ContentTree) -> Sample:
    """Return ids of a workspace with a todo list, a list and a note."""
    ws = tree.create_workspace("Home")
    groceries = tree.create_entity(ws.id, kind=EntityKind.TODO_LIST, title="Groceries")
    ideas = tree.create_entity(ws.id, kind=EntityKind.LIST, title="Ideas")
    journal = tree.create_entity(
        ws.id, kind=EntityKind.NOTE, title="Journal", body="Remember the farmers market"
    )

    buy = tree.create_node(groceries.id, "Buy groceries")
    milk = tree.create_node(groceries.id, "Milk", parent_id=buy.id)
    oat = tree.create_node(groceries.id, "Oat milk", parent_id=milk.id)
    bread = tree.create_node(groceries.id, "Bread")
    garden = tree.create_node(ideas.id, "Garden")

    return Sample(
        workspace_id=ws.id,
        groceries_id=groceries.id,
        ideas_id=ideas.id,
        journal_id=journal.id,
        buy_id=buy.id,
        milk_id=milk.id,
        oat_id=oat.id,
        bread_id=bread.id,
        garden_id=garden.id,
    )
