"""All-or-nothing units of work on a SQLite connection."""

import itertools
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager

_savepoint_ids = itertools.count(1)


@contextmanager
def atomic(conn: sqlite3.Connection, name: str = "tree") -> Iterator[sqlite3.Connection]:
    """Run the block inside a savepoint.

    Outermost use commits on success; nested use folds into the enclosing
    unit. Any exception rolls the block back and propagates.
    """
    savepoint = f"{name}_{next(_savepoint_ids)}"
    conn.execute(f"SAVEPOINT {savepoint}")
    try:
        yield conn
    except BaseException:
        conn.execute(f"ROLLBACK TO SAVEPOINT {savepoint}")
        conn.execute(f"RELEASE SAVEPOINT {savepoint}")
        raise
    conn.execute(f"RELEASE SAVEPOINT {savepoint}")
