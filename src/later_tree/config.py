"""Configuration constants for later-tree."""

import os
from pathlib import Path

# Nesting levels allowed inside a container: depths 0, 1 and 2.
MAX_DEPTH: int = 3

DATABASE_FILENAME: str = "later.db"

# Environment override for the data directory (also read by the MCP server).
DATA_DIR_ENV: str = "LATER_TREE_DATA_DIR"

# Directory with data. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/later-tree").expanduser(),
    Path("~/.later-tree").expanduser(),
]

# Default page size for full-text search.
SEARCH_PAGE_SIZE: int = 20
SEARCH_PAGE_SIZE_MAX: int = 50


def resolve_data_directory() -> Path:
    """Return the data directory.

    ``LATER_TREE_DATA_DIR`` wins; otherwise the first existing candidate,
    falling back to the first candidate when none exists yet.
    """
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DATA_DIRECTORIES[0]


def resolve_database_path(data_dir: Path | None = None) -> Path:
    return (data_dir or resolve_data_directory()) / DATABASE_FILENAME
