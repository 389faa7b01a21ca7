"""FTS5 full-text matching over workspace content and nodes.

This is the default matcher only: it finds ids. Tree context is attached
afterwards by the search projector.
"""

import re
import sqlite3
from collections.abc import Collection, Iterable

from later_tree.core.tags import normalize_tags, tag_filter_sql
from later_tree.models.node import EntityKind, MatchHit

_QUERY_TOKEN = re.compile(r'"[^"]*"?|[^\s"]+')
_OPERATORS = frozenset({"AND", "OR", "NOT"})


def _sanitize_fts_token(token: str) -> str:
    """Remove FTS5 special characters (whitelist approach)."""
    return re.sub(r"[^\w]", "", token, flags=re.UNICODE)


def _sanitize_phrase(phrase: str) -> str:
    return " ".join(w for w in (_sanitize_fts_token(p) for p in phrase.split()) if w)


def prepare_fts_query(query: str) -> str:
    """Convert user input to an FTS5 query.

    - 3+ char words get a * suffix for prefix matching
    - quoted phrases are kept (and closed if left open)
    - AND, OR, NOT stay operators when they sit between terms
    """
    terms: list[str] = []
    for token in _QUERY_TOKEN.findall(query):
        if token.startswith('"'):
            phrase = _sanitize_phrase(token.strip('"'))
            if phrase:
                terms.append(f'"{phrase}"')
            continue
        if token.upper() in _OPERATORS:
            if terms and terms[-1] not in _OPERATORS:
                terms.append(token.upper())
            continue
        word = _sanitize_fts_token(token)
        if word:
            terms.append(f"{word}*" if len(word) >= 3 else word)
    while terms and terms[-1] in _OPERATORS:
        terms.pop()
    return " ".join(terms)


def _entity_arm(
    fts_query: str, kinds: list[str], workspace_id: str | None, tags: tuple[str, ...]
) -> tuple[str, str, list[str | int]]:
    where = ["entities_fts MATCH ?", f"e.kind IN ({','.join('?' * len(kinds))})"]
    params: list[str | int] = [fts_query, *kinds]
    if workspace_id:
        where.append("e.workspace_id = ?")
        params.append(workspace_id)
    if tags:
        tag_sql, tag_params = tag_filter_sql("e.id", tags, on_nodes=False)
        where.append(tag_sql)
        params.extend(tag_params)
    from_sql = (
        "FROM entities_fts JOIN entities e ON e.rowid = entities_fts.rowid "
        f"WHERE {' AND '.join(where)}"
    )
    select_sql = (
        "SELECT e.id AS id, e.kind AS kind, "
        "snippet(entities_fts, -1, '**', '**', '...', 16) AS snippet, "
        f"entities_fts.rank AS score, e.updated_at AS updated_at {from_sql}"
    )
    return select_sql, f"SELECT COUNT(*) {from_sql}", params


def _node_arm(
    fts_query: str, workspace_id: str | None, tags: tuple[str, ...]
) -> tuple[str, str, list[str | int]]:
    where = ["nodes_fts MATCH ?"]
    params: list[str | int] = [fts_query]
    if workspace_id:
        where.append("c.workspace_id = ?")
        params.append(workspace_id)
    if tags:
        tag_sql, tag_params = tag_filter_sql("n.id", tags, on_nodes=True)
        where.append(tag_sql)
        params.extend(tag_params)
    from_sql = (
        "FROM nodes_fts JOIN nodes n ON n.rowid = nodes_fts.rowid "
        "JOIN entities c ON c.id = n.container_id "
        f"WHERE {' AND '.join(where)}"
    )
    select_sql = (
        f"SELECT n.id AS id, '{EntityKind.NODE}' AS kind, "
        "snippet(nodes_fts, -1, '**', '**', '...', 16) AS snippet, "
        f"nodes_fts.rank AS score, n.updated_at AS updated_at {from_sql}"
    )
    return select_sql, f"SELECT COUNT(*) {from_sql}", params


def search_matches(
    conn: sqlite3.Connection,
    *,
    query: str,
    workspace_id: str | None = None,
    kinds: Collection[EntityKind] | None = None,
    tags: Iterable[str] | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[MatchHit], int]:
    """Match workspace members and nodes against a query.

    Args:
        conn: Database connection.
        query: User search text.
        workspace_id: Restrict to one workspace.
        kinds: Restrict to these kinds (``EntityKind.NODE`` covers items).
        tags: Keep only hits carrying every one of these tags.
        limit: Max hits to return.
        offset: Pagination offset.

    Returns:
        Tuple of (hits, total_count). Hits come in FTS rank order, most
        recently updated first among equals.
    """
    fts_query = prepare_fts_query(query)
    if not fts_query:
        return [], 0

    wanted = set(kinds) if kinds is not None else set(EntityKind)
    entity_kinds = sorted(k.value for k in wanted if k is not EntityKind.NODE)
    required = normalize_tags(tags or ())

    arms: list[tuple[str, str, list[str | int]]] = []
    if entity_kinds:
        arms.append(_entity_arm(fts_query, entity_kinds, workspace_id, required))
    if EntityKind.NODE in wanted:
        arms.append(_node_arm(fts_query, workspace_id, required))
    if not arms:
        return [], 0

    total = sum(conn.execute(count_sql, params).fetchone()[0] for _, count_sql, params in arms)

    union_sql = " UNION ALL ".join(select_sql for select_sql, _, _ in arms)
    union_params: list[str | int] = [p for _, _, params in arms for p in params]
    rows = conn.execute(
        f"SELECT id, kind, snippet FROM ({union_sql}) "
        "ORDER BY score, updated_at DESC LIMIT ? OFFSET ?",
        [*union_params, limit, offset],
    ).fetchall()
    hits = [MatchHit(id=r[0], kind=EntityKind(r[1]), snippet=r[2]) for r in rows]
    return hits, total


class FtsMatcher:
    """:class:`~later_tree.protocols.MatcherProtocol` backed by the FTS5 tables."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def match(
        self,
        query: str,
        *,
        workspace_id: str | None = None,
        kinds: Collection[EntityKind] | None = None,
        tags: Iterable[str] | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[MatchHit], int]:
        return search_matches(
            self.conn,
            query=query,
            workspace_id=workspace_id,
            kinds=kinds,
            tags=tags,
            limit=limit,
            offset=offset,
        )
