from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from .. import db
from .types import StoredEntry

if TYPE_CHECKING:
    from ._store import LedgerStore


def prepare_fts_query(query: str, prefix_match: bool = True) -> str:
    """Turn free text into an FTS5 query.

    With ``prefix_match`` every bare token gets a trailing ``*`` so "trail" also
    finds "trailing". Tokens that already carry a wildcard, a column filter
    (``entry_type:decision``) or a +/- operator are passed through untouched.
    """

    if not prefix_match:
        return query.strip()
    words = re.split(r"\s+", query.strip())
    prepared: list[str] = []
    for word in words:
        if not word:
            continue
        if word.endswith("*") or ":" in word or word.startswith(("-", "+")):
            prepared.append(word)
        else:
            prepared.append(f"{word}*")
    return " ".join(prepared)


def search(
    store: LedgerStore,
    query: str,
    *,
    session_id: str | None = None,
    limit: int = 50,
    entry_type: str | None = None,
    importance: str | None = None,
    prefix_match: bool = True,
) -> list[StoredEntry]:
    fts_query = prepare_fts_query(query, prefix_match)
    if not fts_query:
        return []
    where_clauses = ["ledger_fts MATCH ?"]
    params: list[Any] = [fts_query]
    if session_id is not None:
        where_clauses.append("ledger_entries.session_id = ?")
        params.append(session_id)
    if entry_type:
        where_clauses.append("ledger_entries.entry_type = ?")
        params.append(entry_type)
    if importance:
        where_clauses.append("ledger_entries.importance = ?")
        params.append(importance)
    where = " AND ".join(where_clauses)
    columns = ", ".join(f"ledger_entries.{col.strip()}" for col in db.ENTRY_COLUMNS.split(","))
    sql = f"""
        SELECT {columns}
        FROM ledger_fts
        JOIN ledger_entries ON ledger_entries.id = ledger_fts.rowid
        WHERE {where}
        ORDER BY bm25(ledger_fts)
        LIMIT ?
    """
    params.append(limit)
    with store.connect() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [StoredEntry.from_row(row) for row in rows]
