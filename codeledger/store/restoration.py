from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

from .. import db
from .types import StoredEntry, Tier1Result, Tier2Result

if TYPE_CHECKING:
    from ._store import LedgerStore


def _select(
    conn: sqlite3.Connection,
    session_id: str,
    entry_type: str,
    *,
    importance: str | None = None,
    limit: int | None = None,
) -> list[StoredEntry]:
    sql = f"SELECT {db.ENTRY_COLUMNS} FROM ledger_entries WHERE session_id = ? AND entry_type = ?"
    params: list[object] = [session_id, entry_type]
    if importance:
        sql += " AND importance = ?"
        params.append(importance)
    sql += " ORDER BY created_at DESC, id DESC"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(max(0, int(limit)))
    return [StoredEntry.from_row(row) for row in conn.execute(sql, params).fetchall()]


def query_tier1(store: LedgerStore, session_id: str, decision_limit: int = 10) -> Tier1Result:
    with store.connect() as conn:
        return Tier1Result(
            guidelines=_select(conn, session_id, "guideline"),
            implementation_plans=_select(conn, session_id, "implementation_plan"),
            high_importance_decisions=_select(
                conn, session_id, "decision", importance="high", limit=decision_limit
            ),
        )


def query_tier2(
    store: LedgerStore,
    session_id: str,
    learnings_limit: int = 5,
    file_edits_limit: int = 10,
    decisions_limit: int = 5,
) -> Tier2Result:
    with store.connect() as conn:
        return Tier2Result(
            learnings=_select(conn, session_id, "learning", limit=learnings_limit),
            file_edits=_select(conn, session_id, "file_edit", limit=file_edits_limit),
            medium_decisions=_select(
                conn, session_id, "decision", importance="medium", limit=decisions_limit
            ),
        )
