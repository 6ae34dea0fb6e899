from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from .. import db
from ..config import LedgerPaths
from ..entry import Entry
from . import restoration as store_restoration
from . import search as store_search
from .types import RestorationResult, SessionStat, StoredEntry, Tier1Result, Tier2Result

logger = logging.getLogger(__name__)

STORE_ERRORS = (sqlite3.Error, OSError)

_INSERT_SQL = """
    INSERT INTO ledger_entries (
        session_id, entry_type, source, content, content_hash, metadata, importance,
        created_at, category, keywords, applies_when, source_file
    )
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT (session_id, entry_type, content_hash) DO NOTHING
"""


class LedgerStore:
    """Durable entry store backed by a single SQLite file.

    A connection is opened for every call and closed before returning, so many
    short-lived hook processes can share the file without holding it open.

    Public operations fail soft: storage errors are logged and reported as an empty
    list, zero, or False. ``insert_entries`` is the one exception; it raises so that
    a flush can tell "nothing new" apart from "storage is broken".
    """

    def __init__(self, db_path: Path | str | None = None):
        if db_path is None:
            db_path = LedgerPaths.from_env().db_path
        self.db_path = Path(db_path).expanduser()
        self._schema_ready = False

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = db.connect(self.db_path)
        try:
            if not self._schema_ready:
                db.initialize_schema(conn)
                self._schema_ready = True
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> bool:
        try:
            with self.connect():
                return True
        except STORE_ERRORS as exc:
            logger.warning("ledger schema initialization failed", exc_info=exc)
            return False

    @staticmethod
    def _insert_params(session_id: str, entry: Entry) -> tuple[Any, ...]:
        return (
            session_id,
            entry.entry_type,
            entry.source,
            entry.content,
            entry.content_hash,
            db.to_json(entry.metadata),
            entry.importance,
            entry.created_at,
            entry.category,
            db.to_json(entry.keywords) if entry.keywords else None,
            entry.applies_when,
            entry.source_file,
        )

    def insert_entries(self, session_id: str, entries: Iterable[Entry]) -> int:
        if not session_id:
            return 0
        valid = [entry for entry in entries if entry.is_valid()]
        if not valid:
            return 0
        inserted = 0
        with self.connect() as conn:
            for entry in valid:
                cur = conn.execute(_INSERT_SQL, self._insert_params(session_id, entry))
                if cur.rowcount > 0:
                    inserted += 1
        return inserted

    def insert(self, session_id: str, entry: Entry) -> bool:
        if not session_id or not entry.is_valid():
            return False
        try:
            return self.insert_entries(session_id, [entry]) == 1
        except STORE_ERRORS as exc:
            logger.warning("ledger insert failed", exc_info=exc)
            return False

    def insert_many(self, session_id: str, entries: Iterable[Entry]) -> int:
        try:
            return self.insert_entries(session_id, entries)
        except STORE_ERRORS as exc:
            logger.warning("ledger batch insert failed", exc_info=exc)
            return 0

    def delete_session(self, session_id: str) -> int:
        if not session_id:
            return 0
        try:
            with self.connect() as conn:
                cur = conn.execute("DELETE FROM ledger_entries WHERE session_id = ?", (session_id,))
                return int(cur.rowcount)
        except STORE_ERRORS as exc:
            logger.warning("ledger delete failed", exc_info=exc)
            return 0

    def count(self) -> int:
        try:
            with self.connect() as conn:
                return int(conn.execute("SELECT COUNT(*) FROM ledger_entries").fetchone()[0])
        except STORE_ERRORS as exc:
            logger.warning("ledger count failed", exc_info=exc)
            return 0

    def count_by_session(self, session_id: str) -> int:
        if not session_id:
            return 0
        try:
            with self.connect() as conn:
                row = conn.execute(
                    "SELECT COUNT(*) FROM ledger_entries WHERE session_id = ?", (session_id,)
                ).fetchone()
                return int(row[0])
        except STORE_ERRORS as exc:
            logger.warning("ledger count failed", exc_info=exc)
            return 0

    def _query(self, where: str, params: list[Any], limit: int) -> list[StoredEntry]:
        sql = f"SELECT {db.ENTRY_COLUMNS} FROM ledger_entries"
        if where:
            sql += f" WHERE {where}"
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        try:
            with self.connect() as conn:
                rows = conn.execute(sql, [*params, max(0, int(limit))]).fetchall()
        except STORE_ERRORS as exc:
            logger.warning("ledger query failed", exc_info=exc)
            return []
        return [StoredEntry.from_row(row) for row in rows]

    def query_by_session(self, session_id: str, limit: int = 100) -> list[StoredEntry]:
        if not session_id:
            return []
        return self._query("session_id = ?", [session_id], limit)

    def query_by_type(self, session_id: str, entry_type: str, limit: int = 100) -> list[StoredEntry]:
        if not session_id:
            return []
        return self._query("session_id = ? AND entry_type = ?", [session_id, entry_type], limit)

    def query_by_importance(
        self, session_id: str, importance: str, limit: int = 100
    ) -> list[StoredEntry]:
        if not session_id:
            return []
        return self._query("session_id = ? AND importance = ?", [session_id, importance], limit)

    def query_recent(self, limit: int = 100) -> list[StoredEntry]:
        return self._query("", [], limit)

    def query_recent_filtered(
        self,
        limit: int = 100,
        entry_type: str | None = None,
        importance: str | None = None,
    ) -> list[StoredEntry]:
        clauses: list[str] = []
        params: list[Any] = []
        if entry_type:
            clauses.append("entry_type = ?")
            params.append(entry_type)
        if importance:
            clauses.append("importance = ?")
            params.append(importance)
        return self._query(" AND ".join(clauses), params, limit)

    def search(
        self,
        query: str,
        limit: int = 50,
        entry_type: str | None = None,
        importance: str | None = None,
        prefix_match: bool = True,
    ) -> list[StoredEntry]:
        if not query.strip():
            return []
        try:
            return store_search.search(
                self,
                query,
                limit=limit,
                entry_type=entry_type,
                importance=importance,
                prefix_match=prefix_match,
            )
        except STORE_ERRORS as exc:
            logger.warning("ledger search failed", exc_info=exc)
            return []

    def search_in_session(
        self,
        session_id: str,
        query: str,
        limit: int = 50,
        entry_type: str | None = None,
        importance: str | None = None,
        prefix_match: bool = True,
    ) -> list[StoredEntry]:
        if not session_id or not query.strip():
            return []
        try:
            return store_search.search(
                self,
                query,
                session_id=session_id,
                limit=limit,
                entry_type=entry_type,
                importance=importance,
                prefix_match=prefix_match,
            )
        except STORE_ERRORS as exc:
            logger.warning("ledger search failed", exc_info=exc)
            return []

    def session_stats(self) -> list[SessionStat]:
        try:
            with self.connect() as conn:
                rows = conn.execute(
                    """
                    SELECT session_id, COUNT(*) AS entry_count, MAX(created_at) AS last_entry
                    FROM ledger_entries
                    GROUP BY session_id
                    ORDER BY last_entry DESC
                    """
                ).fetchall()
        except STORE_ERRORS as exc:
            logger.warning("ledger session stats failed", exc_info=exc)
            return []
        return [
            SessionStat(
                session_id=str(row["session_id"]),
                entry_count=int(row["entry_count"]),
                last_entry=str(row["last_entry"]),
            )
            for row in rows
        ]

    def query_tier1(self, session_id: str, decision_limit: int = 10) -> Tier1Result:
        if not session_id:
            return Tier1Result()
        try:
            return store_restoration.query_tier1(self, session_id, decision_limit)
        except STORE_ERRORS as exc:
            logger.warning("ledger tier1 query failed", exc_info=exc)
            return Tier1Result()

    def query_tier2(
        self,
        session_id: str,
        learnings_limit: int = 5,
        file_edits_limit: int = 10,
        decisions_limit: int = 5,
    ) -> Tier2Result:
        if not session_id:
            return Tier2Result()
        try:
            return store_restoration.query_tier2(
                self, session_id, learnings_limit, file_edits_limit, decisions_limit
            )
        except STORE_ERRORS as exc:
            logger.warning("ledger tier2 query failed", exc_info=exc)
            return Tier2Result()

    def query_for_restoration(
        self,
        session_id: str,
        tier1_decision_limit: int = 10,
        tier2_learnings_limit: int = 5,
        tier2_file_edits_limit: int = 10,
        tier2_decisions_limit: int = 5,
    ) -> RestorationResult:
        return RestorationResult(
            tier1=self.query_tier1(session_id, tier1_decision_limit),
            tier2=self.query_tier2(
                session_id,
                tier2_learnings_limit,
                tier2_file_edits_limit,
                tier2_decisions_limit,
            ),
        )
