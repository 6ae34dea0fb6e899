from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any

from . import __version__
from .migrations import (
    ensure_schema_info_table,
    migrate_database,
    set_database_version,
)

ENTRY_COLUMNS = (
    "id, session_id, entry_type, source, content, content_hash, metadata, importance, "
    "created_at, category, keywords, applies_when, source_file"
)


def connect(db_path: Path | str, timeout: float = 5.0) -> sqlite3.Connection:
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, timeout=timeout)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.OperationalError:
        conn.execute("PRAGMA journal_mode = DELETE")
    conn.execute("PRAGMA synchronous = NORMAL")
    return conn


def _table_exists(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone()
    return row is not None


def initialize_schema(conn: sqlite3.Connection) -> None:
    fresh = not _table_exists(conn, "ledger_entries")
    had_fts = _table_exists(conn, "ledger_fts")
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS ledger_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id TEXT NOT NULL,
            entry_type TEXT NOT NULL,
            source TEXT,
            content TEXT NOT NULL,
            content_hash TEXT NOT NULL,
            metadata TEXT,
            importance TEXT DEFAULT 'medium',
            created_at TEXT NOT NULL,
            category TEXT,
            keywords TEXT,
            applies_when TEXT,
            source_file TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_session ON ledger_entries(session_id);
        CREATE INDEX IF NOT EXISTS idx_session_type ON ledger_entries(session_id, entry_type);
        CREATE INDEX IF NOT EXISTS idx_source ON ledger_entries(source);
        CREATE INDEX IF NOT EXISTS idx_created ON ledger_entries(created_at);
        CREATE INDEX IF NOT EXISTS idx_importance ON ledger_entries(importance);
        CREATE UNIQUE INDEX IF NOT EXISTS idx_content_dedup
            ON ledger_entries(session_id, entry_type, content_hash);

        CREATE VIRTUAL TABLE IF NOT EXISTS ledger_fts USING fts5(
            content, entry_type,
            content='ledger_entries',
            content_rowid='id'
        );

        CREATE TRIGGER IF NOT EXISTS ledger_ai AFTER INSERT ON ledger_entries BEGIN
            INSERT INTO ledger_fts(rowid, content, entry_type)
            VALUES (new.id, new.content, new.entry_type);
        END;

        CREATE TRIGGER IF NOT EXISTS ledger_ad AFTER DELETE ON ledger_entries BEGIN
            INSERT INTO ledger_fts(ledger_fts, rowid, content, entry_type)
            VALUES('delete', old.id, old.content, old.entry_type);
        END;

        CREATE TRIGGER IF NOT EXISTS ledger_au AFTER UPDATE ON ledger_entries BEGIN
            INSERT INTO ledger_fts(ledger_fts, rowid, content, entry_type)
            VALUES('delete', old.id, old.content, old.entry_type);
            INSERT INTO ledger_fts(rowid, content, entry_type)
            VALUES (new.id, new.content, new.entry_type);
        END;
        """
    )
    if fresh:
        ensure_schema_info_table(conn)
        set_database_version(conn, __version__)
        conn.commit()
        return
    migrate_database(conn)
    if not had_fts:
        rebuild_fts(conn)


def rebuild_fts(conn: sqlite3.Connection) -> None:
    conn.execute("INSERT INTO ledger_fts(ledger_fts) VALUES('rebuild')")
    conn.commit()


def to_json(data: Any) -> str | None:
    if data is None:
        return None
    return json.dumps(data, ensure_ascii=False)


def from_json(text: str | None) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None

