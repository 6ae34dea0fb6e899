from __future__ import annotations

from pathlib import Path

from codeledger import db


def test_initialize_schema_creates_tables_and_triggers(tmp_path: Path) -> None:
    conn = db.connect(tmp_path / "ledger.sqlite")
    try:
        db.initialize_schema(conn)
        names = {
            row["name"]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type IN ('table', 'trigger', 'index')")
        }
        assert {"ledger_entries", "ledger_fts", "schema_info"} <= names
        assert {"ledger_ai", "ledger_ad", "ledger_au"} <= names
        assert "idx_content_dedup" in names
        journal = conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert journal.lower() in {"wal", "delete"}
    finally:
        conn.close()


def test_initialize_schema_is_idempotent(tmp_path: Path) -> None:
    conn = db.connect(tmp_path / "ledger.sqlite")
    try:
        db.initialize_schema(conn)
        db.initialize_schema(conn)
        count = conn.execute("SELECT COUNT(*) FROM schema_info").fetchone()[0]
        assert count == 1
    finally:
        conn.close()


def test_fts_follows_updates_and_deletes(tmp_path: Path) -> None:
    conn = db.connect(tmp_path / "ledger.sqlite")
    try:
        db.initialize_schema(conn)
        conn.execute(
            "INSERT INTO ledger_entries (session_id, entry_type, content, content_hash, created_at) "
            "VALUES ('s', 'learning', 'alpha beta', 'h1', '2025-01-01T00:00:00+00:00')"
        )
        conn.execute("UPDATE ledger_entries SET content = 'gamma delta' WHERE content_hash = 'h1'")
        conn.commit()

        def hits(term: str) -> int:
            return conn.execute(
                "SELECT COUNT(*) FROM ledger_fts WHERE ledger_fts MATCH ?", (term,)
            ).fetchone()[0]

        assert hits("alpha") == 0
        assert hits("gamma") == 1
        conn.execute("DELETE FROM ledger_entries")
        conn.commit()
        assert hits("gamma") == 0
    finally:
        conn.close()


def test_json_helpers_tolerate_bad_input() -> None:
    assert db.to_json(None) is None
    assert db.from_json(db.to_json({"tool": "Read"})) == {"tool": "Read"}
    assert db.from_json("{broken") is None
    assert db.from_json(None) is None
