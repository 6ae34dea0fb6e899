from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from codeledger.entry import Entry
from codeledger.store import LedgerStore


def test_insert_dedups_within_session_only(store: LedgerStore) -> None:
    entry = Entry("decision", "Use SQLite for the ledger", importance="high")

    assert store.insert("s1", entry)
    assert not store.insert("s1", Entry("decision", "Use SQLite for the ledger", importance="low"))
    assert store.insert("s2", entry)
    assert store.insert("s1", Entry("learning", "Use SQLite for the ledger"))

    assert store.count_by_session("s1") == 2
    assert store.count_by_session("s2") == 1
    assert store.count() == 3


def test_insert_many_counts_only_new_rows(store: LedgerStore) -> None:
    entries = [
        Entry("file_read", "/a.py", importance="low"),
        Entry("file_read", "/a.py", importance="low"),
        Entry("file_edit", "/a.py"),
        Entry("bogus", "/b.py"),
    ]
    assert store.insert_many("s1", entries) == 2
    assert store.insert_many("s1", entries) == 0


def test_empty_session_id_is_ignored(store: LedgerStore) -> None:
    assert not store.insert("", Entry("learning", "x"))
    assert store.insert_many("", [Entry("learning", "x")]) == 0
    assert store.query_by_session("") == []
    assert store.count() == 0


def test_round_trip_preserves_enriched_fields(store: LedgerStore) -> None:
    store.insert(
        "s1",
        Entry(
            "guideline",
            "Use double quotes",
            metadata={"tool": "Read"},
            category="ruby-style",
            keywords=["ruby", "ruby-style"],
            applies_when="Writing Ruby code",
            source_file="ruby-style.md",
        ),
    )

    [row] = store.query_by_type("s1", "guideline")

    assert row.metadata == {"tool": "Read"}
    assert row.keywords == ["ruby", "ruby-style"]
    assert row.category == "ruby-style"
    assert row.source_file == "ruby-style.md"
    assert row.to_entry().content_hash == row.content_hash


def test_queries_order_newest_first(store: LedgerStore) -> None:
    for index in range(3):
        store.insert(
            "s1",
            Entry("learning", f"fact {index}", created_at=f"2025-01-0{index + 1}T00:00:00+00:00"),
        )
    store.insert("s1", Entry("decision", "pick A", importance="high"))

    recent = store.query_by_type("s1", "learning", limit=2)
    assert [row.content for row in recent] == ["fact 2", "fact 1"]
    assert [row.content for row in store.query_by_importance("s1", "high")] == ["pick A"]
    assert len(store.query_recent_filtered(entry_type="learning")) == 3


def test_delete_session_and_stats(store: LedgerStore) -> None:
    store.insert("s1", Entry("learning", "one"))
    store.insert("s1", Entry("learning", "two"))
    store.insert("s2", Entry("learning", "three"))

    stats = {stat.session_id: stat.entry_count for stat in store.session_stats()}
    assert stats == {"s1": 2, "s2": 1}
    assert store.delete_session("s1") == 2
    assert store.search("one") == []
    assert store.count() == 1


def test_insert_entries_raises_but_insert_many_fails_soft(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    store = LedgerStore(blocker / "ledger.sqlite")

    with pytest.raises((sqlite3.Error, OSError)):
        store.insert_entries("s1", [Entry("learning", "x")])
    assert store.insert_many("s1", [Entry("learning", "x")]) == 0
    assert store.count() == 0
    assert store.query_recent() == []
