from __future__ import annotations

import hashlib

import pytest

from codeledger.entry import Entry, content_hash


def test_content_hash_covers_type_and_content() -> None:
    expected = hashlib.sha256(b"decision:Use SQLite").hexdigest()
    assert content_hash("decision", "Use SQLite") == expected
    assert Entry("decision", "Use SQLite").content_hash == expected
    assert Entry("learning", "Use SQLite").content_hash != expected


def test_validation_reports_each_problem() -> None:
    assert Entry("file_read", "/tmp/a.py", importance="low").is_valid()

    bad_type = Entry("bogus", "x")
    assert not bad_type.is_valid()
    assert "Invalid entry type 'bogus'" in bad_type.problems()[0]

    assert not Entry("learning", "   ").is_valid()
    assert not Entry("learning", "x", importance="urgent").is_valid()
    assert not Entry("learning", "x", source="robot").is_valid()
    assert Entry("learning", "x", source="assistant").is_valid()

    with pytest.raises(ValueError, match="Invalid importance"):
        Entry("learning", "x", importance="urgent").validate()


def test_from_dict_round_trips_optional_fields() -> None:
    original = Entry(
        "guideline",
        "Prefer pathlib over os.path",
        importance="high",
        metadata={"tool": "Read"},
        category="python-style",
        keywords=["pathlib", "python-style"],
        applies_when="Writing Python code",
        source_file="python-style.md",
    )

    restored = Entry.from_dict(original.to_dict())

    assert restored == original


def test_from_dict_defaults_and_rejects_garbage() -> None:
    entry = Entry.from_dict({"entry_type": "learning", "content": "x", "keywords": "nope"})
    assert entry.importance == "medium"
    assert entry.keywords is None
    assert entry.created_at

    with pytest.raises(ValueError):
        Entry.from_dict(["not", "a", "dict"])
    with pytest.raises(ValueError):
        Entry.from_dict({"entry_type": "learning", "content": 5})
