from __future__ import annotations

from codeledger.config import LedgerConfig
from codeledger.entry import Entry
from codeledger.restoration import NO_CONTEXT, build_restoration_context, estimate_tokens
from codeledger.store import LedgerStore


def _ts(index: int) -> str:
    return f"2025-03-01T00:{index // 60:02d}:{index % 60:02d}+00:00"


def _seed(store: LedgerStore, session_id: str = "s1") -> None:
    entries = [
        Entry("guideline", "Use double quotes", category="ruby-style", applies_when="Writing Ruby"),
        Entry("guideline", "Prefer let over instance variables", category="rspec"),
        Entry("implementation_plan", "Phase 2 of 4: storage layer done"),
    ]
    for index in range(15):
        entries.append(Entry("decision", f"high decision {index}", importance="high", created_at=_ts(index)))
    for index in range(8):
        entries.append(Entry("decision", f"medium decision {index}", created_at=_ts(index)))
    for index in range(50):
        entries.append(Entry("learning", f"learning {index}", created_at=_ts(index)))
    for index in range(12):
        entries.append(Entry("file_edit", f"/src/file_{index}.py", created_at=_ts(index)))
    entries.append(Entry("file_read", "/src/ignored.py", importance="low"))
    store.insert_many(session_id, entries)


def test_tier1_returns_all_guidelines_and_recent_high_decisions(store: LedgerStore) -> None:
    _seed(store)

    tier1 = store.query_tier1("s1", decision_limit=10)

    assert len(tier1.guidelines) == 2
    assert len(tier1.implementation_plans) == 1
    assert len(tier1.high_importance_decisions) == 10
    assert tier1.high_importance_decisions[0].content == "high decision 14"
    assert tier1.total_count == 13


def test_tier2_limits_each_category(store: LedgerStore) -> None:
    _seed(store)

    tier2 = store.query_tier2("s1")

    assert [row.content for row in tier2.learnings] == [f"learning {i}" for i in (49, 48, 47, 46, 45)]
    assert len(tier2.file_edits) == 10
    assert len(tier2.medium_decisions) == 5
    assert all(row.importance == "medium" for row in tier2.medium_decisions)


def test_restoration_is_scoped_to_session(store: LedgerStore) -> None:
    _seed(store, "other")
    result = store.query_for_restoration("s1")
    assert result.total_count == 0


def test_context_lists_tier1_before_tier2(store: LedgerStore) -> None:
    _seed(store)

    text = build_restoration_context(store, "s1", LedgerConfig())

    assert text.startswith("## Restored Context")
    assert "- [ruby-style] Use double quotes (applies when: Writing Ruby)" in text
    assert text.index("### Guidelines") < text.index("### Recent Learnings")
    assert "/src/ignored.py" not in text


def test_context_is_trimmed_to_token_budget(store: LedgerStore) -> None:
    _seed(store)
    cfg = LedgerConfig()
    cfg.restoration.max_essential_tokens = 120

    text = build_restoration_context(store, "s1", cfg)

    assert estimate_tokens(text) <= 120
    assert "Use double quotes" in text
    assert "### Other Decisions" not in text


def test_empty_session_has_placeholder(store: LedgerStore) -> None:
    assert NO_CONTEXT in build_restoration_context(store, "fresh", LedgerConfig())


def test_budget_too_small_for_any_line_falls_back_to_placeholder(store: LedgerStore) -> None:
    _seed(store)
    cfg = LedgerConfig()
    cfg.restoration.max_essential_tokens = 5

    text = build_restoration_context(store, "s1", cfg)

    assert NO_CONTEXT in text
    assert "###" not in text
