from __future__ import annotations

import logging

from .config import LedgerConfig
from .store import LedgerStore, RestorationResult, StoredEntry

logger = logging.getLogger(__name__)

NO_CONTEXT = "No previous context available."
SEARCH_HINT = '📚 Full session history available: `codeledger search "query"`'


def estimate_tokens(text: str) -> int:
    return (len(text) + 3) // 4


def format_entry(entry: StoredEntry) -> str:
    line = f"- {entry.content.strip()}"
    if entry.category:
        line = f"- [{entry.category}] {entry.content.strip()}"
    if entry.applies_when:
        line += f" (applies when: {entry.applies_when})"
    return line


def _sections(result: RestorationResult) -> list[tuple[str, list[StoredEntry]]]:
    """Titled sections in priority order, most essential first."""

    return [
        ("Guidelines", result.tier1.guidelines),
        ("Implementation Plans", result.tier1.implementation_plans),
        ("Key Decisions", result.tier1.high_importance_decisions),
        ("Recent Learnings", result.tier2.learnings),
        ("Recent File Edits", result.tier2.file_edits),
        ("Other Decisions", result.tier2.medium_decisions),
    ]


def _render_empty() -> str:
    return "\n".join(["## Restored Context", "", NO_CONTEXT, "", "---", SEARCH_HINT])


def _render(sections: list[tuple[str, list[str]]]) -> str:
    lines = ["## Restored Context", ""]
    for title, items in sections:
        if not items:
            continue
        lines.append(f"### {title}")
        lines.extend(items)
        lines.append("")
    lines.extend(["---", SEARCH_HINT])
    return "\n".join(lines)


def render_restoration(result: RestorationResult, max_tokens: int) -> str:
    """Render restored entries as markdown, dropping the least essential lines to fit.

    Lines are dropped from the end of the lowest-priority non-empty section first, so
    Tier 2 shrinks before any Tier 1 line is touched.
    If the budget cannot hold even one line, the empty-context text is returned.
    """

    if result.total_count == 0:
        return _render_empty()
    sections = [(title, [format_entry(e) for e in entries]) for title, entries in _sections(result)]
    text = _render(sections)
    dropped = 0
    while estimate_tokens(text) > max_tokens:
        for _title, items in reversed(sections):
            if items:
                items.pop()
                dropped += 1
                break
        else:
            break
        text = _render(sections)
    if dropped:
        logger.debug("restoration context trimmed", extra={"dropped": dropped})
    if not any(items for _title, items in sections):
        return _render_empty()
    return text


def build_restoration_context(
    store: LedgerStore, session_id: str, config: LedgerConfig | None = None
) -> str:
    config = config or LedgerConfig()
    limits = config.restoration
    result = store.query_for_restoration(
        session_id,
        tier1_decision_limit=limits.tier1_limits.high_importance_decisions,
        tier2_learnings_limit=limits.tier2_limits.learnings,
        tier2_file_edits_limit=limits.tier2_limits.file_edits,
        tier2_decisions_limit=limits.tier2_limits.medium_importance_decisions,
    )
    return render_restoration(result, limits.max_essential_tokens)
