from __future__ import annotations

import os
import re
from typing import Any

from .config import LedgerConfig
from .entry import Entry

SKIP_HOOKS_ENV = "CODELEDGER_SKIP_HOOKS"

GUIDELINE_PATTERNS = (
    re.compile(r"/agent-guidelines/"),
    re.compile(r"-style\.md$"),
)

IMPLEMENTATION_PLAN_PATTERNS = (re.compile(r"/implementation-plans/"),)


def hooks_disabled() -> bool:
    value = os.getenv(SKIP_HOOKS_ENV, "").strip().lower()
    return value in {"1", "true", "yes", "on"}


def special_file_type(file_path: str) -> str | None:
    if any(pattern.search(file_path) for pattern in GUIDELINE_PATTERNS):
        return "guideline"
    if any(pattern.search(file_path) for pattern in IMPLEMENTATION_PLAN_PATTERNS):
        return "implementation_plan"
    return None


def _input_str(tool_input: Any, key: str) -> str | None:
    if not isinstance(tool_input, dict):
        return None
    value = tool_input.get(key)
    return value if isinstance(value, str) and value else None


def entry_from_tool_use(tool_name: str, tool_input: Any) -> Entry | None:
    """Map a finished tool call to the buffer entry that records it, if any."""

    metadata = {"tool": tool_name}
    if tool_name in {"Read", "Edit", "Write"}:
        file_path = _input_str(tool_input, "file_path")
        if not file_path:
            return None
        if tool_name == "Read":
            entry_type = special_file_type(file_path) or "file_read"
            importance = "low" if entry_type == "file_read" else "medium"
        else:
            entry_type = "file_edit" if tool_name == "Edit" else "file_write"
            importance = "medium"
        return Entry(entry_type=entry_type, content=file_path, importance=importance, metadata=metadata)
    if tool_name in {"Grep", "Glob"}:
        pattern = _input_str(tool_input, "pattern")
        if not pattern:
            return None
        path = _input_str(tool_input, "path")
        content = f"{pattern} in {path}" if path else pattern
        return Entry(entry_type="search", content=content, importance="low", metadata=metadata)
    return None


def extraction_kind_for(entry: Entry, config: LedgerConfig) -> str | None:
    """Name the extraction a captured read should trigger, or None."""

    if not config.extraction.on_guideline_read:
        return None
    if entry.entry_type == "guideline":
        return "guidelines"
    if entry.entry_type == "implementation_plan":
        return "implementation_plan"
    return None
