from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from ..config import ExtractionSettings, LedgerPaths
from ..entry import Entry
from ..store import LedgerStore
from . import prompts
from .runner import ClaudeRunner

logger = logging.getLogger(__name__)

EXTRACTION_KINDS = ("user_directions", "assistant_learnings", "guidelines", "implementation_plan")


@dataclass
class ExchangeSummary:
    user_request: str
    assistant_response: str
    files_modified: list[str] = field(default_factory=list)
    key_actions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_request": self.user_request,
            "assistant_response": self.assistant_response,
            "files_modified": list(self.files_modified),
            "key_actions": list(self.key_actions),
        }


@dataclass
class ExtractionResult:
    entries: list[Entry] = field(default_factory=list)
    summary: ExchangeSummary | None = None

    def is_empty(self) -> bool:
        return not self.entries and self.summary is None


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _parse_summary(data: Any) -> ExchangeSummary | None:
    if not isinstance(data, dict):
        return None
    user_request = _str_or_none(data.get("user_request")) or ""
    assistant_response = _str_or_none(data.get("assistant_response")) or ""
    if not user_request and not assistant_response:
        return None
    return ExchangeSummary(
        user_request=user_request,
        assistant_response=assistant_response,
        files_modified=_str_list(data.get("files_modified")),
        key_actions=_str_list(data.get("key_actions")),
    )


def parse_extraction_result(
    output: str,
    include_summary: bool = False,
    source_file: str | None = None,
) -> ExtractionResult:
    """Parse the model's ``{"extractions": [...], "summary": {...}}`` answer.

    Items with an unknown type or importance, or with blank content, are dropped.
    Anything that is not a JSON object yields an empty result.
    """

    try:
        payload = json.loads(output)
    except (TypeError, json.JSONDecodeError):
        return ExtractionResult()
    if not isinstance(payload, dict):
        return ExtractionResult()

    basename = os.path.basename(source_file) if source_file else None
    stem = prompts.file_stem(source_file) if source_file else None

    entries: list[Entry] = []
    items = payload.get("extractions")
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            continue
        content = _str_or_none(item.get("content")) or ""
        if not content.strip():
            continue
        keywords: list[str] | None = None
        if isinstance(item.get("keywords"), list):
            keywords = _str_list(item.get("keywords"))
        if stem:
            keywords = keywords or []
            if stem not in keywords:
                keywords.append(stem)
        entry = Entry(
            entry_type=_str_or_none(item.get("type")) or "learning",
            content=content,
            importance=_str_or_none(item.get("importance")) or "medium",
            category=_str_or_none(item.get("category")),
            keywords=keywords,
            applies_when=_str_or_none(item.get("applies_when")),
            source_file=basename,
        )
        if entry.is_valid():
            entries.append(entry)

    summary = _parse_summary(payload.get("summary")) if include_summary else None
    return ExtractionResult(entries=entries, summary=summary)


class Extractor:
    def __init__(self, runner: ClaudeRunner | None = None) -> None:
        self.runner = runner or ClaudeRunner()

    @classmethod
    def from_settings(cls, settings: ExtractionSettings) -> Extractor:
        return cls(ClaudeRunner(command=settings.command, timeout_s=settings.timeout_s))

    def extract_user_directions(self, prompt: str) -> ExtractionResult:
        if not prompt.strip():
            return ExtractionResult()
        output = self.runner.run(prompt, prompts.user_directions_prompt())
        if output is None:
            return ExtractionResult()
        return parse_extraction_result(output)

    def extract_assistant_learnings(
        self, user_message: str, assistant_content: str
    ) -> ExtractionResult:
        if not assistant_content.strip():
            return ExtractionResult()
        output = self.runner.run(assistant_content, prompts.assistant_learnings_prompt(user_message))
        if output is None:
            return ExtractionResult()
        return parse_extraction_result(output, include_summary=True)

    def extract_guidelines(self, file_path: str, content: str) -> ExtractionResult:
        if not content.strip():
            return ExtractionResult()
        output = self.runner.run(content, prompts.guideline_prompt(file_path))
        if output is None:
            return ExtractionResult()
        return parse_extraction_result(output, source_file=file_path)

    def extract_implementation_plan(self, file_path: str, content: str) -> ExtractionResult:
        if not content.strip():
            return ExtractionResult()
        output = self.runner.run(content, prompts.implementation_plan_prompt(file_path))
        if output is None:
            return ExtractionResult()
        return parse_extraction_result(output, source_file=file_path)

    def extract(
        self,
        kind: str,
        content: str,
        *,
        file_path: str | None = None,
        user_message: str = "",
    ) -> ExtractionResult:
        if kind == "user_directions":
            return self.extract_user_directions(content)
        if kind == "assistant_learnings":
            return self.extract_assistant_learnings(user_message, content)
        if kind in {"guidelines", "implementation_plan"}:
            if not file_path:
                raise ValueError(f"{kind} extraction requires a file path")
            if kind == "guidelines":
                return self.extract_guidelines(file_path, content)
            return self.extract_implementation_plan(file_path, content)
        raise ValueError(f"Unknown extraction kind: {kind}")


def source_for_kind(kind: str) -> str | None:
    if kind == "user_directions":
        return "user"
    if kind == "assistant_learnings":
        return "assistant"
    return None


def persist_extraction(
    store: LedgerStore,
    session_id: str,
    result: ExtractionResult,
    source: str | None = None,
) -> int:
    """Write extracted entries straight into the store, bypassing the session buffer."""

    if not session_id or not result.entries:
        return 0
    entries = result.entries
    if source is not None:
        entries = [replace(entry, source=source) for entry in entries]
    inserted = store.insert_many(session_id, entries)
    logger.info(
        "stored %d of %d extracted entries for session %s",
        inserted,
        len(result.entries),
        session_id,
    )
    return inserted


def spawn_extraction(
    session_id: str,
    kind: str,
    content: str,
    *,
    file_path: str | None = None,
    user_message: str | None = None,
    paths: LedgerPaths | None = None,
    db_path: Path | str | None = None,
) -> int | None:
    """Run ``codeledger extract`` in a detached child fed ``content`` on stdin.

    The child stores into ``db_path`` when given, else into ``paths.db_path``.
    Returns the child's pid, or None when nothing was spawned.
    """

    if not session_id or not content.strip() or kind not in EXTRACTION_KINDS:
        return None
    cmd = [sys.executable, "-m", "codeledger", "extract", "--session", session_id, "--kind", kind]
    if file_path:
        cmd.extend(["--file", file_path])
    if user_message:
        cmd.extend(["--user-message", user_message])
    env = os.environ.copy()
    if paths is not None:
        env["CODELEDGER_DIR"] = str(paths.base_dir)
        env["CODELEDGER_DB"] = str(paths.db_path)
    if db_path is not None:
        env["CODELEDGER_DB"] = str(db_path)
    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.PIPE,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
            env=env,
        )
    except OSError as exc:
        logger.warning("extraction spawn failed", extra={"kind": kind}, exc_info=exc)
        return None
    try:
        if proc.stdin is not None:
            proc.stdin.write(content.encode("utf-8"))
            proc.stdin.close()
    except OSError as exc:
        logger.warning("extraction stdin write failed", extra={"pid": proc.pid}, exc_info=exc)
    return int(proc.pid)
