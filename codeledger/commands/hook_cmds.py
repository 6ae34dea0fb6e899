from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import typer
from rich import print

from ..capture import entry_from_tool_use, extraction_kind_for, hooks_disabled
from ..config import LedgerConfig
from ..context_status import read_context_status, threshold_warning
from ..extraction import Extractor, persist_extraction, source_for_kind, spawn_extraction

logger = logging.getLogger(__name__)


def capture_cmd(*, buffer_from_path, db_path: str | None, config: LedgerConfig, payload: str) -> None:
    """Record a finished tool call from a post-tool-use hook payload.

    Never fails the hook: malformed payloads and unknown tools are ignored.
    """

    if hooks_disabled() or not payload.strip():
        return
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("capture payload is not json")
        return
    if not isinstance(data, dict):
        return
    session_id = data.get("session_id")
    tool_name = data.get("tool_name")
    if not isinstance(session_id, str) or not isinstance(tool_name, str):
        return
    entry = entry_from_tool_use(tool_name, data.get("tool_input"))
    if entry is None:
        return
    buffer = buffer_from_path(db_path)
    if not buffer.append(session_id, entry):
        return
    kind = extraction_kind_for(entry, config)
    if kind is None:
        return
    try:
        content = Path(entry.content).expanduser().read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("capture could not read %s", entry.content, exc_info=exc)
        return
    spawn_extraction(
        session_id,
        kind,
        content,
        file_path=entry.content,
        paths=buffer.paths,
        db_path=buffer.store.db_path,
    )


def extract_cmd(
    *,
    store_from_path,
    db_path: str | None,
    config: LedgerConfig,
    session_id: str,
    kind: str,
    file_path: str | None,
    user_message: str,
    content: str,
) -> None:
    """Run one extraction over ``content`` and store what it finds."""

    extractor = Extractor.from_settings(config.extraction)
    try:
        result = extractor.extract(kind, content, file_path=file_path, user_message=user_message)
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    store = store_from_path(db_path)
    stored = persist_extraction(store, session_id, result, source=source_for_kind(kind))
    print(f"Extracted {len(result.entries)} entries ({stored} new)")
    if result.summary is not None:
        typer.echo(json.dumps(result.summary.to_dict(), ensure_ascii=False))


def status_cmd(*, paths, config: LedgerConfig, session_id: str) -> None:
    """Show context-window usage for a session and any threshold warning."""

    status = read_context_status(paths, session_id)
    if status is None:
        print(f"No context status for {session_id}")
        return
    percentage = f"{status.percentage:.0f}%" if status.percentage is not None else "unknown"
    model = status.model_display_name or status.model_id or "unknown"
    print(f"Context: {percentage} (model {model}, {status.format} format)")
    if status.tokens_used is not None and status.tokens_max is not None:
        print(f"Tokens: {status.tokens_used}/{status.tokens_max}")
    if status.cost_usd is not None:
        print(f"Cost: ${status.cost_usd:.2f}")
    warning = threshold_warning(status, config)
    if warning:
        typer.echo(warning, err=True)


def read_stdin() -> str:
    if sys.stdin is None or sys.stdin.isatty():
        return ""
    return sys.stdin.read()
