from __future__ import annotations

import json

import typer
from rich import print


def buffer_flush_cmd(*, buffer_from_path, db_path: str | None, session_id: str, background: bool) -> None:
    """Move buffered entries for a session into the database."""

    buffer = buffer_from_path(db_path)
    result = buffer.flush_async(session_id) if background else buffer.flush_sync(session_id)
    if not result.success:
        print(f"[red]Flush failed: {result.reason}[/red]")
        raise typer.Exit(code=1)
    if background:
        print(result.reason)
        return
    print(f"Flushed {result.entries_flushed} entries")


def buffer_count_cmd(*, buffer_from_path, db_path: str | None, session_id: str) -> None:
    buffer = buffer_from_path(db_path)
    print(buffer.count(session_id))


def buffer_clear_cmd(*, buffer_from_path, db_path: str | None, session_id: str) -> None:
    buffer = buffer_from_path(db_path)
    if not buffer.clear(session_id):
        print(f"[red]Could not clear buffer for {session_id}[/red]")
        raise typer.Exit(code=1)
    print(f"Cleared buffer for {session_id}")


def buffer_show_cmd(*, buffer_from_path, db_path: str | None, session_id: str) -> None:
    """Print pending entries as JSON lines."""

    buffer = buffer_from_path(db_path)
    for entry in buffer.read(session_id):
        typer.echo(json.dumps(entry.to_dict(), ensure_ascii=False))


def recover_cmd(*, buffer_from_path, db_path: str | None, session_id: str | None) -> None:
    """Replay flushing files left behind by interrupted flushes."""

    buffer = buffer_from_path(db_path)
    if session_id:
        recovered = {session_id: buffer.recover_orphan(session_id)}
    else:
        recovered = buffer.recover_all_orphans()
    if session_id and not recovered[session_id]:
        print(f"No orphaned entries found for {session_id}")
        return
    if not recovered:
        print("No orphaned entries found")
        return
    for sid, count in recovered.items():
        print(f"- {sid}: recovered {count} entries")
