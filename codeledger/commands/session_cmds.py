from __future__ import annotations

import typer
from rich import print
from rich.markup import escape

from ..config import is_valid_session_id


def session_list_cmd(*, buffer_from_path, db_path: str | None) -> None:
    """List sessions known on disk or in the database."""

    buffer = buffer_from_path(db_path)
    stats = {stat.session_id: stat for stat in buffer.store.session_stats()}
    session_ids = sorted(set(buffer.session_ids()) | set(stats))
    if not session_ids:
        print("No sessions")
        return
    for session_id in session_ids:
        stat = stats.get(session_id)
        stored = stat.entry_count if stat else 0
        last = f", last {stat.last_entry}" if stat else ""
        pending = buffer.count(session_id)
        print(f"- {escape(session_id)}: {stored} stored, {pending} pending{last}")


def session_show_cmd(*, buffer_from_path, db_path: str | None, session_id: str, limit: int) -> None:
    """Show buffer state and the most recent stored entries for one session."""

    if not is_valid_session_id(session_id):
        print(f"[red]Invalid session id: {escape(session_id)}[/red]")
        raise typer.Exit(code=1)
    buffer = buffer_from_path(db_path)
    session_dir = buffer.paths.session_dir(session_id)
    stored = buffer.store.count_by_session(session_id)
    if not session_dir.is_dir() and not stored:
        print(f"[red]Unknown session: {escape(session_id)}[/red]")
        raise typer.Exit(code=1)
    print(f"[bold]Session {escape(session_id)}[/bold]")
    print(f"- Directory: {session_dir}{'' if session_dir.is_dir() else ' (missing)'}")
    print(f"- Pending entries: {buffer.count(session_id)}")
    print(f"- Flush in progress: {'yes' if buffer.flush_in_progress(session_id) else 'no'}")
    print(f"- Stored entries: {stored}")
    for item in buffer.store.query_by_session(session_id, limit=limit):
        print(f"  [{item.id}] ({item.entry_type}, {item.importance}) {escape(item.content)}")


def session_remove_cmd(*, buffer_from_path, db_path: str | None, session_id: str) -> None:
    """Purge a session's directory and stored entries."""

    if not is_valid_session_id(session_id):
        print(f"[red]Invalid session id: {escape(session_id)}[/red]")
        raise typer.Exit(code=1)
    buffer = buffer_from_path(db_path)
    removal = buffer.remove_session(session_id)
    if not removal.directory_removed and not removal.entries_deleted:
        print(f"Nothing to remove for {escape(session_id)}")
        return
    print(f"Removed session {escape(session_id)}")
    print(f"- Directory removed: {'yes' if removal.directory_removed else 'no'}")
    print(f"- Entries deleted: {removal.entries_deleted}")
