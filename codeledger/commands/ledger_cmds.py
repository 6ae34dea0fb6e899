from __future__ import annotations

import typer
from rich import print
from rich.markup import escape

from ..config import LedgerConfig
from ..restoration import build_restoration_context


def init_db_cmd(*, store_from_path, db_path: str | None) -> None:
    """Create the SQLite database (no-op if it already exists)."""

    store = store_from_path(db_path)
    if not store.initialize():
        print(f"[red]Could not initialize database at {store.db_path}[/red]")
        raise typer.Exit(code=1)
    print(f"Initialized database at {store.db_path}")


def search_cmd(
    *,
    store_from_path,
    db_path: str | None,
    query: str,
    session_id: str | None,
    entry_type: str | None,
    importance: str | None,
    limit: int,
    prefix: bool,
) -> None:
    """Full-text search over stored entries."""

    store = store_from_path(db_path)
    if session_id:
        results = store.search_in_session(
            session_id, query, limit=limit, entry_type=entry_type, importance=importance,
            prefix_match=prefix,
        )
    else:
        results = store.search(
            query, limit=limit, entry_type=entry_type, importance=importance, prefix_match=prefix
        )
    if not results:
        print("No matching entries")
        return
    for item in results:
        print(
            f"[{item.id}] ({item.entry_type}, {item.importance}) {escape(item.content)}\n"
            f"session={escape(item.session_id)} created_at={item.created_at}\n"
        )


def restore_cmd(*, buffer_from_path, db_path: str | None, session_id: str, config: LedgerConfig) -> None:
    """Print the restoration payload for a session.

    A flushing file left by a crashed flush is replayed first so its entries are
    part of the restored context.
    """

    buffer = buffer_from_path(db_path)
    buffer.recover_orphan(session_id)
    typer.echo(build_restoration_context(buffer.store, session_id, config))


def stats_cmd(*, store_from_path, db_path: str | None) -> None:
    store = store_from_path(db_path)
    sessions = store.session_stats()
    print("[bold]Ledger[/bold]")
    print(f"- Path: {store.db_path}")
    print(f"- Entries: {store.count()}")
    print(f"- Sessions: {len(sessions)}")
    for stat in sessions:
        print(f"  - {escape(stat.session_id)}: {stat.entry_count} entries (last {stat.last_entry})")
