from __future__ import annotations

import typer
from rich import print

from . import __version__
from .commands.buffer_cmds import (
    buffer_clear_cmd,
    buffer_count_cmd,
    buffer_flush_cmd,
    buffer_show_cmd,
    recover_cmd,
)
from .commands.common import (
    buffer_from_path,
    config_from_env,
    configure_logging,
    paths_from_env,
    store_from_path,
)
from .commands.config_cmds import config_get_cmd, config_set_cmd
from .commands.hook_cmds import capture_cmd, extract_cmd, read_stdin, status_cmd
from .commands.ledger_cmds import init_db_cmd, restore_cmd, search_cmd, stats_cmd
from .commands.session_cmds import session_list_cmd, session_remove_cmd, session_show_cmd
from .extraction import EXTRACTION_KINDS

app = typer.Typer(help="codeledger: crash-safe session ledger for coding assistants")
buffer_app = typer.Typer(help="Inspect and flush per-session buffers")
config_app = typer.Typer(help="Read and change settings")
session_app = typer.Typer(help="List, inspect and remove sessions")
app.add_typer(buffer_app, name="buffer")
app.add_typer(config_app, name="config")
app.add_typer(session_app, name="session")


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output to stderr"),
) -> None:
    configure_logging(verbose)


@buffer_app.command("flush")
def buffer_flush(
    session_id: str = typer.Argument(..., help="Session id"),
    background: bool = typer.Option(False, "--async", help="Flush in a detached process"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Move buffered entries into the database."""
    buffer_flush_cmd(
        buffer_from_path=buffer_from_path, db_path=db_path, session_id=session_id, background=background
    )


@buffer_app.command("count")
def buffer_count(
    session_id: str = typer.Argument(..., help="Session id"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Print the number of pending entries."""
    buffer_count_cmd(buffer_from_path=buffer_from_path, db_path=db_path, session_id=session_id)


@buffer_app.command("clear")
def buffer_clear(
    session_id: str = typer.Argument(..., help="Session id"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Discard pending entries without storing them."""
    buffer_clear_cmd(buffer_from_path=buffer_from_path, db_path=db_path, session_id=session_id)


@buffer_app.command("show")
def buffer_show(
    session_id: str = typer.Argument(..., help="Session id"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Print pending entries as JSON lines."""
    buffer_show_cmd(buffer_from_path=buffer_from_path, db_path=db_path, session_id=session_id)


@app.command()
def recover(
    session_id: str = typer.Argument(None, help="Session id (default: every session)"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Replay entries left behind by interrupted flushes."""
    recover_cmd(buffer_from_path=buffer_from_path, db_path=db_path, session_id=session_id)


@session_app.command("list")
def session_list(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """List sessions with stored and pending entry counts."""
    session_list_cmd(buffer_from_path=buffer_from_path, db_path=db_path)


@session_app.command("show")
def session_show(
    session_id: str = typer.Argument(..., help="Session id"),
    limit: int = typer.Option(10, help="Max stored entries to list"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Show one session's buffer state and recent entries."""
    session_show_cmd(buffer_from_path=buffer_from_path, db_path=db_path, session_id=session_id, limit=limit)


@session_app.command("remove")
def session_remove(
    session_id: str = typer.Argument(..., help="Session id"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Delete a session's directory and stored entries."""
    session_remove_cmd(buffer_from_path=buffer_from_path, db_path=db_path, session_id=session_id)


@app.command()
def search(
    query: str,
    session_id: str = typer.Option(None, "--session", help="Only search this session"),
    entry_type: str = typer.Option(None, "--type", help="Filter by entry type"),
    importance: str = typer.Option(None, help="Filter by importance"),
    limit: int = typer.Option(20, help="Max results"),
    prefix: bool = typer.Option(True, "--prefix/--no-prefix", help="Match word prefixes"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Full-text search over stored entries."""
    search_cmd(
        store_from_path=store_from_path,
        db_path=db_path,
        query=query,
        session_id=session_id,
        entry_type=entry_type,
        importance=importance,
        limit=limit,
        prefix=prefix,
    )


@app.command()
def restore(
    session_id: str = typer.Argument(..., help="Session id"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Print the context to restore at session start."""
    restore_cmd(
        buffer_from_path=buffer_from_path,
        db_path=db_path,
        session_id=session_id,
        config=config_from_env(),
    )


@app.command()
def extract(
    session_id: str = typer.Option(..., "--session", help="Session id"),
    kind: str = typer.Option(..., help=f"One of: {', '.join(EXTRACTION_KINDS)}"),
    file_path: str = typer.Option(None, "--file", help="Source file for guideline or plan extraction"),
    user_message: str = typer.Option("", help="User message the content responds to"),
    db_path: str = typer.Option(None, help="Path to SQLite database"),
) -> None:
    """Extract durable entries from content on stdin."""
    extract_cmd(
        store_from_path=store_from_path,
        db_path=db_path,
        config=config_from_env(),
        session_id=session_id,
        kind=kind,
        file_path=file_path,
        user_message=user_message,
        content=read_stdin(),
    )


@app.command()
def capture(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Record a tool call from a post-tool-use hook payload on stdin."""
    capture_cmd(
        buffer_from_path=buffer_from_path,
        db_path=db_path,
        config=config_from_env(),
        payload=read_stdin(),
    )


@app.command()
def status(session_id: str = typer.Argument(..., help="Session id")) -> None:
    """Show context-window usage and threshold warnings."""
    paths = paths_from_env()
    status_cmd(paths=paths, config=config_from_env(paths), session_id=session_id)


@config_app.command("get")
def config_get(key: str = typer.Argument(..., help="Dotted setting name")) -> None:
    """Print one setting."""
    config_get_cmd(config=config_from_env(), key=key)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Dotted setting name"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Change one setting."""
    paths = paths_from_env()
    config_set_cmd(
        config=config_from_env(paths, apply_env=False),
        config_path=paths.config_path,
        key=key,
        value=value,
    )


@app.command()
def init_db(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Create the SQLite database (no-op if it already exists)."""
    init_db_cmd(store_from_path=store_from_path, db_path=db_path)


@app.command()
def stats(db_path: str = typer.Option(None, help="Path to SQLite database")) -> None:
    """Show entry counts per session."""
    stats_cmd(store_from_path=store_from_path, db_path=db_path)


@app.command("version")
def version() -> None:
    """Print version."""

    print(__version__)


def main() -> None:
    app()
