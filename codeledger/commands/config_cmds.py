from __future__ import annotations

import typer
from rich import print

from ..config import LedgerConfig, get_env_overrides, get_setting, save_config, set_setting


def config_get_cmd(*, config: LedgerConfig, key: str) -> None:
    try:
        value = get_setting(config, key)
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    print(value)


def config_set_cmd(*, config: LedgerConfig, config_path, key: str, value: str) -> None:
    """Update one dotted setting and write the config file."""

    try:
        set_setting(config, key, value)
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    try:
        save_config(config, config_path)
    except OSError as exc:
        print(f"[red]Failed to write config: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    print(f"Set {key} = {get_setting(config, key)}")
    if key in get_env_overrides():
        print(f"[yellow]Note: {key} is overridden by an environment variable[/yellow]")
