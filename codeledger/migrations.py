"""Versioned migrations for the ledger database and the config file.

Both artifacts are stamped with the package version that last wrote them. When a newer
release opens an older artifact, every registered step whose version is greater than the
stored version and not greater than the running version is applied in ascending semver
order, then the artifact is re-stamped. There is no per-step ledger: the stamp alone
records what ran, so each step must be safe to apply twice.

Adding a change:

1. Bump ``codeledger.__version__``.
2. Register the step under the new version in ``DATABASE_MIGRATIONS`` (receives a live
   ``sqlite3.Connection``) or ``CONFIG_MIGRATIONS`` (receives the config dict and returns
   the transformed dict).
3. Update ``db.initialize_schema`` or the ``LedgerConfig`` defaults so fresh installs get
   the new shape directly.

Never delete old steps; users may upgrade across several releases at once.
"""

from __future__ import annotations

import copy
import logging
import sqlite3
from collections.abc import Callable, Mapping
from typing import Any

from . import __version__

logger = logging.getLogger(__name__)

BASELINE_VERSION = "0.0.1"
SCHEMA_VERSION_KEY = "_schema_version"

ConfigMigration = Callable[[dict[str, Any]], dict[str, Any]]
DatabaseMigration = Callable[[sqlite3.Connection], None]


def parse_version(version: str) -> tuple[int, int, int]:
    parts = str(version or "").strip().split(".")
    numbers: list[int] = []
    for index in range(3):
        try:
            numbers.append(int(parts[index]))
        except (IndexError, ValueError):
            numbers.append(0)
    return numbers[0], numbers[1], numbers[2]


def compare_versions(a: str, b: str) -> int:
    va = parse_version(a)
    vb = parse_version(b)
    return (va > vb) - (va < vb)


def migrations_between(registry: Mapping[str, Any], from_version: str, to_version: str) -> list[str]:
    selected = [
        version
        for version in registry
        if compare_versions(version, from_version) > 0 and compare_versions(version, to_version) <= 0
    ]
    return sorted(selected, key=parse_version)


def _config_v0_2_0(data: dict[str, Any]) -> dict[str, Any]:
    restoration = data.get("restoration")
    if not isinstance(restoration, dict):
        restoration = {}
    restoration.setdefault("max_essential_tokens", 2000)
    tier1 = restoration.get("tier1_limits")
    if not isinstance(tier1, dict):
        tier1 = {}
    tier1.setdefault("high_importance_decisions", 10)
    restoration["tier1_limits"] = tier1
    tier2 = restoration.get("tier2_limits")
    if not isinstance(tier2, dict):
        tier2 = {}
    tier2.setdefault("learnings", 5)
    tier2.setdefault("file_edits", 10)
    tier2.setdefault("medium_importance_decisions", 5)
    restoration["tier2_limits"] = tier2
    data["restoration"] = restoration

    extraction = data.get("extraction")
    if not isinstance(extraction, dict):
        extraction = {}
    extraction.setdefault("timeout_s", 60)
    data["extraction"] = extraction
    return data


def _add_column_if_missing(
    conn: sqlite3.Connection, table: str, column: str, column_type: str
) -> None:
    existing = {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}
    if column in existing:
        return
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {column_type}")


def _database_v0_2_0(conn: sqlite3.Connection) -> None:
    _add_column_if_missing(conn, "ledger_entries", "category", "TEXT")
    _add_column_if_missing(conn, "ledger_entries", "keywords", "TEXT")
    _add_column_if_missing(conn, "ledger_entries", "applies_when", "TEXT")
    _add_column_if_missing(conn, "ledger_entries", "source_file", "TEXT")


CONFIG_MIGRATIONS: dict[str, ConfigMigration] = {
    "0.2.0": _config_v0_2_0,
}

DATABASE_MIGRATIONS: dict[str, DatabaseMigration] = {
    "0.2.0": _database_v0_2_0,
}


def migrate_config(
    data: dict[str, Any],
    current: str = __version__,
    registry: Mapping[str, ConfigMigration] | None = None,
) -> tuple[dict[str, Any], bool]:
    """Return ``(migrated, changed)``. The input dict is never mutated."""

    steps = CONFIG_MIGRATIONS if registry is None else registry
    stored = data.get(SCHEMA_VERSION_KEY)
    if not isinstance(stored, str) or not stored.strip():
        stored = BASELINE_VERSION

    if compare_versions(stored, current) > 0:
        logger.warning(
            "config schema version %s is newer than codeledger %s; leaving it untouched",
            stored,
            current,
        )
        return data, False
    if compare_versions(stored, current) == 0 and SCHEMA_VERSION_KEY in data:
        return data, False

    result = copy.deepcopy(data)
    for version in migrations_between(steps, stored, current):
        logger.debug("applying config migration %s", version)
        result = steps[version](result)
    result[SCHEMA_VERSION_KEY] = current
    return result, True


def ensure_schema_info_table(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_info (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )


def get_database_version(conn: sqlite3.Connection) -> str | None:
    row = conn.execute("SELECT value FROM schema_info WHERE key = 'version'").fetchone()
    if row is None:
        return None
    return str(row[0])


def set_database_version(conn: sqlite3.Connection, version: str) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO schema_info (key, value) VALUES ('version', ?)",
        (version,),
    )


def migrate_database(
    conn: sqlite3.Connection,
    current: str = __version__,
    registry: Mapping[str, DatabaseMigration] | None = None,
) -> list[str]:
    """Bring the database schema up to ``current``; returns the versions applied."""

    steps = DATABASE_MIGRATIONS if registry is None else registry
    ensure_schema_info_table(conn)
    stored = get_database_version(conn)
    if stored is None:
        stored = BASELINE_VERSION
        set_database_version(conn, stored)

    if compare_versions(stored, current) > 0:
        logger.warning(
            "database schema version %s is newer than codeledger %s; skipping migrations",
            stored,
            current,
        )
        conn.commit()
        return []

    applied: list[str] = []
    if compare_versions(stored, current) < 0:
        for version in migrations_between(steps, stored, current):
            logger.debug("applying database migration %s", version)
            steps[version](conn)
            applied.append(version)
        set_database_version(conn, current)
    conn.commit()
    return applied
