from __future__ import annotations

from pathlib import Path

import pytest

from codeledger.config import LedgerPaths
from codeledger.store import LedgerStore


@pytest.fixture(autouse=True)
def _isolate_ledger_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    base = tmp_path / "ledger-home"
    monkeypatch.setenv("CODELEDGER_DIR", str(base))
    monkeypatch.setenv("CODELEDGER_DB", str(base / "data" / "ledger.sqlite"))
    monkeypatch.setenv("CODELEDGER_CONFIG", str(base / "config.json"))
    for name in (
        "CODELEDGER_SKIP_HOOKS",
        "CODELEDGER_THRESHOLD_WARNING",
        "CODELEDGER_THRESHOLD_CRITICAL",
        "CODELEDGER_EXTRACTION_COMMAND",
        "CODELEDGER_EXTRACTION_TIMEOUT_S",
        "CODELEDGER_MAX_ESSENTIAL_TOKENS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def paths() -> LedgerPaths:
    return LedgerPaths.from_env()


@pytest.fixture
def store(paths: LedgerPaths) -> LedgerStore:
    return LedgerStore(paths.db_path)
