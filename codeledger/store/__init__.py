from __future__ import annotations

from ._store import LedgerStore
from .search import prepare_fts_query
from .types import RestorationResult, SessionStat, StoredEntry, Tier1Result, Tier2Result

__all__ = [
    "LedgerStore",
    "RestorationResult",
    "SessionStat",
    "StoredEntry",
    "Tier1Result",
    "Tier2Result",
    "prepare_fts_query",
]
