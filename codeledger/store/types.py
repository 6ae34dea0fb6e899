from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Any

from .. import db
from ..entry import Entry


@dataclass
class StoredEntry:
    id: int
    session_id: str
    entry_type: str
    source: str | None
    content: str
    content_hash: str
    metadata: dict[str, Any] | None
    importance: str
    created_at: str
    category: str | None = None
    keywords: list[str] = field(default_factory=list)
    applies_when: str | None = None
    source_file: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> StoredEntry:
        metadata = db.from_json(row["metadata"])
        keywords = db.from_json(row["keywords"])
        return cls(
            id=int(row["id"]),
            session_id=str(row["session_id"]),
            entry_type=str(row["entry_type"]),
            source=row["source"],
            content=str(row["content"]),
            content_hash=str(row["content_hash"]),
            metadata=metadata if isinstance(metadata, dict) else None,
            importance=str(row["importance"] or "medium"),
            created_at=str(row["created_at"]),
            category=row["category"],
            keywords=[str(k) for k in keywords] if isinstance(keywords, list) else [],
            applies_when=row["applies_when"],
            source_file=row["source_file"],
        )

    def to_entry(self) -> Entry:
        return Entry(
            entry_type=self.entry_type,
            content=self.content,
            importance=self.importance,
            source=self.source,
            metadata=self.metadata,
            created_at=self.created_at,
            category=self.category,
            keywords=list(self.keywords) or None,
            applies_when=self.applies_when,
            source_file=self.source_file,
        )


@dataclass
class SessionStat:
    session_id: str
    entry_count: int
    last_entry: str


@dataclass
class Tier1Result:
    guidelines: list[StoredEntry] = field(default_factory=list)
    implementation_plans: list[StoredEntry] = field(default_factory=list)
    high_importance_decisions: list[StoredEntry] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return (
            len(self.guidelines)
            + len(self.implementation_plans)
            + len(self.high_importance_decisions)
        )


@dataclass
class Tier2Result:
    learnings: list[StoredEntry] = field(default_factory=list)
    file_edits: list[StoredEntry] = field(default_factory=list)
    medium_decisions: list[StoredEntry] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return len(self.learnings) + len(self.file_edits) + len(self.medium_decisions)


@dataclass
class RestorationResult:
    tier1: Tier1Result = field(default_factory=Tier1Result)
    tier2: Tier2Result = field(default_factory=Tier2Result)

    @property
    def total_count(self) -> int:
        return self.tier1.total_count + self.tier2.total_count
