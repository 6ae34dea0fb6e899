from __future__ import annotations

import datetime as dt
import hashlib
from dataclasses import dataclass, field
from typing import Any, Final

ENTRY_TYPES: Final[tuple[str, ...]] = (
    "file_read",
    "file_edit",
    "file_write",
    "search",
    "direction",
    "preference",
    "constraint",
    "learning",
    "decision",
    "discovery",
    "guideline",
    "implementation_plan",
    "reference",
)

IMPORTANCE_LEVELS: Final[tuple[str, ...]] = ("high", "medium", "low")

SOURCES: Final[tuple[str, ...]] = ("user", "assistant")


def now_iso() -> str:
    return dt.datetime.now(dt.UTC).isoformat()


def content_hash(entry_type: str, content: str) -> str:
    return hashlib.sha256(f"{entry_type}:{content}".encode()).hexdigest()


@dataclass
class Entry:
    entry_type: str
    content: str
    importance: str = "medium"
    source: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: str = field(default_factory=now_iso)
    category: str | None = None
    keywords: list[str] | None = None
    applies_when: str | None = None
    source_file: str | None = None

    def problems(self) -> list[str]:
        problems: list[str] = []
        if self.entry_type not in ENTRY_TYPES:
            problems.append(
                f"Invalid entry type '{self.entry_type}'. Allowed types: {', '.join(ENTRY_TYPES)}"
            )
        if not isinstance(self.content, str) or not self.content.strip():
            problems.append("Entry content must not be empty")
        if self.importance not in IMPORTANCE_LEVELS:
            problems.append(
                f"Invalid importance '{self.importance}'. "
                f"Allowed levels: {', '.join(IMPORTANCE_LEVELS)}"
            )
        if self.source is not None and self.source not in SOURCES:
            problems.append(f"Invalid source '{self.source}'. Allowed sources: user, assistant")
        return problems

    def is_valid(self) -> bool:
        return not self.problems()

    def validate(self) -> Entry:
        problems = self.problems()
        if problems:
            raise ValueError(problems[0])
        return self

    @property
    def content_hash(self) -> str:
        return content_hash(self.entry_type, self.content)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_type": self.entry_type,
            "content": self.content,
            "importance": self.importance,
            "source": self.source,
            "metadata": self.metadata,
            "created_at": self.created_at,
            "category": self.category,
            "keywords": self.keywords,
            "applies_when": self.applies_when,
            "source_file": self.source_file,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Entry:
        if not isinstance(data, dict):
            raise ValueError("entry must be an object")
        for key in ("entry_type", "content"):
            if not isinstance(data.get(key), str):
                raise ValueError(f"entry field '{key}' must be a string")
        metadata = data.get("metadata")
        keywords = data.get("keywords")
        if isinstance(keywords, list):
            keywords = [str(k) for k in keywords if isinstance(k, str)]
        else:
            keywords = None
        created_at = data.get("created_at")
        return cls(
            entry_type=data["entry_type"],
            content=data["content"],
            importance=str(data.get("importance") or "medium"),
            source=data.get("source") if isinstance(data.get("source"), str) else None,
            metadata=metadata if isinstance(metadata, dict) else None,
            created_at=created_at if isinstance(created_at, str) and created_at else now_iso(),
            category=_opt_str(data.get("category")),
            keywords=keywords,
            applies_when=_opt_str(data.get("applies_when")),
            source_file=_opt_str(data.get("source_file")),
        )


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None
