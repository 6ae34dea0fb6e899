from __future__ import annotations

from .extractor import (
    EXTRACTION_KINDS,
    ExchangeSummary,
    ExtractionResult,
    Extractor,
    parse_extraction_result,
    persist_extraction,
    source_for_kind,
    spawn_extraction,
)
from .runner import ClaudeRunner, extract_cli_result, strip_code_fences

__all__ = [
    "EXTRACTION_KINDS",
    "ClaudeRunner",
    "ExchangeSummary",
    "ExtractionResult",
    "Extractor",
    "extract_cli_result",
    "parse_extraction_result",
    "persist_extraction",
    "source_for_kind",
    "spawn_extraction",
    "strip_code_fences",
]
