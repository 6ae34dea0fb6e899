"""Context-window status written by the statusline bridge.

The bridge file comes in two shapes. The legacy shape carries a top-level
``percentage`` and a string ``model``; the enhanced shape nests usage under
``context`` and describes the model with an object. Both are resolved once into
a single :class:`ContextStatus` so callers never branch on the wire format.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal

from .config import LedgerConfig, LedgerPaths, is_valid_session_id

logger = logging.getLogger(__name__)

StatusFormat = Literal["legacy", "enhanced"]


@dataclass(frozen=True)
class ContextStatus:
    format: StatusFormat
    percentage: float | None = None
    model_id: str | None = None
    model_display_name: str | None = None
    tokens_used: int | None = None
    tokens_max: int | None = None
    cost_usd: float | None = None
    session_id: str | None = None
    cwd: str | None = None


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _integer(value: Any) -> int | None:
    number = _number(value)
    return int(number) if number is not None else None


def _string(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def parse_context_status(data: Any) -> ContextStatus | None:
    if not isinstance(data, dict):
        return None
    context = data.get("context")
    enhanced = isinstance(context, dict) or data.get("session_id") is not None
    raw_model = data.get("model")
    if isinstance(raw_model, dict):
        model_id = _string(raw_model.get("id"))
        display_name = _string(raw_model.get("display_name"))
    else:
        model_id = _string(raw_model)
        display_name = None

    if not enhanced:
        return ContextStatus(
            format="legacy",
            percentage=_number(data.get("percentage")),
            model_id=model_id,
        )

    context = context if isinstance(context, dict) else {}
    cost = data.get("cost") if isinstance(data.get("cost"), dict) else {}
    percentage = _number(context.get("percentage"))
    if percentage is None:
        percentage = _number(data.get("percentage"))
    return ContextStatus(
        format="enhanced",
        percentage=percentage,
        model_id=model_id,
        model_display_name=display_name,
        tokens_used=_integer(context.get("tokens_used")),
        tokens_max=_integer(context.get("tokens_max")),
        cost_usd=_number(cost.get("usd")),
        session_id=_string(data.get("session_id")),
        cwd=_string(data.get("cwd")),
    )


def read_context_status(paths: LedgerPaths, session_id: str) -> ContextStatus | None:
    if not is_valid_session_id(session_id):
        return None
    status_path = paths.context_status_path(session_id)
    if not status_path.exists():
        return None
    try:
        data = json.loads(status_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.debug("context status unreadable", extra={"path": str(status_path)}, exc_info=exc)
        return None
    return parse_context_status(data)


def threshold_warning(status: ContextStatus | None, config: LedgerConfig) -> str | None:
    if status is None or status.percentage is None:
        return None
    percentage = status.percentage
    shown = int(round(percentage))
    if percentage >= config.thresholds.critical:
        if not config.warnings.at_critical_threshold:
            return None
        return (
            f"🚨 Context at {shown}%. Please /clear now.\n"
            "   Auto-compact will trigger at 95% and may lose important context."
        )
    if percentage >= config.thresholds.warning:
        if not config.warnings.at_warning_threshold:
            return None
        return f"⚠️  Context at {shown}%. Consider /clear soon to preserve performance."
    return None
