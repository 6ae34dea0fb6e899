from __future__ import annotations

import json
import os
import warnings
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from . import __version__
from .migrations import SCHEMA_VERSION_KEY, migrate_config

DEFAULT_BASE_DIR = Path("~/.codeledger")

LEDGER_BUFFER_FILENAME = "ledger_buffer.jsonl"
LEDGER_BUFFER_FLUSHING_FILENAME = "ledger_buffer.flushing.jsonl"
LEDGER_BUFFER_LOCK_FILENAME = "ledger_buffer.lock"
CONTEXT_STATUS_FILENAME = "context-status.json"


def is_valid_session_id(session_id: str | None) -> bool:
    """A session id must name exactly one directory directly under ``sessions/``."""

    if not session_id or session_id in (".", ".."):
        return False
    return "/" not in session_id and "\\" not in session_id and "\0" not in session_id


CONFIG_ENV_OVERRIDES = {
    "thresholds.warning": "CODELEDGER_THRESHOLD_WARNING",
    "thresholds.critical": "CODELEDGER_THRESHOLD_CRITICAL",
    "extraction.command": "CODELEDGER_EXTRACTION_COMMAND",
    "extraction.timeout_s": "CODELEDGER_EXTRACTION_TIMEOUT_S",
    "restoration.max_essential_tokens": "CODELEDGER_MAX_ESSENTIAL_TOKENS",
}


@dataclass(frozen=True)
class LedgerPaths:
    base_dir: Path
    db_override: Path | None = None
    config_override: Path | None = None

    @classmethod
    def from_env(cls) -> LedgerPaths:
        base = Path(os.getenv("CODELEDGER_DIR") or DEFAULT_BASE_DIR).expanduser()
        db_env = os.getenv("CODELEDGER_DB")
        config_env = os.getenv("CODELEDGER_CONFIG")
        return cls(
            base_dir=base,
            db_override=Path(db_env).expanduser() if db_env else None,
            config_override=Path(config_env).expanduser() if config_env else None,
        )

    @property
    def sessions_dir(self) -> Path:
        return self.base_dir / "sessions"

    @property
    def data_dir(self) -> Path:
        return self.base_dir / "data"

    @property
    def db_path(self) -> Path:
        return self.db_override or self.data_dir / "ledger.sqlite"

    @property
    def config_path(self) -> Path:
        return self.config_override or self.base_dir / "config.json"

    def session_dir(self, session_id: str) -> Path:
        if not is_valid_session_id(session_id):
            raise ValueError(f"invalid session id: {session_id!r}")
        return self.sessions_dir / session_id

    def buffer_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / LEDGER_BUFFER_FILENAME

    def flushing_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / LEDGER_BUFFER_FLUSHING_FILENAME

    def lock_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / LEDGER_BUFFER_LOCK_FILENAME

    def context_status_path(self, session_id: str) -> Path:
        return self.session_dir(session_id) / CONTEXT_STATUS_FILENAME


@dataclass
class Thresholds:
    warning: int = 70
    critical: int = 85


@dataclass
class WarningFlags:
    at_warning_threshold: bool = True
    at_critical_threshold: bool = True


@dataclass
class ExtractionSettings:
    on_stop: bool = True
    on_guideline_read: bool = True
    command: str = "claude"
    timeout_s: int = 60


@dataclass
class Tier1Limits:
    high_importance_decisions: int = 10


@dataclass
class Tier2Limits:
    learnings: int = 5
    file_edits: int = 10
    medium_importance_decisions: int = 5


@dataclass
class RestorationSettings:
    max_essential_tokens: int = 2000
    tier1_limits: Tier1Limits = field(default_factory=Tier1Limits)
    tier2_limits: Tier2Limits = field(default_factory=Tier2Limits)


@dataclass
class LedgerConfig:
    thresholds: Thresholds = field(default_factory=Thresholds)
    warnings: WarningFlags = field(default_factory=WarningFlags)
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)
    restoration: RestorationSettings = field(default_factory=RestorationSettings)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data[SCHEMA_VERSION_KEY] = __version__
        return data


def read_config_file(path: Path) -> dict[str, Any]:
    config_path = path.expanduser()
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path) -> Path:
    config_path = path.expanduser()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def save_config(cfg: LedgerConfig, path: Path) -> Path:
    return write_config_file(cfg.to_dict(), path)


def load_config(path: Path | None = None, *, apply_env: bool = True) -> LedgerConfig:
    """Load config, migrating the file forward when it was written by an older release.

    A missing file is created with defaults. A file that cannot be parsed falls back to
    defaults with a warning and is left as-is for the user to fix. Pass
    ``apply_env=False`` to get the values as stored, e.g. before saving them back.
    """

    config_path = path or LedgerPaths.from_env().config_path
    cfg = LedgerConfig()
    try:
        data = read_config_file(config_path)
    except (OSError, ValueError) as exc:
        warnings.warn(f"Could not read config, using defaults: {exc}", RuntimeWarning, stacklevel=2)
        return _apply_env(cfg) if apply_env else cfg

    if not data:
        try:
            save_config(cfg, config_path)
        except OSError as exc:
            warnings.warn(f"Could not write default config: {exc}", RuntimeWarning, stacklevel=2)
        return _apply_env(cfg) if apply_env else cfg

    migrated, changed = migrate_config(data)
    cfg = _apply_dict(cfg, migrated)
    if changed:
        try:
            write_config_file(migrated, config_path)
        except OSError as exc:
            warnings.warn(f"Could not write migrated config: {exc}", RuntimeWarning, stacklevel=2)
    return _apply_env(cfg) if apply_env else cfg


def _parse_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    if value.lower() in {"1", "true", "yes", "on"}:
        return True
    if value.lower() in {"0", "false", "off", "no"}:
        return False
    return default


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _coerce_bool(value: object, default: bool, *, key: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return _parse_bool(value, default)
    warnings.warn(f"Invalid bool for {key}: {value!r}", RuntimeWarning, stacklevel=2)
    return default


def _apply_section(target: Any, data: object, *, prefix: str) -> None:
    if not isinstance(data, dict):
        return
    for key, value in data.items():
        if not hasattr(target, key):
            continue
        current = getattr(target, key)
        dotted = f"{prefix}.{key}"
        if isinstance(current, bool):
            setattr(target, key, _coerce_bool(value, current, key=dotted))
        elif isinstance(current, int):
            setattr(target, key, _parse_int(value, current, key=dotted))
        elif isinstance(current, str):
            if isinstance(value, str) and value.strip():
                setattr(target, key, value.strip())
        else:
            _apply_section(current, value, prefix=dotted)


def _apply_dict(cfg: LedgerConfig, data: dict[str, Any]) -> LedgerConfig:
    for section in ("thresholds", "warnings", "extraction", "restoration"):
        _apply_section(getattr(cfg, section), data.get(section), prefix=section)
    return cfg


def _apply_env(cfg: LedgerConfig) -> LedgerConfig:
    cfg.thresholds.warning = _parse_int(
        os.getenv("CODELEDGER_THRESHOLD_WARNING"), cfg.thresholds.warning, key="thresholds.warning"
    )
    cfg.thresholds.critical = _parse_int(
        os.getenv("CODELEDGER_THRESHOLD_CRITICAL"),
        cfg.thresholds.critical,
        key="thresholds.critical",
    )
    cfg.extraction.command = os.getenv("CODELEDGER_EXTRACTION_COMMAND", cfg.extraction.command)
    cfg.extraction.timeout_s = _parse_int(
        os.getenv("CODELEDGER_EXTRACTION_TIMEOUT_S"),
        cfg.extraction.timeout_s,
        key="extraction.timeout_s",
    )
    cfg.restoration.max_essential_tokens = _parse_int(
        os.getenv("CODELEDGER_MAX_ESSENTIAL_TOKENS"),
        cfg.restoration.max_essential_tokens,
        key="restoration.max_essential_tokens",
    )
    return cfg


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


def _resolve(cfg: LedgerConfig, key: str) -> tuple[Any, str]:
    parts = key.split(".")
    if len(parts) < 2:
        raise ValueError(f"Unknown setting: {key}")
    target: Any = cfg
    for part in parts[:-1]:
        if not hasattr(target, part) or isinstance(getattr(target, part), (bool, int, str)):
            raise ValueError(f"Unknown setting: {key}")
        target = getattr(target, part)
    leaf = parts[-1]
    if not hasattr(target, leaf) or not isinstance(getattr(target, leaf), (bool, int, str)):
        raise ValueError(f"Unknown setting: {key}")
    return target, leaf


def get_setting(cfg: LedgerConfig, key: str) -> str:
    target, leaf = _resolve(cfg, key)
    value = getattr(target, leaf)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def set_setting(cfg: LedgerConfig, key: str, value: str) -> LedgerConfig:
    target, leaf = _resolve(cfg, key)
    current = getattr(target, leaf)
    if isinstance(current, bool):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes"}:
            setattr(target, leaf, True)
        elif lowered in {"false", "0", "no"}:
            setattr(target, leaf, False)
        else:
            raise ValueError(f"Invalid boolean value: {value} (must be true/false)")
        return cfg
    if isinstance(current, int):
        try:
            number = int(value)
        except ValueError as exc:
            raise ValueError(f"Invalid value: {value} (must be integer)") from exc
        if key.startswith("thresholds.") and not 0 <= number <= 100:
            raise ValueError("Threshold must be between 0 and 100")
        if key.startswith("restoration.") and number < 1:
            raise ValueError(f"{leaf} must be positive")
        if key == "extraction.timeout_s" and number < 1:
            raise ValueError("timeout_s must be positive")
        setattr(target, leaf, number)
        return cfg
    if not value.strip():
        raise ValueError(f"{key} must not be empty")
    setattr(target, leaf, value.strip())
    return cfg
