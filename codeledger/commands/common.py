from __future__ import annotations

import logging
import sys

from ..buffer import Buffer
from ..config import LedgerConfig, LedgerPaths, load_config
from ..store import LedgerStore


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("codeledger").setLevel(level)


def paths_from_env() -> LedgerPaths:
    return LedgerPaths.from_env()


def store_from_path(db_path: str | None) -> LedgerStore:
    return LedgerStore(db_path or paths_from_env().db_path)


def buffer_from_path(db_path: str | None) -> Buffer:
    return Buffer(paths_from_env(), store_from_path(db_path))


def config_from_env(paths: LedgerPaths | None = None, *, apply_env: bool = True) -> LedgerConfig:
    return load_config((paths or paths_from_env()).config_path, apply_env=apply_env)
