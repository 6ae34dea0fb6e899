"""Per-session append buffer for ledger entries.

Hook processes are short-lived and may run concurrently against the same session, so
every mutation of the buffer file happens under an exclusive ``flock`` on a sibling
lock file. A flush renames the buffer to a "flushing" file while holding the lock and
then releases it before touching the database, so writers are never stalled by the
slow insert phase and start a fresh buffer immediately.

Layout per session directory::

    ledger_buffer.jsonl           pending entries, one JSON object per line
    ledger_buffer.flushing.jsonl  entries claimed by a flush (or left by a crashed one)
    ledger_buffer.lock            zero-byte lock file
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import shutil
import subprocess
import sys
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import LedgerPaths, is_valid_session_id
from .entry import Entry
from .store import LedgerStore
from .store._store import STORE_ERRORS

logger = logging.getLogger(__name__)


@contextmanager
def session_lock(lock_path: Path) -> Iterator[None]:
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(lock_path), os.O_CREAT | os.O_RDWR, 0o600)
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


class JsonlAppendLog:
    """Newline-delimited JSON records in a single file."""

    def __init__(self, path: Path):
        self.path = path

    def append(self, records: Iterable[dict[str, Any]]) -> int:
        lines = [json.dumps(record, ensure_ascii=False) + "\n" for record in records]
        if not lines:
            return 0
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write("".join(lines))
            handle.flush()
        return len(lines)

    def iter_records(self) -> Iterator[dict[str, Any]]:
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8", errors="replace") as handle:
            for line in handle:
                if not line.strip():
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(record, dict):
                    yield record

    def count(self) -> int:
        if not self.path.exists():
            return 0
        with self.path.open("r", encoding="utf-8", errors="replace") as handle:
            return sum(1 for line in handle if line.strip())


def _entries_from(log: JsonlAppendLog) -> list[Entry]:
    entries: list[Entry] = []
    for record in log.iter_records():
        try:
            entries.append(Entry.from_dict(record))
        except ValueError:
            continue
    return entries


@dataclass
class FlushResult:
    success: bool
    entries_flushed: int
    reason: str | None = None


@dataclass
class SessionRemoval:
    directory_removed: bool
    entries_deleted: int


class Buffer:
    FLUSH_IN_PROGRESS = "another flush in progress"

    def __init__(self, paths: LedgerPaths | None = None, store: LedgerStore | None = None):
        self.paths = paths or LedgerPaths.from_env()
        self.store = store or LedgerStore(self.paths.db_path)

    def _buffer_log(self, session_id: str) -> JsonlAppendLog:
        return JsonlAppendLog(self.paths.buffer_path(session_id))

    def append(self, session_id: str, entry: Entry) -> bool:
        if not is_valid_session_id(session_id) or not entry.is_valid():
            return False
        return self.append_many(session_id, [entry]) == 1

    def append_many(self, session_id: str, entries: Iterable[Entry]) -> int:
        if not is_valid_session_id(session_id):
            return 0
        valid = [entry for entry in entries if entry.is_valid()]
        if not valid:
            return 0
        try:
            self.paths.session_dir(session_id).mkdir(parents=True, exist_ok=True)
            with session_lock(self.paths.lock_path(session_id)):
                return self._buffer_log(session_id).append(entry.to_dict() for entry in valid)
        except OSError as exc:
            logger.warning("buffer append failed", extra={"session_id": session_id}, exc_info=exc)
            return 0

    def read(self, session_id: str) -> list[Entry]:
        if not is_valid_session_id(session_id):
            return []
        try:
            return _entries_from(self._buffer_log(session_id))
        except OSError as exc:
            logger.warning("buffer read failed", extra={"session_id": session_id}, exc_info=exc)
            return []

    def count(self, session_id: str) -> int:
        if not is_valid_session_id(session_id):
            return 0
        try:
            return self._buffer_log(session_id).count()
        except OSError:
            return 0

    def exists(self, session_id: str) -> bool:
        if not is_valid_session_id(session_id):
            return False
        return self.paths.buffer_path(session_id).exists()

    def flush_in_progress(self, session_id: str) -> bool:
        if not is_valid_session_id(session_id):
            return False
        return self.paths.flushing_path(session_id).exists()

    def clear(self, session_id: str) -> bool:
        if not is_valid_session_id(session_id):
            return False
        try:
            with session_lock(self.paths.lock_path(session_id)):
                self.paths.buffer_path(session_id).unlink(missing_ok=True)
            return True
        except OSError as exc:
            logger.warning("buffer clear failed", extra={"session_id": session_id}, exc_info=exc)
            return False

    def flush_sync(self, session_id: str) -> FlushResult:
        if not session_id:
            return FlushResult(False, 0, "empty session_id")
        if not is_valid_session_id(session_id):
            return FlushResult(False, 0, "invalid session_id")
        buffer_path = self.paths.buffer_path(session_id)
        flushing_path = self.paths.flushing_path(session_id)
        if flushing_path.exists():
            return FlushResult(False, 0, self.FLUSH_IN_PROGRESS)
        if not buffer_path.exists():
            return FlushResult(True, 0, "nothing to flush")

        try:
            with session_lock(self.paths.lock_path(session_id)):
                if flushing_path.exists():
                    return FlushResult(False, 0, self.FLUSH_IN_PROGRESS)
                if not buffer_path.exists():
                    return FlushResult(True, 0, "nothing to flush")
                os.replace(buffer_path, flushing_path)
        except OSError as exc:
            return FlushResult(False, 0, f"flush error: {exc}")

        flushed = 0
        try:
            entries = _entries_from(JsonlAppendLog(flushing_path))
            flushed = self.store.insert_entries(session_id, entries)
            flushing_path.unlink(missing_ok=True)
        except STORE_ERRORS as exc:
            logger.warning(
                "buffer flush failed; flushing file kept for recovery",
                extra={"session_id": session_id},
                exc_info=exc,
            )
            return FlushResult(False, flushed, f"flush error: {exc}")
        if flushed:
            logger.info("flushed %d entries for session %s", flushed, session_id)
        return FlushResult(True, flushed)

    def flush_async(self, session_id: str) -> FlushResult:
        """Hand the flush to a detached child process and return immediately.

        There is no completion channel: the result only reports whether the child was
        spawned. Callers that need the entries persisted before continuing must use
        ``flush_sync``.
        """

        if not session_id:
            return FlushResult(False, 0, "empty session_id")
        if not is_valid_session_id(session_id):
            return FlushResult(False, 0, "invalid session_id")
        cmd = [sys.executable, "-m", "codeledger", "buffer", "flush", session_id]
        env = os.environ.copy()
        env["CODELEDGER_DIR"] = str(self.paths.base_dir)
        env["CODELEDGER_DB"] = str(self.store.db_path)
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
                env=env,
            )
        except OSError as exc:
            return FlushResult(False, 0, f"spawn failed: {exc}")
        return FlushResult(True, 0, f"async flush started (pid: {proc.pid})")

    def recover_orphan(self, session_id: str) -> int:
        """Replay a flushing file left behind by a crashed flush, then remove it."""

        if not is_valid_session_id(session_id):
            return 0
        flushing_path = self.paths.flushing_path(session_id)
        if not flushing_path.exists():
            return 0
        try:
            entries = _entries_from(JsonlAppendLog(flushing_path))
            inserted = self.store.insert_entries(session_id, entries)
            flushing_path.unlink(missing_ok=True)
        except STORE_ERRORS as exc:
            logger.warning(
                "orphan recovery failed; flushing file kept",
                extra={"session_id": session_id},
                exc_info=exc,
            )
            return 0
        logger.info(
            "recovered %d orphaned entries (%d new) for session %s",
            len(entries),
            inserted,
            session_id,
        )
        return len(entries)

    def session_ids(self) -> list[str]:
        sessions_dir = self.paths.sessions_dir
        if not sessions_dir.is_dir():
            return []
        return sorted(child.name for child in sessions_dir.iterdir() if child.is_dir())

    def remove_session(self, session_id: str) -> SessionRemoval:
        """Purge a session: its directory (buffer, flushing file, status) and its stored rows.

        The directory is removed while holding the session lock, so an append or flush
        claim runs entirely before or entirely after the delete.
        """

        if not is_valid_session_id(session_id):
            return SessionRemoval(False, 0)
        session_dir = self.paths.session_dir(session_id)
        removed = False
        if session_dir.is_dir():
            try:
                with session_lock(self.paths.lock_path(session_id)):
                    shutil.rmtree(session_dir)
                removed = True
            except OSError as exc:
                logger.warning(
                    "session directory removal failed",
                    extra={"session_id": session_id},
                    exc_info=exc,
                )
        deleted = self.store.delete_session(session_id)
        logger.info("removed session %s (%d stored entries)", session_id, deleted)
        return SessionRemoval(removed, deleted)

    def recover_all_orphans(self) -> dict[str, int]:
        recovered: dict[str, int] = {}
        for session_id in self.session_ids():
            if not self.paths.flushing_path(session_id).exists():
                continue
            recovered[session_id] = self.recover_orphan(session_id)
        return recovered
