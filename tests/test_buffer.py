from __future__ import annotations

import json
import multiprocessing
import sqlite3
import threading
from pathlib import Path
from types import SimpleNamespace

import pytest

from codeledger import buffer as buffer_module
from codeledger.buffer import Buffer, JsonlAppendLog, session_lock
from codeledger.config import LedgerPaths
from codeledger.entry import Entry
from codeledger.store import LedgerStore


@pytest.fixture
def buffer(paths: LedgerPaths, store: LedgerStore) -> Buffer:
    return Buffer(paths, store)


def _entries(count: int, entry_type: str = "learning") -> list[Entry]:
    return [Entry(entry_type, f"entry {index}") for index in range(count)]


# Workers are module-level so the spawn start method can import them.
def _append_in_child(paths: LedgerPaths, worker: int, count: int) -> None:
    buffer = Buffer(paths, LedgerStore(paths.db_path))
    for index in range(count):
        buffer.append("s1", Entry("learning", f"p{worker}-{index}"))


def _flush_in_child(paths: LedgerPaths, rounds: int) -> None:
    buffer = Buffer(paths, LedgerStore(paths.db_path))
    for _ in range(rounds):
        buffer.flush_sync("s1")


def test_append_writes_one_json_line_per_entry(buffer: Buffer, paths: LedgerPaths) -> None:
    assert buffer.append("s1", Entry("file_read", "/a.py", importance="low"))
    assert buffer.append_many("s1", _entries(2)) == 2

    lines = paths.buffer_path("s1").read_text().splitlines()
    assert len(lines) == 3
    assert json.loads(lines[0])["entry_type"] == "file_read"
    assert buffer.count("s1") == 3
    assert [entry.content for entry in buffer.read("s1")][1:] == ["entry 0", "entry 1"]


def test_invalid_entries_never_reach_the_buffer(buffer: Buffer) -> None:
    assert not buffer.append("s1", Entry("bogus", "x"))
    assert not buffer.append("s1", Entry("learning", "  "))
    assert not buffer.append("", Entry("learning", "x"))
    assert buffer.append_many("s1", [Entry("bogus", "x"), Entry("learning", "ok")]) == 1
    assert buffer.count("s1") == 1


def test_rejected_appends_leave_nothing_on_disk(buffer: Buffer, paths: LedgerPaths) -> None:
    assert not buffer.append("fresh", Entry("bogus", "x"))
    assert not buffer.append("fresh", Entry("learning", ""))
    assert buffer.append_many("fresh", [Entry("bogus", "x"), Entry("learning", "   ")]) == 0
    assert buffer.append_many("fresh", []) == 0

    assert not paths.session_dir("fresh").exists()
    assert not buffer.exists("fresh")


@pytest.mark.parametrize("session_id", ["../escape", "a/b", ".."])
def test_path_like_session_ids_are_refused(buffer: Buffer, paths: LedgerPaths, session_id: str) -> None:
    assert not buffer.append(session_id, Entry("learning", "x"))
    assert buffer.append_many(session_id, _entries(2)) == 0
    assert buffer.flush_sync(session_id).reason == "invalid session_id"
    assert not buffer.flush_async(session_id).success
    assert buffer.recover_orphan(session_id) == 0
    assert not (paths.base_dir / "escape").exists()
    assert not (paths.sessions_dir / "a").exists()


def test_read_skips_malformed_lines(buffer: Buffer, paths: LedgerPaths) -> None:
    buffer.append("s1", Entry("learning", "good"))
    with paths.buffer_path("s1").open("a") as handle:
        handle.write("{not json\n")
        handle.write('{"entry_type": "learning"}\n')
    assert [entry.content for entry in buffer.read("s1")] == ["good"]


def test_flush_moves_entries_and_removes_files(buffer: Buffer, store: LedgerStore, paths: LedgerPaths) -> None:
    buffer.append_many("s1", _entries(5))

    result = buffer.flush_sync("s1")

    assert result.success
    assert result.entries_flushed == 5
    assert store.count_by_session("s1") == 5
    assert not paths.buffer_path("s1").exists()
    assert not paths.flushing_path("s1").exists()


def test_flush_counts_duplicates_once(buffer: Buffer, store: LedgerStore) -> None:
    store.insert("s1", Entry("learning", "entry 0"))
    buffer.append_many("s1", _entries(3))
    buffer.append("s1", Entry("learning", "entry 1"))

    result = buffer.flush_sync("s1")

    assert result.success
    assert result.entries_flushed == 2
    assert store.count_by_session("s1") == 3


def test_flush_without_buffer_is_trivial(buffer: Buffer) -> None:
    result = buffer.flush_sync("nobody")
    assert result.success
    assert result.entries_flushed == 0
    assert buffer.flush_sync("").reason == "empty session_id"


def test_flush_refuses_while_another_is_in_progress(buffer: Buffer, store: LedgerStore, paths: LedgerPaths) -> None:
    buffer.append_many("s1", _entries(2))
    paths.flushing_path("s1").write_text(json.dumps(Entry("learning", "claimed").to_dict()) + "\n")

    result = buffer.flush_sync("s1")

    assert not result.success
    assert result.reason == "another flush in progress"
    assert buffer.count("s1") == 2
    assert store.count_by_session("s1") == 0


def test_storage_failure_keeps_flushing_file(buffer: Buffer, paths: LedgerPaths, monkeypatch: pytest.MonkeyPatch) -> None:
    buffer.append_many("s1", _entries(3))

    def boom(session_id, entries):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(buffer.store, "insert_entries", boom)
    result = buffer.flush_sync("s1")

    assert not result.success
    assert result.reason is not None and result.reason.startswith("flush error:")
    assert paths.flushing_path("s1").exists()
    assert not paths.buffer_path("s1").exists()
    assert buffer.flush_in_progress("s1")


def test_orphan_recovery_replays_and_removes_file(buffer: Buffer, store: LedgerStore, paths: LedgerPaths) -> None:
    paths.session_dir("s1").mkdir(parents=True)
    JsonlAppendLog(paths.flushing_path("s1")).append(entry.to_dict() for entry in _entries(4))
    JsonlAppendLog(paths.flushing_path("s1")).append([{"garbage": True}])

    assert buffer.recover_orphan("s1") == 4
    assert store.count_by_session("s1") == 4
    assert not paths.flushing_path("s1").exists()
    assert buffer.recover_orphan("s1") == 0


def test_recover_all_orphans_scans_sessions(buffer: Buffer, store: LedgerStore, paths: LedgerPaths) -> None:
    for sid in ("a", "b"):
        paths.session_dir(sid).mkdir(parents=True)
        JsonlAppendLog(paths.flushing_path(sid)).append([Entry("learning", f"from {sid}").to_dict()])
    buffer.append("c", Entry("learning", "still pending"))

    assert buffer.recover_all_orphans() == {"a": 1, "b": 1}
    assert store.count() == 2
    assert buffer.count("c") == 1


def test_crash_after_rename_loses_nothing(buffer: Buffer, store: LedgerStore, paths: LedgerPaths, monkeypatch: pytest.MonkeyPatch) -> None:
    buffer.append_many("s1", _entries(3))

    class Crash(BaseException):
        pass

    def crash(session_id, entries):
        raise Crash

    monkeypatch.setattr(buffer.store, "insert_entries", crash)
    with pytest.raises(Crash):
        buffer.flush_sync("s1")
    buffer.append("s1", Entry("learning", "written after the crash"))
    recovered = Buffer(paths, LedgerStore(paths.db_path))
    assert recovered.recover_orphan("s1") == 3
    assert recovered.flush_sync("s1").entries_flushed == 1
    assert store.count_by_session("s1") == 4


def test_concurrent_appends_and_flushes_lose_nothing(buffer: Buffer, store: LedgerStore) -> None:
    writers = 4
    per_writer = 25

    def write(worker: int) -> None:
        for index in range(per_writer):
            buffer.append("s1", Entry("learning", f"w{worker}-{index}"))

    def flush() -> None:
        for _ in range(10):
            buffer.flush_sync("s1")

    threads = [threading.Thread(target=write, args=(n,)) for n in range(writers)]
    threads.append(threading.Thread(target=flush))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    while buffer.exists("s1") or buffer.flush_in_progress("s1"):
        if buffer.flush_in_progress("s1"):
            buffer.recover_orphan("s1")
        buffer.flush_sync("s1")

    assert store.count_by_session("s1") == writers * per_writer


def test_session_lock_creates_lock_file_and_releases(tmp_path: Path) -> None:
    lock_path = tmp_path / "sessions" / "s1" / "ledger_buffer.lock"
    with session_lock(lock_path):
        assert lock_path.exists()
    with session_lock(lock_path):
        pass


def test_flush_async_spawns_detached_flush(buffer: Buffer, paths: LedgerPaths, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict] = []

    def fake_popen(cmd, **kwargs):
        calls.append({"cmd": cmd, **kwargs})
        return SimpleNamespace(pid=999)

    monkeypatch.setattr(buffer_module.subprocess, "Popen", fake_popen)

    result = buffer.flush_async("s1")

    assert result.success
    assert result.reason == "async flush started (pid: 999)"
    [call] = calls
    assert call["cmd"][1:] == ["-m", "codeledger", "buffer", "flush", "s1"]
    assert call["start_new_session"] is True
    assert call["env"]["CODELEDGER_DIR"] == str(paths.base_dir)


def test_clear_drops_pending_entries(buffer: Buffer) -> None:
    buffer.append("s1", Entry("learning", "x"))
    assert buffer.clear("s1")
    assert not buffer.exists("s1")
    assert buffer.count("s1") == 0


def test_appends_and_flushes_from_separate_processes_lose_nothing(paths: LedgerPaths, store: LedgerStore) -> None:
    writers = 4
    per_writer = 25
    ctx = multiprocessing.get_context("spawn")
    procs = [ctx.Process(target=_append_in_child, args=(paths, n, per_writer)) for n in range(writers)]
    procs.append(ctx.Process(target=_flush_in_child, args=(paths, 10)))
    for proc in procs:
        proc.start()
    for proc in procs:
        proc.join(timeout=60)

    assert [proc.exitcode for proc in procs] == [0] * len(procs)
    buffer = Buffer(paths, store)
    while buffer.exists("s1") or buffer.flush_in_progress("s1"):
        if buffer.flush_in_progress("s1"):
            buffer.recover_orphan("s1")
        buffer.flush_sync("s1")
    assert store.count_by_session("s1") == writers * per_writer


def test_remove_session_purges_directory_and_rows(buffer: Buffer, store: LedgerStore, paths: LedgerPaths) -> None:
    buffer.append_many("s1", _entries(3))
    buffer.flush_sync("s1")
    buffer.append("s1", Entry("learning", "still pending"))
    store.insert("s2", Entry("learning", "other session"))

    removal = buffer.remove_session("s1")

    assert removal.directory_removed
    assert removal.entries_deleted == 3
    assert not paths.session_dir("s1").exists()
    assert store.count_by_session("s1") == 0
    assert store.count_by_session("s2") == 1
    assert buffer.session_ids() == []


def test_remove_unknown_session_reports_nothing(buffer: Buffer) -> None:
    removal = buffer.remove_session("ghost")
    assert (removal.directory_removed, removal.entries_deleted) == (False, 0)
    assert buffer.remove_session("../ghost").entries_deleted == 0
