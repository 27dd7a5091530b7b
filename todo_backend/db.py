from __future__ import annotations

# todo_backend/db.py
import os
import sqlite3
import threading
from contextlib import contextmanager
from typing import Iterator

from .errors import PersistenceError

# PRAGMA 不支持参数绑定，只允许已知的 journal 模式
JOURNAL_MODES = ("DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF")


def open_conn(db_path: str, journal_mode: str = "WAL") -> sqlite3.Connection:
    """
    打开 SQLite 连接：自动建目录，autocommit（每条语句单独原子），
    允许跨线程使用（由 SerializedConnection 负责串行化），row_factory 为 Row。
    """
    mode = (journal_mode or "").upper()
    if mode not in JOURNAL_MODES:
        raise PersistenceError("open database", f"unsupported journal mode {journal_mode!r}")

    dirn = os.path.dirname(db_path) or "."
    try:
        os.makedirs(dirn, exist_ok=True)
    except OSError as e:
        raise PersistenceError("create db directory", str(e)) from e

    try:
        conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
    except sqlite3.Error as e:
        raise PersistenceError("open database", str(e)) from e
    try:
        conn.row_factory = sqlite3.Row
        conn.execute(f"PRAGMA journal_mode = {mode};")
    except sqlite3.Error as e:
        conn.close()
        raise PersistenceError(f"enable {mode}", str(e)) from e
    return conn


class SerializedConnection:
    """A single shared connection; callers take turns through ``acquire()``."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self._lock = threading.Lock()

    @contextmanager
    def acquire(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            yield self._conn

    def close(self) -> None:
        with self._lock:
            self._conn.close()
