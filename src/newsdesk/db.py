from __future__ import annotations

import os
import sqlite3
from typing import Any

from .migrations import apply_migrations


class DBConn:
    def __init__(self, conn: sqlite3.Connection, path: str) -> None:
        self._conn = conn
        self.path = path

    def execute(self, sql: str, params: tuple | list | None = None) -> sqlite3.Cursor:
        return self._conn.execute(sql, params or ())

    def executemany(self, sql: str, seq_of_params) -> sqlite3.Cursor:
        return self._conn.executemany(sql, seq_of_params)

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()

    def __getattr__(self, name: str) -> Any:
        return getattr(self._conn, name)


def _py_lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


def connect_db(path: str) -> DBConn:
    if path != ":memory:":
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)
    raw = sqlite3.connect(path, check_same_thread=False)
    # SQLite LOWER() only folds ASCII.
    raw.create_function("PY_LOWER", 1, _py_lower, deterministic=True)
    raw.execute("PRAGMA foreign_keys=ON")
    if path != ":memory:":
        raw.execute("PRAGMA journal_mode=WAL")
    raw.execute("PRAGMA synchronous=NORMAL")
    raw.execute("PRAGMA busy_timeout=5000")
    apply_migrations(raw)
    return DBConn(raw, path)
