from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from ..db import SerializedConnection, open_conn
from ..domain.todo import Category, Status, Todo, TodoCreate, TodoPatch, ZERO_TIME
from ..errors import NotFound, PersistenceError
from ..migrations.schema import TOUCH_UPDATED_AT, migrate
from .sql_builder import set_clause, where_clause

logger = logging.getLogger(__name__)

# 所有查询的列顺序固定；时间格式化交给 SQLite 完成
SELECT_COLUMNS = (
    "SELECT id, title, description, status, category, progress_percent, "
    "strftime('%Y-%m-%dT%H:%M:%fZ', created_at) AS created_at, "
    "strftime('%Y-%m-%dT%H:%M:%fZ', updated_at) AS updated_at "
    "FROM todos"
)


def parse_timestamp(text: Optional[str]) -> datetime:
    """
    Parse a store-formatted timestamp. Malformed or missing values fall back to
    ZERO_TIME with a warning instead of failing the read.
    """
    if not text:
        logger.warning("unparsable timestamp", extra={"value": text})
        return ZERO_TIME
    try:
        ts = datetime.fromisoformat(str(text).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("unparsable timestamp", extra={"value": text})
        return ZERO_TIME
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def row_to_todo(row) -> Todo:
    return Todo(
        id=int(row[0]),
        title=str(row[1]),
        description=str(row[2]),
        status=Status(row[3]),
        category=Category(row[4]),
        progress_percent=int(row[5]),
        created_at=parse_timestamp(row[6]),
        updated_at=parse_timestamp(row[7]),
    )


def _bind(value):
    return value.value if isinstance(value, (Status, Category)) else value


# SQLite INTEGER 为有符号 64 位，超出范围的 id 不可能存在
MIN_ID, MAX_ID = -(2 ** 63), 2 ** 63 - 1


def _check_id(todo_id: int) -> None:
    if not MIN_ID <= todo_id <= MAX_ID:
        raise NotFound(todo_id)


class TodoRepository:
    """CRUD over the ``todos`` table through one serialized SQLite connection."""

    def __init__(self, db: SerializedConnection):
        self._db = db

    @classmethod
    def open(cls, db_path: str, journal_mode: str = "WAL") -> "TodoRepository":
        """打开数据库并执行迁移；任何失败都关闭连接并抛出，不返回半初始化的仓储。"""
        conn = open_conn(db_path, journal_mode)
        repo = cls(SerializedConnection(conn))
        try:
            repo.migrate()
        except Exception:
            conn.close()
            raise
        logger.info("database initialized", extra={"path": db_path, "journal_mode": journal_mode.upper()})
        return repo

    def close(self) -> None:
        self._db.close()

    def migrate(self) -> list[str]:
        with self._db.acquire() as conn:
            try:
                return migrate(conn)
            except sqlite3.Error as e:
                raise PersistenceError("migrate", str(e)) from e

    # ---------- CREATE ----------

    def create(self, fields: TodoCreate) -> Todo:
        status = fields.status or Status.PENDING
        category = fields.category or Category.PERSONAL
        progress = 0 if fields.progress_percent is None else int(fields.progress_percent)
        with self._db.acquire() as conn:
            try:
                cur = conn.execute(
                    "INSERT INTO todos (title, description, status, category, progress_percent) VALUES (?, ?, ?, ?, ?)",
                    (fields.title, fields.description, _bind(status), _bind(category), progress),
                )
            except sqlite3.Error as e:
                raise PersistenceError("insert todo", str(e)) from e
            todo_id = int(cur.lastrowid)
        return self.get(todo_id)

    # ---------- READ ----------

    def get(self, todo_id: int) -> Todo:
        _check_id(todo_id)
        with self._db.acquire() as conn:
            try:
                row = conn.execute(f"{SELECT_COLUMNS} WHERE id = ?", (todo_id,)).fetchone()
            except sqlite3.Error as e:
                raise PersistenceError("select todo", str(e)) from e
        if row is None:
            raise NotFound(todo_id)
        try:
            return row_to_todo(row)
        except ValueError as e:
            raise PersistenceError("scan todo", str(e)) from e

    def list(self, status: Optional[Status] = None, category: Optional[Category] = None) -> list[Todo]:
        where, params = where_clause([("status", _bind(status)), ("category", _bind(category))])
        sql = f"{SELECT_COLUMNS}{where} ORDER BY id ASC"
        with self._db.acquire() as conn:
            try:
                rows = conn.execute(sql, params).fetchall()
            except sqlite3.Error as e:
                raise PersistenceError("list todos", str(e)) from e
        try:
            return [row_to_todo(r) for r in rows]
        except ValueError as e:
            raise PersistenceError("scan todo", str(e)) from e

    # ---------- UPDATE ----------

    def update(self, todo_id: int, patch: TodoPatch) -> Todo:
        """Write only the fields present in ``patch``; an empty patch is a plain re-read."""
        if patch.is_empty():
            return self.get(todo_id)
        _check_id(todo_id)
        assignments = [(col, _bind(v)) for col, v in patch.present()]
        sets, params = set_clause(assignments, touch=TOUCH_UPDATED_AT)

        with self._db.acquire() as conn:
            try:
                cur = conn.execute(f"UPDATE todos SET {sets} WHERE id = ?", (*params, todo_id))
            except sqlite3.Error as e:
                raise PersistenceError("update todo", str(e)) from e
            if cur.rowcount == 0:
                raise NotFound(todo_id)
        return self.get(todo_id)

    # ---------- DELETE ----------

    def delete(self, todo_id: int) -> None:
        _check_id(todo_id)
        with self._db.acquire() as conn:
            try:
                cur = conn.execute("DELETE FROM todos WHERE id = ?", (todo_id,))
            except sqlite3.Error as e:
                raise PersistenceError("delete todo", str(e)) from e
            if cur.rowcount == 0:
                raise NotFound(todo_id)
