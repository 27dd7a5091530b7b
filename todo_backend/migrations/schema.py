"""
Schema setup for the todos table.

The base statement is the original column set and is safe to run on every
startup. Later columns are added by ordered ``ColumnMigration`` steps that
inspect ``PRAGMA table_info`` first, so the live column list doubles as the
migration ledger and reruns are no-ops.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from sqlite3 import Connection

logger = logging.getLogger(__name__)

# 时间戳统一存 UTC、毫秒精度
NOW_SQL = "strftime('%Y-%m-%d %H:%M:%f', 'now')"

# 更新时 updated_at 至少前进 1ms，同一毫秒内的连续写入也严格递增；
# 旧值无法解析时退回当前时间
TOUCH_UPDATED_AT = (
    f"updated_at = MAX({NOW_SQL}, "
    f"COALESCE(strftime('%Y-%m-%d %H:%M:%f', updated_at, '+0.001 seconds'), {NOW_SQL}))"
)

BASE_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS todos (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    title            TEXT    NOT NULL,
    description      TEXT    NOT NULL DEFAULT '',
    status           TEXT    NOT NULL DEFAULT 'pending' CHECK(status IN ('pending', 'in_progress', 'done')),
    progress_percent INTEGER NOT NULL DEFAULT 0 CHECK(progress_percent >= 0 AND progress_percent <= 100),
    created_at       DATETIME NOT NULL DEFAULT ({NOW_SQL}),
    updated_at       DATETIME NOT NULL DEFAULT ({NOW_SQL})
);
CREATE INDEX IF NOT EXISTS idx_todos_status ON todos(status);
"""


@dataclass(frozen=True)
class ColumnMigration:
    name: str
    table: str
    column: str
    definition: str
    index_sql: str | None = None


# 只允许追加，不删不改；新列按顺序放在末尾
COLUMN_MIGRATIONS: tuple[ColumnMigration, ...] = (
    ColumnMigration(
        name="add_todo_category",
        table="todos",
        column="category",
        definition="TEXT NOT NULL DEFAULT 'personal' CHECK(category IN ('personal', 'work', 'other'))",
        index_sql="CREATE INDEX IF NOT EXISTS idx_todos_category ON todos(category)",
    ),
)


def column_names(conn: Connection, table: str) -> set[str]:
    cols = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {c[1] for c in cols}


def ensure_column(conn: Connection, table: str, column: str, definition: str, index_sql: str | None = None) -> bool:
    """Add ``column`` if the table lacks it. Returns True when it was added."""
    if column in column_names(conn, table):
        return False
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
    if index_sql:
        conn.execute(index_sql)
    return True


def migrate(conn: Connection, steps: tuple[ColumnMigration, ...] = COLUMN_MIGRATIONS) -> list[str]:
    """Create the base table, then apply each column step in order. Returns names of steps that changed the schema."""
    conn.executescript(BASE_SCHEMA)
    applied = []
    for step in steps:
        if ensure_column(conn, step.table, step.column, step.definition, step.index_sql):
            logger.info("added column", extra={"migration": step.name, "table": step.table, "column": step.column})
            applied.append(step.name)
    logger.info("database migration complete", extra={"applied": applied})
    return applied
