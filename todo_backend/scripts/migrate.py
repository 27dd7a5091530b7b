#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
对 todos 数据库执行建表 + 追加列迁移（可重复执行）
- 默认库路径：config.yaml / TODO_DB_PATH
- --dry-run 只打印尚未应用的迁移步骤
"""

from __future__ import annotations
import argparse
import os
import sys

from todo_backend.config import load_config
from todo_backend.db import open_conn
from todo_backend.errors import PersistenceError
from todo_backend.migrations.schema import COLUMN_MIGRATIONS, column_names
from todo_backend.repository import TodoRepository


def pending_steps(db_path: str, journal_mode: str) -> list[str]:
    # 库文件还不存在：全部步骤待执行，且不能顺手把文件/目录建出来
    if not os.path.exists(db_path):
        return [step.name for step in COLUMN_MIGRATIONS]
    conn = open_conn(db_path, journal_mode)
    try:
        out = []
        cache: dict[str, set[str]] = {}
        for step in COLUMN_MIGRATIONS:
            if step.table not in cache:
                cache[step.table] = column_names(conn, step.table)
            # 表本身不存在时 PRAGMA 返回空集，所有步骤都算待执行
            if step.column not in cache[step.table]:
                out.append(step.name)
        return out
    finally:
        conn.close()


def main(argv: list[str] | None = None) -> int:
    cfg = load_config()
    parser = argparse.ArgumentParser(description="执行 todos 表结构迁移（幂等）")
    parser.add_argument("--db", help="数据库文件路径；默认取配置", default=cfg.db_path)
    parser.add_argument("--journal-mode", help="journal 模式，默认取配置", default=cfg.journal_mode)
    parser.add_argument("--dry-run", help="只列出待执行的步骤", action="store_true")
    args = parser.parse_args(argv)

    try:
        if args.dry_run:
            steps = pending_steps(args.db, args.journal_mode)
            print(f"Pending migrations on {args.db}: {', '.join(steps) if steps else 'none'}")
            return 0
        steps = pending_steps(args.db, args.journal_mode)
        # open() 内部完成迁移
        TodoRepository.open(args.db, args.journal_mode).close()
    except PersistenceError as e:
        print(f"Migration failed: {e}", file=sys.stderr)
        return 1
    print(f"Migration completed on {args.db}: applied {', '.join(steps) if steps else 'nothing'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
