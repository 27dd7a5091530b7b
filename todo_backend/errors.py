from __future__ import annotations


class NotFound(Exception):
    """目标行不存在（HTTP 层映射为 404）。"""

    def __init__(self, todo_id: int):
        self.todo_id = todo_id
        super().__init__(f"todo with id {todo_id} not found")


class PersistenceError(Exception):
    """Any underlying SQLite failure, wrapped with the operation that hit it."""

    def __init__(self, op: str, detail: str):
        self.op = op
        self.detail = detail
        super().__init__(f"{op}: {detail}")
