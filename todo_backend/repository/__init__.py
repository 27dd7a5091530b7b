"""Repository layer: DB access for todos (SQLite).

Routes call the repository; SQL strings stay here and in migrations/.
"""
from __future__ import annotations

from .todo_repo import TodoRepository

__all__ = ["TodoRepository"]
