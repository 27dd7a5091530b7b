"""
动态 SQL 片段构造：只在字段/过滤条件存在时追加 ``(占位子句, 绑定值)``，
最后一次性拼接。值永远走参数绑定，不拼进语句文本。
"""
from __future__ import annotations

from typing import Any, Iterable, Sequence

_NO_PARAM = object()


class ClauseBuilder:
    def __init__(self):
        self._items: list[tuple[str, Any]] = []

    def add(self, clause: str, value: Any) -> "ClauseBuilder":
        """Append a clause holding exactly one ``?`` and its bound value."""
        if clause.count("?") != 1:
            raise ValueError(f"clause must contain exactly one placeholder: {clause!r}")
        self._items.append((clause, value))
        return self

    def add_raw(self, clause: str) -> "ClauseBuilder":
        """Append a clause that binds nothing, e.g. ``updated_at = <expr>``."""
        if "?" in clause:
            raise ValueError(f"raw clause must not contain placeholders: {clause!r}")
        self._items.append((clause, _NO_PARAM))
        return self

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    @property
    def params(self) -> tuple:
        return tuple(v for _, v in self._items if v is not _NO_PARAM)

    def join(self, sep: str) -> str:
        return sep.join(c for c, _ in self._items)


def where_clause(filters: Iterable[tuple[str, Any]]) -> tuple[str, tuple]:
    """
    ``[("status", "pending"), ("category", None)]`` -> ``(" WHERE status = ?", ("pending",))``.
    None 值视为未提供过滤条件。
    """
    b = ClauseBuilder()
    for column, value in filters:
        if value is not None:
            b.add(f"{column} = ?", value)
    if not b:
        return "", ()
    return " WHERE " + b.join(" AND "), b.params


def set_clause(assignments: Sequence[tuple[str, Any]], touch: str | None = None) -> tuple[str, tuple]:
    """
    Render ``col = ?`` assignments joined by commas. ``touch`` is appended as a
    raw clause only when at least one assignment is present. Returns ("", ())
    when there is nothing to write.
    """
    b = ClauseBuilder()
    for column, value in assignments:
        b.add(f"{column} = ?", value)
    if not b:
        return "", ()
    if touch:
        b.add_raw(touch)
    return b.join(", "), b.params
