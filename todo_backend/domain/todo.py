from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional, Union


class Status(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class Category(str, Enum):
    PERSONAL = "personal"
    WORK = "work"
    OTHER = "other"


# 无法解析的时间戳回退到这个零值
ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def format_timestamp(ts: datetime) -> str:
    """UTC ISO-8601 with a trailing Z, millisecond precision."""
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Todo:
    id: int
    title: str
    description: str
    status: Status
    category: Category
    progress_percent: int
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "category": self.category.value,
            "progress_percent": self.progress_percent,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
        }


@dataclass(frozen=True)
class TodoCreate:
    """新建参数；None 表示使用默认值（pending / personal / 0）。"""
    title: str
    description: str = ""
    status: Optional[Status] = None
    category: Optional[Category] = None
    progress_percent: Optional[int] = None


class _Unset:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class TodoPatch:
    """
    Partial update. Each field is either UNSET (left untouched) or a value to
    write, so an explicit "" or 0 is distinguishable from an omitted field.
    """
    title: Union[str, _Unset] = UNSET
    description: Union[str, _Unset] = UNSET
    status: Union[Status, _Unset] = UNSET
    category: Union[Category, _Unset] = UNSET
    progress_percent: Union[int, _Unset] = UNSET

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "TodoPatch":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"unknown fields: {', '.join(sorted(unknown))}")
        kwargs: dict[str, Any] = dict(data)
        if "status" in kwargs:
            kwargs["status"] = Status(kwargs["status"])
        if "category" in kwargs:
            kwargs["category"] = Category(kwargs["category"])
        return cls(**kwargs)

    def present(self) -> list[tuple[str, Any]]:
        """(column, value) for every supplied field, in column order."""
        out = []
        for f in fields(self):
            v = getattr(self, f.name)
            if v is not UNSET:
                out.append((f.name, v))
        return out

    def is_empty(self) -> bool:
        return not self.present()
