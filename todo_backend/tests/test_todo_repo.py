"""
TodoRepository 测试：默认值、部分更新、过滤组合、NotFound、删除后 id 不复用
"""
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from todo_backend.db import open_conn
from todo_backend.domain.todo import ZERO_TIME, Category, Status, TodoCreate, TodoPatch
from todo_backend.errors import NotFound, PersistenceError
from todo_backend.repository.todo_repo import parse_timestamp


def test_create_then_get_applies_defaults(repo):
    created = repo.create(TodoCreate(title="Buy milk"))
    fetched = repo.get(created.id)

    assert fetched == created
    assert fetched.title == "Buy milk"
    assert fetched.description == ""
    assert fetched.status is Status.PENDING
    assert fetched.category is Category.PERSONAL
    assert fetched.progress_percent == 0
    assert fetched.created_at == fetched.updated_at
    assert fetched.created_at > ZERO_TIME


def test_create_uses_supplied_fields(repo):
    todo = repo.create(TodoCreate(
        title="Report", description="Q3", status=Status.IN_PROGRESS,
        category=Category.WORK, progress_percent=0,
    ))
    assert (todo.description, todo.status, todo.category, todo.progress_percent) == (
        "Q3", Status.IN_PROGRESS, Category.WORK, 0,
    )


def test_partial_update_keeps_untouched_fields(repo):
    created = repo.create(TodoCreate(title="Write docs", description="api"))

    updated = repo.update(created.id, TodoPatch(progress_percent=50))
    fetched = repo.get(created.id)

    assert updated == fetched
    assert fetched.progress_percent == 50
    assert fetched.title == "Write docs"
    assert fetched.description == "api"
    assert fetched.status is Status.PENDING
    assert fetched.created_at == created.created_at
    assert fetched.updated_at > fetched.created_at


def test_back_to_back_updates_strictly_advance_updated_at(repo):
    # 同一毫秒内的连续写入也必须让 updated_at 前进
    todo = repo.create(TodoCreate(title="tick"))
    last = todo.updated_at
    for i in range(50):
        todo = repo.update(todo.id, TodoPatch(progress_percent=i % 101))
        assert todo.updated_at > last
        last = todo.updated_at
    assert todo.created_at < todo.updated_at


def test_update_recovers_from_malformed_updated_at(repo, db_path):
    created = repo.create(TodoCreate(title="bad clock"))
    conn = open_conn(db_path)
    try:
        conn.execute("UPDATE todos SET updated_at = 'garbage' WHERE id = ?", (created.id,))
    finally:
        conn.close()

    updated = repo.update(created.id, TodoPatch(title="fixed"))
    assert updated.title == "fixed"
    assert updated.updated_at >= created.updated_at


@pytest.mark.parametrize("todo_id", [2 ** 63, -(2 ** 63) - 1, 10 ** 30])
@pytest.mark.parametrize("op", ["get", "update", "delete", "empty_update"])
def test_out_of_range_id_is_not_found(repo, op, todo_id):
    calls = {
        "get": lambda: repo.get(todo_id),
        "update": lambda: repo.update(todo_id, TodoPatch(title="x")),
        "delete": lambda: repo.delete(todo_id),
        "empty_update": lambda: repo.update(todo_id, TodoPatch()),
    }
    with pytest.raises(NotFound) as ei:
        calls[op]()
    assert ei.value.todo_id == todo_id


def test_update_can_clear_description_explicitly(repo):
    created = repo.create(TodoCreate(title="t", description="something"))
    updated = repo.update(created.id, TodoPatch.from_mapping({"description": ""}))
    assert updated.description == ""
    assert updated.title == "t"


def test_update_sets_every_field(repo):
    created = repo.create(TodoCreate(title="a"))
    updated = repo.update(created.id, TodoPatch(
        title="b", description="d", status=Status.DONE, category=Category.OTHER, progress_percent=100,
    ))
    assert (updated.title, updated.description, updated.status, updated.category, updated.progress_percent) == (
        "b", "d", Status.DONE, Category.OTHER, 100,
    )


def test_empty_update_is_a_plain_read(repo):
    created = repo.create(TodoCreate(title="Nothing changes"))
    time.sleep(0.02)
    same = repo.update(created.id, TodoPatch())
    assert same == created
    assert same.updated_at == created.updated_at


@pytest.mark.parametrize("op", ["get", "update", "delete", "empty_update"])
def test_missing_id_raises_not_found(repo, op):
    calls = {
        "get": lambda: repo.get(999999),
        "update": lambda: repo.update(999999, TodoPatch(title="x")),
        "delete": lambda: repo.delete(999999),
        "empty_update": lambda: repo.update(999999, TodoPatch()),
    }
    with pytest.raises(NotFound) as ei:
        calls[op]()
    assert ei.value.todo_id == 999999
    assert str(ei.value) == "todo with id 999999 not found"


def test_list_filters_compose_with_and(repo):
    a = repo.create(TodoCreate(title="a", category=Category.WORK))
    b = repo.create(TodoCreate(title="b", category=Category.PERSONAL))
    c = repo.create(TodoCreate(title="c", category=Category.PERSONAL, status=Status.DONE))

    both = repo.list(status=Status.PENDING, category=Category.PERSONAL)
    assert [t.id for t in both] == [b.id]

    assert [t.id for t in repo.list(status=Status.PENDING)] == [a.id, b.id]
    assert [t.id for t in repo.list(category=Category.PERSONAL)] == [b.id, c.id]
    assert [t.id for t in repo.list()] == [a.id, b.id, c.id]
    assert repo.list(status=Status.IN_PROGRESS) == []


def test_list_on_empty_table_returns_empty_list(repo):
    result = repo.list()
    assert result == []
    assert isinstance(result, list)


def test_delete_then_get_and_ids_not_reused(repo):
    first = repo.create(TodoCreate(title="first"))
    second = repo.create(TodoCreate(title="second"))

    repo.delete(second.id)
    with pytest.raises(NotFound):
        repo.get(second.id)
    with pytest.raises(NotFound):
        repo.delete(second.id)

    third = repo.create(TodoCreate(title="third"))
    assert third.id > second.id > first.id


def test_check_constraints_surface_as_persistence_error(repo):
    todo = repo.create(TodoCreate(title="guarded"))
    with pytest.raises(PersistenceError) as ei:
        repo.update(todo.id, TodoPatch(progress_percent=150))
    assert ei.value.op == "update todo"

    with pytest.raises(PersistenceError) as ei:
        repo.create(TodoCreate(title="bad", status="archived"))
    assert ei.value.op == "insert todo"

    assert repo.get(todo.id).progress_percent == 0


def test_malformed_timestamp_reads_as_zero_time(repo, db_path):
    todo = repo.create(TodoCreate(title="clock skew"))
    conn = open_conn(db_path)
    try:
        conn.execute("UPDATE todos SET created_at = 'not a date' WHERE id = ?", (todo.id,))
    finally:
        conn.close()

    fetched = repo.get(todo.id)
    assert fetched.created_at == ZERO_TIME
    assert fetched.updated_at == todo.updated_at


def test_parse_timestamp_leniency():
    assert parse_timestamp(None) == ZERO_TIME
    assert parse_timestamp("") == ZERO_TIME
    assert parse_timestamp("yesterday") == ZERO_TIME
    ts = parse_timestamp("2026-02-12T15:04:05.123Z")
    assert (ts.year, ts.month, ts.day, ts.microsecond) == (2026, 2, 12, 123000)
    assert ts.utcoffset().total_seconds() == 0


def test_concurrent_creates_are_serialized(repo):
    with ThreadPoolExecutor(max_workers=8) as pool:
        todos = list(pool.map(lambda i: repo.create(TodoCreate(title=f"t{i}")), range(40)))
    ids = [t.id for t in todos]
    assert len(set(ids)) == 40
    assert [t.id for t in repo.list()] == sorted(ids)
