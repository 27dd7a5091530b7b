from __future__ import annotations

import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request, Response
from pydantic import BaseModel, Field, model_validator

from ..domain.todo import Category, Status, TodoCreate, TodoPatch
from ..errors import NotFound, PersistenceError
from ..logs import LogContext
from ..repository import TodoRepository
from ..repository.todo_repo import MAX_ID

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/todos", tags=["todos"])

# id 自增从 1 开始，上限为 SQLite 有符号 64 位整数
TodoId = Annotated[int, Path(ge=1, le=MAX_ID, description="TODO id")]


class TodoIn(BaseModel):
    title: str = Field(..., min_length=1, examples=["Buy groceries"])
    description: str = Field("", examples=["Milk, eggs, bread"])
    status: Optional[Status] = None
    category: Optional[Category] = None
    progress_percent: Optional[int] = Field(None, ge=0, le=100)


class TodoUpdateIn(BaseModel):
    """只有请求体里出现的字段才会被更新；显式 null 视为非法。"""
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    status: Optional[Status] = None
    category: Optional[Category] = None
    progress_percent: Optional[int] = Field(None, ge=0, le=100)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _no_explicit_null(self):
        nulls = sorted(k for k in self.model_fields_set if getattr(self, k) is None)
        if nulls:
            raise ValueError(f"fields must not be null: {', '.join(nulls)}")
        return self


class TodoOut(BaseModel):
    id: int
    title: str
    description: str
    status: Status
    category: Category
    progress_percent: int
    created_at: str
    updated_at: str


class TodoListOut(BaseModel):
    todos: List[TodoOut]
    count: int


def get_repo(request: Request) -> TodoRepository:
    return request.app.state.repo


def _log(request: Request, action: str) -> LogContext:
    return LogContext(action, request_id=getattr(request.state, "request_id", None))


@router.get("", response_model=TodoListOut, summary="List all TODOs")
def api_todo_list(
    status: Optional[Status] = Query(None, description="Filter by status"),
    category: Optional[Category] = Query(None, description="Filter by category"),
    repo: TodoRepository = Depends(get_repo),
):
    try:
        todos = repo.list(status=status, category=category)
    except PersistenceError as e:
        logger.error("failed to list todos", extra={"error": str(e)})
        raise HTTPException(status_code=500, detail="failed to retrieve todos")
    return {"todos": [t.to_dict() for t in todos], "count": len(todos)}


@router.post("", response_model=TodoOut, status_code=201, summary="Create a new TODO")
def api_todo_create(body: TodoIn, request: Request, repo: TodoRepository = Depends(get_repo)):
    log = _log(request, "CREATE_TODO")
    log.set_payload(body.model_dump(mode="json"))
    try:
        todo = repo.create(TodoCreate(**body.model_dump()))
    except PersistenceError as e:
        logger.error("failed to create todo", extra={"error": str(e)})
        log.write("ERROR", str(e))
        raise HTTPException(status_code=500, detail="failed to create todo")
    log.set_entity("todo", todo.id)
    log.write("OK")
    return todo.to_dict()


@router.get("/{todo_id}", response_model=TodoOut, summary="Get a TODO by ID")
def api_todo_get(todo_id: TodoId, repo: TodoRepository = Depends(get_repo)):
    try:
        return repo.get(todo_id).to_dict()
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        logger.error("failed to get todo", extra={"error": str(e), "id": todo_id})
        raise HTTPException(status_code=500, detail="failed to retrieve todo")


@router.put("/{todo_id}", response_model=TodoOut, summary="Update a TODO")
def api_todo_update(todo_id: TodoId, body: TodoUpdateIn, request: Request, repo: TodoRepository = Depends(get_repo)):
    log = _log(request, "UPDATE_TODO")
    log.set_entity("todo", todo_id)
    changes = body.model_dump(exclude_unset=True)
    log.set_payload(body.model_dump(mode="json", exclude_unset=True))
    try:
        todo = repo.update(todo_id, TodoPatch.from_mapping(changes))
    except NotFound as e:
        log.write("NOT_FOUND", str(e))
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        logger.error("failed to update todo", extra={"error": str(e), "id": todo_id})
        log.write("ERROR", str(e))
        raise HTTPException(status_code=500, detail="failed to update todo")
    log.set_after(todo.to_dict())
    log.write("OK")
    return todo.to_dict()


@router.delete("/{todo_id}", status_code=204, summary="Delete a TODO")
def api_todo_delete(todo_id: TodoId, request: Request, repo: TodoRepository = Depends(get_repo)):
    log = _log(request, "DELETE_TODO")
    log.set_entity("todo", todo_id)
    try:
        repo.delete(todo_id)
    except NotFound as e:
        log.write("NOT_FOUND", str(e))
        raise HTTPException(status_code=404, detail=str(e))
    except PersistenceError as e:
        logger.error("failed to delete todo", extra={"error": str(e), "id": todo_id})
        log.write("ERROR", str(e))
        raise HTTPException(status_code=500, detail="failed to delete todo")
    log.write("OK")
    return Response(status_code=204)
