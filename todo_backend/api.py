"""
FastAPI app entry point.
Keep as `uvicorn todo_backend.api:app`, or run `python -m todo_backend.api`.
"""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import AppConfig, load_config
from .logs import configure_logging
from .repository import TodoRepository
from .routes import base as base_routes
from .routes import todos as todos_routes

logger = logging.getLogger("todo_backend.http")


def _error(status_code: int, error: str, message: str, headers=None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "message": message}, headers=headers)


def create_app(cfg: AppConfig | None = None) -> FastAPI:
    cfg = cfg or load_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 迁移失败直接抛出，服务不启动
        configure_logging(cfg)
        try:
            app.state.repo = TodoRepository.open(cfg.db_path, cfg.journal_mode)
        except Exception as e:
            logging.getLogger(__name__).error("failed to initialize database", extra={"error": str(e)})
            raise
        try:
            yield
        finally:
            repo, app.state.repo = app.state.repo, None
            repo.close()
            logging.getLogger(__name__).info("server stopped")

    app = FastAPI(
        title="TODO Service API",
        version=base_routes.APP_VERSION,
        description="A local TODO API service with progress tracking.",
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.repo = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    @app.middleware("http")
    async def request_logger(request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "panic recovered",
                extra={"error": repr(e), "method": request.method, "path": request.url.path},
            )
            response = _error(500, "internal server error", "an unexpected error occurred")
        response.headers["X-Request-ID"] = request_id

        status_code = response.status_code
        level = logging.INFO
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING
        logger.log(level, "request completed", extra={
            "method": request.method,
            "path": request.url.path,
            "status": status_code,
            "duration_ms": round((time.perf_counter() - start) * 1000, 3),
            "request_id": request_id,
            "remote_addr": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent", ""),
        })
        return response

    @app.exception_handler(RequestValidationError)
    async def on_validation_error(request: Request, exc: RequestValidationError):
        parts = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return _error(400, "validation_error", "; ".join(parts))

    @app.exception_handler(StarletteHTTPException)
    async def on_http_error(request: Request, exc: StarletteHTTPException):
        try:
            phrase = HTTPStatus(exc.status_code).phrase.lower()
        except ValueError:
            phrase = "error"
        return _error(exc.status_code, phrase, str(exc.detail), headers=getattr(exc, "headers", None))

    app.include_router(base_routes.router)
    app.include_router(todos_routes.router)
    return app


app = create_app()


def main():
    import uvicorn

    cfg = app.state.config
    uvicorn.run(app, host=cfg.host, port=cfg.port)


if __name__ == "__main__":
    main()
