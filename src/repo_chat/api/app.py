"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from repo_chat import __version__
from repo_chat.api.routes import router
from repo_chat.api.services import Services, build_services
from repo_chat.config import Settings, get_settings
from repo_chat.core.errors import (
    IndexingInProgressError,
    LockBusyError,
    NotReadyError,
    QueryRejectedError,
    RepoChatError,
    UpstreamError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _validation_error(_request: Request, exc: ValidationError) -> JSONResponse:
    content = {"error": exc.message}
    if exc.field:
        content["field"] = exc.field
    return JSONResponse(status_code=400, content=content)


def _request_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "details": details},
    )


def _lock_busy(_request: Request, exc: LockBusyError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"error": exc.message, "repositoryId": exc.repository_id},
    )


def _indexing_in_progress(_request: Request, exc: IndexingInProgressError) -> JSONResponse:
    return JSONResponse(
        status_code=202,
        content={
            "status": exc.status,
            "message": exc.message,
            "estimatedTime": exc.estimated_wait_seconds,
        },
    )


def _not_ready(_request: Request, exc: NotReadyError) -> JSONResponse:
    content = {"status": exc.status, "message": exc.message}
    if exc.last_error:
        content["error"] = exc.last_error
    return JSONResponse(status_code=412, content=content)


def _query_rejected(_request: Request, exc: QueryRejectedError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "Query rejected", "message": exc.message, **exc.response_data},
    )


def _upstream_error(_request: Request, exc: UpstreamError) -> JSONResponse:
    logger.error(f"Upstream failure: {exc}")
    return JSONResponse(
        status_code=502,
        content={"error": "Upstream service unavailable", "message": str(exc)},
    )


def _internal_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": str(exc)},
    )


def create_app(services: Services | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the application.

    With ``services`` given the app uses them as they are; otherwise they are
    built on startup and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned: Services | None = None
        if getattr(app.state, "services", None) is None:
            owned = await build_services(app.state.settings)
            app.state.services = owned
        try:
            yield
        finally:
            if owned is not None:
                await owned.close()
                app.state.services = None

    app = FastAPI(
        title="repo-chat",
        description="Repository indexing and gated question answering",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings or get_settings()
    app.state.services = services

    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(ValidationError, _validation_error)
    app.add_exception_handler(LockBusyError, _lock_busy)
    app.add_exception_handler(IndexingInProgressError, _indexing_in_progress)
    app.add_exception_handler(NotReadyError, _not_ready)
    app.add_exception_handler(QueryRejectedError, _query_rejected)
    app.add_exception_handler(UpstreamError, _upstream_error)
    app.add_exception_handler(RepoChatError, _internal_error)
    app.add_exception_handler(Exception, _internal_error)

    app.include_router(router)
    return app
