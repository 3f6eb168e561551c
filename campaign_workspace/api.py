"""
FastAPI application for Campaign Workspace.
"""

from __future__ import annotations

import importlib.metadata
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from .config import get_settings
from .db.base import init_database
from .errors import (
    AlreadyGeneratedError,
    AuthenticationError,
    AuthUnavailableError,
    ConflictError,
    DestinationUnresolvableError,
    NotFoundError,
    PartialSuccessError,
    SourceNotFoundError,
    SourceUnreachableError,
    SourceUnresolvableError,
    StoreUnavailableError,
    UnauthorizedError,
    ValidationError,
    WorkspaceError,
)
from .logging_config import configure_logging
from .routes import FUNCTION_PATHS, GENERATE_CORS_HEADERS, router

# Initialize structured logging
logger = structlog.get_logger()

settings = get_settings()

# First match wins, so subclasses come before their bases
ERROR_STATUS: List[Tuple[Type[WorkspaceError], int]] = [
    (PartialSuccessError, 500),
    (AuthenticationError, 401),
    (AuthUnavailableError, 503),
    (ValidationError, 400),
    (SourceUnresolvableError, 400),
    (UnauthorizedError, 403),
    (SourceNotFoundError, 404),
    (NotFoundError, 404),
    (AlreadyGeneratedError, 409),
    (ConflictError, 409),
    (StoreUnavailableError, 503),
    (SourceUnreachableError, 503),
    (DestinationUnresolvableError, 500),
]


def status_for(error: WorkspaceError) -> int:
    """HTTP status code for a workspace error."""
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return 500


def _cors_headers(request: Request) -> Optional[Dict[str, str]]:
    if request.url.path in FUNCTION_PATHS:
        return GENERATE_CORS_HEADERS
    return None


class RouteCORSMiddleware:
    """CORS with an open policy on function-style paths and the app policy elsewhere.

    Function-style endpoints answer any origin, errors included, and only
    allow ``POST, OPTIONS``.
    """

    def __init__(self, app: ASGIApp, open_paths: Sequence[str], **app_policy: Any):
        self.open_paths = frozenset(open_paths)
        self.open_cors = CORSMiddleware(
            app,
            allow_origins=["*"],
            allow_methods=["POST", "OPTIONS"],
            allow_headers=["Authorization", "Content-Type"],
        )
        self.app_cors = CORSMiddleware(app, **app_policy)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope["path"] in self.open_paths:
            await self.open_cors(scope, receive, send)
        else:
            await self.app_cors(scope, receive, send)


def _version() -> str:
    return importlib.metadata.version("campaign-workspace")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    configure_logging(settings)
    logger.info("Starting Campaign Workspace", environment=settings.environment)

    try:
        init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise

    yield

    logger.info("Shutdown complete")


app = FastAPI(
    title="Campaign Workspace",
    description="Campaigns, uploaded files and their generated output artifacts",
    version=_version(),
    lifespan=lifespan,
)

app.add_middleware(
    RouteCORSMiddleware,
    open_paths=FUNCTION_PATHS,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(router)


@app.exception_handler(WorkspaceError)
async def workspace_error_handler(request: Request, exc: WorkspaceError) -> JSONResponse:
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "request_failed",
        path=request.url.path,
        status=status_code,
        code=exc.code,
        step=exc.step,
        error=exc.message,
    )
    return JSONResponse(exc.to_dict(), status_code=status_code, headers=_cors_headers(request))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        {"error": "Invalid request body", "code": "validation_error", "details": details},
        status_code=400,
        headers=_cors_headers(request),
    )


@app.get("/healthz", tags=["system"])
def healthz() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/version", tags=["system"])
def version() -> dict[str, str]:
    """Return the version of the application."""
    return {"version": _version()}
