"""FastAPI application factory.

create_app() returns a configured FastAPI instance: lifespan, middleware,
error rendering and routers. Every error leaves the service in the same
shape: {"errors": [{"kind": ..., "detail": ...}]}.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from crateward import __version__
from crateward.api import api_router
from crateward.config import settings
from crateward.errors import AppError, ValidationFailure

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(
        "crateward.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    yield

    logger.info("crateward.shutdown")

    from crateward.db.engine import engine
    await engine.dispose()


def _error_response(error: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={"errors": [error.to_dict()]},
    )


async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("request.failed", kind=exc.kind, detail=exc.detail)
    return _error_response(exc)


async def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    detail = f"invalid request: {location}: {first.get('msg', 'malformed')}"
    return _error_response(ValidationFailure(detail))


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    # Store and driver errors are logged, never echoed to the caller
    logger.exception("request.unhandled_error", path=request.url.path)
    return _error_response(AppError("internal server error"))


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="crateward",
        description="Identity, API tokens and ownership rights for a package registry",
        version=__version__,
        lifespan=lifespan,
    )

    from crateward.middleware.request_context import RequestContextMiddleware

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(Exception, handle_unexpected)

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: crateward.main:app)
app = create_app()
