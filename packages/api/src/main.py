"""FastAPI application entry point."""

import logging
import uuid
from contextlib import asynccontextmanager

from db import get_db_service
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .core.config import settings
from .routes import groups, health, invites, members, partners, users
from .schemas import StatusBlock
from .schemas.error import ErrorResponse
from .services.errors import ServiceError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Application startup/shutdown lifecycle."""
    logger.info(
        "%s %s starting (auth %s, smtp %s)",
        settings.APP_NAME,
        __version__,
        "disabled" if settings.AUTH_DISABLED else "enabled",
        settings.SMTP_HOST or "disabled",
    )
    yield
    db_service = await get_db_service()
    await db_service.close()


app = FastAPI(
    title="Citizen OS API",
    description="Groups, membership and invitations for the Citizen OS deliberation platform",
    version=__version__,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_HOSTS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

_HTTP_STATUS_TITLES: dict[int, str] = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    410: "Gone",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def _build_error(
    status_code: int,
    message: str | None = None,
    sub_code: int = 0,
    errors: dict[str, str] | None = None,
) -> ErrorResponse:
    return ErrorResponse(
        status=StatusBlock(
            code=status_code * 100 + sub_code,
            message=message or _HTTP_STATUS_TITLES.get(status_code, "Error"),
        ),
        errors=errors,
    )


def _error_response(body: ErrorResponse, status_code: int, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Render expected domain failures in the envelope."""
    body = _build_error(exc.status_code, exc.message, exc.sub_code)
    return _error_response(body, exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Convert HTTPException to the error envelope."""
    body = _build_error(exc.status_code, str(exc.detail))
    return _error_response(body, exc.status_code, getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Per-field validation errors as 400 badRequest."""
    errors = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors[".".join(loc) or "body"] = error.get("msg", "Invalid value")
    body = _build_error(400, errors=errors)
    return _error_response(body, 400)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all for unhandled exceptions -- log and return 500."""
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    logger.exception("Unhandled exception (request_id=%s)", request_id)
    body = _build_error(500, "An unexpected error occurred.")
    return _error_response(body, 500)


# Include routers
app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(groups.router, prefix="/api", tags=["groups"])
app.include_router(
    members.router,
    prefix="/api/users/{user_id}/groups/{group_id}/members",
    tags=["members"],
)
app.include_router(invites.router, prefix="/api", tags=["invites"])
app.include_router(partners.router, prefix="/api/partners", tags=["partners"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": "Welcome to the Citizen OS API"}
