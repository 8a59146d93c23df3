"""Global error handlers: every error body is JSON with a ``detail`` key."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from cordnode.errors import ConflictError, NotFoundError, ValidationFailed

logger = structlog.get_logger()

# Service exceptions that escape a router without explicit handling
_SERVICE_ERRORS: dict[type[Exception], int] = {
    NotFoundError: 404,
    ConflictError: 409,
    ValidationFailed: 400,
}


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("request_validation_failed", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": jsonable_errors(exc)},
        )

    for exc_class, status_code in _SERVICE_ERRORS.items():
        app.add_exception_handler(exc_class, _service_error_handler(status_code))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions; always JSON, never a traceback."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def _service_error_handler(status_code: int):  # type: ignore[no-untyped-def]
    async def handler(_request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    return handler


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Pydantic error dicts minus the non-serializable ``ctx``/``input`` payloads."""
    return [{k: v for k, v in err.items() if k not in ("ctx", "input", "url")} for err in exc.errors()]
