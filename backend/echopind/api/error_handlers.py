import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from echopind.core.errors import EchoPindError

logger = logging.getLogger(__name__)

GENERIC_INTERNAL_MESSAGE = "Internal server error"

_STATUS_TO_CATEGORY = {
    400: "ValidationError",
    401: "Unauthenticated",
    403: "Forbidden",
    404: "NotFound",
}


def error_response(status_code: int, category: str, message: str) -> JSONResponse:
    """Every error leaves the API as {"error": category, "message": text}"""
    return JSONResponse(status_code=status_code, content={"error": category, "message": message})


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        # Drop the leading "body"/"query" element of the location
        loc = [str(part) for part in err.get("loc", ())[1:]]
        field = ".".join(loc) if loc else "request"
        parts.append(f"{field}: {err.get('msg', 'invalid value')}")
    return "; ".join(parts) or "Invalid request"


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(EchoPindError)
    async def handle_echopind_error(request: Request, exc: EchoPindError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
            # Internal detail stays in the log
            return error_response(exc.status_code, exc.category, GENERIC_INTERNAL_MESSAGE)
        logger.warning(
            f"{request.method} {request.url.path} -> {exc.status_code} {exc.category}: {exc.message}")
        return error_response(exc.status_code, exc.category, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        message = _validation_message(exc)
        logger.warning(f"{request.method} {request.url.path} -> 400 ValidationError: {message}")
        return error_response(400, "ValidationError", message)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        category = _STATUS_TO_CATEGORY.get(
            exc.status_code, "Internal" if exc.status_code >= 500 else "HTTPError")
        return error_response(exc.status_code, category, str(exc.detail))

    @app.exception_handler(SQLAlchemyError)
    async def handle_database_error(request: Request, exc: SQLAlchemyError):
        logger.exception(f"Database error on {request.method} {request.url.path}", exc_info=exc)
        return error_response(500, "Internal", GENERIC_INTERNAL_MESSAGE)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
        return error_response(500, "Internal", GENERIC_INTERNAL_MESSAGE)
