"""
Error model and the terminal error controller.

Every error raised by a pipeline stage or a route handler ends up in
:func:`render_error`, which is the only place that shapes error responses.
"""

import traceback
from typing import Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from natours.config import Settings, get_settings
from natours.templating import get_templates

logger = structlog.get_logger(__name__)

GENERIC_API_MESSAGE = "Something went very wrong!"
GENERIC_VIEW_MESSAGE = "Please try again later."


class AppError(Exception):
    """An operational error: expected, safe to show to the client."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.status = "fail" if 400 <= status_code < 500 else "error"
        self.is_operational = True

    def to_dict(self) -> dict:
        return {
            "statusCode": self.status_code,
            "status": self.status,
            "isOperational": self.is_operational,
        }


def route_not_found(request: Request) -> AppError:
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return AppError(f"Can't find {url} on this server!", status.HTTP_404_NOT_FOUND)


def _validation_error(exc: RequestValidationError) -> AppError:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return AppError(f"Invalid input data. {'. '.join(messages)}", status.HTTP_400_BAD_REQUEST)


def normalize_error(request: Request, exc: Exception) -> Optional[AppError]:
    """Map a raised exception onto an operational AppError.

    Returns None for programming errors, which must never leak details
    outside development.
    """
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, RequestValidationError):
        return _validation_error(exc)
    if isinstance(exc, StarletteHTTPException):
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return route_not_found(request)
        return AppError(str(exc.detail), exc.status_code)
    return None


def wants_json(request: Request, settings: Settings) -> bool:
    path = request.url.path
    return path.startswith(settings.api_prefix) or path == settings.webhook_path


def _send_error_dev(request: Request, exc: Exception, error: Optional[AppError], settings: Settings) -> Response:
    status_code = error.status_code if error else status.HTTP_500_INTERNAL_SERVER_ERROR
    message = error.message if error else str(exc)

    if wants_json(request, settings):
        return JSONResponse(
            status_code=status_code,
            content={
                "status": error.status if error else "error",
                "error": error.to_dict() if error else {"type": type(exc).__name__},
                "message": message,
                "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            },
        )
    return _render_error_page(request, status_code, message, settings)


def _send_error_prod(request: Request, exc: Exception, error: Optional[AppError], settings: Settings) -> Response:
    if error is None:
        logger.error("unhandled_error", path=request.url.path, error=repr(exc), exc_info=exc)

    if wants_json(request, settings):
        if error is not None:
            return JSONResponse(
                status_code=error.status_code,
                content={"status": error.status, "message": error.message},
            )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "message": GENERIC_API_MESSAGE},
        )

    if error is not None:
        return _render_error_page(request, error.status_code, error.message, settings)
    return _render_error_page(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, GENERIC_VIEW_MESSAGE, settings
    )


def _render_error_page(request: Request, status_code: int, message: str, settings: Settings) -> Response:
    templates = get_templates(settings.templates_dir)
    return templates.TemplateResponse(
        request,
        "error.html",
        {"title": "Something went wrong!", "msg": message},
        status_code=status_code,
    )


def render_error(request: Request, exc: Exception, settings: Settings) -> Response:
    error = normalize_error(request, exc)
    if settings.is_development:
        return _send_error_dev(request, exc, error, settings)
    return _send_error_prod(request, exc, error, settings)


def register_exception_handlers(app: FastAPI, settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()

    async def handle(request: Request, exc: Exception) -> Response:
        return render_error(request, exc, settings)

    app.add_exception_handler(AppError, handle)
    app.add_exception_handler(RequestValidationError, handle)
    app.add_exception_handler(StarletteHTTPException, handle)
    app.add_exception_handler(Exception, handle)
