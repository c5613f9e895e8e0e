"""Error taxonomy and the single place it is mapped to HTTP status codes."""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    default_detail = "Internal Server Error"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class Unauthorized(AppError):
    status_code = 401
    default_detail = "Not authorised"


class NotFound(AppError):
    status_code = 404
    default_detail = "Not found"


class ValidationError(AppError):
    status_code = 422
    default_detail = "Invalid payload"


class InternalError(AppError):
    status_code = 500


class NotificationError(InternalError):
    default_detail = "Failed to send notification"


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": str(exc) or "Internal Server Error"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
