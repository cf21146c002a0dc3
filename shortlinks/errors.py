"""Domain errors raised by the stores and mapped to HTTP at the app boundary."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("shortlinks.errors")


class ServiceError(Exception):
    kind = "ServiceError"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(ServiceError):
    kind = "InvalidInput"
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(ServiceError):
    kind = "Unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(ServiceError):
    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(ServiceError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(ServiceError):
    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT


class ExhaustedRetries(ServiceError):
    """Code space looks exhausted; operational trouble rather than caller error."""

    kind = "ExhaustedRetries"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(status_code: int, kind: str, message) -> dict:
    return {"statusCode": status_code, "error": kind, "message": message}


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.status_code, exc.kind, exc.message),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        messages = []
        for err in exc.errors():
            field = ".".join(str(part) for part in err.get("loc", ())[1:])
            messages.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body(status.HTTP_400_BAD_REQUEST, InvalidInput.kind, messages),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(500, "InternalError", "Internal server error"),
        )
