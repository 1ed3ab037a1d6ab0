from __future__ import annotations

import logging
import traceback
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.status import HTTP_500_INTERNAL_SERVER_ERROR

from bucketlens.common.request_context import get_request_id
from bucketlens.common.responses import ApiResponse
from bucketlens.preview.errors import PreviewActionError, PreviewError, ViewerBundleError

logger = logging.getLogger(__name__)


class ApiException(StarletteHTTPException):
    def __init__(
        self,
        status_code: int = 400,
        code: int = 40000,
        message: str = "Bad Request",
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message)
        self.code = code
        self.message = message
        self.details = details


# Preview errors that reach the API: status, code and the public message
# (None keeps the exception text).
PREVIEW_ERROR_RESPONSES: dict[type[PreviewError], tuple[int, int, str | None]] = {
    PreviewActionError: (409, 40900, None),
    ViewerBundleError: (502, 50200, "Point-cloud viewer is unavailable"),
}


def _request_id(request: Request) -> str | None:
    return get_request_id() or getattr(request.state, "request_id", None)


def _fail(status_code: int, code: int, message: str, data: Any = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse.fail(code=code, message=message, data=data).to_wire(),
    )


def register_exception_handlers(app: FastAPI, *, debug: bool = False) -> None:
    async def handle_api_exception(request: Request, exc: ApiException) -> JSONResponse:
        logger.warning(
            "api_exception request_id=%s method=%s path=%s status=%s code=%s message=%s",
            _request_id(request),
            request.method,
            request.url.path,
            exc.status_code,
            exc.code,
            exc.message,
        )
        return _fail(exc.status_code, exc.code, exc.message, exc.details)

    async def handle_preview_error(request: Request, exc: PreviewError) -> JSONResponse:
        status_code, code, public_message = PREVIEW_ERROR_RESPONSES[type(exc)]
        log_fn = logger.warning if status_code >= 500 else logger.info
        log_fn(
            "preview_error request_id=%s path=%s type=%s status=%s message=%s",
            _request_id(request),
            request.url.path,
            exc.__class__.__name__,
            status_code,
            exc,
        )
        if public_message is None:
            return _fail(status_code, code, str(exc))
        # Upstream detail is only exposed in debug.
        return _fail(status_code, code, public_message, {"reason": str(exc)} if debug else None)

    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning(
            "validation_error request_id=%s method=%s path=%s errors=%s",
            _request_id(request),
            request.method,
            request.url.path,
            exc.errors(),
        )
        return _fail(422, 42200, "Validation Error", exc.errors())

    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = str(exc.detail) if exc.detail is not None else "HTTP Error"
        logger.warning(
            "http_exception request_id=%s method=%s path=%s status=%s message=%s",
            _request_id(request),
            request.method,
            request.url.path,
            exc.status_code,
            message,
        )
        return _fail(exc.status_code, exc.status_code, message)

    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        request_id = _request_id(request)
        logger.exception(
            "unhandled_exception request_id=%s method=%s path=%s",
            request_id,
            request.method,
            request.url.path,
        )
        details: Any | None = None
        if debug:
            details = {
                "requestId": request_id,
                "type": exc.__class__.__name__,
                "message": str(exc),
                "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            }
        return _fail(HTTP_500_INTERNAL_SERVER_ERROR, 50000, "Internal Server Error", details)

    app.add_exception_handler(ApiException, handle_api_exception)
    for error_type in PREVIEW_ERROR_RESPONSES:
        app.add_exception_handler(error_type, handle_preview_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected)
