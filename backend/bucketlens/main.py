from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bucketlens.common.exceptions import register_exception_handlers
from bucketlens.common.request_context import normalize_request_id, request_id_scope
from bucketlens.common.responses import ApiResponse
from bucketlens.config import Settings, get_settings
from bucketlens.preview.context import PreviewContext, build_preview_context
from bucketlens.preview.router import router as preview_router

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
    )


def create_app(context: PreviewContext | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the API application.

    Tests pass a ready ``context`` so no storage client is created.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        preview = context if context is not None else build_preview_context(settings)
        app.state.preview = preview
        logging.getLogger(__name__).info(
            "preview_ready env=%s auto_load_bytes=%s max_bytes=%s",
            settings.app_env,
            preview.limits.auto_load_bytes,
            preview.limits.max_bytes,
        )
        try:
            yield
        finally:
            preview.close()

    app = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        lifespan=lifespan,
    )

    cors_origins = settings.cors_origins_list()
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
            expose_headers=["x-request-id"],
        )

    register_exception_handlers(app, debug=settings.debug)

    @app.middleware("http")
    async def request_logging_middleware(request, call_next):
        logger = logging.getLogger("bucketlens.request")
        request_id = normalize_request_id(request.headers.get("x-request-id"))
        request.state.request_id = request_id
        start = time.perf_counter()
        with request_id_scope(request_id):
            try:
                response = await call_next(request)
            except Exception:
                duration_ms = (time.perf_counter() - start) * 1000.0
                logger.exception(
                    "request_failed request_id=%s method=%s path=%s duration_ms=%.2f",
                    request_id,
                    request.method,
                    request.url.path,
                    duration_ms,
                )
                raise

        duration_ms = (time.perf_counter() - start) * 1000.0
        response.headers["x-request-id"] = request_id
        log_fn = logger.info
        if response.status_code >= 500:
            log_fn = logger.error
        elif response.status_code >= 400:
            log_fn = logger.warning
        log_fn(
            "request_completed request_id=%s method=%s path=%s status=%s duration_ms=%.2f",
            request_id,
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response

    app.include_router(preview_router)

    @app.get("/health", response_model=ApiResponse)
    def health() -> ApiResponse:
        return ApiResponse.ok({"status": "ok"})

    return app


app = create_app()
