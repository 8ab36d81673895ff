"""
FastAPI entrypoint for the Sigillum certification service.

The coordinator (and with it the storage and registry backends) is built
once in the application lifespan and torn down on shutdown. Tests pass an
already-wired coordinator to ``create_app`` instead.

Error responses always carry a stable machine-checkable kind and a human
message; stack traces and filesystem paths never leave the process.
"""

import logging
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from sigillum.app.api.admin import router as admin_router
from sigillum.app.api.documents import router as documents_router
from sigillum.app.config import get_settings
from sigillum.app.coordinator import CertificationCoordinator
from sigillum.app.errors import DataIntegrityError, SigillumError

logger = logging.getLogger("sigillum.main")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "Cache-Control": "no-store",
}


def get_app_version() -> str:
    try:
        return version("sigillum")
    except PackageNotFoundError:
        return "0.1.0"


def _error_response(kind: str, message: str, status_code: int) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status_code,
        content={"success": False, "error": kind, "detail": message},
        headers=SECURITY_HEADERS,
    )


def create_app(coordinator: Optional[CertificationCoordinator] = None) -> FastAPI:
    """
    Construct the application.

    Args:
        coordinator:
            Pre-built coordinator. When omitted, one is built from
            environment configuration at startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = coordinator is None
        if owned:
            try:
                settings = get_settings()
                app.state.coordinator = CertificationCoordinator.from_config(settings)
            except Exception:
                logger.exception("invalid_sigillum_configuration")
                raise
        else:
            app.state.coordinator = coordinator

        logger.info(
            "sigillum_startup_complete",
            extra={"service": "sigillum", "version": get_app_version()},
        )
        try:
            yield
        finally:
            if owned:
                app.state.coordinator.close()
            logger.info("sigillum_shutdown_complete")

    app = FastAPI(
        title="Sigillum",
        description="PDF certification: QR stamping, hashing, registry, verification",
        version=get_app_version(),
        docs_url="/docs",
        redoc_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # Browser front end is served from the same origin as app_base_url
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # Available even without entering the lifespan (e.g. bare TestClient).
    if coordinator is not None:
        app.state.coordinator = coordinator

    app.include_router(documents_router, prefix="/documents")
    app.include_router(admin_router, prefix="/admin")

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @app.exception_handler(SigillumError)
    async def handle_pipeline_error(
        request: Request, exc: SigillumError
    ) -> ORJSONResponse:
        if isinstance(exc, DataIntegrityError):
            logger.error(
                "data_integrity_alarm",
                extra={"path": request.url.path, "detail": exc.message},
            )
        elif exc.status_code >= 500:
            logger.error(
                "request_failed",
                extra={"path": request.url.path, "error": exc.kind},
            )
        return _error_response(exc.kind, exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        fields = sorted(
            {
                str(err["loc"][-1])
                for err in exc.errors()
                if err.get("loc")
            }
        )
        message = "Missing or invalid field(s): " + ", ".join(fields)
        return _error_response("validation_error", message, 400)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("unexpected_error", extra={"path": request.url.path})
        return _error_response("internal_error", "Internal server error.", 500)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    return app


app = create_app()
