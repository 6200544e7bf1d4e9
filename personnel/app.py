from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response

from personnel.api.error_handling import register_exception_handlers
from personnel.api.routes import router
from personnel.config import Settings
from personnel.logging import get_logger, set_correlation_id
from personnel.metrics import UNMATCHED_PATH, RequestMetrics
from personnel.service.runtime import Runtime

logger = get_logger(__name__)

__version__ = "0.1.0"


def create_app(
    settings: Optional[Settings] = None, runtime: Optional[Runtime] = None
) -> FastAPI:
    """Build the application; run with ``uvicorn --factory personnel.app:create_app``."""
    if runtime is None:
        runtime = Runtime(settings or Settings.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        try:
            await app.state.runtime.close()
            logger.info("runtime_cleanup_complete")
        except Exception as exc:
            logger.error("shutdown_failed", error=str(exc))

    app = FastAPI(title="Personnel Service", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime
    app.state.metrics = RequestMetrics()

    # Registered first so it runs inside the correlation id middleware
    @app.middleware("http")
    async def log_and_count_requests(request: Request, call_next):
        """Emit one access log entry and bump http_requests_total per request."""
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            route = request.scope.get("route")
            path_label = getattr(route, "path", None) or UNMATCHED_PATH
            app.state.metrics.record_request(path_label, request.method, status_code)
            logger.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                remote_addr=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )

    @app.middleware("http")
    async def add_correlation_id(request: Request, call_next):
        """Tag each request with X-Request-ID (client supplied or generated)."""
        correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        return response

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
        if request.url.path.startswith("/v1/"):
            response.headers.setdefault(
                "Cache-Control", "no-store, no-cache, must-revalidate, private"
            )
        if request.url.scheme == "https" and runtime.settings.enable_hsts:
            response.headers.setdefault(
                "Strict-Transport-Security", "max-age=63072000; includeSubDomains"
            )
        response.headers.setdefault("API-Version", __version__)
        return response

    register_exception_handlers(app)
    app.include_router(router)

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok", "version": __version__}

    @app.get("/metrics", response_class=Response)
    async def metrics() -> Response:
        """Prometheus-compatible metrics endpoint."""
        return Response(
            content=app.state.metrics.render(__version__),
            media_type="text/plain; version=0.0.4",
        )

    return app


__all__ = ["create_app"]
