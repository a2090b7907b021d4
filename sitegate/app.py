from __future__ import annotations

from contextlib import asynccontextmanager
from typing import List, Optional
from urllib.parse import unquote

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sitegate.api.error_handling import register_exception_handlers
from sitegate.api.routes import router
from sitegate.config import Settings
from sitegate.logging import get_logger, set_correlation_id
from sitegate.routing import strip_mount
from sitegate.service.auth import Principal
from sitegate.service.gate import GateRequest

logger = get_logger(__name__)

_settings = Settings.from_env()

__version__ = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    from sitegate.service.runtime import get_runtime

    try:
        runtime = get_runtime()
        logger.info("startup_complete", app_mode=runtime.settings.app_mode.value)
    except Exception as exc:
        logger.error("startup_failed", error=str(exc))

    yield

    try:
        runtime = get_runtime()
        await runtime.close()
        logger.info("runtime_cleanup_complete")
    except Exception as exc:
        logger.error("shutdown_failed", error=str(exc))


app = FastAPI(title="Sitegate", version=__version__, lifespan=lifespan)


def _allowed_origins() -> List[str]:
    if _settings.cors_allow_origins:
        return _settings.cors_allow_origins
    # Local dev hosts only; no wildcard while credentials are allowed
    return [
        "http://localhost",
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]


# Starlette runs the last registered middleware first, so the order below is
# the reverse of the request path: correlation id, maintenance gate, headers.


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if request.url.path.startswith("/api/") or request.url.path == "/healthz":
        response.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, private")
    return response


# Load balancer probes must keep answering while the site is in maintenance
_UNGATED_PATHS = {"/healthz"}


def _gate_request(request: Request) -> GateRequest:
    scope = request.scope
    raw_path: Optional[str] = None
    raw = scope.get("raw_path")
    if raw:
        raw_path = unquote(raw.decode("latin-1"))
    return GateRequest(
        path=request.url.path,
        routed_path=strip_mount(scope.get("path", ""), scope.get("root_path")),
        raw_path=raw_path,
        method=request.method,
    )


@app.middleware("http")
async def enforce_maintenance_mode(request: Request, call_next):
    """Block non-admin traffic with a branded 503 while maintenance is on."""
    if request.method.upper() == "OPTIONS" or request.url.path in _UNGATED_PATHS:
        return await call_next(request)
    from sitegate.service.runtime import get_runtime

    try:
        runtime = get_runtime()
    except Exception as exc:
        logger.error("maintenance_gate_runtime_unavailable", error=str(exc))
        return await call_next(request)

    async def _resolve_principal() -> Optional[Principal]:
        return runtime.tokens.authenticate(request.headers.get("Authorization"))

    admission = await runtime.gate.admit(_gate_request(request), _resolve_principal)
    if not admission.allowed:
        return JSONResponse(status_code=admission.status_code, content=admission.denial)
    return await call_next(request)


@app.middleware("http")
async def add_correlation_id(request, call_next):
    """Read or generate ``X-Request-ID`` and echo it on the response."""
    client_request_id = request.headers.get("X-Request-ID")
    correlation_id = set_correlation_id(client_request_id)
    response = await call_next(request)
    response.headers["X-Request-ID"] = correlation_id
    return response


# Outermost, so maintenance 503s are readable cross-origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)


register_exception_handlers(app)
app.include_router(router)


@app.get("/healthz")
async def health_check():
    from sitegate.service.runtime import get_runtime

    try:
        runtime = get_runtime()
        settings = await runtime.site_settings.get()
    except Exception as exc:
        logger.error("health_check_failed", error=str(exc))
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": str(exc)},
        )
    return {
        "status": "healthy",
        "version": __version__,
        "maintenance_mode": settings.maintenance_mode,
        "cache": "redis" if runtime.cache is not None else "memory",
    }
