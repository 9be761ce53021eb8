# backend/app/main.py

import logging
import os
import time

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.gzip import GZipMiddleware

from .api import api_assignment, api_booking, api_invoice, api_system, api_timesheet
from .api.dependencies import get_adapter
from .crud.persistence import PersistenceAdapter
from .core.config import settings
from .core.observability import setup_logging
from . import models  # noqa: F401  registers the documents table
from .database import Base, engine
from .middleware.security_headers import SecurityHeadersMiddleware
from .utils import ServiceError, field_errors_from_pydantic

setup_logging()
logger = logging.getLogger(__name__)

_BOOT_TS = time.time()

# Create the documents table on startup; the schema is a single generic table.
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Interpreter Booking API",
    version="1.0.0",
    description="Bookings, interpreter offers, timesheets and invoicing for an interpreting agency.",
    default_response_class=ORJSONResponse,
)


# ─── CORS middleware (explicit allowlist) ─────────────────────────────────────
ALLOWED_ORIGINS = [o.rstrip("/") for o in settings.CORS_ORIGINS if o]

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
logger.info("CORS origins set to: %s", ALLOWED_ORIGINS)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1024)


@app.middleware("http")
async def catch_exceptions(request: Request, call_next):
    """Return JSON responses for HTTP errors and log them."""
    try:
        response = await call_next(request)
    except StarletteHTTPException as exc:  # return the original status and detail
        logger.error(
            "HTTP error %s at %s: %s", exc.status_code, request.url.path, exc.detail
        )
        response = ORJSONResponse(
            status_code=exc.status_code, content={"detail": exc.detail}
        )
    except Exception as exc:  # pragma: no cover - generic handler
        logger.exception("Unhandled error: %s", exc)
        response = ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error"},
        )

    # Ensure the CORS headers are present even when an exception occurs
    origin = request.headers.get("origin")
    if origin and origin.rstrip("/") in ALLOWED_ORIGINS:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        if "Vary" not in response.headers:
            response.headers["Vary"] = "Origin"

    return response


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    """Render core failures as ``{"detail": {kind, message, field_errors}}``."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "%s at %s: %s %s",
        exc.kind,
        request.url.path,
        exc.message,
        exc.field_errors,
        extra={"kind": exc.kind, "path": request.url.path},
    )
    return ORJSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return validation errors naming the offending fields and log them."""
    errors = exc.errors()
    logger.warning("Validation error at %s: %s", request.url.path, errors)
    field_errors = field_errors_from_pydantic(exc)
    first = next(iter(field_errors), "payload")
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": {
                "kind": "validation",
                "message": f"Invalid {first}: {field_errors.get(first, 'invalid')}",
                "field_errors": field_errors,
            }
        },
    )


@app.get("/healthz/live", tags=["health"])
async def health_live():
    """Liveness probe: process can respond; does not touch the store."""
    return {
        "status": "ok",
        "kind": "live",
        "uptime_s": round(time.time() - _BOOT_TS, 1),
        "pid": os.getpid(),
    }


@app.get("/healthz/ready", tags=["health"])
async def health_ready(adapter: PersistenceAdapter = Depends(get_adapter)):
    """Readiness probe: remote store reachable within the probe timeout.

    The app keeps serving from the local mirror when the store is down, so
    this reports ``degraded`` rather than failing outright.
    """
    t0 = time.perf_counter()
    online = await adapter.check_connection()
    return ORJSONResponse(
        status_code=200,
        content={
            "status": "ok" if online else "degraded",
            "kind": "ready",
            "ready": True,
            "remote_store": "online" if online else "offline",
            "probe_ms": round((time.perf_counter() - t0) * 1000.0, 2),
            "uptime_s": round(time.time() - _BOOT_TS, 1),
        },
        headers={"Cache-Control": "no-store"},
    )


api_prefix = settings.API_V1_STR  # usually something like "/api/v1"

app.include_router(api_booking.router, prefix=f"{api_prefix}/bookings", tags=["bookings"])
app.include_router(api_assignment.router, prefix=f"{api_prefix}", tags=["assignments"])
app.include_router(api_timesheet.router, prefix=f"{api_prefix}/timesheets", tags=["timesheets"])
app.include_router(api_invoice.router, prefix=f"{api_prefix}", tags=["invoices"])
app.include_router(api_system.router, prefix=f"{api_prefix}", tags=["system"])


@app.get("/")
async def root():
    return {"message": "Interpreter Booking API"}


if __name__ == "__main__":
    import uvicorn

    # uvicorn ignores workers when reloading
    reload = os.getenv("UVICORN_RELOAD", "0") == "1"
    uvicorn.run(
        "app.main:app",
        host=os.getenv("UVICORN_HOST", "0.0.0.0"),
        port=int(os.getenv("UVICORN_PORT", "8000")),
        reload=reload,
        workers=None if reload else int(os.getenv("UVICORN_WORKERS", "1")),
        timeout_keep_alive=int(os.getenv("UVICORN_KEEPALIVE", "65")),
    )
