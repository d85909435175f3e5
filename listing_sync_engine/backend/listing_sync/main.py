# backend/listing_sync/main.py
from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .domain.errors import IllegalStatusTransition, SyncLogFinalizedError
from .logging_config import configure_logging

from .middleware.request_id import RequestIDMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.health import router as health_router
from .routers.properties import router as properties_router
from .routers.sync import router as sync_router

API_PREFIX = "/api"


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


configure_logging()

app = FastAPI(
    title="Listing Sync Engine",
    version=settings.app_version,
)

# Last added runs first: request id must be set before the request log line.
app.add_middleware(StructuredLoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(IllegalStatusTransition)
def _illegal_transition(request: Request, exc: IllegalStatusTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(SyncLogFinalizedError)
def _log_finalized(request: Request, exc: SyncLogFinalizedError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


app.include_router(health_router, prefix=API_PREFIX)
app.include_router(sync_router, prefix=API_PREFIX)
app.include_router(properties_router, prefix=API_PREFIX)
