import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from trackflow.config import settings
from trackflow.middleware.exceptions import register_exception_handlers
from trackflow.middleware.rate_limit import RateLimitMiddleware
from trackflow.middleware.security import SecurityHeadersMiddleware
from trackflow.routers import (
    assemblies,
    barcodes,
    clients,
    drawings,
    files,
    health,
    logistics,
    mobile,
    nfc,
    operations,
    projects,
    users,
)
from trackflow.utils.redis import close_redis

logger = logging.getLogger("trackflow")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release the shared Redis pool on shutdown."""
    logger.info("TrackFlow starting (environment=%s)", settings.environment)
    yield
    await close_redis()


app = FastAPI(
    title="TrackFlow",
    description="Manufacturing tracking: assemblies, barcodes, logistics batches and QC",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    RateLimitMiddleware,
    default_limit=settings.rate_limit_default,
    default_window=60,
    exempt_paths=["/health", "/docs", "/redoc", "/openapi.json"],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
# Public
app.include_router(health.router)
app.include_router(nfc.router, prefix="/api/nfc", tags=["nfc"])

# Web dashboard (bearer JWT)
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(clients.router, prefix="/api/clients", tags=["clients"])
app.include_router(projects.router, prefix="/api/projects", tags=["projects"])
app.include_router(assemblies.router, prefix="/api/assemblies", tags=["assemblies"])
app.include_router(barcodes.router, prefix="/api/barcodes", tags=["barcodes"])
app.include_router(logistics.router, prefix="/api/logistics", tags=["logistics"])
app.include_router(drawings.router, prefix="/api/drawings", tags=["drawings"])
app.include_router(files.router, prefix="/api/files", tags=["files"])
app.include_router(operations.router, prefix="/api/operations", tags=["operations"])

# Mobile app (userId + NFC card)
app.include_router(mobile.router, prefix="/api/mobile", tags=["mobile"])
