"""
FieldRoute — FastAPI Backend
Route planning and job lifecycle tracking for field photographers
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from db.database import engine, Base
from routers import jobs, routes, technicians
from services.maps import close_clients

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    if settings.AUTO_CREATE_TABLES:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    logger.info("FieldRoute API starting...")
    yield
    # Shutdown
    await close_clients()
    await engine.dispose()
    logger.info("FieldRoute API shut down.")


app = FastAPI(
    title="FieldRoute API",
    description="Daily route planning and job lifecycle tracking for field technicians",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ────────────────────────────────────────────────
app.include_router(technicians.router, prefix="/api/technicians", tags=["Technicians"])
app.include_router(jobs.router, prefix="/api/jobs", tags=["Jobs"])
app.include_router(routes.router, prefix="/api/routes", tags=["Routes"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "FieldRoute API v1"}

