"""Main FastAPI application entry point."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.gameweeks import router as gameweeks_router
from app.config import get_settings
from app.db import close_pool, init_pool

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Fantasy Scoring Backend",
    description="Weekly fantasy scoring: player points, fatigue, boosters and leaderboards",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(gameweeks_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.on_event("startup")
async def startup_event() -> None:
    """Open the database pool. Without it, DB routes answer 503."""
    logger.info("Starting Fantasy Scoring Backend")
    logger.info(f"CORS origins: {settings.cors_origins_list}")
    try:
        await init_pool()
    except Exception as e:
        logger.warning(f"Database unavailable, scoring routes disabled: {e}")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    """Cleanup on shutdown."""
    logger.info("Shutting down Fantasy Scoring Backend")
    await close_pool()
