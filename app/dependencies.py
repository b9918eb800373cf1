"""Shared FastAPI dependencies for API routes."""

from fastapi import HTTPException

from app.db import get_pool


def require_db() -> None:
    """FastAPI dependency that requires the database pool.

    Every fantasy route reads or writes Postgres, so without a pool they
    answer 503 instead of failing mid-run.

    Usage:
        @router.post("/{game_week_id}/process")
        async def endpoint(_: None = Depends(require_db)):
            ...
    """
    try:
        get_pool()
    except RuntimeError as e:
        raise HTTPException(
            status_code=503,
            detail="Database not available. Game week scoring requires a database connection.",
        ) from e
