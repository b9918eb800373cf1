"""API response schemas."""

from app.schemas.fantasy import (
    LeaderboardEntryResponse,
    LeaderboardResponse,
    ProcessResultResponse,
    SweepItemResponse,
    SweepResponse,
)

__all__ = [
    "LeaderboardEntryResponse",
    "LeaderboardResponse",
    "ProcessResultResponse",
    "SweepItemResponse",
    "SweepResponse",
]
