"""Fantasy gameweek API response schemas.

Populated from the processor dataclasses with
model_validate(obj, from_attributes=True). Boosters are exposed by name.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from app.services.fantasy_models import Booster


class LeaderboardEntryResponse(BaseModel):
    """One ranked leaderboard row."""

    model_config = ConfigDict(from_attributes=True)

    rank: int
    user_id: str
    username: str
    avatar: str | None
    total_points: float
    booster_used: str | None

    @field_validator("booster_used", mode="before")
    @classmethod
    def booster_name(cls, value: Any) -> Any:
        if isinstance(value, Booster):
            return value.label
        return value


class LeaderboardResponse(BaseModel):
    game_week_id: str
    entries: list[LeaderboardEntryResponse]
    total: int


class ProcessResultResponse(BaseModel):
    """Summary of a gameweek scoring run."""

    model_config = ConfigDict(from_attributes=True)

    game_week_id: str
    teams_processed: int
    leaderboard_entries: int
    fatigue_updates: int
    fatigue_skipped: int = 0
    failures: int
    refunded_boosters: int
    dry_run: bool
    leaderboard: list[LeaderboardEntryResponse] = []


class SweepItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    game_week_id: str
    name: str
    status: str
    reason: str | None = None
    result: ProcessResultResponse | None = None


class SweepResponse(BaseModel):
    """Result of processing every finished gameweek."""

    model_config = ConfigDict(from_attributes=True)

    game_weeks_found: int
    success_count: int
    error_count: int
    results: list[SweepItemResponse]
