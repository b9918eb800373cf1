"""Fantasy gameweek API routes - scoring runs and leaderboards."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from app.config import get_settings
from app.db import get_connection
from app.dependencies import require_db
from app.schemas.fantasy import (
    LeaderboardEntryResponse,
    LeaderboardResponse,
    ProcessResultResponse,
    SweepResponse,
)
from app.services.errors import (
    GameweekLockedError,
    GameweekNotFinishedError,
    GameweekNotFoundError,
)
from app.services.gameweek_processor import GameweekProcessor
from app.services.gameweek_repository import GameweekRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/fantasy/gameweeks", tags=["fantasy"])


# =============================================================================
# Route Parameters
# =============================================================================

GameWeekIdPath = Annotated[
    str,
    Path(min_length=1, max_length=64, description="Game week ID"),
]


def get_processor() -> GameweekProcessor:
    """Processor dependency (overridable in tests)."""
    settings = get_settings()
    return GameweekProcessor(unknown_username=settings.leaderboard_unknown_username)


# =============================================================================
# Routes
# =============================================================================


@router.post("/process-finished", response_model=SweepResponse)
async def process_finished_gameweeks(
    _: None = Depends(require_db),
    processor: GameweekProcessor = Depends(get_processor),
) -> SweepResponse:
    """
    Process every finished game week that has no leaderboard yet.

    Meant to be called by a scheduler after game weeks close.
    """
    try:
        async with get_connection() as conn:
            sweep = await processor.process_all_finished(conn)
    except Exception as e:
        logger.exception(f"Failed to process finished game weeks: {e}")
        raise HTTPException(
            status_code=500,
            detail="Internal server error while processing game weeks",
        ) from e

    return SweepResponse.model_validate(sweep, from_attributes=True)


@router.post("/{game_week_id}/process", response_model=ProcessResultResponse)
async def process_gameweek(
    game_week_id: GameWeekIdPath,
    dry_run: bool = Query(default=False, description="Compute without writing"),
    _: None = Depends(require_db),
    processor: GameweekProcessor = Depends(get_processor),
) -> ProcessResultResponse:
    """
    Score every team of a finished game week and rebuild its leaderboard.

    Safe to re-run: the same input data produces the same totals, fatigue and
    leaderboard. A non-zero `failures` count means some records were not
    written and the run should be retried.
    """
    try:
        async with get_connection() as conn:
            result = await processor.process(conn, game_week_id, dry_run=dry_run)
    except GameweekNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (GameweekNotFinishedError, GameweekLockedError) as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except Exception as e:
        logger.exception(f"Failed to process game week {game_week_id}: {e}")
        raise HTTPException(
            status_code=500,
            detail="Internal server error while processing game week",
        ) from e

    return ProcessResultResponse.model_validate(result, from_attributes=True)


@router.get("/{game_week_id}/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    game_week_id: GameWeekIdPath,
    _: None = Depends(require_db),
) -> LeaderboardResponse:
    """Get the latest leaderboard snapshot for a game week, in rank order."""
    try:
        async with get_connection() as conn:
            entries = await GameweekRepository().fetch_leaderboard(conn, game_week_id)
    except Exception as e:
        logger.exception(f"Failed to get leaderboard for game week {game_week_id}: {e}")
        raise HTTPException(
            status_code=500,
            detail="Internal server error while fetching leaderboard",
        ) from e

    return LeaderboardResponse(
        game_week_id=game_week_id,
        entries=[
            LeaderboardEntryResponse.model_validate(entry, from_attributes=True)
            for entry in entries
        ],
        total=len(entries),
    )
