"""Leaderboard Builder - ranks every team of a gameweek.

Each run produces the full snapshot for the gameweek; the previous snapshot is
replaced, never appended to.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal

from app.services.fantasy_models import Booster, UserProfile

UNKNOWN_USERNAME = "Unknown"

# Teams without a creation timestamp sort after every dated team on ties
_NO_TIMESTAMP = datetime.max.replace(tzinfo=UTC)


@dataclass(frozen=True)
class TeamScore:
    """A team's rounded total, as fed to the ranking."""

    team_id: str
    user_id: str
    game_id: str | None
    game_week_id: str
    total_points: float
    booster_used: Booster = Booster.NONE
    created_at: datetime | None = None


@dataclass
class LeaderboardEntry:
    """One ranked row of a gameweek leaderboard."""

    game_id: str | None
    game_week_id: str
    user_id: str
    username: str
    avatar: str | None
    total_points: float
    rank: int
    booster_used: Booster = Booster.NONE


def round_points(value: float) -> float:
    """Round a team total to one decimal place, halves towards positive infinity.

    10.25 -> 10.3 and -2.25 -> -2.2.
    """
    # Towards +inf: halves go up for positives and towards zero for negatives
    rounding = ROUND_HALF_UP if value >= 0 else ROUND_HALF_DOWN
    return float(Decimal(repr(value)).quantize(Decimal("0.1"), rounding=rounding))


def ranking_key(score: TeamScore) -> tuple:
    """Sort key: points descending, then earlier team creation, then user id."""
    return (
        -score.total_points,
        score.created_at or _NO_TIMESTAMP,
        score.user_id,
        score.team_id,
    )


def build_leaderboard(
    scores: Iterable[TeamScore],
    profiles: Mapping[str, UserProfile],
    unknown_username: str = UNKNOWN_USERNAME,
) -> list[LeaderboardEntry]:
    """Rank team scores into leaderboard entries.

    Args:
        scores: One TeamScore per processed team
        profiles: User display fields by user id
        unknown_username: Shown for users with no profile

    Returns:
        Entries in rank order, ranks exactly 1..N
    """
    entries = []
    for index, score in enumerate(sorted(scores, key=ranking_key)):
        profile = profiles.get(score.user_id)
        entries.append(
            LeaderboardEntry(
                game_id=score.game_id,
                game_week_id=score.game_week_id,
                user_id=score.user_id,
                username=profile.username if profile else unknown_username,
                avatar=profile.avatar if profile else None,
                total_points=score.total_points,
                rank=index + 1,
                booster_used=score.booster_used,
            )
        )
    return entries
