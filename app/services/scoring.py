"""Scoring Engine - converts one player's match statistics into fantasy points.

Evaluation order (each multiplier applies to everything accumulated so far):
1. Minutes bonus (> 60 minutes)
2. Clean sheet bonus (> 60 minutes)
3. Per-action points by position
4. Position rating multiplier
5. Fatigue (fatigue / 100)
6. Captain x1.1, then Double Impact x2.0 (captain only)

Points are left unrounded; rounding happens once on the team total.
"""

from collections.abc import Sequence

from app.services.fantasy_models import PlayerMatchStat, Position, StatKind

GK = Position.GOALKEEPER
DEF = Position.DEFENDER
MID = Position.MIDFIELDER
ATT = Position.ATTACKER

# =============================================================================
# Constants
# =============================================================================

MINUTES_THRESHOLD = 60

MINUTES_BONUS = {GK: 1, DEF: 1, MID: 1, ATT: 1}

CLEAN_SHEET_BONUS = {GK: 5, DEF: 4, MID: 2, ATT: 0}

# Points per unit of each counted action, by position
POINTS_PER_ACTION: dict[StatKind, dict[Position, float]] = {
    StatKind.GOALS: {GK: 8, DEF: 6, MID: 5, ATT: 4},
    StatKind.ASSISTS: {GK: 4, DEF: 4, MID: 3, ATT: 2},
    StatKind.SHOTS_ON_TARGET: {GK: 0.5, DEF: 0.5, MID: 0.5, ATT: 0.5},
    StatKind.SAVES: {GK: 1 / 3, DEF: 0, MID: 0, ATT: 0},
    StatKind.PENALTIES_SAVED: {GK: 5, DEF: 0, MID: 0, ATT: 0},
    StatKind.PENALTIES_SCORED: {GK: 3, DEF: 3, MID: 3, ATT: 3},
    StatKind.PENALTIES_MISSED: {GK: -2, DEF: -2, MID: -2, ATT: -2},
    StatKind.YELLOW_CARDS: {GK: -1, DEF: -1, MID: -1, ATT: -1},
    StatKind.RED_CARDS: {GK: -3, DEF: -3, MID: -3, ATT: -3},
    StatKind.GOALS_CONCEDED: {GK: -1, DEF: -0.5, MID: 0, ATT: 0},
    StatKind.INTERCEPTIONS: {GK: 0.3, DEF: 0.5, MID: 0.2, ATT: 0},
    StatKind.TACKLES: {GK: 0.3, DEF: 0.5, MID: 0.2, ATT: 0},
    StatKind.DUELS_WON: {GK: 0.2, DEF: 0.3, MID: 0.3, ATT: 0.2},
    StatKind.DUELS_LOST: {GK: -0.1, DEF: -0.1, MID: -0.1, ATT: -0.1},
    StatKind.DRIBBLES_SUCCEEDED: {GK: 0, DEF: 0.2, MID: 0.3, ATT: 0.3},
    StatKind.FOULS_COMMITTED: {GK: -0.3, DEF: -0.3, MID: -0.3, ATT: -0.3},
    StatKind.FOULS_SUFFERED: {GK: 0.2, DEF: 0.2, MID: 0.2, ATT: 0.2},
}

RATING_MULTIPLIER = {GK: 1.5, DEF: 1.3, MID: 1.2, ATT: 1.1}

CAPTAIN_MULTIPLIER = 1.1
DOUBLE_IMPACT_MULTIPLIER = 2.0


# =============================================================================
# Pure Functions
# =============================================================================


def score_player(
    stats: PlayerMatchStat,
    position: Position,
    fatigue: float,
    is_captain: bool,
    double_impact_active: bool = False,
) -> float:
    """Compute a player's fantasy points for one fixture.

    Args:
        stats: The player's statistics for the fixture
        position: Player position (selects the per-position constants)
        fatigue: Fatigue the player is scored at (0-100)
        is_captain: Whether the player captains the team
        double_impact_active: Whether the team activated Double Impact.
            Only has an effect together with is_captain.

    Returns:
        Unrounded points
    """
    points = 0.0
    full_match = stats.minutes_played > MINUTES_THRESHOLD

    if full_match:
        points += MINUTES_BONUS[position]

    if stats.clean_sheet and full_match:
        points += CLEAN_SHEET_BONUS[position]

    for kind, per_position in POINTS_PER_ACTION.items():
        value = stats.count(kind)
        if value:
            points += per_position[position] * value

    points *= RATING_MULTIPLIER[position]
    points *= fatigue / 100

    if is_captain:
        points *= CAPTAIN_MULTIPLIER
        if double_impact_active:
            points *= DOUBLE_IMPACT_MULTIPLIER

    return points


def score_fixtures(
    stats_rows: Sequence[PlayerMatchStat],
    position: Position,
    fatigue: float,
    is_captain: bool,
    double_impact_active: bool = False,
) -> float:
    """Sum a player's points over every fixture they have in the gameweek."""
    return sum(
        score_player(stats, position, fatigue, is_captain, double_impact_active)
        for stats in stats_rows
    )


def has_played(stats_rows: Sequence[PlayerMatchStat] | None) -> bool:
    """A player featured if any fixture in the window gave them minutes."""
    return any(stats.minutes_played > 0 for stats in stats_rows or ())
