"""Scores one fantasy team for a gameweek.

Combines the booster, per-player scoring, composition bonuses and Golden Game
into a team total. Pure: fatigue is read, never written, here.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date

from app.services.bonuses import TeamBonuses, evaluate_bonuses
from app.services.boosters import BoosterResolution, apply_golden_game, resolve_booster
from app.services.fantasy_models import Player, PlayerMatchStat, UserFantasyTeam
from app.services.fatigue import RECOVERY_BOOST_FATIGUE
from app.services.leaderboard import TeamScore, round_points
from app.services.scoring import has_played, score_fixtures

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlayerPoints:
    """A starter's contribution to the team sum."""

    player_id: str
    points: float
    fatigue: int
    played: bool
    is_captain: bool = False


@dataclass
class TeamResult:
    """Everything computed for one team."""

    team: UserFantasyTeam
    booster: BoosterResolution
    bonuses: TeamBonuses
    players: list[PlayerPoints] = field(default_factory=list)
    raw_total: float = 0.0
    total_points: float = 0.0

    def to_team_score(self) -> TeamScore:
        return TeamScore(
            team_id=self.team.id,
            user_id=self.team.user_id,
            game_id=self.team.game_id,
            game_week_id=self.team.game_week_id,
            total_points=self.total_points,
            booster_used=self.booster.booster,
            created_at=self.team.created_at,
        )


def resolve_starters(team: UserFantasyTeam, players: Mapping[str, Player]) -> list[Player]:
    """Look up a team's starters, skipping ids with no player record."""
    starters = []
    for player_id in team.starters:
        player = players.get(player_id)
        if player is None:
            logger.warning(f"Team {team.id}: starter {player_id} not found, skipping")
            continue
        starters.append(player)
    return starters


def played_player_ids(
    team: UserFantasyTeam,
    players: Mapping[str, Player],
    stats_by_api_id: Mapping[int, Sequence[PlayerMatchStat]],
) -> set[str]:
    """Ids of the team's rostered players who featured in the gameweek."""
    return {
        player_id
        for player_id in team.roster
        if player_id in players
        and has_played(stats_by_api_id.get(players[player_id].api_player_id))
    }


def score_team(
    team: UserFantasyTeam,
    players: Mapping[str, Player],
    stats_by_api_id: Mapping[int, Sequence[PlayerMatchStat]],
    fatigue_baseline: Mapping[str, int],
    as_of: date,
) -> TeamResult:
    """Compute a team's total for the gameweek.

    Args:
        team: The team to score
        players: Player records by id (must cover the team's roster)
        stats_by_api_id: Match stats in the gameweek window, by provider player id
        fatigue_baseline: Fatigue to score each player at, by player id.
            Players missing here are scored at their stored fatigue.
        as_of: Date used for the vintage age check

    Returns:
        TeamResult with the per-starter breakdown and rounded total
    """
    resolution = resolve_booster(team, played_player_ids(team, players, stats_by_api_id))
    starters = resolve_starters(team, players)

    breakdown = []
    for player in starters:
        stats_rows = stats_by_api_id.get(player.api_player_id, ())
        is_captain = player.id == team.captain_id

        fatigue = fatigue_baseline.get(player.id, player.fatigue)
        if player.id == resolution.recovery_target_id:
            fatigue = RECOVERY_BOOST_FATIGUE

        # No stat rows: did not play, contributes nothing
        points = 0.0
        if stats_rows:
            points = score_fixtures(
                stats_rows,
                player.position,
                fatigue,
                is_captain,
                resolution.double_impact_active,
            )

        breakdown.append(
            PlayerPoints(
                player_id=player.id,
                points=points,
                fatigue=fatigue,
                played=has_played(stats_rows),
                is_captain=is_captain,
            )
        )

    bonuses = evaluate_bonuses(starters, as_of)
    team_sum = sum(p.points for p in breakdown)
    team_sum = bonuses.apply(team_sum)
    team_sum = apply_golden_game(team_sum, resolution)

    return TeamResult(
        team=team,
        booster=resolution,
        bonuses=bonuses,
        players=breakdown,
        raw_total=team_sum,
        total_points=round_points(team_sum),
    )
