"""Booster Resolver - applies or refunds a team's one-shot gameweek booster.

Boosters:
- Double Impact: captain's points x2.0 (on top of the captain x1.1)
- Golden Game: team total x1.2, after composition bonuses
- Recovery Boost: target player scored at full fatigue (100). Refunded when
  the target did not play or no valid target was chosen.
"""

import logging
from collections.abc import Collection
from dataclasses import dataclass

from app.services.fantasy_models import Booster, UserFantasyTeam

logger = logging.getLogger(__name__)

GOLDEN_GAME_MULTIPLIER = 1.2


@dataclass(frozen=True)
class BoosterResolution:
    """Outcome of resolving a team's booster for one gameweek.

    Attributes:
        booster: Booster in effect after resolution (NONE when refunded)
        refunded: True if a Recovery Boost was handed back
        recovery_target_id: Player to score at full fatigue, if any
    """

    booster: Booster = Booster.NONE
    refunded: bool = False
    recovery_target_id: str | None = None

    @property
    def double_impact_active(self) -> bool:
        return self.booster is Booster.DOUBLE_IMPACT

    @property
    def golden_game_active(self) -> bool:
        return self.booster is Booster.GOLDEN_GAME


def resolve_booster(team: UserFantasyTeam, played_player_ids: Collection[str]) -> BoosterResolution:
    """Resolve a team's booster before its players are scored.

    Args:
        team: The team being scored
        played_player_ids: Players who featured in the gameweek

    Returns:
        BoosterResolution for the team
    """
    booster = team.booster_used

    if booster is not Booster.RECOVERY_BOOST:
        return BoosterResolution(booster=booster)

    target = team.booster_target_id

    if target is None:
        logger.info(f"Refunding Recovery Boost for team {team.id} - no target selected")
        return BoosterResolution(refunded=True)

    if target not in team.roster:
        logger.info(
            f"Refunding Recovery Boost for team {team.id} - target {target} not on roster"
        )
        return BoosterResolution(refunded=True)

    if target not in played_player_ids:
        logger.info(f"Refunding Recovery Boost for team {team.id} - player {target} DNP")
        return BoosterResolution(refunded=True)

    return BoosterResolution(booster=booster, recovery_target_id=target)


def apply_golden_game(team_sum: float, resolution: BoosterResolution) -> float:
    if resolution.golden_game_active:
        return team_sum * GOLDEN_GAME_MULTIPLIER
    return team_sum
