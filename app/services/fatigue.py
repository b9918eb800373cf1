"""Fatigue Tracker - per-player stamina (0-100) updated once per gameweek.

Rules:
- Player featured: fatigue drops by the category decay (Star 20, Key 10, Wild 0)
- Player rested: fatigue recovers by 10
- Always clamped to 0-100

Fatigue is a multiplicative penalty on scoring (see scoring.py), so a player
at 50 fatigue scores half points.
"""

from collections.abc import Iterator
from dataclasses import dataclass

from app.services.fantasy_models import PlayerCategory

# =============================================================================
# Constants
# =============================================================================

MIN_FATIGUE = 0
MAX_FATIGUE = 100

# Fatigue recovered by a player who did not feature
REST_GAIN = 10

# Fatigue lost by a player who featured, by category
FATIGUE_DECAY = {
    PlayerCategory.STAR: 20,
    PlayerCategory.KEY: 10,
    PlayerCategory.WILD: 0,
}

# Fatigue a Recovery Boost target is scored at
RECOVERY_BOOST_FATIGUE = MAX_FATIGUE


# =============================================================================
# Pure Functions
# =============================================================================


def update_fatigue(current_fatigue: int, category: PlayerCategory, played: bool) -> int:
    """Compute a player's fatigue after one gameweek.

    Args:
        current_fatigue: Fatigue going into the gameweek
        category: Player category (decides the decay when played)
        played: Whether the player featured (any minutes)

    Returns:
        New fatigue, clamped to 0-100
    """
    if played:
        new_fatigue = current_fatigue - FATIGUE_DECAY[category]
    else:
        new_fatigue = current_fatigue + REST_GAIN

    return max(MIN_FATIGUE, min(MAX_FATIGUE, new_fatigue))


# =============================================================================
# Run-scoped ledger
# =============================================================================


@dataclass(frozen=True)
class FatigueUpdate:
    """A single pending fatigue write."""

    player_id: str
    fatigue_before: int
    fatigue_after: int


class FatigueLedger:
    """Coalesces fatigue updates for one gameweek run.

    A player rostered by many teams is recorded once; the first recorded value
    wins and later records are no-ops. Nothing is written until the run applies
    the ledger after every team has been scored.
    """

    def __init__(self) -> None:
        self._updates: dict[str, FatigueUpdate] = {}

    def record(
        self,
        player_id: str,
        fatigue_before: int,
        category: PlayerCategory,
        played: bool,
    ) -> bool:
        """Record a player's update. Returns False if already recorded this run."""
        if player_id in self._updates:
            return False

        self._updates[player_id] = FatigueUpdate(
            player_id=player_id,
            fatigue_before=fatigue_before,
            fatigue_after=update_fatigue(fatigue_before, category, played),
        )
        return True

    def get(self, player_id: str) -> FatigueUpdate | None:
        return self._updates.get(player_id)

    def __contains__(self, player_id: object) -> bool:
        return player_id in self._updates

    def __iter__(self) -> Iterator[FatigueUpdate]:
        return iter(self._updates.values())

    def __len__(self) -> int:
        return len(self._updates)
