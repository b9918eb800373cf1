"""Bonus Evaluator - team multipliers based on starter composition.

Applied to the summed points of all starters, in this order:
- no_star: no starter is a Star -> x1.25
- crazy: every starter is Wild -> x1.4 (implies no_star, so both apply: x1.75)
- vintage: average starter age >= 30 -> x1.2
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from app.services.fantasy_models import Player, PlayerCategory

# =============================================================================
# Constants
# =============================================================================

NO_STAR_MULTIPLIER = 1.25
CRAZY_MULTIPLIER = 1.4
VINTAGE_MULTIPLIER = 1.2

VINTAGE_MIN_AVERAGE_AGE = 30


# =============================================================================
# Data Models
# =============================================================================


@dataclass(frozen=True)
class TeamBonuses:
    """Which composition bonuses a team earned."""

    no_star: bool = False
    crazy: bool = False
    vintage: bool = False

    def apply(self, team_sum: float) -> float:
        """Multiply the team sum by every earned bonus (no_star, crazy, vintage)."""
        if self.no_star:
            team_sum *= NO_STAR_MULTIPLIER
        if self.crazy:
            team_sum *= CRAZY_MULTIPLIER
        if self.vintage:
            team_sum *= VINTAGE_MULTIPLIER
        return team_sum


# =============================================================================
# Pure Functions
# =============================================================================


def calculate_age(birthdate: date, as_of: date) -> int:
    """Age in whole years on the given date."""
    age = as_of.year - birthdate.year
    if (as_of.month, as_of.day) < (birthdate.month, birthdate.day):
        age -= 1
    return age


def average_age(players: Sequence[Player], as_of: date) -> float | None:
    """Average age of players with a known birthdate, or None if none are known."""
    ages = [calculate_age(p.birthdate, as_of) for p in players if p.birthdate is not None]
    if not ages:
        return None
    return sum(ages) / len(ages)


def evaluate_bonuses(starters: Sequence[Player], as_of: date) -> TeamBonuses:
    """Work out the composition bonuses for a team's starters.

    Args:
        starters: The team's starting players
        as_of: Date ages are evaluated on

    Returns:
        TeamBonuses; all False for an empty starter list
    """
    if not starters:
        return TeamBonuses()

    avg_age = average_age(starters, as_of)

    return TeamBonuses(
        no_star=all(p.category != PlayerCategory.STAR for p in starters),
        crazy=all(p.category == PlayerCategory.WILD for p in starters),
        vintage=avg_age is not None and avg_age >= VINTAGE_MIN_AVERAGE_AGE,
    )
