"""Domain records for the fantasy gameweek scoring run.

Rows are converted into these dataclasses at the repository boundary, so the
scoring functions never see raw database values (integer booster codes, NULL
stat counts, UUID objects).
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


# =============================================================================
# Enums
# =============================================================================


class Position(str, Enum):
    GOALKEEPER = "Goalkeeper"
    DEFENDER = "Defender"
    MIDFIELDER = "Midfielder"
    ATTACKER = "Attacker"


class PlayerCategory(str, Enum):
    """Price/quality tier. Drives fatigue decay and team bonuses."""

    STAR = "Star"
    KEY = "Key"
    WILD = "Wild"


class GameweekStatus(str, Enum):
    UPCOMING = "upcoming"
    LIVE = "live"
    FINISHED = "finished"


class Booster(Enum):
    """One-shot per-gameweek team booster.

    Stored as a small integer in user_fantasy_teams.booster_used
    (NULL = none, 1 = Double Impact, 2 = Golden Game, 3 = Recovery Boost).
    """

    NONE = None
    DOUBLE_IMPACT = 1
    GOLDEN_GAME = 2
    RECOVERY_BOOST = 3

    @classmethod
    def from_db(cls, value: int | None) -> "Booster":
        """Decode the stored booster code. Unknown codes raise ValueError."""
        if value is None or value == 0:
            return cls.NONE
        return cls(value)

    def to_db(self) -> int | None:
        return self.value

    @property
    def label(self) -> str | None:
        """API name, e.g. "double_impact"; None when no booster."""
        if self is Booster.NONE:
            return None
        return self.name.lower()


class StatKind(str, Enum):
    """Counted per-match actions that earn or cost points.

    Values match the player_match_stats column names.
    """

    GOALS = "goals"
    ASSISTS = "assists"
    SHOTS_ON_TARGET = "shots_on_target"
    SAVES = "saves"
    PENALTIES_SAVED = "penalties_saved"
    PENALTIES_SCORED = "penalties_scored"
    PENALTIES_MISSED = "penalties_missed"
    YELLOW_CARDS = "yellow_cards"
    RED_CARDS = "red_cards"
    GOALS_CONCEDED = "goals_conceded"
    INTERCEPTIONS = "interceptions"
    TACKLES = "tackles"
    DUELS_WON = "duels_won"
    DUELS_LOST = "duels_lost"
    DRIBBLES_SUCCEEDED = "dribbles_succeeded"
    FOULS_COMMITTED = "fouls_committed"
    FOULS_SUFFERED = "fouls_suffered"


# =============================================================================
# Records
# =============================================================================


@dataclass
class Player:
    """A draftable fantasy player."""

    id: str
    api_player_id: int
    name: str
    position: Position
    category: PlayerCategory
    birthdate: date | None
    fatigue: int

    @classmethod
    def from_row(cls, row: Any) -> "Player":
        return cls(
            id=str(row["id"]),
            api_player_id=row["api_player_id"],
            name=row["name"] or "",
            position=Position(row["position"]),
            category=PlayerCategory(row["status"]),
            birthdate=row["birthdate"],
            fatigue=row["fatigue"] if row["fatigue"] is not None else 100,
        )


@dataclass(frozen=True)
class PlayerMatchStat:
    """One player's statistics for one fixture. Read-only."""

    api_player_id: int
    fixture_id: int
    minutes_played: int = 0
    clean_sheet: bool = False
    rating: float = 0.0
    counts: dict[StatKind, int] = field(default_factory=dict)
    match_date: datetime | None = None

    def count(self, kind: StatKind) -> int:
        return self.counts.get(kind, 0)

    @classmethod
    def from_row(cls, row: Any) -> "PlayerMatchStat":
        return cls(
            api_player_id=row["api_player_id"],
            fixture_id=row["fixture_id"],
            minutes_played=row["minutes_played"] or 0,
            clean_sheet=bool(row["clean_sheet"]),
            rating=float(row["rating"] or 0),
            counts={kind: row[kind.value] or 0 for kind in StatKind},
            match_date=row["match_date"],
        )


@dataclass
class UserFantasyTeam:
    """A user's drafted team for one gameweek."""

    id: str
    user_id: str
    game_id: str | None
    game_week_id: str
    starters: list[str]
    substitutes: list[str] = field(default_factory=list)
    captain_id: str | None = None
    booster_used: Booster = Booster.NONE
    booster_target_id: str | None = None
    total_points: float | None = None
    created_at: datetime | None = None

    @property
    def roster(self) -> set[str]:
        return set(self.starters) | set(self.substitutes)

    @classmethod
    def from_row(cls, row: Any) -> "UserFantasyTeam":
        target = row["booster_target_id"]
        game_id = row["game_id"]
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            game_id=str(game_id) if game_id is not None else None,
            game_week_id=str(row["game_week_id"]),
            starters=[str(p) for p in row["starters"] or []],
            substitutes=[str(p) for p in row["substitutes"] or []],
            captain_id=str(row["captain_id"]) if row["captain_id"] is not None else None,
            booster_used=Booster.from_db(row["booster_used"]),
            booster_target_id=str(target) if target is not None else None,
            total_points=float(row["total_points"]) if row["total_points"] is not None else None,
            created_at=row["created_at"],
        )


@dataclass
class GameWeek:
    id: str
    game_id: str | None
    name: str
    start_date: datetime
    end_date: datetime
    status: GameweekStatus

    @classmethod
    def from_row(cls, row: Any) -> "GameWeek":
        game_id = row["game_id"]
        return cls(
            id=str(row["id"]),
            game_id=str(game_id) if game_id is not None else None,
            name=row["name"] or "",
            start_date=row["start_date"],
            end_date=row["end_date"],
            status=GameweekStatus(row["status"]),
        )


@dataclass
class UserProfile:
    """Display fields copied onto leaderboard rows."""

    id: str
    username: str
    avatar: str | None = None
