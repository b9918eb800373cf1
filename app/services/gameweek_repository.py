"""Database access for the gameweek scoring run.

Reads are bulk prefetches (one query per table) so the scoring loop never
goes back to the database per team or per player.
"""

import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal

import asyncpg

from app.services.fantasy_models import (
    Booster,
    GameWeek,
    GameweekStatus,
    Player,
    PlayerMatchStat,
    StatKind,
    UserFantasyTeam,
    UserProfile,
)
from app.services.fatigue import FatigueUpdate
from app.services.leaderboard import LeaderboardEntry

logger = logging.getLogger(__name__)

# Namespace for pg_try_advisory_lock(int, int) so gameweek locks never collide
# with advisory locks taken elsewhere in the database
_LOCK_NAMESPACE = "fantasy_gameweek"

_STAT_COLUMNS = ", ".join(kind.value for kind in StatKind)


class GameweekRepository:
    """Reads and writes the records one gameweek run touches."""

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def fetch_gameweek(
        self, conn: asyncpg.Connection, game_week_id: str
    ) -> GameWeek | None:
        row = await conn.fetchrow(
            """
            SELECT id, game_id, name, start_date, end_date, status
            FROM fantasy_game_weeks
            WHERE id::text = $1
            """,
            game_week_id,
        )
        return GameWeek.from_row(row) if row else None

    async def fetch_teams(
        self, conn: asyncpg.Connection, game_week_id: str
    ) -> list[UserFantasyTeam]:
        rows = await conn.fetch(
            """
            SELECT
                id, user_id, game_id, game_week_id,
                starters, substitutes, captain_id,
                booster_used, booster_target_id,
                total_points, created_at
            FROM user_fantasy_teams
            WHERE game_week_id::text = $1
            ORDER BY created_at, id
            """,
            game_week_id,
        )
        return [UserFantasyTeam.from_row(row) for row in rows]

    async def fetch_players(
        self, conn: asyncpg.Connection, player_ids: list[str]
    ) -> dict[str, Player]:
        if not player_ids:
            return {}

        rows = await conn.fetch(
            """
            SELECT id, api_player_id, name, position, status, birthdate, fatigue
            FROM fantasy_players
            WHERE id::text = ANY($1::text[])
            """,
            player_ids,
        )
        players = [Player.from_row(row) for row in rows]
        return {p.id: p for p in players}

    async def fetch_match_stats(
        self, conn: asyncpg.Connection, start_date: datetime, end_date: datetime
    ) -> dict[int, list[PlayerMatchStat]]:
        """Stats for every fixture in the window, grouped by provider player id."""
        rows = await conn.fetch(
            f"""
            SELECT
                api_player_id, fixture_id, match_date,
                minutes_played, clean_sheet, rating,
                {_STAT_COLUMNS}
            FROM player_match_stats
            WHERE match_date >= $1 AND match_date <= $2
            ORDER BY match_date, fixture_id
            """,
            start_date,
            end_date,
        )

        stats: dict[int, list[PlayerMatchStat]] = defaultdict(list)
        for row in rows:
            stat = PlayerMatchStat.from_row(row)
            stats[stat.api_player_id].append(stat)
        return dict(stats)

    async def fetch_user_profiles(
        self, conn: asyncpg.Connection, user_ids: list[str]
    ) -> dict[str, UserProfile]:
        if not user_ids:
            return {}

        rows = await conn.fetch(
            """
            SELECT id, username, avatar
            FROM users
            WHERE id::text = ANY($1::text[])
            """,
            user_ids,
        )
        return {
            str(row["id"]): UserProfile(
                id=str(row["id"]),
                username=row["username"] or "",
                avatar=row["avatar"],
            )
            for row in rows
        }

    async def fetch_fatigue_baselines(
        self, conn: asyncpg.Connection, game_week_id: str
    ) -> dict[str, FatigueUpdate]:
        """Fatigue transitions logged by an earlier run of the same gameweek."""
        rows = await conn.fetch(
            """
            SELECT player_id, fatigue_before, fatigue_after
            FROM fantasy_fatigue_log
            WHERE game_week_id::text = $1
            """,
            game_week_id,
        )
        return {
            str(row["player_id"]): FatigueUpdate(
                player_id=str(row["player_id"]),
                fatigue_before=row["fatigue_before"],
                fatigue_after=row["fatigue_after"],
            )
            for row in rows
        }

    async def fetch_players_logged_later(
        self, conn: asyncpg.Connection, player_ids: list[str], after: datetime
    ) -> set[str]:
        """Players whose fatigue was logged by a gameweek ending after `after`."""
        if not player_ids:
            return set()

        rows = await conn.fetch(
            """
            SELECT DISTINCT l.player_id
            FROM fantasy_fatigue_log l
            JOIN fantasy_game_weeks g ON g.id = l.game_week_id
            WHERE l.player_id::text = ANY($1::text[])
              AND g.end_date > $2
            """,
            player_ids,
            after,
        )
        return {str(row["player_id"]) for row in rows}

    async def fetch_finished_gameweeks(self, conn: asyncpg.Connection) -> list[GameWeek]:
        rows = await conn.fetch(
            """
            SELECT id, game_id, name, start_date, end_date, status
            FROM fantasy_game_weeks
            WHERE status = $1
            ORDER BY end_date, id
            """,
            GameweekStatus.FINISHED.value,
        )
        return [GameWeek.from_row(row) for row in rows]

    async def has_leaderboard(self, conn: asyncpg.Connection, game_week_id: str) -> bool:
        row = await conn.fetchrow(
            """
            SELECT 1 FROM fantasy_leaderboard
            WHERE game_week_id::text = $1
            LIMIT 1
            """,
            game_week_id,
        )
        return row is not None

    async def fetch_leaderboard(
        self, conn: asyncpg.Connection, game_week_id: str
    ) -> list[LeaderboardEntry]:
        rows = await conn.fetch(
            """
            SELECT
                game_id, game_week_id, user_id, username, avatar,
                total_points, rank, booster_used
            FROM fantasy_leaderboard
            WHERE game_week_id::text = $1
            ORDER BY rank
            """,
            game_week_id,
        )
        return [
            LeaderboardEntry(
                game_id=str(row["game_id"]) if row["game_id"] is not None else None,
                game_week_id=str(row["game_week_id"]),
                user_id=str(row["user_id"]),
                username=row["username"],
                avatar=row["avatar"],
                total_points=float(row["total_points"] or 0),
                rank=row["rank"],
                booster_used=Booster.from_db(row["booster_used"]),
            )
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # Locking
    # -------------------------------------------------------------------------

    async def try_lock_gameweek(self, conn: asyncpg.Connection, game_week_id: str) -> bool:
        """Take the session advisory lock for a gameweek without waiting."""
        locked = await conn.fetchval(
            "SELECT pg_try_advisory_lock(hashtext($1), hashtext($2))",
            _LOCK_NAMESPACE,
            game_week_id,
        )
        return bool(locked)

    async def unlock_gameweek(self, conn: asyncpg.Connection, game_week_id: str) -> None:
        await conn.execute(
            "SELECT pg_advisory_unlock(hashtext($1), hashtext($2))",
            _LOCK_NAMESPACE,
            game_week_id,
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def save_team_result(
        self,
        conn: asyncpg.Connection,
        team_id: str,
        total_points: float,
        booster: Booster,
        booster_target_id: str | None,
    ) -> None:
        """Store a team's total and its booster state after resolution."""
        await conn.execute(
            """
            UPDATE user_fantasy_teams
            SET total_points = $2,
                booster_used = $3,
                booster_target_id = $4,
                updated_at = NOW()
            WHERE id::text = $1
            """,
            team_id,
            Decimal(repr(total_points)),
            booster.to_db(),
            booster_target_id,
        )

    async def save_fatigue(
        self,
        conn: asyncpg.Connection,
        game_week_id: str,
        update: FatigueUpdate,
        expected_fatigue: int,
    ) -> bool:
        """Write a player's new fatigue and log the gameweek transition.

        The player row is only updated while its fatigue still equals
        expected_fatigue (the value the run read). The first logged
        fatigue_before for a gameweek is kept on re-runs.

        Returns:
            False if the stored fatigue had changed; nothing is written then
        """
        async with conn.transaction():
            result = await conn.execute(
                """
                UPDATE fantasy_players
                SET fatigue = $2
                WHERE id::text = $1 AND fatigue = $3
                """,
                update.player_id,
                update.fatigue_after,
                expected_fatigue,
            )
            # Parse "UPDATE X" to get count
            updated = int(result.split()[-1]) if result else 0
            if not updated:
                return False

            await conn.execute(
                """
                INSERT INTO fantasy_fatigue_log (
                    player_id, game_week_id, fatigue_before, fatigue_after, updated_at
                )
                VALUES ($1::uuid, $2::uuid, $3, $4, NOW())
                ON CONFLICT (player_id, game_week_id) DO UPDATE SET
                    fatigue_after = EXCLUDED.fatigue_after,
                    updated_at = NOW()
                """,
                update.player_id,
                game_week_id,
                update.fatigue_before,
                update.fatigue_after,
            )
        return True

    async def replace_leaderboard(
        self,
        conn: asyncpg.Connection,
        game_week_id: str,
        entries: list[LeaderboardEntry],
    ) -> int:
        """Swap the gameweek's leaderboard snapshot for the given entries."""
        async with conn.transaction():
            result = await conn.execute(
                """
                DELETE FROM fantasy_leaderboard
                WHERE game_week_id::text = $1
                """,
                game_week_id,
            )
            # Parse "DELETE X" to get count
            deleted = int(result.split()[-1]) if result else 0

            if entries:
                await conn.executemany(
                    """
                    INSERT INTO fantasy_leaderboard (
                        game_id, game_week_id, user_id, username, avatar,
                        total_points, rank, booster_used
                    )
                    VALUES ($1::uuid, $2::uuid, $3::uuid, $4, $5, $6, $7, $8)
                    """,
                    [
                        (
                            e.game_id,
                            e.game_week_id,
                            e.user_id,
                            e.username,
                            e.avatar,
                            Decimal(repr(e.total_points)),
                            e.rank,
                            e.booster_used.to_db(),
                        )
                        for e in entries
                    ],
                )

        logger.info(
            f"Replaced leaderboard for game week {game_week_id}: "
            f"{deleted} removed, {len(entries)} inserted"
        )
        return len(entries)
