"""Gameweek processing - the weekly fantasy scoring run.

Algorithm for one finished gameweek:
1. Load the gameweek (unknown id aborts before any write)
2. Take the per-gameweek advisory lock (a concurrent run for it is rejected)
3. Prefetch teams, players, match stats, user profiles and fatigue baselines
4. Score every team; coalesce each starter's fatigue update once per run
5. Write team totals, then fatigue, then replace the leaderboard snapshot

Fatigue a later gameweek has already moved is never overwritten, so re-running
an earlier gameweek cannot roll it back.

Individual team and fatigue write failures are logged and counted; the run
carries on with the remaining records.
"""

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime

import asyncpg

from app.services.errors import (
    GameweekLockedError,
    GameweekNotFinishedError,
    GameweekNotFoundError,
)
from app.services.fantasy_models import GameWeek, GameweekStatus, Player
from app.services.fatigue import FatigueLedger, FatigueUpdate
from app.services.gameweek_repository import GameweekRepository
from app.services.leaderboard import UNKNOWN_USERNAME, LeaderboardEntry, build_leaderboard
from app.services.scoring import has_played
from app.services.team_scoring import TeamResult, resolve_starters, score_team

logger = logging.getLogger(__name__)

# Errors that count as a single failed write rather than aborting the run
WRITE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError)


def _utc_today() -> date:
    return datetime.now(UTC).date()


# =============================================================================
# Data Models
# =============================================================================


@dataclass
class ProcessResult:
    """Summary of one gameweek run."""

    game_week_id: str
    teams_processed: int = 0
    leaderboard_entries: int = 0
    fatigue_updates: int = 0
    fatigue_skipped: int = 0
    failures: int = 0
    refunded_boosters: int = 0
    dry_run: bool = False
    leaderboard: list[LeaderboardEntry] = field(default_factory=list)


@dataclass
class SweepItem:
    """Outcome for one gameweek in a sweep over finished gameweeks."""

    game_week_id: str
    name: str
    status: str  # "success", "skipped" or "error"
    reason: str | None = None
    result: ProcessResult | None = None


@dataclass
class SweepResult:
    game_weeks_found: int = 0
    success_count: int = 0
    error_count: int = 0
    results: list[SweepItem] = field(default_factory=list)


# =============================================================================
# GameweekProcessor
# =============================================================================


class GameweekProcessor:
    """Runs the scoring engine for finished gameweeks."""

    def __init__(
        self,
        repository: GameweekRepository | None = None,
        today: Callable[[], date] = _utc_today,
        unknown_username: str = UNKNOWN_USERNAME,
    ):
        self.repository = repository or GameweekRepository()
        self.today = today
        self.unknown_username = unknown_username

    async def process(
        self,
        conn: asyncpg.Connection,
        game_week_id: str,
        dry_run: bool = False,
    ) -> ProcessResult:
        """Score every team of a finished gameweek and rebuild its leaderboard.

        Args:
            conn: Database connection (held for the whole run; owns the lock)
            game_week_id: Gameweek to process
            dry_run: Compute everything but write nothing

        Returns:
            ProcessResult with counts of processed teams, entries and failures

        Raises:
            GameweekNotFoundError: Unknown gameweek id
            GameweekNotFinishedError: Gameweek is upcoming or live
            GameweekLockedError: Another run holds this gameweek
        """
        gameweek = await self.repository.fetch_gameweek(conn, game_week_id)
        if gameweek is None:
            raise GameweekNotFoundError(game_week_id)

        if gameweek.status != GameweekStatus.FINISHED:
            raise GameweekNotFinishedError(game_week_id, gameweek.status.value)

        if not await self.repository.try_lock_gameweek(conn, gameweek.id):
            logger.warning(f"Game week {gameweek.id} is locked by another run")
            raise GameweekLockedError(gameweek.id)

        try:
            return await self._run(conn, gameweek, dry_run)
        finally:
            await self.repository.unlock_gameweek(conn, gameweek.id)

    async def _run(
        self, conn: asyncpg.Connection, gameweek: GameWeek, dry_run: bool
    ) -> ProcessResult:
        start_time = time.monotonic()
        repo = self.repository
        logger.info(f"Processing game week {gameweek.id} ({gameweek.name})")

        teams = await repo.fetch_teams(conn, gameweek.id)
        logger.info(f"Found {len(teams)} teams to process")

        player_ids = sorted({pid for team in teams for pid in team.roster})
        players = await repo.fetch_players(conn, player_ids)
        stats = await repo.fetch_match_stats(conn, gameweek.start_date, gameweek.end_date)
        profiles = await repo.fetch_user_profiles(
            conn, sorted({team.user_id for team in teams})
        )
        logged = await repo.fetch_fatigue_baselines(conn, gameweek.id)
        baselines = {pid: entry.fatigue_before for pid, entry in logged.items()}
        logger.info(
            f"Loaded {len(players)} players, stats for {len(stats)} players, "
            f"{len(baselines)} fatigue baselines"
        )

        as_of = self.today()
        ledger = FatigueLedger()
        results: list[TeamResult] = []

        for team in teams:
            result = score_team(team, players, stats, baselines, as_of)
            results.append(result)

            for player in resolve_starters(team, players):
                ledger.record(
                    player.id,
                    baselines.get(player.id, player.fatigue),
                    player.category,
                    has_played(stats.get(player.api_player_id)),
                )

        leaderboard = build_leaderboard(
            (r.to_team_score() for r in results),
            profiles,
            unknown_username=self.unknown_username,
        )

        summary = ProcessResult(
            game_week_id=gameweek.id,
            teams_processed=len(results),
            leaderboard_entries=len(leaderboard),
            fatigue_updates=len(ledger),
            refunded_boosters=sum(1 for r in results if r.booster.refunded),
            dry_run=dry_run,
            leaderboard=leaderboard,
        )

        if dry_run:
            logger.info(f"Dry run for game week {gameweek.id}: nothing written")
            return summary

        summary.failures += await self._save_teams(conn, results)
        fatigue_failures, summary.fatigue_skipped = await self._save_fatigue(
            conn, gameweek, ledger, players, logged
        )
        summary.failures += fatigue_failures
        await repo.replace_leaderboard(conn, gameweek.id, leaderboard)

        elapsed = time.monotonic() - start_time
        logger.info(
            f"Processed game week {gameweek.id} in {elapsed:.1f}s: "
            f"{summary.teams_processed} teams, {summary.fatigue_updates} fatigue updates "
            f"({summary.fatigue_skipped} skipped), "
            f"{summary.leaderboard_entries} leaderboard entries, {summary.failures} failures"
        )
        return summary

    async def _save_teams(self, conn: asyncpg.Connection, results: list[TeamResult]) -> int:
        failures = 0
        for result in results:
            # A refunded booster is cleared; a consumed one stays on the team
            resolution = result.booster
            target = None if resolution.refunded else result.team.booster_target_id
            try:
                await self.repository.save_team_result(
                    conn,
                    result.team.id,
                    result.total_points,
                    resolution.booster,
                    target,
                )
            except WRITE_ERRORS as e:
                failures += 1
                logger.warning(f"Failed to save team {result.team.id}: {e}")
        return failures

    async def _save_fatigue(
        self,
        conn: asyncpg.Connection,
        gameweek: GameWeek,
        ledger: FatigueLedger,
        players: Mapping[str, Player],
        logged: Mapping[str, FatigueUpdate],
    ) -> tuple[int, int]:
        """Write the ledger. Returns (failures, skipped).

        A write is skipped when a later gameweek already owns the player's
        fatigue, or when a re-run finds the stored value moved away from what
        this gameweek wrote last time.
        """
        failures = 0
        skipped = 0
        owned_later = await self.repository.fetch_players_logged_later(
            conn, [update.player_id for update in ledger], gameweek.end_date
        )

        for update in ledger:
            stored = players[update.player_id].fatigue
            previous = logged.get(update.player_id)

            if update.player_id in owned_later:
                skipped += 1
                logger.warning(
                    f"Skipping fatigue for player {update.player_id}: "
                    f"a later game week already updated it"
                )
                continue

            if previous is not None and stored != previous.fatigue_after:
                skipped += 1
                logger.warning(
                    f"Skipping fatigue for player {update.player_id}: stored {stored}, "
                    f"game week {gameweek.id} last wrote {previous.fatigue_after}"
                )
                continue

            try:
                written = await self.repository.save_fatigue(
                    conn, gameweek.id, update, expected_fatigue=stored
                )
            except WRITE_ERRORS as e:
                failures += 1
                logger.warning(f"Failed to save fatigue for player {update.player_id}: {e}")
                continue

            if not written:
                skipped += 1
                logger.warning(
                    f"Skipping fatigue for player {update.player_id}: changed during the run"
                )
        return failures, skipped

    async def process_all_finished(self, conn: asyncpg.Connection) -> SweepResult:
        """Process every finished gameweek that has no leaderboard yet.

        A failing gameweek is recorded as an error and the sweep moves on.
        """
        gameweeks = await self.repository.fetch_finished_gameweeks(conn)
        sweep = SweepResult(game_weeks_found=len(gameweeks))

        if not gameweeks:
            logger.info("No finished game weeks to process")
            return sweep

        logger.info(f"Found {len(gameweeks)} finished game weeks")

        for gameweek in gameweeks:
            try:
                if await self.repository.has_leaderboard(conn, gameweek.id):
                    logger.info(f"Game week {gameweek.id} already processed, skipping")
                    sweep.results.append(
                        SweepItem(
                            game_week_id=gameweek.id,
                            name=gameweek.name,
                            status="skipped",
                            reason="Already processed",
                        )
                    )
                    continue

                result = await self.process(conn, gameweek.id)
            except Exception as e:
                logger.error(f"Error processing game week {gameweek.id}: {e}")
                sweep.error_count += 1
                sweep.results.append(
                    SweepItem(
                        game_week_id=gameweek.id,
                        name=gameweek.name,
                        status="error",
                        reason=str(e)[:500],
                    )
                )
                continue

            sweep.success_count += 1
            sweep.results.append(
                SweepItem(
                    game_week_id=gameweek.id,
                    name=gameweek.name,
                    status="success",
                    result=result,
                )
            )

        logger.info(
            f"Sweep complete. Success: {sweep.success_count}, Errors: {sweep.error_count}"
        )
        return sweep
