"""Tests for GameweekProcessor with a mocked repository."""

from unittest.mock import AsyncMock

import asyncpg
import pytest

from app.services.errors import (
    GameweekLockedError,
    GameweekNotFinishedError,
    GameweekNotFoundError,
)
from app.services.fantasy_models import (
    Booster,
    GameweekStatus,
    PlayerCategory,
    Position,
    UserProfile,
)
from app.services.fatigue import FatigueUpdate
from app.services.gameweek_processor import GameweekProcessor
from app.services.gameweek_repository import GameweekRepository
from tests.factories import TODAY, make_gameweek, make_player, make_stats, make_team

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def players():
    return {
        "gk": make_player(
            "gk", api_player_id=1, position=Position.GOALKEEPER, category=PlayerCategory.STAR
        ),
        "mid": make_player("mid", api_player_id=2, category=PlayerCategory.KEY, fatigue=70),
        "bench": make_player("bench", api_player_id=3, category=PlayerCategory.WILD, fatigue=50),
    }


@pytest.fixture
def stats():
    return {
        1: [make_stats(1, minutes_played=90, clean_sheet=True, saves=4)],
        2: [make_stats(2, minutes_played=90, goals=1)],
    }


@pytest.fixture
def repo(players, stats) -> AsyncMock:
    """Repository mock holding two teams that share the goalkeeper."""
    repo = AsyncMock(spec=GameweekRepository)
    repo.fetch_gameweek.return_value = make_gameweek()
    repo.try_lock_gameweek.return_value = True
    repo.fetch_teams.return_value = [
        make_team("t1", user_id="u1", starters=["gk", "mid"], captain_id="mid"),
        make_team("t2", user_id="u2", starters=["gk"], substitutes=["bench"]),
    ]
    repo.fetch_players.return_value = players
    repo.fetch_match_stats.return_value = stats
    repo.fetch_user_profiles.return_value = {
        "u1": UserProfile(id="u1", username="alice"),
        "u2": UserProfile(id="u2", username="bob"),
    }
    repo.fetch_fatigue_baselines.return_value = {}
    repo.fetch_players_logged_later.return_value = set()
    repo.save_fatigue.return_value = True
    repo.replace_leaderboard.side_effect = lambda conn, gw_id, entries: len(entries)
    return repo


@pytest.fixture
def processor(repo: AsyncMock) -> GameweekProcessor:
    return GameweekProcessor(repository=repo, today=lambda: TODAY)


def saved_fatigue(repo: AsyncMock) -> dict[str, FatigueUpdate]:
    return {c.args[2].player_id: c.args[2] for c in repo.save_fatigue.call_args_list}


# =============================================================================
# Preconditions
# =============================================================================


class TestPreconditions:
    """Tests for the checks run before any scoring."""

    async def test_unknown_gameweek_raises_without_writes(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        repo.fetch_gameweek.return_value = None

        with pytest.raises(GameweekNotFoundError, match="missing"):
            await processor.process(mock_conn, "missing")

        repo.try_lock_gameweek.assert_not_called()
        repo.fetch_teams.assert_not_called()
        repo.save_team_result.assert_not_called()
        repo.replace_leaderboard.assert_not_called()

    @pytest.mark.parametrize("status", [GameweekStatus.UPCOMING, GameweekStatus.LIVE])
    async def test_unfinished_gameweek_rejected(
        self,
        processor: GameweekProcessor,
        repo: AsyncMock,
        mock_conn: AsyncMock,
        status: GameweekStatus,
    ):
        repo.fetch_gameweek.return_value = make_gameweek(status=status)

        with pytest.raises(GameweekNotFinishedError) as exc_info:
            await processor.process(mock_conn, "gw1")

        assert exc_info.value.status == status.value
        repo.fetch_teams.assert_not_called()

    async def test_concurrent_run_rejected(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        repo.try_lock_gameweek.return_value = False

        with pytest.raises(GameweekLockedError):
            await processor.process(mock_conn, "gw1")

        repo.fetch_teams.assert_not_called()
        repo.unlock_gameweek.assert_not_called()

    async def test_lock_released_on_error(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        repo.fetch_teams.side_effect = asyncpg.InterfaceError("connection is closed")

        with pytest.raises(asyncpg.InterfaceError):
            await processor.process(mock_conn, "gw1")

        repo.unlock_gameweek.assert_awaited_once_with(mock_conn, "gw1")


# =============================================================================
# Full run
# =============================================================================


class TestProcess:
    """Tests for GameweekProcessor.process."""

    async def test_returns_counts(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        result = await processor.process(mock_conn, "gw1")

        assert result.game_week_id == "gw1"
        assert result.teams_processed == 2
        assert result.leaderboard_entries == 2
        assert result.fatigue_updates == 2  # gk and mid; bench is not a starter
        assert result.fatigue_skipped == 0
        assert result.failures == 0
        assert result.dry_run is False
        repo.unlock_gameweek.assert_awaited_once_with(mock_conn, "gw1")

    async def test_saves_team_totals(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        await processor.process(mock_conn, "gw1")

        saved = {c.args[1]: c.args[2] for c in repo.save_team_result.call_args_list}
        # t1: 11.0 (gk) + 7.2 * 0.7 fatigue * 1.1 captain = 16.544
        assert saved == {"t1": 16.5, "t2": 11.0}

    async def test_fatigue_updated_once_per_player(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        """The shared goalkeeper decays once, not once per team."""
        await processor.process(mock_conn, "gw1")

        updates = saved_fatigue(repo)
        assert repo.save_fatigue.await_count == 2
        assert updates["gk"] == FatigueUpdate("gk", 100, 80)
        assert updates["mid"] == FatigueUpdate("mid", 70, 60)

    async def test_rested_starter_gains_fatigue(
        self, processor: GameweekProcessor, repo: AsyncMock, stats, mock_conn: AsyncMock
    ):
        del stats[2]

        await processor.process(mock_conn, "gw1")

        assert saved_fatigue(repo)["mid"] == FatigueUpdate("mid", 70, 80)

    async def test_fatigue_written_after_all_teams(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        calls = []
        repo.save_team_result.side_effect = lambda *a, **k: calls.append("team")
        repo.save_fatigue.side_effect = lambda *a, **k: calls.append("fatigue")

        await processor.process(mock_conn, "gw1")

        assert calls == ["team", "team", "fatigue", "fatigue"]

    async def test_leaderboard_replaced_in_rank_order(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        await processor.process(mock_conn, "gw1")

        _, gw_id, entries = repo.replace_leaderboard.call_args.args
        assert gw_id == "gw1"
        assert [(e.rank, e.username, e.total_points) for e in entries] == [
            (1, "alice", 16.5),
            (2, "bob", 11.0),
        ]

    async def test_write_failures_counted_and_run_continues(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        repo.save_team_result.side_effect = [asyncpg.PostgresError("deadlock"), None]
        repo.save_fatigue.side_effect = [None, asyncpg.InterfaceError("closed")]

        result = await processor.process(mock_conn, "gw1")

        assert result.failures == 2
        assert repo.save_team_result.await_count == 2
        assert repo.save_fatigue.await_count == 2
        repo.replace_leaderboard.assert_awaited_once()

    async def test_unexpected_write_error_propagates(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        repo.save_team_result.side_effect = ValueError("bad value")

        with pytest.raises(ValueError, match="bad value"):
            await processor.process(mock_conn, "gw1")

        repo.unlock_gameweek.assert_awaited_once()

    async def test_dry_run_writes_nothing(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        result = await processor.process(mock_conn, "gw1", dry_run=True)

        assert result.dry_run is True
        assert result.teams_processed == 2
        assert [e.total_points for e in result.leaderboard] == [16.5, 11.0]
        repo.save_team_result.assert_not_called()
        repo.save_fatigue.assert_not_called()
        repo.replace_leaderboard.assert_not_called()

    async def test_empty_gameweek(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        """No teams still replaces the snapshot with an empty leaderboard."""
        repo.fetch_teams.return_value = []

        result = await processor.process(mock_conn, "gw1")

        assert result.teams_processed == 0
        assert result.fatigue_updates == 0
        repo.replace_leaderboard.assert_awaited_once_with(mock_conn, "gw1", [])


class TestBoosterPersistence:
    """Tests for the booster fields written back to teams."""

    async def test_refunded_recovery_boost_is_cleared(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        repo.fetch_teams.return_value = [
            make_team(
                "t1",
                starters=["gk"],
                substitutes=["bench"],
                booster=Booster.RECOVERY_BOOST,
                booster_target_id="bench",
            )
        ]

        result = await processor.process(mock_conn, "gw1")

        repo.save_team_result.assert_awaited_once_with(
            mock_conn, "t1", 11.0, Booster.NONE, None
        )
        assert result.refunded_boosters == 1
        entries = repo.replace_leaderboard.call_args.args[2]
        assert entries[0].booster_used is Booster.NONE

    async def test_refunded_target_follows_rest_branch(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        """A refunded target's fatigue is not forced to 100."""
        repo.fetch_teams.return_value = [
            make_team(
                "t1",
                starters=["gk", "mid"],
                booster=Booster.RECOVERY_BOOST,
                booster_target_id="mid",
            )
        ]
        repo.fetch_match_stats.return_value = {
            1: [make_stats(1, minutes_played=90)],
            2: [make_stats(2, minutes_played=0)],
        }

        await processor.process(mock_conn, "gw1")

        assert saved_fatigue(repo)["mid"] == FatigueUpdate("mid", 70, 80)

    async def test_applied_recovery_boost_does_not_write_full_fatigue(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        """The 100 override is for scoring only; stored fatigue still decays."""
        repo.fetch_teams.return_value = [
            make_team(
                "t1",
                starters=["gk", "mid"],
                booster=Booster.RECOVERY_BOOST,
                booster_target_id="mid",
            )
        ]

        await processor.process(mock_conn, "gw1")

        assert saved_fatigue(repo)["mid"] == FatigueUpdate("mid", 70, 60)
        repo.save_team_result.assert_awaited_once_with(
            mock_conn, "t1", 18.2, Booster.RECOVERY_BOOST, "mid"
        )

    async def test_consumed_booster_stays_recorded(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        repo.fetch_teams.return_value = [
            make_team("t1", starters=["gk"], booster=Booster.GOLDEN_GAME)
        ]

        await processor.process(mock_conn, "gw1")

        repo.save_team_result.assert_awaited_once_with(
            mock_conn, "t1", 13.2, Booster.GOLDEN_GAME, None
        )


class TestIdempotence:
    """Re-running a gameweek with the same inputs gives the same outputs."""

    async def test_rerun_uses_logged_baseline(
        self, processor: GameweekProcessor, repo: AsyncMock, players, mock_conn: AsyncMock
    ):
        first = await processor.process(mock_conn, "gw1")
        first_fatigue = saved_fatigue(repo)
        first_leaderboard = repo.replace_leaderboard.call_args.args[2]

        # Simulate the first run's writes: stored fatigue moved, baseline logged
        for update in first_fatigue.values():
            players[update.player_id].fatigue = update.fatigue_after
        repo.fetch_fatigue_baselines.return_value = dict(first_fatigue)
        repo.save_fatigue.reset_mock()

        second = await processor.process(mock_conn, "gw1")

        assert saved_fatigue(repo) == first_fatigue
        assert repo.replace_leaderboard.call_args.args[2] == first_leaderboard
        assert second.leaderboard == first.leaderboard

    async def test_writes_compare_against_stored_fatigue(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        await processor.process(mock_conn, "gw1")

        expected = {
            c.args[2].player_id: c.kwargs["expected_fatigue"]
            for c in repo.save_fatigue.call_args_list
        }
        assert expected == {"gk": 100, "mid": 70}

    async def test_concurrent_fatigue_change_is_skipped(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        repo.save_fatigue.return_value = False

        result = await processor.process(mock_conn, "gw1")

        assert result.fatigue_skipped == 2
        assert result.failures == 0


class TestFatigueAcrossGameweeks:
    """Fatigue stays with the latest gameweek when an earlier one is re-run."""

    @pytest.fixture
    def fatigue_log(self, repo: AsyncMock, players) -> dict[tuple[str, str], FatigueUpdate]:
        """Back the repository mock with in-memory player fatigue and a fatigue log."""
        gameweeks = {"gw1": make_gameweek("gw1"), "gw2": make_gameweek("gw2", week=1)}
        log: dict[tuple[str, str], FatigueUpdate] = {}

        def fetch_logged(conn, game_week_id):
            return {pid: entry for (pid, gw_id), entry in log.items() if gw_id == game_week_id}

        def fetch_logged_later(conn, player_ids, after):
            return {
                pid
                for (pid, gw_id) in log
                if pid in player_ids and gameweeks[gw_id].end_date > after
            }

        def save(conn, game_week_id, update, expected_fatigue):
            player = players[update.player_id]
            if player.fatigue != expected_fatigue:
                return False
            player.fatigue = update.fatigue_after
            previous = log.get((update.player_id, game_week_id))
            before = previous.fatigue_before if previous else update.fatigue_before
            log[(update.player_id, game_week_id)] = FatigueUpdate(
                update.player_id, before, update.fatigue_after
            )
            return True

        repo.fetch_gameweek.side_effect = lambda conn, gw_id: gameweeks[gw_id]
        repo.fetch_fatigue_baselines.side_effect = fetch_logged
        repo.fetch_players_logged_later.side_effect = fetch_logged_later
        repo.save_fatigue.side_effect = save
        return log

    async def test_rerunning_earlier_gameweek_keeps_later_fatigue(
        self, processor: GameweekProcessor, fatigue_log, players, mock_conn: AsyncMock
    ):
        first = await processor.process(mock_conn, "gw1")
        assert players["gk"].fatigue == 80

        await processor.process(mock_conn, "gw2")
        assert (players["gk"].fatigue, players["mid"].fatigue) == (60, 50)

        rerun = await processor.process(mock_conn, "gw1")

        assert (players["gk"].fatigue, players["mid"].fatigue) == (60, 50)
        assert rerun.fatigue_skipped == 2
        assert rerun.failures == 0
        assert rerun.leaderboard == first.leaderboard
        assert fatigue_log[("gk", "gw1")] == FatigueUpdate("gk", 100, 80)

    async def test_rerun_of_latest_gameweek_rewrites_fatigue(
        self, processor: GameweekProcessor, repo: AsyncMock, fatigue_log, players, mock_conn
    ):
        await processor.process(mock_conn, "gw1")

        rerun = await processor.process(mock_conn, "gw1")

        assert rerun.fatigue_skipped == 0
        assert repo.save_fatigue.await_count == 4
        assert (players["gk"].fatigue, players["mid"].fatigue) == (80, 60)

    async def test_rerun_leaves_manually_changed_fatigue(
        self, processor: GameweekProcessor, repo: AsyncMock, fatigue_log, players, mock_conn
    ):
        await processor.process(mock_conn, "gw1")
        players["gk"].fatigue = 95

        rerun = await processor.process(mock_conn, "gw1")

        assert rerun.fatigue_skipped == 1
        assert players["gk"].fatigue == 95
        assert players["mid"].fatigue == 60


class TestProcessAllFinished:
    """Tests for GameweekProcessor.process_all_finished."""

    async def test_no_finished_gameweeks(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        repo.fetch_finished_gameweeks.return_value = []

        sweep = await processor.process_all_finished(mock_conn)

        assert sweep.game_weeks_found == 0
        assert sweep.results == []

    async def test_skips_processed_and_records_errors(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        done, fresh, broken = make_gameweek("done"), make_gameweek("gw1"), make_gameweek("bad")
        repo.fetch_finished_gameweeks.return_value = [done, fresh, broken]
        repo.has_leaderboard.side_effect = lambda conn, gw_id: gw_id == "done"
        repo.fetch_gameweek.side_effect = lambda conn, gw_id: {
            "gw1": fresh,
            "bad": None,
        }[gw_id]

        sweep = await processor.process_all_finished(mock_conn)

        assert sweep.game_weeks_found == 3
        assert sweep.success_count == 1
        assert sweep.error_count == 1
        assert [(r.game_week_id, r.status) for r in sweep.results] == [
            ("done", "skipped"),
            ("gw1", "success"),
            ("bad", "error"),
        ]
        assert sweep.results[1].result.teams_processed == 2
        assert "not found" in sweep.results[2].reason

    async def test_failed_processed_check_does_not_stop_sweep(
        self, processor: GameweekProcessor, repo: AsyncMock, mock_conn: AsyncMock
    ):
        repo.fetch_finished_gameweeks.return_value = [
            make_gameweek("gw1"),
            make_gameweek("gw2", week=1),
        ]
        repo.has_leaderboard.side_effect = [asyncpg.PostgresError("check failed"), True]

        sweep = await processor.process_all_finished(mock_conn)

        assert [(r.game_week_id, r.status) for r in sweep.results] == [
            ("gw1", "error"),
            ("gw2", "skipped"),
        ]
        assert sweep.error_count == 1
        assert sweep.success_count == 0
        repo.fetch_teams.assert_not_called()
