"""Exceptions raised by the gameweek scoring run."""


class ScoringError(Exception):
    """Base class for gameweek scoring errors."""


class GameweekNotFoundError(ScoringError):
    """The requested gameweek does not exist. Nothing was written."""

    def __init__(self, game_week_id: str):
        self.game_week_id = game_week_id
        super().__init__(f"Game week not found: {game_week_id}")


class GameweekNotFinishedError(ScoringError):
    """The gameweek has not reached the finished state yet."""

    def __init__(self, game_week_id: str, status: str):
        self.game_week_id = game_week_id
        self.status = status
        super().__init__(
            f"Game week {game_week_id} is '{status}'; only finished game weeks can be processed"
        )


class GameweekLockedError(ScoringError):
    """Another run is already processing the same gameweek."""

    def __init__(self, game_week_id: str):
        self.game_week_id = game_week_id
        super().__init__(f"Game week {game_week_id} is already being processed")
