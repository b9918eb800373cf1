"""Service layer for business logic."""

from app.services.gameweek_processor import GameweekProcessor
from app.services.gameweek_repository import GameweekRepository

__all__ = ["GameweekProcessor", "GameweekRepository"]
