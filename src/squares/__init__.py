"""Squares package exposing the board model, API client, turn controller and web application."""

from .board import BoardState, Move
from .client import ApiResult, GameStatus, SquaresAPIClient
from .controller import Phase, TurnController
from .ui import app

__all__ = [
    "ApiResult",
    "BoardState",
    "GameStatus",
    "Move",
    "Phase",
    "SquaresAPIClient",
    "TurnController",
    "app",
]
