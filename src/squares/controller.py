"""Turn sequencing between the human player and the remote computer opponent."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Awaitable, Callable, Optional, Set

from .board import BoardError, BoardState, Color
from .client import ApiError, ApiResult, GameStatus, SquaresAPIClient
from .config import DEFAULT_RULESET

logger = logging.getLogger(__name__)

COMPUTER_MOVE_DELAY = 0.5
IDLE_MESSAGE = 'Press "Start game" to begin'
THINKING_MESSAGE = "The computer is thinking..."
CHECKING_MESSAGE = "Checking game status..."
STALLED_MESSAGE = (
    "The computer found no move but the game is not finished. "
    "Start a new game to continue."
)


class Phase(StrEnum):
    IDLE = "idle"
    PLAYER_TURN = "player_turn"
    COMPUTER_TURN = "computer_turn"
    STALLED = "stalled"
    FINISHED = "finished"


class Severity(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class GameView:
    """Snapshot handed to the presentation after every state change."""

    phase: Phase
    board: Optional[BoardState]
    message: str
    severity: Severity
    accepts_input: bool
    pending: bool
    result: Optional[str]
    can_resume: bool
    api_warning: Optional[str] = None


Listener = Callable[[GameView], None]

# Steps resume() can re-issue after a reported failure
_STEP_STATUS = "status"
_STEP_NEXT_MOVE = "next_move"
_STEP_NO_MOVE_STATUS = "no_move_status"


class TurnController:
    """Owns one :class:`BoardState` and alternates player and computer moves.

    All work runs on the caller's event loop. At most one request per game is
    outstanding; responses that arrive after :meth:`reset` or :meth:`start`
    are recognised by their game id and dropped.
    """

    def __init__(
        self,
        api: SquaresAPIClient,
        *,
        ruleset: str = DEFAULT_RULESET,
        computer_delay: float = COMPUTER_MOVE_DELAY,
        listener: Optional[Listener] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.api = api
        self.ruleset = ruleset
        self.computer_delay = computer_delay
        self.listener = listener
        self._sleep = sleep

        self.phase = Phase.IDLE
        self.board: Optional[BoardState] = None
        self.result: Optional[str] = None
        self.message = IDLE_MESSAGE
        self.severity = Severity.INFO
        self.api_warning: Optional[str] = None

        self._game_id = 0
        self._pending = False
        self._retry_step: Optional[str] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def game_id(self) -> int:
        return self._game_id

    @property
    def pending(self) -> bool:
        return self._pending

    # ---- lifecycle ----

    def start(self, size: int, player_color: Color) -> bool:
        """Begin a new game from any phase. Must be called on a running loop."""
        try:
            board = BoardState.create(size, player_color)
        except BoardError as exc:
            logger.info("Rejected game configuration: %s", exc)
            self._notify(f"Cannot start game: {exc}", Severity.ERROR)
            return False

        self._retire_board()
        self._game_id += 1
        self.board = board
        self.result = None
        self._retry_step = None
        self._pending = False
        logger.info(
            "Game %d started: %dx%d board, player %s",
            self._game_id,
            size,
            size,
            player_color,
        )

        if board.current_turn_color == board.player_color:
            self.phase = Phase.PLAYER_TURN
            self._notify("Game started! Your move", Severity.INFO)
        else:
            self.phase = Phase.COMPUTER_TURN
            self._schedule_computer_turn()
            self._notify(f"Game started! {THINKING_MESSAGE}", Severity.INFO)
        return True

    def reset(self) -> None:
        self._retire_board()
        self._game_id += 1
        self.board = None
        self.phase = Phase.IDLE
        self.result = None
        self._retry_step = None
        self._pending = False
        logger.info("Controller reset")
        self._notify(IDLE_MESSAGE, Severity.INFO)

    async def drain(self) -> None:
        """Wait for scheduled computer turns, including stale ones."""
        while any(not task.done() for task in self._tasks):
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---- input ----

    def accepts_input(self) -> bool:
        board = self.board
        return (
            self.phase is Phase.PLAYER_TURN
            and not self._pending
            and self._retry_step is None
            and board is not None
            and board.is_active
            and board.current_turn_color == board.player_color
        )

    async def select_cell(self, row: int, col: int) -> bool:
        """Play the player's color at ``(row, col)``.

        Returns ``False`` without touching anything when the input is not
        acceptable right now (wrong phase, occupied or unknown cell).
        """
        if not self.accepts_input():
            return False
        board = self.board
        try:
            board.place(row, col, board.player_color)
        except BoardError as exc:
            logger.debug("Ignoring selection (%s, %s): %s", row, col, exc)
            return False

        self._pending = True
        self._notify(CHECKING_MESSAGE, Severity.INFO)
        await self._settle_move(self._game_id)
        return True

    async def resume(self) -> bool:
        """Re-issue the request that last failed. Never called automatically."""
        step = self._retry_step
        if step is None or self._pending or self.board is None:
            return False
        if self.phase not in (Phase.PLAYER_TURN, Phase.COMPUTER_TURN):
            return False

        self._retry_step = None
        game_id = self._game_id
        logger.info("Resuming %s in game %d", step, game_id)
        if step == _STEP_NEXT_MOVE:
            self._schedule_computer_turn()
            self._notify(THINKING_MESSAGE, Severity.INFO)
            return True

        self._pending = True
        self._notify(CHECKING_MESSAGE, Severity.INFO)
        if step == _STEP_STATUS:
            await self._settle_move(game_id)
        else:
            await self._settle_no_move(game_id)
        return True

    async def check_api(self, max_retries: int = 3) -> bool:
        """Probe the service; a failure only leaves a warning behind."""
        idle = self.phase is Phase.IDLE
        if idle:
            self._notify("Checking connection to the API...", Severity.INFO)
        outcome = await self.api.check_availability(max_retries)
        if outcome.value:
            self.api_warning = None
            if idle:
                self._notify("API connected. Ready to play!", Severity.SUCCESS)
            return True

        self.api_warning = (
            f"Cannot reach the API, the computer will not be able to move ({outcome.error})"
        )
        logger.warning("API availability check failed: %s", outcome.error)
        if idle:
            self._notify(self.api_warning, Severity.ERROR)
        else:
            self._notify(self.message, self.severity)
        return False

    def view(self) -> GameView:
        board = self.board
        return GameView(
            phase=self.phase,
            board=board.clone() if board is not None else None,
            message=self.message,
            severity=self.severity,
            accepts_input=self.accepts_input(),
            pending=self._pending,
            result=self.result,
            can_resume=self._retry_step is not None and not self._pending,
            api_warning=self.api_warning,
        )

    # ---- sequencing ----

    def _is_current(self, game_id: int) -> bool:
        board = self.board
        return game_id == self._game_id and board is not None and board.is_active

    def _retire_board(self) -> None:
        if self.board is not None:
            self.board.is_active = False

    def _schedule_computer_turn(self) -> None:
        self._pending = True
        task = asyncio.create_task(self._computer_turn(self._game_id))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Computer turn failed unexpectedly", exc_info=exc)

    async def _call(self, request: Awaitable[ApiResult[Any]]) -> ApiResult[Any]:
        """Await an API request; an exception it raises becomes an error result."""
        try:
            return await request
        except Exception as exc:
            logger.exception("API request raised instead of returning a result")
            return ApiResult(error=ApiError(f"Unexpected error: {exc}"))

    async def _computer_turn(self, game_id: int) -> None:
        try:
            await self._play_computer_turn(game_id)
        except Exception as exc:
            logger.exception("Computer turn crashed in game %d", game_id)
            if self._is_current(game_id) and self._retry_step is None:
                self._pending = False
                self._fail(_STEP_NEXT_MOVE, "Computer move failed", exc)

    async def _play_computer_turn(self, game_id: int) -> None:
        await self._sleep(self.computer_delay)
        if not self._is_current(game_id):
            return

        board = self.board
        outcome = await self._call(self.api.request_next_move(board, self.ruleset))
        if not self._is_current(game_id):
            logger.info("Discarding computer move for stale game %d", game_id)
            return
        if not outcome.ok:
            self._pending = False
            self._fail(_STEP_NEXT_MOVE, "Computer move failed", outcome.error)
            return

        move = outcome.value
        if move is None:
            await self._settle_no_move(game_id)
            return

        if move.color != board.computer_color:
            logger.warning(
                "Service returned a move for %s, placing %s",
                move.color,
                board.computer_color,
            )
        try:
            board.place(move.row, move.col, board.computer_color)
        except BoardError as exc:
            self._pending = False
            self._fail(_STEP_NEXT_MOVE, "Computer move rejected", exc)
            return

        self._notify(CHECKING_MESSAGE, Severity.INFO)
        await self._settle_move(game_id)

    async def _settle_move(self, game_id: int) -> None:
        """Ask for the status after a move and hand the turn over."""
        outcome = await self._call(self.api.request_status(self.board))
        if not self._is_current(game_id):
            logger.info("Discarding status for stale game %d", game_id)
            return
        self._pending = False
        if not outcome.ok:
            self._fail(_STEP_STATUS, "Status check failed", outcome.error)
            return
        self._advance(outcome.value)

    async def _settle_no_move(self, game_id: int) -> None:
        outcome = await self._call(self.api.request_status(self.board))
        if not self._is_current(game_id):
            logger.info("Discarding status for stale game %d", game_id)
            return
        self._pending = False
        if not outcome.ok:
            self._fail(_STEP_NO_MOVE_STATUS, "Status check failed", outcome.error)
            return
        if outcome.value.finished:
            self._finish(outcome.value.result)
            return

        self.phase = Phase.STALLED
        logger.warning(
            "Game %d stalled: no move available but status is %r",
            game_id,
            outcome.value.status,
        )
        self._notify(STALLED_MESSAGE, Severity.ERROR)

    def _advance(self, status: GameStatus) -> None:
        if status.finished:
            self._finish(status.result)
            return

        board = self.board
        board.switch_turn()
        if board.current_turn_color == board.computer_color:
            self.phase = Phase.COMPUTER_TURN
            self._schedule_computer_turn()
            self._notify(THINKING_MESSAGE, Severity.INFO)
        else:
            self.phase = Phase.PLAYER_TURN
            self._notify("Your move", Severity.INFO)

    def _finish(self, result: Optional[str]) -> None:
        board = self.board
        board.is_active = False
        self.phase = Phase.FINISHED
        self.result = result
        self._retry_step = None
        logger.info("Game %d finished: %s", self._game_id, result)

        if result == "Draw":
            message = "It's a draw!"
        elif result == f"{board.player_color} wins":
            message = "You won!"
        elif result:
            message = "The computer won!"
        else:
            message = "Game over"
        self._notify(message, Severity.SUCCESS)

    def _fail(self, step: str, prefix: str, error: Optional[Exception]) -> None:
        self._retry_step = step
        logger.warning("%s in game %d: %s", prefix, self._game_id, error)
        self._notify(f"{prefix}: {error}", Severity.ERROR)

    def _notify(self, message: str, severity: Severity) -> None:
        self.message = message
        self.severity = severity
        if self.listener is not None:
            try:
                self.listener(self.view())
            except Exception:
                logger.exception("View listener failed")
