"""Tests for turn sequencing between the player and the remote computer."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx

from squares.board import BLACK, EMPTY, WHITE, Move
from squares.client import (
    ApiResult,
    GameStatus,
    MalformedResponse,
    SquaresAPIClient,
    TransportError,
)
from squares.controller import Phase, Severity, TurnController

IN_PROGRESS = ApiResult(value=GameStatus("ongoing"))


def finished(result):
    return ApiResult(value=GameStatus("finished", result))


def make_api(status=None, next_move=None, availability=None):
    return SimpleNamespace(
        request_status=AsyncMock(
            side_effect=status if isinstance(status, list) else None,
            return_value=status if not isinstance(status, list) else None,
        ),
        request_next_move=AsyncMock(
            side_effect=next_move if isinstance(next_move, list) else None,
            return_value=next_move if not isinstance(next_move, list) else None,
        ),
        check_availability=AsyncMock(return_value=availability),
    )


def make_controller(api, **kwargs):
    return TurnController(api, computer_delay=0, **kwargs)


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


# ---------- Scenarios against a simulated service ----------


def service_transport(moves, statuses, seen):
    moves = list(moves)
    statuses = list(statuses)

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append((request.url.path, body))
        if request.url.path.endswith("/nextMove"):
            return httpx.Response(200, json=moves.pop(0))
        return httpx.Response(200, json=statuses.pop(0))

    return httpx.MockTransport(handler)


def test_player_move_then_computer_reply():
    async def run_test():
        seen = []
        transport = service_transport(
            moves=[{"x": 1, "y": 1, "color": "b"}],
            statuses=[{"status": "inProgress"}, {"status": "inProgress"}],
            seen=seen,
        )
        controller = make_controller(SquaresAPIClient("http://svc/api", transport=transport))

        assert controller.start(3, WHITE)
        assert controller.phase is Phase.PLAYER_TURN

        assert await controller.select_cell(0, 0)
        await controller.drain()

        board = controller.board
        assert board.cell(0, 0) == WHITE
        assert board.cell(1, 1) == BLACK
        assert board.move_count == 2
        assert board.current_turn_color == WHITE
        assert controller.phase is Phase.PLAYER_TURN
        assert controller.accepts_input()

        assert [path for path, _ in seen] == [
            "/api/status",
            "/api/standard/nextMove",
            "/api/status",
        ]
        assert seen[1][1] == {"size": 3, "data": "w        ", "nextPlayerColor": "b"}

    asyncio.run(run_test())


def test_computer_coordinates_are_column_then_row():
    async def run_test():
        seen = []
        transport = service_transport(
            moves=[{"x": 2, "y": 0, "color": "b"}],
            statuses=[{"status": "ongoing"}, {"status": "ongoing"}],
            seen=seen,
        )
        controller = make_controller(SquaresAPIClient("http://svc/api", transport=transport))
        controller.start(3, WHITE)
        await controller.select_cell(2, 2)
        await controller.drain()

        assert controller.board.cell(0, 2) == BLACK
        assert controller.board.cell(2, 0) == EMPTY

    asyncio.run(run_test())


# ---------- Lifecycle ----------


def test_start_as_black_lets_computer_open():
    async def run_test():
        api = make_api(
            status=IN_PROGRESS,
            next_move=ApiResult(value=Move(row=1, col=2, color=WHITE)),
        )
        controller = make_controller(api)

        assert controller.start(4, BLACK)
        assert controller.phase is Phase.COMPUTER_TURN
        assert not controller.accepts_input()

        await controller.drain()

        board = controller.board
        assert board.cell(1, 2) == WHITE
        assert board.move_count == 1
        assert board.current_turn_color == BLACK
        assert controller.phase is Phase.PLAYER_TURN

    asyncio.run(run_test())


def test_start_with_invalid_size_is_reported():
    async def run_test():
        controller = make_controller(make_api())
        assert not controller.start(0, WHITE)
        assert controller.phase is Phase.IDLE
        assert controller.board is None
        assert controller.severity is Severity.ERROR

    asyncio.run(run_test())


def test_start_replaces_previous_game():
    async def run_test():
        api = make_api(status=IN_PROGRESS, next_move=ApiResult(value=Move(0, 1, BLACK)))
        controller = make_controller(api)
        controller.start(3, WHITE)
        await controller.select_cell(0, 0)
        await controller.drain()
        old_board = controller.board

        controller.start(5, WHITE)

        assert not old_board.is_active
        assert controller.board.size == 5
        assert controller.board.move_count == 0
        assert controller.phase is Phase.PLAYER_TURN

    asyncio.run(run_test())


def test_draw_finishes_game_until_reset():
    async def run_test():
        api = make_api(status=finished("Draw"))
        controller = make_controller(api)
        controller.start(3, WHITE)

        assert await controller.select_cell(1, 1)

        assert controller.phase is Phase.FINISHED
        assert controller.result == "Draw"
        assert controller.severity is Severity.SUCCESS
        assert not controller.board.is_active
        assert not await controller.select_cell(0, 0)
        assert controller.board.move_count == 1
        api.request_next_move.assert_not_called()

        controller.reset()
        assert controller.phase is Phase.IDLE
        assert controller.board is None

    asyncio.run(run_test())


def test_result_messages():
    async def run_test():
        for result, expected in (("W wins", "You won!"), ("B wins", "The computer won!")):
            controller = make_controller(make_api(status=finished(result)))
            controller.start(3, WHITE)
            await controller.select_cell(0, 0)
            assert controller.message == expected

    asyncio.run(run_test())


def test_turns_alternate_starting_with_white():
    async def run_test():
        api = make_api(
            status=IN_PROGRESS,
            next_move=[
                ApiResult(value=Move(0, 1, BLACK)),
                ApiResult(value=Move(1, 1, BLACK)),
                ApiResult(value=Move(2, 1, BLACK)),
            ],
        )
        controller = make_controller(api)
        controller.start(3, WHITE)
        played = []
        for row in range(3):
            assert await controller.select_cell(row, 0)
            played.append(controller.board.last_move.color)
            await controller.drain()
            played.append(controller.board.last_move.color)

        assert played == [WHITE, BLACK] * 3
        assert controller.board.move_count == 6

    asyncio.run(run_test())


# ---------- Ignored input ----------


def test_selection_ignored_when_not_acceptable():
    async def run_test():
        release = asyncio.Event()

        async def slow_move(board, ruleset):
            await release.wait()
            return ApiResult(value=Move(2, 2, BLACK))

        api = make_api(status=IN_PROGRESS)
        api.request_next_move.side_effect = slow_move
        controller = make_controller(api)

        assert not await controller.select_cell(0, 0)  # idle

        controller.start(3, WHITE)
        assert not await controller.select_cell(3, 0)
        assert not await controller.select_cell(-1, 1)

        assert await controller.select_cell(0, 0)
        await settle()
        assert controller.phase is Phase.COMPUTER_TURN
        assert not await controller.select_cell(1, 1)  # computer to move

        release.set()
        await controller.drain()
        assert not await controller.select_cell(0, 0)  # occupied
        assert controller.board.move_count == 2
        assert controller.board.cell(1, 1) == EMPTY

    asyncio.run(run_test())


# ---------- Reported failures ----------


def test_computer_move_error_is_reported_and_can_be_retried():
    async def run_test():
        api = make_api(
            status=IN_PROGRESS,
            next_move=[
                ApiResult(error=TransportError("Network error occurred")),
                ApiResult(value=Move(1, 0, BLACK)),
            ],
        )
        controller = make_controller(api)
        controller.start(3, WHITE)
        await controller.select_cell(0, 0)
        await controller.drain()

        assert controller.phase is Phase.COMPUTER_TURN
        assert controller.severity is Severity.ERROR
        assert "Network error occurred" in controller.message
        assert controller.board.current_turn_color == BLACK
        assert controller.board.move_count == 1
        assert controller.view().can_resume
        assert not await controller.select_cell(2, 2)

        assert await controller.resume()
        await controller.drain()

        assert controller.board.cell(1, 0) == BLACK
        assert controller.phase is Phase.PLAYER_TURN
        assert api.request_next_move.call_count == 2

    asyncio.run(run_test())


def test_status_error_after_player_move_blocks_until_resumed():
    async def run_test():
        api = make_api(
            status=[ApiResult(error=MalformedResponse("Invalid response format")), IN_PROGRESS, IN_PROGRESS],
            next_move=ApiResult(value=Move(2, 2, BLACK)),
        )
        controller = make_controller(api)
        controller.start(3, WHITE)

        assert await controller.select_cell(0, 0)
        assert controller.phase is Phase.PLAYER_TURN
        assert controller.severity is Severity.ERROR
        assert not controller.accepts_input()
        assert not await controller.select_cell(1, 1)

        assert await controller.resume()
        await controller.drain()

        assert controller.board.cell(2, 2) == BLACK
        assert controller.board.move_count == 2
        assert controller.phase is Phase.PLAYER_TURN

    asyncio.run(run_test())


def test_raising_next_move_request_is_reported_and_can_be_retried():
    async def run_test():
        api = make_api(status=IN_PROGRESS)
        api.request_next_move.side_effect = RuntimeError("socket closed")
        controller = make_controller(api)

        controller.start(3, BLACK)
        await controller.drain()

        assert controller.phase is Phase.COMPUTER_TURN
        assert not controller.pending
        assert controller.severity is Severity.ERROR
        assert "socket closed" in controller.message
        assert controller.view().can_resume

        api.request_next_move.side_effect = None
        api.request_next_move.return_value = ApiResult(value=Move(1, 1, WHITE))
        assert await controller.resume()
        await controller.drain()

        assert controller.board.cell(1, 1) == WHITE
        assert controller.phase is Phase.PLAYER_TURN

    asyncio.run(run_test())


def test_raising_status_request_does_not_escape_select_cell():
    async def run_test():
        api = make_api(next_move=ApiResult(value=Move(2, 2, BLACK)))
        api.request_status.side_effect = RuntimeError("status exploded")
        controller = make_controller(api)
        controller.start(3, WHITE)

        assert await controller.select_cell(0, 0)
        assert controller.phase is Phase.PLAYER_TURN
        assert not controller.pending
        assert controller.severity is Severity.ERROR
        assert controller.view().can_resume
        assert not controller.accepts_input()

        api.request_status.side_effect = None
        api.request_status.return_value = IN_PROGRESS
        assert await controller.resume()
        await controller.drain()

        assert controller.board.move_count == 2
        assert controller.phase is Phase.PLAYER_TURN

    asyncio.run(run_test())


def test_rejected_computer_move_leaves_board_untouched():
    async def run_test():
        api = make_api(status=IN_PROGRESS, next_move=ApiResult(value=Move(0, 0, BLACK)))
        controller = make_controller(api)
        controller.start(3, WHITE)
        await controller.select_cell(0, 0)
        await controller.drain()

        assert controller.board.cell(0, 0) == WHITE
        assert controller.board.move_count == 1
        assert controller.phase is Phase.COMPUTER_TURN
        assert controller.message.startswith("Computer move rejected")

    asyncio.run(run_test())


def test_no_move_with_finished_status_ends_game():
    async def run_test():
        api = make_api(
            status=[IN_PROGRESS, finished("W wins")],
            next_move=ApiResult(value=None),
        )
        controller = make_controller(api)
        controller.start(3, WHITE)
        await controller.select_cell(0, 0)
        await controller.drain()

        assert controller.phase is Phase.FINISHED
        assert controller.message == "You won!"

    asyncio.run(run_test())


def test_no_move_while_in_progress_stalls():
    async def run_test():
        api = make_api(status=IN_PROGRESS, next_move=ApiResult(value=None))
        controller = make_controller(api)
        controller.start(3, WHITE)
        await controller.select_cell(0, 0)
        await controller.drain()

        assert controller.phase is Phase.STALLED
        assert controller.severity is Severity.ERROR
        assert "no move" in controller.message
        assert not controller.accepts_input()
        assert not await controller.resume()

        controller.start(3, WHITE)
        assert controller.phase is Phase.PLAYER_TURN

    asyncio.run(run_test())


# ---------- Stale responses ----------


def test_computer_move_after_reset_is_discarded():
    async def run_test():
        release = asyncio.Event()

        async def slow_move(board, ruleset):
            await release.wait()
            return ApiResult(value=Move(0, 0, WHITE))

        api = make_api(status=IN_PROGRESS)
        api.request_next_move.side_effect = slow_move
        controller = make_controller(api)

        controller.start(3, BLACK)
        await settle()
        assert api.request_next_move.call_count == 1

        controller.reset()
        controller.start(3, WHITE)
        release.set()
        await controller.drain()

        assert controller.phase is Phase.PLAYER_TURN
        assert controller.board.move_count == 0
        assert controller.board.cell(0, 0) == EMPTY
        api.request_status.assert_not_called()

    asyncio.run(run_test())


def test_status_after_reset_is_discarded():
    async def run_test():
        release = asyncio.Event()

        async def slow_status(board):
            await release.wait()
            return IN_PROGRESS

        api = make_api(next_move=ApiResult(value=Move(1, 1, BLACK)))
        api.request_status.side_effect = slow_status
        controller = make_controller(api)

        controller.start(3, WHITE)
        move = asyncio.create_task(controller.select_cell(0, 0))
        await settle()
        assert controller.pending

        controller.reset()
        controller.start(3, WHITE)
        release.set()
        assert await move
        await controller.drain()

        assert controller.phase is Phase.PLAYER_TURN
        assert controller.board.move_count == 0
        assert controller.board.current_turn_color == WHITE
        assert controller.accepts_input()
        api.request_next_move.assert_not_called()

    asyncio.run(run_test())


# ---------- Presentation ----------


def test_failing_listener_does_not_break_the_game():
    async def run_test():
        def listener(view):
            raise RuntimeError("render failed")

        api = make_api(status=IN_PROGRESS, next_move=ApiResult(value=Move(1, 1, BLACK)))
        controller = make_controller(api, listener=listener)

        assert controller.start(3, WHITE)
        assert controller.phase is Phase.PLAYER_TURN

        assert await controller.select_cell(0, 0)
        await controller.drain()

        assert controller.board.move_count == 2
        assert controller.phase is Phase.PLAYER_TURN
        assert controller.accepts_input()

    asyncio.run(run_test())


def test_listener_receives_snapshots():
    async def run_test():
        views = []
        api = make_api(status=IN_PROGRESS, next_move=ApiResult(value=Move(1, 1, BLACK)))
        controller = make_controller(api, listener=views.append)

        controller.start(3, WHITE)
        assert views[-1].phase is Phase.PLAYER_TURN
        assert views[-1].accepts_input

        await controller.select_cell(0, 0)
        await controller.drain()

        phases = [view.phase for view in views]
        assert Phase.COMPUTER_TURN in phases
        assert views[-1].phase is Phase.PLAYER_TURN
        assert views[-1].board is not controller.board
        assert views[-1].board.move_count == 2

    asyncio.run(run_test())


def test_check_api_leaves_warning_but_game_can_start():
    async def run_test():
        api = make_api(
            status=IN_PROGRESS,
            availability=ApiResult(value=False, error=TransportError("down")),
        )
        controller = make_controller(api)

        assert not await controller.check_api(max_retries=2)
        api.check_availability.assert_awaited_once_with(2)
        assert controller.severity is Severity.ERROR
        assert "down" in controller.api_warning

        assert controller.start(3, WHITE)
        assert controller.view().api_warning == controller.api_warning

        api.check_availability.return_value = ApiResult(value=True)
        assert await controller.check_api()
        assert controller.api_warning is None

    asyncio.run(run_test())
