"""FastAPI-powered web UI for playing Squares against the remote computer."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .board import EMPTY, Color, from_wire_color, to_wire_color
from .client import SquaresAPIClient
from .config import load_settings
from .controller import GameView, TurnController

logger = logging.getLogger(__name__)

SETTINGS = load_settings()

# The service rejects boards of size 2 or less
MIN_BOARD_SIZE = 3
MAX_BOARD_SIZE = 15
COMPUTER_MOVE_DELAY: float = SETTINGS.computer_delay


@dataclass
class GameSession:
    """A controller plus the bookkeeping the page needs for polling."""

    controller: TurnController
    revision: int = 0
    last_view: Optional[GameView] = field(default=None, repr=False)

    def record(self, view: GameView) -> None:
        self.revision += 1
        self.last_view = view


SESSIONS: Dict[str, GameSession] = {}
app = FastAPI(title="Squares", description="Squares against a remote computer opponent")


def create_api_client() -> SquaresAPIClient:
    return SquaresAPIClient(
        SETTINGS.api_url,
        timeout=SETTINGS.request_timeout,
        retry_delay=SETTINGS.retry_delay,
        default_ruleset=SETTINGS.ruleset,
    )


class NewGameRequest(BaseModel):
    """Request payload for starting a game."""

    model_config = ConfigDict(populate_by_name=True)

    size: int = Field(
        default=5,
        ge=MIN_BOARD_SIZE,
        le=MAX_BOARD_SIZE,
        description="Board side length",
    )
    player_color: str = Field(default="w", alias="playerColor")

    @field_validator("player_color")
    @classmethod
    def ensure_known_color(cls, value: str) -> Color:
        color = from_wire_color(value)
        if color is None:
            raise ValueError(f"Unsupported color {value!r}. Choose 'w' or 'b'.")
        return color


class MoveRequest(BaseModel):
    """Request payload for selecting a cell. Range checks are the controller's job."""

    row: int
    col: int


def _create_session() -> Tuple[str, GameSession]:
    session_id = uuid.uuid4().hex
    controller = TurnController(
        create_api_client(),
        ruleset=SETTINGS.ruleset,
        computer_delay=COMPUTER_MOVE_DELAY,
    )
    session = GameSession(controller=controller)
    controller.listener = session.record
    SESSIONS[session_id] = session
    logger.info("Created session %s", session_id)
    return session_id, session


def _get_session(game_id: str) -> GameSession:
    try:
        return SESSIONS[game_id]
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Game not found") from exc


def _serialize_session(game_id: str, session: GameSession) -> Dict[str, object]:
    view = session.controller.view()
    board = view.board

    state: Dict[str, object] = {
        "id": game_id,
        "phase": str(view.phase),
        "message": view.message,
        "severity": str(view.severity),
        "acceptsInput": view.accepts_input,
        "pending": view.pending,
        "canResume": view.can_resume,
        "result": view.result,
        "apiWarning": view.api_warning,
        "revision": session.revision,
        "size": None,
        "cells": [],
        "lastMove": None,
    }
    if board is None:
        return state

    cells: List[List[str]] = [
        [to_wire_color(c) if c != EMPTY else "" for c in row] for row in board.rows()
    ]
    state.update(
        {
            "size": board.size,
            "cells": cells,
            "playerColor": to_wire_color(board.player_color),
            "computerColor": to_wire_color(board.computer_color),
            "currentTurn": to_wire_color(board.current_turn_color),
            "moveCount": board.move_count,
            "active": board.is_active,
        }
    )
    if board.last_move is not None:
        state["lastMove"] = {
            "row": board.last_move.row,
            "col": board.last_move.col,
            "color": to_wire_color(board.last_move.color),
        }
    return state


@app.post("/api/game")
async def create_game(request: Optional[NewGameRequest] = None) -> Dict[str, object]:
    game_id, session = _create_session()
    if request is not None:
        session.controller.start(request.size, request.player_color)
    return _serialize_session(game_id, session)


@app.get("/api/game/{game_id}")
async def get_game(game_id: str) -> Dict[str, object]:
    session = _get_session(game_id)
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/start")
async def start_game(game_id: str, request: NewGameRequest) -> Dict[str, object]:
    session = _get_session(game_id)
    session.controller.start(request.size, request.player_color)
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/move")
async def make_move(game_id: str, request: MoveRequest) -> Dict[str, object]:
    session = _get_session(game_id)
    accepted = await session.controller.select_cell(request.row, request.col)
    state = _serialize_session(game_id, session)
    state["accepted"] = accepted
    return state


@app.post("/api/game/{game_id}/reset")
async def reset_game(game_id: str) -> Dict[str, object]:
    session = _get_session(game_id)
    session.controller.reset()
    return _serialize_session(game_id, session)


@app.post("/api/game/{game_id}/resume")
async def resume_game(game_id: str) -> Dict[str, object]:
    session = _get_session(game_id)
    resumed = await session.controller.resume()
    state = _serialize_session(game_id, session)
    state["resumed"] = resumed
    return state


@app.post("/api/game/{game_id}/availability")
async def check_availability(game_id: str) -> Dict[str, object]:
    session = _get_session(game_id)
    available = await session.controller.check_api(SETTINGS.availability_retries)
    state = _serialize_session(game_id, session)
    state["available"] = available
    return state


@app.get("/", response_class=HTMLResponse)
def index() -> str:
    return HTML_PAGE


HTML_PAGE = """<!DOCTYPE html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\" />
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\" />
    <title>Squares</title>
    <style>
      :root {
        color-scheme: light;
        font-family: system-ui, -apple-system, BlinkMacSystemFont, \"Segoe UI\", sans-serif;
      }
      * {
        box-sizing: border-box;
      }
      body {
        margin: 0;
        background: radial-gradient(circle at top, #f2f5ff, #dbe0ff 40%, #cfd8ff 70%);
        min-height: 100vh;
        display: flex;
        justify-content: center;
        padding: 2rem 1rem 3rem;
        color: #13203a;
      }
      main {
        background: rgba(255, 255, 255, 0.92);
        border-radius: 18px;
        box-shadow: 0 20px 40px rgba(34, 47, 79, 0.16);
        padding: clamp(1.5rem, 4vw, 2.5rem);
        width: min(720px, 100%);
      }
      h1 {
        margin: 0 0 1.5rem;
        text-align: center;
        letter-spacing: 0.06em;
      }
      button,
      select {
        font-size: 1rem;
        padding: 0.55rem 0.95rem;
        border-radius: 999px;
        border: 1px solid rgba(60, 70, 120, 0.25);
        background: white;
        cursor: pointer;
        font-family: inherit;
      }
      button:disabled {
        cursor: default;
        opacity: 0.6;
      }
      label {
        font-weight: 600;
        margin-right: 0.5rem;
      }
      .controls {
        display: flex;
        flex-wrap: wrap;
        gap: 0.75rem;
        justify-content: center;
        align-items: center;
        margin-bottom: 1.25rem;
      }
      .hidden {
        display: none !important;
      }
      #turn {
        text-align: center;
        font-size: 1.1rem;
        font-weight: 600;
        margin-bottom: 0.5rem;
      }
      #message {
        text-align: center;
        min-height: 1.25rem;
        font-weight: 600;
        margin-bottom: 1rem;
      }
      #message.info {
        color: #14264a;
      }
      #message.success {
        color: #1b7a3a;
      }
      #message.error {
        color: #b00020;
      }
      #warning {
        text-align: center;
        color: #b00020;
        font-size: 0.9rem;
        margin-bottom: 1rem;
      }
      .board-grid {
        display: grid;
        gap: 0.3rem;
        max-width: 520px;
        margin: 0 auto;
      }
      .cell {
        aspect-ratio: 1;
        border-radius: 8px;
        padding: 0;
        font-size: 1.6rem;
        line-height: 1;
        background: #f4f6ff;
      }
      .cell.white {
        color: #ffffff;
        text-shadow: 0 0 2px #13203a, 0 0 2px #13203a;
      }
      .cell.black {
        color: #13203a;
      }
      .cell.last-move {
        outline: 3px solid rgba(58, 102, 255, 0.7);
      }
    </style>
  </head>
  <body>
    <main>
      <h1>Squares</h1>
      <div class=\"controls\">
        <label for=\"board-size\">Board</label>
        <select id=\"board-size\">
          <option value=\"3\">3 x 3</option>
          <option value=\"5\" selected>5 x 5</option>
          <option value=\"7\">7 x 7</option>
          <option value=\"9\">9 x 9</option>
        </select>
        <label for=\"player-color\">Color</label>
        <select id=\"player-color\">
          <option value=\"w\" selected>White (moves first)</option>
          <option value=\"b\">Black</option>
        </select>
        <button id=\"start-game\">Start game</button>
        <button id=\"reset-game\" disabled>Reset</button>
        <button id=\"resume-game\" class=\"hidden\">Retry</button>
      </div>
      <div id=\"turn\"></div>
      <div id=\"message\" role=\"status\"></div>
      <div id=\"warning\"></div>
      <div id=\"board\" class=\"board-grid\"></div>
    </main>
    <script>
      const sizeEl = document.getElementById('board-size');
      const colorEl = document.getElementById('player-color');
      const startButton = document.getElementById('start-game');
      const resetButton = document.getElementById('reset-game');
      const resumeButton = document.getElementById('resume-game');
      const turnEl = document.getElementById('turn');
      const messageEl = document.getElementById('message');
      const warningEl = document.getElementById('warning');
      const boardContainer = document.getElementById('board');

      let gameId = null;
      let gameState = null;
      let pollHandle = null;
      let isRequestPending = false;

      async function post(path, body) {
        const response = await fetch(path, {
          method: 'POST',
          headers: { 'Content-Type': 'application/json' },
          body: body === undefined ? undefined : JSON.stringify(body),
        });
        if (!response.ok) {
          const payload = await response.json().catch(() => ({}));
          throw new Error(payload?.detail || `Request failed with status ${response.status}`);
        }
        return response.json();
      }

      function stopPolling() {
        if (pollHandle !== null) {
          clearTimeout(pollHandle);
          pollHandle = null;
        }
      }

      function ensurePolling() {
        if (pollHandle !== null) return;
        pollHandle = window.setTimeout(poll, 400);
      }

      async function poll() {
        pollHandle = null;
        if (!gameId) return;
        try {
          const response = await fetch(`/api/game/${gameId}`);
          if (response.ok) {
            setState(await response.json());
          }
        } catch (error) {
          console.error('Polling failed', error);
        } finally {
          if (gameState?.pending) ensurePolling();
        }
      }

      function setState(data) {
        gameId = data.id;
        gameState = data;
        renderBoard();
        updateStatus();
        if (gameState.pending) {
          ensurePolling();
        } else {
          stopPolling();
        }
      }

      function renderBoard() {
        boardContainer.innerHTML = '';
        if (!gameState || !gameState.size) return;
        boardContainer.style.gridTemplateColumns = `repeat(${gameState.size}, 1fr)`;
        const last = gameState.lastMove;
        gameState.cells.forEach((row, r) => {
          row.forEach((value, c) => {
            const cell = document.createElement('button');
            cell.type = 'button';
            cell.classList.add('cell');
            if (value === 'w') cell.classList.add('white');
            if (value === 'b') cell.classList.add('black');
            if (value) cell.textContent = '●';
            if (last && last.row === r && last.col === c) cell.classList.add('last-move');
            cell.disabled = Boolean(value) || !gameState.acceptsInput;
            cell.addEventListener('click', () => sendMove(r, c));
            boardContainer.appendChild(cell);
          });
        });
      }

      function updateStatus() {
        messageEl.textContent = gameState.message || '';
        messageEl.className = gameState.severity || '';
        warningEl.textContent = gameState.apiWarning || '';
        const active = Boolean(gameState.active);
        startButton.disabled = active;
        resetButton.disabled = gameState.phase === 'idle';
        resumeButton.classList.toggle('hidden', !gameState.canResume);
        if (!gameState.size) {
          turnEl.textContent = '';
          return;
        }
        const colorName = gameState.currentTurn === 'w' ? 'White' : 'Black';
        const whose = gameState.currentTurn === gameState.playerColor ? 'your move' : "computer's move";
        turnEl.textContent = active ? `${colorName} (${whose})` : '';
      }

      async function run(action) {
        if (isRequestPending) return;
        isRequestPending = true;
        try {
          setState(await action());
        } catch (error) {
          messageEl.textContent = error.message || 'Network error. Please try again.';
          messageEl.className = 'error';
        } finally {
          isRequestPending = false;
        }
      }

      function sendMove(row, col) {
        if (!gameState?.acceptsInput) return;
        run(() => post(`/api/game/${gameId}/move`, { row, col }));
      }

      startButton.addEventListener('click', () =>
        run(() =>
          post(`/api/game/${gameId}/start`, {
            size: Number.parseInt(sizeEl.value, 10),
            playerColor: colorEl.value,
          })
        )
      );
      resetButton.addEventListener('click', () => run(() => post(`/api/game/${gameId}/reset`)));
      resumeButton.addEventListener('click', () => run(() => post(`/api/game/${gameId}/resume`)));

      (async () => {
        await run(() => post('/api/game'));
        if (gameId) {
          post(`/api/game/${gameId}/availability`)
            .then(setState)
            .catch((error) => console.error('Availability check failed', error));
        }
      })();
    </script>
  </body>
</html>
"""
