"""Board model for Squares: the grid, its metadata and the wire encoding."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

Color = str  # "W" or "B"

WHITE: Color = "W"
BLACK: Color = "B"
EMPTY = " "
COLORS = (WHITE, BLACK)

# Wire encoding used by the remote service
_WIRE_CELLS = {WHITE: "w", BLACK: "b", EMPTY: " "}


class BoardError(ValueError):
    """Base class for rejected board operations."""


class InvalidConfig(BoardError):
    pass


class OutOfBounds(BoardError):
    pass


class CellOccupied(BoardError):
    pass


class GameNotActive(BoardError):
    pass


def opposite(color: Color) -> Color:
    return BLACK if color == WHITE else WHITE


def to_wire_color(color: Color) -> str:
    return _WIRE_CELLS[color]


def from_wire_color(value: object) -> Optional[Color]:
    """Map ``"w"``/``"b"`` (any case) to a board color, ``None`` otherwise."""
    if not isinstance(value, str):
        return None
    upper = value.strip().upper()
    return upper if upper in COLORS else None


@dataclass(frozen=True)
class Move:
    row: int
    col: int
    color: Color


@dataclass
class BoardState:
    size: int
    player_color: Color
    computer_color: Color
    # Row-major: 'W', 'B', or ' ' (space) for empty
    cells: List[str] = field(default_factory=list)
    current_turn_color: Color = WHITE
    is_active: bool = True
    move_count: int = 0
    last_move: Optional[Move] = None

    @classmethod
    def create(cls, size: int, player_color: Color) -> "BoardState":
        """Allocate an empty ``size x size`` board with White to move."""
        if not isinstance(size, int) or size < 1:
            raise InvalidConfig(f"Board size must be a positive integer, got {size!r}")
        if player_color not in COLORS:
            raise InvalidConfig(f"Unknown player color {player_color!r}")
        return cls(
            size=size,
            player_color=player_color,
            computer_color=opposite(player_color),
            cells=[EMPTY] * (size * size),
        )

    # ---- queries ----

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.size and 0 <= col < self.size

    def cell(self, row: int, col: int) -> str:
        if not self.in_bounds(row, col):
            raise OutOfBounds(f"Cell ({row}, {col}) is outside a {self.size}x{self.size} board")
        return self.cells[row * self.size + col]

    def is_empty(self, row: int, col: int) -> bool:
        return self.in_bounds(row, col) and self.cell(row, col) == EMPTY

    def is_full(self) -> bool:
        return all(c != EMPTY for c in self.cells)

    def rows(self) -> List[str]:
        return [
            "".join(self.cells[r * self.size : (r + 1) * self.size])
            for r in range(self.size)
        ]

    # ---- mutation ----

    def place(self, row: int, col: int, color: Color) -> "BoardState":
        """Set an empty cell and count the move. Rejected moves leave the board untouched."""
        if not self.is_active:
            raise GameNotActive("Game is not active")
        if color not in COLORS:
            raise BoardError(f"Unknown color {color!r}")
        if not self.in_bounds(row, col):
            raise OutOfBounds(f"Cell ({row}, {col}) is outside a {self.size}x{self.size} board")
        idx = row * self.size + col
        if self.cells[idx] != EMPTY:
            raise CellOccupied(f"Cell ({row}, {col}) is already occupied")
        self.cells[idx] = color
        self.move_count += 1
        self.last_move = Move(row=row, col=col, color=color)
        return self

    def switch_turn(self) -> Color:
        self.current_turn_color = opposite(self.current_turn_color)
        return self.current_turn_color

    # ---- encoding ----

    def serialize(self) -> str:
        """Flat row-major string of length ``size**2`` ('w', 'b', ' ')."""
        return "".join(_WIRE_CELLS[c] for c in self.cells)

    def clone(self) -> "BoardState":
        return BoardState(
            size=self.size,
            player_color=self.player_color,
            computer_color=self.computer_color,
            cells=self.cells.copy(),
            current_turn_color=self.current_turn_color,
            is_active=self.is_active,
            move_count=self.move_count,
            last_move=self.last_move,
        )
