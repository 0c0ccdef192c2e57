"""Tic-tac-toe board rules as pure functions over a 9-cell tuple.

Cells are indexed 0..8 row-major (index = row * 3 + col). A cell holds
``None`` when empty or a :class:`Mark`.
"""

from enum import Enum
from typing import List, Optional, Sequence, Tuple

from tictactoe.core.errors import IllegalMoveError


class Mark(str, Enum):
    X = "X"
    O = "O"

    @property
    def other(self) -> "Mark":
        return Mark.O if self is Mark.X else Mark.X


Cell = Optional[Mark]
Board = Tuple[Cell, ...]

SIZE = 9
CENTER = 4
CORNERS = (0, 2, 6, 8)

# Winning lines (rows, columns, diagonals)
WIN_LINES = (
    (0, 1, 2), (3, 4, 5), (6, 7, 8),  # rows
    (0, 3, 6), (1, 4, 7), (2, 5, 8),  # columns
    (0, 4, 8), (2, 4, 6),             # diagonals
)

# Labels shown on move buttons, same order as the cell index.
COORDINATES = ("A1", "A2", "A3", "B1", "B2", "B3", "C1", "C2", "C3")


def empty_board() -> Board:
    return (None,) * SIZE


def make_board(cells: Sequence) -> Board:
    """Build a board from 9 cells given as marks, "X"/"O" strings or None/""/"_"."""
    if len(cells) != SIZE:
        raise ValueError(f"A board has {SIZE} cells, got {len(cells)}")
    board: List[Cell] = []
    for c in cells:
        if c is None or c in ("", "_", "."):
            board.append(None)
        else:
            board.append(Mark(c))
    return tuple(board)


def is_legal(board: Board, index: int) -> bool:
    """True iff ``index`` is on the board and the cell is empty."""
    if isinstance(index, bool) or not isinstance(index, int):
        return False
    return 0 <= index < SIZE and board[index] is None


def apply_move(board: Board, index: int, mark: Mark) -> Board:
    """Return a new board with ``mark`` written at ``index``."""
    if not is_legal(board, index):
        reason = "cell is occupied" if isinstance(index, int) and 0 <= index < SIZE else "out of range"
        raise IllegalMoveError(index, reason)
    cells = list(board)
    cells[index] = mark
    return tuple(cells)


def winner(board: Board) -> Optional[Mark]:
    """Return the mark owning a completed line, or None."""
    for a, b, c in WIN_LINES:
        if board[a] is not None and board[a] == board[b] == board[c]:
            return board[a]
    return None


def check_win(board: Board) -> bool:
    return winner(board) is not None


def is_full(board: Board) -> bool:
    return all(cell is not None for cell in board)


def open_cells(board: Board) -> List[int]:
    """Indices of empty cells in ascending order."""
    return [i for i, cell in enumerate(board) if cell is None]


def count(board: Board, mark: Mark) -> int:
    return sum(1 for cell in board if cell is mark)


def is_reachable(board: Board, first: Mark = Mark.O) -> bool:
    """Could alternating play starting with ``first`` produce this board?

    The first mover is level or one ahead, at most one mark owns a line,
    and play stopped on the move that completed it.
    """
    lead = count(board, first) - count(board, first.other)
    if lead not in (0, 1):
        return False
    lines = {board[a] for a, b, c in WIN_LINES if board[a] is not None and board[a] == board[b] == board[c]}
    if len(lines) > 1:
        return False
    if first in lines:
        return lead == 1
    if first.other in lines:
        return lead == 0
    return True
