import logging
import sys

from tictactoe.core.board import Board

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Install one stream handler on the root logger; repeated calls only change the level."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not any(getattr(h, "_ttt_handler", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._ttt_handler = True
        root.addHandler(handler)


def format_board(board: Board) -> str:
    """ASCII grid with row letters and column numbers, matching the button labels."""
    lines = ["    1   2   3"]
    for r, row_label in enumerate("ABC"):
        cells = [board[r * 3 + c].value if board[r * 3 + c] else " " for c in range(3)]
        lines.append(f"{row_label}   " + " | ".join(cells))
        if r < 2:
            lines.append("   ---+---+---")
    return "\n".join(lines)
