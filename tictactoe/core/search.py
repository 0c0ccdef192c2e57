"""Computer move selection.

A short priority list instead of a full game-tree search: a difficulty
dependent random gate, a randomized opening reply, take a win, block a
win, center, corners, then any open cell. Every random draw goes through
``self.rng`` so tests can inject a seeded ``random.Random``.
"""

import logging
import random
from typing import Dict, Optional

from tictactoe.config import CONFIG, Difficulty, SelectorProfile
from tictactoe.core.board import (
    Board,
    CENTER,
    CORNERS,
    Mark,
    apply_move,
    check_win,
    open_cells,
)
from tictactoe.core.errors import NoMoveAvailable

logger = logging.getLogger(__name__)

RULE_RANDOM = "random"
RULE_OPENING = "opening"
RULE_WIN = "win"
RULE_BLOCK = "block"
RULE_CENTER = "center"
RULE_CORNER = "corner"
RULE_FALLBACK = "fallback"


def find_winning_move(board: Board, mark: Mark) -> Optional[int]:
    """Lowest open index that completes a line for ``mark``, or None."""
    for i in open_cells(board):
        if check_win(apply_move(board, i, mark)):
            return i
    return None


class MoveSelector:
    def __init__(self, profiles: Optional[Dict[Difficulty, SelectorProfile]] = None,
                 rng: Optional[random.Random] = None):
        self.profiles = profiles if profiles is not None else CONFIG.selector.profiles()
        self.rng = rng or random.Random()
        self.last_rule: Optional[str] = None

    def profile_for(self, difficulty: Optional[Difficulty]) -> SelectorProfile:
        """Profile for a tier; None falls back to the configured default tier."""
        if difficulty is None:
            difficulty = Difficulty(CONFIG.game.default_difficulty)
        return self.profiles[Difficulty(difficulty)]

    def select_move(self, board: Board, mark: Mark,
                    difficulty: Optional[Difficulty] = None,
                    profile: Optional[SelectorProfile] = None) -> int:
        """Return the cell index the computer plays with ``mark``.

        ``profile`` overrides the tier lookup when given. Raises
        NoMoveAvailable on a full board.
        """
        cells = open_cells(board)
        if not cells:
            raise NoMoveAvailable()
        profile = profile or self.profile_for(difficulty)
        opponent = mark.other

        if profile.random_move_chance > 0 and self.rng.random() < profile.random_move_chance:
            return self._pick(RULE_RANDOM, self.rng.choice(cells))

        occupied = len(board) - len(cells)
        if profile.opening_randomized and occupied == 1:
            return self._pick(RULE_OPENING, self.rng.choice(cells))

        win = find_winning_move(board, mark)
        if win is not None:
            return self._pick(RULE_WIN, win)

        block = find_winning_move(board, opponent)
        if block is not None:
            return self._pick(RULE_BLOCK, block)

        if board[CENTER] is None and self._roll(profile.center_chance):
            return self._pick(RULE_CENTER, CENTER)

        corners = [i for i in CORNERS if board[i] is None]
        if corners:
            return self._pick(RULE_CORNER, self.rng.choice(corners))

        return self._pick(RULE_FALLBACK, self.rng.choice(cells))

    def _roll(self, chance: float) -> bool:
        if chance >= 1:
            return True
        if chance <= 0:
            return False
        return self.rng.random() < chance

    def _pick(self, rule: str, index: int) -> int:
        self.last_rule = rule
        logger.debug("selector rule=%s move=%d", rule, index)
        return index
