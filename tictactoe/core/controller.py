"""Turn controller: one human move plus the computer's reply per call."""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from tictactoe.config import CONFIG, Difficulty
from tictactoe.core.board import (
    Board,
    Mark,
    apply_move,
    empty_board,
    is_full,
    is_legal,
    winner,
)
from tictactoe.core.errors import GameOverError, IllegalMoveError
from tictactoe.core.search import MoveSelector

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    WIN_HUMAN = "win_human"
    WIN_COMPUTER = "win_computer"
    DRAW = "draw"


@dataclass(frozen=True)
class GameState:
    board: Board
    current_player: Mark
    is_game_over: bool = False
    outcome: Optional[Outcome] = None
    difficulty: Optional[Difficulty] = None


@dataclass(frozen=True)
class TurnResult:
    state: GameState
    human_move: int
    computer_move: Optional[int] = None

    @property
    def outcome(self) -> Optional[Outcome]:
        return self.state.outcome


class TurnController:
    def __init__(self, selector: Optional[MoveSelector] = None,
                 human: Optional[Mark] = None, computer: Optional[Mark] = None):
        self.selector = selector or MoveSelector()
        self.human = Mark(human or CONFIG.game.human_mark)
        self.computer = Mark(computer or CONFIG.game.computer_mark)
        if self.human is self.computer:
            raise ValueError("Human and computer must play different marks")

    def new_game(self, difficulty: Optional[Difficulty] = None) -> GameState:
        """Fresh empty board with the human to move."""
        if difficulty is not None:
            difficulty = Difficulty(difficulty)
        return GameState(board=empty_board(), current_player=self.human, difficulty=difficulty)

    def play(self, state: GameState, index: int) -> TurnResult:
        """Apply the human move at ``index`` and, unless that ends the game, the computer's reply."""
        if state.is_game_over:
            raise GameOverError()
        if not is_legal(state.board, index):
            raise IllegalMoveError(index)

        board = apply_move(state.board, index, self.human)
        terminal = self._terminal(board)
        if terminal is not None:
            return TurnResult(self._finish(state, board, terminal), human_move=index)

        reply = self.selector.select_move(board, self.computer, difficulty=state.difficulty)
        board = apply_move(board, reply, self.computer)
        terminal = self._terminal(board)
        if terminal is not None:
            return TurnResult(self._finish(state, board, terminal), human_move=index, computer_move=reply)

        next_state = replace(state, board=board, current_player=self.human)
        return TurnResult(next_state, human_move=index, computer_move=reply)

    def _terminal(self, board: Board) -> Optional[Outcome]:
        mark = winner(board)
        if mark is self.human:
            return Outcome.WIN_HUMAN
        if mark is self.computer:
            return Outcome.WIN_COMPUTER
        if is_full(board):
            return Outcome.DRAW
        return None

    def _finish(self, state: GameState, board: Board, outcome: Outcome) -> GameState:
        logger.info("game over: %s (difficulty=%s)", outcome.value,
                    state.difficulty.value if state.difficulty else "default")
        last = board.count(self.human) > board.count(self.computer)
        return replace(state, board=board, is_game_over=True, outcome=outcome,
                       current_player=self.computer if last else self.human)
