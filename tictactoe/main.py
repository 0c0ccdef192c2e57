import random
from typing import Optional

from tictactoe.config import Difficulty
from tictactoe.core.board import open_cells
from tictactoe.core.controller import GameState, TurnController, TurnResult
from tictactoe.core.search import MoveSelector
from tictactoe.core.utils import format_board


class Game:
    """Keeps one GameState between turns for callers that hold a session (the terminal CLI)."""

    def __init__(self, difficulty: Optional[Difficulty] = None, seed: Optional[int] = None):
        rng = random.Random(seed) if seed is not None else None
        self.controller = TurnController(MoveSelector(rng=rng))
        self.difficulty = difficulty
        self.state = self.controller.new_game(difficulty)

    def play(self, index: int) -> TurnResult:
        result = self.controller.play(self.state, index)
        self.state = result.state
        return result

    def reset(self) -> GameState:
        self.state = self.controller.new_game(self.difficulty)
        return self.state

    def open_cells(self):
        return open_cells(self.state.board)

    def is_over(self) -> bool:
        return self.state.is_game_over

    def print_board(self):
        print(format_board(self.state.board))
