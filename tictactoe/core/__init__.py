"""Core game components: board rules, move selector, turn controller and state token."""

from .board import Mark, COORDINATES, WIN_LINES
from .search import MoveSelector
from .controller import GameState, Outcome, TurnController, TurnResult
from .codec import decode_state, encode_state
from .errors import GameError, GameOverError, IllegalMoveError, InvalidStateToken, NoMoveAvailable
