"""State token: the GameState carried between frame requests.

Encoded as URL-safe base64 over compact JSON so it fits in a frame
state field or a query string. Decoding validates the payload and
rejects boards no real game can reach and terminal flags that disagree
with the board.
"""

import base64
import binascii
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tictactoe.config import CONFIG, Difficulty
from tictactoe.core.board import Mark, SIZE, is_full, is_reachable, make_board, winner
from tictactoe.core.controller import GameState, Outcome
from tictactoe.core.errors import InvalidStateToken


class StatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    board: List[Optional[Mark]] = Field(min_length=SIZE, max_length=SIZE)
    current_player: Mark = Field(alias="currentPlayer")
    is_game_over: bool = Field(False, alias="isGameOver")
    outcome: Optional[Outcome] = None
    difficulty: Optional[Difficulty] = None


def encode_state(state: GameState) -> str:
    payload = StatePayload(
        board=list(state.board),
        current_player=state.current_player,
        is_game_over=state.is_game_over,
        outcome=state.outcome,
        difficulty=state.difficulty,
    )
    raw = payload.model_dump_json(by_alias=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def _expected_outcome(board, human: Mark, computer: Mark) -> Optional[Outcome]:
    mark = winner(board)
    if mark is human:
        return Outcome.WIN_HUMAN
    if mark is computer:
        return Outcome.WIN_COMPUTER
    if is_full(board):
        return Outcome.DRAW
    return None


def decode_state(token: str, human: Optional[Mark] = None, computer: Optional[Mark] = None) -> GameState:
    """Decode ``token`` into a GameState, raising InvalidStateToken for anything a game could not produce.

    ``human`` moves first; both marks default to the configured ones.
    """
    human = Mark(human or CONFIG.game.human_mark)
    computer = Mark(computer or CONFIG.game.computer_mark)
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError, AttributeError) as e:
        raise InvalidStateToken(f"State token is not base64: {e}") from e
    try:
        payload = StatePayload.model_validate_json(raw)
    except ValidationError as e:
        raise InvalidStateToken(f"State token payload is invalid: {e.error_count()} error(s)") from e

    board = make_board(payload.board)
    if not is_reachable(board, first=human):
        raise InvalidStateToken("State token holds an unreachable board")

    expected = _expected_outcome(board, human, computer)
    if not payload.is_game_over:
        if payload.outcome is not None:
            raise InvalidStateToken("State token has an outcome but is not over")
        if expected is not None:
            raise InvalidStateToken(f"State token marks a finished game ({expected.value}) as in progress")
    elif payload.outcome is None:
        raise InvalidStateToken("State token is over but has no outcome")
    elif payload.outcome is not expected:
        raise InvalidStateToken(
            f"State token outcome {payload.outcome.value} does not match the board "
            f"({expected.value if expected else 'still in play'})"
        )
    return GameState(
        board=board,
        current_player=payload.current_player,
        is_game_over=payload.is_game_over,
        outcome=payload.outcome,
        difficulty=payload.difficulty,
    )
