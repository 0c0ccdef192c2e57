"""Exceptions raised by the game core.

All of them are raised before any state is touched, so a caller that
catches one can keep using the state it already holds.
"""


class GameError(Exception):
    """Base class for game-core errors."""


class IllegalMoveError(GameError):
    """The cell is occupied or the index is outside 0..8."""

    def __init__(self, index, reason: str = "cell is not available"):
        self.index = index
        super().__init__(f"Illegal move {index!r}: {reason}")


class GameOverError(GameError):
    """A move was submitted after the game reached a terminal state."""

    def __init__(self, message: str = "Game is already over"):
        super().__init__(message)


class NoMoveAvailable(GameError):
    """The move selector was asked to play on a full board."""

    def __init__(self, message: str = "No open cell left to play"):
        super().__init__(message)


class InvalidStateToken(GameError):
    """A transported state token could not be decoded."""
