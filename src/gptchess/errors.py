"""Exception types shared by the rules adapter, opponent session and controller."""
from __future__ import annotations


class GptChessError(Exception):
    """Base class; none of these errors leaves the game in an invalid state."""


class IllegalMoveError(GptChessError):
    def __init__(self, move: str, reason: str = "illegal_move"):
        super().__init__(f"Illegal move: {move}")
        self.move = move
        self.reason = reason


class ReplyParseError(GptChessError):
    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class TransportError(GptChessError):
    """The completion call failed (network, auth, quota or an empty reply)."""


class GameStateError(GptChessError):
    """The action is not allowed in the current turn state."""


class RequestInFlightError(GameStateError):
    def __init__(self):
        super().__init__("An opponent move request is already in progress")
