"""
Exceptions raised by the uct-lab game and search layers.
"""


class UctLabError(Exception):
    """Base class for all uct-lab errors."""


class InvalidMoveError(UctLabError, ValueError):
    """A move targets an occupied cell or a cell outside the board."""

    def __init__(self, move: int, reason: str):
        self.move = move
        self.reason = reason
        super().__init__(f"Invalid move {move}: {reason}")


class InvalidConfigurationError(UctLabError, ValueError):
    """A search parameter is out of range."""


class RunAlreadyActiveError(UctLabError, RuntimeError):
    """A run was requested while another run is still in progress."""


class TreeInvariantError(UctLabError, AssertionError):
    """A search tree node violates one of its statistical invariants."""

    def __init__(self, index: int, message: str):
        self.index = index
        super().__init__(f"Node {index}: {message}")
