"""
uct-lab Core Package

This package contains the game logic the search engine plays on, including:
- Board representation and turn parity
- Game rules for tic-tac-toe style games
- Exceptions
- Constants

All core components can be imported directly from this package.
"""

# Game and game state
from uct_lab.core.game import (
    Board, GameRules, TicTacToe, Mark, Outcome,
    index_to_coord, winning_lines, play_moves
)

# Exceptions
from uct_lab.core.exceptions import (
    UctLabError, InvalidMoveError, InvalidConfigurationError,
    RunAlreadyActiveError, TreeInvariantError
)

# Constants
from uct_lab.core.constants import (
    DEFAULT_BOARD_SIZE, WIN_REWARD, DRAW_REWARD, LOSS_REWARD
)

__all__ = [
    # Game
    'Board', 'GameRules', 'TicTacToe', 'Mark', 'Outcome',
    'index_to_coord', 'winning_lines', 'play_moves',

    # Exceptions
    'UctLabError', 'InvalidMoveError', 'InvalidConfigurationError',
    'RunAlreadyActiveError', 'TreeInvariantError',

    # Constants
    'DEFAULT_BOARD_SIZE', 'WIN_REWARD', 'DRAW_REWARD', 'LOSS_REWARD'
]
