"""
Constants for the tic-tac-toe family of games and the search engine.

This module defines the board defaults, reward values and the timing
constants used when a search is animated step by step.
"""
from typing import Final, Tuple


# Board geometry
DEFAULT_BOARD_SIZE: Final[int] = 3
DEFAULT_WIN_LENGTH: Final[int] = 3
MIN_BOARD_SIZE: Final[int] = 2
MAX_BOARD_SIZE: Final[int] = 9

# Characters accepted for an empty cell when parsing boards
EMPTY_CELL_CHARS: Final[Tuple[str, ...]] = ("_", ".", "-")
EMPTY_CELL_DISPLAY: Final[str] = "_"

# Rewards from the perspective of the side to move at the root
WIN_REWARD: Final[float] = 1.0
DRAW_REWARD: Final[float] = 0.5
LOSS_REWARD: Final[float] = 0.0

# Search defaults
DEFAULT_EXPLORATION: Final[float] = 1.0
DEFAULT_ITERATIONS: Final[int] = 50
DEFAULT_SEED: Final[int] = 42
DEFAULT_ANIMATE_EVERY: Final[int] = 10
RECOMMENDED_EXPLORATION_RANGE: Final[Tuple[float, float]] = (0.0, 10.0)

# Animation pacing (seconds)
PHASE_DELAY: Final[float] = 0.45
SIMULATION_STEP_DELAY: Final[float] = 0.12
PAUSE_POLL_INTERVAL: Final[float] = 0.06

# Two UCT scores closer than this are treated as tied
TIE_EPSILON: Final[float] = 1e-12
