"""
uct-lab - A step-by-step Monte Carlo Tree Search engine for tic-tac-toe style games.

This package provides the game rules, a deterministic MCTS/UCT search and a
controller that runs the search one visible phase at a time or in batches.
"""

__version__ = "0.1.0"
__author__ = "uct-lab Team"

# Make key components available at package level
from uct_lab.core.game import Board, Mark, Outcome, TicTacToe
from uct_lab.mcts.config import MCTSConfig
from uct_lab.mcts.controller import SearchController

# Version info as a tuple for programmatic access
VERSION_INFO = tuple(map(int, __version__.split('.')))
