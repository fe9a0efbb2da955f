"""
Game state and rules for tic-tac-toe style games.

This module defines the core game mechanics, including:
- Board: Immutable snapshot of a position
- GameRules: The capability set the search engine needs from a game
- TicTacToe: k-in-a-row rules on an n x n board

Turn order is never stored; it is derived from the number of marks of each
kind on the board, with X always moving first.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence, Tuple
import math

from uct_lab.core.constants import (
    DEFAULT_BOARD_SIZE, DEFAULT_WIN_LENGTH, MIN_BOARD_SIZE, MAX_BOARD_SIZE,
    EMPTY_CELL_CHARS, EMPTY_CELL_DISPLAY,
    WIN_REWARD, DRAW_REWARD, LOSS_REWARD
)
from uct_lab.core.exceptions import InvalidMoveError


class Mark(Enum):
    """Enum representing the two sides."""
    X = "X"
    O = "O"

    @property
    def opponent(self) -> Mark:
        """Get the other side."""
        return Mark.O if self is Mark.X else Mark.X


class Outcome(Enum):
    """Enum representing the decided result of a finished game."""
    X = "X"
    O = "O"
    DRAW = "D"

    @property
    def winner(self) -> Optional[Mark]:
        """Get the winning side, or None for a draw."""
        if self is Outcome.DRAW:
            return None
        return Mark(self.value)

    @classmethod
    def win_for(cls, mark: Mark) -> Outcome:
        return cls(mark.value)

    def reward_for(self, mark: Mark) -> float:
        """
        Get the reward of this outcome from one side's perspective.

        Args:
            mark: Side whose payoff is wanted

        Returns:
            1.0 for a win, 0.5 for a draw, 0.0 for a loss
        """
        if self is Outcome.DRAW:
            return DRAW_REWARD
        return WIN_REWARD if self.value == mark.value else LOSS_REWARD


_SEPARATORS = " \t\r\n,|/[]"


def _parse_cell(char: str) -> Optional[Mark]:
    upper = char.upper()
    if upper in ("X", "O"):
        return Mark(upper)
    if char in EMPTY_CELL_CHARS:
        return None
    raise ValueError(f"Unknown board character: {char!r}")


@dataclass(frozen=True)
class Board:
    """
    Immutable snapshot of a tic-tac-toe style position.

    Cells are stored row by row; a cell holds a Mark or None when empty.
    """
    cells: Tuple[Optional[Mark], ...]
    size: int = DEFAULT_BOARD_SIZE
    win_length: int = DEFAULT_WIN_LENGTH

    def __post_init__(self):
        """Validate the board geometry."""
        if not isinstance(self.cells, tuple):
            object.__setattr__(self, "cells", tuple(self.cells))
        if not MIN_BOARD_SIZE <= self.size <= MAX_BOARD_SIZE:
            raise ValueError(
                f"size must be between {MIN_BOARD_SIZE} and {MAX_BOARD_SIZE}"
            )
        if not 2 <= self.win_length <= self.size:
            raise ValueError("win_length must be between 2 and the board size")
        if len(self.cells) != self.size * self.size:
            raise ValueError(
                f"expected {self.size * self.size} cells, got {len(self.cells)}"
            )

    @classmethod
    def empty(cls, size: int = DEFAULT_BOARD_SIZE, win_length: Optional[int] = None) -> Board:
        """
        Create an empty board.

        Args:
            size: Number of rows (and columns)
            win_length: Marks in a row needed to win (defaults to size)

        Returns:
            Empty Board
        """
        return cls((None,) * (size * size), size, win_length or size)

    @classmethod
    def from_cells(
        cls,
        cells: Sequence[Optional[Mark]],
        win_length: Optional[int] = None
    ) -> Board:
        size = math.isqrt(len(cells))
        if size * size != len(cells):
            raise ValueError(f"{len(cells)} cells do not form a square board")
        return cls(tuple(cells), size, win_length or size)

    @classmethod
    def from_string(cls, text: str, win_length: Optional[int] = None) -> Board:
        """
        Parse a board such as ``"XO_ _X_ O__"`` or ``"[X,O,_,_,X,_,O,_,_]"``.

        X and O (either case) are marks; ``_``, ``.`` and ``-`` are empty
        cells. Whitespace, commas, pipes, slashes and brackets are ignored.

        Args:
            text: Board text, read row by row
            win_length: Marks in a row needed to win (defaults to the size)

        Returns:
            Parsed Board
        """
        chars = [c for c in text if c not in _SEPARATORS]
        return cls.from_cells([_parse_cell(c) for c in chars], win_length)

    @property
    def cell_count(self) -> int:
        return self.size * self.size

    def counts(self) -> Tuple[int, int]:
        """Get the number of X and O marks on the board."""
        x = sum(1 for c in self.cells if c is Mark.X)
        o = sum(1 for c in self.cells if c is Mark.O)
        return x, o

    def empty_cells(self) -> List[int]:
        """Get the indices of empty cells in ascending order."""
        return [i for i, c in enumerate(self.cells) if c is None]

    def with_mark(self, index: int, mark: Mark) -> Board:
        """Get a copy of the board with one more mark placed (no validation)."""
        cells = list(self.cells)
        cells[index] = mark
        return Board(tuple(cells), self.size, self.win_length)

    def to_string(self, row_separator: str = " ") -> str:
        rows = []
        for r in range(self.size):
            row = self.cells[r * self.size:(r + 1) * self.size]
            rows.append("".join(c.value if c else EMPTY_CELL_DISPLAY for c in row))
        return row_separator.join(rows)

    def __str__(self) -> str:
        return self.to_string("\n")


def index_to_coord(index: int, size: int = DEFAULT_BOARD_SIZE) -> str:
    """
    Convert a cell index to the 1-based ``(row,col)`` label shown to learners.

    Args:
        index: Cell index, row by row
        size: Board size

    Returns:
        Coordinate label such as ``"(1,3)"``
    """
    return f"({index // size + 1},{index % size + 1})"


@lru_cache(maxsize=None)
def winning_lines(size: int, win_length: int) -> Tuple[Tuple[int, ...], ...]:
    """
    Compute every run of ``win_length`` cells on a ``size x size`` board.

    Rows come first, then columns, then both diagonal directions, matching
    the classic 3x3 line order.

    Returns:
        Tuple of cell-index tuples
    """
    directions = [(0, 1), (1, 0), (1, 1), (1, -1)]
    lines = []
    for dr, dc in directions:
        for r in range(size):
            for c in range(size):
                end_r = r + dr * (win_length - 1)
                end_c = c + dc * (win_length - 1)
                if not (0 <= end_r < size and 0 <= end_c < size):
                    continue
                lines.append(tuple(
                    (r + dr * k) * size + (c + dc * k) for k in range(win_length)
                ))
    return tuple(lines)


class GameRules(ABC):
    """
    Capability set a finite, two-player, alternating game must supply.

    Implementations must be pure: every method depends only on its
    arguments and never mutates a state.
    """

    @abstractmethod
    def legal_moves(self, state: Board) -> List[int]:
        """Enumerate legal moves in a fixed order."""

    @abstractmethod
    def apply(self, state: Board, move: int, side: Mark) -> Board:
        """Produce the successor state, raising InvalidMoveError on illegal moves."""

    @abstractmethod
    def terminal_outcome(self, state: Board) -> Optional[Outcome]:
        """Get the decided outcome, or None while the game is in progress."""

    @abstractmethod
    def side_to_move(self, state: Board) -> Mark:
        """Get the side that acts next."""

    def is_terminal(self, state: Board) -> bool:
        return self.terminal_outcome(state) is not None


class TicTacToe(GameRules):
    """
    k-in-a-row on an n x n board; 3x3 with three in a row is tic-tac-toe.

    The geometry comes from each Board, so one rules object serves boards
    of any size.
    """

    def legal_moves(self, state: Board) -> List[int]:
        """
        Get every empty cell.

        A finished game has no legal moves even if cells remain empty.

        Args:
            state: Position to move from

        Returns:
            Empty cell indices in ascending order
        """
        if self._winner(state) is not None:
            return []
        return state.empty_cells()

    def apply(self, state: Board, move: int, side: Mark) -> Board:
        """
        Place a mark on an empty cell.

        Args:
            state: Position before the move
            move: Cell index
            side: Mark to place

        Returns:
            New Board with the mark placed

        Raises:
            InvalidMoveError: If the cell is outside the board or occupied
        """
        if not 0 <= move < state.cell_count:
            raise InvalidMoveError(move, "outside the board")
        if state.cells[move] is not None:
            raise InvalidMoveError(move, f"cell already holds {state.cells[move].value}")
        return state.with_mark(move, side)

    def terminal_outcome(self, state: Board) -> Optional[Outcome]:
        winner = self._winner(state)
        if winner is not None:
            return Outcome.win_for(winner)
        if all(c is not None for c in state.cells):
            return Outcome.DRAW
        return None

    def side_to_move(self, state: Board) -> Mark:
        x, o = state.counts()
        return Mark.X if x <= o else Mark.O

    def _winner(self, state: Board) -> Optional[Mark]:
        cells = state.cells
        for line in winning_lines(state.size, state.win_length):
            first = cells[line[0]]
            if first is not None and all(cells[i] is first for i in line[1:]):
                return first
        return None


def play_moves(rules: GameRules, state: Board, moves: Iterable[int]) -> Board:
    """
    Play a sequence of moves, each by the side to move.

    Args:
        rules: Game rules
        state: Starting position
        moves: Cell indices to play in order

    Returns:
        Resulting position
    """
    for move in moves:
        state = rules.apply(state, move, rules.side_to_move(state))
    return state
