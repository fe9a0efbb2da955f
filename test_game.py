#!/usr/bin/env python
"""
Tests for the tic-tac-toe game layer.

This script checks:
1. Board parsing, rendering and validation
2. Turn parity and legal moves
3. Move application and illegal moves
4. Win, draw and in-progress detection
"""
import unittest

from uct_lab.core.game import (
    Board, Mark, Outcome, TicTacToe, index_to_coord, winning_lines, play_moves
)
from uct_lab.core.exceptions import InvalidMoveError, UctLabError


class TestBoard(unittest.TestCase):
    """Test case for the Board snapshot."""

    def test_empty_board(self):
        """Test empty board creation."""
        board = Board.empty()
        self.assertEqual(board.size, 3)
        self.assertEqual(board.win_length, 3)
        self.assertEqual(board.cell_count, 9)
        self.assertEqual(board.empty_cells(), list(range(9)))
        self.assertEqual(board.counts(), (0, 0))

    def test_from_string_formats(self):
        """Test that the common board notations parse to the same board."""
        spaced = Board.from_string("XO_ _X_ O__")
        listed = Board.from_string("[X,O,_, _,X,_, O,_,_]")
        dotted = Board.from_string("xo.\n.x.\no..")
        self.assertEqual(spaced, listed)
        self.assertEqual(spaced, dotted)
        self.assertEqual(spaced.cells[0], Mark.X)
        self.assertEqual(spaced.cells[1], Mark.O)
        self.assertIsNone(spaced.cells[2])
        self.assertEqual(spaced.counts(), (2, 2))

    def test_to_string(self):
        """Test rendering a board back to text."""
        board = Board.from_string("XO_ _X_ O__")
        self.assertEqual(board.to_string(), "XO_ _X_ O__")
        self.assertEqual(str(board), "XO_\n_X_\nO__")
        self.assertEqual(Board.from_string(board.to_string()), board)

    def test_invalid_boards(self):
        """Test that malformed boards are rejected."""
        with self.assertRaises(ValueError):
            Board.from_string("XO_ _X_ O_")  # 8 cells
        with self.assertRaises(ValueError):
            Board.from_string("XQ_ _X_ O__")  # unknown character
        with self.assertRaises(ValueError):
            Board.empty(size=3, win_length=4)
        with self.assertRaises(ValueError):
            Board.empty(size=1)

    def test_board_is_immutable(self):
        """Test that placing a mark produces a new board."""
        board = Board.empty()
        after = board.with_mark(4, Mark.X)
        self.assertIsNone(board.cells[4])
        self.assertEqual(after.cells[4], Mark.X)
        with self.assertRaises(AttributeError):
            board.size = 4

    def test_index_to_coord(self):
        """Test 1-based coordinate labels."""
        self.assertEqual(index_to_coord(0), "(1,1)")
        self.assertEqual(index_to_coord(5), "(2,3)")
        self.assertEqual(index_to_coord(8), "(3,3)")
        self.assertEqual(index_to_coord(7, size=4), "(2,4)")


class TestTicTacToe(unittest.TestCase):
    """Test case for the tic-tac-toe rules."""

    def setUp(self):
        """Set up test fixtures."""
        self.rules = TicTacToe()

    def test_side_to_move(self):
        """Test that X moves first and turns alternate by mark count."""
        self.assertEqual(self.rules.side_to_move(Board.empty()), Mark.X)
        self.assertEqual(self.rules.side_to_move(Board.from_string("X__ ___ ___")), Mark.O)
        self.assertEqual(self.rules.side_to_move(Board.from_string("XO_ _X_ O__")), Mark.X)

    def test_legal_moves(self):
        """Test that legal moves are the empty cells in ascending order."""
        board = Board.from_string("XO_ _X_ O__")
        self.assertEqual(self.rules.legal_moves(board), [2, 3, 5, 7, 8])

    def test_no_legal_moves_after_win(self):
        """Test that a won game has no legal moves even with empty cells."""
        board = Board.from_string("XXX OO_ ___")
        self.assertEqual(self.rules.legal_moves(board), [])
        self.assertTrue(self.rules.is_terminal(board))

    def test_apply(self):
        """Test placing a mark."""
        board = Board.from_string("XO_ _X_ O__")
        after = self.rules.apply(board, 8, Mark.X)
        self.assertEqual(after.cells[8], Mark.X)
        self.assertIsNone(board.cells[8])

    def test_apply_invalid(self):
        """Test that occupied and out-of-range cells are rejected."""
        board = Board.from_string("XO_ _X_ O__")
        with self.assertRaises(InvalidMoveError) as ctx:
            self.rules.apply(board, 0, Mark.X)
        self.assertEqual(ctx.exception.move, 0)
        with self.assertRaises(InvalidMoveError):
            self.rules.apply(board, 9, Mark.X)
        with self.assertRaises(InvalidMoveError):
            self.rules.apply(board, -1, Mark.X)
        # Also catchable as the package base class and as ValueError
        with self.assertRaises(UctLabError):
            self.rules.apply(board, 1, Mark.O)
        with self.assertRaises(ValueError):
            self.rules.apply(board, 1, Mark.O)

    def test_terminal_outcomes(self):
        """Test win, draw and in-progress detection."""
        cases = {
            "XXX OO_ ___": Outcome.X,   # row
            "OX_ OX_ O_X": Outcome.O,   # column
            "XO_ OX_ __X": Outcome.X,   # diagonal
            "XXO _O_ O_X": Outcome.O,   # anti-diagonal
            "XOX XOO OXX": Outcome.DRAW,
            "XO_ _X_ O__": None,
            "___ ___ ___": None,
        }
        for text, expected in cases.items():
            with self.subTest(board=text):
                self.assertEqual(self.rules.terminal_outcome(Board.from_string(text)), expected)

    def test_outcome_rewards(self):
        """Test rewards from each side's perspective."""
        self.assertEqual(Outcome.X.reward_for(Mark.X), 1.0)
        self.assertEqual(Outcome.X.reward_for(Mark.O), 0.0)
        self.assertEqual(Outcome.DRAW.reward_for(Mark.X), 0.5)
        self.assertEqual(Outcome.DRAW.reward_for(Mark.O), 0.5)
        self.assertEqual(Outcome.O.winner, Mark.O)
        self.assertIsNone(Outcome.DRAW.winner)

    def test_winning_lines(self):
        """Test line enumeration for the classic and larger boards."""
        lines = winning_lines(3, 3)
        self.assertEqual(len(lines), 8)
        self.assertEqual(lines[0], (0, 1, 2))
        self.assertIn((0, 4, 8), lines)
        self.assertIn((2, 4, 6), lines)
        # 4x4 with three in a row: 8 per direction on rows/cols, 4 per diagonal
        self.assertEqual(len(winning_lines(4, 3)), 8 + 8 + 4 + 4)

    def test_larger_board(self):
        """Test k-in-a-row on a 4x4 board."""
        board = Board.empty(size=4, win_length=3)
        board = play_moves(self.rules, board, [0, 4, 1, 5, 2])
        self.assertEqual(self.rules.terminal_outcome(board), Outcome.X)

    def test_play_moves(self):
        """Test playing a sequence with alternating sides."""
        board = play_moves(self.rules, Board.empty(), [4, 0, 8])
        self.assertEqual(board.to_string(), "O__ _X_ __X")
        self.assertEqual(self.rules.side_to_move(board), Mark.O)


if __name__ == "__main__":
    unittest.main()
