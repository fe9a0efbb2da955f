"""
Read-only views of a search published to observers.

A SearchSnapshot copies everything a display needs out of the live tree:
per-move statistics at the root, the recommended move, and, during a
visible iteration, the current phase and its highlights. Observers never
see the live tree, so they cannot mutate it.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from uct_lab.core.game import Board, Mark
from uct_lab.mcts.node import MCTSNode, SearchTree
from uct_lab.mcts.search import Phase, best_move


@dataclass(frozen=True)
class MoveStatistics:
    """Statistics of one root move."""
    move: int
    visits: int
    total_reward: float
    wins: int
    draws: int
    losses: int

    @classmethod
    def from_node(cls, node: MCTSNode) -> MoveStatistics:
        return cls(node.move, node.visits, node.total_reward, node.wins, node.draws, node.losses)

    @property
    def q_value(self) -> float:
        """Average reward from the root's perspective (0.0 if unvisited)."""
        return self.total_reward / self.visits if self.visits else 0.0

    def share_of(self, total: int) -> float:
        """Fraction of ``total`` visits that went through this move."""
        return self.visits / total if total else 0.0


@dataclass(frozen=True)
class SearchSnapshot:
    """
    Immutable picture of a search at one moment.

    ``moves`` is keyed by move in ascending order and holds only expanded
    root moves. ``simulation_overlay`` has one entry per cell and shows the
    marks placed by the rollout in progress on cells that are empty on the
    displayed board.
    """
    board: Board
    to_move: Mark
    phase: Phase = Phase.IDLE
    moves: Dict[int, MoveStatistics] = field(default_factory=dict)
    best_move: Optional[int] = None
    root_visits: int = 0
    total_iterations: int = 0
    node_count: int = 1
    selected_root_move: Optional[int] = None
    expanded_root_move: Optional[int] = None
    simulation_overlay: Tuple[Optional[Mark], ...] = ()

    @classmethod
    def from_tree(
        cls,
        tree: SearchTree,
        board: Board,
        total_iterations: int,
        phase: Phase = Phase.IDLE,
        selected_root_move: Optional[int] = None,
        expanded_root_move: Optional[int] = None,
        simulation_overlay: Optional[Tuple[Optional[Mark], ...]] = None,
    ) -> SearchSnapshot:
        """
        Copy the public state of a tree.

        Args:
            tree: Live search tree
            board: Displayed board (the tree's root position)
            total_iterations: Iterations accumulated by the current tree
            phase: Phase of the visible iteration in progress
            selected_root_move: Root move selection descended through
            expanded_root_move: Root move expansion created
            simulation_overlay: Marks of the rollout in progress

        Returns:
            SearchSnapshot
        """
        moves = {
            move: MoveStatistics.from_node(child)
            for move, child in tree.root_children().items()
        }
        return cls(
            board=board,
            to_move=tree.perspective,
            phase=phase,
            moves=moves,
            best_move=best_move(tree),
            root_visits=tree.root.visits,
            total_iterations=total_iterations,
            node_count=len(tree),
            selected_root_move=selected_root_move,
            expanded_root_move=expanded_root_move,
            simulation_overlay=simulation_overlay or (None,) * board.cell_count,
        )

    @property
    def max_visits(self) -> int:
        return max((s.visits for s in self.moves.values()), default=0)

    def heat(self, move: int) -> float:
        """Visits of a move relative to the most visited move, in [0, 1]."""
        stats = self.moves.get(move)
        top = self.max_visits
        return stats.visits / top if stats and top else 0.0


def visit_distribution(snapshot: SearchSnapshot) -> Dict[int, float]:
    """
    Get the share of root visits that went through each expanded move.

    Returns:
        Dictionary mapping moves to visit shares summing to 1 (empty if the
        root has no visited children)
    """
    moves = list(snapshot.moves)
    visits = np.array([snapshot.moves[m].visits for m in moves], dtype=np.float64)
    total = visits.sum()
    if total == 0:
        return {}
    shares = visits / total
    return {m: float(s) for m, s in zip(moves, shares)}


def visit_entropy(snapshot: SearchSnapshot, normalized: bool = True) -> float:
    """
    Shannon entropy of the root visit distribution.

    High values mean visits are spread evenly across moves; low values mean
    the search concentrated on a few moves.

    Args:
        snapshot: Search snapshot
        normalized: Divide by log(number of legal root moves) so the result
            lies in [0, 1]

    Returns:
        Entropy (0.0 when fewer than two moves are possible)
    """
    shares = np.array(list(visit_distribution(snapshot).values()), dtype=np.float64)
    shares = shares[shares > 0]
    if shares.size == 0:
        return 0.0
    entropy = float(-(shares * np.log(shares)).sum())
    if not normalized:
        return entropy
    legal = len(snapshot.board.empty_cells())
    if legal < 2:
        return 0.0
    return entropy / float(np.log(legal))
