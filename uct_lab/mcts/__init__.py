"""
Monte Carlo Tree Search (MCTS) with UCT selection.

This package provides a deterministic, pausable MCTS engine for small
two-player games. The MCTS algorithm works by:

1. Selection: Starting from the root node, select child nodes using UCT until reaching
   a terminal node or a node that hasn't been fully expanded.
2. Expansion: Create a new child node by taking a randomly drawn untried move.
3. Simulation: From the new node, perform a uniformly random playout to the end of the game.
4. Backpropagation: Update the statistics of all nodes in the path with the result,
   always scored from the perspective of the side to move at the root.

The SearchController runs iterations one visible step at a time or in
batches, with pause, resume and cancel.
"""

from uct_lab.mcts.node import MCTSNode, SearchTree
from uct_lab.mcts.config import MCTSConfig
from uct_lab.mcts.random_source import Mulberry32
from uct_lab.mcts.search import (
    Phase,
    PhaseEvent,
    Rollout,
    IterationResult,
    uct_score,
    select_child,
    select_node,
    expand_node,
    simulate_game,
    backpropagate,
    run_iteration,
    iteration_steps,
    best_move,
    count_nodes,
    get_action_statistics,
    get_principal_variation,
)
from uct_lab.mcts.snapshot import (
    MoveStatistics,
    SearchSnapshot,
    visit_distribution,
    visit_entropy,
)
from uct_lab.mcts.controller import (
    SearchController,
    RunResult,
    RunStatus,
    RunToken,
)
from uct_lab.mcts.evaluation import (
    MoveEvaluation,
    evaluate_moves,
    recommend_move,
    tally_rollout_log,
    rank_children_by_uct,
)

# Default configuration
DEFAULT_CONFIG = MCTSConfig(
    exploration_weight=1.0,  # UCT exploration constant C
    iterations=50,           # Iterations per run
    seed=42,                 # Seed the random source is reset to on every run
    animate_every=10,        # Animate every 10th iteration of an animated batch
    fresh_each_run=True      # Discard the previous tree before each batch
)

__all__ = [
    'MCTSNode',
    'SearchTree',
    'MCTSConfig',
    'Mulberry32',
    'Phase',
    'PhaseEvent',
    'Rollout',
    'IterationResult',
    'uct_score',
    'select_child',
    'select_node',
    'expand_node',
    'simulate_game',
    'backpropagate',
    'run_iteration',
    'iteration_steps',
    'best_move',
    'count_nodes',
    'get_action_statistics',
    'get_principal_variation',
    'MoveStatistics',
    'SearchSnapshot',
    'visit_distribution',
    'visit_entropy',
    'SearchController',
    'RunResult',
    'RunStatus',
    'RunToken',
    'MoveEvaluation',
    'evaluate_moves',
    'recommend_move',
    'tally_rollout_log',
    'rank_children_by_uct',
    'DEFAULT_CONFIG',
]
