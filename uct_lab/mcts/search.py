"""
Monte Carlo Tree Search (MCTS) algorithm with UCT selection.

This module implements one search iteration as the four standard phases:
1. Selection: Descend from the root by UCT until a node can be expanded
2. Expansion: Create one child for a randomly drawn untried move
3. Simulation: Play uniformly random moves to the end of the game
4. Backpropagation: Update statistics from the new node up to the root

An iteration can run back to back (``run_iteration``) or as a generator
that stops at every point where an observer may look at the tree or pause
the run (``iteration_steps``). Both draw from the random source in the
same order, so they grow identical trees from the same seed.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generator, List, Optional, Tuple
import math

from uct_lab.core.constants import TIE_EPSILON
from uct_lab.core.game import Board, GameRules, Mark, Outcome
from uct_lab.mcts.node import MCTSNode, SearchTree, ROOT_INDEX
from uct_lab.mcts.random_source import Mulberry32


class Phase(Enum):
    """Enum representing the phase a visible iteration is in."""
    IDLE = "idle"
    SELECTION = "selection"
    EXPANSION = "expansion"
    SIMULATION = "simulation"
    BACKPROPAGATION = "backpropagation"


@dataclass(frozen=True)
class Rollout:
    """Result of one random playout."""
    outcome: Outcome
    trace: Tuple[Tuple[int, Mark], ...]
    """Moves played, as (cell, mark) pairs, in order"""


@dataclass(frozen=True)
class IterationResult:
    """What one iteration did to the tree."""
    leaf: int
    """Arena index of the node the rollout started from"""
    selected_root_move: Optional[int]
    expanded_root_move: Optional[int]
    rollout: Rollout


@dataclass(frozen=True)
class PhaseEvent:
    """
    A suspension point inside a visible iteration.

    ``completed`` marks the last event of a phase; the other events are
    intermediate steps (one per selection descent, one per rollout move).
    """
    phase: Phase
    node: int
    completed: bool = False
    root_move: Optional[int] = None
    trace_step: Optional[Tuple[int, Mark]] = None
    outcome: Optional[Outcome] = None


def uct_score(
    parent_visits: int,
    child_visits: int,
    child_reward: float,
    exploration_weight: float
) -> float:
    """
    Calculate the UCT score of a child.

    UCT = Q + C * sqrt(ln(parent_visits + 1) / (child_visits + 1))

    The +1 offsets keep the score finite for unvisited children, so no
    separate "visit every child once" phase is needed.

    Args:
        parent_visits: Visit count of the parent node
        child_visits: Visit count of the child
        child_reward: Total reward of the child, from the root's perspective
        exploration_weight: Exploration constant C (0 = pure exploitation)

    Returns:
        UCT score
    """
    q = child_reward / child_visits if child_visits > 0 else 0.0
    return q + exploration_weight * math.sqrt(math.log(parent_visits + 1) / (child_visits + 1))


def _can_descend(node: MCTSNode) -> bool:
    return not node.is_terminal() and node.is_fully_expanded() and bool(node.children)


def select_child(
    tree: SearchTree,
    index: int,
    exploration_weight: float,
    rng: Mulberry32,
    tie_epsilon: float = TIE_EPSILON
) -> int:
    """
    Pick the child with the highest UCT score.

    A child whose score ties the best so far (within ``tie_epsilon``)
    replaces it on a coin flip, so equal children are not chosen by
    expansion order. The coin is only drawn when a tie is seen.

    Args:
        tree: Search tree
        index: Arena index of the node to descend from
        exploration_weight: Exploration constant C
        rng: Random source
        tie_epsilon: Tolerance for treating two scores as equal

    Returns:
        Arena index of the selected child
    """
    node = tree.node(index)
    if not node.children:
        raise ValueError("Cannot select child from node with no children")

    best: Optional[MCTSNode] = None
    best_value = -math.inf
    for child in tree.children_of(index):
        value = uct_score(node.visits, child.visits, child.total_reward, exploration_weight)
        if value > best_value or (abs(value - best_value) < tie_epsilon and rng.coin()):
            best_value = value
            best = child
    return best.index


def select_node(
    tree: SearchTree,
    exploration_weight: float,
    rng: Mulberry32,
    tie_epsilon: float = TIE_EPSILON
) -> int:
    """
    Descend from the root until reaching a node that is terminal, still has
    untried moves, or has no children yet.

    Returns:
        Arena index of the selected node
    """
    index = ROOT_INDEX
    while _can_descend(tree.node(index)):
        index = select_child(tree, index, exploration_weight, rng, tie_epsilon)
    return index


def expand_node(tree: SearchTree, index: int, rng: Mulberry32) -> int:
    """
    Expand a node by one uniformly drawn untried move.

    Terminal and fully expanded nodes are left alone.

    Args:
        tree: Search tree
        index: Arena index of the node to expand
        rng: Random source

    Returns:
        Arena index of the new child, or ``index`` if nothing was expanded
    """
    node = tree.node(index)
    if node.is_terminal() or not node.has_untried_moves():
        return index
    move = rng.choice(node.untried)
    return tree.add_child(index, move)


def simulate_game(
    state: Board,
    rules: GameRules,
    rng: Mulberry32,
    side: Optional[Mark] = None
) -> Rollout:
    """
    Play uniformly random moves for both sides until the game ends.

    The playout makes at most one move per empty cell of ``state`` and
    none at all if ``state`` is already decided.

    Args:
        state: Starting position
        rules: Game rules
        rng: Random source
        side: Side to move first (derived from the board if omitted)

    Returns:
        Rollout with the outcome and the moves played
    """
    if side is None:
        side = rules.side_to_move(state)
    trace: List[Tuple[int, Mark]] = []
    outcome = rules.terminal_outcome(state)
    while outcome is None:
        move = rng.choice(rules.legal_moves(state))
        state = rules.apply(state, move, side)
        trace.append((move, side))
        side = side.opponent
        outcome = rules.terminal_outcome(state)
    return Rollout(outcome, tuple(trace))


def backpropagate(tree: SearchTree, index: int, outcome: Outcome) -> None:
    """
    Update statistics from a node up to the root, inclusive.

    Every node scores the outcome from the root side's perspective,
    whichever side is to move at the node itself.

    Args:
        tree: Search tree
        index: Arena index of the node the rollout started from
        outcome: Rollout outcome
    """
    perspective = tree.perspective
    for i in tree.path_to_root(index):
        tree.node(i).update(outcome, perspective)


def _expanded_root_move(tree: SearchTree, before: int, after: int) -> Optional[int]:
    if after != before and tree.node(after).parent == ROOT_INDEX:
        return tree.node(after).move
    return None


def run_iteration(
    tree: SearchTree,
    exploration_weight: float,
    rng: Mulberry32,
    tie_epsilon: float = TIE_EPSILON
) -> IterationResult:
    """
    Run one complete iteration with no intermediate visibility.

    Returns:
        IterationResult describing the iteration
    """
    selected = select_node(tree, exploration_weight, rng, tie_epsilon)
    leaf = expand_node(tree, selected, rng)
    node = tree.node(leaf)
    rollout = simulate_game(node.state, tree.rules, rng, node.to_move)
    backpropagate(tree, leaf, rollout.outcome)
    return IterationResult(
        leaf=leaf,
        selected_root_move=tree.root_move_of(selected),
        expanded_root_move=_expanded_root_move(tree, selected, leaf),
        rollout=rollout,
    )


def iteration_steps(
    tree: SearchTree,
    exploration_weight: float,
    rng: Mulberry32,
    tie_epsilon: float = TIE_EPSILON
) -> Generator[PhaseEvent, None, IterationResult]:
    """
    Run one iteration as a state machine that stops at every suspension point.

    Events, in order:
    - SELECTION before each descent step, then a completed SELECTION event
      carrying the root move descended through (if any)
    - one completed EXPANSION event carrying the root move created (if any)
    - SIMULATION for each rollout move, then a completed SIMULATION event
    - a completed BACKPROPAGATION event, yielded after statistics are updated

    Closing the generator before the BACKPROPAGATION event abandons the
    iteration without touching any statistics (an expanded child stays in
    the tree with zero visits).

    Returns:
        IterationResult, as the generator's return value
    """
    index = ROOT_INDEX
    while _can_descend(tree.node(index)):
        yield PhaseEvent(Phase.SELECTION, index)
        index = select_child(tree, index, exploration_weight, rng, tie_epsilon)
    selected_root_move = tree.root_move_of(index)
    yield PhaseEvent(Phase.SELECTION, index, completed=True, root_move=selected_root_move)

    selected = index
    index = expand_node(tree, selected, rng)
    expanded_root_move = _expanded_root_move(tree, selected, index)
    yield PhaseEvent(Phase.EXPANSION, index, completed=True, root_move=expanded_root_move)

    node = tree.node(index)
    rollout = simulate_game(node.state, tree.rules, rng, node.to_move)
    for step in rollout.trace:
        yield PhaseEvent(Phase.SIMULATION, index, trace_step=step)
    yield PhaseEvent(Phase.SIMULATION, index, completed=True, outcome=rollout.outcome)

    backpropagate(tree, index, rollout.outcome)
    yield PhaseEvent(Phase.BACKPROPAGATION, index, completed=True, outcome=rollout.outcome)

    return IterationResult(index, selected_root_move, expanded_root_move, rollout)


def best_move(tree: SearchTree) -> Optional[int]:
    """
    Get the best move from the root based on visit counts.

    Visit count is steadier than average reward at low iteration counts.
    Equal visit counts resolve to the lowest move index.

    Returns:
        The best move, or None if the root has no children
    """
    best: Optional[int] = None
    best_visits = -1
    for move, child in tree.root_children().items():
        if child.visits > best_visits:
            best_visits = child.visits
            best = move
    return best


def count_nodes(tree: SearchTree) -> int:
    """Count the total number of nodes in the tree."""
    return len(tree)


def get_principal_variation(tree: SearchTree, max_depth: int = 10) -> List[Tuple[int, float]]:
    """
    Get the principal variation (most visited path) from the root.

    Ties between equally visited children go to the lowest move index.

    Args:
        tree: Search tree
        max_depth: Maximum depth to explore

    Returns:
        List of (move, value) pairs; values are from the root's perspective
    """
    result = []
    current = tree.root
    while current.children and len(result) < max_depth:
        best_child = max(
            (tree.node(i) for i in current.children.values()),
            key=lambda c: (c.visits, -c.move)
        )
        if best_child.visits == 0:
            break
        result.append((best_child.move, best_child.q_value))
        current = best_child
    return result


def get_action_statistics(
    tree: SearchTree,
    exploration_weight: float = 0.0
) -> Dict[int, Dict[str, Any]]:
    """
    Get statistics for all moves from the root.

    Args:
        tree: Search tree
        exploration_weight: C used for the reported UCT score

    Returns:
        Dictionary mapping moves to statistics
    """
    root = tree.root
    result = {}
    for move, child in tree.root_children().items():
        result[move] = {
            "visits": child.visits,
            "reward": child.total_reward,
            "value": child.q_value,
            "wins": child.wins,
            "draws": child.draws,
            "losses": child.losses,
            "uct": uct_score(root.visits, child.visits, child.total_reward, exploration_weight),
        }
    return result
