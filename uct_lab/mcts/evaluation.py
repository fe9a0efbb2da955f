"""
Search-free evaluation helpers used alongside the tree search.

- Flat Monte Carlo: score every legal move by random playouts, no tree
- Backpropagation bookkeeping: tally a log of rollouts into N, W and Q
- UCT ranking: order a parent's children by UCT score
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from uct_lab.core.constants import DEFAULT_SEED
from uct_lab.core.game import Board, GameRules, Outcome, TicTacToe
from uct_lab.mcts.random_source import Mulberry32
from uct_lab.mcts.search import simulate_game, uct_score

# Q values closer than this count as equal when tallying rollouts
Q_TIE_EPSILON = 1e-9

OUTCOME_LETTER_REWARDS: Dict[str, float] = {"W": 1.0, "D": 0.5, "L": 0.0}


@dataclass(frozen=True)
class MoveEvaluation:
    """Playout results of one candidate move, from the mover's perspective."""
    move: int
    wins: int
    draws: int
    losses: int

    @property
    def total(self) -> int:
        return self.wins + self.draws + self.losses

    @property
    def score(self) -> float:
        """Win = 1, draw = 0.5, loss = 0, averaged over playouts."""
        return (self.wins + 0.5 * self.draws) / self.total if self.total else 0.0


def evaluate_moves(
    board: Board,
    sims_per_move: int,
    rules: Optional[GameRules] = None,
    rng: Optional[Mulberry32] = None,
    seed: int = DEFAULT_SEED
) -> Dict[int, MoveEvaluation]:
    """
    Flat Monte Carlo: play each legal move, then finish the game at random.

    Args:
        board: Position to evaluate
        sims_per_move: Random playouts per candidate move
        rules: Game rules (tic-tac-toe by default)
        rng: Random source (a new one seeded with ``seed`` if omitted)
        seed: Seed used when no random source is given

    Returns:
        Dictionary mapping each legal move to its evaluation, in move order
    """
    if sims_per_move <= 0:
        raise ValueError("sims_per_move must be positive")
    rules = rules or TicTacToe()
    rng = rng or Mulberry32(seed)
    player = rules.side_to_move(board)

    results = {}
    for move in rules.legal_moves(board):
        after = rules.apply(board, move, player)
        wins = draws = losses = 0
        for _ in range(sims_per_move):
            outcome = simulate_game(after, rules, rng, player.opponent).outcome
            if outcome is Outcome.DRAW:
                draws += 1
            elif outcome.winner is player:
                wins += 1
            else:
                losses += 1
        results[move] = MoveEvaluation(move, wins, draws, losses)
    return results


def recommend_move(evaluations: Mapping[int, MoveEvaluation]) -> Optional[int]:
    """
    Pick the move with the highest flat Monte Carlo score.

    Ties go to the first move in iteration order.

    Returns:
        Recommended move, or None if there is nothing to choose from
    """
    best = None
    best_score = float("-inf")
    for move, evaluation in evaluations.items():
        if evaluation.score > best_score:
            best_score = evaluation.score
            best = move
    return best


@dataclass(frozen=True)
class ChildTally:
    """Backpropagated totals of one child."""
    visits: int
    total_reward: float

    @property
    def q_value(self) -> float:
        return self.total_reward / self.visits if self.visits else 0.0


@dataclass(frozen=True)
class RolloutTally:
    """Totals of a rollout log, per child and at the root."""
    children: Dict[str, ChildTally]
    root_visits: int
    root_reward: float
    best: str


def tally_rollout_log(
    log: Iterable[Tuple[str, str]],
    labels: Optional[Sequence[str]] = None
) -> RolloutTally:
    """
    Backpropagate a log of rollouts taken from a root's children.

    Each entry is ``(child_label, outcome_letter)`` with outcome letters
    W (1), D (0.5) and L (0). The best child has the highest Q; ties go to
    more visits, then to the alphabetically first label.

    Args:
        log: Rollout entries in order
        labels: Children to report even if they never appear in the log

    Returns:
        RolloutTally
    """
    visits: Dict[str, int] = {label: 0 for label in labels or ()}
    rewards: Dict[str, float] = {label: 0.0 for label in labels or ()}
    root_visits = 0
    root_reward = 0.0
    for label, letter in log:
        try:
            reward = OUTCOME_LETTER_REWARDS[letter]
        except KeyError:
            raise ValueError(f"Unknown outcome letter: {letter!r}") from None
        visits[label] = visits.get(label, 0) + 1
        rewards[label] = rewards.get(label, 0.0) + reward
        root_visits += 1
        root_reward += reward

    if not visits:
        raise ValueError("Cannot tally an empty log without labels")

    children = {label: ChildTally(visits[label], rewards[label]) for label in sorted(visits)}
    ordered = list(children)
    best = ordered[0]
    for label in ordered[1:]:
        q, best_q = children[label].q_value, children[best].q_value
        if q > best_q and abs(q - best_q) >= Q_TIE_EPSILON:
            best = label
        elif abs(q - best_q) < Q_TIE_EPSILON and children[label].visits > children[best].visits:
            best = label
    return RolloutTally(children, root_visits, root_reward, best)


def rank_children_by_uct(
    parent_visits: int,
    children: Mapping[str, Tuple[int, float]],
    exploration_weight: float
) -> List[Tuple[str, float]]:
    """
    Order children by UCT score, highest first.

    Children with equal scores keep their input order.

    Args:
        parent_visits: Visit count of the parent
        children: Mapping of label to (visits, total reward)
        exploration_weight: Exploration constant C

    Returns:
        List of (label, score) pairs
    """
    scored = [
        (label, uct_score(parent_visits, n, w, exploration_weight))
        for label, (n, w) in children.items()
    ]
    return sorted(scored, key=lambda item: item[1], reverse=True)
