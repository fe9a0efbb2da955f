"""
Monte Carlo Tree Search nodes and the tree that owns them.

This module defines the MCTSNode class, which holds one position and the
statistics of the simulations that passed through it, and the SearchTree
arena that stores every node of one search.

Nodes refer to each other by arena index. A child's ``parent`` index is
only used to walk back up during backpropagation and to find which root
move a node descends from; the arena alone owns the nodes.
"""
from __future__ import annotations
from typing import Dict, Iterator, List, Optional

from uct_lab.core.game import Board, GameRules, Mark, Outcome, TicTacToe
from uct_lab.core.exceptions import InvalidMoveError, TreeInvariantError

ROOT_INDEX = 0


class MCTSNode:
    """
    A node in the Monte Carlo Tree Search.

    Each node represents a game state and tracks statistics about
    simulations that pass through it. Rewards are always measured from the
    perspective of the side to move at the root of the tree.
    """

    __slots__ = (
        "index", "state", "to_move", "parent", "move", "children", "untried",
        "visits", "total_reward", "wins", "draws", "losses", "terminal"
    )

    def __init__(
        self,
        index: int,
        state: Board,
        to_move: Mark,
        legal_moves: List[int],
        terminal: Optional[Outcome],
        parent: Optional[int] = None,
        move: Optional[int] = None,
    ):
        """
        Initialize an MCTS node.

        Args:
            index: Position of this node in its tree's arena
            state: The game state this node represents
            to_move: Side to act from this state
            legal_moves: Legal moves from this state, all initially untried
            terminal: Decided outcome if the game is over here, else None
            parent: Arena index of the parent node (None for the root)
            move: The move that led to this state (None for the root)
        """
        self.index = index
        self.state = state
        self.to_move = to_move
        self.parent = parent
        self.move = move

        self.children: Dict[int, int] = {}
        self.untried: List[int] = list(legal_moves)

        # Node statistics
        self.visits = 0
        self.total_reward = 0.0
        self.wins = 0
        self.draws = 0
        self.losses = 0

        self.terminal = terminal

    def is_terminal(self) -> bool:
        return self.terminal is not None

    def has_untried_moves(self) -> bool:
        return bool(self.untried)

    def is_fully_expanded(self) -> bool:
        """
        Check if all possible moves from this node have been tried.

        Returns:
            True if every legal move already has a child
        """
        return not self.untried

    @property
    def q_value(self) -> float:
        """Average reward, or 0.0 for an unvisited node."""
        return self.total_reward / self.visits if self.visits > 0 else 0.0

    def update(self, outcome: Outcome, perspective: Mark) -> None:
        """
        Record one simulated game.

        This implements one step of the backpropagation phase of MCTS.

        Args:
            outcome: Result of the rollout
            perspective: Side to move at the root of the tree
        """
        self.visits += 1
        self.total_reward += outcome.reward_for(perspective)
        if outcome is Outcome.DRAW:
            self.draws += 1
        elif outcome.winner is perspective:
            self.wins += 1
        else:
            self.losses += 1

    def __str__(self) -> str:
        return (f"MCTSNode(index={self.index}, move={self.move}, "
                f"to_move={self.to_move.value}, "
                f"visits={self.visits}, "
                f"reward={self.total_reward:.2f}, "
                f"children={len(self.children)}, "
                f"untried={len(self.untried)})")


class SearchTree:
    """
    Arena holding every node of one search, rooted at a fixed position.

    The root is always at index 0. A tree is never re-rooted: when the
    position changes, a new tree is built instead.
    """

    def __init__(self, state: Board, rules: Optional[GameRules] = None):
        """
        Create a tree containing only the root node.

        Args:
            state: Position at the root
            rules: Game rules (tic-tac-toe by default)
        """
        self.rules = rules or TicTacToe()
        self._nodes: List[MCTSNode] = []
        self._nodes.append(self._make_node(state, parent=None, move=None))

    def _make_node(self, state: Board, parent: Optional[int], move: Optional[int]) -> MCTSNode:
        return MCTSNode(
            index=len(self._nodes),
            state=state,
            to_move=self.rules.side_to_move(state),
            legal_moves=self.rules.legal_moves(state),
            terminal=self.rules.terminal_outcome(state),
            parent=parent,
            move=move,
        )

    @property
    def root(self) -> MCTSNode:
        return self._nodes[ROOT_INDEX]

    @property
    def perspective(self) -> Mark:
        """Side whose rewards every node accumulates: the side to move at the root."""
        return self.root.to_move

    def node(self, index: int) -> MCTSNode:
        return self._nodes[index]

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[MCTSNode]:
        return iter(self._nodes)

    def add_child(self, parent_index: int, move: int) -> int:
        """
        Expand one untried move of a node into a new child.

        Args:
            parent_index: Arena index of the node to expand
            move: One of the parent's untried moves

        Returns:
            Arena index of the new child

        Raises:
            InvalidMoveError: If the move is not untried at the parent
        """
        parent = self._nodes[parent_index]
        if move not in parent.untried:
            raise InvalidMoveError(move, f"not an untried move of node {parent_index}")

        child_state = self.rules.apply(parent.state, move, parent.to_move)
        parent.untried.remove(move)

        child = self._make_node(child_state, parent=parent_index, move=move)
        self._nodes.append(child)
        parent.children[move] = child.index
        return child.index

    def children_of(self, index: int) -> List[MCTSNode]:
        """Get a node's children in expansion order."""
        return [self._nodes[i] for i in self._nodes[index].children.values()]

    def root_children(self) -> Dict[int, MCTSNode]:
        """Get the root's children keyed by move, in ascending move order."""
        children = self.root.children
        return {move: self._nodes[children[move]] for move in sorted(children)}

    def path_to_root(self, index: int) -> List[int]:
        """Get the arena indices from a node up to the root, inclusive."""
        path = []
        current: Optional[int] = index
        while current is not None:
            path.append(current)
            current = self._nodes[current].parent
        return path

    def root_move_of(self, index: int) -> Optional[int]:
        """
        Find which root move a node descends from.

        Returns:
            The move of the root's child on the path to this node, or None
            for the root itself
        """
        path = self.path_to_root(index)
        if len(path) < 2:
            return None
        return self._nodes[path[-2]].move

    def check_invariants(self) -> None:
        """
        Verify the statistical and structural invariants of every node.

        Raises:
            TreeInvariantError: On the first violated invariant
        """
        seen_children = set()
        for node in self._nodes:
            if node.wins + node.draws + node.losses != node.visits:
                raise TreeInvariantError(node.index, "outcome counters do not sum to visits")
            if not 0.0 <= node.total_reward <= node.visits:
                raise TreeInvariantError(node.index, "total reward outside [0, visits]")

            legal = set(self.rules.legal_moves(node.state))
            untried = set(node.untried)
            expanded = set(node.children)
            if untried & expanded or untried | expanded != legal:
                raise TreeInvariantError(node.index, "untried and children do not partition legal moves")

            child_visits = 0
            for child_index in node.children.values():
                if child_index in seen_children:
                    raise TreeInvariantError(child_index, "node has more than one parent")
                seen_children.add(child_index)
                child = self._nodes[child_index]
                if child.parent != node.index:
                    raise TreeInvariantError(child_index, "parent link does not match owner")
                child_visits += child.visits
            if child_visits > node.visits:
                raise TreeInvariantError(node.index, "children visited more often than parent")
