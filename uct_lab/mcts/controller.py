"""
Execution controller for step-by-step and batch searches.

The SearchController owns the displayed board, the search tree and the
random source, and drives iterations in three modes:

- ``step_once``: one visible iteration, every phase published
- ``run_batch``: N fast iterations, only the final tree published
- ``step_many_animated``: N iterations, a chosen subset of them visible

Execution is single-threaded and cooperative on asyncio. A run polls a
RunToken for pause and cancel requests at fixed suspension points; fast
iterations have none inside them, so a batch can only stop between two
complete iterations. Every run reseeds the random source first, which makes
the three modes reproduce each other's trees for the same seed.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional
import asyncio
import logging

from uct_lab.core.game import Board, GameRules, Mark, Outcome, TicTacToe
from uct_lab.core.exceptions import InvalidMoveError, RunAlreadyActiveError
from uct_lab.mcts.config import MCTSConfig, validate_animate_every, validate_iterations
from uct_lab.mcts.node import SearchTree
from uct_lab.mcts.random_source import Mulberry32
from uct_lab.mcts.search import Phase, best_move, iteration_steps, run_iteration
from uct_lab.mcts.snapshot import SearchSnapshot

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[SearchSnapshot], None]

# Fast iterations of an animated batch between two progress snapshots
PROGRESS_PUBLISH_EVERY = 20

_FROM_CONFIG: Any = object()


class RunStatus(Enum):
    """Enum representing how a run request ended."""
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NOOP_TERMINAL = "noop_terminal"


@dataclass(frozen=True)
class RunResult:
    """Outcome of one run request."""
    status: RunStatus
    requested: int
    completed: int
    snapshot: SearchSnapshot

    @property
    def cancelled(self) -> bool:
        return self.status is RunStatus.CANCELLED


@dataclass
class RunToken:
    """
    Control flags shared by the controller and one in-flight run.

    ``cancelled`` is monotonic: once set it stays set for the run. Every
    run gets a fresh token.
    """
    paused: bool = False
    cancelled: bool = False

    def cancel(self) -> None:
        self.cancelled = True
        self.paused = False


@dataclass
class _ActiveRun:
    token: RunToken
    tree: SearchTree
    generation: int
    completed: int = 0


class SearchController:
    """
    Drives MCTS iterations over a board and publishes snapshots of the tree.

    At most one run is active at a time. The tree is replaced when the
    board changes, on reset, and at the start of a fresh run; otherwise it
    keeps accumulating statistics across runs.
    """

    def __init__(
        self,
        board: Optional[Board] = None,
        config: Optional[MCTSConfig] = None,
        rules: Optional[GameRules] = None
    ):
        """
        Initialize a controller.

        Args:
            board: Displayed position (empty 3x3 board by default)
            config: Search configuration
            rules: Game rules (tic-tac-toe by default)
        """
        self.config = config or MCTSConfig()
        self.rules = rules or TicTacToe()
        self.rng = Mulberry32(self.config.seed)

        self._board = board or Board.empty()
        self._tree = SearchTree(self._board, self.rules)
        self._generation = 0
        self._total_iterations = 0

        self._run: Optional[_ActiveRun] = None
        self._listeners: List[SnapshotListener] = []
        self.last_result: Optional[RunResult] = None

        self._phase = Phase.IDLE
        self._selected_root_move: Optional[int] = None
        self._expanded_root_move: Optional[int] = None
        self._overlay: List[Optional[Mark]] = [None] * self._board.cell_count

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def board(self) -> Board:
        return self._board

    @property
    def tree(self) -> SearchTree:
        return self._tree

    @property
    def total_iterations(self) -> int:
        """Iterations accumulated by the current tree."""
        if self._run is not None and self._run.generation == self._generation:
            return self._total_iterations + self._run.completed
        return self._total_iterations

    @property
    def is_running(self) -> bool:
        return self._run is not None

    @property
    def is_paused(self) -> bool:
        return self._run is not None and self._run.token.paused

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def terminal_outcome(self) -> Optional[Outcome]:
        return self.rules.terminal_outcome(self._board)

    def best_move(self) -> Optional[int]:
        return best_move(self._tree)

    def snapshot(self) -> SearchSnapshot:
        """Get an immutable picture of the current tree and phase."""
        return SearchSnapshot.from_tree(
            self._tree,
            self._board,
            self.total_iterations,
            phase=self._phase,
            selected_root_move=self._selected_root_move,
            expanded_root_move=self._expanded_root_move,
            simulation_overlay=tuple(self._overlay),
        )

    def subscribe(self, listener: SnapshotListener) -> None:
        """Register a callable that receives every published snapshot."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: SnapshotListener) -> None:
        self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Tree replacement
    # ------------------------------------------------------------------

    def set_board(self, board: Board) -> None:
        """
        Show a new position and start a new tree for it.

        Raises:
            RunAlreadyActiveError: If a run is in progress
        """
        self._ensure_idle()
        self._board = board
        self._replace_tree()
        self._publish()

    def play_move(self, move: int) -> Board:
        """
        Play a move for the side to move on the displayed board.

        Returns:
            The new board

        Raises:
            InvalidMoveError: If the cell is occupied or outside the board,
                or the game is already over
            RunAlreadyActiveError: If a run is in progress
        """
        self._ensure_idle()
        if self.terminal_outcome is not None:
            raise InvalidMoveError(move, "the game is already over")
        board = self.rules.apply(self._board, move, self.rules.side_to_move(self._board))
        self.set_board(board)
        return board

    def reset(self, board: Optional[Board] = None, cancel_active: bool = False) -> None:
        """
        Discard the tree and start over, optionally from another board.

        Args:
            board: New displayed position (keeps the current one if omitted)
            cancel_active: Cancel a run in progress instead of refusing

        Raises:
            RunAlreadyActiveError: If a run is in progress and
                ``cancel_active`` is False
        """
        if self._run is not None:
            if not cancel_active:
                raise RunAlreadyActiveError("Cannot reset while a run is active")
            self.cancel()
            self._run = None
        if board is not None:
            self._board = board
        self._replace_tree()
        self._publish()

    def update_config(self, **changes: Any) -> MCTSConfig:
        """
        Change search parameters between runs.

        Returns:
            The new, validated configuration
        """
        self._ensure_idle()
        self.config = self.config.with_overrides(**changes)
        return self.config

    def _replace_tree(self) -> None:
        self._tree = SearchTree(self._board, self.rules)
        self._generation += 1
        self._total_iterations = 0
        self._phase = Phase.IDLE
        self._clear_highlights()
        logger.debug("New search tree for board %s", self._board.to_string())

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def pause(self) -> None:
        """Pause the active run at its next suspension point."""
        if self._run is None:
            return
        self._run.token.paused = True
        logger.info("Run paused")

    def resume(self) -> None:
        if self._run is None:
            return
        self._run.token.paused = False
        logger.info("Run resumed")

    def toggle_pause(self) -> None:
        if self.is_paused:
            self.resume()
        else:
            self.pause()

    def cancel(self) -> None:
        """
        Cancel the active run at its next suspension point.

        Iterations completed before that point are kept.
        """
        if self._run is None:
            return
        self._run.token.cancel()
        logger.info("Run cancel requested")

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def step_once(self) -> RunResult:
        """
        Reseed and run exactly one visible iteration on the current tree.

        Returns:
            RunResult with 1 completed iteration, 0 if cancelled before
            backpropagation, or a terminal no-op
        """
        self._ensure_idle()
        if self.terminal_outcome is not None:
            return self._noop(1)

        run = self._start_run(fresh=False)
        try:
            if await self._visible_iteration(run):
                run.completed += 1
        except asyncio.CancelledError:
            run.token.cancel()
            raise
        finally:
            result = self._finish_run(run, requested=1)
        return result

    async def run_batch(self, iterations: Optional[int] = None, fresh: Optional[bool] = None) -> RunResult:
        """
        Reseed and run a batch of fast iterations.

        Pause and cancel are only observed between iterations.

        Args:
            iterations: Number of iterations (config default if omitted)
            fresh: Start from a new tree (config default if omitted)

        Returns:
            RunResult; ``completed`` may be below ``iterations`` if cancelled
        """
        n = validate_iterations(self.config.iterations if iterations is None else iterations)
        fresh = self.config.fresh_each_run if fresh is None else fresh
        self._ensure_idle()
        if self.terminal_outcome is not None:
            return self._noop(n)

        run = self._start_run(fresh)
        c = self.config.exploration_weight
        eps = self.config.tie_epsilon
        try:
            for _ in range(n):
                if not await self._wait_if_paused(run.token):
                    break
                run_iteration(run.tree, c, self.rng, eps)
                run.completed += 1
                if run.completed % self.config.batch_yield_every == 0:
                    await asyncio.sleep(0)
        except asyncio.CancelledError:
            run.token.cancel()
            raise
        finally:
            result = self._finish_run(run, requested=n)
        return result

    async def step_many_animated(
        self,
        iterations: Optional[int] = None,
        animate_every: Optional[int] = _FROM_CONFIG,
        fresh: Optional[bool] = None
    ) -> RunResult:
        """
        Reseed and run a batch in which some iterations are visible.

        Iteration i (1-based) is visible when i == 1, i == n, or
        i % animate_every == 0; the others run fast.

        Args:
            iterations: Number of iterations (config default if omitted)
            animate_every: Cadence k, or None to animate only the first and
                last iterations (config default if omitted)
            fresh: Start from a new tree (config default if omitted)

        Returns:
            RunResult
        """
        n = validate_iterations(self.config.iterations if iterations is None else iterations)
        if animate_every is _FROM_CONFIG:
            animate_every = self.config.animate_every
        k = validate_animate_every(animate_every)
        fresh = self.config.fresh_each_run if fresh is None else fresh
        self._ensure_idle()
        if self.terminal_outcome is not None:
            return self._noop(n)

        run = self._start_run(fresh)
        c = self.config.exploration_weight
        eps = self.config.tie_epsilon
        try:
            for i in range(1, n + 1):
                if not await self._wait_if_paused(run.token):
                    break
                if i == 1 or i == n or (k is not None and i % k == 0):
                    if await self._visible_iteration(run):
                        run.completed += 1
                else:
                    run_iteration(run.tree, c, self.rng, eps)
                    run.completed += 1
                    if i % PROGRESS_PUBLISH_EVERY == 0:
                        self._publish_for(run)
                    if run.completed % self.config.batch_yield_every == 0:
                        await asyncio.sleep(0)
        except asyncio.CancelledError:
            run.token.cancel()
            raise
        finally:
            result = self._finish_run(run, requested=n)
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_idle(self) -> None:
        if self._run is not None:
            raise RunAlreadyActiveError("A run is already active; cancel it or wait for it to finish")

    def _noop(self, requested: int) -> RunResult:
        logger.info("Position is terminal (%s); nothing to search", self.terminal_outcome.value)
        result = RunResult(RunStatus.NOOP_TERMINAL, requested, 0, self.snapshot())
        self.last_result = result
        return result

    def _start_run(self, fresh: bool) -> _ActiveRun:
        self.rng.reseed(self.config.seed)
        if fresh:
            self._replace_tree()
        run = _ActiveRun(RunToken(), self._tree, self._generation)
        self._run = run
        logger.info(
            "Run started (seed=%d, C=%.3f, fresh=%s, board=%s)",
            self.config.seed, self.config.exploration_weight, fresh, self._board.to_string()
        )
        return run

    def _finish_run(self, run: _ActiveRun, requested: int) -> RunResult:
        if self._run is run:
            self._run = None
        current = run.generation == self._generation
        if current:
            self._total_iterations += run.completed
            self._phase = Phase.IDLE
            self._clear_highlights()
        status = RunStatus.CANCELLED if run.token.cancelled else RunStatus.COMPLETED
        snapshot = self._publish() if current else self.snapshot()
        logger.info("Run %s: %d/%d iterations", status.value, run.completed, requested)
        result = RunResult(status, requested, run.completed, snapshot)
        if current:
            self.last_result = result
        return result

    def _clear_highlights(self) -> None:
        self._selected_root_move = None
        self._expanded_root_move = None
        self._overlay = [None] * self._board.cell_count

    def _publish(self) -> SearchSnapshot:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot

    def _publish_for(self, run: _ActiveRun) -> None:
        if run.generation == self._generation:
            self._publish()

    async def _wait_if_paused(self, token: RunToken) -> bool:
        """Block while paused; return False once the run is cancelled."""
        while token.paused and not token.cancelled:
            await asyncio.sleep(self.config.pause_poll_interval)
        return not token.cancelled

    async def _pause_aware_sleep(self, seconds: float, token: RunToken) -> bool:
        """
        Sleep for an animation delay while honouring pause and cancel.

        Time spent paused counts towards the delay. A zero delay still
        yields to the event loop once.

        Returns:
            False if the run was cancelled, True otherwise
        """
        if seconds <= 0:
            if not await self._wait_if_paused(token):
                return False
            await asyncio.sleep(0)
            return not token.cancelled

        loop = asyncio.get_running_loop()
        deadline = loop.time() + seconds
        while True:
            if not await self._wait_if_paused(token):
                return False
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(remaining, self.config.pause_poll_interval))
        return not token.cancelled

    async def _visible_iteration(self, run: _ActiveRun) -> bool:
        """
        Run one iteration, publishing and pausing at every suspension point.

        Returns:
            True if backpropagation was applied (even if the run was
            cancelled afterwards), False if the iteration was abandoned
        """
        token = run.token
        tree = run.tree
        display = tree.root.state
        applied = False
        self._clear_highlights()

        steps = iteration_steps(tree, self.config.exploration_weight, self.rng, self.config.tie_epsilon)
        try:
            for event in steps:
                self._phase = event.phase
                if not event.completed:
                    if not await self._wait_if_paused(token):
                        return applied
                    if event.trace_step is None:
                        continue
                    cell, mark = event.trace_step
                    if display.cells[cell] is None:
                        self._overlay[cell] = mark
                        self._publish_for(run)
                        if not await self._pause_aware_sleep(self.config.simulation_step_delay, token):
                            return applied
                    continue

                if event.phase is Phase.SELECTION and event.root_move is not None:
                    self._selected_root_move = event.root_move
                elif event.phase is Phase.EXPANSION and event.root_move is not None:
                    self._expanded_root_move = event.root_move
                elif event.phase is Phase.BACKPROPAGATION:
                    applied = True
                    logger.debug(
                        "Iteration backpropagated %s from node %d", event.outcome.value, event.node
                    )
                self._publish_for(run)
                if not await self._pause_aware_sleep(self.config.phase_delay, token):
                    return applied
        finally:
            steps.close()
            if run.generation == self._generation:
                self._phase = Phase.IDLE
                self._clear_highlights()
        return applied
