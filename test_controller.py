#!/usr/bin/env python
"""
Tests for the search controller.

This script tests execution control on top of the engine:
1. Single visible iterations and terminal no-ops
2. Fast and animated batches, fresh and accumulating
3. Pause, resume, cancel and reset while a run is in flight
4. Configuration validation
"""
import asyncio
import unittest

from uct_lab.core.game import Board, Mark
from uct_lab.core.exceptions import (
    InvalidConfigurationError, InvalidMoveError, RunAlreadyActiveError
)
from uct_lab.mcts import DEFAULT_CONFIG
from uct_lab.mcts.config import MCTSConfig
from uct_lab.mcts.controller import RunStatus, SearchController
from uct_lab.mcts.search import Phase

MIDGAME = "XO_ _X_ O__"


def visits_of(snapshot):
    return {move: stats.visits for move, stats in snapshot.moves.items()}


async def let_run(ticks: int = 5) -> None:
    """Give a background run a few turns of the event loop."""
    for _ in range(ticks):
        await asyncio.sleep(0)


class TestMCTSConfig(unittest.TestCase):
    """Test case for configuration validation."""

    def test_defaults(self):
        """Test the default configuration."""
        config = MCTSConfig.default()
        self.assertEqual(config.exploration_weight, 1.0)
        self.assertEqual(config.iterations, 50)
        self.assertEqual(config.seed, 42)
        self.assertEqual(config.animate_every, 10)
        self.assertTrue(config.fresh_each_run)
        self.assertEqual(DEFAULT_CONFIG, config)

    def test_invalid_values(self):
        """Test that out-of-range values are rejected."""
        invalid = [
            dict(iterations=0),
            dict(iterations=-5),
            dict(iterations=2.5),
            dict(exploration_weight=-0.1),
            dict(exploration_weight=float("nan")),
            dict(exploration_weight=float("inf")),
            dict(animate_every=0),
            dict(seed="42"),
            dict(phase_delay=-1.0),
            dict(pause_poll_interval=0.0),
        ]
        for params in invalid:
            with self.subTest(**params):
                with self.assertRaises(InvalidConfigurationError):
                    MCTSConfig(**params)

    def test_presets_and_dict_round_trip(self):
        """Test the presets and dictionary conversion."""
        self.assertEqual(MCTSConfig.exploit().exploration_weight, 0.0)
        self.assertEqual(MCTSConfig.explore().exploration_weight, 10.0)
        instant = MCTSConfig.instant(iterations=7)
        self.assertEqual(instant.phase_delay, 0.0)
        self.assertEqual(instant.iterations, 7)
        self.assertIsNone(MCTSConfig(animate_every=MCTSConfig.FINAL_ONLY).animate_every)

        config = MCTSConfig(exploration_weight=2.0, seed=7)
        data = config.to_dict()
        self.assertNotIn("FINAL_ONLY", data)
        self.assertEqual(MCTSConfig.from_dict({**data, "unknown": 1}), config)


class TestSearchController(unittest.IsolatedAsyncioTestCase):
    """Test case for the execution controller."""

    def setUp(self):
        """Set up test fixtures."""
        self.board = Board.from_string(MIDGAME)
        self.config = MCTSConfig.instant(seed=42, iterations=50)
        self.controller = SearchController(self.board, self.config)

    async def test_step_once(self):
        """Test one visible iteration on a fresh tree."""
        result = await self.controller.step_once()
        self.assertEqual(result.status, RunStatus.COMPLETED)
        self.assertEqual(result.completed, 1)
        self.assertEqual(result.snapshot.root_visits, 1)
        self.assertEqual(sum(visits_of(result.snapshot).values()), 1)
        self.assertEqual(result.snapshot.phase, Phase.IDLE)
        self.assertEqual(self.controller.total_iterations, 1)
        self.assertFalse(self.controller.is_running)

    async def test_step_once_matches_single_fast_iteration(self):
        """Test that a visible and a fast iteration grow the same tree."""
        visible = await self.controller.step_once()
        other = SearchController(self.board, self.config)
        fast = await other.run_batch(1)
        self.assertEqual(visits_of(visible.snapshot), visits_of(fast.snapshot))

    async def test_step_once_publishes_every_phase(self):
        """Test the phases listeners see during a visible iteration."""
        phases = []
        self.controller.subscribe(lambda snapshot: phases.append(snapshot.phase))
        await self.controller.step_once()

        distinct = [p for i, p in enumerate(phases) if i == 0 or phases[i - 1] is not p]
        self.assertEqual(distinct, [
            Phase.SELECTION, Phase.EXPANSION, Phase.SIMULATION,
            Phase.BACKPROPAGATION, Phase.IDLE
        ])

    async def test_simulation_overlay(self):
        """Test that rollout marks are only shown on empty cells."""
        overlays = []

        def on_snapshot(snapshot):
            if snapshot.phase is Phase.SIMULATION:
                overlays.append(snapshot.simulation_overlay)

        self.controller.subscribe(on_snapshot)
        await self.controller.run_batch(1)  # no visible phases in a fast batch
        self.assertEqual(overlays, [])

        self.controller.set_board(Board.empty())
        await self.controller.step_once()
        for overlay in overlays:
            self.assertEqual(len(overlay), 9)
        self.assertTrue(all(m is None for m in self.controller.snapshot().simulation_overlay))

    async def test_terminal_noop(self):
        """Test that a decided position performs no search work."""
        controller = SearchController(Board.from_string("XXX OO_ ___"), self.config)
        state = controller.rng.getstate()
        for run in (controller.step_once(), controller.run_batch(10), controller.step_many_animated(10)):
            result = await run
            self.assertEqual(result.status, RunStatus.NOOP_TERMINAL)
            self.assertEqual(result.completed, 0)
        self.assertEqual(len(controller.tree), 1)
        self.assertEqual(controller.tree.root.visits, 0)
        self.assertEqual(controller.rng.getstate(), state)

    async def test_single_iteration_batch(self):
        """Test that one fast iteration creates exactly one visited root child."""
        result = await self.controller.run_batch(1)
        self.assertEqual(len(result.snapshot.moves), 1)
        self.assertEqual(list(visits_of(result.snapshot).values()), [1])

    async def test_fresh_batches_are_reproducible(self):
        """Test that two fresh batches with one seed give identical results."""
        first = await self.controller.run_batch(200, fresh=True)
        second = await self.controller.run_batch(200, fresh=True)
        self.assertEqual(visits_of(first.snapshot), visits_of(second.snapshot))
        self.assertEqual(first.snapshot.best_move, second.snapshot.best_move)
        self.assertEqual(self.controller.total_iterations, 200)
        self.controller.tree.check_invariants()

    async def test_accumulating_batches(self):
        """Test that non-fresh batches keep adding to the same tree."""
        await self.controller.run_batch(10, fresh=False)
        result = await self.controller.run_batch(15, fresh=False)
        self.assertEqual(result.snapshot.root_visits, 25)
        self.assertEqual(result.snapshot.total_iterations, 25)
        self.controller.tree.check_invariants()

    async def test_animated_batch_matches_fast_batch(self):
        """Test that animating some iterations does not change the search."""
        fast = await self.controller.run_batch(60, fresh=True)
        other = SearchController(self.board, self.config)
        animated = await other.step_many_animated(60, animate_every=10, fresh=True)
        self.assertEqual(animated.completed, 60)
        self.assertEqual(visits_of(fast.snapshot), visits_of(animated.snapshot))

        final_only = SearchController(self.board, self.config)
        result = await final_only.step_many_animated(60, animate_every=None, fresh=True)
        self.assertEqual(visits_of(fast.snapshot), visits_of(result.snapshot))

    async def test_animated_batch_visible_iterations(self):
        """Test which iterations of an animated batch are shown phase by phase."""
        controller = SearchController(Board.empty(), self.config)
        backprops = []

        def on_snapshot(snapshot):
            if snapshot.phase is Phase.BACKPROPAGATION:
                backprops.append(snapshot.root_visits)

        controller.subscribe(on_snapshot)
        await controller.step_many_animated(25, animate_every=10)
        self.assertEqual(backprops, [1, 10, 20, 25])

    async def test_cancel_batch(self):
        """Test cancelling a long batch keeps completed iterations and invariants."""
        task = asyncio.create_task(self.controller.run_batch(1000))
        await let_run()
        self.assertTrue(self.controller.is_running)
        self.controller.cancel()
        result = await task

        self.assertEqual(result.status, RunStatus.CANCELLED)
        self.assertTrue(result.cancelled)
        self.assertLess(result.completed, 1000)
        self.assertGreater(result.completed, 0)
        self.assertEqual(self.controller.tree.root.visits, result.completed)
        self.controller.tree.check_invariants()

    async def test_pause_and_resume(self):
        """Test that a paused run makes no progress until resumed."""
        task = asyncio.create_task(self.controller.run_batch(300))
        await let_run()
        self.controller.pause()
        self.assertTrue(self.controller.is_paused)
        await asyncio.sleep(0)
        paused_at = self.controller.total_iterations

        await asyncio.sleep(0.02)
        self.assertEqual(self.controller.total_iterations, paused_at)
        self.assertFalse(task.done())

        self.controller.toggle_pause()
        self.assertFalse(self.controller.is_paused)
        result = await task
        self.assertEqual(result.status, RunStatus.COMPLETED)
        self.assertEqual(result.completed, 300)

    async def test_cancel_while_paused(self):
        """Test that cancel releases a paused run."""
        task = asyncio.create_task(self.controller.step_many_animated(100, animate_every=5))
        await let_run()
        self.controller.pause()
        await asyncio.sleep(0.01)
        self.controller.cancel()
        result = await task
        self.assertTrue(result.cancelled)
        self.assertLess(result.completed, 100)
        self.controller.tree.check_invariants()

    async def test_one_run_at_a_time(self):
        """Test that a second run or a board change is refused while running."""
        task = asyncio.create_task(self.controller.run_batch(500))
        await let_run(2)
        with self.assertRaises(RunAlreadyActiveError):
            await self.controller.step_once()
        with self.assertRaises(RunAlreadyActiveError):
            await self.controller.run_batch(5)
        with self.assertRaises(RunAlreadyActiveError):
            self.controller.set_board(Board.empty())
        with self.assertRaises(RunAlreadyActiveError):
            self.controller.reset()
        self.controller.cancel()
        await task

    async def test_reset_cancels_active_run(self):
        """Test that reset can discard a run in flight."""
        task = asyncio.create_task(self.controller.run_batch(1000, fresh=True))
        await let_run()
        self.controller.reset(cancel_active=True)
        self.assertFalse(self.controller.is_running)

        result = await task
        self.assertTrue(result.cancelled)
        self.assertEqual(self.controller.total_iterations, 0)
        self.assertEqual(len(self.controller.tree), 1)
        self.assertEqual(self.controller.tree.root.visits, 0)

        # The controller is immediately usable again
        after = await self.controller.run_batch(5)
        self.assertEqual(after.completed, 5)

    async def test_reset_during_visible_iteration_returns_to_idle(self):
        """Test that resetting mid-phase leaves an idle controller and snapshot."""
        controller = SearchController(self.board, MCTSConfig(phase_delay=0.2, seed=42))
        published = []
        controller.subscribe(lambda snapshot: published.append(snapshot.phase))

        task = asyncio.create_task(controller.step_once())
        await asyncio.sleep(0.05)
        self.assertIsNot(controller.phase, Phase.IDLE)

        controller.reset(cancel_active=True)
        self.assertEqual(controller.phase, Phase.IDLE)
        self.assertEqual(published[-1], Phase.IDLE)

        await task
        self.assertEqual(controller.phase, Phase.IDLE)
        self.assertEqual(controller.snapshot().phase, Phase.IDLE)
        self.assertEqual(published[-1], Phase.IDLE)

    async def test_abandoned_run_keeps_newer_result(self):
        """Test that a run discarded by reset does not overwrite a later result."""
        controller = SearchController(self.board, MCTSConfig(phase_delay=0.2, seed=42))
        stale = asyncio.create_task(controller.step_once())
        await asyncio.sleep(0.05)
        controller.reset(cancel_active=True)

        controller.update_config(phase_delay=0.0, simulation_step_delay=0.0)
        fresh = await controller.run_batch(3)
        self.assertIs(controller.last_result, fresh)

        stale_result = await stale
        self.assertTrue(stale_result.cancelled)
        self.assertIs(controller.last_result, fresh)
        self.assertEqual(controller.total_iterations, 3)

    async def test_task_cancellation(self):
        """Test that cancelling the asyncio task still finishes the run cleanly."""
        task = asyncio.create_task(self.controller.run_batch(1000))
        await let_run()
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertFalse(self.controller.is_running)
        self.assertTrue(self.controller.last_result.cancelled)
        self.controller.tree.check_invariants()

    async def test_play_move_replaces_tree(self):
        """Test that playing a move starts a new tree for the new position."""
        await self.controller.run_batch(20, fresh=False)
        board = self.controller.play_move(2)
        self.assertEqual(board.cells[2], Mark.X)
        self.assertEqual(self.controller.board, board)
        self.assertEqual(self.controller.total_iterations, 0)
        self.assertEqual(self.controller.tree.root.to_move, Mark.O)
        with self.assertRaises(InvalidMoveError):
            self.controller.play_move(2)

        self.controller.set_board(Board.from_string("XXX OO_ ___"))
        with self.assertRaises(InvalidMoveError):
            self.controller.play_move(5)

    async def test_invalid_run_requests(self):
        """Test that bad iteration counts and parameters are refused."""
        with self.assertRaises(InvalidConfigurationError):
            await self.controller.run_batch(0)
        with self.assertRaises(InvalidConfigurationError):
            await self.controller.step_many_animated(10, animate_every=0)
        with self.assertRaises(InvalidConfigurationError):
            self.controller.update_config(exploration_weight=-1.0)
        self.assertEqual(self.controller.config.exploration_weight, 1.0)
        self.assertFalse(self.controller.is_running)

        config = self.controller.update_config(exploration_weight=2.5)
        self.assertEqual(config.exploration_weight, 2.5)

    async def test_controls_without_run_are_noops(self):
        """Test that pause, resume and cancel do nothing when idle."""
        self.controller.pause()
        self.controller.resume()
        self.controller.cancel()
        self.assertFalse(self.controller.is_paused)
        result = await self.controller.run_batch(3)
        self.assertEqual(result.status, RunStatus.COMPLETED)


if __name__ == "__main__":
    unittest.main()
