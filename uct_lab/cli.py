#!/usr/bin/env python
"""
Command-line interface for exploring Monte Carlo Tree Search on tic-tac-toe.

Example usage:
    # Run 200 fast iterations on a midgame position
    uct-lab --mode batch --board "XO_ _X_ O__" --iterations 200

    # Watch one iteration phase by phase
    uct-lab --mode step --board "XO_ _X_ O__"

    # Animate every 10th iteration of a 50-iteration run without delays
    uct-lab --mode animate --iterations 50 --animate-every 10 --instant

    # Compare with flat Monte Carlo (no tree)
    uct-lab --mode flat --board "OO_ _X_ _X_" --sims 100
"""
import argparse
import asyncio
import logging
import sys
from typing import Optional

from rich.console import Console
from rich.table import Table
from tqdm import tqdm

from uct_lab import __version__
from uct_lab.core.constants import RECOMMENDED_EXPLORATION_RANGE
from uct_lab.core.exceptions import UctLabError
from uct_lab.core.game import Board, index_to_coord
from uct_lab.mcts.config import MCTSConfig
from uct_lab.mcts.controller import RunResult, RunStatus, SearchController
from uct_lab.mcts.evaluation import evaluate_moves, recommend_move
from uct_lab.mcts.random_source import Mulberry32
from uct_lab.mcts.search import Phase, get_principal_variation
from uct_lab.mcts.snapshot import SearchSnapshot, visit_entropy

console = Console()


def parse_animate_every(value: str) -> Optional[int]:
    """Parse the animation cadence; 'last' means final iteration only."""
    if value.lower() in ("last", "final", "none"):
        return None
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer or 'last', got {value!r}") from None


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Step through Monte Carlo Tree Search on tic-tac-toe")

    parser.add_argument("--mode", type=str, default="batch",
                        choices=["batch", "animate", "step", "flat"],
                        help="How to run the search")
    parser.add_argument("--board", type=str, default="___ ___ ___",
                        help="Board, row by row, using X, O and _ (e.g. 'XO_ _X_ O__')")
    parser.add_argument("--win-length", type=int, default=None,
                        help="Marks in a row needed to win (defaults to the board size)")

    # Search configuration
    parser.add_argument("--c", type=float, default=1.0,
                        help="UCT exploration constant C")
    parser.add_argument("--iterations", type=int, default=50,
                        help="Number of iterations per run")
    parser.add_argument("--seed", type=int, default=42,
                        help="Seed the random source is reset to for every run")
    parser.add_argument("--animate-every", type=parse_animate_every, default=10,
                        help="Animate every k-th iteration, or 'last' for the final one only")
    parser.add_argument("--keep-tree", action="store_true",
                        help="Keep accumulating into the existing tree instead of starting fresh")
    parser.add_argument("--instant", action="store_true",
                        help="Skip animation delays")
    parser.add_argument("--sims", type=int, default=10,
                        help="Playouts per move in flat mode")

    # Output
    parser.add_argument("--verbose", action="store_true",
                        help="Show every published phase")
    parser.add_argument("--log-level", type=str, default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level for the search engine")
    parser.add_argument("--version", action="version", version=f"uct-lab {__version__}")

    return parser.parse_args(argv)


def build_config(args) -> MCTSConfig:
    params = dict(
        exploration_weight=args.c,
        iterations=args.iterations,
        seed=args.seed,
        animate_every=args.animate_every,
        fresh_each_run=not args.keep_tree,
    )
    if args.instant:
        return MCTSConfig.instant(**params)
    return MCTSConfig(**params)


def render_board(board: Board, snapshot: Optional[SearchSnapshot] = None) -> str:
    """Render a board, showing rollout marks in lower case and the best move as '*'."""
    rows = []
    for r in range(board.size):
        cells = []
        for c in range(board.size):
            i = r * board.size + c
            mark = board.cells[i]
            if mark is not None:
                cells.append(mark.value)
            elif snapshot and snapshot.simulation_overlay and snapshot.simulation_overlay[i]:
                cells.append(snapshot.simulation_overlay[i].value.lower())
            elif snapshot and snapshot.best_move == i:
                cells.append("*")
            else:
                cells.append("_")
        rows.append(" ".join(cells))
    return "\n".join(rows)


def display_statistics(snapshot: SearchSnapshot) -> None:
    """
    Display per-move statistics in a table.

    Args:
        snapshot: Published search snapshot
    """
    size = snapshot.board.size
    table = Table(title=f"Root statistics ({snapshot.to_move.value} to move, "
                        f"{snapshot.total_iterations} iterations)")
    table.add_column("Move")
    table.add_column("N", justify="right")
    table.add_column("W", justify="right")
    table.add_column("Q", justify="right")
    table.add_column("Wins", justify="right")
    table.add_column("Draws", justify="right")
    table.add_column("Losses", justify="right")
    table.add_column("Share", justify="right")

    for move, stats in snapshot.moves.items():
        label = index_to_coord(move, size)
        if move == snapshot.best_move:
            label = f"[bold green]{label} *[/bold green]"
        table.add_row(
            label,
            str(stats.visits),
            f"{stats.total_reward:.1f}",
            f"{stats.q_value:.3f}",
            str(stats.wins),
            str(stats.draws),
            str(stats.losses),
            f"{stats.share_of(snapshot.root_visits):.0%}",
        )
    console.print(table)

    if snapshot.best_move is not None:
        console.print(f"Recommended: {index_to_coord(snapshot.best_move, size)}")
    console.print(f"Visit entropy: {visit_entropy(snapshot):.3f}  Nodes: {snapshot.node_count}")


def display_result(controller: SearchController, result: RunResult) -> None:
    if result.status is RunStatus.NOOP_TERMINAL:
        outcome = controller.terminal_outcome
        verdict = "Draw" if outcome.winner is None else f"{outcome.value} wins"
        console.print(f"[yellow]This position is terminal: {verdict}.[/yellow]")
        return
    if result.cancelled:
        console.print(f"[yellow]Cancelled after {result.completed}/{result.requested} iterations[/yellow]")
    display_statistics(result.snapshot)
    pv = get_principal_variation(controller.tree)
    if pv:
        size = controller.board.size
        line = " ".join(f"{index_to_coord(m, size)}:{v:.2f}" for m, v in pv)
        console.print(f"Principal variation: {line}")


def make_phase_printer(verbose: bool):
    """Create a snapshot listener that prints phase changes."""
    last_phase = {"phase": Phase.IDLE}

    def on_snapshot(snapshot: SearchSnapshot) -> None:
        size = snapshot.board.size
        changed = snapshot.phase is not last_phase["phase"]
        last_phase["phase"] = snapshot.phase
        if snapshot.phase is Phase.IDLE or not (changed or verbose):
            return
        detail = ""
        if snapshot.phase is Phase.SELECTION and snapshot.selected_root_move is not None:
            detail = f" via {index_to_coord(snapshot.selected_root_move, size)}"
        elif snapshot.phase is Phase.EXPANSION and snapshot.expanded_root_move is not None:
            detail = f" added {index_to_coord(snapshot.expanded_root_move, size)}"
        console.print(f"[cyan]{snapshot.phase.value}[/cyan]{detail}")
        if snapshot.phase is Phase.SIMULATION and verbose:
            console.print(render_board(snapshot.board, snapshot))

    return on_snapshot


async def run_with_progress(controller: SearchController, iterations: int) -> RunResult:
    """Run a fast batch while a progress bar follows the iteration count."""
    task = asyncio.create_task(controller.run_batch(iterations))
    with tqdm(total=iterations, desc="Searching") as pbar:
        while not task.done():
            pbar.n = min(controller.total_iterations, iterations)
            pbar.refresh()
            await asyncio.sleep(0.05)
        result = task.result()
        pbar.n = result.completed
        pbar.refresh()
    return result


async def run_mode(args, controller: SearchController) -> Optional[RunResult]:
    if args.mode == "batch":
        return await run_with_progress(controller, controller.config.iterations)
    controller.subscribe(make_phase_printer(args.verbose))
    if args.mode == "step":
        return await controller.step_once()
    return await controller.step_many_animated()


def run_flat(args, board: Board) -> None:
    """Evaluate every legal move by flat Monte Carlo playouts."""
    evaluations = evaluate_moves(board, args.sims, rng=Mulberry32(args.seed))
    if not evaluations:
        console.print("[yellow]No legal moves: the position is terminal.[/yellow]")
        return
    best = recommend_move(evaluations)
    table = Table(title=f"Flat Monte Carlo ({args.sims} playouts per move)")
    for column in ("Move", "Wins", "Draws", "Losses", "Score"):
        table.add_column(column, justify="right" if column != "Move" else "left")
    for move, evaluation in evaluations.items():
        label = index_to_coord(move, board.size) + (" *" if move == best else "")
        table.add_row(label, str(evaluation.wins), str(evaluation.draws),
                      str(evaluation.losses), f"{evaluation.score:.3f}")
    console.print(table)
    console.print(f"Recommended: {index_to_coord(best, board.size)}")


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        board = Board.from_string(args.board, args.win_length)
        config = build_config(args)
    except (UctLabError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        return 2

    low, high = RECOMMENDED_EXPLORATION_RANGE
    if not low <= config.exploration_weight <= high:
        console.print(f"[yellow]Note: C={config.exploration_weight} is outside the usual range {low}-{high}[/yellow]")

    console.print(render_board(board))
    console.print()

    if args.mode == "flat":
        run_flat(args, board)
        return 0

    controller = SearchController(board, config)
    try:
        result = asyncio.run(run_mode(args, controller))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130

    display_result(controller, result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
