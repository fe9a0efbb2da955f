"""
Configuration for Monte Carlo Tree Search (MCTS).

This module defines the configuration parameters for the search engine,
including the exploration constant, run length, seed and the pacing used
when iterations are animated.
"""
from dataclasses import dataclass, fields, replace
from typing import Any, ClassVar, Dict, Optional
import math

from uct_lab.core.constants import (
    DEFAULT_EXPLORATION, DEFAULT_ITERATIONS, DEFAULT_SEED, DEFAULT_ANIMATE_EVERY,
    PHASE_DELAY, SIMULATION_STEP_DELAY, PAUSE_POLL_INTERVAL, TIE_EPSILON
)
from uct_lab.core.exceptions import InvalidConfigurationError


def validate_iterations(iterations: Any) -> int:
    """
    Check an iteration count.

    Args:
        iterations: Requested number of iterations

    Returns:
        The iteration count

    Raises:
        InvalidConfigurationError: If it is not a positive integer
    """
    if isinstance(iterations, bool) or not isinstance(iterations, int) or iterations <= 0:
        raise InvalidConfigurationError(f"iterations must be a positive integer, got {iterations!r}")
    return iterations


def validate_animate_every(animate_every: Any) -> Optional[int]:
    """
    Check an animation cadence; None means "animate the final iteration only".

    Raises:
        InvalidConfigurationError: If it is neither None nor a positive integer
    """
    if animate_every is None:
        return None
    if isinstance(animate_every, bool) or not isinstance(animate_every, int) or animate_every <= 0:
        raise InvalidConfigurationError(
            f"animate_every must be a positive integer or None, got {animate_every!r}"
        )
    return animate_every


def validate_exploration(exploration_weight: Any) -> float:
    """
    Check an exploration constant.

    Raises:
        InvalidConfigurationError: If it is negative, NaN or infinite
    """
    if isinstance(exploration_weight, bool) or not isinstance(exploration_weight, (int, float)):
        raise InvalidConfigurationError(
            f"exploration_weight must be a number, got {exploration_weight!r}"
        )
    if not math.isfinite(exploration_weight) or exploration_weight < 0:
        raise InvalidConfigurationError(
            f"exploration_weight must be finite and non-negative, got {exploration_weight!r}"
        )
    return float(exploration_weight)


@dataclass
class MCTSConfig:
    """
    Configuration parameters for Monte Carlo Tree Search.

    This class defines all tunable parameters for the search engine,
    with validation and sensible defaults. Invalid values are rejected
    before any run starts.
    """
    # Search parameters
    exploration_weight: float = DEFAULT_EXPLORATION
    """UCT exploration constant C (0 = pure exploitation)"""

    iterations: int = DEFAULT_ITERATIONS
    """Number of iterations per run"""

    seed: int = DEFAULT_SEED
    """Seed the random source is reset to at the start of every run"""

    tie_epsilon: float = TIE_EPSILON
    """UCT scores closer than this are treated as tied"""

    # Run policy
    fresh_each_run: bool = True
    """Whether batch runs discard the previous tree before searching"""

    animate_every: Optional[int] = DEFAULT_ANIMATE_EVERY
    """Animate every k-th iteration of an animated batch (None = final only)"""

    # Animation pacing (seconds)
    phase_delay: float = PHASE_DELAY
    """Delay after each phase of a visible iteration"""

    simulation_step_delay: float = SIMULATION_STEP_DELAY
    """Delay after each rollout move shown during a visible iteration"""

    pause_poll_interval: float = PAUSE_POLL_INTERVAL
    """How often a paused run checks whether it was resumed or cancelled"""

    batch_yield_every: int = 1
    """Iterations between event-loop yields in batch mode"""

    # Constants
    FINAL_ONLY: ClassVar[None] = None
    """Cadence value meaning only the first and last iterations are animated"""

    def __post_init__(self):
        """Validate configuration parameters."""
        self.exploration_weight = validate_exploration(self.exploration_weight)
        validate_iterations(self.iterations)
        validate_animate_every(self.animate_every)

        if isinstance(self.seed, bool) or not isinstance(self.seed, int):
            raise InvalidConfigurationError("seed must be an integer")

        if not math.isfinite(self.tie_epsilon) or self.tie_epsilon < 0:
            raise InvalidConfigurationError("tie_epsilon must be finite and non-negative")

        for name in ("phase_delay", "simulation_step_delay"):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise InvalidConfigurationError(f"{name} must be finite and non-negative")

        if not math.isfinite(self.pause_poll_interval) or self.pause_poll_interval <= 0:
            raise InvalidConfigurationError("pause_poll_interval must be positive")

        if self.batch_yield_every <= 0:
            raise InvalidConfigurationError("batch_yield_every must be positive")

    @classmethod
    def default(cls) -> 'MCTSConfig':
        """
        Get the default configuration.

        Returns:
            Default MCTSConfig object
        """
        return cls()

    @classmethod
    def instant(cls, **overrides: Any) -> 'MCTSConfig':
        """
        Get a configuration with no animation delays.

        Visible iterations still publish every phase, they just do not wait.

        Returns:
            Instant MCTSConfig object
        """
        params = dict(phase_delay=0.0, simulation_step_delay=0.0, pause_poll_interval=0.001)
        params.update(overrides)
        return cls(**params)

    @classmethod
    def exploit(cls, **overrides: Any) -> 'MCTSConfig':
        """Get a pure-exploitation configuration (C = 0)."""
        return cls(**{"exploration_weight": 0.0, **overrides})

    @classmethod
    def explore(cls, **overrides: Any) -> 'MCTSConfig':
        """Get a heavily exploring configuration (C = 10)."""
        return cls(**{"exploration_weight": 10.0, **overrides})

    def with_overrides(self, **changes: Any) -> 'MCTSConfig':
        """
        Get a validated copy with some fields replaced.

        Returns:
            New MCTSConfig object
        """
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'MCTSConfig':
        """
        Create a configuration from a dictionary.

        Args:
            config_dict: Dictionary of configuration parameters

        Returns:
            MCTSConfig object
        """
        # Filter out any keys that aren't valid parameters
        valid_params = {k: v for k, v in config_dict.items()
                        if k in {f.name for f in fields(cls)}}
        return cls(**valid_params)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the configuration to a dictionary.

        Returns:
            Dictionary of configuration parameters
        """
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def __str__(self) -> str:
        params = ", ".join(f"{k}={v}" for k, v in self.to_dict().items())
        return f"MCTSConfig({params})"
