"""Monte Carlo simulation engine.

Runs N independent evaluations of one configured model, collects successes
and per-iteration failures, and reduces the successes to statistical
summaries. The loop is sequential and synchronous; nothing is shared between
iterations except the immutable parameter map.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol

import numpy as np
import pandas as pd
import structlog
from pydantic import BaseModel

from decision_outcomes.engine.metrics import StatisticalSummary, calculate_summary
from decision_outcomes.errors import (
    AllIterationsFailedError,
    ParameterValidationError,
    format_error,
)
from decision_outcomes.model.parameter_schema import ParameterSchema
from decision_outcomes.model.parameters import ParameterDefinition
from decision_outcomes.settings import SimulationSettings, settings

logger = structlog.get_logger()

ITERATION_KEY = "iteration"


class RunState(str, Enum):
    """Lifecycle of a single run."""

    IDLE = "idle"
    VALIDATING = "validating"
    ITERATING = "iterating"
    SUMMARIZING = "summarizing"
    DONE = "done"
    FAILED = "failed"


class ProgressCallback(Protocol):
    """Receives (fraction completed, iterations completed)."""

    def __call__(self, progress: float, iteration: int) -> None:
        ...


class SimulationMetadata(BaseModel):
    """Identity of a simulation."""

    id: str
    name: str
    description: str
    category: str
    version: str


class IterationError(BaseModel):
    """A failed iteration and why it failed."""

    iteration: int
    error: str


class SimulationResult(BaseModel):
    """Container for the outcome of one run.

    Attributes:
        metadata: Identity of the simulation that ran
        parameters: Parameter map the run was validated against
        results: One mapping per successful iteration, tagged with its index
        summary: Statistical summary per output key
        start_time: When the run started (UTC)
        end_time: When the run finished (UTC)
        duration: Wall-clock duration in milliseconds
        errors: Failed iterations, None when every iteration succeeded
    """

    metadata: SimulationMetadata
    parameters: dict[str, Any]
    results: list[dict[str, int | float]]
    summary: dict[str, StatisticalSummary]
    start_time: datetime
    end_time: datetime
    duration: float
    errors: Optional[list[IterationError]] = None

    def values(self, key: str) -> np.ndarray:
        """Raw samples of one output key across the iterations that produced it."""
        return np.array([r[key] for r in self.results if key in r], dtype=float)

    def to_frame(self) -> pd.DataFrame:
        """Per-iteration results as a DataFrame with an ``iteration`` column."""
        return pd.DataFrame(self.results)


class MonteCarloEngine(ABC):
    """Base class for simulations: subclasses define one scenario evaluation.

    The parameter schema is built lazily from ``get_parameter_definitions``.
    """

    def __init__(self, sim_settings: SimulationSettings | None = None):
        self.settings = sim_settings or settings.simulation
        self.state = RunState.IDLE
        self._parameter_schema: ParameterSchema | None = None

    @abstractmethod
    def get_metadata(self) -> SimulationMetadata:
        ...

    @abstractmethod
    def get_parameter_definitions(self) -> list[ParameterDefinition]:
        ...

    @abstractmethod
    def simulate_scenario(
        self, parameters: dict[str, Any], rng: np.random.RandomState
    ) -> dict[str, float]:
        """Evaluate one iteration.

        Args:
            parameters: Validated parameter values
            rng: Random state; the only source of randomness for the iteration

        Returns:
            Mapping from output key to value
        """
        ...

    def get_parameter_schema(self) -> ParameterSchema:
        if self._parameter_schema is None:
            self._parameter_schema = self.build_parameter_schema()
        return self._parameter_schema

    def build_parameter_schema(self) -> ParameterSchema:
        return ParameterSchema(self.get_parameter_definitions())

    def validate_parameters(self, parameters: dict[str, Any]) -> None:
        """Raise ParameterValidationError listing every problem with ``parameters``."""
        result = self.get_parameter_schema().validate_parameters(parameters)
        if not result.is_valid:
            raise ParameterValidationError(result.errors)

    def run_simulation(
        self,
        parameters: dict[str, Any],
        iterations: int | None = None,
        on_progress: ProgressCallback | None = None,
        seed: int | None = None,
    ) -> SimulationResult:
        """Run the Monte Carlo loop.

        Args:
            parameters: Value for every defined parameter
            iterations: Number of evaluations (settings default when omitted)
            on_progress: Called on the first iteration, every
                ``progress_interval``-th iteration and the last one
            seed: Seed for the random state (settings default when omitted)

        Returns:
            SimulationResult with per-iteration results and summaries

        Raises:
            ParameterValidationError: If parameters do not validate
            ValueError: If iterations is not positive
            AllIterationsFailedError: If no iteration succeeded
        """
        start_time = datetime.now(timezone.utc)
        metadata = self.get_metadata()
        log = logger.bind(simulation=metadata.id)

        self.state = RunState.VALIDATING
        try:
            self.validate_parameters(parameters)
        except ParameterValidationError as exc:
            self.state = RunState.FAILED
            log.warning("parameter_validation_failed", errors=exc.errors)
            raise

        if iterations is None:
            iterations = self.settings.default_iterations
        if iterations <= 0:
            self.state = RunState.FAILED
            raise ValueError("Iterations must be greater than 0")

        if seed is None:
            seed = self.settings.seed
        rng = np.random.RandomState(seed)
        bindings = self.get_parameter_schema().coerce_parameters(parameters)
        interval = self.settings.progress_interval

        log.info("simulation_started", iterations=iterations, seed=seed)
        self.state = RunState.ITERATING

        results: list[dict[str, int | float]] = []
        errors: list[IterationError] = []

        for i in range(iterations):
            try:
                scenario = self.simulate_scenario(bindings, rng)
                results.append({ITERATION_KEY: i, **scenario})
            except Exception as exc:  # formula failures stay inside the iteration
                errors.append(IterationError(iteration=i, error=format_error(exc)))
                log.debug("iteration_failed", iteration=i, error=format_error(exc))

            if on_progress is not None and (i % interval == 0 or i == iterations - 1):
                on_progress((i + 1) / iterations, i + 1)

        if not results:
            self.state = RunState.FAILED
            first_error = errors[0].error if errors else None
            log.error("simulation_failed", iterations=iterations, first_error=first_error)
            raise AllIterationsFailedError(iterations, first_error)

        self.state = RunState.SUMMARIZING
        summary = self.summarize(results)

        end_time = datetime.now(timezone.utc)
        duration = (end_time - start_time).total_seconds() * 1000

        if errors:
            log.warning("iterations_failed", failed=len(errors), iterations=iterations)
        log.info(
            "simulation_completed",
            succeeded=len(results),
            failed=len(errors),
            duration_ms=round(duration, 1),
        )
        self.state = RunState.DONE

        return SimulationResult(
            metadata=metadata,
            parameters=parameters,
            results=results,
            summary=summary,
            start_time=start_time,
            end_time=end_time,
            duration=duration,
            errors=errors or None,
        )

    def summarize(self, results: list[dict[str, int | float]]) -> dict[str, StatisticalSummary]:
        """Summaries for every numeric key of the first result.

        A key missing from some results is summarized over the results that
        have it; nothing is zero-filled.
        """
        keys = [
            key
            for key, value in results[0].items()
            if key != ITERATION_KEY and isinstance(value, (int, float))
        ]
        return {
            key: calculate_summary([r[key] for r in results if key in r])
            for key in keys
        }
