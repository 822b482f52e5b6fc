"""Tests for simulation engine."""

import numpy as np
import pytest

from decision_outcomes.config.schema import SimulationDocument
from decision_outcomes.engine.configurable import ConfigurableSimulation
from decision_outcomes.engine.simulator import (
    MonteCarloEngine,
    RunState,
    SimulationMetadata,
)
from decision_outcomes.errors import (
    AllIterationsFailedError,
    ConfigurationError,
    ParameterValidationError,
)
from decision_outcomes.model import NumberParameter
from decision_outcomes.model.business_context import BusinessContextInjector
from decision_outcomes.settings import SimulationSettings


def _simulation(document: dict, logic: str | None = None, **settings) -> ConfigurableSimulation:
    if logic is not None:
        document["simulation"] = {"logic": logic}
    return ConfigurableSimulation(
        SimulationDocument.model_validate(document),
        injector=BusinessContextInjector(keywords=()),
        sim_settings=SimulationSettings(**settings),
    )


def test_run_simulation_bounds(document):
    """Test that 1 + random() stays in [1, 2) over many iterations."""
    document["outputs"] = [{"key": "roi", "label": "ROI"}]
    simulation = _simulation(document, "roi = 1 + random()\nreturn {roi}")

    result = simulation.run_simulation(simulation.get_default_parameters(), iterations=1000)

    assert len(result.results) == 1000
    assert result.errors is None
    assert result.summary["roi"].min >= 1
    assert result.summary["roi"].max < 2
    assert result.summary["roi"].count == 1000
    assert simulation.state == RunState.DONE


def test_run_simulation_deterministic(document):
    """Test that run_simulation is deterministic with fixed seed."""
    simulation = _simulation(document)
    params = simulation.get_default_parameters()

    result1 = simulation.run_simulation(params, iterations=200, seed=42)
    result2 = simulation.run_simulation(params, iterations=200, seed=42)
    result3 = simulation.run_simulation(params, iterations=200, seed=43)

    assert result1.results == result2.results
    assert result1.summary == result2.summary
    assert result1.results != result3.results


def test_seed_from_settings(document):
    """Test that the settings seed is used when none is passed."""
    simulation = _simulation(document, SIM_SEED=7)
    params = simulation.get_default_parameters()

    first = simulation.run_simulation(params, iterations=20)
    second = simulation.run_simulation(params, iterations=20, seed=7)

    assert first.results == second.results


def test_result_structure(document):
    """Test per-iteration tagging, the frame export and timing fields."""
    simulation = _simulation(document)

    result = simulation.run_simulation(simulation.get_default_parameters(), iterations=25, seed=1)

    assert [r["iteration"] for r in result.results] == list(range(25))
    assert list(result.summary) == ["payout"]
    assert result.metadata.id == "dice-game-payout"
    assert result.end_time >= result.start_time
    assert result.duration >= 0

    frame = result.to_frame()
    assert list(frame.columns) == ["iteration", "payout"]
    assert len(frame) == 25
    np.testing.assert_array_equal(result.values("payout"), frame["payout"].values)


def test_parameters_drive_formula(document):
    """Test that supplied parameters reach the formula."""
    simulation = _simulation(document)
    params = {"stake": 10, "bonus": True, "tier": "high"}

    result = simulation.run_simulation(params, iterations=100, seed=0)

    # payout = 10 * random() * 2 + 5
    assert result.summary["payout"].min >= 5
    assert result.summary["payout"].max < 25


def test_parameter_validation_failure(document):
    """Test that invalid parameters abort the run before iterating."""
    simulation = _simulation(document)

    with pytest.raises(ParameterValidationError, match="above maximum 100") as excinfo:
        simulation.run_simulation({"stake": 500, "bonus": False, "tier": "low"}, iterations=10)

    assert excinfo.value.errors == ["Parameter 'Stake' value 500 is above maximum 100"]
    assert simulation.state == RunState.FAILED


def test_iterations_must_be_positive(document):
    """Test that zero iterations is rejected."""
    simulation = _simulation(document)

    with pytest.raises(ValueError, match="Iterations must be greater than 0"):
        simulation.run_simulation(simulation.get_default_parameters(), iterations=0)


def test_all_iterations_failed(document):
    """Test that a run with no successful iteration raises."""
    simulation = _simulation(document, "payout = stake / 0\nreturn {payout}")

    with pytest.raises(AllIterationsFailedError, match="All iterations failed") as excinfo:
        simulation.run_simulation(simulation.get_default_parameters(), iterations=5)

    assert "division by zero" in excinfo.value.first_error


def test_formula_parse_error_fails_every_iteration(document):
    """Test that an unparseable formula reports its error per iteration."""
    simulation = _simulation(document, "payout = = stake\nreturn {payout}")

    with pytest.raises(AllIterationsFailedError) as excinfo:
        simulation.run_simulation(simulation.get_default_parameters(), iterations=3)

    assert "Invalid formula syntax" in excinfo.value.first_error


def test_partial_failures_are_recorded(document):
    """Test that failing iterations are collected alongside successes."""
    simulation = _simulation(
        document,
        "if random() < 0.5:\n    return {'payout': 1 / 0}\nreturn {'payout': stake}",
    )

    result = simulation.run_simulation(simulation.get_default_parameters(), iterations=200, seed=3)

    assert result.errors
    assert len(result.results) + len(result.errors) == 200
    assert result.summary["payout"].mean == 10
    failed = {e.iteration for e in result.errors}
    assert failed.isdisjoint(r["iteration"] for r in result.results)
    assert "ZeroDivisionError" in result.errors[0].error


def test_missing_output_is_iteration_error(document):
    """Test that results missing a declared output fail the iteration."""
    simulation = _simulation(document, "other = stake\nreturn {other}")

    with pytest.raises(AllIterationsFailedError, match="Missing expected outputs: payout"):
        simulation.run_simulation(simulation.get_default_parameters(), iterations=2)


def test_progress_callback_throttling(document):
    """Test progress fires on the first, every interval-th and the last iteration."""
    simulation = _simulation(document, SIM_PROGRESS_INTERVAL=100)
    calls = []

    simulation.run_simulation(
        simulation.get_default_parameters(),
        iterations=250,
        on_progress=lambda progress, iteration: calls.append((progress, iteration)),
    )

    assert calls == [(1 / 250, 1), (101 / 250, 101), (201 / 250, 201), (1.0, 250)]


def test_default_iterations_from_settings(document):
    """Test that the settings iteration count applies when none is passed."""
    simulation = _simulation(document, SIM_ITERATIONS=30)

    result = simulation.run_simulation(simulation.get_default_parameters())

    assert len(result.results) == 30


def test_validate_configuration(document):
    """Test the single-iteration dry run."""
    assert _simulation(document).validate_configuration(seed=0) == {"valid": True, "errors": []}

    broken = _simulation(document, "payout = missing\nreturn {payout}")
    report = broken.validate_configuration()
    assert not report["valid"]
    assert "name 'missing' is not defined" in report["errors"][0]


def test_configurable_requires_logic(document):
    """Test that a document still waiting on its base cannot run."""
    del document["simulation"]
    document["baseSimulation"] = "base.yaml"

    with pytest.raises(ConfigurationError, match="has no simulation logic"):
        ConfigurableSimulation(SimulationDocument.model_validate(document))


def test_configurable_rejects_broken_definitions(document):
    """Test that documents skipping business-rule validation still fail cleanly."""
    document["parameters"][0]["default"] = 0

    with pytest.raises(ConfigurationError, match="Invalid simulation 'Dice Game Payout'"):
        ConfigurableSimulation(SimulationDocument.model_validate(document))


class ConstantSimulation(MonteCarloEngine):
    """Minimal hand-written engine."""

    def get_metadata(self):
        return SimulationMetadata(
            id="constant", name="Constant", description="Always the same", category="Test",
            version="1.0.0",
        )

    def get_parameter_definitions(self):
        return [NumberParameter(key="value", label="Value", default=3)]

    def simulate_scenario(self, parameters, rng):
        return {"value": parameters["value"], "noise": rng.random_sample()}


def test_custom_engine_subclass():
    """Test that engines can be written directly against the base class."""
    engine = ConstantSimulation()

    result = engine.run_simulation({"value": 4}, iterations=10, seed=0)

    assert result.summary["value"].mean == 4
    assert result.summary["value"].standard_deviation == 0
    assert set(result.summary) == {"value", "noise"}


class AlternatingSimulation(ConstantSimulation):
    """Reports a bonus round on every other iteration only."""

    def __init__(self):
        super().__init__()
        self.calls = 0

    def simulate_scenario(self, parameters, rng):
        self.calls += 1
        if self.calls % 2:
            return {"value": parameters["value"], "bonusRound": 100}
        return {"value": parameters["value"]}


def test_summary_keys_missing_from_some_iterations():
    """Test that keys absent from some results are summarized without zero-fill."""
    engine = AlternatingSimulation()

    result = engine.run_simulation({"value": 4}, iterations=10, seed=0)

    assert len(result.results) == 10
    assert result.summary["value"].count == 10
    assert result.summary["bonusRound"].count == 5
    assert result.summary["bonusRound"].min == 100
    assert result.summary["bonusRound"].mean == 100
