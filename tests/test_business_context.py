"""Tests for business-context injection."""

import copy

import pytest

from decision_outcomes.config.schema import SimulationDocument
from decision_outcomes.engine.configurable import ConfigurableSimulation
from decision_outcomes.model.business_context import (
    ARR_KEY,
    BUDGET_KEY,
    BusinessContextInjector,
)
from decision_outcomes.model.simulation_model import SimulationModel, to_id


@pytest.fixture
def injector() -> BusinessContextInjector:
    return BusinessContextInjector()


@pytest.fixture
def strategic(document) -> dict:
    document = copy.deepcopy(document)
    document.update(
        {
            "name": "Tooling Investment",
            "category": "Engineering",
            "description": "Return on a developer tooling purchase",
            "tags": ["tooling"],
            "parameters": [
                {"key": "uplift", "label": "Uplift", "type": "number", "default": 1.5},
            ],
            "groups": None,
            "outputs": [{"key": "roi", "label": "ROI"}],
            "simulation": {
                "logic": "roi = calculateROI(arrBudget, arrBudget * uplift)\nreturn {roi}"
            },
        }
    )
    return document


def _model(document: dict) -> SimulationModel:
    return SimulationModel.from_document(SimulationDocument.model_validate(document))


def test_should_inject(injector, document, strategic):
    """Test keyword detection and the explicit opt-in."""
    assert not injector.should_inject(_model(document))
    assert injector.should_inject(_model(strategic))

    document["businessContext"] = True
    assert injector.should_inject(_model(document))


def test_enhance_non_strategic_is_noop(injector, document):
    """Test that ordinary simulations are left untouched."""
    model = _model(document)

    assert injector.enhance(model) is model


def test_enhance_injects_parameters_group_and_logic(injector, strategic):
    """Test that ARR and budget inputs are prepended with their group."""
    enhanced = injector.enhance(_model(strategic))

    assert enhanced.parameter_keys == [ARR_KEY, BUDGET_KEY, "uplift"]
    assert enhanced.groups[0].name == "Business Context"
    assert enhanced.groups[0].parameters == (ARR_KEY, BUDGET_KEY)
    assert enhanced.logic.startswith("# Business context\n")
    assert f"arrBudget = {ARR_KEY} * ({BUDGET_KEY} or 10) / 100" in enhanced.logic
    assert enhanced.logic.rstrip().endswith("return {roi}")


def test_enhance_keeps_author_arr(injector, strategic):
    """Test that an authored ARR parameter only gets the logic prefix."""
    strategic["parameters"].append(
        {"key": ARR_KEY, "label": "ARR", "type": "number", "default": 2_000_000}
    )
    model = _model(strategic)

    enhanced = injector.enhance(model)

    assert enhanced.parameters == model.parameters
    assert enhanced.groups == ()
    assert f"arrBudget = {ARR_KEY} * 10 / 100" in enhanced.logic


def test_enhance_keeps_author_budget(injector, strategic):
    """Test that an authored budget share is not duplicated."""
    strategic["parameters"].append(
        {"key": BUDGET_KEY, "label": "Budget", "type": "number", "default": 20}
    )

    enhanced = injector.enhance(_model(strategic))

    assert enhanced.parameter_keys == [ARR_KEY, "uplift", BUDGET_KEY]


def test_injection_code_without_arr(injector):
    """Test that nothing is derived without an ARR parameter."""
    assert injector.injection_code(["uplift"]) == (
        "# No business context injection - ARR not provided\n"
    )


def test_create_business_context(injector):
    """Test budget figures derived from ARR."""
    context = injector.create_business_context(1_200_000, 10)

    assert context.arr_budget == 120_000
    assert context.monthly_budget == 10_000
    assert context.quarterly_budget == 30_000


def test_injected_simulation_runs(strategic):
    """Test that injected helpers and budget bindings work in a run."""
    simulation = ConfigurableSimulation(SimulationDocument.model_validate(strategic))
    params = simulation.get_default_parameters()

    assert params[ARR_KEY] == 5_000_000
    assert params[BUDGET_KEY] == 10

    result = simulation.run_simulation(params, iterations=5, seed=0)

    assert result.summary["roi"].mean == pytest.approx(50.0)
    assert [g.name for g in simulation.get_parameter_schema().get_groups()] == [
        "Business Context"
    ]


def test_injected_helpers(strategic):
    """Test the helper functions made available by injection."""
    strategic["outputs"] = [{"key": "npv", "label": "NPV"}]
    strategic["simulation"]["logic"] = (
        "npv = calculateNPV([-100, 60, 60], 0)\n"
        "payback = calculatePaybackPeriod(1200, 100)\n"
        "runway = calculateRunway(1000, 0)\n"
        "cac = calculateCAC(5000, 50)\n"
        "return {npv, payback, runway, cac}"
    )
    simulation = ConfigurableSimulation(SimulationDocument.model_validate(strategic))

    result = simulation.run_simulation(simulation.get_default_parameters(), iterations=1)

    assert result.results[0] == {
        "iteration": 0, "npv": 20.0, "payback": 12.0, "runway": 999.0, "cac": 100.0,
    }


def test_to_id():
    """Test slug generation from simulation names."""
    assert to_id("AI Investment ROI!") == "ai-investment-roi"
    assert to_id("  Hiring   Plan ") == "hiring-plan"
