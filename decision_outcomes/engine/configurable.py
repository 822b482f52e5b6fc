"""Simulation driven entirely by a declarative document."""

from typing import Any

import numpy as np
import structlog

from decision_outcomes.config.schema import SimulationDocument
from decision_outcomes.engine.sandbox import Formula, build_math_bindings, evaluate_outputs
from decision_outcomes.engine.simulator import MonteCarloEngine, SimulationMetadata
from decision_outcomes.errors import ConfigurationError, FormulaError, format_error
from decision_outcomes.model.business_context import BusinessContextInjector
from decision_outcomes.model.parameter_schema import ParameterSchema
from decision_outcomes.model.parameters import OutputDefinition, ParameterDefinition
from decision_outcomes.model.simulation_model import SimulationModel
from decision_outcomes.settings import SimulationSettings

logger = structlog.get_logger()


class ConfigurableSimulation(MonteCarloEngine):
    """Evaluates a document's formula once per iteration inside the sandbox.

    The document is converted to typed definitions once; business context is
    applied through the injected ``injector`` when the document calls for it.
    """

    def __init__(
        self,
        document: SimulationDocument,
        injector: BusinessContextInjector | None = None,
        sim_settings: SimulationSettings | None = None,
    ):
        super().__init__(sim_settings)
        self.document = document
        self.injector = injector or BusinessContextInjector()

        try:
            base_model = SimulationModel.from_document(document)
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid simulation '{document.name}'", [format_error(exc)]
            ) from exc

        if base_model.logic is None:
            raise ConfigurationError(
                f"Simulation '{document.name}' has no simulation logic; "
                "resolve its baseSimulation before running it"
            )

        self.model = self.injector.enhance(base_model)
        self._formula: Formula | None = None

    def get_metadata(self) -> SimulationMetadata:
        return SimulationMetadata(
            id=self.model.id,
            name=self.model.name,
            description=self.model.description,
            category=self.model.category,
            version=self.model.version,
        )

    def get_parameter_definitions(self) -> list[ParameterDefinition]:
        return list(self.model.parameters)

    def build_parameter_schema(self) -> ParameterSchema:
        schema = super().build_parameter_schema()
        for group in self.model.groups:
            schema.add_group(group)
        return schema

    def get_output_definitions(self) -> list[OutputDefinition]:
        return list(self.model.outputs)

    def get_configuration(self) -> SimulationModel:
        """The model as executed, including any injected business context."""
        return self.model

    def get_default_parameters(self) -> dict[str, Any]:
        return self.get_parameter_schema().get_default_parameters()

    def formula(self) -> Formula:
        """Parsed formula, built on first use.

        A formula that fails to parse is not cached, so each iteration reports
        the same parse error.
        """
        if self._formula is None:
            self._formula = Formula(self.model.logic)
        return self._formula

    def simulate_scenario(
        self, parameters: dict[str, Any], rng: np.random.RandomState
    ) -> dict[str, float]:
        bindings = {**parameters, **build_math_bindings(rng.random_sample)}
        expected = [output.key for output in self.model.outputs]
        try:
            return evaluate_outputs(self.formula(), bindings, expected)
        except FormulaError as exc:
            raise FormulaError(f"Simulation execution failed: {exc}") from exc
        except Exception as exc:
            raise FormulaError(
                f"Simulation execution failed: {type(exc).__name__}: {format_error(exc)}"
            ) from exc

    def validate_configuration(self, seed: int | None = None) -> dict[str, Any]:
        """Dry-run the formula once with default parameters.

        Returns:
            ``{"valid": bool, "errors": [...]}``
        """
        errors = []
        try:
            self.simulate_scenario(self.get_default_parameters(), np.random.RandomState(seed))
        except FormulaError as exc:
            errors.append(f"Simulation logic validation failed: {exc}")

        if errors:
            logger.warning("configuration_dry_run_failed", simulation=self.model.id, errors=errors)
        return {"valid": not errors, "errors": errors}
