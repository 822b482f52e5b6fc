"""Validation, coercion and defaults for a set of parameter definitions."""

from dataclasses import dataclass, field
from typing import Any, Iterable

from decision_outcomes.model.parameters import ParameterDefinition, ParameterGroup


@dataclass
class ParameterValidationResult:
    """Outcome of validating one value or a whole parameter map."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)


class ParameterSchema:
    """The parameter definitions of one simulation, keyed by parameter key.

    Definitions are the source of truth for required inputs: every definition
    must be supplied when a full parameter map is validated.
    """

    def __init__(self, definitions: Iterable[ParameterDefinition]):
        self._definitions: dict[str, ParameterDefinition] = {}
        for definition in definitions:
            self._definitions[definition.key] = definition
        self._groups: list[ParameterGroup] = []

    def add_group(self, group: ParameterGroup) -> None:
        """Register a presentation group.

        Raises:
            ValueError: If the group references a key with no definition
        """
        for key in group.parameters:
            if key not in self._definitions:
                raise ValueError(
                    f"Parameter '{key}' in group '{group.name}' does not exist"
                )
        self._groups.append(group)

    def get_groups(self) -> list[ParameterGroup]:
        return list(self._groups)

    def get_definitions(self) -> list[ParameterDefinition]:
        return list(self._definitions.values())

    def get_definition(self, key: str) -> ParameterDefinition | None:
        return self._definitions.get(key)

    def validate_parameter(self, key: str, value: Any) -> ParameterValidationResult:
        """Type-check a single value against the definition for ``key``."""
        definition = self._definitions.get(key)
        if definition is None:
            return ParameterValidationResult(False, [f"Unknown parameter: {key}"])

        if value is None:
            return ParameterValidationResult(
                False, [f"Parameter '{definition.label}' is required"]
            )

        errors = definition.validate_value(value)
        return ParameterValidationResult(not errors, errors)

    def validate_parameters(self, parameters: dict[str, Any]) -> ParameterValidationResult:
        """Validate every supplied value and report every missing definition."""
        errors: list[str] = []

        for key, value in parameters.items():
            errors.extend(self.validate_parameter(key, value).errors)

        for definition in self._definitions.values():
            if definition.key not in parameters:
                errors.append(f"Missing required parameter: {definition.label}")

        return ParameterValidationResult(not errors, errors)

    def coerce_parameters(self, parameters: dict[str, Any]) -> dict[str, Any]:
        """Normalize external values (e.g. command-line strings) by type.

        Unknown keys pass through unchanged.
        """
        coerced = {}
        for key, value in parameters.items():
            definition = self._definitions.get(key)
            coerced[key] = value if definition is None else definition.coerce(value)
        return coerced

    def get_default_parameters(self) -> dict[str, Any]:
        return {key: definition.default for key, definition in self._definitions.items()}

    def layout(self) -> tuple[list[tuple[ParameterGroup, list[ParameterDefinition]]], list[ParameterDefinition]]:
        """Arrange definitions by group for display.

        Returns:
            Tuple of (groups with their definitions in group order, definitions
            not placed in any group in declaration order)
        """
        grouped_keys: set[str] = set()
        groups = []
        for group in self._groups:
            grouped_keys.update(group.parameters)
            groups.append((group, [self._definitions[key] for key in group.parameters]))

        ungrouped = [
            definition
            for key, definition in self._definitions.items()
            if key not in grouped_keys
        ]
        return groups, ungrouped

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, key: str) -> bool:
        return key in self._definitions
