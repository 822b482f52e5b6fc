"""Parameter definitions and the runtime simulation model."""

from decision_outcomes.model.parameters import (
    PARAMETER_TYPES,
    BooleanParameter,
    NumberParameter,
    OutputDefinition,
    ParameterDefinition,
    ParameterGroup,
    SelectParameter,
    StringParameter,
)
from decision_outcomes.model.parameter_schema import ParameterSchema, ParameterValidationResult


def get_parameter_class(type_name: str) -> type:
    """Get a parameter class by its document type name.

    Args:
        type_name: Name of the type (e.g., "number")

    Returns:
        Parameter class from the registry

    Raises:
        ValueError: If the type name is not registered
    """
    if type_name not in PARAMETER_TYPES:
        available = ", ".join(PARAMETER_TYPES.keys())
        raise ValueError(
            f"Unknown parameter type '{type_name}'. Available types: {available}"
        )
    return PARAMETER_TYPES[type_name]


__all__ = [
    "PARAMETER_TYPES",
    "BooleanParameter",
    "NumberParameter",
    "OutputDefinition",
    "ParameterDefinition",
    "ParameterGroup",
    "ParameterSchema",
    "ParameterValidationResult",
    "SelectParameter",
    "StringParameter",
    "get_parameter_class",
]
