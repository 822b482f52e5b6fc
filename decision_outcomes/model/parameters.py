"""Typed parameter definitions.

Each parameter type is its own frozen dataclass so only the fields that make
sense for it exist: bounds and step on numbers, options on selects. Invariants
are checked on construction; an instance that exists is always consistent.
"""

import keyword
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Union

from decision_outcomes.model.coercion import to_boolean, to_number, to_text

if TYPE_CHECKING:
    from decision_outcomes.config.schema import (
        OutputConfig,
        ParameterConfig,
        ParameterGroupConfig,
    )

# Grid membership tolerance for stepped number parameters
STEP_TOLERANCE = 1e-4


def format_number(value: float) -> str:
    """Render a number without a trailing .0 for integral values."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def off_step_grid(number: float, start: float, step: float) -> bool:
    """Whether a number misses the grid ``start + n * step``; non-finite input never does."""
    ratio = (number - start) / step
    if not math.isfinite(ratio):
        return False
    steps = round(ratio)
    return abs(number - (start + steps * step)) > STEP_TOLERANCE


def is_valid_key(key: str) -> bool:
    """A key must be usable as a formula binding name."""
    return key.isidentifier() and not keyword.iskeyword(key)


@dataclass(frozen=True, kw_only=True)
class BaseParameter:
    """Fields shared by every parameter type.

    Attributes:
        key: Identifier the formula uses to read the value
        label: Human-readable name, used in error messages
        description: Optional help text
    """

    type: ClassVar[str] = ""

    key: str
    label: str
    description: str | None = None

    def __post_init__(self):
        if not is_valid_key(self.key):
            raise ValueError(f"Parameter key '{self.key}' is not a valid identifier")

    def validate_value(self, value: Any) -> list[str]:
        """Return the problems with a non-None candidate value."""
        raise NotImplementedError

    def coerce(self, value: Any) -> Any:
        """Best-effort conversion of an external value to this type."""
        return value


@dataclass(frozen=True, kw_only=True)
class NumberParameter(BaseParameter):
    """Numeric input with optional inclusive bounds and quantization grid."""

    type: ClassVar[str] = "number"

    default: float
    min: float | None = None
    max: float | None = None
    step: float | None = None

    def __post_init__(self):
        super().__post_init__()
        if isinstance(self.default, bool) or not math.isfinite(to_number(self.default)):
            raise ValueError(f"Default for '{self.key}' must be a number, got {self.default!r}")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(
                f"Parameter '{self.key}' has invalid range: "
                f"min ({format_number(self.min)}) > max ({format_number(self.max)})"
            )
        if self.step is not None and self.step <= 0:
            raise ValueError(f"Parameter '{self.key}' step must be positive, got {self.step}")
        errors = self._range_errors(to_number(self.default))
        if errors:
            raise ValueError(f"Default for '{self.key}' is out of range: {'; '.join(errors)}")
        if self.is_off_grid(to_number(self.default)):
            raise ValueError(
                f"Default for '{self.key}' must be in steps of "
                f"{format_number(self.step)} from {format_number(self.min)}"
            )

    def _range_errors(self, number: float) -> list[str]:
        errors = []
        if self.min is not None and number < self.min:
            errors.append(
                f"Parameter '{self.label}' value {format_number(number)} "
                f"is below minimum {format_number(self.min)}"
            )
        if self.max is not None and number > self.max:
            errors.append(
                f"Parameter '{self.label}' value {format_number(number)} "
                f"is above maximum {format_number(self.max)}"
            )
        return errors

    def validate_value(self, value: Any) -> list[str]:
        number = to_number(value)
        if math.isnan(number):
            return [f"Parameter '{self.label}' must be a number, got {value!r}"]
        if not math.isfinite(number):
            return [f"Parameter '{self.label}' must be a finite number, got {value!r}"]

        errors = self._range_errors(number)
        if self.is_off_grid(number):
            errors.append(
                f"Parameter '{self.label}' must be in steps of "
                f"{format_number(self.step)} from {format_number(self.min)}"
            )
        return errors

    def is_off_grid(self, number: float) -> bool:
        if self.step is None or self.min is None:
            return False
        return off_step_grid(number, self.min, self.step)

    def coerce(self, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return to_number(value)


@dataclass(frozen=True, kw_only=True)
class BooleanParameter(BaseParameter):
    """On/off input; only native booleans validate."""

    type: ClassVar[str] = "boolean"

    default: bool

    def __post_init__(self):
        super().__post_init__()
        if not isinstance(self.default, bool):
            raise ValueError(f"Default for '{self.key}' must be a boolean, got {self.default!r}")

    def validate_value(self, value: Any) -> list[str]:
        if not isinstance(value, bool):
            return [f"Parameter '{self.label}' must be a boolean"]
        return []

    def coerce(self, value: Any) -> Any:
        return to_boolean(value)


@dataclass(frozen=True, kw_only=True)
class StringParameter(BaseParameter):
    """Free-text input."""

    type: ClassVar[str] = "string"

    default: str

    def __post_init__(self):
        super().__post_init__()
        if not isinstance(self.default, str):
            raise ValueError(f"Default for '{self.key}' must be a string, got {self.default!r}")

    def validate_value(self, value: Any) -> list[str]:
        if not isinstance(value, str):
            return [f"Parameter '{self.label}' must be a string"]
        return []

    def coerce(self, value: Any) -> Any:
        return to_text(value)


@dataclass(frozen=True, kw_only=True)
class SelectParameter(BaseParameter):
    """Choice from an ordered, non-empty list of string options."""

    type: ClassVar[str] = "select"

    default: str
    options: tuple[str, ...]

    def __post_init__(self):
        super().__post_init__()
        if not self.options:
            raise ValueError(f"Select parameter '{self.key}' must have options")
        if to_text(self.default) not in self.options:
            raise ValueError(
                f"Default value '{self.default}' for parameter '{self.key}' must be one "
                f"of the options: {', '.join(self.options)}"
            )

    def validate_value(self, value: Any) -> list[str]:
        if to_text(value) not in self.options:
            return [f"Parameter '{self.label}' must be one of: {', '.join(self.options)}"]
        return []

    def coerce(self, value: Any) -> Any:
        return to_text(value)


ParameterDefinition = Union[NumberParameter, BooleanParameter, StringParameter, SelectParameter]

PARAMETER_TYPES: dict[str, type] = {
    cls.type: cls
    for cls in (NumberParameter, BooleanParameter, StringParameter, SelectParameter)
}


@dataclass(frozen=True)
class ParameterGroup:
    """Named, ordered subset of parameter keys for presentation."""

    name: str
    parameters: tuple[str, ...]
    description: str | None = None


@dataclass(frozen=True)
class OutputDefinition:
    """A key the formula result must contain."""

    key: str
    label: str
    description: str | None = None


def parameter_from_config(config: "ParameterConfig") -> ParameterDefinition:
    """Build the typed parameter for a validated document entry.

    Fields that do not apply to the entry's type are dropped.

    Raises:
        ValueError: If the type is unknown or the entry breaks an invariant
    """
    common = {"key": config.key, "label": config.label, "description": config.description}

    if config.type == "number":
        return NumberParameter(
            default=to_number(config.default) if isinstance(config.default, str) else config.default,
            min=config.min,
            max=config.max,
            step=config.step,
            **common,
        )
    if config.type == "boolean":
        return BooleanParameter(default=config.default, **common)
    if config.type == "string":
        return StringParameter(default=config.default, **common)
    if config.type == "select":
        return SelectParameter(
            default=to_text(config.default),
            options=tuple(config.options or ()),
            **common,
        )

    available = ", ".join(PARAMETER_TYPES)
    raise ValueError(f"Unknown parameter type '{config.type}'. Available types: {available}")


def group_from_config(config: "ParameterGroupConfig") -> ParameterGroup:
    return ParameterGroup(
        name=config.name,
        parameters=tuple(config.parameters),
        description=config.description,
    )


def output_from_config(config: "OutputConfig") -> OutputDefinition:
    return OutputDefinition(key=config.key, label=config.label, description=config.description)
