"""Pydantic schemas for simulation documents.

These models describe the structural shape of a document as authored in YAML
or JSON: field presence, primitive types, lengths and counts. Cross-field
rules (duplicate keys, defaults within bounds, group references) live in the
validator so that they can be reported together with warnings.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    StringConstraints,
)

NonEmptyStr = Annotated[StrictStr, StringConstraints(min_length=1)]
Number = Union[StrictInt, StrictFloat]
ParameterType = Literal["number", "boolean", "string", "select"]

VERSION_PATTERN = r"^\d+\.\d+\.\d+$"


class DocumentModel(BaseModel):
    """Base for document models: unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class ParameterConfig(DocumentModel):
    """A parameter entry as written in a document.

    Attributes:
        key: Identifier the formula reads the value through
        label: Human-readable name
        type: One of number, boolean, string, select
        default: Default value; must match ``type`` (checked as a business rule)
        min: Inclusive lower bound (numbers)
        max: Inclusive upper bound (numbers)
        step: Quantization grid starting at ``min`` (numbers)
        options: Allowed values (selects)
    """

    key: NonEmptyStr
    label: NonEmptyStr
    type: ParameterType
    default: Union[StrictBool, StrictInt, StrictFloat, StrictStr]
    min: Optional[Number] = None
    max: Optional[Number] = None
    step: Optional[Number] = None
    options: Optional[list[StrictStr]] = None
    description: Optional[StrictStr] = None


class ParameterGroupConfig(DocumentModel):
    """A presentation group of parameter keys."""

    name: NonEmptyStr
    description: Optional[StrictStr] = None
    parameters: list[StrictStr] = Field(..., min_length=1)


class OutputConfig(DocumentModel):
    """A key the formula result must contain."""

    key: NonEmptyStr
    label: NonEmptyStr
    description: Optional[StrictStr] = None


class SimulationLogic(DocumentModel):
    """Formula source evaluated once per iteration."""

    logic: Annotated[StrictStr, StringConstraints(min_length=10)]


class SimulationDocument(DocumentModel):
    """Top-level simulation document.

    A document either carries its own ``simulation.logic`` or names a
    ``baseSimulation`` to inherit it from.
    """

    name: Annotated[StrictStr, StringConstraints(min_length=1, max_length=100)]
    category: NonEmptyStr
    description: Annotated[StrictStr, StringConstraints(min_length=10, max_length=500)]
    version: Annotated[StrictStr, StringConstraints(pattern=VERSION_PATTERN)]
    tags: list[NonEmptyStr] = Field(..., min_length=1, max_length=10)
    base_simulation: Optional[StrictStr] = Field(default=None, alias="baseSimulation")
    business_context: Optional[StrictBool] = Field(default=None, alias="businessContext")
    parameters: list[ParameterConfig] = Field(..., min_length=1, max_length=20)
    groups: Optional[list[ParameterGroupConfig]] = None
    outputs: Optional[list[OutputConfig]] = Field(default=None, min_length=1, max_length=10)
    simulation: Optional[SimulationLogic] = None

    @property
    def logic(self) -> str | None:
        return self.simulation.logic if self.simulation else None

    def to_document(self) -> dict:
        """Dump back to the authored (camelCase, no nulls) shape."""
        return self.model_dump(by_alias=True, exclude_none=True)
