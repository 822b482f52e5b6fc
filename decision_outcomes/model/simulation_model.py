"""Runtime form of a simulation document.

The engine never works on the raw document: it is converted once into typed
parameter variants, groups and outputs held by an immutable SimulationModel.
"""

import re
from dataclasses import dataclass, field

from decision_outcomes.model.parameters import (
    OutputDefinition,
    ParameterDefinition,
    ParameterGroup,
    group_from_config,
    output_from_config,
    parameter_from_config,
)
from decision_outcomes.config.schema import SimulationDocument


def to_id(name: str) -> str:
    """Slug a simulation name: lowercase, alphanumerics, single hyphens.

    >>> to_id("AI Investment ROI!")
    'ai-investment-roi'
    """
    slug = re.sub(r"[^a-z0-9\s]", "", name.lower())
    slug = re.sub(r"\s+", "-", slug)
    return slug.strip("-")


@dataclass(frozen=True)
class SimulationModel:
    """Typed, immutable view of a simulation document.

    Attributes:
        name: Display name
        category: Grouping category
        description: What the simulation models
        version: Semantic version string
        tags: Search tags
        parameters: Parameter definitions in declaration order
        groups: Presentation groups
        outputs: Output contract the formula result must satisfy
        logic: Formula source text, None when only a base reference exists
        business_context: Explicit request for business-context injection
    """

    name: str
    category: str
    description: str
    version: str
    tags: tuple[str, ...] = ()
    parameters: tuple[ParameterDefinition, ...] = ()
    groups: tuple[ParameterGroup, ...] = ()
    outputs: tuple[OutputDefinition, ...] = ()
    logic: str | None = None
    business_context: bool | None = None
    base_simulation: str | None = field(default=None, compare=False)

    @property
    def id(self) -> str:
        return to_id(self.name)

    @property
    def parameter_keys(self) -> list[str]:
        return [p.key for p in self.parameters]

    @classmethod
    def from_document(cls, document: SimulationDocument) -> "SimulationModel":
        """Convert a structurally valid document into typed definitions.

        Raises:
            ValueError: If a parameter breaks a type invariant
        """
        return cls(
            name=document.name,
            category=document.category,
            description=document.description,
            version=document.version,
            tags=tuple(document.tags),
            parameters=tuple(parameter_from_config(p) for p in document.parameters),
            groups=tuple(group_from_config(g) for g in document.groups or ()),
            outputs=tuple(output_from_config(o) for o in document.outputs or ()),
            logic=document.logic,
            business_context=document.business_context,
            base_simulation=document.base_simulation,
        )
