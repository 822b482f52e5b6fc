"""Lookup of available simulations by id, category, tag and text."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Literal

import structlog

from decision_outcomes.config.loader import load_configs
from decision_outcomes.engine.configurable import ConfigurableSimulation
from decision_outcomes.engine.simulator import MonteCarloEngine, SimulationMetadata
from decision_outcomes.model.business_context import BusinessContextInjector

logger = structlog.get_logger()

SimulationFactory = Callable[[], MonteCarloEngine]


@dataclass
class RegistryEntry:
    """A registered simulation factory and its metadata."""

    id: str
    factory: SimulationFactory
    metadata: SimulationMetadata
    tags: list[str] = field(default_factory=list)


class SimulationRegistry:
    """Registered simulations of one process.

    Factories produce a fresh engine per lookup so runs never share state.
    Create one registry at start-up and pass it to whatever needs it.
    """

    def __init__(self):
        self._entries: dict[str, RegistryEntry] = {}

    def register(self, factory: SimulationFactory, tags: list[str] | None = None) -> str:
        """Register a simulation factory.

        Returns:
            The simulation id

        Raises:
            ValueError: If a simulation with the same id is already registered
        """
        metadata = factory().get_metadata()
        if metadata.id in self._entries:
            raise ValueError(f"Simulation with id '{metadata.id}' is already registered")

        self._entries[metadata.id] = RegistryEntry(
            id=metadata.id, factory=factory, metadata=metadata, tags=list(tags or [])
        )
        logger.debug("simulation_registered", simulation=metadata.id)
        return metadata.id

    def get_simulation(self, simulation_id: str) -> MonteCarloEngine | None:
        entry = self._entries.get(simulation_id)
        return entry.factory() if entry else None

    def get_entry(self, simulation_id: str) -> RegistryEntry | None:
        return self._entries.get(simulation_id)

    def get_all_simulations(self) -> list[SimulationMetadata]:
        return sorted(
            (entry.metadata for entry in self._entries.values()),
            key=lambda m: m.name.lower(),
        )

    def search_simulations(
        self,
        query: str | None = None,
        category: str | None = None,
        tags: list[str] | None = None,
        sort_by: Literal["name", "category", "version"] = "name",
        sort_order: Literal["asc", "desc"] = "asc",
    ) -> list[SimulationMetadata]:
        """Filter by text in name/description, exact category and any shared tag."""
        entries = list(self._entries.values())

        if query:
            needle = query.lower()
            entries = [
                e for e in entries
                if needle in e.metadata.name.lower() or needle in e.metadata.description.lower()
            ]
        if category:
            entries = [e for e in entries if e.metadata.category == category]
        if tags:
            entries = [e for e in entries if any(tag in e.tags for tag in tags)]

        entries.sort(
            key=lambda e: getattr(e.metadata, sort_by).lower(),
            reverse=sort_order == "desc",
        )
        return [e.metadata for e in entries]

    def get_simulations_by_category(self, category: str) -> list[SimulationMetadata]:
        return self.search_simulations(category=category)

    def get_categories(self) -> list[str]:
        return sorted({e.metadata.category for e in self._entries.values()})

    def get_tags(self) -> list[str]:
        return sorted({tag for e in self._entries.values() for tag in e.tags})

    def is_registered(self, simulation_id: str) -> bool:
        return simulation_id in self._entries

    def unregister(self, simulation_id: str) -> bool:
        return self._entries.pop(simulation_id, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def build_registry(
    directory: str | Path, injector: BusinessContextInjector | None = None
) -> SimulationRegistry:
    """Register every loadable document in a directory.

    Documents that fail to load are skipped (the loader logs them); a
    document whose id collides with an earlier one is skipped with a warning.
    """
    registry = SimulationRegistry()
    for document in load_configs(directory):
        def factory(document=document):
            return ConfigurableSimulation(document, injector=injector)

        try:
            registry.register(factory, tags=list(document.tags))
        except ValueError as exc:
            logger.warning("simulation_registration_skipped", name=document.name, error=str(exc))
    return registry
