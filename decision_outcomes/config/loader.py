"""Configuration file loading and parsing.

Loads YAML or JSON simulation documents, validates them, and resolves
``baseSimulation`` inheritance relative to the referencing file.
"""

import json
from pathlib import Path
from typing import Any

import structlog
import yaml

from decision_outcomes.config.schema import SimulationDocument
from decision_outcomes.config.validator import (
    DOCUMENT_SUFFIXES,
    ConfigurationValidator,
    parse_document,
)
from decision_outcomes.errors import ConfigurationError

logger = structlog.get_logger()

_validator = ConfigurationValidator()


def read_document(config_path: str | Path) -> Any:
    """Read and parse a document file without validating it.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ConfigurationError: If the file is not UTF-8 text, malformed or empty
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except UnicodeDecodeError as exc:
        raise ConfigurationError(f"Failed to read {config_path}: {exc}") from exc

    try:
        raw = parse_document(content, config_path.suffix)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Failed to parse {config_path}: {exc}") from exc

    if raw is None:
        raise ConfigurationError(f"Config file {config_path} is empty")
    return raw


def merge_documents(base: dict, child: dict) -> dict:
    """Overlay a child document on its base.

    Top-level fields of the child win. Parameters and groups are merged by
    key/name: child entries replace base entries with the same key and new
    ones are appended. Outputs and simulation logic come from the child when
    it has them, else from the base.
    """
    merged = {**base, **child}

    parameters = {p["key"]: p for p in base.get("parameters") or []}
    for param in child.get("parameters") or []:
        parameters[param["key"]] = param
    merged["parameters"] = list(parameters.values())

    if base.get("groups") or child.get("groups"):
        groups = {g["name"]: g for g in base.get("groups") or []}
        for group in child.get("groups") or []:
            groups[group["name"]] = group
        merged["groups"] = list(groups.values())

    for field in ("outputs", "simulation"):
        if child.get(field) is None and base.get(field) is not None:
            merged[field] = base[field]

    return merged


def _load_resolved(config_path: Path, seen: set[Path]) -> dict:
    resolved_path = config_path.resolve()
    if resolved_path in seen:
        raise ConfigurationError(f"Circular baseSimulation reference at {config_path}")
    seen.add(resolved_path)

    raw = read_document(config_path)
    validation = _validator.validate_config(raw, str(config_path))
    if not validation.valid:
        raise ConfigurationError(f"Invalid configuration in {config_path}", validation.errors)
    for warning in validation.warnings:
        logger.warning("config_warning", file=str(config_path), warning=warning)

    base_reference = raw.get("baseSimulation")
    if not base_reference:
        return raw

    base_path = config_path.parent / base_reference
    base = _load_resolved(base_path, seen)
    merged = merge_documents(base, raw)

    validation = _validator.validate_config(merged, str(config_path))
    if not validation.valid:
        raise ConfigurationError(
            f"Invalid configuration after inheriting from {base_path}", validation.errors
        )
    logger.debug("config_inherited", file=str(config_path), base=str(base_path))
    return merged


def load_config(config_path: str | Path) -> SimulationDocument:
    """Load and validate a simulation document from a YAML or JSON file.

    Args:
        config_path: Path to the document file

    Returns:
        Validated SimulationDocument with inheritance resolved

    Raises:
        FileNotFoundError: If the file (or a base file) doesn't exist
        ConfigurationError: If a document is malformed, invalid, or inherits
            circularly
    """
    config_path = Path(config_path)
    raw = _load_resolved(config_path, set())
    document = SimulationDocument.model_validate(raw)
    logger.info("config_loaded", file=str(config_path), simulation=document.name)
    return document


def load_configs(directory: str | Path) -> list[SimulationDocument]:
    """Load every valid document directly inside ``directory``.

    Invalid documents are skipped and logged.

    Raises:
        FileNotFoundError: If the directory doesn't exist
    """
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"Directory not found: {root}")

    documents = []
    for path in sorted(root.iterdir()):
        if not path.is_file() or path.suffix.lower() not in DOCUMENT_SUFFIXES:
            continue
        try:
            documents.append(load_config(path))
        except (ConfigurationError, OSError) as exc:
            logger.warning("config_load_failed", file=path.name, error=str(exc))
    return documents


def save_config(config_path: str | Path, document: SimulationDocument) -> None:
    """Validate and write a document; ``.json`` writes JSON, anything else YAML.

    Raises:
        ConfigurationError: If the document does not validate
    """
    config_path = Path(config_path)
    data = document.to_document()

    validation = _validator.validate_config(data)
    if not validation.valid:
        raise ConfigurationError("Invalid configuration", validation.errors)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        if config_path.suffix.lower() == ".json":
            json.dump(data, f, indent=2)
        else:
            yaml.safe_dump(data, f, indent=2, width=100, sort_keys=False)


def generate_config_template() -> SimulationDocument:
    """A minimal, valid document to start a new simulation from."""
    return SimulationDocument.model_validate(
        {
            "name": "My Simulation",
            "category": "General",
            "description": "Description of what this simulation models",
            "version": "1.0.0",
            "tags": ["example", "template"],
            "parameters": [
                {
                    "key": "sampleParameter",
                    "label": "Sample Parameter",
                    "type": "number",
                    "default": 100,
                    "min": 0,
                    "max": 1000,
                    "description": "A sample numeric parameter",
                }
            ],
            "outputs": [
                {"key": "result", "label": "Result", "description": "The simulation result"}
            ],
            "simulation": {
                "logic": (
                    "result = sampleParameter * (0.8 + random() * 0.4)\n"
                    "return {\"result\": result}"
                )
            },
        }
    )
