"""Shared fixtures: simulation documents and helpers for writing them to disk."""

import copy
import json
from pathlib import Path

import pytest
import structlog
import yaml

DICE_GAME = {
    "name": "Dice Game Payout",
    "category": "Games",
    "description": "Payout of a simple dice game with an optional bonus",
    "version": "1.0.0",
    "tags": ["games", "dice"],
    "parameters": [
        {
            "key": "stake",
            "label": "Stake",
            "type": "number",
            "default": 10,
            "min": 1,
            "max": 100,
            "step": 1,
        },
        {"key": "bonus", "label": "Bonus Enabled", "type": "boolean", "default": False},
        {
            "key": "tier",
            "label": "Tier",
            "type": "select",
            "default": "low",
            "options": ["low", "high"],
        },
    ],
    "groups": [{"name": "Game", "parameters": ["stake", "tier"]}],
    "outputs": [{"key": "payout", "label": "Payout"}],
    "simulation": {
        "logic": (
            "multiplier = 2 if tier == 'high' else 1\n"
            "payout = stake * random() * multiplier\n"
            "if bonus:\n"
            "    payout += 5\n"
            "return {payout}\n"
        )
    },
}


@pytest.fixture
def document() -> dict:
    """A valid, non-strategic simulation document."""
    return copy.deepcopy(DICE_GAME)


@pytest.fixture
def write_document(tmp_path):
    """Write a document dict to ``tmp_path`` as YAML or JSON and return the path."""

    def write(filename: str, data: dict) -> Path:
        path = tmp_path / filename
        with open(path, "w", encoding="utf-8") as f:
            if path.suffix == ".json":
                json.dump(data, f)
            else:
                yaml.safe_dump(data, f, sort_keys=False)
        return path

    return write


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo logging configuration made by a test, so no logger outlives its capture stream."""
    yield
    structlog.reset_defaults()
