"""Tests for the command-line interface."""

import json

import pandas as pd
import pytest

from decision_outcomes.cli import main, parse_overrides


@pytest.fixture
def dice_path(write_document, document):
    return write_document("dice.yaml", document)


def test_run_json_report(dice_path, capsys):
    """Test a seeded run printing the JSON report."""
    exit_code = main(
        ["run", str(dice_path), "-n", "50", "--seed", "1", "--format", "json", "--bins", "5"]
    )

    assert exit_code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["iterations"] == 50
    assert report["succeeded"] == 50
    assert report["simulation"]["id"] == "dice-game-payout"
    assert set(report["summary"]) == {"payout"}
    assert report["summary"]["payout"]["count"] == 50
    assert report["risk"]["payout"]["probability_of_loss"] == 0.0
    assert sum(b["count"] for b in report["histogram"]["payout"]) == 50


def test_run_with_overrides(dice_path, capsys):
    """Test that --set values are coerced and used."""
    exit_code = main(
        [
            "run", str(dice_path), "-n", "20", "--format", "json",
            "--set", "bonus=true", "--set", "stake=20",
        ]
    )

    assert exit_code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["parameters"]["bonus"] is True
    assert report["parameters"]["stake"] == 20
    assert report["summary"]["payout"]["min"] >= 5


def test_run_writes_csv(dice_path, tmp_path, capsys):
    """Test exporting per-iteration results."""
    output = tmp_path / "results" / "dice.csv"

    assert main(["run", str(dice_path), "-n", "30", "--output", str(output)]) == 0

    frame = pd.read_csv(output)
    assert list(frame.columns) == ["iteration", "payout"]
    assert len(frame) == 30
    assert "Dice Game Payout v1.0.0" in capsys.readouterr().out


def test_run_invalid_override(dice_path, capsys):
    """Test that invalid parameters fail the command with exit code 1."""
    assert main(["run", str(dice_path), "--set", "stake=1000"]) == 1
    assert "above maximum" in capsys.readouterr().err


def test_run_infinite_override(dice_path, capsys):
    """Test that an infinite parameter value fails the command cleanly."""
    assert main(["run", str(dice_path), "--set", "stake=inf"]) == 1
    assert "must be a finite number" in capsys.readouterr().err


def test_run_missing_file(tmp_path, capsys):
    """Test that a missing document fails cleanly."""
    assert main(["run", str(tmp_path / "nope.yaml")]) == 1
    assert "Config file not found" in capsys.readouterr().err


def test_validate_file_and_directory(dice_path, write_document, document, tmp_path, capsys):
    """Test validation exit codes for files and directories."""
    assert main(["validate", str(dice_path)]) == 0
    assert capsys.readouterr().out.startswith("OK")

    write_document("bad.yaml", dict(document, version="one"))
    assert main(["validate", str(tmp_path)]) == 1
    out = capsys.readouterr().out
    assert "FAIL" in out
    assert "1 of 2 files valid" in out


def test_list(dice_path, tmp_path, capsys):
    """Test listing and filtering simulations in a directory."""
    assert main(["list", "--dir", str(tmp_path)]) == 0
    assert "dice-game-payout" in capsys.readouterr().out

    assert main(["list", "--dir", str(tmp_path), "--category", "Finance"]) == 0
    assert "No simulations found" in capsys.readouterr().out


def test_params(dice_path, capsys):
    """Test the grouped parameter listing."""
    assert main(["params", str(dice_path)]) == 0

    out = capsys.readouterr().out
    assert out.index("[Game]") < out.index("stake") < out.index("[Other]") < out.index("bonus")
    assert "options=low,high" in out


def test_parse_overrides():
    """Test parsing of key=value assignments."""
    assert parse_overrides(["a=1", " b = x=y "]) == {"a": "1", "b": "x=y"}

    with pytest.raises(ValueError, match="Expected key=value"):
        parse_overrides(["novalue"])
