"""Command-line interface for running and validating simulation documents.

Orchestrates document loading, parameter overrides, simulation execution
and result output.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import pandas as pd
import structlog
from tqdm import tqdm

from decision_outcomes.config.loader import load_config
from decision_outcomes.config.validator import ConfigurationValidator, ValidationResult
from decision_outcomes.engine.configurable import ConfigurableSimulation
from decision_outcomes.engine.metrics import calculate_histogram, calculate_risk_metrics
from decision_outcomes.engine.registry import build_registry
from decision_outcomes.engine.simulator import SimulationResult
from decision_outcomes.errors import ConfigurationError, SimulationError
from decision_outcomes.logging_config import configure_logging
from decision_outcomes.settings import settings

logger = structlog.get_logger()


def parse_overrides(assignments: list[str]) -> dict[str, str]:
    """Parse ``key=value`` strings into a mapping.

    Raises:
        ValueError: If an assignment has no ``=`` or an empty key
    """
    overrides = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected key=value, got '{assignment}'")
        overrides[key.strip()] = value.strip()
    return overrides


def build_report(
    result: SimulationResult,
    iterations: int,
    threshold: float,
    bins: int | None,
) -> dict[str, Any]:
    """Numbers-only report of a run: summaries, risk metrics, optional histograms."""
    report: dict[str, Any] = {
        "simulation": result.metadata.model_dump(),
        "parameters": result.parameters,
        "iterations": iterations,
        "succeeded": len(result.results),
        "failed": len(result.errors or []),
        "duration_ms": result.duration,
        "summary": {key: s.model_dump() for key, s in result.summary.items()},
        "risk": {
            key: calculate_risk_metrics(result.values(key), threshold).model_dump()
            for key in result.summary
        },
    }
    if bins:
        report["histogram"] = {
            key: [b.model_dump() for b in calculate_histogram(result.values(key), bins)]
            for key in result.summary
        }
    return report


def run_command(args: argparse.Namespace) -> int:
    document = load_config(args.config)
    simulation = ConfigurableSimulation(document)

    parameters = simulation.get_default_parameters()
    schema = simulation.get_parameter_schema()
    parameters.update(schema.coerce_parameters(parse_overrides(args.set)))

    iterations = (
        args.iterations if args.iterations is not None else settings.simulation.default_iterations
    )
    threshold = (
        args.threshold if args.threshold is not None else settings.simulation.risk_threshold
    )

    with tqdm(total=iterations, desc="Simulating", unit="it", disable=args.quiet) as bar:

        def on_progress(progress: float, iteration: int) -> None:
            bar.update(iteration - bar.n)

        result = simulation.run_simulation(
            parameters, iterations=iterations, on_progress=on_progress, seed=args.seed
        )

    if args.output:
        output = Path(args.output)
        output.parent.mkdir(parents=True, exist_ok=True)
        result.to_frame().to_csv(output, index=False)
        logger.info("results_written", path=str(output), rows=len(result.results))

    bins = args.bins if args.bins is not None else settings.simulation.histogram_bins
    report = build_report(result, iterations, threshold, bins)
    if args.format == "json":
        print(json.dumps(report, indent=2, default=str))
    else:
        print(f"{result.metadata.name} v{result.metadata.version}")
        print(
            f"{report['succeeded']} of {iterations} iterations succeeded "
            f"in {result.duration:.0f} ms"
        )
        print()
        print(pd.DataFrame(report["summary"]).T.to_string(float_format=lambda v: f"{v:,.4f}"))
        print()
        print(pd.DataFrame(report["risk"]).T.to_string(float_format=lambda v: f"{v:,.4f}"))
    return 0


def _print_validation(result: ValidationResult) -> None:
    status = "OK  " if result.valid else "FAIL"
    print(f"{status} {result.file_path}")
    for error in result.errors:
        print(f"       error: {error}")
    for warning in result.warnings:
        print(f"     warning: {warning}")


def validate_command(args: argparse.Namespace) -> int:
    validator = ConfigurationValidator()
    target = Path(args.path)

    if target.is_dir():
        summary = validator.validate_directory(target)
        for result in summary.results:
            _print_validation(result)
        print(f"\n{summary.valid_files} of {summary.total_files} files valid")
        return 0 if summary.valid_files == summary.total_files else 1

    result = validator.validate_file(target)
    _print_validation(result)
    return 0 if result.valid else 1


def list_command(args: argparse.Namespace) -> int:
    registry = build_registry(args.dir)
    simulations = registry.search_simulations(
        query=args.query,
        category=args.category,
        tags=args.tag or None,
    )
    if not simulations:
        print("No simulations found")
        return 0

    frame = pd.DataFrame([m.model_dump(include={"id", "name", "category", "version"}) for m in simulations])
    print(frame.to_string(index=False))
    return 0


def params_command(args: argparse.Namespace) -> int:
    simulation = ConfigurableSimulation(load_config(args.config))
    groups, ungrouped = simulation.get_parameter_schema().layout()

    def describe(definition) -> str:
        details = [definition.type, f"default={definition.default!r}"]
        for name in ("min", "max", "step"):
            value = getattr(definition, name, None)
            if value is not None:
                details.append(f"{name}={value}")
        options = getattr(definition, "options", None)
        if options:
            details.append(f"options={','.join(options)}")
        return f"  {definition.key:<28} {definition.label} ({'; '.join(details)})"

    for group, definitions in groups:
        print(f"[{group.name}]")
        for definition in definitions:
            print(describe(definition))
    if ungrouped:
        if groups:
            print("[Other]")
        for definition in ungrouped:
            print(describe(definition))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="decision-outcomes",
        description="Monte Carlo evaluation of declarative business decision models",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run a simulation document")
    run.add_argument("config", help="Path to a YAML or JSON simulation document")
    run.add_argument("-n", "--iterations", type=int, help="Number of iterations (settings default)")
    run.add_argument("--seed", type=int, help="Random seed for reproducibility")
    run.add_argument(
        "--set",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a parameter default (repeatable)",
    )
    run.add_argument("--format", choices=["json", "table"], default="table")
    run.add_argument("--output", help="Write per-iteration results to this CSV file")
    run.add_argument("--bins", type=int, help="Histogram bins in the JSON report (settings default)")
    run.add_argument("--threshold", type=float, help="Loss threshold for risk metrics")
    run.add_argument("-q", "--quiet", action="store_true", help="Hide the progress bar")
    run.set_defaults(handler=run_command)

    validate = subparsers.add_parser("validate", help="Validate a document or a directory")
    validate.add_argument("path", help="Document file or directory of documents")
    validate.set_defaults(handler=validate_command)

    listing = subparsers.add_parser("list", help="List simulations in a directory")
    listing.add_argument("--dir", default=settings.storage.simulations_dir)
    listing.add_argument("--query", help="Text to find in name or description")
    listing.add_argument("--category")
    listing.add_argument("--tag", action="append", help="Match any of these tags (repeatable)")
    listing.set_defaults(handler=list_command)

    params = subparsers.add_parser("params", help="Show the parameters of a document")
    params.add_argument("config", help="Path to a YAML or JSON simulation document")
    params.set_defaults(handler=params_command)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI and return its exit code."""
    configure_logging(settings.logging)
    args = build_parser().parse_args(argv)

    try:
        return args.handler(args)
    except (ConfigurationError, SimulationError, FileNotFoundError, ValueError) as exc:
        logger.error("command_failed", command=args.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
