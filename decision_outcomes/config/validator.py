"""Two-stage validation of simulation documents.

Stage one checks structure against the pydantic document schema: required
fields, primitive types, lengths, counts and the version pattern. Stage two
runs only on structurally valid documents and checks cross-field business
rules. Problems are always reported as lists of readable strings with the
offending path and value; nothing here raises on invalid input.
"""

import json
import math
from collections import Counter
from pathlib import Path
from typing import Any, Optional

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError

from decision_outcomes.config.schema import SimulationDocument
from decision_outcomes.engine.sandbox import MATH_BINDING_NAMES
from decision_outcomes.model.parameters import format_number, is_valid_key, off_step_grid

logger = structlog.get_logger()

DOCUMENT_SUFFIXES = (".yaml", ".yml", ".json")

# Per-iteration results carry their index under this key
RESERVED_OUTPUT_KEY = "iteration"

# Loc entries pydantic appends for the member of a union that failed
UNION_MEMBER_TAGS = frozenset({"bool", "int", "float", "str"})

# Fields that only make sense for some parameter types
TYPE_SPECIFIC_FIELDS = {
    "number": {"min", "max", "step"},
    "boolean": set(),
    "string": set(),
    "select": {"options"},
}


class ValidationResult(BaseModel):
    """Outcome of validating one document. Warnings never make it invalid."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    file_path: Optional[str] = None


class DirectoryValidationSummary(BaseModel):
    """Aggregate of validating every document in a directory."""

    total_files: int
    valid_files: int
    results: list[ValidationResult]


def parse_document(content: str, suffix: str) -> Any:
    """Parse document text as JSON for ``.json`` files and YAML otherwise.

    Raises:
        json.JSONDecodeError: If JSON is malformed
        yaml.YAMLError: If YAML is malformed
    """
    if suffix.lower() == ".json":
        return json.loads(content)
    return yaml.safe_load(content)


def _path(loc: tuple) -> str:
    if not loc:
        return "(root)"
    return "/" + "/".join(str(part) for part in loc)


def _received(value: Any) -> str:
    return f" (received: {json.dumps(value, default=str)})"


def format_validation_errors(exc: ValidationError) -> list[str]:
    """Turn pydantic errors into messages with field paths and received values."""
    messages: list[str] = []
    union_failures: dict[tuple, tuple[list[str], Any]] = {}

    for error in exc.errors():
        loc = tuple(error["loc"])
        kind = error["type"]
        ctx = error.get("ctx") or {}
        value = error.get("input")

        if loc and loc[-1] in UNION_MEMBER_TAGS and kind.endswith("_type"):
            tags, _ = union_failures.setdefault(loc[:-1], ([], value))
            tags.append(str(loc[-1]))
            continue

        path = _path(loc)
        if kind == "missing":
            messages.append(f"Missing required field: {loc[-1]} at {_path(loc[:-1])}")
        elif kind == "extra_forbidden":
            messages.append(f"Unknown field: {loc[-1]} at {_path(loc[:-1])}{_received(value)}")
        elif kind == "string_too_short":
            messages.append(
                f"Value too short at {path}: minimum {ctx.get('min_length')} characters{_received(value)}"
            )
        elif kind == "string_too_long":
            messages.append(
                f"Value too long at {path}: maximum {ctx.get('max_length')} characters{_received(value)}"
            )
        elif kind == "string_pattern_mismatch":
            messages.append(
                f"Invalid format at {path}: must match pattern {ctx.get('pattern')}{_received(value)}"
            )
        elif kind == "literal_error":
            messages.append(
                f"Invalid value at {path}: must be one of {ctx.get('expected')}{_received(value)}"
            )
        elif kind == "too_short":
            messages.append(
                f"Too few items at {path}: minimum {ctx.get('min_length')} required "
                f"(received {ctx.get('actual_length')})"
            )
        elif kind == "too_long":
            messages.append(
                f"Too many items at {path}: maximum {ctx.get('max_length')} allowed "
                f"(received {ctx.get('actual_length')})"
            )
        elif kind.endswith("_type"):
            messages.append(f"Wrong type at {path}: {error['msg']}{_received(value)}")
        else:
            messages.append(f"Validation error at {path}: {error['msg']}{_received(value)}")

    for loc, (tags, value) in union_failures.items():
        messages.append(
            f"Wrong type at {_path(loc)}: expected one of {', '.join(tags)}{_received(value)}"
        )

    return messages


def _duplicates(keys: list[str]) -> list[str]:
    counts = Counter(keys)
    return [key for key in dict.fromkeys(keys) if counts[key] > 1]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_business_rules(document: SimulationDocument) -> tuple[list[str], list[str]]:
    """Cross-field checks on a structurally valid document.

    Returns:
        Tuple of (errors, warnings)
    """
    errors: list[str] = []
    warnings: list[str] = []

    param_keys = [p.key for p in document.parameters]
    duplicates = _duplicates(param_keys)
    if duplicates:
        errors.append(f"Duplicate parameter keys: {', '.join(duplicates)}")

    if document.outputs:
        duplicate_outputs = _duplicates([o.key for o in document.outputs])
        if duplicate_outputs:
            errors.append(f"Duplicate output keys: {', '.join(duplicate_outputs)}")
        if any(o.key == RESERVED_OUTPUT_KEY for o in document.outputs):
            errors.append(f"Output key '{RESERVED_OUTPUT_KEY}' is reserved for the iteration index")

    for param in document.parameters:
        if not is_valid_key(param.key):
            errors.append(f"Parameter key '{param.key}' is not a valid identifier")
        elif param.key in MATH_BINDING_NAMES:
            errors.append(f"Parameter key '{param.key}' shadows the formula function '{param.key}'")

        applicable = TYPE_SPECIFIC_FIELDS[param.type]
        ignored = [
            name
            for name in ("min", "max", "step", "options")
            if getattr(param, name) is not None and name not in applicable
        ]
        if ignored:
            warnings.append(
                f"Parameter '{param.key}' of type {param.type} ignores: {', '.join(ignored)}"
            )

        if param.type == "select":
            if not param.options:
                errors.append(f"Select parameter '{param.key}' must have options array")
            elif str(param.default) not in param.options:
                errors.append(
                    f"Default value '{param.default}' for parameter '{param.key}' must be one "
                    f"of the options: {', '.join(param.options)}"
                )

        elif param.type == "number":
            if not _is_number(param.default):
                errors.append(
                    f"Default value for parameter '{param.key}' must be a number"
                    f"{_received(param.default)}"
                )
            elif not math.isfinite(param.default):
                errors.append(
                    f"Default value for parameter '{param.key}' must be a finite number"
                    f"{_received(param.default)}"
                )
            else:
                if param.min is not None and param.default < param.min:
                    errors.append(
                        f"Default value {format_number(param.default)} for parameter "
                        f"'{param.key}' is below minimum {format_number(param.min)}"
                    )
                if param.max is not None and param.default > param.max:
                    errors.append(
                        f"Default value {format_number(param.default)} for parameter "
                        f"'{param.key}' is above maximum {format_number(param.max)}"
                    )
                if (
                    param.min is not None
                    and param.step is not None
                    and param.step > 0
                    and off_step_grid(param.default, param.min, param.step)
                ):
                    errors.append(
                        f"Default value {format_number(param.default)} for parameter "
                        f"'{param.key}' is not in steps of {format_number(param.step)} "
                        f"from {format_number(param.min)}"
                    )
            if param.min is not None and param.max is not None and param.min > param.max:
                errors.append(
                    f"Parameter '{param.key}' has invalid range: "
                    f"min ({format_number(param.min)}) > max ({format_number(param.max)})"
                )
            if param.step is not None and param.step <= 0:
                errors.append(f"Parameter '{param.key}' step must be positive")

        elif param.type == "boolean" and not isinstance(param.default, bool):
            errors.append(
                f"Default value for parameter '{param.key}' must be a boolean{_received(param.default)}"
            )

        elif param.type == "string" and not isinstance(param.default, str):
            errors.append(
                f"Default value for parameter '{param.key}' must be a string{_received(param.default)}"
            )

    for group in document.groups or []:
        for key in group.parameters:
            if key not in param_keys:
                errors.append(f"Group '{group.name}' references non-existent parameter '{key}'")

    logic = document.logic
    if logic is not None:
        # Textual heuristics, not static analysis
        if "return" not in logic:
            errors.append("Simulation logic must contain a return statement")
        if document.outputs and not any(o.key in logic for o in document.outputs):
            warnings.append(
                "Simulation logic should reference at least one of the defined output keys"
            )

    if logic is None and document.base_simulation is None:
        errors.append(
            "Configuration must have either simulation logic or baseSimulation reference"
        )

    return errors, warnings


class ConfigurationValidator:
    """Entry point for validating documents, files and directories."""

    def validate_config(self, config: Any, file_path: str | None = None) -> ValidationResult:
        """Validate a parsed document.

        Structural failures short-circuit: business rules assume a well-typed
        document and are skipped.
        """
        if not isinstance(config, dict):
            return ValidationResult(
                valid=False,
                errors=["Configuration must be a valid object"],
                file_path=file_path,
            )

        try:
            document = SimulationDocument.model_validate(config)
        except ValidationError as exc:
            errors = format_validation_errors(exc)
            logger.debug("config_structure_invalid", file=file_path, errors=len(errors))
            return ValidationResult(valid=False, errors=errors, file_path=file_path)

        errors, warnings = validate_business_rules(document)
        logger.debug(
            "config_validated", file=file_path, errors=len(errors), warnings=len(warnings)
        )
        return ValidationResult(
            valid=not errors, errors=errors, warnings=warnings, file_path=file_path
        )

    def validate_file(self, file_path: str | Path) -> ValidationResult:
        """Read, parse and validate one document file."""
        path = Path(file_path)
        name = str(file_path)

        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return ValidationResult(
                valid=False, errors=[f"File access failed: {exc}"], file_path=name
            )

        try:
            parsed = parse_document(content, path.suffix)
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            kind = "JSON" if path.suffix.lower() == ".json" else "YAML"
            return ValidationResult(
                valid=False, errors=[f"{kind} parsing failed: {exc}"], file_path=name
            )

        if parsed is None:
            return ValidationResult(
                valid=False,
                errors=["Document file appears to be empty or contains only comments"],
                file_path=name,
            )

        return self.validate_config(parsed, file_path=name)

    def validate_directory(self, directory: str | Path) -> DirectoryValidationSummary:
        """Validate every document file directly inside ``directory``.

        Raises:
            FileNotFoundError: If the directory does not exist
        """
        root = Path(directory)
        if not root.is_dir():
            raise FileNotFoundError(f"Directory not found: {root}")

        files = sorted(p for p in root.iterdir() if p.is_file() and p.suffix.lower() in DOCUMENT_SUFFIXES)
        results = [self.validate_file(p) for p in files]
        summary = DirectoryValidationSummary(
            total_files=len(files),
            valid_files=sum(1 for r in results if r.valid),
            results=results,
        )
        logger.info(
            "directory_validated",
            directory=str(root),
            total=summary.total_files,
            valid=summary.valid_files,
        )
        return summary
