"""Error taxonomy shared by the validator, the loader and the engine.

Configuration and parameter errors carry the full list of problems so a caller
can report everything wrong in one pass. Formula errors stay inside a single
iteration; only AllIterationsFailedError ends a run.
"""


def format_error(error: BaseException) -> str:
    """Return the message text of an exception, falling back to its type name."""
    message = str(error)
    if not message:
        return type(error).__name__
    return message


class ConfigurationError(ValueError):
    """A simulation document failed structural or business-rule validation."""

    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}:\n" + "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(message)


class FormulaError(Exception):
    """A formula could not be parsed, was rejected, or failed while evaluating."""


class SimulationError(Exception):
    """Run-level failure: no partial result is returned."""


class ParameterValidationError(SimulationError, ValueError):
    """The parameter map supplied to a run is missing, mistyped or out of range."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"Parameter validation failed: {'; '.join(self.errors)}")


class AllIterationsFailedError(SimulationError):
    """Every iteration of a run failed, so there is nothing to summarize."""

    def __init__(self, iterations: int, first_error: str | None = None):
        self.iterations = iterations
        self.first_error = first_error
        message = f"All iterations failed ({iterations} of {iterations})"
        if first_error:
            message += f"; first error: {first_error}"
        super().__init__(message)
