"""Tests for the restricted formula interpreter."""

import pytest

from decision_outcomes.engine.sandbox import (
    Formula,
    build_math_bindings,
    evaluate_outputs,
    round_half_up,
)
from decision_outcomes.errors import FormulaError


def _bindings(**parameters):
    return {**parameters, **build_math_bindings(lambda: 0.5)}


def test_arithmetic_and_dict_return():
    """Test assignments, operator precedence and a dict literal result."""
    formula = Formula("x = a + b * 2\nreturn {'x': x, 'y': x ** 2}")

    assert formula.evaluate({"a": 1, "b": 2}) == {"x": 5, "y": 25}


def test_set_of_names_shorthand():
    """Test that ``return {a, b}`` returns a mapping keyed by the names."""
    formula = Formula("roi = 1.5\ncost = 10\nreturn {roi, cost}")

    assert formula.evaluate({}) == {"roi": 1.5, "cost": 10}


def test_math_bindings():
    """Test the math functions available to formulas."""
    formula = Formula(
        "return {'r': random(), 's': sqrt(16), 'p': pow(2, 3), 'm': max(1, 7, 3),"
        " 'f': floor(2.7), 'c': ceil(2.1), 'a': abs(-4), 'rd': round(2.5)}"
    )

    result = formula.evaluate(_bindings())

    assert result == {"r": 0.5, "s": 4.0, "p": 8.0, "m": 7, "f": 2, "c": 3, "a": 4, "rd": 3}


def test_round_half_up():
    """Test that halves round toward positive infinity."""
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -2
    assert round_half_up(1.25, 1) == 1.3


def test_control_flow_and_helpers():
    """Test conditionals, loops and locally defined helper functions."""
    formula = Formula(
        """
        def total(values, scale=1):
            result = 0
            for v in values:
                if v < 0:
                    continue
                result += v
            return result * scale

        count = 0
        for i in [1, 2, 3, 4]:
            if i == 3:
                break
            count += 1
        label = 'big' if total([1, -2, 3]) > 3 else 'small'
        return {'total': total([1, -2, 3], scale=2), 'count': count, 'label': label}
        """
    )

    assert formula.evaluate({}) == {"total": 8, "count": 2, "label": "big"}


def test_bindings_are_not_mutated():
    """Test that each evaluation works on its own scope."""
    bindings = {"a": 1}
    formula = Formula("a = a + 1\nreturn {'a': a}")

    assert formula.evaluate(bindings) == {"a": 2}
    assert formula.evaluate(bindings) == {"a": 2}
    assert bindings == {"a": 1}


@pytest.mark.parametrize(
    "source",
    [
        "import os\nreturn {'x': 1}",
        "x = (1).__class__\nreturn {'x': 1}",
        "while True:\n    pass\nreturn {'x': 1}",
        "f = lambda: 1\nreturn {'x': 1}",
        "x = [i for i in [1, 2]]\nreturn {'x': 1}",
        "with open('f') as fh:\n    pass\nreturn {'x': 1}",
        "global x\nreturn {'x': 1}",
    ],
)
def test_disallowed_syntax(source):
    """Test that anything outside the formula subset is rejected on parse."""
    with pytest.raises(FormulaError, match="not allowed|Only named functions"):
        Formula(source)


def test_no_builtins():
    """Test that host builtins are not reachable by name."""
    formula = Formula("return {'x': len([1, 2])}")

    with pytest.raises(FormulaError, match="name 'len' is not defined"):
        formula.evaluate(_bindings())


def test_syntax_error():
    """Test that syntax errors report the formula's own line number."""
    with pytest.raises(FormulaError, match="Invalid formula syntax at line 2"):
        Formula("x = 1\ny = = 2\nreturn {'x': x}")


def test_missing_return():
    """Test that a formula must return a value."""
    with pytest.raises(FormulaError, match="Formula must return a value"):
        Formula("x = 1").evaluate({})


def test_evaluate_outputs_contract():
    """Test coercion of outputs to numbers and the expected-key check."""
    formula = Formula("return {'a': 1, 'b': True}")

    assert evaluate_outputs(formula, {}, ["a"]) == {"a": 1.0, "b": 1.0}

    with pytest.raises(FormulaError, match="Missing expected outputs: c, d"):
        evaluate_outputs(formula, {}, ["a", "c", "d"])


def test_evaluate_outputs_rejects_bad_results():
    """Test that non-mapping results and non-numeric values fail."""
    with pytest.raises(FormulaError, match="must return an object, got int"):
        evaluate_outputs(Formula("return 5"), {}, [])

    with pytest.raises(FormulaError, match="Output 'a' must be a number, got: str"):
        evaluate_outputs(Formula("return {'a': 'lots'}"), {}, ["a"])


def test_runtime_errors_propagate():
    """Test that arithmetic errors surface to the caller."""
    with pytest.raises(ZeroDivisionError):
        Formula("return {'x': 1 / 0}").evaluate({})
