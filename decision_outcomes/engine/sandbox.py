"""Restricted formula interpreter.

Simulation formulas are written in a small subset of Python syntax and
evaluated by walking their syntax tree; the source is never compiled or
executed by the host interpreter. The only free names are the parameter
values and a fixed set of math bindings, there is no attribute access, no
import and no builtin lookup, so a formula cannot reach ambient state or I/O.

Example formula::

    growth = 1 + random() * 0.2
    revenue = baseRevenue * growth
    return {"revenue": revenue, "margin": revenue - costs}
"""

import ast
import math
import operator
import textwrap
from typing import Any, Callable

from decision_outcomes.errors import FormulaError
from decision_outcomes.model.coercion import to_number

MATH_BINDING_NAMES = (
    "random", "sqrt", "pow", "log", "exp", "abs", "min", "max", "floor", "ceil", "round",
)

BINARY_OPERATORS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

UNARY_OPERATORS: dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

COMPARISON_OPERATORS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

ALLOWED_NODES: tuple[type, ...] = (
    ast.Module, ast.Expr, ast.Assign, ast.AugAssign, ast.If, ast.For, ast.Break,
    ast.Continue, ast.Pass, ast.Return, ast.FunctionDef, ast.arguments, ast.arg,
    ast.BinOp, ast.UnaryOp, ast.BoolOp, ast.Compare, ast.IfExp, ast.Call,
    ast.keyword, ast.Name, ast.Constant, ast.Dict, ast.List, ast.Tuple, ast.Set,
    ast.Subscript, ast.Slice, ast.Load, ast.Store, ast.And, ast.Or,
    *BINARY_OPERATORS, *UNARY_OPERATORS, *COMPARISON_OPERATORS,
)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up: 2.5 -> 3, -2.5 -> -2."""
    factor = 10 ** digits
    result = math.floor(value * factor + 0.5) / factor
    return int(result) if digits == 0 else result


def build_math_bindings(random: Callable[[], float]) -> dict[str, Callable]:
    """The math functions every formula can call.

    Args:
        random: Source of uniform [0, 1) draws; the only randomness a formula sees
    """
    return {
        "random": random,
        "sqrt": math.sqrt,
        "pow": math.pow,
        "log": math.log,
        "exp": math.exp,
        "abs": abs,
        "min": min,
        "max": max,
        "floor": math.floor,
        "ceil": math.ceil,
        "round": round_half_up,
    }


class _Return(Exception):
    def __init__(self, value: Any):
        self.value = value


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


class _Scope:
    """Name bindings with lexical parent lookup; writes stay local."""

    def __init__(self, names: dict[str, Any], parent: "_Scope | None" = None):
        self.names = names
        self.parent = parent

    def lookup(self, name: str) -> Any:
        scope = self
        while scope is not None:
            if name in scope.names:
                return scope.names[name]
            scope = scope.parent
        raise FormulaError(f"name '{name}' is not defined")

    def assign(self, name: str, value: Any) -> None:
        self.names[name] = value


class FormulaFunction:
    """A helper function defined with ``def`` inside a formula."""

    def __init__(self, node: ast.FunctionDef, defaults: list[Any], closure: _Scope):
        self.node = node
        self.name = node.name
        self.params = [a.arg for a in node.args.args]
        self.defaults = defaults
        self.closure = closure

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        if len(args) > len(self.params):
            raise FormulaError(
                f"{self.name}() takes {len(self.params)} arguments but {len(args)} were given"
            )
        names = dict(zip(self.params, args))
        for key, value in kwargs.items():
            if key not in self.params:
                raise FormulaError(f"{self.name}() got an unexpected argument '{key}'")
            if key in names:
                raise FormulaError(f"{self.name}() got multiple values for argument '{key}'")
            names[key] = value

        first_default = len(self.params) - len(self.defaults)
        for index, param in enumerate(self.params):
            if param not in names:
                if index < first_default:
                    raise FormulaError(f"{self.name}() missing argument '{param}'")
                names[param] = self.defaults[index - first_default]

        scope = _Scope(names, parent=self.closure)
        try:
            _Interpreter().exec_block(self.node.body, scope)
        except _Return as ret:
            return ret.value
        except (_Break, _Continue) as exc:
            raise FormulaError("'break' and 'continue' are only allowed inside loops") from exc
        return None


def _check_nodes(tree: ast.AST) -> None:
    for node in ast.walk(tree):
        if not isinstance(node, ALLOWED_NODES):
            line = getattr(node, "lineno", None)
            where = f" at line {line - 1}" if line else ""
            raise FormulaError(f"'{type(node).__name__}' is not allowed in formulas{where}")

        if isinstance(node, ast.FunctionDef):
            args = node.args
            if (
                node.decorator_list
                or args.vararg
                or args.kwarg
                or args.kwonlyargs
                or args.posonlyargs
            ):
                raise FormulaError(
                    f"Function '{node.name}' may only take plain positional parameters"
                )
        elif isinstance(node, ast.Call) and not isinstance(node.func, ast.Name):
            raise FormulaError("Only named functions can be called in formulas")
        elif isinstance(node, ast.Dict) and any(key is None for key in node.keys):
            raise FormulaError("Dictionary unpacking is not allowed in formulas")
        elif isinstance(node, ast.Constant) and isinstance(node.value, (bytes, complex)):
            raise FormulaError("Only number, string, boolean and None literals are allowed")


class _Interpreter:
    """Evaluates an allowed syntax tree against a scope."""

    def exec_block(self, statements: list[ast.stmt], scope: _Scope) -> None:
        for statement in statements:
            self.exec_statement(statement, scope)

    def exec_statement(self, node: ast.stmt, scope: _Scope) -> None:
        if isinstance(node, ast.Expr):
            self.eval(node.value, scope)
        elif isinstance(node, ast.Assign):
            value = self.eval(node.value, scope)
            for target in node.targets:
                self.assign(target, value, scope)
        elif isinstance(node, ast.AugAssign):
            current = self.eval(_as_load(node.target), scope)
            value = BINARY_OPERATORS[type(node.op)](current, self.eval(node.value, scope))
            self.assign(node.target, value, scope)
        elif isinstance(node, ast.If):
            branch = node.body if self.eval(node.test, scope) else node.orelse
            self.exec_block(branch, scope)
        elif isinstance(node, ast.For):
            self.exec_for(node, scope)
        elif isinstance(node, ast.Return):
            raise _Return(self.eval_return(node.value, scope))
        elif isinstance(node, ast.FunctionDef):
            defaults = [self.eval(d, scope) for d in node.args.defaults]
            scope.assign(node.name, FormulaFunction(node, defaults, scope))
        elif isinstance(node, ast.Break):
            raise _Break()
        elif isinstance(node, ast.Continue):
            raise _Continue()
        elif isinstance(node, ast.Pass):
            pass
        else:
            raise FormulaError(f"'{type(node).__name__}' is not allowed in formulas")

    def exec_for(self, node: ast.For, scope: _Scope) -> None:
        iterable = self.eval(node.iter, scope)
        if not isinstance(iterable, (list, tuple, str, dict)):
            raise FormulaError(f"Cannot loop over {type(iterable).__name__}")

        for item in list(iterable):
            self.assign(node.target, item, scope)
            try:
                self.exec_block(node.body, scope)
            except _Break:
                return
            except _Continue:
                continue
        self.exec_block(node.orelse, scope)

    def eval_return(self, node: ast.expr | None, scope: _Scope) -> Any:
        if node is None:
            return None
        # {roi, cost} reads as {"roi": roi, "cost": cost}
        if isinstance(node, ast.Set) and all(isinstance(e, ast.Name) for e in node.elts):
            return {e.id: scope.lookup(e.id) for e in node.elts}
        return self.eval(node, scope)

    def assign(self, target: ast.expr, value: Any, scope: _Scope) -> None:
        if isinstance(target, ast.Name):
            scope.assign(target.id, value)
        elif isinstance(target, (ast.Tuple, ast.List)):
            values = list(value)
            if len(values) != len(target.elts):
                raise FormulaError(
                    f"Cannot unpack {len(values)} values into {len(target.elts)} names"
                )
            for element, item in zip(target.elts, values):
                self.assign(element, item, scope)
        elif isinstance(target, ast.Subscript):
            container = self.eval(target.value, scope)
            if not isinstance(container, (list, dict)):
                raise FormulaError(f"Cannot assign items of {type(container).__name__}")
            container[self.eval(target.slice, scope)] = value
        else:
            raise FormulaError(f"Cannot assign to '{type(target).__name__}'")

    def eval(self, node: ast.expr, scope: _Scope) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            return scope.lookup(node.id)
        if isinstance(node, ast.BinOp):
            left = self.eval(node.left, scope)
            right = self.eval(node.right, scope)
            return BINARY_OPERATORS[type(node.op)](left, right)
        if isinstance(node, ast.UnaryOp):
            return UNARY_OPERATORS[type(node.op)](self.eval(node.operand, scope))
        if isinstance(node, ast.BoolOp):
            return self.eval_bool_op(node, scope)
        if isinstance(node, ast.Compare):
            left = self.eval(node.left, scope)
            for op, comparator in zip(node.ops, node.comparators):
                right = self.eval(comparator, scope)
                if not COMPARISON_OPERATORS[type(op)](left, right):
                    return False
                left = right
            return True
        if isinstance(node, ast.IfExp):
            branch = node.body if self.eval(node.test, scope) else node.orelse
            return self.eval(branch, scope)
        if isinstance(node, ast.Call):
            return self.eval_call(node, scope)
        if isinstance(node, ast.Dict):
            return {
                self.eval(key, scope): self.eval(value, scope)
                for key, value in zip(node.keys, node.values)
            }
        if isinstance(node, ast.List):
            return [self.eval(e, scope) for e in node.elts]
        if isinstance(node, ast.Tuple):
            return tuple(self.eval(e, scope) for e in node.elts)
        if isinstance(node, ast.Subscript):
            return self.eval(node.value, scope)[self.eval(node.slice, scope)]
        if isinstance(node, ast.Slice):
            return slice(
                self.eval(node.lower, scope) if node.lower else None,
                self.eval(node.upper, scope) if node.upper else None,
                self.eval(node.step, scope) if node.step else None,
            )
        raise FormulaError(f"'{type(node).__name__}' is not allowed in formulas")

    def eval_bool_op(self, node: ast.BoolOp, scope: _Scope) -> Any:
        value = None
        for operand in node.values:
            value = self.eval(operand, scope)
            if isinstance(node.op, ast.And) and not value:
                return value
            if isinstance(node.op, ast.Or) and value:
                return value
        return value

    def eval_call(self, node: ast.Call, scope: _Scope) -> Any:
        function = scope.lookup(node.func.id)
        if not callable(function):
            raise FormulaError(f"'{node.func.id}' is not a function")
        if any(isinstance(a, ast.Starred) for a in node.args):
            raise FormulaError("Argument unpacking is not allowed in formulas")
        args = [self.eval(a, scope) for a in node.args]
        kwargs = {}
        for keyword in node.keywords:
            if keyword.arg is None:
                raise FormulaError("Keyword unpacking is not allowed in formulas")
            kwargs[keyword.arg] = self.eval(keyword.value, scope)
        return function(*args, **kwargs)


def _as_load(target: ast.expr) -> ast.expr:
    if isinstance(target, ast.Name):
        return ast.Name(id=target.id, ctx=ast.Load())
    if isinstance(target, ast.Subscript):
        return ast.Subscript(value=target.value, slice=target.slice, ctx=ast.Load())
    raise FormulaError(f"Cannot update '{type(target).__name__}'")


class Formula:
    """A parsed, checked formula that can be evaluated many times.

    Raises:
        FormulaError: On construction, if the source does not parse or uses
            syntax outside the allowed subset
    """

    def __init__(self, source: str):
        self.source = source
        body = textwrap.dedent(source).strip() or "pass"
        # Parsed as the body of a function so a top-level return is legal
        wrapped = "def __formula__():\n" + textwrap.indent(body, "    ")
        try:
            tree = ast.parse(wrapped, mode="exec")
        except SyntaxError as exc:
            line = (exc.lineno or 1) - 1
            raise FormulaError(f"Invalid formula syntax at line {line}: {exc.msg}") from exc
        _check_nodes(tree)
        self.body: list[ast.stmt] = tree.body[0].body

    def evaluate(self, bindings: dict[str, Any]) -> Any:
        """Run the formula in a fresh scope and return its ``return`` value.

        Raises:
            FormulaError: If the formula finishes without returning
        """
        scope = _Scope(dict(bindings))
        try:
            _Interpreter().exec_block(self.body, scope)
        except _Return as ret:
            return ret.value
        except (_Break, _Continue) as exc:
            raise FormulaError("'break' and 'continue' are only allowed inside loops") from exc
        raise FormulaError("Formula must return a value")


def evaluate_outputs(
    formula: Formula,
    bindings: dict[str, Any],
    expected_outputs: list[str],
) -> dict[str, float]:
    """Evaluate a formula and enforce the numeric output contract.

    Args:
        formula: Parsed formula
        bindings: Parameter values and math bindings
        expected_outputs: Keys the result must contain

    Returns:
        Mapping from output key to float

    Raises:
        FormulaError: If the result is not a mapping, a value is not numeric,
            or an expected key is missing
    """
    result = formula.evaluate(bindings)
    if not isinstance(result, dict):
        raise FormulaError(
            f"Simulation logic must return an object, got {type(result).__name__}"
        )

    numeric: dict[str, float] = {}
    for key, value in result.items():
        number = to_number(value)
        if math.isnan(number):
            raise FormulaError(
                f"Output '{key}' must be a number, got: {type(value).__name__}"
            )
        numeric[str(key)] = number

    missing = [key for key in expected_outputs if key not in numeric]
    if missing:
        raise FormulaError(f"Missing expected outputs: {', '.join(missing)}")

    return numeric
