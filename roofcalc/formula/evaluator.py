"""Safe arithmetic for user-configured mapping formulas.

Formulas such as ``"measurement * 1.1"`` or ``"(measurement + 2) / 0.762"``
come from template configuration and are never executed as Python. They are
tokenized and parsed by a small recursive-descent parser into an immutable
AST, then evaluated with ``measurement`` bound to a number.

Grammar (standard precedence, left associative)::

    expr   := term (('+' | '-') term)*
    term   := factor (('*' | '/') factor)*
    factor := NUMBER | IDENT | '(' expr ')' | '-' factor
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, NamedTuple, Union

from roofcalc.errors import EvaluationError, ValidationError

MEASUREMENT_VARIABLE = "measurement"

_NUMBER = re.compile(r"\d+\.?\d*|\.\d+")
_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_OPERATORS = frozenset("+-*/()")

# Parser and AST recursion depth grow with nesting and operator count
MAX_TOKENS = 500
MAX_NESTING_DEPTH = 64


class Token(NamedTuple):
    kind: str  # "number", "ident" or "op"
    text: str
    position: int


@dataclass(frozen=True)
class Number:
    value: float

    def evaluate(self, env: Mapping[str, float]) -> float:
        return self.value


@dataclass(frozen=True)
class Variable:
    name: str

    def evaluate(self, env: Mapping[str, float]) -> float:
        try:
            return float(env[self.name])
        except KeyError:
            raise EvaluationError(f"No value bound for '{self.name}'") from None


@dataclass(frozen=True)
class Negate:
    operand: Node

    def evaluate(self, env: Mapping[str, float]) -> float:
        return -self.operand.evaluate(env)


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: Node
    right: Node

    def evaluate(self, env: Mapping[str, float]) -> float:
        left = self.left.evaluate(env)
        right = self.right.evaluate(env)
        if self.op == "+":
            return left + right
        if self.op == "-":
            return left - right
        if self.op == "*":
            return left * right
        if right == 0:
            raise EvaluationError("Division by zero")
        return left / right


Node = Union[Number, Variable, Negate, BinaryOp]


def tokenize(expression: str) -> list[Token]:
    """Split an expression into number, identifier and operator tokens.

    Raises:
        EvaluationError: On any character outside digits, '.', operators,
            parentheses, whitespace and identifier characters
    """
    tokens: list[Token] = []
    pos = 0
    length = len(expression)

    while pos < length:
        char = expression[pos]
        if char.isspace():
            pos += 1
            continue
        if char in _OPERATORS:
            tokens.append(Token("op", char, pos))
            pos += 1
            continue

        number = _NUMBER.match(expression, pos)
        if number:
            tokens.append(Token("number", number.group(), pos))
            pos = number.end()
            continue

        ident = _IDENT.match(expression, pos)
        if ident:
            tokens.append(Token("ident", ident.group(), pos))
            pos = ident.end()
            continue

        raise EvaluationError(f"Unexpected character {char!r} at position {pos}")

    return tokens


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, tokens: list[Token], variables: frozenset[str]):
        self.tokens = tokens
        self.variables = variables
        self.pos = 0
        self.depth = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise EvaluationError("Empty expression")

        node = self._expr()
        if self.pos != len(self.tokens):
            token = self.tokens[self.pos]
            raise EvaluationError(
                f"Unexpected token {token.text!r} at position {token.position}"
            )
        return node

    def _descend(self) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise EvaluationError("Expression too deeply nested")

    def _peek(self) -> Token | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _expr(self) -> Node:
        node = self._term()
        while (token := self._peek()) is not None and token.text in ("+", "-"):
            self.pos += 1
            node = BinaryOp(token.text, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._factor()
        while (token := self._peek()) is not None and token.text in ("*", "/"):
            self.pos += 1
            node = BinaryOp(token.text, node, self._factor())
        return node

    def _factor(self) -> Node:
        token = self._peek()
        if token is None:
            raise EvaluationError("Unexpected end of expression")

        if token.text == "(":
            self.pos += 1
            self._descend()
            node = self._expr()
            closing = self._peek()
            if closing is None or closing.text != ")":
                raise EvaluationError("Mismatched parentheses")
            self.pos += 1
            self.depth -= 1
            return node

        if token.text == "-":
            self.pos += 1
            self._descend()
            node = Negate(self._factor())
            self.depth -= 1
            return node

        if token.kind == "number":
            self.pos += 1
            try:
                return Number(float(token.text))
            except ValueError:
                raise EvaluationError(f"Invalid number {token.text!r}") from None

        if token.kind == "ident":
            if token.text not in self.variables:
                raise EvaluationError(f"Unknown name {token.text!r}")
            self.pos += 1
            return Variable(token.text)

        if token.text == ")":
            raise EvaluationError("Mismatched parentheses")

        raise EvaluationError(
            f"Expected a number at position {token.position}, got {token.text!r}"
        )


def parse(expression: str, variables: frozenset[str] = frozenset()) -> Node:
    """Parse an expression into an AST, allowing only the given variable names.

    Raises:
        EvaluationError: Invalid syntax, more than MAX_TOKENS tokens or nesting
            deeper than MAX_NESTING_DEPTH
    """
    tokens = tokenize(expression)
    if len(tokens) > MAX_TOKENS:
        raise EvaluationError(f"Expression too long (more than {MAX_TOKENS} tokens)")
    return _Parser(tokens, variables).parse()


def evaluate(expression: str) -> float:
    """Evaluate a plain arithmetic expression (digits, + - * / ( ) and whitespace).

    Example:
        >>> evaluate("2 + 3 * 4")
        14.0

    Raises:
        EvaluationError: Empty, unparseable, mismatched parentheses, division
            by zero, or trailing tokens
    """
    return parse(expression).evaluate({})


def _collect_variables(node: Node) -> set[str]:
    if isinstance(node, Variable):
        return {node.name}
    if isinstance(node, Negate):
        return _collect_variables(node.operand)
    if isinstance(node, BinaryOp):
        return _collect_variables(node.left) | _collect_variables(node.right)
    return set()


@dataclass(frozen=True)
class Formula:
    """A parsed mapping formula, reusable across quote generations."""

    source: str
    ast: Node

    @property
    def references_measurement(self) -> bool:
        return MEASUREMENT_VARIABLE in _collect_variables(self.ast)

    def evaluate(self, measurement: float) -> float:
        """Evaluate with ``measurement`` bound to the given value.

        Raises:
            EvaluationError: Division by zero at evaluation time
        """
        return self.ast.evaluate({MEASUREMENT_VARIABLE: float(measurement)})


@lru_cache(maxsize=512)
def compile_formula(formula: str) -> Formula:
    """Parse a mapping formula once; results are memoized by source text.

    Raises:
        EvaluationError: If the formula does not parse
    """
    return Formula(formula, parse(formula, frozenset({MEASUREMENT_VARIABLE})))


def validate_formula(formula: str | None) -> Formula:
    """Template-save check: the formula must parse and reference ``measurement``.

    Raises:
        ValidationError: If the formula is empty, invalid or ignores the measurement
    """
    if not formula or not formula.strip():
        raise ValidationError("Formula is required for calculation type 'formula'")

    try:
        compiled = compile_formula(formula.strip())
    except EvaluationError as exc:
        raise ValidationError(f"Invalid formula {formula!r}: {exc.message}") from exc

    if not compiled.references_measurement:
        raise ValidationError(
            f"Formula {formula!r} must reference '{MEASUREMENT_VARIABLE}'"
        )
    return compiled
