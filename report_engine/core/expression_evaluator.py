"""
Expression Evaluator

Safe arithmetic over report variables and layout rows.

Grammar (precedence: unary > * / > + -, left-associative):
    expression := term (("+" | "-") term)*
    term       := unary (("*" | "/") unary)*
    unary      := ("-" | "+") unary | primary
    primary    := NUMBER | IDENTIFIER | "@" INTEGER | "(" expression ")"

Identifiers name variables; @<n> names the layout row with order n.
Expressions are tokenized, parsed into a small AST and walked. Nothing is
ever passed to eval().

Numeric semantics:
- A None operand makes the result None
- Division by zero yields None
"""
import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict, FrozenSet, Iterator, List, Optional, Set, Union

from report_engine.core.error_taxonomy import (
    CircularDependencyError,
    ExpressionSyntaxError,
    UndefinedReferenceError,
)

logger = logging.getLogger(__name__)

Value = Optional[float]


# =============================================================================
# References
# =============================================================================

@dataclass(frozen=True)
class Reference:
    """A variable name or a layout order, kept apart so 'a' and '@1' never collide."""
    kind: str  # "var" or "order"
    key: Union[str, int]

    @classmethod
    def var(cls, name: str) -> "Reference":
        return cls("var", name)

    @classmethod
    def order(cls, order: int) -> "Reference":
        return cls("order", int(order))

    @property
    def is_order(self) -> bool:
        return self.kind == "order"

    def __str__(self) -> str:
        return f"@{self.key}" if self.is_order else f"var:{self.key}"


class ResolutionStack:
    """
    References currently being resolved, innermost last.

    Entering a reference that is already on the stack is a cycle.
    """

    def __init__(self):
        self._stack: List[Reference] = []
        self._active: Set[Reference] = set()

    def __len__(self) -> int:
        return len(self._stack)

    def __contains__(self, ref: Reference) -> bool:
        return ref in self._active

    @property
    def chain(self) -> List[Reference]:
        return list(self._stack)

    @contextmanager
    def enter(self, ref: Reference) -> Iterator[None]:
        if ref in self._active:
            start = self._stack.index(ref)
            raise CircularDependencyError(self._stack[start:] + [ref])
        self._stack.append(ref)
        self._active.add(ref)
        try:
            yield
        finally:
            self._stack.pop()
            self._active.discard(ref)


# =============================================================================
# Resolution context
# =============================================================================

Resolver = Callable[[Reference], Value]


class ResolutionContext:
    """
    Per-run map of resolved values.

    Starts with the resolved variables and grows as layout rows are
    processed. An optional resolver is consulted for references not yet in
    the map; it runs under the context's ResolutionStack, so a reference
    that (indirectly) needs itself raises CircularDependencyError. The
    resolver raises LookupError for references it does not know.
    """

    def __init__(
        self,
        variables: Optional[Dict[str, Value]] = None,
        orders: Optional[Dict[int, Value]] = None,
        resolver: Optional[Resolver] = None,
    ):
        self.variables: Dict[str, Value] = dict(variables or {})
        self.orders: Dict[int, Value] = dict(orders or {})
        self.resolver = resolver
        self.stack = ResolutionStack()

    def set_order(self, order: int, value: Value) -> None:
        self.orders[order] = value

    def set_variable(self, name: str, value: Value) -> None:
        self.variables[name] = value

    def has(self, ref: Reference) -> bool:
        store = self.orders if ref.is_order else self.variables
        return ref.key in store

    def lookup(self, ref: Reference, expression: str = None, position: int = None) -> Value:
        """Value of a reference, resolving lazily when a resolver is set."""
        store = self.orders if ref.is_order else self.variables
        if ref.key in store:
            return store[ref.key]

        if self.resolver is None:
            raise UndefinedReferenceError(str(ref), expression, position)

        with self.stack.enter(ref):
            try:
                value = self.resolver(ref)
            except LookupError:
                raise UndefinedReferenceError(str(ref), expression, position) from None
        store[ref.key] = value
        return value


# =============================================================================
# Tokenizer
# =============================================================================

@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


_TOKEN_PATTERN = re.compile(
    r"""
    (?P<WS>\s+)
  | (?P<NUMBER>\d+(?:\.\d+)?|\.\d+)
  | (?P<ORDER>@\d+)
  | (?P<IDENT>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<OP>[-+*/])
  | (?P<LPAREN>\()
  | (?P<RPAREN>\))
    """,
    re.VERBOSE,
)


def tokenize(expression: str) -> List[Token]:
    tokens = []
    position = 0
    while position < len(expression):
        match = _TOKEN_PATTERN.match(expression, position)
        if match is None:
            raise ExpressionSyntaxError(
                expression, position, f"Unexpected character '{expression[position]}'"
            )
        kind = match.lastgroup
        if kind != "WS":
            tokens.append(Token(kind, match.group(), position))
        position = match.end()
    return tokens


# =============================================================================
# AST
# =============================================================================

@dataclass(frozen=True)
class Literal:
    value: float


@dataclass(frozen=True)
class VariableRef:
    name: str
    position: int


@dataclass(frozen=True)
class OrderRef:
    order: int
    position: int


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Literal, VariableRef, OrderRef, UnaryOp, BinaryOp]


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = tokenize(expression)
        self.index = 0

    def _peek(self) -> Optional[Token]:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _error(self, reason: str, token: Optional[Token] = None):
        position = token.position if token is not None else len(self.expression)
        return ExpressionSyntaxError(self.expression, position, reason)

    def parse(self) -> Node:
        if not self.tokens:
            raise self._error("Empty expression")
        node = self._expression()
        trailing = self._peek()
        if trailing is not None:
            if trailing.kind == "RPAREN":
                raise self._error("Unbalanced ')'", trailing)
            raise self._error(f"Unexpected token '{trailing.text}'", trailing)
        return node

    def _expression(self) -> Node:
        node = self._term()
        while True:
            token = self._peek()
            if token is None or token.kind != "OP" or token.text not in "+-":
                return node
            self._advance()
            node = BinaryOp(token.text, node, self._term())

    def _term(self) -> Node:
        node = self._unary()
        while True:
            token = self._peek()
            if token is None or token.kind != "OP" or token.text not in "*/":
                return node
            self._advance()
            node = BinaryOp(token.text, node, self._unary())

    def _unary(self) -> Node:
        token = self._peek()
        if token is not None and token.kind == "OP" and token.text in "+-":
            self._advance()
            return UnaryOp(token.text, self._unary())
        return self._primary()

    def _primary(self) -> Node:
        token = self._peek()
        if token is None:
            raise self._error("Unexpected end of expression")

        self._advance()
        if token.kind == "NUMBER":
            return Literal(float(token.text))
        if token.kind == "IDENT":
            return VariableRef(token.text, token.position)
        if token.kind == "ORDER":
            return OrderRef(int(token.text[1:]), token.position)
        if token.kind == "LPAREN":
            node = self._expression()
            closing = self._peek()
            if closing is None or closing.kind != "RPAREN":
                raise self._error("Missing ')'", closing)
            self._advance()
            return node
        raise self._error(f"Unexpected token '{token.text}'", token)


@lru_cache(maxsize=1024)
def parse_expression(expression: str) -> Node:
    """
    Parse an expression string into an AST.

    Results are memoized per expression string.

    Raises:
        ExpressionSyntaxError: Bad token, unbalanced parentheses,
                               trailing tokens, or empty expression
    """
    return _Parser(expression).parse()


def _collect_references(node: Node, found: Set[Reference]) -> None:
    if isinstance(node, VariableRef):
        found.add(Reference.var(node.name))
    elif isinstance(node, OrderRef):
        found.add(Reference.order(node.order))
    elif isinstance(node, UnaryOp):
        _collect_references(node.operand, found)
    elif isinstance(node, BinaryOp):
        _collect_references(node.left, found)
        _collect_references(node.right, found)


def references(expression: str) -> FrozenSet[Reference]:
    """All variable and order references used by an expression."""
    found: Set[Reference] = set()
    _collect_references(parse_expression(expression), found)
    return frozenset(found)


# =============================================================================
# Evaluation
# =============================================================================

def _divide(left: float, right: float) -> Value:
    if right == 0:
        return None
    return left / right


_BINARY_OPERATIONS: Dict[str, Callable[[float, float], Value]] = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _divide,
}


class ExpressionEvaluator:
    """
    Tree-walking evaluator.

    Usage:
        evaluator = ExpressionEvaluator()
        context = ResolutionContext(variables={"revenue": 1000.0, "cogs": -400.0})
        evaluator.evaluate("(revenue + cogs) / revenue * 100", context)   # 60.0
    """

    def evaluate(self, expression: str, context: ResolutionContext) -> Value:
        """
        Evaluate an expression against a resolution context.

        Raises:
            ExpressionSyntaxError: If the expression is malformed
            UndefinedReferenceError: If a reference cannot be resolved
            CircularDependencyError: If lazy resolution re-enters a reference
        """
        node = parse_expression(expression)
        result = self._eval(node, expression, context)
        logger.debug(f"Evaluated '{expression}' -> {result}")
        return result

    def evaluate_as(self, ref: Reference, expression: str, context: ResolutionContext) -> Value:
        """Evaluate an expression that defines `ref`, guarding against self-reference."""
        with context.stack.enter(ref):
            return self.evaluate(expression, context)

    def _eval(self, node: Node, expression: str, context: ResolutionContext) -> Value:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, VariableRef):
            return context.lookup(Reference.var(node.name), expression, node.position)

        if isinstance(node, OrderRef):
            return context.lookup(Reference.order(node.order), expression, node.position)

        if isinstance(node, UnaryOp):
            operand = self._eval(node.operand, expression, context)
            if operand is None:
                return None
            return -operand if node.op == "-" else operand

        # Both operands are always evaluated; an undefined reference raises
        # even when the other side is None.
        left = self._eval(node.left, expression, context)
        right = self._eval(node.right, expression, context)
        if left is None or right is None:
            return None
        return _BINARY_OPERATIONS[node.op](left, right)


# Singleton evaluator instance
_evaluator = ExpressionEvaluator()


def get_expression_evaluator() -> ExpressionEvaluator:
    """Get the expression evaluator instance."""
    return _evaluator


def evaluate(expression: str, context: ResolutionContext) -> Value:
    """Module-level shortcut for ExpressionEvaluator().evaluate."""
    return _evaluator.evaluate(expression, context)
