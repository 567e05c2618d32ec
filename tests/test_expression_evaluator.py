"""
Unit tests for the Expression Evaluator.

Tests cover:
- Precedence, associativity, unary operators and parentheses
- Null propagation and division by zero
- Syntax errors with positions
- Undefined references
- Cycle detection across variable and order references
"""
import pytest

from report_engine.core.error_taxonomy import (
    CircularDependencyError,
    ExpressionSyntaxError,
    UndefinedReferenceError,
)
from report_engine.core.expression_evaluator import (
    BinaryOp,
    Literal,
    OrderRef,
    Reference,
    ResolutionContext,
    ResolutionStack,
    UnaryOp,
    VariableRef,
    evaluate,
    parse_expression,
    references,
)


@pytest.fixture
def context():
    return ResolutionContext(
        variables={"revenue": 1000.0, "cogs": -400.0, "empty": None, "zero": 0.0},
        orders={10: 150.0, 20: -60.0},
    )


class TestArithmetic:
    """Tests for operators and precedence."""

    @pytest.mark.parametrize("expression,expected", [
        ("1 + 2 * 3", 7.0),
        ("(1 + 2) * 3", 9.0),
        ("10 - 4 - 3", 3.0),
        ("100 / 10 / 5", 2.0),
        ("-3 + 5", 2.0),
        ("--3", 3.0),
        ("+4 * -2", -8.0),
        ("2 * -(3 + 1)", -8.0),
        ("0.5 * 4", 2.0),
        (".25 * 4", 1.0),
    ])
    def test_literals(self, context, expression, expected):
        assert evaluate(expression, context) == pytest.approx(expected)

    def test_variables_and_orders(self, context):
        assert evaluate("(revenue + cogs) / revenue * 100", context) == pytest.approx(60.0)
        assert evaluate("@10 + @20", context) == pytest.approx(90.0)
        assert evaluate("@10 - revenue", context) == pytest.approx(-850.0)

    def test_deterministic(self, context):
        results = {evaluate("revenue * 1.21 / 3", context) for _ in range(5)}
        assert len(results) == 1


class TestNullSemantics:
    """Tests for None propagation."""

    def test_division_by_zero_is_none(self, context):
        assert evaluate("revenue / zero", context) is None
        assert evaluate("revenue / (@10 - 150)", context) is None

    def test_none_propagates(self, context):
        assert evaluate("revenue / zero + 5", context) is None
        assert evaluate("empty * 2", context) is None
        assert evaluate("-empty", context) is None

    def test_undefined_on_right_still_raises_with_none_left(self, context):
        with pytest.raises(UndefinedReferenceError):
            evaluate("empty + missing", context)


class TestSyntaxErrors:
    """Tests for malformed expressions."""

    @pytest.mark.parametrize("expression,position", [
        ("1 +", 3),
        ("(1 + 2", 6),
        ("1 + 2)", 5),
        ("2 3", 2),
        ("revenue $ 2", 8),
        ("@ + 1", 0),
    ])
    def test_positions(self, expression, position):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression(expression)
        assert exc_info.value.position == position
        assert exc_info.value.expression == expression

    @pytest.mark.parametrize("expression", ["", "   "])
    def test_empty_expression(self, expression):
        with pytest.raises(ExpressionSyntaxError):
            parse_expression(expression)

    def test_message_names_expression(self):
        with pytest.raises(ExpressionSyntaxError) as exc_info:
            parse_expression("(revenue")
        assert "(revenue" in str(exc_info.value)


class TestParser:
    """Tests for the AST shape."""

    def test_precedence_tree(self):
        node = parse_expression("a + b * @3")
        assert node == BinaryOp("+", VariableRef("a", 0), BinaryOp("*", VariableRef("b", 4), OrderRef(3, 8)))

    def test_unary(self):
        assert parse_expression("-2") == UnaryOp("-", Literal(2.0))

    def test_parse_is_memoized(self):
        assert parse_expression("revenue - cogs") is parse_expression("revenue - cogs")

    def test_references(self):
        refs = references("(revenue + cogs) / @10 - revenue")
        assert refs == {Reference.var("revenue"), Reference.var("cogs"), Reference.order(10)}


class TestUndefinedReferences:
    """Tests for unresolvable identifiers."""

    def test_undefined_variable(self, context):
        with pytest.raises(UndefinedReferenceError) as exc_info:
            evaluate("revenue + opex", context)
        assert exc_info.value.reference == "var:opex"
        assert exc_info.value.position == 10

    def test_undefined_order(self, context):
        with pytest.raises(UndefinedReferenceError) as exc_info:
            evaluate("@99 * 2", context)
        assert exc_info.value.reference == "@99"


class TestCycleDetection:
    """Tests for the resolution stack and lazy resolution."""

    @staticmethod
    def lazy_context(definitions):
        """Context whose missing references are evaluated from `definitions`."""
        def resolver(ref):
            if ref not in definitions:
                raise LookupError(str(ref))
            return evaluate(definitions[ref], context)

        context = ResolutionContext(resolver=resolver)
        return context

    def test_order_cycle(self):
        context = self.lazy_context({
            Reference.order(10): "@20 + 1",
            Reference.order(20): "@10 + 1",
        })
        with pytest.raises(CircularDependencyError) as exc_info:
            evaluate("@10", context)
        assert exc_info.value.chain == ["@10", "@20", "@10"]
        assert "@10 → @20 → @10" in str(exc_info.value)

    def test_cross_namespace_cycle(self):
        context = self.lazy_context({
            Reference.var("a"): "@10 * 2",
            Reference.order(10): "a + 1",
        })
        with pytest.raises(CircularDependencyError) as exc_info:
            evaluate("a", context)
        assert exc_info.value.chain == ["var:a", "@10", "var:a"]

    def test_lazy_resolution_without_cycle(self):
        context = self.lazy_context({
            Reference.var("a"): "@10 * 2",
            Reference.order(10): "21",
        })
        assert evaluate("a", context) == 42.0
        assert context.orders[10] == 21.0
        assert len(context.stack) == 0

    def test_stack_reentry(self):
        stack = ResolutionStack()
        with stack.enter(Reference.var("x")):
            with pytest.raises(CircularDependencyError):
                with stack.enter(Reference.var("x")):
                    pass
        assert Reference.var("x") not in stack

    def test_var_and_order_never_collide(self):
        assert Reference.var("10") != Reference.order(10)
