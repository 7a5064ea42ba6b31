import pytest

from tcalc.tcalc_errors import CompileError
from tcalc.tcalc_nodes import BinaryOpNode, BracketContainerNode, SymbolCallNode


def steps(calc, node):
    return [repr(step) for step in calc.compile(node)]


def test_field_access_compiles_to_key_and_dot(calc, b):
    node = b.dot(b.sym("obj"), b.sym("field"))
    assert steps(calc, node) == ["get obj", "push str:'field'", "op ."]


def test_method_call_goes_through_apply(calc, b):
    node = b.dot(b.sym("obj"), b.call("method", b.value(1), b.value(2)))
    assert steps(calc, node) == [
        "get obj",
        "push str:'method'",
        "op .",
        "push int:1",
        "push int:2",
        "call apply(3 -> 1)",
    ]


def test_chained_call_after_member(calc, b):
    node = b.dot(b.sym("a"), b.invoke(b.call("m", b.value(1)), b.value(2)))
    assert steps(calc, node) == [
        "get a",
        "push str:'m'",
        "op .",
        "push int:1",
        "call apply(2 -> 1)",
        "push int:2",
        "call apply(2 -> 1)",
    ]


def test_dot_block_runs_with(calc, b):
    node = b.dot(b.sym("a"), b.block(b.sym("x")))
    assert steps(calc, node) == ["get a", "push code:Code([get x])", "call with(2 -> 1)"]


def test_dot_with_other_right_operand(calc, b):
    node = b.dot(b.sym("a"), b.value("k"))
    assert steps(calc, node) == ["get a", "push str:'k'", "op ."]


def test_operands_are_emitted_before_operator(calc, b):
    node = b.op("-", b.value(5), b.value(3))
    assert steps(calc, node) == ["push int:5", "push int:3", "op -"]
    assert calc.evaluate(node).value == 2


def test_symbol_call_declares_counts(calc, b):
    assert steps(calc, b.call("f", b.value(1))) == ["push int:1", "call f(1 -> 1)"]
    assert steps(calc, b.call("g")) == ["call g(0 -> 1)"]


def test_invoke_calls_any_expression(calc, b):
    node = b.invoke(b.lambda_(["x"], b.op("*", b.sym("x"), b.value(2))), b.value(21))
    assert calc.evaluate(node).value == 42


def test_unary_operators(calc, b):
    assert steps(calc, b.unary("-", b.value(1))) == ["push int:1", "unary -"]
    assert calc.evaluate(b.unary("!", b.value(0))).value is True


def test_split_outside_match_is_a_compile_error(calc, b):
    node = b.op("\\", b.args(b.sym("x")), b.value(1))
    with pytest.raises(CompileError):
        calc.compile(node)


def test_lambda_arguments_must_be_names(calc, b):
    node = b.op("->", b.args(b.value(1)), b.value(2))
    with pytest.raises(CompileError):
        calc.compile(node)


def test_unknown_operators_are_rejected(b):
    with pytest.raises(CompileError):
        b.op("**", b.value(1), b.value(2))
    with pytest.raises(CompileError):
        b.unary("~", b.value(1))


def test_children_expose_structure(b):
    node = b.op("+", b.value(1), b.call("f", b.value(2)))
    assert isinstance(node, BinaryOpNode)
    left, right = node.children()
    assert isinstance(right, SymbolCallNode)
    assert len(list(right.children())) == 1
    assert list(b.args().children()) == []
    assert isinstance(b.args(), BracketContainerNode)


def test_compiled_code_is_reusable(calc, b):
    code = calc.compile(b.op("+", b.value(1), b.value(2)))
    assert calc.evaluate(code).value == 3
    assert calc.evaluate(code).value == 3
    assert len(code) == 3
