import pytest

from tcalc.tcalc_callable import ICallable
from tcalc.tcalc_errors import (
    ArityError, CalcError, CalcTypeError, CompileError, ProtectedScopeError, UndefinedSymbolError
)
from tcalc.tcalc_stdlib import StdLib, _VarArgsBuiltin, create_domain


def ev(calc, node):
    return calc.evaluate(node).value


@pytest.mark.parametrize("op, left, right, expected", [
    ("+", 2, 3, 5),
    ("+", 1.5, 2.0, 3.5),
    ("+", "ab", "cd", "abcd"),
    ("-", 10, 4, 6),
    ("*", 6, 7, 42),
    ("/", 7, 2, 3.5),
    ("/", 6, 3, 2.0),
    ("%", 7, 3, 1),
    ("==", 1, 1, True),
    ("==", 1, 1.0, False),
    ("!=", "a", "b", True),
    ("<", 1, 2, True),
    ("<=", 2, 2, True),
    (">", "b", "a", True),
    (">=", 1.0, 2.0, False),
    ("&&", 1, 0, False),
    ("||", 0, "x", True),
])
def test_binary_operators(calc, b, op, left, right, expected):
    result = calc.evaluate(b.op(op, b.value(left), b.value(right)))
    assert result.value == expected
    assert type(result.value) is type(expected)


@pytest.mark.parametrize("op, left, right", [
    ("+", 1, 1.0),
    ("+", 1, "a"),
    ("-", "a", "b"),
    ("<", 1, "a"),
    ("<", True, False),
])
def test_operand_kinds_are_not_coerced(calc, b, op, left, right):
    with pytest.raises(CalcTypeError):
        calc.evaluate(b.op(op, b.value(left), b.value(right)))


def test_division_by_zero(calc, b):
    with pytest.raises(CalcError, match="Division by zero"):
        calc.evaluate(b.op("/", b.value(1), b.value(0)))
    with pytest.raises(CalcError):
        calc.evaluate(b.op("%", b.value(1), b.value(0)))


def test_unary_operators(calc, b):
    assert ev(calc, b.unary("-", b.value(2.5))) == -2.5
    assert ev(calc, b.unary("!", b.sym("null"))) is True
    with pytest.raises(CalcTypeError):
        calc.evaluate(b.unary("-", b.value("a")))


def test_lambda_marker_cannot_be_run_directly(calc):
    arrow = calc.stdlib.operators()["->"]
    with pytest.raises(CompileError):
        arrow.fn(calc.to_value(1), calc.to_value(2))


def test_lists_and_pairs(calc, b):
    items = b.call("list", b.value(1), b.value(2), b.value(3))
    assert calc.pformat(calc.evaluate(items)) == "[1, 2, 3]"
    assert ev(calc, b.call("car", items)) == 1
    assert calc.pformat(calc.evaluate(b.call("cdr", items))) == "[2, 3]"
    assert calc.pformat(calc.evaluate(b.call("list"))) == "null"
    pair = b.call("cons", b.value("a"), b.value("b"))
    assert calc.pformat(calc.evaluate(pair)) == "('a' : 'b')"
    with pytest.raises(CalcTypeError):
        calc.evaluate(b.call("car", b.value(1)))


def test_type_names(calc, b):
    assert ev(calc, b.call("type", b.value(1))) == "int"
    assert ev(calc, b.call("type", b.value("s"))) == "str"
    assert ev(calc, b.call("type", b.sym("null"))) == "null"
    assert ev(calc, b.call("type", b.sym("car"))) == "callable"
    assert ev(calc, b.call("type", b.block(b.value(1)))) == "code"


def test_conversions(calc, b):
    assert ev(calc, b.call("int", b.value("12"))) == 12
    assert ev(calc, b.call("int", b.value(3.9))) == 3
    assert ev(calc, b.call("float", b.value(1))) == 1.0
    assert ev(calc, b.call("str", b.sym("true"))) == "true"
    assert ev(calc, b.call("str", b.value("x"))) == "x"
    assert ev(calc, b.call("bool", b.value(""))) is False
    with pytest.raises(CalcTypeError):
        calc.evaluate(b.call("int", b.value("twelve")))
    with pytest.raises(CalcTypeError):
        calc.evaluate(b.call("float", b.sym("null")))


@pytest.mark.parametrize("special", [float("nan"), float("inf"), float("-inf")])
def test_int_of_special_floats_is_a_calc_error(calc, b, special):
    with pytest.raises(CalcTypeError):
        calc.evaluate(b.call("int", b.value(special)))
    result = calc.execute(b.call("int", b.value(special)))
    assert result.status == "error"
    assert "CalcTypeError" in result.error_message


def test_define_binds_in_calling_scope(calc, b):
    assert ev(calc, b.call("define", b.value("answer"), b.value(42))) == 42
    assert calc.lookup("answer").value == 42
    assert ev(calc, b.op("+", b.sym("answer"), b.value(1))) == 43


def test_execute_runs_code_in_local_scope(calc, b):
    assert ev(calc, b.call("execute", b.block(b.op("+", b.value(1), b.value(2))))) == 3
    calc.evaluate(b.call("execute", b.block(b.call("define", b.value("hidden"), b.value(1)))))
    with pytest.raises(UndefinedSymbolError):
        calc.lookup("hidden")


def test_apply_calls_first_argument(calc, b):
    add = b.lambda_(["a", "b"], b.op("+", b.sym("a"), b.sym("b")))
    assert ev(calc, b.call("apply", add, b.value(1), b.value(2))) == 3
    with pytest.raises(ArityError):
        calc.evaluate(b.call("apply"))


def define_struct(calc, b, name, *fields):
    calc.evaluate(b.call("define", b.value(name),
                         b.call("struct", b.value(name), *[b.value(f) for f in fields])))


def test_struct_instances(calc, b):
    define_struct(calc, b, "Point", "x", "y")
    p = b.call("Point", b.value(1), b.value(2))
    assert calc.pformat(calc.evaluate(p)) == "Point(1, 2)"
    assert ev(calc, b.dot(p, b.sym("y"))) == 2
    assert ev(calc, b.op("==", p, b.call("Point", b.value(1), b.value(2)))) is True
    assert ev(calc, b.op("==", p, b.call("Point", b.value(2), b.value(1)))) is False
    assert ev(calc, b.call("type", p)) == "object"
    assert repr(calc.lookup("Point").value) == "<struct Point(x, y)>"


def test_struct_constructor_arity(calc, b):
    define_struct(calc, b, "Point", "x", "y")
    with pytest.raises(ArityError):
        calc.evaluate(b.call("Point", b.value(1)))


def test_struct_field_names_must_be_unique(calc, b):
    with pytest.raises(CalcError, match="Duplicate"):
        calc.evaluate(b.call("struct", b.value("Bad"), b.value("a"), b.value("a")))


def test_member_access_errors(calc, b):
    define_struct(calc, b, "Point", "x", "y")
    p = b.call("Point", b.value(1), b.value(2))
    with pytest.raises(UndefinedSymbolError):
        calc.evaluate(b.dot(p, b.sym("z")))
    with pytest.raises(CalcTypeError):
        calc.evaluate(b.dot(b.value(5), b.sym("x")))


def test_method_call_through_a_field(calc, b):
    define_struct(calc, b, "Counter", "n", "add")
    n = b.sym("n")
    calc.evaluate(b.call("define", b.value("c"), b.call(
        "Counter", b.value(10), b.lambda_(["k"], b.op("+", b.sym("k"), b.value(1))))))
    assert ev(calc, b.dot(b.sym("c"), b.call("add", b.value(5)))) == 6
    assert ev(calc, b.dot(b.sym("c"), b.block(b.op("*", n, b.value(2))))) == 20


def test_with_does_not_leak_members(calc, b):
    define_struct(calc, b, "Box", "inner")
    box = b.call("Box", b.value(3))
    assert ev(calc, b.call("with", box, b.block(b.sym("inner")))) == 3
    with pytest.raises(UndefinedSymbolError):
        calc.evaluate(b.sym("inner"))
    with pytest.raises(CalcTypeError):
        calc.evaluate(b.call("with", b.value(1), b.block(b.value(1))))


def test_with_block_cannot_define_into_object(calc, b):
    define_struct(calc, b, "Box", "inner")
    box = b.call("Box", b.value(3))
    calc.evaluate(b.call("with", box, b.block(b.call("define", b.value("tmp"), b.value(1)))))
    with pytest.raises(UndefinedSymbolError):
        calc.lookup("tmp")


def test_print_emits_side_effect(calc, b):
    result = calc.execute(b.call("print", b.value("total:"), b.value(3), b.call("list", b.value(1))))
    assert result.status == 'success'
    assert result.value.value is None
    assert result.side_effects == [{'topics': ['stdout'], 'message': "total: 3 [1]"}]


def test_template_renders_struct_fields(calc, b):
    define_struct(calc, b, "Person", "name", "age")
    person = b.call("Person", b.value("Ada"), b.value(36))
    text = b.value("{{name}} is {{age}} & <ok>")
    assert ev(calc, b.call("template", text, person)) == "Ada is 36 & <ok>"
    assert ev(calc, b.call("template", b.value("plain"), b.sym("null"))) == "plain"
    with pytest.raises(CalcTypeError):
        calc.evaluate(b.call("template", b.value("x"), b.value(1)))


def test_template_syntax_errors_are_calc_errors(calc, b):
    bad = b.value("{{#a}}x{{/b}}")
    with pytest.raises(CalcError):
        calc.evaluate(b.call("template", bad, b.sym("null")))
    assert calc.execute(b.call("template", bad, b.sym("null"))).status == "error"


def test_constants(calc, b):
    assert ev(calc, b.sym("true")) is True
    assert ev(calc, b.sym("false")) is False
    assert ev(calc, b.sym("null")) is None


def test_builtins_table():
    stdlib = StdLib(create_domain())
    names = set(stdlib.builtins())
    assert {"car", "cdr", "cons", "type", "int", "float", "str", "bool", "template"} <= names
    assert {"apply", "with", "define", "execute", "list", "print", "struct"} <= names
    assert stdlib.builtins()["cons"].args_count == 2


def test_guards_cannot_rebind_builtins(calc, b):
    x = b.sym("x")
    f = calc.evaluate(b.call("match", b.op("\\", b.args(x), b.op(
        "->", b.call("define", b.value("car"), x), b.value(1)))))
    with pytest.raises(ProtectedScopeError):
        calc.call(f, 1)
    assert calc.lookup("car").is_type(ICallable)


def test_varargs_builtins_must_define_apply():
    class Incomplete(_VarArgsBuiltin):
        pass

    with pytest.raises(TypeError):
        Incomplete()
