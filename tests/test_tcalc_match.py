import pytest

from tcalc.tcalc_composite import Decomposable, MappedComposite
from tcalc.tcalc_errors import (
    CompileError, DecomposableContractError, MatchFailedError, PatternUsageError,
    ProtectedScopeError, StackValidationError
)
from tcalc.tcalc_executable import Code
from tcalc.tcalc_frame import Frame, Stack
from tcalc.tcalc_match import (
    GuardedPatternClause, MatchSymbol, PatternAny, PatternBindName, PatternBuilderEnv, PatternMatchCons,
    PatternMatchDecomposable, PatternMatchExact, translate_pattern
)


def clause(b, args, action):
    return b.op("->", b.args(*args), action)


def guarded(b, args, *rest):
    """`(args) \\ g1 -> a1 \\ g2 -> a2 ...`; a trailing non-pair element is the default."""
    items = []
    for item in rest:
        items.append(b.op("->", item[0], item[1]) if isinstance(item, tuple) else item)
    tail = items[-1]
    for item in reversed(items[:-1]):
        tail = b.op("\\", item, tail)
    return b.op("\\", b.args(*args), tail)


def test_sum_or_zero(calc, b):
    x, y = b.sym("x"), b.sym("y")
    f = calc.evaluate(b.call("match",
                             clause(b, [x, y], b.op("+", x, y)),
                             clause(b, [], b.value(0))))
    assert calc.call(f, 2, 3).value == 5
    assert calc.call(f).value == 0


def test_no_alternative_for_argument_count(calc, b):
    x, y = b.sym("x"), b.sym("y")
    f = calc.evaluate(b.call("match", clause(b, [x, y], b.op("+", x, y))))
    with pytest.raises(MatchFailedError):
        calc.call(f, 1)
    with pytest.raises(MatchFailedError):
        calc.call(f)


def test_cons_pattern(calc, b):
    h, t = b.sym("h"), b.sym("t")
    f = calc.evaluate(b.call("match",
                             clause(b, [b.op(":", h, t)], h),
                             clause(b, [b.sym("_")], b.value("none"))))
    pair = calc.evaluate(b.op(":", b.value(1), b.value(2)))
    assert calc.call(f, pair).value == 1
    assert calc.call(f, 5).value == "none"


def test_cons_pattern_binds_both_sides(calc, b):
    h, t = b.sym("h"), b.sym("t")
    rest = calc.evaluate(b.call("match", clause(b, [b.op(":", h, t)], t)))
    items = calc.evaluate(b.call("list", b.value(1), b.value(2), b.value(3)))
    assert calc.pformat(calc.call(rest, items)) == "[2, 3]"


def test_first_matching_alternative_wins(calc, b):
    f = calc.evaluate(b.call("match",
                             clause(b, [b.sym("x")], b.value("first")),
                             clause(b, [b.sym("y")], b.value("second"))))
    assert calc.call(f, 1).value == "first"


def test_literal_patterns_match_exactly(calc, b):
    f = calc.evaluate(b.call("match",
                             clause(b, [b.value(0)], b.value("zero")),
                             clause(b, [b.sym("n")], b.value("other"))))
    assert calc.call(f, 0).value == "zero"
    assert calc.call(f, 0.0).value == "other"
    assert calc.call(f, 7).value == "other"


def test_failed_alternative_leaves_arguments_for_the_next(calc, b):
    f = calc.evaluate(b.call("match",
                             clause(b, [b.value(1), b.value(2)], b.value("exact")),
                             clause(b, [b.sym("a"), b.sym("b")], b.op("-", b.sym("a"), b.sym("b")))))
    assert calc.call(f, 1, 2).value == "exact"
    assert calc.call(f, 1, 3).value == -2


def test_guards_run_in_order(calc, b):
    x = b.sym("x")
    sign = calc.evaluate(b.call("match", guarded(
        b, [x],
        (b.op(">", x, b.value(0)), b.value("pos")),
        (b.op("<", x, b.value(0)), b.value("neg")),
        b.value("zero"))))
    assert calc.call(sign, 5).value == "pos"
    assert calc.call(sign, -3).value == "neg"
    assert calc.call(sign, 0).value == "zero"


def test_first_truthy_guard_is_selected(calc, b):
    x = b.sym("x")
    f = calc.evaluate(b.call("match", guarded(
        b, [x],
        (b.op(">", x, b.value(0)), b.value("first")),
        (b.op(">", x, b.value(1)), b.value("second")))))
    assert calc.call(f, 5).value == "first"


def test_no_truthy_guard_and_no_default_falls_through(calc, b):
    x = b.sym("x")
    f = calc.evaluate(b.call("match",
                             guarded(b, [x], (b.op(">", x, b.value(0)), b.value("pos"))),
                             clause(b, [b.sym("_")], b.value("fallback"))))
    assert calc.call(f, 1).value == "pos"
    assert calc.call(f, -1).value == "fallback"


def test_guard_must_leave_exactly_one_value(calc, b):
    x = b.sym("x")
    f = calc.evaluate(b.call("match", guarded(
        b, [x], (b.args(b.value(1), b.value(2)), b.value("never")))))
    with pytest.raises(PatternUsageError):
        calc.call(f, 1)


def test_guard_cannot_define_symbols(calc, b):
    x = b.sym("x")
    f = calc.evaluate(b.call("match", guarded(
        b, [x], (b.call("define", b.value("z"), x), b.value("never")))))
    with pytest.raises(ProtectedScopeError):
        calc.call(f, 1)


def test_recursive_matching_function(calc, b):
    n = b.sym("n")
    calc.evaluate(b.call("define", b.value("fact"), b.call(
        "match",
        clause(b, [b.value(0)], b.value(1)),
        clause(b, [n], b.op("*", n, b.call("fact", b.op("-", n, b.value(1))))))))
    assert calc.call("fact", 5).value == 120


def test_declared_result_count_is_validated(calc, b):
    f = calc.evaluate(b.call("match", clause(b, [b.sym("x")], b.sym("x"))))
    with pytest.raises(StackValidationError):
        calc.call(f, 1, returns=2)


def define_point(calc, b):
    calc.evaluate(b.call("define", b.value("Point"),
                         b.call("struct", b.value("Point"), b.value("x"), b.value("y"))))


def test_constructor_patterns_decompose_structs(calc, b):
    x, y = b.sym("x"), b.sym("y")
    f = calc.evaluate(b.call("match",
                             clause(b, [b.call("Point", b.value(0), y)], b.value("on axis")),
                             clause(b, [b.call("Point", x, y)], b.op("+", x, y)),
                             clause(b, [b.sym("_")], b.value(-1))))
    # Point is resolved when matching, not when the patterns are built
    define_point(calc, b)
    p = calc.evaluate(b.call("Point", b.value(1), b.value(2)))
    origin_ish = calc.evaluate(b.call("Point", b.value(0), b.value(9)))
    assert calc.call(f, p).value == 3
    assert calc.call(f, origin_ish).value == "on axis"
    assert calc.call(f, 5).value == -1


def test_constructor_pattern_rejects_other_structs(calc, b):
    define_point(calc, b)
    calc.evaluate(b.call("define", b.value("Size"),
                         b.call("struct", b.value("Size"), b.value("w"), b.value("h"))))
    f = calc.evaluate(b.call("match",
                             clause(b, [b.call("Point", b.sym("x"), b.sym("y"))], b.value("point")),
                             clause(b, [b.sym("_")], b.value("other"))))
    size = calc.evaluate(b.call("Size", b.value(1), b.value(2)))
    assert calc.call(f, size).value == "other"


def test_constructor_pattern_with_wrong_field_count_is_skipped(calc, b):
    define_point(calc, b)
    x, y = b.sym("x"), b.sym("y")
    f = calc.evaluate(b.call("match",
                             clause(b, [b.call("Point", x)], x),
                             clause(b, [b.call("Point", x, y)], y)))
    p = calc.evaluate(b.call("Point", b.value(1), b.value(2)))
    assert calc.call(f, p).value == 2


class BrokenDecomposable(Decomposable):
    def try_decompose(self, value, expected_count):
        return [value, value, value]


def test_decomposable_contract_violation_is_fatal(calc, b):
    calc.define("Pair", MappedComposite("Pair", [BrokenDecomposable()]))
    f = calc.evaluate(b.call("match",
                             clause(b, [b.call("Pair", b.sym("a"), b.sym("b"))], b.sym("a")),
                             clause(b, [b.sym("_")], b.value("never reached"))))
    for arg in (1, "text"):
        with pytest.raises(DecomposableContractError):
            calc.call(f, arg)


def test_constructor_must_be_decomposable(calc, b):
    calc.define("NotCtor", 5)
    f = calc.evaluate(b.call("match", clause(b, [b.call("NotCtor", b.sym("a"))], b.sym("a"))))
    with pytest.raises(PatternUsageError):
        calc.call(f, 1)
    g = calc.evaluate(b.call("match", clause(b, [b.call("Missing", b.sym("a"))], b.sym("a"))))
    with pytest.raises(PatternUsageError):
        calc.call(g, 1)


def test_match_syntax_is_checked_when_building(b):
    with pytest.raises(CompileError):
        b.call("match")
    with pytest.raises(CompileError):
        b.call("match", b.value(1))
    with pytest.raises(CompileError):
        b.call("match", b.op("->", b.sym("x"), b.value(1)))
    with pytest.raises(CompileError):
        b.call("match", b.op("+", b.args(), b.value(1)))
    with pytest.raises(CompileError):
        b.call("match", b.op("\\", b.args(b.sym("x")), b.op("\\", b.value(1), b.value(2))))


def test_pattern_code_must_not_leave_values(calc, b):
    with pytest.raises(PatternUsageError):
        calc.evaluate(b.call("pattern", b.block(b.value(1))))


def test_pattern_builder_order_rules():
    code = Code([])
    env = PatternBuilderEnv()
    env.add_var_pattern(PatternAny())
    env.add_default_action(code)
    with pytest.raises(PatternUsageError):
        env.add_var_pattern(PatternAny())
    assert env.build_pattern().required_args() == 1

    with pytest.raises(PatternUsageError):
        PatternBuilderEnv().build_pattern()


def test_later_default_action_replaces_earlier():
    first, second = Code([]), Code([])
    env = PatternBuilderEnv()
    env.add_var_pattern(PatternAny())
    env.add_default_action(first)
    env.add_default_action(second)
    assert env.build_pattern().action is second
    with pytest.raises(PatternUsageError):
        env.add_guarded_action(GuardedPatternClause(first, first))


def test_match_requires_declared_argument_count(calc):
    frame = Frame(calc.global_symbols, Stack())
    with pytest.raises(PatternUsageError):
        MatchSymbol(calc.domain).call(frame, None, 1)


def test_undeclared_argument_count_uses_stack_depth(calc, b):
    f = calc.evaluate(b.call("match",
                             clause(b, [b.sym("x"), b.sym("y")], b.value("two")),
                             clause(b, [b.sym("x")], b.value("one"))))
    frame = Frame(calc.global_symbols, Stack())
    frame.stack.push(calc.to_value(7))
    f.value.call(frame, None, None)
    assert [v.value for v in frame.stack] == ["one"]


def test_translate_pattern_variants(calc):
    one = calc.domain.create(int, 1)
    assert translate_pattern(one) == PatternMatchExact(one)
    assert translate_pattern(calc.to_value([1])) == PatternMatchCons(
        PatternMatchExact(one), PatternMatchExact(calc.to_value(None)))
    assert PatternBindName("x") != PatternAny()
    assert PatternMatchDecomposable("P", ()) == PatternMatchDecomposable("P", ())
