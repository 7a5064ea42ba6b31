"""
Pattern matching: `match` and `pattern`.

Compilation happens in two passes. A pattern literal such as `Point(x, 0)`
is first *evaluated* against a placeholder scope, where unknown names turn
into bind placeholders and calls to unknown names into constructor
placeholders. The resulting value is then *translated* into matcher parts.

    match((x, y) -> x + y, () -> 0)

compiles each clause into a small program that calls the builder symbols
`var`, `guarded` and `default`, hands it to `pattern`, and finally passes
all patterns to `match`, which returns a MatchingFunction.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

from tcalc.tcalc_callable import ICallable, FixedCallable, SingleReturnCallable, validate_returns
from tcalc.tcalc_composite import (
    IComposite, ICompositeTrait, SingleTraitComposite, Decomposable
)
from tcalc.tcalc_errors import (
    CompileError, DecomposableContractError, MatchFailedError, PatternUsageError, ProtectedScopeError
)
from tcalc.tcalc_executable import BinaryOperator, Code, IExecutable, PushValue, SymbolCall
from tcalc.tcalc_frame import create_protection_frame, create_top_frame, symbols_to_frame, new_closure_frame
from tcalc.tcalc_nodes import (
    IExprNode, BinaryOpNode, BracketContainerNode, MATCH_ANY, SYMBOL_MATCH, SYMBOL_PATTERN
)
from tcalc.tcalc_symbols import ISymbol, SymbolMap, NestedSymbolMap, LocalSymbolMap, ProtectionSymbolMap
from tcalc.tcalc_types import Cons, TypedValue, TypeDomain

logger = logging.getLogger(__name__)

SYMBOL_DEFAULT_ACTION = "default"
SYMBOL_GUARDED_ACTION = "guarded"
SYMBOL_PATTERN_VAR = "var"


# =================================================================
# Pattern parts
# =================================================================

@dataclass(frozen=True)
class PatternAny:
    pass


@dataclass(frozen=True)
class PatternBindName:
    name: str


@dataclass(frozen=True)
class PatternMatchExact:
    expected: TypedValue


@dataclass(frozen=True)
class PatternMatchCons:
    car: 'PatternPart'
    cdr: 'PatternPart'


@dataclass(frozen=True)
class PatternMatchDecomposable:
    type_name: str
    arg_matchers: Tuple['PatternPart', ...]


PatternPart = Union[PatternAny, PatternBindName, PatternMatchExact, PatternMatchCons, PatternMatchDecomposable]


def match_part(part: PatternPart, env: SymbolMap, output: SymbolMap, value: TypedValue) -> bool:
    """
    Matches one value, binding names into `output`. Returns False on a plain
    mismatch; misuse of a constructor raises.
    """
    match part:
        case PatternAny():
            return True
        case PatternBindName(name=name):
            output.put_value(name, value)
            return True
        case PatternMatchExact(expected=expected):
            return value == expected
        case PatternMatchCons(car=car, cdr=cdr):
            if not value.is_type(Cons):
                return False
            pair = value.value
            return match_part(car, env, output, pair.car) and match_part(cdr, env, output, pair.cdr)
        case PatternMatchDecomposable(type_name=type_name, arg_matchers=arg_matchers):
            return _match_decomposable(type_name, arg_matchers, env, output, value)
        case _:
            raise TypeError(f"Unknown pattern part: {part!r}")


def _match_decomposable(type_name: str, arg_matchers: Sequence[PatternPart],
                        env: SymbolMap, output: SymbolMap, value: TypedValue) -> bool:
    symbol = env.get(type_name)
    if symbol is None:
        raise PatternUsageError(f"Can't find decomposable constructor {type_name!r}")
    ctor = symbol.get()
    if not ctor.is_type(IComposite):
        raise PatternUsageError(f"Value {ctor!r} does not describe decomposable type")
    decomposable = ctor.value.get_optional(Decomposable)
    if decomposable is None:
        raise PatternUsageError(f"Value {ctor!r} does not describe decomposable type")

    expected = len(arg_matchers)
    decomposition = decomposable.try_decompose(value, expected)
    if decomposition is None:
        return False
    if len(decomposition) != expected:
        raise DecomposableContractError(
            f"Decomposable contract broken - returned different number of values: "
            f"expected: {expected}, got {len(decomposition)}")

    for matcher, item in zip(arg_matchers, decomposition):
        if not match_part(matcher, env, output, item):
            return False
    return True


# =================================================================
# Patterns
# =================================================================

@dataclass(frozen=True)
class GuardedPatternClause:
    guard: Code
    action: Code


class IPattern(ICompositeTrait):
    """A complete alternative: positional parts plus the action(s) they select."""
    parts: Tuple[PatternPart, ...]

    def required_args(self) -> int:
        return len(self.parts)


@dataclass(frozen=True)
class UnguardedPattern(IPattern):
    parts: Tuple[PatternPart, ...]
    action: Code


@dataclass(frozen=True)
class GuardedPattern(IPattern):
    parts: Tuple[PatternPart, ...]
    clauses: Tuple[GuardedPatternClause, ...]
    default_action: Optional[Code] = None


def match_pattern(pattern: IPattern, env: SymbolMap, output: SymbolMap,
                  values: Sequence[TypedValue], trace: bool = False) -> Optional[Code]:
    """Returns the action selected by `pattern` for `values`, or None if it doesn't match."""
    if len(values) != pattern.required_args():
        raise PatternUsageError(f"Invalid usage: expected {pattern.required_args()} values, got {len(values)}")
    for part, value in zip(pattern.parts, values):
        if not match_part(part, env, output, value):
            return None

    match pattern:
        case UnguardedPattern(action=action):
            return action
        case GuardedPattern(clauses=clauses, default_action=default_action):
            for clause in clauses:
                if _run_guard(clause.guard, output, trace):
                    return clause.action
            return default_action
        case _:
            raise TypeError(f"Unknown pattern kind: {pattern!r}")


def _run_guard(guard: Code, bindings: SymbolMap, trace: bool) -> bool:
    frame = create_protection_frame(bindings, trace)
    guard.execute(frame)
    if frame.stack.size() != 1:
        raise PatternUsageError(
            f"Invalid guard expression - expected exactly one result, got {frame.stack.size()}")
    return frame.stack.pop().is_truthy()


# =================================================================
# Placeholders (first compilation pass)
# =================================================================

@dataclass(frozen=True)
class VarPlaceholder(ICompositeTrait):
    var: str


@dataclass(frozen=True)
class CtorPlaceholder(ICompositeTrait):
    var: str
    args: Tuple[TypedValue, ...]


class PlaceholderSymbol(SingleReturnCallable, ISymbol):
    """Stands in for any unbound name inside a pattern literal."""

    def __init__(self, domain: TypeDomain, var: str):
        self.domain = domain
        self.var = var

    def get(self) -> TypedValue:
        return self.domain.create(IComposite, SingleTraitComposite("patternBind", VarPlaceholder(self.var)))

    def evaluate(self, frame, args_count):
        if args_count is None:
            raise PatternUsageError("Type constructor must be always called with arg count")
        args = frame.stack.substack(args_count)
        placeholder = CtorPlaceholder(self.var, tuple(args.values()))
        args.clear()
        return self.domain.create(IComposite, SingleTraitComposite("patternCtor", placeholder))


class PatternPlaceholdersSymbolMap(NestedSymbolMap):
    """Resolves names through the parent, inventing placeholders for the rest."""

    def __init__(self, domain: TypeDomain, parent: SymbolMap):
        super().__init__(parent)
        self.domain = domain

    def get(self, name):
        symbol = super().get(name)
        if symbol is not None:
            return symbol
        return PlaceholderSymbol(self.domain, name)

    def put(self, name, symbol):
        raise ProtectedScopeError(f"Can't create new symbols in match patterns (tried {name!r})")


def translate_pattern(value: TypedValue) -> PatternPart:
    """Second compilation pass: placeholder structure -> matcher parts."""
    if value.is_type(IComposite):
        composite = value.value
        var = composite.get_optional(VarPlaceholder)
        if var is not None:
            return PatternAny() if var.var == MATCH_ANY else PatternBindName(var.var)
        ctor = composite.get_optional(CtorPlaceholder)
        if ctor is not None:
            return PatternMatchDecomposable(ctor.var, tuple(translate_pattern(a) for a in ctor.args))

    if value.is_type(Cons):
        pair = value.value
        return PatternMatchCons(translate_pattern(pair.car), translate_pattern(pair.cdr))

    return PatternMatchExact(value)


# =================================================================
# Pattern builder
# =================================================================

class PatternBuilderEnv:
    """Collects the pieces of a single pattern while its construction code runs."""

    def __init__(self):
        self.var_patterns: List[PatternPart] = []
        self.guarded_actions: List[GuardedPatternClause] = []
        self.default_action: Optional[Code] = None
        self._first_action_added = False

    def add_var_pattern(self, part: PatternPart):
        if self._first_action_added:
            raise PatternUsageError("Trying to add variable pattern after action")
        self.var_patterns.append(part)

    def add_guarded_action(self, clause: GuardedPatternClause):
        if self.default_action is not None:
            raise PatternUsageError("Trying to add guarded action after default")
        self._first_action_added = True
        self.guarded_actions.append(clause)

    def add_default_action(self, action: Code):
        if self.default_action is not None:
            logger.debug("Replacing default action of pattern")
        self._first_action_added = True
        self.default_action = action

    def build_pattern(self) -> IPattern:
        parts = tuple(self.var_patterns)
        if not self.guarded_actions:
            if self.default_action is None:
                raise PatternUsageError("Invalid 'pattern' arguments: no action given")
            return UnguardedPattern(parts, self.default_action)
        return GuardedPattern(parts, tuple(self.guarded_actions), self.default_action)


class PatternBuilderVarSymbol(FixedCallable):
    def __init__(self, builder: PatternBuilderEnv, placeholders: SymbolMap):
        super().__init__(1, 0)
        self.builder = builder
        self.placeholders = placeholders

    def invoke(self, frame):
        pattern = frame.stack.pop().as_type(Code, "variable pattern")
        pattern_frame = symbols_to_frame(self.placeholders, frame.trace)
        pattern.execute(pattern_frame)
        if pattern_frame.stack.size() != 1:
            raise PatternUsageError(f"Invalid result of pattern compilation: {pattern_frame.stack!r}")
        self.builder.add_var_pattern(translate_pattern(pattern_frame.stack.pop()))


class PatternBuilderGuardedActionSymbol(FixedCallable):
    def __init__(self, builder: PatternBuilderEnv):
        super().__init__(2, 0)
        self.builder = builder

    def invoke(self, frame):
        action = frame.stack.pop().as_type(Code, "pattern action")
        guard = frame.stack.pop().as_type(Code, "pattern guard")
        self.builder.add_guarded_action(GuardedPatternClause(guard, action))


class PatternBuilderDefaultActionSymbol(FixedCallable):
    def __init__(self, builder: PatternBuilderEnv):
        super().__init__(1, 0)
        self.builder = builder

    def invoke(self, frame):
        action = frame.stack.pop().as_type(Code, "pattern action")
        self.builder.add_default_action(action)


# =================================================================
# Runtime symbols
# =================================================================

class PatternSymbol(FixedCallable):
    """`pattern(code)`: runs pattern construction code, returns a pattern composite."""

    def __init__(self, domain: TypeDomain, pattern_env: SymbolMap):
        super().__init__(1, 1)
        self.domain = domain
        self.pattern_env = pattern_env

    def invoke(self, frame):
        code = frame.stack.pop().as_type(Code, "pattern constructor code (first arg)")
        pattern = self._evaluate_pattern(code, frame.trace)
        frame.stack.push(self.domain.create(IComposite, SingleTraitComposite("pattern", pattern)))

    def _evaluate_pattern(self, code: Code, trace: bool = False) -> IPattern:
        execution_frame = create_top_frame(trace)
        symbols = execution_frame.symbols
        builder = PatternBuilderEnv()
        placeholders = PatternPlaceholdersSymbolMap(self.domain, self.pattern_env)
        symbols.put_value(SYMBOL_PATTERN_VAR,
                          self.domain.create(ICallable, PatternBuilderVarSymbol(builder, placeholders)))
        symbols.put_value(SYMBOL_GUARDED_ACTION,
                          self.domain.create(ICallable, PatternBuilderGuardedActionSymbol(builder)))
        symbols.put_value(SYMBOL_DEFAULT_ACTION,
                          self.domain.create(ICallable, PatternBuilderDefaultActionSymbol(builder)))

        code.execute(execution_frame)
        if not execution_frame.stack.is_empty():
            raise PatternUsageError(f"Leftovers on pattern execution stack: {execution_frame.stack!r}")
        return builder.build_pattern()


class MatchingFunction(ICallable):
    """Ordered alternatives plus the scope they were defined in. First match wins."""

    def __init__(self, define_scope: SymbolMap, patterns: Sequence[IPattern]):
        self.define_scope = define_scope
        self.patterns = tuple(patterns)

    def call(self, frame, args_count, returns_count):
        stack = frame.stack
        env = ProtectionSymbolMap(self.define_scope)
        for index, pattern in enumerate(self.patterns):
            required = pattern.required_args()
            if args_count is not None:
                if args_count != required:
                    continue
            elif stack.size() < required:
                continue

            candidates = stack.substack(required)
            matched = LocalSymbolMap(self.define_scope)
            action = match_pattern(pattern, env, matched, candidates.values(), frame.trace)
            if action is None:
                continue

            logger.debug("Alternative %d of %d matched", index + 1, len(self.patterns))
            candidates.clear()
            matched_frame = new_closure_frame(matched, frame, 0)
            action.execute(matched_frame)
            validate_returns(matched_frame.stack, returns_count)
            return

        raise MatchFailedError("Can't find matching variant")

    def __repr__(self) -> str:
        return f"<match {len(self.patterns)} alternative(s)>"


class MatchSymbol(SingleReturnCallable):
    """`match(p1, p2, ...)`: bundles patterns into a MatchingFunction over the caller's scope."""

    def __init__(self, domain: TypeDomain):
        self.domain = domain

    def evaluate(self, frame, args_count):
        if args_count is None:
            raise PatternUsageError("'match' must be called with argument count")
        patterns = []
        for _ in range(args_count):
            composite = frame.stack.pop().as_type(IComposite, "'match' argument")
            patterns.append(composite.get(IPattern))
        patterns.reverse()
        return self.domain.create(ICallable, MatchingFunction(frame.symbols, patterns))


# =================================================================
# Compiler side
# =================================================================

class MatchNode(IExprNode):
    def __init__(self, patterns: Sequence['PatternConstructionCompiler']):
        self.patterns = list(patterns)

    def flatten(self, output):
        for compiler in self.patterns:
            compiler.flatten(output)
        output.append(SymbolCall(SYMBOL_MATCH, len(self.patterns), 1))


class UnguardedPatternActionCompiler:
    def __init__(self, domain: TypeDomain, action: IExprNode):
        self.domain = domain
        self.action = action

    def flatten(self, output: List[IExecutable]):
        output.append(PushValue(Code.flatten_and_wrap(self.domain, self.action)))
        output.append(SymbolCall(SYMBOL_DEFAULT_ACTION, 1, 0))


class GuardedPatternActionCompiler:
    def __init__(self, domain: TypeDomain, guard: IExprNode, action: IExprNode):
        self.domain = domain
        self.guard = guard
        self.action = action

    def flatten(self, output: List[IExecutable]):
        output.append(PushValue(Code.flatten_and_wrap(self.domain, self.guard)))
        output.append(PushValue(Code.flatten_and_wrap(self.domain, self.action)))
        output.append(SymbolCall(SYMBOL_GUARDED_ACTION, 2, 0))


class PatternConstructionCompiler:
    """Emits the construction program of one clause followed by `pattern(1 -> 1)`."""

    def __init__(self, domain: TypeDomain, constructors: Sequence[IExprNode], actions: Sequence):
        self.domain = domain
        self.constructors = list(constructors)
        self.actions = list(actions)

    def flatten(self, output: List[IExecutable]):
        construction: List[IExecutable] = []
        for node in self.constructors:
            construction.append(PushValue(Code.flatten_and_wrap(self.domain, node)))
            construction.append(SymbolCall(SYMBOL_PATTERN_VAR, 1, 0))
        for action in self.actions:
            action.flatten(construction)

        output.append(PushValue(Code.wrap(self.domain, construction)))
        output.append(SymbolCall(SYMBOL_PATTERN, 1, 1))


class MatchExpressionFactory:
    """
    Wires pattern matching into a calculator: the `match` special form for the
    compiler, and the `match`/`pattern` runtime symbols.
    """

    def __init__(self, domain: TypeDomain, split: BinaryOperator, lambda_op: BinaryOperator):
        self.domain = domain
        self.split = split
        self.lambda_op = lambda_op

    def create_match_node(self, children: List[IExprNode]) -> MatchNode:
        if not children:
            raise CompileError("'match' expects at least one argument")
        return MatchNode([self._convert_clause(child) for child in children])

    def _convert_clause(self, node: IExprNode) -> PatternConstructionCompiler:
        if not isinstance(node, BinaryOpNode):
            raise CompileError(f"Invalid 'match' syntax: {node!r}")
        var_matchers = self._extract_var_matchers(node.left)
        if node.operator is self.lambda_op:
            return PatternConstructionCompiler(
                self.domain, var_matchers, [UnguardedPatternActionCompiler(self.domain, node.right)])
        if node.operator is self.split:
            actions = []
            self._extract_guards(actions, node.right)
            return PatternConstructionCompiler(self.domain, var_matchers, actions)
        raise CompileError(
            "Invalid 'match' syntax, expected '->' between pattern and action "
            f"or '\\' between pattern and guarded actions, got {node.operator.id!r}")

    @staticmethod
    def _extract_var_matchers(node: IExprNode) -> List[IExprNode]:
        if isinstance(node, BracketContainerNode):
            return list(node.children())
        raise CompileError(f"Expected argument list, got {node!r}")

    def _extract_guards(self, actions: list, clause: IExprNode):
        while isinstance(clause, BinaryOpNode) and clause.operator is self.split:
            # guard -> action on the left, the remaining clauses on the right
            left = clause.left
            if not (isinstance(left, BinaryOpNode) and left.operator is self.lambda_op):
                raise CompileError(f"Invalid 'match' syntax: expected guard -> action on left side of '\\', got {left!r}")
            actions.append(GuardedPatternActionCompiler(self.domain, left.left, left.right))
            clause = clause.right

        if isinstance(clause, BinaryOpNode) and clause.operator is self.lambda_op:
            actions.append(GuardedPatternActionCompiler(self.domain, clause.left, clause.right))
        else:
            # anything else is the default action
            actions.append(UnguardedPatternActionCompiler(self.domain, clause))

    def register_symbols(self, env: SymbolMap, pattern_env: SymbolMap):
        env.put_value(SYMBOL_MATCH, self.domain.create(ICallable, MatchSymbol(self.domain)))
        env.put_value(SYMBOL_PATTERN, self.domain.create(ICallable, PatternSymbol(self.domain, pattern_env)))
