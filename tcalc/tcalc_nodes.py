"""
Syntax tree nodes and the compiler that flattens them into instructions.

Every node appends its instructions to a shared output list: children first,
in source order, then the node's own instruction(s). Only the dot operator
looks at the *shape* of its right operand to decide what to emit.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from tcalc.tcalc_errors import CompileError
from tcalc.tcalc_executable import (
    IExecutable, PushValue, SymbolGet, SymbolCall, BinaryOperator, UnaryOperator,
    MakeClosure, Code
)
from tcalc.tcalc_types import TypedValue, TypeDomain

SYMBOL_APPLY = "apply"
SYMBOL_WITH = "with"
SYMBOL_MATCH = "match"
SYMBOL_PATTERN = "pattern"
MATCH_ANY = "_"

OPERATOR_DOT = "."
OPERATOR_LAMBDA = "->"
OPERATOR_SPLIT = "\\"
OPERATOR_CONS = ":"


class IExprNode(ABC):

    @abstractmethod
    def flatten(self, output: List[IExecutable]) -> None:
        pass

    def children(self) -> Iterable['IExprNode']:
        return ()


class ValueNode(IExprNode):
    def __init__(self, value: TypedValue):
        self.value = value

    def flatten(self, output):
        output.append(PushValue(self.value))

    def __repr__(self) -> str:
        return f"ValueNode({self.value!r})"


class SymbolGetNode(IExprNode):
    def __init__(self, symbol: str):
        self.symbol = symbol

    def flatten(self, output):
        output.append(SymbolGet(self.symbol))

    def __repr__(self) -> str:
        return f"SymbolGetNode({self.symbol!r})"


class SymbolCallNode(IExprNode):
    """`name(args...)`: always declares its argument count and a single result."""

    def __init__(self, symbol: str, args: Sequence[IExprNode]):
        self.symbol = symbol
        self.args = list(args)

    def flatten(self, output):
        for arg in self.args:
            arg.flatten(output)
        output.append(SymbolCall(self.symbol, len(self.args), 1))

    def children(self):
        return list(self.args)

    def __repr__(self) -> str:
        return f"SymbolCallNode({self.symbol!r}, {self.args!r})"


class BinaryOpNode(IExprNode):
    def __init__(self, operator: BinaryOperator, left: IExprNode, right: IExprNode):
        self.operator = operator
        self.left = left
        self.right = right

    def flatten(self, output):
        self.left.flatten(output)
        self.right.flatten(output)
        output.append(self.operator)

    def children(self):
        return [self.left, self.right]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.operator.id!r}, {self.left!r}, {self.right!r})"


class UnaryOpNode(IExprNode):
    def __init__(self, operator: UnaryOperator, arg: IExprNode):
        self.operator = operator
        self.arg = arg

    def flatten(self, output):
        self.arg.flatten(output)
        output.append(self.operator)

    def children(self):
        return [self.arg]


class BracketContainerNode(IExprNode):
    """Parenthesized, comma separated items: `(a, b, c)`."""

    def __init__(self, items: Sequence[IExprNode]):
        self.items = list(items)

    def flatten(self, output):
        for item in self.items:
            item.flatten(output)

    def children(self):
        return list(self.items)

    def __repr__(self) -> str:
        return f"BracketContainerNode({self.items!r})"


class MethodCallNode(IExprNode):
    """Calls the result of an arbitrary expression: `target(args...)`."""

    def __init__(self, target: IExprNode, args: Sequence[IExprNode]):
        self.target = target
        self.args = list(args)

    def flatten(self, output):
        self.target.flatten(output)
        self.flatten_args_and_call(output)

    def flatten_args_and_call(self, output):
        for arg in self.args:
            arg.flatten(output)
        output.append(SymbolCall(SYMBOL_APPLY, 1 + len(self.args), 1))

    def children(self):
        return [self.target] + self.args


class RawCodeExprNode(IExprNode):
    """`{...}`: pushes the compiled block as a code value instead of running it."""

    def __init__(self, domain: TypeDomain, body: IExprNode):
        self.domain = domain
        self.body = body

    def flatten(self, output):
        output.append(PushValue(Code.flatten_and_wrap(self.domain, self.body)))

    def children(self):
        return [self.body]


class LambdaExprNode(BinaryOpNode):
    """`(a, b) -> body`: builds a closure over the scope it is evaluated in."""

    def __init__(self, operator: BinaryOperator, left: IExprNode, right: IExprNode, domain: TypeDomain):
        super().__init__(operator, left, right)
        self.domain = domain

    def arg_names(self) -> List[str]:
        if isinstance(self.left, SymbolGetNode):
            return [self.left.symbol]
        if not isinstance(self.left, BracketContainerNode):
            raise CompileError(f"Expected argument list on left side of '->', got {self.left!r}")
        names = []
        for item in self.left.items:
            if not isinstance(item, SymbolGetNode):
                raise CompileError(f"Lambda arguments must be names, got {item!r}")
            names.append(item.symbol)
        return names

    def flatten(self, output):
        output.append(MakeClosure(self.domain, self.arg_names(), Code.flatten(self.right)))


class SplitExprNode(BinaryOpNode):
    """`a \\ b`: separates guarded clauses; only meaningful inside 'match'."""

    def flatten(self, output):
        raise CompileError("'\\' can only be used inside 'match'")


class DotExprNode(BinaryOpNode):
    """
    `left.right`. Member access and method-call sugar share the `.` token, so
    the right operand's node type decides the emitted shape.
    """

    def __init__(self, operator: BinaryOperator, left: IExprNode, right: IExprNode, domain: TypeDomain):
        super().__init__(operator, left, right)
        self.domain = domain

    def flatten(self, output):
        self.left.flatten(output)
        self._flatten_key_node(output, self.right)

    def _flatten_key_node(self, output, target: IExprNode):
        match target:
            case MethodCallNode():
                # chained call: `a.b(x)(y)`
                self._flatten_key_node(output, target.target)
                target.flatten_args_and_call(output)
            case SymbolCallNode():
                output.append(self._key(target.symbol))
                output.append(self.operator)
                self._append_apply(output, target.args)
            case SymbolGetNode():
                output.append(self._key(target.symbol))
                output.append(self.operator)
            case RawCodeExprNode():
                target.flatten(output)
                output.append(SymbolCall(SYMBOL_WITH, 2, 1))
            case _:
                target.flatten(output)
                output.append(self.operator)

    @staticmethod
    def _append_apply(output, args: Sequence[IExprNode]):
        for arg in args:
            arg.flatten(output)
        output.append(SymbolCall(SYMBOL_APPLY, 1 + len(args), 1))

    def _key(self, symbol: str) -> PushValue:
        return PushValue(self.domain.create(str, symbol))


# =================================================================
# Builder
# =================================================================

SpecialForm = Callable[[List[IExprNode]], IExprNode]


class ExprBuilder:
    """
    Constructs syntax trees for a given domain and operator set. Hosts use it
    in place of a source parser; special forms (like 'match') get to rewrite
    their arguments at construction time.
    """

    def __init__(self, domain: TypeDomain, operators: Dict[str, BinaryOperator],
                 unary_operators: Optional[Dict[str, UnaryOperator]] = None):
        self.domain = domain
        self.operators = operators
        self.unary_operators = unary_operators or {}
        self._special_forms: Dict[str, SpecialForm] = {}

    def register_special_form(self, name: str, factory: SpecialForm):
        self._special_forms[name] = factory

    def value(self, payload: Any) -> ValueNode:
        return ValueNode(self.domain.wrap(payload))

    def sym(self, name: str) -> SymbolGetNode:
        return SymbolGetNode(name)

    def call(self, name: str, *args: IExprNode) -> IExprNode:
        special = self._special_forms.get(name)
        if special is not None:
            return special(list(args))
        return SymbolCallNode(name, args)

    def args(self, *items: IExprNode) -> BracketContainerNode:
        return BracketContainerNode(items)

    def op(self, name: str, left: IExprNode, right: IExprNode) -> BinaryOpNode:
        try:
            operator = self.operators[name]
        except KeyError:
            raise CompileError(f"Unknown binary operator: {name!r}") from None
        match name:
            case ".":
                return DotExprNode(operator, left, right, self.domain)
            case "->":
                return LambdaExprNode(operator, left, right, self.domain)
            case "\\":
                return SplitExprNode(operator, left, right)
            case _:
                return BinaryOpNode(operator, left, right)

    def unary(self, name: str, arg: IExprNode) -> UnaryOpNode:
        try:
            operator = self.unary_operators[name]
        except KeyError:
            raise CompileError(f"Unknown unary operator: {name!r}") from None
        return UnaryOpNode(operator, arg)

    def dot(self, left: IExprNode, right: IExprNode) -> BinaryOpNode:
        return self.op(OPERATOR_DOT, left, right)

    def invoke(self, target: IExprNode, *args: IExprNode) -> MethodCallNode:
        return MethodCallNode(target, args)

    def block(self, body: IExprNode) -> RawCodeExprNode:
        return RawCodeExprNode(self.domain, body)

    def lambda_(self, arg_names: Sequence[str], body: IExprNode) -> BinaryOpNode:
        return self.op(OPERATOR_LAMBDA, self.args(*[self.sym(n) for n in arg_names]), body)
