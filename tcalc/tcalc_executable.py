"""
Instructions of the stack machine, and Code: a flat, reusable sequence of them.
"""
import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional, Sequence, TYPE_CHECKING

from tcalc.tcalc_errors import CompileError, UndefinedSymbolError
from tcalc.tcalc_types import TypedValue, TypeDomain

if TYPE_CHECKING:
    from tcalc.tcalc_frame import Frame
    from tcalc.tcalc_nodes import IExprNode

logger = logging.getLogger(__name__)


class IExecutable(ABC):
    @abstractmethod
    def execute(self, frame: 'Frame') -> None:
        pass


class PushValue(IExecutable):
    def __init__(self, value: TypedValue):
        self.value = value

    def execute(self, frame):
        frame.stack.push(self.value)

    def __repr__(self) -> str:
        return f"push {self.value!r}"


class SymbolGet(IExecutable):
    def __init__(self, name: str):
        self.name = name

    def execute(self, frame):
        symbol = frame.symbols.get(self.name)
        if symbol is None:
            raise UndefinedSymbolError(self.name)
        frame.stack.push(symbol.get())

    def __repr__(self) -> str:
        return f"get {self.name}"


class SymbolCall(IExecutable):
    """Calls a symbol, declaring how many arguments it passes and results it expects."""

    def __init__(self, name: str, args_count: Optional[int] = None, returns_count: Optional[int] = None):
        self.name = name
        self.args_count = args_count
        self.returns_count = returns_count

    def execute(self, frame):
        symbol = frame.symbols.get(self.name)
        if symbol is None:
            raise UndefinedSymbolError(self.name)
        symbol.call(frame, self.args_count, self.returns_count)

    def __repr__(self) -> str:
        args = "?" if self.args_count is None else self.args_count
        rets = "?" if self.returns_count is None else self.returns_count
        return f"call {self.name}({args} -> {rets})"


class BinaryOperator(IExecutable):
    def __init__(self, id: str, fn: Callable[[TypedValue, TypedValue], TypedValue]):
        self.id = id
        self.fn = fn

    def execute(self, frame):
        right = frame.stack.pop()
        left = frame.stack.pop()
        frame.stack.push(self.fn(left, right))

    def __repr__(self) -> str:
        return f"op {self.id}"


class UnaryOperator(IExecutable):
    def __init__(self, id: str, fn: Callable[[TypedValue], TypedValue]):
        self.id = id
        self.fn = fn

    def execute(self, frame):
        frame.stack.push(self.fn(frame.stack.pop()))

    def __repr__(self) -> str:
        return f"unary {self.id}"


class MarkerOperator(BinaryOperator):
    """An operator that only has meaning to the compiler, e.g. `->` and `\\`."""

    def __init__(self, id: str):
        super().__init__(id, self._fail)

    def _fail(self, left, right):
        raise CompileError(f"Operator {self.id!r} can't be evaluated")


class MakeClosure(IExecutable):
    """Captures the executing frame's scope into a Closure value."""

    def __init__(self, domain: TypeDomain, arg_names: Sequence[str], code: 'Code'):
        self.domain = domain
        self.arg_names = list(arg_names)
        self.code = code

    def execute(self, frame):
        from tcalc.tcalc_callable import Closure, ICallable  # local import to avoid cycle
        closure = Closure(self.arg_names, self.code, frame.symbols)
        frame.stack.push(self.domain.create(ICallable, closure))

    def __repr__(self) -> str:
        return f"closure ({', '.join(self.arg_names)}) [{len(self.code)} steps]"


class Code:
    """A compiled instruction sequence. Immutable; executed any number of times."""

    def __init__(self, instructions: Iterable[IExecutable]):
        self.instructions = tuple(instructions)

    def execute(self, frame: 'Frame'):
        if frame.trace and logger.isEnabledFor(logging.DEBUG):
            for step in self.instructions:
                logger.debug("exec %r stack=%r", step, frame.stack)
                step.execute(frame)
            return
        for step in self.instructions:
            step.execute(frame)

    def __len__(self) -> int:
        return len(self.instructions)

    def __iter__(self):
        return iter(self.instructions)

    def __repr__(self) -> str:
        return f"Code({list(self.instructions)!r})"

    @staticmethod
    def flatten(node: 'IExprNode') -> 'Code':
        output: List[IExecutable] = []
        node.flatten(output)
        return Code(output)

    @staticmethod
    def flatten_and_wrap(domain: TypeDomain, node: 'IExprNode') -> TypedValue:
        return domain.create(Code, Code.flatten(node))

    @staticmethod
    def wrap(domain: TypeDomain, instructions: Iterable[IExecutable]) -> TypedValue:
        return domain.create(Code, Code(instructions))
