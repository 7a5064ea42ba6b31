"""
Calling conventions.

A call site may declare how many arguments it passes and how many results it
expects; either count may be absent. The classes here differ in how strictly
they check those counts against the stack.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Sequence

from tcalc.tcalc_errors import ArityError, CalcTypeError, StackValidationError
from tcalc.tcalc_composite import IComposite, CallableTrait
from tcalc.tcalc_frame import Frame, Stack, new_closure_frame
from tcalc.tcalc_symbols import SymbolMap
from tcalc.tcalc_types import TypedValue


def validate_returns(stack: Stack, returns_count: Optional[int]):
    """Checks the number of results left on a call's stack view."""
    if returns_count is None:
        return
    actual = stack.size()
    if actual != returns_count:
        raise StackValidationError(f"Has {actual} result(s) but expected {returns_count}")


class ICallable(ABC):
    """Generic convention: both counts optional, the callee interprets them."""

    @abstractmethod
    def call(self, frame: Frame, args_count: Optional[int], returns_count: Optional[int]) -> None:
        pass


class FixedCallable(ICallable):
    """Takes exactly `args_count` values and leaves exactly `returns_count`."""

    def __init__(self, args_count: int, returns_count: int):
        self.args_count = args_count
        self.returns_count = returns_count

    def call(self, frame, args_count, returns_count):
        if args_count is not None and args_count != self.args_count:
            raise ArityError(f"Expected {self.args_count} argument(s), got {args_count}")
        if returns_count is not None and returns_count != self.returns_count:
            raise ArityError(f"Has {self.returns_count} result(s), but {returns_count} requested")
        stack = frame.stack
        if stack.size() < self.args_count:
            raise StackValidationError(f"Not enough values on stack: needed {self.args_count}, has {stack.size()}")
        before = stack.size()
        self.invoke(frame)
        expected = before - self.args_count + self.returns_count
        if stack.size() != expected:
            raise StackValidationError(
                f"Stack size after call is {stack.size()}, expected {expected} "
                f"({self.args_count} in, {self.returns_count} out)")

    @abstractmethod
    def invoke(self, frame: Frame) -> None:
        pass


class SingleReturnCallable(ICallable):
    """Any number of arguments (declared or not), exactly one result."""

    def call(self, frame, args_count, returns_count):
        if returns_count is not None and returns_count != 1:
            raise StackValidationError(f"Has single result but expected {returns_count}")
        result = self.evaluate(frame, args_count)
        frame.stack.push(result)

    @abstractmethod
    def evaluate(self, frame: Frame, args_count: Optional[int]) -> TypedValue:
        pass


class FixedFunction(FixedCallable):
    """
    Adapts a Python function taking `args_count` TypedValues. It returns a
    single TypedValue when `returns_count` is 1, a sequence of them otherwise.
    """

    def __init__(self, fn: Callable[..., Any], args_count: int, returns_count: int = 1, name: Optional[str] = None):
        super().__init__(args_count, returns_count)
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "<native>")

    def invoke(self, frame):
        stack = frame.stack
        args = stack.substack(self.args_count)
        values = args.values()
        args.clear()
        result = self.fn(*values)
        if self.returns_count == 1:
            stack.push(result)
        elif self.returns_count > 1:
            for r in result:
                stack.push(r)

    def __repr__(self) -> str:
        return f"<native {self.name}/{self.args_count}>"


class Closure(ICallable):
    """A user-defined function: parameter names, compiled body, captured scope."""

    def __init__(self, arg_names: Sequence[str], code: 'Code', scope: SymbolMap):
        self.arg_names = list(arg_names)
        self.code = code
        self.scope = scope

    def call(self, frame, args_count, returns_count):
        required = len(self.arg_names)
        if args_count is not None and args_count != required:
            raise ArityError(f"Function takes {required} argument(s), got {args_count}")
        call_frame = new_closure_frame(self.scope, frame, required)
        args = call_frame.stack.values()
        call_frame.stack.clear()
        for name, value in zip(self.arg_names, args):
            call_frame.symbols.put_value(name, value)
        self.code.execute(call_frame)
        validate_returns(call_frame.stack, returns_count)

    def __repr__(self) -> str:
        return f"<closure ({', '.join(self.arg_names)})>"


def call_value(frame: Frame, value: TypedValue, args_count: Optional[int], returns_count: Optional[int]):
    """Invokes a runtime value: callables and callable composites run, plain values push themselves."""
    if value.is_type(ICallable):
        value.value.call(frame, args_count, returns_count)
        return
    if value.is_type(IComposite):
        trait = value.value.get_optional(CallableTrait)
        if trait is not None:
            trait.call(frame, args_count, returns_count)
            return
    if args_count:
        raise CalcTypeError(f"Value {value!r} is not callable")
    if returns_count is not None and returns_count != 1:
        raise StackValidationError(f"Value has single result but expected {returns_count}")
    frame.stack.push(value)


def pop_args(frame: Frame, args_count: int) -> List[TypedValue]:
    """Pops `args_count` values, returned bottom first."""
    args = frame.stack.substack(args_count)
    values = args.values()
    args.clear()
    return values
