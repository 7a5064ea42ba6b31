"""
Evaluation contexts: a value stack paired with a symbol scope.
"""
from typing import Iterator, List, Optional, TYPE_CHECKING

from tcalc.tcalc_errors import StackValidationError
from tcalc.tcalc_symbols import (
    SymbolMap, TopSymbolMap, LocalSymbolMap, ProtectionSymbolMap
)

if TYPE_CHECKING:
    from tcalc.tcalc_types import TypedValue


class Stack:
    """
    A value stack. `substack(n)` returns a live view of the top `n` values;
    pushes and pops on the view go to the same storage, and `clear()` on a
    view removes exactly the values it covers.
    """
    def __init__(self, data: Optional[List['TypedValue']] = None, base: int = 0):
        self._data = data if data is not None else []
        self._base = base

    def push(self, value: 'TypedValue'):
        self._data.append(value)

    def pop(self) -> 'TypedValue':
        if len(self._data) <= self._base:
            raise StackValidationError("Stack underflow")
        return self._data.pop()

    def peek(self, depth: int = 0) -> 'TypedValue':
        index = len(self._data) - 1 - depth
        if index < self._base:
            raise StackValidationError(f"Stack too shallow to peek at depth {depth}")
        return self._data[index]

    def size(self) -> int:
        return len(self._data) - self._base

    def __len__(self) -> int:
        return self.size()

    def is_empty(self) -> bool:
        return self.size() == 0

    def substack(self, count: int) -> 'Stack':
        if count < 0:
            raise ValueError(f"Negative substack size: {count}")
        if count > self.size():
            raise StackValidationError(f"Not enough values on stack: needed {count}, has {self.size()}")
        return Stack(self._data, len(self._data) - count)

    def clear(self):
        del self._data[self._base:]

    def values(self) -> List['TypedValue']:
        """Snapshot of the values, bottom first."""
        return self._data[self._base:]

    def __iter__(self) -> Iterator['TypedValue']:
        return iter(self.values())

    def __getitem__(self, index: int) -> 'TypedValue':
        return self.values()[index]

    def __repr__(self) -> str:
        return f"Stack({self.values()!r})"


class Frame:
    """A value stack plus the symbols visible to code executing on it."""
    def __init__(self, symbols: SymbolMap, stack: Optional[Stack] = None, trace: bool = False):
        self.symbols = symbols
        self.stack = stack if stack is not None else Stack()
        self.trace = trace

    def __repr__(self) -> str:
        return f"<Frame symbols={self.symbols!r} stack={self.stack!r}>"


# =================================================================
# Frame factories
# =================================================================

def create_top_frame(trace: bool = False) -> Frame:
    """An isolated frame with its own empty root scope."""
    return Frame(TopSymbolMap(), Stack(), trace)


def symbols_to_frame(symbols: SymbolMap, trace: bool = False) -> Frame:
    return Frame(symbols, Stack(), trace)


def create_protection_frame(symbols: SymbolMap, trace: bool = False) -> Frame:
    """Fresh stack; reads go through to `symbols`, writes are rejected."""
    return Frame(ProtectionSymbolMap(symbols), Stack(), trace)


def new_local_frame(parent: Frame) -> Frame:
    """Writable scope over the parent's, sharing the parent's stack top and trace flag."""
    return Frame(LocalSymbolMap(parent.symbols), parent.stack.substack(0), parent.trace)


def new_local_frame_with_substack(parent: Frame, args_count: int) -> Frame:
    return Frame(LocalSymbolMap(parent.symbols), parent.stack.substack(args_count), parent.trace)


def new_closure_frame(captured: SymbolMap, parent: Frame, args_count: int) -> Frame:
    """
    Frame for running closure code: a local layer over the captured scope,
    and a view of the caller's top `args_count` values as its stack, so that
    whatever the code leaves behind lands on the caller's stack.
    """
    return Frame(LocalSymbolMap(captured), parent.stack.substack(args_count), parent.trace)
