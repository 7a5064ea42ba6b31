"""
Symbols and the chained scopes that hold them.

Lookup returns None for unknown names; callers decide whether absence is
fatal. Scopes only ever point at their parent, so they form a tree.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, TYPE_CHECKING

from tcalc.tcalc_errors import ProtectedScopeError

if TYPE_CHECKING:
    from tcalc.tcalc_frame import Frame
    from tcalc.tcalc_types import TypedValue


class ISymbol(ABC):
    """Something a name can resolve to: readable as a value, and callable."""

    @abstractmethod
    def get(self) -> 'TypedValue':
        pass

    @abstractmethod
    def call(self, frame: 'Frame', args_count: Optional[int], returns_count: Optional[int]) -> None:
        pass


class ValueSymbol(ISymbol):
    """A name bound to a value. Calling it calls the value."""

    def __init__(self, value: 'TypedValue'):
        self.value = value

    def get(self) -> 'TypedValue':
        return self.value

    def call(self, frame, args_count, returns_count):
        from tcalc.tcalc_callable import call_value  # local import to avoid cycle
        call_value(frame, self.value, args_count, returns_count)

    def __repr__(self) -> str:
        return f"ValueSymbol({self.value!r})"


class SymbolMap(ABC):

    @abstractmethod
    def get(self, name: str) -> Optional[ISymbol]:
        pass

    @abstractmethod
    def put(self, name: str, symbol: ISymbol):
        pass

    def put_value(self, name: str, value: 'TypedValue'):
        self.put(name, ValueSymbol(value))

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None


class TopSymbolMap(SymbolMap):
    """Root scope: owns its bindings and has no parent."""

    def __init__(self):
        self.bindings: Dict[str, ISymbol] = {}

    def get(self, name):
        return self.bindings.get(name)

    def put(self, name, symbol):
        self.bindings[name] = symbol

    def keys(self) -> List[str]:
        return list(self.bindings.keys())

    def __repr__(self) -> str:
        return f"<TopSymbolMap bindings=[{', '.join(self.bindings.keys())}]>"


class NestedSymbolMap(SymbolMap):
    """Read-through and write-through view of a parent scope."""

    def __init__(self, parent: SymbolMap):
        self.parent = parent

    def get(self, name):
        return self.parent.get(name)

    def put(self, name, symbol):
        self.parent.put(name, symbol)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} parent={self.parent!r}>"


class LocalSymbolMap(SymbolMap):
    """Fresh writable bindings chained to a fixed parent."""

    def __init__(self, parent: SymbolMap):
        self.parent = parent
        self.bindings: Dict[str, ISymbol] = {}

    def get(self, name):
        symbol = self.bindings.get(name)
        if symbol is not None:
            return symbol
        return self.parent.get(name)

    def put(self, name, symbol):
        self.bindings[name] = symbol

    def keys(self) -> List[str]:
        return list(self.bindings.keys())

    def __repr__(self) -> str:
        return f"<LocalSymbolMap bindings=[{', '.join(self.bindings.keys())}] parent=#{id(self.parent)}>"


class ProtectionSymbolMap(NestedSymbolMap):
    """Reads go to the parent; any attempt to bind a name fails."""

    def put(self, name, symbol):
        raise ProtectedScopeError(f"Can't define symbol {name!r} in protected scope")
