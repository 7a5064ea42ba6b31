"""
The value model of tcalc: typed values and the domain that owns their types.

A TypeDomain is the single source of identity for value kinds. Kinds are
plain Python classes registered under a display name; every TypedValue
remembers the domain that created it, and values from different domains are
never equal.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from tcalc.tcalc_errors import CalcTypeError

# Kinds whose payload class must match exactly (bool is a subclass of int).
_EXACT_KINDS = (int, float, str, bool, type(None))


class TypedValue:
    """One immutable runtime value: a type tag plus its boxed payload."""
    __slots__ = ("domain", "type", "value")

    def __init__(self, domain: 'TypeDomain', type: type, value: Any):
        object.__setattr__(self, "domain", domain)
        object.__setattr__(self, "type", type)
        object.__setattr__(self, "value", value)

    def __setattr__(self, key, value):
        raise AttributeError("TypedValue is immutable")

    def is_type(self, cls: type) -> bool:
        return self.type is cls

    def as_type(self, cls: type, context: Optional[str] = None) -> Any:
        """Returns the payload, or raises CalcTypeError if the kind differs."""
        if self.type is not cls:
            expected = self.domain.type_name(cls)
            actual = self.domain.type_name(self.type)
            raise CalcTypeError(f"Expected value of type {expected}, got {actual}: {self.value!r}", context)
        return self.value

    def is_truthy(self) -> bool:
        return self.domain.is_truthy(self)

    def __eq__(self, other):
        if not isinstance(other, TypedValue):
            return NotImplemented
        return self.domain.equals(self, other)

    def __hash__(self):
        return hash((self.type, self.value))

    def __repr__(self) -> str:
        return f"{self.domain.type_name(self.type)}:{self.value!r}"


@dataclass(frozen=True)
class Cons:
    """A pair cell; `car : cdr` in the language."""
    car: TypedValue
    cdr: TypedValue

    def __repr__(self) -> str:
        return f"({self.car!r} : {self.cdr!r})"


class TypeDomain:
    """Registry of value kinds with equality and truthiness rules."""

    def __init__(self):
        self._names: Dict[type, str] = {}
        self._types: Dict[str, type] = {}
        self._truth: Dict[type, Callable[[Any], bool]] = {}

    def register_type(self, cls: type, name: str, truth: Optional[Callable[[Any], bool]] = None) -> 'TypeDomain':
        if cls in self._names:
            raise ValueError(f"Type {cls.__name__} already registered as {self._names[cls]!r}")
        if name in self._types:
            raise ValueError(f"Type name {name!r} already in use")
        self._names[cls] = name
        self._types[name] = cls
        self._truth[cls] = truth if truth is not None else bool
        return self

    def is_registered(self, cls: type) -> bool:
        return cls in self._names

    def type_name(self, cls: type) -> str:
        return self._names.get(cls, f"<unregistered {getattr(cls, '__name__', cls)}>")

    def get_type(self, name: str) -> type:
        try:
            return self._types[name]
        except KeyError:
            raise CalcTypeError(f"Unknown type name: {name!r}") from None

    def type_names(self):
        return list(self._types.keys())

    def create(self, cls: type, value: Any) -> TypedValue:
        if cls not in self._names:
            raise CalcTypeError(f"Type {getattr(cls, '__name__', cls)} is not registered in this domain")
        if cls in _EXACT_KINDS:
            ok = type(value) is cls
        else:
            ok = isinstance(value, cls)
        if not ok:
            raise CalcTypeError(f"Payload {value!r} is not a valid {self._names[cls]}")
        return TypedValue(self, cls, value)

    def wrap(self, value: Any) -> TypedValue:
        """Creates a value, picking the registered kind from the payload's class."""
        if isinstance(value, TypedValue):
            if value.domain is not self:
                raise CalcTypeError(f"Value {value!r} belongs to a different domain")
            return value
        for cls in type(value).__mro__:
            if cls in self._names:
                return self.create(cls, value)
        raise CalcTypeError(f"No registered type for Python value {value!r} ({type(value).__name__})")

    def equals(self, a: TypedValue, b: TypedValue) -> bool:
        return a.domain is self and b.domain is self and a.type is b.type and a.value == b.value

    def is_truthy(self, value: TypedValue) -> bool:
        return bool(self._truth[value.type](value.value))
