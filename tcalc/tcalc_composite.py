"""
Composite objects: structural values described by the traits they expose.

Callers ask a composite whether it *can* do something (`has`/`get_optional`)
instead of inspecting its class. Traits are keyed by their trait class.
"""
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Type, TypeVar, TYPE_CHECKING

from tcalc.tcalc_errors import MissingTraitError

if TYPE_CHECKING:
    from tcalc.tcalc_frame import Frame
    from tcalc.tcalc_types import TypedValue

T = TypeVar("T", bound="ICompositeTrait")


class ICompositeTrait(ABC):
    """Marker base class for all traits."""
    pass


class IComposite(ABC):
    """Abstract base for values exposing a set of traits."""

    @abstractmethod
    def type(self) -> str:
        """Name used in diagnostics."""
        pass

    @abstractmethod
    def get_optional(self, trait: Type[T]) -> Optional[T]:
        pass

    def has(self, trait: Type[ICompositeTrait]) -> bool:
        return self.get_optional(trait) is not None

    def get(self, trait: Type[T]) -> T:
        result = self.get_optional(trait)
        if result is None:
            raise MissingTraitError(f"Composite {self.type()!r} has no trait {trait.__name__}")
        return result

    def __repr__(self) -> str:
        return f"<composite {self.type()}>"


class SingleTraitComposite(IComposite):
    def __init__(self, name: str, trait: ICompositeTrait):
        self.name = name
        self.trait = trait

    def type(self) -> str:
        return self.name

    def get_optional(self, trait):
        return self.trait if isinstance(self.trait, trait) else None


class MappedComposite(IComposite):
    """Composite with any number of traits, looked up by trait class."""

    def __init__(self, name: str, traits: Iterable[ICompositeTrait]):
        self.name = name
        self.traits: Dict[type, ICompositeTrait] = {}
        for t in traits:
            self.traits[type(t)] = t

    def type(self) -> str:
        return self.name

    def get_optional(self, trait):
        found = self.traits.get(trait)
        if found is not None:
            return found
        for t in self.traits.values():
            if isinstance(t, trait):
                return t
        return None


# =================================================================
# Traits used by the core
# =================================================================

class Decomposable(ICompositeTrait):
    """Lets a constructor destructure values it built, for pattern matching."""

    @abstractmethod
    def try_decompose(self, value: 'TypedValue', expected_count: int) -> Optional[List['TypedValue']]:
        """
        Returns None when `value` was not built by this constructor.
        A list of any length other than `expected_count` breaks the contract.
        """
        pass


class Structured(ICompositeTrait):
    """Named members, reachable with `.` and `with`."""

    @abstractmethod
    def get(self, key: str) -> Optional['TypedValue']:
        pass

    def keys(self) -> List[str]:
        return []


class CallableTrait(ICompositeTrait):
    """A composite that can be invoked like a function."""

    @abstractmethod
    def call(self, frame: 'Frame', args_count: Optional[int], returns_count: Optional[int]) -> None:
        pass
