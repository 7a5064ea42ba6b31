"""
Exception types raised by the tcalc compiler and interpreter.

Every error derives from CalcError and from the closest builtin exception,
so hosts can catch either `CalcError` or the builtin they already expect.
"""


class CalcError(Exception):
    """Base class for all tcalc errors."""
    pass


class CalcTypeError(CalcError, TypeError):
    """A value was not of the kind an operation required."""
    def __init__(self, message: str, context: str | None = None):
        if context:
            message = f"{message} (in {context})"
        super().__init__(message)
        self.context = context


class ArityError(CalcError, TypeError):
    """A callable was invoked with a declared argument/result count it does not accept."""
    pass


class StackValidationError(CalcError, RuntimeError):
    """The stack did not hold the number of values a call required or produced."""
    pass


class UndefinedSymbolError(CalcError, NameError):
    def __init__(self, name: str, message: str | None = None):
        super().__init__(message or f"Unknown symbol: {name!r}")
        self.name = name


class ProtectedScopeError(CalcError, RuntimeError):
    """Attempt to create a binding in a read-only scope."""
    pass


class MissingTraitError(CalcError, LookupError):
    pass


class CompileError(CalcError, SyntaxError):
    """Structurally invalid syntax tree, detected while flattening."""
    pass


class PatternUsageError(CalcError, RuntimeError):
    """A pattern was used in a way that can never match (not a plain non-match)."""
    pass


class DecomposableContractError(CalcError, RuntimeError):
    """A Decomposable trait returned a different number of values than requested."""
    pass


class MatchFailedError(CalcError, RuntimeError):
    """No alternative of a matching function accepted the arguments."""
    pass


class ConfigError(CalcError, ValueError):
    pass


class DataStoreError(CalcError, ValueError):
    pass
