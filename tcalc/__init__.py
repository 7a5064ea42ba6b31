import logging

from tcalc.tcalc_errors import (
    CalcError, CalcTypeError, ArityError, StackValidationError, UndefinedSymbolError,
    ProtectedScopeError, MissingTraitError, CompileError, PatternUsageError,
    DecomposableContractError, MatchFailedError, ConfigError, DataStoreError
)
from tcalc.tcalc_types import TypedValue, TypeDomain, Cons
from tcalc.tcalc_executable import Code
from tcalc.tcalc_config import CalcConfig, load_config
from tcalc.tcalc_runtime import Calculator, ExecutionResult, TcalcHost, tcalc_api_method

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "Calculator", "ExecutionResult", "TcalcHost", "tcalc_api_method",
    "CalcConfig", "load_config",
    "TypedValue", "TypeDomain", "Cons", "Code",
    "CalcError", "CalcTypeError", "ArityError", "StackValidationError", "UndefinedSymbolError",
    "ProtectedScopeError", "MissingTraitError", "CompileError", "PatternUsageError",
    "DecomposableContractError", "MatchFailedError", "ConfigError", "DataStoreError",
]
