"""
The runtime facade: a Calculator owns a domain, the global scope and the
standard library, and runs compiled expressions against them.
"""
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Callable, Dict, Iterable, List, Literal, Optional, Union

from tcalc.tcalc_callable import ICallable, FixedFunction, call_value, validate_returns
from tcalc.tcalc_config import CalcConfig, load_config
from tcalc.tcalc_datastore import DataStore, DataStoreReader, DataStoreWrapper, DataStoreWriter, StringCodec
from tcalc.tcalc_errors import CalcError, UndefinedSymbolError
from tcalc.tcalc_executable import Code
from tcalc.tcalc_frame import Frame, Stack
from tcalc.tcalc_match import MatchExpressionFactory
from tcalc.tcalc_nodes import ExprBuilder, IExprNode, OPERATOR_LAMBDA, OPERATOR_SPLIT, SYMBOL_MATCH
from tcalc.tcalc_printer import Printer
from tcalc.tcalc_registry import CodecRegistry
from tcalc.tcalc_serialize import from_builtin
from tcalc.tcalc_stdlib import StdLib, create_domain
from tcalc.tcalc_symbols import TopSymbolMap
from tcalc.tcalc_types import TypedValue

logger = logging.getLogger(__name__)


def tcalc_api_method(func):
    """A decorator to explicitly mark host methods as callable from calculator code."""
    func._is_tcalc_api = True
    return func


class TcalcHost:
    """Base class for Python objects whose marked methods are exposed to a Calculator."""

    def api_methods(self) -> Dict[str, Callable]:
        methods = {}
        for name, member in inspect.getmembers(self):
            if not callable(member):
                continue
            # Decorator may mark the bound method or the underlying function
            is_api = getattr(member, "_is_tcalc_api", False)
            if not is_api:
                func = getattr(member, "__func__", None)
                is_api = func is not None and getattr(func, "_is_tcalc_api", False)
            if is_api:
                methods[name] = member
        return methods


@dataclass
class ExecutionResult:
    """The structured result of running compiled code."""
    status: Literal['success', 'error']
    value: Optional[TypedValue] = None
    values: List[TypedValue] = field(default_factory=list)
    error_message: Optional[str] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        return str(self.error_message or "Unknown error")


Runnable = Union[IExprNode, Code]


class Calculator:
    """Compiles and runs expressions built with `self.builder`."""

    def __init__(self, host_object: Optional[TcalcHost] = None,
                 config: Union[CalcConfig, str, Dict[str, Any], None] = None):
        self.config = config if isinstance(config, CalcConfig) else load_config(config)
        self.config.apply_logging()
        self.trace = self.config.trace

        self.domain = create_domain()
        self.side_effects: List[Dict] = []
        self.printer = Printer()
        self.stdlib = StdLib(self.domain, self.side_effects)

        self.global_symbols = TopSymbolMap()
        self.pattern_symbols = TopSymbolMap()
        self.stdlib.install(self.global_symbols)
        self.stdlib.install_constants(self.pattern_symbols)

        operators = self.stdlib.operators()
        self.builder = ExprBuilder(self.domain, operators, self.stdlib.unary_operators())
        self.match_factory = MatchExpressionFactory(self.domain, operators[OPERATOR_SPLIT], operators[OPERATOR_LAMBDA])
        self.match_factory.register_symbols(self.global_symbols, self.pattern_symbols)
        self.builder.register_special_form(SYMBOL_MATCH, self.match_factory.create_match_node)

        self.codecs = CodecRegistry().load(self.config.codecs)

        for name, payload in self.config.globals.items():
            self.define(name, payload)

        self.host_object = host_object
        self._bind_host_api_methods()

    # --- Setup ---
    def _bind_host_api_methods(self):
        if self.host_object is None:
            return
        for name, method in self.host_object.api_methods().items():
            self.register_native(name, self._host_adapter(method), len(inspect.signature(method).parameters))

    def _host_adapter(self, method: Callable) -> Callable:
        def call_host(*args: TypedValue) -> TypedValue:
            return self.domain.wrap(method(*(a.value for a in args)))
        call_host.__name__ = method.__name__
        return call_host

    def register_native(self, name: str, fn: Callable[..., Any], args_count: int, returns_count: int = 1):
        """Binds a Python function taking and returning TypedValues."""
        native = FixedFunction(fn, args_count, returns_count, name=name)
        self.global_symbols.put_value(name, self.domain.create(ICallable, native))

    def to_value(self, payload: Any) -> TypedValue:
        if isinstance(payload, (list, tuple)):
            return from_builtin(self.domain, payload)
        return self.domain.wrap(payload)

    def define(self, name: str, payload: Any) -> TypedValue:
        value = self.to_value(payload)
        self.global_symbols.put_value(name, value)
        return value

    def lookup(self, name: str) -> TypedValue:
        symbol = self.global_symbols.get(name)
        if symbol is None:
            raise UndefinedSymbolError(name)
        return symbol.get()

    # --- Running code ---
    def compile(self, node: IExprNode) -> Code:
        return Code.flatten(node)

    def _run(self, runnable: Runnable) -> Stack:
        code = runnable if isinstance(runnable, Code) else self.compile(runnable)
        frame = Frame(self.global_symbols, Stack(), self.trace)
        code.execute(frame)
        return frame.stack

    def evaluate(self, runnable: Runnable) -> TypedValue:
        """Runs code that must leave exactly one value; errors propagate."""
        stack = self._run(runnable)
        validate_returns(stack, 1)
        return stack.pop()

    def execute(self, runnable: Runnable) -> ExecutionResult:
        """Runs code and reports the outcome instead of raising."""
        self.side_effects.clear()
        try:
            values = self._run(runnable).values()
        except (CalcError, RecursionError) as e:
            msg = f"{type(e).__name__}: {e}"
            logger.debug("Execution failed: %s", msg, exc_info=True)
            self.side_effects.append({'topics': ['stderr'], 'message': msg})
            return ExecutionResult(status='error', error_message=msg, side_effects=list(self.side_effects))
        return ExecutionResult(
            status='success',
            value=values[-1] if values else None,
            values=values,
            side_effects=list(self.side_effects),
        )

    def call(self, fn: Union[str, TypedValue], *args: Any, returns: Optional[int] = 1):
        """Calls a calculator function from Python. Returns one value, or a list when `returns` != 1."""
        target = self.lookup(fn) if isinstance(fn, str) else fn
        frame = Frame(self.global_symbols, Stack(), self.trace)
        for arg in args:
            frame.stack.push(self.to_value(arg))
        call_value(frame, target, len(args), returns)
        values = frame.stack.values()
        if returns == 1:
            return values[0]
        return values

    # --- Presentation ---
    def pformat(self, value: TypedValue) -> str:
        return self.printer.pformat(value)

    def format_code(self, runnable: Runnable) -> str:
        code = runnable if isinstance(runnable, Code) else self.compile(runnable)
        return self.printer.format_code(code)

    # --- Persistence ---
    def dump_globals(self, stream: BinaryIO, names: Iterable[str]):
        """Writes the named globals as a data store record, using the configured codecs."""
        values = {name: self.lookup(name) for name in names}
        DataStoreWriter(StringCodec(), self.codecs.value_codec(self.domain)).write(stream, values)

    def load_globals(self, stream: BinaryIO) -> DataStore:
        """Reads a record written by `dump_globals` and defines every entry."""
        def install(store: DataStore):
            for name, value in store.items():
                self.global_symbols.put_value(name, value)

        wrapper = DataStoreWrapper(on_activate=install)
        reader = DataStoreReader(wrapper, StringCodec(), self.codecs.value_codec(self.domain))
        return reader.read(stream)
