"""
The standard library: value kinds, operators and builtin functions.

Simple builtins are methods marked with @builtin; their arity comes from
their signature and they receive and return TypedValues. Builtins that need
the calling frame (apply, with, define, ...) are callable classes.
"""
import inspect
import logging
from abc import abstractmethod
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pystache
from pystache.parser import ParsingError

from tcalc.tcalc_callable import (
    ICallable, FixedCallable, FixedFunction, SingleReturnCallable, call_value, pop_args, validate_returns
)
from tcalc.tcalc_composite import (
    IComposite, MappedComposite, Structured, Decomposable, CallableTrait
)
from tcalc.tcalc_errors import (
    CalcError, CalcTypeError, ArityError, StackValidationError, UndefinedSymbolError
)
from tcalc.tcalc_executable import BinaryOperator, UnaryOperator, MarkerOperator, Code
from tcalc.tcalc_frame import Frame, Stack, new_local_frame
from tcalc.tcalc_nodes import OPERATOR_CONS, OPERATOR_DOT, OPERATOR_LAMBDA, OPERATOR_SPLIT
from tcalc.tcalc_printer import Printer
from tcalc.tcalc_serialize import to_builtin
from tcalc.tcalc_symbols import LocalSymbolMap, SymbolMap
from tcalc.tcalc_types import Cons, TypedValue, TypeDomain

logger = logging.getLogger(__name__)

NoneType = type(None)

_NUMBERS = (int, float)
_ORDERED = (int, float, str)


def create_domain() -> TypeDomain:
    """A domain with every kind the standard library works with."""
    always = lambda _: True
    domain = TypeDomain()
    domain.register_type(int, "int")
    domain.register_type(float, "float")
    domain.register_type(str, "str")
    domain.register_type(bool, "bool")
    domain.register_type(NoneType, "null", truth=lambda _: False)
    domain.register_type(Cons, "cons", truth=always)
    domain.register_type(Code, "code", truth=always)
    domain.register_type(ICallable, "callable", truth=always)
    domain.register_type(IComposite, "object", truth=always)
    return domain


def builtin(func):
    """Marks a StdLib method as a builtin, named after the method minus its leading underscore."""
    func._tcalc_builtin = True
    return func


# =================================================================
# Structs
# =================================================================

class _StructMembers(Structured):
    def __init__(self, instance: 'StructValue'):
        self.instance = instance

    def get(self, key):
        try:
            index = self.instance.struct_type.fields.index(key)
        except ValueError:
            return None
        return self.instance.values[index]

    def keys(self):
        return list(self.instance.struct_type.fields)


class StructValue(IComposite):
    """An instance of a struct: its constructor plus one value per field."""

    def __init__(self, struct_type: 'StructType', values: Sequence[TypedValue]):
        self.struct_type = struct_type
        self.values = tuple(values)
        self._members = _StructMembers(self)

    def type(self) -> str:
        return self.struct_type.name

    def get_optional(self, trait):
        return self._members if isinstance(self._members, trait) else None

    def __eq__(self, other):
        if not isinstance(other, StructValue):
            return NotImplemented
        return self.struct_type is other.struct_type and self.values == other.values

    def __hash__(self):
        return hash((id(self.struct_type), self.values))


class _StructConstructor(CallableTrait):
    def __init__(self, struct_type: 'StructType'):
        self.struct_type = struct_type

    def call(self, frame, args_count, returns_count):
        fields = self.struct_type.fields
        if args_count is not None and args_count != len(fields):
            raise ArityError(f"{self.struct_type.name} takes {len(fields)} argument(s), got {args_count}")
        if returns_count is not None and returns_count != 1:
            raise StackValidationError(f"Has single result but expected {returns_count}")
        values = pop_args(frame, len(fields))
        frame.stack.push(self.struct_type.domain.create(IComposite, StructValue(self.struct_type, values)))


class _StructDecomposer(Decomposable):
    def __init__(self, struct_type: 'StructType'):
        self.struct_type = struct_type

    def try_decompose(self, value, expected_count):
        if not value.is_type(IComposite):
            return None
        instance = value.value
        if not isinstance(instance, StructValue) or instance.struct_type is not self.struct_type:
            return None
        if expected_count != len(self.struct_type.fields):
            return None
        return list(instance.values)


class StructType(MappedComposite):
    """Constructor for struct instances; also decomposes them in patterns."""

    def __init__(self, domain: TypeDomain, name: str, fields: Sequence[str]):
        self.domain = domain
        self.fields = tuple(fields)
        super().__init__(name, [_StructConstructor(self), _StructDecomposer(self)])

    def __repr__(self) -> str:
        return f"<struct {self.name}({', '.join(self.fields)})>"


# =================================================================
# Frame-aware builtins
# =================================================================

class ApplySymbol(ICallable):
    """`apply(f, args...)`: calls the first argument with the rest."""

    def call(self, frame, args_count, returns_count):
        if args_count is None or args_count < 1:
            raise ArityError("'apply' must be called with argument count, including the target")
        values = pop_args(frame, args_count)
        target = values[0]
        for value in values[1:]:
            frame.stack.push(value)
        call_value(frame, target, args_count - 1, returns_count)


class WithSymbol(FixedCallable):
    """`with(obj, code)`: runs code with the object's members in scope."""

    def __init__(self):
        super().__init__(2, 1)

    def invoke(self, frame):
        code = frame.stack.pop().as_type(Code, "'with' block")
        target = frame.stack.pop()
        members = target.value.get_optional(Structured) if target.is_type(IComposite) else None
        if members is None:
            raise CalcTypeError(f"Value {target!r} has no members", "'with' target")

        scope = LocalSymbolMap(frame.symbols)
        for key in members.keys():
            scope.put_value(key, members.get(key))
        inner = Frame(scope, Stack(), frame.trace)
        code.execute(inner)
        validate_returns(inner.stack, 1)
        frame.stack.push(inner.stack.pop())


class DefineSymbol(FixedCallable):
    """`define(name, value)`: binds in the calling scope, returns the value."""

    def __init__(self):
        super().__init__(2, 1)

    def invoke(self, frame):
        value = frame.stack.pop()
        name = frame.stack.pop().as_type(str, "'define' name")
        frame.symbols.put_value(name, value)
        frame.stack.push(value)


class ExecuteSymbol(ICallable):
    """`execute(code)`: runs a code value in a local scope on the caller's stack."""

    def call(self, frame, args_count, returns_count):
        if args_count is not None and args_count != 1:
            raise ArityError(f"'execute' takes 1 argument, got {args_count}")
        code = frame.stack.pop().as_type(Code, "'execute' argument")
        local = new_local_frame(frame)
        code.execute(local)
        validate_returns(local.stack, returns_count)


class _VarArgsBuiltin(SingleReturnCallable):
    """Takes the declared number of arguments, or the whole stack when undeclared."""

    def evaluate(self, frame, args_count):
        count = frame.stack.size() if args_count is None else args_count
        return self.apply(pop_args(frame, count))

    @abstractmethod
    def apply(self, args: List[TypedValue]) -> TypedValue:
        pass


class ListSymbol(_VarArgsBuiltin):
    def __init__(self, domain: TypeDomain):
        self.domain = domain

    def apply(self, args):
        result = self.domain.create(NoneType, None)
        for value in reversed(args):
            result = self.domain.create(Cons, Cons(value, result))
        return result


class PrintSymbol(_VarArgsBuiltin):
    def __init__(self, domain: TypeDomain, emit: Callable[[dict], None], printer: Printer):
        self.domain = domain
        self.emit = emit
        self.printer = printer

    def apply(self, args):
        text = " ".join(a.value if a.is_type(str) else self.printer.pformat(a) for a in args)
        self.emit({'topics': ['stdout'], 'message': text})
        return self.domain.create(NoneType, None)


class StructSymbol(_VarArgsBuiltin):
    """`struct(name, field...)`: declares a record type."""

    def __init__(self, domain: TypeDomain):
        self.domain = domain

    def apply(self, args):
        if not args:
            raise ArityError("'struct' needs at least a name")
        name = args[0].as_type(str, "struct name")
        fields = [a.as_type(str, f"field of struct {name}") for a in args[1:]]
        if len(set(fields)) != len(fields):
            raise CalcError(f"Duplicate field names in struct {name}: {fields}")
        logger.debug("Declared struct %s(%s)", name, ", ".join(fields))
        return self.domain.create(IComposite, StructType(self.domain, name, fields))


# =================================================================
# StdLib
# =================================================================

class StdLib:
    """Contains Python implementations for all tcalc builtins."""

    def __init__(self, domain: TypeDomain, side_effects: Optional[list] = None):
        self.domain = domain
        self.side_effects = side_effects if side_effects is not None else []
        self.printer = Printer()
        self._renderer = pystache.Renderer(escape=lambda u: u)

    # --- Value helpers ---
    def _boolean(self, flag: bool) -> TypedValue:
        return self.domain.create(bool, flag)

    def _null(self) -> TypedValue:
        return self.domain.create(NoneType, None)

    def _numbers(self, op: str, a: TypedValue, b: TypedValue) -> Tuple[type, object, object]:
        if a.type is not b.type or a.type not in _NUMBERS:
            raise CalcTypeError(f"Operator {op!r} needs two numbers of the same type, got {a!r} and {b!r}")
        return a.type, a.value, b.value

    # --- Operators ---
    def op_add(self, a, b):
        if a.is_type(str) and b.is_type(str):
            return self.domain.create(str, a.value + b.value)
        kind, x, y = self._numbers('+', a, b)
        return self.domain.create(kind, x + y)

    def op_sub(self, a, b):
        kind, x, y = self._numbers('-', a, b)
        return self.domain.create(kind, x - y)

    def op_mul(self, a, b):
        kind, x, y = self._numbers('*', a, b)
        return self.domain.create(kind, x * y)

    def op_div(self, a, b):
        _, x, y = self._numbers('/', a, b)
        if y == 0:
            raise CalcError("Division by zero")
        return self.domain.create(float, x / y)

    def op_mod(self, a, b):
        kind, x, y = self._numbers('%', a, b)
        if y == 0:
            raise CalcError("Division by zero")
        return self.domain.create(kind, x % y)

    def op_eq(self, a, b): return self._boolean(a == b)
    def op_neq(self, a, b): return self._boolean(a != b)

    def _ordered(self, op: str, a: TypedValue, b: TypedValue):
        if a.type is not b.type or a.type not in _ORDERED:
            raise CalcTypeError(f"Operator {op!r} can't compare {a!r} and {b!r}")
        return a.value, b.value

    def op_lt(self, a, b):
        x, y = self._ordered('<', a, b)
        return self._boolean(x < y)

    def op_lte(self, a, b):
        x, y = self._ordered('<=', a, b)
        return self._boolean(x <= y)

    def op_gt(self, a, b):
        x, y = self._ordered('>', a, b)
        return self._boolean(x > y)

    def op_gte(self, a, b):
        x, y = self._ordered('>=', a, b)
        return self._boolean(x >= y)

    def op_and(self, a, b): return self._boolean(a.is_truthy() and b.is_truthy())
    def op_or(self, a, b): return self._boolean(a.is_truthy() or b.is_truthy())

    def op_cons(self, a, b):
        return self.domain.create(Cons, Cons(a, b))

    def op_dot(self, target, key):
        name = key.as_type(str, "member name")
        members = target.value.get_optional(Structured) if target.is_type(IComposite) else None
        if members is None:
            raise CalcTypeError(f"Value {target!r} has no members", f"'.{name}'")
        value = members.get(name)
        if value is None:
            raise UndefinedSymbolError(name, f"No member {name!r} in {target.value.type()}")
        return value

    def op_neg(self, a):
        if a.type not in _NUMBERS:
            raise CalcTypeError(f"Can't negate {a!r}")
        return self.domain.create(a.type, -a.value)

    def op_not(self, a): return self._boolean(not a.is_truthy())

    def operators(self) -> Dict[str, BinaryOperator]:
        table = {
            '+': self.op_add, '-': self.op_sub, '*': self.op_mul, '/': self.op_div, '%': self.op_mod,
            '==': self.op_eq, '!=': self.op_neq,
            '<': self.op_lt, '<=': self.op_lte, '>': self.op_gt, '>=': self.op_gte,
            '&&': self.op_and, '||': self.op_or,
            OPERATOR_CONS: self.op_cons, OPERATOR_DOT: self.op_dot,
        }
        ops = {name: BinaryOperator(name, fn) for name, fn in table.items()}
        ops[OPERATOR_LAMBDA] = MarkerOperator(OPERATOR_LAMBDA)
        ops[OPERATOR_SPLIT] = MarkerOperator(OPERATOR_SPLIT)
        return ops

    def unary_operators(self) -> Dict[str, UnaryOperator]:
        return {'-': UnaryOperator('-', self.op_neg), '!': UnaryOperator('!', self.op_not)}

    # --- Pairs ---
    @builtin
    def _car(self, pair):
        return pair.as_type(Cons, "'car' argument").car

    @builtin
    def _cdr(self, pair):
        return pair.as_type(Cons, "'cdr' argument").cdr

    @builtin
    def _cons(self, car, cdr):
        return self.op_cons(car, cdr)

    # --- Types and conversions ---
    @builtin
    def _type(self, value):
        return self.domain.create(str, self.domain.type_name(value.type))

    @builtin
    def _int(self, value):
        if value.type in (int, float, bool):
            try:
                return self.domain.create(int, int(value.value))
            except (ValueError, OverflowError):
                raise CalcTypeError(f"Can't convert {value.value!r} to int") from None
        if value.is_type(str):
            try:
                return self.domain.create(int, int(value.value))
            except ValueError:
                raise CalcTypeError(f"Can't convert {value.value!r} to int") from None
        raise CalcTypeError(f"Can't convert {value!r} to int")

    @builtin
    def _float(self, value):
        if value.type in (int, float, bool):
            return self.domain.create(float, float(value.value))
        if value.is_type(str):
            try:
                return self.domain.create(float, float(value.value))
            except ValueError:
                raise CalcTypeError(f"Can't convert {value.value!r} to float") from None
        raise CalcTypeError(f"Can't convert {value!r} to float")

    @builtin
    def _str(self, value):
        if value.is_type(str):
            return value
        return self.domain.create(str, self.printer.pformat(value))

    @builtin
    def _bool(self, value):
        return self.domain.create(bool, value.is_truthy())

    # --- Text ---
    @builtin
    def _template(self, text, context):
        source = text.as_type(str, "template text")
        if context.is_type(NoneType):
            data = {}
        else:
            data = to_builtin(context)
            if not isinstance(data, dict):
                raise CalcTypeError(f"Template context must be a struct instance, got {context!r}")
        try:
            rendered = self._renderer.render(source, data)
        except ParsingError as e:
            raise CalcError(f"Bad template: {e}") from None
        return self.domain.create(str, rendered)

    # --- Installation ---
    def builtins(self) -> Dict[str, ICallable]:
        table: Dict[str, ICallable] = {}
        for name, member in inspect.getmembers(self):
            if not getattr(member, "_tcalc_builtin", False):
                continue
            calc_name = name.lstrip('_')
            arity = len(inspect.signature(member).parameters)
            table[calc_name] = FixedFunction(member, arity, 1, name=calc_name)

        table['apply'] = ApplySymbol()
        table['with'] = WithSymbol()
        table['define'] = DefineSymbol()
        table['execute'] = ExecuteSymbol()
        table['list'] = ListSymbol(self.domain)
        table['print'] = PrintSymbol(self.domain, self.side_effects.append, self.printer)
        table['struct'] = StructSymbol(self.domain)
        return table

    def constants(self) -> Dict[str, TypedValue]:
        return {
            'true': self.domain.create(bool, True),
            'false': self.domain.create(bool, False),
            'null': self._null(),
        }

    def install(self, symbols: SymbolMap):
        for name, fn in self.builtins().items():
            symbols.put_value(name, self.domain.create(ICallable, fn))
        self.install_constants(symbols)

    def install_constants(self, symbols: SymbolMap):
        for name, value in self.constants().items():
            symbols.put_value(name, value)
