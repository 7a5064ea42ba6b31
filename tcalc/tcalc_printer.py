"""
A pretty-printer for tcalc values and compiled code.
"""
from typing import List

from tcalc.tcalc_callable import ICallable
from tcalc.tcalc_composite import IComposite, Structured
from tcalc.tcalc_executable import Code
from tcalc.tcalc_types import Cons, TypedValue


class Printer:
    """Formats TypedValues the way they would be written in an expression."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, value: TypedValue) -> str:
        """Public entry point to format a value."""
        handler = self._handlers.get(value.type, self._pformat_fallback)
        return handler(value.value)

    def _create_handlers(self):
        return {
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            str: self._pformat_str,
            bool: self._pformat_bool,
            type(None): self._pformat_none,
            Cons: self._pformat_cons,
            Code: self._pformat_code,
            ICallable: self._pformat_callable,
            IComposite: self._pformat_composite,
        }

    def _pformat_primitive(self, obj):
        return repr(obj)

    def _pformat_str(self, obj):
        escaped = obj.replace("\\", "\\\\").replace("'", "\\'")
        return f"'{escaped}'"

    def _pformat_bool(self, obj):
        return "true" if obj else "false"

    def _pformat_none(self, obj):
        return "null"

    def _pformat_cons(self, pair: Cons):
        # Proper lists (ending in null) print as [a, b, c]
        items: List[str] = []
        current = pair
        while True:
            items.append(self.pformat(current.car))
            tail = current.cdr
            if tail.is_type(Cons):
                current = tail.value
                continue
            if tail.is_type(type(None)):
                return f"[{', '.join(items)}]"
            break
        # Improper tail: fall back to explicit pairs
        return f"({self.pformat(pair.car)} : {self.pformat(pair.cdr)})"

    def _pformat_code(self, code: Code):
        return f"{{{len(code)} step(s)}}"

    def _pformat_callable(self, fn):
        return repr(fn)

    def _pformat_composite(self, composite: IComposite):
        members = composite.get_optional(Structured)
        if members is None:
            return repr(composite)
        args = ", ".join(self.pformat(members.get(k)) for k in members.keys())
        return f"{composite.type()}({args})"

    def _pformat_fallback(self, obj):
        return repr(obj)

    def format_code(self, code: Code) -> str:
        """Numbered instruction listing, one step per line."""
        width = len(str(max(len(code) - 1, 0)))
        return "\n".join(f"{str(i).rjust(width)}: {step!r}" for i, step in enumerate(code))
