"""
Conversion between TypedValues and plain Python data, and from there to
JSON or YAML text.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import yaml

from tcalc.tcalc_composite import IComposite, Structured
from tcalc.tcalc_errors import CalcTypeError
from tcalc.tcalc_types import Cons, TypedValue, TypeDomain

STRUCT_KEY = "__struct__"

_SCALARS = (int, float, str, bool, type(None))


# --------------------------
# Helpers
# --------------------------

def to_builtin(value: TypedValue) -> Any:
    """
    TypedValue -> plain data. Proper lists become lists, improper pairs
    become {'car': .., 'cdr': ..}, struct instances become dicts tagged
    with '__struct__'. Code and callables have no data form.
    """
    if value.type in _SCALARS:
        return value.value
    if value.is_type(Cons):
        items = []
        current = value
        while current.is_type(Cons):
            items.append(to_builtin(current.value.car))
            current = current.value.cdr
        if current.is_type(type(None)):
            return items
        pair = value.value
        return {"car": to_builtin(pair.car), "cdr": to_builtin(pair.cdr)}
    if value.is_type(IComposite):
        composite = value.value
        members = composite.get_optional(Structured)
        if members is not None:
            out = {STRUCT_KEY: composite.type()}
            for key in members.keys():
                out[key] = to_builtin(members.get(key))
            return out
    raise CalcTypeError(f"Value {value!r} can't be converted to data")


def from_builtin(domain: TypeDomain, data: Any) -> TypedValue:
    """Plain data -> TypedValue, for scalars, lists and car/cdr pairs."""
    if isinstance(data, _SCALARS):
        return domain.create(type(data), data)
    if isinstance(data, (list, tuple)):
        result = domain.create(type(None), None)
        for item in reversed(data):
            result = domain.create(Cons, Cons(from_builtin(domain, item), result))
        return result
    if isinstance(data, dict) and set(data.keys()) == {"car", "cdr"}:
        return domain.create(Cons, Cons(from_builtin(domain, data["car"]), from_builtin(domain, data["cdr"])))
    raise CalcTypeError(f"Can't convert {type(data).__name__} to a value: {data!r}")


def detect_format(data_hint: Optional[str]) -> str:
    """'json' for text that looks like a JSON document, 'yaml' otherwise (YAML is a superset)."""
    s = (data_hint or "").lstrip()
    if s.startswith('{') or s.startswith('['):
        return 'json'
    return 'yaml'


# --------------------------
# Public API
# --------------------------

def serialize(value: TypedValue, *, fmt: str = 'json', pretty: bool = True) -> str:
    f = (fmt or '').lower()
    built = to_builtin(value)
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def deserialize(text: str, domain: TypeDomain, *, fmt: Optional[str] = None) -> TypedValue:
    f = (fmt or detect_format(text)).lower()
    if f == 'json':
        data = json.loads(text)
    elif f == 'yaml':
        data = yaml.safe_load(text)
    else:
        raise ValueError(f"Unsupported serialization format: {fmt!r}")
    return from_builtin(domain, data)


__all__ = [
    "to_builtin",
    "from_builtin",
    "detect_format",
    "serialize",
    "deserialize",
]
