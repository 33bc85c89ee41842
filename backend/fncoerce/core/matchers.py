"""
Coercion matchers.

A matcher maps a schema node to a coercion function for values at that node, or None.

Generic matchers depend only on the value. They never raise: input they cannot convert
is returned unchanged so the walker's validator reports what was expected and what
arrived.

- json_coercion_matcher: request bodies, where numbers are already numbers
  (3.0 -> 3 for int, enum by value, ISO strings -> datetime/UUID/Decimal, list -> set).
- string_coercion_matcher: path and query params, where everything arrives as str
  ("42" -> 42, "yes" -> True, "1,2,3" -> [...]); falls back to the JSON rules.

Context matchers take the in-flight request as well: schema -> (request, value) -> value.
no_custom_coercion is the no-op one; absolute_url_matcher expands relative URLs.
"""

from __future__ import annotations

import collections.abc
import json
import typing
from collections.abc import Callable
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from urllib.parse import urljoin, urlsplit
from uuid import UUID

from pydantic import TypeAdapter, ValidationError

from fncoerce.core.walker import Coercion

ContextCoercion = Callable[[Any, Any], Any]

_PARSED_TYPES = (datetime, date, time, timedelta, UUID, Decimal)
_LIST_ORIGINS = (list, collections.abc.Sequence, collections.abc.MutableSequence)
_SET_ORIGINS = (set, collections.abc.MutableSet)
_FROZENSET_ORIGINS = (frozenset, collections.abc.Set)
_DICT_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


def _plain_type(schema: Any) -> bool:
    # list[int] passes isinstance(..., type) on some interpreters
    return typing.get_origin(schema) is None and isinstance(schema, type)


def _kind(schema: Any) -> Any:
    origin = typing.get_origin(schema)
    return origin if origin is not None else schema


# ---------------------------------------------------------------------------
# JSON rules
# ---------------------------------------------------------------------------


def _integral_float_to_int(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _int_to_float(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    return value


def _enum_coercer(enum_cls: type[Enum]) -> Coercion:
    def coerce(value: Any) -> Any:
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(value)
        except ValueError:
            pass
        if isinstance(value, str) and value in enum_cls.__members__:
            return enum_cls[value]
        return value

    return coerce


def _parsed_by(schema: type) -> Coercion:
    adapter = TypeAdapter(schema)

    def coerce(value: Any) -> Any:
        if isinstance(value, schema) or isinstance(value, bool):
            return value
        try:
            return adapter.validate_python(value)
        except ValidationError:
            return value

    return coerce


def _to_collection(kind: type) -> Coercion:
    def coerce(value: Any) -> Any:
        if isinstance(value, kind) or not isinstance(value, (list, tuple, set, frozenset)):
            return value
        try:
            return kind(value)
        except TypeError:
            # unhashable items for a set
            return value

    return coerce


def json_coercion_matcher(schema: Any) -> Coercion | None:
    """Generic rules for JSON-shaped data (request bodies)."""
    if _plain_type(schema):
        if schema is int:
            return _integral_float_to_int
        if schema is float:
            return _int_to_float
        if issubclass(schema, Enum):
            return _enum_coercer(schema)
        if schema in _PARSED_TYPES:
            return _parsed_by(schema)
    kind = _kind(schema)
    if kind in _SET_ORIGINS:
        return _to_collection(set)
    if kind in _FROZENSET_ORIGINS:
        return _to_collection(frozenset)
    if kind is tuple:
        return _to_collection(tuple)
    if kind in _LIST_ORIGINS:
        return _to_collection(list)
    return None


# ---------------------------------------------------------------------------
# String rules
# ---------------------------------------------------------------------------


def _string_to_int(value: Any) -> Any:
    value = _integral_float_to_int(value)
    if not isinstance(value, str):
        return value
    s = value.strip()
    try:
        return int(s)
    except ValueError:
        pass
    try:
        x = float(s)
    except ValueError:
        return value
    if not x.is_integer():
        return value
    return int(x)


def _string_to_float(value: Any) -> Any:
    value = _int_to_float(value)
    if not isinstance(value, str):
        return value
    try:
        return float(value.strip())
    except ValueError:
        return value


def _string_to_bool(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool) and value in (0, 1):
        return bool(value)
    if not isinstance(value, str):
        return value
    s = value.strip().lower()
    if s in ("true", "1", "yes"):
        return True
    if s in ("false", "0", "no"):
        return False
    return value


def _string_to_none(value: Any) -> Any:
    if isinstance(value, str) and value.strip().lower() in ("", "null"):
        return None
    return value


def _string_to_list(value: Any) -> Any:
    if isinstance(value, tuple):
        return list(value)
    if not isinstance(value, str):
        return value
    s = value.strip()
    if not s:
        return []
    if s.startswith("["):
        try:
            out = json.loads(s)
        except json.JSONDecodeError:
            return value
        return out if isinstance(out, list) else value
    return [x.strip() for x in s.split(",") if x.strip()]


def _string_to_dict(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    try:
        out = json.loads(value)
    except json.JSONDecodeError:
        return value
    return out if isinstance(out, dict) else value


def _string_enum_coercer(enum_cls: type[Enum]) -> Coercion:
    by_value = _enum_coercer(enum_cls)

    def coerce(value: Any) -> Any:
        value = by_value(value)
        if not isinstance(value, str):
            return value
        for member in enum_cls:
            if str(member.value) == value.strip():
                return member
        return value

    return coerce


def _literal_coercer(choices: tuple) -> Coercion:
    by_string: dict[str, Any] = {}
    for choice in choices:
        if isinstance(choice, str):
            continue
        if isinstance(choice, bool):
            by_string[str(choice).lower()] = choice
        elif isinstance(choice, Enum):
            by_string[str(choice.value)] = choice
        else:
            by_string[str(choice)] = choice

    def coerce(value: Any) -> Any:
        if not isinstance(value, str) or value in choices:
            return value
        return by_string.get(value.strip(), value)

    return coerce


def _then(first: Coercion, second: Coercion) -> Coercion:
    return lambda value: second(first(value))


def _string_matcher(schema: Any) -> Coercion | None:
    if schema is None or schema is type(None):
        return _string_to_none
    if _plain_type(schema):
        if schema is int:
            return _string_to_int
        if schema is float:
            return _string_to_float
        if schema is bool:
            return _string_to_bool
        if issubclass(schema, Enum):
            return _string_enum_coercer(schema)
    kind = _kind(schema)
    if kind is typing.Literal:
        return _literal_coercer(typing.get_args(schema))
    if kind in _LIST_ORIGINS:
        return _string_to_list
    if kind in _SET_ORIGINS:
        return _then(_string_to_list, _to_collection(set))
    if kind in _FROZENSET_ORIGINS:
        return _then(_string_to_list, _to_collection(frozenset))
    if kind is tuple:
        return _then(_string_to_list, _to_collection(tuple))
    if kind in _DICT_ORIGINS:
        return _string_to_dict
    return None


def string_coercion_matcher(schema: Any) -> Coercion | None:
    """Generic rules for string-valued data (path and query params)."""
    return _string_matcher(schema) or json_coercion_matcher(schema)


# ---------------------------------------------------------------------------
# Context rules
# ---------------------------------------------------------------------------


def no_custom_coercion(schema: Any) -> ContextCoercion | None:
    """Context matcher that never matches."""
    return None


class AbsoluteUrl:
    """
    Annotated marker for a URL that may be given relative to the request:

        link: Annotated[str, AbsoluteUrl()]
    """

    def __repr__(self) -> str:
        return "AbsoluteUrl()"


def _expand_url(request: Any, value: Any) -> Any:
    if not isinstance(value, str) or urlsplit(value).scheme:
        return value
    headers = request.get("headers") or {}
    host = headers.get("host") or request.get("server_name")
    if not host:
        raise ValueError(f"cannot expand relative url {value!r}: request has no host")
    scheme = request.get("scheme") or "http"
    return urljoin(f"{scheme}://{host}{request.get('uri') or '/'}", value)


def absolute_url_matcher(schema: Any) -> ContextCoercion | None:
    """Context matcher expanding relative URLs in Annotated[str, AbsoluteUrl()] nodes."""
    if typing.get_origin(schema) is not typing.Annotated:
        return None
    if not any(isinstance(m, AbsoluteUrl) for m in typing.get_args(schema)[1:]):
        return None
    return _expand_url
