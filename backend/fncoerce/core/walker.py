"""
Schema walker: compile a schema once into a function that coerces and validates values.

A schema is any type pydantic can validate. The compiled walker descends records
(BaseModel, dataclasses, TypedDicts), containers and unions itself so that a matcher
can hook every node; leaves are validated by pydantic in strict mode, so leniency only
ever comes from the matcher. Records are built by pydantic in lax mode once their
fields have been walked.

- coercer(schema, matcher): compile. The matcher is consulted once per schema node at
  compile time; the coercion it returns (if any) runs on every value at that node before
  the node is validated or descended. No match means the value passes through.
- first_matcher(matchers): ordered matcher chain, first non-None wins.

Failures of every node are collected (siblings keep being walked) and raised as one
SchemaValidationError whose errors() mirror pydantic's error dicts.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import types
import typing
from collections.abc import Callable, Sequence
from typing import Any

import typing_extensions
from pydantic import BaseModel, TypeAdapter, ValidationError

Coercion = Callable[[Any], Any]
Matcher = Callable[[Any], Coercion | None]

# Node walkers take (value, loc) and return the coerced value or raise _Invalid.
_NodeWalk = Callable[[Any, tuple], Any]

_LIST_ORIGINS = (list, collections.abc.MutableSequence)
_SET_ORIGINS = (set, collections.abc.MutableSet)
_FROZENSET_ORIGINS = (frozenset, collections.abc.Set)
_DICT_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)
_REQUIRED_WRAPPERS = tuple(
    {getattr(m, n) for m in (typing, typing_extensions) for n in ("Required", "NotRequired", "ReadOnly") if hasattr(m, n)}
)


class SchemaValidationError(ValueError):
    """Raised when a value does not conform to its schema after coercion."""

    def __init__(self, schema: Any, errors: list[dict[str, Any]]) -> None:
        self.schema = schema
        self._errors = errors
        super().__init__(self._render())

    @property
    def error_count(self) -> int:
        return len(self._errors)

    def errors(self) -> list[dict[str, Any]]:
        """Error dicts with loc (path within the value), msg, type, input and optional ctx."""
        return [dict(e) for e in self._errors]

    def _render(self) -> str:
        name = getattr(self.schema, "__name__", None) or repr(self.schema)
        n = len(self._errors)
        lines = [f"{n} validation error{'' if n == 1 else 's'} for {name}"]
        for err in self._errors:
            lines.append(".".join(str(part) for part in err["loc"]) or "(root)")
            lines.append(f"  {err['msg']} [type={err['type']}, input_value={err['input']!r}]")
        return "\n".join(lines)


class _Invalid(Exception):
    def __init__(self, errors: list[dict[str, Any]]) -> None:
        super().__init__(errors)
        self.errors = errors


def _error(
    error_type: str,
    loc: tuple,
    value: Any,
    msg: str,
    ctx: dict[str, Any] | None = None,
) -> dict[str, Any]:
    err: dict[str, Any] = {"type": error_type, "loc": loc, "msg": msg, "input": value}
    if ctx:
        err["ctx"] = ctx
    return err


def _located(exc: ValidationError, loc: tuple) -> list[dict[str, Any]]:
    """Re-root pydantic errors at loc."""
    out = []
    for err in exc.errors(include_url=False):
        located = _error(err["type"], loc + tuple(err["loc"]), err["input"], err["msg"])
        if "ctx" in err:
            located["ctx"] = err["ctx"]
        out.append(located)
    return out


def _pass_through(value: Any, loc: tuple) -> Any:
    return value


def _no_match(schema: Any) -> None:
    return None


def first_matcher(matchers: Sequence[Matcher]) -> Matcher:
    """Combine matchers; the first one returning a coercion for a schema wins."""
    matchers = tuple(matchers)

    def match(schema: Any) -> Coercion | None:
        for matcher in matchers:
            coerce = matcher(schema)
            if coerce is not None:
                return coerce
        return None

    return match


class _Compiler:
    def __init__(self, matcher: Matcher) -> None:
        self.matcher = matcher
        # Records are cached so self-referencing models compile once.
        self._records: dict[Any, _NodeWalk] = {}

    def compile(self, schema: Any) -> _NodeWalk:
        walk = self._structure(schema)
        coerce = self.matcher(schema)
        if coerce is None:
            return walk

        def coerce_then_walk(value: Any, loc: tuple) -> Any:
            try:
                coerced = coerce(value)
            except (ValueError, TypeError) as e:
                raise _Invalid(
                    [
                        _error(
                            "coercion_error",
                            loc,
                            value,
                            f"Could not coerce value: {e}",
                            {"reason": str(e)},
                        )
                    ]
                ) from e
            return walk(coerced, loc)

        return coerce_then_walk

    def _structure(self, schema: Any) -> _NodeWalk:
        if schema is Any or schema is object:
            return _pass_through
        origin = typing.get_origin(schema)
        args = typing.get_args(schema)
        if origin is None and isinstance(schema, type) and issubclass(schema, BaseModel):
            return self._model(schema)
        if origin is None and isinstance(schema, type) and dataclasses.is_dataclass(schema):
            return self._record(schema, _dataclass_fields, "dataclass_type")
        if origin is None and typing_extensions.is_typeddict(schema):
            return self._record(schema, _typeddict_fields, "dict_type")
        if origin is typing.Annotated:
            return self._annotated(schema, args[0])
        if origin is typing.Union or origin is types.UnionType:
            return self._union([self.compile(arg) for arg in args])

        kind = origin if origin is not None else schema
        if kind is collections.abc.Sequence:
            return self._sequence(self.compile(args[0] if args else Any))
        if kind in _LIST_ORIGINS:
            return self._collection(self.compile(args[0] if args else Any), list, "list_type", "a valid list")
        if kind in _SET_ORIGINS:
            return self._collection(self.compile(args[0] if args else Any), set, "set_type", "a valid set")
        if kind in _FROZENSET_ORIGINS:
            return self._collection(
                self.compile(args[0] if args else Any), frozenset, "frozen_set_type", "a valid frozenset"
            )
        if kind is tuple:
            if not args or (len(args) == 2 and args[1] is Ellipsis):
                return self._collection(self.compile(args[0] if args else Any), tuple, "tuple_type", "a valid tuple")
            return self._positional_tuple([self.compile(arg) for arg in args])
        if kind in _DICT_ORIGINS:
            key_schema, value_schema = args if args else (Any, Any)
            return self._mapping(self.compile(key_schema), self.compile(value_schema))
        return self._leaf(schema)

    def _leaf(self, schema: Any) -> _NodeWalk:
        adapter = TypeAdapter(schema)

        def walk(value: Any, loc: tuple) -> Any:
            try:
                return adapter.validate_python(value, strict=True)
            except ValidationError as e:
                raise _Invalid(_located(e, loc)) from None

        return walk

    def _annotated(self, schema: Any, inner: Any) -> _NodeWalk:
        # Metadata (constraints such as Field(gt=0)) is applied by pydantic once the
        # inner value has been walked; unknown markers are ignored by pydantic.
        inner_walk = self.compile(inner)
        adapter = TypeAdapter(schema)

        def walk(value: Any, loc: tuple) -> Any:
            value = inner_walk(value, loc)
            try:
                return adapter.validate_python(value, strict=True)
            except ValidationError as e:
                raise _Invalid(_located(e, loc)) from None

        return walk

    def _union(self, branches: list[_NodeWalk]) -> _NodeWalk:
        def walk(value: Any, loc: tuple) -> Any:
            errors: list[dict[str, Any]] = []
            for branch in branches:
                try:
                    return branch(value, loc)
                except _Invalid as e:
                    errors.extend(e.errors)
            raise _Invalid(errors)

        return walk

    def _collection(self, item_walk: _NodeWalk, kind: type, error_type: str, expected: str) -> _NodeWalk:
        def walk(value: Any, loc: tuple) -> Any:
            if not isinstance(value, kind):
                raise _Invalid([_error(error_type, loc, value, f"Input should be {expected}")])
            out = []
            errors: list[dict[str, Any]] = []
            for i, item in enumerate(value):
                try:
                    out.append(item_walk(item, loc + (i,)))
                except _Invalid as e:
                    errors.extend(e.errors)
            if errors:
                raise _Invalid(errors)
            return kind(out)

        return walk

    def _sequence(self, item_walk: _NodeWalk) -> _NodeWalk:
        # any sequence but text; tuples stay tuples
        def walk(value: Any, loc: tuple) -> Any:
            if not isinstance(value, collections.abc.Sequence) or isinstance(value, (str, bytes, bytearray)):
                raise _Invalid([_error("list_type", loc, value, "Input should be a valid sequence")])
            out = []
            errors: list[dict[str, Any]] = []
            for i, item in enumerate(value):
                try:
                    out.append(item_walk(item, loc + (i,)))
                except _Invalid as e:
                    errors.extend(e.errors)
            if errors:
                raise _Invalid(errors)
            return tuple(out) if isinstance(value, tuple) else out

        return walk

    def _positional_tuple(self, item_walks: list[_NodeWalk]) -> _NodeWalk:
        size = len(item_walks)

        def walk(value: Any, loc: tuple) -> Any:
            if not isinstance(value, tuple):
                raise _Invalid([_error("tuple_type", loc, value, "Input should be a valid tuple")])
            if len(value) != size:
                raise _Invalid(
                    [
                        _error(
                            "tuple_length",
                            loc,
                            value,
                            f"Tuple should have {size} items, not {len(value)}",
                            {"expected": size, "actual": len(value)},
                        )
                    ]
                )
            out = []
            errors: list[dict[str, Any]] = []
            for i, (item_walk, item) in enumerate(zip(item_walks, value)):
                try:
                    out.append(item_walk(item, loc + (i,)))
                except _Invalid as e:
                    errors.extend(e.errors)
            if errors:
                raise _Invalid(errors)
            return tuple(out)

        return walk

    def _mapping(self, key_walk: _NodeWalk, value_walk: _NodeWalk) -> _NodeWalk:
        def walk(value: Any, loc: tuple) -> Any:
            if not isinstance(value, collections.abc.Mapping):
                raise _Invalid([_error("dict_type", loc, value, "Input should be a valid dictionary")])
            out: dict[Any, Any] = {}
            errors: list[dict[str, Any]] = []
            for k, v in value.items():
                try:
                    key = key_walk(k, loc + (k, "[key]"))
                    out[key] = value_walk(v, loc + (k,))
                except _Invalid as e:
                    errors.extend(e.errors)
            if errors:
                raise _Invalid(errors)
            return out

        return walk

    def _model(self, model: type[BaseModel]) -> _NodeWalk:
        if model not in self._records:
            model.model_rebuild()
        return self._record(model, _model_fields, "model_type", model.model_validate)

    def _record(
        self,
        schema: Any,
        field_specs: Callable[[Any], list[_FieldSpec]],
        error_type: str,
        build: Coercion | None = None,
    ) -> _NodeWalk:
        """Walk a record field by field, then build it with build (lax pydantic by default)."""
        cached = self._records.get(schema)
        if cached is not None:
            return cached

        build = build or TypeAdapter(schema).validate_python
        name = schema.__name__
        # TypedDict classes reject isinstance checks
        record_class = None if typing_extensions.is_typeddict(schema) else schema
        fields: list[tuple[list[str], bool, _NodeWalk]] = []

        def walk(value: Any, loc: tuple) -> Any:
            if record_class is not None and isinstance(value, record_class):
                return value
            if not isinstance(value, collections.abc.Mapping):
                raise _Invalid(
                    [
                        _error(
                            error_type,
                            loc,
                            value,
                            f"Input should be a valid dictionary or instance of {name}",
                            {"class_name": name},
                        )
                    ]
                )
            data = dict(value)
            errors: list[dict[str, Any]] = []
            for keys, report_missing, field_walk in fields:
                key = next((k for k in keys if k in data), None)
                if key is None:
                    if report_missing:
                        errors.append(_error("missing", loc + (keys[0],), value, "Field required"))
                    continue
                try:
                    data[key] = field_walk(data[key], loc + (key,))
                except _Invalid as e:
                    errors.extend(e.errors)
            if errors:
                raise _Invalid(errors)
            try:
                return build(data)
            except ValidationError as e:
                raise _Invalid(_located(e, loc)) from None

        self._records[schema] = walk
        for keys, required, annotation in field_specs(schema):
            fields.append((keys, required, self.compile(annotation)))
        return walk


# (keys the field may arrive under, report "missing" when none is present, annotation)
_FieldSpec = tuple[list[str], bool, Any]


def _model_fields(model: type[BaseModel]) -> list[_FieldSpec]:
    specs: list[_FieldSpec] = []
    for name, info in model.model_fields.items():
        alias = info.validation_alias if info.validation_alias is not None else info.alias
        if isinstance(alias, str):
            keys, exhaustive = [alias, name], True
        elif alias is not None:
            # AliasChoices / AliasPath: plain-key choices are walked, model_validate decides
            keys = [c for c in getattr(alias, "choices", ()) if isinstance(c, str)] + [name]
            exhaustive = False
        else:
            keys, exhaustive = [name], True
        specs.append((keys, exhaustive and info.is_required(), info.rebuild_annotation()))
    return specs


def _dataclass_fields(schema: Any) -> list[_FieldSpec]:
    hints = typing.get_type_hints(schema, include_extras=True)
    return [
        (
            [f.name],
            f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING,
            hints.get(f.name, Any),
        )
        for f in dataclasses.fields(schema)
        if f.init
    ]


def _typeddict_fields(schema: Any) -> list[_FieldSpec]:
    hints = typing_extensions.get_type_hints(schema, include_extras=True)
    return [([name], name in schema.__required_keys__, _unwrap_required(hint)) for name, hint in hints.items()]


def _unwrap_required(hint: Any) -> Any:
    while typing.get_origin(hint) in _REQUIRED_WRAPPERS:
        hint = typing.get_args(hint)[0]
    return hint


def coercer(schema: Any, matcher: Matcher | None = None) -> Coercion:
    """
    Compile schema into a function that coerces a value with matcher and validates it.

    Returns the coerced value (records come back as model instances) or raises
    SchemaValidationError listing every failing path.
    """
    walk = _Compiler(matcher or _no_match).compile(schema)

    def coerce(value: Any) -> Any:
        try:
            return walk(value, ())
        except _Invalid as e:
            raise SchemaValidationError(schema, e.errors) from None

    return coerce
