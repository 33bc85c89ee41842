"""Unit tests for the schema walker: coercer, first_matcher, SchemaValidationError."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any, Optional

import pytest
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing_extensions import TypedDict

from fncoerce.core.matchers import json_coercion_matcher, string_coercion_matcher
from fncoerce.core.walker import SchemaValidationError, coercer, first_matcher


class Point(BaseModel):
    x: int
    y: int = 0


class Line(BaseModel):
    start: Point
    end: Point


class Node(BaseModel):
    name: str
    children: list["Node"] = []


@dataclass
class Size:
    width: int
    height: int = 1


@dataclass
class Box:
    size: Size
    tags: list[str] = field(default_factory=list)


class Dims(TypedDict):
    width: int
    height: int


class PartialDims(TypedDict, total=False):
    width: int


class Renamed(BaseModel):
    x: int = Field(validation_alias="X")


class Choice(BaseModel):
    x: int = Field(validation_alias=AliasChoices("X", "ex"))


class ByName(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(alias="userId")


class Account(BaseModel):
    user_id: int = Field(alias="userId")


def _locs(exc: SchemaValidationError) -> list[tuple]:
    return [tuple(e["loc"]) for e in exc.errors()]


# --- identity / strict leaves ---


@pytest.mark.parametrize(
    ("schema", "value"),
    [
        (int, 5),
        (str, "a"),
        (float, 1.5),
        (bool, True),
        (list[int], [1, 2]),
        (dict[str, float], {"a": 1.5}),
        (Optional[int], None),
        (tuple[int, str], (1, "a")),
        (Any, object),
    ],
)
def test_coercer_identity_on_valid_input(schema: Any, value: Any) -> None:
    assert coercer(schema)(value) == value


def test_coercer_without_matcher_is_strict() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        coercer(int)("5")
    assert _locs(exc_info.value) == [()]
    assert exc_info.value.error_count == 1


def test_coercer_bool_is_not_int() -> None:
    with pytest.raises(SchemaValidationError):
        coercer(int, json_coercion_matcher)(True)


# --- integral floats at every depth ---


def test_integral_float_bare() -> None:
    out = coercer(int, json_coercion_matcher)(3.0)
    assert out == 3
    assert type(out) is int


def test_integral_float_record_field() -> None:
    out = coercer(Point, json_coercion_matcher)({"x": 3.0})
    assert out == Point(x=3, y=0)
    assert type(out.x) is int


def test_integral_float_sequence_element() -> None:
    out = coercer(list[int], json_coercion_matcher)([1.0, 2.0])
    assert out == [1, 2]
    assert all(type(x) is int for x in out)


def test_non_integral_float_rejected() -> None:
    with pytest.raises(SchemaValidationError):
        coercer(int, json_coercion_matcher)(3.5)


# --- errors ---


def test_errors_collected_for_every_failing_element() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        coercer(list[int], string_coercion_matcher)(["1", "x", "3", "y"])
    assert _locs(exc_info.value) == [(1,), (3,)]


def test_model_missing_required_field() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        coercer(Point, json_coercion_matcher)({})
    errors = exc_info.value.errors()
    assert len(errors) == 1
    assert errors[0]["type"] == "missing"
    assert errors[0]["loc"] == ("x",)


def test_nested_model_error_path() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        coercer(Line, json_coercion_matcher)({"start": {"x": 1}, "end": {"x": "a"}})
    assert _locs(exc_info.value) == [("end", "x")]


def test_model_rejects_non_mapping() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        coercer(Point)([1, 2])
    assert exc_info.value.errors()[0]["type"] == "model_type"


def test_error_message_names_schema_and_path() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        coercer(Line, json_coercion_matcher)({"start": {"x": 1}, "end": {"x": "a"}})
    message = str(exc_info.value)
    assert message.startswith("1 validation error for Line")
    assert "end.x" in message


def test_coercion_function_error_is_reported() -> None:
    def boom(value: Any) -> Any:
        raise ValueError("boom")

    walk = coercer(list[int], lambda schema: boom if schema is int else None)
    with pytest.raises(SchemaValidationError) as exc_info:
        walk([1])
    err = exc_info.value.errors()[0]
    assert err["type"] == "coercion_error"
    assert err["loc"] == (0,)
    assert err["ctx"] == {"reason": "boom"}


# --- records ---


def test_model_instance_passes_through() -> None:
    p = Point(x=1)
    assert coercer(Point, json_coercion_matcher)(p) is p


def test_recursive_model() -> None:
    out = coercer(Node, string_coercion_matcher)(
        {"name": "a", "children": [{"name": "b", "children": []}]}
    )
    assert isinstance(out, Node)
    assert out.children[0].name == "b"


def test_model_field_alias() -> None:
    out = coercer(Account, string_coercion_matcher)({"userId": "7"})
    assert out.user_id == 7


def test_model_alias_missing_reported_by_alias() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        coercer(Account, string_coercion_matcher)({})
    assert _locs(exc_info.value) == [("userId",)]


def test_model_validation_alias() -> None:
    out = coercer(Renamed, json_coercion_matcher)({"X": 1.0})
    assert out.x == 1
    assert type(out.x) is int


def test_model_validation_alias_missing() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        coercer(Renamed, json_coercion_matcher)({})
    assert _locs(exc_info.value) == [("X",)]


def test_model_alias_choices() -> None:
    walk = coercer(Choice, string_coercion_matcher)
    assert walk({"ex": "2"}).x == 2
    assert walk({"X": "3"}).x == 3
    with pytest.raises(SchemaValidationError) as exc_info:
        walk({})
    assert [e["type"] for e in exc_info.value.errors()] == ["missing"]


def test_model_populate_by_name() -> None:
    walk = coercer(ByName, string_coercion_matcher)
    assert walk({"user_id": "5"}).user_id == 5
    assert walk({"userId": "6"}).user_id == 6


def test_dataclass_from_mapping() -> None:
    out = coercer(Size, json_coercion_matcher)({"width": 1})
    assert out == Size(width=1, height=1)


def test_dataclass_integral_float_field() -> None:
    out = coercer(Size, json_coercion_matcher)({"width": 1.0, "height": 2.0})
    assert out == Size(width=1, height=2)
    assert type(out.width) is int


def test_nested_dataclass_defaults_and_error_path() -> None:
    walk = coercer(Box, json_coercion_matcher)
    assert walk({"size": {"width": 2.0}}) == Box(size=Size(width=2, height=1), tags=[])
    with pytest.raises(SchemaValidationError) as exc_info:
        walk({"size": {"width": "a"}})
    assert _locs(exc_info.value) == [("size", "width")]


def test_dataclass_missing_field_and_wrong_type() -> None:
    walk = coercer(Size, json_coercion_matcher)
    with pytest.raises(SchemaValidationError) as exc_info:
        walk({})
    assert exc_info.value.errors()[0]["type"] == "missing"
    assert _locs(exc_info.value) == [("width",)]
    with pytest.raises(SchemaValidationError) as exc_info:
        walk([1])
    assert exc_info.value.errors()[0]["type"] == "dataclass_type"


def test_dataclass_instance_passes_through() -> None:
    size = Size(width=3)
    assert coercer(Size, json_coercion_matcher)(size) is size


def test_typeddict_fields_coerced() -> None:
    out = coercer(Dims, json_coercion_matcher)({"width": 1.0, "height": 2})
    assert out == {"width": 1, "height": 2}
    assert type(out["width"]) is int
    assert coercer(Dims, string_coercion_matcher)({"width": "3", "height": "4"}) == {"width": 3, "height": 4}


def test_typeddict_required_and_optional_keys() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        coercer(Dims, json_coercion_matcher)({"width": 1})
    assert _locs(exc_info.value) == [("height",)]
    assert coercer(PartialDims, json_coercion_matcher)({}) == {}


# --- unions, annotated, containers ---


def test_optional_empty_string_is_none() -> None:
    assert coercer(Optional[int], string_coercion_matcher)("") is None


def test_union_first_valid_branch_wins() -> None:
    assert coercer(int | None, string_coercion_matcher)("5") == 5


def test_union_all_branches_fail() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        coercer(int | None, string_coercion_matcher)("five")
    assert exc_info.value.error_count == 2


def test_annotated_constraints_applied_after_coercion() -> None:
    walk = coercer(Annotated[int, Field(gt=0)], string_coercion_matcher)
    assert walk("5") == 5
    with pytest.raises(SchemaValidationError):
        walk("0")


def test_set_from_json_list() -> None:
    assert coercer(set[int], json_coercion_matcher)([1, 2.0]) == {1, 2}


def test_tuple_from_json_list() -> None:
    assert coercer(tuple[int, ...], json_coercion_matcher)([1, 2]) == (1, 2)


def test_positional_tuple_length() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        coercer(tuple[int, str])((1,))
    assert exc_info.value.errors()[0]["type"] == "tuple_length"


def test_dict_keys_and_values_coerced() -> None:
    assert coercer(dict[int, bool], string_coercion_matcher)({"1": "yes"}) == {1: True}


def test_sequence_accepts_tuples_and_lists() -> None:
    out = coercer(Sequence[int])((1, 2))
    assert out == (1, 2)
    assert isinstance(out, tuple)
    assert coercer(Sequence[int], json_coercion_matcher)([1.0]) == [1]


def test_sequence_rejects_text() -> None:
    with pytest.raises(SchemaValidationError) as exc_info:
        coercer(Sequence[str])("ab")
    assert exc_info.value.errors()[0]["type"] == "list_type"


# --- matcher chain ---


def test_first_matcher_first_non_none_wins() -> None:
    def f1(v: Any) -> Any:
        return v

    def f2(v: Any) -> Any:
        return v

    chain = first_matcher([lambda s: None, lambda s: f1, lambda s: f2])
    assert chain(int) is f1


def test_first_matcher_no_match() -> None:
    assert first_matcher([])(int) is None
    assert first_matcher([lambda s: None])(int) is None


def test_matcher_consulted_once_per_node() -> None:
    seen: list[Any] = []

    def counting(schema: Any) -> None:
        seen.append(schema)
        return None

    walk = coercer(list[int], counting)
    assert len(seen) == 2
    assert list[int] in seen
    assert int in seen
    for _ in range(3):
        walk([1, 2, 3])
    assert len(seen) == 2


# --- idempotence ---


def test_walk_is_idempotent() -> None:
    walk = coercer(list[int], string_coercion_matcher)
    once = walk(["1", "2"])
    assert walk(once) == once

    walk_point = coercer(Point, json_coercion_matcher)
    point = walk_point({"x": 1.0})
    assert walk_point(point) == point
