"""
Coercion middleware: coerce and validate handler inputs and outputs.

- coercing_walker: compile a schema plus a context matcher and generic matchers into
  walk(request, data). The context matcher's coercions read the request of the walk
  in progress from a ContextVar owned by the walker, so they see it at any depth without
  the schema walk knowing about requests.
- request_walker / response_walker: compile once per handler, one walker per request
  facet and one per declared response status.
- coercion_middleware: wrap an AnnotatedHandler with both.

Coercion is generous (1.0 in a body validates as an int 1, "42" in a query param as 42);
anything that still does not fit raises SchemaCoercionError.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from contextvars import ContextVar
from typing import Any

from pydantic import ValidationError

from fncoerce.core.config import settings
from fncoerce.core.matchers import (
    ContextCoercion,
    json_coercion_matcher,
    no_custom_coercion,
    string_coercion_matcher,
)
from fncoerce.core.walker import (
    Coercion,
    Matcher,
    SchemaValidationError,
    coercer,
    first_matcher,
)
from fncoerce.schemas import (
    DEFAULT_STATUS,
    REQUEST_FACETS,
    AnnotatedHandler,
    HandlerInfo,
    Request,
    Response,
)

logger = logging.getLogger(__name__)

ContextMatcher = Callable[[Any], ContextCoercion | None]
Walker = Callable[[Request, Any], Any]

_FACET_MATCHERS: dict[str, Matcher] = {
    "uri_args": string_coercion_matcher,
    "query_params": string_coercion_matcher,
    "body": json_coercion_matcher,
}


class SchemaCoercionError(ValueError):
    """Raised when a request facet or response body fails coercion/validation."""

    def __init__(self, context: str, request: Mapping[str, Any] | None, error: SchemaValidationError) -> None:
        self.context = context
        self.request = {k: (request or {}).get(k) for k in ("uri", "query_string", "body")}
        self.error = error
        body = repr(self.request["body"])
        limit = settings.COERCION_ERROR_BODY_MAX_CHARS
        if len(body) > limit:
            body = body[:limit] + "..."
        shown = f"{{'uri': {self.request['uri']!r}, 'query_string': {self.request['query_string']!r}, 'body': {body}}}"
        super().__init__(f"Request: [{shown}] ==> Error: [{error}] ==> Context: [{context}]")

    def errors(self) -> list[dict[str, Any]]:
        return self.error.errors()


class UndeclaredResponseStatusError(RuntimeError):
    """Raised when a handler returns a status with no declared response schema."""

    def __init__(self, status: int, declared: Sequence[int]) -> None:
        self.status = status
        self.declared = tuple(declared)
        super().__init__(f"No response schema declared for status {status} (declared: {list(self.declared)})")


def coercing_walker(
    context: str,
    schema: Any,
    custom_matcher: ContextMatcher,
    normal_matchers: Sequence[Matcher],
) -> Walker:
    """
    Compile schema into walk(request, data) -> coerced data.

    custom_matcher is tried before normal_matchers at every schema node; its coercions
    receive the request passed to walk. Raises SchemaCoercionError tagged with context
    when data does not validate.
    """
    request_var: ContextVar[Any] = ContextVar(f"fncoerce_request:{context}")

    def request_matcher(node: Any) -> Coercion | None:
        coerce = custom_matcher(node)
        if coerce is None:
            return None
        return lambda value: coerce(request_var.get(), value)

    walker = coercer(schema, first_matcher([request_matcher, *normal_matchers]))

    def walk(request: Request, data: Any) -> Any:
        token = request_var.set(request)
        try:
            return walker(data)
        except SchemaValidationError as e:
            raise SchemaCoercionError(context, request, e) from e
        finally:
            request_var.reset(token)

    return walk


def request_walker(input_coercer: ContextMatcher, handler_info: Mapping[str, Any]) -> Callable[[Request], Request]:
    """
    Compile a function coercing a request's uri_args, query_params and body.

    Pass no_custom_coercion as input_coercer for no custom behaviour.
    """
    request_schemas = handler_info.get("request") or {}
    walkers = {
        facet: coercing_walker(facet, request_schemas[facet], input_coercer, [_FACET_MATCHERS[facet]])
        for facet in REQUEST_FACETS
        if request_schemas.get(facet) is not None
    }
    logger.debug("Compiled request walkers for facets: %s", ", ".join(walkers) or "(none)")

    def walk_request(request: Request) -> Request:
        # every facet walker sees the original request
        walked = dict(request)
        for facet, walker in walkers.items():
            walked[facet] = walker(request, request.get(facet))
        return walked

    return walk_request


def response_walker(
    output_coercer: ContextMatcher, handler_info: Mapping[str, Any]
) -> Callable[[Request, Response], Response]:
    """
    Compile a function coercing a response body by the schema declared for its status.

    Pass no_custom_coercion as output_coercer for validation only.
    """
    walkers = {
        int(status): coercing_walker("response", schema, output_coercer, [])
        for status, schema in handler_info["responses"].items()
    }
    logger.debug("Compiled response walkers for statuses: %s", sorted(walkers))

    def walk_response(request: Request, response: Response) -> Response:
        status = response.get("status", DEFAULT_STATUS)
        walker = walkers.get(status)
        if walker is None:
            raise UndeclaredResponseStatusError(status, sorted(walkers))
        return {**response, "body": walker(request, response.get("body"))}

    return walk_response


def coercion_middleware(
    annotated: AnnotatedHandler,
    input_coercer: ContextMatcher = no_custom_coercion,
    output_coercer: ContextMatcher = no_custom_coercion,
) -> AnnotatedHandler:
    """
    Coerce and validate inputs and outputs of an annotated handler.

    Inputs are coerced generously (1.0 in a body becomes 1 for an int schema); outputs
    are validated against the schema declared for their status and can be adjusted per
    request by output_coercer. info passes through unchanged.
    """
    info = annotated.info
    try:
        HandlerInfo.model_validate(info)
    except ValidationError as e:
        raise ValueError(f"Invalid handler info: {e}") from e

    walk_request = request_walker(input_coercer, info)
    walk_response = response_walker(output_coercer, info)
    handler = annotated.handler

    def coerced_handler(request: Request) -> Response:
        walked_request = walk_request(request)
        return walk_response(walked_request, handler(walked_request))

    return annotated.model_copy(update={"handler": coerced_handler})
