"""
Shapes exchanged with handlers and the coercion middleware.

Requests and responses are plain dicts:

- request: uri, query_string, uri_args, query_params, body (the HTTP adapter also sets
  request_method, scheme, headers).
- response: {status?, body, headers?}; status defaults to 200.

A handler descriptor (info) declares schemas per request facet and per response status:

    {"request": {"uri_args": ..., "query_params": ..., "body": ...},
     "responses": {200: ..., 404: ...}}

Facets without a schema are omitted.
"""

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

Request = dict[str, Any]
Response = dict[str, Any]
Handler = Callable[[Request], Response]

REQUEST_FACETS = ("uri_args", "query_params", "body")
DEFAULT_STATUS = 200


class RequestSchemas(BaseModel):
    """Schemas for the request facets; unknown facets are rejected."""

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    uri_args: Any = None
    query_params: Any = None
    body: Any = None


class HandlerInfo(BaseModel):
    """Validates the shape of a handler descriptor at wiring time."""

    model_config = ConfigDict(extra="allow", arbitrary_types_allowed=True)

    request: RequestSchemas = Field(default_factory=RequestSchemas)
    responses: dict[int, Any]


class AnnotatedHandler(BaseModel):
    """A handler together with its descriptor; the unit middleware wraps."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    handler: Handler
    info: dict[str, Any]
