"""
fncoerce: schema coercion and validation for HTTP handler inputs and outputs.
"""

from fncoerce.core.matchers import (
    AbsoluteUrl,
    absolute_url_matcher,
    json_coercion_matcher,
    no_custom_coercion,
    string_coercion_matcher,
)
from fncoerce.core.middleware import (
    SchemaCoercionError,
    UndeclaredResponseStatusError,
    coercing_walker,
    coercion_middleware,
    request_walker,
    response_walker,
)
from fncoerce.core.walker import SchemaValidationError, coercer, first_matcher
from fncoerce.schemas import AnnotatedHandler, HandlerInfo

__all__ = [
    "AbsoluteUrl",
    "AnnotatedHandler",
    "HandlerInfo",
    "SchemaCoercionError",
    "SchemaValidationError",
    "UndeclaredResponseStatusError",
    "absolute_url_matcher",
    "coercer",
    "coercing_walker",
    "coercion_middleware",
    "first_matcher",
    "json_coercion_matcher",
    "no_custom_coercion",
    "request_walker",
    "response_walker",
    "string_coercion_matcher",
]
