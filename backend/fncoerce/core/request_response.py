"""
HTTP edge: build_request (Starlette request -> request dict) and format_response
(response body -> JSON-serializable structure).

- build_request: uri_args from the router's path params, query_params from the query
  string (repeated keys become lists), body from JSON or form content. Values stay raw;
  the coercion middleware types them.
- format_response: pydantic models are dumped in JSON mode; datetime, Decimal, UUID,
  bytes and sets are converted to JSON primitives.
"""

import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel
from starlette.requests import Request

from fncoerce.schemas import Request as RequestDict


async def _read_body(request: Request) -> Any:
    """Read JSON or form body; None on no body or unsupported type."""
    ct = (request.headers.get("content-type") or "").split(";")[0].strip().lower()
    if ct == "application/json":
        if not await request.body():
            return None
        try:
            return await request.json()
        except ValueError:
            return None
    if ct in ("application/x-www-form-urlencoded", "multipart/form-data"):
        form = await request.form()
        return dict(form)
    return None


def _query_params(request: Request) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        out[key] = values[0] if len(values) == 1 else values
    return out


async def build_request(request: Request) -> RequestDict:
    """Build the request dict handed to coerced handlers."""
    return {
        "request_method": request.method,
        "uri": request.url.path,
        "query_string": request.url.query,
        "scheme": request.url.scheme,
        "server_name": request.url.hostname,
        "headers": {k.lower(): v for k, v in request.headers.items()},
        "uri_args": dict(request.path_params),
        "query_params": _query_params(request),
        "body": await _read_body(request),
    }


def _make_json_safe(obj: Any) -> Any:
    """Recursively convert non-JSON-serializable types to safe primitives."""
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", by_alias=True)
    if isinstance(obj, Enum):
        return _make_json_safe(obj.value)
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, timedelta):
        return obj.total_seconds()
    if isinstance(obj, Decimal):
        # Preserve integer-valued decimals as int, otherwise float
        if obj == int(obj):
            return int(obj)
        return float(obj)
    if isinstance(obj, uuid.UUID):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    if isinstance(obj, dict):
        return {str(k): _make_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_make_json_safe(item) for item in obj]
    if isinstance(obj, (set, frozenset)):
        return [_make_json_safe(item) for item in sorted(obj, key=str)]
    # Fallback: use str() for unknown types
    return str(obj)


def format_response(body: Any) -> Any:
    """Return a JSON-serializable rendering of a response body."""
    return _make_json_safe(body)
