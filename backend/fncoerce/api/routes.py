"""
Mount annotated handlers on a FastAPI router.

Flow: build_request -> handler (coerced by coercion_middleware) -> format_response.
Handlers are sync; they run in a worker thread so the event loop keeps accepting
concurrent requests. The thread gets a copy of the current context, so each call has
its own request binding inside the walkers.
"""

import asyncio
from collections.abc import Sequence

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from fncoerce.core.request_response import build_request, format_response
from fncoerce.schemas import DEFAULT_STATUS, AnnotatedHandler


def add_annotated_route(
    router: APIRouter,
    path: str,
    annotated: AnnotatedHandler,
    *,
    methods: Sequence[str] = ("GET",),
    name: str | None = None,
) -> None:
    """Register annotated.handler at path; its response dict becomes a JSONResponse."""
    handler = annotated.handler

    async def endpoint(request: Request) -> JSONResponse:
        raw = await build_request(request)
        response = await asyncio.to_thread(handler, raw)
        return JSONResponse(
            status_code=response.get("status", DEFAULT_STATUS),
            content=format_response(response.get("body")),
            headers=response.get("headers"),
        )

    router.add_api_route(
        path,
        endpoint,
        methods=list(methods),
        name=name or getattr(handler, "__name__", None),
        include_in_schema=False,
    )
