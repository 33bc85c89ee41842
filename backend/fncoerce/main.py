import logging

import sentry_sdk
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from fncoerce.core.config import settings
from fncoerce.core.middleware import SchemaCoercionError
from fncoerce.core.request_response import format_response

_logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception handlers: standardized error response format
# ---------------------------------------------------------------------------


async def schema_coercion_exception_handler(
    request: Request, exc: SchemaCoercionError
) -> JSONResponse:
    """400 for a request facet that fails coercion; 500 for a response body that does."""
    if exc.context == "response":
        status_code = settings.RESPONSE_COERCION_ERROR_STATUS_CODE
        _logger.error("Response failed schema on %s %s: %s", request.method, request.url.path, exc.error)
    else:
        status_code = settings.COERCION_ERROR_STATUS_CODE
        _logger.warning(
            "Request %s failed schema on %s %s: %s", exc.context, request.method, request.url.path, exc.error
        )
    content = {
        "detail": f"Schema validation failed for {exc.context}",
        "context": exc.context,
        "errors": format_response(exc.errors()),
    }
    if settings.ENVIRONMENT == "local":
        content["request"] = format_response(exc.request)
    return JSONResponse(status_code=status_code, content=content)


async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Catch-all for unhandled exceptions: log and return 500 with safe message."""
    _logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    detail = "Internal server error"
    if settings.ENVIRONMENT == "local":
        detail = f"Internal server error: {exc}"
    return JSONResponse(
        status_code=500,
        content={"detail": detail},
    )


def create_app(*routers: APIRouter) -> FastAPI:
    """FastAPI app serving the given routers of annotated handlers."""
    if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
        sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)

    app = FastAPI(title=settings.PROJECT_NAME, docs_url=None, redoc_url=None)
    app.add_exception_handler(SchemaCoercionError, schema_coercion_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Set all CORS enabled origins
    if settings.all_cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.all_cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    for router in routers:
        app.include_router(router)
    return app
