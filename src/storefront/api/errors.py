"""Exception handlers mapping storefront errors onto HTTP responses.

Protean's own handlers cover ``ValidationError`` (400) and
``ObjectNotFoundError`` (404); this module adds the typed storefront errors.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from storefront.errors import ErrorCategory, StorefrontError
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all storefront error handlers on the FastAPI app."""
    register_exception_handlers(app)
    _register_storefront_error_handler(app)


def _register_storefront_error_handler(app: FastAPI) -> None:
    @app.exception_handler(StorefrontError)
    async def storefront_error_handler(request: Request, exc: StorefrontError):
        if exc.category == ErrorCategory.INFRASTRUCTURE:
            logger.error("request_failed", path=request.url.path, code=exc.code)
        else:
            logger.debug("request_rejected", path=request.url.path, code=exc.code)

        headers = {"Retry-After": "1"} if exc.retryable else None
        return JSONResponse(status_code=exc.http_status, content=exc.to_response(), headers=headers)
