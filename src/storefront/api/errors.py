"""Translate domain failures into HTTP responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError

from storefront.cart.merge import CartMergeError
from storefront.documents.port import DocumentStoreError
from storefront.order.order import OrderPermissionError

logger = structlog.get_logger(__name__)


def _messages(exc: Exception):
    return getattr(exc, "messages", None) or str(exc)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.info("Request rejected", path=request.url.path, errors=_messages(exc))
        return JSONResponse(status_code=400, content={"detail": _messages(exc)})

    @app.exception_handler(OrderPermissionError)
    async def permission_error_handler(request: Request, exc: OrderPermissionError):
        logger.warning("Request forbidden", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=403, content={"detail": str(exc)})

    @app.exception_handler(ObjectNotFoundError)
    async def not_found_handler(request: Request, exc: ObjectNotFoundError):
        return JSONResponse(status_code=404, content={"detail": _messages(exc)})

    @app.exception_handler(DocumentStoreError)
    @app.exception_handler(CartMergeError)
    async def persistence_error_handler(request: Request, exc: Exception):
        logger.error("Persistence failure", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=503, content={"detail": str(exc)})
