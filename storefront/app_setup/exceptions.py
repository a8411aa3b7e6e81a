"""
Gestionnaires d'exceptions.
- CheckoutError: statut et message publics portés par l'exception (jamais le détail interne).
- HTTPException: corps JSON FastAPI standard {"detail": ...}.
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from storefront.checkout.errors import CheckoutError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError):
        if exc.http_status >= 500:
            logger.error("%s %s -> %s: %s %s", request.method, request.url.path, exc.http_status, type(exc).__name__, exc.context)
        return JSONResponse(status_code=exc.http_status, content={"detail": exc.public_detail})

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)
