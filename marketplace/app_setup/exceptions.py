"""
Gestionnaires d'exceptions utilisés par la factory.
- HTTPException: JSON standard {"detail": ...}
- PaymentConfigurationError: 503 générique (identifiants jamais exposés), journalisé en ERROR
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from marketplace.errors import PaymentConfigurationError

logger = logging.getLogger(__name__)

PAYMENT_UNAVAILABLE = "Service de paiement indisponible"

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HTTPException)
    async def http_exception_json(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))

    @app.exception_handler(PaymentConfigurationError)
    async def payment_configuration_error(request: Request, exc: PaymentConfigurationError):
        logger.error("payment configuration error on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": PAYMENT_UNAVAILABLE})
