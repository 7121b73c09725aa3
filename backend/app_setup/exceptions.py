"""
Gestionnaires d'exceptions utilisés par la factory.
- PaymentError (et sous-classes): JSON {success: false, message} avec le code HTTP de l'erreur.
  Le détail technique n'est jamais renvoyé au client, il est journalisé.
- HTTPException: JSON FastAPI standard {"detail": ...}.
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from backend.payments.errors import PaymentError, VerificationPending

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    """
    Enregistre les handlers PaymentError et HTTPException.
    - VerificationPending (202): ajoute status='pending' pour que le client repasse plus tard.
    """
    @app.exception_handler(PaymentError)
    async def payment_error_handler(request: Request, exc: PaymentError):
        logger.warning(
            "payments.error path=%s type=%s status=%s detail=%s",
            request.url.path, type(exc).__name__, exc.status_code, exc.detail,
        )
        content = {"success": False, "message": exc.message}
        if isinstance(exc, VerificationPending):
            content["status"] = "pending"
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
