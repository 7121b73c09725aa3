"""
Pages de retour passerelle (HTML): /payment/success, /payment/cancelled, /payment/declined.
La page d'arrivée n'est qu'un indice: chaque page appelle la réconciliation, qui interroge
la passerelle, puis affiche le résultat confirmé.
"""
from typing import Optional
import logging

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from backend.payments import service as payments_service
from backend.payments.errors import PaymentError, VerificationPending
from backend.payments.redirect import PAGE_OUTCOMES, handoff_plan
from backend.utils.templates import templates

logger = logging.getLogger(__name__)
web_router = APIRouter(prefix="/payment", tags=["Payment return pages"])


def _render(request: Request, page: str, cart: Optional[str]):
    claimed = PAGE_OUTCOMES[page]
    result = None
    error = None
    pending = False
    status_code = 200
    if not cart:
        error = "Invalid payment session"
        status_code = 400
    else:
        try:
            result = payments_service.reconcile(cart, claimed_outcome=claimed)
        except VerificationPending as exc:
            pending = True
            error = exc.message
        except PaymentError as exc:
            error = exc.message
            status_code = exc.status_code
        except Exception:
            logger.exception("payments.pages.%s failed cart=%s", page, cart)
            error = "Unable to process the payment. Please contact support."
            status_code = 500

    handoff = handoff_plan(request, claimed, cart, result, pending=pending)
    return templates.TemplateResponse(
        request,
        "payment_result.html",
        {
            "page": page,
            "cart": cart,
            "result": result.to_payload() if result else None,
            "pending": pending,
            "error": error,
            "handoff": handoff,
        },
        status_code=status_code,
    )

# module backend.payments.pages
@web_router.get("/success", response_class=HTMLResponse, name="payment_success_page")
def payment_success_page(request: Request, cart: Optional[str] = None):
    return _render(request, "success", cart)

@web_router.get("/cancelled", response_class=HTMLResponse, name="payment_cancelled_page")
def payment_cancelled_page(request: Request, cart: Optional[str] = None):
    return _render(request, "cancelled", cart)

@web_router.get("/declined", response_class=HTMLResponse, name="payment_declined_page")
def payment_declined_page(request: Request, cart: Optional[str] = None):
    return _render(request, "declined", cart)
