import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool
from starlette.status import HTTP_303_SEE_OTHER

from backend.utils.security import require_user, require_admin
from backend.utils.rate_limit import optional_rate_limit
from backend.payments import service as payments_service
from backend.payments.errors import PaymentError
from backend.payments.gateways import stripe_gateway
from backend.payments.models import BuyerDetails

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

GENERIC_ERROR = "Unable to process the payment. Please contact support."

# Événements Stripe Checkout qui justifient une réconciliation
STRIPE_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
}


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    package_id: str = Field(alias="packageId", min_length=1)
    buyer: BuyerDetails


def _unexpected(where: str, exc: Exception) -> HTTPException:
    logger.exception("payments.views.%s failed", where)
    return HTTPException(status_code=500, detail=GENERIC_ERROR)

# module backend.payments.views
@router.post("/checkout", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_checkout(payload: CheckoutRequest, user: dict = Depends(require_user)):
    """
    Crée une session de paiement pour un pack et la commande passerelle associée.
    - Entrée JSON: {"packageId": "...", "buyer": {email, first_name, last_name, ...}}
    - Sécurité: require_user + rate limit (10 req / 60s)
    - Retour: {"sessionId", "paymentUrl"} (page hébergée de la passerelle)
    - Erreurs: 400 pack invalide / rejet passerelle, 503 passerelle indisponible
    """
    try:
        session, order = payments_service.start_checkout(
            user_id=str(user.get("id") or ""),
            package_id=payload.package_id,
            buyer=payload.buyer,
        )
        return {"sessionId": session.session_id, "paymentUrl": order.redirect_url}
    except (PaymentError, HTTPException):
        raise
    except Exception as e:
        raise _unexpected("create_checkout", e)

@router.post("/checkout-token", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_checkout_token(payload: CheckoutRequest, user: dict = Depends(require_user)):
    """
    Variante pour l'app native: la webview n'a pas forcément les cookies du navigateur système.
    Retour: {"sessionId", "token", "redirectUrl"}; redirectUrl s'ouvre sans authentification.
    """
    try:
        return payments_service.issue_checkout_token(
            user_id=str(user.get("id") or ""),
            package_id=payload.package_id,
            buyer=payload.buyer,
        )
    except (PaymentError, HTTPException):
        raise
    except Exception as e:
        raise _unexpected("create_checkout_token", e)

@router.get("/checkout-redirect", include_in_schema=False)
def checkout_redirect(token: str = Query(..., min_length=1)):
    """Consomme le jeton (usage unique) et redirige (303) vers la page de paiement."""
    url = payments_service.redeem_checkout_token(token)
    return RedirectResponse(url=url, status_code=HTTP_303_SEE_OTHER)

@router.get("/verify")
def verify_payment(cart: str = Query(..., min_length=1), outcome: Optional[str] = None) -> Dict[str, Any]:
    """
    Réconciliation JSON (client web/app): {success, message, status, sparePartsCredits?,
    automotiveCredits?, reason?}. 'outcome' est l'issue revendiquée par la page de retour.
    - 202 si l'issue n'est pas encore confirmée (session toujours 'pending')
    - 404 si la session est inconnue
    """
    try:
        return payments_service.reconcile(cart, claimed_outcome=outcome).to_payload()
    except (PaymentError, HTTPException):
        raise
    except Exception as e:
        raise _unexpected("verify_payment", e)

@router.post("/webhook/telr", include_in_schema=False)
async def webhook_telr(request: Request):
    """
    Avis de transaction Telr (form-urlencoded). Le contenu n'est qu'un indice:
    seul tran_cartid est utilisé, l'issue est redemandée à la passerelle.
    """
    form = await request.form()
    cart = form.get("tran_cartid") or form.get("cart")
    if not cart:
        raise HTTPException(status_code=400, detail="Missing cart id")
    try:
        result = await run_in_threadpool(payments_service.reconcile, str(cart))
    except (PaymentError, HTTPException):
        raise
    except Exception as e:
        raise _unexpected("webhook_telr", e)
    logger.info("payments.webhook_telr cart=%s status=%s", cart, result.status.value)
    return {"status": result.status.value}

@router.post("/webhook/stripe", include_in_schema=False)
async def webhook_stripe(request: Request):
    """
    Webhook Stripe Checkout.
    - Signature: stripe_gateway.parse_event (Stripe-Signature + STRIPE_WEBHOOK_SECRET)
    - Session: client_reference_id (ou metadata.session_id); l'issue est redemandée à Stripe
    - Réponses: {"status": <statut de session>} ou {"status": "ignored"}
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature") or ""
    try:
        event = stripe_gateway.parse_event(payload, sig_header)
    except Exception:
        logger.exception("payments.webhook_stripe invalid payload")
        raise HTTPException(status_code=400, detail="Invalid Stripe webhook payload")

    if (event or {}).get("type") not in STRIPE_EVENTS:
        return JSONResponse({"status": "ignored"})
    obj = ((event.get("data") or {}).get("object")) or {}
    session_id = obj.get("client_reference_id") or (obj.get("metadata") or {}).get("session_id")
    if not session_id:
        return JSONResponse({"status": "ignored"})
    try:
        result = await run_in_threadpool(payments_service.reconcile, str(session_id))
    except (PaymentError, HTTPException):
        raise
    except Exception as e:
        raise _unexpected("webhook_stripe", e)
    logger.info("payments.webhook_stripe type=%s session=%s status=%s", event.get("type"), session_id, result.status.value)
    return {"status": result.status.value}

@router.post("/admin/expire")
def admin_expire(max_age_minutes: Optional[int] = Query(default=None, ge=1), user: dict = Depends(require_admin)):
    """Balayage des sessions 'pending' trop anciennes (voir service.expire_stale_sessions)."""
    return {"status": "ok", "summary": payments_service.expire_stale_sessions(max_age_minutes)}

@router.post("/admin/repair")
def admin_repair(user: dict = Depends(require_admin)):
    """Re-crédite les sessions 'succeeded' sans entrée au ledger."""
    return {"status": "ok", "summary": payments_service.repair_uncredited_sessions()}
