"""
Adaptateur Stripe Checkout: centralise les appels et la configuration Stripe.
"""
from decimal import Decimal
from typing import Any, Dict
import json
import logging

import stripe

import backend.config as config
from backend.payments.errors import GatewayRejected, GatewayUnavailable
from backend.payments.gateways.base import GatewayAdapter
from backend.payments.models import (
    BuyerDetails,
    GatewayOutcome,
    OrderResult,
    Outcome,
    PaymentSession,
    ReturnUrls,
)

logger = logging.getLogger(__name__)

# Erreurs SDK transitoires (réseau, quota, 5xx): rejouables
TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)

# module backend.payments.gateways.stripe_gateway
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY si disponible.
    - En absence de clé, les appels Stripe échouent côté SDK (AuthenticationError -> rejet).
    """
    if config.STRIPE_SECRET_KEY:
        stripe.api_key = config.STRIPE_SECRET_KEY
    return stripe

def _to_minor(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1")))

def _from_minor(value) -> Decimal:
    return (Decimal(int(value)) / 100).quantize(Decimal("0.01"))

def _call(label: str, fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except TRANSIENT_ERRORS as exc:
        logger.warning("payments.stripe %s transient error: %s", label, exc)
        raise GatewayUnavailable(detail=f"stripe {label}: {exc}") from exc
    except stripe.StripeError as exc:
        logger.warning("payments.stripe %s rejected: %s", label, exc)
        raise GatewayRejected(detail=f"stripe {label}: {exc}") from exc


class StripeGateway(GatewayAdapter):
    name = "stripe"

    def initiate_order(self, session: PaymentSession, buyer: BuyerDetails, return_urls: ReturnUrls) -> OrderResult:
        """
        Crée une session Stripe Checkout (mode 'payment', une ligne price_data).
        Stripe n'a qu'une URL d'annulation: le refus de carte est géré sur sa page hébergée.
        """
        require_stripe()
        created = _call(
            "create",
            stripe.checkout.Session.create,
            mode="payment",
            client_reference_id=session.session_id,
            customer_email=str(buyer.email),
            line_items=[{
                "quantity": 1,
                "price_data": {
                    "currency": session.currency.lower(),
                    "unit_amount": _to_minor(session.amount),
                    "product_data": {"name": f"{session.credits} {session.category.replace('_', ' ')} credits"},
                },
            }],
            success_url=return_urls.succeeded,
            cancel_url=return_urls.cancelled,
            metadata={"session_id": session.session_id, "user_id": session.user_id},
        )
        data = dict(created)
        if not data.get("id") or not data.get("url"):
            raise GatewayRejected(detail="stripe create: session without id/url")
        return OrderResult(order_ref=str(data["id"]), redirect_url=str(data["url"]))

    def confirm_outcome(self, session: PaymentSession) -> GatewayOutcome:
        """
        payment_status 'paid' -> succeeded; status 'expired' -> expired; sinon pending.
        """
        if not session.gateway_order_ref:
            raise GatewayRejected(detail="stripe retrieve: session has no order ref")
        require_stripe()
        data = dict(_call("retrieve", stripe.checkout.Session.retrieve, session.gateway_order_ref))

        ref = data.get("client_reference_id")
        if ref and str(ref) != session.session_id:
            return GatewayOutcome(outcome=Outcome.DECLINED, reason="order does not match session")

        amount = data.get("amount_total")
        currency = (data.get("currency") or "").upper() or None
        paid_amount = _from_minor(amount) if amount is not None else None
        if data.get("payment_status") == "paid":
            return GatewayOutcome(outcome=Outcome.SUCCEEDED, amount=paid_amount, currency=currency)
        if data.get("status") == "expired":
            return GatewayOutcome(outcome=Outcome.EXPIRED)
        return GatewayOutcome(outcome=Outcome.PENDING)


def parse_event(payload: bytes, sig_header: str) -> Dict[str, Any]:
    """
    Parse et valide un événement Stripe signé (webhook).
    - Valide la signature via Webhook.construct_event (STRIPE_WEBHOOK_SECRET)
    - Sans secret configuré (dev), le JSON est lu sans vérification: le webhook
      n'est qu'un indice, la réconciliation réinterroge Stripe dans tous les cas.
    - Soulève ValueError / stripe.SignatureVerificationError si invalide.
    """
    if not config.STRIPE_WEBHOOK_SECRET:
        return json.loads(payload or b"{}")
    require_stripe()
    event = stripe.Webhook.construct_event(payload, sig_header or "", config.STRIPE_WEBHOOK_SECRET)
    return {"type": event["type"], "data": {"object": dict(event["data"]["object"])}}
