"""
Adaptateurs de passerelle de paiement (Telr par défaut, Stripe en option).
La passerelle active est choisie par PAYMENT_GATEWAY.
"""
import backend.config as config
from backend.payments.gateways.base import GatewayAdapter, call_with_retry, check_amount
from backend.payments.gateways.stripe_gateway import StripeGateway
from backend.payments.gateways.telr import TelrGateway

ADAPTERS = {
    TelrGateway.name: TelrGateway,
    StripeGateway.name: StripeGateway,
}


def get_gateway(name: str = None) -> GatewayAdapter:
    """
    Instancie l'adaptateur demandé (ou celui de PAYMENT_GATEWAY).
    Une session déjà engagée chez une passerelle doit être confirmée auprès de la même:
    l'appelant passe alors session.gateway.
    """
    key = (name or config.PAYMENT_GATEWAY or "telr").strip().lower()
    try:
        return ADAPTERS[key]()
    except KeyError:
        raise ValueError(f"Unknown payment gateway: {key}") from None


__all__ = [
    "GatewayAdapter",
    "TelrGateway",
    "StripeGateway",
    "get_gateway",
    "call_with_retry",
    "check_amount",
]
