"""
Erreurs métier de la feature 'payments'.
Chaque erreur porte un message lisible par l'utilisateur et le code HTTP associé;
le handler global (backend.app_setup.exceptions) les rend en JSON {success: false, message}.
"""
from typing import Optional


class PaymentError(Exception):
    status_code = 500
    default_message = "Unable to process the payment. Please contact support."

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None):
        self.message = message or self.default_message
        # detail: information technique (logs uniquement, jamais renvoyée au client)
        self.detail = detail
        super().__init__(self.message)


class InvalidPackage(PaymentError):
    status_code = 400
    default_message = "Please provide a valid subscription package."


class GatewayUnavailable(PaymentError):
    """Erreur transitoire (réseau, timeout, 5xx): rejouable."""
    status_code = 503
    default_message = "The payment service is temporarily unavailable. Please try again."


class GatewayRejected(PaymentError):
    """Rejet de validation par la passerelle (4xx): non rejouable."""
    status_code = 400
    default_message = "We cannot process this payment right now."


class UnknownSession(PaymentError):
    status_code = 404
    default_message = "Invalid payment session"


class VerificationPending(PaymentError):
    """
    L'issue n'est pas encore connue avec certitude: la session reste 'pending'
    et un appel ultérieur pourra la solder.
    """
    status_code = 202
    default_message = (
        "We could not confirm your payment yet. "
        "Please check back in a few minutes or contact support."
    )


class CreditingDeferred(VerificationPending):
    """Paiement confirmé mais écriture des crédits différée (job de réparation)."""
    default_message = "Your payment was received. Your credits are being applied, please check back shortly."


class StorageError(PaymentError):
    status_code = 500
    default_message = "Unable to process the payment. Please contact support."
