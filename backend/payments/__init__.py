"""
Module 'payments' (feature-first): point d'entrée public.
Réunit sessions de paiement, passerelles, réconciliation et pages de retour.
"""

from .errors import (
    PaymentError,
    InvalidPackage,
    GatewayUnavailable,
    GatewayRejected,
    UnknownSession,
    VerificationPending,
    CreditingDeferred,
    StorageError,
)
from .models import SessionStatus, Outcome, PaymentSession, BuyerDetails, ReconcileResult
from .service import (
    create_session,
    start_checkout,
    issue_checkout_token,
    redeem_checkout_token,
    reconcile,
    expire_stale_sessions,
    repair_uncredited_sessions,
)

__all__ = [
    # errors
    "PaymentError",
    "InvalidPackage",
    "GatewayUnavailable",
    "GatewayRejected",
    "UnknownSession",
    "VerificationPending",
    "CreditingDeferred",
    "StorageError",
    # models
    "SessionStatus",
    "Outcome",
    "PaymentSession",
    "BuyerDetails",
    "ReconcileResult",
    # services
    "create_session",
    "start_checkout",
    "issue_checkout_token",
    "redeem_checkout_token",
    "reconcile",
    "expire_stale_sessions",
    "repair_uncredited_sessions",
]
