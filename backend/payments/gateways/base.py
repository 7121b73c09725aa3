"""
Contrat commun des adaptateurs de passerelle.

Un adaptateur traduit une intention d'achat interne vers le format de la passerelle
(initiate_order) et interroge la passerelle sur l'issue réelle d'un paiement
(confirm_outcome). L'URL de retour sur laquelle arrive le navigateur n'est qu'un indice:
seule la réponse de confirm_outcome fait foi.
"""
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Optional
import logging

from tenacity import Retrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

import backend.config as config
from backend.payments.errors import GatewayUnavailable
from backend.payments.models import (
    BuyerDetails,
    GatewayOutcome,
    OrderResult,
    Outcome,
    PaymentSession,
    ReturnUrls,
)

logger = logging.getLogger(__name__)


class GatewayAdapter(ABC):
    name = "abstract"

    @abstractmethod
    def initiate_order(self, session: PaymentSession, buyer: BuyerDetails, return_urls: ReturnUrls) -> OrderResult:
        """Crée la commande côté passerelle et renvoie (référence, URL de la page hébergée)."""

    @abstractmethod
    def confirm_outcome(self, session: PaymentSession) -> GatewayOutcome:
        """Interroge la passerelle (source autoritaire) sur l'issue de la commande de la session."""


def call_with_retry(fn, *args, **kwargs):
    """
    Exécute un appel passerelle en rejouant les erreurs transitoires (GatewayUnavailable)
    avec un backoff exponentiel borné (GATEWAY_MAX_ATTEMPTS tentatives au total).
    - La dernière GatewayUnavailable est relancée telle quelle.
    - Les autres erreurs (GatewayRejected...) ne sont jamais rejouées.
    """
    retrying = Retrying(
        stop=stop_after_attempt(max(1, config.GATEWAY_MAX_ATTEMPTS)),
        wait=wait_exponential(multiplier=config.GATEWAY_BACKOFF_SECONDS, max=8),
        retry=retry_if_exception_type(GatewayUnavailable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return retrying(fn, *args, **kwargs)


def _as_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def check_amount(session: PaymentSession, outcome: GatewayOutcome) -> GatewayOutcome:
    """
    Recoupe un succès annoncé par la passerelle avec le montant/devise de la session.
    - Un succès sans montant ou avec un montant/devise différent devient 'declined'
      (raison 'amount mismatch'): aucun crédit n'est accordé.
    - Les autres issues sont renvoyées inchangées.
    """
    if outcome.outcome is not Outcome.SUCCEEDED:
        return outcome
    paid = _as_decimal(outcome.amount)
    expected = Decimal(session.amount).quantize(Decimal("0.01"))
    same_currency = (outcome.currency or "").upper() == session.currency.upper()
    if paid is None or paid.quantize(Decimal("0.01")) != expected or not same_currency:
        logger.warning(
            "payments.gateway amount mismatch session=%s expected=%s %s got=%s %s",
            session.session_id, expected, session.currency, outcome.amount, outcome.currency,
        )
        return GatewayOutcome(outcome=Outcome.DECLINED, reason="amount mismatch",
                              amount=outcome.amount, currency=outcome.currency)
    return outcome
