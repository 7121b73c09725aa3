"""
Adaptateur Telr (page de paiement hébergée).

API JSON unique (order.json) pilotée par le champ 'method':
- create: crée la commande, renvoie order.ref et order.url (page hébergée)
- check: renvoie l'état autoritaire de la commande (order.status.code)

Codes de statut Telr: 1 en attente, 2 autorisé, 3 payé, -1 expiré, -2 annulé, -3 refusé.
Une erreur fonctionnelle est renvoyée en HTTP 200 avec un bloc 'error'.
"""
from typing import Any, Dict, Optional
import logging

import requests

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

STATUS_OUTCOMES = {
    1: Outcome.PENDING,
    2: Outcome.SUCCEEDED,
    3: Outcome.SUCCEEDED,
    -1: Outcome.EXPIRED,
    -2: Outcome.CANCELLED,
    -3: Outcome.DECLINED,
}


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    """Retire récursivement les champs vides (Telr refuse certains champs vides)."""
    out: Dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            value = _compact(value)
            if not value:
                continue
        elif value is None or value == "":
            continue
        out[key] = value
    return out


class TelrGateway(GatewayAdapter):
    name = "telr"

    def __init__(
        self,
        *,
        store_id: Optional[str] = None,
        auth_key: Optional[str] = None,
        api_url: Optional[str] = None,
        test_mode: Optional[bool] = None,
        timeout: Optional[float] = None,
    ):
        self.store_id = store_id if store_id is not None else config.TELR_STORE_ID
        self.auth_key = auth_key if auth_key is not None else config.TELR_AUTH_KEY
        self.api_url = api_url or config.TELR_API_URL
        self.test_mode = config.TELR_TEST_MODE if test_mode is None else test_mode
        self.timeout = timeout or config.GATEWAY_TIMEOUT_SECONDS

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST vers l'API Telr.
        - Réseau/timeout/5xx/réponse illisible -> GatewayUnavailable (rejouable)
        - 4xx ou bloc 'error' -> GatewayRejected (non rejouable)
        """
        body = {"store": self.store_id, "authkey": self.auth_key, **payload}
        method = payload.get("method")
        try:
            resp = requests.post(
                self.api_url,
                json=body,
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("payments.telr %s network error: %s", method, exc)
            raise GatewayUnavailable(detail=f"telr {method}: {exc}") from exc

        if resp.status_code >= 500:
            raise GatewayUnavailable(detail=f"telr {method}: HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise GatewayRejected(detail=f"telr {method}: HTTP {resp.status_code} {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise GatewayUnavailable(detail=f"telr {method}: invalid JSON") from exc

        error = (data or {}).get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            note = error.get("note") if isinstance(error, dict) else None
            logger.warning("payments.telr %s rejected message=%s note=%s", method, message, note)
            raise GatewayRejected(detail=f"telr {method}: {message} {note or ''}".strip())
        return data or {}

    def initiate_order(self, session: PaymentSession, buyer: BuyerDetails, return_urls: ReturnUrls) -> OrderResult:
        payload = {
            "method": "create",
            "framed": 0,
            "order": {
                "cartid": session.session_id,
                "test": 1 if self.test_mode else 0,
                "amount": f"{session.amount:.2f}",
                "currency": session.currency,
                "description": f"{session.credits} {session.category.replace('_', ' ')} credits",
            },
            "return": {
                "authorised": return_urls.succeeded,
                "declined": return_urls.declined,
                "cancelled": return_urls.cancelled,
            },
            "customer": _compact({
                "ref": session.user_id,
                "email": str(buyer.email),
                "name": {"forenames": buyer.first_name, "surname": buyer.last_name},
                "address": {
                    "line1": buyer.address,
                    "city": buyer.city,
                    "state": buyer.state,
                    "country": buyer.country,
                    "areacode": buyer.postal_code,
                },
                "phone": buyer.phone,
            }),
        }
        data = self._post(payload)
        order = data.get("order") or {}
        ref, url = order.get("ref"), order.get("url")
        if not ref or not url:
            raise GatewayRejected(detail="telr create: response without order ref/url")
        logger.info("payments.telr order created session=%s ref=%s", session.session_id, ref)
        return OrderResult(order_ref=str(ref), redirect_url=str(url))

    def confirm_outcome(self, session: PaymentSession) -> GatewayOutcome:
        if not session.gateway_order_ref:
            raise GatewayRejected(detail="telr check: session has no order ref")
        data = self._post({"method": "check", "order": {"ref": session.gateway_order_ref}})
        order = data.get("order") or {}

        cartid = order.get("cartid")
        if cartid and str(cartid) != session.session_id:
            logger.warning("payments.telr cartid mismatch session=%s cartid=%s", session.session_id, cartid)
            return GatewayOutcome(outcome=Outcome.DECLINED, reason="order does not match session")

        status = order.get("status") or {}
        try:
            code = int(status.get("code"))
        except (TypeError, ValueError):
            raise GatewayUnavailable(detail=f"telr check: unreadable status {status!r}") from None
        outcome = STATUS_OUTCOMES.get(code, Outcome.PENDING)

        reason = None
        if outcome is Outcome.DECLINED:
            transaction = order.get("transaction") or {}
            reason = transaction.get("message") or status.get("text") or "declined"
        return GatewayOutcome(
            outcome=outcome,
            reason=reason,
            amount=order.get("amount"),
            currency=order.get("currency"),
        )
