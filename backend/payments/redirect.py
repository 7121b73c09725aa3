"""
Retour navigateur après paiement: détection du contexte et renvoi vers l'app native.

Le paiement se termine souvent dans le navigateur système du mobile alors que l'achat a
été lancé depuis l'app (shell natif). La page de retour propose alors un lien profond
<scheme>://payment/<issue>?verified=...&cart=... pour rendre la main à l'app.
Aucune logique de crédit ici: la réconciliation est faite avant le rendu de la page.
"""
from typing import Any, Dict, Optional
from urllib.parse import urlencode
import re

from fastapi import Request

import backend.config as config
from backend.payments.models import ReconcileResult

MOBILE_UA = re.compile(r"iPhone|iPad|iPod|Android", re.IGNORECASE)

# Issue affichée/transmise à l'app pour chaque page de retour
PAGE_OUTCOMES = {
    "success": "succeeded",
    "cancelled": "cancelled",
    "declined": "declined",
}


def is_mobile_browser(user_agent: Optional[str]) -> bool:
    return bool(user_agent and MOBILE_UA.search(user_agent))

def is_native_shell(request: Request) -> bool:
    """Requête émise depuis la webview de l'app (marqueur user-agent ou ?source=app)."""
    if (request.query_params.get("source") or "").lower() == "app":
        return True
    ua = request.headers.get("user-agent") or ""
    return any(marker and marker.lower() in ua.lower() for marker in config.NATIVE_SHELL_UA_MARKERS)

def native_handoff_url(outcome: str, *, verified: bool, cart: Optional[str] = None) -> str:
    params = {"verified": "true" if verified else "false"}
    if cart:
        params["cart"] = cart
    return f"{config.NATIVE_APP_SCHEME}://payment/{outcome}?{urlencode(params)}"

def handoff_plan(request: Request, outcome: str, cart: Optional[str], result: Optional[ReconcileResult],
                 pending: bool = False) -> Dict[str, Any]:
    """
    Décide si la page doit tenter de rendre la main à l'app native.
    - Seulement depuis un navigateur mobile qui n'est pas déjà le shell natif.
    - Issue confirmée par la réconciliation -> lien 'verified=true' avec cette issue.
    - Vérification encore en attente -> lien 'verified=false' avec l'issue de la page.
    - Échec de réconciliation (session inconnue, erreur) -> pas de lien.
    """
    disabled = {"enabled": False, "url": None, "delay_ms": 0}
    ua = request.headers.get("user-agent")
    if not is_mobile_browser(ua) or is_native_shell(request):
        return disabled
    if result is None and not pending:
        return disabled
    verified = result is not None
    final_outcome = result.status.value if result is not None else outcome
    return {
        "enabled": True,
        "url": native_handoff_url(final_outcome, verified=verified, cart=cart),
        "delay_ms": config.NATIVE_HANDOFF_DELAY_MS,
    }
