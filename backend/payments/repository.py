"""
Accès aux données pour la feature 'payments' (table 'payment_sessions').

Toutes les écritures passent par le client service-role. La transition vers un statut
terminal est une mise à jour conditionnelle unique (WHERE status = 'pending'):
c'est le seul point de sérialisation entre réconciliations concurrentes, quel que soit
le process ou l'instance qui les traite.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

import backend.infra.supabase_client as supabase_client
from backend.payments.errors import StorageError

logger = logging.getLogger(__name__)

TABLE = "payment_sessions"
PENDING = "pending"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def _first(res) -> Optional[dict]:
    rows = getattr(res, "data", None) or []
    return rows[0] if isinstance(rows, list) and rows else None

# module backend.payments.repository
def insert_session(row: Dict[str, Any]) -> dict:
    """
    Persiste une nouvelle session (statut 'pending').
    - Soulève StorageError si l'insertion échoue ou ne renvoie aucune ligne.
    """
    try:
        res = supabase_client.get_service_supabase().table(TABLE).insert(row).execute()
    except Exception as exc:
        logger.exception("payments.repository.insert_session failed user_id=%s package_id=%s",
                         row.get("user_id"), row.get("package_id"))
        raise StorageError(detail=str(exc)) from exc
    created = _first(res)
    if not created:
        raise StorageError(detail="insert returned no row")
    return created

def get_session(session_id: str) -> Optional[dict]:
    """
    Lecture d'une session par son identifiant.
    - None si introuvable; StorageError si la base ne répond pas
      (une panne ne doit pas être confondue avec une session inconnue).
    """
    if not session_id:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .eq("session_id", session_id)
            .limit(1)
            .execute()
        )
    except Exception as exc:
        logger.exception("payments.repository.get_session failed session=%s", session_id)
        raise StorageError(detail=str(exc)) from exc
    return _first(res)

def attach_gateway_order(session_id: str, gateway: str, order_ref: str) -> bool:
    """Enregistre la référence de commande passerelle (tant que la session est 'pending')."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .update({"gateway": gateway, "gateway_order_ref": order_ref})
            .eq("session_id", session_id)
            .eq("status", PENDING)
            .execute()
        )
    except Exception as exc:
        logger.exception("payments.repository.attach_gateway_order failed session=%s", session_id)
        raise StorageError(detail=str(exc)) from exc
    return _first(res) is not None

def transition_terminal(session_id: str, status: str, decline_reason: Optional[str] = None) -> Optional[dict]:
    """
    Fait passer atomiquement une session de 'pending' à un statut terminal.
    - UPDATE ... WHERE session_id = :id AND status = 'pending' RETURNING *
    - Retourne la ligne mise à jour si cet appelant a gagné la transition,
      None si la session était déjà terminale (un autre appelant a gagné).
    """
    if status == PENDING:
        raise ValueError("transition_terminal requires a terminal status")
    values: Dict[str, Any] = {"status": status, "resolved_at": _now_iso()}
    if decline_reason:
        values["decline_reason"] = decline_reason[:500]
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .update(values)
            .eq("session_id", session_id)
            .eq("status", PENDING)
            .execute()
        )
    except Exception as exc:
        logger.exception("payments.repository.transition_terminal failed session=%s status=%s", session_id, status)
        raise StorageError(detail=str(exc)) from exc
    return _first(res)

def set_checkout_token(session_id: str, token: str, expires_at: datetime, redirect_url: str) -> bool:
    """Associe un jeton de redirection à usage unique (et l'URL passerelle cible) à la session."""
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .update({
                "checkout_token": token,
                "checkout_token_expires_at": expires_at.isoformat(),
                "checkout_redirect_url": redirect_url,
            })
            .eq("session_id", session_id)
            .eq("status", PENDING)
            .execute()
        )
    except Exception as exc:
        logger.exception("payments.repository.set_checkout_token failed session=%s", session_id)
        raise StorageError(detail=str(exc)) from exc
    return _first(res) is not None

def consume_checkout_token(token: str) -> Optional[dict]:
    """
    Consomme un jeton de redirection (usage unique): efface le jeton par une mise à jour
    conditionnelle et retourne la ligne, ou None si le jeton est inconnu/déjà utilisé.
    L'expiration est vérifiée par l'appelant.
    """
    if not token:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .update({"checkout_token": None})
            .eq("checkout_token", token)
            .eq("status", PENDING)
            .execute()
        )
    except Exception as exc:
        logger.exception("payments.repository.consume_checkout_token failed")
        raise StorageError(detail=str(exc)) from exc
    return _first(res)

def list_stale_pending(older_than: datetime, limit: int = 100) -> List[dict]:
    """
    Sessions 'pending' créées avant older_than (balayage d'expiration).
    Jamais vérifiées d'abord, puis les moins récemment vérifiées: une session laissée
    'pending' par une passerelle injoignable passe derrière les autres au tour suivant.
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .select("*")
            .eq("status", PENDING)
            .lt("created_at", older_than.isoformat())
            .order("last_checked_at", nullsfirst=True)
            .order("created_at")
            .limit(limit)
            .execute()
        )
    except Exception as exc:
        logger.exception("payments.repository.list_stale_pending failed")
        raise StorageError(detail=str(exc)) from exc
    return res.data or []

def mark_checked(session_id: str) -> None:
    """Horodate la dernière interrogation passerelle d'une session restée 'pending'."""
    try:
        (
            supabase_client.get_service_supabase()
            .table(TABLE)
            .update({"last_checked_at": _now_iso()})
            .eq("session_id", session_id)
            .eq("status", PENDING)
            .execute()
        )
    except Exception as exc:
        logger.exception("payments.repository.mark_checked failed session=%s", session_id)
        raise StorageError(detail=str(exc)) from exc

def list_uncredited_succeeded(limit: int = 500) -> List[dict]:
    """
    Sessions 'succeeded' sans entrée au ledger (vue uncredited_succeeded_sessions,
    anti-jointure sur toute la table), les plus anciennes d'abord.
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("uncredited_succeeded_sessions")
            .select("*")
            .order("resolved_at")
            .limit(limit)
            .execute()
        )
    except Exception as exc:
        logger.exception("payments.repository.list_uncredited_succeeded failed")
        raise StorageError(detail=str(exc)) from exc
    return res.data or []
