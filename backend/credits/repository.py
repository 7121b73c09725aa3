"""
Ledger des crédits (table 'credit_ledger', append-only) et soldes ('user_credit_balances').

L'écriture d'une entrée et l'incrément du solde se font dans une seule transaction Postgres
(fonction grant_session_credits appelée via rpc): jamais d'état observable
"entrée écrite, solde non mis à jour" ni l'inverse. UNIQUE(session_id) sur le ledger
double la garantie d'unicité apportée par la transition atomique de la session.
"""
from typing import Any, Dict, List, Optional
from decimal import Decimal
import logging

import backend.infra.supabase_client as supabase_client
from backend.payments.errors import StorageError

logger = logging.getLogger(__name__)

LEDGER_TABLE = "credit_ledger"
INVOICE_VIEW = "user_invoices"
BALANCE_TABLE = "user_credit_balances"

# module backend.credits.repository
def grant(
    *,
    session_id: str,
    user_id: str,
    category: str,
    credits: int,
    amount_paid: Decimal,
    currency: str,
) -> dict:
    """
    Crédite l'utilisateur pour une session payée (au plus une fois par session_id).
    - Si une entrée existe déjà pour la session, la fonction SQL la renvoie telle quelle
      sans toucher au solde.
    - Retour: l'entrée du ledger, avec l'instantané des soldes après crédit.
    - Soulève StorageError en cas d'échec: l'erreur n'est jamais avalée.
    """
    params = {
        "p_session_id": session_id,
        "p_user_id": user_id,
        "p_category": category,
        "p_credits": int(credits),
        "p_amount_paid": str(amount_paid),
        "p_currency": currency,
    }
    try:
        res = supabase_client.get_service_supabase().rpc("grant_session_credits", params).execute()
    except Exception as exc:
        logger.exception("credits.repository.grant failed session=%s user_id=%s", session_id, user_id)
        raise StorageError(detail=str(exc)) from exc
    data = getattr(res, "data", None)
    entry = data[0] if isinstance(data, list) and data else data
    if not entry:
        raise StorageError(detail=f"grant_session_credits returned nothing for session={session_id}")
    return entry

def get_entry_by_session(session_id: str) -> Optional[dict]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(LEDGER_TABLE)
            .select("*")
            .eq("session_id", session_id)
            .limit(1)
            .execute()
        )
    except Exception as exc:
        logger.exception("credits.repository.get_entry_by_session failed session=%s", session_id)
        raise StorageError(detail=str(exc)) from exc
    rows = res.data or []
    return rows[0] if rows else None

def get_balance(user_id: str) -> Dict[str, Any]:
    """
    Solde courant de l'utilisateur; un utilisateur sans ligne a un solde nul.
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(BALANCE_TABLE)
            .select("*")
            .eq("user_id", user_id)
            .limit(1)
            .execute()
        )
    except Exception as exc:
        logger.exception("credits.repository.get_balance failed user_id=%s", user_id)
        raise StorageError(detail=str(exc)) from exc
    rows = res.data or []
    if not rows:
        return {"user_id": user_id, "spare_parts_credits": 0, "automotive_credits": 0}
    return rows[0]

def list_entries(user_id: str, limit: int = 50) -> List[dict]:
    """Historique des crédits de l'utilisateur (plus récents d'abord)."""
    if not user_id:
        return []
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(LEDGER_TABLE)
            .select("entry_id, session_id, category, credits_granted, amount_paid, currency, created_at")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("credits.repository.list_entries failed user_id=%s", user_id)
        return []

def list_invoices(user_id: str, limit: int = 50) -> List[dict]:
    """
    Lignes de facture de l'utilisateur (vue user_invoices: ledger + session + pack),
    plus récentes d'abord. Contrairement à l'historique, une panne remonte en StorageError:
    une liste de factures vide serait trompeuse.
    """
    if not user_id:
        return []
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(INVOICE_VIEW)
            .select("*")
            .eq("user_id", user_id)
            .order("invoice_seq", desc=True)
            .limit(limit)
            .execute()
        )
    except Exception as exc:
        logger.exception("credits.repository.list_invoices failed user_id=%s", user_id)
        raise StorageError(detail=str(exc)) from exc
    return res.data or []
