# module backend.credits.views

"""Endpoints crédits de l'utilisateur connecté.
- /api/v1/credits: solde par catégorie (+ indicateur 'subscriptionEnabled' pour l'app)
- /api/v1/credits/transactions: historique des achats crédités (ledger)
- /api/v1/credits/invoices: factures (hors taxe, TVA, TTC) des mêmes achats
Lecture seule: seul le service de réconciliation écrit dans le ledger.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from backend.config import SUBSCRIPTION_ENABLED
from backend.credits import repository
from backend.credits import service as credits_service
from backend.utils.security import require_user

router = APIRouter(prefix="/api/v1/credits", tags=["Credits API"])

@router.get("")
def get_credits(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    balance = repository.get_balance(user.get("id"))
    return {
        "sparePartsCredits": int(balance.get("spare_parts_credits") or 0),
        "automotiveCredits": int(balance.get("automotive_credits") or 0),
        "subscriptionEnabled": SUBSCRIPTION_ENABLED,
    }

@router.get("/transactions")
def get_transactions(limit: int = 50, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    entries = repository.list_entries(user.get("id"), limit=max(1, min(limit, 200)))
    return {
        "transactions": [
            {
                "id": e.get("entry_id"),
                "sessionId": e.get("session_id"),
                "category": e.get("category"),
                "credits": int(e.get("credits_granted") or 0),
                "amount": str(e.get("amount_paid") or "0"),
                "currency": e.get("currency"),
                "createdAt": e.get("created_at"),
            }
            for e in entries
        ]
    }

@router.get("/invoices")
def get_invoices(limit: int = 50, user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    return {"invoices": credits_service.list_invoices(user.get("id"), limit=max(1, min(limit, 200)))}
