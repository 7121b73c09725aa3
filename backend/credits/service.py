"""
Projection 'factures' des achats crédités.

Une facture par entrée du ledger: le montant payé est TTC (prix du pack), la part hors
taxe et la TVA en sont déduites avec VAT_RATE. Le numéro suit invoice_seq, attribué par
la base à l'écriture de l'entrée: il est donc séquentiel et jamais réutilisé.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Tuple
import logging

import backend.config as config
from backend.credits import repository

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Les deux passerelles encaissent sur une page carte hébergée
PAYMENT_METHODS = {
    "telr": "credit_card",
    "stripe": "credit_card",
}


def _vat_rate() -> Decimal:
    try:
        rate = Decimal(str(config.VAT_RATE))
    except InvalidOperation:
        logger.error("credits.invoices invalid VAT_RATE=%r, using 0", config.VAT_RATE)
        return Decimal("0")
    return rate if rate >= 0 else Decimal("0")

def split_vat(total, rate: Decimal) -> Tuple[Decimal, Decimal, Decimal]:
    """(hors taxe, TVA, TTC) pour un montant TTC; la TVA absorbe l'arrondi."""
    total = Decimal(str(total or "0")).quantize(CENT, rounding=ROUND_HALF_UP)
    base = (total / (Decimal("1") + rate)).quantize(CENT, rounding=ROUND_HALF_UP)
    return base, total - base, total

def invoice_number(seq, created_at) -> str:
    year = str(created_at or "")[:4]
    if year.isdigit():
        return f"{config.INVOICE_PREFIX}-{year}-{int(seq):06d}"
    return f"{config.INVOICE_PREFIX}-{int(seq):06d}"

def to_invoice(row: Dict[str, Any], rate: Decimal) -> Dict[str, Any]:
    base, vat, total = split_vat(row.get("amount_paid"), rate)
    credits = int(row.get("credits_granted") or 0)
    gateway = row.get("gateway") or ""
    return {
        "id": row.get("entry_id"),
        "invoiceNumber": invoice_number(row.get("invoice_seq") or 0, row.get("created_at")),
        "date": row.get("created_at"),
        "sessionId": row.get("session_id"),
        "packageName": row.get("package_name") or f"{credits} credits",
        "category": row.get("category"),
        "credits": credits,
        "paymentMethod": PAYMENT_METHODS.get(gateway, gateway or "credit_card"),
        "currency": row.get("currency"),
        "baseAmount": float(base),
        "vatAmount": float(vat),
        "totalAmount": float(total),
        "status": "paid",
    }

def list_invoices(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    rate = _vat_rate()
    return [to_invoice(row, rate) for row in repository.list_invoices(user_id, limit=limit)]
