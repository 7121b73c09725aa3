"""
Accès au catalogue des packs de crédits (table 'packages').
Lecture seule: le catalogue est administré hors de ce service.
"""
from typing import List, Optional
import logging

import backend.infra.supabase_client as supabase_client
from backend.payments.errors import StorageError

logger = logging.getLogger(__name__)

# module backend.catalog.repository
def list_packages() -> List[dict]:
    """
    Packs actifs, triés par catégorie puis prix.
    - Retourne [] en cas d'erreur (l'écran d'achat affiche alors une liste vide).
    """
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("packages")
            .select("*")
            .eq("active", True)
            .order("category")
            .order("price")
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("catalog.repository.list_packages failed")
        return []

def get_package(package_id: str) -> Optional[dict]:
    """
    Récupère un pack par son id (actif ou non: l'appelant décide).
    """
    if not package_id:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("packages")
            .select("*")
            .eq("id", str(package_id))
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception as exc:
        logger.exception("catalog.repository.get_package failed id=%s", package_id)
        raise StorageError(detail=str(exc)) from exc
