# module backend.catalog.views
from typing import Any, Dict

from fastapi import APIRouter
from pydantic import ValidationError
import logging

from backend.catalog import repository
from backend.catalog.models import PackageDefinition

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/packages", tags=["Packages API"])

@router.get("")
def list_packages() -> Dict[str, Any]:
    """Liste publique des packs actifs (les lignes invalides sont ignorées et journalisées)."""
    packages = []
    for row in repository.list_packages():
        try:
            packages.append(PackageDefinition.from_row(row).to_public())
        except ValidationError:
            logger.warning("catalog.list_packages skipped invalid row id=%s", row.get("id"))
    return {"packages": packages}
