from typing import Any, Dict
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

import backend.config as config
import backend.infra.supabase_client as supabase_client
from backend.utils.rate_limit import rate_limit_health_info

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

# Tables indispensables au parcours d'achat
PROBE_TABLES = ("packages", "payment_sessions", "credit_ledger", "user_credit_balances")

def health_supabase_info() -> Dict[str, Any]:
    """Configuration Supabase présente + lecture d'une ligne par table critique."""
    info: Dict[str, Any] = {
        "configured": bool(config.SUPABASE_URL and config.SUPABASE_SERVICE_KEY),
        "tables": {},
    }
    if not info["configured"]:
        info["ok"] = False
        return info
    try:
        client = supabase_client.get_service_supabase()
    except Exception as exc:
        logger.exception("health.supabase client init failed")
        info.update(ok=False, error=str(exc))
        return info
    for table in PROBE_TABLES:
        try:
            client.table(table).select("*").limit(1).execute()
            info["tables"][table] = "ok"
        except Exception as exc:
            logger.warning("health.supabase table=%s failed: %s", table, exc)
            info["tables"][table] = "error"
    info["ok"] = all(v == "ok" for v in info["tables"].values())
    return info

@router.get("")
def health_root():
    return {"ok": True, "gateway": config.PAYMENT_GATEWAY}

@router.get("/supabase")
def health_supabase():
    info = health_supabase_info()
    return JSONResponse(info, status_code=200 if info.get("ok") else 503)

@router.get("/rate-limit")
def health_rate_limit(request: Request):
    return rate_limit_health_info(request)
