from fastapi import Request, HTTPException, Depends
from typing import Optional, Dict, Any
import logging

import backend.config as config
import backend.infra.supabase_client as supabase_client

COOKIE_NAME = "sb_access"

logger = logging.getLogger(__name__)

def determine_role(email: Optional[str], metadata: Optional[Dict[str, Any]]) -> str:
    """Rôle applicatif: 'admin' si l'email est listé dans ADMIN_EMAILS ou si metadata.role == 'admin'."""
    if email and email.strip().lower() in {e.lower() for e in config.ADMIN_EMAILS}:
        return "admin"
    if str((metadata or {}).get("role", "")).lower() == "admin":
        return "admin"
    return "user"

def extract_token(request: Request) -> Optional[str]:
    # Hybride: priorité au Bearer (app native), fallback cookie (web)
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME)

def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """Récupère et normalise l'utilisateur depuis supabase.auth.get_user(access_token)."""
    res = supabase_client.get_supabase().auth.get_user(access_token)
    user = getattr(res, "user", None) or {}
    if not isinstance(user, dict):
        user = {
            "id": getattr(user, "id", None),
            "email": getattr(user, "email", None),
            "user_metadata": getattr(user, "user_metadata", None),
        }
    if user.get("id"):
        user["role"] = determine_role(user.get("email"), user.get("user_metadata"))
    return user

def get_current_user(request: Request) -> Dict[str, Any]:
    token = extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        user = get_user_from_token(token)
    except Exception:
        logger.exception("security.get_current_user token lookup failed")
        raise HTTPException(status_code=401, detail="Session expired, please sign in again")
    if not user.get("id"):
        raise HTTPException(status_code=401, detail="Session expired, please sign in again")
    return user

def require_user(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return user

def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if user.get("role") != "admin":
        raise HTTPException(status_code=403, detail="Forbidden")
    return user
