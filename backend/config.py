# backend.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

TEMPLATES_DIR = BASE_DIR / "templates"

"""
Configuration centrale du backend.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, passerelle Telr ou Stripe)
- Paramètre la réconciliation (timeouts, retries, attente du ledger, expiration)
- Paramètre le retour vers l'app native (schéma d'URL, délai, détection du shell)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _env_int(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

def _env_float(name: str, default: float) -> float:
    try:
        return float(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

def _env_list(name: str, default: str) -> list[str]:
    return [x.strip() for x in os.getenv(name, default).split(",") if x.strip()]

# Supabase: URL et clés (anon pour l'auth utilisateur, service pour les écritures serveur)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Cookies / rôles
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
ADMIN_EMAILS = _env_list("ADMIN_EMAILS", "admin@example.com")

# CORS / hôtes
CORS_ORIGINS = _env_list("CORS_ORIGINS", "*")
ALLOWED_HOSTS = _env_list("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")

# URL publique du backend: sert à construire les URLs de retour de la passerelle
BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000").rstrip("/")

# Passerelle active: "telr" (page hébergée, par défaut) ou "stripe" (Checkout)
PAYMENT_GATEWAY = _clean_env(os.getenv("PAYMENT_GATEWAY") or "telr").lower()

# Telr: identifiants marchand et mode test
TELR_API_URL = _clean_env(os.getenv("TELR_API_URL") or "https://secure.telr.com/gateway/order.json")
TELR_STORE_ID = _clean_env(os.getenv("TELR_STORE_ID") or "")
TELR_AUTH_KEY = _clean_env(os.getenv("TELR_AUTH_KEY") or "")
TELR_TEST_MODE = (os.getenv("TELR_TEST_MODE", "true").lower() == "true")

# Stripe: clé secrète et secret webhook
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")

# Appels passerelle: timeout réseau (s), nombre de tentatives, base du backoff exponentiel (s)
GATEWAY_TIMEOUT_SECONDS = _env_float("GATEWAY_TIMEOUT_SECONDS", 10.0)
GATEWAY_MAX_ATTEMPTS = _env_int("GATEWAY_MAX_ATTEMPTS", 3)
GATEWAY_BACKOFF_SECONDS = _env_float("GATEWAY_BACKOFF_SECONDS", 0.5)

# Attente max de l'écriture ledger d'un réconciliateur concurrent (s)
LEDGER_SETTLE_WAIT_SECONDS = _env_float("LEDGER_SETTLE_WAIT_SECONDS", 3.0)
LEDGER_SETTLE_POLL_SECONDS = _env_float("LEDGER_SETTLE_POLL_SECONDS", 0.1)

# Sessions abandonnées: âge au-delà duquel le balayage les expire
PAYMENT_SESSION_TTL_MINUTES = _env_int("PAYMENT_SESSION_TTL_MINUTES", 120)

# Jeton de redirection sans cookie (webview -> navigateur système)
CHECKOUT_TOKEN_TTL_SECONDS = _env_int("CHECKOUT_TOKEN_TTL_SECONDS", 600)

# Retour vers l'app native (Capacitor)
NATIVE_APP_SCHEME = _clean_env(os.getenv("NATIVE_APP_SCHEME") or "saman")
NATIVE_SHELL_UA_MARKERS = _env_list("NATIVE_SHELL_UA_MARKERS", "SamanApp,Capacitor")
NATIVE_HANDOFF_DELAY_MS = _env_int("NATIVE_HANDOFF_DELAY_MS", 1500)

# Les crédits sont-ils exigés pour publier une annonce (affiché côté app)
SUBSCRIPTION_ENABLED = (os.getenv("SUBSCRIPTION_ENABLED", "true").lower() == "true")

# Factures: TVA incluse dans le prix des packs (5% aux EAU) et préfixe de numérotation
VAT_RATE = _clean_env(os.getenv("VAT_RATE") or "0.05")
INVOICE_PREFIX = _clean_env(os.getenv("INVOICE_PREFIX") or "INV")
