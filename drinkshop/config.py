# drinkshop.config
from decimal import Decimal
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)

"""
Configuration centrale du backend.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Paystack, SMTP)
- Expose les réglages du pipeline de paiement (tolérance de montant, devise)
- Expose les réglages de notification (transports primaire/secours, retries)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _env_bool(name: str, default: str = "false") -> bool:
    return _clean_env(os.getenv(name, default)).lower() in ("1", "true", "yes")

def _env_int(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name, "")) or default)
    except ValueError:
        return default

def _env_float(name: str, default: float) -> float:
    try:
        return float(_clean_env(os.getenv(name, "")) or default)
    except ValueError:
        return default

# Supabase: URL et clés (anon/service)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON_KEY = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Paystack: clé API, secret de signature webhook et endpoint
PAYSTACK_SECRET_KEY = _clean_env(os.getenv("PAYSTACK_SECRET_KEY") or "")
PAYSTACK_WEBHOOK_SECRET = _clean_env(os.getenv("PAYSTACK_WEBHOOK_SECRET") or "") or PAYSTACK_SECRET_KEY
PAYSTACK_BASE_URL = _clean_env(os.getenv("PAYSTACK_BASE_URL") or "https://api.paystack.co").rstrip("/")
PAYSTACK_TIMEOUT = _env_float("PAYSTACK_TIMEOUT", 10.0)
PAYSTACK_SIGNATURE_HEADER = "x-paystack-signature"

# Montants: devise, échelle des unités mineures, tolérance de rapprochement
CURRENCY = _clean_env(os.getenv("CURRENCY") or "GHS")
CURRENCY_MINOR_UNITS = _env_int("CURRENCY_MINOR_UNITS", 100)
AMOUNT_TOLERANCE = Decimal(_clean_env(os.getenv("AMOUNT_TOLERANCE") or "1.00"))

DEFAULT_COUNTRY = _clean_env(os.getenv("DEFAULT_COUNTRY") or "Ghana")

# Front: redirections après vérification / initialisation
FRONTEND_URL = _clean_env(os.getenv("FRONTEND_URL") or "http://localhost:8080").rstrip("/")
ORDERS_REDIRECT_URL = f"{FRONTEND_URL}/orders"

# Notifications: destinataires admin et transports SMTP
ADMIN_EMAILS = [e.strip() for e in os.getenv("ADMIN_EMAILS", os.getenv("ADMIN_EMAIL", "")).split(",") if e.strip()]

SMTP_HOST = _clean_env(os.getenv("SMTP_HOST") or "")
SMTP_PORT = _env_int("SMTP_PORT", 465)
SMTP_USER = _clean_env(os.getenv("SMTP_USER") or "")
SMTP_PASS = _clean_env(os.getenv("SMTP_PASS") or "")
SMTP_USE_SSL = _env_bool("SMTP_USE_SSL", "true")

# Transport de secours (optionnel): actif si SMTP_FALLBACK_HOST est défini
SMTP_FALLBACK_HOST = _clean_env(os.getenv("SMTP_FALLBACK_HOST") or "")
SMTP_FALLBACK_PORT = _env_int("SMTP_FALLBACK_PORT", 587)
SMTP_FALLBACK_USER = _clean_env(os.getenv("SMTP_FALLBACK_USER") or "")
SMTP_FALLBACK_PASS = _clean_env(os.getenv("SMTP_FALLBACK_PASS") or "")
SMTP_FALLBACK_USE_SSL = _env_bool("SMTP_FALLBACK_USE_SSL", "false")

MAIL_FROM = _clean_env(os.getenv("MAIL_FROM") or "") or SMTP_USER
MAIL_FROM_NAME = _clean_env(os.getenv("MAIL_FROM_NAME") or "Drink Shop")
MAIL_TIMEOUT = _env_float("MAIL_TIMEOUT", 10.0)
MAIL_MAX_ATTEMPTS = _env_int("MAIL_MAX_ATTEMPTS", 3)
MAIL_RETRY_DELAY = _env_float("MAIL_RETRY_DELAY", 0.5)

# HTTP: CORS, hôtes
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]

LOG_LEVEL = _clean_env(os.getenv("LOG_LEVEL") or "INFO").upper()
