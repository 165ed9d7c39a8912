# marketplace.config
from decimal import Decimal
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du backend marketplace.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, PayPal, Redis)
- Expose les paramètres métier (devise, commission par défaut, timeout processeur)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")

def is_configured(value: str) -> bool:
    """Une valeur vide ou contenant le placeholder 'REPLACE' est considérée absente."""
    return bool(value) and "REPLACE" not in value.upper()

# Supabase: URL et clés (anon/service)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON_KEY = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
SUPABASE_URL = SUPABASE_URL.rstrip("/")

# PayPal: identifiants REST, compte partenaire et marchand de la plateforme
PAYPAL_CLIENT_ID = _clean_env(os.getenv("PAYPAL_CLIENT_ID") or "")
PAYPAL_SECRET = _clean_env(os.getenv("PAYPAL_SECRET") or "")
PAYPAL_API_BASE_URL = _clean_env(os.getenv("PAYPAL_API_BASE_URL") or "https://api-m.sandbox.paypal.com").rstrip("/")
PAYPAL_PARTNER_ID = _clean_env(os.getenv("PAYPAL_PARTNER_ID") or "")
PAYPAL_PLATFORM_MERCHANT_ID = _clean_env(os.getenv("PAYPAL_PLATFORM_MERCHANT_ID") or "")
PAYPAL_BN_CODE = _clean_env(os.getenv("PAYPAL_BN_CODE") or "")
PAYPAL_WEBHOOK_ID = _clean_env(os.getenv("PAYPAL_WEBHOOK_ID") or "")
# Développement local uniquement: accepte les webhooks sans vérification de signature
PAYPAL_WEBHOOK_VERIFY_DISABLED = _flag("PAYPAL_WEBHOOK_VERIFY_DISABLED")
PAYPAL_TIMEOUT_SECONDS = float(os.getenv("PAYPAL_TIMEOUT_SECONDS", "10"))

# Paramètres métier
PAYMENT_CURRENCY = _clean_env(os.getenv("PAYMENT_CURRENCY") or "USD").upper()
DEFAULT_COMMISSION_RATE = Decimal(_clean_env(os.getenv("DEFAULT_COMMISSION_RATE") or "0.15"))
BRAND_NAME = os.getenv("BRAND_NAME", "SoundMarket")
RETURN_BASE_URL = _clean_env(os.getenv("RETURN_BASE_URL") or "http://localhost:8000").rstrip("/")

# Redis: store clé-valeur partagé (rate limiting, jetons, déduplication webhooks)
REDIS_URL = _clean_env(os.getenv("REDIS_URL") or os.getenv("RATE_LIMIT_REDIS_URL") or "redis://127.0.0.1:6379/0")
USE_FAKE_REDIS_FOR_TESTS = os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1"

# Cookies / CORS / hôtes
COOKIE_SECURE = _flag("COOKIE_SECURE")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]
