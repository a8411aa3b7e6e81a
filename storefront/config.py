# storefront.config
from pathlib import Path
import os
from typing import List
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

"""
Configuration centrale de la boutique.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe), sécurité cookies, CORS/hosts
- Paramètres du checkout: devise, redirections, livraison, source de réconciliation
- load_settings(): instantané figé, construit au démarrage et injecté dans les services
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    raw = _clean_env(os.getenv(name) or "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default

def _list_env(name: str, default: str) -> List[str]:
    return [x.strip() for x in os.getenv(name, default).split(",") if x.strip()]

# Supabase: URL et clés (anon pour valider les jetons, service pour les écritures)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Cookies / CORS / hosts
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
CORS_ORIGINS = _list_env("CORS_ORIGINS", "*")
ALLOWED_HOSTS = _list_env("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")
ADMIN_EMAILS = _list_env("ADMIN_EMAILS", "admin@example.com")

# Stripe: clés, secret webhook et bornes réseau
STRIPE_PUBLIC_KEY = _clean_env(os.getenv("STRIPE_PUBLIC_KEY") or "")
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
STRIPE_TIMEOUT_SECONDS = _int_env("STRIPE_TIMEOUT_SECONDS", 10)
STRIPE_MAX_NETWORK_RETRIES = _int_env("STRIPE_MAX_NETWORK_RETRIES", 2)
STRIPE_WEBHOOK_TOLERANCE = _int_env("STRIPE_WEBHOOK_TOLERANCE", 300)

# Checkout
CHECKOUT_CURRENCY = _clean_env(os.getenv("CHECKOUT_CURRENCY") or "jpy").lower()
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/checkout/success")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/cart")
CHECKOUT_ALLOWED_COUNTRIES = [c.upper() for c in _list_env("CHECKOUT_ALLOWED_COUNTRIES", "JP")]
SHIPPING_FEE = _int_env("SHIPPING_FEE", 0)
FREE_SHIPPING_THRESHOLD = _int_env("FREE_SHIPPING_THRESHOLD", 10000)

# "snapshot": lignes figées chez Stripe à la création de session; "cart": panier courant (historique)
RECONCILE_FROM = _clean_env(os.getenv("RECONCILE_FROM") or "snapshot").lower()

BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000").rstrip("/")


class Settings(BaseModel):
    """Instantané figé de la configuration, passé explicitement aux services."""
    model_config = ConfigDict(frozen=True)

    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_key: str = ""
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_timeout_seconds: int = 10
    stripe_max_network_retries: int = 2
    stripe_webhook_tolerance: int = 300
    currency: str = "jpy"
    base_url: str = "http://localhost:8000"
    success_path: str = "/checkout/success"
    cancel_path: str = "/cart"
    allowed_countries: List[str] = ["JP"]
    shipping_fee: int = 0
    free_shipping_threshold: int = 10000
    reconcile_from: str = "snapshot"
    admin_emails: List[str] = []


def load_settings() -> Settings:
    """Construit Settings depuis les constantes du module (chargées depuis l'environnement)."""
    return Settings(
        supabase_url=SUPABASE_URL,
        supabase_anon_key=SUPABASE_ANON,
        supabase_service_key=SUPABASE_SERVICE_KEY,
        stripe_secret_key=STRIPE_SECRET_KEY,
        stripe_webhook_secret=STRIPE_WEBHOOK_SECRET,
        stripe_timeout_seconds=STRIPE_TIMEOUT_SECONDS,
        stripe_max_network_retries=STRIPE_MAX_NETWORK_RETRIES,
        stripe_webhook_tolerance=STRIPE_WEBHOOK_TOLERANCE,
        currency=CHECKOUT_CURRENCY,
        base_url=BASE_URL,
        success_path=CHECKOUT_SUCCESS_PATH,
        cancel_path=CHECKOUT_CANCEL_PATH,
        allowed_countries=CHECKOUT_ALLOWED_COUNTRIES,
        shipping_fee=SHIPPING_FEE,
        free_shipping_threshold=FREE_SHIPPING_THRESHOLD,
        reconcile_from=RECONCILE_FROM if RECONCILE_FROM in ("snapshot", "cart") else "snapshot",
        admin_emails=ADMIN_EMAILS,
    )
