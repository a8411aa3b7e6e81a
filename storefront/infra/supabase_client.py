"""
Construction des clients Supabase et exécution des requêtes PostgREST.
Aucun singleton de module: le lifespan crée les clients et les range dans app.state,
les repositories les reçoivent par injection.
"""
import logging

import httpx
from postgrest.exceptions import APIError
from supabase import create_client, Client

from storefront.config import Settings
from storefront.checkout.errors import InvalidReference, StorageUnavailable, UniqueViolation

logger = logging.getLogger(__name__)

# Code SQLSTATE renvoyé par PostgREST sur violation de contrainte unique
UNIQUE_VIOLATION = "23505"
# FK violation, texte non convertible (uuid mal formé), CHECK violation
INVALID_INPUT_CODES = {"23503", "22P02", "23514"}


def create_service_client(settings: Settings) -> Client:
    """Client service-role (bypass RLS): écritures du checkout et du webhook."""
    if not settings.supabase_url or not settings.supabase_service_key:
        raise RuntimeError("SUPABASE_URL/SUPABASE_SERVICE_KEY manquants pour create_service_client()")
    return create_client(settings.supabase_url, settings.supabase_service_key)


def create_anon_client(settings: Settings) -> Client:
    """Client 'anon': sert uniquement à valider les jetons Bearer (auth.get_user)."""
    if not settings.supabase_url or not settings.supabase_anon_key:
        raise RuntimeError("SUPABASE_URL/SUPABASE_ANON_KEY manquants pour create_anon_client()")
    return create_client(settings.supabase_url, settings.supabase_anon_key)


def execute(builder, op: str, *, client_input: bool = False, **ctx):
    """
    Exécute une requête PostgREST et normalise les erreurs:
    - 23505 => UniqueViolation (la clé d'idempotence a déjà été posée)
    - client_input=True: 23503/22P02/23514 => InvalidReference (4xx, identifiants fournis par le client)
    - toute autre erreur API ou transport => StorageUnavailable (jamais avalée)
    Le webhook n'active pas client_input: toute erreur y reste un 503 qui provoque une relivraison.
    """
    try:
        return builder.execute()
    except APIError as e:
        code = str(getattr(e, "code", "") or "")
        if code == UNIQUE_VIOLATION:
            raise UniqueViolation(str(e), op=op, **ctx)
        if client_input and code in INVALID_INPUT_CODES:
            logger.info("%s rejected code=%s %s", op, code, ctx)
            raise InvalidReference(str(e), op=op, code=code, **ctx)
        logger.exception("%s failed %s", op, ctx)
        raise StorageUnavailable(str(e), op=op, **ctx)
    except httpx.HTTPError as e:
        logger.exception("%s transport failure %s", op, ctx)
        raise StorageUnavailable(str(e), op=op, **ctx)
