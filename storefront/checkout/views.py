import logging
from typing import Any, Dict

from fastapi import APIRouter, Request, Depends, HTTPException
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from storefront.app_setup.services import Services, get_services
from storefront.utils.security import require_user
from storefront.utils.rate_limit import optional_rate_limit
from .errors import CheckoutError, SessionNotFound

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/checkout", tags=["Checkout API"])


# module storefront.checkout.views
@router.post("/session", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
async def create_checkout_session(
    user: Dict[str, Any] = Depends(require_user),
    services: Services = Depends(get_services),
):
    """
    Crée une session Checkout Stripe pour le panier de l'utilisateur authentifié.
    - Sécurité: require_user + rate limit (10 req / 60s)
    - Aucune commande n'est créée ici (voir webhook)
    - Réponse: {"id", "url"}; 400 si panier vide, 503 si Stripe indisponible
    """
    handle = await run_in_threadpool(services.initiator.create_session, user.get("id", ""), user.get("email"))
    return JSONResponse(handle.model_dump())


@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request, services: Services = Depends(get_services)):
    """
    Webhook Stripe: corps brut + en-tête Stripe-Signature.
    - 400: signature ou payload invalide (Stripe n'insistera pas utilement)
    - 200: {"status": materialized|duplicate|skipped|ignored|logged}
    - 503: stockage ou Stripe indisponible, Stripe relivrera
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    result = await run_in_threadpool(services.webhook.handle, payload, sig_header)
    return JSONResponse(result)


@router.get("/session/{session_id}")
async def get_checkout_session(
    session_id: str,
    user: Dict[str, Any] = Depends(require_user),
    services: Services = Depends(get_services),
):
    """
    Statut d'une session pour la page de succès, lu chez Stripe (pas en base).
    Toute erreur est rendue avec un message générique; le détail reste dans les logs.
    """
    try:
        status = await run_in_threadpool(services.status_reader.read, session_id, user.get("id"))
    except CheckoutError as e:
        logger.warning("checkout.session_status failed session_id=%s error=%s", session_id, type(e).__name__)
        raise HTTPException(status_code=e.http_status, detail=SessionNotFound.public_detail)
    except Exception:
        logger.exception("Erreur get_checkout_session")
        raise HTTPException(status_code=500, detail=SessionNotFound.public_detail)
    return status.model_dump(by_alias=True, mode="json")
