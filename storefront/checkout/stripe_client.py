"""
Adaptateur Stripe: centralise les appels et la vérification des webhooks.
StripeGateway est construit une fois par le lifespan puis injecté (pas de stripe.api_key global).
Tous les appels sortants ont un timeout borné; les erreurs réseau deviennent ProviderUnavailable.
"""
import logging
from typing import Any, Dict, List, Optional

import stripe

from storefront.config import Settings
from .errors import ProviderUnavailable, SessionNotFound, SignatureInvalid

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)


def _as_dict(obj: Any) -> Dict[str, Any]:
    """Convertit un StripeObject en dict python (récursif selon la version du SDK)."""
    if type(obj) is dict:
        return obj
    for attr in ("to_dict", "to_dict_recursive"):
        fn = getattr(obj, attr, None)
        if callable(fn):
            return fn()
    return dict(obj)


# module storefront.checkout.stripe_client
class StripeGateway:
    def __init__(self, client: "stripe.StripeClient", webhook_secret: str, tolerance: int = 300):
        self._client = client
        self._webhook_secret = webhook_secret or ""
        self._tolerance = tolerance

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        """
        Prépare un StripeClient prêt à l'emploi.
        - timeout HTTP: settings.stripe_timeout_seconds
        - retries réseau du SDK (avec clés d'idempotence): settings.stripe_max_network_retries
        """
        http_client = stripe.RequestsClient(timeout=settings.stripe_timeout_seconds)
        client = stripe.StripeClient(
            settings.stripe_secret_key,
            http_client=http_client,
            max_network_retries=settings.stripe_max_network_retries,
        )
        return cls(client, settings.stripe_webhook_secret, settings.stripe_webhook_tolerance)

    def create_session(
        self,
        *,
        line_items: List[Dict[str, Any]],
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        customer_email: Optional[str] = None,
        allowed_countries: Optional[List[str]] = None,
        shipping_options: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Crée une session Stripe Checkout (mode payment).
        Retour: dict session (ex: {"id": "cs_test_...", "url": "https://..."})
        """
        params: Dict[str, Any] = {
            "mode": "payment",
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
            "phone_number_collection": {"enabled": True},
        }
        if customer_email:
            params["customer_email"] = customer_email
        if allowed_countries:
            params["shipping_address_collection"] = {"allowed_countries": allowed_countries}
        if shipping_options:
            params["shipping_options"] = shipping_options
        try:
            session = self._client.checkout.sessions.create(params=params)
        except _TRANSIENT_ERRORS as e:
            logger.warning("stripe.create_session transient failure: %s", e)
            raise ProviderUnavailable(str(e))
        except stripe.StripeError as e:
            logger.exception("stripe.create_session rejected")
            raise ProviderUnavailable(str(e))
        return _as_dict(session)

    def retrieve_session(self, session_id: str) -> Dict[str, Any]:
        """Lit une session Checkout; SessionNotFound si Stripe ne la connaît pas (expirée/invalide)."""
        if not session_id:
            raise SessionNotFound("session_id manquant")
        try:
            session = self._client.checkout.sessions.retrieve(session_id)
        except stripe.InvalidRequestError as e:
            raise SessionNotFound(str(e), session_id=session_id)
        except stripe.StripeError as e:
            logger.warning("stripe.retrieve_session failure session_id=%s: %s", session_id, e)
            raise ProviderUnavailable(str(e))
        return _as_dict(session)

    def list_line_items(self, session_id: str) -> List[Dict[str, Any]]:
        """
        Line items facturés d'une session, price.product développé pour lire l'instantané.
        Pagine jusqu'à épuisement (has_more).
        """
        items: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {"limit": 100, "expand": ["data.price.product"]}
        try:
            while True:
                page = _as_dict(self._client.checkout.sessions.line_items.list(session_id, params=params))
                data = page.get("data") or []
                items.extend(data)
                if not page.get("has_more") or not data:
                    break
                params = {**params, "starting_after": data[-1]["id"]}
        except stripe.InvalidRequestError as e:
            raise SessionNotFound(str(e), session_id=session_id)
        except stripe.StripeError as e:
            logger.warning("stripe.list_line_items failure session_id=%s: %s", session_id, e)
            raise ProviderUnavailable(str(e))
        return items

    def verify_signature(self, payload: bytes, sig_header: Optional[str]) -> None:
        """
        Vérifie l'en-tête Stripe-Signature sur les octets bruts du corps.
        Échec fermé: secret absent, en-tête absent ou signature fausse => SignatureInvalid.
        """
        if not self._webhook_secret:
            raise SignatureInvalid("STRIPE_WEBHOOK_SECRET manquant")
        if not sig_header:
            raise SignatureInvalid("En-tête Stripe-Signature manquant")
        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), sig_header, self._webhook_secret, tolerance=self._tolerance
            )
        except UnicodeDecodeError:
            raise SignatureInvalid("Corps non UTF-8")
        except stripe.SignatureVerificationError as e:
            raise SignatureInvalid(str(e))
