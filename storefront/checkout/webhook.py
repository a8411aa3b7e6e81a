"""
Réception des webhooks Stripe: vérification de signature puis aiguillage.
Livraison au-moins-une-fois: chaque événement traité ou ignoré est acquitté rapidement,
les doublons sont tolérés (voir ReconciliationEngine).
"""
import logging
from typing import Any, Dict, Optional

from .errors import AuthenticationRequired, SignatureInvalid
from .events import CheckoutCompleted, PaymentFailed, decode_event
from .reconciliation import ReconciliationEngine
from .stripe_client import StripeGateway

logger = logging.getLogger(__name__)


# module storefront.checkout.webhook
class WebhookReceiver:
    def __init__(self, gateway: StripeGateway, engine: ReconciliationEngine):
        self._gateway = gateway
        self._engine = engine

    def handle(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """
        Traite un webhook brut.
        - SignatureInvalid: aucune autre action, l'appelant répond 400
        - checkout complété: délégué au moteur de réconciliation
        - paiement échoué: journalisé seulement
        - autres types: acquittés et ignorés
        Les erreurs de stockage/provider remontent (5xx => relivraison Stripe).
        """
        try:
            self._gateway.verify_signature(payload, sig_header)
        except SignatureInvalid as e:
            logger.warning("checkout.webhook signature rejected: %s", e)
            raise

        try:
            event = decode_event(payload)
        except AuthenticationRequired as e:
            # une relivraison ne corrigera pas des métadonnées absentes
            logger.error("checkout.webhook completed session without owner_id %s", e.context)
            return {"status": "ignored", "reason": "missing_owner"}

        if isinstance(event, CheckoutCompleted):
            outcome = self._engine.reconcile(event)
            return {"status": outcome.status, "type": event.event_type, "order_id": outcome.order_id}

        if isinstance(event, PaymentFailed):
            logger.warning(
                "checkout.webhook payment failed type=%s session_id=%s owner_id=%s reason=%s",
                event.event_type, event.session_id, event.owner_id, event.reason,
            )
            return {"status": "logged", "type": event.event_type}

        logger.debug("checkout.webhook ignored type=%s id=%s", event.event_type, event.event_id)
        return {"status": "ignored", "type": event.event_type}
