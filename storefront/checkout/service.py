"""
Cas d'usage 'checkout': orchestre repository panier, logique panier et client Stripe.
- CheckoutInitiator: panier non vide -> session Stripe hébergée (aucune écriture locale)
- SessionStatusReader: lecture directe chez Stripe pour la page de succès (lecture seule)
"""
import logging
from typing import Optional

from storefront.config import Settings
from storefront.cart.repository import CartRepository
from . import cart as cart_logic
from .errors import AuthenticationRequired, EmptyCartError, SessionNotFound
from .metadata import extract_owner_id, extract_shipping
from .models import CheckoutSessionHandle, SessionStatus
from .stripe_client import StripeGateway

logger = logging.getLogger(__name__)


def build_success_url(settings: Settings) -> str:
    sep = "&" if "?" in settings.success_path else "?"
    return f"{settings.base_url}{settings.success_path}{sep}session_id={{CHECKOUT_SESSION_ID}}"


def build_cancel_url(settings: Settings) -> str:
    return f"{settings.base_url}{settings.cancel_path}"


class CheckoutInitiator:
    def __init__(self, carts: CartRepository, gateway: StripeGateway, settings: Settings):
        self._carts = carts
        self._gateway = gateway
        self._settings = settings

    def create_session(self, owner_id: str, customer_email: Optional[str] = None) -> CheckoutSessionHandle:
        """
        Prépare la session Stripe à partir du panier de owner_id.
        Étapes:
          1) Lire les lignes du panier (prix courant du produit, à cet instant)
          2) Figer l'instantané tarifé et construire line_items + metadata(owner_id)
          3) Créer la session Stripe et renvoyer {id, url}
        Aucune commande n'est créée ici: un checkout abandonné ne laisse aucune trace locale.
        """
        if not owner_id:
            raise AuthenticationRequired()
        cart_lines = self._carts.list_lines(owner_id)
        if not cart_lines:
            raise EmptyCartError(owner_id=owner_id)
        lines = cart_logic.snapshot_lines(cart_lines)

        currency = self._settings.currency
        shipping = cart_logic.shipping_amount(cart_logic.subtotal(lines), self._settings)
        session = self._gateway.create_session(
            line_items=cart_logic.to_line_items(lines, currency),
            success_url=build_success_url(self._settings),
            cancel_url=build_cancel_url(self._settings),
            metadata=cart_logic.make_metadata(owner_id, lines),
            customer_email=customer_email,
            allowed_countries=self._settings.allowed_countries,
            shipping_options=cart_logic.shipping_options(shipping, currency) if self._settings.shipping_fee > 0 else None,
        )
        logger.info("checkout.session created session_id=%s owner_id=%s lines=%d", session.get("id"), owner_id, len(lines))
        return CheckoutSessionHandle(id=str(session.get("id")), url=session.get("url"))


class SessionStatusReader:
    def __init__(self, gateway: StripeGateway):
        self._gateway = gateway

    def read(self, session_id: str, owner_id: Optional[str] = None) -> SessionStatus:
        """
        Statut, montant et livraison tels que Stripe les connaît (pas la base locale,
        qui peut ne pas encore refléter un webhook en vol).
        - SessionNotFound si Stripe ne connaît pas la session
        - SessionNotFound aussi si la session appartient à un autre utilisateur
        """
        session = self._gateway.retrieve_session(session_id)
        session_owner = extract_owner_id(session)
        if owner_id and session_owner and session_owner != owner_id:
            raise SessionNotFound("session d'un autre utilisateur", session_id=session_id)
        customer = session.get("customer_details") or {}
        return SessionStatus(
            session_id=str(session.get("id") or session_id),
            status=session.get("status"),
            payment_status=session.get("payment_status"),
            customer_email=customer.get("email") or session.get("customer_email"),
            amount_total=session.get("amount_total"),
            currency=session.get("currency"),
            shipping_details=extract_shipping(session),
        )
