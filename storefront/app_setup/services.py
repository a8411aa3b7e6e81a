"""
Assemblage explicite des dépendances (clients, repositories, cas d'usage).
Le cycle de vie est porté par le lifespan; les handlers reçoivent Services via get_services.
"""
from typing import Any, Optional

from fastapi import HTTPException, Request

from storefront.config import Settings
from storefront.cart.repository import CartRepository
from storefront.checkout.reconciliation import ReconciliationEngine
from storefront.checkout.repository import OrderRepository
from storefront.checkout.service import CheckoutInitiator, SessionStatusReader
from storefront.checkout.stripe_client import StripeGateway
from storefront.checkout.webhook import WebhookReceiver
from storefront.infra.supabase_client import create_anon_client, create_service_client


class Services:
    def __init__(
        self,
        settings: Settings,
        carts: CartRepository,
        orders: OrderRepository,
        gateway: StripeGateway,
        auth_client: Optional[Any] = None,
        db: Optional[Any] = None,
    ):
        self.settings = settings
        self.carts = carts
        self.orders = orders
        self.gateway = gateway
        self.auth_client = auth_client
        self.db = db
        self.initiator = CheckoutInitiator(carts, gateway, settings)
        self.status_reader = SessionStatusReader(gateway)
        self.engine = ReconciliationEngine(orders, carts, gateway, settings)
        self.webhook = WebhookReceiver(gateway, self.engine)


def build_services(settings: Settings) -> Services:
    """Construit les clients Supabase (service + anon) et la passerelle Stripe."""
    db = create_service_client(settings)
    auth_client = create_anon_client(settings) if settings.supabase_anon_key else None
    return Services(
        settings=settings,
        carts=CartRepository(db, settings.currency),
        orders=OrderRepository(db),
        gateway=StripeGateway.from_settings(settings),
        auth_client=auth_client,
        db=db,
    )


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service non initialisé")
    return services
