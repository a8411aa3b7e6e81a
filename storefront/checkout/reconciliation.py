"""
Moteur de réconciliation: matérialise une commande à partir d'un paiement confirmé.

États par session: UNSEEN (aucune ligne orders) -> MATERIALIZING -> MATERIALIZED.
L'idempotence repose sur la contrainte unique orders.external_session_id, pas sur un verrou:
- étape 1 (lecture) n'est qu'une optimisation;
- étape 3 (insertion) est le point d'application: le perdant d'une course s'arrête en succès.

Chaque étape mutante est rejouable: une commande restée MATERIALIZING (crash entre deux étapes)
est reprise par la relivraison suivante (upsert des lignes, décrément marqué par ligne,
suppression du panier idempotente, passage à MATERIALIZED en dernier).

Les échecs de stockage/provider remontent tels quels: le webhook répond alors 5xx et Stripe relivre.
"""
import logging
from typing import List, Optional

from storefront.config import Settings
from storefront.cart.repository import CartRepository
from . import cart as cart_logic
from .errors import DuplicateEvent, InsufficientStock, UniqueViolation
from .events import CheckoutCompleted
from .metadata import snapshot_from_line_items
from .models import (
    MATERIALIZED,
    OrderRecord,
    ReconcileOutcome,
    SnapshotLine,
    StockShortfall,
    STOCK_INSUFFICIENT,
)
from .repository import OrderRepository
from .stripe_client import StripeGateway

logger = logging.getLogger(__name__)


# module storefront.checkout.reconciliation
class ReconciliationEngine:
    def __init__(
        self,
        orders: OrderRepository,
        carts: CartRepository,
        gateway: StripeGateway,
        settings: Settings,
    ):
        self._orders = orders
        self._carts = carts
        self._gateway = gateway
        self._settings = settings

    def reconcile(self, event: CheckoutCompleted) -> ReconcileOutcome:
        """
        Matérialise Order + OrderItems, décrémente le stock et vide le panier, au plus une fois.
        Retour: ReconcileOutcome(status=materialized|duplicate|skipped)
        """
        session_id = event.session_id
        if not event.is_paid:
            logger.info("checkout.reconcile skipped unpaid session_id=%s payment_status=%s", session_id, event.payment_status)
            return ReconcileOutcome(status="skipped", session_id=session_id, reason="unpaid")

        # 1) déjà vu ?
        existing = self._orders.get_by_session(session_id)
        if existing is not None and existing.reconciliation_state == MATERIALIZED:
            return self._duplicate(DuplicateEvent(session_id=session_id, order_id=existing.id), existing.id)

        if existing is None:
            # 2) lignes à commander
            lines = self._load_lines(event)
            if not lines:
                logger.warning(
                    "checkout.reconcile aborted: no lines session_id=%s owner_id=%s source=%s",
                    session_id, event.owner_id, self._settings.reconcile_from,
                )
                return ReconcileOutcome(status="skipped", session_id=session_id, reason="empty")

            # 3) insertion avec clé d'idempotence
            try:
                order = self._orders.insert_order(self._order_row(event, lines))
            except UniqueViolation:
                return self._duplicate(DuplicateEvent(reason="concurrent", session_id=session_id), None)

            # 4) lignes figées
            self._orders.insert_items(order.id, lines)
            items = [
                {"line_no": n, "variant_id": line.variant_id, "quantity": line.quantity}
                for n, line in enumerate(lines, start=1)
            ]
            resumed = False
        else:
            order = existing
            resumed = True
            logger.warning("checkout.reconcile resuming session_id=%s order_id=%s", session_id, order.id)
            items = self._orders.list_items(order.id)
            if not items:
                lines = self._load_lines(event)
                if not lines:
                    logger.error(
                        "checkout.reconcile cannot resume: no lines session_id=%s order_id=%s",
                        session_id, order.id,
                    )
                    return ReconcileOutcome(
                        status="skipped", session_id=session_id, order_id=order.id, resumed=True,
                        reason="resume_without_lines",
                    )
                self._orders.insert_items(order.id, lines)
                items = self._orders.list_items(order.id)

        # 5) décrément conditionnel du stock
        shortfalls = self._apply_stock(order, items)

        # 6) panier vidé, puis état final
        self._carts.clear(order.owner_id)
        self._orders.mark_materialized(order.id)

        logger.info(
            "checkout.reconcile materialized session_id=%s order_id=%s total=%s shortfalls=%d resumed=%s",
            session_id, order.id, order.total_amount, len(shortfalls), resumed,
        )
        return ReconcileOutcome(
            status="materialized",
            session_id=session_id,
            order_id=order.id,
            resumed=resumed,
            stock_shortfalls=shortfalls,
        )

    def _duplicate(self, dup: DuplicateEvent, order_id: Optional[str]) -> ReconcileOutcome:
        session_id = dup.context["session_id"]
        logger.info("checkout.reconcile duplicate reason=%s session_id=%s order_id=%s", dup.reason, session_id, order_id)
        return ReconcileOutcome(status="duplicate", session_id=session_id, order_id=order_id, reason=dup.reason)

    def _load_lines(self, event: CheckoutCompleted) -> List[SnapshotLine]:
        """Instantané Stripe (par défaut) ou panier courant (RECONCILE_FROM=cart)."""
        if self._settings.reconcile_from == "cart":
            cart_lines = self._carts.list_lines(event.owner_id)
            return [
                SnapshotLine(
                    product_id=cl.product_id,
                    variant_id=cl.variant_id,
                    product_name=cl.product_name or "Article",
                    variant_label=cl.variant_label,
                    unit_amount=cl.unit_price,
                    quantity=cl.quantity,
                )
                for cl in cart_lines
                if cl.quantity > 0
            ]
        return snapshot_from_line_items(self._gateway.list_line_items(event.session_id))

    def _order_row(self, event: CheckoutCompleted, lines: List[SnapshotLine]) -> dict:
        total = cart_logic.subtotal(lines) + event.amount_shipping
        if event.amount_total is not None and event.amount_total != total:
            # signal d'intégrité: Stripe fait foi sur le montant encaissé
            logger.warning(
                "checkout.reconcile amount mismatch session_id=%s local=%s provider=%s",
                event.session_id, total, event.amount_total,
            )
        shipping = event.shipping
        return {
            "owner_id": event.owner_id,
            "total_amount": total,
            "status": "pending",
            "external_session_id": event.session_id,
            "payment_intent_id": event.payment_intent_id,
            "shipping_name": shipping.name if shipping else None,
            "shipping_postal_code": shipping.postal_code if shipping else None,
            "shipping_address": shipping.one_line_address() if shipping else None,
            "shipping_phone": shipping.phone if shipping else None,
        }

    def _apply_stock(self, order: OrderRecord, items: List[dict]) -> List[StockShortfall]:
        shortfalls: List[StockShortfall] = []
        for item in items:
            variant_id: Optional[str] = item.get("variant_id")
            if not variant_id:
                continue
            line_no = int(item["line_no"])
            quantity = int(item.get("quantity") or 0)
            status = self._orders.decrement_stock(order.id, line_no)
            if status == STOCK_INSUFFICIENT:
                shortage = InsufficientStock(
                    "stock insuffisant", variant_id=str(variant_id), requested=quantity, order_id=order.id,
                )
                logger.warning(
                    "checkout.reconcile %s order_id=%s line_no=%s variant_id=%s requested=%s",
                    shortage, order.id, line_no, variant_id, quantity,
                )
                shortfalls.append(StockShortfall(line_no=line_no, variant_id=str(variant_id), requested=quantity))
        return shortfalls
