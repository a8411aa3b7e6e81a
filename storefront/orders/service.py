"""
Cas d'usage 'orders': historique client et back-office.
Statuts: pending -> processing -> shipped -> completed; cancelled depuis tout statut non terminal.
Un statut ne recule jamais; la mise à jour est un compare-and-set sur le statut lu.
"""
import logging
from typing import Any, Dict, List

from storefront.checkout.errors import InvalidStatusTransition, OrderNotFound
from storefront.checkout.models import ORDER_STATUSES
from storefront.checkout.repository import OrderRepository

logger = logging.getLogger(__name__)

FORWARD_FLOW = ("pending", "processing", "shipped", "completed")
TERMINAL_STATUSES = {"completed", "cancelled"}


# module storefront.orders.service
def can_transition(current: str, new_status: str) -> bool:
    if new_status not in ORDER_STATUSES or current in TERMINAL_STATUSES:
        return False
    if new_status == "cancelled":
        return True
    if current not in FORWARD_FLOW:
        return False
    return FORWARD_FLOW.index(new_status) > FORWARD_FLOW.index(current)


class OrderService:
    def __init__(self, orders: OrderRepository):
        self._orders = orders

    def list_for_owner(self, owner_id: str) -> List[Dict[str, Any]]:
        return self._orders.list_for_owner(owner_id)

    def list_all(self, limit: int = 100) -> List[Dict[str, Any]]:
        return self._orders.list_all(limit=limit)

    def change_status(self, order_id: str, new_status: str) -> Dict[str, Any]:
        """
        Fait avancer le statut d'une commande.
        - OrderNotFound si la commande n'existe pas
        - InvalidStatusTransition si le statut recule, ou si un autre acteur l'a modifié entre-temps
        """
        order = self._orders.get(order_id)
        if not order:
            raise OrderNotFound(order_id=order_id)
        current = order.get("status") or "pending"
        if not can_transition(current, new_status):
            raise InvalidStatusTransition(f"{current} -> {new_status}", order_id=order_id)
        updated = self._orders.update_status(order_id, expected=current, new_status=new_status)
        if updated is None:
            raise InvalidStatusTransition("statut modifié entre-temps", order_id=order_id, expected=current)
        logger.info("orders.status order_id=%s %s -> %s", order_id, current, new_status)
        return updated
