"""
Cas d'usage 'cart': consultation et modifications du panier d'un utilisateur.
Les prix affichés sont les prix courants; ils ne sont figés qu'au checkout.
"""
import logging
from typing import Any, Dict, List, Optional

from storefront.config import Settings
from storefront.checkout import cart as cart_logic
from storefront.checkout.models import CartLine
from .repository import CartRepository

logger = logging.getLogger(__name__)


class CartLineNotFound(LookupError):
    pass


def summarize(lines: List[CartLine], settings: Settings) -> Dict[str, Any]:
    """
    Vue panier: lignes, sous-total, frais de port estimés et total, en plus petite unité.
    Les lignes sans prix restent visibles mais ne comptent pas (elles seront ignorées au checkout).
    """
    items = [
        {
            "id": line.id,
            "productId": line.product_id,
            "variantId": line.variant_id,
            "name": line.product_name,
            "variantLabel": line.variant_label,
            "unitPrice": line.unit_price,
            "quantity": line.quantity,
            "lineTotal": line.unit_price * line.quantity,
        }
        for line in lines
    ]
    subtotal = sum(i["lineTotal"] for i in items if i["unitPrice"] > 0)
    shipping = cart_logic.shipping_amount(subtotal, settings) if subtotal else 0
    return {
        "items": items,
        "subtotal": subtotal,
        "shipping": shipping,
        "total": subtotal + shipping,
        "currency": settings.currency,
    }


class CartService:
    def __init__(self, carts: CartRepository, settings: Settings):
        self._carts = carts
        self._settings = settings

    def view(self, owner_id: str) -> Dict[str, Any]:
        return summarize(self._carts.list_lines(owner_id), self._settings)

    def add(self, owner_id: str, product_id: str, variant_id: Optional[str], quantity: int) -> Dict[str, Any]:
        row = self._carts.add_item(owner_id, product_id, variant_id, quantity)
        logger.info("cart.add owner_id=%s product_id=%s variant_id=%s quantity=%s", owner_id, product_id, variant_id, quantity)
        return row

    def set_quantity(self, owner_id: str, line_id: str, quantity: int) -> Dict[str, Any]:
        row = self._carts.update_quantity(owner_id, line_id, quantity)
        if row is None:
            raise CartLineNotFound(line_id)
        return row

    def remove(self, owner_id: str, line_id: str) -> None:
        if not self._carts.remove_line(owner_id, line_id):
            raise CartLineNotFound(line_id)

    def clear(self, owner_id: str) -> int:
        return self._carts.clear(owner_id)
