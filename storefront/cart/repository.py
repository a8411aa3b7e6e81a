"""
Accès aux données pour la feature 'cart' (table cart_items).
Les erreurs de stockage remontent en StorageUnavailable: un panier illisible
ne doit jamais être confondu avec un panier vide. Les identifiants fournis par le client
(produit/variante inconnus, uuid mal formé) remontent en InvalidReference (422).
"""
import logging
from typing import Any, Dict, List, Optional

from supabase import Client

from storefront.infra.supabase_client import execute
from storefront.checkout.cart import to_unit_amount
from storefront.checkout.models import CartLine

logger = logging.getLogger(__name__)

CART_SELECT = "id, owner_id, product_id, variant_id, quantity, products(name, price), product_variants(size, stock)"


def _to_cart_line(row: Dict[str, Any], currency: str) -> CartLine:
    product = row.get("products") or {}
    variant = row.get("product_variants") or {}
    return CartLine(
        id=str(row.get("id")),
        owner_id=str(row.get("owner_id")),
        product_id=str(row.get("product_id")),
        variant_id=str(row["variant_id"]) if row.get("variant_id") else None,
        quantity=int(row.get("quantity") or 1),
        product_name=product.get("name") or "",
        unit_price=to_unit_amount(product.get("price") or 0, currency),
        variant_label=variant.get("size") or None,
    )


# module storefront.cart.repository
class CartRepository:
    def __init__(self, client: Client, currency: str = "jpy"):
        self._client = client
        self._currency = currency

    def list_rows(self, owner_id: str) -> List[dict]:
        """Lignes brutes jointes (produit + variante) pour l'affichage du panier."""
        res = execute(
            self._client.table("cart_items").select(CART_SELECT).eq("owner_id", owner_id).order("created_at"),
            "cart.list_rows",
            owner_id=owner_id,
        )
        return res.data or []

    def list_lines(self, owner_id: str) -> List[CartLine]:
        """Lignes de panier au prix courant du produit."""
        return [_to_cart_line(row, self._currency) for row in self.list_rows(owner_id)]

    def add_item(self, owner_id: str, product_id: str, variant_id: Optional[str], quantity: int = 1) -> dict:
        """
        Ajoute au panier en fusionnant atomiquement avec la ligne (owner, product, variant) existante.
        Délègue à la fonction SQL add_cart_item (INSERT ... ON CONFLICT DO UPDATE).
        """
        res = execute(
            self._client.rpc("add_cart_item", {
                "p_owner_id": owner_id,
                "p_product_id": product_id,
                "p_variant_id": variant_id,
                "p_quantity": quantity,
            }),
            "cart.add_item",
            client_input=True,
            owner_id=owner_id,
            product_id=product_id,
        )
        data = res.data
        return (data[0] if isinstance(data, list) and data else data) or {}

    def update_quantity(self, owner_id: str, line_id: str, quantity: int) -> Optional[dict]:
        res = execute(
            self._client.table("cart_items")
            .update({"quantity": quantity})
            .eq("id", line_id)
            .eq("owner_id", owner_id),
            "cart.update_quantity",
            client_input=True,
            owner_id=owner_id,
            line_id=line_id,
        )
        rows = res.data or []
        return rows[0] if rows else None

    def remove_line(self, owner_id: str, line_id: str) -> bool:
        res = execute(
            self._client.table("cart_items").delete().eq("id", line_id).eq("owner_id", owner_id),
            "cart.remove_line",
            client_input=True,
            owner_id=owner_id,
            line_id=line_id,
        )
        return bool(res.data)

    def clear(self, owner_id: str) -> int:
        """Suppression en masse des lignes du propriétaire; idempotente."""
        res = execute(
            self._client.table("cart_items").delete().eq("owner_id", owner_id),
            "cart.clear",
            owner_id=owner_id,
        )
        return len(res.data or [])
