"""
Lecture des objets Stripe (session, line items): owner_id, livraison, instantané des lignes.
"""
import logging
from typing import Any, Dict, List, Optional

from .models import ShippingDetails, SnapshotLine

logger = logging.getLogger(__name__)

OWNER_KEY = "owner_id"

# module storefront.checkout.metadata
def extract_owner_id(session: Dict[str, Any]) -> Optional[str]:
    """
    Extrait owner_id depuis session.metadata.
    - Accepte aussi la clé legacy "user_id"
    - Retourne None si absent ou vide
    """
    meta = (session or {}).get("metadata") or {}
    owner_id = str(meta.get(OWNER_KEY) or meta.get("user_id") or "").strip()
    return owner_id or None


def extract_shipping(session: Dict[str, Any]) -> Optional[ShippingDetails]:
    """
    Détails de livraison d'une session Checkout.
    Selon la version d'API Stripe: collected_information.shipping_details, shipping_details ou shipping.
    Le téléphone vient de customer_details.phone.
    """
    session = session or {}
    collected = session.get("collected_information") or {}
    raw = collected.get("shipping_details") or session.get("shipping_details") or session.get("shipping") or {}
    customer = session.get("customer_details") or {}
    if not raw and not customer.get("phone"):
        return None
    address = raw.get("address") or {}
    return ShippingDetails(
        name=raw.get("name") or customer.get("name"),
        phone=customer.get("phone"),
        address={
            k: address.get(k)
            for k in ("line1", "line2", "city", "state", "postal_code", "country")
        },
    )


def extract_amount_shipping(session: Dict[str, Any]) -> int:
    totals = (session or {}).get("total_details") or {}
    try:
        return int(totals.get("amount_shipping") or 0)
    except (TypeError, ValueError):
        return 0


def snapshot_from_line_items(items: List[Dict[str, Any]]) -> List[SnapshotLine]:
    """
    Reconstruit l'instantané à partir des line items Stripe (price.product développé).
    - product_id / variant_id / product_name / variant_label lus dans product.metadata
    - unit_amount et quantity: ce que Stripe a réellement facturé
    - Les lignes sans product_id (produit non développé, ligne étrangère) sont ignorées et journalisées
    """
    lines: List[SnapshotLine] = []
    for item in items or []:
        price = item.get("price") or {}
        product = price.get("product")
        meta = (product.get("metadata") if isinstance(product, dict) else None) or {}
        product_id = str(meta.get("product_id") or "").strip()
        qty = int(item.get("quantity") or 0)
        if not product_id or qty <= 0:
            logger.warning("checkout.metadata skipped line item id=%s (no product_id or qty)", item.get("id"))
            continue
        unit_amount = price.get("unit_amount")
        if unit_amount is None:
            unit_amount = int(item.get("amount_subtotal") or 0) // qty
        lines.append(
            SnapshotLine(
                product_id=product_id,
                variant_id=(str(meta.get("variant_id")).strip() or None) if meta.get("variant_id") else None,
                product_name=meta.get("product_name") or (product or {}).get("name") or item.get("description") or "Article",
                variant_label=meta.get("variant_label") or None,
                unit_amount=int(unit_amount),
                quantity=qty,
            )
        )
    return lines
