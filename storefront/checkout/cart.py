"""
Logique panier pure pour le checkout (pas de Stripe, pas de DB).
Transforme les lignes de panier en instantané tarifé puis en line_items Stripe.
"""
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List

from storefront.config import Settings
from .errors import EmptyCartError
from .metadata import OWNER_KEY
from .models import CartLine, SnapshotLine

logger = logging.getLogger(__name__)

# Devises sans décimales chez Stripe
ZERO_DECIMAL_CURRENCIES = {"jpy", "krw", "vnd", "clp", "pyg", "xaf", "xof", "ugx", "rwf", "kmf", "gnf", "djf", "bif", "mga", "vuv", "xpf"}

# module storefront.checkout.cart
def to_unit_amount(price: Any, currency: str) -> int:
    """
    Convertit un prix catalogue (str|int|float|Decimal) en plus petite unité.
    - jpy et autres devises sans décimales: arrondi à l'unité
    - autres devises: centimes
    - Retourne 0 si parsing impossible
    """
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError, TypeError):
        return 0
    if (currency or "").lower() not in ZERO_DECIMAL_CURRENCIES:
        value = value * 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def snapshot_lines(cart_lines: List[CartLine]) -> List[SnapshotLine]:
    """
    Fige les lignes du panier au prix courant du produit.
    - Ignore (et journalise) les lignes à prix nul ou négatif
    - Soulève EmptyCartError si aucune ligne valide n'est présente
    """
    lines: List[SnapshotLine] = []
    for cl in cart_lines or []:
        if cl.quantity <= 0 or cl.unit_price <= 0:
            logger.warning(
                "checkout.snapshot dropped line owner_id=%s product_id=%s variant_id=%s quantity=%s unit_price=%s",
                cl.owner_id, cl.product_id, cl.variant_id, cl.quantity, cl.unit_price,
            )
            continue
        lines.append(
            SnapshotLine(
                product_id=cl.product_id,
                variant_id=cl.variant_id,
                product_name=cl.product_name or "Article",
                variant_label=cl.variant_label,
                unit_amount=cl.unit_price,
                quantity=cl.quantity,
            )
        )
    if not lines:
        raise EmptyCartError("Aucun article valide dans le panier")
    return lines


def subtotal(lines: List[SnapshotLine]) -> int:
    return sum(line.line_total for line in lines)


def shipping_amount(subtotal_amount: int, settings: Settings) -> int:
    """Frais de port forfaitaires, offerts à partir de free_shipping_threshold."""
    if settings.shipping_fee <= 0:
        return 0
    if settings.free_shipping_threshold and subtotal_amount >= settings.free_shipping_threshold:
        return 0
    return settings.shipping_fee


def display_name(line: SnapshotLine) -> str:
    return f"{line.product_name} ({line.variant_label})" if line.variant_label else line.product_name


def to_line_items(lines: List[SnapshotLine], currency: str) -> List[Dict[str, Any]]:
    """
    Construit les line_items Stripe (price_data) à partir de l'instantané.
    product_data.metadata porte l'instantané complet pour la réconciliation:
    product_id, variant_id, product_name, variant_label.
    """
    line_items: List[Dict[str, Any]] = []
    for line in lines:
        metadata = {"product_id": line.product_id, "product_name": line.product_name[:500]}
        if line.variant_id:
            metadata["variant_id"] = line.variant_id
        if line.variant_label:
            metadata["variant_label"] = line.variant_label[:500]
        line_items.append({
            "quantity": line.quantity,
            "price_data": {
                "currency": currency,
                "unit_amount": line.unit_amount,
                "product_data": {"name": display_name(line), "metadata": metadata},
            },
        })
    return line_items


def make_metadata(owner_id: str, lines: List[SnapshotLine]) -> Dict[str, str]:
    """
    Métadonnées de session: owner_id pour attribuer l'événement asynchrone
    sans redériver l'identité depuis un en-tête.
    """
    return {
        OWNER_KEY: owner_id,
        "line_count": str(len(lines)),
    }


def shipping_options(amount: int, currency: str) -> List[Dict[str, Any]]:
    return [{
        "shipping_rate_data": {
            "type": "fixed_amount",
            "display_name": "Livraison standard" if amount else "Livraison offerte",
            "fixed_amount": {"amount": amount, "currency": currency},
        }
    }]
