"""
Accès aux données pour les commandes (tables orders, order_items, product_variants).
Primitives attendues du stockage:
- insertion conditionnelle sur clé unique (orders.external_session_id)
- décrément conditionnel avec plancher (fonction SQL decrement_variant_stock)
- suppression en masse par propriétaire (CartRepository.clear)
"""
import logging
from typing import Any, Dict, List, Optional

from supabase import Client

from storefront.infra.supabase_client import execute
from .models import MATERIALIZED, MATERIALIZING, OrderRecord, SnapshotLine

logger = logging.getLogger(__name__)

ORDER_WITH_ITEMS = "*, order_items(*)"


# module storefront.checkout.repository
class OrderRepository:
    def __init__(self, client: Client):
        self._client = client

    def get_by_session(self, session_id: str) -> Optional[OrderRecord]:
        res = execute(
            self._client.table("orders").select("*").eq("external_session_id", session_id).limit(1),
            "orders.get_by_session",
            session_id=session_id,
        )
        rows = res.data or []
        return OrderRecord.from_row(rows[0]) if rows else None

    def insert_order(self, row: Dict[str, Any]) -> OrderRecord:
        """
        Insère la commande avec external_session_id comme clé d'idempotence.
        UniqueViolation si une livraison concurrente l'a déjà posée.
        """
        res = execute(
            self._client.table("orders").insert({**row, "reconciliation_state": MATERIALIZING}),
            "orders.insert_order",
            session_id=row.get("external_session_id"),
        )
        rows = res.data or []
        if not rows:
            # représentation vide (returning=minimal): relecture par clé
            existing = self.get_by_session(row["external_session_id"])
            if existing is None:
                raise RuntimeError("insert_order: ligne introuvable après insertion")
            return existing
        return OrderRecord.from_row(rows[0])

    def insert_items(self, order_id: str, lines: List[SnapshotLine]) -> int:
        """
        Upsert des lignes figées, une par ligne d'instantané (line_no = position).
        ignore_duplicates: un rejeu ne modifie pas les lignes déjà écrites.
        """
        rows = [
            {
                "order_id": order_id,
                "line_no": line_no,
                "product_id": line.product_id,
                "product_name": line.product_name,
                "variant_id": line.variant_id,
                "variant_label": line.variant_label,
                "unit_price": line.unit_amount,
                "quantity": line.quantity,
            }
            for line_no, line in enumerate(lines, start=1)
        ]
        if not rows:
            return 0
        execute(
            self._client.table("order_items").upsert(rows, on_conflict="order_id,line_no", ignore_duplicates=True),
            "orders.insert_items",
            order_id=order_id,
        )
        return len(rows)

    def list_items(self, order_id: str) -> List[dict]:
        res = execute(
            self._client.table("order_items")
            .select("line_no, product_id, variant_id, quantity, stock_status")
            .eq("order_id", order_id)
            .order("line_no"),
            "orders.list_items",
            order_id=order_id,
        )
        return res.data or []

    def decrement_stock(self, order_id: str, line_no: int) -> str:
        """
        Décrément conditionnel (stock >= quantité) en une seule instruction côté base.
        Retourne 'decremented' | 'insufficient' | 'untracked'; un rejeu renvoie le statut déjà posé.
        """
        res = execute(
            self._client.rpc("decrement_variant_stock", {"p_order_id": order_id, "p_line_no": line_no}),
            "orders.decrement_stock",
            order_id=order_id,
            line_no=line_no,
        )
        data = res.data
        if isinstance(data, list):
            data = data[0] if data else None
        if isinstance(data, dict):
            data = next(iter(data.values()), None)
        return str(data or "")

    def mark_materialized(self, order_id: str) -> None:
        execute(
            self._client.table("orders")
            .update({"reconciliation_state": MATERIALIZED})
            .eq("id", order_id)
            .eq("reconciliation_state", MATERIALIZING),
            "orders.mark_materialized",
            order_id=order_id,
        )

    # --- lecture / back-office ---

    def get(self, order_id: str) -> Optional[dict]:
        res = execute(
            self._client.table("orders").select(ORDER_WITH_ITEMS).eq("id", order_id).limit(1),
            "orders.get",
            order_id=order_id,
        )
        rows = res.data or []
        return rows[0] if rows else None

    def list_for_owner(self, owner_id: str, limit: int = 50) -> List[dict]:
        res = execute(
            self._client.table("orders")
            .select(ORDER_WITH_ITEMS)
            .eq("owner_id", owner_id)
            .eq("reconciliation_state", MATERIALIZED)
            .order("created_at", desc=True)
            .limit(limit),
            "orders.list_for_owner",
            owner_id=owner_id,
        )
        return res.data or []

    def list_all(self, limit: int = 100) -> List[dict]:
        res = execute(
            self._client.table("orders").select(ORDER_WITH_ITEMS).order("created_at", desc=True).limit(limit),
            "orders.list_all",
        )
        return res.data or []

    def update_status(self, order_id: str, expected: str, new_status: str) -> Optional[dict]:
        """Compare-and-set: ne met à jour que si le statut courant vaut encore `expected`."""
        res = execute(
            self._client.table("orders")
            .update({"status": new_status})
            .eq("id", order_id)
            .eq("status", expected),
            "orders.update_status",
            order_id=order_id,
        )
        rows = res.data or []
        return rows[0] if rows else None
