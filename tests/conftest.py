import hashlib
import hmac
import json
import os
import threading
import time
import uuid
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

# Pas de Redis en tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

from storefront.app_setup.factory import create_app
from storefront.app_setup.services import Services
from storefront.checkout.errors import InvalidReference, StorageUnavailable, UniqueViolation
from storefront.checkout.models import (
    MATERIALIZED,
    MATERIALIZING,
    CartLine,
    OrderRecord,
    STOCK_DECREMENTED,
    STOCK_INSUFFICIENT,
    STOCK_UNTRACKED,
)
from storefront.checkout.stripe_client import StripeGateway
from storefront.config import Settings
from storefront.utils.security import require_admin, require_user

WEBHOOK_SECRET = "whsec_test_secret"


# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


class FakeStore:
    """
    Stockage en mémoire qui reproduit les primitives attendues de Postgres:
    clé unique sur external_session_id, upsert (order_id, line_no), décrément conditionnel.
    Toutes les opérations passent sous un verrou (atomicité d'une instruction SQL).
    """

    def __init__(self):
        self.lock = threading.RLock()
        self.orders: Dict[str, Dict[str, Any]] = {}
        self.items: Dict[tuple, Dict[str, Any]] = {}
        self.cart: List[CartLine] = []
        self.stock: Dict[str, int] = {}
        # catalogue: vide => aucune contrainte de référence (variant_id -> product_id)
        self.products: set = set()
        self.variants: Dict[str, str] = {}
        self.fail_on: Dict[str, int] = {}
        self.calls: List[str] = []

    def check_reference(self, product_id, variant_id) -> None:
        """FK produit + FK composite (variant_id, product_id) de cart_items."""
        if not self.products:
            return
        if product_id not in self.products:
            raise InvalidReference("produit inconnu", code="23503", product_id=product_id)
        if variant_id is not None and self.variants.get(variant_id) != product_id:
            raise InvalidReference("variante hors produit", code="23503", product_id=product_id, variant_id=variant_id)

    def hit(self, op: str) -> None:
        self.calls.append(op)
        remaining = self.fail_on.get(op, 0)
        if remaining:
            self.fail_on[op] = remaining - 1
            raise StorageUnavailable("panne simulée", op=op)

    def add_cart_line(self, owner_id, product_id, quantity, unit_price, variant_id=None, name="Loafer", label=None):
        line = CartLine(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            product_id=product_id,
            variant_id=variant_id,
            quantity=quantity,
            product_name=name,
            unit_price=unit_price,
            variant_label=label,
        )
        self.cart.append(line)
        return line

    def items_for(self, order_id: str) -> List[Dict[str, Any]]:
        return sorted((r for (oid, _), r in self.items.items() if oid == order_id), key=lambda r: r["line_no"])


class FakeCartRepository:
    def __init__(self, store: FakeStore):
        self._store = store

    def list_lines(self, owner_id: str) -> List[CartLine]:
        with self._store.lock:
            self._store.hit("cart.list_lines")
            return [line for line in self._store.cart if line.owner_id == owner_id]

    def add_item(self, owner_id, product_id, variant_id, quantity=1):
        with self._store.lock:
            self._store.hit("cart.add_item")
            self._store.check_reference(product_id, variant_id)
            for i, line in enumerate(self._store.cart):
                if (line.owner_id, line.product_id, line.variant_id) == (owner_id, product_id, variant_id):
                    merged = line.model_copy(update={"quantity": line.quantity + quantity})
                    self._store.cart[i] = merged
                    return merged.model_dump()
            return self._store.add_cart_line(owner_id, product_id, quantity, 1000, variant_id).model_dump()

    def update_quantity(self, owner_id, line_id, quantity):
        with self._store.lock:
            self._store.hit("cart.update_quantity")
            for i, line in enumerate(self._store.cart):
                if line.id == line_id and line.owner_id == owner_id:
                    self._store.cart[i] = line.model_copy(update={"quantity": quantity})
                    return self._store.cart[i].model_dump()
            return None

    def remove_line(self, owner_id, line_id):
        with self._store.lock:
            self._store.hit("cart.remove_line")
            before = len(self._store.cart)
            self._store.cart = [l for l in self._store.cart if not (l.id == line_id and l.owner_id == owner_id)]
            return len(self._store.cart) < before

    def clear(self, owner_id: str) -> int:
        with self._store.lock:
            self._store.hit("cart.clear")
            before = len(self._store.cart)
            self._store.cart = [l for l in self._store.cart if l.owner_id != owner_id]
            return before - len(self._store.cart)


class FakeOrderRepository:
    def __init__(self, store: FakeStore):
        self._store = store

    def get_by_session(self, session_id: str) -> Optional[OrderRecord]:
        with self._store.lock:
            self._store.hit("orders.get_by_session")
            for row in self._store.orders.values():
                if row["external_session_id"] == session_id:
                    return OrderRecord.from_row(row)
            return None

    def insert_order(self, row: Dict[str, Any]) -> OrderRecord:
        with self._store.lock:
            self._store.hit("orders.insert_order")
            if any(o["external_session_id"] == row["external_session_id"] for o in self._store.orders.values()):
                raise UniqueViolation("duplicate key", op="orders.insert_order")
            order_id = str(uuid.uuid4())
            stored = {**row, "id": order_id, "reconciliation_state": MATERIALIZING}
            self._store.orders[order_id] = stored
            return OrderRecord.from_row(stored)

    def insert_items(self, order_id: str, lines) -> int:
        with self._store.lock:
            self._store.hit("orders.insert_items")
            for line_no, line in enumerate(lines, start=1):
                self._store.items.setdefault((order_id, line_no), {
                    "order_id": order_id,
                    "line_no": line_no,
                    "product_id": line.product_id,
                    "product_name": line.product_name,
                    "variant_id": line.variant_id,
                    "variant_label": line.variant_label,
                    "unit_price": line.unit_amount,
                    "quantity": line.quantity,
                    "stock_status": None,
                })
            return len(lines)

    def list_items(self, order_id: str) -> List[dict]:
        with self._store.lock:
            self._store.hit("orders.list_items")
            return [dict(r) for r in self._store.items_for(order_id)]

    def decrement_stock(self, order_id: str, line_no: int) -> str:
        with self._store.lock:
            self._store.hit("orders.decrement_stock")
            item = self._store.items[(order_id, line_no)]
            if item["stock_status"]:
                return item["stock_status"]
            variant_id = item["variant_id"]
            if variant_id is None or variant_id not in self._store.stock:
                status = STOCK_UNTRACKED
            elif self._store.stock[variant_id] >= item["quantity"]:
                self._store.stock[variant_id] -= item["quantity"]
                status = STOCK_DECREMENTED
            else:
                status = STOCK_INSUFFICIENT
            item["stock_status"] = status
            return status

    def mark_materialized(self, order_id: str) -> None:
        with self._store.lock:
            self._store.hit("orders.mark_materialized")
            row = self._store.orders[order_id]
            if row["reconciliation_state"] == MATERIALIZING:
                row["reconciliation_state"] = MATERIALIZED

    def get(self, order_id: str) -> Optional[dict]:
        with self._store.lock:
            row = self._store.orders.get(order_id)
            return {**row, "order_items": self._store.items_for(order_id)} if row else None

    def list_for_owner(self, owner_id: str, limit: int = 50) -> List[dict]:
        with self._store.lock:
            return [
                {**r, "order_items": self._store.items_for(r["id"])}
                for r in self._store.orders.values()
                if r["owner_id"] == owner_id and r["reconciliation_state"] == MATERIALIZED
            ][:limit]

    def list_all(self, limit: int = 100) -> List[dict]:
        with self._store.lock:
            return list(self._store.orders.values())[:limit]

    def update_status(self, order_id: str, expected: str, new_status: str) -> Optional[dict]:
        with self._store.lock:
            row = self._store.orders.get(order_id)
            if not row or row.get("status") != expected:
                return None
            row["status"] = new_status
            return dict(row)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        base_url="https://shop.example.com",
        admin_emails=["admin@example.com"],
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def stripe_mock() -> MagicMock:
    """StripeClient factice: seules les méthodes de checkout.sessions sont utilisées."""
    client = MagicMock()
    client.checkout.sessions.create.return_value = {"id": "cs_test_1", "url": "https://checkout.stripe.com/c/pay/cs_test_1"}
    client.checkout.sessions.line_items.list.return_value = {"data": [], "has_more": False}
    return client


@pytest.fixture
def gateway(stripe_mock, settings) -> StripeGateway:
    # Vérification de signature réelle (HMAC) avec le secret de test
    return StripeGateway(stripe_mock, settings.stripe_webhook_secret, settings.stripe_webhook_tolerance)


@pytest.fixture
def services(settings, store, gateway) -> Services:
    return Services(
        settings=settings,
        carts=FakeCartRepository(store),
        orders=FakeOrderRepository(store),
        gateway=gateway,
    )


@pytest.fixture
def fake_user() -> Dict[str, Any]:
    return {"id": "user-1", "email": "taro@example.com", "role": "user"}


@pytest.fixture
def app(services, fake_user):
    application = create_app(services)
    application.dependency_overrides[require_user] = lambda: fake_user
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_client(app, client):
    app.dependency_overrides[require_admin] = lambda: {"id": "admin-1", "email": "admin@example.com", "role": "admin"}
    yield client
    app.dependency_overrides.pop(require_admin, None)


@pytest.fixture
def sign():
    """Construit un en-tête Stripe-Signature valide sur les octets exacts du corps."""
    def _sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
        ts = timestamp or int(time.time())
        signed = f"{ts}.".encode("utf-8") + payload
        digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={ts},v1={digest}"
    return _sign


@pytest.fixture
def completed_event():
    def _event(
        session_id: str = "cs_test_1",
        owner_id: Optional[str] = "user-1",
        amount_total: Optional[int] = 2000,
        amount_shipping: int = 0,
        payment_status: str = "paid",
        event_type: str = "checkout.session.completed",
    ) -> Dict[str, Any]:
        metadata = {"owner_id": owner_id} if owner_id else {}
        return {
            "id": f"evt_{uuid.uuid4().hex[:12]}",
            "type": event_type,
            "data": {"object": {
                "id": session_id,
                "object": "checkout.session",
                "payment_status": payment_status,
                "status": "complete",
                "amount_total": amount_total,
                "currency": "jpy",
                "metadata": metadata,
                "payment_intent": "pi_test_1",
                "total_details": {"amount_shipping": amount_shipping},
                "customer_details": {"email": "taro@example.com", "phone": "+81312345678", "name": "Yamada Taro"},
                "shipping_details": {
                    "name": "Yamada Taro",
                    "address": {
                        "postal_code": "150-0001", "state": "東京都", "city": "渋谷区",
                        "line1": "神宮前1-2-3", "line2": None, "country": "JP",
                    },
                },
            }},
        }
    return _event


@pytest.fixture
def line_item():
    def _item(product_id: str, unit_amount: int, quantity: int, variant_id: Optional[str] = None,
              name: str = "Loafer", label: Optional[str] = None, item_id: Optional[str] = None) -> Dict[str, Any]:
        meta = {"product_id": product_id, "product_name": name}
        if variant_id:
            meta["variant_id"] = variant_id
        if label:
            meta["variant_label"] = label
        return {
            "id": item_id or f"li_{uuid.uuid4().hex[:8]}",
            "object": "item",
            "quantity": quantity,
            "amount_subtotal": unit_amount * quantity,
            "description": name,
            "price": {"unit_amount": unit_amount, "product": {"id": f"prod_{product_id}", "name": name, "metadata": meta}},
        }
    return _item


@pytest.fixture
def as_body():
    def _body(event: Dict[str, Any]) -> bytes:
        return json.dumps(event, ensure_ascii=False).encode("utf-8")
    return _body
