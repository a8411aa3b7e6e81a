import json
import threading

import pytest

WEBHOOK = "/api/v1/checkout/webhook"


@pytest.fixture
def paid_cart(store, stripe_mock, line_item):
    store.stock["var-M"] = 5
    store.add_cart_line("user-1", "prod-A", 2, 1000, variant_id="var-M", label="M")
    stripe_mock.checkout.sessions.line_items.list.return_value = {
        "data": [line_item("prod-A", 1000, 2, variant_id="var-M", label="M")],
        "has_more": False,
    }
    return store


def _post(client, body: bytes, signature: str):
    return client.post(WEBHOOK, content=body, headers={"stripe-signature": signature, "content-type": "application/json"})


def test_webhook_materializes_then_acknowledges_duplicates(client, paid_cart, completed_event, as_body, sign):
    body = as_body(completed_event())

    first = _post(client, body, sign(body))
    second = _post(client, body, sign(body))

    assert first.status_code == 200
    assert first.json()["status"] == "materialized"
    assert second.status_code == 200
    assert second.json()["status"] == "duplicate"
    assert len(paid_cart.orders) == 1
    assert paid_cart.stock["var-M"] == 3


def test_concurrent_webhooks_create_one_order(client, paid_cart, completed_event, as_body, sign):
    body = as_body(completed_event())
    n = 4
    barrier = threading.Barrier(n)
    codes = []

    def deliver():
        barrier.wait()
        codes.append(_post(client, body, sign(body)).status_code)

    threads = [threading.Thread(target=deliver) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert codes == [200] * n
    [order] = paid_cart.orders.values()
    assert order["total_amount"] == 2000
    [item] = paid_cart.items_for(order["id"])
    assert (item["product_id"], item["unit_price"], item["quantity"]) == ("prod-A", 1000, 2)
    assert paid_cart.stock["var-M"] == 3
    assert paid_cart.cart == []


def test_tampered_payload_is_rejected(client, paid_cart, completed_event, as_body, sign):
    body = as_body(completed_event())
    signature = sign(body)
    tampered = body.replace(b'"amount_total": 2000', b'"amount_total": 1')

    res = _post(client, tampered, signature)

    assert res.status_code == 400
    assert res.json() == {"detail": "Invalid Stripe webhook signature"}
    assert paid_cart.orders == {}


def test_missing_signature_is_rejected(client, completed_event, as_body):
    res = client.post(WEBHOOK, content=as_body(completed_event()))
    assert res.status_code == 400


def test_signed_garbage_is_bad_request(client, sign):
    body = b"{not json"
    res = _post(client, body, sign(body))
    assert res.status_code == 400
    assert res.json() == {"detail": "Invalid Stripe webhook payload"}


def test_unknown_event_is_ignored(client, store, sign):
    body = json.dumps({"id": "evt_x", "type": "charge.refunded", "data": {"object": {"id": "ch_1"}}}).encode()
    res = _post(client, body, sign(body))
    assert res.status_code == 200
    assert res.json() == {"status": "ignored", "type": "charge.refunded"}
    assert store.orders == {}


def test_missing_owner_is_acknowledged(client, store, completed_event, as_body, sign):
    body = as_body(completed_event(owner_id=None))
    res = _post(client, body, sign(body))
    assert res.status_code == 200
    assert res.json()["status"] == "ignored"
    assert store.orders == {}


def test_payment_failed_is_logged(client, store, completed_event, as_body, sign):
    body = as_body(completed_event(event_type="checkout.session.async_payment_failed", payment_status="unpaid"))
    res = _post(client, body, sign(body))
    assert res.status_code == 200
    assert res.json()["status"] == "logged"


def test_storage_outage_returns_503_then_redelivery_succeeds(client, paid_cart, completed_event, as_body, sign):
    body = as_body(completed_event())
    paid_cart.fail_on["orders.insert_order"] = 1

    failed = _post(client, body, sign(body))
    assert failed.status_code == 503
    assert paid_cart.orders == {}

    retried = _post(client, body, sign(body))
    assert retried.status_code == 200
    assert retried.json()["status"] == "materialized"
    assert len(paid_cart.orders) == 1


def test_provider_outage_during_snapshot_read_returns_503(client, paid_cart, stripe_mock, completed_event, as_body, sign):
    import stripe

    stripe_mock.checkout.sessions.line_items.list.side_effect = stripe.APIConnectionError("timeout")
    body = as_body(completed_event())

    res = _post(client, body, sign(body))

    assert res.status_code == 503
    assert paid_cart.orders == {}
