from storefront.checkout.metadata import (
    extract_amount_shipping,
    extract_owner_id,
    extract_shipping,
    snapshot_from_line_items,
)


def test_extract_owner_id():
    assert extract_owner_id({"metadata": {"owner_id": " u1 "}}) == "u1"
    assert extract_owner_id({"metadata": {}}) is None
    assert extract_owner_id({}) is None


def test_extract_shipping_prefers_collected_information():
    session = {
        "collected_information": {"shipping_details": {"name": "A", "address": {"postal_code": "100-0001"}}},
        "shipping_details": {"name": "B", "address": {"postal_code": "999-9999"}},
        "customer_details": {"phone": "+81000"},
    }
    shipping = extract_shipping(session)
    assert shipping.name == "A"
    assert shipping.postal_code == "100-0001"
    assert shipping.phone == "+81000"


def test_extract_shipping_absent():
    assert extract_shipping({"customer_details": {}}) is None


def test_one_line_address():
    shipping = extract_shipping({"shipping": {"name": "A", "address": {
        "state": "東京都", "city": "渋谷区", "line1": "神宮前1-2-3", "line2": "101",
    }}})
    assert shipping.one_line_address() == "東京都 渋谷区 神宮前1-2-3 101"


def test_extract_amount_shipping():
    assert extract_amount_shipping({"total_details": {"amount_shipping": 800}}) == 800
    assert extract_amount_shipping({}) == 0


def test_snapshot_from_line_items(line_item):
    items = [
        line_item("p1", 1000, 2, variant_id="v1", label="M"),
        {"id": "li_x", "quantity": 1, "price": {"unit_amount": 500, "product": "prod_unexpanded"}},
    ]

    [line] = snapshot_from_line_items(items)

    assert (line.product_id, line.variant_id, line.variant_label) == ("p1", "v1", "M")
    assert (line.unit_amount, line.quantity) == (1000, 2)


def test_snapshot_unit_amount_fallback(line_item):
    item = line_item("p1", 700, 3)
    item["price"]["unit_amount"] = None
    [line] = snapshot_from_line_items([item])
    assert line.unit_amount == 700
