import json
from datetime import date

import pytest

from drinkshop.payments.errors import MalformedPayload
from drinkshop.payments.metadata import (
    build_customer,
    extract_items,
    extract_payment_event,
    normalize_metadata,
    normalize_vendor,
    parse_delivery_date,
    sanitize,
    unwrap_id,
)

NESTED = {
    "userId": "u1",
    "customer": {
        "fullName": "Kofi Boateng",
        "email": "KOFI@example.com",
        "phone": "0551112222",
        "address": "3 Liberation Rd",
        "city": "Kumasi",
        "country": "Ghana",
    },
    "items": [{"drinkId": "p1", "pack": "6", "price": 61, "quantity": 2}],
    "deliveryDate": "2026-10-21",
    "deliveryTime": "10:00-12:00",
}

FLAT_LEGACY = {
    "user_id": "u1",
    "fullName": "Kofi Boateng",
    "email": "kofi@example.com",
    "phone": "0551112222",
    "address": "3 Liberation Rd",
    "city": "Kumasi",
    "country": "Ghana",
    "cartItems": json.dumps([{"productId": {"_id": "p1"}, "packSize": 6, "unitPrice": "61", "qty": "2"}]),
    "delivery_date": "2026-10-21T00:00:00.000Z",
    "delivery_time": "10:00-12:00",
}


def test_nested_and_legacy_flat_formats_normalize_identically():
    a = normalize_metadata(NESTED)
    b = normalize_metadata(FLAT_LEGACY)
    assert a.customer == b.customer
    assert a.items == b.items
    assert a.user_id == b.user_id == "u1"
    assert a.delivery_date == b.delivery_date == date(2026, 10, 21)
    assert a.delivery_time == b.delivery_time


def test_nested_customer_wins_over_flat_and_gateway():
    meta = {**NESTED, "fullName": "Flat Name", "email": "flat@example.com"}
    customer = build_customer(meta, {"email": "gateway@example.com", "first_name": "Gate"})
    assert customer.full_name == "Kofi Boateng"
    assert customer.email == "kofi@example.com"


def test_gateway_customer_fills_gaps_and_placeholders_apply():
    customer = build_customer({}, {"email": "Pay@Example.com", "first_name": "Efua", "last_name": "Owusu"})
    assert customer.full_name == "Efua Owusu"
    assert customer.email == "pay@example.com"
    assert customer.address == "Not provided"
    assert customer.country == "Ghana"

    anonymous = build_customer({})
    assert anonymous.full_name == "Customer"
    assert anonymous.email == ""


def test_guest_order_without_user_id_is_valid():
    meta = {k: v for k, v in NESTED.items() if k != "userId"}
    order_input = normalize_metadata(meta)
    assert order_input.user_id is None
    assert len(order_input.items) == 1


def test_no_items_raises_malformed():
    with pytest.raises(MalformedPayload):
        normalize_metadata({**NESTED, "items": []})
    with pytest.raises(MalformedPayload):
        normalize_metadata({"items": [{"drinkId": "", "quantity": 1}, {"drinkId": "p1", "quantity": 0}]})


def test_first_non_empty_item_list_is_used():
    items = extract_items({"items": [], "cart": [{"id": "p9", "quantity": 3}], "products": [{"id": "other"}]})
    assert [(i.product_id, i.quantity) for i in items] == [("p9", 3)]


def test_missing_quantity_defaults_to_one():
    items = extract_items({"items": [{"drinkId": "p1"}]})
    assert items[0].quantity == 1


def test_unparseable_delivery_date_is_null():
    order_input = normalize_metadata({**NESTED, "deliveryDate": "next tuesday"})
    assert order_input.delivery_date is None
    assert parse_delivery_date("undefined") is None
    assert parse_delivery_date("2026-01-05") == date(2026, 1, 5)


def test_sanitize_strips_placeholder_text():
    assert sanitize("  null ") == ""
    assert sanitize("undefined") == ""
    assert sanitize("12  Ring   Road") == "12 Ring Road"
    assert sanitize(None) == ""
    customer = build_customer({"customer": {"fullName": "null", "address": "undefined"}})
    assert customer.full_name == "Customer"
    assert customer.address == "Not provided"


def test_sanitize_keeps_real_words_that_look_like_placeholders():
    assert sanitize("Kofi Null") == "Kofi Null"
    assert sanitize("UNDEFINED Street") == "UNDEFINED Street"
    assert sanitize("Ama undefined") == "Ama"


def test_unwrap_id_handles_envelopes():
    assert unwrap_id({"$oid": "abc"}) == "abc"
    assert unwrap_id({"_id": {"$oid": "abc"}}) == "abc"
    assert unwrap_id(42) == "42"
    assert unwrap_id({"name": "x"}) is None


def test_vendor_is_validated():
    assert normalize_vendor("Osu Depot_1") == "Osu Depot_1"
    assert normalize_vendor("<script>") == ""


def test_extract_payment_event_accepts_string_metadata():
    body = {"event": "charge.success", "data": {"reference": "R1", "amount": 17000, "metadata": json.dumps(NESTED)}}
    event = extract_payment_event(body)
    assert event.reference == "R1"
    assert event.amount == 17000
    assert event.metadata["userId"] == "u1"


@pytest.mark.parametrize(
    "body",
    [
        {"event": "charge.success", "data": {}},
        {"event": "charge.success", "data": {"reference": "R1", "amount": "abc"}},
    ],
)
def test_extract_payment_event_rejects_unusable_payload(body):
    with pytest.raises(MalformedPayload):
        extract_payment_event(body)
