import json

import pytest

from offer_engine.engine.models import BuyGetOffer, DiscountOffer
from offer_engine.engine.persisted import (
    PersistedOrder,
    legacy_total_after_discount,
    parse_applied_offers,
    parse_free_items,
    parse_json_list,
)


STORED_OFFERS = [
    {
        "offer": {
            "id": "off-1",
            "offer_type": "discount",
            "title_ar": "خصم",
            "discount_type": "percentage",
            "discount_percentage": 10,
            "active": True,
        },
        "discountAmount": 13,
        "affectedProducts": ["X", "Y"],
    },
    {
        "offer": {
            "id": "off-2",
            "offer_type": "buy_get",
            "title_en": "Buy 2 get 1",
            "linked_product_id": "X",
            "buy_quantity": 2,
            "get_product_id": "Y",
            "get_discount_type": "free",
        },
        "discountAmount": 0,
        "affectedProducts": ["X"],
        "freeProducts": [{"productId": "Y", "quantity": 1, "variantId": "y-blue"}],
    },
]


@pytest.mark.parametrize("raw", [None, "", "{not json", "42", '{"a": 1}', 42, {"a": 1}])
def test_unusable_json_lists_are_empty(raw):
    assert parse_json_list(raw) == []


def test_json_list_accepts_string_or_list():
    assert parse_json_list('[1, 2]') == [1, 2]
    assert parse_json_list([1, 2]) == [1, 2]


def test_parse_applied_offers_from_json_string():
    applied = parse_applied_offers(json.dumps(STORED_OFFERS))

    assert len(applied) == 2
    assert isinstance(applied[0].offer, DiscountOffer)
    assert applied[0].discount_amount == 13.0
    assert applied[0].affected_product_ids == {"X", "Y"}

    assert isinstance(applied[1].offer, BuyGetOffer)
    free = applied[1].free_items[0]
    assert (free.product_id, free.variant_id, free.quantity) == ("Y", "y-blue", 1)
    assert free.offer_id == "off-2"
    assert free.offer_name == "Buy 2 get 1"


def test_parse_applied_offers_skips_unusable_records():
    records = [
        {"offer": {"id": "bad", "offer_type": "mystery"}, "discountAmount": 5},
        {"discountAmount": 5},
        "junk",
        STORED_OFFERS[0],
    ]
    applied = parse_applied_offers(records)
    assert [a.offer.id for a in applied] == ["off-1"]


def test_parse_applied_offers_snake_case():
    record = {
        "offer": STORED_OFFERS[0]["offer"],
        "discount_amount": "4.5",
        "affected_product_ids": ["X"],
    }
    applied = parse_applied_offers([record])
    assert applied[0].discount_amount == 4.5
    assert applied[0].affected_product_ids == {"X"}


def test_parse_free_items_formats():
    raw = json.dumps([
        {"product_id": "Y", "quantity": 2, "variant_id": "y-red", "product_name": "Towel", "price": 35},
        {"productId": "Z", "variantAttributes": '{"size": "L"}'},
        {"id": "free_off_W", "product": {"id": "W", "name": "Product W", "price": 40}, "quantity": 1},
        {"quantity": 3},
    ])

    items = parse_free_items(raw)

    assert [i.product_id for i in items] == ["Y", "Z", "W"]
    assert items[0].name == "Towel"
    assert items[0].quantity == 2
    assert items[1].variant_attributes == {"size": "L"}
    assert items[2].name == "Product W"
    assert items[2].price == 40.0


def test_parse_free_items_malformed_is_empty():
    assert parse_free_items("{not json") == []


def test_legacy_total_prefers_stored_total_after_discount():
    order = PersistedOrder(total=100.0, discount_type="percent", discount_value=10.0, total_after_discount=95.0)
    assert legacy_total_after_discount(order) == 95.0


@pytest.mark.parametrize("discount_type,value,expected", [
    ("percent", 10.0, 90.0),
    ("amount", 30.0, 70.0),
    ("amount", 300.0, 0.0),
    ("percent", 0.0, None),
    ("coupon", 10.0, None),
])
def test_legacy_single_discount(discount_type, value, expected):
    order = PersistedOrder(total=100.0, discount_type=discount_type, discount_value=value)
    assert legacy_total_after_discount(order) == expected


def test_persisted_order_from_record():
    order = PersistedOrder.from_record({
        "id": "o-1",
        "applied_offers": "[]",
        "total": "130",
        "total_after_discount": "117",
    })
    assert order.total == 130.0
    assert order.total_after_discount == 117.0
    assert order.applied_offers == "[]"
    assert order.extra == {"id": "o-1"}
