from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW, buy_get_offer, discount_offer, product_discount_offer
from offer_engine.engine.models import LineItem, VariantScope
from offer_engine.engine.offer_matcher import (
    ProductContext,
    is_relevant_to_product,
    live_offers,
    match_offers,
)


def test_discount_offer_affects_every_product_on_order():
    """10% catalog-wide offer over X 2@50 and Y 1@30."""
    items = [LineItem("X", 2, 50.0), LineItem("Y", 1, 30.0)]
    applied = match_offers([discount_offer()], items, now=NOW)

    assert len(applied) == 1
    assert applied[0].affected_product_ids == {"X", "Y"}
    assert applied[0].discount_amount == pytest.approx(13.0, abs=1e-6)


@pytest.mark.parametrize("offer", [
    discount_offer(active=False),
    discount_offer(start_date=datetime(2026, 7, 1)),
    discount_offer(end_date=datetime(2026, 5, 31)),
], ids=["inactive", "not-started", "expired"])
def test_offers_outside_window_never_match(offer):
    items = [LineItem("X", 1, 50.0)]
    assert match_offers([offer], items, now=NOW) == []
    assert live_offers([offer], NOW) == []


def test_validity_window_is_inclusive():
    offer = discount_offer(start_date=NOW, end_date=NOW)
    assert live_offers([offer], NOW) == [offer]


def test_aware_now_compares_with_offer_window():
    items = [LineItem("X", 1, 50.0)]
    aware_now = NOW.replace(tzinfo=timezone.utc)

    applied = match_offers([discount_offer()], items, now=aware_now)
    assert applied[0].discount_amount == pytest.approx(5.0)

    expired = discount_offer(end_date=datetime(2026, 5, 31))
    assert match_offers([expired], items, now=aware_now) == []


def test_aware_offer_dates_are_normalized_to_utc():
    plus_three = timezone(timedelta(hours=3))
    offer = discount_offer(
        start_date=datetime(2026, 6, 1, 14, 0, tzinfo=plus_three),
        end_date=datetime(2026, 6, 1, 16, 0, tzinfo=plus_three),
    )

    assert offer.start_date == datetime(2026, 6, 1, 11, 0)
    assert offer.end_date == datetime(2026, 6, 1, 13, 0)
    assert live_offers([offer], NOW) == [offer], "12:00 UTC is inside 14:00-16:00 at UTC+3"
    assert live_offers([offer], NOW + timedelta(hours=2)) == []


def test_product_discount_only_touches_linked_product():
    items = [LineItem("X", 1, 100.0), LineItem("Z", 1, 50.0)]
    applied = match_offers([product_discount_offer(linked="X", amount=15.0)], items, now=NOW)

    assert len(applied) == 1
    assert applied[0].affected_product_ids == {"X"}
    assert applied[0].discount_amount == pytest.approx(15.0)


def test_product_discount_irrelevant_without_linked_product():
    items = [LineItem("Z", 1, 50.0)]
    assert match_offers([product_discount_offer(linked="X")], items, now=NOW) == []


def test_fixed_discount_capped_at_unit_price():
    items = [LineItem("X", 2, 10.0)]
    applied = match_offers([product_discount_offer(linked="X", amount=15.0)], items, now=NOW)
    assert applied[0].discount_amount == pytest.approx(20.0), "Fixed discount must not exceed item value"


def test_product_discount_respects_variant_scope(specific_scope):
    offer = product_discount_offer(linked="Y", amount=5.0, variant_scope=specific_scope)
    items = [
        LineItem("Y", 1, 30.0, variant_id="y-red"),
        LineItem("Y", 2, 30.0, variant_id="y-blue"),
    ]
    applied = match_offers([offer], items, now=NOW)
    assert applied[0].discount_amount == pytest.approx(10.0), "Only the blue variant lines qualify"


def test_discount_offer_minimum_quantity_and_amount():
    items = [LineItem("X", 1, 50.0)]
    assert match_offers([discount_offer(min_quantity=2)], items, now=NOW) == []
    assert match_offers([discount_offer(min_amount=60.0)], items, now=NOW) == []
    assert len(match_offers([discount_offer(min_quantity=1, min_amount=50.0)], items, now=NOW)) == 1


def test_buy_get_free_grants_one_item_per_block(lookup):
    offer = buy_get_offer(linked="X", buy=2, get="Y")

    applied = match_offers([offer], [LineItem("X", 2, 50.0)], lookup_product=lookup, now=NOW)
    assert len(applied) == 1
    bonus = applied[0].free_items
    assert len(bonus) == 1
    assert bonus[0].product_id == "Y"
    assert bonus[0].quantity == 1
    assert bonus[0].name == "Product Y"
    assert bonus[0].offer_id == offer.id
    assert applied[0].discount_amount == 0
    assert applied[0].affected_product_ids == {"X"}

    applied = match_offers([offer], [LineItem("X", 5, 50.0)], lookup_product=lookup, now=NOW)
    assert applied[0].free_items[0].quantity == 2, "5 // 2 satisfied blocks"


def test_buy_get_below_buy_quantity_not_matched(lookup):
    offer = buy_get_offer(linked="X", buy=2, get="Y")
    assert match_offers([offer], [LineItem("X", 1, 50.0)], lookup_product=lookup, now=NOW) == []


def test_buy_get_ignores_free_lines_when_qualifying(lookup):
    offer = buy_get_offer(linked="X", buy=2, get="Y")
    items = [LineItem("X", 1, 50.0), LineItem("X", 1, 0.0, is_free=True)]
    assert match_offers([offer], items, lookup_product=lookup, now=NOW) == []


def test_buy_get_free_item_uses_scoped_variant(lookup):
    offer = buy_get_offer(get_scope=VariantScope(scope="specific", variant_ids=("y-blue",)))
    applied = match_offers([offer], [LineItem("X", 2, 50.0)], lookup_product=lookup, now=NOW)

    bonus = applied[0].free_items[0]
    assert bonus.variant_id == "y-blue"
    assert bonus.price == pytest.approx(34.0)


def test_buy_get_percentage_discounts_reward_line(lookup):
    offer = buy_get_offer(get_type="percentage", value=50.0)
    items = [LineItem("X", 4, 50.0), LineItem("Y", 3, 30.0)]
    applied = match_offers([offer], items, lookup_product=lookup, now=NOW)

    assert len(applied) == 1
    assert applied[0].free_items == []
    assert applied[0].affected_product_ids == {"X", "Y"}
    # 2 satisfied blocks, 3 Y on order: half price on 2 units of 30
    assert applied[0].discount_amount == pytest.approx(30.0)


def test_buy_get_fixed_discount_capped_at_reward_price(lookup):
    offer = buy_get_offer(get_type="fixed", value=100.0)
    items = [LineItem("X", 2, 50.0), LineItem("Y", 1, 30.0)]
    applied = match_offers([offer], items, lookup_product=lookup, now=NOW)
    assert applied[0].discount_amount == pytest.approx(30.0)


def test_buy_get_discount_without_reward_on_order_has_no_effect(lookup):
    offer = buy_get_offer(get_type="percentage", value=50.0)
    assert match_offers([offer], [LineItem("X", 2, 50.0)], lookup_product=lookup, now=NOW) == []


def test_buy_get_wholesale_reward_price(lookup):
    offer = buy_get_offer(get_type="percentage", value=50.0)
    items = [LineItem("X", 2, 50.0), LineItem("Y", 1, 20.0)]
    applied = match_offers([offer], items, lookup_product=lookup, user_type="wholesale", now=NOW)
    assert applied[0].discount_amount == pytest.approx(10.0), "Wholesale price 20 halves to 10"


def test_offers_match_independently():
    items = [LineItem("X", 1, 100.0), LineItem("Z", 1, 50.0)]
    offers = [discount_offer(percentage=10.0), product_discount_offer(linked="X", amount=15.0)]
    applied = match_offers(offers, items, now=NOW)

    assert [a.offer.id for a in applied] == ["d1", "pd1"]
    assert sum(a.discount_amount for a in applied) == pytest.approx(30.0)


def test_product_context_relevance(lookup):
    offers = [
        discount_offer(),
        product_discount_offer(linked="X"),
        buy_get_offer(linked="X", get="Y"),
    ]

    for_x = match_offers(offers, [], context=ProductContext("X"), lookup_product=lookup, now=NOW)
    assert [a.offer.id for a in for_x] == ["d1", "pd1", "bg1"]

    for_y = match_offers(offers, [], context=ProductContext("Y"), lookup_product=lookup, now=NOW)
    assert [a.offer.id for a in for_y] == ["d1", "bg1"], "Rewarded product sees the buy-get preview"

    for_z = match_offers(offers, [], context=ProductContext("Z"), lookup_product=lookup, now=NOW)
    assert [a.offer.id for a in for_z] == ["d1"]


def test_product_context_discount_preview(lookup):
    applied = match_offers(
        [discount_offer(percentage=10.0)], [], context=ProductContext("X"), lookup_product=lookup, now=NOW
    )
    assert applied[0].affected_product_ids == {"X"}
    assert applied[0].discount_amount == pytest.approx(5.0)


def test_is_relevant_to_product():
    offer = buy_get_offer(linked="X", get="Y")
    assert is_relevant_to_product(offer, "X")
    assert is_relevant_to_product(offer, "Y")
    assert not is_relevant_to_product(offer, "Z")
