"""
Discount Allocator - Splits offer-level discounts across line items.

Discount and product-discount offers are split in proportion to each
line's share of the value the offer touches. Buy-get discounts land
wholly on the rewarded product's lines.

Known approximation: when several offers together exceed a line's value
the line total is clipped, and the other offers' shares are not
renormalized. The sum of per-item discounts can then fall short of the
sum of offer discount amounts.
"""
import logging
from collections import defaultdict
from typing import Optional

from .models import (
    AppliedOffer,
    BuyGetOffer,
    DiscountOffer,
    LineItem,
    ProductDiscountOffer,
)
from .pricing import LookupProduct, PriceResolver, get_display_price, line_value


logger = logging.getLogger(__name__)


def _item_values(
    items: list[LineItem],
    lookup_product: Optional[LookupProduct],
    user_type: Optional[str],
    price_resolver: PriceResolver,
) -> dict[str, float]:
    values: dict[str, float] = defaultdict(float)
    for item in items:
        values[item.key] += line_value(item, lookup_product, user_type, price_resolver)
    return values


def allocate_discounts(
    applied_offers: list[AppliedOffer],
    items: list[LineItem],
    lookup_product: Optional[LookupProduct] = None,
    user_type: Optional[str] = None,
    price_resolver: PriceResolver = get_display_price,
) -> dict[str, float]:
    """
    Compute the discount attributable to each line item.

    Returns a map of line item key to discount. Lines without a discount
    are absent. No line's discount exceeds its own value.
    """
    def value_of(item: LineItem) -> float:
        return line_value(item, lookup_product, user_type, price_resolver)

    allocated: dict[str, float] = defaultdict(float)

    for applied in applied_offers:
        offer = applied.offer
        amount = applied.discount_amount or 0.0
        if amount <= 0:
            continue

        if isinstance(offer, (DiscountOffer, ProductDiscountOffer)):
            targets = [
                item for item in items
                if not item.is_free and item.product_id in applied.affected_product_ids
            ]
            if isinstance(offer, ProductDiscountOffer):
                targets = [item for item in targets if offer.variant_scope.allows(item.variant_id)]

            total_affected_value = sum(value_of(item) for item in targets)
            if total_affected_value <= 0:
                logger.debug("Offer %s touches no priced items, nothing to allocate", offer.id)
                continue

            for item in targets:
                share = value_of(item) / total_affected_value * amount
                allocated[item.key] += share

        elif isinstance(offer, BuyGetOffer):
            if offer.grants_free_item:
                continue
            targets = [
                item for item in items
                if not item.is_free
                and item.product_id == offer.get_product_id
                and offer.get_scope.allows(item.variant_id)
            ]
            if not targets:
                logger.debug("Offer %s reward product %s not on order", offer.id, offer.get_product_id)
                continue
            per_line = amount / len(targets)
            for item in targets:
                allocated[item.key] += min(per_line, value_of(item))

    values = _item_values(items, lookup_product, user_type, price_resolver)
    result = {}
    for key, discount in allocated.items():
        clipped = max(0.0, min(discount, values.get(key, 0.0)))
        if clipped < discount:
            logger.debug("Discount on %s clipped from %.4f to %.4f", key, discount, clipped)
        if clipped > 0:
            result[key] = clipped
    return result
