"""
Offer Matcher - Decides which offers apply and what they affect.

Used by the offer engine for whole orders and by product pages for
"offers on this product" previews. Offers are matched independently and
their effects accumulate; there is no priority between offers.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from .models import (
    Offer,
    DiscountOffer,
    ProductDiscountOffer,
    BuyGetOffer,
    LineItem,
    AppliedOffer,
    BonusItem,
    parse_datetime,
)
from .pricing import (
    LookupProduct,
    PriceResolver,
    get_display_price,
    get_variant_price,
    reference_price,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductContext:
    """Matching for a single product page rather than a whole order."""
    product_id: str


MatchContext = Union[str, ProductContext]


def utc_now() -> datetime:
    """Current time as a naive UTC datetime, comparable to offer windows."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def live_offers(offers: list[Offer], now: Optional[datetime] = None) -> list[Offer]:
    """Active offers whose validity window contains ``now``."""
    now = parse_datetime(now) or utc_now()
    return [offer for offer in offers if offer.is_live(now)]


def is_relevant_to_product(offer: Offer, product_id: str) -> bool:
    """Whether a product page should advertise the offer."""
    if isinstance(offer, DiscountOffer):
        return True
    if isinstance(offer, ProductDiscountOffer):
        return offer.linked_product_id == product_id
    if isinstance(offer, BuyGetOffer):
        return product_id in (offer.linked_product_id, offer.get_product_id)
    return False


class OfferMatcher:
    """
    Matches offers against line items.

    Holds the per-call collaborators (product lookup, price resolver and
    user type) so each offer kind gets the same view of prices.
    """

    def __init__(
        self,
        lookup_product: Optional[LookupProduct] = None,
        user_type: Optional[str] = None,
        price_resolver: PriceResolver = get_display_price,
    ):
        self.lookup_product = lookup_product
        self.user_type = user_type
        self.price_resolver = price_resolver

    def _lookup(self, product_id: str):
        if self.lookup_product is None:
            return None
        return self.lookup_product(product_id)

    def _ref_price(self, item: LineItem) -> float:
        return reference_price(item, self.lookup_product, self.user_type, self.price_resolver)

    def _product_price(self, product_id: str, variant_id: Optional[str] = None) -> Optional[float]:
        product = self._lookup(product_id)
        if product is None:
            return None
        return get_variant_price(
            product,
            variant_id=variant_id,
            user_type=self.user_type,
            price_resolver=self.price_resolver,
        )

    def match(
        self,
        offers: list[Offer],
        items: list[LineItem],
        context: MatchContext = 'order',
        now: Optional[datetime] = None,
    ) -> list[AppliedOffer]:
        """
        Match every live offer against the context.

        Returns one AppliedOffer per relevant offer, in catalog order.
        """
        applied = []
        for offer in live_offers(offers, now):
            if isinstance(context, ProductContext):
                result = self.match_product(offer, context.product_id)
            else:
                result = self.match_order(offer, items)
            if result is not None:
                applied.append(result)
            else:
                logger.debug("Offer %s (%s) not applicable", offer.id, offer.kind)
        return applied

    def match_product(self, offer: Offer, product_id: str) -> Optional[AppliedOffer]:
        """Single-product relevance, with a one-unit discount preview."""
        if not is_relevant_to_product(offer, product_id):
            return None

        if isinstance(offer, BuyGetOffer):
            # Quantity condition is not checkable on a product page
            return AppliedOffer(
                offer=offer,
                affected_product_ids={offer.linked_product_id, offer.get_product_id},
            )

        price = self._product_price(product_id)
        preview = offer.unit_discount(price) if price is not None else 0.0
        return AppliedOffer(offer=offer, affected_product_ids={product_id}, discount_amount=preview)

    def match_order(self, offer: Offer, items: list[LineItem]) -> Optional[AppliedOffer]:
        """Order-level matching. None when the offer has no effect."""
        if isinstance(offer, DiscountOffer):
            result = self._match_discount(offer, items)
        elif isinstance(offer, ProductDiscountOffer):
            result = self._match_product_discount(offer, items)
        elif isinstance(offer, BuyGetOffer):
            result = self._match_buy_get(offer, items)
        else:
            logger.warning("Offer %s has unsupported kind %r", offer.id, offer.kind)
            return None

        if result is None or not result.has_effect:
            return None
        return result

    def _match_discount(self, offer: DiscountOffer, items: list[LineItem]) -> Optional[AppliedOffer]:
        paid = [item for item in items if not item.is_free]
        total_qty = sum(item.quantity for item in paid)
        order_value = sum(self._ref_price(item) * item.quantity for item in paid)

        if total_qty < (offer.min_quantity or 1):
            logger.debug("Offer %s needs %s items, order has %s", offer.id, offer.min_quantity, total_qty)
            return None
        if offer.min_amount and order_value < offer.min_amount:
            logger.debug("Offer %s needs amount %.2f, order has %.2f", offer.id, offer.min_amount, order_value)
            return None

        discount = sum(offer.unit_discount(self._ref_price(item)) * item.quantity for item in paid)
        return AppliedOffer(
            offer=offer,
            affected_product_ids={item.product_id for item in items},
            discount_amount=discount,
        )

    def _match_product_discount(self, offer: ProductDiscountOffer, items: list[LineItem]) -> Optional[AppliedOffer]:
        if not any(item.product_id == offer.linked_product_id for item in items):
            return None

        targets = [
            item for item in items
            if item.product_id == offer.linked_product_id
            and not item.is_free
            and offer.variant_scope.allows(item.variant_id)
        ]
        discount = sum(offer.unit_discount(self._ref_price(item)) * item.quantity for item in targets)
        return AppliedOffer(
            offer=offer,
            affected_product_ids={offer.linked_product_id},
            discount_amount=discount,
        )

    def _match_buy_get(self, offer: BuyGetOffer, items: list[LineItem]) -> Optional[AppliedOffer]:
        qualifying_qty = sum(
            item.quantity for item in items
            if item.product_id == offer.linked_product_id
            and not item.is_free
            and offer.buy_scope.allows(item.variant_id)
        )
        if qualifying_qty < offer.buy_quantity:
            return None

        blocks = qualifying_qty // offer.buy_quantity
        logger.debug("Offer %s satisfied %s time(s)", offer.id, blocks)

        if offer.grants_free_item:
            variant_id = offer.get_scope.first_variant
            product = self._lookup(offer.get_product_id)
            bonus = BonusItem(
                product_id=offer.get_product_id,
                quantity=blocks,
                variant_id=variant_id,
                name=product.display_name() if product else None,
                price=self._product_price(offer.get_product_id, variant_id),
                offer_id=offer.id,
                offer_name=offer.display_title(),
            )
            return AppliedOffer(offer=offer, affected_product_ids={offer.linked_product_id}, free_items=[bonus])

        reward_lines = [
            item for item in items
            if item.product_id == offer.get_product_id
            and not item.is_free
            and offer.get_scope.allows(item.variant_id)
        ]
        reward_qty = sum(item.quantity for item in reward_lines)
        if reward_qty <= 0:
            return None

        unit_price = self._product_price(offer.get_product_id)
        if unit_price is None:
            unit_price = self._ref_price(reward_lines[0])

        discount = offer.unit_discount(unit_price) * min(reward_qty, blocks)
        return AppliedOffer(
            offer=offer,
            affected_product_ids={offer.linked_product_id, offer.get_product_id},
            discount_amount=discount,
        )


def match_offers(
    offers: list[Offer],
    items: list[LineItem],
    context: MatchContext = 'order',
    lookup_product: Optional[LookupProduct] = None,
    user_type: Optional[str] = None,
    now: Optional[datetime] = None,
    price_resolver: PriceResolver = get_display_price,
) -> list[AppliedOffer]:
    """Match offers against an order's items or a single product."""
    matcher = OfferMatcher(lookup_product=lookup_product, user_type=user_type, price_resolver=price_resolver)
    return matcher.match(offers, items, context=context, now=now)
