"""
Offer Engine - Single entry point for offer evaluation with traceability.

Replaces the three places order offers used to be worked out (product
relevance check, PDF invoice and print view) with one pure pipeline:
match offers -> allocate discounts -> resolve bonus items -> totals.
Rendering layers call it and only format the result.
"""
import logging
from datetime import datetime
from typing import Optional

from ..config.settings import Settings, get_settings
from .discount_allocator import allocate_discounts
from .free_items import bonus_items_from_offers, resolve_free_items
from .models import AppliedOffer, BonusItem, LineItem, Offer, OrderRequest, OrderSummary
from .offer_matcher import OfferMatcher, ProductContext, live_offers, utc_now
from .persisted import (
    PersistedOrder,
    legacy_total_after_discount,
    parse_applied_offers,
    parse_free_items,
)
from .pricing import LookupProduct, PriceResolver, get_display_price, reference_price
from .totals import compute_totals


logger = logging.getLogger(__name__)


def _looks_unreadable(raw, parsed: list) -> bool:
    """A stored field that had content but produced nothing usable."""
    if raw is None or parsed:
        return False
    if isinstance(raw, str):
        return raw.strip() not in ('', '[]', 'null')
    return not (isinstance(raw, list) and not raw)


class OfferEngine:
    """
    Evaluates offers for orders and product pages.

    Evaluation order for an order:
    1. Applied offers: matched live against the catalog, or read from the
       order's stored snapshot when the order already exists
    2. Per-line discounts: proportional split, clipped to line value
    3. Bonus items: offer-granted merged with the stored free items
    4. Totals: stored final total wins over recomputation
    """

    def __init__(
        self,
        offers: Optional[list[Offer]] = None,
        lookup_product: Optional[LookupProduct] = None,
        price_resolver: PriceResolver = get_display_price,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.offers = list(offers or [])
        self.lookup_product = lookup_product
        self.price_resolver = price_resolver

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> 'OfferEngine':
        """Build an engine over the exported offer and product catalogs."""
        from ..data.catalog import ProductCatalog, load_offers

        settings = settings or get_settings()
        products = ProductCatalog.from_csv(settings.products_csv)
        offers = load_offers(settings.offers_csv)
        logger.info("Loaded %d offers and %d products", len(offers), len(products))
        return cls(offers=offers, lookup_product=products.lookup, settings=settings)

    def _matcher(self, user_type: Optional[str]) -> OfferMatcher:
        return OfferMatcher(
            lookup_product=self.lookup_product,
            user_type=user_type,
            price_resolver=self.price_resolver,
        )

    def live_offers(self, now: Optional[datetime] = None) -> list[Offer]:
        """Offers currently active and inside their validity window."""
        return live_offers(self.offers, now)

    def offers_for_product(
        self,
        product_id: str,
        user_type: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[AppliedOffer]:
        """Offers a product page should advertise, with one-unit previews."""
        user_type = user_type or self.settings.default_user_type
        return self._matcher(user_type).match(self.offers, [], context=ProductContext(product_id), now=now)

    def evaluate(self, request: OrderRequest) -> OrderSummary:
        """
        Evaluate offers for an order with full traceability.

        Args:
            request: OrderRequest with line items and, for existing orders,
                the stored PersistedOrder fields

        Returns:
            OrderSummary with applied offers, per-line discounts, bonus
            items, totals, trace and warnings
        """
        user_type = request.user_type or self.settings.default_user_type
        now = request.now or utc_now()
        items = list(request.items or [])
        persisted = request.persisted

        summary = OrderSummary(source="snapshot" if persisted is not None else "live")
        summary.add_trace("Context", f"{len(items)} line item(s), user type {user_type}")

        snapshot_free: list[BonusItem] = []
        persisted_total = None

        if persisted is not None:
            applied, snapshot_free = self._read_snapshot(persisted, summary)
            summary.add_trace("Applied Offers", "Read from stored order snapshot", str(len(applied)))
        else:
            applied = self._matcher(user_type).match(self.offers, items, context='order', now=now)
            summary.add_trace("Applied Offers", f"Matched live against {len(self.offers)} offer(s)", str(len(applied)))

        summary.applied_offers = applied
        for entry in applied:
            summary.add_trace(
                "Offer",
                f"{entry.offer.display_title(request.lang)} ({entry.offer.kind})",
                f"{entry.discount_amount:.2f}",
            )

        summary.item_discounts = allocate_discounts(
            applied, items, self.lookup_product, user_type, self.price_resolver
        )
        offered = sum(entry.discount_amount for entry in applied)
        allocated = sum(summary.item_discounts.values())
        summary.add_trace("Allocation", f"Split across {len(summary.item_discounts)} line(s)", f"{allocated:.2f}")
        if allocated + 1e-6 < offered:
            summary.add_warning(
                f"Allocated discount {allocated:.2f} is below offered {offered:.2f} (clipped to line values)"
            )

        summary.free_items = resolve_free_items(
            bonus_items_from_offers(applied),
            snapshot_free,
            lookup_product=self.lookup_product,
            user_type=user_type,
            lang=request.lang,
            price_resolver=self.price_resolver,
        )
        summary.add_trace("Bonus Items", "Merged offer and stored free items", str(len(summary.free_items)))

        def price_of(item: LineItem) -> float:
            return reference_price(item, self.lookup_product, user_type, self.price_resolver)

        if persisted is not None:
            subtotal = compute_totals(items, {}, price_of=price_of).subtotal
            base = persisted.total if persisted.total is not None else subtotal
            persisted_total = legacy_total_after_discount(persisted, base)

        summary.totals = compute_totals(items, summary.item_discounts, persisted_total, price_of=price_of)
        if summary.totals.uses_persisted_total:
            summary.add_trace("Totals", "Using stored total after discount", f"{summary.totals.final_total:.2f}")
        else:
            summary.add_trace("Totals", "Subtotal minus allocated discounts", f"{summary.totals.final_total:.2f}")

        return summary

    def _read_snapshot(
        self,
        persisted: PersistedOrder,
        summary: OrderSummary,
    ) -> tuple[list[AppliedOffer], list[BonusItem]]:
        """Stored offers and free items; unreadable data counts as none."""
        try:
            applied = parse_applied_offers(persisted.applied_offers)
        except Exception as e:
            logger.warning("Failed to read stored applied offers: %s", e)
            applied = []
        if _looks_unreadable(persisted.applied_offers, applied):
            summary.add_warning("Stored applied_offers unreadable, treated as no offers")

        try:
            free = parse_free_items(persisted.free_items)
        except Exception as e:
            logger.warning("Failed to read stored free items: %s", e)
            free = []
        if _looks_unreadable(persisted.free_items, free):
            summary.add_warning("Stored free_items unreadable, treated as no bonus items")

        return applied, free
