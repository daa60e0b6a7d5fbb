"""
Free-Item Resolver - Reconciles bonus items from two provenance sources.

Offers matched at render time and the ``free_items`` snapshot stored when
the order was placed can describe the same physical reward with different
metadata. Both are merged into one list keyed by product and variant.
"""
import logging
from dataclasses import replace
from typing import Iterable, Optional

from .models import AppliedOffer, BonusItem
from .pricing import LookupProduct, PriceResolver, get_display_price, get_variant_price


logger = logging.getLogger(__name__)


def _is_empty(field_name: str, value) -> bool:
    if value is None:
        return True
    if field_name == 'quantity':
        return value <= 0
    if isinstance(value, (str, dict, list)):
        return len(value) == 0
    return False


def _copy(item: BonusItem) -> BonusItem:
    attrs = dict(item.variant_attributes) if item.variant_attributes else item.variant_attributes
    return replace(item, variant_attributes=attrs)


def merge_bonus_item(existing: BonusItem, incoming: BonusItem) -> BonusItem:
    """Fill empty fields of ``existing`` from ``incoming``; populated fields win."""
    for name in BonusItem.MERGEABLE:
        current = getattr(existing, name)
        candidate = getattr(incoming, name)
        if _is_empty(name, current) and not _is_empty(name, candidate):
            if isinstance(candidate, dict):
                candidate = dict(candidate)
            setattr(existing, name, candidate)
    return existing


def bonus_items_from_offers(applied_offers: Iterable[AppliedOffer]) -> list[BonusItem]:
    """All bonus items granted by a set of applied offers, in offer order."""
    return [item for applied in applied_offers for item in applied.free_items]


def resolve_free_items(
    from_offers: list[BonusItem],
    from_order_snapshot: list[BonusItem],
    lookup_product: Optional[LookupProduct] = None,
    user_type: Optional[str] = None,
    lang: str = "ar",
    price_resolver: PriceResolver = get_display_price,
) -> list[BonusItem]:
    """
    Merge bonus items into one de-duplicated list.

    Offer-derived items are inserted first, then snapshot items. Items with
    the same (product_id, variant_id) merge field by field. Items left
    without a name that the catalog cannot name either are dropped.
    Inputs are never mutated.
    """
    merged: dict[tuple[str, str], BonusItem] = {}

    for item in list(from_offers or []) + list(from_order_snapshot or []):
        if not item.product_id:
            continue
        key = item.key
        if key in merged:
            merge_bonus_item(merged[key], item)
        else:
            merged[key] = _copy(item)

    resolved = []
    for key, item in merged.items():
        needs_name = _is_empty('name', item.name)
        if (needs_name or item.price is None) and lookup_product is not None:
            product = lookup_product(item.product_id)
            if product is not None:
                if needs_name:
                    item.name = product.display_name(lang) or None
                if item.price is None:
                    item.price = get_variant_price(
                        product,
                        variant_id=item.variant_id,
                        variant_attributes=item.variant_attributes,
                        user_type=user_type,
                        price_resolver=price_resolver,
                    )

        if _is_empty('name', item.name):
            logger.warning("Dropping bonus item %s/%s: no display name available", *key)
            continue
        resolved.append(item)

    return resolved
