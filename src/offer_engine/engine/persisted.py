"""
Persisted order fields - tolerant readers for stored offer snapshots.

Orders store ``applied_offers`` and ``free_items`` either JSON-encoded or
already parsed, plus legacy single-discount fields. Anything unreadable is
treated as empty: promotional display degrades, order rendering does not.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .models import (
    AppliedOffer,
    BonusItem,
    Offer,
    _blank,
    _to_float,
    _to_int,
    _to_str,
    parse_json_object,
)


logger = logging.getLogger(__name__)


def parse_json_list(raw: Any, field_name: str = "field") -> list:
    """Decode a list that may arrive JSON-encoded; anything else is []."""
    if _blank(raw):
        return []
    if isinstance(raw, list):
        return raw
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.warning("Unparseable %s JSON, treating as empty", field_name)
            return []
        if isinstance(decoded, list):
            return decoded
    logger.warning("%s is not a list (%s), treating as empty", field_name, type(raw).__name__)
    return []


def _first(record: dict, *keys):
    for key in keys:
        value = record.get(key)
        if not _blank(value):
            return value
    return None


def bonus_item_from_record(record: dict) -> Optional[BonusItem]:
    """Read one stored free-item record. Records without a product are skipped."""
    if not isinstance(record, dict):
        return None
    product = record.get('product') if isinstance(record.get('product'), dict) else {}

    product_id = _to_str(_first(record, 'product_id', 'productId')) or _to_str(product.get('id'))
    if not product_id:
        return None

    name = _first(record, 'name', 'product_name', 'product_name_ar', 'product_name_en')
    if name is None:
        name = _first(product, 'name', 'name_ar', 'nameEn', 'name_en')
    price = _to_float(_first(record, 'price', 'original_price'))
    if price is None or price <= 0:
        price = _to_float(product.get('price'), price)

    attrs = _first(record, 'variant_attributes', 'variantAttributes')
    return BonusItem(
        product_id=product_id,
        quantity=_to_int(record.get('quantity'), 1),
        variant_id=_to_str(_first(record, 'variant_id', 'variantId')),
        name=_to_str(name),
        price=price,
        variant_attributes=parse_json_object(attrs),
        offer_id=_to_str(_first(record, 'offer_id', 'offerId')),
        offer_name=_to_str(_first(record, 'offer_name', 'offerName')),
    )


def parse_free_items(raw: Any) -> list[BonusItem]:
    """Stored ``free_items`` as BonusItems."""
    items = []
    for record in parse_json_list(raw, 'free_items'):
        item = bonus_item_from_record(record)
        if item is not None:
            items.append(item)
    return items


def applied_offer_from_record(record: dict) -> Optional[AppliedOffer]:
    """Read one stored offer-application record; unusable records give None."""
    if not isinstance(record, dict) or not isinstance(record.get('offer'), dict):
        return None
    try:
        offer = Offer.from_record(record['offer'])
    except ValueError as e:
        logger.warning("Skipping stored applied offer: %s", e)
        return None

    affected = _first(record, 'affectedProducts', 'affected_product_ids', 'affected_products') or []
    free_records = _first(record, 'freeProducts', 'free_products', 'free_items') or []

    free_items = []
    for free in free_records if isinstance(free_records, list) else []:
        item = bonus_item_from_record(free)
        if item is not None:
            if not item.offer_id:
                item.offer_id = offer.id
                item.offer_name = offer.display_title()
            free_items.append(item)

    return AppliedOffer(
        offer=offer,
        affected_product_ids={str(p) for p in affected} if isinstance(affected, list) else set(),
        discount_amount=max(0.0, _to_float(_first(record, 'discountAmount', 'discount_amount'), 0.0)),
        free_items=free_items,
    )


def parse_applied_offers(raw: Any) -> list[AppliedOffer]:
    """Stored ``applied_offers`` as AppliedOffers."""
    applied = []
    for record in parse_json_list(raw, 'applied_offers'):
        result = applied_offer_from_record(record)
        if result is not None:
            applied.append(result)
    return applied


@dataclass
class PersistedOrder:
    """Offer-related fields stored on an order when it was placed."""
    applied_offers: Any = None
    free_items: Any = None
    total: Optional[float] = None
    discount_type: Optional[str] = None  # legacy: "percent" or "amount"
    discount_value: Optional[float] = None
    total_after_discount: Optional[float] = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: dict) -> 'PersistedOrder':
        known = {'applied_offers', 'free_items', 'total', 'discount_type', 'discount_value', 'total_after_discount'}
        return cls(
            applied_offers=record.get('applied_offers'),
            free_items=record.get('free_items'),
            total=_to_float(record.get('total')),
            discount_type=_to_str(record.get('discount_type')),
            discount_value=_to_float(record.get('discount_value')),
            total_after_discount=_to_float(record.get('total_after_discount')),
            extra={k: v for k, v in record.items() if k not in known},
        )


def legacy_total_after_discount(order: PersistedOrder, total: Optional[float] = None) -> Optional[float]:
    """
    Final total from stored fields, or None when nothing is stored.

    A stored ``total_after_discount`` wins. Otherwise a legacy
    percent/amount discount is applied to the stored total, floored at 0.
    """
    if order.total_after_discount is not None:
        return order.total_after_discount

    base = total if total is not None else order.total
    value = order.discount_value or 0.0
    if base is None or value <= 0:
        return None
    if order.discount_type == 'percent':
        return max(0.0, base - base * value / 100.0)
    if order.discount_type == 'amount':
        return max(0.0, base - value)
    return None
