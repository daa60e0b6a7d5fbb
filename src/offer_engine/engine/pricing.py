"""
Price helpers - tier-aware display price and line reference price.

The engine never re-derives business pricing rules: it only asks these
helpers for a price when a line item does not carry its own.
"""
import json
from typing import Callable, Optional

from ..config.settings import get_settings
from .models import LineItem, ProductSnapshot


LookupProduct = Callable[[str], Optional[ProductSnapshot]]
PriceResolver = Callable[[ProductSnapshot, Optional[str]], float]


def is_wholesale(user_type: Optional[str]) -> bool:
    """Whether the user type is priced at wholesale."""
    return bool(user_type) and user_type in get_settings().wholesale_user_types


def get_display_price(product: Optional[ProductSnapshot], user_type: Optional[str] = None) -> float:
    """
    Price shown to a user of the given type.

    Wholesale-priced user types get the wholesale price when one is set.
    """
    if product is None:
        return 0.0
    if is_wholesale(user_type) and product.wholesale_price and product.wholesale_price > 0:
        return float(product.wholesale_price)
    return float(product.price or 0.0)


def _normalize_option_value(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True)
    return str(value)


def get_variant_price(
    product: Optional[ProductSnapshot],
    variant_id: Optional[str] = None,
    variant_attributes: Optional[dict] = None,
    user_type: Optional[str] = None,
    price_resolver: PriceResolver = get_display_price,
) -> float:
    """
    Variant-aware display price.

    The variant is found by id first, then by matching every product option
    against ``variant_attributes``; without a match the product price is used.
    """
    if product is None:
        return 0.0

    matched = None
    if variant_id:
        matched = next((v for v in product.variants if str(v.id) == str(variant_id)), None)

    if matched is None and variant_attributes and product.options:
        for variant in product.variants:
            if all(
                _normalize_option_value(variant.option_values.get(option))
                == _normalize_option_value(variant_attributes.get(option))
                for option in product.options
            ):
                matched = variant
                break

    if matched is not None:
        if is_wholesale(user_type) and matched.wholesale_price and matched.wholesale_price > 0:
            return float(matched.wholesale_price)
        return float(matched.price or 0.0)

    return price_resolver(product, user_type)


def reference_price(
    item: LineItem,
    lookup_product: Optional[LookupProduct] = None,
    user_type: Optional[str] = None,
    price_resolver: PriceResolver = get_display_price,
) -> float:
    """Unit price used to value a line: its own price, else the catalog's."""
    if item.unit_price is not None:
        return max(0.0, float(item.unit_price))
    if lookup_product is None:
        return 0.0
    product = lookup_product(item.product_id)
    if product is None:
        return 0.0
    return max(0.0, get_variant_price(
        product,
        variant_id=item.variant_id,
        variant_attributes=item.variant_attributes,
        user_type=user_type,
        price_resolver=price_resolver,
    ))


def line_value(
    item: LineItem,
    lookup_product: Optional[LookupProduct] = None,
    user_type: Optional[str] = None,
    price_resolver: PriceResolver = get_display_price,
) -> float:
    """Reference price times quantity. Free lines are worth nothing."""
    if item.is_free:
        return 0.0
    return reference_price(item, lookup_product, user_type, price_resolver) * max(0, item.quantity)
