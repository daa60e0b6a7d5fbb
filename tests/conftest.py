import os
import sys
from datetime import datetime

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from offer_engine.data.catalog import ProductCatalog
from offer_engine.engine.models import (
    BuyGetOffer,
    DiscountOffer,
    ProductDiscountOffer,
    ProductSnapshot,
    ProductVariant,
    VariantScope,
)


NOW = datetime(2026, 6, 1, 12, 0, 0)
WINDOW = dict(start_date=datetime(2026, 1, 1), end_date=datetime(2026, 12, 31, 23, 59))


def discount_offer(offer_id="d1", percentage=10.0, **kwargs):
    params = dict(WINDOW, discount_type="percentage", discount_percentage=percentage)
    params.update(kwargs)
    return DiscountOffer(id=offer_id, **params)


def product_discount_offer(offer_id="pd1", linked="X", amount=15.0, **kwargs):
    params = dict(WINDOW, discount_type="fixed", discount_amount=amount, linked_product_id=linked)
    params.update(kwargs)
    return ProductDiscountOffer(id=offer_id, **params)


def buy_get_offer(offer_id="bg1", linked="X", buy=2, get="Y", get_type="free", value=0.0, **kwargs):
    params = dict(
        WINDOW,
        linked_product_id=linked,
        buy_quantity=buy,
        get_product_id=get,
        get_discount_type=get_type,
        get_discount_value=value,
    )
    params.update(kwargs)
    return BuyGetOffer(id=offer_id, **params)


@pytest.fixture
def catalog():
    """Small product catalog: X, Y (with variants), Z and a wholesale-priced W."""
    return ProductCatalog([
        ProductSnapshot(id="X", names={"ar": "منتج X", "en": "Product X"}, price=50.0),
        ProductSnapshot(
            id="Y",
            names={"en": "Product Y"},
            price=30.0,
            wholesale_price=20.0,
            options=["color"],
            variants=[
                ProductVariant(id="y-red", price=32.0, option_values={"color": "red"}),
                ProductVariant(id="y-blue", price=34.0, wholesale_price=22.0, option_values={"color": "blue"}),
            ],
        ),
        ProductSnapshot(id="Z", names={"en": "Product Z"}, price=50.0),
        ProductSnapshot(id="W", names={"en": "Product W"}, price=40.0, wholesale_price=25.0),
    ])


@pytest.fixture
def lookup(catalog):
    return catalog.lookup


@pytest.fixture
def specific_scope():
    return VariantScope(scope="specific", variant_ids=("y-blue",))
