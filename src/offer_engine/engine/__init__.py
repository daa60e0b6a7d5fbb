"""Engine subpackage - offer matching, discount allocation and totals."""
from .offer_engine import OfferEngine
from .models import (
    Offer,
    DiscountOffer,
    ProductDiscountOffer,
    BuyGetOffer,
    LineItem,
    ProductSnapshot,
    BonusItem,
    AppliedOffer,
    OrderTotals,
    OrderRequest,
    OrderSummary,
)
from .offer_matcher import ProductContext, match_offers
from .discount_allocator import allocate_discounts
from .free_items import resolve_free_items
from .totals import compute_totals
from .persisted import PersistedOrder

__all__ = [
    'OfferEngine', 'Offer', 'DiscountOffer', 'ProductDiscountOffer', 'BuyGetOffer',
    'LineItem', 'ProductSnapshot', 'BonusItem', 'AppliedOffer', 'OrderTotals',
    'OrderRequest', 'OrderSummary', 'ProductContext', 'match_offers',
    'allocate_discounts', 'resolve_free_items', 'compute_totals', 'PersistedOrder',
]
