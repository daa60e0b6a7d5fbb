"""
Offer Engine Package

Offer matching and discount allocation for storefront orders.
Decides which promotional offers apply to an order, splits their discounts
across line items, reconciles bonus items and derives the payable total.
"""

__version__ = "1.0.0"
