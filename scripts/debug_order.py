import json
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from offer_engine.config.settings import configure_logging
from offer_engine.engine import OfferEngine, LineItem, OrderRequest, PersistedOrder


def debug(order_path: str):
    """Evaluate an exported order (JSON with items and stored offer fields) and print the trace."""
    configure_logging("DEBUG")
    engine = OfferEngine.from_settings()

    with open(order_path, 'r', encoding='utf-8') as f:
        order = json.load(f)

    items = [
        LineItem(
            product_id=str(item['product_id']),
            quantity=int(item.get('quantity', 1)),
            unit_price=item.get('price'),
            variant_id=item.get('variant_id'),
            is_free=bool(item.get('is_free', False)),
            line_id=item.get('id'),
        )
        for item in order.get('items', [])
    ]
    persisted = PersistedOrder.from_record(order) if order.get('stored', True) else None

    print(f"Loaded {len(engine.offers)} offers")
    summary = engine.evaluate(OrderRequest(items=items, user_type=order.get('user_type'), persisted=persisted))

    print("\nTrace:")
    print(summary.get_trace_text())
    print("\nPer-line discounts:")
    for key, amount in summary.item_discounts.items():
        print(f"  {key}: {amount:.2f}")
    print("\nBonus items:")
    for item in summary.free_items:
        print(f"  {item.name} x{item.quantity} ({item.product_id}/{item.variant_id or '-'})")
    print("\nTotals:")
    print(summary.totals)
    if summary.warnings:
        print("\nWarnings:")
        for warning in summary.warnings:
            print(f"  {warning}")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python scripts/debug_order.py <order.json>")
        sys.exit(1)
    debug(sys.argv[1])
