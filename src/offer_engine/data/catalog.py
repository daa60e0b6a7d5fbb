"""
Catalog Loader - Reads exported offer and product tables.

The engine works on already-fetched snapshots; these loaders turn the
storefront's CSV exports into them. Missing files give empty catalogs.
"""
import json
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from ..engine.models import Offer, ProductSnapshot, ProductVariant, _to_float, _to_str


logger = logging.getLogger(__name__)

LANGS = ('ar', 'en', 'he')


def _read_export(path: Optional[Path]) -> pd.DataFrame:
    """Read a CSV export as strings with stripped headers and cells."""
    if path is None or not Path(path).exists():
        return pd.DataFrame()
    df = pd.read_csv(path, dtype=str).fillna('')
    df.columns = [c.strip() for c in df.columns]
    for col in df.columns:
        df[col] = df[col].astype(str).str.strip()
    return df


def _json_cell(value, default):
    if not value:
        return default
    try:
        decoded = json.loads(value)
    except ValueError:
        return default
    return decoded if isinstance(decoded, type(default)) else default


def offers_from_frame(df: pd.DataFrame) -> list[Offer]:
    """Convert offer rows; rows that do not describe a valid offer are skipped."""
    offers = []
    for record in df.to_dict(orient='records'):
        try:
            offers.append(Offer.from_record(record))
        except ValueError as e:
            logger.warning("Skipping offer row: %s", e)
    return offers


def load_offers(path: Optional[Path]) -> list[Offer]:
    """Load the offers export."""
    return offers_from_frame(_read_export(path))


def product_from_record(record: dict) -> Optional[ProductSnapshot]:
    """Convert one product row. Rows without an id give None."""
    product_id = _to_str(record.get('id'))
    if not product_id:
        return None

    variants = []
    for raw in _json_cell(record.get('variants'), []):
        if not isinstance(raw, dict) or _to_str(raw.get('id')) is None:
            continue
        option_values = raw.get('option_values') if isinstance(raw.get('option_values'), dict) else {}
        variants.append(ProductVariant(
            id=str(raw['id']),
            price=_to_float(raw.get('price'), 0.0),
            wholesale_price=_to_float(raw.get('wholesale_price')),
            option_values={str(k): str(v) for k, v in option_values.items()},
        ))

    options = []
    for option in _json_cell(record.get('options'), []):
        name = option.get('name') if isinstance(option, dict) else option
        if _to_str(name):
            options.append(str(name))

    return ProductSnapshot(
        id=product_id,
        names={lang: record[f'name_{lang}'] for lang in LANGS if _to_str(record.get(f'name_{lang}'))},
        descriptions={
            lang: record[f'description_{lang}'] for lang in LANGS if _to_str(record.get(f'description_{lang}'))
        },
        price=_to_float(record.get('price'), 0.0),
        original_price=_to_float(record.get('original_price')),
        wholesale_price=_to_float(record.get('wholesale_price')),
        options=options,
        variants=variants,
    )


class ProductCatalog:
    """In-memory product snapshots with a lookup that never raises."""

    def __init__(self, products: Optional[list[ProductSnapshot]] = None):
        self.products: dict[str, ProductSnapshot] = {}
        for product in products or []:
            self.products[product.id] = product

    def __len__(self) -> int:
        return len(self.products)

    def __contains__(self, product_id: str) -> bool:
        return str(product_id) in self.products

    def lookup(self, product_id: str) -> Optional[ProductSnapshot]:
        """Snapshot for ``product_id`` or None when unknown."""
        if product_id is None:
            return None
        return self.products.get(str(product_id))

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> 'ProductCatalog':
        products = []
        for record in df.to_dict(orient='records'):
            product = product_from_record(record)
            if product is None:
                logger.warning("Skipping product row without id")
                continue
            products.append(product)
        return cls(products)

    @classmethod
    def from_csv(cls, path: Optional[Path]) -> 'ProductCatalog':
        """Load the products export."""
        return cls.from_frame(_read_export(path))
