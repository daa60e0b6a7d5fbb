"""
Data models for the offer engine.

Uses dataclasses for structured, type-safe data representation.
Offers are a tagged family: each subclass carries its own ``kind``.
"""
import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, time, timezone
from typing import Optional, ClassVar


OFFER_KINDS = ('discount', 'product_discount', 'buy_get')
DISCOUNT_TYPES = ('percentage', 'fixed')
GET_DISCOUNT_TYPES = ('free', 'percentage', 'fixed')


def _blank(value) -> bool:
    """True for None, empty strings and NaN cells coming out of CSV exports."""
    if value is None:
        return True
    if isinstance(value, float) and value != value:
        return True
    return isinstance(value, str) and value.strip() in ('', 'nan', 'None', 'null')


def _to_float(value, default: Optional[float] = None) -> Optional[float]:
    if _blank(value):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_int(value, default: Optional[int] = None) -> Optional[int]:
    number = _to_float(value)
    return default if number is None else int(number)


def _to_bool(value, default: bool = False) -> bool:
    if _blank(value):
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'y', 't')


def _to_str(value) -> Optional[str]:
    return None if _blank(value) else str(value).strip()


def parse_datetime(value, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a stored timestamp into a naive UTC datetime.

    Date-only values are widened to the end of the day when ``end_of_day``
    is set, so an offer ending "2026-04-15" is still live during that day.
    """
    if _blank(value):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip().replace('Z', '+00:00')
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if end_of_day and len(text) == 10:
            parsed = datetime.combine(parsed.date(), time.max)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _window_date(record: dict, offer_id: str, key: str, end_of_day: bool = False) -> Optional[datetime]:
    """A validity bound; blank means unbounded, unreadable is an error."""
    raw = record.get(key)
    parsed = parse_datetime(raw, end_of_day=end_of_day)
    if parsed is None and not _blank(raw):
        raise ValueError(f"Offer {offer_id}: unreadable {key} {raw!r}")
    return parsed


def parse_json_object(raw) -> Optional[dict]:
    """Decode a dict that may arrive JSON-encoded. Anything else gives None."""
    if _blank(raw):
        return None
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw)
        except ValueError:
            return None
        return decoded if isinstance(decoded, dict) else None
    return None


@dataclass(frozen=True)
class VariantScope:
    """Which variants of a product an offer clause applies to."""
    scope: str = "all"  # "all" or "specific"
    variant_ids: tuple = ()

    def allows(self, variant_id: Optional[str]) -> bool:
        if self.scope != 'specific':
            return True
        return bool(variant_id) and str(variant_id) in self.variant_ids

    @property
    def first_variant(self) -> Optional[str]:
        if self.scope == 'specific' and self.variant_ids:
            return self.variant_ids[0]
        return None

    @classmethod
    def from_terms(cls, terms: Optional[dict], prefix: str = "") -> 'VariantScope':
        """Read ``<prefix>variant_scope`` / ``<prefix>variant_ids`` from offer terms."""
        if not terms:
            return cls()
        scope = terms.get(f"{prefix}variant_scope") or "all"
        ids = terms.get(f"{prefix}variant_ids") or []
        if not isinstance(ids, list):
            ids = []
        return cls(scope=str(scope), variant_ids=tuple(str(v) for v in ids))


@dataclass(kw_only=True)
class Offer:
    """A promotional rule. Read-only to the engine."""
    kind: ClassVar[str] = ""

    id: str
    active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    titles: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        # Windows are compared as naive UTC
        self.start_date = parse_datetime(self.start_date)
        self.end_date = parse_datetime(self.end_date)

    def is_live(self, now: datetime) -> bool:
        """Active and inside the inclusive validity window."""
        if not self.active:
            return False
        now = parse_datetime(now)
        if self.start_date is not None and self.start_date > now:
            return False
        if self.end_date is not None and self.end_date < now:
            return False
        return True

    def display_title(self, lang: str = "ar") -> str:
        for key in (lang, 'ar', 'en', 'he'):
            if self.titles.get(key):
                return self.titles[key]
        return self.id

    def to_dict(self) -> dict:
        data = asdict(self)
        data['offer_type'] = self.kind
        for key in ('start_date', 'end_date'):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data

    @staticmethod
    def from_record(record: dict) -> 'Offer':
        """
        Build the right offer variant from a flat storage row.

        Raises ValueError for an unknown kind or missing required fields.
        """
        kind = _to_str(record.get('offer_type')) or _to_str(record.get('kind'))
        offer_id = _to_str(record.get('id'))
        if not offer_id:
            raise ValueError("Offer record has no id")
        if kind not in OFFER_KINDS:
            raise ValueError(f"Offer {offer_id}: unknown offer type {kind!r}")

        titles = dict(record.get('titles') or {})
        for lang in ('ar', 'en', 'he'):
            if _to_str(record.get(f'title_{lang}')):
                titles[lang] = _to_str(record.get(f'title_{lang}'))
        common = dict(
            id=offer_id,
            active=_to_bool(record.get('active'), default=True),
            start_date=_window_date(record, offer_id, 'start_date'),
            end_date=_window_date(record, offer_id, 'end_date', end_of_day=True),
            titles=titles,
        )
        terms = parse_json_object(record.get('terms_and_conditions'))

        if kind == 'buy_get':
            linked = _to_str(record.get('linked_product_id'))
            get_product = _to_str(record.get('get_product_id'))
            if not linked or not get_product:
                raise ValueError(f"Offer {offer_id}: buy_get needs linked_product_id and get_product_id")
            get_type = _to_str(record.get('get_discount_type')) or 'free'
            if get_type not in GET_DISCOUNT_TYPES:
                raise ValueError(f"Offer {offer_id}: unknown get_discount_type {get_type!r}")
            return BuyGetOffer(
                **common,
                linked_product_id=linked,
                buy_quantity=max(1, _to_int(record.get('buy_quantity'), 1)),
                get_product_id=get_product,
                get_discount_type=get_type,
                get_discount_value=_to_float(record.get('get_discount_value'), 0.0),
                buy_scope=VariantScope.from_terms(terms, 'buy_'),
                get_scope=VariantScope.from_terms(terms, 'get_'),
            )

        discount_type = _to_str(record.get('discount_type')) or 'percentage'
        if discount_type not in DISCOUNT_TYPES:
            raise ValueError(f"Offer {offer_id}: unknown discount_type {discount_type!r}")
        magnitude = dict(
            discount_type=discount_type,
            discount_percentage=_to_float(record.get('discount_percentage'), 0.0),
            discount_amount=_to_float(record.get('discount_amount'), 0.0),
        )

        if kind == 'product_discount':
            linked = _to_str(record.get('linked_product_id'))
            if not linked:
                raise ValueError(f"Offer {offer_id}: product_discount needs linked_product_id")
            return ProductDiscountOffer(
                **common,
                **magnitude,
                linked_product_id=linked,
                variant_scope=VariantScope.from_terms(terms),
            )

        return DiscountOffer(
            **common,
            **magnitude,
            min_quantity=_to_int(record.get('min_quantity'), 1),
            min_amount=_to_float(record.get('min_amount'), 0.0),
        )


@dataclass(kw_only=True)
class _DiscountMagnitude:
    discount_type: str = "percentage"
    discount_percentage: float = 0.0
    discount_amount: float = 0.0

    def unit_discount(self, unit_price: float) -> float:
        """Discount for a single unit priced ``unit_price``."""
        if unit_price <= 0:
            return 0.0
        if self.discount_type == 'percentage' and self.discount_percentage:
            return max(0.0, min(unit_price, unit_price * self.discount_percentage / 100.0))
        if self.discount_type == 'fixed' and self.discount_amount:
            return max(0.0, min(self.discount_amount, unit_price))
        return 0.0


@dataclass(kw_only=True)
class DiscountOffer(_DiscountMagnitude, Offer):
    """Catalog-wide discount, optionally gated on order size."""
    kind: ClassVar[str] = "discount"

    min_quantity: int = 1
    min_amount: float = 0.0


@dataclass(kw_only=True)
class ProductDiscountOffer(_DiscountMagnitude, Offer):
    """Discount on a single linked product."""
    kind: ClassVar[str] = "product_discount"

    linked_product_id: str
    variant_scope: VariantScope = field(default_factory=VariantScope)


@dataclass(kw_only=True)
class BuyGetOffer(Offer):
    """Buy ``buy_quantity`` of one product, get another free or discounted."""
    kind: ClassVar[str] = "buy_get"

    linked_product_id: str
    buy_quantity: int = 1
    get_product_id: str
    get_discount_type: str = "free"
    get_discount_value: float = 0.0
    buy_scope: VariantScope = field(default_factory=VariantScope)
    get_scope: VariantScope = field(default_factory=VariantScope)

    @property
    def grants_free_item(self) -> bool:
        return self.get_discount_type == 'free'

    def unit_discount(self, unit_price: float) -> float:
        """Discount for one unit of the rewarded product."""
        if unit_price <= 0:
            return 0.0
        if self.get_discount_type == 'percentage':
            return max(0.0, min(unit_price, unit_price * self.get_discount_value / 100.0))
        if self.get_discount_type == 'fixed':
            return max(0.0, min(self.get_discount_value, unit_price))
        return 0.0


@dataclass
class LineItem:
    """One product line on an order."""
    product_id: str
    quantity: int = 1
    unit_price: Optional[float] = None  # price actually charged, tier-adjusted
    variant_id: Optional[str] = None
    is_free: bool = False
    line_id: Optional[str] = None
    variant_attributes: Optional[dict[str, str]] = None

    @property
    def key(self) -> str:
        """Key used in per-item discount maps."""
        if self.line_id:
            return self.line_id
        if self.variant_id:
            return f"{self.product_id}:{self.variant_id}"
        return self.product_id


@dataclass
class ProductVariant:
    """A purchasable variant of a product."""
    id: str
    price: float = 0.0
    wholesale_price: Optional[float] = None
    option_values: dict[str, str] = field(default_factory=dict)


@dataclass
class ProductSnapshot:
    """Read-only projection of a catalog product."""
    id: str
    names: dict[str, str] = field(default_factory=dict)
    descriptions: dict[str, str] = field(default_factory=dict)
    price: float = 0.0
    original_price: Optional[float] = None
    wholesale_price: Optional[float] = None
    options: list[str] = field(default_factory=list)
    variants: list[ProductVariant] = field(default_factory=list)

    def display_name(self, lang: str = "ar") -> str:
        for key in (lang, 'ar', 'en', 'he'):
            if self.names.get(key):
                return self.names[key]
        return ""


@dataclass
class BonusItem:
    """A reward item granted by an offer or recorded on the order."""
    product_id: str
    quantity: int = 1
    variant_id: Optional[str] = None
    name: Optional[str] = None
    price: Optional[float] = None
    variant_attributes: Optional[dict[str, str]] = None
    offer_id: Optional[str] = None
    offer_name: Optional[str] = None

    # Fields filled from a later source when empty on the first one
    MERGEABLE: ClassVar[tuple] = ('quantity', 'name', 'price', 'variant_attributes', 'offer_id', 'offer_name')

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the logical reward: product and variant only."""
        return (str(self.product_id), str(self.variant_id or ""))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AppliedOffer:
    """Result of matching one offer against a set of line items."""
    offer: Offer
    affected_product_ids: set[str] = field(default_factory=set)
    discount_amount: float = 0.0
    free_items: list[BonusItem] = field(default_factory=list)

    @property
    def has_effect(self) -> bool:
        return self.discount_amount > 0 or bool(self.free_items)

    def to_dict(self) -> dict:
        return {
            "offer": self.offer.to_dict(),
            "affected_product_ids": sorted(self.affected_product_ids),
            "discount_amount": self.discount_amount,
            "free_items": [item.to_dict() for item in self.free_items],
        }


@dataclass
class OrderTotals:
    """Final numbers for an order."""
    subtotal: float
    total_discount: float
    final_total: float
    savings: float
    uses_persisted_total: bool = False

    @property
    def has_discount(self) -> bool:
        return self.total_discount > 0


@dataclass
class TraceStep:
    """A single step in the evaluation trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class OrderSummary:
    """Complete result of evaluating offers for an order."""
    source: str  # "live" or "snapshot"
    applied_offers: list[AppliedOffer] = field(default_factory=list)
    item_discounts: dict[str, float] = field(default_factory=dict)
    free_items: list[BonusItem] = field(default_factory=list)
    totals: Optional[OrderTotals] = None
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the evaluation trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        """Add a warning, once."""
        if warning not in self.warnings:
            self.warnings.append(warning)

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"• {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"• {t.step}: {t.description}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "applied_offers": [a.to_dict() for a in self.applied_offers],
            "item_discounts": dict(self.item_discounts),
            "free_items": [item.to_dict() for item in self.free_items],
            "totals": asdict(self.totals) if self.totals else None,
            "warnings": list(self.warnings),
            "trace": [asdict(t) for t in self.trace],
        }


@dataclass
class OrderRequest:
    """An order to evaluate, with optional fields stored when it was placed."""
    items: list[LineItem]
    user_type: Optional[str] = None
    now: Optional[datetime] = None
    lang: str = "ar"

    # Set for orders that already exist; holds a PersistedOrder
    persisted: Optional[object] = None
