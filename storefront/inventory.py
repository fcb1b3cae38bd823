"""Base-unit inventory math.

Every product has one stock count expressed in base units (4oz packages).
Each price variant consumes ``base_units`` of that pool per item sold, so
a "1 lb" bag uses four base units and an "8oz" bag uses two.
"""
from dataclasses import dataclass, field
from typing import Iterable, Optional

UNLIMITED = None

# Largest sizes first: "12oz" also contains "2oz".
SIZE_PATTERNS = (
    (("1 lb", "1lb"), 4),
    (("12oz", "12 oz"), 3),
    (("8oz", "8 oz"), 2),
    (("4oz", "4 oz"), 1),
)


@dataclass
class PriceVariant:
    variant_id: str
    nickname: Optional[str]
    unit_price_cents: int
    base_units: int = 1
    currency: str = "usd"
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "nickname": self.nickname,
            "unit_price_cents": self.unit_price_cents,
            "base_units": self.base_units,
            "currency": self.currency,
        }


@dataclass
class InventoryPool:
    product_id: str
    total_base_units: Optional[int]
    available: bool

    @classmethod
    def from_stock(cls, product_id: str, stock) -> "InventoryPool":
        """Build a pool from a raw stock value; missing stock means sold out."""
        qty = parse_positive_int(stock, allow_zero=True)
        if qty is None:
            return cls(product_id, None, False)
        return cls(product_id, qty, qty > 0)

    def to_dict(self) -> dict:
        return {"quantity": self.total_base_units, "available": self.available}


def parse_positive_int(value, allow_zero=False) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = int(str(value).strip())
    except ValueError:
        return None
    if n > 0 or (allow_zero and n == 0):
        return n
    return None


def has_valid_base_units(metadata) -> bool:
    return parse_positive_int((metadata or {}).get("base_units")) is not None


def infer_base_units(nickname, metadata=None) -> int:
    """Base units for a variant: explicit metadata, else its size label, else 1."""
    explicit = parse_positive_int((metadata or {}).get("base_units"))
    if explicit is not None:
        return explicit
    if nickname:
        label = nickname.lower().strip()
        for needles, units in SIZE_PATTERNS:
            if any(n in label for n in needles):
                return units
    return 1


def max_quantity(total_base_units: Optional[int], other_usage: int, multiplier: int) -> Optional[int]:
    """Largest quantity of one variant that fits beside the other variants' usage.

    Returns ``None`` when the pool is unlimited.
    """
    if total_base_units is UNLIMITED:
        return UNLIMITED
    multiplier = max(1, int(multiplier))
    remaining = max(0, total_base_units - other_usage)
    return remaining // multiplier


def base_unit_usage(lines: Iterable, product_id: str, exclude: Optional[str] = None) -> int:
    """Sum of quantity x base units over a product's cart lines, minus ``exclude``."""
    return sum(
        line.quantity * line.base_units
        for line in lines
        if line.product_id == product_id and line.line_id != exclude
    )


def clamp(quantity: int, limit: Optional[int]) -> int:
    if limit is UNLIMITED:
        return quantity
    return min(quantity, limit)
