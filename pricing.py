# pricing.py
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")

DEFAULT_FREE_DELIVERY_THRESHOLD = Decimal("999")
DEFAULT_DELIVERY_FEE = Decimal("50")


def to_decimal(value) -> Decimal:
    """Convert API/config numbers to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))


def round2(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def discounted(base_price, discount_percent) -> Decimal:
    """base_price minus discount_percent, rounded to cents."""
    base = to_decimal(base_price)
    return round2(base - base * to_decimal(discount_percent) / 100)


def money(value, currency: str = "₹") -> str:
    return f"{currency}{round2(value):.2f}"


@dataclass(frozen=True)
class PricingPolicy:
    """Delivery rules applied on top of the cart total."""
    free_delivery_threshold: Decimal = DEFAULT_FREE_DELIVERY_THRESHOLD
    delivery_fee: Decimal = DEFAULT_DELIVERY_FEE

    @classmethod
    def from_config(cls, config=None):
        pricing = (config or {}).get("pricing", {})
        return cls(
            free_delivery_threshold=to_decimal(
                pricing.get("free_delivery_threshold", DEFAULT_FREE_DELIVERY_THRESHOLD)),
            delivery_fee=to_decimal(pricing.get("delivery_fee", DEFAULT_DELIVERY_FEE)),
        )

    def delivery_fee_for(self, items_total) -> Decimal:
        if to_decimal(items_total) >= self.free_delivery_threshold:
            return Decimal("0.00")
        return round2(self.delivery_fee)


@dataclass(frozen=True)
class PriceSummary:
    items_total: Decimal
    delivery_fee: Decimal
    other_charges: Decimal
    grand_total: Decimal

    def to_dict(self):
        """Wire representation; money leaves the process as 2dp floats."""
        return {
            'itemsTotal': float(self.items_total),
            'deliveryFee': float(self.delivery_fee),
            'otherCharges': float(self.other_charges),
            'grandTotal': float(self.grand_total),
        }


def price_summary(items_total, policy: PricingPolicy = None, other_charges=0) -> PriceSummary:
    """
    Derive the delivery fee and grand total for a cart total.
    other_charges is reserved for future fee types.
    """
    policy = policy or PricingPolicy()
    items = round2(items_total)
    fee = policy.delivery_fee_for(items)
    other = round2(other_charges)
    return PriceSummary(
        items_total=items,
        delivery_fee=fee,
        other_charges=other,
        grand_total=round2(items + fee + other),
    )
