"""Pricing rules.

Pure functions over ``decimal.Decimal``: no ORM access, no I/O. Inputs are
anything exposing the model attribute names (``selling_price``,
``price_adjustment``, ``discount_percent``), so the functions work with
model instances and plain test doubles alike.

Rounding happens once, at the end, to two places with ``ROUND_HALF_UP``.
"""

from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def money(value) -> Decimal:
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Quote:
    """Price breakdown for one product/period/region/OS selection.

    Attributes:
        base_price: Monthly selling price of the product.
        region_price_adj: Monthly surcharge (or rebate) of the region.
        os_price_adj: Monthly surcharge of the OS image.
        monthly_price: Sum of the three above.
        period_months: Billing length.
        discount_percent: Discount of the matching price rule, 0 without one.
        discount_amount: Amount taken off ``monthly_price × period_months``.
        total_amount: What the customer pays for the whole period, never
            negative.
    """

    base_price: Decimal
    region_price_adj: Decimal
    os_price_adj: Decimal
    monthly_price: Decimal
    period_months: int
    discount_percent: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    currency: str

    def as_dict(self) -> dict:
        return {k: (str(v) if isinstance(v, Decimal) else v) for k, v in asdict(self).items()}


def final_price_for(selling_price, period_months: int, discount_percent) -> Decimal:
    """The cached ``PriceRule.final_price`` value."""
    gross = Decimal(selling_price) * period_months
    return money(gross * (1 - Decimal(discount_percent) / HUNDRED))


def compute_quote(product, period_months: int, region=None, os=None, price_rule=None) -> Quote:
    """Price ``period_months`` of ``product`` in ``region`` with ``os``.

    ``region``, ``os`` and ``price_rule`` are optional; a missing one
    contributes nothing (no adjustment, no discount).
    """
    if period_months <= 0:
        raise ValueError("INVALID_PERIOD")

    base = Decimal(product.selling_price)
    region_adj = Decimal(region.price_adjustment) if region is not None else ZERO
    os_adj = Decimal(os.price_adjustment) if os is not None else ZERO
    discount = Decimal(price_rule.discount_percent) if price_rule is not None else ZERO

    monthly = base + region_adj + os_adj
    gross = monthly * period_months
    discount_amount = gross * discount / HUNDRED
    total = max(gross - discount_amount, ZERO)

    return Quote(
        base_price=money(base),
        region_price_adj=money(region_adj),
        os_price_adj=money(os_adj),
        monthly_price=money(monthly),
        period_months=period_months,
        discount_percent=money(discount),
        discount_amount=money(discount_amount),
        total_amount=money(total),
        currency=getattr(product, "currency", "USD"),
    )


def price_drift(rule, selling_price) -> Decimal:
    """Absolute difference between a rule's cached and expected final price."""
    expected = final_price_for(selling_price, rule.period_months, rule.discount_percent)
    return abs(Decimal(rule.final_price) - expected)
