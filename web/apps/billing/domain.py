"""Billing rules: invoice status normalization, totals and payment events.

Invoice and transaction statuses are persisted in lowercase. Status strings
arriving from elsewhere (payment provider, admin input, older rows) go
through ``normalize_invoice_status`` at the persistence boundary.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

TWO_PLACES = Decimal("0.01")
DEFAULT_TAX_RATE = Decimal("0.19")


def _money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


class InvoiceStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    CANCELLED = "cancelled"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


_INVOICE_ALIASES = {
    "paid": InvoiceStatus.PAID,
    "pending": InvoiceStatus.PENDING,
    "cancelled": InvoiceStatus.CANCELLED,
    "canceled": InvoiceStatus.CANCELLED,
}


def normalize_invoice_status(value: str) -> str:
    """Map any casing of paid/pending/cancelled (or ``canceled``) to the canonical value.

    Raises:
        ValueError: ``UNKNOWN_INVOICE_STATUS`` for anything else.
    """
    key = (value or "").strip().lower()
    try:
        return _INVOICE_ALIASES[key].value
    except KeyError:
        raise ValueError("UNKNOWN_INVOICE_STATUS")


@dataclass(frozen=True)
class InvoiceTotals:
    amount: Decimal
    tax_amount: Decimal
    total: Decimal


def compute_invoice_totals(amount, tax_rate) -> InvoiceTotals:
    """Tax is charged on top of the order amount.

    Args:
        amount: Order total before tax.
        tax_rate: Fraction, e.g. ``Decimal("0.19")``.
    """
    amount = _money(Decimal(amount))
    tax = _money(amount * Decimal(tax_rate))
    return InvoiceTotals(amount=amount, tax_amount=tax, total=amount + tax)


def parse_tax_rate(raw) -> Decimal:
    """Parse a tax rate into a fraction between 0 and 1.

    A bare number is a fraction (``0.19``, ``1`` is 100 %). A percent must
    carry its sign (``19%``).

    Raises:
        ValueError: ``TAX_RATE_OUT_OF_RANGE`` outside 0-100 %.
        InvalidOperation: Not a number.
    """
    text = str(raw).strip()
    rate = Decimal(text.rstrip("%").strip())
    if text.endswith("%"):
        rate = rate / 100
    if not 0 <= rate <= 1:
        raise ValueError("TAX_RATE_OUT_OF_RANGE")
    return rate


class PaymentEvent(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    REFUNDED = "refunded"


def normalize_payment_event(value: str) -> PaymentEvent:
    key = (value or "").strip().lower()
    if key == "cancelled":
        key = "canceled"
    try:
        return PaymentEvent(key)
    except ValueError:
        raise ValueError("UNKNOWN_PAYMENT_EVENT")


def format_invoice_number(moment, sequence: int) -> str:
    """``INV-YYYYMM-NNNN``."""
    return f"INV-{moment:%Y%m}-{sequence:04d}"
