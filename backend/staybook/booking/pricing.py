"""Booking pricing and commission split.

Formula, applied in this order with round-half-up to whole currency units
after each step:

- Base price = price per night x nights
- Service fee = base price x service fee rate (default 12%)
- Subtotal = base price + cleaning fee + service fee
- Taxes = subtotal x tax rate (default 8%)
- Total = subtotal + taxes

The security deposit is carried on the breakdown but never enters the total;
it is held separately and returned after the stay.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

DEFAULT_SERVICE_FEE_RATE = Decimal("0.12")
DEFAULT_TAX_RATE = Decimal("0.08")
DEFAULT_SIMPLE_TAX_RATE = Decimal("0.10")
DEFAULT_COMMISSION_RATE = Decimal("0.10")
DEFAULT_CURRENCY = "XOF"

Rate = Decimal | str | int | float


@dataclass(frozen=True)
class BookingPricing:
    """Guest-facing price breakdown, all amounts in whole currency units."""

    base_price: int
    cleaning_fee: int
    security_deposit: int
    service_fee: int
    taxes: int
    total_amount: int
    currency: str = DEFAULT_CURRENCY


@dataclass(frozen=True)
class SimplePricing:
    """Quick estimate without service fee or deposit."""

    base_price: int
    cleaning_fee: int
    taxes: int
    total_amount: int
    currency: str = DEFAULT_CURRENCY


@dataclass(frozen=True)
class CommissionSplit:
    """Platform commission and host payout for a booking total."""

    platform_commission: int
    host_payout: int


def _as_rate(rate: Rate, name: str) -> Decimal:
    # Floats go through str() so 0.12 means Decimal("0.12"), not its binary expansion.
    value = Decimal(str(rate)) if isinstance(rate, float) else Decimal(rate)
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


def round_half_up(amount: Decimal) -> int:
    """Round to the nearest whole unit, halves away from zero."""
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_booking_pricing(
    price_per_night: int,
    nights: int,
    cleaning_fee: int = 0,
    security_deposit: int = 0,
    service_fee_rate: Rate = DEFAULT_SERVICE_FEE_RATE,
    tax_rate: Rate = DEFAULT_TAX_RATE,
    currency: str = DEFAULT_CURRENCY,
) -> BookingPricing:
    """Compute the guest-facing price breakdown for a stay."""
    if price_per_night <= 0:
        raise ValueError("price_per_night must be positive")
    if nights <= 0:
        raise ValueError("nights must be positive")
    if cleaning_fee < 0 or security_deposit < 0:
        raise ValueError("fees must not be negative")

    base_price = price_per_night * nights
    service_fee = round_half_up(base_price * _as_rate(service_fee_rate, "service_fee_rate"))
    subtotal = base_price + cleaning_fee + service_fee
    taxes = round_half_up(subtotal * _as_rate(tax_rate, "tax_rate"))

    return BookingPricing(
        base_price=base_price,
        cleaning_fee=cleaning_fee,
        security_deposit=security_deposit,
        service_fee=service_fee,
        taxes=taxes,
        total_amount=subtotal + taxes,
        currency=currency,
    )


def calculate_simple_pricing(
    price_per_night: int,
    nights: int,
    cleaning_fee: int = 0,
    tax_rate: Rate = DEFAULT_SIMPLE_TAX_RATE,
    currency: str = DEFAULT_CURRENCY,
) -> SimplePricing:
    """Estimate used for listing cards: no service fee, flat 10% tax by default."""
    if price_per_night <= 0 or nights <= 0:
        raise ValueError("price_per_night and nights must be positive")
    if cleaning_fee < 0:
        raise ValueError("cleaning_fee must not be negative")

    base_price = price_per_night * nights
    subtotal = base_price + cleaning_fee
    taxes = round_half_up(subtotal * _as_rate(tax_rate, "tax_rate"))
    return SimplePricing(
        base_price=base_price,
        cleaning_fee=cleaning_fee,
        taxes=taxes,
        total_amount=subtotal + taxes,
        currency=currency,
    )


def split_commission(total_amount: int, commission_rate: Rate = DEFAULT_COMMISSION_RATE) -> CommissionSplit:
    """Split ``total_amount`` into platform commission and host payout.

    The payout is derived by subtraction so the two parts always sum to the
    total exactly.
    """
    if total_amount < 0:
        raise ValueError("total_amount must not be negative")
    rate = _as_rate(commission_rate, "commission_rate")
    if rate > 1:
        raise ValueError("commission_rate must not exceed 1")

    commission = round_half_up(total_amount * rate)
    return CommissionSplit(platform_commission=commission, host_payout=total_amount - commission)


def format_amount(amount: int, currency: str = DEFAULT_CURRENCY) -> str:
    """Render a zero-decimal amount with space-grouped thousands, e.g. ``41 688 XOF``."""
    return f"{amount:,} {currency}".replace(",", " ")
