"""Platform commission and provider payout arithmetic."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from marketplace.core.config import get_settings
from marketplace.shared.exceptions import InvalidInputException

settings = get_settings()


@dataclass(frozen=True, slots=True)
class CommissionBreakdown:
    price: Decimal
    rate: Decimal
    commission: Decimal
    payout: Decimal


def _to_decimal(value: Decimal | int | float | str, name: str) -> Decimal:
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() keeps float literals such as 0.12 exact
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise InvalidInputException(f"{name} must be a number") from exc
    if not result.is_finite():
        raise InvalidInputException(f"{name} must be a finite number")
    return result


def minor_unit(minor_units: int | None = None) -> Decimal:
    """Smallest currency unit, e.g. Decimal('0.01') for two minor digits."""
    digits = settings.currency_minor_units if minor_units is None else minor_units
    return Decimal(1).scaleb(-digits)


def resolve_commission_rate(provider_rate: Decimal | float | None) -> Decimal:
    """Provider override when present, platform default otherwise."""
    if provider_rate is None:
        return _to_decimal(settings.default_commission_rate, "commission_rate")
    return _to_decimal(provider_rate, "commission_rate")


def calculate_commission(
    price: Decimal | int | float | str,
    commission_rate: Decimal | int | float | str | None = None,
    *,
    minor_units: int | None = None,
) -> CommissionBreakdown:
    """Split a listed price into platform commission and provider payout.

    Commission is rounded half-up to the currency's smallest unit and the
    payout is the remainder, so ``commission + payout == price`` exactly.
    Out-of-range input raises instead of being clamped.
    """
    unit = minor_unit(minor_units)
    amount = _to_decimal(price, "price")
    rate = resolve_commission_rate(commission_rate)

    if amount < 0:
        raise InvalidInputException("price must not be negative")
    if not Decimal(0) <= rate < Decimal(1):
        raise InvalidInputException("commission_rate must be within [0, 1)")

    amount = amount.quantize(unit, rounding=ROUND_HALF_UP)
    commission = (amount * rate).quantize(unit, rounding=ROUND_HALF_UP)
    return CommissionBreakdown(
        price=amount,
        rate=rate,
        commission=commission,
        payout=amount - commission,
    )
