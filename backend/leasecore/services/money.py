"""Fixed-point money helpers.

All amounts are ``Decimal`` quantized to cents with ROUND_HALF_UP.  Floats
are converted through ``str`` so ``0.1`` stays ``0.10``.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from leasecore.config import settings
from leasecore.models.ledger import AccountType
from leasecore.services.errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_money(value: Any) -> Decimal:
    """Coerce *value* to a 2-place Decimal, rejecting NaN/inf and garbage."""
    if value is None:
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValidationError(f"Invalid monetary amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_rate(value: Any) -> Decimal:
    """Percent rates are stored with two decimals as well (``10.00`` = 10%)."""
    return to_money(value)


def non_negative(value: Any, field: str) -> Decimal:
    amount = to_money(value)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative (got {amount})")
    return amount


def positive(value: Any, field: str) -> Decimal:
    amount = to_money(value)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero (got {amount})")
    return amount


def percent_of(base: Any, rate: Any) -> Decimal:
    """``base * rate / 100`` rounded to cents."""
    return to_money(to_money(base) * to_rate(rate) / HUNDRED)


def is_balanced(total_debit: Any, total_credit: Any, tolerance: Decimal | None = None) -> bool:
    tol = settings.balance_tolerance if tolerance is None else tolerance
    return abs(to_money(total_debit) - to_money(total_credit)) <= tol


def signed_amount(account_type: AccountType, debit: Any, credit: Any) -> Decimal:
    """Effect of a debit/credit pair on an account's balance.

    Debits increase asset/expense accounts and decrease liability, equity and
    income accounts; credits are the mirror.
    """
    dr = to_money(debit)
    cr = to_money(credit)
    if account_type.is_debit_normal:
        return dr - cr
    return cr - dr
