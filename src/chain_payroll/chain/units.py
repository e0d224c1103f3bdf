"""Exact conversion between human decimal amounts and wei."""

from __future__ import annotations

from decimal import Context, Decimal, Inexact, InvalidOperation, Overflow

from chain_payroll.errors import ValidationError

# Native ETH precision.
DECIMALS = 18
MAX_UINT256 = 2**256 - 1

# The default context keeps 28 digits and rounds silently; this one refuses to round.
_EXACT = Context(prec=999, traps=[Inexact, InvalidOperation, Overflow])


def to_decimal(amount: str | int | float | Decimal) -> Decimal:
    """Parse *amount* into a :class:`Decimal` without binary float noise.

    Floats go through ``str`` first, so ``1.5`` becomes ``Decimal("1.5")``
    rather than its exact binary expansion.
    """
    if isinstance(amount, bool):
        raise ValidationError(f"Invalid amount: {amount!r}")
    if isinstance(amount, Decimal):
        value = amount
    else:
        try:
            value = Decimal(str(amount).strip())
        except InvalidOperation as exc:
            raise ValidationError(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {amount!r}")
    return value


def to_wei(amount: str | int | float | Decimal) -> int:
    """Convert an ether-denominated amount to wei, refusing to round.

    Raises
    ------
    ValidationError
        If the amount is negative, not a number, has more than 18
        fractional digits, or does not fit in a uint256.
    """
    value = to_decimal(amount)
    if value < 0:
        raise ValidationError(f"Amount must not be negative: {amount}")
    try:
        scaled = value.scaleb(DECIMALS, context=_EXACT)
        integral = scaled.to_integral_value(context=_EXACT)
    except ArithmeticError as exc:
        raise ValidationError(f"Amount {amount} is out of range") from exc
    if scaled != integral:
        raise ValidationError(
            f"Amount {amount} has more than {DECIMALS} decimal places "
            "and cannot be represented exactly in wei"
        )
    wei = int(integral)
    if wei > MAX_UINT256:
        raise ValidationError(f"Amount {amount} is out of range for uint256")
    return wei


def from_wei(value: int) -> Decimal:
    """Convert wei back to an ether-denominated :class:`Decimal`."""
    if value < 0:
        raise ValidationError(f"Wei amount must not be negative: {value}")
    return Decimal(value).scaleb(-DECIMALS, context=_EXACT).normalize(context=_EXACT)
