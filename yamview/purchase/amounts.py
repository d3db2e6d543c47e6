"""
Fixed-point purchase arithmetic. Nothing here touches a float.

Units:
  price_raw   pay-token units per one whole sell token (as the contract stores it)
  balance_raw pay-token units
  amount_raw  sell-token units
Fixed-point amounts are whole sell tokens scaled by 10**precision.
"""

from decimal import Decimal, Inexact, InvalidOperation, ROUND_UP, localcontext

from yamview.errors import PrecisionFault

PRECISION = 6
_DECIMAL_PREC = 100
# uint256 holds at most 78 digits
_MAX_MAGNITUDE = 77


def parse_amount(text) -> Decimal:
    """Parse a user-entered amount. Raises ValueError for non-numbers, negatives and magnitudes no token can hold."""
    raw = str(text).strip()
    try:
        value = Decimal(raw)
    except InvalidOperation:
        raise ValueError(f"Not a number: {raw!r}") from None
    if not value.is_finite():
        raise ValueError(f"Not a finite number: {raw!r}")
    if value and abs(value.adjusted()) > _MAX_MAGNITUDE:
        raise ValueError(f"Amount out of range: {raw!r}")
    if value < 0:
        raise ValueError(f"Amount must not be negative: {raw!r}")
    return value


def parse_units(text, decimals: int) -> int:
    """Decimal string → integer token units. PrecisionFault if it doesn't fit the decimals."""
    value = parse_amount(text)
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PREC
        ctx.traps[Inexact] = True
        try:
            scaled = value.scaleb(int(decimals))
        except Inexact:
            raise PrecisionFault(str(text).strip(), decimals) from None
        if scaled != scaled.to_integral_value():
            raise PrecisionFault(str(text).strip(), decimals)
        return int(scaled)


def format_units(raw_units: int, decimals: int) -> str:
    """Integer units → plain decimal string without trailing zeros (no exponent)."""
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PREC
        value = Decimal(int(raw_units)).scaleb(-int(decimals)).normalize()
        return format(value, "f")


def effective_precision(sell_decimals: int, precision: int = PRECISION) -> int:
    """A token with fewer decimals than PRECISION caps the precision."""
    return max(0, min(precision, int(sell_decimals)))


def max_purchasable(
    balance_raw: int,
    price_raw: int,
    amount_raw: int,
    sell_decimals: int,
    precision: int = PRECISION,
) -> int:
    """Largest affordable amount, fixed-point at `precision`, capped by what the offer has left.

    floor(balance * 10**p / price): balance and price share the pay-token unit,
    so the ratio is whole sell tokens and the floor never overstates what the
    balance can pay for.
    """
    scale = 10 ** precision
    remaining = int(amount_raw) * scale // 10 ** int(sell_decimals)
    if price_raw <= 0:
        return remaining
    affordable = max(0, int(balance_raw)) * scale // int(price_raw)
    return min(affordable, remaining)


def required_pay_amount(amount_text, price_raw: int) -> int:
    """Pay-token units needed to buy `amount_text` sell tokens.

    amount × price_raw is already in pay-token units; rounding it up to an
    integer rounds at the pay token's decimals, so the approval always covers
    what the contract will pull.
    """
    amount = parse_amount(amount_text)
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PREC
        total_units = amount * Decimal(int(price_raw))
        return int(total_units.to_integral_value(rounding=ROUND_UP))
