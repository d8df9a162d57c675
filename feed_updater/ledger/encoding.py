"""Fixed-point price encoding used by the oracle contract."""

from decimal import ROUND_DOWN, Decimal, localcontext

PRICE_DECIMALS = 8
MAX_ENCODED_PRICE = 2**256 - 1
_QUANTUM = Decimal(1).scaleb(-PRICE_DECIMALS)
# uint256 has 78 digits; leave room for the fractional part
_PRECISION = 100


def encode_price(usd_value: Decimal) -> int:
    """Encode a USD value as uint256 scaled by 10^8.

    Precision beyond 8 decimals is truncated, never rounded, so the stored
    value never exceeds the observed price (1.999999995 -> 199999999).

    Raises:
        ValueError: negative, non-finite, or too large for uint256
    """
    if not isinstance(usd_value, Decimal):
        usd_value = Decimal(str(usd_value))
    if not usd_value.is_finite():
        raise ValueError(f"Cannot encode non-finite price {usd_value}")
    if usd_value < 0:
        raise ValueError(f"Cannot encode negative price {usd_value}")

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        if usd_value.scaleb(PRICE_DECIMALS) >= MAX_ENCODED_PRICE + 1:
            raise ValueError(f"Price {usd_value} does not fit in uint256")
        truncated = usd_value.quantize(_QUANTUM, rounding=ROUND_DOWN)
        return int(truncated.scaleb(PRICE_DECIMALS))


def decode_price(encoded: int) -> Decimal:
    """Inverse of encode_price for values with at most 8 decimals."""
    if encoded < 0:
        raise ValueError(f"Encoded price cannot be negative: {encoded}")
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(encoded).scaleb(-PRICE_DECIMALS)
