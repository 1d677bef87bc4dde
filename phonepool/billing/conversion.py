"""
Currency Conversion
===================

Quotes a plan price in a crypto asset from the processor's rate table.

A direct ``asset -> EUR`` rate is used when available; otherwise the
amount is crossed through USD. Only rates the processor flags as valid
are considered.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable, Optional

from phonepool.billing.crypto_pay import ExchangeRate
from phonepool.errors import ExchangeRateError

CROSS_CURRENCY = "USD"

# Decimal places per asset; anything not listed gets two
_ASSET_PRECISION = {"BTC": 8}


def _find_rate(rates: Iterable[ExchangeRate], source: str, target: str) -> Optional[Decimal]:
    for rate in rates:
        if rate.source == source and rate.target == target and rate.is_valid:
            try:
                value = Decimal(rate.rate)
            except InvalidOperation:
                continue
            if value > 0:
                return value
    return None


def format_amount(amount: Decimal, asset: str) -> str:
    places = _ASSET_PRECISION.get(asset, 2)
    return str(amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP))


def convert_amount(
    amount: Decimal,
    asset: str,
    rates: list[ExchangeRate],
    currency: str = "EUR",
) -> str:
    """
    Convert a settlement-currency amount into ``asset``.

    Args:
        amount: Price in ``currency``.
        asset: Target crypto asset.
        rates: Processor exchange-rate table.
        currency: Settlement currency.

    Returns:
        The asset amount as a fixed-point string.

    Raises:
        ExchangeRateError: If neither a direct nor a cross rate is available.
    """
    direct = _find_rate(rates, asset, currency)
    if direct is not None:
        return format_amount(amount / direct, asset)

    currency_to_cross = _find_rate(rates, currency, CROSS_CURRENCY)
    asset_to_cross = _find_rate(rates, asset, CROSS_CURRENCY)
    if currency_to_cross is not None and asset_to_cross is not None:
        return format_amount(amount * currency_to_cross / asset_to_cross, asset)

    raise ExchangeRateError(f"Cannot convert {currency} to {asset}", {"asset": asset})
