"""
Offer enrichment — turns a RawOffer into a display-ready EnrichedOffer.

Metadata resolution per token (first hit wins):
  1. static stablecoin table
  2. token registry cache
  3. ERC-20 name()/symbol() reads

The sold token (slot 0 by default) is treated as the property asset and the
paid token as the settlement currency.

Amounts are derived with Decimal from the raw integers. Floats appear only in
the display percentages (deviation and yield figures), and every one of those
is None rather than NaN/inf when an input is missing or zero.
"""

import asyncio
import math
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, localcontext
from typing import Optional

from yamview.offers.models import (
    EnrichedOffer,
    RawOffer,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_SOLD,
)
from yamview.tokens.models import TokenMetadata
from yamview.tokens.stables import StableTable

PRICE_PLACES = 2
AMOUNT_PLACES = 6
UNKNOWN_ASSET_LABEL = "Unknown property"
DEFAULT_PRICE_SYMBOL = "$"
_DECIMAL_PREC = 100  # uint256 is 78 digits; leave room for the scale


def offer_status(raw: RawOffer) -> str:
    """cancelled > sold > active, in that priority."""
    if raw.removed_at:
        return STATUS_CANCELLED
    if raw.amount_raw == 0:
        return STATUS_SOLD
    return STATUS_ACTIVE


def to_decimal(raw_units: int, decimals: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PREC
        return Decimal(int(raw_units)).scaleb(-int(decimals))


def format_decimal(value: Decimal, places: int, rounding=ROUND_HALF_UP) -> str:
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PREC
        return str(value.quantize(Decimal(1).scaleb(-places), rounding=rounding))


def reverse_price(price: Decimal) -> Optional[Decimal]:
    if price == 0:
        return None
    with localcontext() as ctx:
        ctx.prec = _DECIMAL_PREC
        return Decimal(1) / price


def _finite(value: Optional[float]) -> Optional[float]:
    if value is None or not math.isfinite(value):
        return None
    return value


def _positive(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def compute_figures(price: Decimal, details: Optional[TokenMetadata]) -> dict:
    """Price deviation and yield comparisons against the registry reference price."""
    price_f = float(price)
    ref = details.price_usd if details is not None and _positive(details.price_usd) else None
    rent = details.net_rent_year_usd if details is not None else None
    supply = details.total_supply if details is not None else None
    has_rent = rent is not None and math.isfinite(rent) and _positive(supply)

    price_diff = price_f - ref if ref is not None else None
    price_deviation_pct = price_diff / ref * 100 if price_diff is not None else None

    official_yield = rent / supply / ref * 100 if has_rent and ref is not None else None
    offer_yield = rent / supply / price_f * 100 if has_rent and price_f > 0 else None

    yield_diff = None
    yield_diff_pct = None
    if offer_yield is not None and official_yield is not None:
        yield_diff = offer_yield - official_yield
        if official_yield != 0:
            yield_diff_pct = yield_diff / official_yield * 100

    return {
        "reference_price_usd": ref,
        "price_diff": _finite(price_diff),
        "price_deviation_pct": _finite(price_deviation_pct),
        "official_yield_pct": _finite(official_yield),
        "offer_yield_pct": _finite(offer_yield),
        "yield_diff": _finite(yield_diff),
        "yield_diff_pct": _finite(yield_diff_pct),
    }


async def _registry_details(registry, address: str) -> Optional[TokenMetadata]:
    if registry is None or not address:
        return None
    try:
        return await registry.lookup(address)
    except Exception as e:
        print(f"[OFFER] Registry lookup failed for {address[:10]}... ({e}) — continuing with limited info")
        return None


async def _none():
    return None


async def enrich(
    raw: RawOffer,
    registry,
    stables: StableTable,
    gateway,
    chain: Optional[str] = None,
) -> EnrichedOffer:
    """Combine a raw offer with stablecoin/registry/ERC-20 metadata."""
    chain = chain or stables.chain

    sell_stable = stables.get(raw.sell_token)
    pay_stable = stables.get(raw.pay_token)

    sell_details, pay_details = await asyncio.gather(
        _none() if sell_stable else _registry_details(registry, raw.sell_token),
        _none() if pay_stable else _registry_details(registry, raw.pay_token),
    )

    # ERC-20 fallback only where neither table nor registry knows the token
    need_sell_erc20 = sell_stable is None and not (
        sell_details and (sell_details.short_name or sell_details.full_name)
    )
    need_pay_erc20 = pay_stable is None and not (pay_details and pay_details.short_name)
    (sell_name, sell_symbol), (_pay_name, pay_erc20_symbol) = await asyncio.gather(
        gateway.token_name_and_symbol(raw.sell_token) if need_sell_erc20 else _pair_none(),
        gateway.token_name_and_symbol(raw.pay_token) if need_pay_erc20 else _pair_none(),
    )

    if sell_details and (sell_details.short_name or sell_details.full_name):
        sell_label = sell_details.short_name or sell_details.full_name
    elif sell_stable:
        sell_label = sell_stable.label
    else:
        sell_label = sell_name or sell_symbol or UNKNOWN_ASSET_LABEL

    if pay_stable:
        pay_symbol = pay_stable.symbol
    elif pay_details and pay_details.short_name:
        pay_symbol = pay_details.short_name
    else:
        pay_symbol = pay_erc20_symbol
    price_symbol = pay_symbol or DEFAULT_PRICE_SYMBOL

    price = to_decimal(raw.price_raw, raw.pay_decimals)
    amount = to_decimal(raw.amount_raw, raw.sell_decimals)
    reverse = reverse_price(price)

    return EnrichedOffer(
        offer_id=raw.offer_id,
        chain=chain,
        status=offer_status(raw),
        seller=raw.seller,
        price=format_decimal(price, PRICE_PLACES),
        amount=format_decimal(amount, AMOUNT_PLACES, rounding=ROUND_DOWN),
        reverse_price=format_decimal(reverse, PRICE_PLACES) if reverse is not None else None,
        sell_token=raw.sell_token,
        sell_symbol=sell_label,
        sell_decimals=raw.sell_decimals,
        pay_token=raw.pay_token,
        pay_symbol=pay_symbol,
        pay_decimals=raw.pay_decimals,
        price_symbol=price_symbol,
        token_details=sell_details,
        price_raw=raw.price_raw,
        amount_raw=raw.amount_raw,
        **compute_figures(price, sell_details),
    )


async def _pair_none():
    return None, None
