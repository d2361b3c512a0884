from __future__ import annotations

import math

from .errors import UntradableSideError
from .types import YES, Market

SHARE_DECIMALS = 4


def price_for(market: Market, side: str) -> float:
    if side == YES:
        return market.price_yes
    return market.price_no


def parse_amount(amount_usd: str) -> float | None:
    text = (amount_usd or "").strip()
    if not text or "_" in text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def estimate_shares(amount_usd: str, market: Market, side: str) -> float:
    amount = parse_amount(amount_usd)
    if amount is None:
        return 0.0

    price = price_for(market, side)
    if price <= 0:
        raise UntradableSideError(side)
    return amount / price


def round_shares(shares: float) -> float:
    return round(shares, SHARE_DECIMALS)
