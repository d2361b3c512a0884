from __future__ import annotations

from datetime import datetime

from .types import Market


def format_probability(probability: float) -> str:
    return f"{probability * 100:.1f}%"


def format_usd(value: float) -> str:
    if float(value).is_integer():
        return f"${value:,.0f}"
    return f"${value:,.2f}"


def format_price(price: float) -> str:
    return f"${price:.2f}"


def format_shares(shares: float) -> str:
    return f"{shares:.2f}"


def format_end_date(end_date: datetime | None) -> str:
    if end_date is None:
        return "N/A"
    return end_date.date().isoformat()


def format_amount_text(amount: str) -> str:
    return f"${amount.strip()}"


def trade_placed_message(side: str, amount: str) -> str:
    return f"Trade placed: {side.upper()} {format_amount_text(amount)}"


def trade_failed_message(reason: str | None) -> str:
    if reason:
        return f"Failed to place trade: {reason}"
    return "Failed to place trade"


def format_market_line(market: Market) -> str:
    return (
        f"{market.title} | {format_probability(market.probability)} | "
        f"vol {format_usd(market.volume)} | liq {format_usd(market.liquidity)} | "
        f"{market.traders:,} traders | ends {format_end_date(market.end_date)} | id {market.id}"
    )


def format_market_detail(market: Market) -> str:
    return (
        f"{market.title}\n"
        f"{market.description}\n\n"
        f"Volume:    {format_usd(market.volume)}\n"
        f"Ends:      {format_end_date(market.end_date)}\n"
        f"Liquidity: {format_usd(market.liquidity)}\n"
        f"Traders:   {market.traders:,}\n\n"
        f"Yes {format_price(market.price_yes)} | No {format_price(market.price_no)}"
    )
