"""Portfolio valuation and position-lifecycle arithmetic.

Everything here is pure: no file or network access, and the only clock
reads are the ``today``/``now`` defaults, which callers can pin.
"""
from __future__ import annotations

import math
from dataclasses import replace
from datetime import date, datetime
from typing import List, Mapping, Optional, Sequence

from models import ActivePurchase, ClosedPosition, PortfolioItem, PortfolioTotals, PositionSummary

DAYS_PER_YEAR = 365
DAYS_PER_YEAR_EXACT = 365.25


def days_between(start: date, end: date) -> int:
    return (end - start).days


def compute_portfolio_view(
    purchases: Sequence[ActivePurchase],
    prices: Mapping[str, float],
    today: Optional[date] = None,
) -> List[PortfolioItem]:
    today = today or date.today()

    items: List[PortfolioItem] = []
    total_value = 0.0
    for p in purchases:
        # A name missing from the price map values the holding at zero
        current_price = prices.get(p.name) or 0.0
        current_value = current_price * p.quantity
        buy_value = p.buy_price * p.quantity
        gain_loss = current_value - buy_value
        gain_loss_pct = (gain_loss / buy_value) * 100 if buy_value > 0 else 0.0

        remaining_gain = None
        if p.target_price > 0 and p.target_price > current_price:
            remaining_gain = (p.target_price - current_price) * p.quantity

        items.append(
            PortfolioItem(
                id=p.id,
                name=p.name,
                buy_date=p.buy_date,
                buy_price=p.buy_price,
                target_price=p.target_price,
                quantity=p.quantity,
                current_price=current_price,
                current_value=current_value,
                gain_loss=gain_loss,
                gain_loss_percent=gain_loss_pct,
                days_since_buy=days_between(p.buy_date, today),
                remaining_gain=remaining_gain,
            )
        )
        total_value += current_value

    return [
        replace(
            item,
            portfolio_weightage=(item.current_value / total_value) * 100 if total_value > 0 else 0.0,
        )
        for item in items
    ]


def portfolio_totals(items: Sequence[PortfolioItem]) -> PortfolioTotals:
    total_value = sum((i.current_value for i in items), 0.0)
    total_investment = sum((i.buy_price * i.quantity for i in items), 0.0)
    overall = total_value - total_investment
    return PortfolioTotals(
        total_value=total_value,
        total_investment=total_investment,
        overall_gain_loss=overall,
        overall_gain_loss_percent=(overall / total_investment) * 100 if total_investment > 0 else 0.0,
    )


def settle_sale(purchase: ActivePurchase, sell_date: date, sell_price: float) -> ClosedPosition:
    """Build the ClosedPosition for selling ``purchase`` outright.

    ``sell_date`` earlier than the buy date is accepted and yields a negative
    ``days_held``.
    """
    buy_value = purchase.buy_price * purchase.quantity
    sell_value = sell_price * purchase.quantity
    gain = sell_value - buy_value
    days_held = days_between(purchase.buy_date, sell_date)

    if buy_value > 0:
        percent_gain = (gain / buy_value) * 100
    else:
        percent_gain = math.inf if sell_value > 0 else 0.0

    annualized: Optional[float] = None
    if buy_value > 0:
        if days_held > 0:
            annualized = (percent_gain / days_held) * DAYS_PER_YEAR
        elif days_held == 0 and percent_gain != 0:
            # Same-day trade
            annualized = percent_gain * DAYS_PER_YEAR

    return ClosedPosition(
        id=purchase.id,
        name=purchase.name,
        buy_date=purchase.buy_date,
        buy_price=purchase.buy_price,
        quantity=purchase.quantity,
        buy_value=buy_value,
        sell_date=sell_date,
        sell_price=sell_price,
        sell_value=sell_value,
        gain=gain,
        days_held=days_held,
        percent_gain=percent_gain,
        annualized_gain_percent=annualized,
    )


def aggregate_positions(
    closed: Sequence[ClosedPosition],
    start: datetime,
    now: Optional[datetime] = None,
) -> PositionSummary:
    """Totals over all closed positions, with CAGR measured from ``start``."""
    now = now or datetime.now()

    total_buy = sum((c.buy_value for c in closed), 0.0)
    total_sell = sum((c.sell_value for c in closed), 0.0)
    summary = PositionSummary(
        total_buy_value=total_buy,
        total_sell_value=total_sell,
        total_profit=total_sell - total_buy,
    )
    if total_buy <= 0:
        return summary

    summary.overall_pnl_percent = (summary.total_profit / total_buy) * 100

    elapsed_days = (now - start).total_seconds() / 86400
    ratio = total_sell / total_buy
    # ratio >= 0 keeps the fractional power real
    if elapsed_days > 0 and ratio >= 0:
        years = elapsed_days / DAYS_PER_YEAR_EXACT
        try:
            summary.cagr = (ratio ** (1 / years) - 1) * 100
        except OverflowError:
            # Tiny windows with a gain blow the exponent up
            summary.cagr = math.inf

    return summary

