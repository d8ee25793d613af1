"""
Portfolio valuation.

Pure functions over Decimal values; no I/O and no session access.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class HoldingValue:
    """A holding priced at a point in time.

    ``priced`` is False when no quote was available and the average cost
    stood in for the current price.
    """

    ticker: str
    shares: Decimal
    average_cost: Decimal
    current_price: Decimal
    market_value: Decimal
    cost_basis: Decimal
    total_gain: Decimal
    total_gain_percent: Decimal
    priced: bool


@dataclass(frozen=True)
class PortfolioSummary:
    total_market_value: Decimal
    total_cost_basis: Decimal
    total_gain: Decimal
    total_gain_percent: Decimal


@dataclass(frozen=True)
class PortfolioTotals:
    total_value: Decimal
    all_time_gain: Decimal
    all_time_gain_percent: Decimal


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    return part / whole * HUNDRED if whole > 0 else ZERO


def value_holding(holding, current_price: Optional[Decimal]) -> HoldingValue:
    """Value ``holding`` (anything with ticker, shares, average_cost).

    A missing price falls back to the average cost, reporting zero gain
    instead of failing the whole valuation.
    """
    priced = current_price is not None
    price = current_price if priced else holding.average_cost
    market_value = holding.shares * price
    cost_basis = holding.shares * holding.average_cost
    total_gain = market_value - cost_basis
    return HoldingValue(
        ticker=holding.ticker,
        shares=holding.shares,
        average_cost=holding.average_cost,
        current_price=price,
        market_value=market_value,
        cost_basis=cost_basis,
        total_gain=total_gain,
        total_gain_percent=_percent(total_gain, cost_basis),
        priced=priced,
    )


def summarize(values: Iterable[HoldingValue]) -> PortfolioSummary:
    total_market_value = ZERO
    total_cost_basis = ZERO
    for v in values:
        total_market_value += v.market_value
        total_cost_basis += v.cost_basis
    total_gain = total_market_value - total_cost_basis
    return PortfolioSummary(
        total_market_value=total_market_value,
        total_cost_basis=total_cost_basis,
        total_gain=total_gain,
        total_gain_percent=_percent(total_gain, total_cost_basis),
    )


def portfolio_totals(
    cash_balance: Decimal, starting_capital: Decimal, summary: PortfolioSummary
) -> PortfolioTotals:
    total_value = cash_balance + summary.total_market_value
    all_time_gain = total_value - starting_capital
    return PortfolioTotals(
        total_value=total_value,
        all_time_gain=all_time_gain,
        all_time_gain_percent=_percent(all_time_gain, starting_capital),
    )
