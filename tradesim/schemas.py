"""
Request and response bodies for the HTTP API.

Requests carry Decimal amounts; responses render money and share counts as
floats, the only place the service leaves Decimal.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from tradesim.entities import HoldingRecord, PortfolioRecord, TradeResult, TransactionRecord
from tradesim.portfolios import PortfolioOverview, ValuedHoldings
from tradesim.quotes import Quote, SymbolMatch
from tradesim.trades import MAX_SHARES
from tradesim.valuation import HoldingValue, PortfolioSummary


class PortfolioIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    starting_capital: Decimal = Field(gt=0, le=10_000_000)


class PortfolioRenameIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class TradeIn(BaseModel):
    ticker: str = Field(min_length=1, max_length=10)
    shares: Decimal = Field(gt=0, lt=MAX_SHARES)


class PortfolioOut(BaseModel):
    id: str
    name: str
    starting_capital: float
    cash_balance: float
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, p: PortfolioRecord) -> "PortfolioOut":
        return cls(
            id=p.id,
            name=p.name,
            starting_capital=float(p.starting_capital),
            cash_balance=float(p.cash_balance),
            created_at=p.created_at,
            updated_at=p.updated_at,
        )


class HoldingOut(BaseModel):
    ticker: str
    shares: float
    average_cost: float

    @classmethod
    def from_record(cls, h: HoldingRecord) -> "HoldingOut":
        return cls(ticker=h.ticker, shares=float(h.shares), average_cost=float(h.average_cost))


class TransactionOut(BaseModel):
    id: str
    portfolio_id: str
    ticker: str
    type: str
    shares: float
    price_per_share: float
    total_amount: float
    executed_at: datetime

    @classmethod
    def from_record(cls, t: TransactionRecord) -> "TransactionOut":
        return cls(
            id=t.id,
            portfolio_id=t.portfolio_id,
            ticker=t.ticker,
            type=t.type.value,
            shares=float(t.shares),
            price_per_share=float(t.price_per_share),
            total_amount=float(t.total_amount),
            executed_at=t.executed_at,
        )


class TradeOut(BaseModel):
    transaction: TransactionOut
    new_cash_balance: float
    holding: Optional[HoldingOut]

    @classmethod
    def from_result(cls, r: TradeResult) -> "TradeOut":
        return cls(
            transaction=TransactionOut.from_record(r.transaction),
            new_cash_balance=float(r.new_cash_balance),
            holding=HoldingOut.from_record(r.holding) if r.holding else None,
        )


class ValuedHoldingOut(BaseModel):
    ticker: str
    shares: float
    average_cost: float
    current_price: float
    market_value: float
    cost_basis: float
    total_gain: float
    total_gain_percent: float
    priced: bool

    @classmethod
    def from_value(cls, v: HoldingValue) -> "ValuedHoldingOut":
        return cls(
            ticker=v.ticker,
            shares=float(v.shares),
            average_cost=float(v.average_cost),
            current_price=float(v.current_price),
            market_value=float(v.market_value),
            cost_basis=float(v.cost_basis),
            total_gain=float(v.total_gain),
            total_gain_percent=float(v.total_gain_percent),
            priced=v.priced,
        )


class SummaryOut(BaseModel):
    total_market_value: float
    total_cost_basis: float
    total_gain: float
    total_gain_percent: float

    @classmethod
    def from_summary(cls, s: PortfolioSummary) -> "SummaryOut":
        return cls(
            total_market_value=float(s.total_market_value),
            total_cost_basis=float(s.total_cost_basis),
            total_gain=float(s.total_gain),
            total_gain_percent=float(s.total_gain_percent),
        )


class HoldingsOut(BaseModel):
    holdings: list[ValuedHoldingOut]
    summary: SummaryOut

    @classmethod
    def from_valued(cls, v: ValuedHoldings) -> "HoldingsOut":
        return cls(
            holdings=[ValuedHoldingOut.from_value(h) for h in v.holdings],
            summary=SummaryOut.from_summary(v.summary),
        )


class OverviewOut(BaseModel):
    portfolio: PortfolioOut
    holdings: list[ValuedHoldingOut]
    summary: SummaryOut
    total_value: float
    all_time_gain: float
    all_time_gain_percent: float

    @classmethod
    def from_overview(cls, o: PortfolioOverview) -> "OverviewOut":
        return cls(
            portfolio=PortfolioOut.from_record(o.portfolio),
            holdings=[ValuedHoldingOut.from_value(h) for h in o.holdings],
            summary=SummaryOut.from_summary(o.summary),
            total_value=float(o.totals.total_value),
            all_time_gain=float(o.totals.all_time_gain),
            all_time_gain_percent=float(o.totals.all_time_gain_percent),
        )


class QuoteOut(BaseModel):
    ticker: str
    current_price: float
    change: float
    change_percent: float
    high_price: float
    low_price: float
    open_price: float
    previous_close: float
    timestamp: Optional[datetime]

    @classmethod
    def from_quote(cls, q: Quote) -> "QuoteOut":
        return cls(
            ticker=q.ticker,
            current_price=float(q.current_price),
            change=float(q.change),
            change_percent=float(q.change_percent),
            high_price=float(q.high_price),
            low_price=float(q.low_price),
            open_price=float(q.open_price),
            previous_close=float(q.previous_close),
            timestamp=q.timestamp,
        )


class SymbolMatchOut(BaseModel):
    symbol: str
    description: str
    type: str

    @classmethod
    def from_match(cls, m: SymbolMatch) -> "SymbolMatchOut":
        return cls(symbol=m.symbol, description=m.description, type=m.type)
