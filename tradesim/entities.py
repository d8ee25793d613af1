"""
Read-only snapshots of ledger rows.

Services return these instead of ORM instances so callers never touch a
session after its unit of work has closed.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from tradesim.models import Holding, Portfolio, Transaction, TransactionType


@dataclass(frozen=True)
class PortfolioRecord:
    id: str
    user_id: str
    name: str
    starting_capital: Decimal
    cash_balance: Decimal
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Portfolio) -> "PortfolioRecord":
        return cls(
            id=row.id,
            user_id=row.user_id,
            name=row.name,
            starting_capital=row.starting_capital,
            cash_balance=row.cash_balance,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


@dataclass(frozen=True)
class HoldingRecord:
    id: str
    portfolio_id: str
    ticker: str
    shares: Decimal
    average_cost: Decimal
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Holding) -> "HoldingRecord":
        return cls(
            id=row.id,
            portfolio_id=row.portfolio_id,
            ticker=row.ticker,
            shares=row.shares,
            average_cost=row.average_cost,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


@dataclass(frozen=True)
class TransactionRecord:
    id: str
    portfolio_id: str
    ticker: str
    type: TransactionType
    shares: Decimal
    price_per_share: Decimal
    total_amount: Decimal
    executed_at: datetime

    @classmethod
    def from_row(cls, row: Transaction) -> "TransactionRecord":
        return cls(
            id=row.id,
            portfolio_id=row.portfolio_id,
            ticker=row.ticker,
            type=row.type,
            shares=row.shares,
            price_per_share=row.price_per_share,
            total_amount=row.total_amount,
            executed_at=row.executed_at,
        )


@dataclass(frozen=True)
class TradeResult:
    """Outcome of a committed buy or sell.

    ``holding`` is None when a sell liquidated the position.
    """

    transaction: TransactionRecord
    new_cash_balance: Decimal
    holding: Optional[HoldingRecord]
