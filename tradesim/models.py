import enum
import uuid
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    event,
    text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Money and per-share prices keep 4 decimals, share counts and average cost 6.
MONEY = Numeric(18, 4)
QUANTITY = Numeric(20, 6)
MONEY_STEP = Decimal("0.0001")
QUANTITY_STEP = Decimal("0.000001")


def to_money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_STEP, rounding=ROUND_HALF_UP)


def to_quantity(value: Decimal) -> Decimal:
    return value.quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TransactionType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


class Portfolio(Base):
    __tablename__ = "portfolios"
    __table_args__ = (
        CheckConstraint("starting_capital > 0", name="ck_portfolios_starting_capital"),
        CheckConstraint("cash_balance >= 0", name="ck_portfolios_cash_balance"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(128), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    starting_capital = Column(MONEY, nullable=False)
    cash_balance = Column(MONEY, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class Holding(Base):
    __tablename__ = "holdings"
    __table_args__ = (
        # at most one active holding per (portfolio, ticker)
        Index(
            "uq_holdings_active_ticker",
            "portfolio_id",
            "ticker",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        CheckConstraint("shares >= 0", name="ck_holdings_shares"),
        CheckConstraint("average_cost > 0", name="ck_holdings_average_cost"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    portfolio_id = Column(String(36), ForeignKey("portfolios.id"), nullable=False, index=True)
    ticker = Column(String(10), nullable=False)
    shares = Column(QUANTITY, nullable=False)
    average_cost = Column(QUANTITY, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class Transaction(Base):
    """Append-only trade ledger entry."""

    __tablename__ = "transactions"
    __table_args__ = (
        CheckConstraint("shares > 0", name="ck_transactions_shares"),
        CheckConstraint("price_per_share > 0", name="ck_transactions_price"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    portfolio_id = Column(String(36), ForeignKey("portfolios.id"), nullable=False, index=True)
    ticker = Column(String(10), nullable=False)
    type = Column(Enum(TransactionType, native_enum=False, length=4), nullable=False)
    shares = Column(QUANTITY, nullable=False)
    price_per_share = Column(MONEY, nullable=False)
    total_amount = Column(MONEY, nullable=False)
    executed_at = Column(DateTime(timezone=True), nullable=False, default=_now, index=True)


@event.listens_for(Transaction, "before_update")
@event.listens_for(Transaction, "before_delete")
def _refuse_ledger_rewrite(mapper, connection, target):
    raise ValueError(f"Transaction {target.id} is immutable")
