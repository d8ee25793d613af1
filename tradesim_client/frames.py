"""pandas tables for the dashboard."""

import pandas as pd

HOLDING_COLUMNS = [
    "ticker",
    "shares",
    "average_cost",
    "current_price",
    "market_value",
    "cost_basis",
    "total_gain",
    "total_gain_percent",
]
TRANSACTION_COLUMNS = ["executed_at", "type", "ticker", "shares", "price_per_share", "total_amount"]


def holdings_frame(holdings: list[dict]) -> pd.DataFrame:
    """One row per holding; unpriced holdings get a NaN current price."""
    df = pd.DataFrame(holdings)
    if df.empty:
        return pd.DataFrame(columns=HOLDING_COLUMNS)
    if "priced" in df:
        df.loc[~df["priced"].astype(bool), "current_price"] = float("nan")
    return df[HOLDING_COLUMNS]


def transactions_frame(transactions: list[dict]) -> pd.DataFrame:
    df = pd.DataFrame(transactions)
    if df.empty:
        return pd.DataFrame(columns=TRANSACTION_COLUMNS)
    df["executed_at"] = pd.to_datetime(df["executed_at"], utc=True, format="ISO8601")
    return df[TRANSACTION_COLUMNS].sort_values("executed_at", ascending=False, ignore_index=True)
