from unittest.mock import MagicMock

import pandas as pd
import pytest

from tradesim_client.api import ApiError, TradesimClient
from tradesim_client.frames import (
    HOLDING_COLUMNS,
    TRANSACTION_COLUMNS,
    holdings_frame,
    transactions_frame,
)


def _response(status_code=200, payload=None, text=""):
    r = MagicMock()
    r.status_code = status_code
    r.text = text
    if payload is None:
        r.json.side_effect = ValueError("no json")
    else:
        r.json.return_value = payload
    return r


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def api(session):
    return TradesimClient("http://svc:8000/", "user-alice", timeout=3, session=session)


class TestTradesimClient:
    def test_sends_identity_header(self, api, session):
        session.request.return_value = _response(payload=[])
        assert api.list_portfolios() == []
        session.request.assert_called_once_with(
            "GET",
            "http://svc:8000/portfolios",
            headers={"X-User-Id": "user-alice"},
            timeout=3,
        )

    def test_trade_posts_to_side(self, api, session):
        session.request.return_value = _response(payload={"transaction": {}})
        api.trade("p1", "sell", "AAPL", 2.5)
        method, url = session.request.call_args.args
        assert (method, url) == ("POST", "http://svc:8000/portfolios/p1/sell")
        assert session.request.call_args.kwargs["json"] == {"ticker": "AAPL", "shares": 2.5}

    def test_unknown_side(self, api, session):
        with pytest.raises(ValueError):
            api.trade("p1", "short", "AAPL", 1)
        session.request.assert_not_called()

    def test_error_body_becomes_api_error(self, api, session):
        session.request.return_value = _response(
            400, {"error": "INSUFFICIENT_FUNDS", "detail": "Insufficient funds."}
        )
        with pytest.raises(ApiError) as exc:
            api.trade("p1", "buy", "AAPL", 1000)
        assert exc.value.status_code == 400
        assert exc.value.code == "INSUFFICIENT_FUNDS"
        assert exc.value.detail == "Insufficient funds."

    def test_non_json_error(self, api, session):
        session.request.return_value = _response(502, text="Bad Gateway")
        with pytest.raises(ApiError) as exc:
            api.summary("p1")
        assert exc.value.code == "HTTP_ERROR"
        assert exc.value.detail == "Bad Gateway"

    def test_transactions_limit(self, api, session):
        session.request.return_value = _response(payload=[])
        api.transactions("p1", limit=5)
        assert session.request.call_args.kwargs["params"] == {"limit": 5}


class TestFrames:
    def test_empty_holdings(self):
        df = holdings_frame([])
        assert df.empty
        assert list(df.columns) == HOLDING_COLUMNS

    def test_unpriced_holding_has_no_price(self):
        row = {
            "ticker": "AAPL",
            "shares": 2.0,
            "average_cost": 150.0,
            "current_price": 150.0,
            "market_value": 300.0,
            "cost_basis": 300.0,
            "total_gain": 0.0,
            "total_gain_percent": 0.0,
        }
        df = holdings_frame([{**row, "priced": False}, {**row, "ticker": "MSFT", "priced": True}])
        assert list(df.columns) == HOLDING_COLUMNS
        assert pd.isna(df.loc[0, "current_price"])
        assert df.loc[1, "current_price"] == 150.0

    def test_transactions_sorted_newest_first(self):
        base = {"type": "BUY", "shares": 1.0, "price_per_share": 10.0, "total_amount": 10.0}
        df = transactions_frame(
            [
                {**base, "ticker": "OLD", "executed_at": "2024-01-01T10:00:00+00:00"},
                {**base, "ticker": "NEW", "executed_at": "2024-01-02T10:00:00+00:00"},
            ]
        )
        assert list(df.columns) == TRANSACTION_COLUMNS
        assert list(df["ticker"]) == ["NEW", "OLD"]

    def test_empty_transactions(self):
        assert list(transactions_frame([]).columns) == TRANSACTION_COLUMNS
