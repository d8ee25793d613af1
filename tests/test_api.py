"""
HTTP tests through FastAPI's TestClient.

The session factory and the oracle are overridden per test so nothing
touches the configured database or Finnhub.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import OTHER_USER, USER
from tradesim.errors import RateLimitedError
from tradesim.main import app, get_oracle, get_session_factory
from tradesim.quotes import SymbolMatch


@pytest.fixture
def client(session_factory, oracle):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_oracle] = lambda: oracle
    yield TestClient(app)
    app.dependency_overrides.clear()


def _headers(user=USER):
    return {"X-User-Id": user}


@pytest.fixture
def portfolio_id(client):
    r = client.post(
        "/portfolios", json={"name": "Growth", "starting_capital": 10000}, headers=_headers()
    )
    assert r.status_code == 201
    return r.json()["id"]


class TestPortfolios:
    def test_missing_identity(self, client):
        r = client.get("/portfolios")
        assert r.status_code == 401
        assert r.json()["error"] == "UNAUTHORIZED"

    def test_create_and_list(self, client, portfolio_id):
        r = client.get("/portfolios", headers=_headers())
        assert r.status_code == 200
        (body,) = r.json()
        assert body["id"] == portfolio_id
        assert body["cash_balance"] == 10000.0
        assert client.get("/portfolios", headers=_headers(OTHER_USER)).json() == []

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "", "starting_capital": 100},
            {"name": "Big", "starting_capital": 10_000_001},
            {"name": "Neg", "starting_capital": -1},
            {"name": "Missing"},
        ],
    )
    def test_create_invalid(self, client, payload):
        r = client.post("/portfolios", json=payload, headers=_headers())
        assert r.status_code == 400
        assert r.json()["error"] == "INVALID_INPUT"

    def test_blank_name_after_trim(self, client):
        r = client.post("/portfolios", json={"name": "   ", "starting_capital": 100}, headers=_headers())
        assert r.status_code == 400
        assert r.json() == {"error": "INVALID_INPUT", "detail": "Portfolio name is required"}

    def test_foreign_portfolio_is_404(self, client, portfolio_id):
        r = client.get(f"/portfolios/{portfolio_id}", headers=_headers(OTHER_USER))
        assert r.status_code == 404
        assert r.json() == {"error": "NOT_FOUND", "detail": "Portfolio not found"}

    def test_rename_and_delete(self, client, portfolio_id):
        r = client.patch(f"/portfolios/{portfolio_id}", json={"name": "Income"}, headers=_headers())
        assert r.status_code == 200
        assert r.json()["name"] == "Income"

        assert client.delete(f"/portfolios/{portfolio_id}", headers=_headers()).json() == {"ok": True}
        assert client.get(f"/portfolios/{portfolio_id}", headers=_headers()).status_code == 404


class TestTrading:
    def test_buy_then_sell(self, client, portfolio_id):
        r = client.post(
            f"/portfolios/{portfolio_id}/buy", json={"ticker": "aapl", "shares": 10}, headers=_headers()
        )
        assert r.status_code == 201
        body = r.json()
        assert body["transaction"]["type"] == "BUY"
        assert body["transaction"]["ticker"] == "AAPL"
        assert body["transaction"]["total_amount"] == 1500.0
        assert body["new_cash_balance"] == 8500.0
        assert body["holding"] == {"ticker": "AAPL", "shares": 10.0, "average_cost": 150.0}

        r = client.post(
            f"/portfolios/{portfolio_id}/sell", json={"ticker": "AAPL", "shares": 10}, headers=_headers()
        )
        assert r.status_code == 201
        assert r.json()["holding"] is None
        assert r.json()["new_cash_balance"] == 10000.0

    def test_insufficient_funds(self, client, portfolio_id):
        r = client.post(
            f"/portfolios/{portfolio_id}/buy", json={"ticker": "MSFT", "shares": 40}, headers=_headers()
        )
        assert r.status_code == 400
        assert r.json()["error"] == "INSUFFICIENT_FUNDS"
        assert "$12,000.00" in r.json()["detail"]

    def test_insufficient_shares(self, client, portfolio_id):
        client.post(f"/portfolios/{portfolio_id}/buy", json={"ticker": "AAPL", "shares": 1}, headers=_headers())
        r = client.post(
            f"/portfolios/{portfolio_id}/sell", json={"ticker": "AAPL", "shares": 2}, headers=_headers()
        )
        assert r.status_code == 400
        assert r.json()["error"] == "INSUFFICIENT_SHARES"

    @pytest.mark.parametrize("shares", [0, 1e23, 1e14])
    def test_out_of_range_shares_rejected(self, client, portfolio_id, shares):
        r = client.post(
            f"/portfolios/{portfolio_id}/buy", json={"ticker": "AAPL", "shares": shares}, headers=_headers()
        )
        assert r.status_code == 400
        assert r.json()["error"] == "INVALID_INPUT"

    def test_untradable_price(self, client, portfolio_id, oracle):
        oracle.set_price("PENNY", "0.00004")
        r = client.post(
            f"/portfolios/{portfolio_id}/buy", json={"ticker": "PENNY", "shares": 100}, headers=_headers()
        )
        assert r.status_code == 404
        assert r.json() == {"error": "NOT_FOUND", "detail": "No tradable price for 'PENNY'"}

    def test_rate_limited(self, client, portfolio_id, oracle):
        oracle.fail("AAPL", RateLimitedError("Quote provider rate limit exceeded. Please try again later."))
        r = client.post(
            f"/portfolios/{portfolio_id}/buy", json={"ticker": "AAPL", "shares": 1}, headers=_headers()
        )
        assert r.status_code == 429
        assert r.json()["error"] == "RATE_LIMITED"

    def test_trade_in_foreign_portfolio(self, client, portfolio_id):
        r = client.post(
            f"/portfolios/{portfolio_id}/buy",
            json={"ticker": "AAPL", "shares": 1},
            headers=_headers(OTHER_USER),
        )
        assert r.status_code == 404


class TestViews:
    @pytest.fixture
    def traded(self, client, portfolio_id, oracle):
        client.post(f"/portfolios/{portfolio_id}/buy", json={"ticker": "AAPL", "shares": 10}, headers=_headers())
        client.post(f"/portfolios/{portfolio_id}/buy", json={"ticker": "MSFT", "shares": 1}, headers=_headers())
        oracle.set_price("AAPL", "200")
        return portfolio_id

    def test_summary(self, client, traded):
        body = client.get(f"/portfolios/{traded}/summary", headers=_headers()).json()
        assert body["portfolio"]["cash_balance"] == 8200.0
        assert body["total_value"] == 10500.0
        assert body["all_time_gain"] == 500.0
        assert body["all_time_gain_percent"] == pytest.approx(5.0)
        assert [h["ticker"] for h in body["holdings"]] == ["AAPL", "MSFT"]

    def test_holdings(self, client, traded):
        body = client.get(f"/portfolios/{traded}/holdings", headers=_headers()).json()
        assert body["summary"]["total_market_value"] == 2300.0
        assert body["summary"]["total_cost_basis"] == 1800.0
        assert all(h["priced"] for h in body["holdings"])

    def test_transactions(self, client, traded):
        r = client.get(f"/portfolios/{traded}/transactions", params={"limit": 1}, headers=_headers())
        assert r.status_code == 200
        (latest,) = r.json()
        assert latest["ticker"] == "MSFT"

        one = client.get(f"/portfolios/{traded}/transactions/{latest['id']}", headers=_headers())
        assert one.json()["id"] == latest["id"]

        missing = client.get(f"/portfolios/{traded}/transactions/nope", headers=_headers())
        assert missing.status_code == 404

    def test_transactions_bad_limit(self, client, traded):
        r = client.get(f"/portfolios/{traded}/transactions", params={"limit": 0}, headers=_headers())
        assert r.status_code == 400


class TestMarketData:
    def test_quote(self, client):
        r = client.get("/stocks/quote/msft")
        assert r.status_code == 200
        assert r.json()["ticker"] == "MSFT"
        assert r.json()["current_price"] == 300.0

    def test_unknown_symbol(self, client):
        r = client.get("/stocks/quote/ZZZZ")
        assert r.status_code == 404
        assert r.json()["error"] == "NOT_FOUND"

    def test_malformed_symbol(self, client):
        assert client.get("/stocks/quote/TOOLONG").status_code == 400

    def test_search(self, client, oracle):
        oracle.matches = [SymbolMatch("AAPL", "APPLE INC", "Common Stock")]
        r = client.get("/stocks/search", params={"q": "apple"})
        assert r.json() == [{"symbol": "AAPL", "description": "APPLE INC", "type": "Common Stock"}]


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy", "database": "connected"}


def test_unknown_route(client):
    r = client.get("/nowhere")
    assert r.status_code == 404
    assert r.json()["error"] == "NOT_FOUND"
