"""HTTP client for the portfolio service, used by the Streamlit dashboard."""

from typing import Optional

import requests


class ApiError(Exception):
    """A non-2xx answer from the service, carrying its error code and detail."""

    def __init__(self, status_code: int, code: str, detail: str) -> None:
        super().__init__(f"{status_code} {code}: {detail}")
        self.status_code = status_code
        self.code = code
        self.detail = detail


class TradesimClient:
    def __init__(
        self,
        base_url: str,
        user_id: str,
        timeout: float = 8,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs):
        r = self.session.request(
            method,
            f"{self.base_url}{path}",
            headers={"X-User-Id": self.user_id},
            timeout=self.timeout,
            **kwargs,
        )
        if r.status_code >= 400:
            try:
                body = r.json()
            except ValueError:
                body = {}
            raise ApiError(r.status_code, body.get("error", "HTTP_ERROR"), body.get("detail", r.text))
        return r.json()

    def health(self) -> dict:
        r = self.session.get(f"{self.base_url}/health", timeout=self.timeout)
        return r.json()

    def quote(self, ticker: str) -> dict:
        return self._request("GET", f"/stocks/quote/{ticker}")

    def search(self, query: str) -> list:
        return self._request("GET", "/stocks/search", params={"q": query})

    def list_portfolios(self) -> list:
        return self._request("GET", "/portfolios")

    def create_portfolio(self, name: str, starting_capital: float) -> dict:
        return self._request(
            "POST", "/portfolios", json={"name": name, "starting_capital": starting_capital}
        )

    def rename_portfolio(self, portfolio_id: str, name: str) -> dict:
        return self._request("PATCH", f"/portfolios/{portfolio_id}", json={"name": name})

    def delete_portfolio(self, portfolio_id: str) -> dict:
        return self._request("DELETE", f"/portfolios/{portfolio_id}")

    def summary(self, portfolio_id: str) -> dict:
        return self._request("GET", f"/portfolios/{portfolio_id}/summary")

    def holdings(self, portfolio_id: str) -> dict:
        return self._request("GET", f"/portfolios/{portfolio_id}/holdings")

    def transactions(self, portfolio_id: str, limit: int = 50) -> list:
        return self._request(
            "GET", f"/portfolios/{portfolio_id}/transactions", params={"limit": limit}
        )

    def trade(self, portfolio_id: str, side: str, ticker: str, shares: float) -> dict:
        if side not in ("buy", "sell"):
            raise ValueError(f"Unknown trade side: {side}")
        return self._request(
            "POST", f"/portfolios/{portfolio_id}/{side}", json={"ticker": ticker, "shares": shares}
        )
