import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from tradesim.config import settings
from tradesim.db import SessionLocal, check_connection, init_db
from tradesim.errors import (
    ConflictError,
    InsufficientFundsError,
    InsufficientSharesError,
    InvalidInputError,
    NotFoundError,
    RateLimitedError,
    TradeSimError,
    UpstreamUnavailableError,
)
from tradesim.logging_config import configure_logging
from tradesim.portfolios import PortfolioManager
from tradesim.quotes import FinnhubClient, PriceOracle, QuoteCache
from tradesim.schemas import (
    HoldingsOut,
    OverviewOut,
    PortfolioIn,
    PortfolioOut,
    PortfolioRenameIn,
    QuoteOut,
    SymbolMatchOut,
    TradeIn,
    TradeOut,
    TransactionOut,
)
from tradesim.trades import TradeExecutor

logger = logging.getLogger(__name__)

STATUS_BY_ERROR = {
    InvalidInputError: 400,
    NotFoundError: 404,
    InsufficientFundsError: 400,
    InsufficientSharesError: 400,
    RateLimitedError: 429,
    UpstreamUnavailableError: 502,
    ConflictError: 409,
}
CODE_BY_STATUS = {401: "UNAUTHORIZED", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    init_db()
    logger.info("%s %s started (%s)", settings.app_name, settings.version, settings.environment)
    yield


app = FastAPI(title="Portfolio Microservice", version=settings.version, lifespan=lifespan)


# -- dependencies ---------------------------------------------------------

def get_session_factory() -> sessionmaker:
    return SessionLocal


@lru_cache
def get_oracle() -> PriceOracle:
    # one cache per process, shared by every request
    client = FinnhubClient(
        api_key=settings.finnhub_api_key,
        base_url=settings.finnhub_base_url,
        timeout=settings.quote_timeout_seconds,
    )
    cache = QuoteCache(ttl=settings.quote_cache_ttl_seconds, maxsize=settings.quote_cache_maxsize)
    return PriceOracle(client, cache)


def get_portfolio_manager(
    oracle: PriceOracle = Depends(get_oracle),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> PortfolioManager:
    return PortfolioManager(oracle, session_factory)


def get_trade_executor(
    oracle: PriceOracle = Depends(get_oracle),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> TradeExecutor:
    return TradeExecutor(oracle, session_factory)


def current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Resolve the caller from the X-User-Id header set by the auth gateway."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


# -- error mapping --------------------------------------------------------

def _error_response(status_code: int, error: str, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})


@app.exception_handler(TradeSimError)
async def handle_service_error(_request: Request, exc: TradeSimError) -> JSONResponse:
    status = next(
        (STATUS_BY_ERROR[cls] for cls in type(exc).__mro__ if cls in STATUS_BY_ERROR), 500
    )
    logger.warning("%s: %s", exc.code, exc.message)
    return _error_response(status, exc.code, exc.message)


@app.exception_handler(RequestValidationError)
async def handle_validation(_request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    return _error_response(400, InvalidInputError.code, f"{where}: {message}" if where else message)


@app.exception_handler(StarletteHTTPException)
async def handle_http(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = CODE_BY_STATUS.get(exc.status_code, "HTTP_ERROR")
    return _error_response(exc.status_code, code, str(exc.detail))


@app.exception_handler(Exception)
async def handle_unexpected(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error: %s", type(exc).__name__)
    return _error_response(500, "INTERNAL_ERROR", "Internal server error")


# -- routes ---------------------------------------------------------------

@app.get("/health")
def health(session_factory: sessionmaker = Depends(get_session_factory)):
    ok = check_connection(session_factory.kw.get("bind"))
    body = {"status": "healthy" if ok else "unhealthy", "database": "connected" if ok else "disconnected"}
    return JSONResponse(status_code=200 if ok else 503, content=body)


@app.get("/stocks/quote/{ticker}", response_model=QuoteOut)
def get_quote(ticker: str, oracle: PriceOracle = Depends(get_oracle)):
    return QuoteOut.from_quote(oracle.get_quote(ticker))


@app.get("/stocks/search", response_model=list[SymbolMatchOut])
def search_stocks(q: str = Query(default=""), oracle: PriceOracle = Depends(get_oracle)):
    return [SymbolMatchOut.from_match(m) for m in oracle.search_symbols(q)]


@app.post("/portfolios", response_model=PortfolioOut, status_code=201)
def create_portfolio(
    body: PortfolioIn,
    user_id: str = Depends(current_user),
    manager: PortfolioManager = Depends(get_portfolio_manager),
):
    return PortfolioOut.from_record(manager.create(user_id, body.name, body.starting_capital))


@app.get("/portfolios", response_model=list[PortfolioOut])
def list_portfolios(
    user_id: str = Depends(current_user),
    manager: PortfolioManager = Depends(get_portfolio_manager),
):
    return [PortfolioOut.from_record(p) for p in manager.list_by_user(user_id)]


@app.get("/portfolios/{portfolio_id}", response_model=PortfolioOut)
def get_portfolio(
    portfolio_id: str,
    user_id: str = Depends(current_user),
    manager: PortfolioManager = Depends(get_portfolio_manager),
):
    return PortfolioOut.from_record(manager.get_by_id(portfolio_id, user_id))


@app.patch("/portfolios/{portfolio_id}", response_model=PortfolioOut)
def rename_portfolio(
    portfolio_id: str,
    body: PortfolioRenameIn,
    user_id: str = Depends(current_user),
    manager: PortfolioManager = Depends(get_portfolio_manager),
):
    return PortfolioOut.from_record(manager.rename(portfolio_id, user_id, body.name))


@app.delete("/portfolios/{portfolio_id}")
def delete_portfolio(
    portfolio_id: str,
    user_id: str = Depends(current_user),
    manager: PortfolioManager = Depends(get_portfolio_manager),
):
    manager.soft_delete(portfolio_id, user_id)
    return {"ok": True}


@app.get("/portfolios/{portfolio_id}/summary", response_model=OverviewOut)
def portfolio_summary(
    portfolio_id: str,
    user_id: str = Depends(current_user),
    manager: PortfolioManager = Depends(get_portfolio_manager),
):
    return OverviewOut.from_overview(manager.overview(portfolio_id, user_id))


@app.get("/portfolios/{portfolio_id}/holdings", response_model=HoldingsOut)
def portfolio_holdings(
    portfolio_id: str,
    user_id: str = Depends(current_user),
    manager: PortfolioManager = Depends(get_portfolio_manager),
):
    return HoldingsOut.from_valued(manager.valued_holdings(portfolio_id, user_id))


@app.get("/portfolios/{portfolio_id}/transactions", response_model=list[TransactionOut])
def portfolio_transactions(
    portfolio_id: str,
    limit: int = Query(default=50),
    user_id: str = Depends(current_user),
    manager: PortfolioManager = Depends(get_portfolio_manager),
):
    return [TransactionOut.from_record(t) for t in manager.transactions(portfolio_id, user_id, limit)]


@app.get("/portfolios/{portfolio_id}/transactions/{transaction_id}", response_model=TransactionOut)
def portfolio_transaction(
    portfolio_id: str,
    transaction_id: str,
    user_id: str = Depends(current_user),
    manager: PortfolioManager = Depends(get_portfolio_manager),
):
    return TransactionOut.from_record(manager.get_transaction(portfolio_id, user_id, transaction_id))


@app.post("/portfolios/{portfolio_id}/buy", response_model=TradeOut, status_code=201)
def buy(
    portfolio_id: str,
    t: TradeIn,
    user_id: str = Depends(current_user),
    executor: TradeExecutor = Depends(get_trade_executor),
):
    return TradeOut.from_result(executor.buy(portfolio_id, user_id, t.ticker, t.shares))


@app.post("/portfolios/{portfolio_id}/sell", response_model=TradeOut, status_code=201)
def sell(
    portfolio_id: str,
    t: TradeIn,
    user_id: str = Depends(current_user),
    executor: TradeExecutor = Depends(get_trade_executor),
):
    return TradeOut.from_result(executor.sell(portfolio_id, user_id, t.ticker, t.shares))
