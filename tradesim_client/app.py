import os

import streamlit as st

from tradesim_client.api import ApiError, TradesimClient
from tradesim_client.frames import holdings_frame, transactions_frame

API_URL = os.getenv("API_URL", "http://localhost:8000")
USER_ID = os.getenv("TRADESIM_USER_ID", "demo")

st.set_page_config(page_title="Stock Portfolio", layout="wide")
st.title("📈 Stock Portfolio Simulator")

api = TradesimClient(API_URL, USER_ID)

# Health
try:
    h = api.health()
    st.success(f"API: {h['status']}")
except Exception as e:
    st.error(f"API not reachable at {API_URL}: {e}")
    st.stop()

# Portfolio selection / creation
portfolios = api.list_portfolios()
with st.sidebar:
    st.subheader("New portfolio")
    new_name = st.text_input("Name", value="My Portfolio")
    new_capital = st.number_input("Starting capital", min_value=1.0, max_value=10_000_000.0, value=10_000.0)
    if st.button("Create"):
        try:
            api.create_portfolio(new_name, float(new_capital))
            st.rerun()
        except ApiError as e:
            st.error(e.detail)

if not portfolios:
    st.info("Create a portfolio in the sidebar to start trading.")
    st.stop()

names = {p["id"]: p["name"] for p in portfolios}
portfolio_id = st.selectbox("Portfolio", list(names), format_func=names.get)

# Summary
summary = api.summary(portfolio_id)
m1, m2, m3 = st.columns(3)
m1.metric("Total value", f"${summary['total_value']:,.2f}")
m2.metric("Cash", f"${summary['portfolio']['cash_balance']:,.2f}")
m3.metric(
    "All-time gain",
    f"${summary['all_time_gain']:,.2f}",
    delta=f"{summary['all_time_gain_percent']:+.2f}%",
)

st.subheader("Holdings")
st.dataframe(holdings_frame(summary["holdings"]), use_container_width=True)
if any(not h["priced"] for h in summary["holdings"]):
    st.caption("Some quotes were unavailable; those holdings are valued at average cost.")

# Live quote
st.subheader("Live Quote")
qcol1, qcol2 = st.columns([2, 1])
q_symbol = qcol1.text_input("Quote symbol", value="AAPL")
if qcol2.button("Get price"):
    try:
        q = api.quote(q_symbol)
        st.metric(
            label=f"{q['ticker']} price",
            value=f"${q['current_price']:.2f}",
            delta=f"{q['change']:+.2f} ({q['change_percent']:+.2f}%)",
        )
        st.json(q)
    except ApiError as e:
        st.error(f"Failed to fetch quote: {e.detail}")

st.subheader("Place a Trade")
col1, col2, col3 = st.columns(3)
symbol = col1.text_input("Symbol", value="AAPL")
side = col2.selectbox("Side", ["buy", "sell"])
shares = col3.number_input("Shares", min_value=0.0001, value=1.0, step=1.0)

if st.button("Submit Trade"):
    try:
        result = api.trade(portfolio_id, side, symbol, float(shares))
        txn = result["transaction"]
        st.success(
            f"{txn['type']} {txn['shares']:g} {txn['ticker']} @ ${txn['price_per_share']:.2f}"
        )
        st.rerun()
    except ApiError as e:
        st.error(e.detail)

st.subheader("History")
st.dataframe(transactions_frame(api.transactions(portfolio_id)), use_container_width=True)
