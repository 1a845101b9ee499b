"""
Portfolio holdings stored in the `user_portfolio` table, valued with live prices.

`db` arguments are callables returning a query builder for a table name, already
bound to the signed-in user's token: db("user_portfolio").select("*")...
"""

import logging
from typing import Callable, Optional

from errors import PriceOracleError

logger = logging.getLogger(__name__)

TABLE = "user_portfolio"
BTC_ID = "bitcoin"


def _to_holding(row: dict) -> dict:
    price = float(row.get("price") or 0)
    qty = float(row.get("quantity") or 0)
    return {
        "coin_id": row.get("coin_id", ""),
        "name": row.get("name", ""),
        "symbol": (row.get("symbol") or "").upper(),
        "price": price,
        "quantity": qty,
        "value": price * qty,
        "is_selected": bool(row.get("isSelected", True)),
    }


def total_value(holdings: list[dict]) -> float:
    """Sum of price * quantity over selected holdings."""
    return sum(h["price"] * h["quantity"] for h in holdings if h.get("is_selected"))


def load_holdings(db: Callable, oracle, user_id: str) -> tuple[list[dict], Optional[str]]:
    """
    Fetch the user's rows, then one price request for exactly those coins.
    Returns (holdings, price_error); on a price failure every holding keeps its
    stored price and price_error carries the message for the page.
    """
    rows = db(TABLE).select("*").eq("user_id", user_id).execute()
    holdings = [_to_holding(r) for r in rows]
    if not holdings:
        return holdings, None

    try:
        prices = oracle.fetch_simple_prices([h["coin_id"] for h in holdings])
    except PriceOracleError as e:
        logger.warning("Portfolio price refresh failed: %s", e.message)
        return holdings, e.message

    for h in holdings:
        if h["coin_id"] in prices:
            h["price"] = prices[h["coin_id"]]
            h["value"] = h["price"] * h["quantity"]
    return holdings, None


def add_holding(db: Callable, oracle, user_id: str, name: str, quantity: float) -> Optional[dict]:
    """Resolve `name` with the price API and upsert it selected. None if the coin is unknown."""
    coin = oracle.search_coin(name)
    if not coin:
        return None
    row = {
        "user_id": user_id,
        "coin_id": coin["id"],
        "name": coin["name"],
        "symbol": coin["symbol"],
        "price": coin["price"],
        "quantity": quantity,
        "value": coin["price"] * quantity,
        "isSelected": True,
    }
    db(TABLE).upsert(row, on_conflict="user_id,coin_id").execute()
    logger.info("Added %s (%s) to portfolio", coin["id"], quantity)
    return _to_holding(row)


def toggle_holding(db: Callable, user_id: str, coin_id: str) -> Optional[bool]:
    """Flip isSelected for one coin. Returns the new flag, or None if the user does not hold it."""
    rows = db(TABLE).select("coin_id,isSelected").eq("user_id", user_id).eq("coin_id", coin_id).execute()
    if not rows:
        return None
    selected = not bool(rows[0].get("isSelected", True))
    db(TABLE).update({"isSelected": selected}).eq("user_id", user_id).eq("coin_id", coin_id).execute()
    return selected


def reset_portfolio(db: Callable, user_id: str) -> None:
    db(TABLE).delete().eq("user_id", user_id).execute()


def dashboard_totals(db: Callable, oracle, user_id: str) -> dict:
    """Selected holdings valued in USD and in BTC."""
    rows = db(TABLE).select("coin_id,quantity").eq("user_id", user_id).eq("isSelected", True).execute()
    coin_ids = [r["coin_id"] for r in rows if r.get("coin_id")]
    if not coin_ids:
        return {"total_usd": 0.0, "total_btc": 0.0}

    prices = oracle.fetch_simple_prices(coin_ids + [BTC_ID])
    total = 0.0
    for r in rows:
        if r.get("coin_id"):
            total += prices.get(r["coin_id"], 0) * float(r.get("quantity") or 0)
    btc_price = prices.get(BTC_ID) or 1
    return {"total_usd": total, "total_btc": total / btc_price}
