"""
CoinGecko price client (free tier, optional demo key).
Markets list feeds the converter, simple/price feeds portfolio valuation,
search + coin detail resolve a typed coin name when adding a holding.
"""

import logging
import re
from typing import Optional

import requests

from errors import PriceOracleError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.coingecko.com/api/v3"
REFERENCE_CURRENCY = "usd"

# Converter only lists plain-letter tickers (drops "1INCH", "USD+", ...)
_ASCII_SYMBOL = re.compile(r"^[a-zA-Z]+$")


class CoinGeckoClient:
    """Thin wrapper over the CoinGecko REST endpoints used by the app."""

    def __init__(self, api_url: str = DEFAULT_API_URL, api_key: str = "", timeout: float = 15):
        self.api_url = (api_url or DEFAULT_API_URL).rstrip("/")
        self.api_key = api_key or ""
        self.timeout = timeout

    def _get(self, path: str, params: Optional[dict] = None):
        url = f"{self.api_url}{path}"
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["x-cg-demo-api-key"] = self.api_key
        try:
            r = requests.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise PriceOracleError(f"Price service unreachable: {e}") from e
        if r.status_code == 429:
            raise PriceOracleError("Price service rate limit reached, try again shortly", status=429)
        if r.status_code != 200:
            raise PriceOracleError(f"Price service returned HTTP {r.status_code}", status=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise PriceOracleError("Price service returned invalid JSON") from e

    def fetch_markets(self, per_page: int = 250, page: int = 1) -> list[dict]:
        """Top coins by market cap as converter options: {id, name, symbol, price, image}."""
        data = self._get("/coins/markets", {
            "vs_currency": REFERENCE_CURRENCY,
            "order": "market_cap_desc",
            "per_page": per_page,
            "page": page,
        })
        coins = []
        for coin in data or []:
            symbol = coin.get("symbol") or ""
            price = coin.get("current_price")
            if not _ASCII_SYMBOL.match(symbol) or price is None:
                continue
            coins.append({
                "id": coin.get("id", ""),
                "name": coin.get("name", ""),
                "symbol": symbol.upper(),
                "price": float(price),
                "image": coin.get("image", ""),
            })
        return coins

    def fetch_simple_prices(self, ids) -> dict[str, float]:
        """USD spot price per coin id. Ids the API does not know are absent from the result."""
        ids = [i for i in dict.fromkeys(ids) if i]
        if not ids:
            return {}
        data = self._get("/simple/price", {"ids": ",".join(ids), "vs_currencies": REFERENCE_CURRENCY})
        prices = {}
        for cg_id in ids:
            entry = (data or {}).get(cg_id) or {}
            if REFERENCE_CURRENCY in entry and entry[REFERENCE_CURRENCY] is not None:
                prices[cg_id] = float(entry[REFERENCE_CURRENCY])
        return prices

    def search_coin(self, query: str) -> Optional[dict]:
        """
        Resolve free text ("bitcoin", "eth") to {id, name, symbol, price} using the
        first search hit and its coin detail. None when nothing matches.
        """
        query = (query or "").strip()
        if not query:
            return None
        found = self._get("/search", {"query": query})
        hits = (found or {}).get("coins") or []
        if not hits or not hits[0].get("id"):
            logger.info("Coin search found nothing for %r", query)
            return None
        coin_id = hits[0]["id"]
        detail = self._get(f"/coins/{coin_id}", {
            "localization": "false",
            "tickers": "false",
            "community_data": "false",
            "developer_data": "false",
        })
        try:
            price = float(detail["market_data"]["current_price"][REFERENCE_CURRENCY])
        except (KeyError, TypeError, ValueError) as e:
            raise PriceOracleError(f"No USD price for {coin_id}") from e
        return {
            "id": coin_id,
            "name": detail.get("name") or hits[0].get("name", coin_id),
            "symbol": detail.get("symbol") or hits[0].get("symbol", ""),
            "price": price,
        }


def filter_coins(coins: list[dict], query: str) -> list[dict]:
    """Case-insensitive substring match on name or symbol. Empty query returns everything."""
    q = (query or "").strip().lower()
    if not q:
        return list(coins)
    return [c for c in coins if q in c.get("name", "").lower() or q in c.get("symbol", "").lower()]


def find_coin(coins: list[dict], coin_id: str) -> Optional[dict]:
    for c in coins:
        if c.get("id") == coin_id:
            return c
    return None
