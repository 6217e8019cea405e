from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from ..config import CoinGeckoConfig, HttpConfig
from .base import FetchError, HttpClient

log = logging.getLogger("coingecko")

FREE_BASE = "https://api.coingecko.com/api/v3"
PRO_BASE = "https://pro-api.coingecko.com/api/v3"

STABLECOINS = frozenset({
    "tether", "usd-coin", "staked-ether", "dai", "first-digital-usd",
    "ethena-usde", "usdd", "true-usd", "frax", "paxos-standard",
    "binance-usd", "paypal-usd", "tether-gold", "paxos-gold", "wrapped-bitcoin",
})


def parse_market_ranks(rows: Any) -> Dict[str, int]:
    """Map upper-cased ticker -> best (lowest) market-cap rank."""
    if not isinstance(rows, list):
        raise FetchError(f"unexpected markets payload: {type(rows).__name__}")
    out: Dict[str, int] = {}
    for coin in rows:
        if not isinstance(coin, dict) or coin.get("id") in STABLECOINS:
            continue
        sym = str(coin.get("symbol") or "").upper()
        rank = coin.get("market_cap_rank")
        if not sym or not isinstance(rank, int) or rank <= 0:
            continue
        if sym not in out or rank < out[sym]:
            out[sym] = rank
    return out


class CoinGeckoClient(HttpClient):
    """Optional market-cap rank lookup used as a scoring enrichment."""

    def __init__(self, cfg: CoinGeckoConfig, http: Optional[HttpConfig] = None):
        super().__init__(PRO_BASE if cfg.api_key else FREE_BASE, http)
        self.cfg = cfg

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.cfg.api_key:
            headers["x-cg-pro-api-key"] = self.cfg.api_key
        return headers

    async def fetch_market_ranks(self) -> Dict[str, int]:
        ranks: Dict[str, int] = {}
        for page in range(1, max(1, self.cfg.pages) + 1):
            params = {
                "vs_currency": "usd",
                "order": "market_cap_desc",
                "per_page": self.cfg.per_page,
                "page": page,
            }
            try:
                rows = await self.get_json("/coins/markets", params)
            except FetchError as e:
                if page == 1:
                    raise
                log.warning("markets_page_failed page=%d err=%s", page, e)
                break
            for sym, rank in parse_market_ranks(rows).items():
                if sym not in ranks or rank < ranks[sym]:
                    ranks[sym] = rank
            if page < self.cfg.pages:
                await asyncio.sleep(self.cfg.page_delay_s)
        log.info("market_ranks_loaded coins=%d", len(ranks))
        return ranks
