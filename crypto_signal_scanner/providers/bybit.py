from __future__ import annotations

from typing import Any, List

from ..models import Candle, MarketSymbol
from .base import ExchangeAdapter, FetchError, Interval, to_float

BYBIT_INTERVALS = {
    "5m": "5",
    "15m": "15",
    "30m": "30",
    "1h": "60",
    "2h": "120",
    "4h": "240",
    "1d": "D",
    "1w": "W",
}


def _result_list(payload: Any) -> List[Any]:
    if not isinstance(payload, dict):
        raise FetchError(f"unexpected bybit payload: {type(payload).__name__}")
    if payload.get("retCode") != 0:
        raise FetchError(f"bybit retCode={payload.get('retCode')} msg={payload.get('retMsg')}")
    lst = (payload.get("result") or {}).get("list")
    if not isinstance(lst, list):
        raise FetchError("bybit payload missing result.list")
    return lst


def parse_bybit_klines(payload: Any) -> List[Candle]:
    """result.list rows [start, open, high, low, close, volume, turnover], newest first."""
    out: List[Candle] = []
    for row in reversed(_result_list(payload)):
        try:
            out.append(Candle(
                time_ms=int(row[0]),
                open=to_float(row[1]),
                high=to_float(row[2]),
                low=to_float(row[3]),
                close=to_float(row[4]),
                volume=to_float(row[5]),
            ))
        except (TypeError, ValueError, IndexError):
            continue
    return out


def parse_bybit_tickers(payload: Any, quote_asset: str = "USDT") -> List[MarketSymbol]:
    out: List[MarketSymbol] = []
    for t in _result_list(payload):
        if not isinstance(t, dict):
            continue
        sym = str(t.get("symbol") or "")
        if not sym.endswith(quote_asset) or sym == quote_asset:
            continue
        try:
            out.append(MarketSymbol(
                symbol=sym,
                base=sym[: -len(quote_asset)],
                quote_volume_24h=to_float(t.get("turnover24h")),
                price_change_pct_24h=to_float(t.get("price24hPcnt")) * 100.0,
                last_price=to_float(t.get("lastPrice")),
            ))
        except (TypeError, ValueError):
            continue
    return out


class BybitAdapter(ExchangeAdapter):
    """Bybit v5 linear (USDT perpetual) market data."""

    intervals = BYBIT_INTERVALS

    async def _request_klines(self, symbol: str, native: Interval, limit: int, timeframe: str) -> Any:
        params = {"category": "linear", "symbol": symbol, "interval": native, "limit": int(limit)}
        return await self.get_json("/v5/market/kline", params)

    async def _request_universe(self) -> Any:
        return await self.get_json("/v5/market/tickers", {"category": "linear"})

    def parse_klines(self, payload: Any) -> List[Candle]:
        return parse_bybit_klines(payload)

    def parse_universe(self, payload: Any) -> List[MarketSymbol]:
        return parse_bybit_tickers(payload, self.source.quote_asset)
