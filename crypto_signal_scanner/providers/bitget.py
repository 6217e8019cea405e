from __future__ import annotations

from typing import Any, List

from ..models import Candle, MarketSymbol
from .base import ExchangeAdapter, FetchError, Interval, to_float

BITGET_GRANULARITY = {
    "5m": "5m",
    "15m": "15m",
    "30m": "30m",
    "1h": "1H",
    "2h": "2H",
    "4h": "4H",
    "1d": "1D",
    "1w": "1W",
}

PRODUCT_TYPE = "USDT-FUTURES"


def _data(payload: Any) -> List[Any]:
    if not isinstance(payload, dict):
        raise FetchError(f"unexpected bitget payload: {type(payload).__name__}")
    if payload.get("code") != "00000":
        raise FetchError(f"bitget code={payload.get('code')} msg={payload.get('msg')}")
    data = payload.get("data")
    if not isinstance(data, list):
        raise FetchError("bitget payload missing data")
    return data


def parse_bitget_candles(payload: Any) -> List[Candle]:
    """data rows [ts, open, high, low, close, base_vol, quote_vol], oldest first."""
    out: List[Candle] = []
    for row in _data(payload):
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


def parse_bitget_tickers(payload: Any, quote_asset: str = "USDT") -> List[MarketSymbol]:
    out: List[MarketSymbol] = []
    for t in _data(payload):
        if not isinstance(t, dict):
            continue
        sym = str(t.get("symbol") or "")
        if not sym.endswith(quote_asset) or sym == quote_asset:
            continue
        try:
            vol = t.get("usdtVolume") if t.get("usdtVolume") is not None else t.get("quoteVolume")
            out.append(MarketSymbol(
                symbol=sym,
                base=sym[: -len(quote_asset)],
                quote_volume_24h=to_float(vol),
                price_change_pct_24h=to_float(t.get("change24h") or 0.0) * 100.0,
                last_price=to_float(t.get("lastPr")),
            ))
        except (TypeError, ValueError):
            continue
    return out


class BitgetAdapter(ExchangeAdapter):
    """Bitget v2 USDT-margined futures market data."""

    intervals = BITGET_GRANULARITY

    async def _request_klines(self, symbol: str, native: Interval, limit: int, timeframe: str) -> Any:
        params = {"symbol": symbol, "granularity": native, "limit": int(limit), "productType": PRODUCT_TYPE}
        return await self.get_json("/api/v2/mix/market/candles", params)

    async def _request_universe(self) -> Any:
        return await self.get_json("/api/v2/mix/market/tickers", {"productType": PRODUCT_TYPE})

    def parse_klines(self, payload: Any) -> List[Candle]:
        return parse_bitget_candles(payload)

    def parse_universe(self, payload: Any) -> List[MarketSymbol]:
        return parse_bitget_tickers(payload, self.source.quote_asset)
