from __future__ import annotations

from typing import Any, List, Optional

from ..config import ExchangeSource, HttpConfig
from ..models import Candle, MarketSymbol
from .base import ExchangeAdapter, FetchError, Interval, to_float


def _klines_path(market: str) -> str:
    return "/fapi/v1/klines" if market == "futures" else "/api/v3/klines"


def _ticker_path(market: str) -> str:
    return "/fapi/v1/ticker/24hr" if market == "futures" else "/api/v3/ticker/24hr"


def parse_binance_klines(rows: Any) -> List[Candle]:
    """[open_time, open, high, low, close, volume, close_time, ...] rows."""
    if not isinstance(rows, list):
        raise FetchError(f"unexpected klines payload: {type(rows).__name__}")
    out: List[Candle] = []
    for row in rows:
        try:
            out.append(Candle(
                time_ms=int(row[0]),
                open=to_float(row[1]),
                high=to_float(row[2]),
                low=to_float(row[3]),
                close=to_float(row[4]),
                volume=to_float(row[5]),
            ))
        except (TypeError, ValueError, IndexError, KeyError):
            continue
    return out


def parse_binance_tickers(rows: Any, quote_asset: str = "USDT", min_change_pct: Optional[float] = None) -> List[MarketSymbol]:
    if not isinstance(rows, list):
        raise FetchError(f"unexpected ticker payload: {type(rows).__name__}")
    out: List[MarketSymbol] = []
    for t in rows:
        if not isinstance(t, dict):
            continue
        sym = str(t.get("symbol") or "")
        if not sym.endswith(quote_asset) or sym == quote_asset:
            continue
        try:
            change = to_float(t.get("priceChangePercent"))
            entry = MarketSymbol(
                symbol=sym,
                base=sym[: -len(quote_asset)],
                quote_volume_24h=to_float(t.get("quoteVolume")),
                price_change_pct_24h=change,
                last_price=to_float(t.get("lastPrice")),
            )
        except (TypeError, ValueError):
            continue
        # skip coins that already dumped hard
        if min_change_pct is not None and change < min_change_pct:
            continue
        out.append(entry)
    return out


class BinanceAdapter(ExchangeAdapter):
    intervals = {tf: tf for tf in ("5m", "15m", "30m", "1h", "2h", "4h", "1d", "1w")}

    def __init__(
        self,
        source: ExchangeSource,
        http: Optional[HttpConfig] = None,
        *,
        market: str = "futures",
        min_candles: int = 100,
        min_change_pct: Optional[float] = None,
    ):
        super().__init__(source, http, min_candles=min_candles)
        self.market = market
        self.min_change_pct = min_change_pct

    async def _request_klines(self, symbol: str, native: Interval, limit: int, timeframe: str) -> Any:
        params = {"symbol": symbol.upper(), "interval": native, "limit": int(limit)}
        return await self.get_json(_klines_path(self.market), params)

    async def _request_universe(self) -> Any:
        return await self.get_json(_ticker_path(self.market))

    def parse_klines(self, payload: Any) -> List[Candle]:
        return parse_binance_klines(payload)

    def parse_universe(self, payload: Any) -> List[MarketSymbol]:
        return parse_binance_tickers(payload, self.source.quote_asset, self.min_change_pct)
