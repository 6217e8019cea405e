from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..models import Candle, MarketSymbol
from ..timeframes import tf_minutes
from .base import ExchangeAdapter, FetchError, Interval, to_float

# Coinbase Exchange only serves these buckets; other timeframes use the nearest one.
COINBASE_GRANULARITY: Dict[str, int] = {
    "5m": 300,
    "15m": 900,
    "30m": 900,
    "1h": 3600,
    "2h": 3600,
    "4h": 21600,
    "1d": 86400,
    "1w": 86400,
}

COINBASE_INTL_GRANULARITY: Dict[str, str] = {
    "5m": "FIVE_MINUTE",
    "15m": "FIFTEEN_MINUTE",
    "30m": "THIRTY_MINUTE",
    "1h": "ONE_HOUR",
    "2h": "TWO_HOUR",
    "4h": "SIX_HOUR",
    "1d": "ONE_DAY",
    "1w": "ONE_DAY",
}

_INTL_SECONDS: Dict[str, int] = {
    "FIVE_MINUTE": 300,
    "FIFTEEN_MINUTE": 900,
    "THIRTY_MINUTE": 1800,
    "ONE_HOUR": 3600,
    "TWO_HOUR": 7200,
    "SIX_HOUR": 21600,
    "ONE_DAY": 86400,
}


def parse_coinbase_candles(rows: Any) -> List[Candle]:
    """[time_s, low, high, open, close, volume] rows, newest first."""
    if not isinstance(rows, list):
        raise FetchError(f"unexpected candles payload: {type(rows).__name__}")
    out: List[Candle] = []
    for row in reversed(rows):
        try:
            out.append(Candle(
                time_ms=int(row[0]) * 1000,
                low=to_float(row[1]),
                high=to_float(row[2]),
                open=to_float(row[3]),
                close=to_float(row[4]),
                volume=to_float(row[5]),
            ))
        except (TypeError, ValueError, IndexError):
            continue
    return out


def _iso_to_ms(val: str) -> int:
    dt = datetime.fromisoformat(str(val).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def parse_coinbase_intl_candles(payload: Any) -> List[Candle]:
    data = payload.get("aggregations") if isinstance(payload, dict) else payload
    if not isinstance(data, list):
        raise FetchError("unexpected candles payload: missing aggregations")
    out: List[Candle] = []
    for d in data:
        if not isinstance(d, dict):
            continue
        try:
            out.append(Candle(
                time_ms=_iso_to_ms(d["start"]),
                open=to_float(d.get("open")),
                high=to_float(d.get("high")),
                low=to_float(d.get("low")),
                close=to_float(d.get("close")),
                volume=to_float(d.get("volume")),
            ))
        except (TypeError, ValueError, KeyError):
            continue
    out.sort(key=lambda c: c.time_ms)
    return out


def parse_coinbase_stats(product_id: str, stats: Any) -> MarketSymbol:
    if not isinstance(stats, dict):
        raise FetchError(f"unexpected stats payload for {product_id}")
    last = to_float(stats.get("last"))
    open_ = to_float(stats.get("open"))
    volume = to_float(stats.get("volume"))
    change = (last - open_) / open_ * 100.0 if open_ else 0.0
    return MarketSymbol(
        symbol=product_id,
        base=product_id.split("-")[0],
        quote_volume_24h=volume * last,
        price_change_pct_24h=change,
        last_price=last,
    )


def parse_coinbase_intl_instruments(rows: Any) -> List[MarketSymbol]:
    if not isinstance(rows, list):
        raise FetchError(f"unexpected instruments payload: {type(rows).__name__}")
    out: List[MarketSymbol] = []
    for i in rows:
        if not isinstance(i, dict) or i.get("type") != "PERPETUAL":
            continue
        active = i.get("status") == "ACTIVE" or i.get("trading_state") == "TRADING"
        if not active:
            continue
        inst = str(i.get("instrument_id") or i.get("symbol") or "")
        if not inst:
            continue
        try:
            notional = float(i.get("notional_24hr") or 0.0)
            last = float(i.get("mark_price") or 0.0)
        except (TypeError, ValueError):
            notional, last = 0.0, 0.0
        out.append(MarketSymbol(
            symbol=inst,
            base=str(i.get("base_asset_name") or inst.split("-")[0]),
            quote_volume_24h=notional,
            last_price=last,
        ))
    return out


class CoinbaseAdapter(ExchangeAdapter):
    """Coinbase Exchange spot products (fixed, configured product list)."""

    intervals = COINBASE_GRANULARITY

    async def _request_klines(self, symbol: str, native: Interval, limit: int, timeframe: str) -> Any:
        return await self.get_json(f"/products/{symbol}/candles", {"granularity": int(native)})

    def parse_klines(self, payload: Any) -> List[Candle]:
        return parse_coinbase_candles(payload)

    async def _one_stats(self, product_id: str) -> Optional[MarketSymbol]:
        try:
            stats = await self.get_json(f"/products/{product_id}/stats")
            return parse_coinbase_stats(product_id, stats)
        except (FetchError, ValueError, TypeError) as e:
            self.log.debug("stats_failed product=%s err=%s", product_id, e)
            return None

    async def _request_universe(self) -> Any:
        products = list(self.source.products)
        if not products:
            raise FetchError("coinbase: no products configured")
        stats = await asyncio.gather(*[self._one_stats(p) for p in products])
        found = [s for s in stats if s is not None]
        if not found:
            raise FetchError("coinbase: stats unavailable for every product")
        return found

    def parse_universe(self, payload: Any) -> List[MarketSymbol]:
        return list(payload)


class CoinbaseIntlAdapter(ExchangeAdapter):
    """Coinbase International perpetuals."""

    intervals = COINBASE_INTL_GRANULARITY

    async def _request_klines(self, symbol: str, native: Interval, limit: int, timeframe: str) -> Any:
        span_s = _INTL_SECONDS.get(str(native), tf_minutes(timeframe) * 60) * limit
        start = datetime.fromtimestamp(time.time() - span_s, tz=timezone.utc)
        params = {"granularity": native, "start": start.strftime("%Y-%m-%dT%H:%M:%SZ")}
        return await self.get_json(f"/api/v1/instruments/{symbol}/candles", params)

    async def _request_universe(self) -> Any:
        return await self.get_json("/api/v1/instruments")

    def parse_klines(self, payload: Any) -> List[Candle]:
        return parse_coinbase_intl_candles(payload)

    def parse_universe(self, payload: Any) -> List[MarketSymbol]:
        return parse_coinbase_intl_instruments(payload)
