import asyncio

import pytest

from crypto_signal_scanner.config import ExchangeSource
from crypto_signal_scanner.models import Candle, MarketSymbol
from crypto_signal_scanner.providers.base import ExchangeAdapter, FetchError, clean_candles, rank_universe
from crypto_signal_scanner.providers.binance import parse_binance_klines, parse_binance_tickers
from crypto_signal_scanner.providers.bitget import parse_bitget_candles, parse_bitget_tickers
from crypto_signal_scanner.providers.bybit import BybitAdapter, parse_bybit_klines, parse_bybit_tickers
from crypto_signal_scanner.providers.coinbase import (
    CoinbaseAdapter,
    parse_coinbase_candles,
    parse_coinbase_intl_candles,
    parse_coinbase_intl_instruments,
    parse_coinbase_stats,
)
from crypto_signal_scanner.providers.coingecko import parse_market_ranks


def _c(idx: int, o: float, h: float, l: float, c: float, v: float = 1.0) -> Candle:
    return Candle(time_ms=idx * 60_000, open=o, high=h, low=l, close=c, volume=v)


def test_clean_candles_drops_invalid_sorts_and_dedupes():
    rows = [
        _c(2, 10, 11, 9, 10),
        _c(0, 10, 11, 9, 10),
        _c(1, 10, 9.5, 9, 10),  # high below close
        _c(3, 10, 11, 9, 10, -1),  # negative volume
        _c(4, 10, float("nan"), 9, 10),
        _c(2, 10, 12, 9, 11),
    ]
    out = clean_candles(rows)
    assert [c.time_ms for c in out] == [0, 120_000]
    assert out[1].close == 11


def test_rank_universe():
    syms = [
        MarketSymbol("AUSDT", "A", 5.0),
        MarketSymbol("BUSDT", "B", 50.0),
        MarketSymbol("CUSDT", "C", 20.0),
        MarketSymbol("DUSDT", "D", 1.0),
    ]
    assert [s.base for s in rank_universe(syms, 2.0, 2)] == ["B", "C"]
    assert [s.base for s in rank_universe(syms, 0.0, 0)] == ["B", "C", "A", "D"]


def test_parse_binance_klines_drops_malformed_rows():
    rows = [
        [1000, "1.0", "1.5", "0.9", "1.2", "100", 1999],
        [2000, None, "1.5", "0.9", "1.2", "100", 2999],
        [3000, "1.2"],
        [4000, "1.2", "1.3", "1.1", "1.25", "50", 4999],
    ]
    out = parse_binance_klines(rows)
    assert [c.time_ms for c in out] == [1000, 4000]
    assert out[0] == Candle(1000, 1.0, 1.5, 0.9, 1.2, 100.0)
    with pytest.raises(FetchError):
        parse_binance_klines({"code": -1121, "msg": "Invalid symbol."})


def test_parse_binance_tickers_quote_filter_and_dump_filter():
    rows = [
        {"symbol": "BTCUSDT", "quoteVolume": "1000", "priceChangePercent": "2.5", "lastPrice": "60000"},
        {"symbol": "ETHBTC", "quoteVolume": "5000", "priceChangePercent": "1", "lastPrice": "0.05"},
        {"symbol": "LUNAUSDT", "quoteVolume": "900", "priceChangePercent": "-75", "lastPrice": "0.1"},
        {"symbol": "BADUSDT", "quoteVolume": None, "priceChangePercent": "1", "lastPrice": "1"},
    ]
    out = parse_binance_tickers(rows, "USDT", min_change_pct=-50.0)
    assert [s.symbol for s in out] == ["BTCUSDT"]
    assert out[0].base == "BTC" and out[0].quote_volume_24h == 1000.0
    assert len(parse_binance_tickers(rows, "USDT")) == 2


def test_parse_bybit_newest_first_is_reversed():
    payload = {
        "retCode": 0,
        "result": {"list": [
            ["3000", "3", "3.5", "2.5", "3.2", "10", "30"],
            ["2000", "2", "2.5", "1.5", "2.2", "10", "20"],
            ["1000", "1", "1.5", "0.5", "1.2", "10", "10"],
        ]},
    }
    out = parse_bybit_klines(payload)
    assert [c.time_ms for c in out] == [1000, 2000, 3000]
    with pytest.raises(FetchError):
        parse_bybit_klines({"retCode": 10001, "retMsg": "params error"})


def test_parse_bybit_tickers_change_is_percent():
    payload = {"retCode": 0, "result": {"list": [
        {"symbol": "SOLUSDT", "turnover24h": "123456789", "price24hPcnt": "0.0525", "lastPrice": "150"},
        {"symbol": "SOLUSDC", "turnover24h": "1", "price24hPcnt": "0", "lastPrice": "150"},
    ]}}
    out = parse_bybit_tickers(payload)
    assert len(out) == 1
    assert out[0].price_change_pct_24h == pytest.approx(5.25)
    assert out[0].quote_volume_24h == 123456789.0


def test_parse_bitget():
    payload = {"code": "00000", "data": [
        ["1000", "1", "1.5", "0.5", "1.2", "10", "12"],
        ["2000", "1.2", "1.6", "1.1", "1.4", "11", "15"],
    ]}
    out = parse_bitget_candles(payload)
    assert [c.close for c in out] == [1.2, 1.4]
    with pytest.raises(FetchError):
        parse_bitget_candles({"code": "40034", "msg": "Parameter does not exist", "data": None})

    tickers = {"code": "00000", "data": [
        {"symbol": "XRPUSDT", "usdtVolume": "2500000", "change24h": "-0.031", "lastPr": "0.5"},
    ]}
    t = parse_bitget_tickers(tickers)[0]
    assert t.base == "XRP"
    assert t.price_change_pct_24h == pytest.approx(-3.1)


def test_parse_coinbase_candles_reversed_and_ms():
    rows = [
        [1_700_000_120, 9, 11, 10, 10.5, 5],
        [1_700_000_060, 8, 10, 9, 9.5, 4],
    ]
    out = parse_coinbase_candles(rows)
    assert [c.time_ms for c in out] == [1_700_000_060_000, 1_700_000_120_000]
    first = out[0]
    assert (first.open, first.high, first.low, first.close) == (9.0, 10.0, 8.0, 9.5)


def test_parse_coinbase_intl_sorted():
    payload = {"aggregations": [
        {"start": "2024-01-01T01:00:00Z", "open": "2", "high": "3", "low": "1.5", "close": "2.5", "volume": "7"},
        {"start": "2024-01-01T00:00:00Z", "open": "1", "high": "2", "low": "0.5", "close": "2", "volume": "5"},
        {"start": "bad", "open": "1", "high": "2", "low": "0.5", "close": "2", "volume": "5"},
    ]}
    out = parse_coinbase_intl_candles(payload)
    assert len(out) == 2
    assert out[0].time_ms < out[1].time_ms
    assert out[0].time_ms == 1_704_067_200_000


def test_parse_coinbase_stats_and_instruments():
    s = parse_coinbase_stats("ETH-USD", {"open": "2000", "last": "2100", "volume": "1000"})
    assert s.base == "ETH"
    assert s.quote_volume_24h == 2_100_000.0
    assert s.price_change_pct_24h == pytest.approx(5.0)

    inst = parse_coinbase_intl_instruments([
        {"instrument_id": "BTC-PERP", "type": "PERPETUAL", "trading_state": "TRADING",
         "base_asset_name": "BTC", "notional_24hr": "5000000", "mark_price": "60000"},
        {"instrument_id": "BTC-USDC", "type": "SPOT", "trading_state": "TRADING"},
        {"instrument_id": "OLD-PERP", "type": "PERPETUAL", "trading_state": "DELISTED"},
    ])
    assert [i.symbol for i in inst] == ["BTC-PERP"]
    assert inst[0].quote_volume_24h == 5_000_000.0


def test_parse_market_ranks_excludes_stablecoins():
    rows = [
        {"id": "bitcoin", "symbol": "btc", "market_cap_rank": 1},
        {"id": "tether", "symbol": "usdt", "market_cap_rank": 3},
        {"id": "solana", "symbol": "sol", "market_cap_rank": 5},
        {"id": "sol-clone", "symbol": "sol", "market_cap_rank": 900},
        {"id": "nothing", "symbol": "nil", "market_cap_rank": None},
    ]
    assert parse_market_ranks(rows) == {"BTC": 1, "SOL": 5}


class _StaticAdapter(ExchangeAdapter):
    intervals = {"1h": "1h"}

    def __init__(self, payload, min_candles=3):
        super().__init__(ExchangeSource(id="static", name="STATIC", base_url="http://static.invalid"), min_candles=min_candles)
        self.payload = payload

    async def _request_klines(self, symbol, native, limit, timeframe):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    def parse_klines(self, payload):
        return list(payload)


def test_fetch_klines_returns_empty_on_failure_short_or_unsupported():
    good = [_c(i, 10, 11, 9, 10) for i in range(5)]
    assert len(asyncio.run(_StaticAdapter(good).fetch_klines("X", "1h"))) == 5
    assert asyncio.run(_StaticAdapter(good).fetch_klines("X", "4h")) == []
    assert asyncio.run(_StaticAdapter(good[:2]).fetch_klines("X", "1h")) == []
    assert asyncio.run(_StaticAdapter(good[:2]).fetch_klines("X", "1h", min_candles=2)) != []
    assert asyncio.run(_StaticAdapter(FetchError("502")).fetch_klines("X", "1h")) == []


def test_interval_vocabularies():
    src = ExchangeSource(id="bybit", name="BYBIT", base_url="https://api.bybit.com")
    bybit = BybitAdapter(src)
    assert bybit.native_interval("4h") == "240"
    assert bybit.native_interval("1d") == "D"
    cb = CoinbaseAdapter(ExchangeSource(id="coinbase", name="COINBASE", base_url="https://api.exchange.coinbase.com"))
    assert cb.native_interval("30m") == 900
    assert cb.native_interval("4h") == 21600
