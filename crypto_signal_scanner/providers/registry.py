from __future__ import annotations

from typing import Dict

from ..config import Config, ExchangeSource
from .base import ExchangeAdapter
from .binance import BinanceAdapter
from .bitget import BitgetAdapter
from .bybit import BybitAdapter
from .coinbase import CoinbaseAdapter, CoinbaseIntlAdapter

# Spot pairs that fell more than this in 24h never enter the spot universe.
SPOT_MIN_CHANGE_PCT = -50.0


def build_adapter(source: ExchangeSource, cfg: Config) -> ExchangeAdapter:
    kw = dict(min_candles=cfg.scanner.min_candles)
    if source.id == "binance_futures":
        return BinanceAdapter(source, cfg.http, market="futures", **kw)
    if source.id == "binance_spot":
        return BinanceAdapter(source, cfg.http, market="spot", min_change_pct=SPOT_MIN_CHANGE_PCT, **kw)
    if source.id == "coinbase":
        return CoinbaseAdapter(source, cfg.http, **kw)
    if source.id == "coinbase_intl":
        return CoinbaseIntlAdapter(source, cfg.http, **kw)
    if source.id == "bybit":
        return BybitAdapter(source, cfg.http, **kw)
    if source.id == "bitget":
        return BitgetAdapter(source, cfg.http, **kw)
    raise ValueError(f"No adapter for exchange: {source.id}")


def build_adapters(cfg: Config) -> Dict[str, ExchangeAdapter]:
    return {ex_id: build_adapter(src, cfg) for ex_id, src in cfg.exchanges.items() if src.enabled}
