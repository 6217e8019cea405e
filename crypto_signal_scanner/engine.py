from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .cache import Cache
from .config import Config
from .models import Signal, signals_from_json, signals_to_json
from .providers.base import ExchangeAdapter, FetchError
from .providers.coingecko import CoinGeckoClient
from .providers.registry import build_adapters
from .scanner import IncompleteScan, SignalScanner, UniverseUnavailable, by_symbol, merge_signals
from .strategy import AdvancedStrategy, CrossoverStrategy, ReversalStrategy, StructureStrategy
from .timeframes import normalize_timeframe

log = logging.getLogger("engine")

DEFAULT_EXCHANGE = "binance_futures"


class SignalEngine:
    """Public entry points. Every method returns a (possibly empty) list and never raises."""

    def __init__(
        self,
        cfg: Config,
        adapters: Optional[Dict[str, ExchangeAdapter]] = None,
        cache: Optional[Cache] = None,
        coingecko: Optional[CoinGeckoClient] = None,
    ):
        self.cfg = cfg
        self.adapters = adapters if adapters is not None else build_adapters(cfg)
        self.cache = cache if cache is not None else Cache(cfg.cache.dir, enabled=cfg.cache.enabled)
        if coingecko is None and cfg.coingecko.enabled:
            coingecko = CoinGeckoClient(cfg.coingecko, cfg.http)
        self.coingecko = coingecko
        self.scanner = SignalScanner(cfg, self.adapters, self.cache)

        self.crossover = CrossoverStrategy(cfg.crossover, cfg.scanner.kline_limit)
        self.advanced = AdvancedStrategy(cfg.advanced)
        self.structure = StructureStrategy(cfg.structure, cfg.scanner.kline_limit)
        self.reversal = ReversalStrategy(cfg.reversal)

    async def close(self) -> None:
        for a in self.adapters.values():
            await a.close()
        if self.coingecko is not None:
            await self.coingecko.close()

    def clear_cache(self, key: Optional[str] = None) -> None:
        self.cache.clear(key)

    def _exchange(self, exchange_id: Optional[str], allowed: Optional[List[str]] = None) -> str:
        ex = (exchange_id or "").strip().lower()
        if ex not in self.cfg.exchanges or (allowed is not None and ex not in allowed):
            if exchange_id:
                log.warning("unknown_exchange requested=%s fallback=%s", exchange_id, DEFAULT_EXCHANGE)
            return DEFAULT_EXCHANGE
        return ex

    async def market_ranks(self) -> Dict[str, int]:
        if self.coingecko is None:
            return {}
        try:
            return await self.cache.with_cache(
                "coingecko_ranks",
                self.coingecko.fetch_market_ranks,
                self.cfg.cache.universe_ttl_ms,
            )
        except FetchError as e:
            log.warning("market_ranks_failed err=%s", e)
            return {}

    async def get_signals(self, exchange_id: str = DEFAULT_EXCHANGE, timeframe: str = "15m") -> List[Signal]:
        """Advanced mode: 5/12/50 EMA cross confirmed by HTF, RSI, Stochastic and patterns."""
        try:
            ex = self._exchange(exchange_id)
            tf = normalize_timeframe(timeframe, "signals")

            async def produce() -> List[Signal]:
                return await self.scanner.scan(ex, tf, self.advanced)

            return await self.cache.with_cache(f"signals_{ex}_{tf}", produce, self.cfg.cache.signals_ttl_ms)
        except UniverseUnavailable:
            return []
        except Exception:
            log.exception("get_signals_failed exchange=%s tf=%s", exchange_id, timeframe)
            return []

    async def get_crossover_signals(self, timeframe: str = "1h") -> List[Signal]:
        """EMA 7/99 crossovers on every configured crossover exchange, merged by symbol."""
        try:
            tf = normalize_timeframe(timeframe, "crossover")

            async def produce() -> List[Signal]:
                ranks = await self.market_ranks()
                lists = []
                failed = []
                for ex in self.cfg.crossover.exchanges:
                    try:
                        lists.append(await self.scanner.scan(ex, tf, self.crossover, ranks=ranks))
                    except UniverseUnavailable:
                        failed.append(ex)
                merged = merge_signals(*lists, key=by_symbol)
                if failed:
                    # partial result is served but not cached
                    raise IncompleteScan(f"failed exchanges: {','.join(failed)}", merged)
                return merged

            return await self.cache.with_cache(f"crossover_{tf}", produce, self.cfg.cache.signals_ttl_ms)
        except IncompleteScan as e:
            log.warning("crossover_incomplete tf=%s err=%s", timeframe, e)
            return e.signals
        except Exception:
            log.exception("get_crossover_signals_failed tf=%s", timeframe)
            return []

    async def get_structure_signals(self, exchange_id: str = DEFAULT_EXCHANGE, timeframe: str = "1h") -> List[Signal]:
        """9/21/200 EMA trend with break of structure, fair-value gaps and swing stops."""
        try:
            ex = self._exchange(exchange_id)
            tf = normalize_timeframe(timeframe, "structure")

            async def produce() -> List[Signal]:
                return await self.scanner.scan(ex, tf, self.structure)

            return await self.cache.with_cache(f"structure_{ex}_{tf}", produce, self.cfg.cache.signals_ttl_ms)
        except UniverseUnavailable:
            return []
        except Exception:
            log.exception("get_structure_signals_failed exchange=%s tf=%s", exchange_id, timeframe)
            return []

    async def get_short_reversal_signals(
        self,
        timeframe: str = "1d",
        exchange: str = DEFAULT_EXCHANGE,
        limit: Optional[int] = None,
    ) -> List[Signal]:
        """Liquidity-sweep exhaustion shorts over the top `limit` symbols by volume."""
        try:
            tf = normalize_timeframe(timeframe, "short_reversal")
            ex = self._exchange(exchange, self.cfg.reversal.exchanges)
            n = int(limit) if limit and int(limit) > 0 else self.cfg.reversal.default_limit

            async def produce() -> List[Signal]:
                adapter = self.scanner.adapter(ex)
                if adapter is None:
                    log.warning("reversal_no_adapter exchange=%s", ex)
                    return []
                try:
                    universe = await self.scanner.universe(adapter)
                except FetchError as e:
                    log.warning("universe_failed exchange=%s err=%s", ex, e)
                    raise UniverseUnavailable(f"{ex}: {e}") from e
                return await self.scanner.scan(ex, tf, self.reversal, symbols=universe[:n])

            return await self.cache.with_cache(
                f"short_reversal_{tf}_{ex}_{n}",
                produce,
                self.cfg.cache.reversal_ttl_ms,
                persist=self.cfg.cache.persist_reversal,
                encode=signals_to_json,
                decode=signals_from_json,
            )
        except UniverseUnavailable:
            return []
        except Exception:
            log.exception("get_short_reversal_signals_failed exchange=%s tf=%s", exchange, timeframe)
            return []
