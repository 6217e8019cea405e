from __future__ import annotations

import asyncio
import logging
from collections import Counter
from itertools import chain
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence

from .cache import Cache
from .config import Config
from .models import MarketSymbol, Signal, SkipReason, SymbolResult
from .providers.base import ExchangeAdapter, FetchError
from .strategy import Strategy, SymbolContext

log = logging.getLogger("scanner")


class UniverseUnavailable(FetchError):
    """Symbol universe could not be fetched; the scan produced nothing worth caching."""


class IncompleteScan(FetchError):
    """Some exchanges of a multi-exchange scan failed. Carries the partial merge."""

    def __init__(self, message: str, signals: List[Signal]):
        super().__init__(message)
        self.signals = signals


def signal_sort_key(s: Signal):
    return (-s.score, s.candles_ago)


def sort_signals(signals: Iterable[Signal]) -> List[Signal]:
    return sorted(signals, key=signal_sort_key)


def by_symbol(s: Signal) -> Hashable:
    return s.symbol


def by_symbol_direction(s: Signal) -> Hashable:
    return s.dedupe_key


def merge_signals(*lists: Sequence[Signal], key: Callable[[Signal], Hashable] = by_symbol) -> List[Signal]:
    """Dedupe across lists, keeping the best-ranked copy of each key.

    The sort is stable, so on equal rank the copy from the earlier list wins.
    """
    seen = set()
    out: List[Signal] = []
    for s in sort_signals(chain.from_iterable(lists)):
        k = key(s)
        if k in seen:
            continue
        seen.add(k)
        out.append(s)
    return out


class SignalScanner:
    """Per (exchange, timeframe) pipeline: universe -> batched fetch/detect -> ranked signals."""

    def __init__(self, cfg: Config, adapters: Dict[str, ExchangeAdapter], cache: Cache):
        self.cfg = cfg
        self.adapters = adapters
        self.cache = cache

    def adapter(self, exchange_id: str) -> Optional[ExchangeAdapter]:
        return self.adapters.get(exchange_id)

    async def universe(self, adapter: ExchangeAdapter) -> List[MarketSymbol]:
        """Symbol universe through the cache. FetchError propagates and is not cached."""
        key = f"universe_{adapter.exchange_id}"
        return await self.cache.with_cache(
            key,
            adapter.fetch_symbol_universe,
            self.cfg.cache.universe_ttl_ms,
        )

    async def _evaluate(self, adapter: ExchangeAdapter, strategy: Strategy, ctx: SymbolContext) -> SymbolResult:
        sym = ctx.market.symbol
        try:
            return await asyncio.wait_for(strategy.evaluate(adapter, ctx), timeout=self.cfg.scanner.symbol_timeout_s)
        except asyncio.TimeoutError:
            log.warning("symbol_timeout exchange=%s symbol=%s", adapter.exchange_id, sym)
            return SymbolResult.skipped(sym, SkipReason.TIMEOUT)
        except Exception as e:
            log.debug("symbol_error exchange=%s symbol=%s err=%r", adapter.exchange_id, sym, e, exc_info=True)
            return SymbolResult.skipped(sym, SkipReason.ERROR, repr(e))

    async def scan(
        self,
        exchange_id: str,
        timeframe: str,
        strategy: Strategy,
        *,
        ranks: Optional[Dict[str, int]] = None,
        symbols: Optional[List[MarketSymbol]] = None,
    ) -> List[Signal]:
        adapter = self.adapter(exchange_id)
        if adapter is None:
            log.warning("scan_no_adapter exchange=%s", exchange_id)
            return []

        if symbols is None:
            try:
                symbols = await self.universe(adapter)
            except FetchError as e:
                log.warning("universe_failed exchange=%s err=%s", exchange_id, e)
                raise UniverseUnavailable(f"{exchange_id}: {e}") from e

        src = adapter.source
        batch_size = max(1, int(src.batch_size or self.cfg.scanner.default_batch_size))
        delay_s = float(src.batch_delay_s if src.batch_delay_s is not None else self.cfg.scanner.default_batch_delay_s)
        ranks = ranks or {}

        log.info(
            "scan_start mode=%s exchange=%s tf=%s symbols=%d batch=%d",
            strategy.mode, exchange_id, timeframe, len(symbols), batch_size,
        )

        results: List[SymbolResult] = []
        for start in range(0, len(symbols), batch_size):
            batch = symbols[start:start + batch_size]
            tasks = []
            for m in batch:
                ctx = SymbolContext(
                    exchange=exchange_id,
                    timeframe=timeframe,
                    market=m,
                    display=adapter.display_symbol(m),
                    link=adapter.link(m.symbol),
                    market_cap_rank=ranks.get(m.base.upper()),
                )
                tasks.append(self._evaluate(adapter, strategy, ctx))
            results.extend(await asyncio.gather(*tasks))
            if start + batch_size < len(symbols) and delay_s > 0:
                await asyncio.sleep(delay_s)

        signals = sort_signals(r.signal for r in results if r.signal is not None)
        skipped = Counter(r.skip.value for r in results if r.skip is not None)
        log.info(
            "scan_done mode=%s exchange=%s tf=%s signals=%d skipped=%s",
            strategy.mode, exchange_id, timeframe, len(signals), dict(skipped),
        )
        return signals
