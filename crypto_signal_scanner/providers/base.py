from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

import aiohttp

from ..config import ExchangeSource, HttpConfig
from ..models import Candle, MarketSymbol

log = logging.getLogger("http")

Interval = Union[str, int]


class FetchError(RuntimeError):
    pass


def to_float(val: Any) -> float:
    """float() that rejects None/bool so malformed rows are dropped, not coerced."""
    if val is None or isinstance(val, bool):
        raise ValueError("missing numeric field")
    return float(val)


def clean_candles(candles: Iterable[Candle]) -> List[Candle]:
    """Drop invalid candles, sort ascending, keep the last copy of a duplicated open time."""
    by_time: Dict[int, Candle] = {}
    for c in candles:
        if c.is_valid():
            by_time[c.time_ms] = c
    return [by_time[t] for t in sorted(by_time)]


def rank_universe(symbols: Iterable[MarketSymbol], min_quote_volume: float, size: int) -> List[MarketSymbol]:
    kept = [s for s in symbols if s.quote_volume_24h >= min_quote_volume]
    kept.sort(key=lambda s: s.quote_volume_24h, reverse=True)
    return kept[:size] if size > 0 else kept


class HttpClient:
    """Shared aiohttp session with bounded timeouts and 418/429 backoff."""

    def __init__(self, base_url: str, http: Optional[HttpConfig] = None):
        http = http or HttpConfig()
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(http.timeout_s)
        self.max_retries = max(1, int(http.max_retries))
        self.backoff_s = float(http.backoff_s)
        self.conn_limit = int(http.conn_limit)
        self.conn_limit_per_host = int(http.conn_limit_per_host)
        self.user_agent = http.user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    async def close(self) -> None:
        """Close the shared aiohttp session (best-effort)."""
        if self._session is not None and not self._session.closed:
            await self._session.close()

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=self.timeout_s,
            connect=min(10.0, self.timeout_s),
            sock_connect=min(10.0, self.timeout_s),
            sock_read=max(5.0, self.timeout_s * 0.75),
        )

    def _connector(self) -> aiohttp.TCPConnector:
        return aiohttp.TCPConnector(
            limit=self.conn_limit,
            limit_per_host=self.conn_limit_per_host,
            ttl_dns_cache=300,
            enable_cleanup_closed=True,
        )

    def _headers(self) -> Dict[str, str]:
        return {"User-Agent": self.user_agent, "Accept": "application/json"}

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout(),
                connector=self._connector(),
                headers=self._headers(),
            )
        return self._session

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = path if path.startswith("http") else self.base_url + path
        sess = await self._get_session()

        backoff = self.backoff_s
        last_err: Optional[BaseException] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                async with sess.get(url, params=params) as resp:
                    # Rate-limit / ban signals
                    if resp.status in (418, 429):
                        retry_after = resp.headers.get("Retry-After")
                        sleep_s = float(retry_after) if (retry_after and retry_after.isdigit()) else backoff
                        log.warning("rest_rate_limited status=%s url=%s sleep=%.1fs", resp.status, url, sleep_s)
                        last_err = FetchError(f"rate limited: {resp.status} {url}")
                        if attempt >= self.max_retries:
                            break
                        await asyncio.sleep(sleep_s)
                        backoff = min(backoff * 2.0, 20.0)
                        continue

                    if resp.status < 200 or resp.status >= 300:
                        txt = await resp.text()
                        raise FetchError(f"GET {url} failed: {resp.status} {txt[:300]}")

                    # Some proxies return a wrong content-type; be tolerant.
                    try:
                        return await resp.json(content_type=None)
                    except ValueError as e:
                        raise FetchError(f"GET {url} returned malformed JSON: {e}") from e

            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                last_err = e
                if attempt >= self.max_retries:
                    break
                log.debug(
                    "rest_timeout_or_client_err attempt=%d/%d url=%s backoff=%.1fs err=%s",
                    attempt,
                    self.max_retries,
                    url,
                    backoff,
                    e,
                )
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2.0, 20.0)

        raise FetchError(f"GET {url} failed after {self.max_retries} attempts: {last_err!r}")


class ExchangeAdapter(HttpClient):
    """Base for per-exchange kline and symbol-universe fetchers."""

    intervals: Dict[str, Interval] = {}

    def __init__(self, source: ExchangeSource, http: Optional[HttpConfig] = None, *, min_candles: int = 100):
        super().__init__(source.base_url, http)
        self.source = source
        self.min_candles = int(min_candles)
        self.log = logging.getLogger(source.id)

    @property
    def exchange_id(self) -> str:
        return self.source.id

    @property
    def name(self) -> str:
        return self.source.name

    def native_interval(self, timeframe: str) -> Optional[Interval]:
        return self.intervals.get(timeframe)

    def display_symbol(self, sym: MarketSymbol) -> str:
        return sym.base

    def link(self, symbol: str) -> str:
        return self.source.link(symbol)

    async def fetch_klines(self, symbol: str, timeframe: str, limit: int = 500, *, min_candles: Optional[int] = None) -> List[Candle]:
        """Ascending candles, or [] for any failure or a series too short to use."""
        native = self.native_interval(timeframe)
        if native is None:
            self.log.debug("klines_unsupported_tf symbol=%s tf=%s", symbol, timeframe)
            return []
        limit = max(1, min(int(limit), int(self.source.max_kline_limit)))
        try:
            payload = await self._request_klines(symbol, native, limit, timeframe)
            candles = clean_candles(self.parse_klines(payload))
        except FetchError as e:
            self.log.debug("klines_failed symbol=%s tf=%s err=%s", symbol, timeframe, e)
            return []

        need = self.min_candles if min_candles is None else int(min_candles)
        if len(candles) < need:
            self.log.debug("klines_short symbol=%s tf=%s got=%d need=%d", symbol, timeframe, len(candles), need)
            return []
        return candles

    async def fetch_symbol_universe(self, min_quote_volume: Optional[float] = None) -> List[MarketSymbol]:
        """Ranked by 24h quote volume. Raises FetchError when the listing cannot be read."""
        floor = self.source.min_quote_volume if min_quote_volume is None else float(min_quote_volume)
        payload = await self._request_universe()
        return rank_universe(self.parse_universe(payload), floor, self.source.universe_size)

    async def _request_klines(self, symbol: str, native: Interval, limit: int, timeframe: str) -> Any:
        raise NotImplementedError

    async def _request_universe(self) -> Any:
        raise NotImplementedError

    def parse_klines(self, payload: Any) -> List[Candle]:
        raise NotImplementedError

    def parse_universe(self, payload: Any) -> List[MarketSymbol]:
        raise NotImplementedError
