from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional
import os
import yaml


class ConfigError(ValueError):
    pass


def _env_override(value: Any, env_key: str) -> Any:
    env_val = os.getenv(env_key)
    if env_val is None:
        return value
    # basic parsing
    if isinstance(value, bool):
        return env_val.strip().lower() in ("1", "true", "yes", "y", "on")
    if isinstance(value, int):
        try:
            return int(env_val)
        except ValueError:
            return value
    if isinstance(value, float):
        try:
            return float(env_val)
        except ValueError:
            return value
    return env_val


@dataclass
class AppConfig:
    name: str = "Crypto Signal Scanner"
    log_level: str = "INFO"


@dataclass
class HttpConfig:
    timeout_s: float = 15.0
    max_retries: int = 3
    backoff_s: float = 0.8
    conn_limit: int = 40
    conn_limit_per_host: int = 10
    user_agent: str = "crypto-signal-scanner/0.1"


@dataclass
class CacheConfig:
    enabled: bool = True
    dir: str = ".cache"
    universe_ttl_ms: int = 60_000
    signals_ttl_ms: int = 30_000
    reversal_ttl_ms: int = 60_000
    persist_reversal: bool = True


@dataclass
class ScannerConfig:
    kline_limit: int = 500
    min_candles: int = 100
    symbol_timeout_s: float = 20.0
    default_batch_size: int = 20
    default_batch_delay_s: float = 0.1


@dataclass
class ExchangeSource:
    id: str
    name: str
    base_url: str
    enabled: bool = True
    min_quote_volume: float = 10_000_000.0
    universe_size: int = 100
    batch_size: int = 20
    batch_delay_s: float = 0.1
    quote_asset: str = "USDT"
    max_kline_limit: int = 1000
    products: List[str] = field(default_factory=list)
    link_template: str = ""

    def link(self, symbol: str) -> str:
        return self.link_template.format(symbol=symbol) if self.link_template else ""


def default_exchanges() -> Dict[str, ExchangeSource]:
    return {
        "binance_futures": ExchangeSource(
            id="binance_futures",
            name="BINANCE FUTURES",
            base_url="https://fapi.binance.com",
            min_quote_volume=10_000_000.0,
            universe_size=100,
            batch_size=20,
            batch_delay_s=0.05,
            max_kline_limit=1500,
            link_template="https://www.binance.com/en/futures/{symbol}",
        ),
        "binance_spot": ExchangeSource(
            id="binance_spot",
            name="BINANCE SPOT",
            base_url="https://api.binance.com",
            min_quote_volume=10_000_000.0,
            universe_size=150,
            batch_size=20,
            batch_delay_s=0.1,
            max_kline_limit=1000,
            link_template="https://www.binance.com/en/trade/{symbol}",
        ),
        "coinbase": ExchangeSource(
            id="coinbase",
            name="COINBASE",
            base_url="https://api.exchange.coinbase.com",
            min_quote_volume=0.0,
            universe_size=10,
            batch_size=1,
            batch_delay_s=0.25,
            quote_asset="USD",
            max_kline_limit=300,
            products=[
                "BTC-USD", "ETH-USD", "SOL-USD", "DOGE-USD", "XRP-USD",
                "ADA-USD", "AVAX-USD", "LINK-USD", "LTC-USD", "SHIB-USD",
            ],
            link_template="https://www.coinbase.com/advanced-trade/spot/{symbol}",
        ),
        "coinbase_intl": ExchangeSource(
            id="coinbase_intl",
            name="COINBASE INTL",
            base_url="https://api.international.coinbase.com",
            min_quote_volume=0.0,
            universe_size=30,
            batch_size=5,
            batch_delay_s=0.5,
            quote_asset="USDC",
            max_kline_limit=300,
            link_template="https://international.coinbase.com/trade/{symbol}",
        ),
        "bybit": ExchangeSource(
            id="bybit",
            name="BYBIT",
            base_url="https://api.bybit.com",
            min_quote_volume=10_000_000.0,
            universe_size=80,
            batch_size=20,
            batch_delay_s=0.2,
            max_kline_limit=1000,
            link_template="https://www.bybit.com/trade/usdt/{symbol}",
        ),
        "bitget": ExchangeSource(
            id="bitget",
            name="BITGET",
            base_url="https://api.bitget.com",
            min_quote_volume=10_000_000.0,
            universe_size=80,
            batch_size=10,
            batch_delay_s=0.2,
            max_kline_limit=1000,
            link_template="https://www.bitget.com/futures/usdt/{symbol}",
        ),
    }


@dataclass
class CrossoverConfig:
    fast_period: int = 7
    slow_period: int = 99
    lookback: int = 3
    volatility_window: int = 30
    stop_pct: float = 3.0
    target_pct: float = 6.0
    min_score: int = 0
    exchanges: List[str] = field(default_factory=lambda: ["binance_futures", "binance_spot"])


@dataclass
class AdvancedConfig:
    fast_period: int = 5
    slow_period: int = 12
    trend_period: int = 50
    atr_period: int = 14
    rsi_period: int = 14
    stoch_k: int = 5
    stoch_d: int = 3
    stoch_slowing: int = 3
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    stoch_overbought: float = 80.0
    stoch_oversold: float = 20.0
    volume_multiplier: float = 1.2
    volume_period: int = 20
    atr_sl_mult: float = 1.5
    atr_tp_mult: float = 2.0
    lookback: int = 24
    main_limit: int = 200
    htf_limit: int = 100
    min_candles: int = 60
    min_score: int = 60
    min_rr: float = 0.5


@dataclass
class StructureConfig:
    fast_period: int = 9
    slow_period: int = 21
    trend_period: int = 200
    atr_period: int = 14
    swing_lookback: int = 5
    lookback: int = 3
    volume_period: int = 20
    volume_multiplier: float = 1.5
    fvg_window: int = 30
    stop_buffer_atr: float = 0.1
    fallback_stop_atr: float = 1.5
    target_rr: float = 2.0
    max_stop_pct: float = 10.0
    htf_limit: int = 100
    min_score: int = 60
    min_rr: float = 1.0


@dataclass
class ReversalConfig:
    swing_lookback: int = 10
    sweep_lookback: int = 2
    max_swing_age: int = 300
    min_move_pct: float = 1.0
    min_vol_ratio: float = 0.8
    min_wick_pct: float = 30.0
    volume_period: int = 20
    ema_fast: int = 50
    ema_slow: int = 200
    target_range_mult: float = 2.0
    kline_limit: int = 300
    min_candles: int = 201
    default_limit: int = 80
    chart_candles: int = 30
    exchanges: List[str] = field(default_factory=lambda: ["binance_futures", "bybit", "bitget"])


@dataclass
class CoinGeckoConfig:
    enabled: bool = False
    api_key: str = ""
    pages: int = 2
    per_page: int = 250
    page_delay_s: float = 0.5


@dataclass
class Config:
    app: AppConfig = field(default_factory=AppConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    scanner: ScannerConfig = field(default_factory=ScannerConfig)
    exchanges: Dict[str, ExchangeSource] = field(default_factory=default_exchanges)
    crossover: CrossoverConfig = field(default_factory=CrossoverConfig)
    advanced: AdvancedConfig = field(default_factory=AdvancedConfig)
    structure: StructureConfig = field(default_factory=StructureConfig)
    reversal: ReversalConfig = field(default_factory=ReversalConfig)
    coingecko: CoinGeckoConfig = field(default_factory=CoinGeckoConfig)


def _section(cls, raw: Dict[str, Any], name: str):
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"unknown keys in '{name}': {', '.join(unknown)}")
    return cls(**raw)


def _exchanges(raw: Optional[Dict[str, Any]]) -> Dict[str, ExchangeSource]:
    out = default_exchanges()
    for ex_id, overrides in (raw or {}).items():
        if ex_id not in out:
            raise ConfigError(f"unknown exchange id: {ex_id}")
        overrides = dict(overrides or {})
        overrides.pop("id", None)
        known = {f.name for f in fields(ExchangeSource)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigError(f"unknown keys in 'exchanges.{ex_id}': {', '.join(unknown)}")
        out[ex_id] = replace(out[ex_id], **overrides)
    return out


def validate_config(cfg: Config) -> None:
    errs = []
    if cfg.scanner.min_candles < 2:
        errs.append("scanner.min_candles must be >= 2")
    if cfg.scanner.symbol_timeout_s <= 0:
        errs.append("scanner.symbol_timeout_s must be > 0")
    if cfg.crossover.fast_period >= cfg.crossover.slow_period:
        errs.append("crossover.fast_period must be < slow_period")
    if cfg.advanced.fast_period >= cfg.advanced.slow_period:
        errs.append("advanced.fast_period must be < slow_period")
    if cfg.structure.fast_period >= cfg.structure.slow_period:
        errs.append("structure.fast_period must be < slow_period")
    for ex_id in list(cfg.crossover.exchanges) + list(cfg.reversal.exchanges):
        if ex_id not in cfg.exchanges:
            errs.append(f"unknown exchange id referenced: {ex_id}")
    for src in cfg.exchanges.values():
        if src.batch_size < 1:
            errs.append(f"exchanges.{src.id}.batch_size must be >= 1")
    if errs:
        raise ConfigError("Invalid config: " + "; ".join(errs))


def load_config(path: Optional[str] = None) -> Config:
    raw: Dict[str, Any] = {}
    if path:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    cfg = Config(
        app=_section(AppConfig, raw.get("app"), "app"),
        http=_section(HttpConfig, raw.get("http"), "http"),
        cache=_section(CacheConfig, raw.get("cache"), "cache"),
        scanner=_section(ScannerConfig, raw.get("scanner"), "scanner"),
        exchanges=_exchanges(raw.get("exchanges")),
        crossover=_section(CrossoverConfig, raw.get("crossover"), "crossover"),
        advanced=_section(AdvancedConfig, raw.get("advanced"), "advanced"),
        structure=_section(StructureConfig, raw.get("structure"), "structure"),
        reversal=_section(ReversalConfig, raw.get("reversal"), "reversal"),
        coingecko=_section(CoinGeckoConfig, raw.get("coingecko"), "coingecko"),
    )

    # env overrides (useful on servers)
    cfg.app.log_level = _env_override(cfg.app.log_level, "LOG_LEVEL")
    cfg.cache.dir = _env_override(cfg.cache.dir, "CACHE_DIR")
    cfg.http.timeout_s = _env_override(cfg.http.timeout_s, "HTTP_TIMEOUT_S")
    cfg.coingecko.api_key = _env_override(cfg.coingecko.api_key, "COINGECKO_API_KEY")
    if cfg.coingecko.api_key and os.getenv("COINGECKO_API_KEY"):
        cfg.coingecko.enabled = True

    validate_config(cfg)
    return cfg
