from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .config import AdvancedConfig, CrossoverConfig, ReversalConfig, StructureConfig
from .crossover import crossover_gap_pct, detect_crossover
from .exhaustion import detect_exhaustion
from .indicators import atr_series, ema, ema_series, rsi_series, sma_series, stochastic, volatility
from .models import (
    Candle,
    Direction,
    MarketSymbol,
    SetupState,
    Signal,
    SignalStatus,
    SkipReason,
    SymbolResult,
)
from .patterns import bearish_pattern, bullish_pattern
from .providers.base import ExchangeAdapter
from .scoring import (
    ScoreCard,
    atr_levels,
    freshness_bonus,
    gap_bonus,
    liquidity_bonus,
    market_cap_bonus,
    passes_gates,
    percentage_levels,
    risk_reward,
    structural_levels,
    trend_agreement,
    volatility_penalty,
)
from .structure import detect_break_of_structure, last_confirmed_before, open_fair_value_gaps, swing_highs, swing_lows
from .timeframes import higher_timeframe


@dataclass(frozen=True)
class SymbolContext:
    """Everything a detector needs to know about the symbol besides its candles."""

    exchange: str
    timeframe: str
    market: MarketSymbol
    display: str
    link: str
    market_cap_rank: Optional[int] = None


def _closes(candles: Sequence[Candle]) -> List[float]:
    return [c.close for c in candles]


def _skip(ctx: SymbolContext, reason: SkipReason, detail: str = "") -> SymbolResult:
    return SymbolResult.skipped(ctx.market.symbol, reason, detail)


def _live_price(ctx: SymbolContext, candles: Sequence[Candle]) -> float:
    return candles[-1].close if candles else ctx.market.last_price


# ---------------------------------------------------------------------------
# crossover mode
# ---------------------------------------------------------------------------


def evaluate_crossover(ctx: SymbolContext, candles: Sequence[Candle], cfg: CrossoverConfig) -> SymbolResult:
    closes = _closes(candles)
    if len(closes) <= cfg.slow_period:
        return _skip(ctx, SkipReason.INSUFFICIENT_DATA, f"candles={len(closes)}")

    fast = ema_series(closes, cfg.fast_period)
    slow = ema_series(closes, cfg.slow_period)
    if len(fast) != len(closes) or len(slow) != len(closes):
        return _skip(ctx, SkipReason.INSUFFICIENT_DATA, "ema")

    ev = detect_crossover(fast, slow, cfg.lookback, min_index=cfg.slow_period)
    if ev is None:
        return _skip(ctx, SkipReason.NO_SIGNAL)

    direction = ev.type
    price = _live_price(ctx, candles)
    change = ctx.market.price_change_pct_24h
    gap = crossover_gap_pct(fast[-1], slow[-1])
    vol = volatility(closes[-cfg.volatility_window:])

    card = ScoreCard()
    card.tag(f"EMA {cfg.fast_period}/{cfg.slow_period} {'Bullish' if direction is Direction.BUY else 'Bearish'} Cross")
    card.add(freshness_bonus(ev.candles_ago), "Fresh Cross" if ev.candles_ago == 0 else None)
    agree = trend_agreement(direction, change)
    card.add(agree, "24h Trend Aligned" if agree > 0 else ("24h Divergence" if agree < 0 else None))
    gb = gap_bonus(gap)
    card.add(gb, "Strong Separation" if gb else None)
    lb = liquidity_bonus(ctx.market.quote_volume_24h)
    card.add(lb, "High Liquidity" if lb else None)
    mb = market_cap_bonus(ctx.market_cap_rank)
    card.add(mb, f"Top {50 if mb == 5 else 100} Market Cap" if mb else None)
    vp = volatility_penalty(vol)
    card.add(vp, "High Volatility" if vp else None)

    stop, target = percentage_levels(direction, price, cfg.stop_pct, cfg.target_pct)
    rr = risk_reward(price, stop, target)
    if card.score < cfg.min_score or rr <= 0:
        return _skip(ctx, SkipReason.FILTERED, f"score={card.score}")

    return SymbolResult.ok(Signal(
        symbol=ctx.display,
        exchange=ctx.exchange,
        direction=direction,
        entry_price=price,
        stop_loss=stop,
        take_profit=target,
        risk_reward_ratio=round(rr, 2),
        score=card.score,
        reasons=tuple(card.reasons),
        timestamp=candles[ev.index].time_ms,
        status=SignalStatus.ACTIVE,
        source_link=ctx.link,
        timeframe=ctx.timeframe,
        candles_ago=ev.candles_ago,
        extra={
            "ema_fast": fast[-1],
            "ema_slow": slow[-1],
            "gap_pct": round(gap, 4),
            "volatility": round(vol, 4),
            "change_24h": change,
            "volume_24h": ctx.market.quote_volume_24h,
        },
    ))


# ---------------------------------------------------------------------------
# advanced mode
# ---------------------------------------------------------------------------


def _htf_bias(htf_candles: Sequence[Candle], fast_period: int, slow_period: int) -> Optional[Direction]:
    """Trend of the higher timeframe from its last closed candle, None when unknown."""
    closes = _closes(htf_candles)[:-1]
    if len(closes) < slow_period:
        return None
    f = ema(closes, fast_period)
    s = ema(closes, slow_period)
    if f > s:
        return Direction.BUY
    if f < s:
        return Direction.SELL
    return None


def evaluate_advanced(
    ctx: SymbolContext,
    candles: Sequence[Candle],
    htf_candles: Sequence[Candle],
    cfg: AdvancedConfig,
) -> SymbolResult:
    n = len(candles)
    if n < max(cfg.min_candles, cfg.trend_period + 2):
        return _skip(ctx, SkipReason.INSUFFICIENT_DATA, f"candles={n}")

    closes = _closes(candles)
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]
    volumes = [c.volume for c in candles]

    fast = ema_series(closes, cfg.fast_period)
    slow = ema_series(closes, cfg.slow_period)
    trend = ema_series(closes, cfg.trend_period)
    if len(fast) != n or len(slow) != n or len(trend) != n:
        return _skip(ctx, SkipReason.INSUFFICIENT_DATA, "ema")

    # closed candles only: the newest one is still forming
    ev = detect_crossover(fast[:-1], slow[:-1], cfg.lookback, min_index=cfg.slow_period)
    if ev is None:
        return _skip(ctx, SkipReason.NO_SIGNAL)

    i = ev.index
    direction = ev.type
    bull = direction is Direction.BUY
    c = candles[i]

    rsi_vals = rsi_series(closes, cfg.rsi_period)
    k_vals, _ = stochastic(highs, lows, closes, cfg.stoch_k, cfg.stoch_d, cfg.stoch_slowing)
    if bull and rsi_vals[i] > cfg.rsi_overbought:
        return _skip(ctx, SkipReason.FILTERED, "rsi overbought")
    if not bull and rsi_vals[i] < cfg.rsi_oversold:
        return _skip(ctx, SkipReason.FILTERED, "rsi oversold")
    if bull and k_vals[i] > cfg.stoch_overbought:
        return _skip(ctx, SkipReason.FILTERED, "stochastic overbought")
    if not bull and k_vals[i] < cfg.stoch_oversold:
        return _skip(ctx, SkipReason.FILTERED, "stochastic oversold")

    card = ScoreCard()
    card.tag(f"EMA {cfg.fast_period}/{cfg.slow_period} {'Bullish' if bull else 'Bearish'} Cross")
    aligned = c.close > trend[i] if bull else c.close < trend[i]
    if aligned:
        card.tag(f"Above EMA{cfg.trend_period}" if bull else f"Below EMA{cfg.trend_period}")
    else:
        card.add(-20, "Counter Trend")

    if _htf_bias(htf_candles, cfg.fast_period, cfg.slow_period) is direction:
        card.add(20, "HTF Bullish" if bull else "HTF Bearish")

    vol_avg = sma_series(volumes, cfg.volume_period)
    if vol_avg[i] > 0 and c.volume > vol_avg[i] * cfg.volume_multiplier:
        card.add(10, "High Volume")

    card.add(5, "RSI Neutral")

    prev = candles[i - 1]
    if (bull and bullish_pattern(c, prev)) or (not bull and bearish_pattern(c, prev)):
        card.add(15, "Bullish Pattern" if bull else "Bearish Pattern")

    atr = atr_series(highs, lows, closes, cfg.atr_period)[i]
    if atr <= 0:
        return _skip(ctx, SkipReason.INSUFFICIENT_DATA, "atr")
    stop, target = atr_levels(direction, c.close, atr, cfg.atr_sl_mult, cfg.atr_tp_mult)

    live = _live_price(ctx, candles)
    if bull and (live <= stop or live >= target):
        return _skip(ctx, SkipReason.FILTERED, "price outside levels")
    if not bull and (live >= stop or live <= target):
        return _skip(ctx, SkipReason.FILTERED, "price outside levels")

    rr = risk_reward(live, stop, target)
    if not passes_gates(card.score, rr, cfg.min_score, cfg.min_rr):
        return _skip(ctx, SkipReason.FILTERED, f"score={card.score} rr={rr:.2f}")

    return SymbolResult.ok(Signal(
        symbol=ctx.display,
        exchange=ctx.exchange,
        direction=direction,
        entry_price=live,
        stop_loss=stop,
        take_profit=target,
        risk_reward_ratio=round(rr, 2),
        score=card.score,
        reasons=tuple(card.reasons),
        timestamp=c.time_ms,
        status=SignalStatus.ACTIVE,
        source_link=ctx.link,
        timeframe=ctx.timeframe,
        candles_ago=(n - 1) - i,
        extra={
            "rsi": round(rsi_vals[i], 2),
            "stoch_k": round(k_vals[i], 2),
            "atr": atr,
            "signal_close": c.close,
        },
    ))


# ---------------------------------------------------------------------------
# structure mode
# ---------------------------------------------------------------------------


def evaluate_structure(
    ctx: SymbolContext,
    candles: Sequence[Candle],
    htf_candles: Sequence[Candle],
    cfg: StructureConfig,
) -> SymbolResult:
    n = len(candles)
    if n < cfg.trend_period + 2:
        return _skip(ctx, SkipReason.INSUFFICIENT_DATA, f"candles={n}")

    closes = _closes(candles)
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]
    volumes = [c.volume for c in candles]

    fast = ema_series(closes, cfg.fast_period)
    slow = ema_series(closes, cfg.slow_period)
    trend = ema_series(closes, cfg.trend_period)
    if len(trend) != n:
        return _skip(ctx, SkipReason.INSUFFICIENT_DATA, "ema")
    vol_avg = sma_series(volumes, cfg.volume_period)

    brk = detect_break_of_structure(
        candles,
        swing_lookback=cfg.swing_lookback,
        lookback=cfg.lookback,
        trend_ema=trend,
        volume_avg=vol_avg,
        volume_mult=cfg.volume_multiplier,
    )
    if brk is None:
        return _skip(ctx, SkipReason.NO_SIGNAL)

    direction = brk.direction
    bull = direction is Direction.BUY
    i = brk.index

    card = ScoreCard()
    card.add(5, "BOS")
    card.add(5, f"Trend EMA{cfg.trend_period}")
    card.add(5, "High Volume")

    if (bull and fast[i] > slow[i]) or (not bull and fast[i] < slow[i]):
        card.add(10, f"EMA {cfg.fast_period}/{cfg.slow_period} Aligned")
    else:
        card.add(-10)

    want = "BULL" if bull else "BEAR"
    gaps = open_fair_value_gaps(candles, since=max(0, n - cfg.fvg_window))
    if any(g.kind == want for g in gaps):
        card.add(10, "FVG")

    bias = _htf_bias(htf_candles, cfg.fast_period, cfg.slow_period)
    if bias is direction:
        card.add(10, "HTF Aligned")
    elif bias is not None:
        card.add(-10)

    atr = atr_series(highs, lows, closes, cfg.atr_period)[-1]
    if atr <= 0:
        return _skip(ctx, SkipReason.INSUFFICIENT_DATA, "atr")

    entry = _live_price(ctx, candles)
    if bull:
        swing = last_confirmed_before(swing_lows(lows, cfg.swing_lookback), n, cfg.swing_lookback)
    else:
        swing = last_confirmed_before(swing_highs(highs, cfg.swing_lookback), n, cfg.swing_lookback)
    stop, target = structural_levels(
        direction,
        entry,
        swing.price if swing else None,
        atr,
        buffer_atr=cfg.stop_buffer_atr,
        fallback_atr=cfg.fallback_stop_atr,
        target_rr=cfg.target_rr,
    )
    if abs(entry - stop) / entry * 100.0 > cfg.max_stop_pct:
        return _skip(ctx, SkipReason.FILTERED, "stop too wide")

    rr = risk_reward(entry, stop, target)
    if not passes_gates(card.score, rr, cfg.min_score, cfg.min_rr):
        return _skip(ctx, SkipReason.FILTERED, f"score={card.score} rr={rr:.2f}")

    return SymbolResult.ok(Signal(
        symbol=ctx.display,
        exchange=ctx.exchange,
        direction=direction,
        entry_price=entry,
        stop_loss=stop,
        take_profit=target,
        risk_reward_ratio=round(rr, 2),
        score=card.score,
        reasons=tuple(card.reasons),
        timestamp=candles[i].time_ms,
        status=SignalStatus.ACTIVE,
        source_link=ctx.link,
        timeframe=ctx.timeframe,
        candles_ago=brk.candles_ago,
        extra={
            "bos_level": brk.level,
            "swing_stop": swing.price if swing else None,
            "atr": atr,
            "open_fvgs": len(gaps),
        },
    ))


# ---------------------------------------------------------------------------
# short-reversal mode
# ---------------------------------------------------------------------------


def _chart(candles: Sequence[Candle]) -> List[Dict[str, Any]]:
    return [
        {"time": c.time_ms, "open": c.open, "high": c.high, "low": c.low, "close": c.close, "volume": c.volume}
        for c in candles
    ]


def evaluate_reversal(ctx: SymbolContext, candles: Sequence[Candle], cfg: ReversalConfig) -> SymbolResult:
    n = len(candles)
    if n < cfg.min_candles:
        return _skip(ctx, SkipReason.INSUFFICIENT_DATA, f"candles={n}")

    ex = detect_exhaustion(
        candles,
        swing_lookback=cfg.swing_lookback,
        sweep_lookback=cfg.sweep_lookback,
        max_swing_age=cfg.max_swing_age,
        min_move_pct=cfg.min_move_pct,
        min_vol_ratio=cfg.min_vol_ratio,
        min_wick_pct=cfg.min_wick_pct,
        vol_period=cfg.volume_period,
    )
    if ex is None:
        return _skip(ctx, SkipReason.NO_SIGNAL)

    closes = _closes(candles)
    ema_fast = ema(closes, cfg.ema_fast)
    ema_slow = ema(closes, cfg.ema_slow)
    c = ex.candle
    confirmed = ex.setup is SetupState.CONFIRMED

    card = ScoreCard()
    card.tag("Liquidity Sweep")
    if confirmed:
        card.add(15, "Confirmed")
    if ex.vol_ratio >= 1.5:
        card.add(10, "Volume Spike")
    if ex.vol_ratio >= 2.5:
        card.add(5, "Volume Climax")
    if ex.upper_wick_pct >= 50.0:
        card.add(10, "Long Upper Wick")
    if ema_fast and c.close < ema_fast:
        card.add(10, f"Below EMA{cfg.ema_fast}")
    if ema_fast and ema_slow and ema_fast < ema_slow:
        card.add(5, f"EMA{cfg.ema_fast} < EMA{cfg.ema_slow}")
    card.add(freshness_bonus(ex.candles_ago, (10, 5)))

    rng = c.high - c.low
    entry = c.low
    stop = c.high
    target = c.low - rng * cfg.target_range_mult
    rr = risk_reward(entry, stop, target)
    if rr <= 0:
        return _skip(ctx, SkipReason.FILTERED, "zero risk")

    return SymbolResult.ok(Signal(
        symbol=ctx.display,
        exchange=ctx.exchange,
        direction=Direction.SELL,
        entry_price=entry,
        stop_loss=stop,
        take_profit=target,
        risk_reward_ratio=round(rr, 2),
        score=card.score,
        reasons=tuple(card.reasons),
        timestamp=c.time_ms,
        status=SignalStatus.ACTIVE if confirmed else SignalStatus.PENDING,
        source_link=ctx.link,
        timeframe=ctx.timeframe,
        candles_ago=ex.candles_ago,
        extra={
            "setup": ex.setup.value,
            "sweep_level": ex.sweep_level,
            "upper_wick_pct": round(ex.upper_wick_pct, 2),
            "body_pct": round(ex.body_pct, 2),
            "move_pct": round(ex.move_pct, 2),
            "vol_ratio": round(ex.vol_ratio, 2),
            "vol_avg": ex.vol_avg,
            "ema_fast": ema_fast,
            "ema_slow": ema_slow,
            "chart": _chart(candles[-cfg.chart_candles:]),
        },
    ))


# ---------------------------------------------------------------------------
# fetch + evaluate per mode
# ---------------------------------------------------------------------------


class Strategy:
    """One product mode: which candles to fetch and which detector to run."""

    mode = ""

    async def evaluate(self, adapter: ExchangeAdapter, ctx: SymbolContext) -> SymbolResult:
        raise NotImplementedError


class CrossoverStrategy(Strategy):
    mode = "crossover"

    def __init__(self, cfg: CrossoverConfig, kline_limit: int = 500):
        self.cfg = cfg
        self.kline_limit = kline_limit

    async def evaluate(self, adapter: ExchangeAdapter, ctx: SymbolContext) -> SymbolResult:
        candles = await adapter.fetch_klines(ctx.market.symbol, ctx.timeframe, self.kline_limit)
        if not candles:
            return _skip(ctx, SkipReason.NO_DATA)
        return evaluate_crossover(ctx, candles, self.cfg)


class AdvancedStrategy(Strategy):
    mode = "signals"

    def __init__(self, cfg: AdvancedConfig):
        self.cfg = cfg

    async def evaluate(self, adapter: ExchangeAdapter, ctx: SymbolContext) -> SymbolResult:
        candles = await adapter.fetch_klines(
            ctx.market.symbol, ctx.timeframe, self.cfg.main_limit, min_candles=self.cfg.min_candles
        )
        if not candles:
            return _skip(ctx, SkipReason.NO_DATA)
        htf = await adapter.fetch_klines(
            ctx.market.symbol, higher_timeframe(ctx.timeframe), self.cfg.htf_limit, min_candles=self.cfg.slow_period + 1
        )
        return evaluate_advanced(ctx, candles, htf, self.cfg)


class StructureStrategy(Strategy):
    mode = "structure"

    def __init__(self, cfg: StructureConfig, kline_limit: int = 500):
        self.cfg = cfg
        self.kline_limit = kline_limit

    async def evaluate(self, adapter: ExchangeAdapter, ctx: SymbolContext) -> SymbolResult:
        candles = await adapter.fetch_klines(
            ctx.market.symbol, ctx.timeframe, self.kline_limit, min_candles=self.cfg.trend_period + 2
        )
        if not candles:
            return _skip(ctx, SkipReason.NO_DATA)
        htf = await adapter.fetch_klines(
            ctx.market.symbol, higher_timeframe(ctx.timeframe), self.cfg.htf_limit, min_candles=self.cfg.slow_period + 1
        )
        return evaluate_structure(ctx, candles, htf, self.cfg)


class ReversalStrategy(Strategy):
    mode = "short_reversal"

    def __init__(self, cfg: ReversalConfig):
        self.cfg = cfg

    async def evaluate(self, adapter: ExchangeAdapter, ctx: SymbolContext) -> SymbolResult:
        candles = await adapter.fetch_klines(
            ctx.market.symbol, ctx.timeframe, self.cfg.kline_limit, min_candles=self.cfg.min_candles
        )
        if not candles:
            return _skip(ctx, SkipReason.NO_DATA)
        return evaluate_reversal(ctx, candles, self.cfg)
