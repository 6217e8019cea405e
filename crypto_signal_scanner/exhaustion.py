from __future__ import annotations

from typing import Optional, Sequence

from .indicators import sma_series
from .models import Candle, ExhaustionCandle, SetupState
from .structure import swing_highs


def detect_exhaustion(
    candles: Sequence[Candle],
    *,
    swing_lookback: int = 10,
    sweep_lookback: int = 2,
    max_swing_age: int = 300,
    min_move_pct: float = 0.0,
    min_vol_ratio: float = 0.8,
    min_wick_pct: float = 30.0,
    vol_period: int = 20,
) -> Optional[ExhaustionCandle]:
    """Most recent liquidity sweep of a confirmed swing high (short-reversal setup).

    A sweep candle trades above a prior swing high and closes back below it. The
    swing must have been confirmed (its right-hand window closed) before the
    sweep candle. Only the newest `sweep_lookback` candles are considered.
    """
    n = len(candles)
    if n < 2 * swing_lookback + 2 or n < vol_period:
        return None

    highs = [c.high for c in candles]
    volumes = [c.volume for c in candles]
    swings = swing_highs(highs, swing_lookback)
    if not swings:
        return None
    vol_sma = sma_series(volumes, vol_period)

    for idx in range(n - 1, max(n - 1 - sweep_lookback, -1), -1):
        c = candles[idx]
        # newest swing first so the tightest swept level is reported
        level: Optional[float] = None
        for s in reversed(swings):
            if s.index + swing_lookback >= idx or s.index <= idx - max_swing_age:
                continue
            if c.high > s.price and c.close < s.price:
                level = s.price
                break
        if level is None:
            continue

        rng = c.high - c.low
        if rng <= 0:
            continue
        move_pct = rng / c.low * 100.0
        if move_pct < min_move_pct:
            continue

        vol_avg = vol_sma[idx]
        if vol_avg <= 0 or c.volume < vol_avg * min_vol_ratio:
            continue

        upper_wick = c.high - max(c.open, c.close)
        wick_pct = upper_wick / rng * 100.0
        if wick_pct < min_wick_pct:
            continue

        broke_low = any(later.close < c.low for later in candles[idx + 1:])
        setup = SetupState.CONFIRMED if (c.close < c.open or broke_low) else SetupState.POTENTIAL

        return ExhaustionCandle(
            index=idx,
            candles_ago=(n - 1) - idx,
            sweep_level=level,
            candle=c,
            upper_wick_pct=wick_pct,
            body_pct=abs(c.close - c.open) / rng * 100.0,
            move_pct=move_pct,
            vol_avg=vol_avg,
            vol_ratio=c.volume / vol_avg,
            setup=setup,
        )
    return None
