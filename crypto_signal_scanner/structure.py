"""Market-structure primitives: swing points, fair-value gaps, break of structure.

Swing points use a symmetric window, so the newest `lookback` candles can never
be confirmed: a swing at index i only becomes visible once candle i + lookback
has closed. Callers that reason about "the most recent swing" must account for
that lag instead of shrinking the window near the right edge.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from .models import Candle, Direction, FairValueGap, StructureBreak, SwingPoint


def swing_highs(highs: Sequence[float], lookback: int = 5) -> List[SwingPoint]:
    out: List[SwingPoint] = []
    if lookback <= 0:
        return out
    for i in range(lookback, len(highs) - lookback):
        h = highs[i]
        if all(h > highs[i - j] and h > highs[i + j] for j in range(1, lookback + 1)):
            out.append(SwingPoint(index=i, price=h, kind="HIGH"))
    return out


def swing_lows(lows: Sequence[float], lookback: int = 5) -> List[SwingPoint]:
    out: List[SwingPoint] = []
    if lookback <= 0:
        return out
    for i in range(lookback, len(lows) - lookback):
        lo = lows[i]
        if all(lo < lows[i - j] and lo < lows[i + j] for j in range(1, lookback + 1)):
            out.append(SwingPoint(index=i, price=lo, kind="LOW"))
    return out


def swing_points(candles: Sequence[Candle], lookback: int = 5) -> List[SwingPoint]:
    highs = [c.high for c in candles]
    lows = [c.low for c in candles]
    pts = swing_highs(highs, lookback) + swing_lows(lows, lookback)
    return sorted(pts, key=lambda p: (p.index, p.kind))


def last_confirmed_before(swings: Sequence[SwingPoint], index: int, lookback: int) -> Optional[SwingPoint]:
    """Most recent swing whose confirming window closed before `index`."""
    best: Optional[SwingPoint] = None
    for s in swings:
        if s.index + lookback < index and (best is None or s.index > best.index):
            best = s
    return best


def fair_value_gaps(candles: Sequence[Candle]) -> List[FairValueGap]:
    out: List[FairValueGap] = []
    for i in range(2, len(candles)):
        left = candles[i - 2]
        cur = candles[i]
        if cur.low > left.high:
            out.append(FairValueGap(index=i - 1, kind="BULL", top=cur.low, bottom=left.high))
        elif cur.high < left.low:
            out.append(FairValueGap(index=i - 1, kind="BEAR", top=left.low, bottom=cur.high))
    return out


def open_fair_value_gaps(candles: Sequence[Candle], since: int = 0) -> List[FairValueGap]:
    """Gaps (middle candle index >= since) that no later candle has traded back through."""
    out: List[FairValueGap] = []
    for gap in fair_value_gaps(candles):
        if gap.index < since:
            continue
        later = candles[gap.index + 2:]
        if gap.kind == "BULL":
            filled = any(c.low <= gap.bottom for c in later)
        else:
            filled = any(c.high >= gap.top for c in later)
        if not filled:
            out.append(gap)
    return out


def detect_break_of_structure(
    candles: Sequence[Candle],
    *,
    swing_lookback: int = 5,
    lookback: int = 3,
    trend_ema: Optional[Sequence[float]] = None,
    volume_avg: Optional[Sequence[float]] = None,
    volume_mult: float = 1.5,
) -> Optional[StructureBreak]:
    """Most recent close through the last confirmed swing, inside `lookback` candles.

    Bull break: close[i] > swing high and close[i-1] <= swing high, with close above
    the trend EMA. Bear break mirrors on swing lows. When `volume_avg` is given the
    breaking candle must also carry volume > volume_mult x average.
    """
    n = len(candles)
    if n < 2 * swing_lookback + 2:
        return None

    highs = [c.high for c in candles]
    lows = [c.low for c in candles]
    sh = swing_highs(highs, swing_lookback)
    sl = swing_lows(lows, swing_lookback)

    floor = max(n - lookback - 1, 1)
    for i in range(n - 1, floor - 1, -1):
        c = candles[i]
        prev_close = candles[i - 1].close

        if volume_avg is not None:
            avg = volume_avg[i] if i < len(volume_avg) else 0.0
            if avg <= 0 or c.volume <= avg * volume_mult:
                continue

        trend = trend_ema[i] if trend_ema is not None and i < len(trend_ema) else None
        if trend_ema is not None and not trend:
            continue

        hi = last_confirmed_before(sh, i, swing_lookback)
        if hi is not None and c.close > hi.price >= prev_close:
            if trend is None or c.close > trend:
                return StructureBreak(Direction.BUY, i, (n - 1) - i, hi.price, hi.index)

        lo = last_confirmed_before(sl, i, swing_lookback)
        if lo is not None and c.close < lo.price <= prev_close:
            if trend is None or c.close < trend:
                return StructureBreak(Direction.SELL, i, (n - 1) - i, lo.price, lo.index)
    return None
