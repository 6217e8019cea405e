from __future__ import annotations

from typing import Optional, Sequence

from .models import CrossoverEvent, Direction


def detect_crossover(
    fast: Sequence[float],
    slow: Sequence[float],
    lookback: int,
    min_index: Optional[int] = None,
) -> Optional[CrossoverEvent]:
    """Most recent fast/slow cross within the last `lookback` candles.

    Scans backward from the newest index down to max(len - lookback - 1, min_index),
    so the freshest event wins. `min_index` is normally the slow period: earlier
    indices sit inside the warm-up region. Indices where either line is still zero
    are skipped, never reported as a cross.
    """
    n = min(len(fast), len(slow))
    if n < 2 or lookback < 0:
        return None

    floor = max(n - lookback - 1, 1 if min_index is None else max(1, min_index))
    for i in range(n - 1, floor - 1, -1):
        f_now, s_now = fast[i], slow[i]
        f_prev, s_prev = fast[i - 1], slow[i - 1]
        if not f_now or not s_now or not f_prev or not s_prev:
            continue

        if f_prev <= s_prev and f_now > s_now:
            kind = Direction.BUY
        elif f_prev >= s_prev and f_now < s_now:
            kind = Direction.SELL
        else:
            continue

        return CrossoverEvent(
            type=kind,
            index=i,
            candles_ago=(n - 1) - i,
            fast_at=f_now,
            slow_at=s_now,
            fast_prev=f_prev,
            slow_prev=s_prev,
        )
    return None


def crossover_gap_pct(fast_now: float, slow_now: float) -> float:
    if not slow_now:
        return 0.0
    return abs(fast_now - slow_now) / slow_now * 100.0
