from __future__ import annotations

import math
from typing import List, Sequence, Tuple

# Guards the RSI ratio when the average loss underflows to zero.
_EPS = 1e-10


def ema(prices: Sequence[float], period: int) -> float:
    """Latest EMA value, SMA-seeded. 0.0 when there is not enough history."""
    if period <= 0 or len(prices) < period:
        return 0.0
    k = 2.0 / (period + 1.0)
    val = sum(prices[:period]) / float(period)
    for p in prices[period:]:
        val = p * k + val * (1.0 - k)
    return val


def ema_series(prices: Sequence[float], period: int) -> List[float]:
    """EMA at every index, front-padded with zeros for the first period-1 values."""
    if period <= 0 or len(prices) < period:
        return []
    k = 2.0 / (period + 1.0)
    out = [0.0] * len(prices)
    val = sum(prices[:period]) / float(period)
    out[period - 1] = val
    for i in range(period, len(prices)):
        val = prices[i] * k + val * (1.0 - k)
        out[i] = val
    return out


def sma_series(values: Sequence[float], period: int) -> List[float]:
    if period <= 0:
        return []
    out = [0.0] * len(values)
    window = 0.0
    for i, v in enumerate(values):
        window += v
        if i >= period:
            window -= values[i - period]
        if i >= period - 1:
            out[i] = window / float(period)
    return out


def _rsi_from_avgs(avg_gain: float, avg_loss: float) -> float:
    if avg_loss <= _EPS:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def rsi_series(closes: Sequence[float], period: int = 14) -> List[float]:
    """Wilder RSI. Index `period` holds the first value, earlier ones are 0."""
    out = [0.0] * len(closes)
    if period <= 0 or len(closes) < period + 1:
        return out

    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        ch = closes[i] - closes[i - 1]
        if ch >= 0:
            gains += ch
        else:
            losses -= ch
    avg_gain = gains / period
    avg_loss = losses / period
    out[period] = _rsi_from_avgs(avg_gain, avg_loss)

    for i in range(period + 1, len(closes)):
        ch = closes[i] - closes[i - 1]
        gain = ch if ch > 0 else 0.0
        loss = -ch if ch < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period
        out[i] = _rsi_from_avgs(avg_gain, avg_loss)
    return out


def rsi(closes: Sequence[float], period: int = 14) -> float:
    if period <= 0 or len(closes) < period + 1:
        return 0.0
    return rsi_series(closes, period)[-1]


def true_range(high: float, low: float, prev_close: float) -> float:
    return max(high - low, abs(high - prev_close), abs(low - prev_close))


def atr_series(highs: Sequence[float], lows: Sequence[float], closes: Sequence[float], period: int = 14) -> List[float]:
    n = min(len(highs), len(lows), len(closes))
    out = [0.0] * n
    if period <= 0 or n < period:
        return out

    trs = [highs[0] - lows[0]]
    for i in range(1, n):
        trs.append(true_range(highs[i], lows[i], closes[i - 1]))

    val = sum(trs[:period]) / float(period)
    out[period - 1] = val
    for i in range(period, n):
        # Wilder's RMA
        val = (val * (period - 1) + trs[i]) / period
        out[i] = val
    return out


def stochastic(
    highs: Sequence[float],
    lows: Sequence[float],
    closes: Sequence[float],
    k_period: int = 5,
    d_period: int = 3,
    slowing: int = 3,
) -> Tuple[List[float], List[float]]:
    """Slow stochastic (%K smoothed by `slowing`, %D = SMA of %K). Zero-padded."""
    n = min(len(highs), len(lows), len(closes))
    k_out = [0.0] * n
    d_out = [0.0] * n
    if k_period <= 0 or d_period <= 0 or slowing <= 0:
        return k_out, d_out

    raw_k = [0.0] * n
    for i in range(k_period - 1, n):
        hh = max(highs[i - k_period + 1:i + 1])
        ll = min(lows[i - k_period + 1:i + 1])
        rng = hh - ll
        raw_k[i] = 50.0 if rng == 0 else (closes[i] - ll) / rng * 100.0

    for i in range(k_period + slowing - 2, n):
        k_out[i] = sum(raw_k[i - slowing + 1:i + 1]) / slowing

    for i in range(k_period + slowing + d_period - 3, n):
        d_out[i] = sum(k_out[i - d_period + 1:i + 1]) / d_period

    return k_out, d_out


def volatility(prices: Sequence[float]) -> float:
    """Population std-dev of simple returns, in percent."""
    if len(prices) < 2:
        return 0.0
    rets = []
    for i in range(1, len(prices)):
        prev = prices[i - 1]
        if prev == 0:
            continue
        rets.append((prices[i] - prev) / prev)
    if not rets:
        return 0.0
    mean = sum(rets) / len(rets)
    var = sum((r - mean) ** 2 for r in rets) / len(rets)
    return math.sqrt(var) * 100.0

