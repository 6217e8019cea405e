from __future__ import annotations

from .models import Candle


def _wicks(c: Candle) -> tuple[float, float, float]:
    body = abs(c.close - c.open)
    upper = c.high - max(c.open, c.close)
    lower = min(c.open, c.close) - c.low
    return body, upper, lower


def is_bullish_engulfing(c: Candle, prev: Candle) -> bool:
    return c.close > c.open and prev.close < prev.open and c.close > prev.open and c.open < prev.close


def is_bearish_engulfing(c: Candle, prev: Candle) -> bool:
    return c.close < c.open and prev.close > prev.open and c.close < prev.open and c.open > prev.close


def is_bullish_pin_bar(c: Candle) -> bool:
    body, upper, lower = _wicks(c)
    return lower > body * 2 and upper < body


def is_bearish_pin_bar(c: Candle) -> bool:
    body, upper, lower = _wicks(c)
    return upper > body * 2 and lower < body


def bullish_pattern(c: Candle, prev: Candle) -> bool:
    return is_bullish_engulfing(c, prev) or is_bullish_pin_bar(c)


def bearish_pattern(c: Candle, prev: Candle) -> bool:
    return is_bearish_engulfing(c, prev) or is_bearish_pin_bar(c)
