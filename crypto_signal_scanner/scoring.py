from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from .models import Direction

BASE_SCORE = 50

# (threshold, points) tiers; every tier the value clears is added.
GAP_TIERS: Sequence[Tuple[float, int]] = ((0.5, 3), (1.0, 3), (2.0, 4))
LIQUIDITY_TIERS: Sequence[Tuple[float, int]] = ((100_000_000, 3), (500_000_000, 3), (1_000_000_000, 4))
VOLATILITY_TIERS: Sequence[Tuple[float, int]] = ((5.0, -3), (10.0, -5), (15.0, -7))
FRESHNESS_POINTS: Sequence[int] = (30, 20, 10)


def clamp_score(score: float) -> int:
    return int(max(0, min(100, round(score))))


class ScoreCard:
    """Additive score with an ordered list of reason tags."""

    def __init__(self, base: float = BASE_SCORE) -> None:
        self.raw = float(base)
        self.reasons: List[str] = []

    def add(self, points: float, reason: Optional[str] = None) -> None:
        self.raw += points
        if reason and reason not in self.reasons:
            self.reasons.append(reason)

    def tag(self, reason: str) -> None:
        self.add(0, reason)

    @property
    def score(self) -> int:
        return clamp_score(self.raw)


def tiered(value: float, tiers: Sequence[Tuple[float, int]]) -> int:
    return sum(pts for threshold, pts in tiers if value > threshold)


def freshness_bonus(candles_ago: int, points: Sequence[int] = FRESHNESS_POINTS) -> int:
    if 0 <= candles_ago < len(points):
        return points[candles_ago]
    return 0


def gap_bonus(gap_pct: float) -> int:
    return tiered(gap_pct, GAP_TIERS)


def liquidity_bonus(quote_volume_24h: float) -> int:
    return tiered(quote_volume_24h, LIQUIDITY_TIERS)


def volatility_penalty(vol_pct: float) -> int:
    return tiered(vol_pct, VOLATILITY_TIERS)


def market_cap_bonus(rank: Optional[int]) -> int:
    if not rank or rank <= 0:
        return 0
    if rank <= 50:
        return 5
    if rank <= 100:
        return 3
    return 0


def trend_agreement(direction: Direction, change_24h: float) -> int:
    """+10 when the 24h move agrees with the signal, -10 on a >5% divergence."""
    if (direction is Direction.BUY and change_24h > 0) or (direction is Direction.SELL and change_24h < 0):
        return 10
    if (direction is Direction.BUY and change_24h < -5) or (direction is Direction.SELL and change_24h > 5):
        return -10
    return 0


def risk_reward(entry: float, stop: float, target: float) -> float:
    risk = abs(entry - stop)
    if risk == 0:
        return 0.0
    return abs(target - entry) / risk


def percentage_levels(direction: Direction, entry: float, stop_pct: float, target_pct: float) -> Tuple[float, float]:
    if direction is Direction.BUY:
        return entry * (1 - stop_pct / 100.0), entry * (1 + target_pct / 100.0)
    return entry * (1 + stop_pct / 100.0), entry * (1 - target_pct / 100.0)


def atr_levels(direction: Direction, anchor: float, atr: float, sl_mult: float, tp_mult: float) -> Tuple[float, float]:
    if direction is Direction.BUY:
        return anchor - atr * sl_mult, anchor + atr * tp_mult
    return anchor + atr * sl_mult, anchor - atr * tp_mult


def structural_levels(
    direction: Direction,
    entry: float,
    swing_price: Optional[float],
    atr: float,
    *,
    buffer_atr: float = 0.1,
    fallback_atr: float = 1.5,
    target_rr: float = 2.0,
) -> Tuple[float, float]:
    """Stop beyond the protecting swing (ATR fallback), target at target_rr x risk."""
    if direction is Direction.BUY:
        if swing_price is not None and swing_price < entry:
            stop = swing_price - atr * buffer_atr
        else:
            stop = entry - atr * fallback_atr
        return stop, entry + (entry - stop) * target_rr
    if swing_price is not None and swing_price > entry:
        stop = swing_price + atr * buffer_atr
    else:
        stop = entry + atr * fallback_atr
    return stop, entry - (stop - entry) * target_rr


def passes_gates(score: int, rr: float, min_score: int, min_rr: float) -> bool:
    if rr <= 0:
        return False
    return score >= min_score and rr >= min_rr
