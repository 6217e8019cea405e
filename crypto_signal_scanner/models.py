from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Candle:
    time_ms: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    def is_valid(self) -> bool:
        vals = (self.open, self.high, self.low, self.close, self.volume)
        if not all(math.isfinite(v) for v in vals):
            return False
        if self.volume < 0 or self.low <= 0:
            return False
        return self.high >= max(self.open, self.close) >= min(self.open, self.close) >= self.low


@dataclass(frozen=True)
class MarketSymbol:
    symbol: str  # exchange-native id, e.g. BTCUSDT / BTC-USD / BTC-PERP
    base: str
    quote_volume_24h: float = 0.0
    price_change_pct_24h: float = 0.0
    last_price: float = 0.0


class Direction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class SignalStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"


class SetupState(str, Enum):
    CONFIRMED = "CONFIRMED"
    POTENTIAL = "POTENTIAL"


@dataclass(frozen=True)
class CrossoverEvent:
    type: Direction
    index: int
    candles_ago: int
    fast_at: float
    slow_at: float
    fast_prev: float
    slow_prev: float


@dataclass(frozen=True)
class SwingPoint:
    index: int
    price: float
    kind: str  # HIGH or LOW


@dataclass(frozen=True)
class FairValueGap:
    index: int
    kind: str  # BULL or BEAR
    top: float
    bottom: float


@dataclass(frozen=True)
class StructureBreak:
    direction: Direction
    index: int
    candles_ago: int
    level: float
    swing_index: int


@dataclass(frozen=True)
class ExhaustionCandle:
    index: int
    candles_ago: int
    sweep_level: float
    candle: Candle
    upper_wick_pct: float
    body_pct: float
    move_pct: float
    vol_avg: float
    vol_ratio: float
    setup: SetupState


# Keys the UI collaborator reads; everything else stays snake_case.
_CAMEL_KEYS = {
    "entry_price": "entryPrice",
    "stop_loss": "stopLoss",
    "take_profit": "takeProfit",
    "risk_reward_ratio": "riskRewardRatio",
    "source_link": "sourceLink",
    "candles_ago": "candlesAgo",
}


@dataclass(frozen=True)
class Signal:
    symbol: str
    exchange: str
    direction: Direction
    entry_price: float
    stop_loss: float
    take_profit: float
    risk_reward_ratio: float
    score: int
    reasons: Tuple[str, ...]
    timestamp: int
    status: SignalStatus
    source_link: str
    timeframe: str = ""
    candles_ago: int = 0
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def dedupe_key(self) -> Tuple[str, str]:
        return (self.symbol, self.direction.value)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            val = getattr(self, f.name)
            if isinstance(val, Enum):
                val = val.value
            elif isinstance(val, tuple):
                val = list(val)
            out[_CAMEL_KEYS.get(f.name, f.name)] = val
        return out

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Signal":
        reverse = {v: k for k, v in _CAMEL_KEYS.items()}
        kw = {reverse.get(k, k): v for k, v in raw.items()}
        kw["direction"] = Direction(kw["direction"])
        kw["status"] = SignalStatus(kw["status"])
        kw["reasons"] = tuple(kw.get("reasons") or ())
        kw["extra"] = dict(kw.get("extra") or {})
        return cls(**kw)


class SkipReason(str, Enum):
    NO_DATA = "NO_DATA"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    NO_SIGNAL = "NO_SIGNAL"
    FILTERED = "FILTERED"
    TIMEOUT = "TIMEOUT"
    ERROR = "ERROR"


@dataclass(frozen=True)
class SymbolResult:
    symbol: str
    signal: Optional[Signal] = None
    skip: Optional[SkipReason] = None
    detail: str = ""

    @classmethod
    def ok(cls, signal: Signal) -> "SymbolResult":
        return cls(symbol=signal.symbol, signal=signal)

    @classmethod
    def skipped(cls, symbol: str, reason: SkipReason, detail: str = "") -> "SymbolResult":
        return cls(symbol=symbol, skip=reason, detail=detail)


def signals_to_json(signals: List[Signal]) -> List[Dict[str, Any]]:
    return [s.to_dict() for s in signals]


def signals_from_json(raw: List[Dict[str, Any]]) -> List[Signal]:
    return [Signal.from_dict(r) for r in raw]
