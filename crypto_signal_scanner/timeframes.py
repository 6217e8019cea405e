from __future__ import annotations

from typing import Dict, Optional, Tuple

VALID_TIMEFRAMES: Tuple[str, ...] = ("5m", "15m", "30m", "1h", "2h", "4h", "1d")

# Per-mode fallbacks for unrecognized input.
DEFAULT_TIMEFRAMES: Dict[str, str] = {
    "signals": "15m",
    "crossover": "1h",
    "structure": "1h",
    "short_reversal": "1d",
}

# Higher timeframe used for trend context. "1w" is internal only.
HTF_MAP: Dict[str, str] = {
    "5m": "30m",
    "15m": "1h",
    "30m": "2h",
    "1h": "4h",
    "2h": "1d",
    "4h": "1d",
    "1d": "1w",
}


def normalize_timeframe(tf: Optional[str], mode: str = "signals") -> str:
    tf = (tf or "").strip().lower()
    if tf in VALID_TIMEFRAMES:
        return tf
    return DEFAULT_TIMEFRAMES.get(mode, "1h")


def higher_timeframe(tf: str) -> str:
    return HTF_MAP.get(tf, "4h")


def tf_minutes(tf: str) -> int:
    tf = (tf or "").strip().lower()
    if tf.endswith("m"):
        return int(tf[:-1])
    if tf.endswith("h"):
        return int(tf[:-1]) * 60
    if tf.endswith("d"):
        return int(tf[:-1]) * 1440
    if tf.endswith("w"):
        return int(tf[:-1]) * 10080
    raise ValueError(f"Unsupported timeframe: {tf}")
