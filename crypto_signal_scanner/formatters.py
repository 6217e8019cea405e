from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from .models import Signal, signals_to_json


def _fmt_ms(ts_ms: int, tz=timezone.utc) -> str:
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc).astimezone(tz)
    return dt.strftime("%Y-%m-%d %H:%M")


def _fmt_price(val: Optional[float]) -> str:
    if val is None:
        return "-"
    return f"{val:.6g}"


def _freshness(candles_ago: int) -> str:
    if candles_ago <= 0:
        return "NOW"
    return f"{candles_ago} ago"


def format_signal(signal: Signal) -> str:
    """Multi-line block for a single signal."""
    lines = [
        f"{signal.symbol} | {signal.exchange} | {signal.timeframe}",
        f"{signal.direction.value} {signal.status.value} | Score: {signal.score}/100 | {_freshness(signal.candles_ago)}",
        f"Time (UTC): {_fmt_ms(signal.timestamp)}",
        f"Entry: {_fmt_price(signal.entry_price)} | SL: {_fmt_price(signal.stop_loss)} | TP: {_fmt_price(signal.take_profit)} | RR: {signal.risk_reward_ratio:.2f}",
    ]
    if signal.reasons:
        lines.append("Reasons: " + ", ".join(signal.reasons))
    if signal.source_link:
        lines.append(signal.source_link)
    return "\n".join(lines)


_COLUMNS = ("#", "SYMBOL", "EXCHANGE", "SIDE", "SCORE", "ENTRY", "STOP", "TARGET", "RR", "AGE", "STATUS", "REASONS")


def format_signal_table(signals: Sequence[Signal], *, max_reasons: int = 3) -> str:
    """Fixed-width ranked table; an empty list renders a one-line notice."""
    if not signals:
        return "No signals."

    rows: List[List[str]] = []
    for i, s in enumerate(signals, 1):
        reasons = list(s.reasons[:max_reasons])
        if len(s.reasons) > max_reasons:
            reasons.append(f"+{len(s.reasons) - max_reasons}")
        rows.append([
            str(i),
            s.symbol,
            s.exchange,
            s.direction.value,
            str(s.score),
            _fmt_price(s.entry_price),
            _fmt_price(s.stop_loss),
            _fmt_price(s.take_profit),
            f"{s.risk_reward_ratio:.2f}",
            _freshness(s.candles_ago),
            s.status.value,
            ", ".join(reasons),
        ])

    widths = [len(h) for h in _COLUMNS]
    for r in rows:
        for j, cell in enumerate(r):
            widths[j] = max(widths[j], len(cell))

    def _line(cells: Sequence[str]) -> str:
        return "  ".join(cell.ljust(widths[j]) for j, cell in enumerate(cells)).rstrip()

    out = [_line(_COLUMNS), _line(["-" * w for w in widths])]
    out.extend(_line(r) for r in rows)
    return "\n".join(out)


def format_signals_json(signals: Sequence[Signal], *, include_extra: bool = True) -> str:
    payload = signals_to_json(list(signals))
    if not include_extra:
        for d in payload:
            d.pop("extra", None)
    return json.dumps(payload, indent=2, sort_keys=False)
