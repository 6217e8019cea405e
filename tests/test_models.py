import json

from crypto_signal_scanner.formatters import format_signal, format_signal_table, format_signals_json
from crypto_signal_scanner.models import Candle, Direction, Signal, SignalStatus, signals_from_json, signals_to_json
from crypto_signal_scanner.timeframes import higher_timeframe, normalize_timeframe, tf_minutes


def _signal(**kw) -> Signal:
    base = dict(
        symbol="ETH",
        exchange="bybit",
        direction=Direction.SELL,
        entry_price=3000.0,
        stop_loss=3090.0,
        take_profit=2820.0,
        risk_reward_ratio=2.0,
        score=72,
        reasons=("Liquidity Sweep", "Confirmed", "Volume Spike", "Long Upper Wick"),
        timestamp=1_704_067_200_000,
        status=SignalStatus.ACTIVE,
        source_link="https://www.bybit.com/trade/usdt/ETHUSDT",
        timeframe="1d",
        candles_ago=1,
        extra={"vol_ratio": 1.8},
    )
    base.update(kw)
    return Signal(**base)


def test_candle_validity():
    assert Candle(0, 10, 11, 9, 10.5, 1).is_valid()
    assert not Candle(0, 10, 10.2, 9, 10.5, 1).is_valid()
    assert not Candle(0, 10, 11, 0, 10.5, 1).is_valid()
    assert not Candle(0, 10, 11, 9, 10.5, float("inf")).is_valid()


def test_signal_to_dict_uses_camel_case():
    d = _signal().to_dict()
    for key in ("entryPrice", "stopLoss", "takeProfit", "riskRewardRatio", "sourceLink", "candlesAgo"):
        assert key in d
    assert d["direction"] == "SELL" and d["status"] == "ACTIVE"
    assert isinstance(d["reasons"], list)
    json.dumps(d)


def test_signal_json_round_trip_preserves_equality():
    sigs = [_signal(), _signal(symbol="SOL", direction=Direction.BUY, status=SignalStatus.PENDING)]
    assert signals_from_json(json.loads(json.dumps(signals_to_json(sigs)))) == sigs


def test_dedupe_key():
    assert _signal().dedupe_key == ("ETH", "SELL")


def test_timeframes():
    assert normalize_timeframe("4H", "signals") == "4h"
    assert normalize_timeframe("7m", "signals") == "15m"
    assert normalize_timeframe(None, "short_reversal") == "1d"
    assert normalize_timeframe("", "crossover") == "1h"
    assert normalize_timeframe("3d", "structure") == "1h"
    assert higher_timeframe("15m") == "1h"
    assert higher_timeframe("1d") == "1w"
    assert tf_minutes("1w") == 10080


def test_table_and_block_formatting():
    assert format_signal_table([]) == "No signals."
    table = format_signal_table([_signal(), _signal(symbol="SOL", score=65, candles_ago=0)])
    lines = table.splitlines()
    assert lines[0].startswith("#")
    assert "ETH" in lines[2] and "SOL" in lines[3]
    assert "+1" in lines[2]
    assert "NOW" in lines[3]

    block = format_signal(_signal())
    assert "ETH | bybit | 1d" in block
    assert "Score: 72/100" in block
    assert "Time (UTC): 2024-01-01 00:00" in block


def test_json_output():
    payload = json.loads(format_signals_json([_signal()], include_extra=False))
    assert payload[0]["symbol"] == "ETH"
    assert "extra" not in payload[0]
