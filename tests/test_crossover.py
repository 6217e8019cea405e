from crypto_signal_scanner.crossover import crossover_gap_pct, detect_crossover
from crypto_signal_scanner.indicators import ema_series
from crypto_signal_scanner.models import Direction


def test_single_upward_cross_reports_candles_ago():
    fast = [1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 3.0, 3.0, 3.0]
    slow = [2.0] * 10
    ev = detect_crossover(fast, slow, lookback=3, min_index=1)
    assert ev is not None
    assert ev.type is Direction.BUY
    assert ev.index == 7
    assert ev.candles_ago == 2
    assert (ev.fast_prev, ev.slow_prev, ev.fast_at, ev.slow_at) == (1.0, 2.0, 3.0, 2.0)


def test_downward_cross():
    fast = [3.0, 3.0, 3.0, 1.0]
    slow = [2.0, 2.0, 2.0, 2.0]
    ev = detect_crossover(fast, slow, lookback=3, min_index=1)
    assert ev is not None and ev.type is Direction.SELL and ev.candles_ago == 0


def test_no_cross_returns_none():
    assert detect_crossover([1.0] * 10, [2.0] * 10, lookback=5) is None
    assert detect_crossover([], [], lookback=3) is None


def test_most_recent_cross_wins():
    fast = [1.0, 3.0, 3.0, 1.0, 1.0]
    slow = [2.0] * 5
    ev = detect_crossover(fast, slow, lookback=4, min_index=1)
    assert ev.type is Direction.SELL and ev.index == 3


def test_zero_values_are_skipped():
    assert detect_crossover([0.0, 0.0, 3.0], [0.0, 2.0, 2.0], lookback=3) is None


def test_cross_outside_lookback_is_ignored():
    fast = [1.0, 3.0, 3.0, 3.0, 3.0, 3.0]
    slow = [2.0] * 6
    assert detect_crossover(fast, slow, lookback=3, min_index=1) is None
    assert detect_crossover(fast, slow, lookback=5, min_index=1).index == 1


def test_old_cross_in_long_series_gives_no_signal():
    # falls for 200 candles, then jumps and holds: EMA7 crosses EMA99 at candle 200 exactly
    closes = [300.0 - i for i in range(200)] + [1000.0] * 50
    fast = ema_series(closes, 7)
    slow = ema_series(closes, 99)

    assert fast[199] < slow[199]
    assert fast[200] > slow[200]
    assert detect_crossover(fast, slow, lookback=3, min_index=99) is None

    ev = detect_crossover(fast, slow, lookback=249, min_index=99)
    assert ev is not None
    assert ev.type is Direction.BUY
    assert ev.index == 200
    assert ev.candles_ago == 49


def test_gap_pct():
    assert crossover_gap_pct(102.0, 100.0) == 2.0
    assert crossover_gap_pct(1.0, 0.0) == 0.0
