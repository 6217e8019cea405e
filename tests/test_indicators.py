import pytest

from crypto_signal_scanner.indicators import (
    atr_series,
    ema,
    ema_series,
    rsi,
    rsi_series,
    sma_series,
    stochastic,
    volatility,
)


def test_ema_insufficient_data_is_zero_or_empty():
    assert ema([1.0, 2.0], 3) == 0.0
    assert ema([], 5) == 0.0
    assert ema([1.0, 2.0, 3.0], 0) == 0.0
    assert ema_series([1.0, 2.0], 3) == []
    assert ema_series([], 1) == []


def test_ema_series_sma_seed_and_recurrence():
    out = ema_series([1.0, 2.0, 3.0, 4.0, 5.0], 3)
    assert out == [0.0, 0.0, 2.0, 3.0, 4.0]
    assert ema([1.0, 2.0, 3.0, 4.0, 5.0], 3) == 4.0


def test_ema_series_is_deterministic():
    prices = [100.0 + (i % 7) * 1.37 - (i % 3) * 0.91 for i in range(300)]
    a = ema_series(prices, 21)
    b = ema_series(list(prices), 21)
    assert a == b
    assert len(a) == len(prices)
    assert a[-1] == ema(prices, 21)


def test_sma_series_zero_padded():
    assert sma_series([1.0, 2.0, 3.0, 4.0], 2) == [0.0, 1.5, 2.5, 3.5]


def test_rsi_without_losses_is_100_and_short_input_is_zero():
    rising = [float(i) for i in range(1, 30)]
    assert rsi(rising, 14) == 100.0
    assert rsi([1.0, 2.0], 14) == 0.0
    series = rsi_series(rising, 14)
    assert series[:14] == [0.0] * 14
    assert series[14] == 100.0


def test_rsi_without_gains_is_zero():
    falling = [float(i) for i in range(40, 10, -1)]
    assert rsi(falling, 14) == pytest.approx(0.0)


def test_atr_constant_range():
    n = 30
    out = atr_series([11.0] * n, [9.0] * n, [10.0] * n, 14)
    assert out[:13] == [0.0] * 13
    assert out[13] == pytest.approx(2.0)
    assert out[-1] == pytest.approx(2.0)


def test_stochastic_flat_range_is_50():
    flat = [10.0] * 12
    k, d = stochastic(flat, flat, flat, 5, 3, 3)
    assert k[:6] == [0.0] * 6
    assert k[6] == pytest.approx(50.0)
    assert d[8] == pytest.approx(50.0)
    assert d[-1] == pytest.approx(50.0)


def test_stochastic_close_at_high_is_100():
    highs = [float(10 + i) for i in range(20)]
    lows = [h - 2.0 for h in highs]
    k, _ = stochastic(highs, lows, highs, 5, 3, 3)
    assert k[-1] == pytest.approx(100.0)


def test_volatility():
    assert volatility([100.0]) == 0.0
    assert volatility([100.0, 110.0, 121.0]) == pytest.approx(0.0, abs=1e-9)
    assert volatility([100.0, 110.0, 99.0]) > 5.0
