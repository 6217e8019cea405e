import pytest

from crypto_signal_scanner.config import Config, ConfigError, load_config


def test_defaults_without_file():
    cfg = load_config(None)
    assert isinstance(cfg, Config)
    assert cfg.cache.universe_ttl_ms == 60_000
    assert cfg.scanner.min_candles == 100
    assert (cfg.crossover.fast_period, cfg.crossover.slow_period, cfg.crossover.lookback) == (7, 99, 3)
    assert (cfg.advanced.min_score, cfg.advanced.min_rr) == (60, 0.5)
    assert (cfg.structure.min_score, cfg.structure.min_rr) == (60, 1.0)
    assert cfg.exchanges["coinbase_intl"].batch_size == 5
    assert len(cfg.exchanges["coinbase"].products) == 10
    assert set(cfg.exchanges) == {"binance_futures", "binance_spot", "coinbase", "coinbase_intl", "bybit", "bitget"}


def test_yaml_overrides(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text(
        "app:\n"
        "  log_level: DEBUG\n"
        "scanner:\n"
        "  symbol_timeout_s: 5\n"
        "exchanges:\n"
        "  bybit:\n"
        "    universe_size: 25\n"
        "    enabled: false\n"
        "crossover:\n"
        "  lookback: 5\n",
        encoding="utf-8",
    )
    cfg = load_config(str(p))
    assert cfg.app.log_level == "DEBUG"
    assert cfg.scanner.symbol_timeout_s == 5
    assert cfg.exchanges["bybit"].universe_size == 25
    assert cfg.exchanges["bybit"].enabled is False
    assert cfg.exchanges["bybit"].base_url == "https://api.bybit.com"
    assert cfg.crossover.lookback == 5


def test_unknown_exchange_raises(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("exchanges:\n  kraken:\n    enabled: true\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(p))


def test_unknown_key_raises(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("cache:\n  ttl: 5\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(p))


def test_invalid_periods_raise(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text("crossover:\n  fast_period: 120\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(p))


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    monkeypatch.setenv("CACHE_DIR", str(tmp_path / "c"))
    monkeypatch.setenv("HTTP_TIMEOUT_S", "3.5")
    monkeypatch.setenv("COINGECKO_API_KEY", "secret")
    cfg = load_config(None)
    assert cfg.app.log_level == "WARNING"
    assert cfg.cache.dir == str(tmp_path / "c")
    assert cfg.http.timeout_s == 3.5
    assert cfg.coingecko.api_key == "secret"
    assert cfg.coingecko.enabled is True
