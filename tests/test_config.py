import os

import pytest

from mtf_signal_engine.config import EngineConfig, FusionWeights, SetupWeights
from mtf_signal_engine.errors import ConfigurationError


def test_defaults():
    config = EngineConfig()
    assert config.TIMEFRAMES == ["1m", "5m", "15m", "1h", "4h", "1d"]
    assert config.SMA_PERIODS == [20, 50, 200]
    assert config.longest_sma == 200
    assert config.FUSION.BUY_THRESHOLD == 0.30
    assert config.SETUP.WIN_PROBABILITY_CAP == 0.85


@pytest.mark.parametrize("overrides", [
    {"CANDLE_POLICY": "lenient"},
    {"TIMEFRAMES": []},
    {"RSI_PERIOD": 0},
    {"EMA_FAST": 30},
    {"MACD_FAST": 26},
    {"RSI_OVERSOLD": 80.0},
    {"FETCH_MAX_RETRIES": -1},
    {"SMA_PERIODS": [20, 0]},
    {"SETUP": SetupWeights(WIN_PROBABILITY_CAP=0.9)},
    {"SETUP": SetupWeights(CONFLUENCE_CAP=0)},
])
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ConfigurationError):
        EngineConfig(**overrides)


def test_with_overrides_returns_a_validated_copy():
    base = EngineConfig()
    custom = base.with_overrides(RSI_PERIOD=21)
    assert custom.RSI_PERIOD == 21
    assert base.RSI_PERIOD == 14
    with pytest.raises(ConfigurationError):
        base.with_overrides(EMA_SLOW=5)


def test_to_dict_includes_nested_weights():
    data = EngineConfig().to_dict()
    assert data["RSI_PERIOD"] == 14
    assert data["FUSION"]["EMA_BULLISH"] == 0.20
    assert data["SETUP"]["ALIGNMENT"] == 30.0


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("MTF_TIMEFRAMES", "15m, 1h,1d")
    monkeypatch.setenv("MTF_RSI_PERIOD", "21")
    monkeypatch.setenv("MTF_SMA_PERIODS", "10,30")
    monkeypatch.setenv("MTF_ANALYSIS_TIMEOUT_SEC", "5")
    monkeypatch.setenv("MTF_FUSION_BUY_THRESHOLD", "0.25")
    monkeypatch.setenv("MTF_SETUP_MAX_RISK_FACTORS", "3")

    config = EngineConfig.from_env(str(tmp_path / "missing.env"))

    assert config.TIMEFRAMES == ["15m", "1h", "1d"]
    assert config.RSI_PERIOD == 21
    assert config.SMA_PERIODS == [10, 30]
    assert config.ANALYSIS_TIMEOUT_SEC == 5.0
    assert config.FUSION == FusionWeights(BUY_THRESHOLD=0.25)
    assert config.SETUP.MAX_RISK_FACTORS == 3


def test_from_env_file(monkeypatch, tmp_path):
    monkeypatch.delenv("MTF_CANDLE_LIMIT", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("MTF_CANDLE_LIMIT=120\n")

    try:
        config = EngineConfig.from_env(str(env_file))
    finally:
        os.environ.pop("MTF_CANDLE_LIMIT", None)
    assert config.CANDLE_LIMIT == 120


def test_from_env_rejects_bad_values(monkeypatch, tmp_path):
    monkeypatch.setenv("MTF_RSI_PERIOD", "fourteen")
    with pytest.raises(ConfigurationError):
        EngineConfig.from_env(str(tmp_path / "missing.env"))

    monkeypatch.setenv("MTF_RSI_PERIOD", "14")
    monkeypatch.setenv("MTF_EMA_FAST", "40")
    with pytest.raises(ConfigurationError):
        EngineConfig.from_env(str(tmp_path / "missing.env"))
