import json

from conftest import rising
from mtf_signal_engine import cli
from mtf_signal_engine.config import EngineConfig
from mtf_signal_engine.data import DataFrameProvider
from mtf_signal_engine.engine import TechnicalAnalysisEngine


def test_format_summary(wave_frame):
    analysis = TechnicalAnalysisEngine(config=EngineConfig()).analyze_frames(
        "WAVE", {"15m": wave_frame, "1h": wave_frame}
    )
    report = cli.format_summary(analysis)

    assert report.splitlines()[1].startswith("WAVE @ ")
    assert "Timeframe" in report
    assert "alignment" in report
    assert f"score {analysis.setup_quality.score:.1f}" in report


def test_main_prints_json(monkeypatch, capsys):
    monkeypatch.setattr(cli, "YahooFinanceProvider", lambda: DataFrameProvider({None: rising()}))

    code = cli.main(["TEST", "--timeframes", "15m", "1h", "--depth", "basic", "--json", "--log-level", "ERROR"])

    assert code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["symbol"] == "TEST"
    assert payload["depth"] == "basic"
    assert list(payload["timeframes"]) == ["15m", "1h"]


def test_main_rejects_unknown_timeframe(capsys):
    assert cli.main(["TEST", "--timeframes", "7m"]) == 2
    assert "7m" in capsys.readouterr().err


def test_main_reports_failed_analysis(monkeypatch):
    monkeypatch.setattr(cli, "YahooFinanceProvider", lambda: DataFrameProvider({}))
    monkeypatch.setenv("MTF_FETCH_BACKOFF_SEC", "0")
    assert cli.main(["TEST", "--timeframes", "1h", "--log-level", "ERROR"]) == 1
