"""
HTTP 路由测试（TestClient，假数据源，不访问外部网络）

覆盖范围：
  - 健康检查 / 根路由
  - 分析接口（缓存标记、错误类型到状态码的映射）
  - 缓存管理、交易参数、信号、行情快照
"""

import json
import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from conftest import (
    FakeClock,
    FakeDecisionService,
    FakeFundamentalsFetcher,
    FakeSeriesFetcher,
    closes_wave,
    make_candles,
)
from trading_analyzer import cli
from trading_analyzer.config import AnalyzerSettings, configure_logging, settings
from trading_analyzer.exceptions import DataUnavailableError, MalformedDataError
from trading_analyzer.layers.cache import AnalysisCache
from trading_analyzer.models.response import ApiResponse
from trading_analyzer.services.analyzer_service import AnalyzerService
from trading_analyzer.symbols import SymbolTranslator


@pytest.fixture
def fetcher():
    return FakeSeriesFetcher()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(fetcher, clock):
    """注入假数据源并关闭定时任务的 TestClient"""
    translator = SymbolTranslator()
    service = AnalyzerService(
        cache=AnalysisCache(ttl=300, clock=clock, translator=translator),
        series_fetcher=fetcher,
        fundamentals_fetcher=FakeFundamentalsFetcher(),
        decision_service=FakeDecisionService(),
        translator=translator,
    )
    from trading_analyzer.main import app
    with patch("trading_analyzer.main.build_analyzer_service", return_value=service), \
         patch.object(settings, "SCHEDULER_ENABLED", False):
        with TestClient(app) as c:
            yield c


class TestHealthRoutes:
    def test_health_endpoint(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["status"] == "ok"
        assert body["data"]["cache"]["size"] == 0
        assert body["data"]["scheduler"]["running"] is False

    def test_healthz_endpoint(self, client):
        resp = client.get("/healthz")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_readyz_endpoint(self, client):
        resp = client.get("/readyz")
        assert resp.status_code == 200
        assert resp.json()["ready"] is True

    def test_root_endpoint(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        body = resp.json()
        assert "version" in body
        assert "docs" in body

    def test_status_endpoint(self, client):
        client.get("/api/analysis/BTCUSDT")
        body = client.get("/api/status").json()
        assert body["status"] == "running"
        assert body["cache_size"] == 1
        assert "version" in body

    def test_process_time_header(self, client):
        assert client.get("/healthz").headers["X-Process-Time"].endswith("ms")


class TestAnalysisRoutes:
    def test_cached_flag(self, client, fetcher, clock):
        first = client.get("/api/analysis/BTCUSDT").json()
        assert first["success"] is True
        assert first["data"]["cached"] is False
        assert first["data"]["symbol"] == "BTCUSDT"
        assert first["data"]["analysis"]["decision"] == "BUY"

        clock.advance(42)
        second = client.get("/api/analysis/xbtusdt").json()
        assert second["data"]["cached"] is True
        assert second["data"]["cache_age"] == 42
        assert len(fetcher.calls) == 1

    def test_invalid_symbol(self, client, fetcher):
        resp = client.get("/api/analysis/X")
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "invalid_symbol"
        assert fetcher.calls == []

    def test_data_unavailable(self, client, fetcher):
        fetcher.error = DataUnavailableError("所有 K 线数据源均不可用")
        resp = client.get("/api/analysis/ethusdt")
        assert resp.status_code == 502
        body = resp.json()
        assert body["error"] == "data_unavailable"
        assert body["data"]["symbol"] == "ETHUSDT"

    def test_malformed_data(self, client, fetcher):
        fetcher.error = MalformedDataError("high < low")
        resp = client.get("/api/analysis/BTCUSDT")
        assert resp.status_code == 502
        assert resp.json()["error"] == "malformed_data"

    def test_insufficient_data(self, client, fetcher):
        fetcher.candles = make_candles(closes_wave(10))
        resp = client.get("/api/analysis/BTCUSDT")
        assert resp.status_code == 422
        assert resp.json()["error"] == "insufficient_data"

    def test_failure_not_cached(self, client, fetcher):
        fetcher.error = DataUnavailableError("down")
        client.get("/api/analysis/BTCUSDT")
        fetcher.error = None
        body = client.get("/api/analysis/BTCUSDT").json()
        assert body["data"]["cached"] is False
        assert len(fetcher.calls) == 2

    def test_post_analyze_does_not_touch_cache(self, client, fetcher):
        resp = client.post("/api/analyze", json={"symbol": "eth/usdt", "interval": "4h", "leverage": 5})
        assert resp.status_code == 200
        assert resp.json()["data"]["symbol"] == "ETHUSDT"
        assert fetcher.calls == [("ETHUSDT", "4h", 100)]
        assert client.get("/api/cache/stats").json()["data"]["size"] == 0

    def test_post_analyze_rejects_bad_interval(self, client, fetcher):
        resp = client.post("/api/analyze", json={"interval": "7m"})
        assert resp.status_code == 400
        assert fetcher.calls == []

    def test_signals(self, client):
        assert client.get("/api/signals").json()["data"]["count"] == 0
        client.get("/api/analysis/BTCUSDT")
        data = client.get("/api/signals").json()["data"]
        assert data["count"] == 1
        assert data["signals"][0]["symbol"] == "BTCUSDT"
        assert data["signals"][0]["decision"] == "BUY"

    def test_market_data(self, client, fetcher):
        resp = client.get("/api/market-data/eth-usdt", params={"limit": 60})
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["symbol"] == "ETHUSDT"
        assert len(data["ohlcv"]) == 20
        assert fetcher.calls == [("ETHUSDT", "1h", 60)]

    def test_market_data_invalid_symbol(self, client):
        resp = client.get("/api/market-data/X")
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_symbol"


class TestCacheRoutes:
    def test_clear(self, client):
        client.get("/api/analysis/BTCUSDT")
        client.get("/api/analysis/ETHUSDT")
        resp = client.delete("/api/cache")
        assert resp.status_code == 200
        assert resp.json()["data"]["cleared_items"] == 2
        assert client.get("/api/analysis/BTCUSDT").json()["data"]["cached"] is False

    def test_stats_and_sweep(self, client, clock):
        client.get("/api/analysis/BTCUSDT")
        stats = client.get("/api/cache/stats").json()["data"]
        assert stats["size"] == 1
        assert stats["keys"] == ["BTCUSDT"]

        clock.advance(301)
        assert client.post("/api/cache/sweep").json()["data"]["removed"] == 1
        assert client.get("/api/cache/stats").json()["data"]["size"] == 0


class TestConfigRoutes:
    def test_get_config(self, client):
        config = client.get("/api/config").json()["data"]["config"]
        assert config["symbol"] == settings.DEFAULT_SYMBOL
        assert config["interval"] == settings.DEFAULT_INTERVAL

    def test_update_config(self, client, fetcher):
        resp = client.put("/api/config", json={"symbol": "xbt/usdt", "interval": "4h", "leverage": 3})
        assert resp.status_code == 200
        config = resp.json()["data"]["config"]
        assert config["symbol"] == "BTCUSDT"
        assert config["leverage"] == 3

        client.get("/api/analysis/ETHUSDT")
        assert fetcher.calls[-1] == ("ETHUSDT", "4h", 100)

    @pytest.mark.parametrize("body", [{"leverage": 0}, {"interval": "2h"}, {"risk_tolerance": "max"}])
    def test_update_config_rejects_invalid(self, client, body):
        before = client.get("/api/config").json()["data"]["config"]
        resp = client.put("/api/config", json=body)
        assert resp.status_code == 400
        assert client.get("/api/config").json()["data"]["config"] == before


class TestApiResponse:
    def test_from_error(self):
        body = ApiResponse.from_error(DataUnavailableError("down", symbol="BTCUSDT"))
        assert body.success is False
        assert body.error == "data_unavailable"
        assert body.data == {"symbol": "BTCUSDT"}


# ─────────────────────────────────────────────────────────
# 命令行
# ─────────────────────────────────────────────────────────

class TestCli:
    def _service(self, fetcher):
        translator = SymbolTranslator()
        return AnalyzerService(
            cache=AnalysisCache(ttl=300, translator=translator),
            series_fetcher=fetcher,
            fundamentals_fetcher=FakeFundamentalsFetcher(),
            decision_service=FakeDecisionService(),
            translator=translator,
        )

    def test_text_output(self, capsys):
        fetcher = FakeSeriesFetcher()
        with patch("trading_analyzer.cli.build_analyzer_service", return_value=self._service(fetcher)):
            assert cli.main(["eth/usdt", "--interval", "4h"]) == 0
        out = capsys.readouterr().out
        assert "Symbol      : ETHUSDT" in out
        assert "Decision    : BUY" in out
        assert fetcher.calls == [("ETHUSDT", "4h", 100)]

    def test_json_output(self, capsys):
        with patch("trading_analyzer.cli.build_analyzer_service", return_value=self._service(FakeSeriesFetcher())):
            assert cli.main(["BTCUSDT", "--json"]) == 0
        assert json.loads(capsys.readouterr().out)["symbol"] == "BTCUSDT"

    def test_failure_exit_codes(self, capsys):
        failing = FakeSeriesFetcher(error=DataUnavailableError("down"))
        with patch("trading_analyzer.cli.build_analyzer_service", return_value=self._service(failing)):
            assert cli.main(["BTCUSDT"]) == 1
            assert cli.main(["BTCUSDT", "--interval", "7m"]) == 2
        assert "data_unavailable" in capsys.readouterr().err


# ─────────────────────────────────────────────────────────
# 日志配置
# ─────────────────────────────────────────────────────────

class TestLogging:
    def test_console_only_by_default(self):
        with patch("trading_analyzer.config.logging.basicConfig") as basic:
            configure_logging(AnalyzerSettings(LOG_FILE=""))
        handlers = basic.call_args.kwargs["handlers"]
        assert len(handlers) == 1
        assert not isinstance(handlers[0], RotatingFileHandler)

    def test_log_file_handler(self, tmp_path):
        path = tmp_path / "logs" / "trading.log"
        with patch("trading_analyzer.config.logging.basicConfig") as basic:
            configure_logging(AnalyzerSettings(LOG_FILE=str(path), LOG_LEVEL="debug"))
        kwargs = basic.call_args.kwargs
        file_handlers = [h for h in kwargs["handlers"] if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert kwargs["level"] == logging.DEBUG
        assert path.parent.is_dir()
        file_handlers[0].close()
