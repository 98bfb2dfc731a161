"""测试公共工具：示例原始响应、固定时钟、假数据源"""

import math
import os
import sys
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import httpx
import pytest

# 确保仓库根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from trading_analyzer.exceptions import DataUnavailableError  # noqa: E402
from trading_analyzer.models.market import Candle, FundamentalsSnapshot  # noqa: E402

START_MS = 1_700_000_000_000
HOUR_MS = 3_600_000


def closes_wave(n: int, base: float = 100.0) -> List[float]:
    return [round(base + 5 * math.sin(i / 4) + i * 0.1, 4) for i in range(n)]


def binance_rows(closes: List[float], start_ms: int = START_MS, step_ms: int = HOUR_MS) -> list:
    rows = []
    for i, close in enumerate(closes):
        open_ = close - 0.2
        t = start_ms + i * step_ms
        rows.append([
            t, f"{open_:.4f}", f"{close + 1:.4f}", f"{open_ - 1:.4f}", f"{close:.4f}",
            f"{1000 + i:.2f}", t + step_ms - 1, "0", 10, "0", "0", "0",
        ])
    return rows


def kraken_payload(
    closes: List[float], pair: str = "XBTUSDT", start_s: int = START_MS // 1000, step_s: int = 3600
) -> dict:
    rows = []
    for i, close in enumerate(closes):
        open_ = close - 0.2
        rows.append([
            start_s + i * step_s, f"{open_:.4f}", f"{close + 1:.4f}", f"{open_ - 1:.4f}",
            f"{close:.4f}", f"{close:.4f}", f"{50 + i:.4f}", 12,
        ])
    return {"error": [], "result": {pair: rows, "last": start_s + len(closes) * step_s}}


def coingecko_rows(closes: List[float], start_ms: int = START_MS, step_ms: int = 4 * HOUR_MS) -> list:
    return [
        [start_ms + i * step_ms, close - 0.2, close + 1, close - 1.2, close]
        for i, close in enumerate(closes)
    ]


def make_candles(closes: List[float]) -> List[Candle]:
    start = datetime.fromtimestamp(START_MS / 1000, tz=timezone.utc)
    return [
        Candle(
            timestamp=start + timedelta(hours=i),
            open=c - 0.2,
            high=c + 1,
            low=c - 1.2,
            close=c,
            volume=1000 + i,
        )
        for i, c in enumerate(closes)
    ]


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Router:
    """按主机名分发的 httpx MockTransport 处理器，记录调用顺序"""

    def __init__(self, routes: Dict[str, object]):
        self.routes = routes
        self.calls: List[httpx.Request] = []

    @property
    def hosts(self) -> List[str]:
        return [r.url.host for r in self.calls]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get(request.url.host)
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        if callable(route):
            result = route(request)
            if hasattr(result, "__await__"):
                result = await result
            return result
        return route

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class FakeSeriesFetcher:
    def __init__(self, candles: Optional[List[Candle]] = None, error: Optional[Exception] = None, delay: float = 0.0):
        self.candles = candles if candles is not None else make_candles(closes_wave(100))
        self.error = error
        self.delay = delay
        self.calls: List[tuple] = []

    async def fetch_series(self, symbol, interval, limit):
        import asyncio
        self.calls.append((symbol, interval, limit))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.candles)


class FakeFundamentalsFetcher:
    def __init__(self, snapshot: Optional[FundamentalsSnapshot] = None):
        self.snapshot = snapshot or FundamentalsSnapshot(market_cap=1e12, volume_24h=3e10, source="fake")
        self.calls: List[str] = []

    async def fetch(self, symbol):
        self.calls.append(symbol)
        return self.snapshot


class FakeDecisionService:
    def __init__(self):
        self.packages: List[dict] = []

    async def decide(self, package):
        self.packages.append(package)
        return {
            "decision": "BUY",
            "confidence": "Medium",
            "entry_price": package["ohlcv_data"]["candles"][-1]["close"],
            "reasons": ["trend"],
            "warnings": [],
            "inconclusive": False,
        }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def unavailable():
    return DataUnavailableError("所有 K 线数据源均不可用")
