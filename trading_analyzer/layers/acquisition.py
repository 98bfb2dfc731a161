"""
Layer 1 – 数据获取层
按优先级依次从 K 线数据提供商（Binance / Kraken / CoinGecko）拉取原始数据，
经处理层标准化后返回第一个成功且非空的序列。
回退只为可用性服务，不做多源混合。
"""

import asyncio
import contextlib
import logging
import math
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from trading_analyzer.config import settings
from trading_analyzer.exceptions import (
    DataUnavailableError,
    InvalidSymbolError,
    MalformedDataError,
    ProviderError,
)
from trading_analyzer.layers.processing import ProcessingLayer, get_processing_layer
from trading_analyzer.models.market import Candle
from trading_analyzer.symbols import SymbolTranslator, get_symbol_translator

logger = logging.getLogger(__name__)

# ── 周期换算 ──────────────────────────────────────────────
INTERVAL_SECONDS: Dict[str, int] = {
    "1m": 60,
    "5m": 300,
    "15m": 900,
    "30m": 1800,
    "1h": 3600,
    "4h": 14400,
    "1d": 86400,
    "1w": 604800,
}

BINANCE_MAX_LIMIT = 1000
KRAKEN_MAX_CANDLES = 720
# CoinGecko /ohlc 的粒度由 days 决定：1-2 天为 30m，3-30 天为 4h，更长为 4d
COINGECKO_DAYS: Dict[str, Tuple[int, ...]] = {
    "30m": (1,),
    "4h": (7, 14, 30),
}


def interval_seconds(interval: str) -> int:
    try:
        return INTERVAL_SECONDS[interval]
    except KeyError:
        raise ValueError(
            f"不支持的周期: {interval}，支持: {', '.join(INTERVAL_SECONDS)}"
        ) from None


def coingecko_days(interval: str, limit: int) -> Optional[int]:
    """
    覆盖 limit 根 K 线所需的 CoinGecko days 取值

    只在返回粒度与 interval 一致的 days 范围内选择；CoinGecko 无法提供该周期时返回 None
    """
    choices = COINGECKO_DAYS.get(interval)
    if choices is None:
        return None
    needed = math.ceil(limit * interval_seconds(interval) / 86400)
    for days in choices:
        if days >= needed:
            return days
    return choices[-1]


async def request_json(
    client: httpx.AsyncClient,
    provider: str,
    url: str,
    timeout: float,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> Any:
    """带单次超时的 GET 请求，所有失败统一转换为 ProviderError"""
    try:
        response = await asyncio.wait_for(
            client.get(url, params=params, headers=headers, timeout=timeout),
            timeout=timeout,
        )
        response.raise_for_status()
        return response.json()
    except asyncio.TimeoutError as exc:
        raise ProviderError(provider, f"请求超时（{timeout}s）") from exc
    except httpx.HTTPStatusError as exc:
        code = exc.response.status_code
        if code == 429:
            raise ProviderError(provider, "触发限流 (429)") from exc
        raise ProviderError(provider, f"HTTP {code}: {exc.response.text[:200]}") from exc
    except httpx.TimeoutException as exc:
        raise ProviderError(provider, f"请求超时: {exc}") from exc
    except httpx.RequestError as exc:
        raise ProviderError(provider, f"网络错误: {exc}") from exc
    except ValueError as exc:
        raise MalformedDataError(f"{provider} 返回的不是合法 JSON: {exc}") from exc


def _check_step(provider: str, symbol: str, interval: str, candles: Sequence[Candle]) -> None:
    """相邻 K 线的最小间隔必须等于请求的周期（允许缺口，不允许粒度不符）"""
    if len(candles) < 2:
        return
    step = min(
        (cur.timestamp - prev.timestamp).total_seconds()
        for prev, cur in zip(candles, candles[1:])
    )
    if step != interval_seconds(interval):
        raise ProviderError(
            provider, f"返回的 K 线间隔为 {step:.0f}s，与请求周期 {interval} 不符", symbol=symbol
        )


class SeriesFetcher:
    """K 线获取：按优先级回退的多数据源封装"""

    def __init__(
        self,
        providers: Optional[Sequence[str]] = None,
        translator: Optional[SymbolTranslator] = None,
        processor: Optional[ProcessingLayer] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._providers = list(providers or settings.SERIES_PROVIDERS)
        self._translator = translator or get_symbol_translator()
        self._proc = processor or get_processing_layer()
        self._client = client
        self._timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT
        self._clock = clock
        self._handlers: Dict[str, Callable[..., Any]] = {
            "binance": self._fetch_binance,
            "kraken": self._fetch_kraken,
            "coingecko": self._fetch_coingecko,
        }
        unknown = [p for p in self._providers if p not in self._handlers]
        if unknown:
            raise ValueError(f"未知的 K 线数据源: {unknown}")

    @property
    def providers(self) -> List[str]:
        return list(self._providers)

    async def fetch_series(self, symbol: str, interval: str, limit: int) -> List[Candle]:
        """
        按优先级获取 K 线，首个成功且非空的结果立即返回

        Args:
            symbol: 规范交易对写法，如 BTCUSDT
            interval: 周期，如 1h
            limit: 最多返回的 K 线数量

        Raises:
            DataUnavailableError: 所有数据源均失败
        """
        interval_seconds(interval)
        if limit < 1:
            raise ValueError(f"limit 必须为正整数: {limit}")

        last_error: Optional[Exception] = None
        async with self._session() as client:
            for provider in self._providers:
                try:
                    raw = await self._handlers[provider](client, symbol, interval, limit)
                    candles = self._proc.normalize(provider, raw)[-limit:]
                    if not candles:
                        raise ProviderError(provider, "返回空序列", symbol=symbol)
                    _check_step(provider, symbol, interval, candles)
                    logger.info(f"K 线获取成功（来源：{provider}）: {symbol} {interval}，共 {len(candles)} 根")
                    return candles
                except (ProviderError, MalformedDataError, InvalidSymbolError) as exc:
                    last_error = exc
                    logger.warning(f"K 线获取失败（来源：{provider}）: {symbol} {exc}")

        raise DataUnavailableError(
            f"所有 K 线数据源均不可用: {last_error}", symbol=symbol
        ) from last_error

    def _session(self):
        if self._client is not None:
            return contextlib.nullcontext(self._client)
        return httpx.AsyncClient(timeout=self._timeout)

    # ── Binance：按根数查询 ───────────────────────────────

    async def _fetch_binance(self, client, symbol: str, interval: str, limit: int) -> Any:
        params = {
            "symbol": self._translator.to_provider(symbol, "binance"),
            "interval": interval,
            "limit": min(limit, BINANCE_MAX_LIMIT),
        }
        return await request_json(
            client, "binance", f"{settings.BINANCE_BASE_URL}/api/v3/klines", self._timeout, params=params
        )

    # ── Kraken：按时间范围查询 ────────────────────────────

    async def _fetch_kraken(self, client, symbol: str, interval: str, limit: int) -> Any:
        step = interval_seconds(interval)
        count = min(limit, KRAKEN_MAX_CANDLES)
        params = {
            "pair": self._translator.to_provider(symbol, "kraken"),
            "interval": step // 60,
            "since": int(self._clock()) - count * step,
        }
        return await request_json(
            client, "kraken", f"{settings.KRAKEN_BASE_URL}/0/public/OHLC", self._timeout, params=params
        )

    # ── CoinGecko：按天数查询 ─────────────────────────────

    async def _fetch_coingecko(self, client, symbol: str, interval: str, limit: int) -> Any:
        days = coingecko_days(interval, limit)
        if days is None:
            raise ProviderError("coingecko", f"不提供 {interval} 周期的 K 线", symbol=symbol)
        coin_id = self._translator.to_provider(symbol, "coingecko")
        params = {
            "vs_currency": self._translator.vs_currency(symbol),
            "days": days,
        }
        headers = {"x-cg-demo-api-key": settings.COINGECKO_API_KEY} if settings.COINGECKO_API_KEY else None
        return await request_json(
            client,
            "coingecko",
            f"{settings.COINGECKO_BASE_URL}/coins/{coin_id}/ohlc",
            self._timeout,
            params=params,
            headers=headers,
        )
