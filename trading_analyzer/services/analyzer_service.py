"""
交易分析服务
整合获取层 + 基本面 + 分析层 + 决策 + 缓存，对外提供 analyze / fetch_market_series。
即时请求与定时任务调用的是同一个 analyze 入口。
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from trading_analyzer.config import settings
from trading_analyzer.exceptions import InsufficientDataError, MarketDataError
from trading_analyzer.layers.acquisition import SeriesFetcher, interval_seconds
from trading_analyzer.layers.analysis import SLOW_EMA_PERIOD, AnalysisLayer, get_analysis_layer
from trading_analyzer.layers.cache import AnalysisCache, CacheEntry
from trading_analyzer.layers.fundamentals import FundamentalsFetcher
from trading_analyzer.layers.processing import get_processing_layer
from trading_analyzer.models.market import (
    AnalysisResult,
    Candle,
    FundamentalsSnapshot,
    IndicatorSet,
    TradingProfile,
)
from trading_analyzer.services.decision_service import DecisionService, get_decision_service
from trading_analyzer.symbols import SymbolTranslator, get_symbol_translator

logger = logging.getLogger(__name__)

_PACKAGE_CANDLES = 50
_PACKAGE_INDICATORS = 20


def default_profile() -> TradingProfile:
    return TradingProfile(
        symbol=settings.DEFAULT_SYMBOL,
        interval=settings.DEFAULT_INTERVAL,
        leverage=settings.LEVERAGE,
        position_size=settings.POSITION_SIZE,
        risk_tolerance=settings.RISK_TOLERANCE,
    )


class AnalyzerService:
    """交易分析服务"""

    def __init__(
        self,
        cache: AnalysisCache,
        series_fetcher: SeriesFetcher,
        fundamentals_fetcher: FundamentalsFetcher,
        decision_service: Optional[DecisionService] = None,
        analysis: Optional[AnalysisLayer] = None,
        translator: Optional[SymbolTranslator] = None,
        profile: Optional[TradingProfile] = None,
        limit: Optional[int] = None,
    ):
        self._cache = cache
        self._series = series_fetcher
        self._fundamentals = fundamentals_fetcher
        self._decision = decision_service or get_decision_service()
        self._analysis = analysis or get_analysis_layer()
        self._translator = translator or get_symbol_translator()
        self._profile = profile or default_profile()
        self._limit = limit or settings.DEFAULT_LIMIT
        self._inflight: Dict[str, asyncio.Future] = {}

    @property
    def cache(self) -> AnalysisCache:
        return self._cache

    @property
    def translator(self) -> SymbolTranslator:
        return self._translator

    # ── 交易参数 ──────────────────────────────────────────

    @property
    def profile(self) -> TradingProfile:
        return self._profile

    def resolve_profile(self, **changes: Any) -> TradingProfile:
        """在当前参数基础上合并修改并校验，不改变服务状态"""
        updates = {k: v for k, v in changes.items() if v is not None}
        merged = TradingProfile.model_validate({**self._profile.model_dump(), **updates})
        interval_seconds(merged.interval)
        return merged.model_copy(update={"symbol": self._translator.canonicalize(merged.symbol)})

    def update_profile(self, **changes: Any) -> TradingProfile:
        self._profile = self.resolve_profile(**changes)
        logger.info(f"交易参数已更新: {self._profile.model_dump()}")
        return self._profile

    # ── K 线 ──────────────────────────────────────────────

    async def fetch_market_series(
        self, symbol: str, interval: Optional[str] = None, limit: Optional[int] = None
    ) -> List[Candle]:
        """获取规范化后的 K 线（不经过缓存）"""
        canonical = self._translator.canonicalize(symbol)
        return await self._series.fetch_series(
            canonical, interval or self._profile.interval, limit or self._limit
        )

    # ── 分析 ──────────────────────────────────────────────

    async def analyze(self, symbol: Optional[str] = None, profile: Optional[TradingProfile] = None) -> AnalysisResult:
        entry, _ = await self.analyze_cached(symbol, profile)
        return entry.value

    async def analyze_cached(
        self, symbol: Optional[str] = None, profile: Optional[TradingProfile] = None
    ) -> Tuple[CacheEntry, bool]:
        """
        带缓存的分析

        Returns:
            (缓存条目, 是否命中缓存)。传入自定义 profile 时不读写缓存。

        Raises:
            InvalidSymbolError / DataUnavailableError / InsufficientDataError
        """
        key = self._translator.canonicalize(symbol or self._profile.symbol)

        if profile is not None:
            result = await self._compute(key, profile)
            return CacheEntry(key=key, value=result, inserted_at=self._cache.now()), False

        hit = self._cache.get(key)
        if hit is not None:
            logger.info(f"返回缓存中的分析结果: {key}")
            return hit, True

        # 同一交易对的并发未命中请求共享一次计算
        future = self._inflight.get(key)
        if future is None:
            future = asyncio.ensure_future(self._compute_and_store(key))
            self._inflight[key] = future
            future.add_done_callback(lambda f, k=key: self._release(k, f))
        return await asyncio.shield(future), False

    def _release(self, key: str, future: asyncio.Future) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]
        if not future.cancelled():
            # 标记异常已读取，等待方各自收到同一异常
            future.exception()

    async def _compute_and_store(self, key: str) -> CacheEntry:
        result = await self._compute(key, self._profile)
        return self._cache.put(key, result)

    async def _compute(self, key: str, profile: TradingProfile) -> AnalysisResult:
        logger.info(f"开始分析: {key}")
        try:
            candles, fundamentals = await asyncio.gather(
                self._series.fetch_series(key, profile.interval, self._limit),
                self._fundamentals.fetch(key),
            )
            indicators = self._analysis.compute(candles)
            if not indicators.slow_ema:
                raise InsufficientDataError(
                    f"K 线数量 {len(candles)} 不足，至少需要 {SLOW_EMA_PERIOD} 根", symbol=key
                )
        except MarketDataError as exc:
            if exc.symbol is None:
                exc.symbol = key
            logger.error(f"分析失败: {key} [{exc.code}] {exc}")
            raise

        signals = self._analysis.recent_signals(candles, indicators)
        package = self.prepare_data_package(key, profile, candles, indicators, fundamentals, signals)
        decision = await self._decision.decide(package)

        result = AnalysisResult(
            timestamp=datetime.now(tz=timezone.utc),
            symbol=key,
            interval=profile.interval,
            analysis=decision,
            indicators=indicators.summary(_PACKAGE_INDICATORS),
            market_data=fundamentals,
            recent_signals=signals,
            raw_data={
                "candles_count": len(candles),
                "last_price": candles[-1].close,
                "last_candle_at": candles[-1].timestamp.isoformat(),
                "trend": indicators.trend,
                "crossover": indicators.crossover,
            },
        )
        logger.info(f"分析完成: {key} {decision['decision']} ({decision['confidence']})")
        return result

    def prepare_data_package(
        self,
        symbol: str,
        profile: TradingProfile,
        candles: Sequence[Candle],
        indicators: IndicatorSet,
        fundamentals: FundamentalsSnapshot,
        signals: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """组装交给决策步骤的数据包"""
        return {
            "symbol": symbol,
            "interval": profile.interval,
            "leverage": profile.leverage,
            "position_size": profile.position_size,
            "risk_tolerance": profile.risk_tolerance,
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            "ohlcv_data": {
                "candles": get_processing_layer().to_records(candles[-_PACKAGE_CANDLES:]),
                "total_candles": len(candles),
            },
            "technical_indicators": indicators.summary(_PACKAGE_INDICATORS),
            "market_context": fundamentals.model_dump(),
            "recent_signals": signals,
            "portfolio_context": {
                "current_position": "none",
                "available_balance": settings.AVAILABLE_BALANCE,
                "max_risk_per_trade": profile.position_size * 0.1,
                "leverage_multiplier": profile.leverage,
            },
        }

    # ── 行情快照 / 信号 ───────────────────────────────────

    async def market_snapshot(self, symbol: str, interval: str = "1h", limit: int = 50) -> Dict[str, Any]:
        """K 线 + 基本面 + 指标摘要，不经过缓存与决策步骤"""
        key = self._translator.canonicalize(symbol)
        candles, fundamentals = await asyncio.gather(
            self._series.fetch_series(key, interval, limit),
            self._fundamentals.fetch(key),
        )
        indicators = self._analysis.compute(candles)
        return {
            "symbol": key,
            "timestamp": datetime.now(tz=timezone.utc).isoformat(),
            "ohlcv": get_processing_layer().to_records(candles[-20:]),
            "indicators": {
                "trend": indicators.trend,
                "crossover": indicators.crossover,
                "rsi": indicators.rsi[-5:],
                "fast_ema": indicators.fast_ema[-5:],
                "slow_ema": indicators.slow_ema[-5:],
            },
            "market_data": fundamentals.model_dump(),
        }

    def recent_signals(self, symbols: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
        """缓存中已有的决策，按时间倒序"""
        signals = []
        for symbol in symbols or settings.WATCHLIST:
            entry = self._cache.peek(self._translator.canonicalize(symbol))
            if entry is None:
                continue
            result: AnalysisResult = entry.value
            signals.append({
                "symbol": result.symbol,
                "decision": result.analysis.get("decision"),
                "confidence": result.analysis.get("confidence"),
                "timestamp": result.timestamp.isoformat(),
                "entry_price": result.analysis.get("entry_price"),
                "reasons": result.analysis.get("reasons", []),
            })
        return sorted(signals, key=lambda s: s["timestamp"], reverse=True)


def build_analyzer_service(cache: Optional[AnalysisCache] = None) -> AnalyzerService:
    """按配置组装服务；缓存实例由调用方持有"""
    translator = get_symbol_translator()
    return AnalyzerService(
        cache=cache or AnalysisCache(ttl=settings.CACHE_TTL),
        series_fetcher=SeriesFetcher(translator=translator),
        fundamentals_fetcher=FundamentalsFetcher(translator=translator),
        translator=translator,
    )
