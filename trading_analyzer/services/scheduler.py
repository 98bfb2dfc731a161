"""
定时任务
两个相互独立的 asyncio 循环：
  - 自动分析：每 ANALYSIS_INTERVAL_SECONDS 对关注列表逐个调用 analyze
  - 缓存清理：每 CACHE_SWEEP_INTERVAL_SECONDS 调用 evict_expired
单个交易对失败只记录日志，不会中断循环。
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from trading_analyzer.config import settings
from trading_analyzer.exceptions import MarketDataError
from trading_analyzer.services.analyzer_service import AnalyzerService

logger = logging.getLogger(__name__)


class AnalysisScheduler:
    """自动分析与缓存清理调度器"""

    def __init__(
        self,
        service: AnalyzerService,
        watchlist: Optional[Sequence[str]] = None,
        analysis_interval: Optional[float] = None,
        sweep_interval: Optional[float] = None,
    ):
        self._service = service
        self._watchlist = list(watchlist or settings.WATCHLIST)
        self._analysis_interval = analysis_interval or settings.ANALYSIS_INTERVAL_SECONDS
        self._sweep_interval = sweep_interval or settings.CACHE_SWEEP_INTERVAL_SECONDS
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def run_analysis_round(self) -> Dict[str, str]:
        """对关注列表执行一轮分析，返回 {symbol: 决策或错误类型}"""
        logger.info(f"开始自动分析: {', '.join(self._watchlist)}")
        outcome: Dict[str, str] = {}
        for symbol in self._watchlist:
            try:
                entry, _ = await self._service.analyze_cached(symbol)
                decision = entry.value.analysis.get("decision")
                outcome[symbol] = decision
                logger.info(f"自动分析 {symbol}: {decision}")
            except MarketDataError as exc:
                outcome[symbol] = exc.code
                logger.error(f"自动分析失败 {symbol}: [{exc.code}] {exc}")
            except Exception as exc:
                outcome[symbol] = "internal_error"
                logger.error(f"自动分析出现未处理的异常 {symbol}: {exc}", exc_info=True)
        return outcome

    def run_sweep(self) -> int:
        removed = self._service.cache.evict_expired()
        if removed:
            logger.info(f"定时清理移除 {removed} 个过期缓存条目")
        return removed

    async def _analysis_loop(self) -> None:
        while True:
            await self.run_analysis_round()
            await asyncio.sleep(self._analysis_interval)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            self.run_sweep()

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._analysis_loop(), name="auto-analysis"),
            asyncio.create_task(self._sweep_loop(), name="cache-sweep"),
        ]
        logger.info(
            f"定时任务已启动：分析周期 {self._analysis_interval}s，清理周期 {self._sweep_interval}s"
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("定时任务已停止")
