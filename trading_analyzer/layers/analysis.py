"""
Layer 3 – 技术分析层
在标准 Candle 序列上计算 EMA(12/25)、RSI(14)、Stochastic RSI(14,3,3)，
并给出趋势判断与 EMA 交叉信号。纯函数，无内部状态。
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from trading_analyzer.exceptions import InsufficientDataError
from trading_analyzer.layers.processing import get_processing_layer
from trading_analyzer.models.market import Candle, IndicatorSet, StochRSIPoint

logger = logging.getLogger(__name__)

FAST_EMA_PERIOD = 12
SLOW_EMA_PERIOD = 25
RSI_PERIOD = 14
STOCH_PERIOD = 14
STOCH_K_PERIOD = 3
STOCH_D_PERIOD = 3


def _seeded(values: pd.Series, period: int) -> pd.Series:
    """以前 period 个值的简单平均作为首值，其后保留原值"""
    seeded = values.iloc[period - 1:].astype(float).copy()
    seeded.iloc[0] = values.iloc[:period].mean()
    return seeded


class AnalysisLayer:
    """技术分析层"""

    # ── 均线 ──────────────────────────────────────────────

    def ema(self, closes: pd.Series, period: int) -> pd.Series:
        """
        指数移动平均：首值为 SMA(period)，乘数 2/(period+1)

        输出长度 max(0, N - period + 1)
        """
        if len(closes) < period:
            return pd.Series(dtype=float)
        return _seeded(closes, period).ewm(span=period, adjust=False).mean()

    # ── RSI ───────────────────────────────────────────────

    def rsi(self, closes: pd.Series, period: int = RSI_PERIOD) -> pd.Series:
        """Wilder 平滑的 RSI，输出长度 max(0, N - period)，保留两位小数"""
        delta = closes.astype(float).diff().iloc[1:]
        if len(delta) < period:
            return pd.Series(dtype=float)
        gains = delta.clip(lower=0)
        losses = -delta.clip(upper=0)
        avg_gain = _seeded(gains, period).ewm(alpha=1 / period, adjust=False).mean()
        avg_loss = _seeded(losses, period).ewm(alpha=1 / period, adjust=False).mean()

        rsi = 100 - 100 / (1 + avg_gain / avg_loss)
        rsi = rsi.mask(avg_loss == 0, 100.0)
        rsi = rsi.mask((avg_gain == 0) & (avg_loss != 0), 0.0)
        return rsi.round(2)

    # ── Stochastic RSI ────────────────────────────────────

    def stoch_rsi(
        self,
        rsi: pd.Series,
        period: int = STOCH_PERIOD,
        k_period: int = STOCH_K_PERIOD,
        d_period: int = STOCH_D_PERIOD,
    ) -> pd.DataFrame:
        """在 RSI 序列（而非价格）上计算随机指标，%K、%D 各做一次 SMA 平滑"""
        rsi = rsi.reset_index(drop=True)
        lowest = rsi.rolling(window=period).min()
        highest = rsi.rolling(window=period).max()
        spread = highest - lowest
        raw = ((rsi - lowest) / spread * 100).where(spread != 0, 0.0)
        raw = raw.where(spread.notna())
        k = raw.rolling(window=k_period).mean()
        d = k.rolling(window=d_period).mean()
        df = pd.DataFrame({"stoch_rsi": raw, "k": k, "d": d}).dropna()
        return df.round(2)

    # ── 趋势 / 交叉 ───────────────────────────────────────

    @staticmethod
    def classify_trend(fast: Sequence[float], slow: Sequence[float]) -> Optional[str]:
        """最后一个快线值 > 最后一个慢线值为 bullish，否则 bearish；任一为空则无定义"""
        if len(fast) == 0 or len(slow) == 0:
            return None
        return "bullish" if fast[-1] > slow[-1] else "bearish"

    @staticmethod
    def detect_crossover(fast: Sequence[float], slow: Sequence[float]) -> Optional[str]:
        """比较最后两个对齐位置上快慢线的相对位置"""
        if len(fast) < 2 or len(slow) < 2:
            return None
        current = fast[-1] > slow[-1]
        previous = fast[-2] > slow[-2]
        if current and not previous:
            return "bullish_crossover"
        if previous and not current:
            return "bearish_crossover"
        return None

    # ── 全量指标 ──────────────────────────────────────────

    def compute(self, candles: Sequence[Candle]) -> IndicatorSet:
        """一次性计算全部指标；空序列抛出 InsufficientDataError"""
        if not candles:
            raise InsufficientDataError("K 线序列为空，无法计算技术指标")

        df = get_processing_layer().to_frame(candles)
        closes = df["close"].reset_index(drop=True)

        fast = self.ema(closes, FAST_EMA_PERIOD).tolist()
        slow = self.ema(closes, SLOW_EMA_PERIOD).tolist()
        rsi = self.rsi(closes)
        stoch = self.stoch_rsi(rsi)

        indicators = IndicatorSet(
            fast_ema=fast,
            slow_ema=slow,
            rsi=rsi.tolist(),
            stoch_rsi=[StochRSIPoint(**row) for row in stoch.to_dict(orient="records")],
            trend=self.classify_trend(fast, slow),
            crossover=self.detect_crossover(fast, slow),
            volumes=df["volume"].tolist(),
        )
        logger.debug(
            f"技术指标计算完成: EMA({len(fast)}/{len(slow)}) RSI({len(indicators.rsi)}) "
            f"StochRSI({len(indicators.stoch_rsi)})"
        )
        return indicators

    def recent_signals(
        self, candles: Sequence[Candle], indicators: IndicatorSet
    ) -> List[Dict[str, Any]]:
        """根据最新交叉事件生成信号记录"""
        if not candles or indicators.crossover is None:
            return []
        last = candles[-1]
        if indicators.crossover == "bullish_crossover":
            side, reason = "BUY", "Fast EMA crosses above Slow EMA"
        else:
            side, reason = "SELL", "Fast EMA crosses below Slow EMA"
        return [{
            "timestamp": last.timestamp.isoformat(),
            "type": side,
            "price": last.close,
            "strength": "Medium",
            "reason": reason,
        }]


# ── 模块级别单例 ──────────────────────────────────────────
_analysis: Optional[AnalysisLayer] = None


def get_analysis_layer() -> AnalysisLayer:
    global _analysis
    if _analysis is None:
        _analysis = AnalysisLayer()
    return _analysis
