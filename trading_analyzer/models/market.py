"""行情领域模型：K 线、指标集合、基本面快照、分析结果"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

Trend = Literal["bullish", "bearish"]
Crossover = Literal["bullish_crossover", "bearish_crossover"]


class Candle(BaseModel):
    """标准 K 线（OHLCV），创建后不可变"""

    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @model_validator(mode="after")
    def _check_ohlc(self) -> "Candle":
        if not (self.low <= min(self.open, self.close) <= max(self.open, self.close) <= self.high):
            raise ValueError(
                f"OHLC 不一致: o={self.open} h={self.high} l={self.low} c={self.close}"
            )
        if self.volume < 0:
            raise ValueError(f"成交量为负: {self.volume}")
        return self


class StochRSIPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    stoch_rsi: float
    k: float
    d: float


class IndicatorSet(BaseModel):
    """
    技术指标集合（只读）

    所有序列均以源 K 线的最后一根结尾（尾部对齐），
    trend 仅在快慢 EMA 均非空时有值。
    """

    model_config = ConfigDict(frozen=True)

    fast_ema: List[float]
    slow_ema: List[float]
    rsi: List[float]
    stoch_rsi: List[StochRSIPoint]
    trend: Optional[Trend] = None
    crossover: Optional[Crossover] = None
    volumes: List[float] = Field(default_factory=list)

    def summary(self, tail: int = 20) -> Dict[str, Any]:
        """截取尾部数据，用于决策提示词与结果负载"""
        return {
            "fast_ema": [round(v, 4) for v in self.fast_ema[-tail:]],
            "slow_ema": [round(v, 4) for v in self.slow_ema[-tail:]],
            "rsi": self.rsi[-tail:],
            "stoch_rsi": [p.model_dump() for p in self.stoch_rsi[-tail:]],
            "trend": self.trend,
            "crossover": self.crossover,
        }


class FundamentalsSnapshot(BaseModel):
    """基本面快照：任一字段缺失（None）都是合法状态"""

    model_config = ConfigDict(frozen=True)

    market_cap: Optional[float] = None
    volume_24h: Optional[float] = None
    percent_change_1h: Optional[float] = None
    percent_change_24h: Optional[float] = None
    percent_change_7d: Optional[float] = None
    circulating_supply: Optional[float] = None
    total_supply: Optional[float] = None
    source: Optional[str] = None

    @classmethod
    def empty(cls) -> "FundamentalsSnapshot":
        return cls()

    @property
    def is_empty(self) -> bool:
        return all(v is None for v in self.model_dump().values())


class AnalysisResult(BaseModel):
    """对外分析结果，缓存层将其视为不透明值"""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    symbol: str
    interval: str
    analysis: Dict[str, Any]
    indicators: Dict[str, Any]
    market_data: FundamentalsSnapshot
    recent_signals: List[Dict[str, Any]] = Field(default_factory=list)
    raw_data: Dict[str, Any] = Field(default_factory=dict)


class TradingProfile(BaseModel):
    """透传给决策步骤的交易参数（不做下单与持仓管理）"""

    symbol: str = "BTCUSDT"
    interval: str = "1h"
    leverage: int = Field(default=10, ge=1)
    position_size: float = Field(default=1000, gt=0)
    risk_tolerance: Literal["low", "medium", "high"] = "medium"
