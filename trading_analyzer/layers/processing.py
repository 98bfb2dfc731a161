"""
Layer 2 – 数据处理层
把各数据源的原始 K 线响应转换为标准 Candle 序列：
时间统一为 UTC datetime、按时间升序、每根 K 线满足 OHLC 约束。
任何一条记录不合法都会使整批数据被拒绝。
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import pandas as pd
from pydantic import ValidationError

from trading_analyzer.exceptions import MalformedDataError
from trading_analyzer.models.market import Candle

logger = logging.getLogger(__name__)


def _from_millis(value: Any) -> datetime:
    return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)


def _from_seconds(value: Any) -> datetime:
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def _to_float(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise ValueError(f"非数值字段: {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"非有限数值: {value!r}")
    return number


class ProcessingLayer:
    """数据处理层：原始响应 → 标准 Candle 序列"""

    def __init__(self):
        self._parsers: Dict[str, Callable[[Any], List[Dict[str, Any]]]] = {
            "binance": self._rows_binance,
            "kraken": self._rows_kraken,
            "coingecko": self._rows_coingecko,
        }

    @property
    def providers(self) -> List[str]:
        return list(self._parsers)

    def normalize(self, provider: str, raw: Any) -> List[Candle]:
        """
        将指定数据源的原始响应标准化为 Candle 列表

        Raises:
            MalformedDataError: 未知数据源、结构错误、任一记录违反 OHLC 约束或时间戳重复
        """
        parser = self._parsers.get(provider)
        if parser is None:
            raise MalformedDataError(f"未知数据源: {provider}")

        try:
            rows = parser(raw)
            candles = [Candle(**row) for row in rows]
        except MalformedDataError:
            raise
        except (
            ValidationError, ValueError, TypeError, KeyError, IndexError, AttributeError, OverflowError
        ) as exc:
            raise MalformedDataError(f"{provider} 返回的 K 线数据不合法: {exc}") from exc

        candles.sort(key=lambda c: c.timestamp)
        for prev, cur in zip(candles, candles[1:]):
            if cur.timestamp <= prev.timestamp:
                raise MalformedDataError(
                    f"{provider} 返回重复的时间戳: {cur.timestamp.isoformat()}"
                )
        return candles

    # ── 各数据源解析 ──────────────────────────────────────

    def _rows_binance(self, raw: Any) -> List[Dict[str, Any]]:
        # [openTime(ms), open, high, low, close, volume, closeTime, ...]
        if not isinstance(raw, list):
            raise MalformedDataError(f"binance 响应格式错误: {type(raw).__name__}")
        return [
            {
                "timestamp": _from_millis(k[0]),
                "open": _to_float(k[1]),
                "high": _to_float(k[2]),
                "low": _to_float(k[3]),
                "close": _to_float(k[4]),
                "volume": _to_float(k[5]),
            }
            for k in raw
        ]

    def _rows_kraken(self, raw: Any) -> List[Dict[str, Any]]:
        # {"error": [], "result": {PAIR: [[time(s), o, h, l, c, vwap, volume, count]], "last": ...}}
        if not isinstance(raw, dict):
            raise MalformedDataError(f"kraken 响应格式错误: {type(raw).__name__}")
        if raw.get("error"):
            raise MalformedDataError(f"kraken 返回错误: {raw['error']}")
        result = raw.get("result") or {}
        if not isinstance(result, dict):
            raise MalformedDataError(f"kraken result 字段格式错误: {type(result).__name__}")
        series = [v for k, v in result.items() if k != "last"]
        if len(series) != 1 or not isinstance(series[0], list):
            raise MalformedDataError("kraken 响应中缺少 K 线序列")
        return [
            {
                "timestamp": _from_seconds(k[0]),
                "open": _to_float(k[1]),
                "high": _to_float(k[2]),
                "low": _to_float(k[3]),
                "close": _to_float(k[4]),
                "volume": _to_float(k[6]),
            }
            for k in series[0]
        ]

    def _rows_coingecko(self, raw: Any) -> List[Dict[str, Any]]:
        # [[time(ms), open, high, low, close]]，不含成交量
        if not isinstance(raw, list):
            raise MalformedDataError(f"coingecko 响应格式错误: {type(raw).__name__}")
        return [
            {
                "timestamp": _from_millis(k[0]),
                "open": _to_float(k[1]),
                "high": _to_float(k[2]),
                "low": _to_float(k[3]),
                "close": _to_float(k[4]),
                "volume": 0.0,
            }
            for k in raw
        ]

    # ── 格式转换 ──────────────────────────────────────────

    def to_frame(self, candles: Sequence[Candle]) -> pd.DataFrame:
        """Candle 序列转换为以 timestamp 为索引的 DataFrame"""
        if not candles:
            return pd.DataFrame(columns=["open", "high", "low", "close", "volume"])
        df = pd.DataFrame([c.model_dump() for c in candles])
        return df.set_index("timestamp")

    def to_records(self, candles: Sequence[Candle]) -> List[Dict[str, Any]]:
        """Candle 序列转换为可 JSON 序列化的字典列表"""
        return [c.model_dump(mode="json") for c in candles]


# ── 模块级别单例 ──────────────────────────────────────────
_processor: Optional[ProcessingLayer] = None


def get_processing_layer() -> ProcessingLayer:
    global _processor
    if _processor is None:
        _processor = ProcessingLayer()
    return _processor
