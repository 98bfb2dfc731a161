"""
异常体系
价格链路失败（Malformed / DataUnavailable / InsufficientData）对单次分析是致命的；
基本面失败在 FundamentalsFetcher 内部吸收，不出现在这里。
"""

from typing import Optional


class MarketDataError(Exception):
    """所有行情分析异常的基类，携带错误类型与出错的交易对"""

    code = "market_data_error"

    def __init__(self, message: str, symbol: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.symbol = symbol

    def to_dict(self) -> dict:
        return {"error": self.code, "symbol": self.symbol, "message": self.message}


class MalformedDataError(MarketDataError):
    """数据源返回的 K 线违反 OHLC 约束，整批拒绝"""

    code = "malformed_data"


class DataUnavailableError(MarketDataError):
    """所有 K 线数据源均失败"""

    code = "data_unavailable"


class InsufficientDataError(MarketDataError):
    """K 线为空或长度不足以计算指标"""

    code = "insufficient_data"


class InvalidSymbolError(MarketDataError, ValueError):
    """无法识别的交易对写法"""

    code = "invalid_symbol"


class ProviderError(MarketDataError):
    """单个数据源失败（网络、限流、超时），仅在回退链内部使用"""

    code = "provider_error"

    def __init__(self, provider: str, message: str, symbol: Optional[str] = None):
        super().__init__(f"[{provider}] {message}", symbol=symbol)
        self.provider = provider
