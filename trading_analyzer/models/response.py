"""统一 API 响应模型"""

from typing import Any, Optional

from pydantic import BaseModel

from trading_analyzer.exceptions import MarketDataError


class ApiResponse(BaseModel):
    """标准 API 响应封装；失败时 error 为错误类型（如 data_unavailable）"""
    success: bool = True
    data: Optional[Any] = None
    message: str = ""
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "success") -> "ApiResponse":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str, message: str = "failed", data: Any = None) -> "ApiResponse":
        return cls(success=False, error=error, message=message, data=data)

    @classmethod
    def from_error(cls, exc: MarketDataError) -> "ApiResponse":
        """行情异常 → 失败响应，data 中带上出错的交易对"""
        return cls.fail(error=exc.code, message=exc.message, data={"symbol": exc.symbol})
