"""
分析路由
GET  /api/analysis/{symbol}     - 带缓存的分析
POST /api/analyze               - 自定义参数的即时分析（不读写缓存）
GET  /api/signals               - 缓存中的最新决策
GET  /api/market-data/{symbol}  - K 线 + 指标 + 基本面
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ValidationError

from trading_analyzer.exceptions import InvalidSymbolError
from trading_analyzer.models.response import ApiResponse
from trading_analyzer.services.analyzer_service import AnalyzerService

router = APIRouter(prefix="/api", tags=["分析"])


class AnalyzeRequest(BaseModel):
    symbol: Optional[str] = None
    interval: Optional[str] = None
    leverage: Optional[int] = None
    position_size: Optional[float] = None
    risk_tolerance: Optional[str] = None


def get_analyzer(request: Request) -> AnalyzerService:
    """从应用状态中取出分析服务实例（由 lifespan 创建）"""
    return request.app.state.analyzer


@router.get("/analysis/{symbol}", response_model=ApiResponse)
async def get_analysis(symbol: str, svc: AnalyzerService = Depends(get_analyzer)):
    """分析指定交易对；TTL 内重复请求直接返回缓存"""
    entry, cached = await svc.analyze_cached(symbol)
    data = entry.value.model_dump(mode="json")
    data["cached"] = cached
    data["cache_age"] = round(entry.age(svc.cache.now()), 3) if cached else 0.0
    return ApiResponse.ok(data=data)


@router.post("/analyze", response_model=ApiResponse)
async def analyze(body: AnalyzeRequest, svc: AnalyzerService = Depends(get_analyzer)):
    """按请求体覆盖交易参数后分析，不影响全局参数"""
    try:
        profile = svc.resolve_profile(**body.model_dump())
    except (ValidationError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    result = await svc.analyze(profile.symbol, profile=profile)
    return ApiResponse.ok(data=result.model_dump(mode="json"))


@router.get("/signals", response_model=ApiResponse)
async def get_signals(svc: AnalyzerService = Depends(get_analyzer)):
    signals = svc.recent_signals()
    return ApiResponse.ok(data={"signals": signals, "count": len(signals)})


@router.get("/market-data/{symbol}", response_model=ApiResponse)
async def get_market_data(
    symbol: str,
    interval: str = Query(default="1h"),
    limit: int = Query(default=50, ge=1, le=1000),
    svc: AnalyzerService = Depends(get_analyzer),
):
    try:
        data = await svc.market_snapshot(symbol, interval=interval, limit=limit)
    except InvalidSymbolError:
        raise
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return ApiResponse.ok(data=data)
