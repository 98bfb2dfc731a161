"""
缓存管理路由
GET    /api/cache/stats  - 缓存统计
DELETE /api/cache        - 清空缓存
POST   /api/cache/sweep  - 立即清理过期条目
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from trading_analyzer.models.response import ApiResponse
from trading_analyzer.routers.analysis import get_analyzer
from trading_analyzer.services.analyzer_service import AnalyzerService

router = APIRouter(prefix="/api/cache", tags=["缓存管理"])


@router.get("/stats", response_model=ApiResponse)
async def cache_stats(svc: AnalyzerService = Depends(get_analyzer)):
    """获取缓存统计信息"""
    return ApiResponse.ok(data={**svc.cache.stats(), "keys": svc.cache.keys()})


@router.delete("", response_model=ApiResponse)
async def clear_cache(svc: AnalyzerService = Depends(get_analyzer)):
    """清空全部分析缓存"""
    cleared = svc.cache.clear()
    return ApiResponse.ok(
        data={"cleared_items": cleared, "timestamp": datetime.now(tz=timezone.utc).isoformat()},
        message="Cache cleared",
    )


@router.post("/sweep", response_model=ApiResponse)
async def sweep_cache(svc: AnalyzerService = Depends(get_analyzer)):
    """立即执行一次过期清理"""
    removed = svc.cache.evict_expired()
    return ApiResponse.ok(data={"removed": removed})
