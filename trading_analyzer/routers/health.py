"""健康检查路由"""

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from trading_analyzer import __version__
from trading_analyzer.config import settings

router = APIRouter(tags=["健康检查"])


@router.get("/health")
async def health(request: Request):
    """服务健康检查"""
    analyzer = request.app.state.analyzer
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "success": True,
        "data": {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "service": "AI Trading Analyzer",
            "cache": analyzer.cache.stats(),
            "scheduler": {"running": bool(scheduler and scheduler.running)},
            "providers": {
                "series": settings.SERIES_PROVIDERS,
                "fundamentals": settings.FUNDAMENTALS_PROVIDERS,
            },
            "ai_enabled": bool(settings.OPENAI_API_KEY),
        },
        "message": "服务运行正常",
    }


@router.get("/healthz")
async def healthz():
    """Kubernetes liveness probe"""
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(request: Request):
    """Kubernetes readiness probe"""
    return {"ready": getattr(request.app.state, "analyzer", None) is not None}


@router.get("/api/status")
async def status(request: Request):
    """运行状态摘要：版本与缓存条目数"""
    return {
        "status": "running",
        "timestamp": datetime.now(tz=timezone.utc).isoformat(),
        "version": __version__,
        "cache_size": len(request.app.state.analyzer.cache),
    }
