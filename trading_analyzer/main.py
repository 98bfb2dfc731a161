"""
AI Trading Analyzer
独立 FastAPI 应用程序入口

启动方式:
    uvicorn trading_analyzer.main:app --host 0.0.0.0 --port 3000
    python -m trading_analyzer.main
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from trading_analyzer import __version__
from trading_analyzer.config import configure_logging, settings
from trading_analyzer.exceptions import MarketDataError
from trading_analyzer.models.response import ApiResponse
from trading_analyzer.routers import analysis, cache, config, health
from trading_analyzer.services.analyzer_service import build_analyzer_service
from trading_analyzer.services.scheduler import AnalysisScheduler

# ── 日志配置 ──────────────────────────────────────────────
configure_logging()
logger = logging.getLogger(__name__)

_ERROR_STATUS = {
    "invalid_symbol": 400,
    "insufficient_data": 422,
    "data_unavailable": 502,
    "malformed_data": 502,
}


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子"""
    logger.info("=" * 60)
    logger.info(f"🚀 AI Trading Analyzer v{__version__} 启动中")
    logger.info(f"   K 线数据源 : {' → '.join(settings.SERIES_PROVIDERS)}")
    logger.info(f"   基本面数据源: {' → '.join(settings.FUNDAMENTALS_PROVIDERS)}")
    logger.info(f"   缓存 TTL    : {settings.CACHE_TTL}s")
    logger.info("=" * 60)

    if not settings.OPENAI_API_KEY:
        logger.warning("⚠️ OPENAI_API_KEY 未配置，AI 决策将返回无结论结果")
    if not settings.COINMARKETCAP_API_KEY:
        logger.warning("⚠️ COINMARKETCAP_API_KEY 未配置，基本面将只使用备用数据源")

    app.state.analyzer = build_analyzer_service()
    app.state.scheduler = AnalysisScheduler(app.state.analyzer)
    if settings.SCHEDULER_ENABLED:
        app.state.scheduler.start()

    yield

    logger.info("🔄 分析服务正在关闭...")
    await app.state.scheduler.stop()
    logger.info("✅ 分析服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="AI Trading Analyzer",
    description=(
        "加密货币行情分析服务：\n"
        "- 📊 多数据源 K 线（Binance → Kraken → CoinGecko）\n"
        "- 🌐 基本面数据（CoinMarketCap → CoinGecko）\n"
        "- 📈 技术指标（EMA 12/25、RSI 14、Stochastic RSI）\n"
        "- 🤖 AI 决策（BUY / SELL / WAIT）\n"
        "- 🗄️ 分析结果 TTL 缓存"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 异常处理 ──────────────────────────────────────────────
@app.exception_handler(MarketDataError)
async def market_data_exception_handler(request: Request, exc: MarketDataError):
    logger.warning(f"分析失败 {exc.symbol}: [{exc.code}] {exc}")
    body = ApiResponse.from_error(exc)
    return JSONResponse(status_code=_ERROR_STATUS.get(exc.code, 500), content=body.model_dump())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "内部服务错误", "message": str(exc)},
    )


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(analysis.router)
app.include_router(cache.router)
app.include_router(config.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "AI Trading Analyzer",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "trading_analyzer.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
