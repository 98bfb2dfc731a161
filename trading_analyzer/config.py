"""
分析服务配置模块
支持从环境变量 / .env 读取配置：数据提供商、缓存 TTL、调度周期、AI 决策参数
"""

import logging
import os
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalyzerSettings(BaseSettings):
    """AI 交易分析服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=3000)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── 交易参数（透传给决策步骤） ─────────────────────────
    DEFAULT_SYMBOL: str = Field(default="BTCUSDT")
    DEFAULT_INTERVAL: str = Field(default="1h")
    DEFAULT_LIMIT: int = Field(default=100)
    DEFAULT_QUOTE: str = Field(default="USDT")
    LEVERAGE: int = Field(default=10)
    POSITION_SIZE: float = Field(default=1000)
    RISK_TOLERANCE: str = Field(default="medium")
    AVAILABLE_BALANCE: float = Field(default=10000)

    # ── K 线数据源（按优先级排列） ─────────────────────────
    SERIES_PROVIDERS: List[str] = Field(
        default_factory=lambda: ["binance", "kraken", "coingecko"]
    )
    BINANCE_BASE_URL: str = Field(default="https://api.binance.com")
    KRAKEN_BASE_URL: str = Field(default="https://api.kraken.com")
    COINGECKO_BASE_URL: str = Field(default="https://api.coingecko.com/api/v3")
    COINGECKO_API_KEY: str = Field(default="")

    # ── 基本面数据源 ──────────────────────────────────────
    FUNDAMENTALS_PROVIDERS: List[str] = Field(
        default_factory=lambda: ["coinmarketcap", "coingecko"]
    )
    COINMARKETCAP_BASE_URL: str = Field(default="https://pro-api.coinmarketcap.com")
    COINMARKETCAP_API_KEY: str = Field(default="")

    PROVIDER_TIMEOUT: float = Field(default=10.0)   # 单次请求超时（秒）

    # ── AI 决策配置 ────────────────────────────────────────
    OPENAI_API_KEY: str = Field(default="")
    AI_MODEL: str = Field(default="gpt-4")
    AI_TEMPERATURE: float = Field(default=0.1)
    MAX_TOKENS: int = Field(default=1000)

    # ── 缓存 / 调度配置 ────────────────────────────────────
    CACHE_TTL: int = Field(default=300)                      # 分析结果 TTL（秒）
    CACHE_SWEEP_INTERVAL_SECONDS: int = Field(default=3600)  # 过期清理周期
    ANALYSIS_INTERVAL_SECONDS: int = Field(default=900)      # 自动分析周期
    SCHEDULER_ENABLED: bool = Field(default=True)
    WATCHLIST: List[str] = Field(
        default_factory=lambda: ["BTCUSDT", "ETHUSDT", "ADAUSDT", "DOTUSDT"]
    )

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="")                        # 为空时只输出到控制台
    LOG_FILE_MAX_BYTES: int = Field(default=10 * 1024 * 1024)
    LOG_FILE_BACKUP_COUNT: int = Field(default=5)


@lru_cache
def get_settings() -> AnalyzerSettings:
    """获取全局配置（单例）"""
    return AnalyzerSettings()


settings = get_settings()


def configure_logging(config: AnalyzerSettings = settings) -> None:
    """控制台日志；配置了 LOG_FILE 时同时写入滚动日志文件"""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if config.LOG_FILE:
        log_dir = os.path.dirname(config.LOG_FILE)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(RotatingFileHandler(
            config.LOG_FILE,
            maxBytes=config.LOG_FILE_MAX_BYTES,
            backupCount=config.LOG_FILE_BACKUP_COUNT,
            encoding="utf-8",
        ))
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
