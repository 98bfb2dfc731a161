"""
AI Trading Analyzer 行情分析服务
多数据源 K 线获取 → 标准化 → 技术指标 → AI 决策 → TTL 缓存

架构分层：
  获取层 (Acquisition)   → 按优先级回退的 K 线 / 基本面数据源
  处理层 (Processing)    → 原始响应标准化为 Candle 序列
  分析层 (Analysis)      → EMA / RSI / Stochastic RSI / 趋势 / 交叉
  缓存层 (Cache)         → 按规范交易对缓存分析结果
"""

__version__ = "1.0.0"
