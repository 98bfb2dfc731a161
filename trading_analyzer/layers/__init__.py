"""
数据流分层架构
  Layer 1  – Acquisition  : K 线获取（多数据源按优先级回退）
  Layer 1b – Fundamentals : 基本面获取（失败降级为空快照）
  Layer 2  – Processing   : 原始响应标准化为 Candle 序列
  Layer 3  – Analysis     : 技术指标与交叉信号
  Layer 4  – Cache        : 分析结果 TTL 缓存
"""
