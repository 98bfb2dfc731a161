"""
命令行快速分析

用法:
    python -m trading_analyzer.cli BTCUSDT
    python -m trading_analyzer.cli eth/usdt --interval 4h --json
"""

import argparse
import asyncio
import json
import sys
import time
from typing import List, Optional

from trading_analyzer.config import configure_logging
from trading_analyzer.exceptions import MarketDataError
from trading_analyzer.models.market import AnalysisResult
from trading_analyzer.services.analyzer_service import build_analyzer_service


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trading-analyzer",
        description="对单个交易对执行一次完整分析（K 线 + 指标 + 基本面 + AI 决策）",
    )
    parser.add_argument("symbol", nargs="?", default=None, help="交易对，如 BTCUSDT、eth/usdt")
    parser.add_argument("--interval", default=None, help="K 线周期，如 1h、4h、1d")
    parser.add_argument("--json", action="store_true", help="以 JSON 输出完整结果")
    return parser


def render(result: AnalysisResult, duration_ms: float) -> str:
    decision = result.analysis
    raw = result.raw_data
    lines = [
        "📊 ANALYSIS RESULT",
        "==================",
        f"Symbol      : {result.symbol}",
        f"Duration    : {duration_ms:.0f}ms",
        f"Last price  : ${raw.get('last_price')}",
        f"Trend       : {raw.get('trend')}",
        f"Crossover   : {raw.get('crossover') or 'none'}",
        "",
        "🤖 AI DECISION",
        "==============",
        f"Decision    : {decision.get('decision')}",
        f"Confidence  : {decision.get('confidence')}",
    ]
    for label, key in (
        ("Entry price", "entry_price"),
        ("Stop loss  ", "stop_loss"),
        ("Take profit", "take_profit"),
        ("Risk/Reward", "risk_reward_ratio"),
    ):
        if decision.get(key) is not None:
            lines.append(f"{label} : {decision[key]}")
    for title, key in (("✅ REASONS", "reasons"), ("⚠️  WARNINGS", "warnings")):
        items = decision.get(key) or []
        if items:
            lines.append("")
            lines.append(title)
            lines.extend(f"{i}. {item}" for i, item in enumerate(items, 1))
    return "\n".join(lines)


async def _run(symbol: Optional[str], interval: Optional[str]) -> AnalysisResult:
    service = build_analyzer_service()
    profile = service.resolve_profile(symbol=symbol, interval=interval) if (symbol or interval) else None
    return await service.analyze(symbol, profile=profile)


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    configure_logging()
    start = time.time()
    try:
        result = asyncio.run(_run(args.symbol, args.interval))
    except MarketDataError as exc:
        print(f"❌ 分析失败 [{exc.code}] {exc.symbol}: {exc.message}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"❌ 参数错误: {exc}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2))
    else:
        print(render(result, (time.time() - start) * 1000))
    return 0


if __name__ == "__main__":
    sys.exit(main())
