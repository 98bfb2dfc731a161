"""
AI 决策服务
把数据包交给大模型，得到 BUY / SELL / WAIT 结构化决策。
解析采用严格模式：只接受唯一且格式完整的 JSON 对象，否则返回固定的“无结论”结果。
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from trading_analyzer.config import settings

logger = logging.getLogger(__name__)

DECISIONS = {"BUY", "SELL", "WAIT"}
CONFIDENCES = {"High", "Medium", "Low"}

INCONCLUSIVE_DECISION: Dict[str, Any] = {
    "decision": "WAIT",
    "confidence": "Low",
    "entry_price": None,
    "stop_loss": None,
    "take_profit": None,
    "risk_reward_ratio": None,
    "reasons": ["AI response unavailable or not parseable"],
    "warnings": ["Re-run the analysis before acting"],
    "inconclusive": True,
}

SYSTEM_PROMPT = (
    "You are an expert in technical analysis and cryptocurrency trading. "
    "You analyse market data and return structured recommendations as JSON only."
)

_FENCED = re.compile(r"^```(?:json)?\s*(\{.*\})\s*```$", re.DOTALL)


def inconclusive() -> Dict[str, Any]:
    return json.loads(json.dumps(INCONCLUSIVE_DECISION))


def parse_decision(text: Optional[str]) -> Dict[str, Any]:
    """
    严格解析模型输出

    只接受整段为一个 JSON 对象（允许包裹在单个 ```json 代码块中），
    且 decision / confidence 取值合法；其他任何输入都返回无结论结果。
    """
    if not text:
        return inconclusive()
    body = text.strip()
    fenced = _FENCED.match(body)
    if fenced:
        body = fenced.group(1)
    if not (body.startswith("{") and body.endswith("}")):
        return inconclusive()
    try:
        parsed = json.loads(body)
    except ValueError:
        return inconclusive()
    if not isinstance(parsed, dict):
        return inconclusive()
    if parsed.get("decision") not in DECISIONS or parsed.get("confidence") not in CONFIDENCES:
        return inconclusive()
    parsed.setdefault("inconclusive", False)
    return parsed


def build_prompt(package: Dict[str, Any]) -> str:
    indicators = package["technical_indicators"]
    return f"""
# Trading analysis

## Task
Analyse the trading data below and recommend **BUY**, **SELL** or **WAIT**.

## Context
- **Symbol**: {package['symbol']}
- **Interval**: {package['interval']}
- **Leverage**: {package['leverage']}x (high risk!)
- **Position size**: ${package['position_size']}
- **Risk tolerance**: {package['risk_tolerance']}

## Data

### Latest OHLCV candles:
{json.dumps(package['ohlcv_data']['candles'][-5:], indent=2)}

### Technical indicators:
- **Fast EMA (12)**: {indicators['fast_ema'][-3:]}
- **Slow EMA (25)**: {indicators['slow_ema'][-3:]}
- **RSI (14)**: {indicators['rsi'][-3:]}
- **Stochastic RSI**: {indicators['stoch_rsi'][-3:]}
- **Trend**: {indicators['trend']}
- **EMA crossover**: {indicators['crossover']}

### Market context:
{json.dumps(package['market_context'], indent=2)}

### Recent signals:
{json.dumps(package['recent_signals'], indent=2)}

## Required response format (JSON):
{{
  "decision": "BUY|SELL|WAIT",
  "confidence": "High|Medium|Low",
  "entry_price": number,
  "stop_loss": number,
  "take_profit": number,
  "risk_reward_ratio": number,
  "position_size": {package['position_size']},
  "reasons": ["reason 1", "reason 2"],
  "warnings": ["warning 1", "warning 2"],
  "analysis": {{
    "trend_strength": "Strong|Medium|Weak",
    "volume_confirmation": true,
    "support_resistance": "levels",
    "market_sentiment": "Bullish|Bearish|Neutral"
  }}
}}

Reply with the JSON object only.
"""


class DecisionService:
    """调用 OpenAI 生成交易决策"""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self._api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self._model = model or settings.AI_MODEL
        self._client = None

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    def _get_client(self):
        if self._client is None:
            import openai
            self._client = openai.AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def decide(self, package: Dict[str, Any]) -> Dict[str, Any]:
        """返回结构化决策；未配置密钥或调用失败时返回无结论结果"""
        if not self.enabled:
            logger.warning("OPENAI_API_KEY 未配置，跳过 AI 决策")
            return inconclusive()

        import openai
        try:
            response = await self._get_client().chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(package)},
                ],
                temperature=settings.AI_TEMPERATURE,
                max_tokens=settings.MAX_TOKENS,
            )
        except openai.OpenAIError as exc:
            logger.error(f"AI 决策调用失败: {exc}")
            return inconclusive()

        decision = parse_decision(response.choices[0].message.content)
        logger.info(
            f"AI 决策: {package['symbol']} {decision['decision']} ({decision['confidence']})"
        )
        return decision


# ── 模块级别单例 ──────────────────────────────────────────
_decision_service: Optional[DecisionService] = None


def get_decision_service() -> DecisionService:
    global _decision_service
    if _decision_service is None:
        _decision_service = DecisionService()
    return _decision_service
