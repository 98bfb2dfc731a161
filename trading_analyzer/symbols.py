"""
交易对写法转换
统一的双向映射表：各数据源写法 ⇄ 规范写法（BASEQUOTE，全大写，如 BTCUSDT）。
两个 Fetcher 与缓存键共用同一个实例。
"""

import re
from typing import Dict, Optional, Tuple

from trading_analyzer.exceptions import InvalidSymbolError

# 各资产在需要特殊写法的数据源中的名称；未列出的数据源沿用基础代码
_DEFAULT_ASSETS: Dict[str, Dict[str, str]] = {
    "BTC": {"kraken": "XBT", "coingecko": "bitcoin"},
    "ETH": {"coingecko": "ethereum"},
    "ADA": {"coingecko": "cardano"},
    "DOT": {"coingecko": "polkadot"},
    "SOL": {"coingecko": "solana"},
    "XRP": {"coingecko": "ripple"},
    "DOGE": {"kraken": "XDG", "coingecko": "dogecoin"},
    "BNB": {"coingecko": "binancecoin"},
    "LTC": {"coingecko": "litecoin"},
    "LINK": {"coingecko": "chainlink"},
    "AVAX": {"coingecko": "avalanche-2"},
    "MATIC": {"coingecko": "matic-network"},
    "ATOM": {"coingecko": "cosmos"},
    "UNI": {"coingecko": "uniswap"},
    "WBTC": {"coingecko": "wrapped-bitcoin"},
    "STETH": {"coingecko": "staked-ether"},
}

# 按长度降序匹配后缀
_KNOWN_QUOTES = ("FDUSD", "USDT", "USDC", "BUSD", "USD", "EUR", "BTC", "ETH")

# CoinGecko 的 vs_currency 不区分稳定币
_USD_LIKE = {"USDT", "USDC", "BUSD", "FDUSD", "USD"}

_SEPARATORS = re.compile(r"[/\-_:\s]+")
_CODE = re.compile(r"^[A-Z0-9]{2,15}$")

# 这些数据源只认显式映射过的资产 ID
_ID_PROVIDERS = {"coingecko"}


class SymbolTranslator:
    """交易对规范化与各数据源写法的双向转换"""

    def __init__(
        self,
        assets: Optional[Dict[str, Dict[str, str]]] = None,
        default_quote: str = "USDT",
    ):
        self._assets = {k.upper(): dict(v) for k, v in (assets or _DEFAULT_ASSETS).items()}
        self._default_quote = default_quote.upper()
        # 反向表：(provider, 写法) -> 基础代码
        self._reverse: Dict[Tuple[str, str], str] = {}
        self._aliases: Dict[str, str] = {}
        for base, spellings in self._assets.items():
            for provider, spelling in spellings.items():
                self._reverse[(provider, spelling.upper())] = base
                self._aliases[spelling.upper()] = base

    @property
    def default_quote(self) -> str:
        return self._default_quote

    # ── 规范化 ────────────────────────────────────────────

    def canonicalize(self, raw: str) -> str:
        """任意可接受的写法 → 规范写法；无法识别时抛出 InvalidSymbolError"""
        base, quote = self._parse(raw)
        return base + quote

    def split(self, symbol: str) -> Tuple[str, str]:
        """规范写法 → (base, quote)"""
        return self._parse(symbol)

    def _parse(self, raw: str) -> Tuple[str, str]:
        if not isinstance(raw, str) or not raw.strip():
            raise InvalidSymbolError("交易对不能为空", symbol=raw if isinstance(raw, str) else None)
        text = raw.strip().upper()

        if text in self._aliases:
            return self._aliases[text], self._default_quote
        if text in self._assets:
            return text, self._default_quote

        parts = [p for p in _SEPARATORS.split(text) if p]
        if len(parts) == 2:
            base, quote = parts
        elif len(parts) == 1:
            base, quote = self._split_compact(parts[0])
        else:
            raise InvalidSymbolError(f"无法识别的交易对: {raw}", symbol=raw)

        base = self._aliases.get(base, base)
        if not _CODE.match(base) or not _CODE.match(quote):
            raise InvalidSymbolError(f"无法识别的交易对: {raw}", symbol=raw)
        return base, quote

    def _split_compact(self, text: str) -> Tuple[str, str]:
        # 基础代码至少两个字符，否则整体视为基础代码（如 WBTC）
        for quote in _KNOWN_QUOTES:
            if text.endswith(quote) and len(text) - len(quote) >= 2:
                return text[: -len(quote)], quote
        return text, self._default_quote

    # ── 数据源写法 ────────────────────────────────────────

    def to_provider(self, symbol: str, provider: str) -> str:
        """规范写法 → 指定数据源的查询目标"""
        base, quote = self._parse(symbol)
        spelling = self._assets.get(base, {}).get(provider)
        if provider in _ID_PROVIDERS:
            if spelling is None:
                raise InvalidSymbolError(f"{provider} 未收录资产 {base}", symbol=base + quote)
            return spelling
        if provider == "coinmarketcap":
            return spelling or base
        return (spelling or base) + quote

    def from_provider(self, provider: str, spelling: str) -> str:
        """数据源写法 → 规范写法"""
        key = (provider, spelling.upper())
        if key in self._reverse:
            return self._reverse[key] + self._default_quote
        return self.canonicalize(spelling)

    def vs_currency(self, symbol: str) -> str:
        """CoinGecko 计价货币"""
        _, quote = self._parse(symbol)
        return "usd" if quote in _USD_LIKE else quote.lower()


# ── 模块级别单例 ──────────────────────────────────────────
_translator: Optional[SymbolTranslator] = None


def get_symbol_translator() -> SymbolTranslator:
    global _translator
    if _translator is None:
        from trading_analyzer.config import settings
        _translator = SymbolTranslator(default_quote=settings.DEFAULT_QUOTE)
    return _translator
