"""
Layer 1b – 基本面数据获取
与 K 线获取同样的按优先级回退结构（CoinMarketCap → CoinGecko），
但所有数据源失败时不抛异常，返回全空快照：基本面只是决策参考。
"""

import contextlib
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import httpx

from trading_analyzer.config import settings
from trading_analyzer.exceptions import InvalidSymbolError, MalformedDataError, ProviderError
from trading_analyzer.layers.acquisition import request_json
from trading_analyzer.models.market import FundamentalsSnapshot
from trading_analyzer.symbols import SymbolTranslator, get_symbol_translator

logger = logging.getLogger(__name__)


def _opt_float(value: Any) -> Optional[float]:
    """缺失或非数值字段保持为 None，而不是 0"""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class FundamentalsFetcher:
    """基本面获取：按优先级回退，失败时降级为全空快照"""

    def __init__(
        self,
        providers: Optional[Sequence[str]] = None,
        translator: Optional[SymbolTranslator] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self._providers = list(providers or settings.FUNDAMENTALS_PROVIDERS)
        self._translator = translator or get_symbol_translator()
        self._client = client
        self._timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT
        self._handlers: Dict[str, Callable[..., Any]] = {
            "coinmarketcap": self._fetch_coinmarketcap,
            "coingecko": self._fetch_coingecko,
        }
        unknown = [p for p in self._providers if p not in self._handlers]
        if unknown:
            raise ValueError(f"未知的基本面数据源: {unknown}")

    @property
    def providers(self) -> List[str]:
        return list(self._providers)

    async def fetch(self, symbol: str) -> FundamentalsSnapshot:
        """获取基本面快照，永不因数据源失败而抛出异常"""
        async with self._session() as client:
            for provider in self._providers:
                try:
                    snapshot = await self._handlers[provider](client, symbol)
                    logger.info(f"基本面获取成功（来源：{provider}）: {symbol}")
                    return snapshot
                except (ProviderError, MalformedDataError, InvalidSymbolError) as exc:
                    logger.warning(f"基本面获取失败（来源：{provider}）: {symbol} {exc}")

        logger.warning(f"所有基本面数据源均不可用，使用空快照: {symbol}")
        return FundamentalsSnapshot.empty()

    def query_target(self, symbol: str, provider: str) -> str:
        """指定数据源实际查询的资产写法"""
        return self._translator.to_provider(symbol, provider)

    def _session(self):
        if self._client is not None:
            return contextlib.nullcontext(self._client)
        return httpx.AsyncClient(timeout=self._timeout)

    # ── CoinMarketCap ─────────────────────────────────────

    async def _fetch_coinmarketcap(self, client, symbol: str) -> FundamentalsSnapshot:
        if not settings.COINMARKETCAP_API_KEY:
            raise ProviderError("coinmarketcap", "COINMARKETCAP_API_KEY 未配置", symbol=symbol)
        target = self.query_target(symbol, "coinmarketcap")
        payload = await request_json(
            client,
            "coinmarketcap",
            f"{settings.COINMARKETCAP_BASE_URL}/v1/cryptocurrency/quotes/latest",
            self._timeout,
            params={"symbol": target},
            headers={"X-CMC_PRO_API_KEY": settings.COINMARKETCAP_API_KEY},
        )
        try:
            data = payload["data"][target]
            if isinstance(data, list):
                data = data[0]
            quote = data["quote"]["USD"]
            if not isinstance(data, dict) or not isinstance(quote, dict):
                raise MalformedDataError(f"coinmarketcap 返回的 {target} 行情格式错误")
        except (KeyError, IndexError, TypeError) as exc:
            raise MalformedDataError(f"coinmarketcap 响应缺少 {target} 行情: {exc}") from exc
        return FundamentalsSnapshot(
            market_cap=_opt_float(quote.get("market_cap")),
            volume_24h=_opt_float(quote.get("volume_24h")),
            percent_change_1h=_opt_float(quote.get("percent_change_1h")),
            percent_change_24h=_opt_float(quote.get("percent_change_24h")),
            percent_change_7d=_opt_float(quote.get("percent_change_7d")),
            circulating_supply=_opt_float(data.get("circulating_supply")),
            total_supply=_opt_float(data.get("total_supply")),
            source="coinmarketcap",
        )

    # ── CoinGecko ─────────────────────────────────────────

    async def _fetch_coingecko(self, client, symbol: str) -> FundamentalsSnapshot:
        coin_id = self.query_target(symbol, "coingecko")
        headers = {"x-cg-demo-api-key": settings.COINGECKO_API_KEY} if settings.COINGECKO_API_KEY else None
        payload = await request_json(
            client,
            "coingecko",
            f"{settings.COINGECKO_BASE_URL}/coins/markets",
            self._timeout,
            params={
                "vs_currency": self._translator.vs_currency(symbol),
                "ids": coin_id,
                "price_change_percentage": "1h,24h,7d",
            },
            headers=headers,
        )
        if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
            raise MalformedDataError(f"coingecko 响应中缺少 {coin_id}")
        coin = payload[0]
        return FundamentalsSnapshot(
            market_cap=_opt_float(coin.get("market_cap")),
            volume_24h=_opt_float(coin.get("total_volume")),
            percent_change_1h=_opt_float(coin.get("price_change_percentage_1h_in_currency")),
            percent_change_24h=_opt_float(coin.get("price_change_percentage_24h_in_currency")),
            percent_change_7d=_opt_float(coin.get("price_change_percentage_7d_in_currency")),
            circulating_supply=_opt_float(coin.get("circulating_supply")),
            total_supply=_opt_float(coin.get("total_supply")),
            source="coingecko",
        )
