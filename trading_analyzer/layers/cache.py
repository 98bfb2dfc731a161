"""
Layer 4 – 分析结果缓存
内存 TTL 缓存：键为规范交易对，值为不透明的分析结果。
get 自行判断是否过期；evict_expired 只是限制内存的周期性清理。
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from trading_analyzer.symbols import SymbolTranslator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    inserted_at: float

    def age(self, now: float) -> float:
        return now - self.inserted_at


class AnalysisCache:
    """线程安全的 TTL 缓存，写入时后写者覆盖"""

    def __init__(
        self,
        ttl: float,
        clock: Callable[[], float] = time.time,
        translator: Optional[SymbolTranslator] = None,
    ):
        if ttl <= 0:
            raise ValueError(f"TTL 必须为正数: {ttl}")
        self._ttl = float(ttl)
        self._clock = clock
        self._translator = translator
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    def now(self) -> float:
        return self._clock()

    def key_for(self, symbol: str) -> str:
        """交易对的缓存键（注入了 translator 时先规范化）"""
        if self._translator is None:
            return symbol
        return self._translator.canonicalize(symbol)

    def get(self, symbol: str) -> Optional[CacheEntry]:
        """命中条件：now - inserted_at < TTL；过期条目即使仍在存储中也视为未命中"""
        key = self.key_for(symbol)
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.age(self._clock()) >= self._ttl:
            logger.debug(f"缓存已过期: {key}")
            return None
        logger.debug(f"缓存命中: {key}")
        return entry

    def peek(self, symbol: str) -> Optional[CacheEntry]:
        """不判断是否过期，直接读取存储中的条目"""
        key = self.key_for(symbol)
        with self._lock:
            return self._entries.get(key)

    def put(self, symbol: str, value: Any) -> CacheEntry:
        key = self.key_for(symbol)
        entry = CacheEntry(key=key, value=value, inserted_at=self._clock())
        with self._lock:
            self._entries[key] = entry
        logger.debug(f"缓存写入: {key}")
        return entry

    def evict_expired(self, now: Optional[float] = None) -> int:
        """删除 now - inserted_at > TTL 的条目，返回删除数量"""
        if now is None:
            now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.age(now) > self._ttl]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"已清理 {len(expired)} 个过期缓存条目")
        return len(expired)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"已清空缓存（{count} 个条目）")
        return count

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict:
        now = self._clock()
        with self._lock:
            entries = list(self._entries.values())
        fresh = sum(1 for e in entries if e.age(now) < self._ttl)
        return {
            "size": len(entries),
            "fresh": fresh,
            "stale": len(entries) - fresh,
            "ttl_seconds": self._ttl,
        }
