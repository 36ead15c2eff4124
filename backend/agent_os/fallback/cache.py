# -*- coding: utf-8 -*-
"""
Agent OS - 上下文预算与智能回退核心
Agent OS - Context Budgeting and Intelligent Fallback Core

Copyright © 2025-2026 Agent OS Team
License: PolyForm Noncommercial License 1.0.0

模块说明 / Module Description:
  回退缓存 - 带 TTL 与容量上限的键值存储，支持 LRU / FIFO 淘汰
  Fallback cache - TTL-bound, size-bounded key/value store with LRU or FIFO eviction.

语义 / Semantics:
  - get: 过期条目视为未命中并删除；命中刷新 LRU 访问时间
  - set: 新键且已满时恰好淘汰一个条目
  - peek: 忽略 TTL，供过期缓存兜底使用，不计入统计
  - 任何操作都不抛出异常
"""

import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from agent_os.config import config
from agent_os.utils.logger import get_logger

logger = get_logger(__name__)

EVICTION_STRATEGIES = ("lru", "fifo")


@dataclass
class CacheEntry:
    """缓存条目"""
    key: str
    value: Any
    inserted_at: float
    accessed_at: float
    access_count: int = 0


def make_cache_key(operation_name: str, context: Optional[Dict[str, Any]] = None) -> str:
    """
    生成缓存键 / Key from the operation name plus the context's query, params and options.

    Other context fields (timeouts, endpoints injected by recovery) do not
    change the key, so a recovered result is stored where the original call
    looks for it.
    """
    context = context or {}
    payload = json.dumps(
        {
            "operation": operation_name,
            "query": context.get("query"),
            "params": context.get("params"),
            "options": context.get("options"),
        },
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class CacheStore:
    """
    缓存存储

    Attributes:
        max_size (int): 最大条目数 / Maximum number of entries.
        ttl (float): 新鲜期（秒） / Freshness window in seconds.
        strategy (str): lru | fifo
    """

    def __init__(
        self,
        max_size: Optional[int] = None,
        ttl: Optional[float] = None,
        strategy: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        cache_cfg = config.get("cache", {})
        self.max_size = int(max_size if max_size is not None else cache_cfg.get("max_size", 1000))
        self.ttl = float(ttl if ttl is not None else cache_cfg.get("ttl", 24 * 60 * 60))
        strategy = (strategy or cache_cfg.get("strategy", "lru")).lower()
        if strategy not in EVICTION_STRATEGIES:
            logger.warning("Unknown cache strategy %s, using lru", strategy)
            strategy = "lru"
        self.strategy = strategy
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def size(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[Any]:
        """Fresh value for ``key`` or None. Expired entries are deleted."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            now = self._clock()
            if now - entry.inserted_at > self.ttl:
                del self._entries[key]
                self.misses += 1
                return None

            entry.accessed_at = now
            entry.access_count += 1
            self.hits += 1
            return entry.value

    def age(self, key: str) -> Optional[float]:
        """Seconds since ``key`` was stored, ignoring TTL."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        return self._clock() - entry.inserted_at

    def peek(self, key: str) -> Optional[Any]:
        """Value for ``key`` regardless of TTL. Touches neither stats nor access time."""
        entry = self._entries.get(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            now = self._clock()
            if key not in self._entries and self.max_size > 0 and len(self._entries) >= self.max_size:
                self._evict_one()
            if self.max_size <= 0:
                return
            self._entries[key] = CacheEntry(key=key, value=value, inserted_at=now, accessed_at=now)

    def _evict_one(self) -> None:
        if not self._entries:
            return
        if self.strategy == "fifo":
            victim = min(self._entries.values(), key=lambda e: e.inserted_at)
        else:
            victim = min(self._entries.values(), key=lambda e: e.accessed_at)
        del self._entries[victim.key]
        self.evictions += 1
        logger.debug("Evicted cache entry %s (%s)", victim.key[:12], self.strategy)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
            self.evictions = 0

    def estimate_memory_usage(self) -> int:
        """
        Rough byte estimate: two bytes per serialized character.

        Values that cannot be serialized (circular references) count as their
        ``repr`` length.
        """
        with self._lock:
            items = list(self._entries.items())
        total = 0
        for key, entry in items:
            total += len(key) * 2
            try:
                total += len(json.dumps(entry.value, default=str)) * 2
            except (TypeError, ValueError, RecursionError):
                total += len(repr(entry.value)) * 2
        return total

    def stats(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        hit_rate = self.hits / lookups if lookups else 0.0
        miss_rate = self.misses / lookups if lookups else 0.0
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "hit_rate": round(hit_rate, 4),
            "miss_rate": round(miss_rate, 4),
            "strategy": self.strategy,
            "ttl": self.ttl,
            "memory_usage": self.estimate_memory_usage(),
        }
