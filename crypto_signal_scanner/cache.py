from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

log = logging.getLogger("cache")

_UNSAFE = re.compile(r"[^a-z0-9]")


def _now_ms() -> int:
    return int(time.time() * 1000)


def safe_key(key: str) -> str:
    return _UNSAFE.sub("_", key.lower())


class Cache:
    """Key -> value TTL cache, in memory with optional JSON spill to disk.

    Population is serialized per key so concurrent misses on the same key run
    the producer once. Persisted entries are read back on a memory miss and
    obey the same TTL.
    """

    def __init__(self, dir: str = ".cache", enabled: bool = True, clock: Callable[[], int] = _now_ms):
        self.dir = dir
        self.enabled = enabled
        self._clock = clock
        self._mem: Dict[str, Tuple[int, Any]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def cache_path(self, key: str) -> str:
        return os.path.join(self.dir, safe_key(key) + ".json")

    def _lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _fresh(self, stored_ms: int, ttl_ms: int) -> bool:
        return self._clock() - stored_ms < ttl_ms

    def get(self, key: str, ttl_ms: int) -> Tuple[bool, Any]:
        hit = self._mem.get(key)
        if hit is not None and self._fresh(hit[0], ttl_ms):
            return True, hit[1]
        return False, None

    def _read_disk(self, key: str, ttl_ms: int, decode: Optional[Callable[[Any], Any]]) -> Tuple[bool, Any]:
        path = self.cache_path(key)
        if not os.path.exists(path):
            return False, None
        try:
            with open(path, "r", encoding="utf-8") as f:
                doc = json.load(f)
            stored_ms = int(doc["timestamp"])
            if not self._fresh(stored_ms, ttl_ms):
                return False, None
            value = decode(doc["data"]) if decode else doc["data"]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            log.warning("cache_read_failed key=%s err=%r", key, e)
            return False, None
        self._mem[key] = (stored_ms, value)
        return True, value

    def _write_disk(self, key: str, stored_ms: int, value: Any, encode: Optional[Callable[[Any], Any]]) -> None:
        path = self.cache_path(key)
        try:
            os.makedirs(self.dir, exist_ok=True)
            tmp = path + ".tmp"
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump({"timestamp": stored_ms, "data": encode(value) if encode else value}, f)
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError) as e:
            log.warning("cache_write_failed key=%s err=%s", key, e)

    async def with_cache(
        self,
        key: str,
        producer: Callable[[], Awaitable[Any]],
        ttl_ms: int,
        persist: bool = False,
        encode: Optional[Callable[[Any], Any]] = None,
        decode: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        if not self.enabled:
            return await producer()

        hit, value = self.get(key, ttl_ms)
        if hit:
            return value

        async with self._lock(key):
            # another task may have populated it while we waited
            hit, value = self.get(key, ttl_ms)
            if hit:
                return value
            if persist:
                hit, value = self._read_disk(key, ttl_ms, decode)
                if hit:
                    log.debug("cache_disk_hit key=%s", key)
                    return value

            value = await producer()
            stored_ms = self._clock()
            self._mem[key] = (stored_ms, value)
            if persist:
                self._write_disk(key, stored_ms, value, encode)
            return value

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._mem.clear()
            if os.path.isdir(self.dir):
                for name in os.listdir(self.dir):
                    if name.endswith(".json"):
                        try:
                            os.remove(os.path.join(self.dir, name))
                        except OSError as e:
                            log.warning("cache_remove_failed file=%s err=%s", name, e)
            log.info("cache_cleared all")
            return

        self._mem.pop(key, None)
        path = self.cache_path(key)
        if os.path.exists(path):
            try:
                os.remove(path)
            except OSError as e:
                log.warning("cache_remove_failed file=%s err=%s", path, e)
        log.debug("cache_cleared key=%s", key)
