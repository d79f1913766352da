"""
Access info cache for modswitch.

Caches the resolved module status list per (workspace, user). Entries are
immutable and replaced whole, so a reader sees either the previous list or the
new one, never a mix. Entries past ``stale_threshold`` of their TTL are still
served while a background task recomputes them.
"""

import asyncio
import threading
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from modswitch.modules.errors import CacheMissError
from modswitch.modules.interfaces import ModuleStatus
from modswitch.utils.config import ModswitchSettings
from modswitch.utils.logging import setup_logging

logger = setup_logging(__name__)

CacheKey = tuple[str, str]
StatusLoader = Callable[[str, str], Awaitable[Sequence[ModuleStatus]]]


@dataclass(frozen=True)
class CacheEntry:
    """Resolved statuses for one (workspace, user) pair."""
    statuses: tuple[ModuleStatus, ...]
    created_at: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        return now >= self.created_at + self.ttl_seconds

    def is_stale(self, now: float, staleness_threshold: float) -> bool:
        return now - self.created_at >= self.ttl_seconds * staleness_threshold


class ModuleAccessCache:
    """TTL cache of module status lists with stale-while-revalidate."""

    def __init__(
        self,
        ttl_seconds: float = 300,
        stale_threshold: float = 0.8,
        stale_while_revalidate: bool = True,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic
    ):
        """Initialize the cache.

        Args:
            ttl_seconds: Lifetime of an entry
            stale_threshold: Fraction of the TTL after which a hit triggers a
                background refresh
            stale_while_revalidate: Disable to only ever recompute on expiry
            max_entries: LRU bound on cached (workspace, user) pairs
            clock: Monotonic time source
        """
        self.ttl_seconds = ttl_seconds
        self.stale_threshold = stale_threshold
        self.stale_while_revalidate = stale_while_revalidate
        self.max_entries = max_entries
        self._clock = clock

        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        # Invalidation counters, kept only while a workspace has loads in flight
        self._epoch = 0
        self._generations: dict[str, int] = {}
        self._loading: dict[str, int] = {}
        self._refreshing: dict[CacheKey, asyncio.Task] = {}
        self._stats = {
            'hits': 0,
            'misses': 0,
            'stale_hits': 0,
            'refreshes': 0,
            'refresh_errors': 0,
            'discarded_loads': 0,
            'evictions': 0,
            'invalidations': 0,
            'total_requests': 0
        }
        self._lock = threading.RLock()

        logger.info(
            f"Module access cache initialized: ttl={ttl_seconds}s, "
            f"stale_while_revalidate={stale_while_revalidate}, max_entries={max_entries}"
        )

    @classmethod
    def from_settings(cls, settings: ModswitchSettings) -> "ModuleAccessCache":
        config = settings.get_cache_config()
        return cls(
            ttl_seconds=config["ttl_seconds"],
            stale_threshold=config["stale_threshold"],
            stale_while_revalidate=config["stale_while_revalidate"],
            max_entries=config["max_entries"],
        )

    async def get(self, workspace_id: str, user_id: str, loader: StatusLoader) -> list[ModuleStatus]:
        """Return cached statuses, recomputing through ``loader`` on a miss.

        Args:
            workspace_id: Workspace the statuses belong to
            user_id: User the statuses were resolved for
            loader: Coroutine function computing fresh statuses

        Returns:
            Module statuses for the pair
        """
        key = (workspace_id, user_id)
        try:
            entry = self._lookup(key)
        except CacheMissError:
            statuses, _ = await self._load(key, loader)
            return list(statuses)

        if self.stale_while_revalidate and entry.is_stale(self._clock(), self.stale_threshold):
            with self._lock:
                self._stats['stale_hits'] += 1
            self._schedule_refresh(key, loader)

        return list(entry.statuses)

    def _lookup(self, key: CacheKey) -> CacheEntry:
        with self._lock:
            self._stats['total_requests'] += 1
            entry = self._entries.get(key)

            if entry is None:
                self._stats['misses'] += 1
                raise CacheMissError(f"No cached statuses for {key}")

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._stats['misses'] += 1
                logger.debug(f"Access cache entry expired for {key}")
                raise CacheMissError(f"Cached statuses expired for {key}")

            self._entries.move_to_end(key)
            self._stats['hits'] += 1
            return entry

    async def _load(self, key: CacheKey, loader: StatusLoader) -> tuple[tuple[ModuleStatus, ...], bool]:
        """Compute statuses and store them unless the cache was invalidated meanwhile.

        Returns:
            The statuses and whether they were stored
        """
        workspace_id, user_id = key
        with self._lock:
            started = (self._epoch, self._generations.get(workspace_id, 0))
            self._loading[workspace_id] = self._loading.get(workspace_id, 0) + 1

        try:
            statuses = tuple(await loader(workspace_id, user_id))
            return statuses, self._swap(key, statuses, started)
        finally:
            with self._lock:
                remaining = self._loading[workspace_id] - 1
                if remaining:
                    self._loading[workspace_id] = remaining
                else:
                    del self._loading[workspace_id]
                    self._generations.pop(workspace_id, None)

    def _swap(self, key: CacheKey, statuses: tuple[ModuleStatus, ...], started: tuple[int, int]) -> bool:
        with self._lock:
            # A result computed before an invalidation or clear must not be cached
            if (self._epoch, self._generations.get(key[0], 0)) != started:
                self._stats['discarded_loads'] += 1
                logger.debug(f"Discarding access statuses for {key} computed before invalidation")
                return False

            self._entries[key] = CacheEntry(statuses=statuses, created_at=self._clock(), ttl_seconds=self.ttl_seconds)
            self._entries.move_to_end(key)

            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self._stats['evictions'] += 1
            return True

    def _schedule_refresh(self, key: CacheKey, loader: StatusLoader) -> None:
        with self._lock:
            task = self._refreshing.get(key)
            if task is not None and not task.done():
                return
            self._refreshing[key] = asyncio.get_running_loop().create_task(self._refresh(key, loader))
        logger.debug(f"Background refresh scheduled for {key}")

    async def _refresh(self, key: CacheKey, loader: StatusLoader) -> None:
        try:
            _, stored = await self._load(key, loader)
            if stored:
                with self._lock:
                    self._stats['refreshes'] += 1
        except Exception as e:
            # The stale entry keeps being served until it expires
            with self._lock:
                self._stats['refresh_errors'] += 1
            logger.warning(f"Background refresh failed for {key}: {e}")
        finally:
            with self._lock:
                if self._refreshing.get(key) is asyncio.current_task():
                    del self._refreshing[key]

    async def drain(self) -> None:
        """Wait for pending background refreshes."""
        with self._lock:
            tasks = [task for task in self._refreshing.values() if not task.done()]
        if tasks:
            await asyncio.gather(*tasks)

    def invalidate(self, workspace_id: str) -> int:
        """Drop every cached entry of a workspace.

        Returns:
            Number of entries removed
        """
        with self._lock:
            keys = [key for key in self._entries if key[0] == workspace_id]
            for key in keys:
                del self._entries[key]
            if workspace_id in self._loading:
                self._generations[workspace_id] = self._generations.get(workspace_id, 0) + 1
            self._stats['invalidations'] += 1

        logger.debug(f"Invalidated {len(keys)} access cache entries for {workspace_id}")
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._epoch += 1
            for name in self._stats:
                self._stats[name] = 0
            logger.info("Module access cache cleared")

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            hit_rate = 0.0
            if self._stats['total_requests'] > 0:
                hit_rate = self._stats['hits'] / self._stats['total_requests']

            return {
                'size': len(self._entries),
                'max_entries': self.max_entries,
                'ttl_seconds': self.ttl_seconds,
                **self._stats,
                'hit_rate': hit_rate
            }
