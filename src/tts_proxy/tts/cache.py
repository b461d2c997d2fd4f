"""
In-memory audio cache with TTL and bounded size.

Features:
    - Absolute expiry per entry (now + ttl at insert time)
    - Oldest-inserted eviction when full (reads do not refresh position)
    - Expired entries removed on read, plus a best-effort timer that
      removes them shortly after expiry when an event loop is running
    - Thread-safe operations and hit/miss statistics

Cache keys come from make_cache_key(): demo calls live in their own
namespace and the full text is hashed, so long texts sharing a prefix
never collide.

Example:
    >>> cache = AudioCache(max_size=100, ttl_seconds=3600)
    >>> key = make_cache_key(request)
    >>> cache.put(key, AudioAsset(data=b"...", source_format="mp3"))
    >>> cache.get(key)
    AudioAsset(data=b'...', source_format='mp3')
"""
from __future__ import annotations

import asyncio
import hashlib
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from tts_proxy.core.config import Defaults
from tts_proxy.core.logging import get_logger, verbose
from tts_proxy.tts.models import AudioAsset, SpeechRequest

_LOG = get_logger("tts-proxy.cache")

# Timer fires this long after expiry so a read at the boundary still sees the entry as expired.
EXPIRY_GRACE_S = 1.0


def make_cache_key(request: SpeechRequest) -> str:
    """
    Cache key for a request.

    Format: ``[demo_]{voice}_{speed}_{emotion|none}_{format}_{sha256(text)}``
    """
    prefix = "demo_" if request.is_demo else ""
    digest = hashlib.sha256(request.text.encode("utf-8")).hexdigest()
    emotion = request.emotion or "none"
    return f"{prefix}{request.voice}_{request.speed}_{emotion}_{request.response_format}_{digest}"


@dataclass
class CacheEntry:
    """
    A cached asset.

    Attributes:
        asset: The audio returned to the caller.
        expires_at: Clock value at which the entry stops being served.
    """
    asset: AudioAsset
    expires_at: float


class AudioCache:
    """
    Thread-safe TTL cache for finished audio.

    One lock guards every read and write, so the size check and insert
    in put() happen atomically and the store never exceeds max_size even
    under concurrent puts.

    Attributes:
        max_size: Maximum number of entries.
        ttl_seconds: Entry lifetime in seconds.
    """

    def __init__(
        self,
        max_size: int = Defaults.CACHE_MAX_SIZE,
        ttl_seconds: float = Defaults.CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = int(max_size)
        self.ttl_seconds = ttl_seconds
        self._clock = clock

        self._d: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> Optional[AudioAsset]:
        """
        Look up a key.

        Returns:
            The asset, or None when absent or expired. An expired entry is
            removed by the read that finds it.
        """
        with self._lock:
            entry = self._d.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() >= entry.expires_at:
                del self._d[key]
                self._expirations += 1
                self._misses += 1
                verbose(_LOG, "cache_expired", key=key[:24])
                return None
            self._hits += 1
            return entry.asset

    def put(self, key: str, asset: AudioAsset) -> None:
        """
        Store an asset.

        Replacing an existing key moves it to the newest position. When
        inserting a new key into a full cache, the oldest inserted entry
        is evicted first.
        """
        evicted: Optional[str] = None
        with self._lock:
            if key in self._d:
                del self._d[key]
            elif len(self._d) >= self.max_size:
                evicted, _ = self._d.popitem(last=False)
                self._evictions += 1
            self._d[key] = CacheEntry(asset=asset, expires_at=self._clock() + self.ttl_seconds)

        if evicted is not None:
            verbose(_LOG, "cache_evict", key=evicted[:24])
        self._schedule_expiry(key)

    def _schedule_expiry(self, key: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # no loop: lazy expiry on read is enough
        loop.call_later(self.ttl_seconds + EXPIRY_GRACE_S, self._expire, key)

    def _expire(self, key: str) -> None:
        with self._lock:
            entry = self._d.get(key)
            # The key may have been re-put since this timer was scheduled.
            if entry is None or self._clock() < entry.expires_at:
                return
            del self._d[key]
            self._expirations += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._d.pop(key, None) is not None

    def clear(self) -> int:
        """Remove everything; returns how many entries were dropped."""
        with self._lock:
            count = len(self._d)
            self._d.clear()
            return count

    def cleanup_expired(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        with self._lock:
            expired_keys = [key for key, entry in self._d.items() if now >= entry.expires_at]
            for key in expired_keys:
                del self._d[key]
            self._expirations += len(expired_keys)

        if expired_keys:
            verbose(_LOG, "cache_cleanup", removed=len(expired_keys))
        return len(expired_keys)

    def stats(self) -> Dict[str, float]:
        """
        Cache statistics.

        Returns:
            Dictionary with hits, misses, size, max_size, ttl_seconds,
            evictions and expirations.
        """
        with self._lock:
            return {
                "hits": self._hits,
                "misses": self._misses,
                "size": len(self._d),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "evictions": self._evictions,
                "expirations": self._expirations,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._d)

    def __contains__(self, key: str) -> bool:
        """Presence check only; does not look at expiry."""
        with self._lock:
            return key in self._d
