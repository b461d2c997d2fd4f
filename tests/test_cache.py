"""
Tests for the in-memory audio cache.

Tests cover:
- Cache key format and namespaces
- Round-trip get/put
- TTL expiry (lazy on read, cleanup_expired, timer)
- Oldest-inserted eviction at max_size
- Thread safety
"""
import asyncio
import hashlib
import threading

from tts_proxy.tts.cache import AudioCache, make_cache_key
from tts_proxy.tts.models import AudioAsset, SpeechRequest


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _asset(data: bytes = b"audio") -> AudioAsset:
    return AudioAsset(data=data, source_format="mp3")


class TestCacheKey:
    """Tests for make_cache_key()."""

    def test_format(self):
        request = SpeechRequest(text="Hello", voice="alloy", speed=1.0, response_format="mp3")
        digest = hashlib.sha256(b"Hello").hexdigest()

        assert make_cache_key(request) == f"alloy_1.0_none_mp3_{digest}"

    def test_emotion_in_key(self):
        request = SpeechRequest(text="Hello", voice="alloy", emotion="sad")
        assert "_sad_" in make_cache_key(request)

    def test_demo_namespace(self):
        normal = SpeechRequest(text="Hello", voice="alloy")
        demo = SpeechRequest(text="Hello", voice="alloy", is_demo=True)

        assert make_cache_key(demo) == "demo_" + make_cache_key(normal)

    def test_shared_prefix_does_not_collide(self):
        base = "a" * 200
        first = SpeechRequest(text=base + "one", voice="alloy")
        second = SpeechRequest(text=base + "two", voice="alloy")

        assert make_cache_key(first) != make_cache_key(second)

    def test_each_parameter_changes_key(self):
        base = SpeechRequest(text="Hi", voice="alloy")
        variants = [
            SpeechRequest(text="Hi", voice="echo"),
            SpeechRequest(text="Hi", voice="alloy", speed=1.5),
            SpeechRequest(text="Hi", voice="alloy", response_format="opus"),
        ]
        keys = {make_cache_key(base)} | {make_cache_key(v) for v in variants}
        assert len(keys) == 4


class TestAudioCacheBasics:
    def test_put_then_get(self):
        cache = AudioCache(max_size=10, ttl_seconds=60)
        cache.put("k", _asset(b"abc"))

        assert cache.get("k") == _asset(b"abc")
        assert "k" in cache
        assert len(cache) == 1

    def test_missing_key(self):
        cache = AudioCache(max_size=10, ttl_seconds=60)
        assert cache.get("nope") is None

    def test_stats_track_hits_and_misses(self):
        cache = AudioCache(max_size=10, ttl_seconds=60)
        cache.put("k", _asset())
        cache.get("k")
        cache.get("missing")

        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["size"] == 1
        assert stats["max_size"] == 10

    def test_delete_and_clear(self):
        cache = AudioCache(max_size=10, ttl_seconds=60)
        cache.put("a", _asset())
        cache.put("b", _asset())

        assert cache.delete("a") is True
        assert cache.delete("a") is False
        assert cache.clear() == 1
        assert len(cache) == 0


class TestAudioCacheExpiry:
    """Tests for TTL-based expiry."""

    def test_entry_expires_after_ttl(self):
        clock = FakeClock()
        cache = AudioCache(max_size=10, ttl_seconds=60, clock=clock)
        cache.put("k", _asset())

        clock.advance(59.9)
        assert cache.get("k") is not None

        clock.advance(0.1)
        assert cache.get("k") is None
        assert "k" not in cache
        assert cache.stats()["expirations"] == 1

    def test_read_does_not_extend_ttl(self):
        clock = FakeClock()
        cache = AudioCache(max_size=10, ttl_seconds=10, clock=clock)
        cache.put("k", _asset())

        clock.advance(8)
        assert cache.get("k") is not None
        clock.advance(3)
        assert cache.get("k") is None

    def test_reput_resets_ttl(self):
        clock = FakeClock()
        cache = AudioCache(max_size=10, ttl_seconds=10, clock=clock)
        cache.put("k", _asset(b"old"))
        clock.advance(8)
        cache.put("k", _asset(b"new"))
        clock.advance(8)

        assert cache.get("k") == _asset(b"new")

    def test_cleanup_expired(self):
        clock = FakeClock()
        cache = AudioCache(max_size=10, ttl_seconds=10, clock=clock)
        cache.put("old", _asset())
        clock.advance(5)
        cache.put("young", _asset())
        clock.advance(6)

        assert cache.cleanup_expired() == 1
        assert "old" not in cache
        assert "young" in cache

    def test_timer_removes_entry_without_read(self):
        """With a running loop, an expired entry goes away on its own."""
        async def scenario():
            cache = AudioCache(max_size=10, ttl_seconds=0.05)
            cache.put("k", _asset())
            assert "k" in cache
            await asyncio.sleep(1.2)
            return cache

        cache = asyncio.run(scenario())
        assert "k" not in cache
        assert cache.stats()["expirations"] == 1


class TestAudioCacheEviction:
    """Tests for the size bound."""

    def test_oldest_inserted_evicted(self):
        cache = AudioCache(max_size=3, ttl_seconds=60)
        for key in ("a", "b", "c"):
            cache.put(key, _asset())

        cache.put("d", _asset())

        assert "a" not in cache
        assert all(k in cache for k in ("b", "c", "d"))
        assert cache.stats()["evictions"] == 1

    def test_read_does_not_protect_from_eviction(self):
        cache = AudioCache(max_size=2, ttl_seconds=60)
        cache.put("a", _asset())
        cache.put("b", _asset())
        cache.get("a")

        cache.put("c", _asset())

        assert "a" not in cache
        assert "b" in cache

    def test_reput_moves_to_newest(self):
        cache = AudioCache(max_size=2, ttl_seconds=60)
        cache.put("a", _asset())
        cache.put("b", _asset())
        cache.put("a", _asset(b"again"))

        cache.put("c", _asset())

        assert "b" not in cache
        assert cache.get("a") == _asset(b"again")

    def test_replacing_does_not_evict(self):
        cache = AudioCache(max_size=2, ttl_seconds=60)
        cache.put("a", _asset())
        cache.put("b", _asset())
        cache.put("b", _asset(b"v2"))

        assert len(cache) == 2
        assert cache.stats()["evictions"] == 0


class TestAudioCacheThreadSafety:
    def test_concurrent_puts_respect_max_size(self):
        cache = AudioCache(max_size=50, ttl_seconds=60)
        errors = []

        def writer(worker: int):
            try:
                for i in range(200):
                    cache.put(f"w{worker}-{i}", _asset())
                    cache.get(f"w{worker}-{i // 2}")
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(cache) == 50
        assert cache.stats()["evictions"] == 8 * 200 - 50
