import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT))

from claimguard.services.cache import FileCache, TTLCache  # noqa: E402


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_ttl_cache_expires_entries():
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=10, clock=clock)
    cache.set("a", 1)

    assert cache.get("a") == 1
    clock.now += 10
    assert cache.get("a") is None
    assert cache.hits == 1
    assert cache.misses == 1


def test_ttl_cache_evicts_oldest_when_full():
    cache = TTLCache(ttl_seconds=60, max_size=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)

    assert len(cache) == 2
    assert cache.get("a") is None
    assert cache.get("c") == 3


def test_ttl_cache_invalidate_single_and_all():
    cache = TTLCache(ttl_seconds=60)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.invalidate("a")
    assert cache.get("a") is None
    assert cache.get("b") == 2

    cache.invalidate()
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_file_cache_reads_once_until_invalidated(tmp_path):
    target = tmp_path / "data.txt"
    target.write_text("first")
    reads = []

    def loader(path):
        reads.append(path)
        return path.read_text()

    cache = FileCache(ttl_seconds=60)
    assert await cache.get(target, loader) == "first"

    target.write_text("second")
    assert await cache.get(target, loader) == "first"
    assert len(reads) == 1

    cache.invalidate(target)
    assert await cache.get(target, loader) == "second"
    assert len(reads) == 2


@pytest.mark.asyncio
async def test_file_cache_does_not_store_missing_files(tmp_path):
    cache = FileCache(ttl_seconds=60)

    def loader(path):
        return path.read_text() if path.exists() else None

    assert await cache.get(tmp_path / "missing.json", loader) is None
    assert len(cache) == 0
