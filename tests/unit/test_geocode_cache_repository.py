"""ジオコードキャッシュのテスト"""

import asyncio
from pathlib import Path

import pytest

from dive_toolbox.features.geocoding.domain.models import PlaceDescription
from dive_toolbox.features.storage.repositories.geocode_cache_repository import (
    GeocodeCacheRepository,
)
from dive_toolbox.shared.exceptions.errors import CacheUnavailable
from geocode_fakes import PARIS


def test_get_returns_none_for_unknown_key(cache: GeocodeCacheRepository) -> None:
    """未登録のキーはNone"""
    assert asyncio.run(cache.get("48.8566,2.3522")) is None


def test_put_then_get(cache: GeocodeCacheRepository) -> None:
    """保存した地名情報を取得できる"""

    async def run() -> None:
        await cache.put("48.8566,2.3522", PARIS)
        assert await cache.get("48.8566,2.3522") == PARIS
        entry = await cache.get_entry("48.8566,2.3522")
        assert entry is not None
        assert entry.key == "48.8566,2.3522"
        assert entry.resolved_at.tzinfo is not None

    asyncio.run(run())


def test_lookup_is_exact_on_key(cache: GeocodeCacheRepository) -> None:
    """キーは完全一致でのみ参照する"""

    async def run() -> None:
        await cache.put("48.8566,2.3522", PARIS)
        assert await cache.get("48.8567,2.3522") is None

    asyncio.run(run())


def test_entries_persist_across_reopen(cache_path: Path) -> None:
    """クローズ後に開き直しても保持されている"""
    with GeocodeCacheRepository(cache_path) as first:
        asyncio.run(first.put("1.0000,2.0000", PARIS))

    with GeocodeCacheRepository(cache_path) as second:
        assert asyncio.run(second.get("1.0000,2.0000")) == PARIS


def test_put_is_idempotent_upsert_last_writer_wins(cache: GeocodeCacheRepository) -> None:
    """同じキーへの保存は後勝ち"""
    updated = PlaceDescription(city="Paris", country="France", iso_country_code="FR", state="IDF")

    async def run() -> None:
        await cache.put("k", PARIS)
        await cache.put("k", updated)
        await cache.put("k", updated)
        assert await cache.get("k") == updated
        assert await cache.count() == 1

    asyncio.run(run())


def test_concurrent_writes_are_serialized(cache: GeocodeCacheRepository) -> None:
    """同時書き込みでもエラーにならない"""

    async def run() -> None:
        await asyncio.gather(
            *(cache.put(f"{i}.0000,0.0000", PARIS) for i in range(20))
        )
        assert await cache.count() == 20

    asyncio.run(run())


def test_delete_and_clear(cache: GeocodeCacheRepository) -> None:
    """明示的に削除できる（TTLはない）"""

    async def run() -> None:
        await cache.put("a", PARIS)
        await cache.put("b", PARIS)
        assert await cache.delete("a") is True
        assert await cache.delete("a") is False
        assert await cache.get("a") is None
        assert await cache.clear() == 1
        assert await cache.count() == 0

    asyncio.run(run())


def test_closed_cache_raises_cache_unavailable(cache_path: Path) -> None:
    """開いていないキャッシュへのアクセスはCacheUnavailable"""
    repository = GeocodeCacheRepository(cache_path)

    with pytest.raises(CacheUnavailable):
        asyncio.run(repository.get("k"))
    with pytest.raises(CacheUnavailable):
        asyncio.run(repository.put("k", PARIS))


def test_open_failure_raises_cache_unavailable(tmp_path: Path) -> None:
    """データベースを開けない場合はCacheUnavailable"""
    directory = tmp_path / "not-a-file"
    directory.mkdir()

    with pytest.raises(CacheUnavailable):
        GeocodeCacheRepository(directory).open()


def test_in_memory_cache(tmp_path: Path) -> None:
    """":memory:" も使用できる"""
    with GeocodeCacheRepository(":memory:") as repository:
        asyncio.run(repository.put("k", PARIS))
        assert asyncio.run(repository.get("k")) == PARIS


def test_concurrent_writes_to_same_key_keep_last(cache: GeocodeCacheRepository) -> None:
    """同一キーへの同時書き込みは呼び出し順に直列化され、後勝ちになる"""
    places = [PlaceDescription(city=f"City {i}") for i in range(5)]

    async def run() -> None:
        await asyncio.gather(*(cache.put("k", place) for place in places))
        assert await cache.get("k") == places[-1]
        assert await cache.count() == 1

    asyncio.run(run())
