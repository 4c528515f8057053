"""ユニットテスト共通のフィクスチャ"""

from pathlib import Path
from typing import Iterator

import pytest

from dive_toolbox.features.geocoding.providers.cache_geocoder import CacheGeocoder
from dive_toolbox.features.lightroom.domain.models import DiveEntry
from dive_toolbox.features.storage.repositories.geocode_cache_repository import (
    GeocodeCacheRepository,
)
from geocode_fakes import PARIS, PARIS_UUID, FakeGeocoder, no_sleep


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    """SQLiteキャッシュのパス"""
    return tmp_path / "cache" / "geocode.sqlite3"


@pytest.fixture
def cache(cache_path: Path) -> Iterator[GeocodeCacheRepository]:
    """開いた状態のジオコードキャッシュ"""
    repository = GeocodeCacheRepository(cache_path)
    repository.open()
    yield repository
    repository.close()


@pytest.fixture
def fake_geocoder() -> FakeGeocoder:
    """パリを返すテスト用ジオコーダー"""
    return FakeGeocoder(places={(48.8566, 2.3522): PARIS})


@pytest.fixture
def resolver(fake_geocoder: FakeGeocoder, cache: GeocodeCacheRepository) -> CacheGeocoder:
    """テスト用ジオコーダーを使うリゾルバー"""
    return CacheGeocoder(fake_geocoder, cache, retry_backoff=0.0, sleep=no_sleep)


@pytest.fixture
def paris_entry() -> DiveEntry:
    """ノートルダム付近のダイブエントリ"""
    return DiveEntry(
        source_id=PARIS_UUID,
        title="Dive at Notre Dame",
        latitude=48.8566,
        longitude=2.3522,
        scene=0,
    )
