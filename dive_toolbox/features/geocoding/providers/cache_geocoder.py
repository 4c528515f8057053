"""キャッシュ付きジオコーダー（地名リゾルバー）"""

import asyncio
from typing import Awaitable, Callable, Iterable, Optional

from ....shared.exceptions.errors import (
    CacheUnavailable,
    GeocodeProviderError,
    ResolutionFailed,
)
from ....shared.logging.config import get_logger
from ...storage.repositories.geocode_cache_repository import GeocodeCacheRepository
from ..domain.models import DEFAULT_PRECISION, Coordinate, PlaceDescription
from .base import AbstractGeocoder

logger = get_logger(__name__)


class CacheGeocoder:
    """
    キャッシュ付きジオコーダー

    クォータのあるAPI呼び出しを削減するため、永続キャッシュを優先し、
    キャッシュミスの場合のみプロバイダーを呼び出してキャッシュに書き戻す
    """

    def __init__(
        self,
        geocoder: AbstractGeocoder,
        cache: GeocodeCacheRepository,
        precision: int = DEFAULT_PRECISION,
        retry_backoff: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            geocoder: ベースとなるジオコーダー
            cache: ジオコードキャッシュ
            precision: キャッシュキーの丸め桁数
            retry_backoff: リトライ前の待機時間（秒）
            sleep: 非同期スリープ関数（テスト用に差し替え可能）
        """
        self.geocoder = geocoder
        self.cache = cache
        self.precision = precision
        self.retry_backoff = retry_backoff
        self._sleep = sleep

        self.hit_count = 0
        self.miss_count = 0
        self.cache_read_failures = 0
        self.cache_write_failures = 0

        # 同一キーの同時ミスを1回のAPI呼び出しにまとめる
        self._inflight: dict[str, asyncio.Future[PlaceDescription]] = {}

        logger.info(
            f"CacheGeocoder initialized: precision={precision}, retry_backoff={retry_backoff}s"
        )

    async def resolve(self, coordinate: Coordinate) -> PlaceDescription:
        """
        座標を地名情報に解決（キャッシュあり）

        Args:
            coordinate: 座標

        Returns:
            PlaceDescription: 地名情報

        Raises:
            ResolutionFailed: キャッシュミスかつプロバイダー呼び出しが失敗した場合
        """
        cache_key = coordinate.quantize(self.precision)

        # キャッシュヒットチェック（キャッシュ障害時はキャッシュ無しで続行）
        try:
            cached = await self.cache.get(cache_key)
        except CacheUnavailable as e:
            self.cache_read_failures += 1
            logger.warning(f"Geocode cache read failed, resolving without cache: {e}")
            cached = None

        if cached is not None:
            self.hit_count += 1
            logger.debug(f"Cache hit for coordinates: {cache_key}")
            return cached

        pending = self._inflight.get(cache_key)
        if pending is not None:
            self.hit_count += 1
            logger.debug(f"Joining in-flight lookup for coordinates: {cache_key}")
            return await asyncio.shield(pending)

        # キャッシュミス: API呼び出し
        self.miss_count += 1
        logger.debug(f"Cache miss for coordinates: {cache_key}")

        future: asyncio.Future[PlaceDescription] = asyncio.get_running_loop().create_future()
        self._inflight[cache_key] = future

        try:
            place = await self._lookup(coordinate)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # 待機者がいない場合の「未取得の例外」警告を抑止
            future.exception()
            raise
        else:
            future.set_result(place)
        finally:
            del self._inflight[cache_key]

        # 結果をキャッシュ（書き込み失敗は報告するが、解決結果は返す）
        try:
            await self.cache.put(cache_key, place)
        except CacheUnavailable as e:
            self.cache_write_failures += 1
            logger.error(f"Failed to persist geocode result for {cache_key}: {e}")

        return place

    async def _lookup(self, coordinate: Coordinate) -> PlaceDescription:
        """プロバイダーを呼び出し、リトライ可能なエラーは1回だけリトライする"""
        try:
            return (await self.geocoder.reverse_geocode(coordinate)).normalized()
        except GeocodeProviderError as e:
            if not e.retryable:
                raise ResolutionFailed(f"Failed to resolve {coordinate}: {e}") from e
            logger.warning(
                f"Retryable geocoding error for {coordinate}, retrying in {self.retry_backoff}s: {e}"
            )

        await self._sleep(self.retry_backoff)

        try:
            return (await self.geocoder.reverse_geocode(coordinate)).normalized()
        except GeocodeProviderError as e:
            raise ResolutionFailed(f"Failed to resolve {coordinate} after retry: {e}") from e

    async def prefetch(self, coordinates: Iterable[Coordinate]) -> int:
        """
        複数の座標を事前にキャッシュ

        Args:
            coordinates: 座標のリスト

        Returns:
            int: 解決に失敗した座標の数
        """
        # 重複を除去
        unique: dict[str, Coordinate] = {}
        for coordinate in coordinates:
            unique.setdefault(coordinate.quantize(self.precision), coordinate)

        logger.info(f"Prefetching {len(unique)} unique coordinates")

        failures = 0
        for coordinate in unique.values():
            try:
                await self.resolve(coordinate)
            except ResolutionFailed as e:
                failures += 1
                logger.warning(f"Prefetch failed for {coordinate}: {e}")

        logger.info(f"Prefetch completed: {len(unique) - failures} resolved, {failures} failed")
        return failures

    async def invalidate(self, coordinate: Coordinate) -> bool:
        """
        座標のキャッシュエントリを削除

        Returns:
            bool: 削除した場合True
        """
        return await self.cache.delete(coordinate.quantize(self.precision))

    def get_cache_stats(self) -> dict[str, float]:
        """
        キャッシュ統計を取得

        Returns:
            dict[str, float]: キャッシュ統計（ヒット数、ミス数、障害数、ヒット率）
        """
        total_requests = self.hit_count + self.miss_count
        hit_rate = (self.hit_count / total_requests * 100) if total_requests > 0 else 0.0

        stats = {
            "hit_count": self.hit_count,
            "miss_count": self.miss_count,
            "total_requests": total_requests,
            "cache_read_failures": self.cache_read_failures,
            "cache_write_failures": self.cache_write_failures,
            "hit_rate_percent": round(hit_rate, 2),
        }

        logger.info(f"Cache stats: {stats}")

        return stats
