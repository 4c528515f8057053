"""テスト用のジオコーダーと定数"""

import asyncio
from typing import Any, Optional

from dive_toolbox.features.geocoding.domain.models import Coordinate, PlaceDescription
from dive_toolbox.features.geocoding.providers.base import AbstractGeocoder
from dive_toolbox.shared.http.rate_limiter import TokenBucket

PARIS = PlaceDescription(city="Paris", country="France", iso_country_code="FR")
PARIS_UUID = "3f2b8c1a-9d4e-4a6b-8c2d-1e5f7a9b0c3d"


class FakeGeocoder(AbstractGeocoder):
    """決定的な結果を返すテスト用ジオコーダー"""

    def __init__(
        self,
        places: Optional[dict[tuple[float, float], PlaceDescription]] = None,
        errors: Optional[dict[tuple[float, float], list[Exception]]] = None,
        delays: Optional[dict[tuple[float, float], float]] = None,
        default: Optional[PlaceDescription] = None,
    ) -> None:
        self.places = places or {}
        self.errors = {key: list(value) for key, value in (errors or {}).items()}
        self.delays = delays or {}
        self.default = default or PlaceDescription()
        self.calls: list[Coordinate] = []
        self.completed: list[Coordinate] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def reverse_geocode(self, coordinate: Coordinate) -> PlaceDescription:
        key = coordinate.to_tuple()
        self.calls.append(coordinate)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)

        try:
            # 遅延なしでも他のタスクに制御を渡す
            await asyncio.sleep(self.delays.get(key, 0.0))

            pending_errors = self.errors.get(key)
            if pending_errors:
                raise pending_errors.pop(0)

            self.completed.append(coordinate)
            return self.places.get(key, self.default)
        finally:
            self.in_flight -= 1


async def no_sleep(seconds: float) -> None:
    """待機しないスリープ"""
    return None


class RateLimitedFakeGeocoder(FakeGeocoder):
    """トークンを取得してから応答するテスト用ジオコーダー"""

    def __init__(self, rate_limiter: TokenBucket, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.rate_limiter = rate_limiter

    async def reverse_geocode(self, coordinate: Coordinate) -> PlaceDescription:
        await self.rate_limiter.acquire()
        return await super().reverse_geocode(coordinate)
