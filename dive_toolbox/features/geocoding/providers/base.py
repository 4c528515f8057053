"""ジオコーダーの基底クラス"""

from abc import ABC, abstractmethod

from ..domain.models import Coordinate, PlaceDescription


class AbstractGeocoder(ABC):
    """逆ジオコーディングプロバイダーの抽象基底クラス"""

    @abstractmethod
    async def reverse_geocode(self, coordinate: Coordinate) -> PlaceDescription:
        """
        座標から地名情報を取得（逆ジオコーディング）

        実装側ではリトライを行わない（リトライ方針は呼び出し側が持つ）

        Args:
            coordinate: 座標

        Returns:
            PlaceDescription: 地名情報（結果が無い場合は空の地名情報）

        Raises:
            GeocodeProviderError: 通信・プロバイダーのエラー
        """
        pass
