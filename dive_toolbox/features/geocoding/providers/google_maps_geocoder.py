"""Google Maps Geocoding API実装"""
import asyncio
from typing import Any, Optional, Sequence

import googlemaps

from ....shared.exceptions.errors import GeocodeProviderError
from ....shared.http.rate_limiter import TokenBucket
from ....shared.logging.config import get_logger
from ....shared.utils.text import normalize_text, strip_suffix, upper_or_none
from ..domain.models import Coordinate, PlaceDescription
from .base import AbstractGeocoder

logger = get_logger(__name__)

# リトライで回復し得るAPIステータス
RETRYABLE_API_STATUSES = frozenset({"OVER_QUERY_LIMIT", "UNKNOWN_ERROR"})

# 逆ジオコーディングで要求する結果タイプ
DEFAULT_RESULT_TYPES = ("plus_code", "country")


class GoogleMapsGeocoder(AbstractGeocoder):
    """
    Google Maps Geocoding API実装（レート制限付き）

    呼び出しごとにトークンバケットからトークンを取得し、
    同期APIクライアントをワーカースレッドで実行する
    """

    def __init__(
        self,
        rate_limiter: TokenBucket,
        api_key: Optional[str] = None,
        client: Optional[Any] = None,
        timeout: int = 10,
        language: Optional[str] = None,
        result_types: Sequence[str] = DEFAULT_RESULT_TYPES,
    ) -> None:
        """
        Args:
            rate_limiter: 共有トークンバケット
            api_key: Google Maps API キー（clientを渡さない場合は必須）
            client: googlemaps.Client 互換のクライアント（テスト用に差し替え可能）
            timeout: リクエストタイムアウト（秒）
            language: 結果の言語
            result_types: 要求する結果タイプ
        """
        self.rate_limiter = rate_limiter
        self.language = language
        self.result_types = list(result_types)

        if client is not None:
            self.client = client
        else:
            try:
                # クォータ超過時の自動リトライは無効化
                self.client = googlemaps.Client(
                    key=api_key,
                    timeout=timeout,
                    retry_timeout=timeout,
                    retry_over_query_limit=False,
                )
            except ValueError as e:
                raise GeocodeProviderError(
                    f"Failed to initialize Google Maps client: {e}", retryable=False
                ) from e

        logger.info("GoogleMapsGeocoder initialized")

    async def reverse_geocode(self, coordinate: Coordinate) -> PlaceDescription:
        """
        座標から地名情報を取得（逆ジオコーディング）

        Args:
            coordinate: 座標

        Returns:
            PlaceDescription: 地名情報（結果が無い場合は空の地名情報）

        Raises:
            GeocodeProviderError: APIリクエストに失敗した場合
        """
        await self.rate_limiter.acquire()

        logger.debug(f"Reverse geocoding: {coordinate}")

        try:
            results = await asyncio.to_thread(
                self.client.reverse_geocode,
                coordinate.to_tuple(),
                result_type=self.result_types or None,
                language=self.language,
            )
        except googlemaps.exceptions.Timeout as e:
            raise GeocodeProviderError(
                f"Google Maps request timed out for {coordinate}", retryable=True
            ) from e
        except googlemaps.exceptions.HTTPError as e:
            status_code = _status_code(e)
            raise GeocodeProviderError(
                f"Google Maps HTTP error for {coordinate}: {e}",
                retryable=status_code is None or status_code >= 500,
                status_code=status_code,
            ) from e
        except googlemaps.exceptions.TransportError as e:
            raise GeocodeProviderError(
                f"Google Maps transport error for {coordinate}: {e}", retryable=True
            ) from e
        except googlemaps.exceptions.ApiError as e:
            raise GeocodeProviderError(
                f"Google Maps API error for {coordinate}: {e}",
                retryable=e.status in RETRYABLE_API_STATUSES,
            ) from e
        except Exception as e:
            raise GeocodeProviderError(
                f"Unexpected error during reverse geocoding of {coordinate}: {e}",
                retryable=False,
            ) from e

        if not results:
            logger.warning(f"No reverse geocoding results for: {coordinate}")
            return PlaceDescription()

        place = parse_address_components(results)

        logger.debug(f"Reverse geocoded: {coordinate} -> {place}")

        return place


def parse_address_components(results: list[dict[str, Any]]) -> PlaceDescription:
    """
    逆ジオコーディング結果のaddress_componentsを地名情報に変換

    - country: 国名（long_name）と国コード（short_name）
    - administrative_area_level_1: 州・都道府県
    - administrative_area_level_2: 郡（"County"接尾辞を除去）
    - locality（無ければpostal_town）: 市区町村

    複数の結果に同じ種類のコンポーネントがある場合は後の結果で上書きする

    Args:
        results: Geocoding APIの結果リスト

    Returns:
        PlaceDescription: 地名情報
    """
    fields: dict[str, Optional[str]] = {}
    postal_town: Optional[str] = None

    for result in results:
        for component in result.get("address_components", []):
            types = component.get("types", [])
            long_name = component.get("long_name")
            short_name = component.get("short_name")

            if "country" in types:
                fields["country"] = normalize_text(long_name)
                fields["iso_country_code"] = upper_or_none(short_name)
            elif "administrative_area_level_1" in types:
                fields["state"] = normalize_text(long_name)
            elif "administrative_area_level_2" in types:
                fields["region"] = strip_suffix(long_name, "County")
            elif "locality" in types:
                fields["city"] = normalize_text(short_name)
            elif "postal_town" in types:
                postal_town = normalize_text(short_name)

    if not fields.get("city") and postal_town:
        fields["city"] = postal_town

    return PlaceDescription(**fields)


def _status_code(error: Exception) -> Optional[int]:
    status_code = getattr(error, "status_code", None)
    return status_code if isinstance(status_code, int) else None
