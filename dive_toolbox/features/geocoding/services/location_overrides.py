"""位置情報の上書き（ポリゴン指定）"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import yaml
from shapely.geometry import Point, Polygon
from shapely.prepared import prep

from ....shared.exceptions.errors import ConfigurationError
from ....shared.logging.config import get_logger
from ....shared.utils.text import normalize_text, upper_or_none
from ..domain.models import Coordinate, PlaceDescription

logger = get_logger(__name__)

_PLACE_FIELDS = ("country", "iso_country_code", "state", "region", "city", "location")


@dataclass
class LocationOverride:
    """
    ポリゴン内の座標に対する地名情報の上書き

    ジオコーディング結果が不正確な海域などで、国名や州名を固定するために使用する
    """

    name: str
    polygon: Polygon
    country: Optional[str] = None
    iso_country_code: Optional[str] = None
    state: Optional[str] = None
    region: Optional[str] = None
    city: Optional[str] = None
    location: Optional[str] = None

    def __post_init__(self) -> None:
        self._prepared = prep(self.polygon)

    def contains(self, coordinate: Coordinate) -> bool:
        """座標がポリゴン内（境界を含む）にあるか"""
        point = Point(coordinate.longitude, coordinate.latitude)
        return self._prepared.covers(point)

    def apply(self, place: PlaceDescription) -> PlaceDescription:
        """設定されているフィールドで地名情報を上書き"""
        return place.with_overrides(
            **{field: getattr(self, field) for field in _PLACE_FIELDS}
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LocationOverride":
        """
        YAMLの定義から上書き設定を生成

        polygonは [緯度, 経度] の組のリスト（3点以上）

        Raises:
            ConfigurationError: 定義が不正な場合
        """
        name = normalize_text(data.get("name")) or "unnamed"
        points = data.get("polygon")

        if not isinstance(points, list) or len(points) < 3:
            raise ConfigurationError(
                f"Location override '{name}' needs a polygon with at least 3 points"
            )

        try:
            # shapelyは (x=経度, y=緯度) の順
            polygon = Polygon([(float(lng), float(lat)) for lat, lng in points])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid polygon for location override '{name}': {e}") from e

        if not polygon.is_valid:
            raise ConfigurationError(f"Polygon for location override '{name}' is not valid")

        return cls(
            name=name,
            polygon=polygon,
            country=normalize_text(data.get("country")),
            iso_country_code=upper_or_none(data.get("iso_country_code")),
            state=normalize_text(data.get("state")),
            region=normalize_text(data.get("region")),
            city=normalize_text(data.get("city")),
            location=normalize_text(data.get("location")),
        )


def load_overrides(path: Union[str, Path]) -> list[LocationOverride]:
    """
    YAMLファイルから上書き設定を読み込み

    形式:
        overrides:
          - name: Puget Sound
            polygon: [[47.0, -123.0], [48.5, -123.0], [48.5, -122.0]]
            state: Washington

    Args:
        path: YAMLファイルのパス

    Returns:
        list[LocationOverride]: 上書き設定のリスト

    Raises:
        ConfigurationError: ファイルが読めない、または形式が不正な場合
    """
    path = Path(path).expanduser()

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load location overrides {path}: {e}") from e

    entries = data.get("overrides", []) if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise ConfigurationError(f"Location overrides file {path} must contain an 'overrides' list")

    overrides = [LocationOverride.from_dict(entry) for entry in entries]

    logger.info(f"Loaded {len(overrides)} location overrides from {path}")

    return overrides


def apply_overrides(
    coordinate: Coordinate,
    place: PlaceDescription,
    overrides: Sequence[LocationOverride],
) -> PlaceDescription:
    """
    座標を含む最初の上書き設定を地名情報に適用

    Args:
        coordinate: 座標
        place: ジオコーディング結果の地名情報
        overrides: 上書き設定のリスト

    Returns:
        PlaceDescription: 上書き後の地名情報（該当なしの場合はそのまま）
    """
    for override in overrides:
        if override.contains(coordinate):
            logger.debug(f"Applying location override '{override.name}' to {coordinate}")
            return override.apply(place)

    return place
