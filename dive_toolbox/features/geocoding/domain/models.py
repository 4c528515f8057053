"""ジオコーディング機能のドメインモデル"""
import math
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import Any, Optional

from ....shared.utils.datetime_utils import now_utc
from ....shared.utils.text import normalize_text

DEFAULT_PRECISION = 4

_SIXTY = Decimal(60)


def _trunc(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_DOWN)


def _plain(value: Decimal) -> str:
    # 指数表記を避け、末尾の0を除去した10進表記
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "") else text


def _dms(value: float, positive: str, negative: str) -> str:
    """10進度を「度°分'秒"」形式に変換（方角は0の場合省略）"""
    decimal = Decimal(repr(value))
    absolute = abs(decimal)

    degrees = _trunc(absolute)
    minutes = (absolute - degrees) * _SIXTY
    seconds = (minutes - _trunc(minutes)) * _SIXTY

    if decimal > 0:
        direction = f" {positive}"
    elif decimal < 0:
        direction = f" {negative}"
    else:
        direction = ""

    return f"{_plain(degrees)}°{_plain(_trunc(minutes))}'{_plain(seconds)}\"{direction}"


@dataclass(frozen=True)
class Coordinate:
    """WGS-84の座標（10進度）"""

    latitude: float  # 緯度
    longitude: float  # 経度

    def __post_init__(self) -> None:
        if not isinstance(self.latitude, (int, float)) or math.isnan(self.latitude):
            raise ValueError(f"Invalid latitude: {self.latitude!r}")
        if not isinstance(self.longitude, (int, float)) or math.isnan(self.longitude):
            raise ValueError(f"Invalid longitude: {self.longitude!r}")
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"Longitude out of range: {self.longitude}")

    def __repr__(self) -> str:
        return f"Coordinate(lat={self.latitude}, lng={self.longitude})"

    def to_tuple(self) -> tuple[float, float]:
        """(緯度, 経度)のタプルとして返す"""
        return (self.latitude, self.longitude)

    def quantize(self, precision: int = DEFAULT_PRECISION) -> str:
        """
        キャッシュキー用に丸めた座標文字列を返す

        GPSの微小な揺れを吸収するため、指定桁数で丸める。
        -0.0 は 0.0 として扱う

        Args:
            precision: 小数点以下の桁数

        Returns:
            str: "緯度,経度" 形式のキー
        """
        latitude = round(self.latitude, precision) + 0.0
        longitude = round(self.longitude, precision) + 0.0
        return f"{latitude:.{precision}f},{longitude:.{precision}f}"

    def to_dms(self) -> str:
        """
        度分秒（DMS）形式の文字列に変換

        例: 37°46'10.9992" N 122°28'36.9984" W
        """
        return (
            f"{_dms(self.latitude, 'N', 'S')} "
            f"{_dms(self.longitude, 'E', 'W')}"
        )


@dataclass(frozen=True)
class PlaceDescription:
    """
    逆ジオコーディング結果の地名情報

    すべてのフィールドは任意。未設定（None）は「不明」を意味する
    """

    country: Optional[str] = None  # 国名
    iso_country_code: Optional[str] = None  # ISO 3166 国コード
    city: Optional[str] = None  # 市区町村
    state: Optional[str] = None  # 州・都道府県
    region: Optional[str] = None  # 郡（"County"接尾辞は除去済み）
    location: Optional[str] = None  # 自由記述の場所名

    @property
    def is_empty(self) -> bool:
        """すべてのフィールドが未設定かどうか"""
        return not any(self.to_dict().values())

    def to_dict(self) -> dict[str, Optional[str]]:
        """キャッシュ保存用の辞書に変換"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlaceDescription":
        """キャッシュのデータから地名情報を生成"""
        return cls(
            country=data.get("country"),
            iso_country_code=data.get("iso_country_code"),
            city=data.get("city"),
            state=data.get("state"),
            region=data.get("region"),
            location=data.get("location"),
        )

    def normalized(self) -> "PlaceDescription":
        """空文字列をNoneに揃えた地名情報を返す"""
        return PlaceDescription(
            **{key: normalize_text(value) for key, value in self.to_dict().items()}
        )

    def with_overrides(self, **fields: Optional[str]) -> "PlaceDescription":
        """
        指定されたフィールドを上書きした地名情報を返す

        値がNoneのフィールドは上書きしない
        """
        changes = {key: value for key, value in fields.items() if value is not None}
        return replace(self, **changes)


@dataclass(frozen=True)
class CacheEntry:
    """ジオコードキャッシュのエントリ"""

    key: str  # 丸めた座標キー
    value: PlaceDescription
    resolved_at: datetime = field(default_factory=now_utc)
