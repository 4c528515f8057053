"""メタデータレコードのビルダー"""

import uuid
from typing import Optional

from ....shared.exceptions.errors import ConfigurationError, InvalidDiveEntry
from ....shared.utils.text import normalize_text, upper_or_none
from ...geocoding.domain.models import Coordinate, PlaceDescription
from ..domain.models import DiveEntry, MetadataRecord

# UUIDでない識別子からuuid5を生成する際の名前空間
DIVE_ENTRY_NAMESPACE = uuid.UUID("6f1c2a8e-3d54-5b1e-9a0f-7c2d4e8b91a3")

DEFAULT_TITLE_FORMAT = "{title}"
UNKNOWN_REGION = "Unknown"


def entry_coordinate(entry: DiveEntry) -> Coordinate:
    """
    ダイブエントリの座標を取得

    Raises:
        InvalidDiveEntry: 座標が欠けている、または範囲外の場合
    """
    if entry.latitude is None or entry.longitude is None:
        raise InvalidDiveEntry(f"Dive entry {entry.source_id!r} is missing GPS coordinates")

    try:
        return Coordinate(float(entry.latitude), float(entry.longitude))
    except (TypeError, ValueError) as e:
        raise InvalidDiveEntry(f"Dive entry {entry.source_id!r} has invalid GPS coordinates: {e}") from e


def entry_title(entry: DiveEntry) -> str:
    """
    ダイブエントリのタイトルを取得

    Raises:
        InvalidDiveEntry: タイトルが文字列でない、または空の場合
    """
    if entry.title is not None and not isinstance(entry.title, str):
        raise InvalidDiveEntry(
            f"Dive entry {entry.source_id!r} has a non-text title: {entry.title!r}"
        )

    title = normalize_text(entry.title)
    if not title:
        raise InvalidDiveEntry(f"Dive entry {entry.source_id!r} is missing a title")
    return title


def entry_site_name(entry: DiveEntry) -> Optional[str]:
    """
    ダイブエントリのダイブサイト名を取得（未設定の場合はNone）

    Raises:
        InvalidDiveEntry: ダイブサイト名が文字列でない場合
    """
    if entry.site_name is not None and not isinstance(entry.site_name, str):
        raise InvalidDiveEntry(
            f"Dive entry {entry.source_id!r} has a non-text site name: {entry.site_name!r}"
        )
    return normalize_text(entry.site_name)


def entry_scene(entry: DiveEntry) -> int:
    """
    ダイブエントリのIPTCシーンコードを取得

    数字のみの文字列は整数として扱う。0以下は未設定（0）

    Raises:
        InvalidDiveEntry: 整数として解釈できない場合
    """
    scene = entry.scene
    if scene is None:
        return 0

    if isinstance(scene, str) and scene.strip().isdecimal():
        scene = int(scene)

    if isinstance(scene, bool) or not isinstance(scene, int):
        raise InvalidDiveEntry(
            f"Dive entry {entry.source_id!r} has a non-integer scene code: {entry.scene!r}"
        )

    return max(scene, 0)


def record_id(source_id: object) -> str:
    """
    ダイブエントリの識別子からレコードIDを生成

    UUIDはそのまま正規化し、それ以外はuuid5で安定したIDに変換する。
    結果は常に大文字

    Raises:
        InvalidDiveEntry: 識別子が空の場合
    """
    text = normalize_text(str(source_id)) if source_id is not None else None
    if not text:
        raise InvalidDiveEntry("Dive entry is missing a unique identifier")

    try:
        value = uuid.UUID(text)
    except ValueError:
        value = uuid.uuid5(DIVE_ENTRY_NAMESPACE, text)

    return str(value).upper()


class MetadataRecordBuilder:
    """ダイブエントリと地名情報からメタデータレコードを生成"""

    def __init__(self, title_format: str = DEFAULT_TITLE_FORMAT) -> None:
        """
        Args:
            title_format: タイトルの書式（{title}, {region}, {city}, {state}, {country}）
        """
        self.title_format = title_format

        try:
            title_format.format(title="", region="", city="", state="", country="")
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigurationError(f"Invalid title format {title_format!r}: {e}") from e

    def validate(self, entry: DiveEntry) -> Coordinate:
        """
        ジオコーディング前にダイブエントリを検証

        Returns:
            Coordinate: エントリの座標

        Raises:
            InvalidDiveEntry: 識別子・タイトル・座標・シーンコードが不正な場合
        """
        record_id(entry.source_id)
        entry_title(entry)
        entry_site_name(entry)
        entry_scene(entry)
        return entry_coordinate(entry)

    def build(self, entry: DiveEntry, place: Optional[PlaceDescription] = None) -> MetadataRecord:
        """
        メタデータレコードを生成（副作用なし）

        - 識別子と国コードはここで大文字化する（レンダラーでは変換しない）
        - 空文字列は未設定として扱う
        - 場所名が無い場合はダイブサイト名を使用する

        Args:
            entry: ダイブエントリ
            place: 地名情報

        Returns:
            MetadataRecord: メタデータレコード

        Raises:
            InvalidDiveEntry: 識別子・タイトル・座標・シーンコードが不正な場合
        """
        identifier = record_id(entry.source_id)
        title = entry_title(entry)
        scene = entry_scene(entry)
        site_name = entry_site_name(entry)

        coordinate = entry_coordinate(entry)
        place = (place or PlaceDescription()).normalized()
        place = place.with_overrides(
            iso_country_code=upper_or_none(place.iso_country_code),
            location=place.location or site_name,
        )

        return MetadataRecord(
            id=identifier,
            title=self._format_title(title, place),
            gps=coordinate.to_dms(),
            place=place,
            scene=scene,
        )

    def _format_title(self, title: str, place: PlaceDescription) -> str:
        return self.title_format.format(
            title=title,
            region=place.region or UNKNOWN_REGION,
            city=place.city or "",
            state=place.state or "",
            country=place.country or "",
        )
