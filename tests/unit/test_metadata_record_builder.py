"""メタデータレコードビルダーのテスト"""

import uuid
from dataclasses import replace

import pytest

from dive_toolbox.features.geocoding.domain.models import PlaceDescription
from dive_toolbox.features.lightroom.builders.metadata_record_builder import (
    DIVE_ENTRY_NAMESPACE,
    MetadataRecordBuilder,
    record_id,
)
from dive_toolbox.features.lightroom.domain.models import DiveEntry
from dive_toolbox.shared.exceptions.errors import ConfigurationError, InvalidDiveEntry
from geocode_fakes import PARIS, PARIS_UUID


def test_build_paris_record(paris_entry: DiveEntry) -> None:
    """ダイブエントリと地名情報からレコードを生成する"""
    record = MetadataRecordBuilder().build(paris_entry, PARIS)

    assert record.id == PARIS_UUID.upper()
    assert record.title == "Dive at Notre Dame"
    assert record.gps == "48°51'23.76\" N 2°21'7.92\" E"
    assert record.place == PARIS
    assert record.scene == 0


def test_build_is_deterministic(paris_entry: DiveEntry) -> None:
    """同じ入力からは同じレコード"""
    builder = MetadataRecordBuilder()

    assert builder.build(paris_entry, PARIS) == builder.build(paris_entry, PARIS)


def test_country_code_is_uppercased_and_empty_strings_dropped(paris_entry: DiveEntry) -> None:
    """国コードは大文字化し、空文字列は未設定として扱う"""
    place = PlaceDescription(city="", country="France", iso_country_code="fr")

    record = MetadataRecordBuilder().build(paris_entry, place)

    assert record.place.iso_country_code == "FR"
    assert record.place.city is None


def test_site_name_is_used_as_location() -> None:
    """場所名が無い場合はダイブサイト名を使う"""
    entry = DiveEntry(
        source_id=PARIS_UUID,
        title="Blue Hole",
        latitude=17.3158,
        longitude=-87.5347,
        site_name="Great Blue Hole",
    )

    record = MetadataRecordBuilder().build(entry, PlaceDescription(country="Belize"))

    assert record.place.location == "Great Blue Hole"


def test_geocoded_location_takes_precedence_over_site_name() -> None:
    """地名情報の場所名がある場合はそちらを使う"""
    entry = DiveEntry(
        source_id=PARIS_UUID,
        title="Blue Hole",
        latitude=17.3158,
        longitude=-87.5347,
        site_name="Great Blue Hole",
    )

    record = MetadataRecordBuilder().build(entry, PlaceDescription(location="Lighthouse Reef"))

    assert record.place.location == "Lighthouse Reef"


def test_build_without_place(paris_entry: DiveEntry) -> None:
    """地名情報が無くてもレコードを生成できる"""
    record = MetadataRecordBuilder().build(paris_entry)

    assert record.place.is_empty


def test_non_uuid_identifier_gets_stable_uuid() -> None:
    """UUIDでない識別子はuuid5で安定したIDに変換する"""
    expected = str(uuid.uuid5(DIVE_ENTRY_NAMESPACE, "42")).upper()

    assert record_id(42) == expected
    assert record_id("42") == expected
    assert record_id(" 42 ") == expected


def test_uuid_identifier_is_canonicalized() -> None:
    """UUIDは正規化して大文字化する"""
    assert record_id("{" + PARIS_UUID.upper() + "}") == PARIS_UUID.upper()


@pytest.mark.parametrize("source_id", [None, "", "   "])
def test_missing_identifier_is_rejected(source_id: object) -> None:
    """識別子が無い場合はエラー"""
    with pytest.raises(InvalidDiveEntry):
        record_id(source_id)


@pytest.mark.parametrize(
    "latitude,longitude",
    [(None, 2.0), (48.0, None), (91.0, 0.0), (0.0, 181.0), (float("nan"), 0.0)],
)
def test_invalid_coordinates_are_rejected(latitude: object, longitude: object) -> None:
    """座標が欠けている・範囲外の場合はエラー"""
    entry = DiveEntry(source_id=PARIS_UUID, title="x", latitude=latitude, longitude=longitude)

    with pytest.raises(InvalidDiveEntry):
        MetadataRecordBuilder().validate(entry)


def test_missing_title_is_rejected() -> None:
    """タイトルが無い場合はエラー"""
    entry = DiveEntry(source_id=PARIS_UUID, title="  ", latitude=1.0, longitude=1.0)

    with pytest.raises(InvalidDiveEntry):
        MetadataRecordBuilder().build(entry, PARIS)


def test_negative_scene_is_treated_as_unset(paris_entry: DiveEntry) -> None:
    """負のシーンコードは未設定"""
    entry = DiveEntry(
        source_id=paris_entry.source_id,
        title=paris_entry.title,
        latitude=paris_entry.latitude,
        longitude=paris_entry.longitude,
        scene=-1,
    )

    assert MetadataRecordBuilder().build(entry, PARIS).scene == 0


def test_title_format_with_region(paris_entry: DiveEntry) -> None:
    """タイトル書式で地域名を含められる（不明な場合はUnknown）"""
    builder = MetadataRecordBuilder("[Location] {region}: {title}")

    with_region = builder.build(paris_entry, PARIS.with_overrides(region="Puget Sound"))
    without_region = builder.build(paris_entry, PARIS)

    assert with_region.title == "[Location] Puget Sound: Dive at Notre Dame"
    assert without_region.title == "[Location] Unknown: Dive at Notre Dame"


@pytest.mark.parametrize("title_format", ["{name}", "{0}", "{title"])
def test_invalid_title_format_is_rejected(title_format: str) -> None:
    """不正なタイトル書式は設定エラー"""
    with pytest.raises(ConfigurationError):
        MetadataRecordBuilder(title_format)


@pytest.mark.parametrize(
    "field,value",
    [
        ("scene", "n/a"),
        ("scene", 1.5),
        ("scene", True),
        ("title", 42),
        ("site_name", 7),
    ],
)
def test_malformed_fields_are_rejected(paris_entry: DiveEntry, field: str, value: object) -> None:
    """文字列・整数として扱えないフィールドはInvalidDiveEntry"""
    entry = replace(paris_entry, **{field: value})
    builder = MetadataRecordBuilder()

    with pytest.raises(InvalidDiveEntry):
        builder.validate(entry)
    with pytest.raises(InvalidDiveEntry):
        builder.build(entry, PARIS)


def test_numeric_scene_text_is_accepted(paris_entry: DiveEntry) -> None:
    """数字のみの文字列のシーンコードは整数として扱う"""
    entry = replace(paris_entry, scene="20000917")

    assert MetadataRecordBuilder().build(entry, PARIS).scene == 20000917
