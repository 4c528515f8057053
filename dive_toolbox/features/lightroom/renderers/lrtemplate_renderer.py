"""Lightroomメタデータプリセット（.lrtemplate）のレンダラー"""

import io
import re
from typing import Optional, Union

from ....shared.exceptions.errors import RenderError
from ..domain.models import MetadataRecord

PRESET_TYPE = "Metadata"
PRESET_VERSION = 0

# 識別子として許可する文字（大文字化済みのUUIDなど）
_ID_RE = re.compile(r"^[0-9A-Z][0-9A-Z-]*$")

_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
}

FieldValue = Optional[Union[str, int]]


def quote(value: str) -> str:
    """
    文字列をダブルクォートで囲み、バックスラッシュ・ダブルクォート・改行をエスケープ

    Args:
        value: 対象文字列

    Returns:
        str: クォート済みの文字列
    """
    return '"' + "".join(_ESCAPES.get(char, char) for char in value) + '"'


def value_fields(record: MetadataRecord) -> list[tuple[str, FieldValue]]:
    """
    value ブロックのフィールドを出力順に並べる

    この順序は取り込み側（Lightroom）との互換性のため固定
    """
    place = record.place
    return [
        ("gps", record.gps),
        ("city", place.city),
        ("country", place.country),
        ("isoCountryCode", place.iso_country_code),
        ("location", place.location),
        ("scene", record.scene),
        ("state", place.state),
    ]


def _is_present(value: FieldValue) -> bool:
    # 文字列は長さ、数値は正の値の場合のみ出力する
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value > 0
    return bool(value)


def _format_value(value: Union[str, int]) -> str:
    if isinstance(value, int):
        return quote(str(value))
    return quote(value)


class LrTemplateRenderer:
    """
    メタデータレコードを.lrtemplate形式のテキストに変換

    同じレコードからは常にバイト単位で同一の出力を生成する（副作用なし）
    """

    indent = "\t"

    def render(self, record: MetadataRecord) -> str:
        """
        メタデータレコードをレンダリング

        バッファに出力し、成功した場合のみ結果を返す

        Args:
            record: メタデータレコード

        Returns:
            str: .lrtemplate形式のテキスト

        Raises:
            RenderError: 識別子・タイトルなどが出力できない値の場合
        """
        self._validate(record)

        identifier = quote(record.id)
        title = quote(record.title)
        one = self.indent
        two = self.indent * 2

        buffer = io.StringIO()
        buffer.write("s = {\n")
        buffer.write(f"{one}id = {identifier},\n")
        buffer.write(f"{one}internalName = {title},\n")
        buffer.write(f"{one}title = {title},\n")
        buffer.write(f"{one}type = {quote(PRESET_TYPE)},\n")
        buffer.write(f"{one}value = {{\n")

        for name, value in value_fields(record):
            if _is_present(value):
                buffer.write(f"{two}{name} = {_format_value(value)},\n")

        buffer.write(f"{two}uuid = {identifier},\n")
        buffer.write(f"{one}}},\n")
        buffer.write(f"{one}version = {PRESET_VERSION},\n")
        buffer.write("}\n")

        return buffer.getvalue()

    def _validate(self, record: MetadataRecord) -> None:
        if not isinstance(record.id, str) or not _ID_RE.match(record.id):
            raise RenderError(f"Invalid preset identifier: {record.id!r}")

        if not isinstance(record.title, str) or not record.title:
            raise RenderError(f"Preset {record.id} has no title")

        if isinstance(record.scene, bool) or not isinstance(record.scene, int):
            raise RenderError(f"Preset {record.id} has a non-integer scene code: {record.scene!r}")

        for name, value in value_fields(record):
            if value is not None and not isinstance(value, (str, int)):
                raise RenderError(f"Preset {record.id} has a non-text {name} field: {value!r}")
