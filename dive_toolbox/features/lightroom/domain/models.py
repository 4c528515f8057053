"""Lightroomエクスポート機能のドメインモデル"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from ...geocoding.domain.models import PlaceDescription


@dataclass(frozen=True)
class DiveEntry:
    """
    ダイブログのエントリ（ダイブサイト）

    データベース層から読み取り専用で渡される
    """

    source_id: Union[str, int]  # ダイブログ上の一意な識別子（UUIDなど）
    title: str  # 表示用タイトル
    latitude: Optional[float]  # 緯度
    longitude: Optional[float]  # 経度
    scene: int = 0  # IPTCシーンコード（0は未設定）
    site_name: Optional[str] = None  # ダイブサイト名


@dataclass(frozen=True)
class MetadataRecord:
    """
    メタデータプリセットの入力モデル

    ダイブエントリごとに生成され、生成後は変更しない
    """

    id: str  # 大文字化済みの一意な識別子
    title: str  # 表示用タイトル
    gps: str  # DMS形式の座標文字列
    place: PlaceDescription = field(default_factory=PlaceDescription)
    scene: int = 0  # IPTCシーンコード（0は出力しない）

    def to_summary(self) -> dict[str, Any]:
        """サマリー表示用の辞書に変換"""
        return {
            "id": self.id,
            "title": self.title,
            "location": self.place.location,
            "city": self.place.city,
            "region": self.place.region,
            "state": self.place.state,
            "country": self.place.country,
            "gps": self.gps,
        }
