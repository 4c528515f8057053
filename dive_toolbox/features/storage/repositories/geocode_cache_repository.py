"""ジオコードキャッシュのリポジトリ（SQLite）"""

import json
import sqlite3
from pathlib import Path
from typing import Optional, Union

from ....shared.exceptions.errors import CacheUnavailable
from ....shared.logging.config import get_logger
from ....shared.utils.datetime_utils import format_iso, now_utc, parse_iso
from ...geocoding.domain.models import CacheEntry, PlaceDescription

logger = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS geocode_cache (
    key TEXT PRIMARY KEY,
    place TEXT NOT NULL,
    resolved_at TEXT NOT NULL
);
"""

_UPSERT = """
INSERT INTO geocode_cache (key, place, resolved_at)
VALUES (?, ?, ?)
ON CONFLICT(key) DO UPDATE SET
    place = excluded.place,
    resolved_at = excluded.resolved_at
"""


class GeocodeCacheRepository:
    """
    丸めた座標キーから地名情報を引くための永続キャッシュ

    - 参照は完全一致のみ（あいまい検索はしない）
    - putはコミット完了後に戻る（書き込みスルー、遅延書き込みなし）
    - sqlite3の呼び出しは待機を挟まないため、書き込みはイベントループ上で
      呼び出し順に直列化され、同一キーは後勝ち
    - TTLは持たず、明示的に削除されるまで保持する
    """

    def __init__(self, db_path: Union[str, Path]) -> None:
        """
        Args:
            db_path: SQLiteファイルのパス（":memory:" も可）
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path).expanduser()
        self._conn: Optional[sqlite3.Connection] = None

        logger.info(f"GeocodeCacheRepository initialized: {self.db_path}")

    def open(self) -> None:
        """
        データベースを開き、スキーマを作成

        Raises:
            CacheUnavailable: データベースを開けない場合
        """
        if self._conn is not None:
            return

        try:
            if isinstance(self.db_path, Path):
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise CacheUnavailable(f"Failed to open geocode cache {self.db_path}: {e}") from e

        self._conn = conn
        logger.debug(f"Geocode cache opened: {self.db_path}")

    def close(self) -> None:
        """未コミットの変更をフラッシュしてクローズ"""
        if self._conn is None:
            return

        try:
            self._conn.commit()
            self._conn.close()
            logger.debug("Geocode cache closed")
        except sqlite3.Error as e:
            raise CacheUnavailable(f"Failed to close geocode cache: {e}") from e
        finally:
            self._conn = None

    @property
    def is_open(self) -> bool:
        """データベースが開かれているか"""
        return self._conn is not None

    async def get(self, key: str) -> Optional[PlaceDescription]:
        """
        キーに対応する地名情報を取得

        Args:
            key: 丸めた座標キー

        Returns:
            Optional[PlaceDescription]: キャッシュされた地名情報（存在しない場合はNone）

        Raises:
            CacheUnavailable: 読み込みに失敗した場合
        """
        entry = await self.get_entry(key)
        return entry.value if entry else None

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        """
        キーに対応するキャッシュエントリを取得

        Raises:
            CacheUnavailable: 読み込みに失敗した場合
        """
        conn = self._connection()

        try:
            row = conn.execute(
                "SELECT place, resolved_at FROM geocode_cache WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise CacheUnavailable(f"Failed to read geocode cache entry {key}: {e}") from e

        if row is None:
            return None

        try:
            place = PlaceDescription.from_dict(json.loads(row[0]))
            resolved_at = parse_iso(row[1])
        except (ValueError, TypeError, AttributeError) as e:
            # 壊れたエントリはキャッシュミスとして扱う
            logger.warning(f"Ignoring corrupt geocode cache entry {key}: {e}")
            return None

        return CacheEntry(key=key, value=place, resolved_at=resolved_at)

    async def put(self, key: str, value: PlaceDescription) -> None:
        """
        地名情報を保存（upsert）

        コミットが完了してから戻る

        Args:
            key: 丸めた座標キー
            value: 地名情報

        Raises:
            CacheUnavailable: 書き込みに失敗した場合
        """
        conn = self._connection()
        payload = json.dumps(value.to_dict(), ensure_ascii=False, sort_keys=True)

        try:
            conn.execute(_UPSERT, (key, payload, format_iso(now_utc())))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise CacheUnavailable(f"Failed to write geocode cache entry {key}: {e}") from e

        logger.debug(f"Geocode cache stored: {key}")

    async def delete(self, key: str) -> bool:
        """
        キャッシュエントリを削除

        Returns:
            bool: 削除した場合True

        Raises:
            CacheUnavailable: 削除に失敗した場合
        """
        conn = self._connection()

        try:
            cursor = conn.execute("DELETE FROM geocode_cache WHERE key = ?", (key,))
            conn.commit()
        except sqlite3.Error as e:
            raise CacheUnavailable(f"Failed to delete geocode cache entry {key}: {e}") from e

        return cursor.rowcount > 0

    async def clear(self) -> int:
        """
        すべてのキャッシュエントリを削除

        Returns:
            int: 削除したエントリ数
        """
        conn = self._connection()

        try:
            cursor = conn.execute("DELETE FROM geocode_cache")
            conn.commit()
        except sqlite3.Error as e:
            raise CacheUnavailable(f"Failed to clear geocode cache: {e}") from e

        logger.info(f"Geocode cache cleared: {cursor.rowcount} entries removed")
        return cursor.rowcount

    async def count(self) -> int:
        """キャッシュエントリ数を取得"""
        conn = self._connection()

        try:
            row = conn.execute("SELECT COUNT(*) FROM geocode_cache").fetchone()
        except sqlite3.Error as e:
            raise CacheUnavailable(f"Failed to count geocode cache entries: {e}") from e

        return int(row[0])

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise CacheUnavailable("Geocode cache is not open")
        return self._conn

    def __enter__(self) -> "GeocodeCacheRepository":
        self.open()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
