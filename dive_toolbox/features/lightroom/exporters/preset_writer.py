"""Lightroomメタデータプリセットの書き出し"""

import os
import re
import tempfile
from pathlib import Path
from typing import Union

from ....shared.exceptions.errors import ExportError
from ....shared.logging.config import get_logger
from ..domain.models import MetadataRecord

logger = get_logger(__name__)

PRESET_SUFFIX = ".lrtemplate"
FILENAME_PREFIX = "MacDive-"

# 既存プリセットの id 行（先頭のインデントあり）
_PRESET_ID_RE = re.compile(
    r'^\s+id\s=\s"(?P<id>[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12})",$',
    re.MULTILINE | re.IGNORECASE,
)


class PresetWriter:
    """メタデータプリセットディレクトリへの読み書き"""

    def __init__(self, directory: Union[str, Path]) -> None:
        """
        Args:
            directory: Lightroomのメタデータプリセットディレクトリ
        """
        self.directory = Path(directory).expanduser()
        logger.info(f"PresetWriter initialized: {self.directory}")

    def filename_for(self, record: MetadataRecord) -> str:
        """レコードに対応するファイル名"""
        return f"{FILENAME_PREFIX}{record.id}{PRESET_SUFFIX}"

    def read_existing(self) -> dict[str, Path]:
        """
        既存のプリセットを読み込み、識別子とファイルパスの対応を返す

        サブディレクトリも走査する。識別子は大文字に揃える

        Returns:
            dict[str, Path]: 識別子 -> ファイルパス

        Raises:
            ExportError: ファイルが読めない場合
        """
        if not self.directory.exists():
            logger.info(f"Preset directory does not exist yet: {self.directory}")
            return {}

        existing: dict[str, Path] = {}

        for path in sorted(self.directory.rglob(f"*{PRESET_SUFFIX}")):
            if not path.is_file():
                continue

            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise ExportError(f"Failed to read preset {path}: {e}") from e

            match = _PRESET_ID_RE.search(content)
            if match is None:
                # 手作業で作成されたプリセットなどは対象外
                logger.warning(f"Skipping preset without a UUID id: {path}")
                continue

            existing[match.group("id").upper()] = path

        logger.info(f"Found {len(existing)} existing metadata presets")

        return existing

    def write(self, record: MetadataRecord, content: str) -> Path:
        """
        プリセットを書き出し

        一時ファイルに書き込んでから置き換えるため、途中までの内容は残らない

        Args:
            record: メタデータレコード
            content: レンダリング済みのテキスト

        Returns:
            Path: 書き出したファイルのパス

        Raises:
            ExportError: 書き込みに失敗した場合
        """
        path = self.directory / self.filename_for(record)

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{record.id}.", suffix=".tmp", dir=self.directory
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                    f.write(content)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise ExportError(f"Failed to write preset {path}: {e}") from e

        logger.debug(f"Preset written: {path}")

        return path
